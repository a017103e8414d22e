"""Registry protocol core: configuration, references, tokens and the HTTP client."""
