"""Registry operations built on the core client."""
