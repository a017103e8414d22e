"""Tar archive handling."""
