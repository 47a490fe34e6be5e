"""Command-line interface for Storylines."""
