"""Command-line interface for qtcoal."""
