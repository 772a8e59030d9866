"""Command implementations for the qtcoal CLI."""
