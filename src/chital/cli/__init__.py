"""Command line interface for chital."""
