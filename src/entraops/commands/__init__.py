"""Command modules for entraops CLI."""
