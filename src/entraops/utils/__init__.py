"""Utility modules for entraops."""
