"""Utility modules for SourceHub."""
