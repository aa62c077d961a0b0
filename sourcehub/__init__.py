"""SourceHub - remote content-source plugin runtime."""

__version__ = "1.0.0"
