"""Graph-of-Thoughts research stage pipeline."""

__version__ = "0.1.0"
