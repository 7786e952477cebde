"""API routes package."""

from . import sessions

__all__ = ["sessions"]
