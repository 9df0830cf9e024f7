"""Email handlers."""

from .application import ApplicationHandler

__all__ = ["ApplicationHandler"]
