from .handler import ApplicationHandler

__all__ = ["ApplicationHandler"]
