"""Email processors."""

from .guard import SingleFlight, sync_guard
from .sync import SyncProcessor

__all__ = ["SingleFlight", "SyncProcessor", "sync_guard"]
