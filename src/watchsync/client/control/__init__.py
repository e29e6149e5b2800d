"""Sync control: echo tracking, sessions, reconciliation, captions, heartbeat."""

from .pending_actions import PendingActionTracker
from .reconciler import ReconciliationEngine, Transport
from .session import PlaybackSession

__all__ = ["PendingActionTracker", "PlaybackSession", "ReconciliationEngine", "Transport"]
