"""Jittered broadcast loop."""

from herald.broadcast.broadcast_scheduler import BroadcastCycleResult, BroadcastScheduler, BroadcastState

__all__ = [
    'BroadcastScheduler',
    'BroadcastState',
    'BroadcastCycleResult',
]
