"""Service layer: sync orchestration, scheduling and the service handle."""

from .scheduler import (CycleState, GateDecision, Scheduler, SchedulerState,
                        evaluate_gate)
from .sync_service import SyncService

__all__ = [
    "CycleState",
    "GateDecision",
    "Scheduler",
    "SchedulerState",
    "SyncService",
    "evaluate_gate",
]
