"""Sync services for mirroring the upstream listing into the record store.

Public API:
  - SyncEngine – runs one cycle: walk, reconcile, staleness sweep; plus cleanup
  - PaginationWalker / WalkResult – collect every upstream id
  - Reconciler – bring one id in line with the store
  - compute_feature_signals() / SignalRules – advisory promotion hints
  - SyncConfig / UpstreamSettings – immutable settings
  - CycleStats / CleanupResult – result objects
"""

from .config import DEFAULT_PREMIUM_LOCATIONS, SyncConfig, UpstreamSettings
from .engine import StoreSnapshot, SyncEngine
from .errors import (ConfigurationError, CycleCancelled, RecordProcessingError,
                     SyncInProgressError)
from .pagination import PaginationWalker, WalkResult
from .reconciler import Reconciler
from .signals import SignalRules, compute_feature_signals
from .stats import CleanupResult, CycleStats

__all__ = [
    # === Settings
    "DEFAULT_PREMIUM_LOCATIONS",
    "SyncConfig",
    "UpstreamSettings",
    # === Orchestration
    "PaginationWalker",
    "Reconciler",
    "StoreSnapshot",
    "SyncEngine",
    "WalkResult",
    # === Signals
    "SignalRules",
    "compute_feature_signals",
    # === Results
    "CleanupResult",
    "CycleStats",
    # === Errors
    "ConfigurationError",
    "CycleCancelled",
    "RecordProcessingError",
    "SyncInProgressError",
]
