"""Domain models package.

This package contains the cached listing record model.
"""

from .record import CachedRecord, CoreFields, LifecycleState

__all__ = ["CachedRecord", "CoreFields", "LifecycleState"]
