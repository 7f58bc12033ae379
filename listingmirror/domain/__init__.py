"""Domain layer for listingmirror.

This package groups the pure models that do not concern infrastructure or
interface details.
"""

from . import models

__all__ = ["models"]
