"""Shared FastAPI dependencies for listingmirror."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from listingmirror.services.sync_service import SyncService

__all__ = ["SyncServiceDep", "get_sync_service"]


def get_sync_service(request: Request) -> SyncService:
    """Return the service handle stored on ``app.state`` by :func:`create_app`."""

    return request.app.state.sync_service


SyncServiceDep = Annotated[SyncService, Depends(get_sync_service)]
