"""
Snapshot (savepoint) API: capture, list, delete and restore
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..middleware.error_handling import http_exception_for
from ..services.interchange import (
    CreateSnapshotRequest,
    InterchangeError,
    RestoreResult,
    SnapshotRestoreService,
    SnapshotSummary,
)
from ..services.snapshots import SnapshotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects/{project_id}/savepoints", tags=["Snapshots"])


@router.get("", response_model=List[SnapshotSummary])  # type: ignore[misc]
async def list_savepoints(
    project_id: str,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> List[SnapshotSummary]:
    try:
        return SnapshotService(db).list_snapshots(project_id, current_user)
    except InterchangeError as e:
        raise http_exception_for(e)


@router.post("", response_model=SnapshotSummary, status_code=status.HTTP_201_CREATED)  # type: ignore[misc]
async def create_savepoint(
    project_id: str,
    request: CreateSnapshotRequest,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> SnapshotSummary:
    """Capture a titled snapshot of the project's canonical model (Editor required)."""
    try:
        return SnapshotService(db).create_snapshot(project_id, request.title, request.snapshot, current_user)
    except InterchangeError as e:
        raise http_exception_for(e)


@router.delete("/{savepoint_id}")  # type: ignore[misc]
async def delete_savepoint(
    project_id: str,
    savepoint_id: str,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    try:
        deleted_id = SnapshotService(db).delete_snapshot(project_id, savepoint_id, current_user)
    except InterchangeError as e:
        raise http_exception_for(e)
    return {"success": True, "id": deleted_id}


@router.post("/{savepoint_id}/restore", response_model=RestoreResult)  # type: ignore[misc]
async def restore_savepoint(
    project_id: str,
    savepoint_id: str,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> RestoreResult:
    """
    Replace the project's canonical graph with the snapshot content.

    Returns the restored counts, the view state keyed by the new node ids and
    a warning when some references could not be restored.
    """
    try:
        return SnapshotRestoreService(db).restore_snapshot(project_id, savepoint_id, current_user)
    except InterchangeError as e:
        raise http_exception_for(e)
