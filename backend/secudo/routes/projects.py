"""
Project trash API
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..middleware.error_handling import http_exception_for
from ..services.interchange import InterchangeError
from ..services.project_trash import ProjectTrashService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["Projects"])


@router.get("/trash")  # type: ignore[misc]
async def list_trashed_projects(
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> List[Dict[str, Any]]:
    return ProjectTrashService(db).list_trash(current_user)


@router.post("/{project_id}/trash")  # type: ignore[misc]
async def trash_project(
    project_id: str,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    try:
        return ProjectTrashService(db).trash_project(project_id, current_user)
    except InterchangeError as e:
        raise http_exception_for(e)


@router.post("/{project_id}/restore")  # type: ignore[misc]
async def restore_project(
    project_id: str,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """Bring a trashed project back (creator, project Admin or global Admin)."""
    try:
        return ProjectTrashService(db).restore_project(project_id, current_user)
    except InterchangeError as e:
        raise http_exception_for(e)
