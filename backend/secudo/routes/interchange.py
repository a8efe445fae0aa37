"""
Project export and import API
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..rbac import can_import
from ..services.interchange import (
    ExportRequest,
    ImportBundle,
    ImportResult,
    ProjectExportService,
    ProjectImportService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Interchange"])


@router.post("/project-export")  # type: ignore[misc]
async def export_projects(
    request: ExportRequest,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """
    Export projects as native bundles or OSCAL system security plans.

    Projects that are missing or not exportable by the caller are listed in
    ``errors``; the rest of the batch is still exported.
    """
    service = ProjectExportService(db)
    return service.export_projects(request.project_ids, current_user, request.format)


@router.post("/project-import", response_model=ImportResult)  # type: ignore[misc]
async def import_projects(
    bundle: ImportBundle,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> ImportResult:
    """
    Import every project of a bundle as a new project owned by the caller.

    Each item is imported in its own transaction; failures are reported per
    item in ``failedProjects``.
    """
    if not can_import(current_user.get("role")):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to import projects")

    return ProjectImportService(db).import_bundle(bundle, current_user)
