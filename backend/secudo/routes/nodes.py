"""
Canonical model node API: hierarchy edits
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..middleware.error_handling import http_exception_for
from ..services.interchange import InterchangeError, SetParentRequest
from ..services.interchange.export_service import serialize_row
from ..services.model_hierarchy import NodeHierarchyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects/{project_id}/nodes", tags=["Model"])


@router.patch("/{node_id}/parent")  # type: ignore[misc]
async def set_node_parent(
    project_id: str,
    node_id: str,
    request: SetParentRequest,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """Move a node under a container, or to the root with ``parentNodeId: null``."""
    try:
        node = NodeHierarchyService(db).set_parent(project_id, node_id, request.parent_node_id, current_user)
    except InterchangeError as e:
        raise http_exception_for(e)
    return serialize_row(node)
