"""
Live parent edits of canonical model nodes

Moves a node under a container (or back to the root) through the hierarchy
cycle guard shared with import and restore.
"""

import logging
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from ..database import ModelNode
from ..rbac import can_edit, get_project_access, is_global_admin
from ..utils.logging_security import sanitize_id_for_log
from .interchange.exceptions import (
    HierarchyViolationError,
    NodeNotFoundError,
    ProjectAccessError,
    ProjectNotFoundError,
)
from .interchange.hierarchy import ParentRejection, check_parent_assignment, db_parent_lookup

logger = logging.getLogger(__name__)

REJECTION_MESSAGES = {
    ParentRejection.SELF_PARENT: "Node cannot be parent of itself",
    ParentRejection.UNRESOLVED_PARENT: "Invalid parent node",
    ParentRejection.NON_CONTAINER_PARENT: "Parent node must be a container",
    ParentRejection.CYCLE: "Parent assignment would create a cycle",
}


class NodeHierarchyService:
    def __init__(self, db: Session):
        self.db = db

    def set_parent(
        self,
        project_id: str,
        node_id: str,
        parent_node_id: Optional[str],
        current_user: Mapping[str, Any],
    ) -> ModelNode:
        """
        Assign ``parent_node_id`` as the parent of ``node_id``; None detaches it.

        Raises:
            ProjectNotFoundError: project missing or trashed
            ProjectAccessError: caller below Editor and not global admin
            NodeNotFoundError: node missing in this project
            HierarchyViolationError: assignment rejected by the cycle guard
        """
        access = get_project_access(self.db, project_id, current_user)
        if not access.exists:
            raise ProjectNotFoundError(project_id)
        if not (is_global_admin(current_user.get("role")) or can_edit(access.membership_role)):
            raise ProjectAccessError(project_id, required="Editor")

        node = self.db.get(ModelNode, node_id)
        if node is None or node.project_id != project_id:
            raise NodeNotFoundError(project_id, node_id)

        if parent_node_id and parent_node_id != node.parent_node_id:
            rejection = check_parent_assignment(project_id, node_id, parent_node_id, db_parent_lookup(self.db))
            if rejection is not None:
                logger.info(
                    f"Rejected parent {sanitize_id_for_log(parent_node_id)} for node "
                    f"{sanitize_id_for_log(node_id)}: {rejection.value}"
                )
                raise HierarchyViolationError(node_id, parent_node_id, rejection.value, REJECTION_MESSAGES[rejection])

        try:
            node.parent_node_id = parent_node_id or None
            node.updated_by_user_id = current_user.get("id")
            self.db.commit()
            self.db.refresh(node)
        except Exception:
            self.db.rollback()
            raise
        return node
