"""
Hierarchy cycle guard for the component containment tree

Nodes form a forest through ``parent_node_id``. Every parent assignment
(live edit, import, restore) goes through ``check_parent_assignment`` so a
node never becomes its own ancestor and only containers hold children.
"""

import logging
from enum import Enum
from typing import Callable, Dict, NamedTuple, Optional

from sqlalchemy.orm import Session

from ...database import ModelNode
from ...utils.logging_security import sanitize_id_for_log
from .models import NodeCategory

logger = logging.getLogger(__name__)


class NodeLink(NamedTuple):
    """What the guard needs to know about one node"""

    project_id: str
    parent_node_id: Optional[str]
    category: str


ParentLookup = Callable[[str], Optional[NodeLink]]


class ParentRejection(str, Enum):
    SELF_PARENT = "self-parent"
    UNRESOLVED_PARENT = "unresolved-parent"
    NON_CONTAINER_PARENT = "non-container-parent"
    CYCLE = "cycle"


def would_create_cycle(project_id: str, node_id: str, candidate_parent_id: str, lookup: ParentLookup) -> bool:
    """
    Check whether making ``candidate_parent_id`` the parent of ``node_id``
    would break the forest.

    Follows the candidate's parent chain up to the root.

    Returns:
        True when the candidate is the node itself, when the node appears in
        the chain, when a chain link is missing or belongs to another
        project, or when the stored chain already loops.
    """
    if node_id == candidate_parent_id:
        return True

    visited = set()
    current: Optional[str] = candidate_parent_id
    while current:
        if current == node_id:
            return True
        if current in visited:
            logger.warning(f"Existing parent chain loops at node {sanitize_id_for_log(current)}")
            return True
        visited.add(current)

        link = lookup(current)
        if link is None or link.project_id != project_id:
            return True
        current = link.parent_node_id

    return False


def check_parent_assignment(
    project_id: str,
    node_id: str,
    candidate_parent_id: str,
    lookup: ParentLookup,
) -> Optional[ParentRejection]:
    """Return why the assignment must be rejected, or None when it is allowed."""
    if node_id == candidate_parent_id:
        return ParentRejection.SELF_PARENT

    parent = lookup(candidate_parent_id)
    if parent is None or parent.project_id != project_id:
        return ParentRejection.UNRESOLVED_PARENT
    if parent.category != NodeCategory.CONTAINER.value:
        return ParentRejection.NON_CONTAINER_PARENT
    if would_create_cycle(project_id, node_id, candidate_parent_id, lookup):
        return ParentRejection.CYCLE
    return None


def mapping_lookup(links: Dict[str, NodeLink]) -> ParentLookup:
    """Lookup over an in-memory arena of nodes being materialized."""
    return links.get


def db_parent_lookup(db: Session) -> ParentLookup:
    """Lookup backed by the session (identity map first, then the store)."""

    def lookup(node_id: str) -> Optional[NodeLink]:
        node = db.get(ModelNode, node_id)
        if node is None:
            return None
        return NodeLink(node.project_id, node.parent_node_id, node.category)

    return lookup
