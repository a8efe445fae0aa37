"""
Role-Based Access Control (RBAC) for Secudo projects
Defines project roles, global roles, visibility policies and the
authorization checks consumed by the interchange engine
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from .database import Project, ProjectMembership

logger = logging.getLogger(__name__)


class ProjectRole(str, Enum):
    """Membership role inside one project"""
    ADMIN = "Admin"
    EDITOR = "Editor"
    VIEWER = "Viewer"


class GlobalRole(str, Enum):
    """Platform-wide user role"""
    ADMIN = "Admin"
    EDITOR = "Editor"
    VIEWER = "Viewer"


class ProjectVisibility(str, Enum):
    """Minimum role required to view a project"""
    ANY = "any"
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    PRIVATE = "private"


ROLE_RANK: Dict[ProjectRole, int] = {
    ProjectRole.VIEWER: 1,
    ProjectRole.EDITOR: 2,
    ProjectRole.ADMIN: 3,
}

VISIBILITY_REQUIRED_ROLE: Dict[ProjectVisibility, ProjectRole] = {
    ProjectVisibility.VIEWER: ProjectRole.VIEWER,
    ProjectVisibility.EDITOR: ProjectRole.EDITOR,
    ProjectVisibility.ADMIN: ProjectRole.ADMIN,
}


def normalize_project_role(role: Optional[str]) -> Optional[ProjectRole]:
    """Map a stored or imported role string to a ProjectRole ("user" is a legacy Editor)."""
    if not role:
        return None
    value = role.strip().lower()
    if value == "admin":
        return ProjectRole.ADMIN
    if value in ("editor", "user"):
        return ProjectRole.EDITOR
    if value == "viewer":
        return ProjectRole.VIEWER
    return None


def normalize_global_role(role: Optional[str]) -> GlobalRole:
    value = (role or "").strip().lower()
    if value == "admin":
        return GlobalRole.ADMIN
    if value == "editor":
        return GlobalRole.EDITOR
    return GlobalRole.VIEWER


def normalize_visibility(value: Any, default: ProjectVisibility = ProjectVisibility.PRIVATE) -> ProjectVisibility:
    if not isinstance(value, str):
        return default
    try:
        return ProjectVisibility(value.strip().lower())
    except ValueError:
        return default


def is_global_admin(role: Optional[str]) -> bool:
    return normalize_global_role(role) == GlobalRole.ADMIN


def can_edit(role: Optional[str]) -> bool:
    normalized = normalize_project_role(role)
    return normalized in (ProjectRole.ADMIN, ProjectRole.EDITOR)


def can_user_view_project(min_role_to_view: str, membership_role: Optional[str], global_role: Optional[str] = None) -> bool:
    """Apply a project's visibility policy to a caller"""
    if is_global_admin(global_role):
        return True

    visibility = normalize_visibility(min_role_to_view, ProjectVisibility.EDITOR)
    if visibility == ProjectVisibility.ANY:
        return True

    role = normalize_project_role(membership_role)
    if role is None:
        return False
    if visibility == ProjectVisibility.PRIVATE:
        return True

    return ROLE_RANK[role] >= ROLE_RANK[VISIBILITY_REQUIRED_ROLE[visibility]]


def can_export(membership_role: Optional[str], global_role: Optional[str]) -> bool:
    """Export requires Editor+ on the project or global Admin"""
    return is_global_admin(global_role) or can_edit(membership_role)


def can_import(global_role: Optional[str]) -> bool:
    """Any authenticated user may import; imported projects are owned by the caller"""
    return True


def can_restore(membership_role: Optional[str], global_role: Optional[str]) -> bool:
    """Snapshot restore requires Editor+ on the project or global Admin"""
    return is_global_admin(global_role) or can_edit(membership_role)


@dataclass
class ProjectAccess:
    """Result of resolving a caller against one project"""

    exists: bool
    can_view: bool = False
    membership_role: Optional[str] = None
    creator_user_id: Optional[str] = None
    min_role_to_view: Optional[str] = None


def get_project_access(
    db: Session,
    project_id: str,
    current_user: Mapping[str, Any],
    include_deleted: bool = False,
) -> ProjectAccess:
    """Look up the caller's membership and view rights for a project"""
    query = db.query(Project).filter(Project.id == project_id)
    if not include_deleted:
        query = query.filter(Project.deleted_at.is_(None))
    project = query.first()
    if project is None:
        return ProjectAccess(exists=False)

    user_id = current_user.get("id")
    memberships = (
        db.query(ProjectMembership)
        .filter(ProjectMembership.project_id == project_id)
        .order_by(ProjectMembership.created_at.asc())
        .all()
    )
    creator_user_id = memberships[0].user_id if memberships else None
    membership_role = next((m.role for m in memberships if m.user_id == user_id), None)

    return ProjectAccess(
        exists=True,
        can_view=can_user_view_project(project.min_role_to_view, membership_role, current_user.get("role")),
        membership_role=membership_role,
        creator_user_id=creator_user_id,
        min_role_to_view=project.min_role_to_view,
    )
