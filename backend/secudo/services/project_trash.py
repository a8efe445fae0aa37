"""
Project trash lifecycle

Trashed projects keep their data for the retention window and can be
restored by the project creator, a project Admin or a global admin. Once the
window has passed they are purged together with everything they own.
Trashed projects are invisible to export, import targets and restore.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import Project, ProjectMembership
from ..rbac import ProjectRole, get_project_access, is_global_admin, normalize_project_role
from ..utils.logging_security import create_audit_log_entry, sanitize_id_for_log
from .interchange.exceptions import ProjectAccessError, ProjectNotFoundError

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("secudo.audit")

TRASH_OWNER_REQUIRED = "Not authorized (Project creator, project Admin, or global Admin required)"


def can_manage_trash(
    user_id: Optional[str],
    global_role: Optional[str],
    creator_user_id: Optional[str],
    membership_role: Optional[str],
) -> bool:
    return (
        is_global_admin(global_role)
        or (creator_user_id is not None and creator_user_id == user_id)
        or normalize_project_role(membership_role) == ProjectRole.ADMIN
    )


class ProjectTrashService:
    """Soft delete, restore and purge of projects"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.settings.project_trash_retention_days)

    def expiry_of(self, deleted_at: datetime) -> datetime:
        return deleted_at + self.retention

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Permanently delete projects trashed before the retention cutoff."""
        cutoff = (now or datetime.utcnow()) - self.retention
        expired = (
            self.db.query(Project)
            .filter(Project.deleted_at.isnot(None), Project.deleted_at <= cutoff)
            .all()
        )
        if not expired:
            return 0

        try:
            for project in expired:
                self.db.delete(project)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Purged {len(expired)} expired project(s) from trash")
        return len(expired)

    def trash_project(self, project_id: str, current_user: Mapping[str, Any]) -> Dict[str, Any]:
        """Move a live project to the trash."""
        self.purge_expired()
        access = get_project_access(self.db, project_id, current_user)
        if not access.exists:
            raise ProjectNotFoundError(project_id)
        if not can_manage_trash(
            current_user.get("id"), current_user.get("role"), access.creator_user_id, access.membership_role
        ):
            raise ProjectAccessError(project_id, message=TRASH_OWNER_REQUIRED)

        project = self.db.get(Project, project_id)
        deleted_at = datetime.utcnow()
        try:
            project.deleted_at = deleted_at
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        audit_logger.info(
            create_audit_log_entry(
                action="PROJECT_TRASHED",
                user_id=current_user.get("id"),
                resource_type="project",
                resource_id=project_id,
            )
        )
        return {
            "success": True,
            "projectId": project_id,
            "deletedAt": deleted_at,
            "expiresAt": self.expiry_of(deleted_at),
            "retentionDays": self.settings.project_trash_retention_days,
        }

    def restore_project(self, project_id: str, current_user: Mapping[str, Any]) -> Dict[str, Any]:
        """Bring a trashed project back."""
        project = (
            self.db.query(Project)
            .filter(Project.id == project_id, Project.deleted_at.isnot(None))
            .first()
        )
        if project is None:
            raise ProjectNotFoundError(project_id, message="Project not found in trash")

        access = get_project_access(self.db, project_id, current_user, include_deleted=True)
        if not can_manage_trash(
            current_user.get("id"), current_user.get("role"), access.creator_user_id, access.membership_role
        ):
            raise ProjectAccessError(project_id, message=TRASH_OWNER_REQUIRED)

        try:
            project.deleted_at = None
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Restored project {sanitize_id_for_log(project_id)} from trash")
        audit_logger.info(
            create_audit_log_entry(
                action="PROJECT_RESTORED",
                user_id=current_user.get("id"),
                resource_type="project",
                resource_id=project_id,
            )
        )
        return {"success": True, "projectId": project_id}

    def list_trash(self, current_user: Mapping[str, Any], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Trashed projects visible to the caller, most recently trashed first.

        Global admins see every trashed project, everyone else only the
        projects they are a member of. Expired projects are purged first.
        """
        now = now or datetime.utcnow()
        self.purge_expired(now)

        user_id = current_user.get("id")
        global_role = current_user.get("role")
        query = self.db.query(Project).filter(Project.deleted_at.isnot(None))
        if not is_global_admin(global_role):
            query = query.join(ProjectMembership, ProjectMembership.project_id == Project.id).filter(
                ProjectMembership.user_id == user_id
            )
        projects = query.order_by(Project.deleted_at.desc()).all()

        entries = []
        for project in projects:
            access = get_project_access(self.db, project.id, current_user, include_deleted=True)
            expires_at = self.expiry_of(project.deleted_at)
            seconds_left = max(0.0, (expires_at - now).total_seconds())
            entries.append(
                {
                    "id": project.id,
                    "name": project.name,
                    "deletedAt": project.deleted_at,
                    "expiresAt": expires_at,
                    "daysRemaining": math.ceil(seconds_left / 86400),
                    "retentionDays": self.settings.project_trash_retention_days,
                    "canRestore": can_manage_trash(
                        user_id, global_role, access.creator_user_id, access.membership_role
                    ),
                }
            )
        return entries
