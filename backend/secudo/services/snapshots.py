"""
Snapshot (canonical model savepoint) service

Captures, lists and deletes titled snapshots of a project's canonical model.
Restoring a snapshot is handled by interchange.restore_service.
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import CanonicalModelSavepoint, User
from ..rbac import can_edit, get_project_access, is_global_admin
from ..utils.logging_security import create_audit_log_entry, sanitize_id_for_log
from .interchange.exceptions import (
    InvalidSnapshotRequestError,
    ProjectAccessError,
    ProjectNotFoundError,
    SnapshotNotFoundError,
    SnapshotTooLargeError,
)
from .interchange.models import SnapshotSummary

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("secudo.audit")


def _creator_projection(user: Optional[User]) -> Optional[Dict[str, Optional[str]]]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


class SnapshotService:
    """Snapshot capture and listing for one request session"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def _require_editor(self, project_id: str, current_user: Mapping[str, Any]) -> None:
        access = get_project_access(self.db, project_id, current_user)
        if not access.exists:
            raise ProjectNotFoundError(project_id)
        if not (is_global_admin(current_user.get("role")) or can_edit(access.membership_role)):
            raise ProjectAccessError(project_id, required="Editor")

    def _summary(self, savepoint: CanonicalModelSavepoint) -> SnapshotSummary:
        creator = self.db.get(User, savepoint.created_by_user_id) if savepoint.created_by_user_id else None
        return SnapshotSummary(
            id=savepoint.id,
            title=savepoint.title,
            created_at=savepoint.created_at,
            created_by=_creator_projection(creator),
        )

    def list_snapshots(self, project_id: str, current_user: Mapping[str, Any]) -> List[SnapshotSummary]:
        """Snapshots of a project visible to the caller, newest first."""
        access = get_project_access(self.db, project_id, current_user)
        if not access.exists:
            raise ProjectNotFoundError(project_id)
        if not access.can_view:
            raise ProjectAccessError(project_id, message="Not authorized")

        savepoints = (
            self.db.query(CanonicalModelSavepoint)
            .filter(CanonicalModelSavepoint.project_id == project_id)
            .order_by(CanonicalModelSavepoint.created_at.desc())
            .all()
        )
        return [self._summary(savepoint) for savepoint in savepoints]

    def create_snapshot(
        self,
        project_id: str,
        title: str,
        snapshot: Any,
        current_user: Mapping[str, Any],
    ) -> SnapshotSummary:
        """
        Store a titled snapshot document.

        Raises:
            ProjectNotFoundError: project missing or trashed
            ProjectAccessError: caller below Editor and not global admin
            InvalidSnapshotRequestError: title empty or too long after trimming
            SnapshotTooLargeError: serialized document exceeds max_snapshot_bytes
        """
        self._require_editor(project_id, current_user)

        clean_title = (title or "").strip()
        if not clean_title:
            raise InvalidSnapshotRequestError("Snapshot title is required")
        if len(clean_title) > self.settings.max_snapshot_title_length:
            raise InvalidSnapshotRequestError(
                f"Snapshot title must be at most {self.settings.max_snapshot_title_length} characters"
            )

        model_json = json.dumps(snapshot)
        if len(model_json) > self.settings.max_snapshot_bytes:
            logger.warning(
                f"Rejected snapshot of {len(model_json)} chars for project {sanitize_id_for_log(project_id)}"
            )
            raise SnapshotTooLargeError(len(model_json), self.settings.max_snapshot_bytes)

        savepoint = CanonicalModelSavepoint(
            project_id=project_id,
            title=clean_title,
            model_json=model_json,
            created_by_user_id=current_user["id"],
        )
        try:
            self.db.add(savepoint)
            self.db.commit()
            self.db.refresh(savepoint)
        except Exception:
            self.db.rollback()
            raise

        audit_logger.info(
            create_audit_log_entry(
                action="SNAPSHOT_CREATED",
                user_id=current_user["id"],
                resource_type="snapshot",
                resource_id=savepoint.id,
                additional_context={"project": project_id},
            )
        )
        return self._summary(savepoint)

    def delete_snapshot(self, project_id: str, snapshot_id: str, current_user: Mapping[str, Any]) -> str:
        """Delete one snapshot of the project; returns its id."""
        self._require_editor(project_id, current_user)

        savepoint = (
            self.db.query(CanonicalModelSavepoint)
            .filter(
                CanonicalModelSavepoint.id == snapshot_id,
                CanonicalModelSavepoint.project_id == project_id,
            )
            .first()
        )
        if savepoint is None:
            raise SnapshotNotFoundError(project_id, snapshot_id)

        try:
            self.db.delete(savepoint)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        audit_logger.info(
            create_audit_log_entry(
                action="SNAPSHOT_DELETED",
                user_id=current_user["id"],
                resource_type="snapshot",
                resource_id=snapshot_id,
                additional_context={"project": project_id},
            )
        )
        return snapshot_id
