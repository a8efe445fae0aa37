"""
Project Export Service

Reads a project's full data closure verbatim (original ids, no remapping)
and assembles one native bundle per project, or an OSCAL system security
plan per project when the OSCAL format is requested.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from ...config import Settings, get_settings
from ...database import (
    Answer,
    AssetValue,
    CanonicalModelSavepoint,
    ComponentData,
    DataObject,
    EdgeDataFlow,
    FinalAnswer,
    Finding,
    Measure,
    ModelEdge,
    ModelNode,
    Project,
    ProjectMembership,
    Question,
    Report,
    User,
)
from ...rbac import can_export, get_project_access
from ...utils.logging_security import create_audit_log_entry, sanitize_id_for_log
from .models import NATIVE_FORMAT, OSCAL_FORMAT, OSCAL_MODEL, OSCAL_VERSION, ExportFormat
from .oscal import build_oscal_document

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("secudo.audit")

PROJECT_FIELDS = ("id", "name", "description", "norm", "min_role_to_view", "created_at", "updated_at")
MEMBER_FIELDS = ("id", "project_id", "user_id", "role", "created_at", "added_at")
USER_FIELDS = ("id", "email", "first_name", "last_name", "name", "role")


def serialize_value(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.isoformat() + "Z"
        return value.astimezone(timezone.utc).isoformat()
    return value


def serialize_row(row: Any, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Column values of an ORM row keyed by their camelCase JSON names."""
    keys = fields or [column.key for column in row.__table__.columns]
    return {to_camel(key): serialize_value(getattr(row, key)) for key in keys}


def caller_projection(current_user: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": current_user.get("id"),
        "email": current_user.get("email"),
        "name": current_user.get("name"),
        "role": current_user.get("role"),
    }


class ProjectExportService:
    """
    Builds export bundles for a list of projects.

    Projects are read one after another on the request's session. A project
    that cannot be exported is reported in ``errors`` and does not fail the
    rest of the batch.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def export_projects(
        self,
        project_ids: Iterable[str],
        current_user: Mapping[str, Any],
        export_format: ExportFormat = ExportFormat.SECUDO,
    ) -> Dict[str, Any]:
        """
        Export every distinct project id in request order.

        Args:
            project_ids: Requested ids (duplicates are ignored)
            current_user: Caller identity dict from get_current_user
            export_format: Native bundle or OSCAL document

        Returns:
            Export envelope with ``projects`` (or ``documents``) and ``errors``
        """
        bundles: List[Dict[str, Any]] = []
        errors: List[Dict[str, str]] = []

        for project_id in dict.fromkeys(project_ids):
            access = get_project_access(self.db, project_id, current_user)
            if not access.exists:
                errors.append({"projectId": project_id, "error": "not_found", "reason": "Project not found"})
                continue
            if not can_export(access.membership_role, current_user.get("role")):
                errors.append(
                    {
                        "projectId": project_id,
                        "error": "forbidden",
                        "reason": "Not authorized to export this project (Editor required)",
                    }
                )
                continue

            project = self.db.get(Project, project_id)
            bundles.append(self.build_project_bundle(project))

        audit_logger.info(
            create_audit_log_entry(
                action="PROJECT_EXPORTED",
                user_id=current_user.get("id"),
                resource_type="project",
                resource_id=",".join(bundle["project"]["id"] for bundle in bundles) or None,
                success=not errors,
                additional_context={"format": export_format.value, "exported": len(bundles), "errors": len(errors)},
            )
        )

        exported_at = datetime.now(timezone.utc).isoformat()
        exported_by = caller_projection(current_user)

        if export_format == ExportFormat.OSCAL:
            documents = [build_oscal_document(bundle) for bundle in bundles]
            return {
                "format": OSCAL_FORMAT,
                "model": OSCAL_MODEL,
                "version": self.settings.export_format_version,
                "oscalVersion": OSCAL_VERSION,
                "exportedAt": exported_at,
                "exportedBy": exported_by,
                "projectCount": len(documents),
                "documents": documents,
                "errors": errors,
            }

        return {
            "format": NATIVE_FORMAT,
            "version": self.settings.export_format_version,
            "exportedAt": exported_at,
            "exportedBy": exported_by,
            "projects": bundles,
            "errors": errors,
        }

    def build_project_bundle(self, project: Project) -> Dict[str, Any]:
        """Read one project's full data closure into a native bundle."""
        project_id = project.id
        logger.debug(f"Collecting export bundle for project {sanitize_id_for_log(project_id)}")

        members = (
            self.db.query(ProjectMembership)
            .filter(ProjectMembership.project_id == project_id)
            .order_by(ProjectMembership.created_at.asc())
            .all()
        )
        nodes = self._owned(ModelNode, project_id)
        edges = self._owned(ModelEdge, project_id)
        data_objects = self._owned(DataObject, project_id)
        component_data = (
            self.db.query(ComponentData)
            .join(ModelNode, ComponentData.node_id == ModelNode.id)
            .filter(ModelNode.project_id == project_id)
            .order_by(ComponentData.id.asc())
            .all()
        )
        edge_data_flows = (
            self.db.query(EdgeDataFlow)
            .join(ModelEdge, EdgeDataFlow.edge_id == ModelEdge.id)
            .filter(ModelEdge.project_id == project_id)
            .order_by(EdgeDataFlow.id.asc())
            .all()
        )
        asset_values = self._owned(AssetValue, project_id)
        questions = self._owned(Question, project_id)
        answers = self._owned(Answer, project_id)
        final_answers = self._owned(FinalAnswer, project_id)
        findings = self._owned(Finding, project_id)
        measures = self._owned(Measure, project_id)
        reports = self._owned(Report, project_id, order_column="generated_at")
        savepoints = self._owned(CanonicalModelSavepoint, project_id)

        referenced_user_ids = set()
        referenced_user_ids.update(member.user_id for member in members)
        for node in nodes:
            referenced_user_ids.update(filter(None, (node.created_by_user_id, node.updated_by_user_id)))
        referenced_user_ids.update(edge.created_by_user_id for edge in edges if edge.created_by_user_id)
        referenced_user_ids.update(answer.user_id for answer in answers)
        referenced_user_ids.update(measure.created_by_user_id for measure in measures if measure.created_by_user_id)
        referenced_user_ids.update(
            savepoint.created_by_user_id for savepoint in savepoints if savepoint.created_by_user_id
        )

        users: List[User] = []
        if referenced_user_ids:
            users = self.db.query(User).filter(User.id.in_(referenced_user_ids)).order_by(User.email.asc()).all()

        return {
            "format": NATIVE_FORMAT,
            "version": self.settings.export_format_version,
            "project": serialize_row(project, PROJECT_FIELDS),
            "members": [serialize_row(member, MEMBER_FIELDS) for member in members],
            "users": [serialize_row(user, USER_FIELDS) for user in users],
            "nodes": [serialize_row(row) for row in nodes],
            "edges": [serialize_row(row) for row in edges],
            "dataObjects": [serialize_row(row) for row in data_objects],
            "componentData": [serialize_row(row) for row in component_data],
            "edgeDataFlows": [serialize_row(row) for row in edge_data_flows],
            "assetValues": [serialize_row(row) for row in asset_values],
            "questions": [serialize_row(row) for row in questions],
            "answers": [serialize_row(row) for row in answers],
            "finalAnswers": [serialize_row(row) for row in final_answers],
            "findings": [serialize_row(row) for row in findings],
            "measures": [serialize_row(row) for row in measures],
            "reports": [serialize_row(row) for row in reports],
            "savepoints": [serialize_row(row) for row in savepoints],
        }

    def _owned(self, model: Any, project_id: str, order_column: str = "created_at") -> List[Any]:
        column = getattr(model, order_column)
        return (
            self.db.query(model)
            .filter(model.project_id == project_id)
            .order_by(column.asc(), model.id.asc())
            .all()
        )
