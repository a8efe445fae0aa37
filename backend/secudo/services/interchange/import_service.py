"""
Project Import Service

Imports native bundles into brand-new projects owned by the caller.

Each bundle item is processed sequentially in its own transaction:
- every id is re-allocated through an IdentifierRemapper
- stable ids and data-object names are deduplicated
- historical users are matched by email, never fabricated
- references that do not resolve are skipped and counted, not raised

An unexpected error rolls back that item only; sibling items are unaffected.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
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
from ...rbac import ProjectRole, normalize_project_role, normalize_visibility
from ...utils.logging_security import (
    create_audit_log_entry,
    sanitize_email_for_log,
    sanitize_error_message_for_log,
    sanitize_for_log,
)
from ..project_norm import parse_project_norms, serialize_project_norms
from .exceptions import InvalidBundleError
from .graph_writer import CanonicalGraphWriter
from .models import (
    AssetType,
    EntityKind,
    FailedProject,
    ImportBundle,
    ImportedProject,
    ImportResult,
    OperationLedger,
    QuestionTargetType,
)
from .normalization import (
    as_list,
    as_record,
    clamp_rating,
    normalize_answer_target_type,
    normalize_answer_type,
    normalize_asset_type,
    normalize_question_target_type,
    read_bool,
    read_datetime,
    read_string,
    text_or_default,
)
from .remapper import IdentifierRemapper

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("secudo.audit")

# Remapper kind -> model checked for id collisions in the store
STORE_MODELS = {
    "projects": Project,
    EntityKind.NODE.value: ModelNode,
    EntityKind.EDGE.value: ModelEdge,
    EntityKind.DATA_OBJECT.value: DataObject,
    EntityKind.COMPONENT_DATA.value: ComponentData,
    EntityKind.EDGE_DATA_FLOW.value: EdgeDataFlow,
    EntityKind.ASSET_VALUE.value: AssetValue,
    EntityKind.QUESTION.value: Question,
    EntityKind.ANSWER.value: Answer,
    EntityKind.FINAL_ANSWER.value: FinalAnswer,
    EntityKind.FINDING.value: Finding,
    EntityKind.MEASURE.value: Measure,
    EntityKind.REPORT.value: Report,
    EntityKind.SAVEPOINT.value: CanonicalModelSavepoint,
}

ASSET_KIND = {
    AssetType.NODE: EntityKind.NODE,
    AssetType.EDGE: EntityKind.EDGE,
    AssetType.DATA_OBJECT: EntityKind.DATA_OBJECT,
}

ANSWER_TARGET_KIND = {
    QuestionTargetType.COMPONENT: EntityKind.NODE,
    QuestionTargetType.EDGE: EntityKind.EDGE,
    QuestionTargetType.DATA_OBJECT: EntityKind.DATA_OBJECT,
}


def bundle_item_name(raw: Any) -> str:
    payload = as_record(raw)
    meta = as_record(payload.get("project")) if payload else None
    return (read_string(meta.get("name")) or "").strip() if meta else ""


def validate_bundle_item(index: int, raw: Any) -> Tuple[Dict[str, Any], Dict[str, Any], str]:
    """
    Top-level shape check of one bundle item.

    Raises:
        InvalidBundleError: item is not an object, has no project object,
            or the project name is empty
    """
    payload = as_record(raw)
    meta = as_record(payload.get("project")) if payload else None
    name = bundle_item_name(raw)
    if payload is None or meta is None or not name:
        raise InvalidBundleError(index=index)
    return payload, meta, name


def import_error_message(error: Exception) -> str:
    """Client-facing reason for a failed bundle item; database errors stay generic."""
    if isinstance(error, SQLAlchemyError) or not str(error).strip():
        return "Import failed"
    return sanitize_error_message_for_log(str(error))


class BundleItemImport:
    """
    State of one bundle item being imported: the new project, the id
    remapper, the operation ledger and the historical user mapping.

    Stages run in dependency order; the caller owns the transaction.
    """

    def __init__(self, db: Session, payload: Dict[str, Any], importer_id: str, settings: Settings):
        self.db = db
        self.payload = payload
        self.importer_id = importer_id
        self.settings = settings
        self.remapper = IdentifierRemapper(taken=self._id_taken)
        self.ledger = OperationLedger()
        self.user_map: Dict[str, str] = {}
        self.project: Optional[Project] = None
        self._finding_assets: Dict[str, Tuple[str, str]] = {}

    def _id_taken(self, kind: str, candidate: str) -> bool:
        model = STORE_MODELS.get(kind)
        return model is not None and self.db.get(model, candidate) is not None

    def _records(self, key: str) -> List[Tuple[int, Optional[Dict[str, Any]]]]:
        return [(index, as_record(raw)) for index, raw in enumerate(as_list(self.payload.get(key)))]

    def _user(self, old_user_id: Any) -> Optional[str]:
        old = read_string(old_user_id)
        return self.user_map.get(old) if old else None

    def _author(self, record: Dict[str, Any], field: str) -> Optional[str]:
        return self._user(record.get(field))

    def run(self, meta: Dict[str, Any], name: str) -> Project:
        self.create_project(meta, name)
        self.resolve_users()
        self.create_memberships()
        CanonicalGraphWriter(self.db, self.project.id, self.remapper, self.ledger, self._author).write(self.payload)
        self.create_asset_values()
        self.create_questions()
        self.db.flush()
        self.create_answers()
        self.create_final_answers()
        self.create_findings()
        self.db.flush()
        self.create_measures()
        self.create_reports()
        self.create_savepoints()
        self.db.flush()
        return self.project

    def create_project(self, meta: Dict[str, Any], name: str) -> None:
        raw_norm = read_string(meta.get("norm"))
        norms = parse_project_norms(raw_norm)
        self.project = Project(
            id=self.remapper.allocate(read_string(meta.get("id")), "projects", 0),
            name=name,
            description=read_string(meta.get("description")),
            norm=serialize_project_norms(norms) if norms else self.settings.default_project_norm,
            min_role_to_view=normalize_visibility(meta.get("minRoleToView")).value,
        )
        self.db.add(self.project)
        self.db.flush()

    def resolve_users(self) -> None:
        """Map historical user ids to existing accounts by case-insensitive email."""
        email_by_old_id: Dict[str, str] = {}
        for _, record in self._records("users"):
            old_id = read_string(record.get("id")) if record else None
            email = read_string(record.get("email")) if record else None
            if old_id and email and email.strip():
                email_by_old_id[old_id] = email.strip().lower()

        emails = sorted(set(email_by_old_id.values()))
        if not emails:
            return
        existing = self.db.query(User.id, User.email).filter(func.lower(User.email).in_(emails)).all()
        user_id_by_email = {email.lower(): user_id for user_id, email in existing}
        for old_id, email in email_by_old_id.items():
            if email in user_id_by_email:
                self.user_map[old_id] = user_id_by_email[email]
            else:
                logger.debug(f"No account matches historical user {sanitize_email_for_log(email)}")

    def create_memberships(self) -> None:
        # Explicit, increasing timestamps keep the importer as the earliest membership
        base_time = datetime.utcnow()
        self.db.add(
            ProjectMembership(
                project_id=self.project.id,
                user_id=self.importer_id,
                role=ProjectRole.ADMIN.value,
                created_at=base_time,
                added_at=base_time,
            )
        )
        self.ledger.created(EntityKind.MEMBER)

        assigned: Set[str] = {self.importer_id}
        for index, record in self._records("members"):
            user_id = self._user(record.get("userId")) if record else None
            if user_id is None:
                self.ledger.skip(EntityKind.MEMBER, "unmatched-user")
                continue
            if user_id in assigned:
                self.ledger.skip(EntityKind.MEMBER, "duplicate")
                continue
            assigned.add(user_id)
            joined_at = base_time + timedelta(milliseconds=len(assigned))
            self.db.add(
                ProjectMembership(
                    project_id=self.project.id,
                    user_id=user_id,
                    role=(normalize_project_role(read_string(record.get("role"))) or ProjectRole.VIEWER).value,
                    created_at=joined_at,
                    added_at=joined_at,
                )
            )
            self.ledger.created(EntityKind.MEMBER)
        self.db.flush()

    def _resolve_asset(self, raw_type: Any, raw_id: Any) -> Optional[Tuple[str, str]]:
        asset_type = normalize_asset_type(raw_type)
        if asset_type is None:
            return None
        asset_id = self.remapper.resolve(ASSET_KIND[asset_type].value, raw_id)
        if asset_id is None:
            return None
        return asset_type.value, asset_id

    def create_asset_values(self) -> None:
        kind = EntityKind.ASSET_VALUE
        seen_assets: Set[Tuple[str, str]] = set()
        for index, record in self._records("assetValues"):
            asset = self._resolve_asset(record.get("assetType"), record.get("assetId")) if record else None
            if asset is None:
                self.ledger.skip(kind, "unresolved-asset")
                continue
            if asset in seen_assets:
                self.ledger.skip(kind, "duplicate-asset")
                continue
            seen_assets.add(asset)
            self.db.add(
                AssetValue(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    project_id=self.project.id,
                    asset_type=asset[0],
                    asset_id=asset[1],
                    value=clamp_rating(record.get("value")),
                    comment=read_string(record.get("comment")),
                )
            )
            self.ledger.created(kind)

    def create_questions(self) -> None:
        kind = EntityKind.QUESTION
        for index, record in self._records("questions"):
            if record is None:
                self.ledger.skip(kind, "invalid")
                continue
            self.db.add(
                Question(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    project_id=self.project.id,
                    text=text_or_default(record.get("text"), "Imported Question"),
                    norm_reference=text_or_default(record.get("normReference"), "Custom"),
                    target_type=normalize_question_target_type(record.get("targetType")).value,
                    answer_type=normalize_answer_type(record.get("answerType")).value,
                    risk_description=read_string(record.get("riskDescription")),
                    default_measures=read_string(record.get("defaultMeasures")),
                )
            )
            self.ledger.created(kind)

    def create_answers(self) -> None:
        kind = EntityKind.ANSWER
        for index, record in self._records("answers"):
            question_id = self.remapper.resolve(EntityKind.QUESTION.value, record.get("questionId")) if record else None
            if question_id is None:
                self.ledger.skip(kind, "unresolved-question")
                continue
            target_type = normalize_answer_target_type(record.get("targetType"))
            target_kind = ANSWER_TARGET_KIND.get(target_type)
            target_id = self.remapper.resolve(target_kind.value, record.get("targetId")) if target_kind else None
            self.db.add(
                Answer(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    project_id=self.project.id,
                    question_id=question_id,
                    # Answers keep an author: unmatched users fall back to the importer
                    user_id=self._user(record.get("userId")) or self.importer_id,
                    answer_value=read_string(record.get("answerValue")),
                    target_type=target_type.value if target_type else None,
                    target_id=target_id,
                    comment=read_string(record.get("comment")),
                    is_aggregate=read_bool(record.get("isAggregate")),
                )
            )
            self.ledger.created(kind)

    def create_final_answers(self) -> None:
        kind = EntityKind.FINAL_ANSWER
        seen_questions: Set[str] = set()
        for index, record in self._records("finalAnswers"):
            question_id = self.remapper.resolve(EntityKind.QUESTION.value, record.get("questionId")) if record else None
            if question_id is None:
                self.ledger.skip(kind, "unresolved-question")
                continue
            answer_value = read_string(record.get("answerValue"))
            if not answer_value:
                self.ledger.skip(kind, "empty-answer")
                continue
            if question_id in seen_questions:
                self.ledger.skip(kind, "duplicate-question")
                continue
            seen_questions.add(question_id)
            self.db.add(
                FinalAnswer(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    project_id=self.project.id,
                    question_id=question_id,
                    answer_value=answer_value,
                    status=text_or_default(record.get("status"), "Approved"),
                    resolved_at=read_datetime(record.get("resolvedAt")),
                    notes=read_string(record.get("notes")),
                )
            )
            self.ledger.created(kind)

    def create_findings(self) -> None:
        kind = EntityKind.FINDING
        for index, record in self._records("findings"):
            asset = self._resolve_asset(record.get("assetType"), record.get("assetId")) if record else None
            if asset is None:
                self.ledger.skip(kind, "unresolved-asset")
                continue
            finding_id = self.remapper.allocate(read_string(record.get("id")), kind.value, index)
            self._finding_assets[finding_id] = asset
            self.db.add(
                Finding(
                    id=finding_id,
                    project_id=self.project.id,
                    asset_type=asset[0],
                    asset_id=asset[1],
                    asset_name=text_or_default(record.get("assetName"), "Imported Asset"),
                    question_text=text_or_default(record.get("questionText"), "Imported Finding"),
                    norm_reference=text_or_default(record.get("normReference"), "Custom"),
                    severity=clamp_rating(record.get("severity")),
                    description=read_string(record.get("description")),
                )
            )
            self.ledger.created(kind)

    def create_measures(self) -> None:
        kind = EntityKind.MEASURE
        for index, record in self._records("measures"):
            finding_id = self.remapper.resolve(EntityKind.FINDING.value, record.get("findingId")) if record else None
            if finding_id is None:
                self.ledger.skip(kind, "unresolved-finding")
                continue
            asset = self._resolve_asset(record.get("assetType"), record.get("assetId"))
            asset_type, asset_id = asset or self._finding_assets[finding_id]
            self.db.add(
                Measure(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    project_id=self.project.id,
                    finding_id=finding_id,
                    title=text_or_default(record.get("title"), "Imported Measure"),
                    description=read_string(record.get("description")),
                    asset_type=asset_type,
                    asset_id=asset_id,
                    norm_reference=read_string(record.get("normReference")),
                    priority=text_or_default(record.get("priority"), "Medium"),
                    status=text_or_default(record.get("status"), "Open"),
                    assigned_to=read_string(record.get("assignedTo")),
                    due_date=read_datetime(record.get("dueDate")),
                    created_by_user_id=self._user(record.get("createdByUserId")),
                )
            )
            self.ledger.created(kind)

    def create_reports(self) -> None:
        kind = EntityKind.REPORT
        for index, record in self._records("reports"):
            if record is None:
                self.ledger.skip(kind, "invalid")
                continue
            self.db.add(
                Report(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    project_id=self.project.id,
                    title=text_or_default(record.get("title"), "Imported Report"),
                    generated_at=read_datetime(record.get("generatedAt")) or datetime.utcnow(),
                    pdf_url=read_string(record.get("pdfUrl")),
                    format=text_or_default(record.get("format"), "PDF"),
                )
            )
            self.ledger.created(kind)

    def create_savepoints(self) -> None:
        kind = EntityKind.SAVEPOINT
        for index, record in self._records("savepoints"):
            if record is None:
                self.ledger.skip(kind, "invalid")
                continue
            # Snapshot documents are copied verbatim; ids inside are remapped on restore
            model_json = record.get("modelJson")
            if isinstance(model_json, (dict, list)):
                model_json = json.dumps(model_json)
            self.db.add(
                CanonicalModelSavepoint(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    project_id=self.project.id,
                    title=text_or_default(record.get("title"), "Imported Snapshot"),
                    model_json=read_string(model_json) or "{}",
                    created_by_user_id=self._user(record.get("createdByUserId")),
                )
            )
            self.ledger.created(kind)


class ProjectImportService:
    """
    Imports a batch of bundle items.

    Example:
        service = ProjectImportService(db)
        result = service.import_bundle(bundle, current_user)
        result.imported_count, result.failed_projects
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def import_bundle(self, bundle: ImportBundle, current_user: Mapping[str, Any]) -> ImportResult:
        """Import every item of the bundle, one transaction per item."""
        importer_id = current_user["id"]
        result = ImportResult()

        for index, raw in enumerate(bundle.projects):
            try:
                payload, meta, name = validate_bundle_item(index, raw)
            except InvalidBundleError as e:
                name = bundle_item_name(raw) or f"Project {index + 1}"
                result.failed_projects.append(FailedProject(index=index, name=name, error=e.message))
                logger.warning(f"Bundle item {index} rejected: {e.message}")
                continue

            try:
                item = BundleItemImport(self.db, payload, importer_id, self.settings)
                project = item.run(meta, name)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                error = import_error_message(e)
                logger.exception(
                    f"Import of bundle item {index} ({sanitize_for_log(name)}) failed: "
                    f"{sanitize_error_message_for_log(str(e))}"
                )
                result.failed_projects.append(FailedProject(index=index, name=name, error=error))
                audit_logger.warning(
                    create_audit_log_entry(
                        action="PROJECT_IMPORTED",
                        user_id=importer_id,
                        resource_type="project",
                        success=False,
                        error_message=error,
                        additional_context={"index": index},
                    )
                )
                continue

            skipped = item.ledger.skipped_summary()
            result.imported_projects.append(ImportedProject(id=project.id, name=project.name, skipped=skipped))
            audit_logger.info(
                create_audit_log_entry(
                    action="PROJECT_IMPORTED",
                    user_id=importer_id,
                    resource_type="project",
                    resource_id=project.id,
                    additional_context={"index": index, "skipped": item.ledger.total_skipped},
                )
            )

        result.imported_count = len(result.imported_projects)
        result.failed_count = len(result.failed_projects)
        logger.info(f"Import finished: {result.imported_count} imported, {result.failed_count} failed")
        return result
