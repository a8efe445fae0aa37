"""
Snapshot Restore Service

Replaces a project's canonical graph with the content of one of its
snapshots, in a single transaction guarded by the per-project restore lock.

Restore sequence:
1. Authorize the caller (Editor+ or global admin)
2. Parse and schema-validate the stored snapshot document
3. Delete the current graph (flows, component data, edges, nodes, data objects)
4. Re-create the graph with fresh ids through the shared graph writer
5. Re-point assessment rows (asset values, findings, measures, answers)
   at the restored entities
6. Remap the view state (node positions, container sizes)
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Set, Tuple

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from ...config import Settings, get_settings
from ...database import (
    Answer,
    AssetValue,
    CanonicalModelSavepoint,
    ComponentData,
    DataObject,
    EdgeDataFlow,
    Finding,
    Measure,
    ModelEdge,
    ModelNode,
)
from ...rbac import can_restore, get_project_access
from ...utils.logging_security import create_audit_log_entry, sanitize_id_for_log
from .exceptions import (
    ProjectAccessError,
    ProjectNotFoundError,
    SnapshotCorruptedError,
    SnapshotNotFoundError,
)
from .graph_writer import CanonicalGraphWriter
from .locks import ProjectLockRegistry, restore_locks
from .models import (
    AssetType,
    CanonicalSnapshot,
    EntityKind,
    OperationLedger,
    QuestionTargetType,
    RestoredCounts,
    RestoreResult,
    ViewState,
)
from .remapper import IdentifierRemapper

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("secudo.audit")

GRAPH_MODELS = {
    EntityKind.NODE.value: ModelNode,
    EntityKind.EDGE.value: ModelEdge,
    EntityKind.DATA_OBJECT.value: DataObject,
    EntityKind.COMPONENT_DATA.value: ComponentData,
    EntityKind.EDGE_DATA_FLOW.value: EdgeDataFlow,
}


def parse_snapshot(savepoint: CanonicalModelSavepoint) -> CanonicalSnapshot:
    """
    Parse a stored snapshot document.

    Raises:
        SnapshotCorruptedError: invalid JSON or schema mismatch
    """
    try:
        document = json.loads(savepoint.model_json or "")
    except (TypeError, ValueError):
        raise SnapshotCorruptedError(savepoint.id, "Snapshot data is corrupted (invalid JSON)")

    try:
        return CanonicalSnapshot.model_validate(document)
    except ValidationError as e:
        details = [
            {"loc": [str(part) for part in error["loc"]], "msg": error["msg"], "type": error["type"]}
            for error in e.errors()
        ]
        raise SnapshotCorruptedError(savepoint.id, "Invalid snapshot format", details=details)


def _half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def remap_view_state(snapshot: CanonicalSnapshot, remapper: IdentifierRemapper, surviving: set) -> ViewState:
    """Re-key view state by restored node ids, dropping entries of nodes that did not survive."""
    state = ViewState()
    for source_id, position in snapshot.node_positions.items():
        node_id = remapper.resolve(EntityKind.NODE.value, source_id)
        if node_id not in surviving:
            continue
        if not (math.isfinite(position.x) and math.isfinite(position.y)):
            continue
        state.node_positions[node_id] = {"x": position.x, "y": position.y}

    for source_id, size in snapshot.container_sizes.items():
        node_id = remapper.resolve(EntityKind.NODE.value, source_id)
        if node_id not in surviving:
            continue
        if not (math.isfinite(size.width) and math.isfinite(size.height)):
            continue
        state.container_sizes[node_id] = {
            "width": max(1, _half_up(size.width)),
            "height": max(1, _half_up(size.height)),
        }
    return state


def build_restore_warning(ledger: OperationLedger) -> Optional[str]:
    """One human-readable sentence per category that had skips."""
    parts = []
    skipped_edges = ledger.skipped_count(EntityKind.EDGE)
    if skipped_edges:
        parts.append(f"{skipped_edges} interface(s) were skipped due to invalid or duplicate references.")
    skipped_component_data = ledger.skipped_count(EntityKind.COMPONENT_DATA)
    if skipped_component_data:
        parts.append(f"{skipped_component_data} component-data mapping(s) were skipped.")
    skipped_flows = ledger.skipped_count(EntityKind.EDGE_DATA_FLOW)
    if skipped_flows:
        parts.append(f"{skipped_flows} data-flow mapping(s) were skipped.")
    skipped_parents = ledger.skipped_count(EntityKind.PARENT_LINK)
    if skipped_parents:
        parts.append(f"{skipped_parents} parent assignment(s) were skipped due to invalid or cyclic references.")
    dropped_findings = ledger.skipped_count(EntityKind.FINDING)
    if dropped_findings:
        parts.append(f"{dropped_findings} finding(s) referencing removed assets were dropped.")
    dropped_values = ledger.skipped_count(EntityKind.ASSET_VALUE)
    if dropped_values:
        parts.append(f"{dropped_values} asset value(s) referencing removed or already valued assets were dropped.")
    return " ".join(parts) if parts else None


@dataclass
class GraphKeys:
    """Natural keys of a project's graph, keyed by row id"""

    node_stable_ids: Dict[str, str] = field(default_factory=dict)
    data_object_names: Dict[str, str] = field(default_factory=dict)
    edge_endpoints: Dict[str, Tuple[str, str]] = field(default_factory=dict)

    @classmethod
    def capture(cls, db: Session, project_id: str) -> "GraphKeys":
        nodes = db.query(ModelNode.id, ModelNode.stable_id).filter(ModelNode.project_id == project_id)
        data_objects = db.query(DataObject.id, DataObject.name).filter(DataObject.project_id == project_id)
        edges = db.query(ModelEdge.id, ModelEdge.source_node_id, ModelEdge.target_node_id).filter(
            ModelEdge.project_id == project_id
        )
        return cls(
            node_stable_ids={node_id: stable_id for node_id, stable_id in nodes},
            data_object_names={object_id: name.lower() for object_id, name in data_objects},
            edge_endpoints={edge_id: (source, target) for edge_id, source, target in edges},
        )


class AssetResolver:
    """
    Maps pre-restore asset ids onto the restored graph.

    Ids the snapshot knows follow the remapper. Anything else falls back to
    the natural key of the deleted row: node stable id, data-object name
    (case-insensitive) or the edge's resolved endpoints. The fallback never
    lands on an entity that a pre-restore id already reaches through the
    remapper.
    """

    def __init__(self, remapper: IdentifierRemapper, previous: GraphKeys, restored: GraphKeys):
        self.remapper = remapper
        self.previous = previous
        self._claimed = {
            kind.value: {remapper.resolve(kind.value, old_id) for old_id in old_ids} - {None}
            for kind, old_ids in (
                (EntityKind.NODE, previous.node_stable_ids),
                (EntityKind.DATA_OBJECT, previous.data_object_names),
                (EntityKind.EDGE, previous.edge_endpoints),
            )
        }
        self._node_by_stable_id = {stable_id: node_id for node_id, stable_id in restored.node_stable_ids.items()}
        self._data_object_by_name = {name: object_id for object_id, name in restored.data_object_names.items()}
        self._edge_by_endpoints = {endpoints: edge_id for edge_id, endpoints in restored.edge_endpoints.items()}

    def _unclaimed(self, kind: EntityKind, new_id: Optional[str]) -> Optional[str]:
        if new_id in self._claimed[kind.value]:
            return None
        return new_id

    def node(self, old_id: Optional[str]) -> Optional[str]:
        new_id = self.remapper.resolve(EntityKind.NODE.value, old_id)
        if new_id is None and old_id in self.previous.node_stable_ids:
            fallback = self._node_by_stable_id.get(self.previous.node_stable_ids[old_id])
            new_id = self._unclaimed(EntityKind.NODE, fallback)
        return new_id

    def data_object(self, old_id: Optional[str]) -> Optional[str]:
        new_id = self.remapper.resolve(EntityKind.DATA_OBJECT.value, old_id)
        if new_id is None and old_id in self.previous.data_object_names:
            fallback = self._data_object_by_name.get(self.previous.data_object_names[old_id])
            new_id = self._unclaimed(EntityKind.DATA_OBJECT, fallback)
        return new_id

    def edge(self, old_id: Optional[str]) -> Optional[str]:
        new_id = self.remapper.resolve(EntityKind.EDGE.value, old_id)
        if new_id is None and old_id in self.previous.edge_endpoints:
            source, target = self.previous.edge_endpoints[old_id]
            fallback = self._edge_by_endpoints.get((self.node(source), self.node(target)))
            new_id = self._unclaimed(EntityKind.EDGE, fallback)
        return new_id

    def resolve(self, asset_type: Optional[str], asset_id: Optional[str]) -> Optional[str]:
        """Resolve an assessment reference; ``asset_type`` is an AssetType or answer target type."""
        if asset_type in (AssetType.NODE.value, QuestionTargetType.COMPONENT.value):
            return self.node(asset_id)
        if asset_type == AssetType.EDGE.value:
            return self.edge(asset_id)
        if asset_type == AssetType.DATA_OBJECT.value:
            return self.data_object(asset_id)
        return None


class SnapshotRestoreService:
    """
    Restores a project's graph from one of its snapshots.

    Example:
        service = SnapshotRestoreService(db)
        result = service.restore_snapshot(project_id, snapshot_id, current_user)
        result.warning  # None when nothing was skipped
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        locks: ProjectLockRegistry = restore_locks,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.locks = locks

    def restore_snapshot(
        self,
        project_id: str,
        snapshot_id: str,
        current_user: Mapping[str, Any],
    ) -> RestoreResult:
        """
        Restore ``snapshot_id`` into ``project_id``.

        Raises:
            ProjectNotFoundError: project missing or trashed
            ProjectAccessError: caller below Editor and not global admin
            SnapshotNotFoundError: snapshot missing for this project
            SnapshotCorruptedError: snapshot unreadable
            RestoreInProgressError: another restore holds the project
        """
        access = get_project_access(self.db, project_id, current_user)
        if not access.exists:
            raise ProjectNotFoundError(project_id)
        if not can_restore(access.membership_role, current_user.get("role")):
            raise ProjectAccessError(project_id, required="Editor")

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

        snapshot = parse_snapshot(savepoint)

        with self.locks.hold(project_id):
            try:
                result = self._rewrite_graph(project_id, snapshot, current_user["id"])
                self.db.commit()
            except Exception:
                self.db.rollback()
                logger.exception(f"Restore of project {sanitize_id_for_log(project_id)} failed, rolled back")
                raise

        audit_logger.info(
            create_audit_log_entry(
                action="SNAPSHOT_RESTORED",
                user_id=current_user["id"],
                resource_type="project",
                resource_id=project_id,
                additional_context={"snapshot": snapshot_id, "warning": bool(result.warning)},
            )
        )
        return result

    def _id_taken(self, kind: str, candidate: str) -> bool:
        model = GRAPH_MODELS.get(kind)
        return model is not None and self.db.get(model, candidate) is not None

    def delete_graph(self, project_id: str) -> None:
        """Delete the project's canonical graph in dependency order."""
        node_ids = select(ModelNode.id).where(ModelNode.project_id == project_id)
        edge_ids = select(ModelEdge.id).where(ModelEdge.project_id == project_id)

        # Detach the hierarchy first so node rows can go in any order
        self.db.query(ModelNode).filter(ModelNode.project_id == project_id).update(
            {ModelNode.parent_node_id: None}, synchronize_session=False
        )
        self.db.query(EdgeDataFlow).filter(EdgeDataFlow.edge_id.in_(edge_ids)).delete(synchronize_session=False)
        self.db.query(ComponentData).filter(ComponentData.node_id.in_(node_ids)).delete(synchronize_session=False)
        self.db.query(ModelEdge).filter(ModelEdge.project_id == project_id).delete(synchronize_session=False)
        self.db.query(ModelNode).filter(ModelNode.project_id == project_id).delete(synchronize_session=False)
        self.db.query(DataObject).filter(DataObject.project_id == project_id).delete(synchronize_session=False)

    def _rewrite_graph(self, project_id: str, snapshot: CanonicalSnapshot, user_id: str) -> RestoreResult:
        ledger = OperationLedger()
        remapper = IdentifierRemapper(taken=self._id_taken)

        previous = GraphKeys.capture(self.db, project_id)
        self.delete_graph(project_id)

        writer = CanonicalGraphWriter(
            self.db,
            project_id,
            remapper,
            ledger,
            author_for=lambda record, field: user_id,
            label="Restored",
        )
        writer.write(snapshot.model_dump(by_alias=True))

        resolver = AssetResolver(remapper, previous, GraphKeys.capture(self.db, project_id))
        self.reconcile_assessment(project_id, resolver, ledger)

        result = RestoreResult(
            restored=RestoredCounts(
                nodes=ledger.created_count(EntityKind.NODE),
                data_objects=ledger.created_count(EntityKind.DATA_OBJECT),
                edges=ledger.created_count(EntityKind.EDGE),
                component_data=ledger.created_count(EntityKind.COMPONENT_DATA),
                edge_data_flows=ledger.created_count(EntityKind.EDGE_DATA_FLOW),
            ),
            state=remap_view_state(snapshot, remapper, writer.node_ids),
            warning=build_restore_warning(ledger),
        )
        if result.warning:
            logger.info(f"Restore of project {sanitize_id_for_log(project_id)} finished with skips: {ledger.as_dict()}")
        return result

    def reconcile_assessment(self, project_id: str, resolver: AssetResolver, ledger: OperationLedger) -> None:
        """
        Re-point assessment rows at restored graph entities.

        Asset values and findings whose asset did not survive are removed
        (measures go with their finding); answers lose their target. Of
        several asset values landing on one entity, the first is kept.
        """
        seen_assets: Set[Tuple[str, str]] = set()
        values = (
            self.db.query(AssetValue)
            .filter(AssetValue.project_id == project_id)
            .order_by(AssetValue.id)
            .all()
        )
        for value in values:
            new_id = resolver.resolve(value.asset_type, value.asset_id)
            if new_id is None:
                self.db.delete(value)
                ledger.skip(EntityKind.ASSET_VALUE, "unresolved-asset")
            elif (value.asset_type, new_id) in seen_assets:
                self.db.delete(value)
                ledger.skip(EntityKind.ASSET_VALUE, "duplicate-asset")
            else:
                seen_assets.add((value.asset_type, new_id))
                value.asset_id = new_id
        self.db.flush()

        finding_assets: Dict[str, Tuple[str, str]] = {}
        for finding in self.db.query(Finding).filter(Finding.project_id == project_id).all():
            new_id = resolver.resolve(finding.asset_type, finding.asset_id)
            if new_id is None:
                self.db.delete(finding)
                ledger.skip(EntityKind.FINDING, "unresolved-asset")
            else:
                finding.asset_id = new_id
                finding_assets[finding.id] = (finding.asset_type, new_id)
        self.db.flush()

        for measure in self.db.query(Measure).filter(Measure.project_id == project_id).all():
            if measure.finding_id not in finding_assets:
                self.db.delete(measure)
                ledger.skip(EntityKind.MEASURE, "unresolved-finding")
                continue
            new_id = resolver.resolve(measure.asset_type, measure.asset_id)
            if new_id is None:
                measure.asset_type, new_id = finding_assets[measure.finding_id]
            measure.asset_id = new_id

        answers = (
            self.db.query(Answer)
            .filter(Answer.project_id == project_id, Answer.target_id.isnot(None))
            .all()
        )
        for answer in answers:
            answer.target_id = resolver.resolve(answer.target_type, answer.target_id)
        self.db.flush()
