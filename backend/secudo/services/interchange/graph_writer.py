"""
Canonical graph writer shared by import and restore

Materializes nodes, parent links, edges, data objects and the two link
kinds of one project from camelCase records. Every id goes through the
operation's IdentifierRemapper; every reference that does not resolve is
skipped and counted in the OperationLedger.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ...database import ComponentData, DataObject, EdgeDataFlow, ModelEdge, ModelNode
from ...utils.logging_security import sanitize_id_for_log
from .hierarchy import NodeLink, check_parent_assignment, mapping_lookup
from .models import EntityKind, NodeCategory, OperationLedger
from .normalization import (
    as_list,
    as_record,
    clamp_rating,
    normalize_component_data_role,
    normalize_edge_direction,
    normalize_flow_direction,
    normalize_node_category,
    read_string,
    text_or_default,
)
from .remapper import IdentifierRemapper, NaturalKeyRegistry

logger = logging.getLogger(__name__)

# author_for(record, field) -> user id stored in the audit column
AuthorResolver = Callable[[Dict[str, Any], str], Optional[str]]

NODE = EntityKind.NODE.value
EDGE = EntityKind.EDGE.value
DATA_OBJECT = EntityKind.DATA_OBJECT.value


class CanonicalGraphWriter:
    """
    Writes one project's canonical graph.

    Args:
        db: Session owning the enclosing transaction
        project_id: Target project
        remapper: Id allocator of the current operation
        ledger: Skip-and-count accumulator of the current operation
        author_for: Resolves audit columns of a record
        label: Prefix of fallback names ("Imported", "Restored")
        keys: Natural-key registry, fresh when omitted
    """

    def __init__(
        self,
        db: Session,
        project_id: str,
        remapper: IdentifierRemapper,
        ledger: OperationLedger,
        author_for: AuthorResolver,
        label: str = "Imported",
        keys: Optional[NaturalKeyRegistry] = None,
    ):
        self.db = db
        self.project_id = project_id
        self.remapper = remapper
        self.ledger = ledger
        self.author_for = author_for
        self.label = label
        self.keys = keys or NaturalKeyRegistry()
        self.arena: Dict[str, NodeLink] = {}
        self._pending_parents: List[Tuple[ModelNode, str]] = []

    def write(self, payload: Mapping[str, Any]) -> None:
        """Write the graph sections of ``payload`` in dependency order."""
        self.create_nodes(as_list(payload.get("nodes")))
        self.apply_parents()
        self.create_edges(as_list(payload.get("edges")))
        self.create_data_objects(as_list(payload.get("dataObjects")))
        self.db.flush()
        self.create_component_data(as_list(payload.get("componentData")))
        self.create_edge_data_flows(as_list(payload.get("edgeDataFlows")))
        self.db.flush()

    @property
    def node_ids(self) -> Set[str]:
        return set(self.arena)

    def create_nodes(self, records: List[Any]) -> None:
        stable_prefix = f"{self.label.lower()}-node"
        for index, raw in enumerate(records):
            record = as_record(raw)
            if record is None:
                self.ledger.skip(EntityKind.NODE, "invalid")
                continue
            category = normalize_node_category(record.get("category"))
            node = ModelNode(
                id=self.remapper.allocate(read_string(record.get("id")), NODE, index),
                project_id=self.project_id,
                stable_id=self.keys.claim_stable_id(read_string(record.get("stableId")), prefix=stable_prefix),
                name=text_or_default(record.get("name"), f"{self.label} Node").strip(),
                category=category.value,
                description=read_string(record.get("description")),
                notes=read_string(record.get("notes")),
                parent_node_id=None,
                created_by_user_id=self.author_for(record, "createdByUserId"),
                updated_by_user_id=self.author_for(record, "updatedByUserId"),
            )
            self.db.add(node)
            self.arena[node.id] = NodeLink(self.project_id, None, category.value)
            self.ledger.created(EntityKind.NODE)

            raw_parent = read_string(record.get("parentNodeId"))
            if raw_parent:
                self._pending_parents.append((node, raw_parent))
        self.db.flush()

    def apply_parents(self) -> None:
        """Second pass: parents are applied once every node exists."""
        lookup = mapping_lookup(self.arena)
        for node, raw_parent in self._pending_parents:
            parent_id = self.remapper.resolve(NODE, raw_parent)
            if parent_id is None:
                self._skip_parent(node, raw_parent, "unresolved-parent")
                continue
            rejection = check_parent_assignment(self.project_id, node.id, parent_id, lookup)
            if rejection is not None:
                self._skip_parent(node, raw_parent, rejection.value)
                continue
            node.parent_node_id = parent_id
            self.arena[node.id] = self.arena[node.id]._replace(parent_node_id=parent_id)
            self.ledger.created(EntityKind.PARENT_LINK)
        self._pending_parents = []
        self.db.flush()

    def _skip_parent(self, node: ModelNode, raw_parent: str, reason: str) -> None:
        self.ledger.skip(EntityKind.PARENT_LINK, reason)
        logger.info(
            f"Skipped parent assignment of node {sanitize_id_for_log(node.id)} "
            f"to {sanitize_id_for_log(raw_parent)}: {reason}"
        )

    def create_edges(self, records: List[Any]) -> None:
        seen_pairs: Set[Tuple[str, str]] = set()
        for index, raw in enumerate(records):
            record = as_record(raw)
            if record is None:
                self.ledger.skip(EntityKind.EDGE, "invalid")
                continue
            source_id = self.remapper.resolve(NODE, record.get("sourceNodeId"))
            target_id = self.remapper.resolve(NODE, record.get("targetNodeId"))
            if source_id is None or target_id is None:
                self.ledger.skip(EntityKind.EDGE, "unresolved-endpoint")
                continue
            if source_id == target_id:
                self.ledger.skip(EntityKind.EDGE, "self-loop")
                continue
            if (source_id, target_id) in seen_pairs:
                self.ledger.skip(EntityKind.EDGE, "duplicate-pair")
                continue
            seen_pairs.add((source_id, target_id))

            self.db.add(
                ModelEdge(
                    id=self.remapper.allocate(read_string(record.get("id")), EDGE, index),
                    project_id=self.project_id,
                    source_node_id=source_id,
                    target_node_id=target_id,
                    source_handle_id=read_string(record.get("sourceHandleId")),
                    target_handle_id=read_string(record.get("targetHandleId")),
                    name=read_string(record.get("name")),
                    direction=normalize_edge_direction(record.get("direction")).value,
                    protocol=read_string(record.get("protocol")),
                    description=read_string(record.get("description")),
                    notes=read_string(record.get("notes")),
                    created_by_user_id=self.author_for(record, "createdByUserId"),
                )
            )
            self.ledger.created(EntityKind.EDGE)

    def create_data_objects(self, records: List[Any]) -> None:
        for index, raw in enumerate(records):
            record = as_record(raw)
            if record is None:
                self.ledger.skip(EntityKind.DATA_OBJECT, "invalid")
                continue
            self.db.add(
                DataObject(
                    id=self.remapper.allocate(read_string(record.get("id")), DATA_OBJECT, index),
                    project_id=self.project_id,
                    name=self.keys.claim_name(read_string(record.get("name")), f"{self.label} Data Object"),
                    description=read_string(record.get("description")),
                    data_class=text_or_default(record.get("dataClass"), "Other"),
                    confidentiality=clamp_rating(record.get("confidentiality")),
                    integrity=clamp_rating(record.get("integrity")),
                    availability=clamp_rating(record.get("availability")),
                    tags=read_string(record.get("tags")),
                )
            )
            self.ledger.created(EntityKind.DATA_OBJECT)

    def create_component_data(self, records: List[Any]) -> None:
        kind = EntityKind.COMPONENT_DATA
        seen_pairs: Set[Tuple[str, str]] = set()
        for index, raw in enumerate(records):
            record = as_record(raw)
            if record is None:
                self.ledger.skip(kind, "invalid")
                continue
            node_id = self.remapper.resolve(NODE, record.get("nodeId"))
            data_object_id = self.remapper.resolve(DATA_OBJECT, record.get("dataObjectId"))
            if node_id is None or data_object_id is None:
                self.ledger.skip(kind, "unresolved-reference")
                continue
            if self.arena[node_id].category == NodeCategory.CONTAINER.value:
                self.ledger.skip(kind, "container-node")
                continue
            if (node_id, data_object_id) in seen_pairs:
                self.ledger.skip(kind, "duplicate-pair")
                continue
            seen_pairs.add((node_id, data_object_id))
            self.db.add(
                ComponentData(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    node_id=node_id,
                    data_object_id=data_object_id,
                    role=normalize_component_data_role(record.get("role")).value,
                    notes=read_string(record.get("notes")),
                )
            )
            self.ledger.created(kind)

    def create_edge_data_flows(self, records: List[Any]) -> None:
        kind = EntityKind.EDGE_DATA_FLOW
        seen_pairs: Set[Tuple[str, str]] = set()
        for index, raw in enumerate(records):
            record = as_record(raw)
            if record is None:
                self.ledger.skip(kind, "invalid")
                continue
            edge_id = self.remapper.resolve(EDGE, record.get("edgeId"))
            data_object_id = self.remapper.resolve(DATA_OBJECT, record.get("dataObjectId"))
            if edge_id is None or data_object_id is None:
                self.ledger.skip(kind, "unresolved-reference")
                continue
            if (edge_id, data_object_id) in seen_pairs:
                self.ledger.skip(kind, "duplicate-pair")
                continue
            seen_pairs.add((edge_id, data_object_id))
            self.db.add(
                EdgeDataFlow(
                    id=self.remapper.allocate(read_string(record.get("id")), kind.value, index),
                    edge_id=edge_id,
                    data_object_id=data_object_id,
                    direction=normalize_flow_direction(record.get("direction")).value,
                    notes=read_string(record.get("notes")),
                )
            )
            self.ledger.created(kind)
