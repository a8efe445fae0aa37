"""
Interchange Models

Pydantic request/response models, the stored snapshot schema, domain enums
and the skip-and-count ledger shared by import and restore.

JSON documents exchanged with clients use camelCase keys; the models accept
both camelCase and snake_case on input and dump camelCase via ``by_alias``.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NATIVE_FORMAT = "secudo-project-export"
OSCAL_FORMAT = "oscal-project-export"
OSCAL_MODEL = "system-security-plan"
OSCAL_VERSION = "1.1.3"


class CamelModel(BaseModel):
    """Base model with camelCase aliases"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ExportFormat(str, Enum):
    """Output format of an export request"""

    SECUDO = "secudo"
    OSCAL = "oscal"


class NodeCategory(str, Enum):
    CONTAINER = "Container"
    COMPONENT = "Component"


class EdgeDirection(str, Enum):
    A_TO_B = "A_TO_B"
    B_TO_A = "B_TO_A"
    BIDIRECTIONAL = "BIDIRECTIONAL"


class FlowDirection(str, Enum):
    SOURCE_TO_TARGET = "SourceToTarget"
    TARGET_TO_SOURCE = "TargetToSource"
    BIDIRECTIONAL = "Bidirectional"


class ComponentDataRole(str, Enum):
    STORES = "Stores"
    PROCESSES = "Processes"
    GENERATES = "Generates"
    RECEIVES = "Receives"


class AssetType(str, Enum):
    NODE = "Node"
    EDGE = "Edge"
    DATA_OBJECT = "DataObject"


class QuestionTargetType(str, Enum):
    COMPONENT = "Component"
    EDGE = "Edge"
    DATA_OBJECT = "DataObject"
    NONE = "None"


class AnswerType(str, Enum):
    YES_NO = "YesNo"
    TEXT = "Text"
    MULTI_SELECT = "MultiSelect"


class EntityKind(str, Enum):
    """Entity kinds tracked by the remapper and the operation ledger"""

    NODE = "nodes"
    PARENT_LINK = "parentLinks"
    EDGE = "edges"
    DATA_OBJECT = "dataObjects"
    COMPONENT_DATA = "componentData"
    EDGE_DATA_FLOW = "edgeDataFlows"
    MEMBER = "members"
    ASSET_VALUE = "assetValues"
    QUESTION = "questions"
    ANSWER = "answers"
    FINAL_ANSWER = "finalAnswers"
    FINDING = "findings"
    MEASURE = "measures"
    REPORT = "reports"
    SAVEPOINT = "savepoints"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ExportRequest(CamelModel):
    """Body of POST /api/project-export"""

    project_ids: List[str] = Field(..., min_length=1)
    format: ExportFormat = ExportFormat.SECUDO


class ImportBundle(CamelModel):
    """Body of POST /api/project-import

    Items of ``projects`` stay untyped: every field of a bundle item is
    validated defensively by the importer so one bad item cannot fail the batch.
    """

    format: Optional[str] = None
    version: Optional[int] = None
    projects: List[Any] = Field(..., min_length=1)


class CreateSnapshotRequest(CamelModel):
    """Body of POST /api/projects/{projectId}/savepoints"""

    title: str = Field(..., min_length=1)
    snapshot: Any = None


class SetParentRequest(CamelModel):
    """Body of PATCH /api/projects/{projectId}/nodes/{nodeId}/parent"""

    parent_node_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Stored snapshot schema
# ---------------------------------------------------------------------------


class SnapshotNode(CamelModel):
    id: Optional[str] = None
    stable_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    parent_node_id: Optional[str] = None


class SnapshotEdge(CamelModel):
    id: Optional[str] = None
    source_node_id: str
    target_node_id: str
    source_handle_id: Optional[str] = None
    target_handle_id: Optional[str] = None
    name: Optional[str] = None
    direction: Optional[str] = None
    protocol: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class SnapshotDataObject(CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    data_class: Optional[str] = None
    confidentiality: Optional[float] = None
    integrity: Optional[float] = None
    availability: Optional[float] = None
    tags: Optional[str] = None


class SnapshotComponentData(CamelModel):
    id: Optional[str] = None
    node_id: str
    data_object_id: str
    role: Optional[str] = None
    notes: Optional[str] = None


class SnapshotEdgeDataFlow(CamelModel):
    id: Optional[str] = None
    edge_id: str
    data_object_id: str
    direction: Optional[str] = None
    notes: Optional[str] = None


class CanvasPosition(BaseModel):
    x: float
    y: float


class ContainerSize(BaseModel):
    width: float
    height: float


class CanonicalSnapshot(CamelModel):
    """Document stored in CanonicalModelSavepoint.model_json"""

    version: Optional[int] = None
    captured_at: Optional[str] = None
    nodes: List[SnapshotNode] = Field(default_factory=list)
    edges: List[SnapshotEdge] = Field(default_factory=list)
    data_objects: List[SnapshotDataObject] = Field(default_factory=list)
    component_data: List[SnapshotComponentData] = Field(default_factory=list)
    edge_data_flows: List[SnapshotEdgeDataFlow] = Field(default_factory=list)
    node_positions: Dict[str, CanvasPosition] = Field(default_factory=dict)
    container_sizes: Dict[str, ContainerSize] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ImportedProject(CamelModel):
    id: str
    name: str
    skipped: Dict[str, int] = Field(default_factory=dict)


class FailedProject(CamelModel):
    index: int
    name: str
    error: str


class ImportResult(CamelModel):
    imported_count: int = 0
    failed_count: int = 0
    imported_projects: List[ImportedProject] = Field(default_factory=list)
    failed_projects: List[FailedProject] = Field(default_factory=list)


class RestoredCounts(CamelModel):
    nodes: int = 0
    data_objects: int = 0
    edges: int = 0
    component_data: int = 0
    edge_data_flows: int = 0


class ViewState(CamelModel):
    node_positions: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    container_sizes: Dict[str, Dict[str, int]] = Field(default_factory=dict)


class RestoreResult(CamelModel):
    restored: RestoredCounts
    state: ViewState
    warning: Optional[str] = None


class SnapshotSummary(CamelModel):
    id: str
    title: str
    created_at: Any
    created_by: Optional[Dict[str, Optional[str]]] = None


# ---------------------------------------------------------------------------
# Skip-and-count ledger
# ---------------------------------------------------------------------------


@dataclass
class KindTally:
    """Created/skipped counters for one entity kind"""

    created: int = 0
    skipped: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)


class OperationLedger:
    """
    Accumulates created and skipped counts per entity kind for one import
    item or one restore.

    Reference gaps are recorded here instead of being raised, so the caller
    can report them as counts or a warning string.
    """

    def __init__(self) -> None:
        self._tallies: "OrderedDict[str, KindTally]" = OrderedDict()

    def _tally(self, kind: EntityKind) -> KindTally:
        key = kind.value
        if key not in self._tallies:
            self._tallies[key] = KindTally()
        return self._tallies[key]

    def created(self, kind: EntityKind, count: int = 1) -> None:
        self._tally(kind).created += count

    def skip(self, kind: EntityKind, reason: str) -> None:
        tally = self._tally(kind)
        tally.skipped += 1
        tally.reasons[reason] = tally.reasons.get(reason, 0) + 1

    def created_count(self, kind: EntityKind) -> int:
        tally = self._tallies.get(kind.value)
        return tally.created if tally else 0

    def skipped_count(self, kind: EntityKind) -> int:
        tally = self._tallies.get(kind.value)
        return tally.skipped if tally else 0

    def reasons(self, kind: EntityKind) -> Dict[str, int]:
        tally = self._tallies.get(kind.value)
        return dict(tally.reasons) if tally else {}

    def skipped_summary(self) -> Dict[str, int]:
        """Skipped counts of every kind that had at least one skip."""
        return {key: tally.skipped for key, tally in self._tallies.items() if tally.skipped}

    @property
    def total_skipped(self) -> int:
        return sum(tally.skipped for tally in self._tallies.values())

    def as_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            key: {"created": tally.created, "skipped": tally.skipped, "reasons": dict(tally.reasons)}
            for key, tally in self._tallies.items()
        }
