"""
OSCAL System Security Plan adapter (one-way)

Renders a native export bundle as an OSCAL 1.1.3 ``system-security-plan``.
Every original id and secudo-only field is kept as a ``secudo-*`` prop so
the document can be traced back to the source project. OSCAL documents are
never imported.

UUIDs are derived deterministically from the source ids, so exporting the
same project twice yields the same OSCAL uuids.
"""

import re
import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional

from ..project_norm import NO_NORM, parse_project_norms
from .models import OSCAL_VERSION

DATA_CLASSIFICATION_SYSTEM = "https://secudo.app/data-classification"
DEFAULT_SYSTEM_DESCRIPTION = "System representation exported from Secudo."
DEFAULT_CONTROL_ID = "secudo-control"
OSCAL_UUID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://secudo.app/oscal")

OSCAL_ROLES = [
    {"id": "secudo-project-admin", "title": "Secudo Project Admin"},
    {"id": "secudo-project-editor", "title": "Secudo Project Editor"},
    {"id": "secudo-project-viewer", "title": "Secudo Project Viewer"},
]


def to_oscal_uuid(value: str) -> str:
    """Deterministic name-based (version 5) uuid."""
    return str(uuid.uuid5(OSCAL_UUID_NAMESPACE, value))


def score_to_fips_impact(score: int) -> str:
    if score >= 8:
        return "fips-199-high"
    if score >= 4:
        return "fips-199-moderate"
    return "fips-199-low"


def ensure_text(value: Optional[str], fallback: str) -> str:
    normalized = (value or "").strip()
    return normalized or fallback


def node_category_to_component_type(category: str) -> str:
    normalized = (category or "").strip().lower()
    if normalized == "system":
        return "this-system"
    if normalized == "human":
        return "person"
    return "service"


def project_role_to_oscal_role_id(role: str) -> str:
    normalized = (role or "").strip().lower()
    if normalized == "admin":
        return "secudo-project-admin"
    if normalized == "viewer":
        return "secudo-project-viewer"
    return "secudo-project-editor"


def normalize_control_id(norm_reference: Optional[str]) -> str:
    normalized = re.sub(r"[^a-z0-9._-]+", "-", (norm_reference or "").strip().lower())
    return normalized.strip("-") or DEFAULT_CONTROL_ID


def user_display_name(user: Dict[str, Any]) -> str:
    full_name = f"{user.get('firstName') or ''} {user.get('lastName') or ''}".strip()
    return full_name or user.get("name") or user.get("email") or user.get("id", "")


def _prop(name: str, value: Any) -> Dict[str, str]:
    return {"name": name, "value": str(value)}


def _group_by(rows: List[Dict[str, Any]], key: str) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[row.get(key)].append(row)
    return grouped


def _data_object_name(data_objects: Dict[str, Dict[str, Any]], data_object_id: str) -> str:
    data_object = data_objects.get(data_object_id)
    return data_object["name"] if data_object else data_object_id


class OscalDocumentBuilder:
    """Builds one SSP document from one native bundle."""

    def __init__(self, bundle: Dict[str, Any]):
        self.bundle = bundle
        self.project = bundle["project"]
        self.project_id = self.project["id"]
        self.nodes = bundle.get("nodes", [])
        self.edges = bundle.get("edges", [])
        self.data_objects = bundle.get("dataObjects", [])
        self.findings = bundle.get("findings", [])
        self.node_by_id = {node["id"]: node for node in self.nodes}
        self.edge_by_id = {edge["id"]: edge for edge in self.edges}
        self.data_object_by_id = {item["id"]: item for item in self.data_objects}
        self.user_by_id = {user["id"]: user for user in bundle.get("users", [])}
        self.component_data_by_node = _group_by(bundle.get("componentData", []), "nodeId")
        self.flows_by_edge = _group_by(bundle.get("edgeDataFlows", []), "edgeId")
        self.measures_by_finding = _group_by(bundle.get("measures", []), "findingId")
        self.this_system_uuid = self._uuid("this-system")

    def _uuid(self, suffix: str) -> str:
        return to_oscal_uuid(f"project:{self.project_id}:{suffix}")

    def build(self) -> Dict[str, Any]:
        norms = [norm for norm in parse_project_norms(self.project.get("norm")) if norm != NO_NORM] or ["Secudo"]
        primary_norm_uuid = self._uuid("norm:primary")
        description = ensure_text(self.project.get("description"), DEFAULT_SYSTEM_DESCRIPTION)

        return {
            "system-security-plan": {
                "uuid": self._uuid("ssp"),
                "metadata": {
                    "title": f"{self.project['name']} System Security Plan",
                    "last-modified": self.project.get("updatedAt"),
                    "version": "1.0",
                    "oscal-version": OSCAL_VERSION,
                    "roles": OSCAL_ROLES,
                    "parties": self.parties(),
                },
                "import-profile": {"href": f"#{primary_norm_uuid}"},
                "system-characteristics": {
                    "system-ids": [
                        {"identifier-type": "https://ietf.org/rfc/rfc4122", "id": self._uuid("system-id")}
                    ],
                    "system-name": self.project["name"],
                    "description": description,
                    "props": [
                        _prop("secudo-project-id", self.project_id),
                        _prop("secudo-project-norm", self.project.get("norm")),
                        _prop("secudo-min-role-to-view", self.project.get("minRoleToView")),
                    ],
                    "security-sensitivity-level": "moderate",
                    "system-information": {"information-types": self.information_types()},
                    "security-impact-level": self.security_impact_level(),
                    "status": {"state": "operational"},
                    "authorization-boundary": {
                        "description": (
                            "Authorization boundary covers the Secudo-modeled system components and data flows."
                        )
                    },
                },
                "system-implementation": {
                    "users": self.system_users(),
                    "components": self.components(description),
                    "inventory-items": self.inventory_items(),
                },
                "control-implementation": {
                    "description": "Control implementation exported from Secudo findings and measures.",
                    "implemented-requirements": self.implemented_requirements(),
                },
                "back-matter": {
                    "resources": [
                        {
                            "uuid": primary_norm_uuid if index == 0 else self._uuid(f"norm:{norm}"),
                            "title": f"{norm} profile reference",
                            "props": [_prop("secudo-project-norm", norm)],
                        }
                        for index, norm in enumerate(norms)
                    ]
                },
            }
        }

    def parties(self) -> List[Dict[str, Any]]:
        parties = []
        for user in self.bundle.get("users", []):
            party: Dict[str, Any] = {
                "uuid": to_oscal_uuid(f"party:{user['id']}"),
                "type": "person",
                "name": user_display_name(user),
                "props": [_prop("secudo-user-id", user["id"]), _prop("secudo-global-role", user.get("role"))],
            }
            if user.get("email"):
                party["email-addresses"] = [user["email"]]
            parties.append(party)
        return parties

    def system_users(self) -> List[Dict[str, Any]]:
        users = []
        for member in self.bundle.get("members", []):
            linked = self.user_by_id.get(member["userId"])
            users.append(
                {
                    "uuid": to_oscal_uuid(f"member:{member['id']}"),
                    "title": user_display_name(linked) if linked else member["userId"],
                    "short-name": (linked or {}).get("email") or member["userId"],
                    "role-ids": [project_role_to_oscal_role_id(member.get("role"))],
                    "props": [
                        _prop("secudo-member-id", member["id"]),
                        _prop("secudo-user-id", member["userId"]),
                        _prop("secudo-project-role", member.get("role")),
                    ],
                }
            )
        return users

    def components(self, description: str) -> List[Dict[str, Any]]:
        components: List[Dict[str, Any]] = [
            {
                "uuid": self.this_system_uuid,
                "type": "this-system",
                "title": self.project["name"],
                "description": description,
                "status": {"state": "operational"},
                "props": [
                    _prop("secudo-project-id", self.project_id),
                    _prop("secudo-min-role-to-view", self.project.get("minRoleToView")),
                ],
            }
        ]
        for node in self.nodes:
            props = [
                _prop("secudo-node-id", node["id"]),
                _prop("secudo-node-stable-id", node.get("stableId")),
                _prop("secudo-node-category", node.get("category")),
            ]
            if node.get("parentNodeId"):
                props.append(_prop("secudo-parent-node-id", node["parentNodeId"]))
            relations = "; ".join(
                f"{_data_object_name(self.data_object_by_id, entry['dataObjectId'])}:{entry.get('role')}"
                for entry in self.component_data_by_node.get(node["id"], [])
            )
            if relations:
                props.append(_prop("secudo-data-relations", relations))

            components.append(
                {
                    "uuid": to_oscal_uuid(f"node:{node['id']}"),
                    "type": node_category_to_component_type(node.get("category")),
                    "title": node.get("name"),
                    "description": ensure_text(
                        node.get("description") or node.get("notes"), f"Secudo node {node.get('stableId')}"
                    ),
                    "props": props,
                    "status": {"state": "operational"},
                }
            )
        return components

    def inventory_items(self) -> List[Dict[str, Any]]:
        items = []
        for edge in self.edges:
            source = self.node_by_id.get(edge["sourceNodeId"])
            target = self.node_by_id.get(edge["targetNodeId"])

            component_uuids = [self.this_system_uuid]
            for endpoint in (source, target):
                if endpoint:
                    endpoint_uuid = to_oscal_uuid(f"node:{endpoint['id']}")
                    if endpoint_uuid not in component_uuids:
                        component_uuids.append(endpoint_uuid)

            props = [_prop("secudo-edge-id", edge["id"]), _prop("secudo-edge-direction", edge.get("direction"))]
            if edge.get("name"):
                props.append(_prop("secudo-edge-name", edge["name"]))
            if edge.get("protocol"):
                props.append(_prop("secudo-edge-protocol", edge["protocol"]))
            flows = "; ".join(
                f"{_data_object_name(self.data_object_by_id, entry['dataObjectId'])}:{entry.get('direction')}"
                for entry in self.flows_by_edge.get(edge["id"], [])
            )
            if flows:
                props.append(_prop("secudo-edge-data-flows", flows))

            source_name = source["name"] if source else edge["sourceNodeId"]
            target_name = target["name"] if target else edge["targetNodeId"]
            items.append(
                {
                    "uuid": to_oscal_uuid(f"edge:{edge['id']}"),
                    "description": ensure_text(edge.get("description"), f"{source_name} -> {target_name}"),
                    "props": props,
                    "implemented-components": [{"component-uuid": value} for value in component_uuids],
                }
            )

        if items:
            return items
        return [
            {
                "uuid": self._uuid("inventory-item:default"),
                "description": (
                    "No inventory items were modeled in Secudo. "
                    "This placeholder represents the system-level inventory."
                ),
                "props": [_prop("secudo-generated", "true")],
                "implemented-components": [{"component-uuid": self.this_system_uuid}],
            }
        ]

    def information_types(self) -> List[Dict[str, Any]]:
        if not self.data_objects:
            return [
                {
                    "uuid": self._uuid("information-type:default"),
                    "title": "General System Information",
                    "description": "No data objects were modeled in Secudo.",
                    "categorizations": [
                        {"system": DATA_CLASSIFICATION_SYSTEM, "information-type-ids": ["General"]}
                    ],
                    "confidentiality-impact": {"base": "fips-199-moderate"},
                    "integrity-impact": {"base": "fips-199-moderate"},
                    "availability-impact": {"base": "fips-199-moderate"},
                }
            ]

        return [
            {
                "uuid": to_oscal_uuid(f"data-object:{item['id']}"),
                "title": item["name"],
                "description": ensure_text(item.get("description"), f"Secudo data class {item.get('dataClass')}"),
                "categorizations": [
                    {"system": DATA_CLASSIFICATION_SYSTEM, "information-type-ids": [item.get("dataClass")]}
                ],
                "props": [_prop("secudo-data-object-id", item["id"])],
                "confidentiality-impact": {"base": score_to_fips_impact(item.get("confidentiality", 5))},
                "integrity-impact": {"base": score_to_fips_impact(item.get("integrity", 5))},
                "availability-impact": {"base": score_to_fips_impact(item.get("availability", 5))},
            }
            for item in self.data_objects
        ]

    def security_impact_level(self) -> Dict[str, str]:
        def highest(field: str) -> int:
            return max((item.get(field, 5) for item in self.data_objects), default=5)

        return {
            "security-objective-confidentiality": score_to_fips_impact(highest("confidentiality")),
            "security-objective-integrity": score_to_fips_impact(highest("integrity")),
            "security-objective-availability": score_to_fips_impact(highest("availability")),
        }

    def _finding_component_uuids(self, finding: Dict[str, Any]) -> List[str]:
        asset_type = (finding.get("assetType") or "").lower()
        asset_id = finding.get("assetId")
        node_ids: List[str] = []
        if asset_type == "node" and asset_id in self.node_by_id:
            node_ids.append(asset_id)
        elif asset_type == "edge" and asset_id in self.edge_by_id:
            edge = self.edge_by_id[asset_id]
            for endpoint_id in (edge["sourceNodeId"], edge["targetNodeId"]):
                if endpoint_id in self.node_by_id and endpoint_id not in node_ids:
                    node_ids.append(endpoint_id)
        return [to_oscal_uuid(f"node:{node_id}") for node_id in node_ids]

    def _measure_summary(self, finding_id: str) -> str:
        parts = []
        for measure in self.measures_by_finding.get(finding_id, []):
            due_date = (measure.get("dueDate") or "")[:10]
            if due_date:
                parts.append(f"{measure.get('title')} [{measure.get('status')}] due {due_date}")
            else:
                parts.append(f"{measure.get('title')} [{measure.get('status')}]")
        return "; ".join(parts)

    def implemented_requirements(self) -> List[Dict[str, Any]]:
        requirements = []
        for finding in self.findings:
            finding_id = finding["id"]
            control_id = normalize_control_id(finding.get("normReference"))
            question_text = finding.get("questionText") or ""
            statement: Dict[str, Any] = {
                "statement-id": f"{control_id}_statement",
                "uuid": to_oscal_uuid(f"finding:{finding_id}:statement"),
                "description": ensure_text(
                    "\n\n".join(part for part in (question_text, finding.get("description")) if part),
                    question_text,
                ),
            }
            component_uuids = self._finding_component_uuids(finding)
            if component_uuids:
                statement["by-components"] = [
                    {
                        "component-uuid": component_uuid,
                        "uuid": to_oscal_uuid(f"finding:{finding_id}:component:{index}"),
                        "description": f"Mapped from Secudo finding {finding_id}",
                    }
                    for index, component_uuid in enumerate(component_uuids)
                ]

            requirement: Dict[str, Any] = {
                "uuid": to_oscal_uuid(f"finding:{finding_id}"),
                "control-id": control_id,
                "description": ensure_text(finding.get("description"), question_text),
                "props": [
                    _prop("secudo-finding-id", finding_id),
                    _prop("secudo-asset-type", finding.get("assetType")),
                    _prop("secudo-asset-id", finding.get("assetId")),
                    _prop("secudo-asset-name", finding.get("assetName")),
                    _prop("secudo-severity", finding.get("severity")),
                ],
                "statements": [statement],
            }
            summary = self._measure_summary(finding_id)
            if summary:
                requirement["remarks"] = f"Measures: {summary}"
            requirements.append(requirement)

        if requirements:
            return requirements
        return [
            {
                "uuid": self._uuid("implemented-requirement:default"),
                "control-id": DEFAULT_CONTROL_ID,
                "description": (
                    "No findings were recorded in Secudo. "
                    "This placeholder requirement keeps the export schema-valid."
                ),
                "props": [_prop("secudo-generated", "true")],
                "statements": [
                    {
                        "statement-id": f"{DEFAULT_CONTROL_ID}_statement",
                        "uuid": self._uuid("implemented-requirement:default:statement"),
                        "description": "No control findings were available at export time.",
                        "by-components": [
                            {
                                "component-uuid": self.this_system_uuid,
                                "uuid": self._uuid("implemented-requirement:default:component"),
                                "description": "Mapped to the system component by default.",
                            }
                        ],
                    }
                ],
            }
        ]


def build_oscal_document(bundle: Dict[str, Any]) -> Dict[str, Any]:
    """Render one native bundle as an OSCAL SSP document."""
    return OscalDocumentBuilder(bundle).build()
