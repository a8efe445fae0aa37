"""
Unit tests for the OSCAL System Security Plan adapter.
"""

import re
from uuid import UUID

import pytest

from secudo.services.interchange.oscal import (
    DEFAULT_CONTROL_ID,
    build_oscal_document,
    node_category_to_component_type,
    normalize_control_id,
    project_role_to_oscal_role_id,
    score_to_fips_impact,
    to_oscal_uuid,
    user_display_name,
)

UUID_V5 = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-5[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$")


@pytest.fixture
def bundle():
    return {
        "project": {
            "id": "p-1",
            "name": "Plant Network",
            "norm": "IEC 62443 | ISO 27001",
            "minRoleToView": "private",
            "updatedAt": "2026-01-05T10:00:00Z",
            "description": "",
        },
        "users": [
            {"id": "u-1", "email": "owner@example.com", "name": "Olivia Owner", "role": "Editor"},
        ],
        "members": [{"id": "m-1", "userId": "u-1", "role": "Admin"}],
        "nodes": [
            {"id": "n-plc", "stableId": "plc", "name": "PLC", "category": "Component"},
            {"id": "n-op", "stableId": "op", "name": "Operator", "category": "Human"},
        ],
        "edges": [
            {"id": "e-1", "sourceNodeId": "n-op", "targetNodeId": "n-plc", "direction": "A_TO_B",
             "protocol": "HTTPS"},
        ],
        "dataObjects": [
            {"id": "d-1", "name": "Recipes", "dataClass": "Process", "confidentiality": 9, "integrity": 5,
             "availability": 2},
        ],
        "componentData": [{"id": "cd-1", "nodeId": "n-plc", "dataObjectId": "d-1", "role": "Stores"}],
        "edgeDataFlows": [{"id": "f-1", "edgeId": "e-1", "dataObjectId": "d-1", "direction": "SourceToTarget"}],
        "findings": [
            {"id": "fi-1", "assetType": "Edge", "assetId": "e-1", "assetName": "Operator link", "severity": 7,
             "normReference": "IEC 62443-3-3 SR 1.1", "questionText": "Is the link encrypted?",
             "description": "Plain text traffic"},
        ],
        "measures": [
            {"id": "me-1", "findingId": "fi-1", "title": "Enable TLS", "status": "Open",
             "dueDate": "2026-03-01T00:00:00Z"},
        ],
    }


def _props(entry):
    return {prop["name"]: prop["value"] for prop in entry.get("props", [])}


@pytest.mark.unit
class TestOscalHelpers:
    """Test the pure mapping helpers."""

    def test_uuid_is_deterministic_and_well_formed(self):
        first = to_oscal_uuid("node:n-plc")

        assert first == to_oscal_uuid("node:n-plc")
        assert first != to_oscal_uuid("node:n-hmi")
        assert UUID_V5.match(first)
        assert UUID(first).version == 5

    @pytest.mark.parametrize("score,impact", [(10, "fips-199-high"), (8, "fips-199-high"),
                                              (7, "fips-199-moderate"), (4, "fips-199-moderate"),
                                              (3, "fips-199-low"), (1, "fips-199-low")])
    def test_fips_impact_thresholds(self, score, impact):
        assert score_to_fips_impact(score) == impact

    def test_component_types(self):
        assert node_category_to_component_type("System") == "this-system"
        assert node_category_to_component_type("human") == "person"
        assert node_category_to_component_type("Component") == "service"
        assert node_category_to_component_type(None) == "service"

    def test_role_ids(self):
        assert project_role_to_oscal_role_id("Admin") == "secudo-project-admin"
        assert project_role_to_oscal_role_id("viewer") == "secudo-project-viewer"
        assert project_role_to_oscal_role_id("User") == "secudo-project-editor"

    def test_control_id_normalization(self):
        assert normalize_control_id("IEC 62443-3-3 SR 1.1") == "iec-62443-3-3-sr-1.1"
        assert normalize_control_id("  ") == DEFAULT_CONTROL_ID
        assert normalize_control_id(None) == DEFAULT_CONTROL_ID

    def test_display_name_prefers_full_name(self):
        assert user_display_name({"firstName": "Ada", "lastName": "L", "name": "x"}) == "Ada L"
        assert user_display_name({"name": "Olivia"}) == "Olivia"
        assert user_display_name({"email": "a@example.com"}) == "a@example.com"


@pytest.mark.unit
class TestOscalDocument:
    """Test SSP rendering of a native bundle."""

    def test_metadata(self, bundle):
        ssp = build_oscal_document(bundle)["system-security-plan"]

        assert ssp["metadata"]["title"] == "Plant Network System Security Plan"
        assert ssp["metadata"]["last-modified"] == "2026-01-05T10:00:00Z"
        assert [role["id"] for role in ssp["metadata"]["roles"]] == [
            "secudo-project-admin",
            "secudo-project-editor",
            "secudo-project-viewer",
        ]
        party = ssp["metadata"]["parties"][0]
        assert party["name"] == "Olivia Owner"
        assert party["email-addresses"] == ["owner@example.com"]

    def test_same_bundle_same_uuids(self, bundle):
        assert build_oscal_document(bundle) == build_oscal_document(bundle)

    def test_components_carry_source_ids(self, bundle):
        components = build_oscal_document(bundle)["system-security-plan"]["system-implementation"]["components"]

        assert components[0]["type"] == "this-system"
        assert components[0]["description"] == "System representation exported from Secudo."
        plc = components[1]
        assert plc["uuid"] == to_oscal_uuid("node:n-plc")
        assert _props(plc)["secudo-node-stable-id"] == "plc"
        assert _props(plc)["secudo-data-relations"] == "Recipes:Stores"
        assert components[2]["type"] == "person"

    def test_inventory_item_links_endpoints(self, bundle):
        items = build_oscal_document(bundle)["system-security-plan"]["system-implementation"]["inventory-items"]

        assert len(items) == 1
        assert items[0]["description"] == "Operator -> PLC"
        assert _props(items[0])["secudo-edge-data-flows"] == "Recipes:SourceToTarget"
        linked = [entry["component-uuid"] for entry in items[0]["implemented-components"]]
        assert linked[1:] == [to_oscal_uuid("node:n-op"), to_oscal_uuid("node:n-plc")]

    def test_impact_levels_use_highest_rating(self, bundle):
        characteristics = build_oscal_document(bundle)["system-security-plan"]["system-characteristics"]

        assert characteristics["security-impact-level"] == {
            "security-objective-confidentiality": "fips-199-high",
            "security-objective-integrity": "fips-199-moderate",
            "security-objective-availability": "fips-199-low",
        }

    def test_findings_become_requirements(self, bundle):
        control = build_oscal_document(bundle)["system-security-plan"]["control-implementation"]
        requirement = control["implemented-requirements"][0]

        assert requirement["control-id"] == "iec-62443-3-3-sr-1.1"
        assert requirement["remarks"] == "Measures: Enable TLS [Open] due 2026-03-01"
        assert len(requirement["statements"][0]["by-components"]) == 2

    def test_back_matter_lists_each_norm(self, bundle):
        ssp = build_oscal_document(bundle)["system-security-plan"]
        resources = ssp["back-matter"]["resources"]

        assert [resource["title"] for resource in resources] == [
            "IEC 62443 profile reference",
            "ISO 27001 profile reference",
        ]
        assert ssp["import-profile"]["href"] == f"#{resources[0]['uuid']}"

    def test_empty_project_gets_placeholders(self, bundle):
        for key in ("nodes", "edges", "dataObjects", "findings", "measures", "componentData", "edgeDataFlows"):
            bundle[key] = []

        ssp = build_oscal_document(bundle)["system-security-plan"]

        items = ssp["system-implementation"]["inventory-items"]
        assert _props(items[0]) == {"secudo-generated": "true"}
        requirement = ssp["control-implementation"]["implemented-requirements"][0]
        assert requirement["control-id"] == DEFAULT_CONTROL_ID
        info_types = ssp["system-characteristics"]["system-information"]["information-types"]
        assert info_types[0]["title"] == "General System Information"
