"""
Integration tests for project import.

Tests:
- Export then import creates an independent copy with fresh ids
- Historical users are matched by email, unmatched ones skipped
- Invalid bundle items fail alone; sibling items still import
- A failing stage rolls back only its own item
- Natural keys (stable ids, data-object names) are deduplicated
- Cyclic parent links are skipped, not imported
"""

from unittest import mock

import pytest
from sqlalchemy.exc import IntegrityError

from secudo.database import (
    Answer,
    CanonicalModelSavepoint,
    DataObject,
    Finding,
    Measure,
    ModelEdge,
    ModelNode,
    Project,
    ProjectMembership,
)
from secudo.services.interchange.import_service import BundleItemImport


def minimal_item(name="Imported Plant", **sections):
    item = {"project": {"id": "p-src", "name": name, "norm": "IEC 62443"}}
    item.update(sections)
    return item


def import_items(client, items):
    resp = client.post("/api/project-import", json={"format": "secudo-project-export", "projects": items})
    assert resp.status_code == 200
    return resp.json()


def exported_bundle(client, project_id):
    resp = client.post("/api/project-export", json={"projectIds": [project_id]})
    return resp.json()["projects"][0]


@pytest.mark.integration
class TestRoundTrip:
    def test_export_then_import(self, client, caller, caller_for, db_session, sample_graph):
        """The imported copy mirrors the source under new ids."""
        caller.update(caller_for(sample_graph.owner))
        bundle = exported_bundle(client, sample_graph.project.id)

        result = import_items(client, [bundle])

        assert result["importedCount"] == 1
        assert result["failedCount"] == 0
        imported = result["importedProjects"][0]
        assert imported["name"] == "Plant Network"
        assert imported["id"] != sample_graph.project.id
        # the bundle's own Admin membership is the importer
        assert imported["skipped"] == {"members": 1}

        new_id = imported["id"]
        nodes = {node.stable_id: node for node in db_session.query(ModelNode).filter_by(project_id=new_id)}
        assert set(nodes) == {"plant", "plc", "hmi"}
        assert all(node.id not in ("n-plant", "n-plc", "n-hmi") for node in nodes.values())
        assert nodes["plc"].parent_node_id == nodes["plant"].id
        assert nodes["plc"].id.startswith("n-plc-r")

        edge = db_session.query(ModelEdge).filter_by(project_id=new_id).one()
        assert (edge.source_node_id, edge.target_node_id) == (nodes["plc"].id, nodes["hmi"].id)

        finding = db_session.query(Finding).filter_by(project_id=new_id).one()
        assert finding.asset_id == nodes["plc"].id
        measure = db_session.query(Measure).filter_by(project_id=new_id).one()
        assert measure.finding_id == finding.id
        answer = db_session.query(Answer).filter_by(project_id=new_id).one()
        assert answer.target_id == nodes["plc"].id
        assert answer.user_id == sample_graph.editor.id

        savepoint = db_session.query(CanonicalModelSavepoint).filter_by(project_id=new_id).one()
        assert savepoint.title == "Baseline"
        assert "n-plc" in savepoint.model_json

    def test_importer_becomes_first_admin(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        bundle = exported_bundle(client, sample_graph.project.id)
        caller.clear()
        caller.update(caller_for(sample_graph.viewer))

        new_id = import_items(client, [bundle])["importedProjects"][0]["id"]

        memberships = (
            db_session.query(ProjectMembership)
            .filter_by(project_id=new_id)
            .order_by(ProjectMembership.created_at.asc())
            .all()
        )
        assert memberships[0].user_id == sample_graph.viewer.id
        assert memberships[0].role == "Admin"
        roles = {membership.user_id: membership.role for membership in memberships}
        assert roles[sample_graph.owner.id] == "Admin"
        assert roles[sample_graph.editor.id] == "Editor"
        assert len(memberships) == 3

    def test_repeat_import_creates_independent_projects(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        bundle = exported_bundle(client, sample_graph.project.id)

        first = import_items(client, [bundle])["importedProjects"][0]["id"]
        second = import_items(client, [bundle])["importedProjects"][0]["id"]

        assert first != second
        first_nodes = {node.id for node in db_session.query(ModelNode).filter_by(project_id=first)}
        second_nodes = {node.id for node in db_session.query(ModelNode).filter_by(project_id=second)}
        assert first_nodes.isdisjoint(second_nodes)
        stable_ids = sorted(node.stable_id for node in db_session.query(ModelNode).filter_by(project_id=second))
        assert stable_ids == ["hmi", "plant", "plc"]


@pytest.mark.integration
class TestBatchIsolation:
    def test_invalid_items_reported_per_index(self, client, caller, caller_for, sample_graph):
        caller.update(caller_for(sample_graph.owner))

        result = import_items(client, [minimal_item(), "garbage", {"project": {"name": "   "}}])

        assert result["importedCount"] == 1
        assert result["failedProjects"] == [
            {"index": 1, "name": "Project 2", "error": "Invalid project payload"},
            {"index": 2, "name": "Project 3", "error": "Invalid project payload"},
        ]

    def test_failing_stage_rolls_back_only_its_item(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        items = [minimal_item("Broken"), minimal_item("Healthy")]

        with mock.patch.object(
            BundleItemImport, "create_measures", side_effect=[RuntimeError("measure stage failed"), None]
        ):
            result = import_items(client, items)

        assert result["importedCount"] == 1
        assert result["failedProjects"] == [{"index": 0, "name": "Broken", "error": "measure stage failed"}]
        assert db_session.query(Project).filter_by(name="Broken").count() == 0
        assert db_session.query(Project).filter_by(name="Healthy").count() == 1

    def test_database_errors_reported_generically(self, client, caller, caller_for, db_session, sample_graph):
        """Statement text and bound parameters never reach the client."""
        caller.update(caller_for(sample_graph.owner))
        failure = IntegrityError(
            "INSERT INTO measures (id, title) VALUES (?, ?)", ("m-secret", "Rotate password=hunter2"),
            Exception("UNIQUE constraint failed: measures.id"),
        )

        with mock.patch.object(BundleItemImport, "create_measures", side_effect=failure):
            result = import_items(client, [minimal_item("Broken")])

        assert result["failedProjects"] == [{"index": 0, "name": "Broken", "error": "Import failed"}]
        assert db_session.query(Project).filter_by(name="Broken").count() == 0

    def test_empty_project_list_rejected(self, client, caller, caller_for, sample_graph):
        caller.update(caller_for(sample_graph.owner))

        resp = client.post("/api/project-import", json={"projects": []})

        assert resp.status_code == 422


@pytest.mark.integration
class TestNormalization:
    def test_project_metadata_normalized(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        item = minimal_item()
        item["project"].update({"norm": "ISO 27001 | Bogus", "minRoleToView": "everyone"})

        new_id = import_items(client, [item])["importedProjects"][0]["id"]

        project = db_session.get(Project, new_id)
        assert project.norm == "ISO 27001"
        assert project.min_role_to_view == "private"

    def test_missing_norm_uses_default(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        item = {"project": {"name": "No Norm"}}

        new_id = import_items(client, [item])["importedProjects"][0]["id"]

        assert db_session.get(Project, new_id).norm == "IEC 62443"

    def test_natural_keys_deduplicated(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        item = minimal_item(
            nodes=[
                {"id": "a", "stableId": "plc", "name": "PLC A"},
                {"id": "b", "stableId": "plc", "name": "PLC B"},
                {"id": "c", "name": "Nameless"},
            ],
            dataObjects=[
                {"id": "d1", "name": "Credentials", "confidentiality": 42},
                {"id": "d2", "name": "credentials"},
            ],
        )

        new_id = import_items(client, [item])["importedProjects"][0]["id"]

        stable_ids = sorted(node.stable_id for node in db_session.query(ModelNode).filter_by(project_id=new_id))
        assert stable_ids == ["imported-node-1", "plc", "plc-2"]
        data_objects = db_session.query(DataObject).filter_by(project_id=new_id).order_by(DataObject.name).all()
        assert [item.name for item in data_objects] == ["Credentials", "credentials (2)"]
        assert data_objects[0].confidentiality == 10

    def test_node_names_trimmed(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        item = minimal_item(nodes=[{"id": "a", "name": "  Safety PLC \n"}, {"id": "b", "name": "   "}])

        new_id = import_items(client, [item])["importedProjects"][0]["id"]

        names = sorted(node.name for node in db_session.query(ModelNode).filter_by(project_id=new_id))
        assert names == ["Imported Node", "Safety PLC"]

    def test_cyclic_parents_skipped(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        item = minimal_item(
            nodes=[
                {"id": "a", "name": "Zone A", "category": "Container", "parentNodeId": "b"},
                {"id": "b", "name": "Zone B", "category": "Container", "parentNodeId": "a"},
                {"id": "c", "name": "Loop", "category": "Container", "parentNodeId": "c"},
            ]
        )

        imported = import_items(client, [item])["importedProjects"][0]

        assert imported["skipped"] == {"parentLinks": 2}
        parents = [node.parent_node_id for node in db_session.query(ModelNode).filter_by(project_id=imported["id"])]
        assert sum(1 for parent in parents if parent) == 1

    def test_dangling_references_skipped(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        item = minimal_item(
            nodes=[{"id": "a", "name": "A"}, {"id": "b", "name": "B"}],
            edges=[
                {"id": "e1", "sourceNodeId": "a", "targetNodeId": "b"},
                {"id": "e2", "sourceNodeId": "a", "targetNodeId": "ghost"},
                {"id": "e3", "sourceNodeId": "a", "targetNodeId": "a"},
            ],
            findings=[{"id": "f1", "assetType": "Node", "assetId": "ghost", "severity": 5}],
            measures=[{"id": "m1", "findingId": "f1", "title": "Orphan"}],
        )

        imported = import_items(client, [item])["importedProjects"][0]

        assert imported["skipped"] == {"edges": 2, "findings": 1, "measures": 1}
        assert db_session.query(ModelEdge).filter_by(project_id=imported["id"]).count() == 1


@pytest.mark.integration
class TestUserResolution:
    def test_unmatched_users_not_created(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        item = minimal_item(
            users=[
                {"id": "old-1", "email": "EDITOR@example.com"},
                {"id": "old-2", "email": "ghost@nowhere.example"},
            ],
            members=[{"id": "m1", "userId": "old-1", "role": "user"}, {"id": "m2", "userId": "old-2", "role": "Admin"}],
            questions=[{"id": "q1", "text": "Patched?", "targetType": "Component"}],
            answers=[{"id": "a1", "questionId": "q1", "userId": "old-2", "answerValue": "Yes"}],
        )

        imported = import_items(client, [item])["importedProjects"][0]

        assert imported["skipped"] == {"members": 1}
        roles = {
            membership.user_id: membership.role
            for membership in db_session.query(ProjectMembership).filter_by(project_id=imported["id"])
        }
        assert roles == {sample_graph.owner.id: "Admin", sample_graph.editor.id: "Editor"}
        answer = db_session.query(Answer).filter_by(project_id=imported["id"]).one()
        assert answer.user_id == sample_graph.owner.id

    def test_authors_cleared_when_unmatched(self, client, caller, caller_for, db_session, sample_graph):
        caller.update(caller_for(sample_graph.owner))
        item = minimal_item(
            users=[{"id": "old-1", "email": "ghost@nowhere.example"}],
            nodes=[{"id": "a", "name": "A", "createdByUserId": "old-1"}],
        )

        new_id = import_items(client, [item])["importedProjects"][0]["id"]

        node = db_session.query(ModelNode).filter_by(project_id=new_id).one()
        assert node.created_by_user_id is None
