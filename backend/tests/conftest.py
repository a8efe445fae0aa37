"""
Pytest configuration and fixtures for Secudo backend tests.
"""

import json
import os
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Dict, Iterable, Optional, Tuple

import pytest

# Settings are read at import time of secudo.database
os.environ.setdefault("SECUDO_SECRET_KEY", "test-secret-key-for-secudo-unit-tests-0123456789")  # pragma: allowlist secret
os.environ.setdefault("SECUDO_DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from secudo.auth import get_current_user  # noqa: E402
from secudo.database import (  # noqa: E402
    Base,
    Project,
    ProjectMembership,
    User,
    enable_sqlite_foreign_keys,
    get_db,
)


@pytest.fixture
def test_engine():
    """In-memory SQLite engine with FK enforcement, one per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Session:
    """Provide database session for tests"""
    TestingSession = sessionmaker(bind=test_engine, autocommit=False, autoflush=False)
    session = TestingSession()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def make_user(db_session):
    """Factory creating committed users"""

    def _make_user(email: str, role: str = "Viewer", name: Optional[str] = None) -> User:
        user = User(email=email, role=role, name=name or email.split("@")[0].title())
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_project(db_session):
    """Factory creating a committed project with ordered memberships (first is the creator)"""

    def _make_project(
        name: str = "Plant Network",
        members: Iterable[Tuple[User, str]] = (),
        min_role_to_view: str = "private",
        deleted_at: Optional[datetime] = None,
    ) -> Project:
        project = Project(name=name, norm="IEC 62443", min_role_to_view=min_role_to_view, deleted_at=deleted_at)
        db_session.add(project)
        db_session.flush()
        joined_at = datetime.utcnow() - timedelta(days=1)
        for offset, (user, role) in enumerate(members):
            db_session.add(
                ProjectMembership(
                    project_id=project.id,
                    user_id=user.id,
                    role=role,
                    created_at=joined_at + timedelta(seconds=offset),
                    added_at=joined_at + timedelta(seconds=offset),
                )
            )
        db_session.commit()
        return project

    return _make_project


def caller_of(user: User) -> Dict[str, Any]:
    """Caller identity dict as produced by get_current_user"""
    return {"id": user.id, "email": user.email, "name": user.name, "role": user.role}


@pytest.fixture
def caller():
    """Mutable caller identity used by the authenticated test client"""
    return {}


@pytest.fixture
def client(db_session, caller):
    """FastAPI test client bound to the test session and the ``caller`` identity"""
    from secudo.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = lambda: dict(caller)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def caller_for():
    """Build a caller identity dict from a user row"""
    return caller_of


@pytest.fixture
def sample_graph(db_session, make_user, make_project):
    """
    A project with a small but complete canonical model.

    Container "Plant" holds components "PLC" and "HMI"; PLC -> HMI is one
    interface carrying "Credentials", which PLC stores. Assessment data
    (asset value, question, answer, final answer, finding, measure, report)
    and one snapshot of the graph are attached.
    """
    from secudo.database import (
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
        Question,
        Report,
    )

    owner = make_user("owner@example.com", role="Editor", name="Olivia Owner")
    editor = make_user("editor@example.com", role="Viewer", name="Eli Editor")
    viewer = make_user("viewer@example.com", role="Viewer", name="Vic Viewer")
    project = make_project("Plant Network", members=[(owner, "Admin"), (editor, "Editor"), (viewer, "Viewer")])

    db_session.add_all(
        [
            ModelNode(id="n-plant", project_id=project.id, stable_id="plant", name="Plant", category="Container",
                      created_by_user_id=owner.id, updated_by_user_id=editor.id),
            ModelNode(id="n-plc", project_id=project.id, stable_id="plc", name="PLC", category="Component",
                      parent_node_id="n-plant", created_by_user_id=owner.id),
            ModelNode(id="n-hmi", project_id=project.id, stable_id="hmi", name="HMI", category="Component",
                      parent_node_id="n-plant", created_by_user_id=owner.id),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            ModelEdge(id="e-plc-hmi", project_id=project.id, source_node_id="n-plc", target_node_id="n-hmi",
                      name="Fieldbus", direction="A_TO_B", protocol="Modbus", created_by_user_id=editor.id),
            DataObject(id="d-creds", project_id=project.id, name="Credentials", data_class="Credentials",
                       confidentiality=9, integrity=7, availability=3),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            ComponentData(id="cd-plc-creds", node_id="n-plc", data_object_id="d-creds", role="Stores"),
            EdgeDataFlow(id="f-creds", edge_id="e-plc-hmi", data_object_id="d-creds", direction="SourceToTarget"),
            AssetValue(id="av-plc", project_id=project.id, asset_type="Node", asset_id="n-plc", value=8),
            Question(id="q-auth", project_id=project.id, text="Is authentication enforced?",
                     norm_reference="IEC 62443-3-3 SR 1.1", target_type="Component", answer_type="YesNo"),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            Answer(id="a-auth", project_id=project.id, question_id="q-auth", user_id=editor.id,
                   answer_value="No", target_type="Component", target_id="n-plc"),
            FinalAnswer(id="fa-auth", project_id=project.id, question_id="q-auth", answer_value="No"),
            Finding(id="fi-auth", project_id=project.id, asset_type="Node", asset_id="n-plc", asset_name="PLC",
                    question_text="Is authentication enforced?", norm_reference="IEC 62443-3-3 SR 1.1", severity=8),
            Report(id="r-1", project_id=project.id, title="Initial report"),
        ]
    )
    db_session.flush()
    db_session.add(
        Measure(id="m-auth", project_id=project.id, finding_id="fi-auth", title="Enable authentication",
                asset_type="Node", asset_id="n-plc", priority="High", created_by_user_id=editor.id)
    )
    snapshot = {
        "version": 1,
        "nodes": [
            {"id": "n-plant", "stableId": "plant", "name": "Plant", "category": "Container"},
            {"id": "n-plc", "stableId": "plc", "name": "PLC", "category": "Component", "parentNodeId": "n-plant"},
            {"id": "n-hmi", "stableId": "hmi", "name": "HMI", "category": "Component", "parentNodeId": "n-plant"},
        ],
        "edges": [{"id": "e-plc-hmi", "sourceNodeId": "n-plc", "targetNodeId": "n-hmi", "name": "Fieldbus"}],
        "dataObjects": [{"id": "d-creds", "name": "Credentials", "dataClass": "Credentials", "confidentiality": 9}],
        "componentData": [{"id": "cd-plc-creds", "nodeId": "n-plc", "dataObjectId": "d-creds", "role": "Stores"}],
        "edgeDataFlows": [{"id": "f-creds", "edgeId": "e-plc-hmi", "dataObjectId": "d-creds"}],
        "nodePositions": {"n-plant": {"x": 0, "y": 0}, "n-plc": {"x": 40.5, "y": 80}, "n-hmi": {"x": 200, "y": 80}},
        "containerSizes": {"n-plant": {"width": 420.4, "height": 260.6}},
    }
    db_session.add(
        CanonicalModelSavepoint(id="s-baseline", project_id=project.id, title="Baseline",
                                model_json=json.dumps(snapshot), created_by_user_id=owner.id)
    )
    db_session.commit()

    return SimpleNamespace(project=project, owner=owner, editor=editor, viewer=viewer, snapshot=snapshot)
