"""
Database configuration and ORM models for the Secudo modeling backend

Every project-owned table cascades with its project. Users are shared and
only referenced weakly from audit columns.
"""

import logging
from datetime import datetime
from typing import Generator
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

DATABASE_URL = settings.database_url
ID_LENGTH = 64


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # Request-scoped sessions may be served from a worker thread
        return {"check_same_thread": False}
    return {"connect_timeout": 10, "options": "-c application_name=secudo"}


engine = create_engine(
    DATABASE_URL,
    echo=settings.database_echo,
    pool_pre_ping=True,
    connect_args=_connect_args(DATABASE_URL),
)


def enable_sqlite_foreign_keys(target_engine) -> None:
    """Turn on FK enforcement for SQLite connections of the given engine."""
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


enable_sqlite_foreign_keys(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def generate_id() -> str:
    """Opaque identifier for rows created outside an interchange operation."""
    return uuid4().hex


# Database Models
class User(Base):  # type: ignore[valid-type, misc]
    """Platform user, shared across projects"""

    __tablename__ = "users"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    name = Column(String(200), nullable=True)
    role = Column(String(20), default="Viewer", nullable=False)  # Admin, Editor, Viewer
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Project(Base):  # type: ignore[valid-type, misc]
    """Assessment project owning a canonical model graph

    norm holds one or more compliance norms joined by " | ".
    min_role_to_view is one of: any, viewer, editor, admin, private.
    """

    __tablename__ = "projects"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    norm = Column(String(200), default="IEC 62443", nullable=False)
    min_role_to_view = Column(String(20), default="private", nullable=False)
    deleted_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    members = relationship(
        "ProjectMembership",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectMembership.created_at",
    )


class ProjectMembership(Base):  # type: ignore[valid-type, misc]
    """Project role of a user. The earliest row of a project is its creator."""

    __tablename__ = "project_memberships"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default="Viewer", nullable=False)  # Admin, Editor, Viewer
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="members")

    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_membership"),)


class ModelNode(Base):  # type: ignore[valid-type, misc]
    """Component or container of the canonical model

    parent_node_id forms a forest; only Container nodes may be parents.
    """

    __tablename__ = "model_nodes"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    stable_id = Column(String(200), nullable=False)
    name = Column(String(200), nullable=False)
    category = Column(String(20), default="Component", nullable=False)  # Container, Component
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    parent_node_id = Column(String(ID_LENGTH), ForeignKey("model_nodes.id", ondelete="SET NULL"), nullable=True)
    created_by_user_id = Column(String(ID_LENGTH), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id = Column(String(ID_LENGTH), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("project_id", "stable_id", name="uq_model_node_stable_id"),)


class ModelEdge(Base):  # type: ignore[valid-type, misc]
    """Interface between two nodes of the same project"""

    __tablename__ = "model_edges"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    source_node_id = Column(String(ID_LENGTH), ForeignKey("model_nodes.id", ondelete="CASCADE"), nullable=False)
    target_node_id = Column(String(ID_LENGTH), ForeignKey("model_nodes.id", ondelete="CASCADE"), nullable=False)
    source_handle_id = Column(String(100), nullable=True)
    target_handle_id = Column(String(100), nullable=True)
    name = Column(String(200), nullable=True)
    direction = Column(String(20), default="A_TO_B", nullable=False)  # A_TO_B, B_TO_A, BIDIRECTIONAL
    protocol = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_by_user_id = Column(String(ID_LENGTH), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class DataObject(Base):  # type: ignore[valid-type, misc]
    """Classified data asset with CIA ratings (1-10)"""

    __tablename__ = "data_objects"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    data_class = Column(String(50), default="Other", nullable=False)
    confidentiality = Column(Integer, default=5, nullable=False)
    integrity = Column(Integer, default=5, nullable=False)
    availability = Column(Integer, default=5, nullable=False)
    tags = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ComponentData(Base):  # type: ignore[valid-type, misc]
    """Link between a non-container node and a data object"""

    __tablename__ = "component_data"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    node_id = Column(String(ID_LENGTH), ForeignKey("model_nodes.id", ondelete="CASCADE"), nullable=False)
    data_object_id = Column(String(ID_LENGTH), ForeignKey("data_objects.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default="Stores", nullable=False)  # Stores, Processes, Generates, Receives
    notes = Column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("node_id", "data_object_id", name="uq_component_data_pair"),)


class EdgeDataFlow(Base):  # type: ignore[valid-type, misc]
    """Data object carried over an interface"""

    __tablename__ = "edge_data_flows"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    edge_id = Column(String(ID_LENGTH), ForeignKey("model_edges.id", ondelete="CASCADE"), nullable=False)
    data_object_id = Column(String(ID_LENGTH), ForeignKey("data_objects.id", ondelete="CASCADE"), nullable=False)
    direction = Column(String(20), default="SourceToTarget", nullable=False)
    notes = Column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("edge_id", "data_object_id", name="uq_edge_data_flow_pair"),)


class AssetValue(Base):  # type: ignore[valid-type, misc]
    """Criticality rating of a node, edge or data object"""

    __tablename__ = "asset_values"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    asset_type = Column(String(20), nullable=False)  # Node, Edge, DataObject
    asset_id = Column(String(ID_LENGTH), nullable=False)
    value = Column(Integer, default=5, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("project_id", "asset_type", "asset_id", name="uq_asset_value_asset"),)


class Question(Base):  # type: ignore[valid-type, misc]
    """Compliance question of the assessment workflow"""

    __tablename__ = "questions"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    norm_reference = Column(String(200), default="Custom", nullable=False)
    target_type = Column(String(20), default="None", nullable=False)  # Component, Edge, DataObject, None
    answer_type = Column(String(20), default="YesNo", nullable=False)  # YesNo, Text, MultiSelect
    risk_description = Column(Text, nullable=True)
    default_measures = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Answer(Base):  # type: ignore[valid-type, misc]
    """Answer given by one user to a question"""

    __tablename__ = "answers"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(String(ID_LENGTH), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    answer_value = Column(Text, nullable=True)
    target_type = Column(String(20), nullable=True)
    target_id = Column(String(ID_LENGTH), nullable=True)
    comment = Column(Text, nullable=True)
    is_aggregate = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class FinalAnswer(Base):  # type: ignore[valid-type, misc]
    """Resolved answer of a question"""

    __tablename__ = "final_answers"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(String(ID_LENGTH), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    answer_value = Column(Text, nullable=False)
    status = Column(String(20), default="Approved", nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("project_id", "question_id", name="uq_final_answer_question"),)


class Finding(Base):  # type: ignore[valid-type, misc]
    """Generated finding against one asset"""

    __tablename__ = "findings"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    asset_type = Column(String(20), nullable=False)
    asset_id = Column(String(ID_LENGTH), nullable=False)
    asset_name = Column(String(200), nullable=False)
    question_text = Column(Text, nullable=False)
    norm_reference = Column(String(200), default="Custom", nullable=False)
    severity = Column(Integer, default=5, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Measure(Base):  # type: ignore[valid-type, misc]
    """Remediation measure attached to a finding"""

    __tablename__ = "measures"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    finding_id = Column(String(ID_LENGTH), ForeignKey("findings.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    asset_type = Column(String(20), nullable=False)
    asset_id = Column(String(ID_LENGTH), nullable=False)
    norm_reference = Column(String(200), nullable=True)
    priority = Column(String(20), default="Medium", nullable=False)
    status = Column(String(20), default="Open", nullable=False)
    assigned_to = Column(String(200), nullable=True)
    due_date = Column(DateTime, nullable=True)
    created_by_user_id = Column(String(ID_LENGTH), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Report(Base):  # type: ignore[valid-type, misc]
    """Generated report metadata (rendering happens elsewhere)"""

    __tablename__ = "reports"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    generated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    pdf_url = Column(String(500), nullable=True)
    format = Column(String(20), default="PDF", nullable=False)


class CanonicalModelSavepoint(Base):  # type: ignore[valid-type, misc]
    """Immutable snapshot of a project's canonical graph plus view state"""

    __tablename__ = "canonical_model_savepoints"

    id = Column(String(ID_LENGTH), primary_key=True, default=generate_id)
    project_id = Column(String(ID_LENGTH), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    model_json = Column(Text, nullable=False)
    created_by_user_id = Column(String(ID_LENGTH), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# Database dependency for FastAPI
def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency for FastAPI endpoints.

    Yields:
        SQLAlchemy Session instance.

    Note:
        Session is automatically closed when the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create database tables if they don't exist."""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")
        raise


def check_database_health() -> bool:
    """Check database connectivity for health checks"""
    try:
        from sqlalchemy import text

        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
