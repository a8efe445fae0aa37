"""
Interchange Module - Export, Import and Snapshot Restore of Canonical Models

This module moves a project's canonical model (the component/interface graph
plus its assessment data) in and out of the store.

Architecture Overview:
    1. Export (interchange.export_service, interchange.oscal)
       - Reads a project's full data closure with original ids
       - Native bundle format or an OSCAL system security plan

    2. Import (interchange.import_service)
       - Creates a fresh project per bundle item
       - Remaps every id, resolves users by email, dedups natural keys
       - One transaction per item; a failing item never aborts the batch

    3. Restore (interchange.restore_service)
       - Replaces the project graph with a snapshot in one transaction
       - Remaps the snapshot's view state to the new node ids

    4. Shared building blocks
       - IdentifierRemapper / NaturalKeyRegistry (interchange.remapper)
       - Hierarchy cycle guard (interchange.hierarchy)
       - CanonicalGraphWriter (interchange.graph_writer)
       - OperationLedger skip-and-count accumulator (interchange.models)

Quick Start:
    from secudo.services.interchange import (
        ProjectExportService,
        ProjectImportService,
        SnapshotRestoreService,
    )

    exported = ProjectExportService(db).export_projects(["project-1"], current_user)
    result = ProjectImportService(db).import_bundle(ImportBundle(**exported), current_user)
    restored = SnapshotRestoreService(db).restore_snapshot(project_id, snapshot_id, current_user)
"""

from .exceptions import (  # noqa: F401
    HierarchyViolationError,
    InterchangeError,
    InvalidBundleError,
    InvalidSnapshotRequestError,
    NodeNotFoundError,
    ProjectAccessError,
    ProjectNotFoundError,
    RestoreInProgressError,
    SnapshotCorruptedError,
    SnapshotNotFoundError,
    SnapshotTooLargeError,
)
from .export_service import ProjectExportService  # noqa: F401
from .graph_writer import CanonicalGraphWriter  # noqa: F401
from .hierarchy import (  # noqa: F401
    NodeLink,
    ParentRejection,
    check_parent_assignment,
    db_parent_lookup,
    mapping_lookup,
    would_create_cycle,
)
from .import_service import ProjectImportService  # noqa: F401
from .locks import ProjectLockRegistry, restore_locks  # noqa: F401
from .models import (  # noqa: F401
    CanonicalSnapshot,
    CreateSnapshotRequest,
    EntityKind,
    ExportFormat,
    ExportRequest,
    ImportBundle,
    ImportResult,
    OperationLedger,
    RestoreResult,
    SetParentRequest,
    SnapshotSummary,
)
from .oscal import build_oscal_document  # noqa: F401
from .remapper import IdentifierRemapper, NaturalKeyRegistry  # noqa: F401
from .restore_service import SnapshotRestoreService, parse_snapshot  # noqa: F401

__all__ = [
    # Exceptions
    "InterchangeError",
    "ProjectAccessError",
    "ProjectNotFoundError",
    "SnapshotNotFoundError",
    "SnapshotCorruptedError",
    "SnapshotTooLargeError",
    "RestoreInProgressError",
    "InvalidBundleError",
    "HierarchyViolationError",
    "NodeNotFoundError",
    "InvalidSnapshotRequestError",
    # Services
    "ProjectExportService",
    "ProjectImportService",
    "SnapshotRestoreService",
    "CanonicalGraphWriter",
    "build_oscal_document",
    "parse_snapshot",
    # Building blocks
    "IdentifierRemapper",
    "NaturalKeyRegistry",
    "NodeLink",
    "ParentRejection",
    "check_parent_assignment",
    "would_create_cycle",
    "mapping_lookup",
    "db_parent_lookup",
    "ProjectLockRegistry",
    "restore_locks",
    # Models
    "CanonicalSnapshot",
    "CreateSnapshotRequest",
    "EntityKind",
    "ExportFormat",
    "ExportRequest",
    "ImportBundle",
    "ImportResult",
    "OperationLedger",
    "RestoreResult",
    "SetParentRequest",
    "SnapshotSummary",
]
