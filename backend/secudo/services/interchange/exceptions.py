"""
Interchange Module Exceptions

Exception hierarchy for export, import, snapshot restore and hierarchy edits.

Exception Hierarchy:
    InterchangeError (base)
    ├── ProjectAccessError (caller lacks the required role)
    ├── ProjectNotFoundError (project missing, trashed or invisible)
    ├── SnapshotNotFoundError (snapshot missing for the project)
    ├── SnapshotCorruptedError (snapshot JSON/schema invalid)
    ├── SnapshotTooLargeError (snapshot exceeds the size limit)
    ├── RestoreInProgressError (another restore holds the project)
    ├── InvalidBundleError (bundle item unusable at the top level)
    ├── HierarchyViolationError (live parent edit rejected)
    ├── NodeNotFoundError (node missing for the project)
    └── InvalidSnapshotRequestError (snapshot capture input unusable)

Reference-resolution gaps inside bundles and snapshots are not exceptions:
they are skipped and counted by the operation ledger.
"""

from typing import Any, Dict, List, Optional


class InterchangeError(Exception):
    """
    Base exception for interchange operations.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error identifier
        context: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        error_code: str = "INTERCHANGE_ERROR",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Dictionary form for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class ProjectAccessError(InterchangeError):
    """Raised when the caller's role is insufficient for the operation."""

    def __init__(self, project_id: str, required: str = "Editor", message: Optional[str] = None):
        self.project_id = project_id
        self.required = required
        super().__init__(
            message or f"Not authorized ({required} required)",
            error_code="PROJECT_ACCESS_DENIED",
            context={"project_id": project_id, "required_role": required},
        )


class ProjectNotFoundError(InterchangeError):
    """Raised when a project does not exist, is in the trash, or is invisible to the caller."""

    def __init__(self, project_id: str, message: Optional[str] = None):
        self.project_id = project_id
        super().__init__(
            message or "Project not found",
            error_code="PROJECT_NOT_FOUND",
            context={"project_id": project_id},
        )


class SnapshotNotFoundError(InterchangeError):
    """Raised when a snapshot does not exist for the given project."""

    def __init__(self, project_id: str, snapshot_id: str):
        self.project_id = project_id
        self.snapshot_id = snapshot_id
        super().__init__(
            "Snapshot not found",
            error_code="SNAPSHOT_NOT_FOUND",
            context={"project_id": project_id, "snapshot_id": snapshot_id},
        )


class SnapshotCorruptedError(InterchangeError):
    """Raised when a stored snapshot cannot be parsed or fails schema validation.

    Attributes:
        details: Validation problems, one entry per failing field
    """

    def __init__(self, snapshot_id: str, message: str, details: Optional[List[Dict[str, Any]]] = None):
        self.snapshot_id = snapshot_id
        self.details = details or []
        super().__init__(
            message,
            error_code="SNAPSHOT_CORRUPTED",
            context={"snapshot_id": snapshot_id},
        )


class SnapshotTooLargeError(InterchangeError):
    """Raised when a snapshot document exceeds the configured byte limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            "Snapshot is too large",
            error_code="SNAPSHOT_TOO_LARGE",
            context={"size": size, "limit": limit},
        )


class RestoreInProgressError(InterchangeError):
    """Raised when a restore is already running for the project."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(
            "A restore is already in progress for this project",
            error_code="RESTORE_IN_PROGRESS",
            context={"project_id": project_id},
        )


class InvalidBundleError(InterchangeError):
    """Raised when a bundle item has no usable project metadata."""

    def __init__(self, message: str = "Invalid project payload", index: Optional[int] = None):
        self.index = index
        super().__init__(message, error_code="INVALID_BUNDLE", context={"index": index})


class HierarchyViolationError(InterchangeError):
    """Raised when a live parent edit is rejected by the hierarchy rules.

    Attributes:
        reason: One of the ParentRejection values
    """

    def __init__(self, node_id: str, parent_id: str, reason: str, message: str):
        self.node_id = node_id
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(
            message,
            error_code="HIERARCHY_VIOLATION",
            context={"node_id": node_id, "parent_id": parent_id, "reason": reason},
        )


class NodeNotFoundError(InterchangeError):
    """Raised when a node does not exist in the given project."""

    def __init__(self, project_id: str, node_id: str):
        self.project_id = project_id
        self.node_id = node_id
        super().__init__(
            "Node not found",
            error_code="NODE_NOT_FOUND",
            context={"project_id": project_id, "node_id": node_id},
        )


class InvalidSnapshotRequestError(InterchangeError):
    """Raised when a snapshot capture request is unusable after normalization."""

    def __init__(self, message: str):
        super().__init__(message, error_code="INVALID_SNAPSHOT_REQUEST")
