"""
Defensive readers and enum normalizers for untrusted bundle and snapshot values

Every reader accepts any JSON value and falls back to a documented default
instead of raising.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .models import (
    AnswerType,
    AssetType,
    ComponentDataRole,
    EdgeDirection,
    FlowDirection,
    NodeCategory,
    QuestionTargetType,
)

RATING_MIN = 1
RATING_MAX = 10
RATING_DEFAULT = 5


def as_record(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def read_string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def read_number(value: Any) -> Optional[float]:
    # bool is an int subclass but never a rating
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def read_bool(value: Any) -> bool:
    return value is True


def read_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string into a naive UTC datetime, or None."""
    text = read_string(value)
    if not text:
        return None
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def clamp_rating(value: Any) -> int:
    """Round to an integer rating in 1..10, defaulting to 5."""
    numeric = read_number(value)
    if numeric is None:
        return RATING_DEFAULT
    # JS Math.round semantics: halves round up
    return max(RATING_MIN, min(RATING_MAX, int(math.floor(numeric + 0.5))))


def _lower(value: Any) -> str:
    return (read_string(value) or "").strip().lower()


def normalize_node_category(value: Any) -> NodeCategory:
    if _lower(value) in ("container", "system"):
        return NodeCategory.CONTAINER
    return NodeCategory.COMPONENT


def normalize_edge_direction(value: Any) -> EdgeDirection:
    normalized = (read_string(value) or "").strip().upper()
    if normalized == EdgeDirection.B_TO_A.value:
        return EdgeDirection.B_TO_A
    if normalized == EdgeDirection.BIDIRECTIONAL.value:
        return EdgeDirection.BIDIRECTIONAL
    return EdgeDirection.A_TO_B


def normalize_flow_direction(value: Any) -> FlowDirection:
    normalized = _lower(value)
    if normalized == "targettosource":
        return FlowDirection.TARGET_TO_SOURCE
    if normalized == "bidirectional":
        return FlowDirection.BIDIRECTIONAL
    return FlowDirection.SOURCE_TO_TARGET


def normalize_component_data_role(value: Any) -> ComponentDataRole:
    normalized = _lower(value)
    for role in ComponentDataRole:
        if role.value.lower() == normalized:
            return role
    return ComponentDataRole.STORES


def normalize_asset_type(value: Any) -> Optional[AssetType]:
    normalized = _lower(value)
    for asset_type in AssetType:
        if asset_type.value.lower() == normalized:
            return asset_type
    return None


def normalize_question_target_type(value: Any) -> QuestionTargetType:
    normalized = _lower(value)
    for target_type in QuestionTargetType:
        if target_type.value.lower() == normalized:
            return target_type
    return QuestionTargetType.NONE


def normalize_answer_target_type(value: Any) -> Optional[QuestionTargetType]:
    """Answer targets also accept the legacy "node" spelling for Component."""
    normalized = _lower(value)
    if normalized == "node":
        return QuestionTargetType.COMPONENT
    for target_type in QuestionTargetType:
        if target_type.value.lower() == normalized:
            return target_type
    return None


def normalize_answer_type(value: Any) -> AnswerType:
    normalized = _lower(value)
    for answer_type in AnswerType:
        if answer_type.value.lower() == normalized:
            return answer_type
    return AnswerType.YES_NO


def text_or_default(value: Any, default: str) -> str:
    """Non-blank string value, else the default."""
    text = read_string(value)
    return text if text and text.strip() else default
