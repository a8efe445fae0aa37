"""
Project norm helpers

A project's ``norm`` column stores one or more compliance-norm tags joined
by " | ", e.g. "IEC 62443 | ISO 27001".
"""

from typing import Iterable, List, Optional

PROJECT_NORMS = ("IEC 62443", "IEC 61508", "ISO 27001", "NIST CSF", "None")
NORM_DELIMITER = " | "
DEFAULT_NORM = "IEC 62443"
NO_NORM = "None"


def _unique(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def parse_project_norms(raw_norm: Optional[str]) -> List[str]:
    """Split a stored norm value into its distinct, non-empty tags."""
    normalized = (raw_norm or "").strip()
    if not normalized:
        return []
    parts = normalized.split(NORM_DELIMITER) if NORM_DELIMITER in normalized else [normalized]
    return _unique(part.strip() for part in parts if part.strip())


def normalize_selectable_norms(norms: Optional[List[str]], fallback_norm: Optional[str] = None) -> List[str]:
    """
    Restrict norms to the known tags.

    "None" only survives when it is the sole selection; an empty or unknown
    selection falls back to the default norm.
    """
    if norms:
        source = norms
    elif fallback_norm:
        source = [fallback_norm]
    else:
        source = [DEFAULT_NORM]

    sanitized = _unique(norm.strip() for norm in source if norm.strip() in PROJECT_NORMS)
    if not sanitized:
        return [DEFAULT_NORM]

    without_none = [norm for norm in sanitized if norm != NO_NORM]
    return without_none or [NO_NORM]


def serialize_project_norms(norms: Iterable[str]) -> str:
    return NORM_DELIMITER.join(normalize_selectable_norms(list(norms)))

