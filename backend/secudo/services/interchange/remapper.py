"""
Identifier remapping for import and restore

One IdentifierRemapper and one NaturalKeyRegistry are created per imported
bundle item or per restore. They are never shared between operations.
"""

import logging
import re
from collections import defaultdict
from typing import Callable, Dict, Iterable, Optional, Set
from uuid import uuid4

from ...database import ID_LENGTH

logger = logging.getLogger(__name__)

# Suffix appended by a previous remap: "-r" + 8 hex chars, optionally "-<n>"
REMAP_SUFFIX = re.compile(r"-r[0-9a-f]{8}(?:-\d+)?$")

# Room kept for a "-<n>" collision suffix
_COLLISION_RESERVE = 6

StoreLookup = Callable[[str, str], bool]


class IdentifierRemapper:
    """
    Allocates fresh identifiers and keeps an old -> new table per entity kind.

    Derived ids stay legible: ``node-a`` imported twice becomes
    ``node-a-r1a2b3c4d`` and, on re-export and re-import, ``node-a-r9f8e7d6c``
    rather than growing a chain of suffixes.

    Args:
        token: Operation token (random 8 hex chars when omitted)
        taken: Optional lookup ``taken(kind, candidate)`` reporting ids
            already present in the store
    """

    def __init__(self, token: Optional[str] = None, taken: Optional[StoreLookup] = None):
        self.token = token or uuid4().hex[:8]
        self._taken = taken
        self._tables: Dict[str, Dict[str, str]] = defaultdict(dict)
        self._allocated: Dict[str, Set[str]] = defaultdict(set)

    def allocate(self, old_id: Optional[str], kind: str, index: int) -> str:
        """Return a new id unique for ``kind`` and record ``old_id`` -> new."""
        old = (old_id or "").strip()
        table = self._tables[kind]

        if old and old not in table:
            candidate = self._derive(old)
        else:
            candidate = self._synthesize(kind, index)

        new_id = self._disambiguate(kind, candidate)
        self._allocated[kind].add(new_id)
        if old and old not in table:
            table[old] = new_id
        return new_id

    def resolve(self, kind: str, old_id: Optional[str]) -> Optional[str]:
        """New id for ``old_id``, or None when the reference does not resolve."""
        if not isinstance(old_id, str) or not old_id.strip():
            return None
        return self._tables[kind].get(old_id.strip())

    def table(self, kind: str) -> Dict[str, str]:
        return dict(self._tables[kind])

    def _derive(self, old_id: str) -> str:
        base = REMAP_SUFFIX.sub("", old_id) or old_id
        suffix = f"-r{self.token}"
        base = base[: ID_LENGTH - len(suffix) - _COLLISION_RESERVE]
        return f"{base}{suffix}"

    def _synthesize(self, kind: str, index: int) -> str:
        return f"{kind}-{index + 1}-r{self.token}"

    def _is_taken(self, kind: str, candidate: str) -> bool:
        if candidate in self._allocated[kind]:
            return True
        return bool(self._taken and self._taken(kind, candidate))

    def _disambiguate(self, kind: str, candidate: str) -> str:
        if not self._is_taken(kind, candidate):
            return candidate
        counter = 2
        while self._is_taken(kind, f"{candidate}-{counter}"):
            counter += 1
        logger.debug(f"Identifier collision for {kind}, using suffix -{counter}")
        return f"{candidate}-{counter}"


class NaturalKeyRegistry:
    """
    Deduplicates human-readable keys within one project.

    Stable ids get ``-2``, ``-3`` suffixes (case-sensitive). Data-object
    names get `` (2)``, `` (3)`` suffixes and are compared case-insensitively.
    """

    def __init__(self, existing_stable_ids: Iterable[str] = (), existing_names: Iterable[str] = ()):
        self._stable_ids: Set[str] = set(existing_stable_ids)
        self._names: Set[str] = {name.lower() for name in existing_names}
        self._generated = 0

    def claim_stable_id(self, raw: Optional[str], prefix: str = "imported-node") -> str:
        base = (raw or "").strip()
        if not base:
            self._generated += 1
            base = f"{prefix}-{self._generated}"

        candidate = base
        counter = 2
        while candidate in self._stable_ids:
            candidate = f"{base}-{counter}"
            counter += 1
        self._stable_ids.add(candidate)
        return candidate

    def claim_name(self, raw: Optional[str], fallback: str) -> str:
        base = (raw or "").strip() or fallback

        candidate = base
        counter = 2
        while candidate.lower() in self._names:
            candidate = f"{base} ({counter})"
            counter += 1
        self._names.add(candidate.lower())
        return candidate
