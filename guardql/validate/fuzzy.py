"""Fuzzy Identifier Repair.

Given a column name the database rejected, find the column of a relation
that was most likely meant.  Strategies run in order and the first that
produces a candidate wins:

1. Case-insensitive exact match.
2. Substring containment in either direction (closest length wins).
3. Domain aliases: fixed synonym families for name suffixes, e.g.
   ``SalesStatus`` ↔ ``SalesTypeStatus`` or ``ItemNo`` ↔ ``ItemCode``.
4. Edit distance: normalized Levenshtein similarity
   ``(longest - distance) / longest``, accepted only above 0.6.
"""
from __future__ import annotations

import logging

from guardql.schema.catalog import CatalogSnapshot

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.6

# Each tuple is one synonym family of name suffixes, longest spellings first
# so "TypeStatus" is tried before "Status".
ALIAS_FAMILIES: tuple[tuple[str, ...], ...] = (
    ("typestatus", "statustype", "statusflag", "status", "flag", "state"),
    ("identifier", "number", "code", "num", "key", "no", "id"),
    ("description", "label", "title", "name", "desc"),
    ("quantity", "units", "qty"),
    ("amount", "value", "total", "amt", "val"),
    ("datetime", "date", "time", "dt"),
    ("customer", "client", "party"),
    ("colour", "color"),
)


def levenshtein(s1: str, s2: str) -> int:
    """Edit distance between ``s1`` and ``s2``."""
    if len(s1) < len(s2):
        return levenshtein(s2, s1)
    if not s2:
        return len(s1)
    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row
    return previous_row[-1]


def similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity in ``[0, 1]``, case-insensitive."""
    a, b = a.lower(), b.lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein(a, b)) / longest


class FuzzyIdentifierRepair:
    """Finds replacement column names from a catalog snapshot.

    Args:
        threshold: Minimum similarity for the edit-distance strategy.
    """

    def __init__(self, threshold: float = SIMILARITY_THRESHOLD) -> None:
        self._threshold = threshold

    def repair(self, invalid_name: str, relation: str, catalog: CatalogSnapshot) -> str | None:
        """Best replacement for ``invalid_name`` among ``relation``'s columns.

        Returns:
            The replacement column name, or ``None`` when nothing is close
            enough.
        """
        columns = catalog.get_column_names(relation)
        if not columns or not invalid_name:
            return None
        for strategy in (self._exact, self._substring, self._alias, self._edit_distance):
            match = strategy(invalid_name, columns)
            if match is not None:
                logger.info(
                    "Repaired identifier %r -> %r on %s via %s",
                    invalid_name,
                    match,
                    relation,
                    strategy.__name__.lstrip("_"),
                )
                return match
        return None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    @staticmethod
    def _exact(name: str, columns: list[str]) -> str | None:
        lowered = name.lower()
        return next((c for c in columns if c.lower() == lowered), None)

    @staticmethod
    def _substring(name: str, columns: list[str]) -> str | None:
        lowered = name.lower()
        hits = [c for c in columns if lowered in c.lower() or c.lower() in lowered]
        if not hits:
            return None
        return min(hits, key=lambda c: abs(len(c) - len(name)))

    @staticmethod
    def _alias(name: str, columns: list[str]) -> str | None:
        lowered = name.lower()
        by_lower = {c.lower(): c for c in columns}
        for family in ALIAS_FAMILIES:
            for suffix in family:
                if not lowered.endswith(suffix) or len(lowered) == len(suffix):
                    continue
                stem = lowered[: -len(suffix)]
                for variant in family:
                    if variant != suffix and stem + variant in by_lower:
                        return by_lower[stem + variant]
                break
        return None

    def _edit_distance(self, name: str, columns: list[str]) -> str | None:
        scored = [(similarity(name, c), c) for c in columns]
        best_score, best = max(scored, key=lambda pair: pair[0])
        if best_score > self._threshold:
            return best
        return None
