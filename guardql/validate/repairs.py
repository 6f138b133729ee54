"""Repair strategies, one per recognised probe failure class.

Each strategy is a narrow text rewrite.  It returns a :class:`Repair` when it
changed the statement and ``None`` when it has nothing to offer, in which
case the validation loop falls back.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from guardql.policy.config import PolicyConfig
from guardql.rewrite.sqltext import (
    GROUP_BY_RE,
    OFFSET_RE,
    ORDER_BY_RE,
    MaskedSQL,
    map_outside_literals,
    replace_identifier,
    splice,
    unquote_identifier,
)
from guardql.schema.catalog import CatalogSnapshot
from guardql.schema.expressions import SQL_AGGREGATE_NAMES
from guardql.validate.fuzzy import FuzzyIdentifierRepair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Repair:
    """A successful repair.

    Attributes:
        sql: The rewritten statement.
        note: Human-readable description, surfaced as a warning.
    """

    sql: str
    note: str


# ---------------------------------------------------------------------------
# ORDER BY not covered by GROUP BY
# ---------------------------------------------------------------------------

_DIRECTION_RE = re.compile(r"\s+(?:ASC|DESC)\s*$", re.IGNORECASE)
_AGGREGATE_CALL_RE = re.compile(
    r"\b(?:" + "|".join(sorted(SQL_AGGREGATE_NAMES)) + r")\s*\(", re.IGNORECASE
)
_GROUPING_EXTENSIONS_RE = re.compile(r"\b(?:ROLLUP|CUBE|GROUPING\s+SETS)\b", re.IGNORECASE)


def promote_order_by(sql: str) -> Repair | None:
    """Move ORDER BY columns into GROUP BY, or drop ORDER BY if ungrouped.

    Aggregates, ordinal positions and SELECT aliases are never promoted.
    Without a GROUP BY the whole ORDER BY clause goes, including any
    ``OFFSET`` / ``FETCH`` paging that depends on it.
    """
    ms = MaskedSQL(sql)
    order = ms.clause(ORDER_BY_RE)
    if order is None:
        return None
    group = ms.clause(GROUP_BY_RE)
    if group is None:
        return Repair(splice(sql, order.start, order.end, ""), "Removed ORDER BY clause.")
    if _GROUPING_EXTENSIONS_RE.search(ms.masked, group.body_start, group.end):
        return None

    offset = ms.find_top_level(OFFSET_RE, order.body_start, order.end)
    order_end = offset.start() if offset else order.end
    aliases = {item.alias.lower() for item in ms.select_items() if item.alias}
    existing = [sql[s:e].strip() for s, e in ms.split_top_level(group.body_start, group.end)]
    known = {_key(expr) for expr in existing}

    promoted: list[str] = []
    for start, end in ms.split_top_level(order.body_start, order_end):
        masked_item = _DIRECTION_RE.sub("", ms.masked[start:end]).strip()
        expr = _DIRECTION_RE.sub("", sql[start:end]).strip()
        if not expr or masked_item.isdigit() or _AGGREGATE_CALL_RE.search(masked_item):
            continue
        if unquote_identifier(expr).lower() in aliases or _key(expr) in known:
            continue
        known.add(_key(expr))
        promoted.append(expr)

    if not promoted:
        return None
    clause = "GROUP BY " + ", ".join(existing + promoted)
    return Repair(
        splice(sql, group.start, group.end, clause),
        "Added ORDER BY columns to GROUP BY: " + ", ".join(promoted) + ".",
    )


def _key(expr: str) -> str:
    key = re.sub(r"[\s\[\]\"]+", "", expr).lower()
    return key.rsplit(".", 1)[-1] if re.fullmatch(r"[\w#@$.]+", key) else key


# ---------------------------------------------------------------------------
# Unbound multi-part identifiers
# ---------------------------------------------------------------------------

_SINGLE_LETTER_QUALIFIER_RE = re.compile(
    r"(?<![\w#@$\].\"])(?:\[[A-Za-z]\]|[A-Za-z])\s*\.\s*(?=[\w\[\"#@$])"
)


def strip_table_aliases(sql: str, identifier: str | None = None) -> Repair | None:
    """Drop table aliases and reduce alias-qualified references to bare names.

    Alias declarations on FROM / JOIN targets are removed, then qualifiers
    that are declared aliases, single letters, or the qualifier of the
    unbound ``identifier`` are stripped outside string literals.
    """
    ms = MaskedSQL(sql)
    declared = [ref for ref in ms.targets() if ref.alias_span is not None]
    qualifiers = {ref.alias for ref in declared if ref.alias}
    if identifier and "." in identifier:
        qualifiers.add(unquote_identifier(identifier.rsplit(".", 1)[0].rsplit(".", 1)[-1]))

    out = sql
    for ref in sorted(declared, key=lambda r: r.alias_span[0], reverse=True):
        start, end = ref.alias_span
        out = out[:start] + out[end:]

    patterns = [_SINGLE_LETTER_QUALIFIER_RE]
    patterns.extend(_qualifier_pattern(name) for name in sorted(qualifiers))

    def strip(segment: str) -> str:
        for pattern in patterns:
            segment = pattern.sub("", segment)
        return segment

    out = map_outside_literals(out, strip)
    if out == sql:
        return None
    note = "Removed table aliases"
    if qualifiers:
        note += " (" + ", ".join(sorted(qualifiers)) + ")"
    return Repair(out, note + " and qualified references.")


def _qualifier_pattern(name: str) -> re.Pattern[str]:
    quoted = re.escape(name)
    return re.compile(
        rf"(?<![\w#@$\].\"])(?:\[{quoted}\]|\"{quoted}\"|{quoted})\s*\.\s*(?=[\w\[\"#@$])",
        re.IGNORECASE,
    )


# ---------------------------------------------------------------------------
# Invalid column names
# ---------------------------------------------------------------------------


def repair_invalid_column(
    sql: str,
    identifier: str | None,
    snapshot: CatalogSnapshot,
    policy: PolicyConfig,
    fuzzy: FuzzyIdentifierRepair,
    request_relations: Iterable[str] = (),
) -> Repair | None:
    """Substitute the closest catalogued column for an invalid identifier.

    Relations are searched in order: those the statement reads, those the
    request named, then the rest of the catalog.  An identifier that occurs
    in a policy condition is left alone, since substituting it would weaken
    the condition.
    """
    if not identifier:
        return None
    bare = unquote_identifier(identifier.rsplit(".", 1)[-1])
    if not bare:
        return None

    referenced = MaskedSQL(sql).referenced_relations()
    word = re.compile(rf"(?<![\w#@$]){re.escape(bare)}(?![\w#@$])", re.IGNORECASE)
    if any(word.search(c) for c in policy.conditions_for(referenced)):
        logger.info("Not repairing %r: it belongs to a policy condition", bare)
        return None

    for relation in _search_order(referenced, request_relations, snapshot):
        replacement = fuzzy.repair(bare, relation, snapshot)
        if replacement and replacement.lower() != bare.lower():
            return Repair(
                replace_identifier(sql, bare, replacement),
                f"Replaced invalid column '{bare}' with '{replacement}' from {relation}.",
            )
    return None


def _search_order(
    referenced: list[str], requested: Iterable[str], snapshot: CatalogSnapshot
) -> list[str]:
    order: list[str] = []
    seen: set[str] = set()
    for name in [*referenced, *requested, *snapshot.relation_names]:
        relation = snapshot.get_relation(name)
        if relation is not None and relation.name.lower() not in seen:
            seen.add(relation.name.lower())
            order.append(relation.name)
    return order
