"""Masked-text toolkit for regex-level SQL manipulation.

GuardQL edits SQL as text rather than as a syntax tree.  To keep the regular
expressions honest, every routine here works on a *masked* copy of the
statement: the body of each string literal and each bracketed or quoted
identifier is replaced by underscores of the same length.  Indices into the
masked copy are therefore valid indices into the original text, and a
keyword inside ``'ORDER BY'`` or ``[From]`` can never be mistaken for a
clause.  Literals and quoted identifiers are located with sqlparse's lexer.

Clause keywords are only recognised at parenthesis depth zero, so a
subquery's WHERE is never confused with the outer WHERE.
"""
from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from sqlparse import tokens as T
from sqlparse.lexer import tokenize

SELECT_RE = re.compile(r"\bSELECT\b", re.IGNORECASE)
FROM_RE = re.compile(r"\bFROM\b", re.IGNORECASE)
WHERE_RE = re.compile(r"\bWHERE\b", re.IGNORECASE)
GROUP_BY_RE = re.compile(r"\bGROUP\s+BY\b", re.IGNORECASE)
HAVING_RE = re.compile(r"\bHAVING\b", re.IGNORECASE)
ORDER_BY_RE = re.compile(r"\bORDER\s+BY\b", re.IGNORECASE)
OPTION_RE = re.compile(r"\bOPTION\s*\(", re.IGNORECASE)
SET_OP_RE = re.compile(r"\b(?:UNION(?:\s+ALL)?|INTERSECT|EXCEPT)\b", re.IGNORECASE)
LIMIT_RE = re.compile(r"\bLIMIT\b", re.IGNORECASE)
OFFSET_RE = re.compile(r"\bOFFSET\b", re.IGNORECASE)
TARGET_RE = re.compile(r"\b(?:FROM|JOIN)\b", re.IGNORECASE)

# Patterns that end a WHERE / GROUP BY / HAVING / ORDER BY body.
CLAUSE_TERMINATORS: tuple[re.Pattern[str], ...] = (
    WHERE_RE,
    GROUP_BY_RE,
    HAVING_RE,
    ORDER_BY_RE,
    OPTION_RE,
    SET_OP_RE,
    LIMIT_RE,
)

RESERVED_WORDS: frozenset[str] = frozenset(
    {
        "ALL", "AND", "AS", "ASC", "BETWEEN", "BY", "CASE", "CROSS", "DESC",
        "DISTINCT", "ELSE", "END", "EXCEPT", "EXISTS", "FETCH", "FOR", "FROM",
        "FULL", "GROUP", "HAVING", "IN", "INNER", "INTERSECT", "IS", "JOIN",
        "LEFT", "LIKE", "LIMIT", "NOT", "NULL", "OFFSET", "ON", "OPTION", "OR",
        "ORDER", "OUTER", "OVER", "PERCENT", "RIGHT", "ROWS", "SELECT", "THEN",
        "TOP", "UNION", "USING", "WHEN", "WHERE", "WITH",
    }
)

_NAME_PART = r"(?:\[[^\]]+\]|\"[^\"]+\"|[A-Za-z_#@$][\w#@$]*)"
_TARGET_REF_RE = re.compile(
    rf"\s*(?P<name>{_NAME_PART}(?:\s*\.\s*{_NAME_PART})*)"
    rf"(?:\s+(?:AS\s+)?(?P<alias>\[[^\]]+\]|[A-Za-z_][\w]*))?",
    re.IGNORECASE,
)
_SELECT_PREFIX_RE = re.compile(
    r"\s*(?:(?:DISTINCT|ALL)\s+)?"
    r"(?:TOP\s*(?:\(\s*\d+\s*\)|\d+)(?:\s+PERCENT)?(?:\s+WITH\s+TIES)?\s+)?",
    re.IGNORECASE,
)
_AS_ALIAS_RE = re.compile(r"\s+AS\s+(\[_*\]|\"_*\"|'_*'|\w+)\s*$", re.IGNORECASE)
_BARE_ALIAS_RE = re.compile(r"[\w\])]\s+(\[_*\]|[A-Za-z_]\w*)\s*$")
_ASSIGN_ALIAS_RE = re.compile(r"^\s*(\[_*\]|[A-Za-z_]\w*)\s*=(?!=)\s*")


def quoted_spans(sql: str, identifiers: bool = True) -> list[tuple[int, int]]:
    """``(start, end)`` of every string literal in ``sql``.

    With ``identifiers`` set, bracketed and double-quoted identifiers are
    reported too.  Spans follow sqlparse's lexer, so a ``--`` inside
    ``[a--b]`` or ``'a--b'`` is never taken for a comment.
    """
    spans: list[tuple[int, int]] = []
    pos = 0
    for ttype, value in tokenize(sql):
        end = pos + len(value)
        if ttype in T.String.Single or (identifiers and _is_quoted_name(ttype, value)):
            spans.append((pos, end))
        pos = end
    return spans


def _is_quoted_name(ttype, value: str) -> bool:
    return ttype in T.String.Symbol or (ttype in T.Name and value.startswith("["))


def mask(sql: str, identifiers: bool = True) -> str:
    """Return ``sql`` with literal (and optionally identifier) bodies blanked."""
    out: list[str] = []
    pos = 0
    for start, end in quoted_spans(sql, identifiers):
        out.append(sql[pos:start])
        out.append(_blank(sql[start:end]))
        pos = end
    out.append(sql[pos:])
    return "".join(out)


def _blank(text: str) -> str:
    return text[0] + "_" * (len(text) - 2) + text[-1]


def paren_depths(masked: str) -> list[int]:
    """Parenthesis depth at every index of ``masked``."""
    depths: list[int] = []
    depth = 0
    for ch in masked:
        if ch == ")":
            depth = max(depth - 1, 0)
        depths.append(depth)
        if ch == "(":
            depth += 1
    return depths


def unquote_identifier(name: str) -> str:
    """Strip one level of ``[]`` or ``""`` quoting from a name part."""
    name = name.strip()
    if len(name) >= 2 and name[0] in "[\"" and name[-1] in "]\"":
        return name[1:-1]
    return name


def map_outside_literals(
    sql: str, transform: Callable[[str], str], identifiers: bool = False
) -> str:
    """Apply ``transform`` to every stretch of ``sql`` outside string literals.

    With ``identifiers`` set, bracketed and quoted identifiers are skipped too.
    """
    out: list[str] = []
    pos = 0
    for start, end in quoted_spans(sql, identifiers):
        out.append(transform(sql[pos:start]))
        out.append(sql[start:end])
        pos = end
    out.append(transform(sql[pos:]))
    return "".join(out)


def splice(sql: str, start: int, end: int, text: str) -> str:
    """Replace ``sql[start:end]`` with ``text``, normalising the spaces around it."""
    left = sql[:start].rstrip()
    right = sql[end:].lstrip()
    if not text:
        if left and right and right[0] not in ";,)":
            return f"{left} {right}"
        return left + right
    lead = " " if left and left[-1] != "(" else ""
    trail = " " if right and right[0] not in ";,)" else ""
    return f"{left}{lead}{text}{trail}{right}"


def replace_identifier(sql: str, old: str, new: str) -> str:
    """Replace every standalone occurrence of identifier ``old`` with ``new``.

    Matching is case-insensitive, skips string literals, and also rewrites the
    bracketed form ``[old]`` to ``[new]``.
    """
    pattern = re.compile(
        rf"(?<![\w#@$])(?:\[{re.escape(old)}\]|{re.escape(old)})(?![\w#@$])",
        re.IGNORECASE,
    )

    def substitute(segment: str) -> str:
        return pattern.sub(
            lambda m: f"[{new}]" if m.group(0).startswith("[") else new, segment
        )

    return map_outside_literals(sql, substitute)


@dataclass(frozen=True)
class ClauseSpan:
    """Location of a clause: its keyword and its body.

    Attributes:
        start: Index of the clause keyword.
        body_start: Index just after the keyword.
        end: Index where the body ends (next clause or statement end).
    """

    start: int
    body_start: int
    end: int


@dataclass(frozen=True)
class TargetRef:
    """A FROM / JOIN target and its alias, if any.

    Attributes:
        relation: Unquoted relation name, without schema prefix.
        alias: Unquoted alias, or ``None``.
        alias_span: Span from the end of the relation name to the end of
            the alias declaration (covers an ``AS`` keyword).
    """

    relation: str
    alias: str | None
    alias_span: tuple[int, int] | None = None


@dataclass(frozen=True)
class SelectItem:
    """One SELECT-list item.

    Attributes:
        expr: Expression text with any alias removed.
        masked_expr: The same expression in masked form.
        alias: Unquoted alias, or ``None``.
    """

    expr: str
    masked_expr: str
    alias: str | None


class MaskedSQL:
    """A statement together with its masked copy and parenthesis depths.

    Args:
        sql: The statement text.
    """

    def __init__(self, sql: str) -> None:
        self.text = sql
        self.masked = mask(sql)
        self.depths = paren_depths(self.masked)

    # ------------------------------------------------------------------
    # Keyword search
    # ------------------------------------------------------------------

    def is_top_level(self, index: int) -> bool:
        return index >= len(self.depths) or self.depths[index] == 0

    def iter_top_level(
        self, pattern: re.Pattern[str], start: int = 0, end: int | None = None
    ) -> Iterator[re.Match[str]]:
        """Yield matches of ``pattern`` at depth zero within ``[start, end)``."""
        stop = len(self.masked) if end is None else end
        for match in pattern.finditer(self.masked, start, stop):
            if self.is_top_level(match.start()):
                yield match

    def find_top_level(
        self, pattern: re.Pattern[str], start: int = 0, end: int | None = None
    ) -> re.Match[str] | None:
        return next(self.iter_top_level(pattern, start, end), None)

    # ------------------------------------------------------------------
    # Clause geometry
    # ------------------------------------------------------------------

    def statement_end(self) -> int:
        """Index of the trailing ``;`` if present, else ``len(text)``."""
        stripped = self.masked.rstrip()
        if stripped.endswith(";"):
            return len(stripped) - 1
        return len(self.masked)

    def clause_end(
        self,
        start: int,
        terminators: tuple[re.Pattern[str], ...] = CLAUSE_TERMINATORS,
    ) -> int:
        """First top-level terminator at or after ``start``, else statement end."""
        end = self.statement_end()
        for pattern in terminators:
            match = self.find_top_level(pattern, start, end)
            if match is not None:
                end = min(end, match.start())
        return end

    def clause(
        self,
        pattern: re.Pattern[str],
        start: int = 0,
        terminators: tuple[re.Pattern[str], ...] = CLAUSE_TERMINATORS,
    ) -> ClauseSpan | None:
        """Locate the first top-level clause introduced by ``pattern``."""
        match = self.find_top_level(pattern, start)
        if match is None:
            return None
        return ClauseSpan(match.start(), match.end(), self.clause_end(match.end(), terminators))

    def body(self, span: ClauseSpan) -> str:
        return self.text[span.body_start : span.end].strip()

    def insertion_point(self, before: tuple[re.Pattern[str], ...], start: int = 0) -> int:
        """Earliest top-level match of any ``before`` pattern, else statement end."""
        return self.clause_end(start, before)

    def select_list(self) -> ClauseSpan | None:
        """The span between the leading SELECT and its top-level FROM."""
        select = self.find_top_level(SELECT_RE)
        if select is None:
            return None
        from_match = self.find_top_level(FROM_RE, select.end())
        end = from_match.start() if from_match else self.clause_end(select.end())
        return ClauseSpan(select.start(), select.end(), end)

    def select_items(self) -> list[SelectItem]:
        """Items of the leading SELECT list, after any DISTINCT / TOP prefix."""
        span = self.select_list()
        if span is None:
            return []
        prefix = _SELECT_PREFIX_RE.match(self.masked, span.body_start)
        items_start = prefix.end() if prefix else span.body_start
        items: list[SelectItem] = []
        for start, end in self.split_top_level(items_start, span.end):
            expr_start, expr_end, alias = _split_alias(self.masked, start, end)
            items.append(
                SelectItem(
                    self.text[expr_start:expr_end].strip(),
                    self.masked[expr_start:expr_end].strip(),
                    _alias_name(self.text[alias[0] : alias[1]]) if alias else None,
                )
            )
        return items

    # ------------------------------------------------------------------
    # Splitting
    # ------------------------------------------------------------------

    def split_top_level(self, start: int, end: int, sep: str = ",") -> list[tuple[int, int]]:
        """Spans of ``text[start:end]`` separated by top-level ``sep``.

        Depth is measured relative to ``start`` so the fragment may itself sit
        inside parentheses.
        """
        spans: list[tuple[int, int]] = []
        base = self.depths[start] if start < len(self.depths) else 0
        piece_start = start
        for i in range(start, end):
            if self.masked[i] == sep and self.depths[i] == base:
                spans.append((piece_start, i))
                piece_start = i + 1
        spans.append((piece_start, end))
        return [(s, e) for s, e in spans if self.text[s:e].strip()]

    def set_operation_branches(self) -> list[tuple[int, int]]:
        """Spans of the SELECT branches joined by top-level set operators."""
        spans: list[tuple[int, int]] = []
        start = 0
        for match in self.iter_top_level(SET_OP_RE):
            spans.append((start, match.start()))
            start = match.end()
        spans.append((start, len(self.text)))
        return spans

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def targets(self, top_level: bool = False) -> list[TargetRef]:
        """FROM / JOIN targets in textual order.

        Args:
            top_level: Only report targets of the outer statement, skipping
                subqueries.
        """
        refs: list[TargetRef] = []
        for match in TARGET_RE.finditer(self.masked):
            if top_level and not self.is_top_level(match.start()):
                continue
            ref = _TARGET_REF_RE.match(self.text, match.end())
            if ref is None:
                continue
            parts = re.split(r"\s*\.\s*(?![^\[]*\])", ref.group("name"))
            relation = unquote_identifier(parts[-1])
            if relation.upper() in RESERVED_WORDS:
                continue
            alias = ref.group("alias")
            if alias is None or unquote_identifier(alias).upper() in RESERVED_WORDS:
                refs.append(TargetRef(relation, None))
                continue
            refs.append(
                TargetRef(
                    relation,
                    unquote_identifier(alias),
                    (ref.end("name"), ref.end("alias")),
                )
            )
        return refs

    def referenced_relations(self) -> list[str]:
        """Distinct FROM / JOIN relation names, in textual order."""
        seen: dict[str, str] = {}
        for ref in self.targets():
            seen.setdefault(ref.relation.lower(), ref.relation)
        return list(seen.values())



def _split_alias(
    masked: str, start: int, end: int
) -> tuple[int, int, tuple[int, int] | None]:
    """Expression bounds and alias bounds of one SELECT item."""
    item = masked[start:end]
    assign = _ASSIGN_ALIAS_RE.match(item)
    if assign:
        return start + assign.end(), end, (start + assign.start(1), start + assign.end(1))
    match = _AS_ALIAS_RE.search(item)
    if match:
        return start, start + match.start(), (start + match.start(1), start + match.end(1))
    bare = _BARE_ALIAS_RE.search(item)
    if bare and bare.group(1).upper() not in RESERVED_WORDS:
        return start, start + bare.start(1), (start + bare.start(1), start + bare.end(1))
    return start, end, None


def match_close(masked: str, open_idx: int) -> int:
    """Index just past the ``)`` matching ``masked[open_idx]``, or -1."""
    depth = 0
    for i in range(open_idx, len(masked)):
        if masked[i] == "(":
            depth += 1
        elif masked[i] == ")":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


def rewrite_branches(sql: str, rewrite_branch: Callable[[str], str]) -> str:
    """Apply ``rewrite_branch`` to each set-operation branch of ``sql``.

    A branch wrapped in parentheses is rewritten inside them.
    """
    branches = MaskedSQL(sql).set_operation_branches()
    if len(branches) == 1:
        return _rewrite_unwrapped(sql, rewrite_branch)
    out = sql
    for start, end in reversed(branches):
        piece = out[start:end]
        body = piece.strip()
        if not body:
            continue
        lead = piece[: len(piece) - len(piece.lstrip())]
        trail = piece[len(piece.rstrip()) :]
        out = out[:start] + lead + _rewrite_unwrapped(body, rewrite_branch) + trail + out[end:]
    return out


def _rewrite_unwrapped(sql: str, rewrite_branch: Callable[[str], str]) -> str:
    stripped = sql.strip()
    terminator = ";" if stripped.endswith(";") else ""
    core = stripped[:-1].rstrip() if terminator else stripped
    if core.startswith("(") and match_close(mask(core), 0) == len(core):
        return f"({_rewrite_unwrapped(core[1:-1], rewrite_branch)}){terminator}"
    return rewrite_branch(sql)


def _alias_name(text: str) -> str:
    return unquote_identifier(text).strip("'")
