"""The five safety and policy rewrite passes.

Every pass is a pure ``(sql, policy) -> sql`` function with the same
contract:

* It is total.  Text too irregular for the pass's patterns is returned
  unchanged.
* It is idempotent.  Running it on its own output changes nothing.
* It only edits the statement where its own concern applies.

Passes
------
normalize_syntax       - fences, comments, keyword case, whitespace, ``;``
guard_division         - ``a / b`` -> ``ISNULL(a / NULLIF(b, 0), 0)``
enforce_policy         - mandatory WHERE conditions
complete_group_by      - GROUP BY covering every non-aggregate projection
normalize_top          - ``LIMIT n`` -> ``TOP n``; TOP cap on ORDER BY
"""
from __future__ import annotations

import re

import sqlparse
from sqlparse import tokens as T
from sqlparse.lexer import tokenize

from guardql.policy.config import PolicyConfig
from guardql.rewrite.sqltext import (
    FROM_RE,
    GROUP_BY_RE,
    HAVING_RE,
    LIMIT_RE,
    OFFSET_RE,
    OPTION_RE,
    ORDER_BY_RE,
    RESERVED_WORDS,
    SELECT_RE,
    SET_OP_RE,
    WHERE_RE,
    MaskedSQL,
    map_outside_literals,
    match_close,
    rewrite_branches,
    splice,
)
from guardql.schema.expressions import SQL_AGGREGATE_NAMES

# ---------------------------------------------------------------------------
# Pass 1: syntax normalization
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```[ \t]*(?:t?sql|mssql)?", re.IGNORECASE)
_KEYWORD_RE = re.compile(
    r"\b(?:select|from|where|group\s+by|order\s+by|having|"
    r"(?:inner|cross|(?:left|right|full)(?:\s+outer)?)\s+join|join|on|and|or|not|"
    r"as|distinct|top|is|null|in|like|between|asc|desc|case|when|then|else|end|"
    r"union(?:\s+all)?|intersect|except|exists)\b",
    re.IGNORECASE,
)
_TRAILING_TERMINATORS_RE = re.compile(r"(?:\s*;)+\s*$")


def normalize_syntax(sql: str, policy: PolicyConfig) -> str:
    """Strip fences and comments, upper-case keywords, collapse whitespace.

    Literals and quoted identifiers are left byte-for-byte intact.  The
    result carries exactly one trailing ``;``.
    """
    text = sqlparse.format(_FENCE_RE.sub(" ", sql), strip_comments=True)
    text = _TRAILING_TERMINATORS_RE.sub("", _canonical_tokens(text))
    return f"{text};" if text else text


def _canonical_tokens(sql: str) -> str:
    out: list[str] = []
    for ttype, value in tokenize(sql):
        if ttype in T.Whitespace:
            if out and out[-1] != " ":
                out.append(" ")
            continue
        if ttype in T.Punctuation and value == ";" and out and out[-1] == " ":
            out.pop()
        if ttype in T.Keyword or ttype in T.Operator:
            value = _KEYWORD_RE.sub(lambda m: " ".join(m.group(0).split()).upper(), value)
        out.append(value)
    return "".join(out).strip()


# ---------------------------------------------------------------------------
# Pass 2: mathematical safety
# ---------------------------------------------------------------------------

_PERCENT_RE = re.compile(r"\s*([*/])\s*100(?![\w.])")
_NULLIF_RE = re.compile(r"NULLIF\s*\(", re.IGNORECASE)
_NUMBER_RE = re.compile(r"(?:\d+(?:\.\d*)?|\.\d+)")


def guard_division(sql: str, policy: PolicyConfig) -> str:
    """Guard every division against a zero denominator.

    ``* 100`` and ``/ 100`` become ``100.0`` so percentages are computed in
    decimal.  Each ``a / b`` becomes ``ISNULL(a / NULLIF(b, 0), 0)``; when
    ``a`` cannot be delimited only the denominator is wrapped.  Denominators
    that are already ``NULLIF(...)`` or non-zero numeric literals are left
    alone.  Multiplicative chains to the left of the ``/`` are kept inside
    the guard so integer arithmetic keeps its original evaluation order.
    """
    text = map_outside_literals(sql, _decimal_percentages, identifiers=True)
    pos = 0
    while True:
        masked = MaskedSQL(text).masked
        idx = masked.find("/", pos)
        if idx == -1:
            return text
        if masked[idx + 1 : idx + 2] == "*" or masked[max(idx - 1, 0) : idx] == "*":
            pos = idx + 1
            continue

        den_start = _skip_spaces(masked, idx + 1)
        den_end = _operand_end(masked, den_start)
        if den_end == den_start:
            pos = idx + 1
            continue
        denominator = text[den_start:den_end]
        if _NULLIF_RE.match(denominator) or _is_nonzero_number(denominator):
            pos = den_end
            continue

        num_end = _skip_spaces_back(masked, idx)
        num_start = _numerator_start(masked, num_end)
        guarded_den = f"NULLIF({denominator}, 0)"
        if num_start == num_end:
            text = f"{text[:idx]}/ {guarded_den}{text[den_end:]}"
            pos = idx + 2 + len(guarded_den)
            continue
        numerator = text[num_start:num_end]
        guarded = f"ISNULL({numerator} / {guarded_den}, 0)"
        text = text[:num_start] + guarded + text[den_end:]
        pos = num_start + len(guarded)


def _decimal_percentages(segment: str) -> str:
    return _PERCENT_RE.sub(r" \1 100.0", segment)


def _is_nonzero_number(text: str) -> bool:
    digits = text.lstrip("+-").strip()
    return bool(_NUMBER_RE.fullmatch(digits)) and float(digits) != 0


def _is_word(ch: str) -> bool:
    return ch.isalnum() or ch in "_#@$"


def _skip_spaces(masked: str, i: int) -> int:
    while i < len(masked) and masked[i].isspace():
        i += 1
    return i


def _skip_spaces_back(masked: str, i: int) -> int:
    while i > 0 and masked[i - 1].isspace():
        i -= 1
    return i


def _match_open(masked: str, close_idx: int) -> int:
    """Index of the ``(`` matching ``masked[close_idx]``, or -1."""
    depth = 0
    for i in range(close_idx, -1, -1):
        if masked[i] == ")":
            depth += 1
        elif masked[i] == "(":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _name_end(masked: str, i: int) -> int:
    """End of a dotted name starting at ``i`` (``i`` if there is none)."""
    j = i
    n = len(masked)
    while j < n:
        if masked[j] in "[\"":
            close = masked.find("]" if masked[j] == "[" else '"', j + 1)
            if close == -1:
                return i
            j = close + 1
        elif _is_word(masked[j]):
            while j < n and _is_word(masked[j]):
                j += 1
        else:
            break
        if j + 1 < n and masked[j] == "." and (_is_word(masked[j + 1]) or masked[j + 1] in "[\""):
            j += 1
            continue
        break
    return j


def _name_start(masked: str, i: int) -> int:
    """Start of a dotted name ending just before ``i`` (``i`` if none)."""
    j = i
    while j > 0:
        if masked[j - 1] in "]\"":
            opener = "[" if masked[j - 1] == "]" else '"'
            open_idx = masked.rfind(opener, 0, j - 1)
            if open_idx == -1:
                return i
            j = open_idx
        elif _is_word(masked[j - 1]):
            while j > 0 and _is_word(masked[j - 1]):
                j -= 1
        else:
            break
        if j > 1 and masked[j - 1] == "." and (_is_word(masked[j - 2]) or masked[j - 2] in "]\""):
            j -= 1
            continue
        break
    return j


def _operand_end(masked: str, i: int) -> int:
    """End of the operand starting at ``i``: a group, literal, name or call."""
    if i >= len(masked):
        return i
    if masked[i] in "+-":
        start = _skip_spaces(masked, i + 1)
        end = _operand_end(masked, start)
        return end if end > start else i
    if masked[i] == "(":
        close = match_close(masked, i)
        return close if close != -1 else i
    if masked[i] == "'":
        close = masked.find("'", i + 1)
        return close + 1 if close != -1 else i
    j = _name_end(masked, i)
    if j == i or masked[i:j].upper() in RESERVED_WORDS:
        return i
    k = _skip_spaces(masked, j)
    if k < len(masked) and masked[k] == "(":
        close = match_close(masked, k)
        if close != -1:
            return close
    return j


def _operand_start(masked: str, end: int) -> int:
    """Start of the operand ending just before ``end`` (``end`` if none)."""
    if end == 0:
        return end
    last = masked[end - 1]
    if last == ")":
        open_idx = _match_open(masked, end - 1)
        if open_idx == -1:
            return end
        k = _skip_spaces_back(masked, open_idx)
        name_start = _name_start(masked, k)
        if name_start < k and masked[name_start:k].upper() not in RESERVED_WORDS:
            return name_start
        return open_idx
    if last == "'":
        open_idx = masked.rfind("'", 0, end - 1)
        return open_idx if open_idx != -1 else end
    start = _name_start(masked, end)
    if masked[start:end].upper() in RESERVED_WORDS:
        return end
    return start


def _numerator_start(masked: str, end: int) -> int:
    """Start of the multiplicative chain ending just before ``end``."""
    start = _operand_start(masked, end)
    if start == end:
        return end
    while True:
        op = _skip_spaces_back(masked, start)
        if op == 0 or masked[op - 1] not in "*%":
            return start
        prev_end = _skip_spaces_back(masked, op - 1)
        prev_start = _operand_start(masked, prev_end)
        if prev_start == prev_end:
            return start
        start = prev_start


# ---------------------------------------------------------------------------
# Pass 3: policy enforcement
# ---------------------------------------------------------------------------

_WHERE_BEFORE = (GROUP_BY_RE, HAVING_RE, ORDER_BY_RE, OPTION_RE, LIMIT_RE)


def enforce_policy(sql: str, policy: PolicyConfig) -> str:
    """AND the mandatory conditions into every SELECT branch's WHERE clause.

    The conditions are ``policy.conditions_for`` the relations the branch
    reads at its top level.  A missing WHERE clause is created; an existing
    one gets the absent conditions prepended and its body parenthesized.
    Presence is a case- and whitespace-insensitive substring test against
    the WHERE body, so an equivalent condition spelled differently is added
    again.
    """
    return rewrite_branches(sql, lambda branch: _enforce_branch(branch, policy))


def _enforce_branch(sql: str, policy: PolicyConfig) -> str:
    ms = MaskedSQL(sql)
    from_match = ms.find_top_level(FROM_RE)
    if from_match is None:
        return sql
    relations = [ref.relation for ref in ms.targets(top_level=True)]
    conditions = policy.conditions_for(relations)

    where = ms.clause(WHERE_RE)
    if where is None:
        at = ms.insertion_point(_WHERE_BEFORE, start=from_match.end())
        return splice(sql, at, at, "WHERE " + " AND ".join(conditions))

    body = ms.body(where)
    present = _squash(body)
    missing = [c for c in conditions if _squash(c) not in present]
    if not missing:
        return sql
    clause = "WHERE " + " AND ".join(missing)
    if body:
        clause += f" AND ({body})"
    return splice(sql, where.start, where.end, clause)


def _squash(text: str) -> str:
    return re.sub(r"[\s\[\]]+", "", text).lower()


# ---------------------------------------------------------------------------
# Pass 4: GROUP BY completeness
# ---------------------------------------------------------------------------

_AGGREGATE_CALL_RE = re.compile(
    r"\b(?:" + "|".join(sorted(SQL_AGGREGATE_NAMES)) + r")\s*\(", re.IGNORECASE
)
_NOT_GROUPABLE_RE = re.compile(r"\b(?:OVER|SELECT)\b|'|^\s*NULL\s*$", re.IGNORECASE)
_GROUPING_EXTENSIONS_RE = re.compile(r"\b(?:ROLLUP|CUBE|GROUPING\s+SETS)\b", re.IGNORECASE)
_SIMPLE_NAME_RE = re.compile(r"^[\w#@$]+(?:\.[\w#@$]+)+$")


def complete_group_by(sql: str, policy: PolicyConfig) -> str:
    """Make GROUP BY cover every non-aggregate projected expression.

    With an aggregate in the SELECT list and no GROUP BY, the non-aggregate,
    non-literal SELECT expressions (aliases stripped) become the GROUP BY
    list; an aggregate-only SELECT list gets none.  An existing GROUP BY has
    missing expressions appended.  ``*``, literals, window expressions and
    scalar subqueries are never grouped.
    """
    return rewrite_branches(sql, _complete_branch)


def _complete_branch(sql: str) -> str:
    ms = MaskedSQL(sql)
    span = ms.select_list()
    if span is None or ms.find_top_level(FROM_RE, span.body_start) is None:
        return sql

    has_aggregate = False
    keys: list[str] = []
    for item in ms.select_items():
        if _AGGREGATE_CALL_RE.search(item.masked_expr):
            has_aggregate = True
        elif _groupable(item.masked_expr):
            keys.append(item.expr)

    group = ms.clause(GROUP_BY_RE)
    if group is None:
        if not has_aggregate or not keys:
            return sql
        at = ms.insertion_point((HAVING_RE, ORDER_BY_RE, OPTION_RE, LIMIT_RE), start=span.end)
        return splice(sql, at, at, "GROUP BY " + ", ".join(_dedupe(keys)))

    if _GROUPING_EXTENSIONS_RE.search(ms.masked, group.body_start, group.end):
        return sql
    existing = [sql[s:e].strip() for s, e in ms.split_top_level(group.body_start, group.end)]
    known = {_group_key(e) for e in existing}
    missing = [k for k in _dedupe(keys) if _group_key(k) not in known]
    if not missing:
        return sql
    return splice(sql, group.start, group.end, "GROUP BY " + ", ".join(existing + missing))


def _groupable(masked_expr: str) -> bool:
    if not masked_expr or masked_expr == "*" or masked_expr.endswith(".*"):
        return False
    if _NUMBER_RE.fullmatch(masked_expr.lstrip("+-")):
        return False
    return _NOT_GROUPABLE_RE.search(masked_expr) is None


def _group_key(expr: str) -> str:
    key = re.sub(r"[\s\[\]\"]+", "", expr).lower()
    if _SIMPLE_NAME_RE.match(key):
        return key.rsplit(".", 1)[1]
    return key


def _dedupe(exprs: list[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for expr in exprs:
        key = _group_key(expr)
        if key not in seen:
            seen.add(key)
            out.append(expr)
    return out


# ---------------------------------------------------------------------------
# Pass 5: TOP normalization
# ---------------------------------------------------------------------------

_LIMIT_CLAUSE_RE = re.compile(r"\bLIMIT\s+(\d+)\b", re.IGNORECASE)
_SELECT_HEAD_RE = re.compile(r"SELECT\s+(?:(?:DISTINCT|ALL)\s+)?", re.IGNORECASE)
_TOP_RE = re.compile(r"TOP\b", re.IGNORECASE)


def normalize_top(sql: str, policy: PolicyConfig) -> str:
    """Express row caps as ``TOP``.

    A trailing ``LIMIT n`` is removed and, unless a TOP is already present,
    replaced by ``TOP n``.  An ORDER BY without TOP gets
    ``TOP <policy.default_top>``.  Statements with set operations or
    ``OFFSET`` paging are left as they are.
    """
    ms = MaskedSQL(sql)
    select = ms.find_top_level(SELECT_RE)
    if select is None or ms.find_top_level(SET_OP_RE) is not None:
        return sql

    cap: int | None = None
    limit = ms.find_top_level(_LIMIT_CLAUSE_RE)
    if limit is not None and not ms.masked[limit.end() : ms.statement_end()].strip():
        cap = int(limit.group(1))
        sql = splice(sql, limit.start(), limit.end(), "")
        ms = MaskedSQL(sql)
        select = ms.find_top_level(SELECT_RE)
        if select is None:
            return sql

    head = _SELECT_HEAD_RE.match(ms.masked, select.start())
    head_end = head.end() if head else select.end()
    if _TOP_RE.match(ms.masked, head_end):
        return sql
    if cap is None:
        if ms.find_top_level(ORDER_BY_RE) is None or ms.find_top_level(OFFSET_RE) is not None:
            return sql
        cap = policy.default_top
    return splice(sql, head_end, head_end, f"TOP {cap}")
