"""Safe Fallback Query construction.

The fallback is built from the catalog snapshot alone: a handful of columns
known to exist, the policy conditions for the relation, and a TOP cap.  It
is already in the rewriter's normal form, so rewriting it changes nothing.
A relation is only chosen when it carries every column its policy
conditions read.
"""
from __future__ import annotations

from collections.abc import Iterable

from sqlparse import tokens as T
from sqlparse.lexer import tokenize

from guardql.compile.base import SQLCompiler
from guardql.errors import UnrepairableQueryError
from guardql.policy.config import PolicyConfig
from guardql.rewrite.sqltext import RESERVED_WORDS, unquote_identifier
from guardql.schema.catalog import CatalogSnapshot, RelationInfo


def condition_columns(condition: str) -> set[str]:
    """Lower-cased column names a policy condition reads.

    Literals, parameters, function names and reserved words are skipped; a
    qualified name counts by its last part.
    """
    tokens = [
        (ttype, value)
        for ttype, value in tokenize(condition)
        if ttype not in T.Whitespace and ttype not in T.Comment
    ]
    columns: set[str] = set()
    for i, (ttype, value) in enumerate(tokens):
        following = tokens[i + 1][1] if i + 1 < len(tokens) else ""
        if following in ("(", ".") or ttype in T.Name.Placeholder or ttype in T.Name.Builtin:
            continue
        if ttype in T.Keyword and all(w in RESERVED_WORDS for w in value.upper().split()):
            continue
        if ttype in T.Name or ttype in T.String.Symbol or ttype in T.Keyword:
            columns.add(unquote_identifier(value).lower())
    return columns


class SafeFallbackBuilder:
    """Builds ``SELECT TOP k <columns> FROM <relation> WHERE <conditions>``.

    Args:
        compiler: Dialect compiler used for quoting and the row cap.
        row_limit: Rows returned by the fallback.
        column_limit: Leading catalogued columns projected.
    """

    def __init__(self, compiler: SQLCompiler, row_limit: int = 10, column_limit: int = 5) -> None:
        self._compiler = compiler
        self._row_limit = row_limit
        self._column_limit = column_limit

    def build(
        self,
        snapshot: CatalogSnapshot,
        policy: PolicyConfig,
        preferred: Iterable[str] = (),
    ) -> str:
        """Return the fallback statement, terminated with ``;``.

        Args:
            snapshot: Catalog to draw the relation and columns from.
            policy: Policy supplying the WHERE conditions and exclusions.
            preferred: Relation names to try first, in order.

        Raises:
            UnrepairableQueryError: If no permitted relation has columns
                covering its policy conditions.
        """
        relation = self.choose_relation(snapshot, policy, preferred)
        q = self._compiler.quote_identifier
        columns = [q(c) for c in relation.column_names[: self._column_limit]]
        conditions = " AND ".join(policy.conditions_for([relation.name]))
        return (
            f"SELECT {self._compiler.top_clause(self._row_limit)} {', '.join(columns)} "
            f"FROM {q(relation.name)} WHERE {conditions} ORDER BY {columns[0]};"
        )

    @staticmethod
    def choose_relation(
        snapshot: CatalogSnapshot, policy: PolicyConfig, preferred: Iterable[str] = ()
    ) -> RelationInfo:
        """First usable preferred relation, else the first usable catalogued one.

        A relation is usable when it is not excluded, has columns, and has
        every column its policy conditions read.
        """
        for name in [*preferred, *snapshot.relation_names]:
            relation = snapshot.get_relation(name)
            if relation is None or not relation.columns or policy.is_excluded(relation.name):
                continue
            available = {c.lower() for c in relation.column_names}
            needed: set[str] = set()
            for condition in policy.conditions_for([relation.name]):
                needed |= condition_columns(condition)
            if needed <= available:
                return relation
        raise UnrepairableQueryError(
            "No readable relation carries the columns its policy conditions need; "
            "a fallback query cannot be built."
        )
