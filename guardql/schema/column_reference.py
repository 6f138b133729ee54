"""Typed column-reference class.

Request fields carry column references as ``"Relation.Column"`` or bare
``"Column"`` strings.  This class owns the parsing so builders and repairs
never split strings themselves.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ColumnReference:
    """A parsed ``relation.column`` or bare ``column`` reference.

    Attributes:
        relation: Relation qualifier, or ``None`` for unqualified references.
        column: Column name.
    """

    relation: str | None
    column: str

    @classmethod
    def parse(cls, ref: str) -> ColumnReference:
        """Parse a ``"relation.column"`` or bare ``"column"`` string.

        Surrounding brackets on either part are removed, so
        ``"[Sales].[Amount]"`` parses like ``"Sales.Amount"``.
        """
        ref = ref.strip()
        if "." in ref:
            relation, column = ref.rsplit(".", 1)
            return cls(relation=_unbracket(relation), column=_unbracket(column))
        return cls(relation=None, column=_unbracket(ref))

    @property
    def qualified(self) -> bool:
        """True when the reference includes a relation qualifier."""
        return self.relation is not None

    @property
    def bare(self) -> str:
        """The column name without any relation prefix."""
        return self.column

    def matches(self, relation: str, column: str) -> bool:
        """True if this reference names ``column`` (optionally on ``relation``)."""
        if self.column.lower() != column.lower():
            return False
        return self.relation is None or self.relation.lower() == relation.lower()

    def __str__(self) -> str:
        if self.relation:
            return f"{self.relation}.{self.column}"
        return self.column


def _unbracket(part: str) -> str:
    part = part.strip()
    if part.startswith("[") and part.endswith("]"):
        return part[1:-1]
    return part
