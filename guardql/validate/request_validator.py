"""Structural checks on a CanonicalRequest.

``RequestValidator`` enforces the invariants pydantic cannot express on a
single field: which operators need which values, which aggregates may omit
their column, and that structured intent always names a relation.  The
first violation is raised as :class:`~guardql.errors.InvalidRequestError`.

``parse_request`` validates raw JSON-like input and converts pydantic's
errors into the same error type.
"""
from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from guardql.errors import InvalidRequestError
from guardql.schema.expressions import (
    LIST_OPERATORS,
    NULL_CHECK_OPERATORS,
    AggregateFunction,
    FilterOperator,
)
from guardql.schema.request import CanonicalRequest, FilterPredicate


def parse_request(data: dict[str, Any] | str) -> CanonicalRequest:
    """Build a CanonicalRequest from a mapping or JSON string.

    Raises:
        InvalidRequestError: If the input does not match the model.
    """
    try:
        if isinstance(data, str):
            return CanonicalRequest.model_validate_json(data)
        return CanonicalRequest.model_validate(data)
    except PydanticValidationError as exc:
        raise InvalidRequestError(
            f"Malformed request: {exc.error_count()} validation error(s).",
            code="MALFORMED_REQUEST",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


class RequestValidator:
    """Validates a CanonicalRequest before routing."""

    def validate(self, request: CanonicalRequest) -> None:
        """Raise on the first invariant violation found.

        Raises:
            InvalidRequestError: On an empty request, structured intent without
                a relation, a projection on an unselected relation, a column-less
                non-COUNT aggregate, or a malformed filter.
        """
        self._check_routing(request)
        if request.is_ai_request:
            return
        self._check_projections(request)
        self._check_aggregations(request)
        for index, predicate in enumerate(request.filters):
            self._check_filter(index, predicate)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    @staticmethod
    def _check_routing(request: CanonicalRequest) -> None:
        if request.relations or request.free_text.strip():
            return
        if request.has_structured_intent:
            raise InvalidRequestError(
                "Structured selections require at least one relation.",
                code="EMPTY_RELATIONS",
            )
        raise InvalidRequestError(
            "The request names no relation and carries no text.",
            code="EMPTY_REQUEST",
        )

    @staticmethod
    def _check_projections(request: CanonicalRequest) -> None:
        selected = {r.lower() for r in request.relations}
        for relation in request.projections:
            if relation.lower() not in selected:
                raise InvalidRequestError(
                    f"Columns are projected from '{relation}', which is not a selected relation.",
                    code="UNSELECTED_RELATION",
                    details={"relation": relation, "relations": request.relations},
                )

    @staticmethod
    def _check_aggregations(request: CanonicalRequest) -> None:
        for agg in request.aggregations:
            if not agg.column.strip() and agg.function is not AggregateFunction.COUNT:
                raise InvalidRequestError(
                    f"{agg.function.value} requires a column; only COUNT may omit it.",
                    code="MISSING_AGGREGATE_COLUMN",
                    details={"function": agg.function.value},
                )

    @staticmethod
    def _check_filter(index: int, predicate: FilterPredicate) -> None:
        op = predicate.operator
        details = {"index": index, "column": predicate.column, "operator": op.value}

        if not predicate.column.strip():
            raise InvalidRequestError(
                "Filter column must not be empty.", code="MALFORMED_FILTER", details=details
            )
        if op in NULL_CHECK_OPERATORS:
            return
        if op in LIST_OPERATORS:
            if not isinstance(predicate.value, list) or not predicate.value:
                raise InvalidRequestError(
                    f"{op.value} requires a non-empty list of values.",
                    code="MALFORMED_FILTER",
                    details=details,
                )
            return
        if predicate.value is None or predicate.value == "":
            raise InvalidRequestError(
                f"Operator {op.value} requires a value.", code="MALFORMED_FILTER", details=details
            )
        if isinstance(predicate.value, list):
            raise InvalidRequestError(
                f"Operator {op.value} takes a single value, not a list.",
                code="MALFORMED_FILTER",
                details=details,
            )
        if op is FilterOperator.BETWEEN and (predicate.value2 is None or predicate.value2 == ""):
            raise InvalidRequestError(
                "BETWEEN requires both value and value2.",
                code="MALFORMED_FILTER",
                details=details,
            )
