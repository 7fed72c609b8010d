"""
Query validation for Syncopate SDK.

Query objects are plain values and accept anything; this module is the single
gate that checks them right before they are handed to the transport.

- Filter validation (field, operator, operator arity)
- Join validation (required keys, unique aliases)
- Helpful error messages with suggestions

Invariants:
    - Validation errors are deterministic
    - A failing query never reaches the network
"""

from __future__ import annotations

from collections.abc import Iterable
from difflib import get_close_matches

from .errors import ArgumentError
from .join import JoinDefinition, JoinQueryOptions
from .query import FilterOperator, QueryFilter, QueryOptions

_OPERATOR_VALUES = [op.value for op in FilterOperator]
_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _operator(filter_: QueryFilter, where: str) -> FilterOperator:
    value = filter_.operator_value
    if not value:
        raise ArgumentError(f"{where}: filter on '{filter_.field}' has no operator", "operator")
    try:
        return FilterOperator(value)
    except ValueError:
        suggestions = get_close_matches(str(value), _OPERATOR_VALUES, n=3)
        msg = f"{where}: unknown operator '{value}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"
        raise ArgumentError(msg, "operator") from None


def validate_filter(filter_: QueryFilter, where: str = "filter") -> None:
    """Validate a single filter.

    Raises:
        ArgumentError: Empty field/operator, unknown operator, or a
            set-valued operator without a sequence value
    """
    if not isinstance(filter_, QueryFilter):
        raise ArgumentError(f"{where}: expected QueryFilter, got {type(filter_).__name__}", "filters")
    if not filter_.field:
        raise ArgumentError(f"{where}: filter field cannot be empty", "field")

    operator = _operator(filter_, where)
    if operator.takes_sequence and not isinstance(filter_.value, _SEQUENCE_TYPES):
        raise ArgumentError(
            f"{where}: operator '{operator.value}' on '{filter_.field}' requires a list of "
            f"values, got {type(filter_.value).__name__}",
            "value",
        )


def validate_filters(filters: Iterable[QueryFilter], where: str = "filters") -> None:
    for i, f in enumerate(filters):
        validate_filter(f, f"{where}[{i}]")


def validate_join(join: JoinDefinition, where: str = "join") -> None:
    """Validate a join clause.

    Raises:
        ArgumentError: If a required key is empty or a join filter is invalid
    """
    for attr, key in (
        ("entity_type", "entityType"),
        ("local_field", "localField"),
        ("foreign_field", "foreignField"),
        ("as_", "as"),
    ):
        if not getattr(join, attr):
            raise ArgumentError(f"{where}: '{key}' cannot be empty", key)
    validate_filters(join.filters, f"{where}.filters")


def validate_query(options: QueryOptions) -> None:
    """Validate a query (and its joins) before it is sent.

    Raises:
        ArgumentError: On the first problem found
    """
    if not options.entity_type:
        raise ArgumentError("Query entity type cannot be empty", "entityType")
    if options.limit is not None and options.limit < 0:
        raise ArgumentError(f"Query limit must be >= 0, got {options.limit}", "limit")
    if options.offset < 0:
        raise ArgumentError(f"Query offset must be >= 0, got {options.offset}", "offset")

    validate_filters(options.filters)

    if isinstance(options, JoinQueryOptions):
        seen: set[str] = set()
        for i, join in enumerate(options.joins):
            validate_join(join, f"joins[{i}]")
            if join.as_ in seen:
                raise ArgumentError(f"joins[{i}]: duplicate join alias '{join.as_}'", "as")
            seen.add(join.as_)


def check_aliases(options: JoinQueryOptions, field_names: Iterable[str]) -> None:
    """Reject join aliases that shadow a root entity field.

    Raises:
        ArgumentError: If an alias equals a declared field name
    """
    names = set(field_names)
    for join in options.joins:
        if join.as_ in names:
            raise ArgumentError(
                f"Join alias '{join.as_}' collides with field '{join.as_}' of "
                f"entity type '{options.entity_type}'",
                "as",
            )

