"""
Query model for Syncopate SDK.

This module provides the provider-agnostic filter tree:
- FilterOperator: Comparison operators understood by the store
- QueryFilter: One (field, operator, value) constraint
- FuzzyOptions: Fuzzy-match tuning
- QueryOptions: Entity type, filters, ordering and pagination

All types are immutable values; ``with_*`` methods return modified copies so a
query can be reused safely across batched pagination.

No validation happens here. Payloads are checked at the transport boundary
(see validate.py) right before they are sent.

Example:
    >>> options = (
    ...     QueryOptions("product")
    ...     .with_filter(QueryFilter.gte("price", 10))
    ...     .with_order("price", desc=True)
    ...     .with_limit(20)
    ... )
    >>> options.to_wire()["orderBy"]
    'price'
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Any, Iterable


class FilterOperator(enum.Enum):
    """Comparison operators."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    STARTS_WITH = "startswith"
    ENDS_WITH = "endswith"
    IN = "in"
    FUZZY = "fuzzy"
    ARRAY_CONTAINS = "array_contains"
    ARRAY_CONTAINS_ANY = "array_contains_any"
    ARRAY_CONTAINS_ALL = "array_contains_all"

    @property
    def takes_sequence(self) -> bool:
        """Whether the operator requires a sequence value."""
        return self in SEQUENCE_OPERATORS


SEQUENCE_OPERATORS = frozenset(
    {
        FilterOperator.IN,
        FilterOperator.ARRAY_CONTAINS_ANY,
        FilterOperator.ARRAY_CONTAINS_ALL,
    }
)


def _operator_value(operator: FilterOperator | str) -> str:
    if isinstance(operator, FilterOperator):
        return operator.value
    return operator


@dataclass(frozen=True)
class QueryFilter:
    """One constraint in a query.

    Attributes:
        field: Field name
        operator: Operator (FilterOperator or its wire string)
        value: Comparison value
    """

    field: str
    operator: FilterOperator | str
    value: Any

    @property
    def operator_value(self) -> str:
        return _operator_value(self.operator)

    def to_wire(self) -> dict[str, Any]:
        """Convert to the query wire format."""
        value = self.value
        if isinstance(value, (tuple, set, frozenset)):
            value = list(value)
        return {"field": self.field, "operator": self.operator_value, "value": value}

    @classmethod
    def eq(cls, field: str, value: Any) -> QueryFilter:
        return cls(field, FilterOperator.EQ, value)

    @classmethod
    def neq(cls, field: str, value: Any) -> QueryFilter:
        return cls(field, FilterOperator.NEQ, value)

    @classmethod
    def gt(cls, field: str, value: Any) -> QueryFilter:
        return cls(field, FilterOperator.GT, value)

    @classmethod
    def gte(cls, field: str, value: Any) -> QueryFilter:
        return cls(field, FilterOperator.GTE, value)

    @classmethod
    def lt(cls, field: str, value: Any) -> QueryFilter:
        return cls(field, FilterOperator.LT, value)

    @classmethod
    def lte(cls, field: str, value: Any) -> QueryFilter:
        return cls(field, FilterOperator.LTE, value)

    @classmethod
    def contains(cls, field: str, value: str) -> QueryFilter:
        return cls(field, FilterOperator.CONTAINS, value)

    @classmethod
    def starts_with(cls, field: str, value: str) -> QueryFilter:
        return cls(field, FilterOperator.STARTS_WITH, value)

    @classmethod
    def ends_with(cls, field: str, value: str) -> QueryFilter:
        return cls(field, FilterOperator.ENDS_WITH, value)

    @classmethod
    def in_(cls, field: str, values: Iterable[Any]) -> QueryFilter:
        return cls(field, FilterOperator.IN, values)

    @classmethod
    def fuzzy(cls, field: str, value: str) -> QueryFilter:
        return cls(field, FilterOperator.FUZZY, value)

    @classmethod
    def array_contains(cls, field: str, value: Any) -> QueryFilter:
        return cls(field, FilterOperator.ARRAY_CONTAINS, value)

    @classmethod
    def array_contains_any(cls, field: str, values: Iterable[Any]) -> QueryFilter:
        return cls(field, FilterOperator.ARRAY_CONTAINS_ANY, values)

    @classmethod
    def array_contains_all(cls, field: str, values: Iterable[Any]) -> QueryFilter:
        return cls(field, FilterOperator.ARRAY_CONTAINS_ALL, values)


@dataclass(frozen=True)
class FuzzyOptions:
    """Fuzzy-match tuning."""

    threshold: float = 0.7
    max_distance: int = 3

    def to_wire(self) -> dict[str, Any]:
        return {"threshold": self.threshold, "maxDistance": self.max_distance}


@dataclass(frozen=True)
class QueryOptions:
    """A query against one entity type.

    Attributes:
        entity_type: Entity type name
        filters: Ordered constraints (all must match)
        limit: Maximum records, None for no limit
        offset: Records to skip
        order_by: Field to order by
        order_desc: Descending order
        fuzzy_opts: Fuzzy-match tuning
    """

    entity_type: str
    filters: tuple[QueryFilter, ...] = ()
    limit: int | None = None
    offset: int = 0
    order_by: str | None = None
    order_desc: bool = False
    fuzzy_opts: FuzzyOptions | None = None

    def with_filter(self, *filters: QueryFilter) -> QueryOptions:
        return replace(self, filters=self.filters + tuple(filters))

    def with_filters(self, filters: Iterable[QueryFilter]) -> QueryOptions:
        return replace(self, filters=tuple(filters))

    def with_limit(self, limit: int | None) -> QueryOptions:
        return replace(self, limit=limit)

    def with_offset(self, offset: int) -> QueryOptions:
        return replace(self, offset=offset)

    def with_order(self, order_by: str | None, desc: bool = False) -> QueryOptions:
        return replace(self, order_by=order_by, order_desc=desc)

    def with_fuzzy(self, threshold: float = 0.7, max_distance: int = 3) -> QueryOptions:
        return replace(self, fuzzy_opts=FuzzyOptions(threshold, max_distance))

    def to_wire(self) -> dict[str, Any]:
        """Convert to the query wire format.

        Unset optional keys are omitted rather than sent as null.
        """
        result: dict[str, Any] = {
            "entityType": self.entity_type,
            "filters": [f.to_wire() for f in self.filters],
            "offset": self.offset,
        }
        if self.limit is not None:
            result["limit"] = self.limit
        if self.order_by is not None:
            result["orderBy"] = self.order_by
            result["orderDesc"] = self.order_desc
        if self.fuzzy_opts is not None:
            result["fuzzyOpts"] = self.fuzzy_opts.to_wire()
        return result
