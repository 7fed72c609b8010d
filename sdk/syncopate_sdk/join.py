"""
Join model for Syncopate SDK.

A join query fetches root entities and their related entities in one round
trip. Each JoinDefinition attaches the matching records of another entity
type under an alias on every root row.

Example:
    >>> options = JoinQueryOptions("post").with_join(
    ...     JoinDefinition("comment", "id", "postId", "comments",
    ...                    select_strategy=SelectStrategy.ALL)
    ... )
    >>> options.to_wire()["joins"][0]["as"]
    'comments'
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Any, Iterable

from .query import QueryFilter, QueryOptions


class JoinType(enum.Enum):
    """Join kinds."""

    INNER = "inner"
    LEFT = "left"


class SelectStrategy(enum.Enum):
    """How many joined records are attached per root row."""

    FIRST = "first"
    ALL = "all"


@dataclass(frozen=True)
class JoinDefinition:
    """One join clause.

    Attributes:
        entity_type: Joined entity type
        local_field: Field on the root entity
        foreign_field: Field on the joined entity
        as_: Alias the joined data is attached under
        type: Inner or left join
        select_strategy: First match or all matches
        filters: Constraints on joined records
        include_fields: Projection of joined fields
        exclude_fields: Joined fields to drop
    """

    entity_type: str
    local_field: str
    foreign_field: str
    as_: str
    type: JoinType = JoinType.INNER
    select_strategy: SelectStrategy = SelectStrategy.FIRST
    filters: tuple[QueryFilter, ...] = ()
    include_fields: frozenset[str] = frozenset()
    exclude_fields: frozenset[str] = frozenset()

    def with_filter(self, *filters: QueryFilter) -> JoinDefinition:
        return replace(self, filters=self.filters + tuple(filters))

    def with_include_fields(self, fields: Iterable[str]) -> JoinDefinition:
        return replace(self, include_fields=frozenset(fields))

    def with_exclude_fields(self, fields: Iterable[str]) -> JoinDefinition:
        return replace(self, exclude_fields=frozenset(fields))

    def to_wire(self) -> dict[str, Any]:
        """Convert to the join wire format; empty optional arrays are omitted."""
        result: dict[str, Any] = {
            "entityType": self.entity_type,
            "localField": self.local_field,
            "foreignField": self.foreign_field,
            "as": self.as_,
            "type": JoinType(self.type).value,
            "selectStrategy": SelectStrategy(self.select_strategy).value,
        }
        if self.filters:
            result["filters"] = [f.to_wire() for f in self.filters]
        if self.include_fields:
            result["includeFields"] = sorted(self.include_fields)
        if self.exclude_fields:
            result["excludeFields"] = sorted(self.exclude_fields)
        return result


@dataclass(frozen=True)
class JoinQueryOptions(QueryOptions):
    """QueryOptions plus join clauses."""

    joins: tuple[JoinDefinition, ...] = ()

    def with_join(self, *joins: JoinDefinition) -> JoinQueryOptions:
        return replace(self, joins=self.joins + tuple(joins))

    def with_joins(self, joins: Iterable[JoinDefinition]) -> JoinQueryOptions:
        return replace(self, joins=tuple(joins))

    def to_query_options(self) -> QueryOptions:
        """The same query without joins."""
        return QueryOptions(
            entity_type=self.entity_type,
            filters=self.filters,
            limit=self.limit,
            offset=self.offset,
            order_by=self.order_by,
            order_desc=self.order_desc,
            fuzzy_opts=self.fuzzy_opts,
        )

    def to_wire(self) -> dict[str, Any]:
        result = super().to_wire()
        if self.joins:
            result["joins"] = [j.to_wire() for j in self.joins]
        return result
