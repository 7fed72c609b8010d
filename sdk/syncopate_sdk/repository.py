"""
Repositories and fluent query builders for Syncopate SDK.

- EntityRepository: CRUD and finders bound to one entity class
- QueryBuilder: Fluent construction of QueryOptions
- JoinQueryBuilder: QueryBuilder plus join clauses

Builders keep an immutable QueryOptions internally and replace it on every
call, so ``build()`` can be called repeatedly and the returned options are
never changed afterwards.

Example:
    >>> products = db.repository(Product)
    >>> cheap = (
    ...     products.create_query_builder()
    ...     .lt("price", 20)
    ...     .order_by("price")
    ...     .limit(10)
    ...     .get_result()
    ... )
    >>> posts = (
    ...     db.repository(Post)
    ...     .create_join_query_builder()
    ...     .left_join_all("comment", "id", "postId", "comments")
    ...     .get_result()
    ... )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from .entity import get_schema
from .errors import ArgumentError, NotFoundError
from .join import JoinDefinition, JoinQueryOptions, JoinType, SelectStrategy
from .query import QueryFilter, QueryOptions

if TYPE_CHECKING:
    from .client import OrderBy, SyncopateClient


class QueryBuilder:
    """Fluent builder for a query against one entity class."""

    def __init__(self, client: SyncopateClient, entity_class: type) -> None:
        self._client = client
        self._entity_class = entity_class
        self._options = QueryOptions(get_schema(entity_class).name)

    @property
    def entity_type(self) -> str:
        return self._options.entity_type

    def _filter(self, query_filter: QueryFilter) -> QueryBuilder:
        self._options = self._options.with_filter(query_filter)
        return self

    def eq(self, field: str, value: Any) -> QueryBuilder:
        return self._filter(QueryFilter.eq(field, value))

    def neq(self, field: str, value: Any) -> QueryBuilder:
        return self._filter(QueryFilter.neq(field, value))

    def gt(self, field: str, value: Any) -> QueryBuilder:
        return self._filter(QueryFilter.gt(field, value))

    def gte(self, field: str, value: Any) -> QueryBuilder:
        return self._filter(QueryFilter.gte(field, value))

    def lt(self, field: str, value: Any) -> QueryBuilder:
        return self._filter(QueryFilter.lt(field, value))

    def lte(self, field: str, value: Any) -> QueryBuilder:
        return self._filter(QueryFilter.lte(field, value))

    def contains(self, field: str, value: str) -> QueryBuilder:
        return self._filter(QueryFilter.contains(field, value))

    def starts_with(self, field: str, value: str) -> QueryBuilder:
        return self._filter(QueryFilter.starts_with(field, value))

    def ends_with(self, field: str, value: str) -> QueryBuilder:
        return self._filter(QueryFilter.ends_with(field, value))

    def in_(self, field: str, values: Iterable[Any]) -> QueryBuilder:
        return self._filter(QueryFilter.in_(field, values))

    def fuzzy(self, field: str, value: str) -> QueryBuilder:
        return self._filter(QueryFilter.fuzzy(field, value))

    def array_contains(self, field: str, value: Any) -> QueryBuilder:
        return self._filter(QueryFilter.array_contains(field, value))

    def array_contains_any(self, field: str, values: Iterable[Any]) -> QueryBuilder:
        return self._filter(QueryFilter.array_contains_any(field, values))

    def array_contains_all(self, field: str, values: Iterable[Any]) -> QueryBuilder:
        return self._filter(QueryFilter.array_contains_all(field, values))

    def order_by(self, field: str, direction: str = "ASC") -> QueryBuilder:
        direction = direction.upper()
        if direction not in ("ASC", "DESC"):
            raise ArgumentError(f"Invalid order direction '{direction}'", "direction")
        self._options = self._options.with_order(field, desc=direction == "DESC")
        return self

    def limit(self, limit: int | None) -> QueryBuilder:
        self._options = self._options.with_limit(limit)
        return self

    def offset(self, offset: int) -> QueryBuilder:
        self._options = self._options.with_offset(offset)
        return self

    def fuzzy_options(self, threshold: float = 0.7, max_distance: int = 3) -> QueryBuilder:
        self._options = self._options.with_fuzzy(threshold, max_distance)
        return self

    def build(self) -> QueryOptions:
        return self._options

    def get_result(self) -> list[Any]:
        return self._client.query(self._entity_class, self.build())

    def get_one_or_none(self) -> Any | None:
        results = self._client.query(self._entity_class, self.build().with_limit(1))
        return results[0] if results else None

    def count(self) -> int:
        return self._client.count(self._entity_class, self.build())


class JoinQueryBuilder(QueryBuilder):
    """QueryBuilder with join clauses.

    Join modifiers (``join_filter``, ``include_join_fields``,
    ``exclude_join_fields``) apply to the most recently added join.
    """

    def __init__(self, client: SyncopateClient, entity_class: type) -> None:
        super().__init__(client, entity_class)
        self._joins: list[JoinDefinition] = []

    def _join(
        self,
        entity_type: str,
        local_field: str,
        foreign_field: str,
        as_: str,
        join_type: JoinType,
        strategy: SelectStrategy,
    ) -> JoinQueryBuilder:
        self._joins.append(
            JoinDefinition(
                entity_type,
                local_field,
                foreign_field,
                as_,
                type=join_type,
                select_strategy=strategy,
            )
        )
        return self

    def inner_join(
        self, entity_type: str, local_field: str, foreign_field: str, as_: str
    ) -> JoinQueryBuilder:
        return self._join(
            entity_type, local_field, foreign_field, as_, JoinType.INNER, SelectStrategy.FIRST
        )

    def left_join(
        self, entity_type: str, local_field: str, foreign_field: str, as_: str
    ) -> JoinQueryBuilder:
        return self._join(
            entity_type, local_field, foreign_field, as_, JoinType.LEFT, SelectStrategy.FIRST
        )

    def inner_join_all(
        self, entity_type: str, local_field: str, foreign_field: str, as_: str
    ) -> JoinQueryBuilder:
        return self._join(
            entity_type, local_field, foreign_field, as_, JoinType.INNER, SelectStrategy.ALL
        )

    def left_join_all(
        self, entity_type: str, local_field: str, foreign_field: str, as_: str
    ) -> JoinQueryBuilder:
        return self._join(
            entity_type, local_field, foreign_field, as_, JoinType.LEFT, SelectStrategy.ALL
        )

    def _last_join(self, action: str) -> JoinDefinition:
        if not self._joins:
            raise ArgumentError(f"Cannot {action}: no joins defined", "joins")
        return self._joins[-1]

    def join_filter(self, query_filter: QueryFilter) -> JoinQueryBuilder:
        self._joins[-1] = self._last_join("add join filter").with_filter(query_filter)
        return self

    def include_join_fields(self, fields: Iterable[str]) -> JoinQueryBuilder:
        self._joins[-1] = self._last_join("set include fields").with_include_fields(fields)
        return self

    def exclude_join_fields(self, fields: Iterable[str]) -> JoinQueryBuilder:
        self._joins[-1] = self._last_join("set exclude fields").with_exclude_fields(fields)
        return self

    def build(self) -> JoinQueryOptions:
        options = self._options
        return JoinQueryOptions(
            entity_type=options.entity_type,
            filters=options.filters,
            limit=options.limit,
            offset=options.offset,
            order_by=options.order_by,
            order_desc=options.order_desc,
            fuzzy_opts=options.fuzzy_opts,
            joins=tuple(self._joins),
        )

    def get_result(self) -> list[Any]:
        return self._client.join_query(self._entity_class, self.build())

    def get_one_or_none(self) -> Any | None:
        results = self._client.join_query(self._entity_class, self.build().with_limit(1))
        return results[0] if results else None

    def count(self) -> int:
        return self._client.count_join(self._entity_class, self.build())


class EntityRepository:
    """CRUD and finders bound to one entity class."""

    def __init__(self, client: SyncopateClient, entity_class: type) -> None:
        self._client = client
        self._entity_class = entity_class

    @property
    def entity_class(self) -> type:
        return self._entity_class

    def _check_instance(self, entity: Any) -> None:
        if not isinstance(entity, self._entity_class):
            raise ArgumentError(
                f"Entity must be an instance of {self._entity_class.__name__}, "
                f"got {type(entity).__name__}",
                "entity",
            )

    def find(self, entity_id: str | int) -> Any | None:
        """Fetch by id, None if it does not exist."""
        try:
            return self._client.get_by_id(self._entity_class, entity_id)
        except NotFoundError:
            return None

    def find_by(
        self,
        criteria: Mapping[str, Any] | None = None,
        order_by: OrderBy = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Any]:
        return self._client.find_by(self._entity_class, criteria, order_by, limit, offset)

    def find_one_by(self, criteria: Mapping[str, Any] | None = None) -> Any | None:
        return self._client.find_one_by(self._entity_class, criteria)

    def find_all(self) -> list[Any]:
        return self._client.find_all(self._entity_class)

    def count(self, criteria: Mapping[str, Any] | None = None) -> int:
        return self._client.count(self._entity_class, criteria)

    def create(self, entity: Any) -> Any:
        self._check_instance(entity)
        return self._client.create(entity)

    def update(self, entity: Any) -> Any:
        self._check_instance(entity)
        return self._client.update(entity)

    def delete(self, entity: Any, cascade: bool = False) -> bool:
        self._check_instance(entity)
        return self._client.delete(entity, cascade)

    def delete_by_id(self, entity_id: str | int, cascade: bool = False) -> bool:
        """Delete by id; with ``cascade`` the entity is loaded first.

        Returns:
            False when cascading and the entity does not exist
        """
        if not cascade:
            return self._client.delete_by_id(self._entity_class, entity_id)

        entity = self.find(entity_id)
        if entity is None:
            return False
        return self._client.delete(entity, True)

    def create_query_builder(self) -> QueryBuilder:
        return QueryBuilder(self._client, self._entity_class)

    def execute_query(self, options: QueryOptions) -> list[Any]:
        return self._client.query(self._entity_class, options)

    def create_join_query_builder(self) -> JoinQueryBuilder:
        return JoinQueryBuilder(self._client, self._entity_class)

    def execute_join_query(self, options: JoinQueryOptions) -> list[Any]:
        return self._client.join_query(self._entity_class, options)
