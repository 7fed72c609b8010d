"""
Syncopate client for Python SDK.

This module provides the main client interface:
- SyncopateClient: Entity CRUD, queries, joins and cascade delete

Example:
    >>> with SyncopateClient.from_settings() as db:
    ...     product = db.create(Product(name="Widget", price=19.99, stock=100))
    ...     cheap = db.find_by(Product, {"stock": 100}, order_by="price", limit=10)
    ...     db.delete(product)

Invariants:
    - Local validation and malformed queries never reach the network
    - Unbounded reads are fetched in fixed-size batches
    - Cascade delete is best effort; only the root delete's failure is raised
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from ._http_client import HttpTransport, StoreApi, Transport, is_delete_confirmed
from .cascade import BATCH_SIZE, CascadeEngine, CascadeReport, CascadeStep
from .config import SyncopateSettings
from .entity import ID_ATTR, get_schema
from .errors import ApiError, ArgumentError, NotFoundError, ValidationError
from .join import JoinQueryOptions
from .mapper import EntityMapper
from .query import QueryFilter, QueryOptions
from .registry import EntityTypeRegistry
from .relationships import RelationshipRegistry
from .schema import EntityDefinition
from .validate import check_aliases, validate_query

if TYPE_CHECKING:
    from .repository import EntityRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

OrderBy = str | Mapping[str, str] | None


class SyncopateClient:
    """Client for a Syncopate store.

    Args:
        transport: Request capability (an HttpTransport is created when omitted)
        base_url: Store URL used when no transport is given
        timeout: Request timeout used when no transport is given
        auto_create_entity_types: Create missing entity types on first use
        cache_entity_types: Cache entity type definitions
        cache_ttl: Entity type cache lifetime in seconds
        batch_size: Page size for batched reads and cascade walks
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        base_url: str = "http://localhost:8080",
        timeout: float = 30.0,
        auto_create_entity_types: bool = True,
        cache_entity_types: bool = True,
        cache_ttl: int = 3600,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self._owns_transport = transport is None
        self._transport = transport or HttpTransport(base_url, timeout=timeout)
        self._batch_size = batch_size

        self.api = StoreApi(self._transport)
        self.mapper = EntityMapper()
        self.relationships = RelationshipRegistry()
        self.registry = EntityTypeRegistry(
            self.api,
            self.mapper,
            auto_create=auto_create_entity_types,
            cache_entity_types=cache_entity_types,
            cache_ttl=cache_ttl,
        )
        self.cascade = CascadeEngine(
            self.api, self.mapper, self.relationships, batch_size=batch_size
        )
        self.last_cascade_report: CascadeReport | None = None
        self._repositories: dict[type, EntityRepository] = {}

    @classmethod
    def from_settings(cls, settings: SyncopateSettings | None = None) -> SyncopateClient:
        """Build a client from settings (environment by default)."""
        settings = settings or SyncopateSettings()
        transport = HttpTransport(
            settings.base_url,
            timeout=settings.timeout,
            retry_failed=settings.retry_failed,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            headers=settings.headers,
        )
        client = cls(
            transport,
            auto_create_entity_types=settings.auto_create_entity_types,
            cache_entity_types=settings.cache_entity_types,
            cache_ttl=settings.cache_ttl,
            batch_size=settings.batch_size,
        )
        client._owns_transport = True
        return client

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def close(self) -> None:
        if self._owns_transport and isinstance(self._transport, HttpTransport):
            self._transport.close()

    def __enter__(self) -> SyncopateClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Server
    # =========================================================================

    def server_info(self) -> dict[str, Any]:
        return self.api.get_info()

    def server_settings(self) -> dict[str, Any]:
        return self.api.get_settings()

    def health(self) -> dict[str, Any]:
        return self.api.health()

    def list_entity_types(self) -> list[str]:
        """Entity type names known to the store."""
        return self.api.get_entity_types()

    def get_entity_type_definition(self, name: str) -> EntityDefinition:
        """Store-side definition of an entity type.

        Raises:
            NotFoundError: If the entity type does not exist
        """
        definition = self.registry.get_entity_definition(name)
        if definition is None:
            raise NotFoundError(f"Entity type '{name}' not found", entity_type=name)
        return definition

    def truncate_entity_type(self, entity_class: type) -> dict[str, Any]:
        """Delete every entity of a class's entity type.

        Returns:
            {"entities_removed", "message", "type"}
        """
        entity_type = self._entity_type(entity_class)
        response = self.api.truncate_entity_type(entity_type)
        logger.info(f"Truncated entity type '{entity_type}'")
        return {
            "entities_removed": response.get("entities_removed", 0),
            "message": response.get(
                "message", f"Successfully truncated entity type '{entity_type}'"
            ),
            "type": response.get("type", entity_type),
        }

    def truncate_database(self) -> dict[str, Any]:
        """Delete every entity of every entity type.

        Returns:
            {"entities_removed", "entity_types_truncated", "message"}
        """
        response = self.api.truncate_database()
        logger.info("Truncated database")
        return {
            "entities_removed": response.get("entities_removed", 0),
            "entity_types_truncated": response.get("entity_types_truncated", 0),
            "message": response.get("message", "Successfully truncated the entire database"),
        }

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(self, entity: T) -> T:
        """Persist a new entity.

        The stored record is fetched back so server-side defaults are visible
        on the returned instance.

        Raises:
            ValidationError: Required or non-nullable fields are missing
            IntegrityConstraintError: A unique field value already exists
            ApiError: The store did not assign an id
        """
        self.mapper.validate_object(entity)
        entity_class = type(entity)
        entity_type = self._entity_type(entity_class)

        record = self.mapper.map_from_object(entity)
        response = self.api.create_entity(entity_type, record)

        new_id = response.get("id") if isinstance(response, dict) else None
        if new_id is None:
            raise ApiError(
                f"Store did not return an id for the created '{entity_type}'",
                api_response=response if isinstance(response, dict) else None,
            )
        logger.debug(f"Created {entity_type}/{new_id}")
        return self.get_by_id(entity_class, new_id)

    def get_by_id(self, entity_class: type[T], entity_id: str | int) -> T:
        """Fetch one entity.

        Raises:
            NotFoundError: If no such record exists
        """
        entity_type = self._entity_type(entity_class)
        try:
            record = self.api.get_entity(entity_type, entity_id)
        except NotFoundError as e:
            e.entity_type = entity_type
            e.entity_id = entity_id
            raise
        return self.mapper.map_to_object(record, entity_class)

    def update(self, entity: T) -> T:
        """Send an entity's fields to the store.

        Returns:
            A fresh instance built from the id and the fields that were sent

        Raises:
            ValidationError: Validation failed or the entity has no id
        """
        self.mapper.validate_object(entity)
        entity_id = getattr(entity, ID_ATTR, None)
        if entity_id is None:
            raise ValidationError(
                "Entity must have an id to be updated", {ID_ATTR: "Field is required"}
            )

        entity_class = type(entity)
        entity_type = self._entity_type(entity_class)
        fields = self.mapper.map_from_object(entity)["fields"]
        self.api.update_entity(entity_type, entity_id, fields)
        logger.debug(f"Updated {entity_type}/{entity_id}")
        return self.mapper.map_to_object({"id": entity_id, "fields": fields}, entity_class)

    def delete(self, entity: Any, cascade: bool = True) -> bool:
        """Delete an entity, and its cascading dependents when ``cascade`` is set.

        Dependents are deleted first; failures among them are collected in
        ``last_cascade_report`` instead of being raised.

        Returns:
            True if the store confirmed the deletion

        Raises:
            ValidationError: The entity has no id
        """
        entity_id = getattr(entity, ID_ATTR, None)
        if entity_id is None:
            raise ValidationError(
                "Entity must have an id to be deleted", {ID_ATTR: "Field is required"}
            )
        entity_type = self._entity_type(type(entity))

        report = None
        if cascade:
            report = self.cascade.cascade_delete(entity)
            self.last_cascade_report = report

        confirmed = is_delete_confirmed(self.api.delete_entity(entity_type, entity_id))
        if report is not None:
            report.record(CascadeStep(entity_type, entity_id, confirmed))
            if not report.ok:
                logger.warning(
                    f"Deleted {entity_type}/{entity_id} with {len(report.failed)} "
                    "cascade failure(s)"
                )
        return confirmed

    def delete_by_id(self, entity_class: type, entity_id: str | int) -> bool:
        """Delete a record by id without cascading.

        Returns:
            True if the store confirmed the deletion
        """
        entity_type = self._entity_type(entity_class)
        return is_delete_confirmed(self.api.delete_entity(entity_type, entity_id))

    # =========================================================================
    # Finders
    # =========================================================================

    def find_by(
        self,
        entity_class: type[T],
        criteria: Mapping[str, Any] | None = None,
        order_by: OrderBy = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[T]:
        """Find entities whose fields equal the given values.

        Args:
            entity_class: Entity class
            criteria: Field -> value, all must match
            order_by: Field name, or a single {field: "ASC" | "DESC"} entry
            limit: Maximum results, None for all
            offset: Results to skip

        Raises:
            ArgumentError: If more than one ordering field is given
        """
        options = self._criteria_options(entity_class, criteria)
        options = options.with_limit(limit).with_offset(offset)
        field_name, desc = self._ordering(entity_class, order_by)
        if field_name is not None:
            options = options.with_order(field_name, desc)
        return self.query(entity_class, options)

    def find_one_by(
        self, entity_class: type[T], criteria: Mapping[str, Any] | None = None
    ) -> T | None:
        results = self.find_by(entity_class, criteria, limit=1)
        return results[0] if results else None

    def find_all(self, entity_class: type[T]) -> list[T]:
        return self.find_by(entity_class)

    def query(self, entity_class: type[T], options: QueryOptions) -> list[T]:
        """Run a query and map the results.

        Raises:
            ArgumentError: Malformed query, or it targets another entity type
        """
        if isinstance(options, JoinQueryOptions):
            raise ArgumentError("Use join_query() for queries with joins", "joins")
        validate_query(options)
        self._check_entity_type(entity_class, options)

        def convert(record: Mapping[str, Any]) -> T:
            return self.mapper.map_to_object(record, entity_class)

        return self._run(options, self.api.query, convert)

    def join_query(self, entity_class: type[T], options: JoinQueryOptions) -> list[T]:
        """Run a join query; joined data populates relationship attributes.

        Raises:
            ArgumentError: Malformed query, an alias shadowing a field, or
                the query targets another entity type
        """
        if not isinstance(options, JoinQueryOptions):
            raise ArgumentError("join_query() requires JoinQueryOptions", "joins")
        validate_query(options)
        check_aliases(options, self._field_names(entity_class))
        self._check_entity_type(entity_class, options)
        metadata = self.relationships.get_relationship_metadata(entity_class)

        def convert(record: Mapping[str, Any]) -> T:
            return self.mapper.map_joined(record, entity_class, metadata)

        return self._run(options, self.api.join_query, convert)

    def count(
        self,
        entity_class: type,
        criteria: Mapping[str, Any] | QueryOptions | None = None,
    ) -> int:
        """Count matching entities with a dedicated count request."""
        if isinstance(criteria, JoinQueryOptions):
            return self.count_join(entity_class, criteria)
        if isinstance(criteria, QueryOptions):
            options = criteria
        else:
            options = self._criteria_options(entity_class, criteria)

        validate_query(options)
        self._check_entity_type(entity_class, options)
        return self._count_of(self.api.query_count(options))

    def count_join(self, entity_class: type, options: JoinQueryOptions) -> int:
        """Count root entities matching a join query."""
        validate_query(options)
        self._check_entity_type(entity_class, options)
        return self._count_of(self.api.join_query_count(options))

    def repository(self, entity_class: type[T]) -> EntityRepository:
        """Repository bound to one entity class."""
        from .repository import EntityRepository

        repository = self._repositories.get(entity_class)
        if repository is None:
            get_schema(entity_class)
            repository = EntityRepository(self, entity_class)
            self._repositories[entity_class] = repository
        return repository

    # =========================================================================
    # Internal
    # =========================================================================

    def _entity_type(self, entity_class: type) -> str:
        if not isinstance(entity_class, type):
            raise ArgumentError(
                f"Expected an entity class, got {type(entity_class).__name__}", "entity_class"
            )
        return self.registry.get_entity_type(entity_class)

    def _check_entity_type(self, entity_class: type, options: QueryOptions) -> None:
        entity_type = self._entity_type(entity_class)
        if options.entity_type != entity_type:
            raise ArgumentError(
                f"Query entity type '{options.entity_type}' does not match "
                f"'{entity_type}' of {entity_class.__name__}",
                "entityType",
            )

    @staticmethod
    def _field_names(entity_class: type) -> set[str]:
        schema = get_schema(entity_class)
        return {f.wire_name for f in schema.fields} | set(schema.attribute_names)

    @staticmethod
    def _wire_name(entity_class: type, name: str) -> str:
        mapped = get_schema(entity_class).get_field(name)
        return mapped.wire_name if mapped else name

    def _criteria_options(
        self, entity_class: type, criteria: Mapping[str, Any] | None
    ) -> QueryOptions:
        entity_type = get_schema(entity_class).name
        filters = [
            QueryFilter.eq(self._wire_name(entity_class, name), value)
            for name, value in (criteria or {}).items()
        ]
        return QueryOptions(entity_type).with_filters(filters)

    def _ordering(self, entity_class: type, order_by: OrderBy) -> tuple[str | None, bool]:
        if not order_by:
            return None, False
        if isinstance(order_by, str):
            return self._wire_name(entity_class, order_by), False
        if len(order_by) > 1:
            raise ArgumentError("Ordering by more than one field is not supported", "order_by")
        field_name, direction = next(iter(order_by.items()))
        return self._wire_name(entity_class, field_name), str(direction).upper() == "DESC"

    @staticmethod
    def _count_of(response: Any) -> int:
        if isinstance(response, dict):
            return int(response.get("count") or 0)
        return 0

    def _run(
        self,
        options: QueryOptions,
        fetch: Callable[[Any], Mapping[str, Any]],
        convert: Callable[[Mapping[str, Any]], T],
    ) -> list[T]:
        if options.limit is not None and options.limit <= self._batch_size:
            return [convert(record) for record in self._page(fetch(options))]
        return list(self._paginate(options, fetch, convert))

    @staticmethod
    def _page(response: Any) -> list[Mapping[str, Any]]:
        if not isinstance(response, Mapping):
            return []
        return response.get("data") or []

    def _paginate(
        self,
        options: QueryOptions,
        fetch: Callable[[Any], Mapping[str, Any]],
        convert: Callable[[Mapping[str, Any]], T],
    ) -> Iterable[T]:
        """Yield results one batch at a time.

        Each request asks for min(remaining, batch_size) records at the
        current offset; a short page ends the walk.
        """
        remaining = options.limit
        offset = options.offset
        while remaining is None or remaining > 0:
            size = self._batch_size if remaining is None else min(remaining, self._batch_size)
            page = self._page(fetch(options.with_limit(size).with_offset(offset)))
            logger.debug(
                f"Fetched {len(page)} '{options.entity_type}' records at offset {offset}"
            )
            for record in page:
                yield convert(record)

            offset += len(page)
            if remaining is not None:
                remaining -= len(page)
            if len(page) < size:
                break
