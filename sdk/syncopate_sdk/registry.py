"""
Entity type registry for Syncopate SDK.

This module keeps track of:
- Which entity class maps to which store entity type
- Store-side entity type definitions (cached with a TTL)
- Whether each entity type exists on the store (created on first use when
  auto-creation is enabled)

Example:
    >>> registry = EntityTypeRegistry(api, EntityMapper())
    >>> registry.register(Product, Review)
    >>> registry.ensure_registered()
    {'product': 'created', 'review': 'exists'}
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from ._http_client import StoreApi
from .entity import get_schema
from .errors import ApiError, DefinitionError, NotFoundError, TransportError
from .mapper import EntityMapper
from .schema import EntityDefinition

logger = logging.getLogger(__name__)

STATUS_EXISTS = "exists"
STATUS_CREATED = "created"
STATUS_UPDATED = "updated"
STATUS_FAILED = "failed"


class EntityTypeRegistry:
    """Entity class <-> entity type registry with a TTL definition cache."""

    def __init__(
        self,
        api: StoreApi,
        mapper: EntityMapper,
        *,
        auto_create: bool = True,
        cache_entity_types: bool = True,
        cache_ttl: int = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the registry.

        Args:
            api: Store endpoints
            mapper: Used to extract definitions from entity classes
            auto_create: Create missing entity types on first use
            cache_entity_types: Cache definitions fetched from the store
            cache_ttl: Cache lifetime in seconds
            clock: Monotonic time source
        """
        self._api = api
        self._mapper = mapper
        self._auto_create = auto_create
        self._cache_enabled = cache_entity_types
        self._cache_ttl = cache_ttl
        self._clock = clock
        self._classes: dict[str, type] = {}
        self._definitions: dict[str, tuple[EntityDefinition, float]] = {}
        self._ensured: set[str] = set()
        self._lock = threading.RLock()

    def register(self, *entity_classes: type) -> None:
        """Register entity classes.

        Raises:
            DefinitionError: If a class is not an entity, or its entity type
                name is already taken by another class
        """
        with self._lock:
            for cls in entity_classes:
                name = get_schema(cls).name
                existing = self._classes.get(name)
                if existing is not None and existing is not cls:
                    raise DefinitionError(
                        f"Entity type '{name}' is already registered by "
                        f"{existing.__module__}.{existing.__qualname__}",
                        entity_class=cls.__qualname__,
                    )
                self._classes[name] = cls

    def get_entity_type(self, entity_class: type) -> str:
        """Entity type name of a class.

        Registers the class, and makes sure its entity type exists on the
        store the first time when auto-creation is enabled.

        Raises:
            DefinitionError: If the class is not an entity
        """
        name = get_schema(entity_class).name
        with self._lock:
            if name not in self._classes:
                self.register(entity_class)
            ensured = name in self._ensured

        if self._auto_create and not ensured:
            self._ensure_on_store(name, entity_class)
        return name

    def get_entity_class(self, entity_type: str) -> type | None:
        with self._lock:
            return self._classes.get(entity_type)

    def entity_classes(self) -> dict[str, type]:
        """Registered classes keyed by entity type name."""
        with self._lock:
            return dict(self._classes)

    def get_entity_definition(self, entity_type: str) -> EntityDefinition | None:
        """Store-side definition of an entity type.

        Served from the cache while fresh. When the store is unreachable the
        definition is extracted from the registered class instead.

        Returns:
            The definition, or None if neither the store nor the registry
            knows the entity type
        """
        cached = self._cached(entity_type)
        if cached is not None:
            return cached

        try:
            return self._fetch(entity_type)
        except TransportError as e:
            cls = self.get_entity_class(entity_type)
            if cls is None:
                raise
            logger.warning(
                f"Store unreachable, using local definition of '{entity_type}': {e.message}"
            )
            return self._mapper.extract_entity_definition(cls)

    def ensure_registered(self, force: bool = False) -> dict[str, str]:
        """Create (or with ``force`` update) every registered entity type on the store.

        Returns:
            Entity type name -> "exists", "created", "updated" or "failed"

        Raises:
            TransportError: If the store cannot be reached
        """
        existing = set(self._api.get_entity_types())
        results: dict[str, str] = {}

        for name, cls in sorted(self.entity_classes().items()):
            definition = self._mapper.extract_entity_definition(cls)
            try:
                if name not in existing:
                    self._create(definition)
                    results[name] = STATUS_CREATED
                elif force:
                    response = self._api.update_entity_type(name, definition.to_wire())
                    self._store(self._from_response(response, definition))
                    logger.info(f"Updated entity type '{name}'")
                    results[name] = STATUS_UPDATED
                else:
                    results[name] = STATUS_EXISTS
            except ApiError as e:
                logger.error(f"Failed to register entity type '{name}': {e.message}")
                results[name] = STATUS_FAILED
                continue

            with self._lock:
                self._ensured.add(name)

        return results

    def clear_cache(self) -> None:
        with self._lock:
            self._definitions.clear()
            self._ensured.clear()

    def _fetch(self, entity_type: str) -> EntityDefinition | None:
        try:
            response = self._api.get_entity_type(entity_type)
        except NotFoundError:
            return None
        definition = EntityDefinition.from_wire(response)
        self._store(definition)
        return definition

    def _cached(self, entity_type: str) -> EntityDefinition | None:
        with self._lock:
            entry = self._definitions.get(entity_type)
            if entry is None:
                return None
            definition, expires_at = entry
            if self._clock() >= expires_at:
                del self._definitions[entity_type]
                return None
            return definition

    def _store(self, definition: EntityDefinition) -> None:
        if not self._cache_enabled:
            return
        with self._lock:
            self._definitions[definition.name] = (definition, self._clock() + self._cache_ttl)

    @staticmethod
    def _from_response(response: object, fallback: EntityDefinition) -> EntityDefinition:
        if isinstance(response, dict) and isinstance(response.get("entityType"), dict):
            return EntityDefinition.from_wire(response["entityType"])
        return fallback

    def _create(self, definition: EntityDefinition) -> None:
        response = self._api.create_entity_type(definition.to_wire())
        self._store(self._from_response(response, definition))
        logger.info(f"Created entity type '{definition.name}'")

    def _ensure_on_store(self, name: str, entity_class: type) -> None:
        try:
            if self._cached(name) is None and self._fetch(name) is None:
                self._create(self._mapper.extract_entity_definition(entity_class))
        except ApiError as e:
            logger.error(f"Failed to create entity type '{name}': {e.message}")
            return
        except TransportError as e:
            logger.warning(f"Could not check entity type '{name}': {e.message}")
            return

        with self._lock:
            self._ensured.add(name)
