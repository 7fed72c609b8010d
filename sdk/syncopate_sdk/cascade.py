"""
Cascade delete for Syncopate SDK.

Walks the relationships declared with ``cascade="remove"`` and deletes the
dependents of an entity before the entity itself is deleted:

- one_to_many: dependents found by ``<mapped_by>Id == id``, paged in batches
- many_to_one: the parent referenced by the join column (needs inversed_by)
- one_to_one: the dependent found by ``<mapped_by>Id == id`` or the target
  referenced by the join column (needs inversed_by)

Each ``(entity_type, id)`` pair is visited at most once per walk, so cyclic
relationship graphs terminate. Failures on one dependent are recorded in the
CascadeReport and logged; they do not stop sibling dependents or other
relationships.

Example:
    >>> engine = CascadeEngine(api, EntityMapper(), RelationshipRegistry())
    >>> report = engine.cascade_delete(post)
    >>> [step.entity_id for step in report.deleted]
    ['c1', 'c2']
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ._http_client import StoreApi
from .entity import ID_ATTR, get_schema, is_entity
from .errors import NotFoundError, SyncopateError
from .mapper import EntityMapper
from .query import QueryFilter, QueryOptions
from .relationships import Relationship, RelationshipRegistry
from .schema import RelationType

logger = logging.getLogger(__name__)

BATCH_SIZE = 25

VisitedKey = tuple[str, str]


@dataclass(frozen=True)
class CascadeStep:
    """Outcome of deleting one dependent.

    Attributes:
        entity_type: Entity type of the dependent
        entity_id: Identifier, None when the failure happened before one was known
        deleted: Whether the store removed the record
        error: Failure reason
        relationship: Relationship the dependent was reached through
    """

    entity_type: str
    entity_id: str | int | None
    deleted: bool
    error: str | None = None
    relationship: str | None = None


@dataclass
class CascadeReport:
    """Accumulated outcome of one cascade walk."""

    entity_type: str
    entity_id: str | int | None
    steps: list[CascadeStep] = field(default_factory=list)
    removed: set[VisitedKey] = field(default_factory=set, repr=False)

    def record(self, step: CascadeStep) -> None:
        self.steps.append(step)

    def mark_removed(self, entity_type: str, entity_id: Any) -> None:
        """Note a record that is no longer in the store."""
        self.removed.add(_visit_key(entity_type, entity_id))

    @property
    def deleted(self) -> list[CascadeStep]:
        return [s for s in self.steps if s.deleted]

    @property
    def failed(self) -> list[CascadeStep]:
        return [s for s in self.steps if s.error is not None]

    @property
    def ok(self) -> bool:
        return not self.failed


def _visit_key(entity_type: str, entity_id: Any) -> VisitedKey:
    return (entity_type, str(entity_id))


class CascadeEngine:
    """Best-effort recursive cascade delete."""

    def __init__(
        self,
        api: StoreApi,
        mapper: EntityMapper,
        relationships: RelationshipRegistry,
        *,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._api = api
        self._mapper = mapper
        self._relationships = relationships
        self._batch_size = batch_size

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def cascade_delete(
        self,
        entity: Any,
        visited: set[VisitedKey] | None = None,
        report: CascadeReport | None = None,
    ) -> CascadeReport:
        """Delete every cascading dependent of an entity (not the entity itself).

        Args:
            entity: Loaded entity instance
            visited: (entity_type, id) pairs already handled in this walk
            report: Report to append to

        Returns:
            The report of this walk
        """
        entity_type = get_schema(entity).name
        entity_id = getattr(entity, ID_ATTR, None)
        if report is None:
            report = CascadeReport(entity_type, entity_id)
        if entity_id is None:
            return report

        if visited is None:
            visited = set()
        visited.add(_visit_key(entity_type, entity_id))
        self._walk(entity, entity_id, visited, report)
        return report

    def _walk(
        self,
        entity: Any,
        entity_id: Any,
        visited: set[VisitedKey],
        report: CascadeReport,
    ) -> None:
        metadata = self._relationships.get_relationship_metadata(type(entity))
        for relationship in metadata.cascading():
            kind = relationship.type
            if kind is RelationType.ONE_TO_MANY:
                if relationship.mapped_by:
                    self._one_to_many(entity_id, relationship, visited, report)
                else:
                    logger.debug(
                        f"Skipping cascade on '{relationship.property_name}': no mapped_by"
                    )
            elif kind is RelationType.MANY_TO_ONE:
                if relationship.inversed_by:
                    self._by_foreign_key(entity, relationship, visited, report)
            elif kind is RelationType.ONE_TO_ONE:
                if relationship.mapped_by:
                    self._one_to_one(entity_id, relationship, visited, report)
                elif relationship.inversed_by:
                    self._by_foreign_key(entity, relationship, visited, report)
            else:
                logger.warning(
                    f"Cascade removal of many_to_many '{relationship.property_name}' "
                    "is not supported"
                )

    def _dependents_query(self, entity_id: Any, relationship: Relationship) -> QueryOptions:
        target_type = get_schema(relationship.target_entity).name
        return QueryOptions(target_type).with_filter(
            QueryFilter.eq(relationship.mapped_by_field, entity_id)
        )

    def _one_to_many(
        self,
        entity_id: Any,
        relationship: Relationship,
        visited: set[VisitedKey],
        report: CascadeReport,
    ) -> None:
        base = self._dependents_query(entity_id, relationship).with_limit(self._batch_size)
        offset = 0

        while True:
            try:
                response = self._api.query(base.with_offset(offset))
            except SyncopateError as e:
                self._query_failed(relationship, base.entity_type, e, report)
                return

            batch = response.get("data") or []
            if not batch:
                return

            for record in batch:
                self._delete_record(relationship, record, visited, report)

            if len(batch) < self._batch_size:
                return
            # records deleted here or by a nested walk shift the rest toward
            # the current offset; only skipped or failed ones stay in front
            target_type = base.entity_type
            removed = sum(
                1
                for record in batch
                if isinstance(record, dict)
                and record.get("id") is not None
                and _visit_key(target_type, record["id"]) in report.removed
            )
            offset += len(batch) - removed

    def _one_to_one(
        self,
        entity_id: Any,
        relationship: Relationship,
        visited: set[VisitedKey],
        report: CascadeReport,
    ) -> None:
        options = self._dependents_query(entity_id, relationship).with_limit(1)
        try:
            response = self._api.query(options)
        except SyncopateError as e:
            self._query_failed(relationship, options.entity_type, e, report)
            return

        batch = response.get("data") or []
        if batch:
            self._delete_record(relationship, batch[0], visited, report)

    def _by_foreign_key(
        self,
        entity: Any,
        relationship: Relationship,
        visited: set[VisitedKey],
        report: CascadeReport,
    ) -> None:
        target_id = self._foreign_key(entity, relationship)
        if target_id is None:
            return

        target_type = get_schema(relationship.target_entity).name
        if _visit_key(target_type, target_id) in visited:
            return
        try:
            record = self._api.get_entity(target_type, target_id)
        except NotFoundError:
            logger.debug(f"Cascade target {target_type}/{target_id} not found")
            return
        except SyncopateError as e:
            self._record_failure(relationship, target_type, target_id, e, report)
            return
        self._delete_record(relationship, record, visited, report)

    @staticmethod
    def _foreign_key(entity: Any, relationship: Relationship) -> Any:
        related = getattr(entity, relationship.property_name, None)
        if is_entity(related) and getattr(related, ID_ATTR, None) is not None:
            return getattr(related, ID_ATTR)

        schema = get_schema(entity)
        name = relationship.foreign_key_field
        mapped = schema.get_field_by_wire_name(name) or schema.get_field(name)
        return getattr(entity, mapped.attribute if mapped else name, None)

    def _delete_record(
        self,
        relationship: Relationship,
        record: Any,
        visited: set[VisitedKey],
        report: CascadeReport,
    ) -> bool:
        """Cascade into one dependent, then delete it.

        Returns:
            True if the dependent was removed from the store
        """
        target_class = relationship.target_entity
        target_type = get_schema(target_class).name
        target_id = record.get("id") if isinstance(record, dict) else None
        if target_id is None:
            return False

        key = _visit_key(target_type, target_id)
        if key in visited:
            return False
        visited.add(key)

        try:
            dependent = self._mapper.map_to_object(record, target_class)
            self._walk(dependent, target_id, visited, report)
            self._api.delete_entity(target_type, target_id)
        except NotFoundError:
            logger.debug(f"Cascade dependent {target_type}/{target_id} already gone")
            report.mark_removed(target_type, target_id)
            return True
        except SyncopateError as e:
            self._record_failure(relationship, target_type, target_id, e, report)
            return False

        logger.debug(f"Cascade deleted {target_type}/{target_id}")
        report.mark_removed(target_type, target_id)
        report.record(
            CascadeStep(target_type, target_id, True, relationship=relationship.property_name)
        )
        return True

    @staticmethod
    def _record_failure(
        relationship: Relationship,
        target_type: str,
        target_id: Any,
        error: SyncopateError,
        report: CascadeReport,
    ) -> None:
        logger.warning(f"Cascade delete of {target_type}/{target_id} failed: {error.message}")
        report.record(
            CascadeStep(
                target_type,
                target_id,
                False,
                error=error.message,
                relationship=relationship.property_name,
            )
        )

    @staticmethod
    def _query_failed(
        relationship: Relationship,
        target_type: str,
        error: SyncopateError,
        report: CascadeReport,
    ) -> None:
        logger.warning(
            f"Cascade query on '{relationship.property_name}' ({target_type}) failed: "
            f"{error.message}"
        )
        report.record(
            CascadeStep(
                target_type,
                None,
                False,
                error=error.message,
                relationship=relationship.property_name,
            )
        )
