"""
Relationship metadata for Syncopate SDK.

Relationship declarations are resolved once per entity class (targets given
by name are looked up lazily, so classes can reference each other in any
order) and cached for the lifetime of the process.

Invariants:
    - Metadata is read-only after construction
    - Each class is resolved at most once per registry
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .entity import get_schema, resolve_entity_class
from .schema import CascadePolicy, RelationType


@dataclass(frozen=True)
class Relationship:
    """One declared relationship.

    Attributes:
        property_name: Attribute holding the related entity or collection
        target_entity: Related entity class
        type: Cardinality
        join_column: Field on this entity holding the target id
        join_table: Join table for many_to_many
        mapped_by: Field on the target referencing this entity
        inversed_by: Field on the target holding the inverse side
        cascade: Cascade policy
    """

    property_name: str
    target_entity: type
    type: RelationType
    join_column: str | None = None
    join_table: str | None = None
    mapped_by: str | None = None
    inversed_by: str | None = None
    cascade: CascadePolicy = CascadePolicy.NONE

    @property
    def is_collection(self) -> bool:
        return self.type.is_collection

    @property
    def cascades_remove(self) -> bool:
        return self.cascade is CascadePolicy.REMOVE

    @property
    def foreign_key_field(self) -> str:
        """Field on this entity holding the related id."""
        return self.join_column or f"{self.property_name}Id"

    @property
    def mapped_by_field(self) -> str | None:
        """Field on the target holding this entity's id."""
        return f"{self.mapped_by}Id" if self.mapped_by else None


class RelationshipMetadata(Mapping[str, Relationship]):
    """Relationships of one entity class, keyed by property name."""

    def __init__(self, entity_class: type, relationships: Mapping[str, Relationship]) -> None:
        self.entity_class = entity_class
        self._relationships = MappingProxyType(dict(relationships))

    def __getitem__(self, key: str) -> Relationship:
        return self._relationships[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._relationships)

    def __len__(self) -> int:
        return len(self._relationships)

    def cascading(self) -> list[Relationship]:
        """Relationships with cascade removal, in declaration order."""
        return [r for r in self._relationships.values() if r.cascades_remove]

    def has_cascade_delete_relationships(self) -> bool:
        return any(r.cascades_remove for r in self._relationships.values())

    @classmethod
    def from_class(cls, entity_class: type) -> RelationshipMetadata:
        """Resolve the relationship declarations of an entity class.

        Raises:
            DefinitionError: If the class or a relationship target is not an entity
        """
        schema = get_schema(entity_class)
        relationships = {
            name: Relationship(
                property_name=name,
                target_entity=resolve_entity_class(spec.target),
                type=spec.type,
                join_column=spec.join_column,
                join_table=spec.join_table,
                mapped_by=spec.mapped_by,
                inversed_by=spec.inversed_by,
                cascade=spec.cascade,
            )
            for name, spec in schema.relationships
        }
        return cls(entity_class, relationships)


class RelationshipRegistry:
    """Memoized RelationshipMetadata per entity class.

    Example:
        >>> registry = RelationshipRegistry()
        >>> registry.get_relationship_metadata(Post)["comments"].type
        <RelationType.ONE_TO_MANY: 'one_to_many'>
    """

    def __init__(self) -> None:
        self._cache: dict[type, RelationshipMetadata] = {}
        self._lock = threading.Lock()

    def get_relationship_metadata(self, entity_class: type) -> RelationshipMetadata:
        metadata = self._cache.get(entity_class)
        if metadata is not None:
            return metadata

        with self._lock:
            metadata = self._cache.get(entity_class)
            if metadata is None:
                metadata = RelationshipMetadata.from_class(entity_class)
                self._cache[entity_class] = metadata
            return metadata
