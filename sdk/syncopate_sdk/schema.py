"""
Schema types for Syncopate SDK.

This module provides the store-side schema vocabulary:
- FieldType: Field types understood by the store
- IdGenerator: Identity strategies for an entity type
- RelationType / CascadePolicy: Relationship vocabulary
- FieldDefinition: One field of an entity type
- EntityDefinition: The schema of one entity type

These types mirror the store's entity-type wire format and are immutable.

Invariants:
    - FieldDefinition and EntityDefinition never change after construction
    - Store-internal fields (names starting with "_") never appear in an
      EntityDefinition rebuilt from the wire

Example:
    >>> Product = EntityDefinition(
    ...     name="product",
    ...     fields=(
    ...         FieldDefinition("name", FieldType.STRING, required=True),
    ...         FieldDefinition("price", FieldType.FLOAT),
    ...     ),
    ... )
"""

from __future__ import annotations

import datetime as dt
import enum
import types
import typing
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any

INTERNAL_FIELD_PREFIX = "_"


class FieldType(enum.Enum):
    """Supported field types."""

    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    STRING = "string"
    TEXT = "text"
    JSON = "json"
    INTEGER = "integer"
    FLOAT = "float"

    @classmethod
    def from_str(cls, value: str) -> FieldType:
        """Convert string to FieldType."""
        for kind in cls:
            if kind.value == value:
                return kind
        raise ValueError(f"Invalid field type: {value}")


class IdGenerator(enum.Enum):
    """Identity strategies supported by the store."""

    AUTO_INCREMENT = "auto_increment"
    UUID = "uuid"
    CUID = "cuid"
    CUSTOM = "custom"


class RelationType(enum.Enum):
    """Relationship cardinalities."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"

    @property
    def is_collection(self) -> bool:
        return self in (RelationType.ONE_TO_MANY, RelationType.MANY_TO_MANY)


class CascadePolicy(enum.Enum):
    """What happens to related entities when the owner is deleted."""

    NONE = "none"
    REMOVE = "remove"


_PYTHON_TYPE_MAP: dict[Any, FieldType] = {
    bool: FieldType.BOOLEAN,
    int: FieldType.INTEGER,
    float: FieldType.FLOAT,
    str: FieldType.STRING,
    list: FieldType.JSON,
    tuple: FieldType.JSON,
    dict: FieldType.JSON,
    set: FieldType.JSON,
    dt.datetime: FieldType.DATETIME,
    dt.time: FieldType.DATETIME,
    dt.date: FieldType.DATE,
}


def unwrap_optional(python_type: Any) -> Any:
    """Strip ``None`` from ``Optional[X]`` / ``X | None``."""
    origin = typing.get_origin(python_type)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(python_type) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return python_type


def map_python_type(python_type: Any) -> FieldType:
    """Map a Python annotation to a store field type.

    Unknown or missing annotations map to string.

    Example:
        >>> map_python_type(int)
        <FieldType.INTEGER: 'integer'>
        >>> map_python_type(list[str])
        <FieldType.JSON: 'json'>
    """
    if python_type is None:
        return FieldType.STRING

    python_type = unwrap_optional(python_type)
    python_type = typing.get_origin(python_type) or python_type

    if python_type in _PYTHON_TYPE_MAP:
        return _PYTHON_TYPE_MAP[python_type]

    if isinstance(python_type, type):
        # bool before int, datetime before date
        for candidate, kind in _PYTHON_TYPE_MAP.items():
            if issubclass(python_type, candidate):
                return kind
        if issubclass(python_type, enum.Enum):
            return FieldType.STRING
        return FieldType.JSON

    return FieldType.STRING


@dataclass(frozen=True)
class FieldDefinition:
    """Field definition within an entity type.

    Attributes:
        name: Field name on the wire
        type: Store field type
        indexed: Whether the store indexes the field
        required: Whether a value must be provided
        nullable: Whether null is accepted
        unique: Whether values must be unique across the entity type
    """

    name: str
    type: FieldType
    indexed: bool = False
    required: bool = False
    nullable: bool = True
    unique: bool = False

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")

    def to_wire(self) -> dict[str, Any]:
        """Convert to the entity-type wire format."""
        return {
            "name": self.name,
            "type": self.type.value,
            "indexed": self.indexed,
            "required": self.required,
            "nullable": self.nullable,
            "unique": self.unique,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> FieldDefinition:
        """Create from the entity-type wire format."""
        return cls(
            name=data["name"],
            type=FieldType.from_str(data["type"]),
            indexed=bool(data.get("indexed", False)),
            required=bool(data.get("required", False)),
            nullable=bool(data.get("nullable", True)),
            unique=bool(data.get("unique", False)),
        )


@dataclass(frozen=True)
class EntityDefinition:
    """Definition of an entity type.

    Attributes:
        name: Entity type name, unique per store
        id_generator: Identity strategy
        description: Documentation
        fields: Ordered field definitions
    """

    name: str
    id_generator: IdGenerator = IdGenerator.AUTO_INCREMENT
    description: str | None = None
    fields: tuple[FieldDefinition, ...] = dataclass_field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Validate entity definition."""
        if not self.name:
            raise ValueError("Entity type name cannot be empty")

        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field name in entity type '{self.name}'")

    def get_field(self, name: str) -> FieldDefinition | None:
        """Get field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_field_names(self) -> list[str]:
        """Get list of field names."""
        return [f.name for f in self.fields]

    def to_wire(self) -> dict[str, Any]:
        """Convert to the entity-type wire format."""
        return {
            "name": self.name,
            "fields": [f.to_wire() for f in self.fields],
            "idGenerator": self.id_generator.value,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> EntityDefinition:
        """Create from the entity-type wire format.

        Store-internal fields are dropped.
        """
        fields = tuple(
            FieldDefinition.from_wire(f)
            for f in data.get("fields") or []
            if not str(f.get("name", "")).startswith(INTERNAL_FIELD_PREFIX)
        )
        return cls(
            name=data["name"],
            id_generator=IdGenerator(data.get("idGenerator") or IdGenerator.AUTO_INCREMENT.value),
            description=data.get("description"),
            fields=fields,
        )
