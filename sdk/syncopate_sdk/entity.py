"""
Entity declarations for Syncopate SDK.

Entity classes are declared once with a class decorator and field markers.
The decorator builds a static EntitySchema table for the class; the mapper,
relationship registry and client consume that table and never inspect
instances to discover fields.

Example:
    >>> @entity(name="product")
    ... class Product:
    ...     name: str = field(required=True, nullable=False)
    ...     price: float = field()
    ...     sku: str = field(unique=True, indexed=True)
    ...     reviews: list = relationship(
    ...         "Review", RelationType.ONE_TO_MANY, mapped_by="product", cascade="remove"
    ...     )
    >>>
    >>> p = Product(name="Widget", price=19.99)
    >>> p.id is None
    True

Invariants:
    - A field never assigned is uninitialized (reading it raises AttributeError),
      which is distinct from an explicit None
    - The identity attribute is ``id`` and defaults to None
    - many_to_many relationships cannot cascade removal (DefinitionError at
      declaration time)
"""

from __future__ import annotations

import inspect
import re
import threading
from dataclasses import dataclass
from difflib import get_close_matches
from typing import Any, Callable

from .errors import DefinitionError
from .schema import (
    CascadePolicy,
    EntityDefinition,
    FieldDefinition,
    FieldType,
    IdGenerator,
    RelationType,
    map_python_type,
    unwrap_optional,
)

SCHEMA_ATTR = "__syncopate_schema__"
ID_ATTR = "id"

_declared_lock = threading.Lock()
_declared: dict[str, type] = {}


class _Unset:
    """Marker for a value that was never provided."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class FieldSpec:
    """Marker returned by field(); replaced by the @entity decorator."""

    name: str | None = None
    type: FieldType | None = None
    indexed: bool = False
    required: bool = False
    nullable: bool = True
    unique: bool = False
    default: Any = UNSET
    default_factory: Callable[[], Any] | None = None


@dataclass(frozen=True)
class RelationshipSpec:
    """Marker returned by relationship(); replaced by the @entity decorator."""

    target: type | str
    type: RelationType
    mapped_by: str | None = None
    inversed_by: str | None = None
    join_column: str | None = None
    join_table: str | None = None
    cascade: CascadePolicy = CascadePolicy.NONE


@dataclass(frozen=True)
class MappedField:
    """One declared field of an entity class.

    Attributes:
        attribute: Python attribute name
        definition: Store field definition (wire name, type, flags)
        python_type: Resolved annotation, None when unknown
        default: Default value, UNSET when none
        default_factory: Factory applied by the generated __init__
    """

    attribute: str
    definition: FieldDefinition
    python_type: Any = None
    default: Any = UNSET
    default_factory: Callable[[], Any] | None = None

    @property
    def wire_name(self) -> str:
        return self.definition.name

    @property
    def type(self) -> FieldType:
        return self.definition.type


@dataclass(frozen=True)
class EntitySchema:
    """Static mapping table for one entity class."""

    entity_class: type
    name: str
    id_generator: IdGenerator
    description: str | None
    fields: tuple[MappedField, ...]
    relationships: tuple[tuple[str, RelationshipSpec], ...]

    def get_field(self, attribute: str) -> MappedField | None:
        for f in self.fields:
            if f.attribute == attribute:
                return f
        return None

    def get_field_by_wire_name(self, wire_name: str) -> MappedField | None:
        for f in self.fields:
            if f.wire_name == wire_name:
                return f
        return None

    def get_relationship(self, attribute: str) -> RelationshipSpec | None:
        for name, spec in self.relationships:
            if name == attribute:
                return spec
        return None

    @property
    def attribute_names(self) -> list[str]:
        return [f.attribute for f in self.fields]

    def definition(self) -> EntityDefinition:
        """Store-side EntityDefinition for this class."""
        return EntityDefinition(
            name=self.name,
            id_generator=self.id_generator,
            description=self.description,
            fields=tuple(f.definition for f in self.fields),
        )


def field(
    name: str | None = None,
    type: FieldType | str | None = None,
    *,
    indexed: bool = False,
    required: bool = False,
    nullable: bool = True,
    unique: bool = False,
    default: Any = UNSET,
    default_factory: Callable[[], Any] | None = None,
) -> Any:
    """Declare a mapped field.

    Args:
        name: Wire name (defaults to the attribute name)
        type: Store field type (inferred from the annotation when omitted)
        indexed: Create index
        required: Value must be provided
        nullable: Null accepted
        unique: Values must be unique
        default: Default value
        default_factory: Callable producing the default value

    Returns:
        FieldSpec marker consumed by @entity

    Example:
        >>> title = field(required=True)
        >>> body = field(type="text")
    """
    if isinstance(type, str):
        type = FieldType.from_str(type)
    if default is not UNSET and default_factory is not None:
        raise DefinitionError("Cannot specify both default and default_factory")
    return FieldSpec(
        name=name,
        type=type,
        indexed=indexed,
        required=required,
        nullable=nullable,
        unique=unique,
        default=default,
        default_factory=default_factory,
    )


def relationship(
    target: type | str,
    type: RelationType | str,
    *,
    mapped_by: str | None = None,
    inversed_by: str | None = None,
    join_column: str | None = None,
    join_table: str | None = None,
    cascade: CascadePolicy | str = CascadePolicy.NONE,
) -> Any:
    """Declare a relationship to another entity class.

    Args:
        target: Target class, or its class name for forward references
        type: Cardinality
        mapped_by: Field on the target referencing this entity
        inversed_by: Field on the target holding the inverse side
        join_column: Field on this entity holding the target id
        join_table: Join table for many_to_many
        cascade: "remove" to delete related entities with this one

    Returns:
        RelationshipSpec marker consumed by @entity
    """
    return RelationshipSpec(
        target=target,
        type=RelationType(type),
        mapped_by=mapped_by,
        inversed_by=inversed_by,
        join_column=join_column,
        join_table=join_table,
        cascade=CascadePolicy(cascade),
    )


def camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", name).lower()


def default_entity_name(cls: type) -> str:
    """CamelCase class name to snake_case entity type name."""
    return camel_to_snake(cls.__name__)


def _field_annotations(cls: type, attributes: list[str]) -> dict[str, Any]:
    """Evaluated annotations of the given field attributes.

    Relationship annotations may name classes declared later in the module.
    When the class as a whole cannot be resolved yet, each field annotation
    is resolved on its own and unresolvable ones are left out; their field
    type then comes from ``field(type=...)`` or defaults to string.
    """
    try:
        return inspect.get_annotations(cls, eval_str=True)
    except NameError:
        pass

    raw = inspect.get_annotations(cls)
    namespace = dict(vars(cls))
    resolved: dict[str, Any] = {}
    for attribute in attributes:
        if attribute not in raw:
            continue
        single = type(
            cls.__name__,
            (),
            {"__module__": cls.__module__, "__annotations__": {attribute: raw[attribute]}},
        )
        try:
            resolved.update(inspect.get_annotations(single, locals=namespace, eval_str=True))
        except NameError:
            continue
    return resolved


def _check_relationship(cls: type, attribute: str, spec: RelationshipSpec) -> None:
    if spec.cascade is not CascadePolicy.REMOVE:
        return

    if spec.type is RelationType.MANY_TO_MANY:
        raise DefinitionError(
            "Cascade removal is not supported for many_to_many relationship "
            f"'{cls.__qualname__}.{attribute}'",
            entity_class=cls.__qualname__,
        )


def _collect(cls: type) -> tuple[list[MappedField], list[tuple[str, RelationshipSpec]]]:
    fields: dict[str, MappedField] = {}
    relationships: dict[str, RelationshipSpec] = {}

    for base in reversed(cls.__mro__[1:]):
        base_schema = base.__dict__.get(SCHEMA_ATTR)
        if base_schema is not None:
            fields.update((f.attribute, f) for f in base_schema.fields)
            relationships.update(base_schema.relationships)

    field_attributes = [a for a, v in vars(cls).items() if isinstance(v, FieldSpec)]
    annotations = _field_annotations(cls, field_attributes)
    for attribute, value in list(vars(cls).items()):
        if isinstance(value, FieldSpec):
            if attribute == ID_ATTR:
                raise DefinitionError(
                    f"'{ID_ATTR}' is the identity attribute and cannot be declared as a field",
                    entity_class=cls.__qualname__,
                )
            python_type = unwrap_optional(annotations.get(attribute))
            definition = FieldDefinition(
                name=value.name or attribute,
                type=value.type or map_python_type(python_type),
                indexed=value.indexed,
                required=value.required,
                nullable=value.nullable,
                unique=value.unique,
            )
            fields[attribute] = MappedField(
                attribute=attribute,
                definition=definition,
                python_type=python_type,
                default=value.default,
                default_factory=value.default_factory,
            )
            if value.default is UNSET:
                delattr(cls, attribute)
            else:
                setattr(cls, attribute, value.default)
        elif isinstance(value, RelationshipSpec):
            _check_relationship(cls, attribute, value)
            relationships[attribute] = value
            setattr(cls, attribute, None)

    return list(fields.values()), list(relationships.items())


def _make_init(cls: type) -> Callable[..., None]:
    def __init__(self: Any, **kwargs: Any) -> None:
        schema: EntitySchema = getattr(type(self), SCHEMA_ATTR)
        known = {ID_ATTR, *schema.attribute_names, *(name for name, _ in schema.relationships)}
        for key, value in kwargs.items():
            if key not in known:
                suggestions = get_close_matches(key, sorted(known), n=3)
                msg = f"{type(self).__name__}() got an unexpected field '{key}'"
                if suggestions:
                    msg += f". Did you mean: {', '.join(suggestions)}?"
                raise TypeError(msg)
            setattr(self, key, value)

        for f in schema.fields:
            if f.attribute not in kwargs and f.default_factory is not None:
                setattr(self, f.attribute, f.default_factory())
        for name, spec in schema.relationships:
            if name not in kwargs and spec.type.is_collection:
                setattr(self, name, [])

    __init__.__qualname__ = f"{cls.__qualname__}.__init__"
    return __init__


def _make_repr(cls: type) -> Callable[[Any], str]:
    def __repr__(self: Any) -> str:
        schema: EntitySchema = getattr(type(self), SCHEMA_ATTR)
        parts = [f"id={getattr(self, ID_ATTR, None)!r}"]
        for f in schema.fields:
            value = getattr(self, f.attribute, UNSET)
            if value is not UNSET:
                parts.append(f"{f.attribute}={value!r}")
        return f"{type(self).__name__}({', '.join(parts)})"

    __repr__.__qualname__ = f"{cls.__qualname__}.__repr__"
    return __repr__


def entity(
    cls: type | None = None,
    *,
    name: str | None = None,
    id_generator: IdGenerator | str = IdGenerator.AUTO_INCREMENT,
    description: str | None = None,
) -> Any:
    """Class decorator declaring an entity type.

    Args:
        cls: Class being decorated (when used without arguments)
        name: Entity type name (defaults to snake_case class name)
        id_generator: Identity strategy
        description: Documentation

    Returns:
        The decorated class
    """

    def wrap(target: type) -> type:
        fields, relationships = _collect(target)
        schema = EntitySchema(
            entity_class=target,
            name=name or default_entity_name(target),
            id_generator=IdGenerator(id_generator),
            description=description,
            fields=tuple(fields),
            relationships=tuple(relationships),
        )
        setattr(target, SCHEMA_ATTR, schema)
        if ID_ATTR not in vars(target):
            setattr(target, ID_ATTR, None)
        if "__init__" not in vars(target):
            target.__init__ = _make_init(target)  # type: ignore[misc]
        if "__repr__" not in vars(target):
            target.__repr__ = _make_repr(target)  # type: ignore[assignment]

        with _declared_lock:
            _declared[target.__name__] = target
            _declared[target.__qualname__] = target
            _declared[f"{target.__module__}.{target.__qualname__}"] = target
        return target

    if cls is None:
        return wrap
    return wrap(cls)


def is_entity(obj: Any) -> bool:
    """Whether a class (or instance) is declared with @entity."""
    cls = obj if isinstance(obj, type) else type(obj)
    return SCHEMA_ATTR in vars(cls)


def get_schema(obj: Any) -> EntitySchema:
    """Get the EntitySchema of an entity class or instance.

    Raises:
        DefinitionError: If the class is not declared with @entity
    """
    cls = obj if isinstance(obj, type) else type(obj)
    schema = vars(cls).get(SCHEMA_ATTR)
    if schema is None:
        raise DefinitionError(
            f"Class {cls.__qualname__} is not marked with @entity",
            entity_class=cls.__qualname__,
        )
    return schema


def resolve_entity_class(target: type | str) -> type:
    """Resolve a relationship target (class or class name) to its class.

    Raises:
        DefinitionError: If the name is unknown or the class is not an entity
    """
    if isinstance(target, type):
        get_schema(target)
        return target

    with _declared_lock:
        cls = _declared.get(target)
    if cls is None:
        raise DefinitionError(f"Unknown entity class '{target}'", entity_class=target)
    return cls
