"""
Entity mapper for Syncopate SDK.

Translates between entity instances and wire records
(``{"id": ..., "fields": {...}}``):

- extract_entity_definition: EntitySchema -> store EntityDefinition
- map_to_object: wire record -> entity instance (no user __init__ is run)
- map_from_object: entity instance -> wire record
- validate_object: required / nullable checks, all violations at once
- to_dict / extract*: entity instance -> flat dict projection

Wire values are plain JSON values. Each FieldType has one coercion function
turning a wire value into its host value; the declared annotation then
refines the result (date vs datetime, Enum members, nested entities).

Invariants:
    - Fields absent from a wire record stay uninitialized on the instance
    - A record without an id never maps to an entity
    - Per-class field tables are built once and never invalidated
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import logging
import threading
import typing
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, Union

from .entity import ID_ATTR, UNSET, MappedField, camel_to_snake, get_schema, is_entity
from .errors import DefinitionError, MappingError, ValidationError
from .relationships import Relationship, RelationshipMetadata
from .schema import EntityDefinition, FieldType

logger = logging.getLogger(__name__)

WireValue = Union[None, bool, int, float, str, list["WireValue"], dict[str, "WireValue"]]

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})
_RECORD_KEYS = frozenset({"id", "fields", "type"})


def parse_datetime(value: str) -> dt.datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return dt.datetime.fromisoformat(text)


def _coerce_integer(value: WireValue) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return int(float(text))
    raise TypeError(f"expected a number, got {type(value).__name__}")


def _coerce_float(value: WireValue) -> float:
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"expected a number, got {type(value).__name__}")


def _coerce_boolean(value: WireValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValueError(f"not a boolean: {value!r}")
    raise TypeError(f"expected a boolean, got {type(value).__name__}")


def _coerce_datetime(value: WireValue) -> dt.datetime:
    if isinstance(value, str):
        return parse_datetime(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return dt.datetime.fromtimestamp(value, tz=dt.timezone.utc)
    raise TypeError(f"expected a timestamp, got {type(value).__name__}")


def _coerce_date(value: WireValue) -> dt.date:
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return dt.date.fromisoformat(text)
        return parse_datetime(text).date()
    raise TypeError(f"expected a date, got {type(value).__name__}")


def _passthrough(value: WireValue) -> Any:
    return value


_COERCERS: dict[FieldType, Callable[[WireValue], Any]] = {
    FieldType.BOOLEAN: _coerce_boolean,
    FieldType.DATE: _coerce_date,
    FieldType.DATETIME: _coerce_datetime,
    FieldType.STRING: _passthrough,
    FieldType.TEXT: _passthrough,
    FieldType.JSON: _passthrough,
    FieldType.INTEGER: _coerce_integer,
    FieldType.FLOAT: _coerce_float,
}


def to_wire_value(value: Any) -> WireValue:
    """Convert a host value to its wire form.

    datetime/date/time become ISO-8601 strings, Enum members their value,
    nested entities their own wire record; containers are converted
    recursively.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return to_wire_value(value.value)
    if is_entity(value):
        return EntityMapper.shared().map_from_object(value)
    if isinstance(value, Mapping):
        return {str(k): to_wire_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_wire_value(v) for v in value]
    if hasattr(value, "to_dict"):
        return to_wire_value(value.to_dict())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_wire_value(dataclasses.asdict(value))
    return str(value)


class EntityMapper:
    """Maps entity instances to and from wire records.

    Example:
        >>> mapper = EntityMapper()
        >>> product = mapper.map_to_object(
        ...     {"id": "p1", "fields": {"name": "Widget", "price": "19.99"}}, Product
        ... )
        >>> product.price
        19.99
    """

    _shared: EntityMapper | None = None
    _shared_lock = threading.Lock()

    def __init__(self) -> None:
        self._field_tables: dict[type, Mapping[str, MappedField]] = {}
        self._snake_tables: dict[type, Mapping[str, MappedField]] = {}
        self._lock = threading.Lock()

    @classmethod
    def shared(cls) -> EntityMapper:
        """Process-wide mapper used for nested entity values."""
        if cls._shared is None:
            with cls._shared_lock:
                if cls._shared is None:
                    cls._shared = cls()
        return cls._shared

    def _fields(self, entity_class: type) -> Mapping[str, MappedField]:
        """Declared fields of a class keyed by wire name."""
        table = self._field_tables.get(entity_class)
        if table is not None:
            return table

        with self._lock:
            table = self._field_tables.get(entity_class)
            if table is None:
                schema = get_schema(entity_class)
                table = MappingProxyType({f.wire_name: f for f in schema.fields})
                self._field_tables[entity_class] = table
            return table

    def _snake_fields(self, entity_class: type) -> Mapping[str, MappedField]:
        """Declared fields keyed by the snake_case form of their wire name."""
        table = self._snake_tables.get(entity_class)
        if table is not None:
            return table

        with self._lock:
            table = self._snake_tables.get(entity_class)
            if table is None:
                schema = get_schema(entity_class)
                table = MappingProxyType({camel_to_snake(f.wire_name): f for f in schema.fields})
                self._snake_tables[entity_class] = table
            return table

    def extract_entity_definition(self, entity_class: type) -> EntityDefinition:
        """Build the store EntityDefinition for an entity class.

        Raises:
            DefinitionError: If the class is not declared with @entity
        """
        if not isinstance(entity_class, type):
            raise DefinitionError(f"Expected an entity class, got {type(entity_class).__name__}")
        return get_schema(entity_class).definition()

    def map_to_object(self, record: Mapping[str, Any], entity_class: type) -> Any:
        """Hydrate an entity instance from a wire record.

        Raises:
            MappingError: If the record has no id or a field cannot be coerced
        """
        if not isinstance(record, Mapping) or record.get("id") is None:
            raise MappingError(
                f"Cannot map record to {entity_class.__name__}: missing 'id'", record
            )
        return self._hydrate(entity_class, record["id"], record.get("fields"), record)

    def _hydrate(
        self,
        entity_class: type,
        entity_id: Any,
        fields: Any,
        record: Any,
        by_attribute: bool = False,
    ) -> Any:
        if fields is None:
            fields = {}
        if not isinstance(fields, Mapping):
            raise MappingError(
                f"Cannot map record to {entity_class.__name__}: 'fields' is not an object", record
            )

        table = self._fields(entity_class)
        instance = entity_class.__new__(entity_class)
        setattr(instance, ID_ATTR, entity_id)

        schema = get_schema(entity_class) if by_attribute else None
        for key, value in fields.items():
            mapped = table.get(key)
            if mapped is None and schema is not None:
                mapped = schema.get_field(key) or self._snake_fields(entity_class).get(key)
            if mapped is None:
                continue
            setattr(instance, mapped.attribute, self._to_host(mapped, value, record))
        return instance

    def _to_host(self, mapped: MappedField, value: WireValue, record: Any) -> Any:
        if value is None:
            return None

        python_type = mapped.python_type
        try:
            if python_type is dt.time and isinstance(value, str):
                return dt.time.fromisoformat(value)
            result = _COERCERS[mapped.type](value)
        except (ValueError, TypeError) as e:
            raise MappingError(
                f"Cannot convert field '{mapped.wire_name}' value {value!r} "
                f"to {mapped.type.value}: {e}",
                record,
            ) from e
        return self._refine(mapped, python_type, result, record)

    def _refine(self, mapped: MappedField, python_type: Any, value: Any, record: Any) -> Any:
        """Narrow a coerced value to the declared annotation."""
        if python_type is None:
            return value

        origin = typing.get_origin(python_type)
        if origin in (tuple, set, frozenset) and isinstance(value, list):
            return origin(value)
        if not isinstance(python_type, type):
            return value

        if python_type is dt.date and isinstance(value, dt.datetime):
            return value.date()
        if python_type is dt.datetime and type(value) is dt.date:
            return dt.datetime.combine(value, dt.time())
        if python_type in (tuple, set, frozenset) and isinstance(value, list):
            return python_type(value)

        if issubclass(python_type, enum.Enum) and not isinstance(value, python_type):
            try:
                return python_type(value)
            except ValueError as e:
                raise MappingError(
                    f"Cannot convert field '{mapped.wire_name}' value {value!r} "
                    f"to {python_type.__name__}",
                    record,
                ) from e

        if is_entity(python_type) and isinstance(value, Mapping):
            return self.map_related(python_type, value)
        if isinstance(value, Mapping) and hasattr(python_type, "from_dict"):
            return python_type.from_dict(value)
        return value

    def map_from_object(self, instance: Any) -> dict[str, Any]:
        """Convert an entity instance to a wire record.

        Uninitialized fields and null non-required fields are skipped. The
        ``id`` key is present only when the instance has an id.

        Raises:
            DefinitionError: If the instance's class is not an entity
        """
        schema = get_schema(instance)
        fields: dict[str, WireValue] = {}
        for mapped in schema.fields:
            value = getattr(instance, mapped.attribute, UNSET)
            if value is UNSET:
                continue
            if value is None and not mapped.definition.required:
                continue
            fields[mapped.wire_name] = to_wire_value(value)

        entity_id = getattr(instance, ID_ATTR, None)
        if entity_id is None:
            return {"fields": fields}
        return {"id": entity_id, "fields": fields}

    def to_dict(
        self,
        instance: Any,
        fields: Iterable[str] | None = None,
        exclude: Iterable[str] = (),
        mapping: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """Project an entity onto a flat dict.

        The id is always included. Other keys are wire names unless
        ``mapping`` renames them. Dates become ISO-8601 strings, Enum
        members their value and nested entities their own projection.
        Uninitialized fields are left out.

        Args:
            instance: Entity instance
            fields: Attribute names to include (all when None)
            exclude: Attribute names to leave out
            mapping: Result key -> attribute name

        Returns:
            The projected dict
        """
        schema = get_schema(instance)
        wanted = None if fields is None else set(fields)
        excluded = set(exclude)
        renamed = {attribute: key for key, attribute in (mapping or {}).items()}

        result: dict[str, Any] = {renamed.get(ID_ATTR, ID_ATTR): getattr(instance, ID_ATTR, None)}
        for mapped in schema.fields:
            attribute = mapped.attribute
            if attribute in excluded or (wanted is not None and attribute not in wanted):
                continue
            value = getattr(instance, attribute, UNSET)
            if value is UNSET:
                continue
            result[renamed.get(attribute, mapped.wire_name)] = self._project(value)
        return result

    def extract(
        self, instance: Any, fields: Iterable[str], mapping: Mapping[str, str] | None = None
    ) -> dict[str, Any]:
        """Project only the given attributes."""
        return self.to_dict(instance, fields=fields, mapping=mapping)

    def extract_except(
        self, instance: Any, exclude: Iterable[str], mapping: Mapping[str, str] | None = None
    ) -> dict[str, Any]:
        """Project every attribute except the given ones."""
        return self.to_dict(instance, exclude=exclude, mapping=mapping)

    def extract_as(self, instance: Any, mapping: Mapping[str, str]) -> dict[str, Any]:
        """Project only the mapped attributes, under their result keys."""
        return self.to_dict(instance, fields=mapping.values(), mapping=mapping)

    def _project(self, value: Any) -> Any:
        if is_entity(value):
            return self.to_dict(value)
        if isinstance(value, (list, tuple)) and any(is_entity(v) for v in value):
            return [self._project(v) for v in value]
        return to_wire_value(value)

    def validate_object(self, instance: Any) -> None:
        """Check required and nullable constraints.

        Raises:
            ValidationError: Listing every offending field
        """
        schema = get_schema(instance)
        error = ValidationError(f"Validation failed for entity type '{schema.name}'")
        for mapped in schema.fields:
            definition = mapped.definition
            value = getattr(instance, mapped.attribute, UNSET)
            if value is UNSET:
                if definition.required:
                    error.add_violation(mapped.attribute, "Field is required but not initialized")
            elif value is None:
                if definition.required:
                    error.add_violation(mapped.attribute, "Field is required and cannot be null")
                elif not definition.nullable:
                    error.add_violation(mapped.attribute, "Field cannot be null")

        if error.violations:
            raise error

    def map_related(self, entity_class: type, data: Mapping[str, Any]) -> Any:
        """Hydrate a related entity from joined data.

        Joined data is either a wire record or a flat object. Flat keys match
        a wire name, an attribute name or the snake_case form of a wire name.
        A missing id is tolerated.
        """
        fields = data.get("fields")
        if isinstance(fields, Mapping):
            return self._hydrate(entity_class, data.get("id"), fields, data)
        flat = {k: v for k, v in data.items() if k != ID_ATTR}
        return self._hydrate(entity_class, data.get("id"), flat, data, by_attribute=True)

    def _try_related(self, relationship: Relationship, data: Mapping[str, Any]) -> Any:
        """Hydrate one joined item, or None when it cannot be mapped."""
        try:
            return self.map_related(relationship.target_entity, data)
        except MappingError as e:
            logger.warning(
                f"Dropping joined item on '{relationship.property_name}' "
                f"(id={data.get('id')!r}): {e.message}"
            )
            return None

    def _related_value(self, relationship: Relationship, value: Any) -> Any:
        if relationship.is_collection:
            if value is None:
                return []
            items = [value] if isinstance(value, Mapping) else value
            related = [
                self._try_related(relationship, item)
                for item in items
                if isinstance(item, Mapping)
            ]
            return [item for item in related if item is not None]

        if isinstance(value, list):
            value = next((item for item in value if isinstance(item, Mapping)), None)
        if isinstance(value, Mapping):
            return self._try_related(relationship, value)
        return None

    def map_joined(
        self,
        record: Mapping[str, Any],
        entity_class: type,
        relationships: RelationshipMetadata,
    ) -> Any:
        """Hydrate a join query row, populating relationship attributes.

        Joined data is looked up under each join alias, both at the record's
        top level and inside ``fields``. Aliases that match no relationship
        of the class are ignored.
        """
        instance = self.map_to_object(record, entity_class)
        table = self._fields(entity_class)

        joined: dict[str, Any] = {
            key: value for key, value in record.items() if key not in _RECORD_KEYS
        }
        fields = record.get("fields")
        if isinstance(fields, Mapping):
            for key, value in fields.items():
                if key not in table and key not in joined:
                    joined[key] = value

        for alias, value in joined.items():
            relationship = relationships.get(alias)
            if relationship is None:
                logger.debug(f"Ignoring joined data '{alias}' on {entity_class.__name__}")
                continue
            setattr(instance, alias, self._related_value(relationship, value))
        return instance
