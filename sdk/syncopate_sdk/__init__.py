"""
Syncopate Python SDK - Object mapping client for the Syncopate document store.

This SDK maps Python classes to store entity types:
- Entity declarations (entity, field, relationship)
- Query and join models with a fluent builder
- SyncopateClient for CRUD, queries and cascade delete
- Repositories bound to one entity class

Example:
    >>> from syncopate_sdk import SyncopateClient, entity, field
    >>>
    >>> @entity(name="product")
    ... class Product:
    ...     name: str = field(required=True, nullable=False)
    ...     price: float = field()
    ...     sku: str = field(unique=True, indexed=True)
    >>>
    >>> with SyncopateClient(base_url="http://localhost:8080") as db:
    ...     product = db.create(Product(name="Widget", price=19.99, sku="W-1"))
    ...     db.find_by(Product, {"sku": "W-1"})

Invariants:
    - Local validation and malformed queries never reach the network
    - Query objects are immutable values
    - Cascade delete visits each (entity type, id) at most once

Version: 1.0.0
"""

__version__ = "1.0.0"

from ._http_client import HttpTransport, StoreApi, Transport
from .cascade import BATCH_SIZE, CascadeEngine, CascadeReport, CascadeStep
from .client import SyncopateClient
from .config import SyncopateSettings
from .entity import UNSET, entity, field, get_schema, is_entity, relationship
from .errors import (
    ApiError,
    ArgumentError,
    DefinitionError,
    IntegrityConstraintError,
    MappingError,
    NotFoundError,
    SyncopateError,
    TransportError,
    ValidationError,
    error_from_response,
)
from .join import JoinDefinition, JoinQueryOptions, JoinType, SelectStrategy
from .mapper import EntityMapper
from .query import FilterOperator, FuzzyOptions, QueryFilter, QueryOptions
from .registry import EntityTypeRegistry
from .relationships import Relationship, RelationshipMetadata, RelationshipRegistry
from .repository import EntityRepository, JoinQueryBuilder, QueryBuilder
from .schema import (
    CascadePolicy,
    EntityDefinition,
    FieldDefinition,
    FieldType,
    IdGenerator,
    RelationType,
)

__all__ = [
    # Version
    "__version__",
    # Declarations
    "entity",
    "field",
    "relationship",
    "get_schema",
    "is_entity",
    "UNSET",
    # Schema types
    "FieldType",
    "IdGenerator",
    "RelationType",
    "CascadePolicy",
    "FieldDefinition",
    "EntityDefinition",
    # Queries
    "FilterOperator",
    "QueryFilter",
    "FuzzyOptions",
    "QueryOptions",
    "JoinType",
    "SelectStrategy",
    "JoinDefinition",
    "JoinQueryOptions",
    # Mapping and metadata
    "EntityMapper",
    "Relationship",
    "RelationshipMetadata",
    "RelationshipRegistry",
    "EntityTypeRegistry",
    # Cascade
    "BATCH_SIZE",
    "CascadeEngine",
    "CascadeReport",
    "CascadeStep",
    # Client
    "SyncopateClient",
    "SyncopateSettings",
    "EntityRepository",
    "QueryBuilder",
    "JoinQueryBuilder",
    "Transport",
    "HttpTransport",
    "StoreApi",
    # Errors
    "SyncopateError",
    "DefinitionError",
    "MappingError",
    "ValidationError",
    "ArgumentError",
    "TransportError",
    "ApiError",
    "NotFoundError",
    "IntegrityConstraintError",
    "error_from_response",
]
