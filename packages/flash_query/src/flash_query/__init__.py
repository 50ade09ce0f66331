from .backends import (
    GraphQLBackend,
    HTTPExecutor,
    InMemoryStorage,
    JSONFileStorage,
    LocalStoreBackend,
    MatchingBackend,
    MemoryBackend,
    QueryBackend,
)
from .config import QuerySettings, query_settings
from .exceptions import (
    BackendNotImplementedError,
    DoesNotExistError,
    FlashQueryError,
    GraphQLResponseError,
    InvalidModelReferenceError,
    InvalidRelationFieldError,
    MissingPrimaryKeyError,
    ModelAlreadyRegisteredError,
    MultipleObjectsReturnedError,
    RelatedModelNotFoundError,
    ValidationError,
)
from .fields import (
    BooleanField,
    DateField,
    EmailField,
    EnumField,
    Field,
    JSONField,
    ManyToManyField,
    NestedField,
    NumberField,
    RelationField,
    ReverseField,
    StringField,
)
from .lookups import MISSING, Lookup, LookupRegistry, get_lookup, lookup_registry, register_lookup
from .match import get_by_path, match
from .models import BaseModel, Model, NestedModel
from .queryset import QuerySet, normalize_filter
from .registry import ModelRegistry, model_registry
from .signals import ModelSignal, SignalRegistry, model_signals, safe_handler
from .types import ExecuteOptions, FieldType, OrderBy, Ordering, Pagination, PrefetchOptions

__all__ = [
    "MISSING",
    "BackendNotImplementedError",
    "BaseModel",
    "BooleanField",
    "DateField",
    "DoesNotExistError",
    "EmailField",
    "EnumField",
    "ExecuteOptions",
    "Field",
    "FieldType",
    "FlashQueryError",
    "GraphQLBackend",
    "GraphQLResponseError",
    "HTTPExecutor",
    "InMemoryStorage",
    "InvalidModelReferenceError",
    "InvalidRelationFieldError",
    "JSONField",
    "JSONFileStorage",
    "LocalStoreBackend",
    "Lookup",
    "LookupRegistry",
    "ManyToManyField",
    "MatchingBackend",
    "MemoryBackend",
    "MissingPrimaryKeyError",
    "Model",
    "ModelAlreadyRegisteredError",
    "ModelRegistry",
    "ModelSignal",
    "MultipleObjectsReturnedError",
    "NestedField",
    "NestedModel",
    "NumberField",
    "OrderBy",
    "Ordering",
    "Pagination",
    "PrefetchOptions",
    "QueryBackend",
    "QuerySet",
    "QuerySettings",
    "RelatedModelNotFoundError",
    "RelationField",
    "ReverseField",
    "SignalRegistry",
    "StringField",
    "ValidationError",
    "get_by_path",
    "get_lookup",
    "lookup_registry",
    "match",
    "model_registry",
    "model_signals",
    "normalize_filter",
    "query_settings",
    "register_lookup",
    "safe_handler",
]
