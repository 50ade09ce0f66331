from .base import MatchingBackend, QueryBackend, default_id_factory, sort_entities
from .graphql import GraphQLBackend, HTTPExecutor, convert_ordering
from .local_store import LocalStoreBackend
from .memory import InMemoryStorage, JSONFileStorage, MemoryBackend, MemoryStorage

__all__ = [
    "GraphQLBackend",
    "HTTPExecutor",
    "InMemoryStorage",
    "JSONFileStorage",
    "LocalStoreBackend",
    "MatchingBackend",
    "MemoryBackend",
    "MemoryStorage",
    "QueryBackend",
    "convert_ordering",
    "default_id_factory",
    "sort_entities",
]
