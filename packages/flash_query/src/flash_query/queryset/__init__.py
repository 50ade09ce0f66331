from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    TypeVar,
)

from .resolver import normalize_filter
from .write import QuerySetWrite

if TYPE_CHECKING:
    from flash_query.models import Model


T = TypeVar("T", bound="Model")


class QuerySet(QuerySetWrite[T]):
    """
    Lazy, immutable query builder for a specific model.

    A QuerySet holds filters, ordering, pagination, projection and relation
    loading instructions, and allows query composition without touching the
    backend. Each transformation (filter, order_by, limit, etc.) returns a new
    QuerySet instance with copied state, preserving immutability.

    Execution happens only through terminal coroutines such as:
        - execute() / fetch()
        - get()
        - first()
        - count()
        - exists()

    Notes:
        - QuerySets are safe to reuse and chain.
        - Methods never mutate the original instance.
        - The backend is called only when a terminal method is awaited.

    Examples:
        >>> base = User.objects.filter(active=True)
        >>> adults = base.filter(age__gte=18).order_by("-age").limit(10)
        >>> minors = base.filter(age__lt=18)
        >>> users = await adults.execute()

        >>> # Relation loading
        >>> await Post.objects.select_related("author").execute()
    """


__all__ = ["QuerySet", "normalize_filter"]
