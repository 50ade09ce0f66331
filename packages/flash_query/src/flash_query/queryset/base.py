from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
    Mapping,
    Sequence,
    Type,
    TypeVar,
)

from flash_query.types import OrderBy, Pagination, PrefetchSpec

if TYPE_CHECKING:
    from flash_query.backends.base import QueryBackend
    from flash_query.models import Model

T = TypeVar("T", bound="Model")


def copy_tree(value: Any) -> Any:
    """Copy dict and list containers, sharing the leaf values."""
    if isinstance(value, Mapping):
        return {k: copy_tree(v) for k, v in value.items()}
    if isinstance(value, list):
        return [copy_tree(v) for v in value]
    return value


class QuerySetBase(Generic[T]):
    """
    Fundamental state and identity for a QuerySet.

    This base class holds the target model, the backend that executes the
    query, and the query state: filters, ordering, pagination, projected
    fields, relation loading instructions and the ``values_list`` spec.
    """

    def __init__(
        self,
        model: Type[T],
        backend: QueryBackend[T],
        *,
        filters: Mapping[str, Any] | None = None,
        ordering: Sequence[OrderBy] | None = None,
        pagination: Pagination | None = None,
        only: Sequence[str] | None = None,
        select_related: Sequence[str] | None = None,
        prefetch_related: Mapping[str, PrefetchSpec] | None = None,
        values_list: Sequence[str] | None = None,
        flat: bool = False,
    ):
        self.model: Type[T] = model
        self.backend: QueryBackend[T] = backend
        self._filters: dict[str, Any] = copy_tree(filters or {})
        self._ordering: list[OrderBy] = list(ordering or [])
        self._pagination: Pagination = pagination or Pagination()
        self._only: list[str] | None = list(only) if only is not None else None
        self._select_related: list[str] = list(select_related or [])
        self._prefetch_related: dict[str, PrefetchSpec] = dict(prefetch_related or {})
        self._values_list: tuple[str, ...] | None = (
            tuple(values_list) if values_list is not None else None
        )
        self._flat: bool = flat

    def _clone(self, **changes: Any) -> Any:
        """
        Return a new instance of the current class with updated state.

        Using self.__class__ ensures that the top-most class in the
        inheritance chain is instantiated, preserving all capabilities
        (construction, execution, etc.) in the resulting object. Containers
        are copied so the source QuerySet is never affected.
        """
        state: dict[str, Any] = {
            "filters": self._filters,
            "ordering": self._ordering,
            "pagination": self._pagination,
            "only": self._only,
            "select_related": self._select_related,
            "prefetch_related": self._prefetch_related,
            "values_list": self._values_list,
            "flat": self._flat,
        }
        state.update(changes)
        return self.__class__(self.model, self.backend, **state)

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} {self.model.__name__} "
            f"filters={self._filters!r} ordering={self._ordering!r} "
            f"pagination={self._pagination!r}>"
        )
