"""Backend contract and the shared in-process query pipeline."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from functools import cmp_to_key
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable, TypeVar
from uuid import uuid4

from flash_query.config import query_settings
from flash_query.exceptions import MissingPrimaryKeyError
from flash_query.logging import get_logger
from flash_query.lookups import MISSING
from flash_query.match import get_by_path, match
from flash_query.models import extract_pk, lower_first
from flash_query.types import FieldType

if TYPE_CHECKING:
    from flash_query.fields import Field
    from flash_query.lookups import LookupRegistry
    from flash_query.models import Model
    from flash_query.queryset import QuerySet
    from flash_query.types import ExecuteOptions, OrderBy

logger = get_logger(__name__)

T = TypeVar("T", bound="Model")


def default_id_factory() -> str:
    return str(uuid4())


def missing_pk(pk: Any) -> bool:
    """True for pks that do not identify an entity: None and the empty string."""
    return pk is None or (isinstance(pk, str) and not pk)


class QueryBackend(ABC, Generic[T]):
    """
    Interface every storage backend implements.

    A backend receives fully resolved ``ExecuteOptions`` and is responsible
    for filtering, ordering (a stable multi-key sort), applying the offset
    before the limit, and attaching select/prefetch related objects.
    """

    def __init__(self, model: type[T]) -> None:
        self.model = model

    @abstractmethod
    async def execute(self, options: ExecuteOptions) -> list[T]:
        """Return the entities matching ``options``."""
        ...

    @abstractmethod
    async def save(self, entity: T) -> None:
        """Upsert ``entity`` by primary key, assigning one if supported."""
        ...

    @abstractmethod
    async def delete(self, entity: T) -> None:
        """Remove ``entity`` by primary key. Entities without a pk are ignored."""
        ...

    async def attach_related(self, results: list[T], options: ExecuteOptions) -> None:
        """
        Resolve select/prefetch related querysets onto each result.

        One task per (result, field) pair; all tasks run concurrently and each
        writes a single attribute of a single result.
        """
        if not results or not options.related_querysets:
            return
        fields = self.model._meta.fields
        tasks = []
        for name, qs in options.related_querysets.items():
            field = fields.get(name)
            if field is None:
                continue
            for entity in results:
                if field.is_relation:
                    tasks.append(self._select_one(entity, name, qs))
                elif field.is_reverse:
                    tasks.append(self._prefetch_one(entity, name, field, qs))
        if tasks:
            logger.debug("Resolving %d related lookup(s)", len(tasks))
            await asyncio.gather(*tasks)

    async def _select_one(self, entity: T, name: str, qs: QuerySet[Any]) -> None:
        pk = extract_pk(entity.get_value(name), qs.model)
        if pk is None:
            return
        related = await qs.filter({qs.model._meta.pk_field: pk}).first()
        if related is not None:
            setattr(entity, name, related)

    async def _prefetch_one(
        self, entity: T, name: str, field: Field, qs: QuerySet[Any]
    ) -> None:
        if field.type == FieldType.MANY_TO_MANY.value:
            refs = entity.get_value(name)
            ids = [extract_pk(ref, qs.model) for ref in (refs or ())]
            qs = qs.filter({qs.model._meta.pk_field: {"in": ids}})
        else:
            related = field.related_name or lower_first(self.model._meta.name)
            qs = qs.filter({f"{related}.{self.model._meta.pk_field}": entity.pk})
        setattr(entity, name, await qs.execute())


def _compare(left: Any, right: Any) -> int:
    left_empty = left is None or left is MISSING
    right_empty = right is None or right is MISSING
    if left_empty or right_empty:
        # Empty values sort after present ones.
        return (left_empty and not right_empty) - (right_empty and not left_empty)
    try:
        if left < right:
            return -1
        if left > right:
            return 1
    except TypeError:
        return 0
    return 0


def sort_entities(entities: Iterable[T], ordering: list[OrderBy]) -> list[T]:
    """
    Stable multi-key sort. Later keys only break ties of earlier ones.

    Values that cannot be compared keep their relative order.
    """
    items = list(entities)
    for order in reversed(ordering):
        key = cmp_to_key(_compare)
        items.sort(
            key=lambda e, f=order.field: key(get_by_path(e, f)),
            reverse=order.descending,
        )
    return items


class MatchingBackend(QueryBackend[T]):
    """
    Base for backends without a native query language.

    Subclasses provide candidate entities; this class applies the filter
    matcher, the stable sort, offset then limit, and resolves related
    objects concurrently.
    """

    def __init__(
        self,
        model: type[T],
        *,
        lookups: LookupRegistry | None = None,
        auto_generate_pk: bool | None = None,
        id_factory: Callable[[], Any] | None = None,
    ) -> None:
        super().__init__(model)
        self.lookups = lookups
        self.auto_generate_pk = (
            query_settings.AUTO_GENERATE_PK
            if auto_generate_pk is None
            else auto_generate_pk
        )
        self.id_factory = id_factory or default_id_factory

    def ensure_pk(self, entity: T) -> Any:
        """
        Return the entity's pk, assigning a generated one when missing or empty.

        Raises:
            MissingPrimaryKeyError: If the pk is missing and auto-generation
                is disabled.
        """
        if missing_pk(entity.pk):
            if not self.auto_generate_pk:
                raise MissingPrimaryKeyError(
                    self.model.__name__, self.model._meta.pk_field
                )
            entity.pk = self.id_factory()
        return entity.pk

    @abstractmethod
    async def candidates(self, options: ExecuteOptions) -> list[T]:
        """Return entities that may match ``options`` (a superset is fine)."""
        ...

    async def execute(self, options: ExecuteOptions) -> list[T]:
        results = self.apply_query(await self.candidates(options), options)
        await self.attach_related(results, options)
        return results

    def apply_query(self, entities: Iterable[T], options: ExecuteOptions) -> list[T]:
        """Filter, sort, then apply offset and limit."""
        results = [e for e in entities if match(e, options.filters, self.lookups)]
        if options.ordering:
            results = sort_entities(results, options.ordering)
        offset = options.pagination.offset or 0
        if offset:
            results = results[offset:]
        limit = options.pagination.limit
        if limit is not None:
            results = results[:limit]
        return results

