from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Mapping,
)

from flash_query.exceptions import RelatedModelNotFoundError
from flash_query.logging import get_logger
from flash_query.lookups import Lookup, lookup_registry
from flash_query.match import LOGICAL_KEYS
from flash_query.types import ExecuteOptions, Filter, PrefetchOptions

from .base import QuerySetBase, T

if TYPE_CHECKING:
    from flash_query.models import Model

    from . import QuerySet

logger = get_logger(__name__)


def normalize_filter(filters: Mapping[str, Any]) -> Filter:
    """
    Rewrite literal field values as ``{"exact": value}`` lookups.

    Logical keys are normalized recursively; mappings are assumed to be lookup
    maps already and pass through. Idempotent.

    Example:
        >>> normalize_filter({"name": "Ana", "OR": {"age": 3}})
        {'name': {'exact': 'Ana'}, 'OR': {'age': {'exact': 3}}}
    """
    normalized: Filter = {}
    for key, value in filters.items():
        if key in LOGICAL_KEYS:
            normalized[key] = (
                normalize_filter(value) if isinstance(value, Mapping) else value
            )
        elif isinstance(value, Mapping):
            normalized[key] = dict(value)
        else:
            normalized[key] = {Lookup.EXACT.value: value}
    return normalized


class QuerySetResolver(QuerySetBase[T]):
    """
    Turns keyword lookups and relation names into backend input.

    This layer parses Django-style lookups (like 'age__gte') into filter
    expressions, resolves relation targets through the model registry, and
    builds the ``ExecuteOptions`` handed to the backend.
    """

    def _parse_lookups(self, lookups: Mapping[str, Any]) -> Filter:
        """
        Parse keyword lookups into a filter expression.

        ``age__gte=18`` becomes ``{"age": {"gte": 18}}``; a trailing part that
        is not a known lookup is treated as a path, so ``group__id="g1"``
        becomes ``{"group.id": {"exact": "g1"}}``.
        """
        parsed: Filter = {}
        for key, value in lookups.items():
            parts = key.split("__")
            if len(parts) > 1 and parts[-1] in lookup_registry:
                path, op = ".".join(parts[:-1]), parts[-1]
            else:
                path, op = ".".join(parts), Lookup.EXACT.value
            parsed.setdefault(path, {})[op] = value
        return parsed

    def _resolve_target(self, field_name: str) -> type[Model]:
        meta = self.model._meta
        field = meta.fields[field_name]
        target = field.resolve_target(meta.registry)
        if target is None:
            raise RelatedModelNotFoundError(meta.name, field_name, field.target_name())
        return target  # type: ignore[return-value]

    def _resolve_related_querysets(self) -> dict[str, QuerySet[Any]]:
        """
        Build the target querysets for select-related and prefetch-related fields.

        Select-related names must be relation fields and prefetch-related names
        reverse or many-to-many fields; other names are skipped. Prefetch
        options narrow the target queryset in the order filters, ordering,
        only, pagination, exclude.

        Raises:
            RelatedModelNotFoundError: If a target model cannot be resolved.
        """
        fields = self.model._meta.fields
        related: dict[str, QuerySet[Any]] = {}

        for name in self._select_related:
            field = fields.get(name)
            if field is None or not field.is_relation:
                logger.debug("Skipping select_related(%r): not a relation field", name)
                continue
            related[name] = self._resolve_target(name).objects

        for name, spec in self._prefetch_related.items():
            field = fields.get(name)
            if field is None or not field.is_reverse:
                logger.debug("Skipping prefetch_related(%r): not a reverse field", name)
                continue
            qs = self._resolve_target(name).objects
            if isinstance(spec, PrefetchOptions):
                qs = self._narrow(qs, spec)
            related[name] = qs

        return related

    @staticmethod
    def _narrow(qs: QuerySet[Any], options: PrefetchOptions) -> QuerySet[Any]:
        if options.filters:
            qs = qs.filter(options.filters)
        if options.ordering:
            qs = qs.order_by(*options.ordering)
        if options.only:
            qs = qs.only(*options.only)
        if options.pagination:
            qs = qs.paginate(options.pagination)
        if options.exclude:
            qs = qs.exclude(options.exclude)
        return qs

    def _build_options(self) -> ExecuteOptions:
        return ExecuteOptions(
            filters=normalize_filter(self._filters),
            ordering=list(self._ordering),
            pagination=self._pagination,
            only=list(self._only) if self._only is not None else None,
            select_related=list(self._select_related),
            prefetch_related=dict(self._prefetch_related),
            related_querysets=self._resolve_related_querysets(),
        )
