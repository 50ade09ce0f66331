from __future__ import annotations

from typing import (
    Any,
    Mapping,
)

from flash_query.lookups import MISSING
from flash_query.types import OrderBy, Pagination, PrefetchOptions, PrefetchSpec

from .base import copy_tree
from .resolver import QuerySetResolver, T


class QuerySetConstruction(QuerySetResolver[T]):
    """
    Fluent API for building and composing QuerySet transformations.

    This layer implements the chaining methods (like filter, order_by, limit)
    that return a new QuerySet instance, allowing for the step-by-step
    construction of queries. Nothing is executed here.
    """

    def all(self) -> Any:
        """Return a copy of this QuerySet."""
        return self._clone()

    def filter(self, expr: Mapping[str, Any] | None = None, **lookups: Any) -> Any:
        """
        Merge conditions into the current filters.

        Args:
            expr: A filter expression such as ``{"age": {"gte": 18}}``.
            **lookups: Keyword lookups (e.g., name="Ana", age__gte=18).

        Returns:
            A new QuerySet instance with the filters applied.

        Notes:
            - The merge is shallow: a top-level key given again, including
              ``AND``/``OR``/``NOT``, replaces the previous value.

        Examples:
            >>> User.objects.filter({"name": {"iContains": "an"}})
            >>> User.objects.filter(age__gte=18, group__id="g1")
        """
        additions: dict[str, Any] = dict(expr or {})
        if lookups:
            additions.update(self._parse_lookups(lookups))
        return self._clone(filters={**self._filters, **copy_tree(additions)})

    def exclude(self, expr: Mapping[str, Any] | None = None, **lookups: Any) -> Any:
        """
        Exclude rows matching the given conditions.

        Equivalent to ``filter({"NOT": expr})``, so a later ``exclude`` replaces
        an earlier one.

        Example:
            >>> User.objects.exclude({"status": "banned"})
        """
        negated: dict[str, Any] = dict(expr or {})
        if lookups:
            negated.update(self._parse_lookups(lookups))
        return self.filter({"NOT": negated})

    def order_by(self, *fields: str | OrderBy) -> Any:
        """
        Replace the ordering. A leading ``-`` sorts descending.

        Example:
            >>> User.objects.order_by("-age", "name")
        """
        return self._clone(ordering=[OrderBy.parse(f) for f in fields])

    def limit(self, count: int) -> Any:
        """
        Limit the number of records returned, keeping any offset.

        Example:
            >>> users = await User.objects.limit(10).execute()
        """
        return self._clone(pagination=self._pagination.merge(limit=count))

    def offset(self, count: int) -> Any:
        """Skip ``count`` records, keeping any limit."""
        return self._clone(pagination=self._pagination.merge(offset=count))

    def paginate(
        self,
        pagination: Pagination | Mapping[str, Any] | None = None,
        *,
        limit: Any = MISSING,
        offset: Any = MISSING,
    ) -> Any:
        """
        Merge pagination settings. Only the keys provided are changed.

        Example:
            >>> User.objects.paginate(limit=20, offset=40)
            >>> User.objects.paginate({"offset": 10})
        """
        changes: dict[str, Any] = {}
        if isinstance(pagination, Pagination):
            changes.update(pagination.model_dump(exclude_unset=True))
        elif pagination is not None:
            changes.update(pagination)
        if limit is not MISSING:
            changes["limit"] = limit
        if offset is not MISSING:
            changes["offset"] = offset
        return self._clone(pagination=self._pagination.merge(**changes))

    def only(self, *fields: str) -> Any:
        """
        Restrict the fields a backend should load. Backends may ignore this.

        Example:
            >>> User.objects.only("id", "name")
        """
        return self._clone(only=list(fields))

    def select_related(self, *fields: str) -> Any:
        """
        Resolve forward relation fields eagerly onto each result.

        Replaces any previous select-related fields. Names that are not
        relation fields are skipped at execution.

        Example:
            >>> users = await User.objects.select_related("group").execute()
            >>> users[0].group.name
        """
        return self._clone(select_related=list(fields))

    def prefetch_related(self, *fields: str | Mapping[str, Any]) -> Any:
        """
        Resolve reverse and many-to-many fields eagerly.

        Accepts field names or mappings of field name to options (``filters``,
        ``exclude``, ``only``, ``ordering``, ``pagination``). Accumulates with
        earlier calls. Names that are not fields of the model are ignored.

        Example:
            >>> Group.objects.prefetch_related(
            ...     "members", {"tags": {"ordering": ["name"], "pagination": {"limit": 5}}}
            ... )
        """
        known = self.model._meta.fields
        prefetch: dict[str, PrefetchSpec] = dict(self._prefetch_related)
        for item in fields:
            if isinstance(item, Mapping):
                for name, options in item.items():
                    if name in known:
                        prefetch[name] = _prefetch_spec(options)
            elif item in known:
                prefetch[item] = True
        return self._clone(prefetch_related=prefetch)

    def values_list(self, *fields: str, flat: bool = False) -> Any:
        """
        Project results into tuples after execution.

        ``flat=True`` returns bare values, and only applies when exactly one
        field is given; with several fields it is ignored.

        Example:
            >>> await User.objects.values_list("id", flat=True).execute()
            ['u1', 'u2']
        """
        return self._clone(values_list=list(fields), flat=flat)


def _prefetch_spec(options: Any) -> PrefetchSpec:
    if isinstance(options, PrefetchOptions):
        return options
    if isinstance(options, Mapping):
        return PrefetchOptions.model_validate(options)
    return True
