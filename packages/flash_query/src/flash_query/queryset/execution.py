from __future__ import annotations

from typing import (
    Any,
    Mapping,
    Sequence,
)

from flash_query.exceptions import DoesNotExistError, MultipleObjectsReturnedError
from flash_query.logging import get_logger, scoped_model_context
from flash_query.lookups import MISSING
from flash_query.match import get_by_path

from .construction import QuerySetConstruction, T

logger = get_logger(__name__)


class QuerySetExecution(QuerySetConstruction[T]):
    """
    Terminal operations that run the query on the backend.

    This layer compiles the QuerySet state into ``ExecuteOptions``, hands
    them to the backend, and post-processes the results (``values_list``
    projection, single-object retrieval, counting).
    """

    async def execute(self) -> list[Any]:
        """
        Run the query and return the results.

        Returns:
            A list of entities, or of tuples/values when ``values_list`` was
            requested.

        Raises:
            RelatedModelNotFoundError: If a select/prefetch target model
                cannot be resolved.

        Example:
            >>> users = await User.objects.filter(age__gte=18).execute()
        """
        with scoped_model_context(self.model._meta.name):
            options = self._build_options()
            logger.debug(
                "Executing query filters=%s ordering=%s pagination=%s",
                options.filters,
                options.ordering,
                options.pagination,
            )
            results = await self.backend.execute(options)
        return self._project(results)

    async def fetch(self) -> list[Any]:
        """Alias for ``execute()``."""
        return await self.execute()

    def _project(self, results: Sequence[Any]) -> list[Any]:
        fields = self._values_list
        if fields is None:
            return list(results)
        if not fields:
            fields = tuple(self.model._meta.fields)
        if self._flat and len(fields) == 1:
            return [_value(row, fields[0]) for row in results]
        return [tuple(_value(row, f) for f in fields) for row in results]

    async def get(self, expr: Mapping[str, Any] | None = None, **lookups: Any) -> Any:
        """
        Return the single object matching the filters.

        Raises:
            DoesNotExistError: If no object matches.
            MultipleObjectsReturnedError: If more than one object matches.

        Example:
            >>> ana = await User.objects.get(name="Ana")
        """
        qs = self.filter(expr, **lookups).limit(2)
        results = await qs.execute()
        if not results:
            raise DoesNotExistError(self.model._meta.name, qs._filters)
        if len(results) > 1:
            raise MultipleObjectsReturnedError(self.model._meta.name, qs._filters)
        return results[0]

    async def first(self) -> Any | None:
        """
        Return the first matching object, or None if the result is empty.

        Example:
            >>> user = await User.objects.order_by("-age").first()
        """
        results = await self.limit(1).execute()
        return results[0] if results else None

    async def count(self) -> int:
        """Return the number of matching objects (the query is executed)."""
        return len(await self.execute())

    async def exists(self) -> bool:
        """Return True if at least one object matches."""
        return len(await self.limit(1).execute()) > 0


def _value(row: Any, path: str) -> Any:
    value = get_by_path(row, path)
    return None if value is MISSING else value
