"""GraphQL API backend."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping

import httpx

from flash_query.config import query_settings
from flash_query.exceptions import BackendNotImplementedError, GraphQLResponseError
from flash_query.logging import get_logger
from flash_query.models import BaseModel, lower_first
from flash_query.types import FieldType, OrderBy

from .base import QueryBackend, T

if TYPE_CHECKING:
    from flash_query.types import ExecuteOptions

logger = get_logger(__name__)

Executor = Callable[[str, dict[str, Any]], Awaitable[Iterable[Mapping[str, Any]]]]


def convert_ordering(ordering: Iterable[OrderBy | str]) -> dict[str, str]:
    """
    Map ordering to the ``{field: "ASC" | "DESC"}`` input shape.

    Example:
        >>> convert_ordering([OrderBy.parse("-age"), OrderBy.parse("name")])
        {'age': 'DESC', 'name': 'ASC'}
    """
    order: dict[str, str] = {}
    for item in ordering:
        parsed = OrderBy.parse(item)
        order[parsed.field] = parsed.direction.value
    return order


class HTTPExecutor:
    """
    Executor that posts GraphQL requests over HTTP with httpx.

    The response must be a JSON object with a ``data`` key; the records are
    read from ``data[query_name]`` or, when no name is given, from the single
    root field. A response carrying ``errors`` raises GraphQLResponseError and
    HTTP error statuses raise ``httpx.HTTPStatusError``.

    Args:
        url: Endpoint URL.
        query_name: Root field holding the records.
        headers: Extra request headers (e.g. authorization).
        client: Shared ``httpx.AsyncClient``; one is opened per request otherwise.
        timeout: Request timeout in seconds (default: ``GRAPHQL_TIMEOUT``).
    """

    def __init__(
        self,
        url: str,
        *,
        query_name: str | None = None,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.url = url
        self.query_name = query_name
        self.headers = dict(headers or {})
        self.client = client
        self.timeout = timeout if timeout is not None else query_settings.GRAPHQL_TIMEOUT

    def __repr__(self) -> str:
        return f"<HTTPExecutor {self.url}>"

    async def __call__(self, document: str, variables: dict[str, Any]) -> list[Mapping[str, Any]]:
        payload = {"query": document, "variables": variables}
        if self.client is not None:
            response = await self._post(self.client, payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._post(client, payload)
        return self._records(response.json())

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        response = await client.post(self.url, json=payload, headers=self.headers)
        response.raise_for_status()
        return response

    def _records(self, body: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        if body.get("errors"):
            raise GraphQLResponseError(list(body["errors"]))
        data = body.get("data")
        if not isinstance(data, Mapping):
            raise GraphQLResponseError(["Response has no data."])
        if self.query_name is not None:
            records = data.get(self.query_name)
        else:
            records = next(iter(data.values()), None)
        return list(records or [])


class GraphQLBackend(QueryBackend[T]):
    """
    Backend that reads entities from a GraphQL API.

    The backend builds the query document and variables; ``executor`` sends
    them and returns the list of records found under the query field.
    HTTPExecutor covers plain HTTP endpoints; any other transport can be
    plugged in as an async callable.

    The generated document has the shape::

        query UserList($filters: UserFilter, $pagination: PaginationInput, $order: UserOrder) {
          users(filters: $filters, pagination: $pagination, order: $order) { id name group { id } }
        }

    Mutations are not implemented; subclass and override ``save``/``delete``
    to support them.

    Args:
        model: The model class served by this backend.
        executor: ``async (document, variables) -> records``.
        query_name: Root query field (default: lower-first model name + "s").
        operation_name: Operation name (default: model name + "List").
        filter_type: GraphQL input type of ``filters``.
        order_type: GraphQL input type of ``order``.
        pagination_type: GraphQL input type of ``pagination``.
    """

    def __init__(
        self,
        model: type[T],
        executor: Executor,
        *,
        query_name: str | None = None,
        operation_name: str | None = None,
        filter_type: str | None = None,
        order_type: str | None = None,
        pagination_type: str = "PaginationInput",
    ) -> None:
        super().__init__(model)
        name = model._meta.name
        self.executor = executor
        self.query_name = query_name or f"{lower_first(name)}s"
        self.operation_name = operation_name or f"{name}List"
        self.filter_type = filter_type or f"{name}Filter"
        self.order_type = order_type or f"{name}Order"
        self.pagination_type = pagination_type

    @classmethod
    def from_url(
        cls,
        model: type[T],
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ) -> GraphQLBackend[T]:
        """Build a backend that talks to ``url`` through an HTTPExecutor."""
        backend = cls(model, HTTPExecutor(url, headers=headers, client=client), **kwargs)
        backend.executor.query_name = backend.query_name
        return backend

    def build_selection(self, only: Iterable[str] | None = None) -> str:
        """
        Build the field selection for the model.

        The pk is always selected. Relation fields select the target's pk,
        nested models are expanded, and reverse fields are left out.
        """
        return self._selection(self.model, only, (self.model,))

    def _selection(
        self,
        model: type[BaseModel],
        only: Iterable[str] | None,
        seen: tuple[type[BaseModel], ...],
    ) -> str:
        meta = model._meta
        names = list(only) if only else list(meta.fields)
        if meta.pk_field in meta.fields and meta.pk_field not in names:
            names.insert(0, meta.pk_field)

        parts: list[str] = []
        for name in names:
            field = meta.fields.get(name)
            if field is None or field.type == FieldType.REVERSE.value:
                continue
            if field.is_relation or field.type == FieldType.MANY_TO_MANY.value:
                target = field.resolve_target(meta.registry)
                target_pk = target._meta.pk_field if target else meta.pk_field
                parts.append(f"{name} {{ {target_pk} }}")
            elif field.is_nested:
                target = field.resolve_target(meta.registry)
                if target is None or target in seen:
                    continue
                nested = self._selection(target, None, (*seen, target))
                parts.append(f"{name} {{ {nested} }}")
            else:
                parts.append(name)
        return " ".join(parts)

    def build_document(self, options: ExecuteOptions) -> str:
        selection = self.build_selection(options.only)
        return (
            f"query {self.operation_name}("
            f"$filters: {self.filter_type}, "
            f"$pagination: {self.pagination_type}, "
            f"$order: {self.order_type}) {{ "
            f"{self.query_name}("
            "filters: $filters, pagination: $pagination, order: $order"
            f") {{ {selection} }} }}"
        )

    def build_variables(self, options: ExecuteOptions) -> dict[str, Any]:
        pagination = options.pagination.model_dump(exclude_none=True)
        return {
            "filters": options.filters or None,
            "pagination": pagination or None,
            "order": convert_ordering(options.ordering) or None,
        }

    async def execute(self, options: ExecuteOptions) -> list[T]:
        document = self.build_document(options)
        variables = self.build_variables(options)
        logger.debug("Sending %s to %s", self.operation_name, self.executor)
        records = await self.executor(document, variables)
        results = [self.model.new(record) for record in records]
        await self.attach_related(results, options)
        return results

    async def save(self, entity: T) -> None:
        raise BackendNotImplementedError(f"{self.__class__.__name__}.save")

    async def delete(self, entity: T) -> None:
        raise BackendNotImplementedError(f"{self.__class__.__name__}.delete")
