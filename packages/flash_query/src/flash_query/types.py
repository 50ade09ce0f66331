"""Value types shared by querysets and backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, field_validator

if TYPE_CHECKING:
    from .queryset import QuerySet

Filter = dict[str, Any]


class FieldType(str, Enum):
    """Built-in field kinds. Fields may also carry any other string."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    EMAIL = "email"
    ENUM = "enum"
    JSON = "json"
    RELATION = "relation"
    REVERSE = "reverse"
    MANY_TO_MANY = "many_to_many"
    NESTED = "nested"


class Ordering(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class OrderBy:
    """A single sort key."""

    field: str
    direction: Ordering = Ordering.ASC

    @classmethod
    def parse(cls, value: str | OrderBy) -> OrderBy:
        """
        Parse ``"-field"`` as descending and ``"field"`` as ascending.

        Example:
            >>> OrderBy.parse("-age")
            OrderBy(field='age', direction=<Ordering.DESC: 'DESC'>)
        """
        if isinstance(value, OrderBy):
            return value
        if value.startswith("-"):
            return cls(value[1:], Ordering.DESC)
        return cls(value, Ordering.ASC)

    @property
    def descending(self) -> bool:
        return self.direction == Ordering.DESC


class Pagination(BaseModel):
    """Limit/offset window applied after filtering and ordering."""

    model_config = ConfigDict(frozen=True)

    limit: NonNegativeInt | None = None
    offset: NonNegativeInt | None = None

    def merge(self, **changes: int | None) -> Pagination:
        return Pagination.model_validate({**self.model_dump(), **changes})


class PrefetchOptions(BaseModel):
    """Narrowing applied to a prefetched relation's queryset."""

    model_config = ConfigDict(frozen=True)

    filters: Filter | None = None
    exclude: Filter | None = None
    only: list[str] | None = None
    ordering: list[Union[str, OrderBy]] | None = Field(default=None)
    pagination: Pagination | None = None

    @field_validator("ordering", mode="before")
    @classmethod
    def _accept_single_ordering(cls, value: Any) -> Any:
        if isinstance(value, (str, OrderBy)):
            return [value]
        return value


PrefetchSpec = Union[PrefetchOptions, bool]


@dataclass
class ExecuteOptions:
    """Everything a backend needs to run a query."""

    filters: Filter = field(default_factory=dict)
    ordering: list[OrderBy] = field(default_factory=list)
    pagination: Pagination = field(default_factory=Pagination)
    only: list[str] | None = None
    select_related: list[str] = field(default_factory=list)
    prefetch_related: dict[str, PrefetchSpec] = field(default_factory=dict)
    related_querysets: dict[str, QuerySet[Any]] = field(default_factory=dict)
