"""Indexed local store backend on SQLAlchemy's asyncio engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from sqlalchemy import JSON, Column, MetaData, String, Table, delete, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from flash_query.config import query_settings
from flash_query.exceptions import BackendNotImplementedError
from flash_query.logging import get_logger
from flash_query.lookups import MISSING, Lookup
from flash_query.match import get_by_path

from .base import MatchingBackend, T, missing_pk

if TYPE_CHECKING:
    from sqlalchemy.sql import ColumnElement

    from flash_query.lookups import LookupRegistry
    from flash_query.types import ExecuteOptions

logger = get_logger(__name__)


def _index_column(path: str) -> str:
    return "ix_" + path.replace(".", "__")


def _index_value(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _exact_operand(condition: Any) -> Any:
    if isinstance(condition, Mapping) and set(condition) == {Lookup.EXACT.value}:
        return condition[Lookup.EXACT.value]
    return MISSING


class LocalStoreBackend(MatchingBackend[T]):
    """
    Persistent backend storing one row per entity in a SQL table.

    Each row holds the primary key, the entity's external representation as
    JSON, and one indexed column per declared index path. Exact string
    matches on indexed paths (and on the primary key) are pushed into SQL;
    all filters are then evaluated in process, so results are identical to
    the in-memory backend. Requires an asyncio engine (e.g. aiosqlite).

    Examples:
        >>> from sqlalchemy.ext.asyncio import create_async_engine
        >>> engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        >>> backend = LocalStoreBackend(User, engine, indexes=("email",))
        >>> await backend.initialize()  # Create tables
        >>> User.set_backend(backend)
    """

    def __init__(
        self,
        model: type[T],
        engine: AsyncEngine,
        *,
        table_name: str | None = None,
        indexes: Iterable[str] = (),
        auto_generate_pk: bool | None = None,
        id_factory: Callable[[], Any] | None = None,
        lookups: LookupRegistry | None = None,
    ) -> None:
        super().__init__(
            model,
            lookups=lookups,
            auto_generate_pk=auto_generate_pk,
            id_factory=id_factory,
        )
        self._engine = engine
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self.indexes = tuple(indexes)
        self.metadata = MetaData()
        self.table = Table(
            table_name or f"flash_query_{model._meta.name.lower()}",
            self.metadata,
            Column("pk", String(255), primary_key=True),
            Column("data", JSON, nullable=False),
            *(
                Column(_index_column(path), String(255), index=True, nullable=True)
                for path in self.indexes
            ),
        )

    @classmethod
    def from_url(cls, model: type[T], url: str | None = None, **kwargs: Any) -> LocalStoreBackend[T]:
        """
        Build a backend with its own engine.

        ``url`` defaults to ``query_settings.LOCAL_STORE_URL``. Call
        ``initialize()`` before use.
        """
        engine = create_async_engine(
            url or query_settings.LOCAL_STORE_URL,
            echo=query_settings.LOCAL_STORE_ECHO,
        )
        return cls(model, engine, **kwargs)

    async def initialize(self) -> None:
        """
        Creates the backing table if it doesn't exist.

        Also initializes the session factory. This must be called before
        performing any operations.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(self.metadata.create_all)

        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.debug("Initialized local store table %s", self.table.name)

    async def close(self) -> None:
        """Dispose of the engine's connections."""
        await self._engine.dispose()

    def _get_session(self) -> AsyncSession:
        """Helper to create a new async session."""
        if self._session_factory is not None:
            return self._session_factory()
        msg = "Store not initialized. Call initialize() first."
        raise RuntimeError(msg)

    def _prefilter(self, filters: Mapping[str, Any]) -> list[ColumnElement[bool]]:
        """SQL conditions that only narrow the rows the matcher has to check."""
        if filters.get("OR") is not None:
            return []
        conditions: list[ColumnElement[bool]] = []
        pk_value = _exact_operand(filters.get(self.model._meta.pk_field))
        if isinstance(pk_value, (str, int)) and not isinstance(pk_value, bool):
            conditions.append(self.table.c.pk == str(pk_value))
        for path in self.indexes:
            value = _exact_operand(filters.get(path))
            if isinstance(value, str):
                conditions.append(self.table.c[_index_column(path)] == value)
        return conditions

    async def candidates(self, options: ExecuteOptions) -> list[T]:
        stmt = select(self.table.c.data)
        conditions = self._prefilter(options.filters)
        if conditions:
            stmt = stmt.where(*conditions)
        async with self._get_session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self.model.new(row) for row in rows]

    def _row_values(self, entity: T) -> dict[str, Any]:
        values: dict[str, Any] = {"data": entity.to_dict(external=True)}
        for path in self.indexes:
            values[_index_column(path)] = _index_value(get_by_path(entity, path))
        return values

    async def save(self, entity: T) -> None:
        """
        Upsert ``entity`` by primary key.

        Raises:
            MissingPrimaryKeyError: If the entity has no pk and
                auto-generation is disabled.
        """
        key = str(self.ensure_pk(entity))
        stmt = self._upsert(key, self._row_values(entity))
        async with self._get_session() as session:
            await session.execute(stmt)
            await session.commit()

    def _upsert(self, key: str, values: dict[str, Any]) -> Any:
        """Single-statement insert-or-update for the engine's dialect."""
        dialect = self._engine.dialect.name
        if dialect in ("sqlite", "postgresql"):
            factory = sqlite_insert if dialect == "sqlite" else postgresql_insert
            stmt = factory(self.table).values(pk=key, **values)
            return stmt.on_conflict_do_update(index_elements=[self.table.c.pk], set_=values)
        if dialect in ("mysql", "mariadb"):
            return mysql_insert(self.table).values(pk=key, **values).on_duplicate_key_update(**values)
        raise BackendNotImplementedError(f"{self.__class__.__name__} upsert on {dialect}")

    async def delete(self, entity: T) -> None:
        pk = entity.pk
        if missing_pk(pk):
            logger.debug("Ignoring delete of %r without primary key", entity)
            return
        async with self._get_session() as session:
            await session.execute(delete(self.table).where(self.table.c.pk == str(pk)))
            await session.commit()

    async def clear(self) -> None:
        """Delete every row of the backing table."""
        async with self._get_session() as session:
            await session.execute(delete(self.table))
            await session.commit()
