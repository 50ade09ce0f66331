"""In-memory backend with pluggable storage."""

from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from flash_query.logging import get_logger

from .base import MatchingBackend, T, missing_pk

if TYPE_CHECKING:
    from flash_query.lookups import LookupRegistry
    from flash_query.models import Model
    from flash_query.types import ExecuteOptions

logger = get_logger(__name__)


class MemoryStorage(ABC):
    """
    Where a ``MemoryBackend`` keeps its entities between writes.

    ``load`` runs once when the backend is created; ``dump`` after every write.
    """

    @abstractmethod
    def load(self, model: type[Model]) -> dict[Any, Model]:
        """Return the stored entities keyed by primary key."""
        ...

    @abstractmethod
    def dump(self, model: type[Model], items: Mapping[Any, Model]) -> None:
        """Persist the current entities."""
        ...


class InMemoryStorage(MemoryStorage):
    """Process-local storage. Data is lost when the process exits."""

    def load(self, model: type[Model]) -> dict[Any, Model]:
        return {}

    def dump(self, model: type[Model], items: Mapping[Any, Model]) -> None:
        return None


class JSONFileStorage(MemoryStorage):
    """
    Keeps entities in a JSON file as a list of external records.

    Examples:
        >>> backend = MemoryBackend(User, JSONFileStorage("users.json"))
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self, model: type[Model]) -> dict[Any, Model]:
        if not self.path.exists():
            return {}
        records = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        items = {}
        for record in records:
            entity = model.new(record)
            items[entity.pk] = entity
        logger.debug("Loaded %d %s record(s) from %s", len(items), model.__name__, self.path)
        return items

    def dump(self, model: type[Model], items: Mapping[Any, Model]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        records = [entity.to_dict(external=True) for entity in items.values()]
        self.path.write_text(json.dumps(records, indent=2), encoding="utf-8")


class MemoryBackend(MatchingBackend[T]):
    """
    Backend keeping entities in a dict keyed by primary key.

    Saved entities are stored as snapshots and query results are copies, so
    mutating a result never changes the stored data until it is saved.

    Args:
        model: The model class served by this backend.
        storage: Persistence for the entities (default: ``InMemoryStorage``).
        auto_generate_pk: Assign a pk on save when missing. Defaults to
            ``query_settings.AUTO_GENERATE_PK``.
        id_factory: Produces new primary keys (default: UUID4 strings).

    Examples:
        >>> class User(Model, backend=MemoryBackend):
        ...     name = StringField()
        >>> await User(name="Ana").save()
        >>> await User.objects.count()
        1
    """

    def __init__(
        self,
        model: type[T],
        storage: MemoryStorage | None = None,
        *,
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
        self.storage = storage or InMemoryStorage()
        self._items: dict[Any, T] = self.storage.load(model)  # type: ignore[assignment]

    async def candidates(self, options: ExecuteOptions) -> list[T]:
        return list(self._items.values())

    async def execute(self, options: ExecuteOptions) -> list[T]:
        matched = self.apply_query(await self.candidates(options), options)
        results = [copy.deepcopy(entity) for entity in matched]
        await self.attach_related(results, options)
        return results

    def _store(self, entity: T) -> None:
        self._items[self.ensure_pk(entity)] = copy.deepcopy(entity)

    async def save(self, entity: T) -> None:
        """
        Upsert ``entity``, generating a pk when it has none.

        Raises:
            MissingPrimaryKeyError: If the entity has no pk and
                auto-generation is disabled.
        """
        self._store(entity)
        self.storage.dump(self.model, self._items)

    async def delete(self, entity: T) -> None:
        pk = entity.pk
        if missing_pk(pk):
            logger.debug("Ignoring delete of %r without primary key", entity)
            return
        if self._items.pop(pk, None) is not None:
            self.storage.dump(self.model, self._items)

    def preload(self, items: Iterable[T | Mapping[str, Any]]) -> None:
        """Store entities (or raw records) without signals or validation."""
        for item in items:
            entity = item if isinstance(item, self.model) else self.model.new(item)
            self._store(entity)
        self.storage.dump(self.model, self._items)

    def all(self) -> list[T]:
        """Return copies of every stored entity."""
        return [copy.deepcopy(entity) for entity in self._items.values()]

    def clear(self) -> None:
        self._items.clear()
        self.storage.dump(self.model, self._items)
