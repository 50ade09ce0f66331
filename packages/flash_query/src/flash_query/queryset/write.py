from __future__ import annotations

from .execution import QuerySetExecution, T


class QuerySetWrite(QuerySetExecution[T]):
    """
    Single-entity writes delegated to the backend.

    These do not emit signals or validate; ``Model.save()`` and
    ``Model.delete()`` wrap them with the entity lifecycle.
    """

    async def save(self, entity: T) -> None:
        """
        Upsert ``entity`` by primary key.

        Raises:
            MissingPrimaryKeyError: If the entity has no pk and the backend
                does not generate one.
        """
        await self.backend.save(entity)

    async def delete(self, entity: T) -> None:
        """Remove ``entity`` by primary key."""
        await self.backend.delete(entity)
