import itertools

import pytest
import pytest_asyncio
from flash_query import MemoryBackend, Model, model_signals
from sqlalchemy.ext.asyncio import create_async_engine

from .models import registry


@pytest.fixture(autouse=True)
def memory_backends():
    """
    Binds a fresh MemoryBackend to every registered test model so no state
    leaks between tests, and drops signal handlers afterwards.
    """
    backends = {}
    for model in registry:
        if issubclass(model, Model):
            backends[model] = model.set_backend(MemoryBackend)
    yield backends
    model_signals.clear()


@pytest.fixture
def id_factory():
    """Deterministic primary keys: 'id-1', 'id-2', ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine on the aiosqlite driver."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    yield engine
    await engine.dispose()
