"""
Pytest configuration and fixtures for Courtside tests.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

# Add src directory to path so imports work without an editable install
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from courtside.database.db_connection import ConnectionManager  # noqa: E402
from courtside.database.db_schema import SchemaManager  # noqa: E402


@pytest_asyncio.fixture
async def db(tmp_path):
    """A ConnectionManager opened on a fresh database with the schema applied."""
    manager = ConnectionManager()
    await manager.open(tmp_path / "test.db")
    await SchemaManager.initialize_schema(manager.connection)
    yield manager
    await manager.close()


@pytest.fixture
def http_error():
    """Factory for real discord.HTTPException subclasses (NotFound, Forbidden, ...)."""

    def _make(exc_type, status: int = 404, message: str = "error"):
        response = MagicMock(status=status, reason=message)
        return exc_type(response, message)

    return _make


class FakeClock:
    """Callable returning a settable unix time."""

    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
