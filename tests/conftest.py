"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from src.db.gateway import KEY_FIELDS, StorageError  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite on disk)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Fakes
# =============================================================================


class FakeStorage:
    """In-memory storage gateway with failure injection."""

    def __init__(self, seed: int = 0):
        self.collections: dict[str, dict[str, dict]] = {}
        self.fail_on: set[tuple[str, str]] = set()  # (operation, collection)
        self.calls: list[tuple[str, str]] = []
        self._rng = random.Random(seed)

    def _check(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        if (operation, collection) in self.fail_on:
            raise StorageError(f"{operation} {collection} failed")

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get(self, collection, key):
        self._check("get", collection)
        record = self.collections.get(collection, {}).get(str(key))
        return dict(record) if record is not None else None

    async def put(self, collection, record):
        self._check("put", collection)
        key = str(record[KEY_FIELDS.get(collection, "id")])
        self.collections.setdefault(collection, {})[key] = dict(record)

    async def bulk_put(self, collection, records):
        records = list(records)
        for record in records:
            await self.put(collection, record)
        return len(records)

    async def get_all(self, collection):
        self._check("get_all", collection)
        rows = self.collections.get(collection, {})
        return [dict(rows[k]) for k in sorted(rows)]

    async def get_random_keys(self, collection, index_field, value, limit):
        self._check("get_random_keys", collection)
        rows = self.collections.get(collection, {})
        keys = [k for k, r in rows.items() if index_field is None or r.get(index_field) == value]
        self._rng.shuffle(keys)
        return keys[:limit]


class FakeClock:
    """Manually advanced wall clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_question(subject: str, index: int, correct: int = 0, legacy: bool = False) -> dict:
    """A stored question record; `legacy` uses the old correct_option field."""
    record = {
        "id": f"{subject}_{index}",
        "subject": subject,
        "text": f"{subject} question {index}",
        "options": [f"{subject}-{index}-opt{i}" for i in range(4)],
        "explanation": f"Because of reason {index}",
    }
    if legacy:
        record["correct_option"] = correct
    else:
        record["correct_answer"] = correct
    return record


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings(tmp_path):
    """Settings isolated to a temporary data directory."""
    return Settings(
        data_dir=tmp_path / "data",
        tick_seconds=3600,  # Tests drive ticks manually
        oracle_timeout_seconds=2.0,
        simulation_runs=200,
    )


@pytest.fixture
def question_factory():
    """Factory for stored question records."""
    return make_question


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def seeded_storage(fake_storage):
    """Fake storage holding 20 polity questions (half with the legacy field)."""
    rows = fake_storage.collections.setdefault("questions", {})
    for i in range(20):
        record = make_question("polity", i, correct=i % 4, legacy=i % 2 == 0)
        rows[record["id"]] = record
    return fake_storage
