"""
Integration Tests for the SQLAlchemy storage gateway and the seeder.

Runs against a throwaway SQLite file per test.
"""

import json

import pytest

from src.db.gateway import ACADEMIC_STATE, HISTORY, QUESTIONS, SqlStorageGateway, StorageError
from src.db.seeder import needs_seeding, normalize_record, seed_questions

pytestmark = pytest.mark.integration


@pytest.fixture
def storage(tmp_path):
    """Gateway on a fresh SQLite file (tables are created on first use)."""
    gateway = SqlStorageGateway.from_url(f"sqlite:///{tmp_path / 'db' / 'oracle.db'}")
    yield gateway
    gateway.engine.dispose()


class TestSqlStorageGateway:
    @pytest.mark.asyncio
    async def test_put_and_get(self, storage):
        await storage.put(ACADEMIC_STATE, {"subject_id": "polity", "mastery": 4.5, "attempts": 1})

        assert await storage.get(ACADEMIC_STATE, "polity") == {"subject_id": "polity", "mastery": 4.5, "attempts": 1}
        assert await storage.get(ACADEMIC_STATE, "economy") is None

    @pytest.mark.asyncio
    async def test_put_replaces_existing_record(self, storage):
        await storage.put(HISTORY, {"id": "r1", "score": 2})
        await storage.put(HISTORY, {"id": "r1", "score": 8})

        rows = await storage.get_all(HISTORY)

        assert rows == [{"id": "r1", "score": 8}]

    @pytest.mark.asyncio
    async def test_collections_are_isolated(self, storage):
        await storage.put(HISTORY, {"id": "x"})
        await storage.put(QUESTIONS, {"id": "x", "subject": "polity"})

        assert len(await storage.get_all(HISTORY)) == 1
        assert (await storage.get(QUESTIONS, "x"))["subject"] == "polity"

    @pytest.mark.asyncio
    async def test_missing_key_field_is_rejected(self, storage):
        with pytest.raises(StorageError):
            await storage.put(ACADEMIC_STATE, {"mastery": 1})

    @pytest.mark.asyncio
    async def test_random_keys_filter_by_field(self, storage, question_factory):
        records = [question_factory("polity", i) for i in range(6)]
        records += [question_factory("economy", i) for i in range(4)]
        assert await storage.bulk_put(QUESTIONS, records) == 10

        polity = await storage.get_random_keys(QUESTIONS, "subject", "polity", 15)
        limited = await storage.get_random_keys(QUESTIONS, "subject", "economy", 3)
        everything = await storage.get_random_keys(QUESTIONS, None, None, 100)

        assert sorted(polity) == sorted(f"polity_{i}" for i in range(6))
        assert len(limited) == 3
        assert all(key.startswith("economy_") for key in limited)
        assert len(everything) == 10

    @pytest.mark.asyncio
    async def test_delete(self, storage):
        await storage.put(HISTORY, {"id": "r1"})

        await storage.delete(HISTORY, "r1")

        assert await storage.get(HISTORY, "r1") is None


class TestSeeder:
    @pytest.fixture
    def question_dir(self, tmp_path, question_factory):
        directory = tmp_path / "bank"
        directory.mkdir()

        polity = [question_factory("polity", i, correct=1, legacy=True) for i in range(4)]
        for record in polity:
            del record["subject"], record["id"]
        polity.append({"text": "broken", "options": ["a", "b"], "correct_answer": 5})
        (directory / "polity.json").write_text(json.dumps(polity), encoding="utf-8")

        economy = [question_factory("economy", i, correct=2) for i in range(3)]
        (directory / "economy.json").write_text(json.dumps(economy), encoding="utf-8")
        return directory

    @pytest.mark.asyncio
    async def test_seed_directory(self, storage, question_dir):
        result = await seed_questions(storage, question_dir)

        assert result.total_read == 8
        assert result.total_seeded == 7
        assert result.skipped == 1
        assert result.per_subject == {"economy": 3, "polity": 4}

        # economy.json sorts first, so polity items start at index 3
        stored = await storage.get(QUESTIONS, "json_polity_3")
        assert stored["subject"] == "polity"
        assert stored["correct_answer"] == 1
        assert "correct_option" not in stored

    @pytest.mark.asyncio
    async def test_needs_seeding(self, storage, question_dir):
        assert await needs_seeding(storage) is True

        await seed_questions(storage, question_dir)

        assert await needs_seeding(storage) is False

    @pytest.mark.asyncio
    async def test_non_list_file_is_rejected(self, storage, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"questions": []}', encoding="utf-8")

        with pytest.raises(ValueError):
            await seed_questions(storage, path)

    def test_record_without_subject_is_rejected(self):
        with pytest.raises(ValueError):
            normalize_record({"text": "t", "options": ["a"], "correct_answer": 0}, None, 0)
