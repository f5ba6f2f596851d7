"""
Tests for quiz models and the persisted session record.
"""
import json

import pytest

from src.quiz.models import AcademicState, Question, QuizTelemetry, SessionState, SessionStatus
from src.quiz.session_store import SessionStore


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "nested" / "quiz_state.json")


def active_state(question_factory) -> SessionState:
    questions = [Question.from_record(question_factory("polity", i, correct=1)) for i in range(3)]
    return SessionState(
        active=True,
        status=SessionStatus.ACTIVE,
        subject_id="polity",
        start_time="2026-01-01T00:00:00+00:00",
        total_duration=360,
        time_left=200,
        questions=questions,
        answers={0: 1, 2: 3},
        bookmarks=dict.fromkeys(["polity_2", "polity_0"]),
        current_index=2,
        telemetry=QuizTelemetry(
            impulse_clicks=1,
            switches={0: 2},
            time_per_question={0: 4000, 2: 1200},
            question_start_times={0: 1, 1: 2, 2: 3},
        ),
    )


class TestQuestion:
    def test_legacy_field_wins_over_canonical(self, question_factory):
        record = question_factory("polity", 1, correct=1)
        record["correct_option"] = 3

        assert Question.from_record(record).correct_answer == 3

    def test_camel_case_is_accepted(self, question_factory):
        record = question_factory("polity", 1)
        del record["correct_answer"]
        record["correctAnswer"] = 2

        assert Question.from_record(record).correct_answer == 2

    def test_out_of_range_index_is_rejected(self, question_factory):
        record = question_factory("polity", 1, correct=7)

        with pytest.raises(ValueError):
            Question.from_record(record)

    def test_extra_fields_pass_through(self, question_factory):
        record = question_factory("polity", 1)

        data = Question.from_record(record).to_dict()

        assert data["explanation"] == record["explanation"]
        assert "is_correct" not in data


class TestSessionStore:
    def test_round_trip_preserves_progress(self, store, question_factory):
        state = active_state(question_factory)

        store.save(state)
        loaded = store.load()

        assert loaded.answers == {0: 1, 2: 3}
        assert list(loaded.bookmarks) == ["polity_2", "polity_0"]
        assert loaded.current_index == 2
        assert loaded.telemetry.switches == {0: 2}
        assert loaded.status is SessionStatus.ACTIVE

    def test_bookmarks_are_a_list_on_disk(self, store, question_factory):
        store.save(active_state(question_factory))

        raw = json.loads(store.path.read_text(encoding="utf-8"))

        assert raw["bookmarks"] == ["polity_2", "polity_0"]

    def test_inactive_state_is_never_written(self, store):
        assert store.save(SessionState()) is None
        assert not store.exists()

    def test_corrupt_record_is_discarded(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text('{"active": true, "questions": [{"id": 1}]}', encoding="utf-8")

        assert store.load() is None
        assert not store.exists()

    def test_missing_telemetry_is_repaired(self, store, question_factory):
        store.path.parent.mkdir(parents=True)
        record = {
            "active": True,
            "subject_id": "polity",
            "questions": [question_factory("polity", 0)],
            "total_duration": 120,
            "time_left": 120,
        }
        store.path.write_text(json.dumps(record), encoding="utf-8")

        loaded = store.load()

        assert loaded.telemetry.impulse_clicks == 0
        assert loaded.telemetry.question_start_times == {}
        assert loaded.bookmarks == {}

    @pytest.mark.parametrize(
        "changes",
        [
            {"current_index": 7},
            {"current_index": -1},
            {"questions": []},
            {"time_left": 500},
            {"time_left": -3},
            {"answers": {"9": 0}},
            {"answers": {"0": 4}},
        ],
        ids=["index-past-end", "negative-index", "no-questions", "time-over-budget", "negative-time",
             "answer-for-missing-question", "answer-option-out-of-range"],
    )
    def test_inconsistent_record_is_discarded(self, store, question_factory, changes):
        record = active_state(question_factory).to_dict()
        record.update(changes)
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps(record), encoding="utf-8")

        assert store.load() is None
        assert not store.exists()

    def test_inactive_record_skips_live_checks(self):
        state = SessionState.from_dict({"active": False, "current_index": 4})

        assert state.current_index == 4

    def test_clear_reports_whether_a_record_existed(self, store, question_factory):
        store.save(active_state(question_factory))

        assert store.clear() is True
        assert store.clear() is False


class TestAcademicState:
    def test_running_mean(self):
        entry = AcademicState(subject_id="economy")

        entry.record_score(10, "t1")
        entry.record_score(0, "t2")

        assert entry.mastery == 5
        assert entry.attempts == 2
        assert entry.last_studied == "t2"

    def test_round_trip_keeps_unknown_fields(self):
        data = {"subject_id": "economy", "mastery": 3.0, "attempts": 2, "stability": 0.4}

        assert AcademicState.from_dict(data).to_dict()["stability"] == 0.4
