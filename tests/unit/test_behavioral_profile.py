"""
Tests for the behavioral profile and its learning engine.
"""
import pytest

from src.oracle.profile import (
    DAY_MS,
    BehavioralEngine,
    BehavioralProfile,
    Trait,
    derive_signals,
    normalize_time,
)
from src.quiz.models import QuizResult


def make_result(flags, *, wrong=0, skipped=0, duration=600, impulse=0, switches=None) -> QuizResult:
    """Result whose questions carry the given is_correct flags in order."""
    questions = [{"id": f"q{i}", "is_correct": ok} for i, ok in enumerate(flags)]
    return QuizResult(
        id="r1",
        timestamp="2026-01-01T00:00:00+00:00",
        subject="polity",
        score=0.0,
        total_marks=len(flags) * 2.0,
        correct=sum(flags),
        wrong=wrong,
        skipped=skipped,
        accuracy=0,
        total_duration=duration,
        questions=questions,
        telemetry={"impulse_clicks": impulse, "switches": switches or {}, "time_per_question": {}},
    )


class TestModifiers:
    def test_default_profile(self):
        mods = BehavioralProfile().prediction_modifiers()

        assert mods == {
            "silly_mistake_mod": 0.985,
            "panic_mod": 1.02,
            "fatigue_mod": 1.0,
            "risk_mod": 1.03,
        }

    @pytest.mark.parametrize("risk,expected", [(0.2, 0.98), (0.3, 1.03), (0.7, 1.03), (0.71, 0.90)])
    def test_risk_curve(self, risk, expected):
        profile = BehavioralProfile()
        profile.traits["risk"].value = risk

        assert profile.prediction_modifiers()["risk_mod"] == expected

    def test_anxious_and_tired_profile(self):
        profile = BehavioralProfile()
        profile.traits["calm"].value = 0.3
        profile.traits["endurance"].value = 0.4

        mods = profile.prediction_modifiers()

        assert mods["panic_mod"] == 0.88
        assert mods["fatigue_mod"] == 0.95
        assert profile.archetype() == "The Aspirant"

    def test_archetypes(self):
        profile = BehavioralProfile()
        profile.traits["calm"].value = 0.2

        assert profile.archetype() == "The Nervous Rookie"

    def test_stored_profile_merges_over_defaults(self):
        profile = BehavioralProfile.from_dict({"user_id": "u", "focus": {"value": 0.9, "confidence": 0.4}})

        assert profile.trait("focus") == 0.9
        assert profile.trait("flexibility") == 0.5
        assert profile.traits["calm"].confidence == 0.0


class TestTraitUpdate:
    def test_learning_rate_is_damped_by_confidence(self):
        fresh = Trait(value=0.5, confidence=0.0)
        settled = Trait(value=0.5, confidence=1.0)

        fresh.update(1.0, 0.15)
        settled.update(0.9, 0.15)

        assert fresh.value == pytest.approx(0.575)
        assert settled.value == pytest.approx(0.53)
        assert fresh.confidence == pytest.approx(0.05)
        assert settled.confidence == 1.0


class TestSignals:
    def test_normalize_time(self):
        assert normalize_time(5_000) == 1.0
        assert normalize_time(120_000) == 0.0
        assert normalize_time(65_000) == pytest.approx(0.5)

    def test_focus_penalizes_impulses_and_switches(self):
        result = make_result([True] * 10, impulse=4, switches={"0": 5})

        signals = derive_signals(result)

        assert signals["focus"] == pytest.approx(1.0 - 0.4 * 0.5 - 0.5 * 0.2)

    @pytest.mark.parametrize(
        "flags,expected",
        [
            ([True, True] + [True] * 4 + [False, False], 0.3),  # Collapsed at the end
            ([False, False] + [True] * 6, 0.8),  # Warm-up
            ([True] * 8, 0.6),  # Steady
            ([True] * 7, 0.5),  # Too short to judge
        ],
    )
    def test_endurance(self, flags, expected):
        assert derive_signals(make_result(flags))["endurance"] == expected

    def test_risk(self):
        assert derive_signals(make_result([False] * 10, skipped=5))["risk"] == 0.2
        assert derive_signals(make_result([False] * 10, wrong=5))["risk"] == 0.8
        assert derive_signals(make_result([False] * 10, wrong=2, skipped=2))["risk"] == 0.5

    def test_calm_counts_switches_on_wrong_answers(self):
        flags = [False, True, False, True]
        result = make_result(flags, wrong=2, switches={"0": 2, "1": 3, "2": 2})

        # 4 switches on wrong questions / 2 wrong
        assert derive_signals(result)["calm"] == pytest.approx(1.0 - 2 * 0.15)

    def test_speed(self):
        result = make_result([True] * 10, duration=100)

        assert derive_signals(result)["speed"] == 1.0

    def test_empty_session_yields_nothing(self):
        assert derive_signals(make_result([])) is None


class TestBehavioralEngine:
    @pytest.mark.asyncio
    async def test_load_creates_profile(self, fake_storage, clock):
        engine = BehavioralEngine(fake_storage, user_id="user_1", clock=clock)

        profile = await engine.load()

        stored = fake_storage.collections["profiles"]["user_1"]
        assert stored["focus"] == {"value": 0.5, "confidence": 0.0}
        assert stored["last_update"] == int(clock() * 1000)
        assert profile.total_sessions == 0

    @pytest.mark.asyncio
    async def test_decay_after_inactivity(self, fake_storage, clock):
        last = int(clock() * 1000) - 10 * DAY_MS
        fake_storage.collections["profiles"] = {
            "user_1": {"user_id": "user_1", "last_update": last, "calm": {"value": 0.7, "confidence": 0.8}},
        }
        engine = BehavioralEngine(fake_storage, clock=clock)

        profile = await engine.load()

        assert profile.traits["calm"].confidence == pytest.approx(0.8 * 0.98**10)
        assert profile.trait("calm") == 0.7

    @pytest.mark.asyncio
    async def test_no_decay_within_a_day(self, fake_storage, clock):
        last = int(clock() * 1000) - DAY_MS // 2
        fake_storage.collections["profiles"] = {
            "user_1": {"user_id": "user_1", "last_update": last, "calm": {"value": 0.7, "confidence": 0.8}},
        }
        engine = BehavioralEngine(fake_storage, clock=clock)

        profile = await engine.load()

        assert profile.traits["calm"].confidence == 0.8

    @pytest.mark.asyncio
    async def test_quiz_result_updates_and_persists(self, fake_storage, clock):
        engine = BehavioralEngine(fake_storage, clock=clock)
        await engine.load()

        profile = await engine.process_quiz_result(make_result([True] * 10, duration=100))

        assert profile.total_sessions == 1
        assert profile.trait("speed") == pytest.approx(0.575)
        assert profile.traits["speed"].confidence == pytest.approx(0.05)
        assert fake_storage.collections["profiles"]["user_1"]["total_sessions"] == 1

    @pytest.mark.asyncio
    async def test_drill_uses_slower_rate(self, fake_storage, clock):
        engine = BehavioralEngine(fake_storage, clock=clock)
        await engine.load()

        profile = await engine.record_drill("precision", 1.0)

        assert profile.trait("precision") == pytest.approx(0.54)

        with pytest.raises(ValueError):
            await engine.record_drill("charisma", 1.0)
