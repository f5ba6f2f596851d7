"""
Quiz Engine: the session state machine.

Owns exactly one live quiz session:

    IDLE -> ACTIVE -> SUBMITTED   (scored and written to history)
                   -> ABORTED     (no questions stored for the subject)

Starting a session while one is active terminates the old one first. Every
mutation is persisted to the session record (orphan recovery) and announced
on the event bus. A single countdown task decrements the remaining time once
per tick and auto-submits at zero; explicit and timer-driven submits share
the same `active` guard, so a session is scored at most once.
"""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from loguru import logger

from config import Settings, get_settings
from src.core.events import QUIZ_COMPLETE, QUIZ_TICK, QUIZ_UPDATE, EventBus, SessionUpdate, TickEvent
from src.db.gateway import ACADEMIC_STATE, HISTORY, QUESTIONS, StorageGateway
from src.quiz.models import AcademicState, Question, QuizResult, SessionState, SessionStatus
from src.quiz.session_store import SessionStore

# Session update kinds carried by quiz-update events
SESSION_START = "SESSION_START"
ANSWER_SAVED = "ANSWER_SAVED"
BOOKMARK_TOGGLED = "BOOKMARK_TOGGLED"
NAVIGATE = "NAVIGATE"
SESSION_SUBMITTED = "SESSION_SUBMITTED"
SESSION_TERMINATED = "SESSION_TERMINATED"


class NoQuestionsError(RuntimeError):
    """No questions are stored for the requested subject (unseeded database)."""

    code = "QUIZ_ABORT_NO_DATA"

    def __init__(self, subject_id: str):
        super().__init__(f"{self.code}: no questions found for subject '{subject_id}'")
        self.subject_id = subject_id


def randomize_options(record: dict[str, Any], rng: random.Random | None = None) -> Question:
    """
    Load a stored question with its options in a fresh random order.

    The record is deep-copied and normalized (legacy `correct_option`
    resolved), the options are shuffled, and `correct_answer` is recomputed
    as the new position of the originally-correct option.
    """
    question = Question.from_record(record)
    indexed = list(enumerate(question.options))
    (rng or random).shuffle(indexed)
    new_correct = next(pos for pos, (orig, _) in enumerate(indexed) if orig == question.correct_answer)
    question.options = [text for _, text in indexed]
    question.correct_answer = new_correct
    question.is_correct = None
    return question


class QuizEngine:
    """
    Orchestrator for a timed quiz session.

    Usage:
        engine = QuizEngine(storage, SessionStore(path), events=bus)
        await engine.start_session("polity")
        engine.submit_answer(2)
        engine.next_question()
        result = await engine.submit_quiz()
    """

    def __init__(
        self,
        storage: StorageGateway,
        session_store: SessionStore,
        events: EventBus | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
        on_complete: Callable[[QuizResult], Any] | None = None,
    ):
        """
        Initialize the engine.

        Args:
            storage: Gateway for questions, history and academic state
            session_store: Persisted session record (orphan recovery)
            events: Bus for tick/update/complete notifications
            settings: Application settings (cached settings if None)
            clock: Wall-clock source in seconds
            rng: Random source for option shuffling
            on_complete: Called (and awaited if it returns an awaitable) with each result
        """
        self.storage = storage
        self.session_store = session_store
        self.events = events or EventBus()
        self.settings = settings or get_settings()
        self._clock = clock
        self._rng = rng or random.Random()
        self._on_complete = on_complete

        self.state = SessionState()
        self._timer_task: asyncio.Task[None] | None = None

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    async def start_session(self, subject_id: str) -> SessionState:
        """
        Start (or resume) a session for a subject.

        An orphaned active record for the same subject is restored as-is.
        Otherwise any current session is terminated and a fresh one is
        loaded.

        Raises:
            NoQuestionsError: If no questions are stored for the subject
        """
        logger.info("Starting session for {}", subject_id)

        saved = self.session_store.load()
        if saved is not None and saved.active and saved.subject_id == subject_id:
            logger.info("Restoring orphan session for {} at question {}", subject_id, saved.current_index + 1)
            self._stop_timer()
            saved.status = SessionStatus.ACTIVE
            self.state = saved
            self._start_timer()
            self._emit(SESSION_START, restored=True)
            return self.state

        self.terminate_session()

        state = SessionState(
            active=True,
            status=SessionStatus.ACTIVE,
            subject_id=subject_id,
            start_time=self._now_iso(),
        )
        self.state = state

        questions = await self._fetch_questions(subject_id)
        if not questions:
            state.active = False
            state.status = SessionStatus.ABORTED
            logger.error("No questions found for {}; is the database seeded?", subject_id)
            raise NoQuestionsError(subject_id)

        state.questions = questions
        state.total_duration = len(questions) * self.settings.seconds_per_question
        state.time_left = state.total_duration
        state.telemetry.question_start_times[0] = self._now_ms()

        self._start_timer()
        self._save_state()
        self._emit(SESSION_START, restored=False)
        return state

    async def submit_quiz(self) -> QuizResult | None:
        """
        Score and close the active session.

        Returns:
            The result, or None if no session is active
        """
        if not self.state.active:
            return None

        logger.info("Submitting quiz for {}", self.state.subject_id)
        self._stop_timer()
        self.state.active = False
        self.state.status = SessionStatus.SUBMITTED
        self.session_store.clear()

        result = self._calculate_result()

        try:
            await self.storage.put(HISTORY, result.to_dict())
            logger.info("Result {} saved ({} / {})", result.id, result.score, result.total_marks)
        except Exception:
            logger.opt(exception=True).error("Saving result {} failed", result.id)

        await self._update_mastery(result)

        self._emit(SESSION_SUBMITTED, result_id=result.id)
        self.events.emit(QUIZ_COMPLETE, result)
        if self._on_complete is not None:
            try:
                outcome = self._on_complete(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.opt(exception=True).error("Completion hook failed for result {}", result.id)
        return result

    def terminate_session(self) -> None:
        """Abandon the current session and clear its persisted record."""
        self._stop_timer()
        was_active = self.state.active
        self.state.active = False
        if self.state.status is SessionStatus.ACTIVE:
            self.state.status = SessionStatus.IDLE
        self.session_store.clear()
        if was_active:
            self._emit(SESSION_TERMINATED)

    # =========================================================================
    # User Actions
    # =========================================================================

    def submit_answer(self, option_index: int) -> None:
        """Record an answer for the current question."""
        state = self.state
        if not state.active:
            return

        index = state.current_index
        question = state.questions[index]
        if not 0 <= option_index < len(question.options):
            raise ValueError(f"Option {option_index} out of range for question {index}")

        telemetry = state.telemetry
        previous = state.answers.get(index)
        if previous is not None and previous != option_index:
            telemetry.switches[index] = telemetry.switches.get(index, 0) + 1

        now = self._now_ms()
        first_seen = telemetry.question_start_times.setdefault(index, now)
        telemetry.time_per_question[index] = now - first_seen

        state.answers[index] = option_index
        self._save_state()
        self._emit(ANSWER_SAVED, question_index=index, option_index=option_index)

    def toggle_bookmark(self, question_id: Any) -> bool:
        """Add or remove a bookmark; returns True if now bookmarked."""
        bookmarks = self.state.bookmarks
        if question_id in bookmarks:
            del bookmarks[question_id]
        else:
            bookmarks[question_id] = None
        self._save_state()
        self._emit(BOOKMARK_TOGGLED, question_id=question_id)
        return question_id in bookmarks

    def next_question(self) -> None:
        """Advance one question, flagging impulsive skips."""
        state = self.state
        if state.current_index >= len(state.questions) - 1:
            return

        index = state.current_index
        now = self._now_ms()
        first_seen = state.telemetry.question_start_times.get(index, now)
        if now - first_seen < self.settings.impulse_threshold_ms:
            state.telemetry.impulse_clicks += 1

        self._enter(index + 1, now)

    def prev_question(self) -> None:
        if self.state.current_index > 0:
            self._enter(self.state.current_index - 1, self._now_ms())

    def go_to_question(self, index: int) -> None:
        if 0 <= index < len(self.state.questions):
            self._enter(index, self._now_ms())

    def _enter(self, index: int, now: int) -> None:
        self.state.current_index = index
        self.state.telemetry.question_start_times.setdefault(index, now)
        self._save_state()
        self._emit(NAVIGATE, index=index)

    # =========================================================================
    # Timer
    # =========================================================================

    def _start_timer(self) -> None:
        self._stop_timer()
        self._timer_task = asyncio.get_running_loop().create_task(self._run_timer(), name="quiz-timer")

    def _stop_timer(self) -> None:
        task, self._timer_task = self._timer_task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # A tick that triggers submit must not cancel itself mid-submit.
        if task is not current:
            task.cancel()

    async def _run_timer(self) -> None:
        while self.state.active:
            await asyncio.sleep(self.settings.tick_seconds)
            await self._tick()

    async def _tick(self) -> None:
        """One countdown step; auto-submits when time runs out."""
        state = self.state
        if not state.active:
            return

        state.time_left = max(0, state.time_left - 1)
        every = self.settings.autosave_every_ticks
        if every and state.time_left % every == 0:
            self._save_state()

        self.events.emit(QUIZ_TICK, TickEvent(time_left=state.time_left))

        if state.time_left <= 0:
            logger.info("Time is up; auto-submitting")
            await self.submit_quiz()

    # =========================================================================
    # Scoring & Mastery
    # =========================================================================

    def _calculate_result(self) -> QuizResult:
        state = self.state
        correct = wrong = 0
        score = 0.0

        for index, question in enumerate(state.questions):
            answer = state.answers.get(index)
            if answer is None:
                question.is_correct = False  # Skipped, not wrong
            elif answer == question.correct_answer:
                correct += 1
                score += self.settings.correct_marks
                question.is_correct = True
            else:
                wrong += 1
                score -= self.settings.wrong_penalty
                question.is_correct = False

        attempted = correct + wrong
        total = len(state.questions)

        return QuizResult(
            id=str(uuid4()),
            timestamp=self._now_iso(),
            subject=state.subject_id,
            score=round(score, 2),
            total_marks=total * self.settings.correct_marks,
            correct=correct,
            wrong=wrong,
            skipped=total - attempted,
            accuracy=round(correct / attempted * 100) if attempted else 0,
            total_duration=state.total_duration - state.time_left,
            questions=[q.to_dict() for q in state.questions],
            telemetry=state.telemetry.result_copy(),
        )

    async def _update_mastery(self, result: QuizResult) -> None:
        """Fold the score into the subject's running mastery (best effort)."""
        if not result.subject:
            return
        try:
            record = await self.storage.get(ACADEMIC_STATE, result.subject)
            entry = AcademicState.from_dict(record) if record else AcademicState(subject_id=result.subject)
            entry.record_score(result.score, result.timestamp)
            await self.storage.put(ACADEMIC_STATE, entry.to_dict())
        except Exception:
            logger.opt(exception=True).warning("Failed to update mastery for {} (non-critical)", result.subject)

    # =========================================================================
    # Data Fetching
    # =========================================================================

    async def _fetch_questions(self, subject_id: str) -> list[Question]:
        limit = self.settings.questions_per_session
        try:
            keys = await self.storage.get_random_keys(QUESTIONS, "subject", subject_id, limit)
            if not keys:
                return []
            records = await asyncio.gather(*(self.storage.get(QUESTIONS, key) for key in keys))
        except Exception:
            logger.opt(exception=True).error("Question fetch failed for {}", subject_id)
            return []

        questions: list[Question] = []
        for record in records:
            if record is None:
                continue
            try:
                questions.append(randomize_options(record, self._rng))
            except ValueError as exc:
                logger.warning("Skipping malformed question: {}", exc)
        return questions[:limit]

    # =========================================================================
    # Internal Utilities
    # =========================================================================

    def _save_state(self) -> None:
        try:
            self.session_store.save(self.state)
        except OSError as exc:
            logger.warning("Could not persist session record: {}", exc)

    def _emit(self, kind: str, **payload: Any) -> None:
        self.events.emit(QUIZ_UPDATE, SessionUpdate(type=kind, state=self.state, payload=payload))

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
