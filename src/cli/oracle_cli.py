"""
Exam Oracle: practice CLI.

A Rich terminal interface for timed practice quizzes and score forecasts.

Commands:
- exam-oracle seed PATH     - Load the question bank from JSON
- exam-oracle quiz SUBJECT  - Take a timed practice quiz
- exam-oracle predict       - Forecast the exam score
- exam-oracle stats         - Show per-subject mastery and the behavioral profile
- exam-oracle abandon       - Discard an unfinished saved session
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import Settings, get_settings
from src.core.events import QUIZ_COMPLETE, EventBus
from src.core.subjects import SUBJECTS, get_subject, subject_name
from src.db.gateway import HISTORY, SqlStorageGateway
from src.db.seeder import needs_seeding, seed_questions
from src.oracle.academic import AcademicEngine
from src.oracle.aggregator import MasterAggregator
from src.oracle.display import DisplayPrediction, format_for_display
from src.oracle.models import PredictionResult
from src.oracle.profile import TRAITS, BehavioralEngine
from src.quiz.engine import NoQuestionsError, QuizEngine
from src.quiz.models import QuizResult, SessionState
from src.quiz.session_store import SessionStore


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="exam-oracle",
    help="Exam Oracle: timed practice and score forecasting",
    no_args_is_help=True,
)
console = Console()

QUIZ_HELP = (
    "[dim]1-9 answer  |  n next  |  p previous  |  g N jump  |  b bookmark  |  "
    "s submit  |  q abandon  |  Ctrl-C pause (resume later)[/dim]"
)
SPARK = "▁▂▃▄▅▆▇█"


def _storage(settings: Settings) -> SqlStorageGateway:
    return SqlStorageGateway.from_url(settings.resolved_database_url())


def _sparkline(values: list[float]) -> str:
    top = len(SPARK) - 1
    return "".join(SPARK[min(top, int(v * len(SPARK)))] for v in values)


def _format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


# =============================================================================
# Display Helpers
# =============================================================================

def display_question(state: SessionState) -> None:
    """Render the current question with its options."""
    question = state.current_question
    if question is None:
        return

    index = state.current_index
    answered = state.answers.get(index)
    marker = " [yellow]*bookmarked*[/yellow]" if state.is_bookmarked(question.id) else ""
    header = (
        f"Question {index + 1}/{len(state.questions)}  |  {subject_name(state.subject_id or '')}"
        f"  |  {_format_clock(state.time_left)} left{marker}"
    )

    content = escape(question.text or f"Question {question.id}") + "\n"
    for i, option in enumerate(question.options):
        pointer = "[bold cyan]>[/bold cyan]" if answered == i else " "
        content += f"\n {pointer} {i + 1}. {escape(option)}"

    console.print(Panel(content, title=header, title_align="left", border_style="cyan", padding=(1, 2)))


def display_result(result: QuizResult) -> None:
    color = "green" if result.score > 0 else "red"
    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Score", f"[{color}]{result.score}[/{color}] / {result.total_marks:g}")
    table.add_row("Correct", str(result.correct))
    table.add_row("Wrong", str(result.wrong))
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Accuracy", f"{result.accuracy}%")
    table.add_row("Time taken", _format_clock(result.total_duration))
    table.add_row("Impulse clicks", str(result.telemetry.get("impulse_clicks", 0)))
    console.print(Panel(table, title="Session Complete", border_style=color))


def display_prediction(prediction: PredictionResult, display: DisplayPrediction) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Projected score", f"{display.display_score}")
    table.add_row("Range", f"{prediction.range.min:g} - {prediction.range.max:g}")
    table.add_row("Outlook", f"[{display.color}]{display.probability_text}[/{display.color}]")
    table.add_row("Confidence", f"{prediction.confidence:.0%}")
    for model, score in prediction.breakdown.items():
        table.add_row(f"  {model}", str(score))
    if display.chart_data:
        table.add_row("Distribution", _sparkline([p.y for p in display.chart_data]))

    console.print(Panel(table, title="Oracle", border_style=display.color))
    for warning in display.warnings:
        console.print(f"[yellow]! {warning}[/yellow]")
    if prediction.degraded:
        console.print("[dim]Computed with the simplified fallback model.[/dim]")


# =============================================================================
# Commands
# =============================================================================

@app.command()
def seed(
    path: Path = typer.Argument(..., exists=True, help="JSON file or directory of <subject>.json files"),
    force: bool = typer.Option(False, "--force", "-f", help="Seed even if questions already exist"),
) -> None:
    """Load the question bank."""
    settings = get_settings()

    async def _run():
        storage = _storage(settings)
        try:
            if not force and not await needs_seeding(storage):
                return None
            return await seed_questions(storage, path)
        finally:
            await storage.close()

    try:
        result = asyncio.run(_run())
    except ValueError as exc:
        console.print(f"[red]Could not read {path}: {exc}[/red]")
        raise typer.Exit(1)

    if result is None:
        console.print("[yellow]Question bank already populated. Use --force to reseed.[/yellow]")
        raise typer.Exit(0)

    console.print(f"[green]Seeded {result.total_seeded} questions[/green] ({result.skipped} skipped)")
    for subject_id, count in sorted(result.per_subject.items()):
        console.print(f"  {subject_name(subject_id)}: {count}")


@app.command()
def quiz(
    subject: str = typer.Argument(..., help="Subject id, e.g. polity or csat_quant"),
) -> None:
    """Take a timed practice quiz."""
    settings = get_settings()
    if get_subject(subject) is None:
        known = ", ".join(s.id for s in SUBJECTS)
        console.print(f"[yellow]Unknown subject '{subject}'. Known: {known}[/yellow]")

    try:
        result = asyncio.run(_run_quiz(subject, settings))
    except NoQuestionsError as exc:
        console.print(f"[red]{exc}[/red]")
        console.print("[dim]Load questions first: exam-oracle seed PATH[/dim]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Session paused. Run the same quiz again to resume.[/yellow]")
        raise typer.Exit(130)

    if result is None:
        console.print("[yellow]Session abandoned.[/yellow]")
        return
    display_result(result)


async def _run_quiz(subject: str, settings: Settings) -> QuizResult | None:
    storage = _storage(settings)
    await storage.connect()
    bus = EventBus()
    results: list[QuizResult] = []
    finished = asyncio.Event()

    def _on_complete(result: QuizResult) -> None:
        results.append(result)
        finished.set()

    bus.subscribe(QUIZ_COMPLETE, _on_complete)
    engine = QuizEngine(
        storage,
        SessionStore(settings.resolved_session_state_path()),
        events=bus,
        settings=settings,
    )

    try:
        state = await engine.start_session(subject)
        console.print(f"\n[bold cyan]{subject_name(subject)}[/bold cyan]: {len(state.questions)} questions")
        console.print(QUIZ_HELP)

        while engine.state.active:
            display_question(engine.state)
            reply = asyncio.ensure_future(asyncio.to_thread(Prompt.ask, "[bold]>[/bold]", default=""))
            expired = asyncio.ensure_future(finished.wait())
            await asyncio.wait({reply, expired}, return_when=asyncio.FIRST_COMPLETED)
            expired.cancel()

            if not reply.done():
                # Prompt threads cannot be interrupted; wait for the learner.
                console.print("\n[yellow]Time is up. Press Enter to see your result.[/yellow]")
                await reply
                break

            if not await _apply_command(engine, reply.result().strip().lower()):
                return None

        if results:
            await _update_academics(storage, results[0])
            await _update_profile(storage, settings, results[0])
            return results[0]
        return None
    finally:
        await storage.close()


async def _apply_command(engine: QuizEngine, command: str) -> bool:
    """Apply one quiz command; returns False when the session was abandoned."""
    state = engine.state
    if command.isdigit():
        option = int(command) - 1
        question = state.current_question
        if question is None or not 0 <= option < len(question.options):
            console.print("[red]No such option.[/red]")
            return True
        engine.submit_answer(option)
        engine.next_question()
    elif command in ("n", ""):
        engine.next_question()
    elif command == "p":
        engine.prev_question()
    elif command.startswith("g"):
        target = command[1:].strip()
        if target.isdigit():
            engine.go_to_question(int(target) - 1)
    elif command == "b" and state.current_question is not None:
        engine.toggle_bookmark(state.current_question.id)
    elif command == "s":
        unanswered = len(state.questions) - len(state.answers)
        prompt = f"Submit with {unanswered} unanswered?" if unanswered else "Submit now?"
        if await asyncio.to_thread(Confirm.ask, prompt, default=True):
            await engine.submit_quiz()
    elif command == "q":
        if await asyncio.to_thread(Confirm.ask, "Abandon this session?", default=False):
            engine.terminate_session()
            return False
    else:
        console.print(QUIZ_HELP)
    return True


async def _update_academics(storage: SqlStorageGateway, result: QuizResult) -> None:
    try:
        await AcademicEngine(storage).process_quiz_result(result)
    except Exception:
        logger.opt(exception=True).warning("Academic proficiency update failed")


async def _update_profile(storage: SqlStorageGateway, settings: Settings, result: QuizResult) -> None:
    try:
        behavior = BehavioralEngine(storage, user_id=settings.profile_user_id)
        await behavior.load()
        await behavior.process_quiz_result(result)
    except Exception:
        logger.opt(exception=True).warning("Behavioral profile update failed")


@app.command()
def predict() -> None:
    """Forecast the exam score from mastery and behavior."""
    settings = get_settings()

    async def _run() -> PredictionResult | None:
        storage = _storage(settings)
        oracle = MasterAggregator(storage, settings=settings)
        try:
            return await oracle.get_prediction()
        finally:
            await oracle.close()
            await storage.close()

    with console.status("[cyan]Consulting the oracle...[/cyan]"):
        prediction = asyncio.run(_run())

    display = format_for_display(prediction)
    if prediction is None or display is None:
        console.print("[red]Prediction unavailable.[/red]")
        raise typer.Exit(1)
    display_prediction(prediction, display)


@app.command()
def stats() -> None:
    """Show per-subject mastery and the behavioral profile."""
    settings = get_settings()

    async def _run():
        storage = _storage(settings)
        try:
            academics = AcademicEngine(storage)
            await academics.load()
            history = await storage.get_all(HISTORY)
            behavior = BehavioralEngine(storage, user_id=settings.profile_user_id)
            profile = await behavior.load()
            return academics, history, profile
        finally:
            await storage.close()

    academics, history, profile = asyncio.run(_run())
    academic = academics.records

    console.print("\n[bold cyan]Subject Mastery[/bold cyan]")
    table = Table()
    table.add_column("Subject")
    table.add_column("Paper")
    table.add_column("Weight", justify="right")
    table.add_column("Mastery", justify="right")
    table.add_column("Proficiency", justify="right")
    table.add_column("Stability", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Last studied")
    for subject in SUBJECTS:
        record = academic.get(subject.id) or {}
        last = (record.get("last_studied") or "-")[:16].replace("T", " ")
        table.add_row(
            subject.name,
            subject.paper.value,
            f"{subject.weight:.0%}",
            f"{record.get('mastery', 0):.2f}" if record else "-",
            f"{record['proficiency']:.1f}" if "proficiency" in record else "-",
            f"{record['stability']:.0%}" if "stability" in record else "-",
            str(record.get("attempts", 0)),
            last,
        )
    console.print(table)
    blind_spots = academics.blind_spots()
    if blind_spots:
        console.print(f"[yellow]Blind spots:[/yellow] {', '.join(subject_name(s) for s in blind_spots)}")

    console.print(f"\nSessions completed: [bold]{len(history)}[/bold]")
    console.print(f"Profile: [bold]{profile.archetype()}[/bold] (confidence {profile.average_confidence:.0%})")

    traits = Table(show_header=False, box=None)
    traits.add_column("Trait", style="dim")
    traits.add_column("Value", style="bold")
    for name in TRAITS:
        trait = profile.traits[name]
        traits.add_row(name, f"{trait.value:.2f}  [dim](conf {trait.confidence:.2f})[/dim]")
    console.print(traits)


@app.command()
def abandon(
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Discard an unfinished saved session."""
    store = SessionStore(get_settings().resolved_session_state_path())
    state = store.load()
    if state is None or not state.active:
        console.print("No saved session.")
        raise typer.Exit(0)

    answered = len(state.answers)
    msg = f"Discard {subject_name(state.subject_id or '')} session ({answered}/{len(state.questions)} answered)?"
    if not confirm and not Confirm.ask(msg, default=False):
        raise typer.Exit(0)

    store.clear()
    console.print("[green]Saved session discarded.[/green]")


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation="1 MB",
            retention=3,
        )

    app()


if __name__ == "__main__":
    main()
