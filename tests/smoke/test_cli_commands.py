"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def run_cli_command(args: list[str], data_dir: Path, timeout: int = 60) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        args: Arguments after 'python -m src.cli.oracle_cli'
        data_dir: Isolated data directory for the database and session record
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    env = {**os.environ, "DATA_DIR": str(data_dir), "COLUMNS": "120"}
    env.pop("DATABASE_URL", None)
    env.pop("SESSION_STATE_PATH", None)

    result = subprocess.run(
        [sys.executable, "-m", "src.cli.oracle_cli", *args],
        cwd=PROJECT_ROOT,
        env=env,
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "oracle"


@pytest.fixture
def question_file(tmp_path, question_factory):
    path = tmp_path / "polity.json"
    records = [question_factory("polity", i, correct=i % 4) for i in range(8)]
    path.write_text(json.dumps(records), encoding="utf-8")
    return path


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self, data_dir):
        """Main help should list the commands."""
        code, stdout, stderr = run_cli_command(["--help"], data_dir)

        assert code == 0, f"Help failed: {stderr}"
        assert "Commands" in stdout
        for command in ("seed", "quiz", "predict", "stats", "abandon"):
            assert command in stdout

    def test_quiz_help(self, data_dir):
        code, stdout, stderr = run_cli_command(["quiz", "--help"], data_dir)

        assert code == 0, f"Quiz help failed: {stderr}"
        assert "SUBJECT" in stdout


class TestCLISeed:
    """Test seed command."""

    def test_seed_then_refuse_reseed(self, data_dir, question_file):
        code, stdout, stderr = run_cli_command(["seed", str(question_file)], data_dir)

        assert code == 0, f"Seed failed: {stderr}"
        assert "Seeded 8 questions" in stdout
        assert (data_dir / "oracle.db").exists()

        code, stdout, _ = run_cli_command(["seed", str(question_file)], data_dir)

        assert code == 0
        assert "already populated" in stdout

    def test_force_reseed(self, data_dir, question_file):
        run_cli_command(["seed", str(question_file)], data_dir)

        code, stdout, stderr = run_cli_command(["seed", "--force", str(question_file)], data_dir)

        assert code == 0, f"Forced seed failed: {stderr}"
        assert "Seeded 8 questions" in stdout

    def test_missing_path_is_a_usage_error(self, data_dir, tmp_path):
        code, _, _ = run_cli_command(["seed", str(tmp_path / "nope.json")], data_dir)

        assert code == 2


class TestCLIQuiz:
    """Test quiz command without a question bank."""

    def test_empty_bank_aborts(self, data_dir):
        code, stdout, stderr = run_cli_command(["quiz", "polity"], data_dir)

        assert code == 1
        assert "exam-oracle seed" in stdout


class TestCLIStats:
    """Test stats command."""

    def test_stats_on_fresh_install(self, data_dir):
        code, stdout, stderr = run_cli_command(["stats"], data_dir)

        assert code == 0, f"Stats failed with: {stderr}"
        assert "Subject Mastery" in stdout
        assert "Indian Polity" in stdout
        assert "Blind spots:" in stdout
        assert "Sessions completed: 0" in stdout


class TestCLIPredict:
    """Test predict command."""

    def test_predict_runs(self, data_dir):
        code, stdout, stderr = run_cli_command(["predict"], data_dir)

        assert code == 0, f"Predict failed with: {stderr}"
        assert "Projected score" in stdout
        assert "CHANCE" in stdout or "DISQUALIFIED" in stdout


class TestCLIAbandon:
    """Test abandon command."""

    def test_nothing_to_abandon(self, data_dir):
        code, stdout, _ = run_cli_command(["abandon", "--yes"], data_dir)

        assert code == 0
        assert "No saved session" in stdout

    def test_abandon_saved_session(self, data_dir, question_factory):
        data_dir.mkdir(parents=True)
        record = {
            "active": True,
            "status": "active",
            "subject_id": "polity",
            "questions": [question_factory("polity", 0)],
            "total_duration": 120,
            "time_left": 90,
        }
        (data_dir / "quiz_state.json").write_text(json.dumps(record), encoding="utf-8")

        code, stdout, stderr = run_cli_command(["abandon", "--yes"], data_dir)

        assert code == 0, f"Abandon failed: {stderr}"
        assert "discarded" in stdout
        assert not (data_dir / "quiz_state.json").exists()
