"""
Entry point for the exam-oracle CLI.

Run with:
    python main.py quiz polity
    exam-oracle predict          (after pip install -e .)
"""
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from src.cli.oracle_cli import main

if __name__ == "__main__":
    main()
