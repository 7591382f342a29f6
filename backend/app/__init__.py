"""Parley backend application."""

from pathlib import Path
import sys

# The realtime package lives next to the app under ``src``.
REALTIME_SRC = Path(__file__).resolve().parent.parent / "src"
if REALTIME_SRC.is_dir() and str(REALTIME_SRC) not in sys.path:
    sys.path.append(str(REALTIME_SRC))

from app.main import app

__all__ = ["app"]
