"""Pytest configuration for the track tests."""
from __future__ import annotations

import sys
from pathlib import Path

# Make the flat ``src`` modules importable without installing the project.
SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
