"""Pytest configuration helpers."""

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep config bootstrap away from any developer config.yml during unit tests.
os.environ.setdefault("CONFIG_PATH", str(ROOT / "tests" / "missing-config.yml"))
