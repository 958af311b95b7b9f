"""
conftest.py – central pytest configuration and test bootstrap ("config test").

Pytest imports this module before it collects any test files, which lets us prepare the
environment once for the whole suite:
  1) Extend `sys.path` with the project root so absolute imports like `from core ...` and
     `from services ...` resolve without an editable install.
  2) Set safe environment defaults read by the `config` package at import time: the mock
     assistant provider (no API key, no network), in-memory storage, no file logging and
     no pruning scheduler.
"""

import os
import sys
from pathlib import Path

# Ensure project root is on sys.path for direct imports like `core`, `shared`, etc.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Provide environment defaults for tests
os.environ.setdefault("ASSISTANT_PROVIDER", "mock")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOG_FILE_PATH", "")
os.environ.setdefault("PRUNING_ENABLED", "false")
