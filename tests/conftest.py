"""Pytest configuration shared by every suite.

What:
  Establish project import paths and apply a canned runtime configuration to
  every test.

Why:
  The suites import ``imapfetch`` straight from the source tree rather than an
  installed wheel, and the loader would otherwise pick up an
  ``imapfetch.yaml`` from the developer's home directory.

How:
  Prepend ``imapfetch/src`` to ``sys.path`` when present, point
  ``IMAPFETCH_CONFIG_PATH`` at ``tests/data/imapfetch.yaml``, and reset the
  runtime cache before and after each test.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "imapfetch" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

from imapfetch.config.loader import reset_runtime_config

CONFIG_PATH = Path(__file__).resolve().parent / "data" / "imapfetch.yaml"


@pytest.fixture(autouse=True)
def runtime_config(monkeypatch: pytest.MonkeyPatch):
    """Apply the canned configuration file for every test."""

    monkeypatch.setenv("IMAPFETCH_CONFIG_PATH", str(CONFIG_PATH))
    reset_runtime_config()
    try:
        yield
    finally:
        reset_runtime_config()
