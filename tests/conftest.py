"""Pytest configuration shared by the unit and end-to-end suites.

What:
  Establish project import paths and define fixtures that apply a canned runtime
  configuration to every test.

Why:
  Tests must import the in-repo ``imapsession`` package rather than an installed
  wheel, and the runtime configuration is cached globally; without resets tests
  could depend on execution order.

How:
  Prepend ``imapsession/src`` to ``sys.path`` at import time, point
  ``IMAPSESSION_CONFIG_PATH`` at ``tests/data/config.yaml`` and clear the
  runtime cache before and after each test.

Interfaces:
  :func:`runtime_config` (pytest fixture).
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "imapsession" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

from imapsession.config.loader import reset_runtime_config

CONFIG_PATH = Path(__file__).resolve().parent / "data" / "config.yaml"


@pytest.fixture(autouse=True)
def runtime_config(monkeypatch: pytest.MonkeyPatch):
    """Apply the canned configuration file for every test.

    Args:
      monkeypatch: Pytest helper injected automatically for environment control.
    """

    monkeypatch.setenv("IMAPSESSION_CONFIG_PATH", str(CONFIG_PATH))
    reset_runtime_config()
    try:
        yield
    finally:
        reset_runtime_config()
