# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for suite",
#   "sections": [
#     {
#       "id": "isolate-environment",
#       "name": "_isolate_environment",
#       "anchor": "function-isolate-environment",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

This module configures shared pytest behaviour: `src` and the repository root
are placed on sys.path, HTTP mocking fixtures are registered, and every test
runs with settings read from an isolated environment so cookie jars never land
next to the installed package.

Usage:
    pytest tests
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
for path in (SRC, ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from httpsession.settings import reset_settings  # noqa: E402
from tests.fixtures.http_mocking import (  # noqa: E402,F401
    http_mock,
    mock_router,
    mocked_session,
    session_settings,
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Point the default cookie jar into tmp_path and drop cached settings."""
    for name in list(os.environ):
        if name.upper().startswith("HTTPSESSION_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HTTPSESSION_COOKIE_JAR_PATH", str(tmp_path / "default_cookie_jar.txt"))
    reset_settings()
    yield
    reset_settings()
