from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)

    tests_str = str(root / "tests")
    if tests_str not in sys.path:
        sys.path.insert(1, tests_str)


_ensure_project_root_on_path()


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep user config and environment overrides out of the tests."""

    for name in ("BEATCONV_CONFIG_PATH", "BEATCONV_SEED", "BEATCONV_LOG_LEVEL", "BEATCONV_WORKERS"):
        monkeypatch.delenv(name, raising=False)

    yield

    from logging_config import reset_logging

    reset_logging()
