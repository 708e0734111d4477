# tests/conftest.py

"""Shared pytest fixtures for all loadwatch tests."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from loadwatch.config.settings import Settings


@pytest.fixture(autouse=True)
def mock_sleep() -> Generator[None, None, None]:
    """Patch time.sleep globally so HTTP retry loops run instantly."""
    with patch("time.sleep"):
        yield


@pytest.fixture(autouse=True)
def isolated_paths(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Keep state and log files of every test inside its tmp dir."""
    monkeypatch.setattr(
        Settings, "STATE_PATH", tmp_path / "state" / "loadwatch.json"
    )
    monkeypatch.setattr(Settings, "LOGS_DIR", tmp_path / "logs")
