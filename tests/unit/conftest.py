"""Pytest fixtures and config."""

from __future__ import annotations

import json
from typing import Any

import pytest

from observability import logger


@pytest.fixture
def log_lines(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Capture every log event as a decoded dict."""
    captured: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: captured.append(json.loads(line)))
    monkeypatch.setattr(logger, "_min_level", "DEBUG")
    return captured


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logger, "_print", lambda line: None)
    monkeypatch.setattr(logger, "_min_level", "DEBUG")
