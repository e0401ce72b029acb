"""Shared pytest fixtures for the SoundMatrix test suite."""

from __future__ import annotations

import pytest

from src.models.diagnostics import AnalysisDiagnostics


@pytest.fixture
def diagnostics() -> AnalysisDiagnostics:
    return AnalysisDiagnostics(strategy="balanced", attempt_budget=120)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "profiles.db"
