"""Shared test fixtures for ai4paper tests."""

from __future__ import annotations

import itertools
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from ai4paper.app_state import AppState
from ai4paper.catalog import PaperCatalog
from ai4paper.library import LibraryStore
from ai4paper.models import Paper, PaperIntro
from ai4paper.persistence import LIBRARY_FILENAME, SETTINGS_DB_FILENAME, SettingsStore
from ai4paper.swipes import SwipeLedger


class FakeClock:
    """Deterministic clock: every call returns a time one second later."""

    def __init__(self, start: datetime = datetime(2026, 2, 1, 9, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ── Factories ────────────────────────────────────────────────────────────────


@pytest.fixture
def make_paper():
    """Factory fixture for creating Paper instances with sensible defaults."""

    def _make(
        paper_id: str = "2602.05877",
        title: str = "Test Paper",
        short_title: str = "",
        source: str = "arxiv",
        institution: str = "",
        problem: str = "How to test things.",
        contributions: str = "A test paper.",
        key_points: tuple[str, ...] = (),
        analysis: tuple[str, ...] = (),
        personal_view: str = "",
    ) -> Paper:
        intro = PaperIntro(problem=problem, contributions=contributions)
        return Paper(
            id=paper_id,
            title=title,
            short_title=short_title,
            source=source,
            institution=institution,
            intro=intro,
            key_points=key_points,
            analysis=analysis,
            personal_view=personal_view,
        )

    return _make


@pytest.fixture
def make_record():
    """Factory fixture for raw corpus records (emoji-keyed JSON dicts)."""

    def _make(paper_id: str = "2602.05877", title: str = "Test Paper", **extra: Any) -> dict:
        record = {
            "paper_id": paper_id,
            "📖标题": title,
            "🌐来源": "arxiv",
            "🛎️文章简介": {"🔸研究问题": "How to test things.", "🔸主要贡献": "A test paper."},
        }
        record.update(extra)
        return record

    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def folder_ids():
    """Deterministic folder id factory: f1, f2, ..."""
    counter = itertools.count(1)
    return lambda: f"f{next(counter)}"


@pytest.fixture
def make_library(tmp_path, clock, folder_ids):
    """Factory fixture for LibraryStore instances backed by tmp_path.

    Calling it twice with the same path simulates an app restart.
    """

    def _make(path: Path | None = None) -> LibraryStore:
        return LibraryStore(
            path or tmp_path / LIBRARY_FILENAME, clock=clock, id_factory=folder_ids
        )

    return _make


@pytest.fixture
def library(make_library):
    return make_library()


@pytest.fixture
def make_ledger(tmp_path, clock):
    def _make(path: Path | None = None) -> SwipeLedger:
        return SwipeLedger(SettingsStore(path or tmp_path / SETTINGS_DB_FILENAME), clock=clock)

    return _make


@pytest.fixture
def ledger(make_ledger):
    return make_ledger()


@pytest.fixture
def sample_papers(make_paper):
    return [
        make_paper("2602.00001", title="Graph Neural Networks for Molecules", source="arxiv"),
        make_paper("2602.00002", title="Attention Is Not Enough", source="openreview"),
        make_paper("2602.00003", title="Paper 10: Scaling Laws", source="arxiv"),
        make_paper("2602.00004", title="Paper 2: Tokenizers", source="acl"),
    ]


@pytest.fixture
def app_state(sample_papers, ledger, library):
    state = AppState(PaperCatalog(sample_papers), ledger, library)
    yield state
    state.close()


@pytest.fixture
def corpus_dir(tmp_path, make_record):
    """A temp corpus/ directory with two paper files."""
    cdir = tmp_path / "corpus"
    cdir.mkdir()
    (cdir / "a.json").write_text(
        json.dumps(make_record("2602.00001", "Alpha Paper"), ensure_ascii=False),
        encoding="utf-8",
    )
    (cdir / "b.json").write_text(
        json.dumps(make_record("2602.00002", "Beta Paper"), ensure_ascii=False),
        encoding="utf-8",
    )
    return cdir
