"""Paper corpus loading and id lookup."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from ai4paper.models import Paper, PaperIntro

logger = logging.getLogger(__name__)

# Corpus wire keys (summaries are authored with emoji-prefixed section names)
KEY_ID = "paper_id"
KEY_TITLE = "📖标题"
KEY_SHORT_TITLE = "short_title"
KEY_SOURCE = "🌐来源"
KEY_INSTITUTION = "institution"
KEY_INTRO = "🛎️文章简介"
KEY_INTRO_PROBLEM = "🔸研究问题"
KEY_INTRO_CONTRIBUTIONS = "🔸主要贡献"
KEY_KEY_POINTS = "📝重点思路"
KEY_ANALYSIS = "🔎分析总结"
KEY_PERSONAL_VIEW = "💡个人观点"


def _str_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _str_list_field(data: dict[str, Any], key: str) -> tuple[str, ...]:
    value = data.get(key)
    if not isinstance(value, list):
        return ()
    return tuple(item for item in value if isinstance(item, str))


def parse_paper(data: Any) -> Paper | None:
    """Build a Paper from one corpus record, or None if it is not a paper.

    Only ``paper_id`` is required; every other field defaults to empty.
    """
    if not isinstance(data, dict):
        return None
    paper_id = data.get(KEY_ID)
    if not isinstance(paper_id, str) or not paper_id.strip():
        return None

    intro = None
    raw_intro = data.get(KEY_INTRO)
    if isinstance(raw_intro, dict):
        intro = PaperIntro(
            problem=_str_field(raw_intro, KEY_INTRO_PROBLEM),
            contributions=_str_field(raw_intro, KEY_INTRO_CONTRIBUTIONS),
        )

    return Paper(
        id=paper_id.strip(),
        title=_str_field(data, KEY_TITLE),
        short_title=_str_field(data, KEY_SHORT_TITLE),
        source=_str_field(data, KEY_SOURCE),
        institution=_str_field(data, KEY_INSTITUTION),
        intro=intro,
        key_points=_str_list_field(data, KEY_KEY_POINTS),
        analysis=_str_list_field(data, KEY_ANALYSIS),
        personal_view=_str_field(data, KEY_PERSONAL_VIEW),
    )


def _iter_records(path: Path) -> Iterator[Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug("Skipping unreadable corpus file %s: %s", path, e)
        return
    if isinstance(data, list):
        yield from data
    else:
        yield data


def load_papers(path: Path) -> list[Paper]:
    """Load papers from a directory of JSON files or a single JSON file.

    Files are read in name order; files that are not papers are skipped.
    """
    if path.is_dir():
        files = sorted(p for p in path.rglob("*.json") if p.is_file())
    elif path.is_file():
        files = [path]
    else:
        logger.warning("Corpus path %s does not exist", path)
        return []

    papers: list[Paper] = []
    skipped = 0
    for file in files:
        for record in _iter_records(file):
            paper = parse_paper(record)
            if paper is None:
                skipped += 1
                continue
            papers.append(paper)
    logger.debug("Decoded %d papers from %s (%d records skipped)", len(papers), path, skipped)
    return papers


class PaperCatalog:
    """Read-only, id-keyed view of the corpus.

    Iteration follows load order. Duplicate ids keep their first occurrence.
    """

    def __init__(self, papers: Iterable[Paper] = ()) -> None:
        self._papers_by_id: dict[str, Paper] = {}
        for paper in papers:
            if paper.id in self._papers_by_id:
                logger.debug("Duplicate paper id %s ignored", paper.id)
                continue
            self._papers_by_id[paper.id] = paper
        self._papers = tuple(self._papers_by_id.values())

    @classmethod
    def from_path(cls, path: Path) -> PaperCatalog:
        return cls(load_papers(path))

    @property
    def papers(self) -> tuple[Paper, ...]:
        return self._papers

    def get(self, paper_id: str) -> Paper | None:
        return self._papers_by_id.get(paper_id)

    def lookup(self, paper_ids: Iterable[str]) -> list[Paper]:
        """Papers for the given ids in the same order, unknown ids dropped."""
        return [self._papers_by_id[pid] for pid in paper_ids if pid in self._papers_by_id]

    def __contains__(self, paper_id: object) -> bool:
        return paper_id in self._papers_by_id

    def __iter__(self) -> Iterator[Paper]:
        return iter(self._papers)

    def __len__(self) -> int:
        return len(self._papers)


__all__ = [
    "PaperCatalog",
    "load_papers",
    "parse_paper",
]
