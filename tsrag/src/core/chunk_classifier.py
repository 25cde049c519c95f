"""
tsrag - Chunk Classifier
=========================
Regex heuristics that attach ``ChunkMetadata`` to every chunk at
ingestion time: content type, page, chapter and section.

Chapter and section names are rarely repeated on every page, so the
classifier propagates context: a chunk without its own heading
inherits the nearest heading seen within ±5 pages (chapters) or ±3
pages (sections), and otherwise the last one seen.  That context lives
on the instance; build one ``ChunkClassifier`` per document.
"""

from __future__ import annotations

import re
from typing import TypedDict

from tsrag.config.settings import settings
from tsrag.src.core.models import ChunkMetadata, ChunkType

UNKNOWN_CHAPTER = "Unknown Chapter"

_CHAPTER_WINDOW = 5
_SECTION_WINDOW = 3
_CODE_THRESHOLD = 3

# ── Content-type patterns ─────────────────────────────────────────────
_CODE_PATTERNS = [
    re.compile(r"```"),
    re.compile(r"function\s+\w+"),
    re.compile(r"class\s+\w+"),
    re.compile(r"interface\s+\w+"),
    re.compile(r"const\s+\w+\s*="),
    re.compile(r"let\s+\w+\s*="),
    re.compile(r"type\s+\w+\s*="),
    re.compile(r"enum\s+\w+"),
    re.compile(r"import\s+.*from"),
    re.compile(r"export\s+(?:class|function|interface|type|const)"),
]

_EXAMPLE_PATTERNS = [
    re.compile(r"^example\s+\d+", re.IGNORECASE | re.MULTILINE),
    re.compile(r"for example", re.IGNORECASE),
    re.compile(r"the following example", re.IGNORECASE),
    re.compile(r"listing\s+\d+", re.IGNORECASE),
    re.compile(r"demonstrates", re.IGNORECASE),
]

_REFERENCE_PATTERNS = [
    re.compile(r"^(?:see also|note:|tip:|warning:|caution:)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"refer to", re.IGNORECASE),
    re.compile(r"described in chapter", re.IGNORECASE),
]

# ── Page / heading patterns ───────────────────────────────────────────
_PAGE_PATTERNS = [re.compile(r"\bpage\s+(\d+)\b", re.IGNORECASE), re.compile(r"\bp\.\s*(\d+)\b", re.IGNORECASE)]

_CHAPTER_TITLED_RE = re.compile(r"chapter\s+(\d+)\s*[:\-]\s*([^\n]+)", re.IGNORECASE)
_CHAPTER_NUMBER_RE = re.compile(r"chapter\s+(\d+)", re.IGNORECASE)
_PART_RE = re.compile(r"^(part|section)\s+([IVX\d]+)[:\-\s]+([^\n]+)", re.IGNORECASE | re.MULTILINE)
_CAPS_TITLE_RE = re.compile(r"^([A-Z][A-Z\s]{15,})$", re.MULTILINE)
_FRONT_MATTER_RE = re.compile(r"^(?:TABLE OF CONTENTS|INDEX|REFERENCES|BIBLIOGRAPHY|APPENDIX)", re.IGNORECASE)
_DECIMAL_CHAPTER_RE = re.compile(r"^(\d+\.\d+)\s+([^\n]+)", re.MULTILINE)

_MARKDOWN_HEADING_RE = re.compile(r"^#{2,3}\s+(.+)$", re.MULTILINE)
_DECIMAL_SECTION_RE = re.compile(r"^(\d+\.\d+)\s+(.+)$", re.MULTILINE)
_SUBTITLE_RE = re.compile(r"^([A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,4})$", re.MULTILINE)
_SECTION_LABEL_RE = re.compile(r"^section[:\s]+(.+)$", re.IGNORECASE | re.MULTILINE)


class ClassifierStats(TypedDict):
    last_known_chapter: str | None
    last_known_section: str | None
    chapters_detected: int
    sections_detected: int
    chapter_pages: list[tuple[int, str]]
    section_pages: list[tuple[int, str]]


def classify_type(text: str) -> ChunkType:
    """Classify a chunk as ``code``, ``example``, ``reference`` or ``explanation``."""
    code_hits = sum(len(pattern.findall(text)) for pattern in _CODE_PATTERNS)
    if code_hits >= _CODE_THRESHOLD:
        return "code"
    if any(pattern.search(text) for pattern in _EXAMPLE_PATTERNS):
        return "example"
    if any(pattern.search(text) for pattern in _REFERENCE_PATTERNS):
        return "reference"
    return "explanation"


def extract_page_number(text: str, fallback: int = 0) -> int:
    """Return the page cited as ``Page N`` / ``p. N`` in *text*, else *fallback*."""
    for pattern in _PAGE_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return fallback


class ChunkClassifier:
    """
    Stateful metadata extractor for one document.

    Parameters
    ----------
    book_title
        Title stamped on every ``ChunkMetadata``.  Defaults to ``settings.BOOK_TITLE``.
    """

    __slots__ = ("_book_title", "_last_chapter", "_last_section", "_chapters_by_page", "_sections_by_page")

    classify_type = staticmethod(classify_type)
    extract_page_number = staticmethod(extract_page_number)

    def __init__(self, book_title: str | None = None) -> None:
        self._book_title = book_title or settings.BOOK_TITLE
        self._last_chapter: str | None = None
        self._last_section: str | None = None
        self._chapters_by_page: dict[int, str] = {}
        self._sections_by_page: dict[int, str] = {}


    def classify(self, text: str, fallback_page: int = 0) -> ChunkMetadata:
        """Build the full metadata record of one chunk."""
        page = extract_page_number(text, fallback_page)
        return ChunkMetadata(page=page, chapter=self.extract_chapter(text, page), section=self.extract_section(text, page), type=classify_type(text), book_title=self._book_title)


    def extract_chapter(self, text: str, page: int) -> str:
        """
        Detect a chapter heading in *text* or inherit one from nearby pages.

        Heading forms, by priority: ``Chapter N: Title``, ``Chapter N``,
        ``Part/Section X: Title``, an ALL-CAPS line of 16+ characters
        (front matter excluded) and ``N.N Title`` with a title over 10
        characters.
        """
        chapter = self._detect_chapter(text)
        if chapter is not None:
            self._last_chapter = chapter
            self._chapters_by_page[page] = chapter
            return chapter

        if self._last_chapter is None:
            return UNKNOWN_CHAPTER
        return self._nearest(self._chapters_by_page, page, _CHAPTER_WINDOW) or self._last_chapter


    def extract_section(self, text: str, page: int) -> str | None:
        """Detect a section heading in *text* or inherit one from nearby pages."""
        section = self._detect_section(text)
        if section is not None:
            self._last_section = section
            self._sections_by_page[page] = section
            return section

        if self._last_section is None:
            return None
        return self._nearest(self._sections_by_page, page, _SECTION_WINDOW) or self._last_section


    def reset(self) -> None:
        self._last_chapter = None
        self._last_section = None
        self._chapters_by_page.clear()
        self._sections_by_page.clear()


    def stats(self) -> ClassifierStats:
        return {
            "last_known_chapter": self._last_chapter,
            "last_known_section": self._last_section,
            "chapters_detected": len(self._chapters_by_page),
            "sections_detected": len(self._sections_by_page),
            "chapter_pages": sorted(self._chapters_by_page.items()),
            "section_pages": sorted(self._sections_by_page.items()),
        }


    @staticmethod
    def _detect_chapter(text: str) -> str | None:
        match = _CHAPTER_TITLED_RE.search(text)
        if match:
            return f"Chapter {match.group(1)}: {match.group(2).strip()}"

        match = _CHAPTER_NUMBER_RE.search(text)
        if match:
            return f"Chapter {match.group(1)}"

        match = _PART_RE.search(text)
        if match:
            return f"{match.group(1)} {match.group(2)}: {match.group(3).strip()}"

        match = _CAPS_TITLE_RE.search(text)
        if match:
            title = match.group(1).strip()
            if not _FRONT_MATTER_RE.match(title):
                return title

        match = _DECIMAL_CHAPTER_RE.search(text)
        if match and len(match.group(2)) > 10:
            return f"Section {match.group(1)}: {match.group(2).strip()}"
        return None


    @staticmethod
    def _detect_section(text: str) -> str | None:
        match = _MARKDOWN_HEADING_RE.search(text)
        if match:
            return match.group(1).strip()

        match = _DECIMAL_SECTION_RE.search(text)
        if match and len(match.group(2)) > 5:
            return f"{match.group(1)} {match.group(2).strip()}"

        match = _SUBTITLE_RE.search(text)
        if match and len(match.group(1)) > 10:
            return match.group(1).strip()

        match = _SECTION_LABEL_RE.search(text)
        if match:
            return match.group(1).strip()
        return None


    @staticmethod
    def _nearest(by_page: dict[int, str], page: int, window: int) -> str | None:
        # Closest page first; on a tie the earlier page wins
        for offset in range(window + 1):
            found = by_page.get(page - offset) or by_page.get(page + offset)
            if found:
                return found
        return None
