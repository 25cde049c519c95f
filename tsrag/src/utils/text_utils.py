"""
tsrag - Text Utilities
=======================
Helper functions for query normalisation, text cleaning, previews
and conversation titles.

Everything here is stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata

# ── Patterns ───────────────────────────────────────────────────────────
# Control characters (C0/C1) except \n, \r, \t, plus BOM, zero-width
# characters and soft hyphens left behind by PDF extraction.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")
_WHITESPACE_RE = re.compile(r"\s+")

_ELLIPSIS = "..."
_TITLE_MAX_LENGTH = 45


# ── Public API ─────────────────────────────────────────────────────────

def normalize_query(query: str) -> str:
    """
    Canonical form of a user query: lowercase, trimmed, with every
    whitespace run collapsed to a single space.

    ``"  Hello   World "`` and ``"hello world"`` share one key.
    """
    return _WHITESPACE_RE.sub(" ", query.lower().strip())


def clean_text(text: str) -> str:
    """
    Sanitise raw PDF page text for chunking and embedding.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate_preview(text: str, max_chars: int) -> str:
    """Cut *text* to *max_chars* characters, marking the cut with ``...``."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + _ELLIPSIS


def generate_title(question: str, max_length: int = _TITLE_MAX_LENGTH) -> str:
    """
    Derive a short conversation title from the first user question.

    The question is whitespace-collapsed; if longer than *max_length*
    it is cut at the last space (when that space sits beyond 60% of
    the limit) or hard-cut otherwise, and suffixed with ``...``.
    """
    cleaned = _WHITESPACE_RE.sub(" ", question).strip()
    if len(cleaned) <= max_length:
        return cleaned

    truncated = cleaned[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.6:
        return truncated[:last_space] + _ELLIPSIS
    return truncated + _ELLIPSIS
