"""
tsrag - Scope Guardrail
========================
Keyword heuristic deciding whether a question is about TypeScript
before any embedding, retrieval or generation cost is spent.

Algorithm
---------
1. Lowercase the query.
2. If an off-topic term (another language's name) appears as a whole
   token and no anchor keyword (``typescript``, ``ts``, ...) appears,
   reject.
3. Otherwise accept when at least one domain keyword starts a word.
4. No match at all rejects: refusing is safer than answering outside
   the book.

The guardrail is a pure function of its input: no I/O, no state, and it
never raises.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from tsrag.config.prompt_templates import ANCHOR_KEYWORDS, DOMAIN_KEYWORDS, OFF_TOPIC_TERMS
from tsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

# Word characters plus the symbols that belong to language names (c++, c#)
_TOKEN_CHARS = r"\w+#"


def _prefix_pattern(term: str) -> re.Pattern[str]:
    """Match *term* at the start of a word (``generic`` hits ``generics``)."""
    return re.compile(rf"(?<![{_TOKEN_CHARS}]){re.escape(term)}")


def _token_pattern(term: str) -> re.Pattern[str]:
    """Match *term* only as a whole token (``java`` misses ``javascript``)."""
    return re.compile(rf"(?<![{_TOKEN_CHARS}]){re.escape(term)}(?![{_TOKEN_CHARS}])")


class ScopeGuardrail:
    """
    Classifies queries as in-domain or out-of-domain.

    Parameters
    ----------
    domain_keywords
        Terms strongly associated with TypeScript.
    anchor_keywords
        Terms that keep a query in scope even when an off-topic term is present.
    off_topic_terms
        Names of unrelated languages that disqualify a query on their own.
    """

    __slots__ = ("_domain", "_anchors", "_off_topic")

    def __init__(self, domain_keywords: Iterable[str] = DOMAIN_KEYWORDS, anchor_keywords: Iterable[str] = ANCHOR_KEYWORDS, off_topic_terms: Iterable[str] = OFF_TOPIC_TERMS) -> None:
        self._domain = [(term, _prefix_pattern(term.lower())) for term in sorted(domain_keywords)]
        self._anchors = [(term, _token_pattern(term.lower())) for term in sorted(anchor_keywords)]
        self._off_topic = [(term, _token_pattern(term.lower())) for term in sorted(off_topic_terms)]


    def is_in_scope(self, query: str) -> bool:
        """Return ``True`` when *query* plausibly concerns the supported domain."""
        if not isinstance(query, str) or not query.strip():
            return False

        text = query.lower()

        off_topic = self._first_match(self._off_topic, text)
        if off_topic is not None and self._first_match(self._anchors, text) is None:
            logger.info("[GUARDRAIL] Rejected: off-topic term '%s' without a TypeScript anchor.", off_topic)
            return False

        keyword = self._first_match(self._domain, text)
        if keyword is None:
            logger.info("[GUARDRAIL] Rejected: no domain keyword in '%.60s'.", query)
            return False

        logger.debug("[GUARDRAIL] Accepted via keyword '%s'.", keyword)
        return True


    @staticmethod
    def _first_match(patterns: list[tuple[str, re.Pattern[str]]], text: str) -> str | None:
        for term, pattern in patterns:
            if pattern.search(text):
                return term
        return None
