"""
tsrag - Reciprocal Rank Fusion
===============================
Merges independently ranked result lists into one ranking.

Every item contributes ``weight / (k + rank)`` per list it appears in,
with 1-based ranks and ``k = 60``.  Items are identified across lists by
the first 100 characters of their text; two chunks sharing that prefix
are treated as one.  The fused list is sorted by the summed contribution
(ties keep first-seen order) and each result's ``score`` is replaced by
that sum.
"""

from __future__ import annotations

from collections.abc import Sequence

from tsrag.src.core.models import SearchResult

RRF_K = 60
DEDUP_PREFIX_CHARS = 100

RankedList = tuple[Sequence[SearchResult], float]


def dedup_key(result: SearchResult) -> str:
    return result.text[:DEDUP_PREFIX_CHARS]


def reciprocal_rank_fusion(ranked_lists: Sequence[RankedList], limit: int, k: int = RRF_K) -> list[SearchResult]:
    """
    Fuse ``(results, weight)`` pairs into at most *limit* results.

    Parameters
    ----------
    ranked_lists
        Each entry is a best-first result list and the weight of that list.
    limit
        Maximum number of fused results to return (≥ 1).
    k
        Damping constant keeping the top rank from dominating.

    Returns
    -------
    list[SearchResult]
        Copies of the first-seen result per key, ``score`` set to the RRF sum.
    """
    if limit < 1:
        raise ValueError(f"limit must be ≥ 1, got {limit}")

    fused: dict[str, tuple[SearchResult, float]] = {}
    for results, weight in ranked_lists:
        for rank, result in enumerate(results, start=1):
            contribution = weight / (k + rank)
            key = dedup_key(result)
            if key in fused:
                first_seen, score = fused[key]
                fused[key] = (first_seen, score + contribution)
            else:
                fused[key] = (result, contribution)

    ordered = sorted(fused.values(), key=lambda item: item[1], reverse=True)
    return [result.model_copy(update={"score": score}) for result, score in ordered[:limit]]
