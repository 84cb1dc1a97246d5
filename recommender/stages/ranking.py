"""
Candidate scoring and ranking.

Turns similarity hits into ScoredCandidates (applying the negative-signal
penalty), then merges candidates from all queries: dedupe by item keeping the
highest score, drop excluded items, sort by score descending, truncate.
"""

from typing import Iterable, List, Optional, Sequence, Set

from ..models.scoring import ScoredCandidate, SimilarItem

# Fraction of the weighted score removed when a negative vector exists.
NEGATIVE_PENALTY_FACTOR = 0.5


def apply_negative_penalty(score: float, negative_signal_weight: float) -> float:
    """
    score - weight * score * 0.5.

    The penalty is proportional to the candidate's own score, not to its
    similarity with the negative vector.
    """
    return score - negative_signal_weight * score * NEGATIVE_PENALTY_FACTOR


def score_hits(
    hits: Sequence[SimilarItem],
    source: str,
    negative_vector: Optional[Sequence[float]] = None,
    negative_signal_weight: float = 0.0,
) -> List[ScoredCandidate]:
    """Tag hits with their source; penalize when a negative vector is present."""
    penalize = negative_vector is not None and len(negative_vector) > 0
    out = []
    for hit in hits:
        score = hit.score
        if penalize:
            score = apply_negative_penalty(score, negative_signal_weight)
        out.append(ScoredCandidate(item_id=hit.item_id, score=score, source=source))
    return out


def rank_and_deduplicate(
    candidates: Iterable[ScoredCandidate],
    limit: int,
    exclude_ids: Optional[Set[str]] = None,
) -> List[ScoredCandidate]:
    """
    Merge candidates into the final ranked list.

    For an item seen more than once, the first candidate with the strictly
    highest score wins (its source tag is kept). Sort is stable, so equal
    scores keep first-seen order.
    """
    if limit <= 0:
        return []
    exclude = exclude_ids or set()
    best = {}
    for cand in candidates:
        if cand.item_id in exclude:
            continue
        current = best.get(cand.item_id)
        if current is None or cand.score > current.score:
            best[cand.item_id] = cand
    ranked = sorted(best.values(), key=lambda c: c.score, reverse=True)
    return ranked[:limit]
