"""
Temporal weighting: recency-decayed average of rated item vectors.

weight = exp(-ln2 / half_life_days * days_since_rating). Weights are not
clamped, so a rating timestamped in the future weighs more than 1.
"""

import math
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from ..utils.vectors import Vector, weighted_mean

SECONDS_PER_DAY = 86400.0


def _as_utc(ts: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def days_between(now: datetime, ts: datetime) -> float:
    """Fractional days from ts to now (negative when ts is in the future)."""
    return (_as_utc(now) - _as_utc(ts)).total_seconds() / SECONDS_PER_DAY


def decay_weight(days: float, half_life_days: float) -> float:
    if half_life_days <= 0:
        raise ValueError(f"half_life_days must be positive, got {half_life_days}")
    lam = math.log(2) / half_life_days
    return math.exp(-lam * days)


def weighted_average(
    vectors: Sequence[Tuple[Vector, datetime]],
    half_life_days: float,
    now: Optional[datetime] = None,
) -> Optional[List[float]]:
    """
    Recency-weighted mean of (vector, rated_at) pairs.

    Returns None for empty input or when every weight underflows to zero.
    """
    if half_life_days <= 0:
        raise ValueError(f"half_life_days must be positive, got {half_life_days}")
    if not vectors:
        return None
    now = now or datetime.now(timezone.utc)
    weights = [decay_weight(days_between(now, ts), half_life_days) for _, ts in vectors]
    if sum(weights) == 0:
        return None
    return weighted_mean([v for v, _ in vectors], weights)
