"""
Persisted per-user records and hydrated item records.

Contains:
- AggregateVector: running sum of positive item vectors and their count
- PrecomputedRecommendation: one row of a user's cached recommendation list
- RegenerationStatus: whether the user's cached list needs rebuilding
- ItemRecord: content record returned to callers (extra catalog fields allowed)
- RegenerationSummary: batch job outcome counts
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AggregateVector(BaseModel):
    """
    Sum of the vectors of exactly the items whose contribution flag is set.

    count is the number of set flags. mean is absent when count is 0.
    """

    user_id: str
    vector_sum: List[float] = Field(default_factory=list)
    count: int = 0

    @property
    def mean(self) -> Optional[List[float]]:
        if self.count <= 0 or not self.vector_sum:
            return None
        return [v / self.count for v in self.vector_sum]


class PrecomputedRecommendation(BaseModel):
    """One cached recommendation. position is 0-based; all rows of a set share generated_at."""

    user_id: str
    item_id: str
    score: float
    source: str
    position: int
    generated_at: datetime


class RegenerationStatus(BaseModel):
    user_id: str
    last_generated_at: Optional[datetime] = None
    last_signal_at: Optional[datetime] = None
    needs_regeneration: bool = False


class ItemRecord(BaseModel):
    """
    A hydrated content item.

    item_id is required; the rest mirror the catalog and may be absent.
    Unknown catalog fields are kept (extra="allow").
    """

    model_config = ConfigDict(extra="allow")

    item_id: str
    title: str = ""
    url: str = ""
    authors: List[str] = Field(default_factory=list)
    source: str = ""
    published_at: Optional[datetime] = None
    text_start: str = ""


class RegenerationSummary(BaseModel):
    success_count: int = 0
    fail_count: int = 0
