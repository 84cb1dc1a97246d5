"""
Rating model: a user's thumbs-up / thumbs-down on an item, with its vector.

Used by clustering (positive vectors), temporal weighting (rated_at) and the
negative signal. Built from store dicts via RatedItemVector.model_validate(d).
"""

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel


class RatingKind(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


class RatedItemVector(BaseModel):
    """
    One rated item with its content vector.

    At most one record exists per (user, item); re-rating replaces it.
    rated_at is the time of the latest rating change (UTC).
    """

    item_id: str
    vector: List[float]
    kind: RatingKind
    rated_at: datetime
