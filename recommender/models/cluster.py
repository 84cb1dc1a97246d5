"""Interest cluster models: k-means output and persisted per-user clusters."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class ClusterResult(BaseModel):
    """Raw k-means output. assignments[i] is the cluster index of point i."""

    centroids: List[List[float]] = Field(default_factory=list)
    assignments: List[int] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.centroids


class InterestCluster(BaseModel):
    """One persisted interest cluster. A user's clusters are replaced as a set."""

    cluster_index: int
    centroid: List[float]
    member_count: int
    updated_at: datetime
