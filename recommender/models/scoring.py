"""
Scoring models: similarity hits, scored candidates and their provenance.

Contains:
- SimilarItem: one hit from a similarity search
- CandidateSource: which query produced a candidate (cluster N or temporal)
- ScoredCandidate: a candidate with its (possibly penalized) score and source tag
"""

from typing import Literal, Optional

from pydantic import BaseModel, model_validator

CLUSTER_TAG_PREFIX = "cluster_"
TEMPORAL_TAG = "temporal"


class SimilarItem(BaseModel):
    item_id: str
    score: float


class CandidateSource(BaseModel):
    """
    Closed set of candidate provenances.

    kind="cluster" carries the cluster index; kind="temporal" carries none.
    Rendered for storage as "cluster_<index>" or "temporal".
    """

    kind: Literal["cluster", "temporal"]
    cluster_index: Optional[int] = None

    @model_validator(mode="after")
    def index_matches_kind(self):
        if self.kind == "cluster" and self.cluster_index is None:
            raise ValueError("cluster source requires cluster_index")
        if self.kind == "temporal" and self.cluster_index is not None:
            raise ValueError("temporal source has no cluster_index")
        return self

    @classmethod
    def cluster(cls, index: int) -> "CandidateSource":
        return cls(kind="cluster", cluster_index=index)

    @classmethod
    def temporal(cls) -> "CandidateSource":
        return cls(kind="temporal")

    @property
    def tag(self) -> str:
        if self.kind == "cluster":
            return f"{CLUSTER_TAG_PREFIX}{self.cluster_index}"
        return TEMPORAL_TAG

    @classmethod
    def from_tag(cls, tag: str) -> "CandidateSource":
        """Parse a stored source tag back into a CandidateSource."""
        if tag == TEMPORAL_TAG:
            return cls.temporal()
        if tag.startswith(CLUSTER_TAG_PREFIX):
            suffix = tag[len(CLUSTER_TAG_PREFIX):]
            if suffix.isdigit():
                return cls.cluster(int(suffix))
        raise ValueError(f"unknown candidate source tag: {tag!r}")


class ScoredCandidate(BaseModel):
    """A candidate item with its score and source tag (e.g. "cluster_0", "temporal")."""

    item_id: str
    score: float
    source: str
