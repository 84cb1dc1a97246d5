"""
Recommender configuration: generation, clustering, serving and batch parameters.

Defaults are defined here. The server may pass a dict (e.g. from the JSON file at
RECOMMENDER_CONFIG_PATH); from_dict() merges it with these defaults.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator


class GenerationConfig(BaseModel):
    """Parameters for on-demand candidate generation."""

    # -------------------------------------------------------------------------
    # Temporal weighting
    # weight = exp(-ln2 / half_life * days_since_rating)
    # -------------------------------------------------------------------------

    # Days after which a rating counts half as much in the temporal query vector.
    temporal_half_life_days: float = 90.0

    # -------------------------------------------------------------------------
    # Negative signal
    # score -= negative_signal_weight * score * 0.5 when a negative vector exists
    # -------------------------------------------------------------------------

    # 0 disables the negative vector fetch entirely.
    negative_signal_weight: float = 0.3

    # -------------------------------------------------------------------------
    # Interest clusters
    # -------------------------------------------------------------------------

    # Query once per stored cluster centroid.
    use_interest_clusters: bool = True
    # Hits per cluster query. The temporal query asks for twice as many.
    candidates_per_cluster: int = 20

    # Per-search deadline in seconds. None waits on the backend's own timeout.
    search_timeout_seconds: Optional[float] = None

    @model_validator(mode="after")
    def check_ranges(self):
        if self.temporal_half_life_days <= 0:
            raise ValueError(
                f"temporal_half_life_days must be positive, got {self.temporal_half_life_days}"
            )
        if not 0.0 <= self.negative_signal_weight <= 1.0:
            raise ValueError(
                f"negative_signal_weight must be in [0, 1], got {self.negative_signal_weight}"
            )
        if self.candidates_per_cluster < 1:
            raise ValueError(
                f"candidates_per_cluster must be >= 1, got {self.candidates_per_cluster}"
            )
        if self.search_timeout_seconds is not None and self.search_timeout_seconds <= 0:
            raise ValueError("search_timeout_seconds must be positive when set")
        return self


class ClusterConfig(BaseModel):
    """Parameters for k-means interest clustering."""

    # Target number of interest clusters. Capped at the number of positive items.
    num_clusters: int = 3
    # Users with fewer positive items have their clusters cleared instead.
    min_items_for_clustering: int = 6
    max_iterations: int = 50
    # Stop when no centroid moves further than this (Euclidean).
    convergence_threshold: float = 1e-4

    @model_validator(mode="after")
    def check_ranges(self):
        if self.num_clusters < 0:
            raise ValueError(f"num_clusters must be >= 0, got {self.num_clusters}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.convergence_threshold < 0:
            raise ValueError("convergence_threshold must be >= 0")
        return self


class ServingConfig(BaseModel):
    """Parameters for serving from the precomputed cache."""

    # Precomputed results older than this are treated as a cache miss.
    stale_threshold_hours: float = 48.0
    # Rows read from the cache before read items are filtered out.
    fetch_limit: int = 200


class BatchConfig(BaseModel):
    """Parameters for the periodic regeneration job."""

    # Candidates generated and stored per user.
    candidate_limit: int = 200
    # Users processed concurrently.
    concurrency: int = Field(default=4, ge=1)
    # Base seed for per-user clustering generators.
    seed: int = 0


class RecommenderConfig(BaseModel):
    """All recommender parameters, grouped by stage."""

    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    clustering: ClusterConfig = Field(default_factory=ClusterConfig)
    serving: ServingConfig = Field(default_factory=ServingConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)

    @classmethod
    def from_dict(cls, config_dict: Dict) -> "RecommenderConfig":
        """Create config from a nested dictionary (e.g., loaded from JSON). Unknown keys are ignored."""
        groups = {
            "generation": GenerationConfig,
            "clustering": ClusterConfig,
            "serving": ServingConfig,
            "batch": BatchConfig,
        }
        values = {}
        for name, model in groups.items():
            section = config_dict.get(name) or {}
            allowed = set(model.model_fields)
            values[name] = model.model_validate(
                {k: v for k, v in section.items() if k in allowed}
            )
        return cls(**values)


DEFAULT_CONFIG = RecommenderConfig()


def resolve_config(config: Optional["RecommenderConfig"]) -> "RecommenderConfig":
    """Return config or DEFAULT_CONFIG when none is provided."""
    return config if config is not None else DEFAULT_CONFIG
