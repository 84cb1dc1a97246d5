"""
Recommender stages: temporal weighting, interest clustering, candidate ranking.
"""

from .clustering import count_cluster_assignments, kmeans
from .ranking import apply_negative_penalty, rank_and_deduplicate, score_hits
from .temporal_weighting import days_between, decay_weight, weighted_average

__all__ = [
    "apply_negative_penalty",
    "count_cluster_assignments",
    "days_between",
    "decay_weight",
    "kmeans",
    "rank_and_deduplicate",
    "score_hits",
    "weighted_average",
]
