"""Service-layer errors surfaced to callers of the recommendation operations."""


class RecommendationError(RuntimeError):
    """A recommendation operation failed and has no usable result."""


class SignalFetchError(RecommendationError):
    """The user's positive rating vectors could not be read."""
