"""Errors raised by the pure recommender core."""


class VectorDimensionError(ValueError):
    """Raised when vectors combined in one operation have different lengths."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual
