"""
Error taxonomy for the recommendation pipeline.

File problems are reported with the built-in OSError family (FileNotFoundError,
PermissionError, ...); everything else derives from BookRecError.
"""


class BookRecError(Exception):
    """Base exception for recommendation index operations."""
    pass


class FormatError(BookRecError):
    """A raw record could not be parsed."""
    pass


class EncodingError(BookRecError):
    """A record lacks the fields needed to build its feature vector."""
    pass


class NotFoundError(BookRecError):
    """A queried identifier or the index manifest is absent from the store."""
    pass


class DimensionMismatchError(BookRecError):
    """A vector's length disagrees with the dimensionality recorded for the index."""

    def __init__(self, expected: int, actual: int, context: str = "query vector"):
        self.expected = expected
        self.actual = actual
        super().__init__(f"{context} has dimension {actual}, index expects {expected}")


class StoreConnectionError(BookRecError):
    """The key-value store cannot be reached, or retries were exhausted."""
    pass
