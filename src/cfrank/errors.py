"""Exception types raised by the recommendation core."""


class CfrankError(Exception):
    """Base class for all cfrank errors."""


class ConfigurationError(CfrankError, ValueError):
    """Invalid job setup: bad K, unusable similarity measure, bad threshold."""


class MalformedInputError(CfrankError, ValueError):
    """A vector carries NaN or Infinity where a finite value is required."""


class IndexLookupError(CfrankError, KeyError):
    """A dense index has no entry in a non-empty index-to-ID map."""

    def __init__(self, index: int):
        super().__init__(index)
        self.index = index

    def __str__(self) -> str:
        return f"index {self.index} is not present in the index map"
