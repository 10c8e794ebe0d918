import math
from dataclasses import dataclass, field
from numbers import Integral, Real
from typing import Iterable

from . import config
from .errors import ConfigurationError
from .index_map import IndexIDMap


@dataclass
class RecommenderConfig:
    """
    Settings shared by the aggregation, top-K and row statistics stages of one run.

    Defaults come from ``cfrank.config`` (and therefore from the
    environment) at construction time. Validation runs on construction so
    a bad setup fails before any record is processed.
    """

    # Sum similarities instead of a weighted average (implicit feedback)
    boolean_data: bool = field(default_factory=lambda: config.BOOLEAN_DATA)
    num_recommendations: int = field(default_factory=lambda: config.NUM_RECOMMENDATIONS)

    # Only these item IDs may be recommended; None or empty means all
    items_to_recommend_for: Iterable[int] | None = None

    # Dense item index -> original item ID; None or empty means identity
    item_index_map: IndexIDMap | None = None
    strict_index_lookup: bool = field(default_factory=lambda: config.STRICT_INDEX_LOOKUP)

    # Row statistics pruning threshold; NO_THRESHOLD disables it
    threshold: float = field(default_factory=lambda: config.THRESHOLD)

    def __post_init__(self) -> None:
        if self.items_to_recommend_for is not None:
            self.items_to_recommend_for = frozenset(int(i) for i in self.items_to_recommend_for)
        self.validate()

    def validate(self) -> None:
        validate_num_recommendations(self.num_recommendations)
        validate_threshold(self.threshold)
        if self.item_index_map is not None and not isinstance(self.item_index_map, IndexIDMap):
            raise ConfigurationError("item_index_map must be an IndexIDMap")

    @property
    def has_threshold(self) -> bool:
        return self.threshold != config.NO_THRESHOLD


def validate_num_recommendations(value) -> int:
    # bool is an int subclass; True must not silently mean K=1
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise ConfigurationError(f"num_recommendations must be an integer, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"num_recommendations must be positive, got {value}")
    return int(value)


def validate_threshold(value) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or math.isnan(value):
        raise ConfigurationError(f"threshold must be a number, got {value!r}")
    return float(value)
