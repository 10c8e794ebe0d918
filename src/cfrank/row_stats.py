"""
Row normalization, transpose and per-row statistics for row similarity.

For every row the collector normalizes the vector with the configured
similarity measure, scatters each non-zero entry as a one-entry column
vector keyed by its column index, and records the row's norm (and, when a
threshold is set, its non-zero count and maximum value). The statistics
are flushed once at the end of the pass under reserved marker keys.
"""

from __future__ import annotations

import importlib
import logging
import math
from typing import Protocol, runtime_checkable

from . import config
from .errors import ConfigurationError, MalformedInputError
from .job_config import validate_threshold
from .vectors import SparseVector

logger = logging.getLogger(__name__)

Record = tuple[int, SparseVector]


@runtime_checkable
class VectorSimilarityMeasure(Protocol):
    def normalize(self, vector: SparseVector) -> SparseVector: ...

    def norm(self, vector: SparseVector) -> float: ...


def load_similarity_measure(measure) -> VectorSimilarityMeasure:
    """
    Resolve a similarity measure.

    Accepts an object exposing ``normalize``/``norm``, a class providing
    them (instantiated without arguments), or a dotted path
    ``"package.module.ClassName"`` (also ``"package.module:ClassName"``).
    """
    if isinstance(measure, str):
        module_name, sep, attr = measure.replace(":", ".").rpartition(".")
        if not sep or not module_name:
            raise ConfigurationError(f"Similarity measure must be a dotted path, got {measure!r}")
        try:
            module = importlib.import_module(module_name)
            measure = getattr(module, attr)
        except (ImportError, AttributeError) as exc:
            raise ConfigurationError(f"Cannot load similarity measure {module_name}.{attr}: {exc}") from exc

    if isinstance(measure, type):
        try:
            measure = measure()
        except TypeError as exc:
            raise ConfigurationError(f"Cannot instantiate similarity measure {measure.__name__}: {exc}") from exc

    if not (callable(getattr(measure, "normalize", None)) and callable(getattr(measure, "norm", None))):
        raise ConfigurationError(f"{measure!r} does not provide normalize() and norm()")
    return measure


class RowStatisticsCollector:
    """
    Per-worker accumulator for row norms, non-zero counts and maxima.

    Lifecycle: ``initialize()`` once, ``process()`` per row, ``flush()``
    once. Instances must not be shared between workers.
    """

    def __init__(self, measure, threshold: float = config.NO_THRESHOLD):
        self.measure = load_similarity_measure(measure)
        self.threshold = validate_threshold(threshold)
        self.norms: SparseVector | None = None
        self.non_zero_counts: SparseVector | None = None
        self.max_values: SparseVector | None = None
        self.rows_processed = 0
        self._flushed = False

    @property
    def has_threshold(self) -> bool:
        return self.threshold != config.NO_THRESHOLD

    def initialize(self) -> None:
        self.norms = SparseVector()
        self.non_zero_counts = SparseVector()
        self.max_values = SparseVector()
        self.rows_processed = 0
        self._flushed = False

    def _require_open(self) -> None:
        if self.norms is None:
            raise RuntimeError("RowStatisticsCollector.initialize() must be called first")
        if self._flushed:
            raise RuntimeError("RowStatisticsCollector has already been flushed")

    def process(self, row_index: int, row: SparseVector) -> list[Record]:
        """
        Normalize one row and return its transposed (column, {row: value}) records.

        Raises MalformedInputError, without touching the accumulators, if the
        normalized row holds NaN or Infinity.
        """
        self._require_open()
        normalized = self.measure.normalize(row)

        entries = list(normalized.nonzeroes())
        bad = [index for index, value in entries if not math.isfinite(value)]
        if bad:
            raise MalformedInputError(f"Row {row_index} has non-finite values at columns {bad[:5]}")

        records: list[Record] = []
        max_value = config.MIN_POSITIVE_DOUBLE
        for column, value in entries:
            records.append((column, SparseVector({row_index: value})))
            if max_value < value:
                max_value = value

        if self.has_threshold:
            self.non_zero_counts.set(row_index, len(entries))
            self.max_values.set(row_index, max_value)
        self.norms.set(row_index, self.measure.norm(normalized))

        self.rows_processed += 1
        return records

    def flush(self) -> list[Record]:
        """Return the norms, non-zero counts and max values under their marker keys."""
        self._require_open()
        self._flushed = True
        logger.debug(f"Flushing row statistics for {self.rows_processed} rows")
        return [
            (config.NORM_VECTOR_MARKER, self.norms),
            (config.NUM_NON_ZERO_ENTRIES_VECTOR_MARKER, self.non_zero_counts),
            (config.MAXVALUE_VECTOR_MARKER, self.max_values),
        ]


def is_marker_key(key: int) -> bool:
    return key in (
        config.NORM_VECTOR_MARKER,
        config.NUM_NON_ZERO_ENTRIES_VECTOR_MARKER,
        config.MAXVALUE_VECTOR_MARKER,
    )
