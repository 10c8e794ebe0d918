"""
Sparse vector type used for similarity columns, predictions and statistics.

Only non-zero entries are stored; writing 0.0 removes an entry. The index
space is unbounded, so vectors carry no fixed cardinality until they are
converted to a scipy matrix.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Mapping

import numpy as np
from scipy.sparse import csr_matrix, issparse


class SparseVector:
    """Mapping from non-negative int index to a non-zero float value."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[int, float] | Iterable[tuple[int, float]] | None = None):
        self._entries: dict[int, float] = {}
        if entries is None:
            return
        items = entries.items() if isinstance(entries, Mapping) else entries
        for index, value in items:
            self.set(index, value)

    def get(self, index: int) -> float:
        return self._entries.get(index, 0.0)

    def set(self, index: int, value: float) -> None:
        if index < 0:
            raise ValueError(f"Vector indices must be non-negative, got {index}")
        value = float(value)
        if value == 0.0:
            self._entries.pop(index, None)
        else:
            self._entries[int(index)] = value

    def __getitem__(self, index: int) -> float:
        return self.get(index)

    def __setitem__(self, index: int, value: float) -> None:
        self.set(index, value)

    def __contains__(self, index: object) -> bool:
        return index in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[tuple[int, float]]:
        return self.nonzeroes()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SparseVector):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        body = ", ".join(f"{i}: {v!r}" for i, v in sorted(self._entries.items()))
        return f"SparseVector({{{body}}})"

    def nonzeroes(self) -> Iterator[tuple[int, float]]:
        """Iterate (index, value) pairs in insertion order."""
        return iter(list(self._entries.items()))

    def num_nonzeroes(self) -> int:
        return len(self._entries)

    def indices(self) -> list[int]:
        return list(self._entries)

    def copy(self) -> "SparseVector":
        clone = SparseVector()
        clone._entries = dict(self._entries)
        return clone

    def to_dict(self) -> dict[int, float]:
        return dict(self._entries)

    def plus(self, other: "SparseVector") -> "SparseVector":
        """Element-wise sum; entries that cancel to 0.0 are dropped."""
        result = self.copy()
        for index, value in other.nonzeroes():
            result.set(index, result.get(index) + value)
        return result

    def times(self, factor: float) -> "SparseVector":
        return SparseVector((index, value * factor) for index, value in self.nonzeroes())

    def absolute(self) -> "SparseVector":
        return SparseVector((index, abs(value)) for index, value in self.nonzeroes())

    def max_index(self) -> int:
        """Largest stored index, or -1 for an empty vector."""
        return max(self._entries, default=-1)

    @classmethod
    def merge(cls, vectors: Iterable["SparseVector"]) -> "SparseVector":
        """
        Merge partial vectors for the same key.

        Later vectors overwrite earlier ones at shared indices; partials are
        expected to cover disjoint index ranges.
        """
        merged = cls()
        for vector in vectors:
            for index, value in vector.nonzeroes():
                merged._entries[index] = value
        return merged

    @classmethod
    def from_scipy(cls, matrix, row: int = 0) -> "SparseVector":
        """Build a vector from one row of a scipy sparse matrix (or a dense 1-d array)."""
        if issparse(matrix):
            csr = csr_matrix(matrix)
            csr.sum_duplicates()
            start, end = csr.indptr[row], csr.indptr[row + 1]
            return cls(zip(csr.indices[start:end].tolist(), csr.data[start:end].tolist()))
        dense = np.asarray(matrix, dtype=np.float64)
        if dense.ndim == 2:
            dense = dense[row]
        nz = np.flatnonzero(dense)
        return cls(zip(nz.tolist(), dense[nz].tolist()))

    def to_csr(self, size: int | None = None) -> csr_matrix:
        """Convert to a 1 x size CSR row; size defaults to max index + 1."""
        n = self.max_index() + 1 if size is None else size
        if n <= self.max_index():
            raise ValueError(f"size {n} is too small for index {self.max_index()}")
        if not self._entries:
            return csr_matrix((1, n), dtype=np.float64)
        cols = np.fromiter(self._entries.keys(), dtype=np.int64, count=len(self._entries))
        vals = np.fromiter(self._entries.values(), dtype=np.float64, count=len(self._entries))
        rows = np.zeros(len(cols), dtype=np.int64)
        return csr_matrix((vals, (rows, cols)), shape=(1, n), dtype=np.float64)
