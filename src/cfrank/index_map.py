"""
Read-only association between dense vector indices and original entity IDs.

Preference data is keyed by 64-bit IDs while vectors are keyed by int
indices. An IndexIDMap is built once upstream and only consulted here.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from .errors import IndexLookupError

logger = logging.getLogger(__name__)

_INT31_MASK = 0x7FFFFFFF
_UINT32_MASK = 0xFFFFFFFF
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


def id_to_index(entity_id: int) -> int:
    """
    Hash a 64-bit ID down to a non-negative 31-bit index.

    XOR-folds the high and low 32-bit halves and drops the sign bit, so
    small non-negative IDs map to themselves.
    """
    value = entity_id & _UINT64_MASK
    folded = (value ^ (value >> 32)) & _UINT32_MASK
    return folded & _INT31_MASK


class IndexIDMap:
    """Bidirectional, immutable index <-> ID lookup."""

    def __init__(self, index_to_id: Mapping[int, int] | None = None):
        forward = {int(index): int(entity_id) for index, entity_id in (index_to_id or {}).items()}
        reverse: dict[int, int] = {}
        for index, entity_id in forward.items():
            if entity_id in reverse:
                raise ValueError(
                    f"ID {entity_id} is mapped from both index {reverse[entity_id]} and {index}"
                )
            reverse[entity_id] = index
        self._index_to_id = MappingProxyType(forward)
        self._id_to_index = MappingProxyType(reverse)

    @classmethod
    def from_ids(cls, entity_ids: Iterable[int]) -> "IndexIDMap":
        """Assign dense indices 0..n-1 to the sorted distinct IDs."""
        ordered = sorted({int(i) for i in entity_ids})
        return cls({idx: entity_id for idx, entity_id in enumerate(ordered)})

    @classmethod
    def from_hashed_ids(cls, entity_ids: Iterable[int]) -> "IndexIDMap":
        """Derive indices with id_to_index(); colliding IDs are rejected."""
        mapping: dict[int, int] = {}
        for entity_id in entity_ids:
            entity_id = int(entity_id)
            index = id_to_index(entity_id)
            existing = mapping.get(index)
            if existing is not None and existing != entity_id:
                raise ValueError(f"IDs {existing} and {entity_id} both hash to index {index}")
            mapping[index] = entity_id
        return cls(mapping)

    def __len__(self) -> int:
        return len(self._index_to_id)

    def __bool__(self) -> bool:
        return bool(self._index_to_id)

    def __contains__(self, index: object) -> bool:
        return index in self._index_to_id

    def __repr__(self) -> str:
        return f"IndexIDMap(size={len(self)})"

    def id_for(self, index: int) -> int:
        """Return the original ID for a dense index; raises IndexLookupError on a miss."""
        try:
            return self._index_to_id[index]
        except KeyError:
            raise IndexLookupError(index) from None

    def index_for(self, entity_id: int) -> int:
        return self._id_to_index[entity_id]

    def resolve(self, index: int, strict: bool = True) -> int:
        """
        Map an index to its ID.

        An empty map passes every index through unchanged. For a non-empty
        map a missing index raises in strict mode; otherwise it falls back
        to the raw index with a warning.
        """
        if not self._index_to_id:
            return index
        if index in self._index_to_id:
            return self._index_to_id[index]
        if strict:
            raise IndexLookupError(index)
        logger.warning(f"Index {index} missing from index map, using raw index")
        return index

    def ids(self) -> list[int]:
        return list(self._id_to_index)
