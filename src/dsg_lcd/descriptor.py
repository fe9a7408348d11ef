"""Descriptor value types shared by the loop closure search.

A descriptor is the compact signature a scene graph node keeps for place
recognition. It is either a dense vector (the index is the dimension) or a
sparse bag-of-words vector given as paired ``words`` / ``values`` arrays.

Descriptors are created by the graph-construction side and then only read
by the search code, so they are frozen and their arrays are read-only. Caches
and results reference the same instance instead of copying the vectors.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass, field

import numpy as np

# Opaque, ordered, hashable graph node identifier (ints in practice)
NodeId = Hashable


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class Descriptor:
    """Place recognition signature owned by a graph node.

    Attributes:
        values: Descriptor weights, shape (N,) float64
        words: Optional sparse dimension ids paired with ``values``, shape (N,)
        normalized: Whether ``values`` already has unit L2 norm
        root_node: Node owning this descriptor
        nodes: Member nodes aggregated into this descriptor
        timestamp: Observation time of the owning node (seconds)
    """

    values: np.ndarray  # (N,) float64
    words: np.ndarray | None = None  # (N,) int64, unique
    normalized: bool = False
    root_node: NodeId | None = None
    nodes: frozenset = field(default_factory=frozenset)
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=np.float64)
        if values.ndim != 1:
            raise ValueError(f"Descriptor values must be 1-D, got shape {values.shape}")
        object.__setattr__(self, "values", _readonly(values))

        if self.words is not None:
            raw_words = np.asarray(self.words)
            if raw_words.size > 0 and not np.issubdtype(raw_words.dtype, np.integer):
                raise ValueError(
                    f"Descriptor words must be integer ids, got dtype {raw_words.dtype}"
                )
            words = np.array(raw_words, dtype=np.int64)
            if words.shape != values.shape:
                raise ValueError(
                    f"Descriptor words shape {words.shape} does not match "
                    f"values shape {values.shape}"
                )
            if len(np.unique(words)) != len(words):
                raise ValueError("Descriptor words contain duplicate ids")
            object.__setattr__(self, "words", _readonly(words))

        object.__setattr__(self, "nodes", frozenset(self.nodes))
        object.__setattr__(self, "timestamp", float(self.timestamp))

    @classmethod
    def from_histogram(cls, histogram: Mapping[int, float], **kwargs) -> Descriptor:
        """Create a sparse descriptor from a word id -> weight mapping.

        Args:
            histogram: Weight per bag-of-words id
            **kwargs: Remaining Descriptor fields (root_node, nodes, ...)

        Returns:
            Sparse descriptor with words sorted ascending
        """
        words = sorted(histogram)
        return cls(
            values=np.array([histogram[w] for w in words], dtype=np.float64),
            words=np.array(words, dtype=np.int64),
            **kwargs,
        )

    @property
    def is_sparse(self) -> bool:
        """Whether the descriptor carries bag-of-words ids."""
        return self.words is not None

    @property
    def size(self) -> int:
        """Number of stored entries."""
        return len(self.values)

    def as_sparse(self) -> tuple[np.ndarray, np.ndarray]:
        """Return (ids, values) sorted by id.

        Dense descriptors use their indices as ids.
        """
        if self.words is None:
            return np.arange(len(self.values), dtype=np.int64), self.values

        order = np.argsort(self.words, kind="stable")
        return self.words[order], self.values[order]

    def normalize(self) -> Descriptor:
        """Return an L2-normalized copy of this descriptor.

        A zero vector is returned unchanged (and stays flagged as not
        normalized) since it has no direction.
        """
        if self.normalized:
            return self

        norm = np.linalg.norm(self.values)
        if norm == 0.0:
            return self

        return Descriptor(
            values=self.values / norm,
            words=self.words,
            normalized=True,
            root_node=self.root_node,
            nodes=self.nodes,
            timestamp=self.timestamp,
        )

    def __len__(self) -> int:
        return len(self.values)


# Flat pool of descriptors at one layer: node id -> descriptor
DescriptorCache = dict[NodeId, Descriptor]

# Two-level index: root id -> that root's DescriptorCache
DescriptorCacheMap = dict[NodeId, DescriptorCache]


def make_cache(descriptors: Iterable[Descriptor]) -> DescriptorCache:
    """Build a DescriptorCache keyed by each descriptor's root node.

    Args:
        descriptors: Descriptors with ``root_node`` set

    Returns:
        Mapping from root node to descriptor
    """
    cache: DescriptorCache = {}
    for descriptor in descriptors:
        if descriptor.root_node is None:
            raise ValueError("Cannot cache a descriptor without a root node")
        cache[descriptor.root_node] = descriptor
    return cache
