"""Similarity metrics between place descriptors.

Both metrics accept dense and sparse (bag-of-words) descriptors. If either
side is sparse, both are compared as sparse vectors over their word ids, which
gives the same result as zero-padding both vectors to the full id space.
"""

from __future__ import annotations

import numpy as np

from .descriptor import Descriptor


def _check_dense_sizes(a: Descriptor, b: Descriptor) -> None:
    if len(a.values) != len(b.values):
        raise ValueError(
            f"Dense descriptor sizes differ: {len(a.values)} vs {len(b.values)}"
        )


def _norm(descriptor: Descriptor) -> float:
    if descriptor.normalized:
        return 1.0
    return float(np.linalg.norm(descriptor.values))


def compute_cosine_distance(a: Descriptor, b: Descriptor) -> float:
    """Compute cosine similarity between two descriptors.

    Scores near 1 mean the descriptors likely describe the same place. A
    descriptor flagged as normalized skips its norm computation.

    Args:
        a: First descriptor
        b: Second descriptor

    Returns:
        Cosine similarity in [-1, 1], or 0 if either vector is all zeros

    Raises:
        ValueError: If both descriptors are dense with different sizes
    """
    if a.is_sparse or b.is_sparse:
        ids_a, values_a = a.as_sparse()
        ids_b, values_b = b.as_sparse()
        _, idx_a, idx_b = np.intersect1d(
            ids_a, ids_b, assume_unique=True, return_indices=True
        )
        dot = float(np.dot(values_a[idx_a], values_b[idx_b]))
    else:
        _check_dense_sizes(a, b)
        dot = float(np.dot(a.values, b.values))

    norm_a = _norm(a)
    norm_b = _norm(b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return dot / (norm_a * norm_b)


def _l1_normalized(values: np.ndarray) -> np.ndarray:
    total = np.sum(np.abs(values))
    if total == 0.0:
        return np.zeros_like(values)
    return values / total


def compute_l1_distance(a: Descriptor, b: Descriptor) -> float:
    """Compute L1 distance between L1-normalized descriptors.

    Lower is better: identical histograms give 0, disjoint ones give 2.

    Args:
        a: First descriptor
        b: Second descriptor

    Returns:
        Sum of absolute differences over the union of dimensions

    Raises:
        ValueError: If both descriptors are dense with different sizes
    """
    if not (a.is_sparse or b.is_sparse):
        _check_dense_sizes(a, b)
        return float(np.sum(np.abs(_l1_normalized(a.values) - _l1_normalized(b.values))))

    ids_a, values_a = a.as_sparse()
    ids_b, values_b = b.as_sparse()
    values_a = _l1_normalized(values_a)
    values_b = _l1_normalized(values_b)

    _, idx_a, idx_b = np.intersect1d(ids_a, ids_b, assume_unique=True, return_indices=True)
    only_a = np.ones(len(ids_a), dtype=bool)
    only_a[idx_a] = False
    only_b = np.ones(len(ids_b), dtype=bool)
    only_b[idx_b] = False

    shared = np.sum(np.abs(values_a[idx_a] - values_b[idx_b]))
    return float(shared + np.sum(np.abs(values_a[only_a])) + np.sum(np.abs(values_b[only_b])))
