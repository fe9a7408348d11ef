"""Candidate eligibility and scan order for descriptor searches.

A cached descriptor is an eligible opponent for a query iff its id is in the
caller-supplied candidate set and it was observed far enough in time from the
query. Eligible candidates are visited newest first (descending node id) and
the scan stops once ``scan_budget`` candidates have been handed out, so the
same inputs always skip the same candidates.
"""

from __future__ import annotations

from collections.abc import Collection, Iterator

from .config import DescriptorMatchConfig
from .descriptor import Descriptor, DescriptorCache, NodeId


def check_scan_budget(scan_budget: int | None) -> None:
    """Raise ValueError for a negative scan budget."""
    if scan_budget is not None and scan_budget < 0:
        raise ValueError(f"scan_budget must be non-negative, got {scan_budget}")


def is_valid_candidate(
    query: Descriptor,
    candidate: Descriptor,
    config: DescriptorMatchConfig,
) -> bool:
    """Check the temporal separation between a query and a candidate.

    Args:
        query: Query descriptor
        candidate: Cached descriptor
        config: Match config providing ``min_time_separation_s``

    Returns:
        True if |dt| is at least the configured separation
    """
    return abs(query.timestamp - candidate.timestamp) >= config.min_time_separation_s


def eligible_ids(
    candidate_ids: Collection[NodeId],
    cache: DescriptorCache,
) -> list[NodeId]:
    """Return ids present in both the candidate set and the cache, in scan order."""
    return sorted((node_id for node_id in candidate_ids if node_id in cache), reverse=True)


def _scan(
    query: Descriptor,
    config: DescriptorMatchConfig,
    candidate_ids: Collection[NodeId],
    cache: DescriptorCache,
    scan_budget: int | None,
) -> Iterator[tuple[NodeId, Descriptor]]:
    num_yielded = 0
    for node_id in eligible_ids(candidate_ids, cache):
        if scan_budget is not None and num_yielded >= scan_budget:
            return

        candidate = cache[node_id]
        if not is_valid_candidate(query, candidate, config):
            continue

        num_yielded += 1
        yield node_id, candidate


def iter_candidates(
    query: Descriptor,
    config: DescriptorMatchConfig,
    candidate_ids: Collection[NodeId],
    cache: DescriptorCache,
    scan_budget: int | None = None,
) -> Iterator[tuple[NodeId, Descriptor]]:
    """Iterate over eligible (node id, descriptor) pairs in scan order.

    The budget is checked when this is called, before any iteration.

    Args:
        query: Query descriptor
        config: Match config for the temporal check
        candidate_ids: Ids the caller allows to match
        cache: Descriptors to scan
        scan_budget: Max pairs to yield (None for unlimited)

    Returns:
        Iterator over pairs passing both the membership and temporal checks

    Raises:
        ValueError: If scan_budget is negative
    """
    check_scan_budget(scan_budget)
    return _scan(query, config, candidate_ids, cache, scan_budget)
