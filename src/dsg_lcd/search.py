"""Single-layer and hierarchical descriptor search.

The coarse stage (:func:`search_descriptors`) scores a query against one
cache of root descriptors and keeps every root above threshold alive. The
fine stage (:func:`search_leaf_descriptors`) scores a finer query against the
leaf caches of those surviving roots and reduces to one global winner.

Both functions are read-only over their inputs and return a fresh
:class:`LayerSearchResults`. Callers decide on a match by checking
``best_score > config.min_score`` (or ``results.valid``), not by looking at
``best_node`` alone.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field

from .candidates import check_scan_budget, iter_candidates
from .config import DescriptorMatchConfig
from .descriptor import Descriptor, DescriptorCache, DescriptorCacheMap, NodeId
from .similarity import compute_cosine_distance

logger = logging.getLogger(__name__)


@dataclass
class LayerSearchResults:
    """Result of searching one layer of descriptors.

    Attributes:
        best_score: Highest similarity among scanned candidates (0 if none)
        best_node: Candidate achieving best_score (None if none)
        valid_matches: Candidates scoring strictly above min_score
        query_nodes: Member nodes of the query (set on success)
        query_root: Root node of the query (set on success)
        match_nodes: Member nodes of the winner (set on success)
        match_root: Root node of the winner (set on success)
        num_scanned: Number of candidates that were scored
    """

    best_score: float = 0.0
    best_node: NodeId | None = None
    valid_matches: set = field(default_factory=set)
    query_nodes: set = field(default_factory=set)
    query_root: NodeId | None = None
    match_nodes: set = field(default_factory=set)
    match_root: NodeId | None = None
    num_scanned: int = 0

    @property
    def valid(self) -> bool:
        """Whether the search produced an accepted match."""
        return self.best_node is not None and len(self.valid_matches) > 0


def _scan_cache(
    query: Descriptor,
    config: DescriptorMatchConfig,
    candidate_ids: Collection[NodeId],
    cache: DescriptorCache,
    scan_budget: int | None,
) -> LayerSearchResults:
    """Score eligible candidates, filling best/valid_matches/num_scanned only."""
    results = LayerSearchResults()
    for node_id, candidate in iter_candidates(
        query, config, candidate_ids, cache, scan_budget
    ):
        score = compute_cosine_distance(query, candidate)
        results.num_scanned += 1

        # ties go to the candidate scanned last
        if results.best_node is None or score >= results.best_score:
            results.best_score = score
            results.best_node = node_id

        if score > config.min_score:
            results.valid_matches.add(node_id)

    return results


def search_descriptors(
    query: Descriptor,
    config: DescriptorMatchConfig,
    candidate_ids: Collection[NodeId],
    cache: DescriptorCache,
    root_leaf_map: Mapping[NodeId, Collection[NodeId]],
    scan_budget: int | None = None,
) -> LayerSearchResults:
    """Search a single cache of descriptors for matches to a query.

    Args:
        query: Query descriptor
        config: Score threshold and temporal separation
        candidate_ids: Cache entries allowed to match
        cache: Descriptors to scan
        root_leaf_map: Member nodes per root, used to expand the winner
        scan_budget: Max candidates scored (None for unlimited)

    Returns:
        Search results; on failure only best_score/best_node are filled in

    Raises:
        ValueError: If scan_budget is negative or descriptors are incompatible
    """
    check_scan_budget(scan_budget)
    results = _scan_cache(query, config, candidate_ids, cache, scan_budget)

    if not results.valid_matches or results.best_score <= config.min_score:
        logger.debug(
            "No match after scanning %d candidates (best score %.3f)",
            results.num_scanned,
            results.best_score,
        )
        results.valid_matches = set()
        return results

    winner = cache[results.best_node]
    results.query_nodes = set(query.nodes)
    results.query_root = query.root_node
    results.match_root = results.best_node
    results.match_nodes = set(winner.nodes) | set(
        root_leaf_map.get(results.best_node, ())
    )

    logger.debug(
        "Matched %s -> %s (score %.3f, %d valid of %d scanned)",
        query.root_node,
        results.best_node,
        results.best_score,
        len(results.valid_matches),
        results.num_scanned,
    )
    return results


def search_leaf_descriptors(
    query: Descriptor,
    config: DescriptorMatchConfig,
    candidate_roots: Collection[NodeId],
    cache_map: DescriptorCacheMap,
    scan_budget: int | None = None,
) -> LayerSearchResults:
    """Search the leaf caches of the candidate roots for the best match.

    Every leaf of a candidate root is eligible apart from the temporal check.
    Roots are visited in the same order as single-layer candidates and the
    scan budget applies to each root separately.

    Args:
        query: Query descriptor
        config: Score threshold and temporal separation
        candidate_roots: Roots whose leaf caches may be searched
        cache_map: Leaf descriptor cache per root
        scan_budget: Max leaves scored per root (None for unlimited)

    Returns:
        Search results; ``valid_matches`` holds only the winning leaf

    Raises:
        ValueError: If scan_budget is negative or descriptors are incompatible
    """
    check_scan_budget(scan_budget)

    results = LayerSearchResults()
    winning_root: NodeId | None = None
    roots = sorted((root for root in candidate_roots if root in cache_map), reverse=True)
    for root in roots:
        leaf_cache = cache_map[root]
        root_results = _scan_cache(query, config, leaf_cache.keys(), leaf_cache, scan_budget)
        results.num_scanned += root_results.num_scanned
        if root_results.best_node is None:
            continue

        if results.best_node is None or root_results.best_score >= results.best_score:
            results.best_score = root_results.best_score
            results.best_node = root_results.best_node
            winning_root = root

    if results.best_node is None or results.best_score <= config.min_score:
        logger.debug(
            "No leaf match over %d roots (%d leaves scanned, best score %.3f)",
            len(roots),
            results.num_scanned,
            results.best_score,
        )
        return results

    winner = cache_map[winning_root][results.best_node]
    results.valid_matches = {results.best_node}
    results.query_nodes = set(query.nodes)
    results.query_root = query.root_node
    results.match_root = winning_root
    results.match_nodes = set(winner.nodes) if winner.nodes else {results.best_node}

    logger.debug(
        "Matched leaf %s under root %s (score %.3f, %d leaves scanned)",
        results.best_node,
        winning_root,
        results.best_score,
        results.num_scanned,
    )
    return results
