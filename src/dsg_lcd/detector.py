"""Two-stage loop closure detector over scene graph descriptors.

This module owns the descriptor caches fed by the graph-construction side
and runs the hierarchical search for each query:
1. Root search: score the query's root descriptor against all other roots
2. Leaf search: score the query's leaf descriptor against the leaves of the
   roots that survived step 1
3. Report the winner for geometric verification downstream

The detector does no locking. Callers must not add or remove descriptors
while a detection is running.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass
from pathlib import Path

from .config import LcdDetectorConfig
from .descriptor import Descriptor, DescriptorCache, DescriptorCacheMap, NodeId
from .search import LayerSearchResults, search_descriptors, search_leaf_descriptors

logger = logging.getLogger(__name__)


@dataclass
class LcdResult:
    """Result of loop closure detection.

    Attributes:
        detected: Whether a loop was detected
        query_root: Root node of the query
        match_root: Matched root node (if detected)
        match_node: Matched leaf, or matched root when no leaf search ran
        score: Score of the deciding search stage
        root_results: Coarse search results
        leaf_results: Fine search results (None if it didn't run)
    """

    detected: bool = False
    query_root: NodeId | None = None
    match_root: NodeId | None = None
    match_node: NodeId | None = None
    score: float = 0.0
    root_results: LayerSearchResults | None = None
    leaf_results: LayerSearchResults | None = None


class LcdDetector:
    """Detects loop closures with a coarse-to-fine descriptor search.

    Root descriptors summarize a whole submap/session; leaf descriptors
    summarize individual nodes under a root. A loop is reported when both
    stages clear their thresholds.
    """

    def __init__(self, config: LcdDetectorConfig | None = None) -> None:
        """Initialize loop closure detector.

        Args:
            config: Search thresholds and scan budget (defaults if None)
        """
        self._config = config if config is not None else LcdDetectorConfig()

        self._root_cache: DescriptorCache = {}
        self._leaf_caches: DescriptorCacheMap = {}

        # root id -> member nodes of that root
        self._root_leaf_map: dict[NodeId, set[NodeId]] = {}

    @classmethod
    def from_config_path(cls, config_path: str | Path) -> LcdDetector:
        """Create loop closure detector from a YAML config file."""
        return cls(LcdDetectorConfig.from_yaml(config_path))

    @property
    def config(self) -> LcdDetectorConfig:
        """Detector configuration."""
        return self._config

    def add_root_descriptor(self, descriptor: Descriptor) -> None:
        """Add or replace the descriptor of a root.

        Args:
            descriptor: Root descriptor with ``root_node`` set

        Raises:
            ValueError: If the descriptor has no root node
        """
        root = descriptor.root_node
        if root is None:
            raise ValueError("Root descriptor requires a root_node")

        self._root_cache[root] = descriptor
        self._root_leaf_map[root] = set(descriptor.nodes) | set(
            self._leaf_caches.get(root, {})
        )

    def add_leaf_descriptor(self, root: NodeId, descriptor: Descriptor) -> None:
        """Add or replace a leaf descriptor under a root.

        Args:
            root: Root the leaf belongs to
            descriptor: Leaf descriptor with ``root_node`` set to the leaf id

        Raises:
            ValueError: If the descriptor has no root node
        """
        leaf = descriptor.root_node
        if leaf is None:
            raise ValueError("Leaf descriptor requires a root_node")

        self._leaf_caches.setdefault(root, {})[leaf] = descriptor
        self._root_leaf_map.setdefault(root, set()).add(leaf)

    def remove_root(self, root: NodeId) -> None:
        """Remove a root with all of its leaves (no-op if unknown)."""
        self._root_cache.pop(root, None)
        self._leaf_caches.pop(root, None)
        self._root_leaf_map.pop(root, None)

    def detect(
        self,
        root_query: Descriptor,
        leaf_query: Descriptor | None = None,
        excluded: Collection[NodeId] = (),
    ) -> LcdResult:
        """Detect a loop closure for a query.

        The query's own root and any ``excluded`` roots are never matched.

        Args:
            root_query: Coarse descriptor of the query
            leaf_query: Fine descriptor of the query (skip leaf search if None)
            excluded: Roots that may not match (e.g. already closed loops)

        Returns:
            LcdResult indicating if a loop was detected
        """
        excluded = set(excluded)
        if root_query.root_node is not None:
            excluded.add(root_query.root_node)
        candidates = {root for root in self._root_cache if root not in excluded}

        root_results = search_descriptors(
            root_query,
            self._config.root,
            candidates,
            self._root_cache,
            self._root_leaf_map,
            self._config.scan_budget,
        )
        result = LcdResult(query_root=root_query.root_node, root_results=root_results)
        if not root_results.valid:
            return result

        if leaf_query is None:
            result.detected = True
            result.match_root = root_results.match_root
            result.match_node = root_results.best_node
            result.score = root_results.best_score
            logger.info(
                "Loop detected: %s -> %s (root score %.3f)",
                result.query_root,
                result.match_root,
                result.score,
            )
            return result

        leaf_results = search_leaf_descriptors(
            leaf_query,
            self._config.leaf,
            root_results.valid_matches,
            self._leaf_caches,
            self._config.scan_budget,
        )
        result.leaf_results = leaf_results
        if not leaf_results.valid:
            logger.debug(
                "Root candidates %s rejected by leaf search (best score %.3f)",
                sorted(root_results.valid_matches),
                leaf_results.best_score,
            )
            return result

        result.detected = True
        result.match_root = leaf_results.match_root
        result.match_node = leaf_results.best_node
        result.score = leaf_results.best_score
        logger.info(
            "Loop detected: %s -> %s/%s (leaf score %.3f)",
            result.query_root,
            result.match_root,
            result.match_node,
            result.score,
        )
        return result

    @property
    def num_roots(self) -> int:
        """Number of root descriptors in detector."""
        return len(self._root_cache)

    @property
    def num_leaves(self) -> int:
        """Number of leaf descriptors across all roots."""
        return sum(len(cache) for cache in self._leaf_caches.values())

    def __len__(self) -> int:
        return len(self._root_cache)
