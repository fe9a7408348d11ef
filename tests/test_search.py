"""Tests for single-layer and hierarchical descriptor search."""

import pytest

from dsg_lcd.config import DescriptorMatchConfig
from dsg_lcd.descriptor import Descriptor
from dsg_lcd.search import (
    LayerSearchResults,
    search_descriptors,
    search_leaf_descriptors,
)


def make_descriptor(*values: float, root=None, nodes=(), timestamp=0.0) -> Descriptor:
    return Descriptor(values=list(values), root_node=root, nodes=nodes, timestamp=timestamp)


@pytest.fixture
def flat_cache() -> dict[int, Descriptor]:
    """Three identical 1-D descriptors."""
    return {
        1: make_descriptor(0.9),
        2: make_descriptor(0.9),
        3: make_descriptor(0.9),
    }


@pytest.fixture
def empty_root_leaf_map() -> dict[int, set[int]]:
    return {1: set(), 2: set(), 3: set()}


@pytest.fixture
def leaf_caches() -> dict[int, dict[int, Descriptor]]:
    """Two roots holding identical 1-D leaf descriptors."""
    return {
        1: {
            1: make_descriptor(0.9),
            2: make_descriptor(0.9),
            3: make_descriptor(0.9),
        },
        2: {4: make_descriptor(0.9)},
    }


def assert_no_match(results: LayerSearchResults) -> None:
    assert results.valid_matches == set()
    assert results.query_nodes == set()
    assert results.match_nodes == set()
    assert results.query_root is None
    assert results.match_root is None
    assert not results.valid


class TestSearchDescriptors:
    """Test suite for single-layer search."""

    def test_no_candidates(self, flat_cache, empty_root_leaf_map):
        """Test that an empty candidate set gives an empty result."""
        config = DescriptorMatchConfig(min_score=0.8, min_time_separation_s=0.0)

        results = search_descriptors(
            make_descriptor(1.0), config, set(), flat_cache, empty_root_leaf_map, 5
        )

        assert results.best_score < config.min_score
        assert results.best_node is None
        assert results.num_scanned == 0
        assert_no_match(results)

    def test_disjoint_candidates(self, flat_cache, empty_root_leaf_map):
        """Test that candidates missing from the cache are never scored."""
        config = DescriptorMatchConfig(min_score=0.8, min_time_separation_s=0.0)

        results = search_descriptors(
            make_descriptor(1.0), config, {7, 8}, flat_cache, empty_root_leaf_map, 5
        )

        assert results.best_score == 0.0
        assert results.num_scanned == 0
        assert_no_match(results)

    def test_candidates_below_threshold(self, flat_cache, empty_root_leaf_map):
        """Test that no candidate can pass an unreachable threshold."""
        config = DescriptorMatchConfig(min_score=1.5, min_time_separation_s=0.0)

        results = search_descriptors(
            make_descriptor(1.0), config, {1, 2, 3}, flat_cache, empty_root_leaf_map, 5
        )

        assert results.best_score < config.min_score
        assert results.best_score == pytest.approx(1.0)
        assert results.num_scanned == 3
        assert_no_match(results)

    def test_score_equal_to_threshold_rejected(self, flat_cache, empty_root_leaf_map):
        """Test that a score exactly at min_score is not a match."""
        config = DescriptorMatchConfig(min_score=1.0, min_time_separation_s=0.0)
        cache = {1: make_descriptor(2.0)}

        results = search_descriptors(
            make_descriptor(1.0), config, {1}, cache, empty_root_leaf_map
        )

        assert results.best_score == 1.0
        assert_no_match(results)

    def test_some_matches(self):
        """Test that every candidate above threshold is kept alive."""
        query = make_descriptor(1.0, 0.0, root=0, nodes={13, 14, 15})
        config = DescriptorMatchConfig(min_score=0.9, min_time_separation_s=0.0)
        cache = {
            1: make_descriptor(0.9, 0.1, root=1, nodes={4, 5, 6}),
            2: make_descriptor(0.9, 0.9, root=2, nodes={7, 8, 9}),
            3: make_descriptor(0.9, 0.05, root=3, nodes={10, 11, 12}),
        }
        root_leaf_map = {1: set(), 2: set(), 3: set()}

        results = search_descriptors(query, config, {1, 2, 3}, cache, root_leaf_map, 5)

        assert results.best_score > config.min_score
        assert results.best_node == 3
        assert results.valid_matches == {1, 3}
        assert results.match_nodes == {10, 11, 12}
        assert results.match_root == 3
        assert results.query_nodes == {13, 14, 15}
        assert results.query_root == 0
        assert results.num_scanned == 3
        assert results.valid

    def test_match_nodes_from_root_leaf_map(self):
        """Test that the winner is expanded through the root -> leaf map."""
        query = make_descriptor(1.0, 0.0, root=0, nodes={13})
        config = DescriptorMatchConfig(min_score=0.9, min_time_separation_s=0.0)
        cache = {
            1: make_descriptor(1.0, 0.02, root=1),
            2: make_descriptor(1.0, 1.0, root=2),
        }
        root_leaf_map = {1: {20, 21}, 2: {30}}

        results = search_descriptors(query, config, {1, 2}, cache, root_leaf_map)

        assert results.best_node == 1
        assert results.match_root == 1
        assert results.match_nodes == {20, 21}
        assert results.valid_matches == {1}

    def test_winner_missing_from_root_leaf_map(self):
        """Test that a winner without a map entry keeps only its own members."""
        query = make_descriptor(1.0, root=0)
        config = DescriptorMatchConfig(min_score=0.5, min_time_separation_s=0.0)
        cache = {5: make_descriptor(1.0, root=5, nodes={6})}

        results = search_descriptors(query, config, {5}, cache, {})

        assert results.best_node == 5
        assert results.match_nodes == {6}

    def test_tie_goes_to_lowest_id(self, flat_cache, empty_root_leaf_map):
        """Test that the last scanned (lowest id) candidate wins a tie."""
        config = DescriptorMatchConfig(min_score=0.8, min_time_separation_s=0.0)

        results = search_descriptors(
            make_descriptor(1.0), config, {1, 2, 3}, flat_cache, empty_root_leaf_map
        )

        assert results.best_node == 1
        assert results.valid_matches == {1, 2, 3}

    def test_temporal_exclusion(self, flat_cache, empty_root_leaf_map):
        """Test that candidates observed too close to the query are excluded."""
        config = DescriptorMatchConfig(min_score=0.8, min_time_separation_s=10.0)

        results = search_descriptors(
            make_descriptor(1.0), config, {1, 2, 3}, flat_cache, empty_root_leaf_map
        )

        assert results.best_score == 0.0
        assert results.best_node is None
        assert_no_match(results)

    def test_scan_budget(self, empty_root_leaf_map):
        """Test that the budget limits scoring to the highest ids."""
        config = DescriptorMatchConfig(min_score=0.8, min_time_separation_s=0.0)
        cache = {i: make_descriptor(1.0, root=i) for i in range(1, 6)}

        results = search_descriptors(
            make_descriptor(1.0), config, set(cache), cache, empty_root_leaf_map, 2
        )

        assert results.num_scanned == 2
        assert results.valid_matches == {4, 5}
        assert results.best_node == 4

    def test_scan_budget_deterministic(self, empty_root_leaf_map):
        """Test that repeated searches skip the same candidates."""
        config = DescriptorMatchConfig(min_score=0.0, min_time_separation_s=0.0)
        cache = {i: make_descriptor(1.0, float(i), root=i) for i in range(10)}
        query = make_descriptor(0.3, 1.0)

        first = search_descriptors(query, config, set(cache), cache, empty_root_leaf_map, 4)
        second = search_descriptors(query, config, set(cache), cache, empty_root_leaf_map, 4)

        assert first.valid_matches == second.valid_matches == {6, 7, 8, 9}
        assert first.best_node == second.best_node

    def test_negative_scan_budget(self, flat_cache, empty_root_leaf_map):
        """Test that a negative budget is rejected."""
        with pytest.raises(ValueError, match="scan_budget"):
            search_descriptors(
                make_descriptor(1.0),
                DescriptorMatchConfig(),
                {1},
                flat_cache,
                empty_root_leaf_map,
                -1,
            )

    def test_does_not_modify_inputs(self, flat_cache, empty_root_leaf_map):
        """Test that the search leaves its inputs untouched."""
        config = DescriptorMatchConfig(min_score=0.8, min_time_separation_s=0.0)
        candidates = {1, 2, 3}
        cache_before = dict(flat_cache)

        search_descriptors(
            make_descriptor(1.0), config, candidates, flat_cache, empty_root_leaf_map
        )

        assert candidates == {1, 2, 3}
        assert flat_cache == cache_before
        assert empty_root_leaf_map == {1: set(), 2: set(), 3: set()}


class TestSearchLeafDescriptors:
    """Test suite for hierarchical leaf search."""

    def test_no_candidate_roots(self, leaf_caches):
        """Test that an empty root set gives a zero-score result."""
        results = search_leaf_descriptors(
            make_descriptor(1.0), DescriptorMatchConfig(), set(), leaf_caches, 10
        )

        assert results.best_score == 0.0
        assert results.best_node is None
        assert_no_match(results)

    def test_all_valid(self, leaf_caches):
        """Test that the best leaf across all candidate roots is returned."""
        config = DescriptorMatchConfig(min_time_separation_s=0.0)

        results = search_leaf_descriptors(
            make_descriptor(1.0), config, {1, 2}, leaf_caches, 10
        )

        assert results.best_score == pytest.approx(1.0)
        assert results.best_node == 1
        assert results.valid_matches == {1}
        assert results.query_nodes == set()
        assert results.match_nodes == {1}
        assert results.match_root == 1
        assert results.num_scanned == 4

    def test_time_separation(self, leaf_caches):
        """Test that simultaneous leaves are excluded despite perfect scores."""
        config = DescriptorMatchConfig(min_time_separation_s=10.0)

        results = search_leaf_descriptors(
            make_descriptor(1.0), config, {1, 2}, leaf_caches, 10
        )

        assert results.best_score == 0.0
        assert_no_match(results)

    def test_unlisted_roots_ignored(self):
        """Test that roots outside candidate_roots never influence the result."""
        config = DescriptorMatchConfig(min_score=0.5, min_time_separation_s=0.0)
        query = make_descriptor(1.0, 0.0, root=100, nodes={101})
        cache_map = {
            1: {10: make_descriptor(1.0, 0.0, root=10, nodes={10, 11})},
            2: {20: make_descriptor(1.0, 0.2, root=20, nodes={20, 21, 22})},
            3: {30: make_descriptor(1.0, 0.0, root=30, nodes={30})},
        }

        results = search_leaf_descriptors(query, config, {1, 2}, cache_map)
        assert results.best_node == 10
        assert results.best_score == pytest.approx(1.0)
        assert results.match_nodes == {10, 11}
        assert results.match_root == 1
        assert results.query_nodes == {101}
        assert results.query_root == 100

        results = search_leaf_descriptors(query, config, {2}, cache_map)
        assert results.best_node == 20
        assert results.best_score < 1.0
        assert results.match_nodes == {20, 21, 22}
        assert results.match_root == 2

    def test_missing_root_in_cache_map(self, leaf_caches):
        """Test that candidate roots without a leaf cache are skipped."""
        config = DescriptorMatchConfig(min_time_separation_s=0.0)

        results = search_leaf_descriptors(
            make_descriptor(1.0), config, {2, 9}, leaf_caches
        )

        assert results.best_node == 4
        assert results.match_root == 2
        assert results.num_scanned == 1

    def test_below_threshold(self):
        """Test that a best leaf at or below min_score is not a match."""
        config = DescriptorMatchConfig(min_score=0.9, min_time_separation_s=0.0)
        cache_map = {1: {5: make_descriptor(1.0, 1.0, root=5)}}

        results = search_leaf_descriptors(make_descriptor(1.0, 0.0), config, {1}, cache_map)

        assert results.best_node == 5
        assert results.best_score == pytest.approx(0.70710678)
        assert_no_match(results)

    def test_scan_budget_per_root(self):
        """Test that the budget applies to each root's leaves separately."""
        config = DescriptorMatchConfig(min_score=0.5, min_time_separation_s=0.0)
        cache_map = {
            1: {i: make_descriptor(1.0, root=i) for i in range(1, 4)},
            2: {i: make_descriptor(1.0, root=i) for i in range(4, 7)},
        }

        results = search_leaf_descriptors(make_descriptor(1.0), config, {1, 2}, cache_map, 1)

        assert results.num_scanned == 2
        assert results.best_node == 3
        assert results.match_root == 1

    def test_negative_scan_budget(self, leaf_caches):
        """Test that a negative budget is rejected even with no roots to scan."""
        with pytest.raises(ValueError, match="scan_budget"):
            search_leaf_descriptors(
                make_descriptor(1.0), DescriptorMatchConfig(), set(), leaf_caches, -3
            )
