#!/usr/bin/env python3
"""Demo of coarse-to-fine loop closure detection on a synthetic trajectory.

A robot drives past a sequence of distinct places and later revisits some
of them. Each node sees a noisy bag-of-words histogram of its place; every
few nodes are grouped into a submap (root) whose descriptor is the sum of
its nodes' histograms. Each new submap is queried against the older ones
before being added to the detector.

Usage:
    uv run python examples/lcd_demo.py
    uv run python examples/lcd_demo.py --config config/lcd.yaml --noise 0.3
"""

import argparse
import logging

import numpy as np

from dsg_lcd import Descriptor, LcdDetector, LcdDetectorConfig


def make_place_words(rng: np.random.Generator, n_places: int, n_words: int) -> list[np.ndarray]:
    """Draw a random set of characteristic words for every place."""
    return [rng.choice(n_words, size=12, replace=False) for _ in range(n_places)]


def observe(
    rng: np.random.Generator, words: np.ndarray, noise: float
) -> dict[int, float]:
    """Return a noisy word histogram for one observation of a place."""
    histogram = {int(w): float(1.0 + noise * rng.standard_normal() ** 2) for w in words}
    # occasional spurious word
    histogram[int(rng.integers(10_000, 20_000))] = noise
    return histogram


def main() -> None:
    """Run the loop closure demo."""
    parser = argparse.ArgumentParser(description="Synthetic loop closure demo")
    parser.add_argument("--config", type=str, default=None, help="Detector YAML config")
    parser.add_argument("--noise", type=float, default=0.2, help="Observation noise")
    parser.add_argument("--nodes-per-root", type=int, default=4)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

    rng = np.random.default_rng(args.seed)
    place_words = make_place_words(rng, n_places=24, n_words=500)

    # Drive through places 0..23, then revisit 4..15
    trajectory = list(range(24)) + list(range(4, 16))

    if args.config is not None:
        detector = LcdDetector.from_config_path(args.config)
    else:
        detector = LcdDetector(LcdDetectorConfig())

    print(f"[LCD] Processing {len(trajectory)} nodes...")
    n_detected = 0
    next_id = 0
    for start in range(0, len(trajectory), args.nodes_per_root):
        places = trajectory[start : start + args.nodes_per_root]
        root_id = next_id
        next_id += 1
        timestamp = 10.0 * start

        leaves = []
        root_histogram: dict[int, float] = {}
        for offset, place in enumerate(places):
            leaf_id = next_id
            next_id += 1
            histogram = observe(rng, place_words[place], args.noise)
            for word, weight in histogram.items():
                root_histogram[word] = root_histogram.get(word, 0.0) + weight
            leaves.append(
                Descriptor.from_histogram(
                    histogram, root_node=leaf_id, timestamp=timestamp + 10.0 * offset
                )
            )

        root = Descriptor.from_histogram(
            root_histogram,
            root_node=root_id,
            nodes={leaf.root_node for leaf in leaves},
            timestamp=timestamp,
        )

        # Query with the newest leaf before inserting this submap
        result = detector.detect(root, leaves[-1])
        if result.detected:
            n_detected += 1
            print(
                f"[LCD] Root {root_id:3d} (places {places}) -> root {result.match_root:3d}, "
                f"leaf {result.match_node:3d}, score {result.score:.3f}"
            )
        elif result.root_results.valid:
            print(
                f"[LCD] Root {root_id:3d}: coarse candidates "
                f"{sorted(result.root_results.valid_matches)} rejected by leaf search"
            )

        detector.add_root_descriptor(root)
        for leaf in leaves:
            detector.add_leaf_descriptor(root_id, leaf)

    print()
    print(f"[LCD] Roots: {detector.num_roots}, leaves: {detector.num_leaves}")
    print(f"[LCD] Loop closures detected: {n_detected}")


if __name__ == "__main__":
    main()
