"""dsg-lcd - Hierarchical descriptor search for scene graph loop closure."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .candidates import eligible_ids, is_valid_candidate, iter_candidates
from .config import DescriptorMatchConfig, LcdDetectorConfig
from .descriptor import (
    Descriptor,
    DescriptorCache,
    DescriptorCacheMap,
    NodeId,
    make_cache,
)
from .detector import LcdDetector, LcdResult
from .search import LayerSearchResults, search_descriptors, search_leaf_descriptors
from .similarity import compute_cosine_distance, compute_l1_distance

__all__ = [
    "__version__",
    # Descriptors
    "NodeId",
    "Descriptor",
    "DescriptorCache",
    "DescriptorCacheMap",
    "make_cache",
    # Config
    "DescriptorMatchConfig",
    "LcdDetectorConfig",
    # Similarity
    "compute_cosine_distance",
    "compute_l1_distance",
    # Candidates
    "is_valid_candidate",
    "eligible_ids",
    "iter_candidates",
    # Search
    "LayerSearchResults",
    "search_descriptors",
    "search_leaf_descriptors",
    # Detector
    "LcdDetector",
    "LcdResult",
]
