"""
SNN Cluster Package - Shared-nearest-neighbor graphs and modularity-based community detection.
"""

# Import main classes for easy access
from .graph import WeightedGraph
from .snn import NeighborGraph, compute_snn, neighbors_from_embedding
from .config import Algorithm, ClusteringConfig, ModularityFunction
from .optimizer import ModularityOptimizer, OptimizationResult
from .partition import Partition, renumber, group_singletons, pool_singletons, postprocess
from .clusterer import SNNClusterer, cluster, cluster_resolutions
from .spill import read_edge_list, write_edge_list, run_external_optimizer

# Errors
from .errors import (
    SNNClusterError,
    MalformedGraphError,
    ConfigurationError,
    OptimizationError,
    ExternalProcessError,
)

# Utilities that might be directly useful
from .core_utilities import TimingStats

__all__ = [
    # Main entry points
    'cluster',
    'cluster_resolutions',
    'SNNClusterer',

    # Graphs
    'WeightedGraph',
    'NeighborGraph',
    'compute_snn',
    'neighbors_from_embedding',

    # Optimization
    'Algorithm',
    'ModularityFunction',
    'ClusteringConfig',
    'ModularityOptimizer',
    'OptimizationResult',

    # Partitions
    'Partition',
    'renumber',
    'group_singletons',
    'pool_singletons',
    'postprocess',

    # External optimizer path
    'read_edge_list',
    'write_edge_list',
    'run_external_optimizer',

    # Errors
    'SNNClusterError',
    'MalformedGraphError',
    'ConfigurationError',
    'OptimizationError',
    'ExternalProcessError',

    # Utility classes
    'TimingStats',
]

# Package metadata
__version__ = '1.0.0'
