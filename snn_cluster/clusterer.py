"""
SNNClusterer - entry point tying together SNN construction, modularity
optimization (in process or out of process) and partition post-processing.
"""
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from .config import ClusteringConfig
from .core_utilities import TimingStats
from .errors import ConfigurationError, ExternalProcessError
from .graph import WeightedGraph
from .optimizer import ModularityOptimizer, check_node_arrays
from .partition import Partition, postprocess
from .snn import NeighborGraph, compute_snn
from .spill import run_external_optimizer


class SNNClusterer:
    """
    Clusters a weighted graph, or the SNN graph of a k-NN graph, into
    communities by modularity optimization.

    Parameters:
    -----------
    config : ClusteringConfig, optional
        Base configuration; keyword overrides are applied on top of it.
    prune : float
        Minimum SNN weight kept when the input is a neighbor graph.
    weighting : {"fraction", "jaccard"}
        SNN edge weighting.
    verbose : bool
        Print progress and a timing report.
    """

    def __init__(self, config: Optional[ClusteringConfig] = None, prune: float = 0.0,
                 weighting: str = "fraction", verbose: bool = False, **overrides):
        if config is None:
            try:
                config = ClusteringConfig(**overrides)
            except TypeError as exc:
                raise ConfigurationError(str(exc))
        elif overrides:
            config = config.replace(**overrides)
        self.config = config
        self.prune = prune
        self.weighting = weighting
        self.verbose = verbose
        self.timing = TimingStats()

    def build_graph(self, graph=None, neighbors=None) -> WeightedGraph:
        """Return the graph to optimize: the given graph, or the SNN graph of `neighbors`"""
        if (graph is None) == (neighbors is None):
            raise ConfigurationError("Pass exactly one of graph or neighbors")

        if graph is not None:
            if isinstance(graph, WeightedGraph):
                return graph
            with self.timing.timed("Graph construction"):
                return WeightedGraph(graph)

        if not isinstance(neighbors, NeighborGraph):
            neighbors = NeighborGraph(np.asarray(neighbors))
        with self.timing.timed("SNN construction", verbose=self.verbose):
            snn = compute_snn(neighbors, prune=self.prune, weighting=self.weighting)
        if self.verbose:
            print(f"[SNN] {snn.n_nodes:,} nodes, k={neighbors.k}, {snn.n_edges:,} edges "
                  f"(prune={self.prune}, weighting={self.weighting})")
        return snn

    def _use_spill_path(self, graph, config):
        if config.edge_file is not None:
            return True
        return config.spill_threshold is not None and graph.n_edges > config.spill_threshold

    def _optimize(self, graph, config):
        """Raw membership and its quality, from whichever path applies"""
        optimizer = ModularityOptimizer(config, verbose=self.verbose)
        check_node_arrays(config, graph.n_nodes)

        if self._use_spill_path(graph, config):
            try:
                with self.timing.timed("External optimization", verbose=self.verbose):
                    membership = run_external_optimizer(graph, config, verbose=self.verbose)
                return membership, optimizer.evaluate(graph, membership)
            except ExternalProcessError as exc:
                if not config.spill_fallback:
                    raise
                if self.verbose:
                    print(f"         WARNING: external optimizer failed ({exc}); optimizing in memory")

        with self.timing.timed("Optimization", verbose=self.verbose):
            result = optimizer.run(graph)
        return result.membership, result.quality

    def _partition(self, graph, config) -> Partition:
        membership, quality = self._optimize(graph, config)
        with self.timing.timed("Post-processing"):
            partition = postprocess(graph, membership, group=config.group_singletons,
                                    quality=quality, resolution=config.resolution,
                                    algorithm=config.algorithm)
        if self.verbose:
            sizes = partition.sizes
            print(f"[Result] {partition.n_clusters} clusters at resolution {config.resolution} "
                  f"(quality={quality:.4f}); largest={sizes.max() if sizes.size else 0}, "
                  f"smallest={sizes.min() if sizes.size else 0}")
        return partition

    def fit(self, graph=None, neighbors=None) -> Partition:
        """Cluster one graph with the configured resolution"""
        g = self.build_graph(graph, neighbors)
        partition = self._partition(g, self.config)
        if self.verbose:
            print(self.timing.get_stats())
        return partition

    def fit_resolutions(self, resolutions: Iterable[float], graph=None, neighbors=None,
                        prefix: str = "snn_res.") -> pd.DataFrame:
        """
        Cluster the same graph at several resolutions.

        Returns a DataFrame indexed by node id with one categorical column per
        resolution, named `{prefix}{resolution}`.
        """
        resolutions = list(resolutions)
        if not resolutions:
            raise ConfigurationError("At least one resolution is required")
        configs = [self.config.replace(resolution=r) for r in resolutions]

        g = self.build_graph(graph, neighbors)
        columns = {}
        for resolution, config in zip(resolutions, configs):
            with self.timing.timed(f"Resolution {resolution}"):
                partition = self._partition(g, config)
            columns[f"{prefix}{resolution}"] = partition.to_series().array
        table = pd.DataFrame(columns, index=pd.RangeIndex(g.n_nodes, name="node"))
        if self.verbose:
            print(self.timing.get_stats())
        return table


def cluster(graph=None, neighbors=None, config: Optional[ClusteringConfig] = None,
            prune: float = 0.0, weighting: str = "fraction", verbose: bool = False,
            **overrides) -> Partition:
    """
    Cluster a weighted graph (WeightedGraph, scipy sparse or dense adjacency)
    or a k-NN graph (NeighborGraph or (n, k) index array) into a Partition.
    """
    return SNNClusterer(config, prune=prune, weighting=weighting, verbose=verbose,
                        **overrides).fit(graph, neighbors)


def cluster_resolutions(graph=None, neighbors=None, resolutions=(0.8,),
                        config: Optional[ClusteringConfig] = None, prune: float = 0.0,
                        weighting: str = "fraction", prefix: str = "snn_res.",
                        verbose: bool = False, **overrides) -> pd.DataFrame:
    """Cluster at every resolution in `resolutions`; one label column per resolution"""
    return SNNClusterer(config, prune=prune, weighting=weighting, verbose=verbose,
                        **overrides).fit_resolutions(resolutions, graph, neighbors, prefix)
