# snn_cluster/optimizer.py
"""
Multi-start modularity optimization engine.
"""
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional

import numpy as np
from tqdm.auto import tqdm

from .algorithms import Network, compact, get_strategy
from .config import ClusteringConfig, ModularityFunction
from .errors import ConfigurationError, OptimizationError
from .graph import WeightedGraph


class _StartTimedOut(Exception):
    """Raised inside a start once the invocation deadline has passed."""


@dataclass
class OptimizationResult:
    membership: np.ndarray             # raw cluster id per node, ids 0..k-1
    quality: float                     # quality of the membership
    best_start: int                    # index of the winning start
    n_completed: int                   # starts that finished before the deadline
    n_starts: int


def check_node_arrays(config: ClusteringConfig, n_nodes: int):
    """Raise ConfigurationError when per-node config arrays do not match the graph"""
    for name in ("initial_membership", "node_sizes"):
        values = getattr(config, name)
        if values is not None and values.shape[0] != n_nodes:
            raise ConfigurationError(
                f"{name} has {values.shape[0]} entries but the graph has {n_nodes} nodes")


def build_network(graph: WeightedGraph, config: ClusteringConfig) -> Network:
    """
    Node weights and effective resolution for the configured quality function.

    STANDARD weights nodes by strength (times node size) and divides the
    resolution by twice the total edge weight; ALTERNATIVE weights nodes by
    size alone and uses the resolution as given.
    """
    sizes = config.node_sizes if config.node_sizes is not None else np.ones(graph.n_nodes)
    strengths = graph.strengths()
    total_weight2 = float(strengths.sum())

    if config.modularity_function == ModularityFunction.STANDARD:
        node_weight = strengths * sizes
        gamma = config.resolution / total_weight2 if total_weight2 > 0 else config.resolution
    else:
        node_weight = np.asarray(sizes, dtype=np.float64)
        gamma = config.resolution
    return Network(graph, node_weight, gamma, total_weight2)


class ModularityOptimizer:
    """
    Runs `n_start` independently seeded optimizations of the configured
    algorithm and keeps the best one.

    Every start gets its own generator spawned from `random_seed`, so the
    result does not depend on how starts are scheduled across workers. The
    best start maximizes (quality, -start index): the earliest start wins ties.
    """

    def __init__(self, config: Optional[ClusteringConfig] = None, verbose: bool = False):
        self.config = config if config is not None else ClusteringConfig()
        self.verbose = verbose
        self.strategy = get_strategy(self.config.algorithm)

    def evaluate(self, graph: WeightedGraph, membership) -> float:
        """Quality of an arbitrary membership under this configuration"""
        membership = np.asarray(membership, dtype=np.int64)
        return build_network(graph, self.config).quality(membership)

    def _initial_membership(self, n_nodes):
        if self.config.initial_membership is None:
            return np.arange(n_nodes, dtype=np.int64)
        return compact(np.array(self.config.initial_membership, dtype=np.int64))

    def _run_start(self, network, seed, start_index, deadline):
        rng = np.random.default_rng(seed)
        membership = self._initial_membership(network.n_nodes)

        for _ in range(self.config.n_iter):
            if deadline is not None and time.monotonic() > deadline:
                raise _StartTimedOut()
            if not self.strategy.optimize(network, membership, rng):
                break
        membership = self.strategy.finalize(network, membership)

        if deadline is not None and time.monotonic() > deadline:
            raise _StartTimedOut()
        return start_index, membership, network.quality(membership)

    def run(self, graph: WeightedGraph) -> OptimizationResult:
        """
        Optimize the partition of `graph`.

        Raises:
        -------
        ConfigurationError
            If initial_membership / node_sizes do not match the graph.
        OptimizationError
            If the timeout expired before any start finished.
        """
        config = self.config
        n = graph.n_nodes
        check_node_arrays(config, n)

        if self.verbose:
            print(f"[Optimize] {self.strategy.algorithm.name.lower()} on {n:,} nodes, "
                  f"{graph.n_edges:,} edges (resolution={config.resolution}, "
                  f"n_start={config.n_start}, n_iter={config.n_iter})")

        if n == 0:
            return OptimizationResult(np.zeros(0, dtype=np.int64), 0.0, 0, config.n_start, config.n_start)

        network = build_network(graph, config)
        seeds = np.random.SeedSequence(config.random_seed).spawn(config.n_start)
        deadline = time.monotonic() + config.timeout if config.timeout is not None else None

        results = []
        n_timed_out = 0
        progress = tqdm(total=config.n_start, desc="Random starts", disable=not self.verbose)
        try:
            if config.workers == 1 or config.n_start == 1:
                for i, seed in enumerate(seeds):
                    try:
                        results.append(self._run_start(network, seed, i, deadline))
                    except _StartTimedOut:
                        n_timed_out = config.n_start - i
                        break
                    progress.update(1)
            else:
                with ThreadPoolExecutor(max_workers=min(config.workers, config.n_start)) as pool:
                    futures = [pool.submit(self._run_start, network, seed, i, deadline)
                               for i, seed in enumerate(seeds)]
                    for future in as_completed(futures):
                        try:
                            results.append(future.result())
                        except _StartTimedOut:
                            n_timed_out += 1
                        progress.update(1)
        finally:
            progress.close()

        if not results:
            raise OptimizationError(
                f"No optimization start finished within the {config.timeout}s timeout "
                f"({n_timed_out} of {config.n_start} abandoned)")

        best_index, best_membership, best_quality = max(results, key=lambda r: (r[2], -r[0]))

        if self.verbose:
            if n_timed_out:
                print(f"         {n_timed_out} start(s) abandoned at the timeout")
            print(f"         Best start {best_index}: quality={best_quality:.6f}, "
                  f"{int(best_membership.max()) + 1} clusters")

        return OptimizationResult(best_membership, best_quality, best_index, len(results), config.n_start)
