# snn_cluster/algorithms.py
"""
Optimization strategies: Louvain, Louvain with multilevel refinement,
smart local moving (SLM) and Leiden.

Every strategy works on a `Network` (graph + node weights + effective
resolution) and improves a membership array in place.
"""
from __future__ import annotations

from typing import Dict, Type

import numpy as np

from .config import Algorithm
from .graph import WeightedGraph
from .local_moving import local_moving, quality, refine_within_clusters


def compact(membership: np.ndarray) -> np.ndarray:
    """Relabel cluster ids to 0..k-1, preserving the order of the old ids"""
    _, inverse = np.unique(membership, return_inverse=True)
    return inverse.astype(np.int64).ravel()


class Network:
    """One level of the optimization: graph, node weights and effective resolution"""

    def __init__(self, graph: WeightedGraph, node_weight: np.ndarray, gamma: float,
                 total_weight2: float = None):
        self.graph = graph
        self.node_weight = np.ascontiguousarray(node_weight, dtype=np.float64)
        self.gamma = float(gamma)
        # normalization of the quality function, inherited from the original level
        self.total_weight2 = float(graph.strengths().sum()) if total_weight2 is None else total_weight2
        self._arrays = None

    @property
    def n_nodes(self) -> int:
        return self.graph.n_nodes

    def arrays(self):
        if self._arrays is None:
            self._arrays = self.graph.csr_arrays()
        return self._arrays

    def reduce(self, membership: np.ndarray, n_clusters: int) -> "Network":
        """Aggregate every cluster into a single node"""
        weights = np.bincount(membership, weights=self.node_weight, minlength=n_clusters)
        return Network(self.graph.aggregate(membership, n_clusters), weights,
                       self.gamma, self.total_weight2)

    def subnetwork(self, nodes: np.ndarray) -> "Network":
        """Induced subnetwork; node weights are carried over from this level"""
        return Network(self.graph.subgraph(nodes), self.node_weight[nodes],
                       self.gamma, self.total_weight2)

    def quality(self, membership: np.ndarray) -> float:
        indptr, indices, data = self.arrays()
        return float(quality(indptr, indices, data, self.node_weight,
                             compact(membership), self.gamma, self.total_weight2))


def run_local_moving(network: Network, membership: np.ndarray, rng: np.random.Generator) -> bool:
    """Local moving in a random node order; leaves `membership` compacted"""
    if network.n_nodes <= 1:
        return False
    order = rng.permutation(network.n_nodes).astype(np.int64)
    indptr, indices, data = network.arrays()
    update = local_moving(indptr, indices, data, network.node_weight, membership, order, network.gamma)
    membership[:] = compact(membership)
    return bool(update)


class OptimizationStrategy:
    """Shared interface: `optimize` improves `membership` in place and reports whether it changed."""

    algorithm: Algorithm = None

    def optimize(self, network: Network, membership: np.ndarray, rng: np.random.Generator) -> bool:
        raise NotImplementedError

    def finalize(self, network: Network, membership: np.ndarray) -> np.ndarray:
        """Hook applied once after the last iteration of a start"""
        return membership


class LouvainStrategy(OptimizationStrategy):
    """Local moving followed by recursive aggregation"""

    algorithm = Algorithm.LOUVAIN
    refine_after_merge = False

    def optimize(self, network, membership, rng):
        if network.n_nodes <= 1:
            return False
        update = run_local_moving(network, membership, rng)

        n_clusters = int(membership.max()) + 1
        if n_clusters < network.n_nodes:
            reduced = network.reduce(membership, n_clusters)
            reduced_membership = np.arange(n_clusters, dtype=np.int64)
            if self.optimize(reduced, reduced_membership, rng):
                update = True
                membership[:] = compact(reduced_membership[membership])
                if self.refine_after_merge:
                    run_local_moving(network, membership, rng)
        return update


class LouvainRefinedStrategy(LouvainStrategy):
    """Louvain with another local moving pass at every level after merging the coarse result"""

    algorithm = Algorithm.LOUVAIN_REFINED
    refine_after_merge = True


class SmartLocalMovingStrategy(OptimizationStrategy):
    """
    Smart local moving: after local moving, every cluster is split by local
    moving inside its own subnetwork, the sub-clusters are aggregated with their
    parent cluster as initial assignment, and the procedure recurses.
    """

    algorithm = Algorithm.SLM

    def optimize(self, network, membership, rng):
        if network.n_nodes <= 1:
            return False
        update = run_local_moving(network, membership, rng)

        n_clusters = int(membership.max()) + 1
        if n_clusters == network.n_nodes:
            return update

        order = np.argsort(membership, kind='stable')
        bounds = np.cumsum(np.bincount(membership, minlength=n_clusters))[:-1]
        sub_membership = np.empty(network.n_nodes, dtype=np.int64)
        parent = []
        offset = 0
        for cluster_id, nodes in enumerate(np.split(order, bounds)):
            local = np.arange(nodes.size, dtype=np.int64)
            if nodes.size > 1:
                run_local_moving(network.subnetwork(nodes), local, rng)
            n_local = int(local.max()) + 1
            sub_membership[nodes] = offset + local
            parent.extend([cluster_id] * n_local)
            offset += n_local

        if offset == network.n_nodes:
            # splitting left every node alone; aggregating would not shrink the network
            return update

        reduced = network.reduce(sub_membership, offset)
        reduced_membership = np.asarray(parent, dtype=np.int64)
        if self.optimize(reduced, reduced_membership, rng):
            update = True
        membership[:] = compact(reduced_membership[sub_membership])
        return update


class LeidenStrategy(OptimizationStrategy):
    """
    Leiden: local moving, refinement into well-connected sub-clusters,
    aggregation of the refined partition with the unrefined one as initial
    assignment.
    """

    algorithm = Algorithm.LEIDEN

    def optimize(self, network, membership, rng):
        if network.n_nodes <= 1:
            return False
        update = run_local_moving(network, membership, rng)

        n_clusters = int(membership.max()) + 1
        if n_clusters == network.n_nodes:
            return update

        indptr, indices, data = network.arrays()
        order = rng.permutation(network.n_nodes).astype(np.int64)
        refined = compact(refine_within_clusters(indptr, indices, data, network.node_weight,
                                                 membership, order, network.gamma))
        n_refined = int(refined.max()) + 1

        if n_refined < network.n_nodes:
            reduced = network.reduce(refined, n_refined)
            reduced_membership = np.empty(n_refined, dtype=np.int64)
            reduced_membership[refined] = membership
            if self.optimize(reduced, reduced_membership, rng):
                update = True
            membership[:] = compact(reduced_membership[refined])
        else:
            reduced = network.reduce(membership, n_clusters)
            reduced_membership = np.arange(n_clusters, dtype=np.int64)
            if self.optimize(reduced, reduced_membership, rng):
                update = True
                membership[:] = compact(reduced_membership[membership])
        return update

    def finalize(self, network, membership):
        return split_disconnected(network.graph, membership)


def split_disconnected(graph: WeightedGraph, membership: np.ndarray) -> np.ndarray:
    """
    Split every cluster whose induced subgraph is disconnected into its
    connected pieces. Never lowers quality.
    """
    a, b, w = graph.edges()
    inside = membership[a] == membership[b]
    intra = WeightedGraph.from_edges(a[inside], b[inside], w[inside], n_nodes=graph.n_nodes)
    _, pieces = intra.connected_components()
    # a piece never spans two clusters, so pieces refine the membership
    return compact(pieces)


STRATEGIES: Dict[Algorithm, Type[OptimizationStrategy]] = {
    Algorithm.LOUVAIN: LouvainStrategy,
    Algorithm.LOUVAIN_REFINED: LouvainRefinedStrategy,
    Algorithm.SLM: SmartLocalMovingStrategy,
    Algorithm.LEIDEN: LeidenStrategy,
}


def get_strategy(algorithm) -> OptimizationStrategy:
    return STRATEGIES[Algorithm.coerce(algorithm)]()
