"""Shared test fixtures: small graphs with known community structure."""

import numpy as np
import pytest

from snn_cluster import WeightedGraph


def ring_of_cliques(n_cliques, clique_size):
    """Cliques joined in a ring by one edge between consecutive cliques."""
    sources, targets = [], []
    for c in range(n_cliques):
        base = c * clique_size
        for i in range(clique_size):
            for j in range(i + 1, clique_size):
                sources.append(base + i)
                targets.append(base + j)
        nxt = ((c + 1) % n_cliques) * clique_size
        sources.append(base)
        targets.append(nxt + 1)
    return WeightedGraph.from_edges(sources, targets, 1.0, n_nodes=n_cliques * clique_size)


def planted_partition(n_groups, group_size, p_in, p_out, seed):
    """Random graph with dense groups and sparse links between them."""
    rng = np.random.default_rng(seed)
    n = n_groups * group_size
    labels = np.repeat(np.arange(n_groups), group_size)
    iu, ju = np.triu_indices(n, k=1)
    same = labels[iu] == labels[ju]
    keep = rng.random(iu.size) < np.where(same, p_in, p_out)
    weights = rng.uniform(0.5, 1.0, size=int(keep.sum()))
    return WeightedGraph.from_edges(iu[keep], ju[keep], weights, n_nodes=n), labels


@pytest.fixture
def two_triangles():
    """Two disjoint triangles: {0, 1, 2} and {3, 4, 5}."""
    return WeightedGraph.from_edges([0, 1, 0, 3, 4, 3], [1, 2, 2, 4, 5, 5], 1.0, n_nodes=6)


@pytest.fixture
def k4_plus_isolated():
    """Nodes 0-3 fully connected, node 4 without edges."""
    sources = [0, 0, 0, 1, 1, 2]
    targets = [1, 2, 3, 2, 3, 3]
    return WeightedGraph.from_edges(sources, targets, 1.0, n_nodes=5)


@pytest.fixture
def cliques():
    """Ring of eight 5-cliques."""
    return ring_of_cliques(8, 5)


@pytest.fixture
def planted():
    """Planted-partition graph with four groups of 25 nodes and its true labels."""
    return planted_partition(4, 25, p_in=0.5, p_out=0.02, seed=7)


@pytest.fixture
def make_planted():
    """Factory for planted-partition graphs: make_planted(n_groups, group_size, p_in, p_out, seed)."""
    return planted_partition
