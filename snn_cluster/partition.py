# snn_cluster/partition.py
"""
Partition value type and post-processing: singleton handling and the
deterministic, size-ordered renumbering of cluster ids.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .config import Algorithm
from .graph import WeightedGraph


@dataclass(eq=False)
class Partition:
    """
    Final cluster assignment.

    `membership[i]` is the cluster of node i. Ids run 0..k-1 with cluster 0 the
    largest; equal sizes are ordered by their smallest member node id.
    """
    membership: np.ndarray
    quality: float = float('nan')
    singleton_cluster: Optional[int] = None
    resolution: Optional[float] = None
    algorithm: Optional[Algorithm] = None

    @property
    def n_nodes(self) -> int:
        return int(self.membership.shape[0])

    @property
    def n_clusters(self) -> int:
        return int(self.membership.max()) + 1 if self.membership.size else 0

    @property
    def sizes(self) -> np.ndarray:
        return np.bincount(self.membership, minlength=self.n_clusters)

    def members(self, cluster_id: int) -> np.ndarray:
        """Node ids of one cluster, ascending"""
        return np.flatnonzero(self.membership == cluster_id)

    def to_series(self, name: Optional[str] = None, index=None) -> pd.Series:
        """Cluster labels as a categorical pandas Series"""
        labels = pd.Categorical(self.membership, categories=np.arange(self.n_clusters))
        return pd.Series(labels, index=index, name=name)

    def cluster_table(self) -> pd.DataFrame:
        """One row per cluster: id, size, smallest member, pooled-singleton flag"""
        ids = np.arange(self.n_clusters)
        _, first = np.unique(self.membership, return_index=True)
        return pd.DataFrame({
            'cluster_id': ids,
            'size': self.sizes,
            'min_node': first,
            'singleton_group': ids == (self.singleton_cluster if self.singleton_cluster is not None else -1),
        })

    def __eq__(self, other):
        if not isinstance(other, Partition):
            return NotImplemented
        return (np.array_equal(self.membership, other.membership)
                and self.singleton_cluster == other.singleton_cluster)

    __hash__ = None

    def __repr__(self):
        return (f"Partition({self.n_nodes} nodes, {self.n_clusters} clusters, "
                f"quality={self.quality:.4f})")


def renumber(membership) -> np.ndarray:
    """
    Relabel clusters 0..k-1 by descending size, ties by ascending smallest
    member node id.
    """
    membership = np.asarray(membership, dtype=np.int64)
    if membership.size == 0:
        return membership.copy()
    _, first, inverse = np.unique(membership, return_index=True, return_inverse=True)
    inverse = inverse.ravel()
    sizes = np.bincount(inverse)
    order = np.lexsort((first, -sizes))
    new_id = np.empty_like(order)
    new_id[order] = np.arange(order.size)
    return new_id[inverse].astype(np.int64)


def group_singletons(graph: WeightedGraph, membership) -> np.ndarray:
    """
    Merge every size-1 cluster into the neighboring cluster it has the most
    edge weight to (lowest cluster id on ties).

    Singletons are visited in ascending node order against the current,
    canonically numbered membership; a singleton with no edges stays alone.
    """
    membership = renumber(membership)
    sizes = np.bincount(membership)

    for node in np.flatnonzero(sizes[membership] == 1):
        if sizes[membership[node]] != 1:
            # an earlier singleton already joined this node
            continue
        nbrs, weights = graph.neighbors(node)
        if nbrs.size == 0:
            continue
        clusters, inverse = np.unique(membership[nbrs], return_inverse=True)
        totals = np.bincount(inverse.ravel(), weights=weights)
        target = clusters[np.argmax(totals)]
        sizes[membership[node]] -= 1
        sizes[target] += 1
        membership[node] = target

    return renumber(membership)


def pool_singletons(membership) -> Tuple[np.ndarray, Optional[int]]:
    """
    Gather every size-1 cluster into one designated group.

    Returns the renumbered membership and the id of the singleton group
    (None when there are no singletons).
    """
    membership = renumber(membership)
    sizes = np.bincount(membership)
    is_singleton = sizes[membership] == 1
    if not np.any(is_singleton):
        return membership, None

    pooled = membership.copy()
    pooled[is_singleton] = membership.max() + 1
    pooled = renumber(pooled)
    return pooled, int(pooled[np.flatnonzero(is_singleton)[0]])


def postprocess(graph: WeightedGraph, membership, group: bool = True,
                quality: float = float('nan'), resolution: Optional[float] = None,
                algorithm: Optional[Algorithm] = None) -> Partition:
    """Apply the singleton policy and the final renumbering to a raw membership."""
    if group:
        final, singleton_cluster = group_singletons(graph, membership), None
    else:
        final, singleton_cluster = pool_singletons(membership)
    return Partition(final, quality=quality, singleton_cluster=singleton_cluster,
                     resolution=resolution, algorithm=algorithm)
