# snn_cluster/snn.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np
import scipy.sparse as sp
from sklearn.neighbors import NearestNeighbors

from .errors import ConfigurationError, MalformedGraphError
from .graph import WeightedGraph


@dataclass(frozen=True)
class NeighborGraph:
    """
    k nearest neighbors of every node: `indices[i]` lists node i's neighbors
    (node i itself included by convention), `distances[i]` the matching distances.
    """
    indices: np.ndarray
    distances: Optional[np.ndarray] = None

    def __post_init__(self):
        idx = np.asarray(self.indices)
        if idx.ndim != 2:
            raise MalformedGraphError(f"Neighbor indices must be 2-D (n, k), got shape {idx.shape}")
        if idx.shape[0] > 0 and idx.shape[1] < 1:
            raise MalformedGraphError("Neighbor graph needs at least one neighbor per node")
        if idx.size and not np.issubdtype(idx.dtype, np.integer):
            raise MalformedGraphError("Neighbor indices must be integers")
        idx = idx.astype(np.int64, copy=False)
        n = idx.shape[0]
        bad = (idx < 0) | (idx >= n)
        if np.any(bad):
            row, col = np.argwhere(bad)[0]
            raise MalformedGraphError(
                f"Neighbor index {idx[row, col]} of node {row} is outside [0, {n})")
        object.__setattr__(self, "indices", idx)

        if self.distances is not None:
            dist = np.asarray(self.distances, dtype=np.float64)
            if dist.shape != idx.shape:
                raise MalformedGraphError(
                    f"distances shape {dist.shape} does not match indices shape {idx.shape}")
            object.__setattr__(self, "distances", dist)

    @property
    def n_nodes(self) -> int:
        return self.indices.shape[0]

    @property
    def k(self) -> int:
        return self.indices.shape[1]

    @classmethod
    def from_sparse_distances(cls, matrix, include_self: bool = True) -> "NeighborGraph":
        """
        Read a k-NN distance matrix (row i stores node i's k neighbors).

        Every row must hold the same number of entries; neighbors are ordered by
        distance and node i is prepended when `include_self` is set.
        """
        csr = sp.csr_matrix(matrix)
        if csr.shape[0] != csr.shape[1]:
            raise MalformedGraphError(f"k-NN matrix must be square, got shape {csr.shape}")
        csr.sort_indices()
        counts = np.diff(csr.indptr)
        n = csr.shape[0]
        if n and np.any(counts != counts[0]):
            raise MalformedGraphError("Every row of the k-NN matrix must hold the same number of neighbors")
        k = int(counts[0]) if n else 0

        idx = csr.indices.reshape(n, k).astype(np.int64)
        dist = csr.data.reshape(n, k).astype(np.float64)
        order = np.argsort(dist, axis=1, kind='stable')
        idx = np.take_along_axis(idx, order, axis=1)
        dist = np.take_along_axis(dist, order, axis=1)

        if include_self:
            idx = np.hstack([np.arange(n, dtype=np.int64)[:, None], idx])
            dist = np.hstack([np.zeros((n, 1)), dist])
        return cls(idx, dist)


def neighbors_from_embedding(X, k: int = 20, include_self: bool = True, **nn_kwargs) -> NeighborGraph:
    """
    Exact k-NN index of a dense embedding via scikit-learn.

    Parameters:
    -----------
    X : array-like, shape (n, d)
        Embedding coordinates.
    k : int
        Neighbors per node, the node itself included when `include_self` is set.
    **nn_kwargs :
        Forwarded to sklearn.neighbors.NearestNeighbors (metric, algorithm, n_jobs...).
    """
    X = np.asarray(X)
    n = X.shape[0]
    if k < 1 or k > n:
        raise ConfigurationError(f"k must lie in [1, {n}], got {k}")

    if include_self:
        nn = NearestNeighbors(n_neighbors=k, **nn_kwargs).fit(X)
        dist, idx = nn.kneighbors(X)
        # duplicated points can push a node out of its own first slot
        own = np.arange(n)
        for i in np.flatnonzero(idx[:, 0] != own):
            mask = idx[i] != i
            others, other_dist = idx[i][mask][: k - 1], dist[i][mask][: k - 1]
            idx[i] = np.concatenate([[i], others])
            dist[i] = np.concatenate([[0.0], other_dist])
    else:
        if k >= n:
            raise ConfigurationError(f"k must be < {n} when excluding self")
        nn = NearestNeighbors(n_neighbors=k, **nn_kwargs).fit(X)
        dist, idx = nn.kneighbors()
    return NeighborGraph(idx.astype(np.int64), dist.astype(np.float64))


def compute_snn(neighbors, prune: float = 0.0,
                weighting: Literal["fraction", "jaccard"] = "fraction") -> WeightedGraph:
    """
    Shared-nearest-neighbor graph of a k-NN graph.

    Edge (a, b) is weighted by the overlap of the two neighbor sets, either
    |N(a) ∩ N(b)| / k ("fraction") or the Jaccard index ("jaccard"). Each
    unordered pair is emitted once; self-similarity is excluded and pairs
    whose weight falls below `prune` are dropped.
    """
    if not isinstance(neighbors, NeighborGraph):
        neighbors = NeighborGraph(np.asarray(neighbors))
    if not 0.0 <= prune <= 1.0:
        raise ConfigurationError(f"prune must lie in [0, 1], got {prune}")
    if weighting not in ("fraction", "jaccard"):
        raise ConfigurationError(f"weighting must be 'fraction' or 'jaccard', got {weighting!r}")

    n, k = neighbors.n_nodes, neighbors.k
    if n == 0:
        return WeightedGraph.from_edges([], [], [], n_nodes=0)

    rows = np.repeat(np.arange(n, dtype=np.int64), k)
    M = sp.csr_matrix((np.ones(n * k), (rows, neighbors.indices.ravel())), shape=(n, n))
    # repeated neighbors count once
    M.data[:] = 1.0

    overlap = sp.triu(M @ M.T, k=1).tocoo()
    a = overlap.row.astype(np.int64)
    b = overlap.col.astype(np.int64)
    shared = overlap.data

    if weighting == "fraction":
        w = shared / k
    else:
        set_sizes = np.diff(M.indptr).astype(np.float64)
        w = shared / (set_sizes[a] + set_sizes[b] - shared)

    keep = (w > 0) & (w >= prune)
    return WeightedGraph.from_edges(a[keep], b[keep], w[keep], n_nodes=n)
