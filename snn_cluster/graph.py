"""
WeightedGraph - sparse, symmetric, non-negative weighted graph used by the clustering engine.
"""
import numpy as np
import numba as nb
import scipy.sparse as sp
from scipy.sparse.csgraph import connected_components

from .errors import MalformedGraphError


# ============================================================================
# NUMBA KERNELS
# ============================================================================

@nb.njit(cache=True)
def _dedup_undirected(a, b, w, use_sum):
    """
    Canonicalize pairs to a<b and collapse repeats.
    Returns UNIQUE pairs sorted by (a, b) with weight = MAX (or SUM) over repeats.
    """
    n = a.shape[0]
    lo = np.empty(n, dtype=np.int64)
    hi = np.empty(n, dtype=np.int64)
    for i in range(n):
        u = a[i]; v = b[i]
        if u < v:
            lo[i] = u; hi[i] = v
        else:
            lo[i] = v; hi[i] = u

    # pack into 64 bits (node ids < 2**31)
    keys = (lo << 32) | hi
    order = np.argsort(keys, kind='mergesort')
    lo = lo[order]; hi = hi[order]; w = w[order]

    out_a = np.empty(n, dtype=np.int64)
    out_b = np.empty(n, dtype=np.int64)
    out_w = np.empty(n, dtype=np.float64)

    out = 0
    i = 0
    while i < n:
        ua = lo[i]; ub = hi[i]
        acc = w[i]
        i += 1
        while i < n and lo[i] == ua and hi[i] == ub:
            if use_sum:
                acc += w[i]
            elif w[i] > acc:
                acc = w[i]
            i += 1
        out_a[out] = ua
        out_b[out] = ub
        out_w[out] = acc
        out += 1

    return out_a[:out], out_b[:out], out_w[:out]


@nb.njit(cache=True)
def _build_csr_arrays_from_pairs(a, b, w, n):
    # a<b, unique, sorted by (a, b): every row is filled in ascending column order
    deg = np.zeros(n, np.int64)
    m = a.size
    for i in range(m):
        deg[a[i]] += 1
        deg[b[i]] += 1

    indptr = np.empty(n + 1, np.int64)
    indptr[0] = 0
    for i in range(n):
        indptr[i + 1] = indptr[i] + deg[i]

    nnz = indptr[n]
    indices = np.empty(nnz, np.int64)
    data = np.empty(nnz, np.float64)

    cursor = indptr[:-1].copy()
    for i in range(m):
        u = a[i]; v = b[i]; wt = w[i]
        pu = cursor[u]; indices[pu] = v; data[pu] = wt; cursor[u] = pu + 1
        pv = cursor[v]; indices[pv] = u; data[pv] = wt; cursor[v] = pv + 1

    return indptr, indices, data


def _as_node_ids(values, name):
    arr = np.asarray(values)
    if arr.ndim != 1:
        raise MalformedGraphError(f"{name} must be one-dimensional, got shape {arr.shape}")
    if arr.size and not np.issubdtype(arr.dtype, np.integer):
        if not np.issubdtype(arr.dtype, np.floating) or not np.all(np.isfinite(arr)) \
                or np.any(arr != np.floor(arr)):
            raise MalformedGraphError(f"{name} must contain integer node ids")
    return arr.astype(np.int64, copy=False)


def _validate_weights(weights, n_edges):
    w = np.asarray(weights, dtype=np.float64)
    if w.ndim == 0:
        w = np.full(n_edges, float(w))
    if w.shape != (n_edges,):
        raise MalformedGraphError(f"Expected {n_edges} weights, got shape {w.shape}")
    if not np.all(np.isfinite(w)):
        raise MalformedGraphError("Edge weights must be finite")
    if np.any(w < 0):
        bad = int(np.flatnonzero(w < 0)[0])
        raise MalformedGraphError(f"Negative edge weight {w[bad]!r} at edge {bad}")
    return w


class WeightedGraph:
    """
    Undirected weighted graph on nodes 0..n-1, stored as a symmetric CSR matrix
    with sorted rows, no self-loops and no explicit zeros.
    """

    def __init__(self, graph_matrix):
        """
        Build a graph from a square sparse (or dense) adjacency matrix.

        Asymmetric input is symmetrized with the elementwise maximum; the
        diagonal is dropped.
        """
        if sp.issparse(graph_matrix):
            coo = graph_matrix.tocoo()
        else:
            dense = np.asarray(graph_matrix)
            if dense.ndim != 2:
                raise MalformedGraphError(f"Adjacency must be 2-D, got shape {dense.shape}")
            coo = sp.coo_matrix(dense)
        if coo.shape[0] != coo.shape[1]:
            raise MalformedGraphError(f"Adjacency must be square, got shape {coo.shape}")

        weights = _validate_weights(coo.data, coo.nnz)
        csr = self._csr_from_pairs(coo.row.astype(np.int64), coo.col.astype(np.int64),
                                   weights, coo.shape[0], use_sum=False)
        self._set_matrix(csr)

    @classmethod
    def from_sparse(cls, graph_matrix):
        return cls(graph_matrix)

    @classmethod
    def from_edges(cls, sources, targets, weights=1.0, n_nodes=None, duplicates="max"):
        """
        Build a graph from an edge list.

        Parameters:
        -----------
        sources, targets : array-like of int
            Edge endpoints; each pair may appear in either orientation.
        weights : array-like of float or float
            Non-negative weights (a scalar applies to every edge).
        n_nodes : int, optional
            Number of nodes; inferred as max id + 1 when omitted.
        duplicates : {"max", "sum"}
            How repeated undirected pairs are combined.

        Raises:
        -------
        MalformedGraphError
            For node ids outside [0, n_nodes) or negative/non-finite weights.
        """
        if duplicates not in ("max", "sum"):
            raise ValueError(f"duplicates must be 'max' or 'sum', got {duplicates!r}")
        a = _as_node_ids(sources, "sources")
        b = _as_node_ids(targets, "targets")
        if a.shape != b.shape:
            raise MalformedGraphError(
                f"sources and targets differ in length ({a.size} vs {b.size})")
        w = _validate_weights(weights, a.size)

        if n_nodes is None:
            n_nodes = int(max(a.max(initial=-1), b.max(initial=-1)) + 1)
        if isinstance(n_nodes, bool) or int(n_nodes) != n_nodes or n_nodes < 0:
            raise MalformedGraphError(f"n_nodes must be a non-negative integer, got {n_nodes!r}")
        n_nodes = int(n_nodes)

        bad = (a < 0) | (a >= n_nodes) | (b < 0) | (b >= n_nodes)
        if np.any(bad):
            first = int(np.flatnonzero(bad)[0])
            raise MalformedGraphError(
                f"{int(bad.sum())} edge(s) reference nodes outside [0, {n_nodes}); "
                f"first is ({a[first]}, {b[first]}) at position {first}")

        graph = cls.__new__(cls)
        graph._set_matrix(cls._csr_from_pairs(a, b, w, n_nodes, use_sum=(duplicates == "sum")))
        return graph

    @classmethod
    def _from_trusted_csr(cls, matrix):
        """Wrap an already symmetric, loop-free CSR matrix without re-validating."""
        graph = cls.__new__(cls)
        graph._set_matrix(matrix)
        return graph

    @staticmethod
    def _csr_from_pairs(a, b, w, n_nodes, use_sum):
        keep = (a != b) & (w > 0)
        if not np.all(keep):
            a, b, w = a[keep], b[keep], w[keep]
        if a.size:
            a, b, w = _dedup_undirected(a, b, w, use_sum)
        indptr, indices, data = _build_csr_arrays_from_pairs(
            a.astype(np.int64, copy=False), b.astype(np.int64, copy=False),
            w.astype(np.float64, copy=False), n_nodes)
        return sp.csr_matrix((data, indices, indptr), shape=(n_nodes, n_nodes))

    def _set_matrix(self, matrix):
        matrix = matrix.tocsr()
        matrix.eliminate_zeros()
        matrix.sort_indices()
        self.graph = matrix
        self.n_nodes = matrix.shape[0]
        self._strengths = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def n_edges(self):
        """Number of undirected edges"""
        return self.graph.nnz // 2

    def _check_node(self, node_idx):
        if node_idx < 0 or node_idx >= self.n_nodes:
            raise ValueError(f"Node index {node_idx} out of range [0, {self.n_nodes - 1}]")

    def neighbors(self, node_idx):
        """
        Get neighbors of a node.

        Returns:
        --------
        neighbors : numpy.ndarray
            Sorted neighbor indices
        weights : numpy.ndarray
            Corresponding edge weights
        """
        self._check_node(node_idx)
        start, end = self.graph.indptr[node_idx], self.graph.indptr[node_idx + 1]
        return self.graph.indices[start:end], self.graph.data[start:end]

    def weight(self, i, j):
        """Edge weight between i and j (0.0 when absent)"""
        self._check_node(i)
        self._check_node(j)
        start, end = self.graph.indptr[i], self.graph.indptr[i + 1]
        row_cols = self.graph.indices[start:end]
        idx = np.searchsorted(row_cols, j)
        if idx < (end - start) and row_cols[idx] == j:
            return float(self.graph.data[start + idx])
        return 0.0

    def degree(self, node_idx):
        """Number of neighbors of a node"""
        self._check_node(node_idx)
        return int(self.graph.indptr[node_idx + 1] - self.graph.indptr[node_idx])

    def strengths(self):
        """Weighted degree of every node"""
        if self._strengths is None:
            self._strengths = np.asarray(self.graph.sum(axis=1)).ravel().astype(np.float64)
        return self._strengths

    def total_weight(self):
        """Sum of undirected edge weights (each edge counted once)"""
        return float(self.graph.data.sum()) / 2.0

    def edges(self):
        """
        Undirected edge arrays (a, b, w) with a < b, in row-major order.
        """
        upper = sp.triu(self.graph, k=1, format='csr')
        upper.sort_indices()
        rows = np.repeat(np.arange(self.n_nodes, dtype=np.int64), np.diff(upper.indptr))
        return rows, upper.indices.astype(np.int64), upper.data.astype(np.float64)

    def csr_arrays(self):
        """(indptr, indices, data) as int64/int64/float64 arrays for the numba kernels"""
        return (np.ascontiguousarray(self.graph.indptr, dtype=np.int64),
                np.ascontiguousarray(self.graph.indices, dtype=np.int64),
                np.ascontiguousarray(self.graph.data, dtype=np.float64))

    def to_csr(self):
        return self.graph.copy()

    def connected_components(self):
        """Return (n_components, labels)"""
        return connected_components(self.graph, directed=False)

    def subgraph(self, nodes):
        """Induced subgraph; node k of the result is nodes[k]"""
        nodes = np.asarray(nodes, dtype=np.int64)
        return WeightedGraph._from_trusted_csr(self.graph[nodes][:, nodes])

    def aggregate(self, membership, n_clusters=None):
        """
        Collapse every cluster into one node.

        Edge (c, d) of the result carries the summed weight between clusters c and d;
        internal cluster weight is discarded.
        """
        membership = np.asarray(membership, dtype=np.int64)
        if n_clusters is None:
            n_clusters = int(membership.max(initial=-1) + 1)
        P = sp.csr_matrix((np.ones(self.n_nodes), (np.arange(self.n_nodes), membership)),
                          shape=(self.n_nodes, n_clusters))
        reduced = (P.T @ self.graph @ P).tocoo()
        off_diag = reduced.row != reduced.col
        reduced = sp.csr_matrix(
            (reduced.data[off_diag], (reduced.row[off_diag], reduced.col[off_diag])),
            shape=(n_clusters, n_clusters))
        return WeightedGraph._from_trusted_csr(reduced)

    def __eq__(self, other):
        if not isinstance(other, WeightedGraph):
            return NotImplemented
        return (self.n_nodes == other.n_nodes
                and self.graph.nnz == other.graph.nnz
                and np.array_equal(self.graph.indptr, other.graph.indptr)
                and np.array_equal(self.graph.indices, other.graph.indices)
                and np.array_equal(self.graph.data, other.graph.data))

    __hash__ = None

    def __str__(self):
        return f"WeightedGraph with {self.n_nodes} nodes, {self.n_edges} edges"

    def __repr__(self):
        return self.__str__()
