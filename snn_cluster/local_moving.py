"""
Numba kernels for modularity optimization on CSR arrays.

All kernels take the graph as (indptr, indices, data) without self-loops,
per-node weights and an effective resolution `gamma`, and score a move of
node i into cluster c by the quality increment

    w(i -> c) - k_i * W_c * gamma

where w(i -> c) is the edge weight from i into c, k_i the node weight of i and
W_c the summed node weight of c (i excluded).
"""
import numpy as np
import numba as nb


@nb.njit(cache=True, nogil=True)
def local_moving(indptr, indices, data, node_weight, membership, order, gamma):
    """
    Greedy local moving, in place on `membership` (ids must lie in [0, n)).

    Nodes are visited cyclically in `order`. A node leaves its cluster and
    joins the neighboring cluster with the largest increment (lowest id on
    ties). It stays where it is unless another cluster is strictly better,
    and goes to an empty cluster when every increment is negative. Stops once
    a full cycle passes without a move. Returns True if any node moved.
    """
    n = node_weight.shape[0]
    if n <= 1:
        return False

    cluster_weight = np.zeros(n, np.float64)
    cluster_size = np.zeros(n, np.int64)
    for i in range(n):
        cluster_weight[membership[i]] += node_weight[i]
        cluster_size[membership[i]] += 1

    unused = np.empty(n, np.int64)
    n_unused = 0
    for c in range(n):
        if cluster_size[c] == 0:
            unused[n_unused] = c
            n_unused += 1

    edge_weight_per_cluster = np.zeros(n, np.float64)
    seen = np.zeros(n, np.bool_)
    neighboring = np.empty(n, np.int64)

    update = False
    n_stable = 0
    pos = 0
    while n_stable < n:
        j = order[pos]
        current = membership[j]
        kj = node_weight[j]

        cluster_weight[current] -= kj
        cluster_size[current] -= 1
        if cluster_size[current] == 0:
            unused[n_unused] = current
            n_unused += 1

        n_neighboring = 0
        for p in range(indptr[j], indptr[j + 1]):
            c = membership[indices[p]]
            if not seen[c]:
                seen[c] = True
                neighboring[n_neighboring] = c
                n_neighboring += 1
            edge_weight_per_cluster[c] += data[p]

        best = current
        best_gain = edge_weight_per_cluster[current] - kj * cluster_weight[current] * gamma
        for q in range(n_neighboring):
            c = neighboring[q]
            if c == current:
                continue
            gain = edge_weight_per_cluster[c] - kj * cluster_weight[c] * gamma
            if gain > best_gain or (gain == best_gain and best != current and c < best):
                best = c
                best_gain = gain

        for q in range(n_neighboring):
            c = neighboring[q]
            edge_weight_per_cluster[c] = 0.0
            seen[c] = False

        if best_gain < 0.0:
            # an empty cluster (increment 0) beats every option
            best = unused[n_unused - 1]
            n_unused -= 1
        elif best == current and cluster_size[current] == 0:
            # the node returns to the cluster it just emptied
            n_unused -= 1

        cluster_weight[best] += kj
        cluster_size[best] += 1

        if best == current:
            n_stable += 1
        else:
            membership[j] = best
            n_stable = 1
            update = True

        pos = pos + 1 if pos < n - 1 else 0

    return update


@nb.njit(cache=True, nogil=True)
def refine_within_clusters(indptr, indices, data, node_weight, membership, order, gamma):
    """
    Leiden refinement: split every cluster of `membership` into well-connected
    sub-clusters.

    Starting from singletons, each node that is still alone and well connected
    to its cluster joins the adjacent sub-cluster of the same cluster with the
    largest non-negative increment, provided that sub-cluster is itself well
    connected to the rest of the cluster. Returns the sub-cluster id of every
    node (ids are founding node ids, not compacted).
    """
    n = node_weight.shape[0]
    refined = np.arange(n)
    sub_weight = node_weight.copy()

    cluster_weight = np.zeros(n, np.float64)
    for i in range(n):
        cluster_weight[membership[i]] += node_weight[i]

    # edge weight between a sub-cluster and the rest of its cluster
    external = np.zeros(n, np.float64)
    for i in range(n):
        for p in range(indptr[i], indptr[i + 1]):
            if membership[indices[p]] == membership[i]:
                external[i] += data[p]

    alone = np.ones(n, np.bool_)
    edge_weight_per_sub = np.zeros(n, np.float64)
    seen = np.zeros(n, np.bool_)
    neighboring = np.empty(n, np.int64)

    for pos in range(n):
        j = order[pos]
        if not alone[j]:
            continue
        c = membership[j]
        kj = node_weight[j]
        total_c = cluster_weight[c]
        if external[j] < gamma * kj * (total_c - kj):
            continue

        n_neighboring = 0
        for p in range(indptr[j], indptr[j + 1]):
            v = indices[p]
            if membership[v] != c:
                continue
            t = refined[v]
            if not seen[t]:
                seen[t] = True
                neighboring[n_neighboring] = t
                n_neighboring += 1
            edge_weight_per_sub[t] += data[p]

        best = -1
        best_gain = 0.0
        for q in range(n_neighboring):
            t = neighboring[q]
            kt = sub_weight[t]
            if external[t] < gamma * kt * (total_c - kt):
                continue
            gain = edge_weight_per_sub[t] - kj * kt * gamma
            if gain < 0.0:
                continue
            if best == -1 or gain > best_gain or (gain == best_gain and t < best):
                best = t
                best_gain = gain

        if best != -1:
            external[best] = external[best] + external[j] - 2.0 * edge_weight_per_sub[best]
            sub_weight[best] += kj
            sub_weight[j] = 0.0
            refined[j] = best
            alone[best] = False
            alone[j] = False

        for q in range(n_neighboring):
            t = neighboring[q]
            edge_weight_per_sub[t] = 0.0
            seen[t] = False

    return refined


@nb.njit(cache=True, nogil=True)
def quality(indptr, indices, data, node_weight, membership, gamma, total_weight2):
    """
    Modularity-style quality of `membership`:
    (internal edge weight, both directions - gamma * sum_c W_c^2) / 2m
    """
    n = node_weight.shape[0]
    internal = 0.0
    for i in range(n):
        ci = membership[i]
        for p in range(indptr[i], indptr[i + 1]):
            if membership[indices[p]] == ci:
                internal += data[p]

    n_clusters = 0
    for i in range(n):
        if membership[i] + 1 > n_clusters:
            n_clusters = membership[i] + 1
    cluster_weight = np.zeros(n_clusters, np.float64)
    for i in range(n):
        cluster_weight[membership[i]] += node_weight[i]

    penalty = 0.0
    for c in range(n_clusters):
        penalty += cluster_weight[c] * cluster_weight[c]

    q = internal - gamma * penalty
    if total_weight2 > 0.0:
        q /= total_weight2
    return q
