"""Tests for the weighted graph store."""

import numpy as np
import pytest
import scipy.sparse as sp

from snn_cluster import MalformedGraphError, WeightedGraph


class TestConstruction:
    """Tests for building graphs from edge lists and matrices."""

    def test_from_edges_is_symmetric(self, two_triangles):
        A = two_triangles.to_csr()
        assert two_triangles.n_nodes == 6
        assert two_triangles.n_edges == 6
        assert (A != A.T).nnz == 0

    def test_node_id_equal_to_count_is_rejected(self):
        with pytest.raises(MalformedGraphError):
            WeightedGraph.from_edges([0, 1], [1, 3], [1.0, 1.0], n_nodes=3)

    def test_negative_node_id_is_rejected(self):
        with pytest.raises(MalformedGraphError):
            WeightedGraph.from_edges([-1], [1], [1.0], n_nodes=3)

    def test_negative_weight_is_rejected(self):
        with pytest.raises(MalformedGraphError):
            WeightedGraph.from_edges([0], [1], [-0.5], n_nodes=2)

    def test_non_finite_weight_is_rejected(self):
        with pytest.raises(MalformedGraphError):
            WeightedGraph.from_edges([0], [1], [np.nan], n_nodes=2)

    def test_length_mismatch_is_rejected(self):
        with pytest.raises(MalformedGraphError):
            WeightedGraph.from_edges([0, 1], [1], [1.0], n_nodes=2)

    def test_malformed_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            WeightedGraph.from_edges([0], [5], [1.0], n_nodes=2)

    def test_self_loops_and_zero_weights_are_dropped(self):
        g = WeightedGraph.from_edges([0, 1, 0], [0, 2, 2], [5.0, 0.0, 1.0], n_nodes=3)
        assert g.n_edges == 1
        assert g.weight(0, 0) == 0.0
        assert g.weight(1, 2) == 0.0
        assert g.weight(0, 2) == 1.0

    def test_duplicates_keep_max_by_default(self):
        g = WeightedGraph.from_edges([0, 1], [1, 0], [0.25, 0.75], n_nodes=2)
        assert g.n_edges == 1
        assert g.weight(0, 1) == 0.75

    def test_duplicates_can_be_summed(self):
        g = WeightedGraph.from_edges([0, 1], [1, 0], [0.25, 0.75], n_nodes=2, duplicates="sum")
        assert g.weight(1, 0) == 1.0

    def test_n_nodes_is_inferred(self):
        g = WeightedGraph.from_edges([0, 2], [1, 4], 1.0)
        assert g.n_nodes == 5

    def test_from_sparse_symmetrizes_with_max(self):
        M = sp.csr_matrix(np.array([[0.0, 2.0, 0.0],
                                    [1.0, 3.0, 0.0],
                                    [0.0, 0.0, 0.0]]))
        g = WeightedGraph.from_sparse(M)
        assert g.weight(0, 1) == 2.0
        assert g.weight(1, 0) == 2.0
        assert g.weight(1, 1) == 0.0
        assert g.n_edges == 1

    def test_dense_negative_entry_is_rejected(self):
        with pytest.raises(MalformedGraphError):
            WeightedGraph(np.array([[0.0, -1.0], [-1.0, 0.0]]))

    def test_non_square_matrix_is_rejected(self):
        with pytest.raises(MalformedGraphError):
            WeightedGraph(sp.csr_matrix((2, 3)))

    def test_empty_graph(self):
        g = WeightedGraph.from_edges([], [], [], n_nodes=4)
        assert g.n_nodes == 4
        assert g.n_edges == 0
        assert g.total_weight() == 0.0


class TestQueries:
    """Tests for neighbor iteration and lookups."""

    def test_neighbors_are_sorted(self):
        g = WeightedGraph.from_edges([3, 3, 3], [2, 0, 1], [0.2, 0.5, 0.1], n_nodes=4)
        nbrs, weights = g.neighbors(3)
        assert nbrs.tolist() == [0, 1, 2]
        assert weights.tolist() == [0.5, 0.1, 0.2]

    def test_weight_lookup(self, two_triangles):
        assert two_triangles.weight(0, 1) == 1.0
        assert two_triangles.weight(0, 3) == 0.0

    def test_out_of_range_query(self, two_triangles):
        with pytest.raises(ValueError):
            two_triangles.neighbors(6)

    def test_strengths_and_total_weight(self, k4_plus_isolated):
        assert k4_plus_isolated.strengths().tolist() == [3.0, 3.0, 3.0, 3.0, 0.0]
        assert k4_plus_isolated.total_weight() == 6.0

    def test_edges_are_canonical(self, two_triangles):
        a, b, w = two_triangles.edges()
        assert np.all(a < b)
        assert list(zip(a.tolist(), b.tolist())) == [(0, 1), (0, 2), (1, 2), (3, 4), (3, 5), (4, 5)]
        assert np.all(w == 1.0)

    def test_connected_components(self, two_triangles):
        n_components, labels = two_triangles.connected_components()
        assert n_components == 2
        assert labels[0] == labels[1] == labels[2]
        assert labels[0] != labels[3]

    def test_subgraph(self, two_triangles):
        sub = two_triangles.subgraph([3, 4, 5])
        assert sub.n_nodes == 3
        assert sub.n_edges == 3

    def test_aggregate(self):
        g = WeightedGraph.from_edges([0, 1, 2], [1, 2, 3], [1.0, 2.0, 3.0], n_nodes=4)
        reduced = g.aggregate(np.array([0, 0, 1, 1]))
        assert reduced.n_nodes == 2
        assert reduced.weight(0, 1) == 2.0
        assert reduced.n_edges == 1

    def test_equality(self, two_triangles):
        same = WeightedGraph.from_edges([5, 4, 3, 2, 2, 1], [4, 3, 5, 1, 0, 0], 1.0, n_nodes=6)
        assert same == two_triangles
