"""Tests for the command line interface."""

import numpy as np
import pandas as pd
import pytest
from click.testing import CliRunner

from snn_cluster import read_edge_list, write_edge_list
from snn_cluster.cli import main
from snn_cluster.spill import read_membership


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def edge_file(tmp_path, two_triangles):
    path = tmp_path / "edges.txt"
    write_edge_list(two_triangles, path)
    return path


class TestOptimize:
    def test_writes_raw_membership(self, runner, edge_file, tmp_path):
        out = tmp_path / "membership.txt"
        result = runner.invoke(main, ["optimize", str(edge_file), str(out), "--n-start", "2"])
        assert result.exit_code == 0, result.output
        membership = read_membership(out, 6)
        assert membership[0] == membership[1] == membership[2]
        assert membership[3] == membership[4] == membership[5]
        assert membership[0] != membership[3]

    def test_n_nodes_adds_isolated_nodes(self, runner, edge_file, tmp_path):
        out = tmp_path / "membership.txt"
        result = runner.invoke(main, ["optimize", str(edge_file), str(out), "--n-nodes", "8"])
        assert result.exit_code == 0, result.output
        assert read_membership(out, 8).shape == (8,)

    def test_algorithm_by_name(self, runner, edge_file, tmp_path):
        out = tmp_path / "membership.txt"
        result = runner.invoke(main, ["optimize", str(edge_file), str(out), "--algorithm", "leiden"])
        assert result.exit_code == 0, result.output

    def test_invalid_setting(self, runner, edge_file, tmp_path):
        out = tmp_path / "membership.txt"
        result = runner.invoke(main, ["optimize", str(edge_file), str(out), "--n-start", "0"])
        assert result.exit_code != 0
        assert "n_start" in result.output
        assert not out.exists()

    def test_malformed_edge_file(self, runner, tmp_path):
        edges = tmp_path / "edges.txt"
        edges.write_text("0 1\n", encoding="utf-8")
        result = runner.invoke(main, ["optimize", str(edges), str(tmp_path / "out.txt")])
        assert result.exit_code != 0
        assert "Error" in result.output

    def test_initial_membership_length_mismatch(self, runner, edge_file, tmp_path):
        initial = tmp_path / "initial.txt"
        initial.write_text("0\n0\n1\n", encoding="utf-8")
        result = runner.invoke(main, ["optimize", str(edge_file), str(tmp_path / "out.txt"),
                                      "--initial-membership", str(initial)])
        assert result.exit_code != 0
        assert "initial_membership" in result.output


class TestCluster:
    def test_final_membership_and_summary(self, runner, tmp_path, k4_plus_isolated):
        edges = tmp_path / "edges.txt"
        write_edge_list(k4_plus_isolated, edges)
        out = tmp_path / "clusters.txt"
        summary = tmp_path / "summary.csv"
        result = runner.invoke(main, ["cluster", str(edges), str(out), "--n-nodes", "5",
                                      "--pool-singletons", "--summary-file", str(summary)])
        assert result.exit_code == 0, result.output
        assert "2 clusters" in result.output
        assert read_membership(out, 5).tolist() == [0, 0, 0, 0, 1]
        table = pd.read_csv(summary)
        assert table["size"].tolist() == [4, 1]
        assert table["singleton_group"].tolist() == [False, True]


class TestSNN:
    def test_builds_edge_list(self, runner, tmp_path):
        neighbors = tmp_path / "knn.npy"
        np.save(neighbors, np.array([[0, 1, 2], [1, 0, 2], [2, 0, 1], [3, 2, 4], [4, 3, 5], [5, 4, 3]]))
        out = tmp_path / "snn.txt"
        result = runner.invoke(main, ["snn", str(neighbors), str(out), "--prune", "0.5"])
        assert result.exit_code == 0, result.output
        assert "6 nodes" in result.output
        graph = read_edge_list(out, n_nodes=6)
        assert graph.weight(0, 1) == 1.0
        assert graph.weight(2, 3) == 0.0

    def test_bad_neighbor_ids(self, runner, tmp_path):
        neighbors = tmp_path / "knn.npy"
        np.save(neighbors, np.array([[0, 9], [1, 0]]))
        result = runner.invoke(main, ["snn", str(neighbors), str(tmp_path / "snn.txt")])
        assert result.exit_code != 0
        assert "outside" in result.output
