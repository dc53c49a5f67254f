"""Tests for the edge list format and the out-of-process optimizer path."""

import os
import sys

import numpy as np
import pytest

from snn_cluster import (
    ClusteringConfig,
    ExternalProcessError,
    MalformedGraphError,
    WeightedGraph,
    cluster,
    read_edge_list,
    run_external_optimizer,
    write_edge_list,
)
from snn_cluster.spill import build_command, read_membership, write_membership


def python_command(code):
    return [sys.executable, "-c", code]


class TestEdgeList:
    """Tests for writing and parsing edge lists."""

    def test_round_trip_is_exact(self, tmp_path):
        rng = np.random.default_rng(0)
        a = rng.integers(0, 50, size=300)
        b = rng.integers(0, 50, size=300)
        w = rng.random(300) * 10 ** rng.uniform(-8, 8, size=300)
        graph = WeightedGraph.from_edges(a, b, w, n_nodes=60)

        path = tmp_path / "edges.txt"
        n_lines = write_edge_list(graph, path)
        assert n_lines == graph.n_edges
        assert read_edge_list(path, n_nodes=60) == graph

    def test_format(self, tmp_path, two_triangles):
        path = tmp_path / "edges.txt"
        write_edge_list(two_triangles, path)
        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "0 1 1.0"
        assert len(lines) == 6
        for line in lines:
            u, v, _ = line.split()
            assert int(u) < int(v)

    def test_whitespace_variants(self, tmp_path):
        path = tmp_path / "edges.txt"
        path.write_text("0\t1  0.5\n1 2 2\n", encoding="utf-8")
        graph = read_edge_list(path)
        assert graph.n_nodes == 3
        assert graph.weight(0, 1) == 0.5
        assert graph.weight(2, 1) == 2.0

    def test_empty_file(self, tmp_path):
        path = tmp_path / "edges.txt"
        path.write_text("", encoding="utf-8")
        graph = read_edge_list(path, n_nodes=3)
        assert graph.n_nodes == 3
        assert graph.n_edges == 0

    @pytest.mark.parametrize("content", [
        "0 1\n",
        "0 1 0.5 7\n",
        "0 1 0.5\n1 2\n",
        "0 x 0.5\n",
        "0 1 heavy\n",
        "0 1 -0.5\n",
    ])
    def test_malformed(self, tmp_path, content):
        path = tmp_path / "edges.txt"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(MalformedGraphError):
            read_edge_list(path)

    def test_node_outside_declared_range(self, tmp_path):
        path = tmp_path / "edges.txt"
        path.write_text("0 1 1.0\n1 5 1.0\n", encoding="utf-8")
        with pytest.raises(MalformedGraphError):
            read_edge_list(path, n_nodes=5)


class TestMembershipFile:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "membership.txt"
        write_membership([3, 0, 3, 1], path)
        assert read_membership(path, 4).tolist() == [3, 0, 3, 1]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ExternalProcessError):
            read_membership(tmp_path / "nothing.txt", 3)

    @pytest.mark.parametrize("content", ["0\n1\n", "0\n1\n2\n3\n", "0\na\n1\n", "0\n-1\n1\n"])
    def test_malformed(self, tmp_path, content):
        path = tmp_path / "membership.txt"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ExternalProcessError):
            read_membership(path, 3)


class TestBuildCommand:
    def test_default_command(self):
        config = ClusteringConfig(resolution=1.25, algorithm="leiden", n_start=3)
        command = build_command(config, "e.txt", "m.txt", 10)
        assert command[:4] == [sys.executable, "-m", "snn_cluster.cli", "optimize"]
        assert command[4:6] == ["e.txt", "m.txt"]
        assert command[command.index("--resolution") + 1] == "1.25"
        assert command[command.index("--algorithm") + 1] == "4"
        assert command[command.index("--n-nodes") + 1] == "10"
        assert "--initial-membership" not in command

    def test_custom_command(self):
        config = ClusteringConfig(spill_command=["my-optimizer", "--fast"])
        command = build_command(config, "e.txt", "m.txt", 3, membership_path="init.txt")
        assert command[:4] == ["my-optimizer", "--fast", "e.txt", "m.txt"]
        assert command[command.index("--initial-membership") + 1] == "init.txt"


class TestExternalOptimizer:
    """Runs the optimizer in a child process."""

    def test_matches_in_memory_result(self, tmp_path, planted):
        graph, _ = planted
        config = ClusteringConfig(working_dir=str(tmp_path), n_start=3, random_seed=4)
        external = run_external_optimizer(graph, config)
        in_memory = cluster(graph=graph, config=config.replace(working_dir=None))
        from_spill = cluster(graph=graph, config=config.replace(spill_threshold=0))
        assert external.shape == (graph.n_nodes,)
        assert from_spill == in_memory
        assert os.listdir(tmp_path) == []

    def test_initial_membership_and_sizes_are_forwarded(self, tmp_path, two_triangles):
        config = ClusteringConfig(working_dir=str(tmp_path), initial_membership=[0, 0, 0, 1, 1, 1],
                                  node_sizes=[1.0, 1.0, 1.0, 2.0, 2.0, 2.0], n_start=1)
        membership = run_external_optimizer(two_triangles, config)
        assert membership[0] == membership[1] == membership[2]
        assert membership[3] == membership[4] == membership[5]
        assert os.listdir(tmp_path) == []

    def test_failing_command(self, tmp_path, two_triangles):
        config = ClusteringConfig(working_dir=str(tmp_path),
                                  spill_command=python_command("import sys; sys.exit(3)"))
        with pytest.raises(ExternalProcessError) as excinfo:
            run_external_optimizer(two_triangles, config)
        assert excinfo.value.returncode == 3
        assert os.listdir(tmp_path) == []

    def test_failing_command_keeps_files_on_request(self, tmp_path, two_triangles):
        config = ClusteringConfig(working_dir=str(tmp_path), keep_files=True,
                                  spill_command=python_command("import sys; sys.exit(3)"))
        with pytest.raises(ExternalProcessError):
            run_external_optimizer(two_triangles, config)
        # the edge list stays, the partial output does not
        remaining = os.listdir(tmp_path)
        assert len(remaining) == 1
        assert remaining[0].startswith("snn_edges_")

    def test_stderr_is_reported(self, tmp_path, two_triangles):
        code = "import sys; sys.stderr.write('out of memory'); sys.exit(1)"
        config = ClusteringConfig(working_dir=str(tmp_path), spill_command=python_command(code))
        with pytest.raises(ExternalProcessError, match="out of memory"):
            run_external_optimizer(two_triangles, config)

    def test_malformed_output(self, tmp_path, two_triangles):
        code = "import sys; open(sys.argv[2], 'w').write('0\\n1\\n')"
        config = ClusteringConfig(working_dir=str(tmp_path), spill_command=python_command(code))
        with pytest.raises(ExternalProcessError):
            run_external_optimizer(two_triangles, config)
        assert os.listdir(tmp_path) == []

    def test_timeout(self, tmp_path, two_triangles):
        config = ClusteringConfig(working_dir=str(tmp_path), spill_timeout=0.5,
                                  spill_command=python_command("import time; time.sleep(30)"))
        with pytest.raises(ExternalProcessError, match="timed out"):
            run_external_optimizer(two_triangles, config)
        assert os.listdir(tmp_path) == []

    def test_missing_executable(self, tmp_path, two_triangles):
        config = ClusteringConfig(working_dir=str(tmp_path),
                                  spill_command=[str(tmp_path / "no-such-optimizer")])
        with pytest.raises(ExternalProcessError):
            run_external_optimizer(two_triangles, config)
        assert os.listdir(tmp_path) == []

    def test_explicit_edge_file_is_kept(self, tmp_path, two_triangles):
        edge_file = tmp_path / "graph.edges"
        config = ClusteringConfig(working_dir=str(tmp_path / "scratch"), edge_file=str(edge_file),
                                  keep_files=True, n_start=1)
        run_external_optimizer(two_triangles, config)
        assert read_edge_list(edge_file, n_nodes=6) == two_triangles

    def test_fallback_to_in_memory(self, tmp_path, two_triangles):
        config = ClusteringConfig(working_dir=str(tmp_path), spill_threshold=0, spill_fallback=True,
                                  spill_command=python_command("import sys; sys.exit(2)"))
        partition = cluster(graph=two_triangles, config=config)
        assert partition.membership.tolist() == [0, 0, 0, 1, 1, 1]

    def test_no_fallback_raises(self, tmp_path, two_triangles):
        config = ClusteringConfig(working_dir=str(tmp_path), spill_threshold=0,
                                  spill_command=python_command("import sys; sys.exit(2)"))
        with pytest.raises(ExternalProcessError):
            cluster(graph=two_triangles, config=config)

    def test_below_threshold_stays_in_memory(self, tmp_path, two_triangles):
        config = ClusteringConfig(working_dir=str(tmp_path), spill_threshold=100,
                                  spill_command=python_command("import sys; sys.exit(2)"))
        partition = cluster(graph=two_triangles, config=config)
        assert partition.n_clusters == 2
