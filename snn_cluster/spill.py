# snn_cluster/spill.py
"""
File-based optimizer path for graphs that should not be optimized in this
process: the graph is written as a plain-text edge list, an external optimizer
runs on it, and its one-id-per-line output is read back.

Edge list format: UTF-8, one `<node_a> <node_b> <weight>` line per undirected
edge, 0-indexed ids, whitespace separated, no header.
"""
from __future__ import annotations

import os
import subprocess
import sys
import tempfile
from typing import Optional

import numpy as np
import pandas as pd

from .config import ClusteringConfig
from .errors import ExternalProcessError, MalformedGraphError
from .graph import WeightedGraph

DEFAULT_COMMAND = (sys.executable, "-m", "snn_cluster.cli", "optimize")


def write_edge_list(graph: WeightedGraph, path) -> int:
    """Write every undirected edge once (a < b); returns the number of lines"""
    a, b, w = graph.edges()
    with open(path, "w", encoding="utf-8") as fh:
        # repr gives the shortest text that parses back to the same float
        fh.writelines(f"{u} {v} {x!r}\n" for u, v, x in zip(a.tolist(), b.tolist(), w.tolist()))
    return int(a.size)


def read_edge_list(path, n_nodes: Optional[int] = None, duplicates: str = "max") -> WeightedGraph:
    """
    Parse an edge list back into a WeightedGraph.

    Raises:
    -------
    MalformedGraphError
        For lines without exactly three fields, unparsable values, or ids
        outside [0, n_nodes).
    """
    try:
        df = pd.read_csv(path, sep=r"\s+", header=None, index_col=False,
                         float_precision="round_trip", engine="c")
    except pd.errors.EmptyDataError:
        return WeightedGraph.from_edges([], [], [], n_nodes=n_nodes or 0)
    except (pd.errors.ParserError, ValueError) as exc:
        raise MalformedGraphError(f"Could not parse edge list {path}: {exc}")

    if df.shape[1] != 3:
        raise MalformedGraphError(f"Edge list {path} has {df.shape[1]} fields per line, expected 3")
    df.columns = ["a", "b", "w"]
    if df.isna().any().any():
        bad = int(np.flatnonzero(df.isna().any(axis=1).to_numpy())[0])
        raise MalformedGraphError(f"Edge list {path} line {bad + 1} does not have three fields")
    try:
        weights = df["w"].to_numpy(dtype=np.float64)
        a = df["a"].to_numpy()
        b = df["b"].to_numpy()
    except (TypeError, ValueError) as exc:
        raise MalformedGraphError(f"Edge list {path} holds non-numeric values: {exc}")
    if a.dtype == object or b.dtype == object:
        raise MalformedGraphError(f"Edge list {path} holds non-numeric node ids")
    return WeightedGraph.from_edges(a, b, weights, n_nodes=n_nodes, duplicates=duplicates)


def write_membership(membership, path):
    """One integer cluster id per line, in node order"""
    with open(path, "w", encoding="utf-8") as fh:
        fh.writelines(f"{int(c)}\n" for c in np.asarray(membership).tolist())


def read_membership(path, n_nodes: int) -> np.ndarray:
    """
    Read an optimizer output file (one integer per line, node order).

    Raises:
    -------
    ExternalProcessError
        If the file is missing, a line is not an integer or the line count
        differs from `n_nodes`.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            lines = [line.strip() for line in fh]
    except OSError as exc:
        raise ExternalProcessError(f"Optimizer output {path} could not be read: {exc}")

    while lines and not lines[-1]:
        lines.pop()
    if len(lines) != n_nodes:
        raise ExternalProcessError(
            f"Optimizer output {path} has {len(lines)} lines, expected {n_nodes}")
    try:
        membership = np.array([int(line) for line in lines], dtype=np.int64)
    except ValueError as exc:
        raise ExternalProcessError(f"Optimizer output {path} is malformed: {exc}")
    if membership.size and membership.min() < 0:
        raise ExternalProcessError(f"Optimizer output {path} holds negative cluster ids")
    return membership


def _write_values(values, path):
    with open(path, "w", encoding="utf-8") as fh:
        fh.writelines(f"{x!r}\n" for x in np.asarray(values).tolist())


def _remove(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def build_command(config: ClusteringConfig, edge_path, output_path, n_nodes,
                  membership_path=None, sizes_path=None):
    """argv for the external optimizer"""
    command = list(config.spill_command or DEFAULT_COMMAND)
    command += [
        str(edge_path), str(output_path),
        "--n-nodes", str(n_nodes),
        "--resolution", repr(config.resolution),
        "--algorithm", str(int(config.algorithm)),
        "--modularity-function", str(int(config.modularity_function)),
        "--n-start", str(config.n_start),
        "--n-iter", str(config.n_iter),
        "--random-seed", str(config.random_seed),
        "--n-jobs", str(config.n_jobs),
    ]
    if membership_path is not None:
        command += ["--initial-membership", str(membership_path)]
    if sizes_path is not None:
        command += ["--node-sizes", str(sizes_path)]
    return command


def run_external_optimizer(graph: WeightedGraph, config: ClusteringConfig,
                           verbose: bool = False) -> np.ndarray:
    """
    Optimize `graph` in a separate process and return the raw membership.

    Files live in `config.working_dir` (system temp dir by default) under
    unique names, except the edge file when `config.edge_file` is set. All of
    them are removed afterwards unless `config.keep_files` is set; partial
    output is always removed when the optimizer fails.

    Raises:
    -------
    ExternalProcessError
        Non-zero exit, timeout (the process is killed) or unusable output.
    """
    working_dir = config.working_dir or tempfile.gettempdir()
    os.makedirs(working_dir, exist_ok=True)

    def scratch(prefix):
        fd, path = tempfile.mkstemp(prefix=prefix, suffix=".txt", dir=working_dir)
        os.close(fd)
        return path

    files = []
    try:
        edge_path = config.edge_file or scratch("snn_edges_")
        files.append(edge_path)
        output_path = scratch("snn_membership_")
        files.append(output_path)
        membership_path = sizes_path = None
        if config.initial_membership is not None:
            membership_path = scratch("snn_initial_")
            files.append(membership_path)
            write_membership(config.initial_membership, membership_path)
        if config.node_sizes is not None:
            sizes_path = scratch("snn_sizes_")
            files.append(sizes_path)
            _write_values(config.node_sizes, sizes_path)

        n_lines = write_edge_list(graph, edge_path)
        command = build_command(config, edge_path, output_path, graph.n_nodes,
                                membership_path, sizes_path)
        if verbose:
            print(f"[Spill] Wrote {n_lines:,} edges to {edge_path}")
            print(f"         Running: {' '.join(command)}")

        try:
            proc = subprocess.run(command, capture_output=True, text=True,
                                  timeout=config.spill_timeout, check=False)
        except subprocess.TimeoutExpired as exc:
            _remove(output_path)
            raise ExternalProcessError(
                f"External optimizer timed out after {config.spill_timeout}s",
                stderr=exc.stderr)
        except OSError as exc:
            raise ExternalProcessError(f"External optimizer could not be started: {exc}")

        if proc.returncode != 0:
            _remove(output_path)
            raise ExternalProcessError(
                f"External optimizer exited with status {proc.returncode}: "
                f"{(proc.stderr or '').strip()[-500:]}",
                returncode=proc.returncode, stderr=proc.stderr)

        try:
            membership = read_membership(output_path, graph.n_nodes)
        except ExternalProcessError:
            _remove(output_path)
            raise

        if verbose:
            print(f"         Read {int(membership.max(initial=-1)) + 1} clusters from {output_path}")
        return membership
    finally:
        if not config.keep_files:
            for path in files:
                _remove(path)
