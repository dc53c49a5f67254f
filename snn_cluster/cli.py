"""
Command line interface.

`snn-cluster optimize` is also the default out-of-process optimizer used by
the spill path: it reads an edge list, optimizes in memory and writes one raw
cluster id per line.
"""

import click
import numpy as np

from .clusterer import SNNClusterer
from .config import Algorithm, ClusteringConfig, ModularityFunction
from .core_utilities import TimingStats
from .errors import ConfigurationError, SNNClusterError
from .optimizer import ModularityOptimizer
from .snn import NeighborGraph, compute_snn
from .spill import read_edge_list, write_edge_list, write_membership

ALGORITHM_CHOICES = [str(a.value) for a in Algorithm] + [a.name.lower() for a in Algorithm]
MODULARITY_CHOICES = [str(m.value) for m in ModularityFunction] + [m.name.lower() for m in ModularityFunction]


def _read_column(path, dtype):
    """One value per line; None when no file was given"""
    if path is None:
        return None
    try:
        return np.loadtxt(path, dtype=dtype, ndmin=1)
    except ValueError as exc:
        raise ConfigurationError(f"Could not read {path}: {exc}")


def optimizer_options(func):
    """Options shared by the `optimize` and `cluster` commands"""
    options = [
        click.option('--n-nodes', type=int, default=None,
                     help="Number of nodes (default: largest id in the edge list + 1)."),
        click.option('--resolution', type=float, default=0.8, show_default=True,
                     help="Resolution; larger values give more, smaller clusters."),
        click.option('--algorithm', type=click.Choice(ALGORITHM_CHOICES), default='1', show_default=True,
                     help="1=louvain, 2=louvain_refined, 3=slm, 4=leiden."),
        click.option('--modularity-function', type=click.Choice(MODULARITY_CHOICES), default='1',
                     show_default=True, help="1=standard, 2=alternative."),
        click.option('--n-start', type=int, default=10, show_default=True,
                     help="Number of random starts."),
        click.option('--n-iter', type=int, default=10, show_default=True,
                     help="Maximum iterations per start."),
        click.option('--random-seed', type=int, default=0, show_default=True,
                     help="Base random seed."),
        click.option('--n-jobs', type=int, default=1, show_default=True,
                     help="Worker threads for the random starts (-1 = all cores)."),
        click.option('--initial-membership', type=click.Path(exists=True, dir_okay=False), default=None,
                     help="File with one initial cluster id per line."),
        click.option('--node-sizes', type=click.Path(exists=True, dir_okay=False), default=None,
                     help="File with one node size per line."),
        click.option('--verbose/--quiet', default=False,
                     help="Print progress."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load(edge_file, n_nodes, initial_membership, node_sizes, **settings):
    graph = read_edge_list(edge_file, n_nodes=n_nodes)
    config = ClusteringConfig(
        initial_membership=_read_column(initial_membership, np.int64),
        node_sizes=_read_column(node_sizes, np.float64),
        **settings,
    )
    return graph, config


@click.group()
def main():
    """SNN graph construction and modularity clustering."""


@main.command()
@click.argument('edge_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('output_file', type=click.Path(dir_okay=False))
@optimizer_options
def optimize(edge_file, output_file, n_nodes, initial_membership, node_sizes, verbose, **settings):
    """Optimize modularity of EDGE_FILE; write one raw cluster id per line to OUTPUT_FILE."""
    timing = TimingStats(enabled=verbose)
    try:
        with timing.timed("Read edge list", verbose=verbose):
            graph, config = _load(edge_file, n_nodes, initial_membership, node_sizes, **settings)
        with timing.timed("Optimization", verbose=verbose):
            result = ModularityOptimizer(config, verbose=verbose).run(graph)
    except SNNClusterError as exc:
        raise click.ClickException(str(exc))

    write_membership(result.membership, output_file)
    if verbose:
        print(f"Wrote {result.membership.size:,} assignments "
              f"({int(result.membership.max(initial=-1)) + 1} clusters, quality={result.quality:.6f})")
        print(timing.get_stats())


@main.command('cluster')
@click.argument('edge_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('output_file', type=click.Path(dir_okay=False))
@optimizer_options
@click.option('--group-singletons/--pool-singletons', default=True, show_default=True,
              help="Merge singletons into their best-connected cluster or pool them into one group.")
@click.option('--summary-file', type=click.Path(dir_okay=False), default=None,
              help="Optional CSV with one row per cluster.")
def cluster_command(edge_file, output_file, n_nodes, initial_membership, node_sizes, verbose,
                    summary_file, **settings):
    """Cluster EDGE_FILE and write final (size-ordered) cluster ids to OUTPUT_FILE."""
    try:
        graph, config = _load(edge_file, n_nodes, initial_membership, node_sizes, **settings)
        partition = SNNClusterer(config, verbose=verbose).fit(graph=graph)
    except SNNClusterError as exc:
        raise click.ClickException(str(exc))

    write_membership(partition.membership, output_file)
    if summary_file:
        partition.cluster_table().to_csv(summary_file, index=False)
    click.echo(f"{partition.n_clusters} clusters, quality={partition.quality:.6f}")


@main.command()
@click.argument('neighbors_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('output_file', type=click.Path(dir_okay=False))
@click.option('--prune', type=float, default=0.0, show_default=True,
              help="Drop SNN edges lighter than this.")
@click.option('--weighting', type=click.Choice(['fraction', 'jaccard']), default='fraction',
              show_default=True, help="SNN edge weighting.")
def snn(neighbors_file, output_file, prune, weighting):
    """Build the SNN graph of an (n, k) neighbor index array saved with numpy.save."""
    try:
        neighbors = NeighborGraph(np.load(neighbors_file, allow_pickle=False))
        graph = compute_snn(neighbors, prune=prune, weighting=weighting)
    except SNNClusterError as exc:
        raise click.ClickException(str(exc))
    n_lines = write_edge_list(graph, output_file)
    click.echo(f"{graph.n_nodes} nodes, {n_lines} edges")


if __name__ == "__main__":
    main()
