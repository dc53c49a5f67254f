"""
Core utilities for the SNN clustering package.
Contains the timing tracker shared by the clusterer and the CLI.
"""
import time
from collections import defaultdict
from contextlib import contextmanager


class TimingStats:
    """Utility class to track wall-clock time spent in named stages"""
    def __init__(self, enabled=True):
        self.enabled = enabled
        self.stats = defaultdict(list)

    @contextmanager
    def timed(self, operation, verbose=False):
        """Context manager recording the elapsed time of `operation`"""
        if not self.enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.stats[operation].append(elapsed)
            if verbose:
                print(f"  [{operation}] completed in {elapsed:.2f}s")

    def total(self, operation):
        """Total time recorded for one operation (0 if never run)"""
        return sum(self.stats.get(operation, ()))

    def get_stats(self, as_dict=False):
        """Get per-operation statistics, as a dict or a printable report"""
        result = {}
        for op, times in self.stats.items():
            result[op] = {
                'count': len(times),
                'total': sum(times),
                'mean': sum(times) / len(times),
                'max': max(times),
            }

        if as_dict:
            return result

        lines = ["Timing Summary:"]
        for op, s in sorted(result.items(), key=lambda x: x[1]['total'], reverse=True):
            lines.append(f"  • {op}: {s['total']:.2f}s total, "
                         f"{s['count']} calls, {s['mean']:.2f}s avg/call")
        return "\n".join(lines)

    def reset(self):
        self.stats.clear()
