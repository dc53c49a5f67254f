"""
Exception hierarchy for the SNN clustering engine.

Each error also derives from the builtin that the rest of the code raises for
the same situation (ValueError for bad input, RuntimeError for failed runs).
"""


class SNNClusterError(Exception):
    """Base class for all clustering errors."""


class MalformedGraphError(SNNClusterError, ValueError):
    """Graph or neighbor input references invalid nodes or carries bad weights."""


class ConfigurationError(SNNClusterError, ValueError):
    """Invalid clustering configuration, detected before any computation."""


class OptimizationError(SNNClusterError, RuntimeError):
    """No optimization start finished (all failed or timed out)."""


class ExternalProcessError(SNNClusterError, RuntimeError):
    """The out-of-process optimizer failed or produced unusable output."""

    def __init__(self, message, returncode=None, stderr=None):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
