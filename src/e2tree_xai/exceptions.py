"""Exception hierarchy for e2tree_xai."""

from __future__ import annotations


class E2TreeError(Exception):
    """Base class for every error raised by e2tree_xai."""


class ConfigurationError(E2TreeError, ValueError):
    """A setting is outside its valid domain.

    Raised before any dissimilarity or splitting work starts.
    """


class DataMismatchError(E2TreeError, ValueError):
    """Dataset, dissimilarity matrix and ensemble outputs disagree in shape."""


class ParallelWorkerFailure(E2TreeError, RuntimeError):
    """A worker computing a per-tree co-occurrence increment failed.

    The partial matrix is discarded; the original exception is chained.
    """
