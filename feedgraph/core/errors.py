"""Exceptions raised by network construction, evaluation and propagation."""

from __future__ import annotations


class NetworkError(Exception):
    """Base class for feedgraph network errors."""


class TopologyError(NetworkError, ValueError):
    """A structural invariant of the graph would be violated."""


class ShapeError(NetworkError, ValueError):
    """A vector length does not match the layer it is fed to."""


class ConfigurationError(NetworkError, RuntimeError):
    """A gradient was requested through an activation without a derivative."""


__all__ = ["NetworkError", "TopologyError", "ShapeError", "ConfigurationError"]
