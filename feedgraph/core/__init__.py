"""Core numerical primitives for feedgraph."""

from . import activations, backend, errors, network, randomize, types

__all__ = ["activations", "backend", "errors", "network", "randomize", "types"]
