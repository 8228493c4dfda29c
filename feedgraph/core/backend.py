"""Compute backends used by the forward and backward passes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np

from .activations import ActivationFunction
from .types import Array


class ComputeBackend(Protocol):
    """Vectorised primitives the evaluator relies on."""

    def project(self, weights: Array, values: Array) -> Array:
        """Return ``weights^T . values`` for a ``source x destination`` matrix."""

    def backproject(self, weights: Array, deltas: Array) -> Array:
        """Return ``weights . deltas``, routing destination deltas to the source."""

    def activate(self, activation: ActivationFunction, values: Array) -> Array:
        """Apply ``activation`` elementwise to ``values`` in place."""


@dataclass(frozen=True)
class NumpyBackend:
    """Pure software backend."""

    def project(self, weights: Array, values: Array) -> Array:
        return np.asarray(values, dtype=np.float64) @ weights

    def backproject(self, weights: Array, deltas: Array) -> Array:
        return weights @ np.asarray(deltas, dtype=np.float64)

    def activate(self, activation: ActivationFunction, values: Array) -> Array:
        return activation.apply(values)


DEFAULT_BACKEND = NumpyBackend()


__all__ = ["ComputeBackend", "DEFAULT_BACKEND", "NumpyBackend"]
