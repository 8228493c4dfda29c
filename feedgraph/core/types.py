"""Core typing contracts for feedgraph."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

Array = np.ndarray


@dataclass(frozen=True)
class TrainingPair:
    """A single input/ideal record."""

    input: Array
    ideal: Array


@dataclass(frozen=True)
class GradientResult:
    """Summary returned by :func:`feedgraph.training.propagation.compute_gradients`."""

    gradients: Array
    error: float
    samples: int


@dataclass(frozen=True)
class JacobianResult:
    """Jacobian rows, residuals and the half sum of squared residuals.

    ``jacobian[row, p]`` is the partial derivative of one network output with
    respect to flattened parameter ``p``. Rows are laid out sample-major:
    ``row = sample * output_count + output``.
    """

    jacobian: Array
    residuals: Array
    error: float
