"""Activation functions for feedgraph layers.

Every activation implements the same small capability set:

``apply(values)``
    Transform ``values`` in place and return them.
``derivative(values)``
    Derivative evaluated at the pre-activation ``values``.
``has_derivative()``
    Whether gradient based training may pass through the function.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Protocol

import numpy as np

from .errors import ConfigurationError
from .types import Array


def relu(x: Array) -> Array:
    """Return the ReLU activation."""

    return np.maximum(x, 0.0)


class ActivationFunction(Protocol):
    """Capability interface shared by every activation."""

    name: str

    def apply(self, values: Array) -> Array:
        """Activate ``values`` in place."""

    def derivative(self, values: Array) -> Array:
        """Return the derivative at the pre-activation ``values``."""

    def has_derivative(self) -> bool:
        """Return ``True`` when :meth:`derivative` may be called."""


@dataclass(frozen=True)
class Identity:
    """Pass values through unchanged."""

    name: str = "identity"

    def apply(self, values: Array) -> Array:
        return values

    def derivative(self, values: Array) -> Array:
        return np.ones_like(values, dtype=float)

    def has_derivative(self) -> bool:
        return True


@dataclass(frozen=True)
class Linear:
    """Scale values by a constant slope."""

    slope: float = 1.0
    name: str = "linear"

    def apply(self, values: Array) -> Array:
        values *= self.slope
        return values

    def derivative(self, values: Array) -> Array:
        return np.full_like(values, self.slope, dtype=float)

    def has_derivative(self) -> bool:
        return True


@dataclass(frozen=True)
class Sigmoid:
    """Logistic sigmoid, range ``(0, 1)``."""

    name: str = "sigmoid"

    def apply(self, values: Array) -> Array:
        values[...] = 1.0 / (1.0 + np.exp(-np.clip(values, -500.0, 500.0)))
        return values

    def derivative(self, values: Array) -> Array:
        clipped = np.clip(np.asarray(values, dtype=float), -500.0, 500.0)
        s = 1.0 / (1.0 + np.exp(-clipped))
        return s * (1.0 - s)

    def has_derivative(self) -> bool:
        return True


@dataclass(frozen=True)
class Tanh:
    """Hyperbolic tangent, range ``(-1, 1)``."""

    name: str = "tanh"

    def apply(self, values: Array) -> Array:
        np.tanh(values, out=values)
        return values

    def derivative(self, values: Array) -> Array:
        t = np.tanh(np.asarray(values, dtype=float))
        return 1.0 - t * t

    def has_derivative(self) -> bool:
        return True


@dataclass(frozen=True)
class ReLU:
    """Rectified linear unit."""

    name: str = "relu"

    def apply(self, values: Array) -> Array:
        values[...] = relu(values)
        return values

    def derivative(self, values: Array) -> Array:
        return (np.asarray(values) > 0.0).astype(float)

    def has_derivative(self) -> bool:
        return True


@dataclass(frozen=True)
class Step:
    """Threshold activation: ``high`` at or above ``center``, else ``low``.

    The step function is usable for forward evaluation only.
    """

    low: float = 0.0
    center: float = 0.0
    high: float = 1.0
    name: str = "step"

    def apply(self, values: Array) -> Array:
        values[...] = np.where(values >= self.center, self.high, self.low)
        return values

    def derivative(self, values: Array) -> Array:
        raise ConfigurationError("The step activation function has no derivative")

    def has_derivative(self) -> bool:
        return False


ActivationFactory = Callable[..., ActivationFunction]


class ActivationRegistry:
    """Map configuration names to activation factories."""

    def __init__(self) -> None:
        self._registry: Dict[str, ActivationFactory] = {}

    def register(self, name: str, factory: ActivationFactory) -> None:
        self._registry[name.lower()] = factory

    def names(self) -> Iterable[str]:
        return sorted(self._registry)

    def resolve(self, name: str, **params: float) -> ActivationFunction:
        try:
            factory = self._registry[name.lower()]
        except KeyError as exc:
            raise ValueError(f"Unknown activation function: {name}") from exc
        return factory(**params)


REGISTRY = ActivationRegistry()
REGISTRY.register("identity", Identity)
REGISTRY.register("linear", Linear)
REGISTRY.register("sigmoid", Sigmoid)
REGISTRY.register("tanh", Tanh)
REGISTRY.register("relu", ReLU)
REGISTRY.register("step", Step)


__all__ = [
    "ActivationFunction",
    "ActivationRegistry",
    "Identity",
    "Linear",
    "REGISTRY",
    "ReLU",
    "Sigmoid",
    "Step",
    "Tanh",
    "relu",
]
