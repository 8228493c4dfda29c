"""Randomizers that fill every trainable matrix and bias of a graph."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .network import NetworkGraph
from .types import Array


class BasicRandomizer:
    """Walk a graph and replace each parameter array with :meth:`sample` output."""

    def randomize(self, graph: NetworkGraph) -> None:
        for conn in graph.connections:
            if conn.weights is not None:
                conn.weights[...] = self.sample(conn.weights.shape)
        for layer in graph.layers:
            if layer.bias is not None:
                layer.bias[...] = self.sample(layer.bias.shape)

    def sample(self, shape: tuple[int, ...]) -> Array:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass
class RangeRandomizer(BasicRandomizer):
    """Uniform values in ``[low, high)``."""

    low: float = -1.0
    high: float = 1.0
    seed: int | None = None
    rng: np.random.Generator = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.high < self.low:
            raise ValueError(f"RangeRandomizer needs low <= high, got {self.low} > {self.high}")
        self.rng = np.random.default_rng(self.seed)

    def sample(self, shape: tuple[int, ...]) -> Array:
        return self.rng.uniform(self.low, self.high, size=shape)


@dataclass
class GaussianRandomizer(BasicRandomizer):
    mean: float = 0.0
    std: float = 1.0
    seed: int | None = None
    rng: np.random.Generator = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.rng = np.random.default_rng(self.seed)

    def sample(self, shape: tuple[int, ...]) -> Array:
        return self.rng.normal(self.mean, self.std, size=shape)


@dataclass
class ConstRandomizer(BasicRandomizer):
    """Set every parameter to ``value``."""

    value: float = 0.0

    def sample(self, shape: tuple[int, ...]) -> Array:
        return np.full(shape, self.value, dtype=np.float64)


def make_randomizer(kind: str, **options: float) -> BasicRandomizer:
    key = kind.lower()
    if key == "range":
        return RangeRandomizer(**options)
    if key == "gaussian":
        return GaussianRandomizer(**options)
    if key == "const":
        return ConstRandomizer(**options)
    raise ValueError(f"Unknown randomizer: {kind}")


__all__ = [
    "BasicRandomizer",
    "ConstRandomizer",
    "GaussianRandomizer",
    "RangeRandomizer",
    "make_randomizer",
]
