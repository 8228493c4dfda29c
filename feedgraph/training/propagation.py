"""Backward propagation of error signals through a network graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np

from ..core.backend import DEFAULT_BACKEND, ComputeBackend
from ..core.errors import ConfigurationError, ShapeError
from ..core.network import Connection, ConnectionKind, Layer, LayerRole, NetworkGraph
from ..core.types import Array, GradientResult
from ..data.dataset import TrainingSet
from ..reporting.metrics import emit
from .forward import OutputCache, evaluate


@dataclass
class PropagationLevel:
    """Deltas of one layer together with the connections feeding it."""

    layer: Layer
    deltas: Array
    incoming: List[Connection] = field(default_factory=list)


def build_levels(graph: NetworkGraph) -> List[PropagationLevel]:
    """Return the layers that influence the output, output first.

    Layers are found by walking incoming non-context connections backward from
    the output layer and ordered reverse-topologically, so a layer feeding
    several destinations comes after all of them.
    """

    output = graph.output_layer
    reachable = {output}
    stack = [output]
    while stack:
        layer = stack.pop()
        for conn in graph.incoming(layer):
            if conn.kind is ConnectionKind.CONTEXT or conn.source in reachable:
                continue
            reachable.add(conn.source)
            stack.append(conn.source)

    levels = [
        PropagationLevel(
            layer=layer,
            deltas=np.zeros(layer.neuron_count, dtype=np.float64),
            incoming=graph.incoming(layer),
        )
        for layer in reversed(graph.topological_order())
        if layer in reachable
    ]
    for level in levels:
        layer = level.layer
        if layer.role is not LayerRole.INPUT and not layer.activation.has_derivative():
            raise ConfigurationError(
                f"Activation {layer.activation.name!r} of layer {layer.name!r} has no "
                "derivative; gradient based training is not possible"
            )
    return levels


def _propagate(
    levels: List[PropagationLevel],
    cache: OutputCache,
    seed: Array,
    backend: ComputeBackend,
) -> List[PropagationLevel]:
    """Push ``seed`` from the output level back through every level.

    Context connections are skipped: their input is the previous call's
    output, a constant in this pass, so they get a weight gradient from
    :func:`parameter_gradients` but route no delta to their source.
    """

    index = {level.layer: level for level in levels}
    for level in levels:
        level.deltas[...] = 0.0
    levels[0].deltas[...] = seed

    for level in levels:
        layer = level.layer
        if layer.role is not LayerRole.INPUT:
            level.deltas *= layer.activation.derivative(cache.sums[layer])
        for conn in level.incoming:
            kind = conn.kind
            if kind is ConnectionKind.CONTEXT:
                continue
            upstream = index[conn.source]
            if kind is ConnectionKind.WEIGHTED:
                upstream.deltas += backend.backproject(conn.weights, level.deltas)
            elif kind is ConnectionKind.ONE_TO_ONE:
                upstream.deltas += level.deltas
            else:  # pragma: no cover - closed enum
                raise ValueError(f"Unknown connection kind: {kind}")
    return levels


def backward(
    graph: NetworkGraph,
    cache: OutputCache,
    fired_output: Sequence[float] | Array,
    ideal: Sequence[float] | Array,
    *,
    backend: ComputeBackend | None = None,
) -> List[PropagationLevel]:
    """Propagate ``ideal - fired_output`` from the output layer toward the input.

    Output deltas are ``f'(z) * (ideal - fired)``; every other level receives
    the sum of what its outgoing connections route back, scaled by its own
    activation derivative. Input layer deltas are left unscaled.
    """

    output_layer = graph.output_layer
    fired = np.asarray(fired_output, dtype=np.float64).reshape(-1)
    target = np.asarray(ideal, dtype=np.float64).reshape(-1)
    if target.shape[0] != output_layer.neuron_count:
        raise ShapeError(
            f"Size mismatch: can't calculate error for ideal size={target.shape[0]} "
            f"and output layer size={output_layer.neuron_count}"
        )
    if fired.shape[0] != output_layer.neuron_count:
        raise ShapeError(
            f"Size mismatch: fired output has {fired.shape[0]} values, "
            f"output layer has {output_layer.neuron_count}"
        )
    levels = build_levels(graph)
    return _propagate(levels, cache, target - fired, backend or DEFAULT_BACKEND)


def parameter_gradients(
    graph: NetworkGraph,
    cache: OutputCache,
    levels: Sequence[PropagationLevel],
) -> Array:
    """Flatten per-level deltas into one vector laid out like ``graph.flatten()``.

    Weight entries are ``input[i] * delta[j]`` of the connection's destination,
    bias entries are the destination delta itself. Layers that do not reach
    the output contribute zeros.
    """

    deltas: Dict[Layer, Array] = {level.layer: level.deltas for level in levels}
    parts: List[Array] = []
    for conn in graph.connections:
        if conn.weights is None:
            continue
        delta = deltas.get(conn.destination)
        if delta is None:
            parts.append(np.zeros(conn.weights.size, dtype=np.float64))
        else:
            parts.append(np.outer(cache.inputs[conn], delta).ravel())
    for layer in graph.layers:
        if layer.bias is None:
            continue
        delta = deltas.get(layer)
        parts.append(np.zeros(layer.neuron_count) if delta is None else delta.copy())
    if not parts:
        return np.zeros(0, dtype=np.float64)
    return np.concatenate(parts)


def compute_gradients(
    graph: NetworkGraph,
    training: TrainingSet,
    *,
    backend: ComputeBackend | None = None,
    callbacks: Sequence[object] = (),
) -> GradientResult:
    """Accumulate parameter gradients over every record of ``training``.

    The returned gradients point toward the ideal (``-dE/dw`` for half the sum
    of squared errors); ``error`` is the mean squared error over all outputs.
    """

    backend = backend or DEFAULT_BACKEND
    total = np.zeros(graph.parameter_count(), dtype=np.float64)
    squared = 0.0
    cache = OutputCache()
    count = training.count
    for index in range(count):
        pair = training.get_record(index)
        output, cache = evaluate(graph, pair.input, cache=cache, backend=backend)
        levels = backward(graph, cache, output, pair.ideal, backend=backend)
        total += parameter_gradients(graph, cache, levels)
        diff = np.asarray(pair.ideal, dtype=np.float64) - output
        squared += float(np.dot(diff, diff))
    outputs = max(1, count * graph.output_layer.neuron_count)
    result = GradientResult(gradients=total, error=squared / outputs, samples=count)
    emit(callbacks, 0, {"error": result.error, "samples": float(count)})
    return result


__all__ = [
    "PropagationLevel",
    "backward",
    "build_levels",
    "compute_gradients",
    "parameter_gradients",
]
