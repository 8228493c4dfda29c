"""Forward evaluation of a :class:`~feedgraph.core.network.NetworkGraph`."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Sequence

import numpy as np

from ..core.backend import DEFAULT_BACKEND, ComputeBackend
from ..core.errors import ShapeError
from ..core.network import Connection, ConnectionKind, Layer, NetworkGraph, RecurrentState
from ..core.types import Array


@dataclass
class OutputCache:
    """Values captured during one forward pass.

    ``inputs`` and ``outputs`` are keyed by connection: the vector the
    connection read and the raw vector it contributed to its destination.
    ``sums`` and ``activations`` are keyed by layer: the pre-activation total
    and the activated output.
    """

    inputs: Dict[Connection, Array] = field(default_factory=dict)
    outputs: Dict[Connection, Array] = field(default_factory=dict)
    sums: Dict[Layer, Array] = field(default_factory=dict)
    activations: Dict[Layer, Array] = field(default_factory=dict)

    def clear(self) -> "OutputCache":
        self.inputs.clear()
        self.outputs.clear()
        self.sums.clear()
        self.activations.clear()
        return self

    def record(self, connection: Connection, source: Array, output: Array) -> None:
        self.inputs[connection] = source
        self.outputs[connection] = output

    def __getitem__(self, connection: Connection) -> Array:
        return self.outputs[connection]

    def __contains__(self, connection: object) -> bool:
        return connection in self.outputs


def _contribution(
    connection: Connection,
    cache: OutputCache,
    state: RecurrentState,
    backend: ComputeBackend,
) -> tuple[Array, Array]:
    kind = connection.kind
    if kind is ConnectionKind.ONE_TO_ONE:
        source = cache.activations[connection.source]
        return source, source.copy()
    if kind is ConnectionKind.WEIGHTED:
        source = cache.activations[connection.source]
        return source, backend.project(connection.weights, source)
    if kind is ConnectionKind.CONTEXT:
        source = state.previous(connection)
        return source, backend.project(connection.weights, source)
    raise ValueError(f"Unknown connection kind: {kind}")  # pragma: no cover - closed enum


def evaluate(
    graph: NetworkGraph,
    inputs: Sequence[float] | Array,
    *,
    state: RecurrentState | None = None,
    cache: OutputCache | None = None,
    backend: ComputeBackend | None = None,
) -> tuple[Array, OutputCache]:
    """Run ``inputs`` through ``graph`` and return the output with its cache.

    Context connections read ``state`` (the graph's own state when omitted)
    and write this pass's source outputs back into it, so repeated calls on a
    recurrent graph are not idempotent.
    """

    graph.validate()
    backend = backend or DEFAULT_BACKEND
    state = graph.state if state is None else state
    cache = OutputCache() if cache is None else cache.clear()

    values = np.array(inputs, dtype=np.float64).reshape(-1)
    input_layer = graph.input_layer
    if values.shape[0] != input_layer.neuron_count:
        raise ShapeError(
            f"Input has {values.shape[0]} values but layer {input_layer.name!r} "
            f"has {input_layer.neuron_count} neurons"
        )

    for layer in graph.topological_order():
        if layer is input_layer:
            sums = values
        else:
            sums = np.zeros(layer.neuron_count, dtype=np.float64)
            for conn in graph.incoming(layer):
                source, output = _contribution(conn, cache, state, backend)
                cache.record(conn, source, output)
                sums += output
            if layer.bias is not None:
                sums += layer.bias
        cache.sums[layer] = sums
        cache.activations[layer] = backend.activate(layer.activation, sums.copy())

    for conn in graph.connections:
        if conn.kind is ConnectionKind.CONTEXT:
            state.update(conn, cache.activations[conn.source])

    return cache.activations[graph.output_layer].copy(), cache


def compute(graph: NetworkGraph, inputs: Sequence[float] | Array, **kwargs) -> Array:
    """Return only the network output for ``inputs``."""

    output, _ = evaluate(graph, inputs, **kwargs)
    return output


__all__ = ["OutputCache", "compute", "evaluate"]
