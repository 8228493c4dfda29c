"""Layers, connections and the network graph that owns them."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

import numpy as np

from .activations import ActivationFunction, Identity, Sigmoid
from .errors import ShapeError, TopologyError
from .types import Array


class LayerRole(str, enum.Enum):
    INPUT = "input"
    HIDDEN = "hidden"
    OUTPUT = "output"


class ConnectionKind(str, enum.Enum):
    WEIGHTED = "weighted"
    ONE_TO_ONE = "one_to_one"
    CONTEXT = "context"


@dataclass(eq=False)
class Layer:
    """A vector of neurons sharing one activation function and an optional bias.

    ``has_bias`` is read once at construction; afterwards ``bias`` alone decides
    whether the layer owns bias parameters.
    """

    name: str
    neuron_count: int
    activation: ActivationFunction | None = None
    role: LayerRole = LayerRole.HIDDEN
    has_bias: bool | None = None
    bias: Array | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        if self.neuron_count < 1:
            raise TopologyError(f"Layer {self.name!r} must have at least one neuron")
        self.role = LayerRole(self.role)
        if self.activation is None:
            self.activation = Identity() if self.role is LayerRole.INPUT else Sigmoid()
        if self.has_bias is None:
            self.has_bias = self.role is not LayerRole.INPUT
        if self.has_bias and self.role is LayerRole.INPUT:
            raise TopologyError(f"Input layer {self.name!r} cannot carry a bias")
        if self.has_bias:
            self.bias = np.zeros(self.neuron_count, dtype=np.float64)


@dataclass(eq=False)
class Connection:
    """Directed edge between two layers.

    ``WEIGHTED`` and ``CONTEXT`` connections own a ``source x destination``
    matrix. ``ONE_TO_ONE`` connections own nothing and copy the source vector
    across, which requires matching neuron counts.
    """

    source: Layer
    destination: Layer
    kind: ConnectionKind = ConnectionKind.WEIGHTED
    weights: Array | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self.kind = ConnectionKind(self.kind)
        if self.kind is ConnectionKind.ONE_TO_ONE:
            if self.source.neuron_count != self.destination.neuron_count:
                raise TopologyError(
                    "From and to layers must have the same number of neurons: "
                    f"{self.source.name!r} has {self.source.neuron_count}, "
                    f"{self.destination.name!r} has {self.destination.neuron_count}"
                )
        else:
            self.weights = np.zeros(
                (self.source.neuron_count, self.destination.neuron_count),
                dtype=np.float64,
            )

    @property
    def matrix_size(self) -> int:
        return 0 if self.weights is None else int(self.weights.size)

    @property
    def is_teachable(self) -> bool:
        return self.weights is not None

    def __repr__(self) -> str:
        return (
            f"Connection({self.source.name!r} -> {self.destination.name!r}, "
            f"kind={self.kind.value})"
        )


class RecurrentState:
    """Previous-cycle source outputs for Context connections.

    A connection that has never fired reads zeros.
    """

    def __init__(self) -> None:
        self._previous: Dict[Connection, Array] = {}

    def previous(self, connection: Connection) -> Array:
        stored = self._previous.get(connection)
        if stored is None:
            return np.zeros(connection.source.neuron_count, dtype=np.float64)
        return stored.copy()

    def update(self, connection: Connection, values: Array) -> None:
        self._previous[connection] = np.array(values, dtype=np.float64, copy=True)

    def reset(self) -> None:
        self._previous.clear()

    def copy(self) -> "RecurrentState":
        clone = RecurrentState()
        clone._previous = {conn: values.copy() for conn, values in self._previous.items()}
        return clone

    def __len__(self) -> int:
        return len(self._previous)


class NetworkGraph:
    """Ordered collection of layers and the connections between them."""

    def __init__(self) -> None:
        self.layers: List[Layer] = []
        self.connections: List[Connection] = []
        self.state = RecurrentState()
        self._incoming: Dict[Layer, List[Connection]] = {}
        self._outgoing: Dict[Layer, List[Connection]] = {}

    # ------------------------------------------------------------------
    # Construction

    def add_layer(self, layer: Layer) -> Layer:
        if layer in self._incoming:
            raise TopologyError(f"Layer {layer.name!r} is already part of the graph")
        if layer.role is not LayerRole.HIDDEN:
            for existing in self.layers:
                if existing.role is layer.role:
                    raise TopologyError(
                        f"Graph already has an {layer.role.value} layer ({existing.name!r})"
                    )
        self.layers.append(layer)
        self._incoming[layer] = []
        self._outgoing[layer] = []
        return layer

    def connect(
        self,
        source: Layer,
        destination: Layer,
        kind: ConnectionKind | str = ConnectionKind.WEIGHTED,
    ) -> Connection:
        """Create and register a connection; the graph is untouched on failure."""

        for layer in (source, destination):
            if layer not in self._incoming:
                raise TopologyError(f"Layer {layer.name!r} is not part of the graph")
        if destination.role is LayerRole.INPUT:
            raise TopologyError(f"Input layer {destination.name!r} cannot receive connections")
        connection = Connection(source, destination, ConnectionKind(kind))
        if connection.kind is not ConnectionKind.CONTEXT and self._reaches(destination, source):
            raise TopologyError(
                f"Connecting {source.name!r} -> {destination.name!r} creates a cycle; "
                "feedback must use a context connection"
            )
        self.connections.append(connection)
        self._incoming[destination].append(connection)
        self._outgoing[source].append(connection)
        return connection

    def _reaches(self, start: Layer, target: Layer) -> bool:
        stack = [start]
        seen = set()
        while stack:
            layer = stack.pop()
            if layer is target:
                return True
            if layer in seen:
                continue
            seen.add(layer)
            for conn in self._outgoing.get(layer, []):
                if conn.kind is not ConnectionKind.CONTEXT:
                    stack.append(conn.destination)
        return False

    # ------------------------------------------------------------------
    # Structure queries

    def _layer_with_role(self, role: LayerRole) -> Layer:
        for layer in self.layers:
            if layer.role is role:
                return layer
        raise TopologyError(f"Graph has no {role.value} layer")

    @property
    def input_layer(self) -> Layer:
        return self._layer_with_role(LayerRole.INPUT)

    @property
    def output_layer(self) -> Layer:
        return self._layer_with_role(LayerRole.OUTPUT)

    def layer(self, name: str) -> Layer:
        for layer in self.layers:
            if layer.name == name:
                return layer
        raise KeyError(f"Unknown layer: {name}")

    def incoming(self, layer: Layer) -> List[Connection]:
        return list(self._incoming[layer])

    def outgoing(self, layer: Layer) -> List[Connection]:
        return list(self._outgoing[layer])

    @property
    def has_context(self) -> bool:
        return any(conn.kind is ConnectionKind.CONTEXT for conn in self.connections)

    def validate(self) -> None:
        self._layer_with_role(LayerRole.INPUT)
        self._layer_with_role(LayerRole.OUTPUT)
        for layer in self.layers:
            if layer.role is not LayerRole.INPUT and not self._incoming[layer]:
                raise TopologyError(f"Layer {layer.name!r} has no incoming connections")

    def topological_order(self) -> List[Layer]:
        """Layers ordered so every non-context source precedes its destination.

        Ties keep declaration order.
        """

        pending = {
            layer: sum(1 for c in self._incoming[layer] if c.kind is not ConnectionKind.CONTEXT)
            for layer in self.layers
        }
        order: List[Layer] = []
        ready = [layer for layer in self.layers if pending[layer] == 0]
        while ready:
            layer = ready.pop(0)
            order.append(layer)
            for conn in self._outgoing[layer]:
                if conn.kind is ConnectionKind.CONTEXT:
                    continue
                pending[conn.destination] -= 1
                if pending[conn.destination] == 0:
                    ready.append(conn.destination)
            ready.sort(key=self.layers.index)
        if len(order) != len(self.layers):  # pragma: no cover - guarded by connect()
            raise TopologyError("Non-context connections form a cycle")
        return order

    # ------------------------------------------------------------------
    # Parameter vector

    def parameter_count(self) -> int:
        weights = sum(conn.matrix_size for conn in self.connections)
        biases = sum(layer.neuron_count for layer in self.layers if layer.bias is not None)
        return int(weights + biases)

    def flatten(self) -> Array:
        """Return every weight (row-major, connection order) then every bias."""

        parts: List[Array] = [
            conn.weights.ravel() for conn in self.connections if conn.weights is not None
        ]
        parts.extend(layer.bias for layer in self.layers if layer.bias is not None)
        if not parts:
            return np.zeros(0, dtype=np.float64)
        return np.concatenate(parts).astype(np.float64, copy=True)

    def unflatten(self, flat: Sequence[float] | Array) -> None:
        values = np.asarray(flat, dtype=np.float64).reshape(-1)
        expected = self.parameter_count()
        if values.shape[0] != expected:
            raise ShapeError(
                f"Parameter vector has {values.shape[0]} entries, network expects {expected}"
            )
        offset = 0
        for conn in self.connections:
            if conn.weights is None:
                continue
            size = conn.weights.size
            conn.weights[...] = values[offset : offset + size].reshape(conn.weights.shape)
            offset += size
        for layer in self.layers:
            if layer.bias is None:
                continue
            size = layer.neuron_count
            layer.bias[...] = values[offset : offset + size]
            offset += size

    def parameter_slices(self) -> Dict[object, slice]:
        """Map each connection and biased layer to its span in the flat vector."""

        spans: Dict[object, slice] = {}
        offset = 0
        for conn in self.connections:
            if conn.weights is not None:
                spans[conn] = slice(offset, offset + conn.weights.size)
                offset += conn.weights.size
        for layer in self.layers:
            if layer.bias is not None:
                spans[layer] = slice(offset, offset + layer.neuron_count)
                offset += layer.neuron_count
        return spans


def flatten(graph: NetworkGraph) -> Array:
    return graph.flatten()


def unflatten(graph: NetworkGraph, flat: Sequence[float] | Array) -> None:
    graph.unflatten(flat)


def build_feedforward(
    layer_sizes: Iterable[int],
    activation: ActivationFunction | None = None,
    output_activation: ActivationFunction | None = None,
) -> NetworkGraph:
    """Convenience builder for a fully connected layered network."""

    sizes = [int(size) for size in layer_sizes]
    if len(sizes) < 2:
        raise TopologyError("A network needs at least an input and an output layer")
    hidden_act = activation or Sigmoid()
    graph = NetworkGraph()
    previous = graph.add_layer(Layer("input", sizes[0], Identity(), LayerRole.INPUT))
    for idx, size in enumerate(sizes[1:-1]):
        layer = graph.add_layer(Layer(f"hidden{idx}", size, hidden_act))
        graph.connect(previous, layer)
        previous = layer
    output = graph.add_layer(
        Layer("output", sizes[-1], output_activation or hidden_act, LayerRole.OUTPUT)
    )
    graph.connect(previous, output)
    return graph


__all__ = [
    "Connection",
    "ConnectionKind",
    "Layer",
    "LayerRole",
    "NetworkGraph",
    "RecurrentState",
    "build_feedforward",
    "flatten",
    "unflatten",
]
