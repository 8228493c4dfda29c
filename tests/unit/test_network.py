import numpy as np
import pytest

from feedgraph.core.activations import Identity, Linear, Sigmoid
from feedgraph.core.errors import ShapeError, TopologyError
from feedgraph.core.network import (
    Connection,
    ConnectionKind,
    Layer,
    LayerRole,
    NetworkGraph,
    build_feedforward,
    flatten,
    unflatten,
)


def _two_layer(kind=ConnectionKind.WEIGHTED, sizes=(2, 3)):
    graph = NetworkGraph()
    inp = graph.add_layer(Layer("in", sizes[0], Identity(), LayerRole.INPUT))
    out = graph.add_layer(Layer("out", sizes[1], Linear(), LayerRole.OUTPUT))
    graph.connect(inp, out, kind)
    return graph


def test_one_to_one_mismatch_raises_before_construction():
    src = Layer("a", 3, role=LayerRole.INPUT)
    dst = Layer("b", 4, role=LayerRole.OUTPUT)
    with pytest.raises(TopologyError):
        Connection(src, dst, ConnectionKind.ONE_TO_ONE)


def test_failed_connect_leaves_graph_unmodified():
    graph = NetworkGraph()
    inp = graph.add_layer(Layer("in", 3, role=LayerRole.INPUT))
    out = graph.add_layer(Layer("out", 4, role=LayerRole.OUTPUT))
    with pytest.raises(TopologyError):
        graph.connect(inp, out, ConnectionKind.ONE_TO_ONE)
    assert graph.connections == []
    assert graph.incoming(out) == []
    assert graph.outgoing(inp) == []


def test_one_to_one_owns_no_matrix():
    graph = _two_layer(ConnectionKind.ONE_TO_ONE, sizes=(3, 3))
    conn = graph.connections[0]
    assert conn.weights is None
    assert conn.matrix_size == 0
    assert not conn.is_teachable


def test_single_input_and_output_roles():
    graph = NetworkGraph()
    graph.add_layer(Layer("in", 2, role=LayerRole.INPUT))
    with pytest.raises(TopologyError):
        graph.add_layer(Layer("in2", 2, role=LayerRole.INPUT))
    graph.add_layer(Layer("out", 1, role=LayerRole.OUTPUT))
    with pytest.raises(TopologyError):
        graph.add_layer(Layer("out2", 1, role="output"))


def test_input_layer_rejects_bias_and_defaults_to_identity():
    with pytest.raises(TopologyError):
        Layer("in", 2, role=LayerRole.INPUT, has_bias=True)
    layer = Layer("in", 2, role=LayerRole.INPUT)
    assert not layer.has_bias
    assert layer.bias is None
    assert isinstance(layer.activation, Identity)
    hidden = Layer("h", 2)
    assert hidden.has_bias
    assert isinstance(hidden.activation, Sigmoid)
    assert np.array_equal(hidden.bias, np.zeros(2))


def test_non_context_cycles_are_rejected():
    graph = NetworkGraph()
    inp = graph.add_layer(Layer("in", 2, role=LayerRole.INPUT))
    h1 = graph.add_layer(Layer("h1", 2))
    h2 = graph.add_layer(Layer("h2", 2))
    graph.connect(inp, h1)
    graph.connect(h1, h2)
    with pytest.raises(TopologyError):
        graph.connect(h2, h1)
    with pytest.raises(TopologyError):
        graph.connect(h1, h1, ConnectionKind.ONE_TO_ONE)
    assert len(graph.connections) == 2
    graph.connect(h2, h1, ConnectionKind.CONTEXT)
    graph.connect(h1, h1, "context")
    assert graph.has_context


def test_nothing_connects_into_the_input_layer():
    graph = NetworkGraph()
    inp = graph.add_layer(Layer("in", 2, role=LayerRole.INPUT))
    out = graph.add_layer(Layer("out", 2, role=LayerRole.OUTPUT))
    with pytest.raises(TopologyError):
        graph.connect(out, inp, ConnectionKind.CONTEXT)


def test_connect_requires_member_layers():
    graph = NetworkGraph()
    inp = graph.add_layer(Layer("in", 2, role=LayerRole.INPUT))
    stray = Layer("stray", 2, role=LayerRole.OUTPUT)
    with pytest.raises(TopologyError):
        graph.connect(inp, stray)


def test_validate_requires_incoming_connections():
    graph = NetworkGraph()
    graph.add_layer(Layer("in", 2, role=LayerRole.INPUT))
    graph.add_layer(Layer("out", 1, role=LayerRole.OUTPUT))
    with pytest.raises(TopologyError):
        graph.validate()


def test_topological_order_follows_non_context_edges():
    graph = NetworkGraph()
    out = graph.add_layer(Layer("out", 1, role=LayerRole.OUTPUT))
    h = graph.add_layer(Layer("h", 2))
    inp = graph.add_layer(Layer("in", 2, role=LayerRole.INPUT))
    graph.connect(inp, h)
    graph.connect(h, out)
    graph.connect(out, h, ConnectionKind.CONTEXT)
    assert [layer.name for layer in graph.topological_order()] == ["in", "h", "out"]


def test_parameter_count_weighted_plus_bias():
    graph = _two_layer(sizes=(2, 3))
    assert graph.parameter_count() == 9
    assert flatten(graph).shape == (9,)


def test_parameter_count_for_feedforward_builder():
    graph = build_feedforward([2, 3, 1])
    # 2x3 + 3x1 weights, 3 + 1 biases
    assert graph.parameter_count() == 13
    assert isinstance(graph.input_layer.activation, Identity)


def test_flatten_order_is_connections_then_biases():
    graph = build_feedforward([2, 2, 1])
    first, second = graph.connections
    first.weights[...] = [[1.0, 2.0], [3.0, 4.0]]
    second.weights[...] = [[5.0], [6.0]]
    graph.layer("hidden0").bias[...] = [7.0, 8.0]
    graph.layer("output").bias[...] = [9.0]
    assert np.array_equal(graph.flatten(), np.arange(1.0, 10.0))


def test_flatten_unflatten_round_trip_is_bit_identical():
    graph = build_feedforward([3, 4, 2])
    rng = np.random.default_rng(3)
    unflatten(graph, rng.standard_normal(graph.parameter_count()))
    before = [c.weights.copy() for c in graph.connections]
    biases = [layer.bias.copy() for layer in graph.layers if layer.bias is not None]
    unflatten(graph, flatten(graph))
    for conn, expected in zip(graph.connections, before):
        assert np.array_equal(conn.weights, expected)
    for layer, expected in zip([layer for layer in graph.layers if layer.bias is not None], biases):
        assert np.array_equal(layer.bias, expected)


def test_unflatten_rejects_wrong_length():
    graph = _two_layer()
    with pytest.raises(ShapeError):
        graph.unflatten(np.zeros(8))


def test_parameter_slices_cover_the_vector():
    graph = build_feedforward([2, 3, 1])
    spans = graph.parameter_slices()
    assert spans[graph.connections[0]] == slice(0, 6)
    assert spans[graph.connections[1]] == slice(6, 9)
    assert spans[graph.layer("hidden0")] == slice(9, 12)
    assert spans[graph.output_layer] == slice(12, 13)


def test_bias_array_decides_parameter_layout_after_construction():
    graph = build_feedforward([3, 2, 1])
    graph.layer("hidden0").has_bias = False
    flat = np.arange(float(graph.parameter_count()))
    assert flat.shape[0] == graph.flatten().shape[0] == 11
    graph.unflatten(flat)
    assert np.array_equal(graph.flatten(), flat)
