import numpy as np
import pytest

from feedgraph.core.activations import Identity, Linear, Sigmoid, Step, Tanh
from feedgraph.core.errors import ConfigurationError, ShapeError
from feedgraph.core.network import (
    ConnectionKind,
    Layer,
    LayerRole,
    NetworkGraph,
    build_feedforward,
)
from feedgraph.core.randomize import GaussianRandomizer, RangeRandomizer
from feedgraph.data.dataset import BasicTrainingSet
from feedgraph.reporting.metrics import MemorySink
from feedgraph.training.jacobian import JacobianBuilder, build_jacobian, numerical_jacobian
from feedgraph.training.propagation import compute_gradients


def _random_set(rng, count, n_in, n_out):
    return BasicTrainingSet(
        rng.uniform(-1.0, 1.0, size=(count, n_in)),
        rng.uniform(-1.0, 1.0, size=(count, n_out)),
    )


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_single_hidden_layer_matches_central_differences(seed):
    rng = np.random.default_rng(seed)
    graph = build_feedforward([3, 4, 1], activation=Sigmoid(), output_activation=Tanh())
    RangeRandomizer(-1.0, 1.0, seed=seed).randomize(graph)
    training = _random_set(rng, 5, 3, 1)

    analytic = build_jacobian(graph, training)
    numeric = numerical_jacobian(graph, training)

    assert analytic.jacobian.shape == (5, graph.parameter_count())
    assert np.allclose(analytic.jacobian, numeric.jacobian, atol=1e-5)
    assert np.allclose(analytic.residuals, numeric.residuals)


def test_deeper_mixed_topology_matches_central_differences():
    graph = NetworkGraph()
    inp = graph.add_layer(Layer("in", 2, Identity(), LayerRole.INPUT))
    h1 = graph.add_layer(Layer("h1", 3, Tanh()))
    h2 = graph.add_layer(Layer("h2", 3, Sigmoid(), has_bias=False))
    h3 = graph.add_layer(Layer("h3", 2, Tanh()))
    out = graph.add_layer(Layer("out", 2, Linear(), LayerRole.OUTPUT))
    graph.connect(inp, h1)
    graph.connect(h1, h2, ConnectionKind.ONE_TO_ONE)
    graph.connect(h2, h3)
    graph.connect(h1, h3)
    graph.connect(h3, out)
    graph.connect(inp, out)
    GaussianRandomizer(std=0.6, seed=9).randomize(graph)
    training = _random_set(np.random.default_rng(9), 4, 2, 2)

    analytic = build_jacobian(graph, training)
    numeric = numerical_jacobian(graph, training)

    assert analytic.jacobian.shape == (8, graph.parameter_count())
    assert np.allclose(analytic.jacobian, numeric.jacobian, atol=1e-5)


def test_recurrent_graph_matches_central_differences_sample_by_sample():
    graph = NetworkGraph()
    inp = graph.add_layer(Layer("in", 1, Identity(), LayerRole.INPUT))
    hidden = graph.add_layer(Layer("h", 3, Tanh()))
    out = graph.add_layer(Layer("out", 1, Linear(), LayerRole.OUTPUT))
    graph.connect(inp, hidden)
    graph.connect(hidden, hidden, ConnectionKind.CONTEXT)
    graph.connect(hidden, out)
    GaussianRandomizer(std=0.5, seed=3).randomize(graph)
    training = BasicTrainingSet([[0.0], [0.5], [1.0], [0.5]], [[0.5], [1.0], [0.5], [0.0]])

    analytic = build_jacobian(graph, training, workers=4)
    graph.state.reset()
    numeric = numerical_jacobian(graph, training)

    assert np.allclose(analytic.jacobian, numeric.jacobian, atol=1e-5)
    assert np.allclose(analytic.residuals, numeric.residuals)


def test_residuals_and_error():
    graph = NetworkGraph()
    inp = graph.add_layer(Layer("in", 2, Identity(), LayerRole.INPUT))
    out = graph.add_layer(Layer("out", 1, Linear(), LayerRole.OUTPUT))
    graph.connect(inp, out).weights[...] = [[1.0], [1.0]]
    training = BasicTrainingSet([[1.0, 2.0], [0.0, 1.0]], [[4.0], [0.0]])
    result = build_jacobian(graph, training)
    assert np.array_equal(result.residuals, [1.0, -1.0])
    assert result.error == 1.0
    # d(out)/dw = input, d(out)/db = 1 for a linear unit
    assert np.array_equal(result.jacobian, [[1.0, 2.0, 1.0], [0.0, 1.0, 1.0]])


def test_thread_pool_rows_equal_sequential_rows():
    graph = build_feedforward([4, 6, 3, 1], activation=Tanh())
    GaussianRandomizer(seed=12).randomize(graph)
    training = _random_set(np.random.default_rng(12), 16, 4, 1)
    sequential = build_jacobian(graph, training)
    threaded = build_jacobian(graph, training, workers=4)
    assert np.array_equal(sequential.jacobian, threaded.jacobian)
    assert np.array_equal(sequential.residuals, threaded.residuals)
    assert sequential.error == threaded.error


def test_builder_keeps_state_and_reports_to_sinks():
    graph = build_feedforward([2, 3, 1])
    RangeRandomizer(seed=1).randomize(graph)
    training = _random_set(np.random.default_rng(1), 3, 2, 1)
    sink = MemorySink()
    seen = []
    builder = JacobianBuilder(graph, training, callbacks=[sink, lambda step, m: seen.append(step)])
    result = builder.calculate()
    builder.calculate()
    assert np.array_equal(builder.jacobian, result.jacobian)
    assert builder.error == result.error
    assert [step for step, _ in sink.history] == [0, 1]
    assert sink.last["error"] == result.error
    assert sink.last["parameters"] == graph.parameter_count()
    assert seen == [0, 1]


def test_training_shape_must_match_network():
    graph = build_feedforward([2, 3, 1])
    with pytest.raises(ShapeError):
        JacobianBuilder(graph, BasicTrainingSet([[0.0, 1.0]], [[0.0, 1.0]]))
    with pytest.raises(ShapeError):
        JacobianBuilder(graph, BasicTrainingSet([[0.0, 1.0, 2.0]], [[0.0]]))


def test_non_differentiable_network_fails_before_any_row():
    graph = build_feedforward([2, 2, 1], output_activation=Step())
    builder = JacobianBuilder(graph, BasicTrainingSet([[0.0, 1.0]], [[1.0]]))
    with pytest.raises(ConfigurationError):
        builder.calculate()
    assert not builder.jacobian.any()
    assert len(graph.state) == 0


def test_numerical_jacobian_restores_parameters():
    graph = build_feedforward([2, 2, 1])
    GaussianRandomizer(seed=8).randomize(graph)
    before = graph.flatten()
    numerical_jacobian(graph, BasicTrainingSet([[0.5, 0.5]], [[1.0]]))
    assert np.array_equal(graph.flatten(), before)


def test_empty_training_set_gives_empty_jacobian_and_zero_gradients():
    graph = build_feedforward([2, 3, 1])
    RangeRandomizer(-1.0, 1.0, seed=5).randomize(graph)
    training = BasicTrainingSet([], [])

    result = build_jacobian(graph, training)
    gradients = compute_gradients(graph, training)

    assert result.jacobian.shape == (0, graph.parameter_count())
    assert result.residuals.shape == (0,)
    assert result.error == 0.0
    assert gradients.samples == 0
    assert np.array_equal(gradients.gradients, np.zeros(graph.parameter_count()))


def test_single_feature_column_builds_one_row_per_sample():
    graph = build_feedforward([1, 2, 1], output_activation=Identity())
    RangeRandomizer(-1.0, 1.0, seed=6).randomize(graph)
    training = BasicTrainingSet([0.1, 0.2, 0.3], [1.0, 0.0, 1.0])

    analytic = build_jacobian(graph, training)
    numeric = numerical_jacobian(graph, training)

    assert analytic.jacobian.shape == (3, graph.parameter_count())
    assert np.allclose(analytic.jacobian, numeric.jacobian, atol=1e-5)
