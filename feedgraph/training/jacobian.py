"""Per-sample Jacobians for second order (Levenberg-Marquardt style) trainers.

Each row holds the derivative of one network output with respect to every
flattened parameter, in the order produced by ``NetworkGraph.flatten``. The
derivatives come from the same reverse-mode pass used for backpropagation,
seeded with a unit vector on the output layer, so any depth and any mix of
connection kinds is supported.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

import numpy as np

from ..core.backend import DEFAULT_BACKEND, ComputeBackend
from ..core.errors import ShapeError
from ..core.network import NetworkGraph, RecurrentState
from ..core.types import Array, JacobianResult
from ..data.dataset import TrainingSet
from ..reporting.metrics import emit
from .forward import OutputCache, evaluate
from .propagation import _propagate, build_levels, parameter_gradients


class JacobianBuilder:
    """Compute the Jacobian and residuals of ``graph`` over ``training``.

    With ``workers > 1`` samples are processed on a thread pool; each task owns
    its output cache and propagation levels and writes only its own rows.
    Graphs with context connections are always processed in sample order so
    the recurrent state advances exactly as in sequential evaluation.
    """

    def __init__(
        self,
        graph: NetworkGraph,
        training: TrainingSet,
        *,
        workers: int = 1,
        backend: ComputeBackend | None = None,
        callbacks: Sequence[object] = (),
    ) -> None:
        output_size = graph.output_layer.neuron_count
        input_size = graph.input_layer.neuron_count
        if training.count and training.ideal_size != output_size:
            raise ShapeError(
                f"Training ideals have {training.ideal_size} values, "
                f"output layer has {output_size}"
            )
        if training.count and training.input_size != input_size:
            raise ShapeError(
                f"Training inputs have {training.input_size} values, "
                f"input layer has {input_size}"
            )
        self.graph = graph
        self.training = training
        self.workers = max(1, int(workers))
        self.backend = backend or DEFAULT_BACKEND
        self.callbacks = list(callbacks)
        self.parameter_size = graph.parameter_count()
        self.output_size = output_size
        rows = training.count * output_size
        self.jacobian = np.zeros((rows, self.parameter_size), dtype=np.float64)
        self.residuals = np.zeros(rows, dtype=np.float64)
        self.error = 0.0
        self._iteration = 0

    def calculate(self) -> JacobianResult:
        # Fails fast on non-differentiable activations before any row is touched.
        build_levels(self.graph)
        count = self.training.count
        if self.workers > 1 and not self.graph.has_context and count > 1:
            state = RecurrentState()
            with ThreadPoolExecutor(max_workers=min(self.workers, count)) as executor:
                futures = {
                    executor.submit(self._fill_rows, index, state): index
                    for index in range(count)
                }
                for future in as_completed(futures):
                    future.result()
        else:
            for index in range(count):
                self._fill_rows(index, self.graph.state)

        self.error = float(np.sum(self.residuals * self.residuals) / 2.0)
        emit(
            self.callbacks,
            self._iteration,
            {
                "error": self.error,
                "rows": float(self.jacobian.shape[0]),
                "parameters": float(self.parameter_size),
            },
        )
        self._iteration += 1
        return JacobianResult(
            jacobian=self.jacobian.copy(),
            residuals=self.residuals.copy(),
            error=self.error,
        )

    def _fill_rows(self, index: int, state: RecurrentState) -> None:
        pair = self.training.get_record(index)
        output, cache = evaluate(
            self.graph, pair.input, state=state, cache=OutputCache(), backend=self.backend
        )
        ideal = np.asarray(pair.ideal, dtype=np.float64).reshape(-1)
        levels = build_levels(self.graph)
        base = index * self.output_size
        for k in range(self.output_size):
            seed = np.zeros(self.output_size, dtype=np.float64)
            seed[k] = 1.0
            _propagate(levels, cache, seed, self.backend)
            self.jacobian[base + k] = parameter_gradients(self.graph, cache, levels)
            self.residuals[base + k] = ideal[k] - output[k]


def build_jacobian(
    graph: NetworkGraph,
    training: TrainingSet,
    *,
    workers: int = 1,
    backend: ComputeBackend | None = None,
    callbacks: Sequence[object] = (),
) -> JacobianResult:
    """One-shot form of :class:`JacobianBuilder`."""

    builder = JacobianBuilder(
        graph, training, workers=workers, backend=backend, callbacks=callbacks
    )
    return builder.calculate()


def numerical_jacobian(
    graph: NetworkGraph,
    training: TrainingSet,
    *,
    epsilon: float = 1e-6,
    backend: ComputeBackend | None = None,
) -> JacobianResult:
    """Central finite-difference Jacobian with the same layout as :func:`build_jacobian`.

    Every perturbed evaluation starts from a copy of the recurrent state the
    sample would see, and the graph's parameters are restored afterwards.
    """

    backend = backend or DEFAULT_BACKEND
    output_size = graph.output_layer.neuron_count
    original = graph.flatten()
    params = original.size
    rows = training.count * output_size
    jacobian = np.zeros((rows, params), dtype=np.float64)
    residuals = np.zeros(rows, dtype=np.float64)
    state = graph.state
    try:
        for index in range(training.count):
            pair = training.get_record(index)
            snapshot = state.copy()
            base = index * output_size
            for p in range(params):
                shifted = original.copy()
                shifted[p] += epsilon
                graph.unflatten(shifted)
                plus, _ = evaluate(graph, pair.input, state=snapshot.copy(), backend=backend)
                shifted[p] -= 2.0 * epsilon
                graph.unflatten(shifted)
                minus, _ = evaluate(graph, pair.input, state=snapshot.copy(), backend=backend)
                jacobian[base : base + output_size, p] = (plus - minus) / (2.0 * epsilon)
            graph.unflatten(original)
            output, _ = evaluate(graph, pair.input, state=state, backend=backend)
            residuals[base : base + output_size] = np.asarray(pair.ideal, dtype=np.float64) - output
    finally:
        graph.unflatten(original)
    error = float(np.sum(residuals * residuals) / 2.0)
    return JacobianResult(jacobian=jacobian, residuals=residuals, error=error)


__all__ = ["JacobianBuilder", "build_jacobian", "numerical_jacobian"]
