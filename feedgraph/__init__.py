"""feedgraph public API."""

from .core import activations  # noqa: F401
from .core import types  # noqa: F401
from .core.errors import ConfigurationError, NetworkError, ShapeError, TopologyError
from .core.network import (
    Connection,
    ConnectionKind,
    Layer,
    LayerRole,
    NetworkGraph,
    RecurrentState,
    build_feedforward,
    flatten,
    unflatten,
)
from .data import BasicTrainingSet
from .training import (
    JacobianBuilder,
    OutputCache,
    backward,
    build_jacobian,
    compute_gradients,
    evaluate,
    numerical_jacobian,
    parameter_gradients,
)
from .training.pipelines import build_network, load_config, load_preset, presets, run_pipeline

__all__ = [
    "BasicTrainingSet",
    "ConfigurationError",
    "Connection",
    "ConnectionKind",
    "JacobianBuilder",
    "Layer",
    "LayerRole",
    "NetworkError",
    "NetworkGraph",
    "OutputCache",
    "RecurrentState",
    "ShapeError",
    "TopologyError",
    "activations",
    "backward",
    "build_feedforward",
    "build_jacobian",
    "build_network",
    "compute_gradients",
    "evaluate",
    "flatten",
    "load_config",
    "load_preset",
    "numerical_jacobian",
    "parameter_gradients",
    "presets",
    "run_pipeline",
    "types",
    "unflatten",
]
