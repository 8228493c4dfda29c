"""Forward evaluation, backpropagation and Jacobian construction."""

from .forward import OutputCache, compute, evaluate
from .jacobian import JacobianBuilder, build_jacobian, numerical_jacobian
from .propagation import (
    PropagationLevel,
    backward,
    build_levels,
    compute_gradients,
    parameter_gradients,
)

__all__ = [
    "JacobianBuilder",
    "OutputCache",
    "PropagationLevel",
    "backward",
    "build_jacobian",
    "build_levels",
    "compute",
    "compute_gradients",
    "evaluate",
    "numerical_jacobian",
    "parameter_gradients",
]
