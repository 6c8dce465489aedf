"""
File: concepts.py

Description: This module defines the minimal algebraic contracts that the
ADMM engine (admm.py) relies on, together with the value objects shared by
the optimizers of this package.

The engine never inspects the concrete representation of its variables.
Any type works as a variable (x, y) or residual/dual (lambda) element as
long as it supports:

    u + v,  u - v,  -u,  a * u   (a: float)

numpy arrays, Python floats and :class:`admm_utility.linear_algebra_utility.BlockVector`
all qualify.  Linear operators and inner products are plain callables that
receive the shared problem context ``*args`` unchanged on every call:

    A(v, *args) -> w
    inner_product(u, v, *args) -> float

Module structure:
    - VectorSpaceElement: Protocol for variable / residual types
    - LinearOperator, InnerProduct, AugLagMinX, AugLagMinY: collaborator signatures
    - OptimizerParams:    Settings shared by every optimizer
    - OptimizerResult:    Output shared by every optimizer
    - norm:               Norm induced by an inner product
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Protocol, Tuple, runtime_checkable

# Default iteration cap
DEFAULT_MAX_ITERATIONS: int = 1000
# Default wall-clock budget in seconds (unlimited)
DEFAULT_MAX_COMPUTATION_TIME: float = math.inf
# Default number of digits printed in the progress stream
DEFAULT_PRECISION: int = 3


@runtime_checkable
class VectorSpaceElement(Protocol):
    """Element of a real vector space, as required by the ADMM iteration."""

    def __add__(self, other: Any) -> Any:
        ...

    def __sub__(self, other: Any) -> Any:
        ...

    def __neg__(self) -> Any:
        ...

    def __mul__(self, scalar: float) -> Any:
        ...

    def __rmul__(self, scalar: float) -> Any:
        ...


# A(v, *args) -> w
LinearOperator = Callable[..., Any]
# <u, v>(*args) -> float
InnerProduct = Callable[..., float]
# argmin_x L_rho(x, y, lambda):  min_lx(x, y, lambda, rho, *args) -> x
AugLagMinX = Callable[..., Any]
# argmin_y L_rho(x, y, lambda):  min_ly(x, y, lambda, rho, *args) -> y
AugLagMinY = Callable[..., Any]


def norm(v: VectorSpaceElement, inner_product: InnerProduct, *args: Any) -> float:
    """
    Return ``sqrt(<v, v>)`` for the given inner product.

    Round-off may make ``<v, v>`` slightly negative for a (numerically)
    zero ``v``; it is clamped at 0.
    """
    return math.sqrt(max(inner_product(v, v, *args), 0.0))


@dataclass(frozen=True)
class OptimizerParams:
    """
    Settings common to all iterative optimizers.

    Attributes
    ----------
    max_iterations : int
        Maximum number of (outer) iterations.
    max_computation_time : float
        Wall-clock budget in seconds, checked at the top of each iteration.
    verbose : bool
        Emit a progress line per iteration through the module logger.
    precision : int
        Number of digits used when formatting the progress stream.
    log_iterates : bool
        Keep the full trajectory of iterates in the result.
    """
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    max_computation_time: float = DEFAULT_MAX_COMPUTATION_TIME
    verbose: bool = False
    precision: int = DEFAULT_PRECISION
    log_iterates: bool = False

    def __post_init__(self):
        assert self.max_iterations >= 0, "max_iterations must be non-negative"
        assert self.max_computation_time > 0.0, \
            "max_computation_time must be positive"
        assert self.precision >= 0, "precision must be non-negative"


@dataclass
class OptimizerResult:
    """
    Output common to all iterative optimizers.

    Attributes
    ----------
    x : Any
        Final estimate of the solution.
    elapsed_time : float
        Total computation time in seconds.
    time : list of float
        Elapsed time at the start of each executed iteration.
    iterates : list
        Sequence of iterates (only filled when ``log_iterates`` is set).
    """
    x: Any = None
    elapsed_time: float = 0.0
    time: List[float] = field(default_factory=list)
    iterates: List[Tuple[Any, ...]] = field(default_factory=list)
