"""
File: admm.py

Description: This module implements the Alternating Direction Method of
Multipliers (ADMM) for convex problems of the form

    min  f(x) + g(y)
    x,y
    s.t. Ax + By = c

following Section 3.1 of "Distributed Optimization and Statistical Learning
via the Alternating Direction Method of Multipliers" (Boyd, Parikh, Chu,
Peleato & Eckstein).  The minimizers of the augmented Lagrangian

    L_rho(x, y, lambda) = f(x) + g(y) + <lambda, Ax + By - c>
                          + (rho / 2) |Ax + By - c|^2

with respect to x and y, the linear operators A, B, A^T and the inner
products are supplied by the caller; this module only runs the outer loop.
Variables may be of any type satisfying the algebra described in
concepts.py (numpy arrays, scalars, block vectors, ...).

Algorithm overview (iteration i):
1. Stop with TIME_LIMIT if the elapsed time exceeds the budget
2. x <- argmin_x L_rho(x, y, lambda),  y <- argmin_y L_rho(x, y, lambda)
3. r <- Ax + By - c                                 (primal residual)
4. lambda_hat <- lambda + rho (Ax + B y_prev - c)   (spectral mode only)
5. lambda <- lambda + rho r                         (dual ascent)
6. s <- rho A^T B (y - y_prev)                      (dual residual)
7. eps_pri  <- eps_abs_pri  + eps_rel max(|Ax|, |By|, |c|)
   eps_dual <- eps_abs_dual + eps_rel |A^T lambda|
8. Stop with CONVERGED if |r| < eps_pri and |s| < eps_dual
9. Every `penalty_adaptation_period` iterations inside the first
   `penalty_adaptation_window` iterations, adapt rho (penalty_adaptation.py)
10. y_prev <- y

The dual variable is warm-started at lambda = rho (A x0 + B y0 - c).

Module structure:
    - PenaltyAdaptation:  Strategy used to adapt rho
    - ADMMStatus:         Termination reason
    - ADMMParams:         Run configuration
    - ADMMResult:         Final iterate and per-iteration history
    - SpectralCheckpoint: Iterates cached at the last spectral update
    - ADMM_State:         Working set carried across iterations
    - ADMM_Optimizer:     Main ADMM solver
    - admm:               Functional entry point

References:
    - S. Boyd et al., Foundations and Trends in Machine Learning 3(1), 2011
    - Z. Xu, M.A.T. Figueiredo, T. Goldstein, AISTATS 2017
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, List, Optional

from python_admm.concepts import (
    AugLagMinX,
    AugLagMinY,
    InnerProduct,
    LinearOperator,
    OptimizerParams,
    OptimizerResult,
    VectorSpaceElement,
    norm,
)
from python_admm.penalty_adaptation import (
    residual_balance_penalty_parameter_update,
    spectral_penalty_parameter_update,
)

logger = logging.getLogger(__name__)

# Initial penalty parameter rho
DEFAULT_RHO: float = 1.0
# Number of iterations between two penalty updates
DEFAULT_PENALTY_ADAPTATION_PERIOD: int = 2
# Iteration after which rho is frozen
DEFAULT_PENALTY_ADAPTATION_WINDOW: int = 1000
# Admissible primal/dual residual ratio (residual balancing)
DEFAULT_RESIDUAL_BALANCE_MU: float = 10.0
# Multiplicative change of rho (residual balancing)
DEFAULT_RESIDUAL_BALANCE_TAU: float = 2.0
# Minimum correlation for a spectral estimate to be accepted
DEFAULT_SPECTRAL_PENALTY_MINIMUM_CORRELATION: float = 0.2
# Absolute primal stopping tolerance
DEFAULT_EPS_ABS_PRI: float = 1e-2
# Absolute dual stopping tolerance
DEFAULT_EPS_ABS_DUAL: float = 1e-2
# Relative stopping tolerance
DEFAULT_EPS_REL: float = 1e-3


class PenaltyAdaptation(Enum):
    """Strategy used to adapt the augmented Lagrangian penalty parameter."""
    # Vanilla ADMM
    NONE = auto()
    # Primal/dual residual balancing (He, Yang & Wang)
    RESIDUAL_BALANCE = auto()
    # Barzilai-Borwein spectral selection (Xu, Figueiredo & Goldstein)
    SPECTRAL = auto()


class ADMMStatus(Enum):
    """Termination reason of the ADMM solver."""
    CONVERGED = auto()
    ITERATION_LIMIT = auto()
    TIME_LIMIT = auto()


# ============================================================================
# Parameters and result
# ============================================================================
@dataclass(frozen=True)
class ADMMParams(OptimizerParams):
    """
    Configuration of one ADMM run.

    Attributes
    ----------
    rho : float
        Initial penalty parameter (> 0).
    penalty_adaptation_mode : PenaltyAdaptation
        Strategy used to adapt rho.
    penalty_adaptation_period : int
        rho is updated on iterations i with ``i % period == 0``.
    penalty_adaptation_window : int
        rho is never updated on iterations ``i >= window``, so that the
        penalty is eventually constant and convergence is guaranteed.
    residual_balance_mu : float
        Admissible ratio between primal and dual residuals (> 1).
    residual_balance_tau : float
        Factor by which rho is increased or decreased (> 1).
    spectral_penalty_minimum_correlation : float
        Minimum quality, in (0, 1), of a spectral curvature estimate.
    eps_abs_pri : float
        Absolute primal stopping tolerance.
    eps_abs_dual : float
        Absolute dual stopping tolerance.
    eps_rel : float
        Relative stopping tolerance.
    """
    rho: float = DEFAULT_RHO
    penalty_adaptation_mode: PenaltyAdaptation = PenaltyAdaptation.NONE
    penalty_adaptation_period: int = DEFAULT_PENALTY_ADAPTATION_PERIOD
    penalty_adaptation_window: int = DEFAULT_PENALTY_ADAPTATION_WINDOW
    residual_balance_mu: float = DEFAULT_RESIDUAL_BALANCE_MU
    residual_balance_tau: float = DEFAULT_RESIDUAL_BALANCE_TAU
    spectral_penalty_minimum_correlation: float = \
        DEFAULT_SPECTRAL_PENALTY_MINIMUM_CORRELATION
    eps_abs_pri: float = DEFAULT_EPS_ABS_PRI
    eps_abs_dual: float = DEFAULT_EPS_ABS_DUAL
    eps_rel: float = DEFAULT_EPS_REL

    def __post_init__(self):
        super().__post_init__()
        assert self.rho > 0.0, "rho must be positive"
        assert isinstance(self.penalty_adaptation_mode, PenaltyAdaptation), \
            "penalty_adaptation_mode must be a PenaltyAdaptation"
        assert self.penalty_adaptation_period >= 1, \
            "penalty_adaptation_period must be >= 1"
        assert self.penalty_adaptation_window >= 0, \
            "penalty_adaptation_window must be non-negative"
        assert self.residual_balance_mu > 1.0, \
            "residual_balance_mu must be > 1"
        assert self.residual_balance_tau > 1.0, \
            "residual_balance_tau must be > 1"
        assert 0.0 < self.spectral_penalty_minimum_correlation < 1.0, \
            "spectral_penalty_minimum_correlation must be in (0, 1)"
        assert self.eps_abs_pri >= 0.0, "eps_abs_pri must be non-negative"
        assert self.eps_abs_dual >= 0.0, "eps_abs_dual must be non-negative"
        assert self.eps_rel >= 0.0, "eps_rel must be non-negative"


@dataclass
class ADMMResult(OptimizerResult):
    """
    Result returned by :meth:`ADMM_Optimizer.solve`.

    ``x`` holds the final pair ``(x, y)``.  The lists ``time``,
    ``primal_residuals``, ``dual_residuals`` and ``penalty_parameters``
    have one entry per executed iteration; ``penalty_parameters[i]`` is the
    rho used during iteration i.
    """
    status: ADMMStatus = ADMMStatus.ITERATION_LIMIT
    primal_residuals: List[float] = field(default_factory=list)
    dual_residuals: List[float] = field(default_factory=list)
    penalty_parameters: List[float] = field(default_factory=list)

    @property
    def num_iterations(self) -> int:
        """Number of executed iterations."""
        return len(self.primal_residuals)

    def has_converged(self) -> bool:
        """Return True if the residual stopping criteria were met."""
        return self.status == ADMMStatus.CONVERGED


# ============================================================================
# Iteration state
# ============================================================================
@dataclass
class SpectralCheckpoint:
    """Iterates cached at the last spectral penalty update."""
    x_k0: VectorSpaceElement
    y_k0: VectorSpaceElement
    lambda_k0: VectorSpaceElement
    lambda_hat_k0: VectorSpaceElement


class ADMM_State:
    """
    Working set of one ADMM run.

    ``checkpoint`` is only allocated when spectral adaptation is active.
    """

    def __init__(
        self,
        x: VectorSpaceElement,
        y: VectorSpaceElement,
        lam: VectorSpaceElement,
        rho: float,
        checkpoint: Optional[SpectralCheckpoint] = None,
    ):
        self.x = x
        self.y = y
        self.y_prev = y
        self.lam = lam
        self.rho: float = rho
        self.checkpoint = checkpoint
        # Intermediate dual variable of the current checkpoint iteration
        self.lambda_hat: Optional[VectorSpaceElement] = None


# ============================================================================
# ADMM Optimizer
# ============================================================================
_STATUS_MESSAGES = {
    ADMMStatus.CONVERGED: "Found minimizer!",
    ADMMStatus.ITERATION_LIMIT:
        "Algorithm exceeded maximum number of outer iterations",
    ADMMStatus.TIME_LIMIT:
        "Algorithm exceeded maximum allowed computation time",
}


class ADMM_Optimizer:
    """
    ADMM solver for ``min f(x) + g(y)  s.t.  Ax + By = c``.

    Parameters
    ----------
    min_lx : callable
        ``min_lx(x, y, lambda, rho, *args) -> x`` returning the minimizer
        of the augmented Lagrangian with respect to x.
    min_ly : callable
        ``min_ly(x, y, lambda, rho, *args) -> y``; called with the
        already-updated x.
    A : callable
        Linear operator ``A(x, *args)`` from the X space to the R space.
    B : callable
        Linear operator ``B(y, *args)`` from the Y space to the R space.
    At : callable
        Adjoint ``At(r, *args)`` of A, from the R space to the X space.
    inner_product_x : callable
        Inner product on the X space, ``(u, v, *args) -> float``.
    inner_product_r : callable or None
        Inner product on the R space.  ``None`` reuses ``inner_product_x``
        (all variables share a single type).
    params : ADMMParams or None
        Run configuration.  ``None`` uses the defaults.
    clock : callable or None
        Monotonic clock in seconds.  ``None`` uses ``time.perf_counter``.

    Example
    -------
    >>> # min 0.5|x - a|^2 + 0.5|y - b|^2  s.t.  x - y = 0
    >>> a, b = np.array([1.0, 3.0]), np.array([3.0, 1.0])
    >>> min_lx = lambda x, y, lam, rho: (a - lam + rho * y) / (1.0 + rho)
    >>> min_ly = lambda x, y, lam, rho: (b + lam + rho * x) / (1.0 + rho)
    >>> identity = lambda v: v
    >>> solver = ADMM_Optimizer(min_lx, min_ly, identity, lambda v: -v,
    ...                         identity, euclidean_inner_product)
    >>> result = solver.solve(np.zeros(2), np.zeros(2), np.zeros(2))
    >>> result.has_converged()
    True
    """

    def __init__(
        self,
        min_lx: AugLagMinX,
        min_ly: AugLagMinY,
        A: LinearOperator,
        B: LinearOperator,
        At: LinearOperator,
        inner_product_x: InnerProduct,
        inner_product_r: Optional[InnerProduct] = None,
        params: Optional[ADMMParams] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._min_lx = min_lx
        self._min_ly = min_ly
        self._A = A
        self._B = B
        self._At = At
        self._inner_product_x = inner_product_x
        self._inner_product_r = (
            inner_product_r if inner_product_r is not None
            else inner_product_x
        )
        self.params = params if params is not None else ADMMParams()
        self._clock = clock if clock is not None else time.perf_counter

    # ----------------------------------------------------------------
    #  Main API
    # ----------------------------------------------------------------
    def solve(
        self,
        c: VectorSpaceElement,
        x0: VectorSpaceElement,
        y0: VectorSpaceElement,
        *args: Any,
    ) -> ADMMResult:
        """
        Run ADMM from the initial guess ``(x0, y0)``.

        Parameters
        ----------
        c : VariableR
            Right-hand side of the constraint Ax + By = c.
        x0 : VariableX
            Initial guess for x.
        y0 : VariableY
            Initial guess for y.
        *args
            Problem context, forwarded unchanged to every collaborator.

        Returns
        -------
        ADMMResult
            Final pair ``(x, y)``, termination status and history.
        """
        params = self.params
        result = ADMMResult(status=ADMMStatus.ITERATION_LIMIT)

        c_norm = norm(c, self._inner_product_r, *args)
        state = self._initial_state(c, x0, y0, *args)

        primal_residual = math.nan
        dual_residual = math.nan

        if params.verbose:
            logger.info("ADMM optimization:")

        tic = self._clock()
        for i in range(params.max_iterations):
            # Elapsed time at the START of this iteration
            elapsed_time = self._clock() - tic
            if elapsed_time > params.max_computation_time:
                result.status = ADMMStatus.TIME_LIMIT
                break

            adapt_penalty = self._is_adaptation_iteration(i)

            # Gauss-Seidel sweep over the two blocks
            state.x = self._min_lx(state.x, state.y, state.lam, state.rho, *args)
            state.y = self._min_ly(state.x, state.y, state.lam, state.rho, *args)

            # Primal residual vector
            Ax = self._A(state.x, *args)
            By = self._B(state.y, *args)
            r = Ax + By - c

            # lambda_hat uses the dual variable *before* its update
            if adapt_penalty and state.checkpoint is not None:
                state.lambda_hat = state.lam + state.rho * (
                    Ax + self._B(state.y_prev, *args) - c)

            state.lam = state.lam + state.rho * r

            # Dual residual vector
            s = state.rho * self._At(
                self._B(state.y - state.y_prev, *args), *args)

            primal_residual = norm(r, self._inner_product_r, *args)
            dual_residual = norm(s, self._inner_product_x, *args)

            if params.verbose:
                self._report_iteration(
                    i, elapsed_time, primal_residual, dual_residual, state.rho)

            result.time.append(elapsed_time)
            result.primal_residuals.append(primal_residual)
            result.dual_residuals.append(dual_residual)
            result.penalty_parameters.append(state.rho)
            if params.log_iterates:
                result.iterates.append((state.x, state.y))

            if self._is_residual_tolerance_satisfied(
                    Ax, By, c_norm, state.lam,
                    primal_residual, dual_residual, *args):
                result.status = ADMMStatus.CONVERGED
                break

            if adapt_penalty:
                self._update_penalty_parameter(
                    state, primal_residual, dual_residual, *args)

            state.y_prev = state.y

        result.x = (state.x, state.y)
        result.elapsed_time = self._clock() - tic

        if params.verbose:
            self._report_termination(result, primal_residual, dual_residual)

        return result

    # ----------------------------------------------------------------
    #  Private helper methods
    # ----------------------------------------------------------------
    def _initial_state(
        self,
        c: VectorSpaceElement,
        x0: VectorSpaceElement,
        y0: VectorSpaceElement,
        *args: Any,
    ) -> ADMM_State:
        """Warm-start lambda at rho (A x0 + B y0 - c)."""
        rho = self.params.rho
        lam = rho * (self._A(x0, *args) + self._B(y0, *args) - c)

        checkpoint = None
        if self.params.penalty_adaptation_mode == PenaltyAdaptation.SPECTRAL:
            checkpoint = SpectralCheckpoint(
                x_k0=x0, y_k0=y0, lambda_k0=lam, lambda_hat_k0=lam)

        return ADMM_State(x0, y0, lam, rho, checkpoint)

    def _is_adaptation_iteration(self, i: int) -> bool:
        params = self.params
        return (params.penalty_adaptation_mode != PenaltyAdaptation.NONE
                and i % params.penalty_adaptation_period == 0
                and i < params.penalty_adaptation_window)

    def _is_residual_tolerance_satisfied(
        self,
        Ax: VectorSpaceElement,
        By: VectorSpaceElement,
        c_norm: float,
        lam: VectorSpaceElement,
        primal_residual: float,
        dual_residual: float,
        *args: Any,
    ) -> bool:
        """
        Combined absolute/relative stopping test (Boyd et al., 3.3.1):

            |r| < eps_abs_pri  + eps_rel max(|Ax|, |By|, |c|)
            |s| < eps_abs_dual + eps_rel |A^T lambda|
        """
        params = self.params
        Ax_norm = norm(Ax, self._inner_product_r, *args)
        By_norm = norm(By, self._inner_product_r, *args)
        eps_primal = params.eps_abs_pri + \
            params.eps_rel * max(Ax_norm, By_norm, c_norm)

        At_lambda_norm = norm(self._At(lam, *args), self._inner_product_x, *args)
        eps_dual = params.eps_abs_dual + params.eps_rel * At_lambda_norm

        return primal_residual < eps_primal and dual_residual < eps_dual

    def _update_penalty_parameter(
        self,
        state: ADMM_State,
        primal_residual: float,
        dual_residual: float,
        *args: Any,
    ) -> None:
        params = self.params

        if params.penalty_adaptation_mode == PenaltyAdaptation.RESIDUAL_BALANCE:
            state.rho = residual_balance_penalty_parameter_update(
                primal_residual, dual_residual,
                params.residual_balance_mu, params.residual_balance_tau,
                state.rho)

        elif params.penalty_adaptation_mode == PenaltyAdaptation.SPECTRAL:
            cp = state.checkpoint
            delta_lambda = state.lam - cp.lambda_k0
            delta_lambda_hat = state.lambda_hat - cp.lambda_hat_k0

            # The reference augmented Lagrangian uses residuals of opposite
            # sign, hence the negated operators
            delta_H = -self._A(state.x - cp.x_k0, *args)
            delta_G = -self._B(state.y - cp.y_k0, *args)

            state.rho = spectral_penalty_parameter_update(
                delta_lambda_hat, delta_lambda, delta_H, delta_G,
                self._inner_product_r,
                params.spectral_penalty_minimum_correlation,
                state.rho, *args)

            state.checkpoint = SpectralCheckpoint(
                x_k0=state.x,
                y_k0=state.y,
                lambda_k0=state.lam,
                lambda_hat_k0=state.lambda_hat,
            )

    # ----------------------------------------------------------------
    #  Progress stream
    # ----------------------------------------------------------------
    def _report_iteration(
        self,
        i: int,
        elapsed_time: float,
        primal_residual: float,
        dual_residual: float,
        rho: float,
    ) -> None:
        p = self.params.precision
        width = p + 7
        iter_width = int(math.floor(
            math.log10(max(self.params.max_iterations, 1)))) + 1
        logger.info(
            f"Iter: {i:>{iter_width}d}, time: {elapsed_time:.{p}e}, "
            f"primal residual: {primal_residual:>{width}.{p}e}, "
            f"dual residual: {dual_residual:>{width}.{p}e}, "
            f"penalty: {rho:>{width}.{p}e}")

    def _report_termination(
        self,
        result: ADMMResult,
        primal_residual: float,
        dual_residual: float,
    ) -> None:
        p = self.params.precision
        logger.info("Optimization finished!")

        message = _STATUS_MESSAGES[result.status]
        if result.status == ADMMStatus.TIME_LIMIT:
            message += (f": {result.elapsed_time:.{p}e} > "
                        f"{self.params.max_computation_time:.{p}e}")
        logger.info(message)

        logger.info(
            f"Final primal residual: {primal_residual:.{p}e}, "
            f"final dual residual: {dual_residual:.{p}e}, "
            f"total elapsed computation time: {result.elapsed_time:.{p}e} seconds")


def admm(
    min_lx: AugLagMinX,
    min_ly: AugLagMinY,
    A: LinearOperator,
    B: LinearOperator,
    At: LinearOperator,
    inner_product_x: InnerProduct,
    c: VectorSpaceElement,
    x0: VectorSpaceElement,
    y0: VectorSpaceElement,
    *args: Any,
    inner_product_r: Optional[InnerProduct] = None,
    params: Optional[ADMMParams] = None,
    clock: Optional[Callable[[], float]] = None,
) -> ADMMResult:
    """
    Solve ``min f(x) + g(y)  s.t.  Ax + By = c`` with ADMM.

    Convenience wrapper that builds an :class:`ADMM_Optimizer` and runs it
    once; see its documentation for the meaning of the arguments.
    """
    solver = ADMM_Optimizer(
        min_lx=min_lx,
        min_ly=min_ly,
        A=A,
        B=B,
        At=At,
        inner_product_x=inner_product_x,
        inner_product_r=inner_product_r,
        params=params,
        clock=clock,
    )
    return solver.solve(c, x0, y0, *args)
