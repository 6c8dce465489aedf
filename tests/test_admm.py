from __future__ import annotations

import dataclasses
import logging
import math
import time
from typing import Any, Dict, List

import numpy as np
import pytest

from admm_utility.linear_algebra_utility import (
    BlockVector,
    block_inner_product,
    euclidean_inner_product,
    identity_operator,
    negated_identity_operator,
)
from python_admm.admm import (
    ADMM_Optimizer,
    ADMMParams,
    ADMMStatus,
    PenaltyAdaptation,
    admm,
)

# min 0.5|x - a|^2 + 0.5|y - b|^2  s.t.  x - y = 0,  minimizer x = y = (a + b) / 2
_A_VEC = np.array([1.0, 3.0, -2.0])
_B_VEC = np.array([3.0, 1.0, 4.0])
_MINIMIZER = 0.5 * (_A_VEC + _B_VEC)

_TIGHT = dict(eps_abs_pri=1e-10, eps_abs_dual=1e-10, eps_rel=1e-12)
# Zero tolerances: the stopping test can never pass
_NEVER = dict(eps_abs_pri=0.0, eps_abs_dual=0.0, eps_rel=0.0)


def _min_lx(x, y, lam, rho, *args):
    return (_A_VEC - lam + rho * y) / (1.0 + rho)


def _min_ly(x, y, lam, rho, *args):
    return (_B_VEC + lam + rho * x) / (1.0 + rho)


def _make_solver(params: ADMMParams, min_lx=_min_lx, **kwargs: Any) -> ADMM_Optimizer:
    return ADMM_Optimizer(
        min_lx=min_lx,
        min_ly=_min_ly,
        A=identity_operator,
        B=negated_identity_operator,
        At=identity_operator,
        inner_product_x=euclidean_inner_product,
        params=params,
        **kwargs,
    )


def _solve(params: ADMMParams, **kwargs: Any):
    zero = np.zeros(3)
    return _make_solver(params, **kwargs).solve(zero, zero, zero)


def _assert_log_lengths(result, expected: int) -> None:
    assert result.num_iterations == expected
    assert len(result.time) == expected
    assert len(result.primal_residuals) == expected
    assert len(result.dual_residuals) == expected
    assert len(result.penalty_parameters) == expected


@pytest.mark.parametrize("mode", list(PenaltyAdaptation))
def test_separable_quadratic_converges_to_analytic_minimizer(mode: PenaltyAdaptation) -> None:
    params = ADMMParams(max_iterations=2000, penalty_adaptation_mode=mode, **_TIGHT)
    result = _solve(params)

    assert result.status == ADMMStatus.CONVERGED
    assert result.has_converged()
    x, y = result.x
    np.testing.assert_allclose(x, _MINIMIZER, atol=1e-6)
    np.testing.assert_allclose(y, _MINIMIZER, atol=1e-6)
    _assert_log_lengths(result, result.num_iterations)
    assert result.primal_residuals[-1] < result.primal_residuals[0]


def test_functional_entry_point_matches_optimizer() -> None:
    zero = np.zeros(3)
    params = ADMMParams(max_iterations=500, **_TIGHT)
    result = admm(_min_lx, _min_ly, identity_operator, negated_identity_operator,
                  identity_operator, euclidean_inner_product, zero, zero, zero,
                  params=params)
    reference = _solve(params)

    assert result.status == ADMMStatus.CONVERGED
    assert result.num_iterations == reference.num_iterations
    np.testing.assert_allclose(result.x[0], reference.x[0])


def test_spectral_mode_recovers_unit_curvature() -> None:
    # Both blocks have unit curvature, so the spectral estimate is rho = 1
    params = ADMMParams(max_iterations=2000, rho=10.0,
                        penalty_adaptation_mode=PenaltyAdaptation.SPECTRAL,
                        penalty_adaptation_period=2, **_NEVER)
    result = _solve(dataclasses.replace(params, max_iterations=6))

    assert result.penalty_parameters[0] == 10.0
    assert result.penalty_parameters[3] == pytest.approx(1.0, rel=1e-6)


def test_iteration_limit_logs_every_iteration() -> None:
    result = _solve(ADMMParams(max_iterations=7, **_NEVER))

    assert result.status == ADMMStatus.ITERATION_LIMIT
    assert not result.has_converged()
    _assert_log_lengths(result, 7)


def test_zero_iterations_returns_initial_guess() -> None:
    x0 = np.array([1.0, 2.0, 3.0])
    y0 = np.array([-1.0, 0.0, 1.0])
    solver = _make_solver(ADMMParams(max_iterations=0, verbose=True))
    result = solver.solve(np.zeros(3), x0, y0)

    assert result.status == ADMMStatus.ITERATION_LIMIT
    _assert_log_lengths(result, 0)
    assert result.x[0] is x0 and result.x[1] is y0
    assert result.iterates == []


def test_time_limit_with_slow_subproblem_solver() -> None:
    def slow_min_lx(x, y, lam, rho, *args):
        time.sleep(0.02)
        return _min_lx(x, y, lam, rho)

    params = ADMMParams(max_iterations=1000, max_computation_time=0.05, **_NEVER)
    result = _solve(params, min_lx=slow_min_lx)

    assert result.status == ADMMStatus.TIME_LIMIT
    assert result.elapsed_time > 0.05
    assert 1 <= result.num_iterations < 1000
    _assert_log_lengths(result, result.num_iterations)
    assert all(t <= 0.05 for t in result.time)


def test_time_limit_is_checked_at_top_of_iteration() -> None:
    ticks = iter(range(100))

    def clock() -> float:
        return float(next(ticks))

    params = ADMMParams(max_iterations=100, max_computation_time=2.5, **_NEVER)
    result = _solve(params, clock=clock)

    assert result.status == ADMMStatus.TIME_LIMIT
    assert result.time == [1.0, 2.0]
    assert result.elapsed_time == 4.0
    _assert_log_lengths(result, 2)


@pytest.mark.parametrize("mode", [PenaltyAdaptation.RESIDUAL_BALANCE, PenaltyAdaptation.SPECTRAL])
def test_penalty_is_constant_after_adaptation_window(mode: PenaltyAdaptation) -> None:
    window = 6
    params = ADMMParams(max_iterations=30, rho=1000.0,
                        penalty_adaptation_mode=mode,
                        penalty_adaptation_period=1,
                        penalty_adaptation_window=window, **_NEVER)
    result = _solve(params)

    penalties = result.penalty_parameters
    assert len(penalties) == 30
    assert all(p == penalties[window] for p in penalties[window:])
    assert all(math.isfinite(p) and p > 0.0 for p in penalties)


def test_residual_balance_reduces_large_initial_penalty() -> None:
    params = ADMMParams(max_iterations=5, rho=1000.0,
                        penalty_adaptation_mode=PenaltyAdaptation.RESIDUAL_BALANCE,
                        penalty_adaptation_period=1, **_NEVER)
    result = _solve(params)

    # the dual residual dominates at the first iteration
    assert result.penalty_parameters[0] == 1000.0
    assert result.penalty_parameters[1] == 500.0


def test_no_adaptation_keeps_initial_penalty() -> None:
    result = _solve(ADMMParams(max_iterations=10, rho=3.0, **_NEVER))
    assert result.penalty_parameters == [3.0] * 10


_X0 = np.array([1.0, 2.0, 3.0])
_Y0 = np.array([0.0, 1.0, -1.0])
_C = np.full(3, 0.5)


def test_dual_variable_is_warm_started_from_initial_guess() -> None:
    seen: List[np.ndarray] = []

    def recording_min_lx(x, y, lam, rho, *args):
        seen.append(np.copy(lam))
        return _min_lx(x, y, lam, rho, *args)

    solver = _make_solver(ADMMParams(max_iterations=1, rho=3.0, **_NEVER),
                          min_lx=recording_min_lx)
    solver.solve(_C, _X0, _Y0)

    # lambda_0 = rho (A x0 + B y0 - c) with A = I, B = -I
    np.testing.assert_allclose(seen[0], 3.0 * (_X0 - _Y0 - _C))


def test_spectral_update_uses_dual_variable_before_its_update(
        monkeypatch: pytest.MonkeyPatch) -> None:
    recorded: List[tuple] = []

    def recording_update(delta_lambda_hat, delta_lambda, delta_H_hat,
                         delta_G_hat, inner_product, eps_cor, rho, *args):
        recorded.append((np.copy(delta_lambda_hat), np.copy(delta_lambda)))
        return rho

    monkeypatch.setattr("python_admm.admm.spectral_penalty_parameter_update",
                        recording_update)

    rho = 2.0
    params = ADMMParams(max_iterations=3, rho=rho, log_iterates=True,
                        penalty_adaptation_mode=PenaltyAdaptation.SPECTRAL,
                        penalty_adaptation_period=1, **_NEVER)
    result = _make_solver(params).solve(_C, _X0, _Y0)

    assert len(recorded) == 3
    (x1, y1), (x2, y2), _ = result.iterates

    lam0 = rho * (_X0 - _Y0 - _C)
    lam1 = lam0 + rho * (x1 - y1 - _C)
    # lambda_hat_i = lambda_i + rho (A x_{i+1} + B y_i - c)
    lambda_hat0 = lam0 + rho * (x1 - _Y0 - _C)
    lambda_hat1 = lam1 + rho * (x2 - y1 - _C)

    # First checkpoint holds lambda_hat = lambda = lambda_0
    np.testing.assert_allclose(recorded[0][0], lambda_hat0 - lam0)
    np.testing.assert_allclose(recorded[0][1], lam1 - lam0)
    np.testing.assert_allclose(recorded[1][0], lambda_hat1 - lambda_hat0)
    np.testing.assert_allclose(recorded[1][1], rho * (x2 - y2 - _C))


def test_spectral_mode_with_stalled_block_keeps_penalty_finite() -> None:
    # x never moves, so delta_H_hat = 0 at every checkpoint
    def frozen_min_lx(x, y, lam, rho, *args):
        return np.ones(3)

    params = ADMMParams(max_iterations=20, rho=2.0,
                        penalty_adaptation_mode=PenaltyAdaptation.SPECTRAL,
                        penalty_adaptation_period=1, **_NEVER)
    result = _solve(params, min_lx=frozen_min_lx)

    assert all(math.isfinite(p) and p > 0.0 for p in result.penalty_parameters)
    assert all(math.isfinite(r) for r in result.primal_residuals)


def test_log_iterates_records_trajectory() -> None:
    result = _solve(ADMMParams(max_iterations=4, log_iterates=True, **_NEVER))

    assert len(result.iterates) == 4
    x_last, y_last = result.iterates[-1]
    np.testing.assert_array_equal(x_last, result.x[0])
    np.testing.assert_array_equal(y_last, result.x[1])


def test_context_arguments_reach_every_collaborator() -> None:
    calls: Dict[str, List[Any]] = {}
    problem = {"a": _A_VEC, "b": _B_VEC}

    def record(name: str, args: tuple) -> None:
        calls.setdefault(name, []).append(args)

    def min_lx(x, y, lam, rho, *args):
        record("min_lx", args)
        return (args[0]["a"] - lam + rho * y) / (1.0 + rho)

    def min_ly(x, y, lam, rho, *args):
        record("min_ly", args)
        return (args[0]["b"] + lam + rho * x) / (1.0 + rho)

    def A(v, *args):
        record("A", args)
        return v

    def B(v, *args):
        record("B", args)
        return -v

    def At(v, *args):
        record("At", args)
        return v

    def inner_product(u, v, *args):
        record("inner_product", args)
        return float(np.dot(u, v))

    zero = np.zeros(3)
    params = ADMMParams(max_iterations=500,
                        penalty_adaptation_mode=PenaltyAdaptation.SPECTRAL, **_TIGHT)
    result = admm(min_lx, min_ly, A, B, At, inner_product, zero, zero, zero,
                  problem, params=params)

    assert result.has_converged()
    np.testing.assert_allclose(result.x[0], _MINIMIZER, atol=1e-6)
    assert set(calls) == {"min_lx", "min_ly", "A", "B", "At", "inner_product"}
    for name, recorded in calls.items():
        assert all(args == (problem,) for args in recorded), name


def test_scalar_variables() -> None:
    # min 0.5 (x - 1)^2 + 0.5 (y - 5)^2  s.t.  x - y = 0
    result = admm(
        lambda x, y, lam, rho: (1.0 - lam + rho * y) / (1.0 + rho),
        lambda x, y, lam, rho: (5.0 + lam + rho * x) / (1.0 + rho),
        identity_operator, negated_identity_operator, identity_operator,
        euclidean_inner_product, 0.0, 0.0, 0.0,
        params=ADMMParams(max_iterations=500, **_TIGHT))

    assert result.has_converged()
    assert result.x[0] == pytest.approx(3.0, abs=1e-6)
    assert result.x[1] == pytest.approx(3.0, abs=1e-6)


def test_block_consensus_with_distinct_variable_types() -> None:
    # min sum_i 0.5|x_i - a_i|^2 + 0.5 g |z|^2  s.t.  x_i - z = 0
    # X and R are BlockVector, Y is a plain array
    targets = [np.array([1.0, 2.0]), np.array([3.0, -2.0]), np.array([5.0, 6.0])]
    gamma = 1.0
    n = len(targets)

    def min_lx(x, z, lam, rho):
        return BlockVector([(a - l + rho * z) / (1.0 + rho) for a, l in zip(targets, lam)])

    def min_lz(x, z, lam, rho):
        return (sum(lam) + rho * sum(x)) / (gamma + n * rho)

    def B(z):
        return BlockVector([-z] * n)

    x0 = BlockVector([np.zeros(2)] * n)
    params = ADMMParams(max_iterations=2000,
                        penalty_adaptation_mode=PenaltyAdaptation.RESIDUAL_BALANCE,
                        **_TIGHT)
    solver = ADMM_Optimizer(min_lx, min_lz, identity_operator, B, identity_operator,
                            block_inner_product, params=params)
    result = solver.solve(BlockVector.zeros_like(x0), x0, np.zeros(2))

    expected = sum(targets) / (n + gamma)
    assert result.has_converged()
    x, z = result.x
    np.testing.assert_allclose(z, expected, atol=1e-6)
    for block in x:
        np.testing.assert_allclose(block, expected, atol=1e-6)


def test_verbose_progress_stream(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="python_admm.admm")
    _solve(ADMMParams(max_iterations=3, verbose=True, precision=4, **_NEVER))

    messages = [r.getMessage() for r in caplog.records if r.name == "python_admm.admm"]
    iteration_lines = [m for m in messages if m.startswith("Iter:")]
    assert len(iteration_lines) == 3
    assert "primal residual" in iteration_lines[0]
    assert iteration_lines[0].endswith("1.0000e+00")
    assert "Algorithm exceeded maximum number of outer iterations" in messages
    assert any(m.startswith("Final primal residual") for m in messages)


def test_time_limit_summary_reports_budget(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="python_admm.admm")
    ticks = iter(range(100))
    params = ADMMParams(max_computation_time=1.5, verbose=True, **_NEVER)
    result = _solve(params, clock=lambda: float(next(ticks)))

    assert result.status == ADMMStatus.TIME_LIMIT
    assert any("maximum allowed computation time" in r.getMessage() for r in caplog.records)


def test_silent_when_not_verbose(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="python_admm.admm")
    _solve(ADMMParams(max_iterations=3, **_NEVER))
    assert not [r for r in caplog.records if r.name == "python_admm.admm"]


@pytest.mark.parametrize("overrides", [
    {"rho": 0.0},
    {"rho": -1.0},
    {"max_iterations": -1},
    {"max_computation_time": 0.0},
    {"penalty_adaptation_period": 0},
    {"residual_balance_mu": 1.0},
    {"residual_balance_tau": 0.5},
    {"spectral_penalty_minimum_correlation": 1.0},
    {"eps_rel": -1e-3},
    {"penalty_adaptation_mode": "spectral"},
])
def test_invalid_parameters_are_rejected(overrides: Dict[str, Any]) -> None:
    with pytest.raises(AssertionError):
        ADMMParams(**overrides)


def test_parameters_are_immutable() -> None:
    params = ADMMParams()
    with pytest.raises(dataclasses.FrozenInstanceError):
        params.rho = 2.0  # type: ignore[misc]
    assert dataclasses.replace(params, rho=2.0).rho == 2.0
