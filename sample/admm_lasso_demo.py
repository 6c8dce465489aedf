"""
File: admm_lasso_demo.py

This script demonstrates the ADMM solver on a lasso (sparse regression)
problem with spectral penalty adaptation.

Problem:
    min  0.5 * ||D x - b||^2 + lam_l1 * ||y||_1
    x,y
    s.t. x - y = 0

Splitting:
    x-update: (D^T D + rho I) x = D^T b - lambda + rho y     (linear solve)
    y-update: y = soft_threshold(x + lambda / rho, lam_l1 / rho)

The problem data (D, b, lam_l1) is passed to the solver as context and
forwarded unchanged to every collaborator.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np

from admm_utility.linear_algebra_utility import (
    euclidean_inner_product,
    identity_operator,
    negated_identity_operator,
)
from admm_utility.logging_utility import get_logger
from python_admm.admm import ADMM_Optimizer, ADMMParams, PenaltyAdaptation

# ============================================================
# 1. Define the problem
# ============================================================
rng = np.random.default_rng(0)
m, n = 60, 30

x_true = np.zeros(n)
x_true[[2, 7, 15, 22]] = [1.5, -2.0, 0.7, 3.0]


@dataclass
class LassoData:
    D: np.ndarray
    b: np.ndarray
    lam_l1: float


D = rng.standard_normal((m, n))
problem = LassoData(
    D=D,
    b=D @ x_true + 0.01 * rng.standard_normal(m),
    lam_l1=0.5,
)


def min_lx(x, y, lam, rho, data: LassoData):
    """argmin_x 0.5||Dx - b||^2 + <lam, x> + (rho/2)||x - y||^2."""
    K = data.D.T @ data.D + rho * np.eye(data.D.shape[1])
    return np.linalg.solve(K, data.D.T @ data.b - lam + rho * y)


def min_ly(x, y, lam, rho, data: LassoData):
    """argmin_y lam_l1 ||y||_1 - <lam, y> + (rho/2)||x - y||^2."""
    v = x + lam / rho
    kappa = data.lam_l1 / rho
    return np.sign(v) * np.maximum(np.abs(v) - kappa, 0.0)


# ============================================================
# 2. Create the solver
# ============================================================
get_logger("python_admm")

params = ADMMParams(
    max_iterations=500,
    rho=1.0,
    penalty_adaptation_mode=PenaltyAdaptation.SPECTRAL,
    penalty_adaptation_period=2,
    penalty_adaptation_window=100,
    eps_abs_pri=1e-6,
    eps_abs_dual=1e-6,
    eps_rel=1e-6,
    verbose=True,
)

solver = ADMM_Optimizer(
    min_lx=min_lx,
    min_ly=min_ly,
    A=identity_operator,
    B=negated_identity_operator,
    At=identity_operator,
    inner_product_x=euclidean_inner_product,
    params=params,
)

# ============================================================
# 3. Solve
# ============================================================
x0 = np.zeros(n)
result = solver.solve(np.zeros(n), x0, x0.copy(), problem)

# ============================================================
# 4. Print results
# ============================================================
x_sol, y_sol = result.x
print()
print("--- ADMM lasso result ---")
print(f"Exit status     : {result.status.name}")
print(f"Iterations      : {result.num_iterations}")
print(f"Final penalty   : {result.penalty_parameters[-1]:.4e}")
print(f"Support found   : {np.flatnonzero(np.abs(y_sol) > 1e-8)}")
print(f"Support (true)  : {np.flatnonzero(x_true)}")
print(f"||y - x_true||  : {np.linalg.norm(y_sol - x_true):.3e}")
print(f"Converged       : {result.has_converged()}")
