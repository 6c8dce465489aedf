"""
File: penalty_adaptation.py

Description: This module implements the update rules used by the ADMM
engine (admm.py) to adapt the augmented Lagrangian penalty parameter rho.

Two strategies are provided:

1. Residual balancing (He, Yang & Wang, "Alternating Direction Method with
   Self-Adaptive Penalty Parameters"; Boyd et al., eq. (3.13)):

       rho <- tau * rho    if |r| > mu * |s|
       rho <- rho / tau    if |s| > mu * |r|
       rho <- rho          otherwise

2. Spectral penalty selection (Xu, Figueiredo & Goldstein, "Adaptive ADMM
   with Spectral Penalty Parameter Selection"), which fits Barzilai-Borwein
   curvature estimates to the dual problem:

       alpha_SD = <dlh, dlh> / <dH, dlh>     alpha_MG = <dH, dlh> / <dH, dH>
       beta_SD  = <dl,  dl>  / <dG, dl>      beta_MG  = <dG, dl>  / <dG, dG>

   hybridised as (Zhou, Gao & Dai)

       alpha = alpha_MG            if 2 * alpha_MG > alpha_SD
               alpha_SD - alpha_MG / 2   otherwise

   and safeguarded by the correlations

       alpha_cor = <dH, dlh> / (|dH| |dlh|)    beta_cor = <dG, dl> / (|dG| |dl|)

   A direction whose correlation denominator vanishes (or is not finite)
   gets correlation 0 and is never trusted.  The update returns the
   unchanged rho whenever the safeguarded value is not a finite positive
   number, so rho stays strictly positive.

Both rules are pure functions of their arguments.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Tuple

from python_admm.concepts import InnerProduct, VectorSpaceElement

# Smallest admissible correlation denominator |dH| |dlh| (or |dG| |dl|)
SMALL_EPSILON: float = 1e-30


def residual_balance_penalty_parameter_update(
    primal_residual: float,
    dual_residual: float,
    mu: float,
    tau: float,
    rho: float,
) -> float:
    """
    Residual-balancing update of the penalty parameter.

    Parameters
    ----------
    primal_residual : float
        Norm of the primal residual r = Ax + By - c.
    dual_residual : float
        Norm of the dual residual s = rho * A^T B (y - y_prev).
    mu : float
        Admissible ratio between the two residuals (> 1).
    tau : float
        Multiplicative change applied to rho (> 1).
    rho : float
        Current penalty parameter.

    Returns
    -------
    float
        Updated penalty parameter.
    """
    if primal_residual > mu * dual_residual:
        return tau * rho
    elif dual_residual > mu * primal_residual:
        return rho / tau
    else:
        return rho


@dataclass(frozen=True)
class SpectralEstimates:
    """
    Curvature estimates computed by :func:`spectral_stepsize_estimates`.

    Estimates of a degenerate direction are ``nan`` and its correlation is 0.
    """
    alpha_sd: float
    alpha_mg: float
    alpha: float
    alpha_cor: float
    beta_sd: float
    beta_mg: float
    beta: float
    beta_cor: float


def _curvature_estimates(
    dual_sq: float,
    cross: float,
    primal_sq: float,
) -> Tuple[float, float, float, float]:
    """
    Steepest-descent, minimum-gradient, hybrid stepsize and correlation for
    one direction, given <d_dual, d_dual>, <d_primal, d_dual> and
    <d_primal, d_primal>.
    """
    if not (primal_sq > 0.0 and dual_sq > 0.0):
        return math.nan, math.nan, math.nan, 0.0

    denominator = math.sqrt(primal_sq) * math.sqrt(dual_sq)
    if not (math.isfinite(denominator) and denominator > SMALL_EPSILON):
        return math.nan, math.nan, math.nan, 0.0

    correlation = cross / denominator
    steepest_descent = dual_sq / cross if cross != 0.0 else math.nan
    minimum_gradient = cross / primal_sq

    if 2.0 * minimum_gradient > steepest_descent:
        hybrid = minimum_gradient
    else:
        hybrid = steepest_descent - minimum_gradient / 2.0

    return steepest_descent, minimum_gradient, hybrid, correlation


def spectral_stepsize_estimates(
    delta_lambda_hat: VectorSpaceElement,
    delta_lambda: VectorSpaceElement,
    delta_H_hat: VectorSpaceElement,
    delta_G_hat: VectorSpaceElement,
    inner_product: InnerProduct,
    *args: Any,
) -> SpectralEstimates:
    """
    Compute the spectral (Barzilai-Borwein) stepsize estimates of both
    dual directions, see eqs. (26)-(29) of "Adaptive ADMM with Spectral
    Penalty Parameter Selection".

    Parameters
    ----------
    delta_lambda_hat : VariableR
        Change of the intermediate dual variable since the last checkpoint.
    delta_lambda : VariableR
        Change of the dual variable since the last checkpoint.
    delta_H_hat : VariableR
        -A(x - x_checkpoint).
    delta_G_hat : VariableR
        -B(y - y_checkpoint).
    inner_product : callable
        Inner product on the residual space, ``(u, v, *args) -> float``.
    *args
        Problem context forwarded to ``inner_product``.

    Returns
    -------
    SpectralEstimates
    """
    dlh_dlh = float(inner_product(delta_lambda_hat, delta_lambda_hat, *args))
    dH_dlh = float(inner_product(delta_H_hat, delta_lambda_hat, *args))
    dH_dH = float(inner_product(delta_H_hat, delta_H_hat, *args))

    dl_dl = float(inner_product(delta_lambda, delta_lambda, *args))
    dG_dl = float(inner_product(delta_G_hat, delta_lambda, *args))
    dG_dG = float(inner_product(delta_G_hat, delta_G_hat, *args))

    alpha_sd, alpha_mg, alpha, alpha_cor = _curvature_estimates(
        dlh_dlh, dH_dlh, dH_dH)
    beta_sd, beta_mg, beta, beta_cor = _curvature_estimates(
        dl_dl, dG_dl, dG_dG)

    return SpectralEstimates(
        alpha_sd=alpha_sd,
        alpha_mg=alpha_mg,
        alpha=alpha,
        alpha_cor=alpha_cor,
        beta_sd=beta_sd,
        beta_mg=beta_mg,
        beta=beta,
        beta_cor=beta_cor,
    )


def spectral_penalty_parameter_update(
    delta_lambda_hat: VectorSpaceElement,
    delta_lambda: VectorSpaceElement,
    delta_H_hat: VectorSpaceElement,
    delta_G_hat: VectorSpaceElement,
    inner_product: InnerProduct,
    eps_cor: float,
    rho: float,
    *args: Any,
) -> float:
    """
    Spectral update of the penalty parameter with the correlation
    safeguard of eq. (30) in "Adaptive ADMM with Spectral Penalty
    Parameter Selection".

    Parameters
    ----------
    delta_lambda_hat, delta_lambda, delta_H_hat, delta_G_hat : VariableR
        Differences accumulated since the last adaptation checkpoint
        (see :func:`spectral_stepsize_estimates`).
    inner_product : callable
        Inner product on the residual space.
    eps_cor : float
        Minimum correlation in (0, 1) for an estimate to be trusted.
    rho : float
        Current penalty parameter, returned when no estimate is trusted.
    *args
        Problem context forwarded to ``inner_product``.

    Returns
    -------
    float
        ``sqrt(alpha * beta)`` if both estimates are trusted, the trusted
        one if only one is, and ``rho`` otherwise.
    """
    est = spectral_stepsize_estimates(
        delta_lambda_hat, delta_lambda, delta_H_hat, delta_G_hat,
        inner_product, *args)

    alpha_trusted = est.alpha_cor > eps_cor
    beta_trusted = est.beta_cor > eps_cor

    if alpha_trusted and beta_trusted:
        product = est.alpha * est.beta
        candidate = math.sqrt(product) if product > 0.0 else math.nan
    elif alpha_trusted:
        candidate = est.alpha
    elif beta_trusted:
        candidate = est.beta
    else:
        return rho

    if math.isfinite(candidate) and candidate > 0.0:
        return candidate
    return rho
