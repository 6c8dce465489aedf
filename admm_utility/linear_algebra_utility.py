"""
File: linear_algebra_utility.py

A utility module for building the collaborators that python_admm.admm
expects (linear operators, inner products and variable types) from
numpy data.

This module provides:
- Inner products on dense arrays (Euclidean and SPD-weighted).
- Linear operators from matrices (numpy arrays or scipy.sparse matrices),
  together with their adjoints.
- BlockVector: a variable type for block-structured state, e.g. the local
  copies of a consensus problem, with the vector-space algebra required by
  the ADMM engine.
"""
from __future__ import annotations

from typing import Any, Callable, Iterator, Sequence, Tuple

import numpy as np


# ============================================================================
# Inner products
# ============================================================================
def euclidean_inner_product(u: Any, v: Any, *args: Any) -> float:
    """Real part of the Euclidean inner product; arrays are flattened."""
    return float(np.real(np.vdot(u, v)))


def weighted_inner_product(W: Any) -> Callable[..., float]:
    """
    Create the inner product ``<u, v>_W = u^T W v``.

    Parameters
    ----------
    W : np.ndarray or sparse matrix
        Symmetric positive-definite weight matrix.

    Returns
    -------
    callable
        Function with signature ``inner_product(u, v, *args) -> float``.
    """
    def inner_product(u: Any, v: Any, *args: Any) -> float:
        return float(np.real(np.vdot(u, W @ v)))
    return inner_product


# ============================================================================
# Linear operators
# ============================================================================
def identity_operator(v: Any, *args: Any) -> Any:
    return v


def negated_identity_operator(v: Any, *args: Any) -> Any:
    return -v


def matrix_operator(M: Any) -> Callable[..., Any]:
    """
    Wrap a matrix as a linear operator ``v -> M @ v``.

    Parameters
    ----------
    M : np.ndarray or sparse matrix
        Matrix representation of the operator.

    Returns
    -------
    callable
        Function with signature ``operator(v, *args) -> M @ v``.
    """
    def operator(v: Any, *args: Any) -> Any:
        return M @ v
    return operator


def matrix_operator_pair(M: Any) -> Tuple[Callable[..., Any], Callable[..., Any]]:
    """Return the operators ``v -> M @ v`` and ``w -> M^T @ w``."""
    return matrix_operator(M), matrix_operator(M.T)


def block_diagonal_operator(*operators: Callable[..., Any]) -> Callable[..., Any]:
    """
    Apply one operator per block of a :class:`BlockVector`.

    The context ``*args`` is forwarded to every block operator.
    """
    def operator(v: BlockVector, *args: Any) -> BlockVector:
        assert v.num_blocks == len(operators), \
            "number of blocks must match number of operators"
        return BlockVector([op(block, *args) for op, block in zip(operators, v)])
    return operator


# ============================================================================
# Block-structured variables
# ============================================================================
class BlockVector:
    """
    Ordered collection of numpy arrays treated as one vector.

    Supports ``+``, ``-`` (binary and unary) between block vectors of the
    same structure, and multiplication / division by scalars.  Arrays in
    different blocks may have different shapes.

    Parameters
    ----------
    blocks : sequence of array_like
        The blocks.  Each is converted with ``np.asarray``.
    """

    # Make numpy defer to BlockVector.__rmul__ in ``np.float64 * BlockVector``
    __array_ufunc__ = None

    def __init__(self, blocks: Sequence[Any]):
        self._blocks: Tuple[np.ndarray, ...] = tuple(
            np.asarray(b) for b in blocks)

    @property
    def num_blocks(self) -> int:
        return len(self._blocks)

    @property
    def blocks(self) -> Tuple[np.ndarray, ...]:
        return self._blocks

    @classmethod
    def zeros_like(cls, other: BlockVector) -> BlockVector:
        return cls([np.zeros_like(b) for b in other])

    def copy(self) -> BlockVector:
        return BlockVector([b.copy() for b in self._blocks])

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(self._blocks)

    def __getitem__(self, index: int) -> np.ndarray:
        return self._blocks[index]

    def _check_structure(self, other: BlockVector) -> None:
        if not isinstance(other, BlockVector):
            raise TypeError(
                f"unsupported operand type: {type(other).__name__}")
        if other.num_blocks != self.num_blocks:
            raise ValueError(
                f"block count mismatch: {self.num_blocks} != {other.num_blocks}")

    def __add__(self, other: BlockVector) -> BlockVector:
        self._check_structure(other)
        return BlockVector([a + b for a, b in zip(self._blocks, other)])

    def __sub__(self, other: BlockVector) -> BlockVector:
        self._check_structure(other)
        return BlockVector([a - b for a, b in zip(self._blocks, other)])

    def __neg__(self) -> BlockVector:
        return BlockVector([-a for a in self._blocks])

    def __mul__(self, scalar: float) -> BlockVector:
        if isinstance(scalar, BlockVector):
            return NotImplemented
        return BlockVector([scalar * a for a in self._blocks])

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> BlockVector:
        return BlockVector([a / scalar for a in self._blocks])

    def __repr__(self) -> str:
        return f"BlockVector({list(self._blocks)!r})"


def block_inner_product(u: BlockVector, v: BlockVector, *args: Any) -> float:
    """Sum of the Euclidean inner products of corresponding blocks."""
    return float(sum(euclidean_inner_product(a, b) for a, b in zip(u, v)))
