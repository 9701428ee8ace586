"""Dense matrix and vector helpers built on NumPy.

Matrices and vectors are ``float64`` arrays. Every function returns a new
array and leaves its arguments untouched, so callers may pass plain nested
lists or arrays they intend to reuse.
"""

import logging

import numpy as np

from solver.errors import DimensionMismatch, ShapeMismatch, SingularMatrix

logger = logging.getLogger(__name__)

# Pivots smaller than this are treated as zero.
PIVOT_TOLERANCE = 1e-12


def _as_matrix(A) -> np.ndarray:
    rows = [np.asarray(row, dtype=float).ravel() for row in A]
    if not rows:
        return np.zeros((0, 0))
    widths = {len(row) for row in rows}
    if len(widths) != 1:
        raise ShapeMismatch(
            f"Matrix rows have different lengths: {sorted(widths)}."
        )
    return np.vstack(rows)


def _as_vector(b) -> np.ndarray:
    return np.array(b, dtype=float).ravel()


def identity(n: int) -> np.ndarray:
    """Return the n×n identity matrix (an empty matrix when n is 0)."""
    if n < 0:
        raise ValueError(f"Matrix size must be non-negative, got {n}.")
    return np.eye(n)


def scale(A, c: float) -> np.ndarray:
    """Return a new matrix with every entry of *A* multiplied by *c*."""
    return float(c) * _as_matrix(A)


def subtract(A, B) -> np.ndarray:
    """Return ``A - B`` elementwise.

    Raises ``ShapeMismatch`` when the row counts differ or any row of *A*
    has a different column count from the matching row of *B*.
    """
    if len(A) != len(B):
        raise ShapeMismatch(
            f"Matrix shape mismatch: {len(A)} rows vs {len(B)} rows."
        )
    for i, (row_a, row_b) in enumerate(zip(A, B)):
        if len(row_a) != len(row_b):
            raise ShapeMismatch(
                f"Matrix shape mismatch in row {i}: "
                f"{len(row_a)} columns vs {len(row_b)} columns."
            )
    return _as_matrix(A) - _as_matrix(B)


def mat_vec(A, x) -> np.ndarray:
    """Matrix-vector product ``A·x``."""
    M = _as_matrix(A)
    v = _as_vector(x)
    if M.shape[1] != v.shape[0]:
        raise DimensionMismatch(
            f"Cannot multiply a {M.shape[0]}×{M.shape[1]} matrix "
            f"by a vector of length {v.shape[0]}."
        )
    return M @ v


def residual(A, x, b) -> np.ndarray:
    """Return ``A·x - b``, the per-row error of a candidate solution."""
    return mat_vec(A, x) - _as_vector(b)


def solve(A, b) -> np.ndarray:
    """
    Solve ``A·x = b`` by Gaussian elimination with partial pivoting.

    For each column the row with the largest absolute entry (at or below
    the diagonal) is swapped into the pivot position, the rows below are
    eliminated, and the triangular system is back-substituted.

    Raises
    ------
    DimensionMismatch
        If ``len(b) != len(A)`` or *A* is not square.
    SingularMatrix
        If a pivot's magnitude is below ``PIVOT_TOLERANCE``.
    """
    M = _as_matrix(A)
    rhs = _as_vector(b)
    n = M.shape[0]

    if rhs.shape[0] != n:
        raise DimensionMismatch(
            f"Right-hand side has length {rhs.shape[0]}, expected {n}."
        )
    if M.shape[1] != n:
        raise DimensionMismatch(
            f"System matrix must be square, got {M.shape[0]}×{M.shape[1]}."
        )

    # ── Forward elimination ──────────────────────────────────────────
    for col in range(n):
        pivot = col + int(np.argmax(np.abs(M[col:, col])))
        if abs(M[pivot, col]) < PIVOT_TOLERANCE:
            raise SingularMatrix(
                f"Matrix is singular or ill-conditioned "
                f"(pivot {M[pivot, col]:.3g} in column {col})."
            )
        if pivot != col:
            M[[col, pivot]] = M[[pivot, col]]
            rhs[[col, pivot]] = rhs[[pivot, col]]

        factors = M[col + 1:, col] / M[col, col]
        M[col + 1:, col:] -= np.outer(factors, M[col, col:])
        rhs[col + 1:] -= factors * rhs[col]

    # ── Back substitution ────────────────────────────────────────────
    x = np.zeros(n)
    for r in range(n - 1, -1, -1):
        x[r] = (rhs[r] - M[r, r + 1:] @ x[r + 1:]) / M[r, r]

    logger.debug("Solved %d×%d system", n, n)
    return x
