"""Closed-form value function of a Markov reward process.

Reads the discount factor γ, the transition matrix P and the reward vector
R from plain text, then solves

    (I − γP) · V = R

with the elimination kernel in ``solver.matrix``, producing a
step-by-step trail in the same shape as the other solvers.

Input format::

    gamma : "0.9"
    P     : "0.5,0.5\\n0.2,0.8"     (rows on lines, entries comma-separated)
    R     : "1,0"
"""

import logging
import math
import re
import time
from datetime import datetime

import numpy as np
import sympy
from sympy.parsing.sympy_parser import (
    parse_expr, standard_transformations, convert_xor, rationalize,
)

from solver import matrix
from solver.errors import (
    InvalidNumber, NonSquareMatrix, SingularMatrix, VectorLengthMismatch,
)

logger = logging.getLogger(__name__)

TRANSFORMATIONS = standard_transformations + (
    convert_xor,
    rationalize,  # "0.1" → 1/10, so "1 - 0.9" stays exact until float()
)

# Digits, decimal points, exponents, signs and simple arithmetic only.
_NUMBER_CHARS = re.compile(r"^[0-9eE.+\-*/^()\s]+$")
# Exponents of decimal literals such as "1e9999".
_LONG_EXPONENT = re.compile(r"[eE][+-]?\d{4,}")

# Largest number of decimal digits a power may produce.
MAX_MAGNITUDE = 400

# Residuals below this count as an exact match in the verification trail.
RESIDUAL_TOLERANCE = 1e-9


# ── Numeric formatting helpers ──────────────────────────────────────────

def _fmt_num(value: float, max_decimals: int = 10) -> str:
    """Format a float into a clean decimal string.

    - Removes trailing zeros after the decimal point.
    - Uses up to *max_decimals* digits of precision.
    - Returns integers without a decimal point (e.g. ``7`` not ``7.0``).
    """
    if abs(value - round(value)) < 1e-12:
        return str(int(round(value)))
    formatted = f"{value:.{max_decimals}f}".rstrip("0").rstrip(".")
    return formatted


def _format_vector(v) -> str:
    return "[" + ", ".join(_fmt_num(float(x)) for x in v) + "]"


def _format_matrix(A: np.ndarray) -> str:
    """Format a 2-D NumPy array as a readable bracketed matrix."""
    rows = []
    for row in A:
        rows.append(_format_vector(row))
    return "[" + ", ".join(rows) + "]"


# ── Input parsing ────────────────────────────────────────────────────────

def _bounded(expr):
    """Evaluate an unevaluated numeric tree bottom-up.

    Powers whose result would have more than ``MAX_MAGNITUDE`` decimal
    digits (in either direction) are refused before they are computed.
    """
    if expr.is_Number or expr.is_NumberSymbol:
        return expr
    if expr.free_symbols:
        raise InvalidNumber("Expected a number, got a symbol.")
    if expr.is_Pow:
        base = _bounded(expr.base)
        exponent = _bounded(expr.exp)
        if base.is_finite is not True or exponent.is_finite is not True:
            raise InvalidNumber("Number is not finite.")
        if base != 0:
            digits = abs(exponent * sympy.log(abs(base), 10).evalf())
            if digits > MAX_MAGNITUDE:
                raise InvalidNumber(
                    f"Power is out of range (about {int(digits)} digits)."
                )
        return sympy.Pow(base, exponent)
    return expr.func(*(_bounded(arg) for arg in expr.args))


def parse_scalar(text: str) -> float:
    """Read one real number such as ``0.9``, ``9/10`` or ``2^-1``."""
    token = text.strip()
    if not token:
        raise InvalidNumber("Expected a number, got an empty value.")
    if not _NUMBER_CHARS.match(token):
        raise InvalidNumber(f"Invalid number: '{token}'.")
    if _LONG_EXPONENT.search(token):
        raise InvalidNumber(f"'{token}' is out of range.")
    try:
        tree = parse_expr(token, transformations=TRANSFORMATIONS, evaluate=False)
    except Exception as e:
        raise InvalidNumber(f"Could not parse number: '{token}'. Error: {e}")
    try:
        expr = _bounded(tree)
    except InvalidNumber as e:
        raise InvalidNumber(f"'{token}': {e}")
    if expr.free_symbols or expr.is_real is not True or expr.is_finite is not True:
        raise InvalidNumber(f"'{token}' is not a finite real number.")
    try:
        value = float(expr)
    except (OverflowError, TypeError, ValueError):
        raise InvalidNumber(f"'{token}' is out of range.")
    if not math.isfinite(value):
        raise InvalidNumber(f"'{token}' is out of range.")
    return value


def parse_matrix(text: str) -> np.ndarray:
    """Parse newline-separated rows of comma-separated numbers into an n×n matrix.

    Blank lines are ignored. Raises ``NonSquareMatrix`` unless every row
    has exactly as many entries as there are rows.
    """
    lines = [line for line in text.strip().splitlines() if line.strip()]
    if not lines:
        raise NonSquareMatrix("P must be square, got no rows.")
    cells = [line.split(",") for line in lines]
    n = len(cells)
    for i, row in enumerate(cells):
        if len(row) != n:
            raise NonSquareMatrix(
                f"P must be square: row {i + 1} has {len(row)} entries, "
                f"expected {n}."
            )
    return np.array([[parse_scalar(c) for c in row] for row in cells])


def parse_vector(text: str, n: int) -> np.ndarray:
    """Parse comma-separated numbers; raises ``VectorLengthMismatch`` unless there are *n*."""
    cells = text.strip().split(",")
    if len(cells) != n:
        raise VectorLengthMismatch(
            f"R length mismatch: got {len(cells)} entries, expected {n}."
        )
    return np.array([parse_scalar(c) for c in cells])


# ── Main public entry point ─────────────────────────────────────────────

def solve_value_function(gamma_text: str, p_text: str, r_text: str) -> dict:
    """
    Solve ``V = (I − γP)^{-1} R`` for a Markov reward process.

    Returns a trail-format dict with ``equation``, ``given``, ``method``,
    ``steps``, ``final_answer``, ``values``, ``verification_steps`` and
    ``summary``. Input errors (``InvalidNumber``, ``NonSquareMatrix``,
    ``VectorLengthMismatch``) and ``SingularMatrix`` propagate.
    """
    t_start = time.perf_counter()

    gamma = parse_scalar(gamma_text)
    P = parse_matrix(p_text)
    n = P.shape[0]
    R = parse_vector(r_text, n)

    A = matrix.subtract(matrix.identity(n), matrix.scale(P, gamma))
    if not np.all(np.isfinite(A)):
        raise InvalidNumber("I − γP overflows: γ or P entries are too large.")
    V = matrix.solve(A, R)
    if not np.all(np.isfinite(V)):
        raise SingularMatrix("Solution overflows: the system is numerically unstable.")
    logger.info("Solved value function for %d states (gamma=%s)", n, _fmt_num(gamma))

    steps = [
        {
            "description": "Read the transition matrix",
            "expression": f"P = {_format_matrix(P)}",
            "explanation": (
                f"Row i of P holds the probabilities p(s'|s_i) of moving "
                f"from state s_i to each of the {n} states."
            ),
        },
        {
            "description": "Read the discount factor and rewards",
            "expression": f"γ = {_fmt_num(gamma)},  R = {_format_vector(R)}",
            "explanation": "R holds the expected one-step reward r(s) of each state.",
        },
        {
            "description": "Write the Bellman equation in matrix form",
            "expression": "V = R + γPV   ⇒   (I − γP)V = R",
            "explanation": (
                "Stacking v(s) = r(s) + γ Σ p(s'|s) v(s') over all states "
                "gives a linear system in V."
            ),
        },
        {
            "description": "Form the system matrix I − γP",
            "expression": f"I − γP = {_format_matrix(A)}",
            "explanation": f"Subtract γ·P from the {n}×{n} identity matrix.",
        },
        {
            "description": "Solve by Gaussian elimination with partial pivoting",
            "expression": f"V = {_format_vector(V)}",
            "explanation": (
                "Eliminate column by column using the largest available "
                "pivot, then back-substitute from the last row."
            ),
        },
    ]

    verification_steps = _build_verification(A, V, R)

    for i, s in enumerate(steps, 1):
        s["step_number"] = i
    for i, s in enumerate(verification_steps, 1):
        s["step_number"] = i

    max_residual = float(np.max(np.abs(matrix.residual(A, V, R)))) if n else 0.0
    t_end = time.perf_counter()

    return {
        "equation": "V = (I − γP)⁻¹ R",
        "given": {
            "problem": "Compute the state values of a Markov reward process",
            "inputs": {
                "gamma": _fmt_num(gamma),
                "transition_matrix": _format_matrix(P),
                "rewards": _format_vector(R),
                "states": n,
            },
        },
        "method": {
            "name": "Direct Solve (Gaussian Elimination)",
            "description": (
                "Solve the linear Bellman system with partial pivoting "
                "using NumPy floating-point arithmetic."
            ),
            "parameters": {
                "pivot_tolerance": matrix.PIVOT_TOLERANCE,
                "approach": "Form I − γP → Eliminate → Back-substitute",
            },
        },
        "steps": steps,
        "final_answer": f"V = {_format_vector(V)}",
        "values": [float(v) for v in V],
        "verification_steps": verification_steps,
        "summary": {
            "runtime_ms": round((t_end - t_start) * 1000, 2),
            "total_steps": len(steps),
            "verification_steps": len(verification_steps),
            "max_residual": max_residual,
            "validation_status": "pass" if max_residual < RESIDUAL_TOLERANCE else "fail",
            "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "library": f"NumPy {np.__version__}",
        },
    }


def _build_verification(A: np.ndarray, V: np.ndarray, R: np.ndarray) -> list:
    """Substitute V back into (I − γP)V and compare with R row by row."""
    lhs = matrix.mat_vec(A, V)
    verification_steps = [{
        "description": "Multiply the system matrix by V",
        "expression": f"(I − γP)V = {_format_vector(lhs)}",
        "explanation": "Recompute the left-hand side with the solved values.",
    }]

    for i, (got, want) in enumerate(zip(lhs, R)):
        ok = abs(got - want) < RESIDUAL_TOLERANCE
        verification_steps.append({
            "description": f"Check row {i + 1}",
            "expression": (
                f"{_fmt_num(float(got))} {'=' if ok else '≠'} "
                f"{_fmt_num(float(want))}  {'✓' if ok else '✗'}"
            ),
            "explanation": (
                f"Row {i + 1} reproduces r(s_{i + 1}) = {_fmt_num(float(want))}."
                if ok else
                f"Row {i + 1} differs from r(s_{i + 1}) by "
                f"{abs(float(got - want)):.3g}."
            ),
        })
    return verification_steps
