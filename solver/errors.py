"""Error types raised by the solver package.

Every input or numeric failure derives from ``SolverError`` (a
``ValueError``), so callers that already turn ``ValueError`` into a
user-facing message keep working.
"""


class SolverError(ValueError):
    """Base class for recoverable solver and rule failures."""


# ── Matrix kernel ────────────────────────────────────────────────────────

class ShapeMismatch(SolverError):
    """Raised when two matrices cannot be combined elementwise."""


class DimensionMismatch(SolverError):
    """Raised when the right-hand side does not fit the system matrix."""


class SingularMatrix(SolverError):
    """Raised when a pivot falls below the elimination tolerance."""


# ── Value-function inputs ────────────────────────────────────────────────

class NonSquareMatrix(SolverError):
    """Raised when the transition matrix text is not n×n."""


class VectorLengthMismatch(SolverError):
    """Raised when the reward vector length differs from the matrix size."""


class InvalidNumber(SolverError):
    """Raised when a numeric token cannot be read as a real number."""


# ── Rewrite rules ────────────────────────────────────────────────────────

class RuleTransformError(SolverError):
    """A rule matched, but the expression lacks the exact form it rewrites."""


class UnknownRule(KeyError):
    """Raised when a rule id is not in the catalog."""

    def __str__(self) -> str:
        return f"Unknown rule: {self.args[0]!r}" if self.args else "Unknown rule"
