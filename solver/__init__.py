from solver.engine import applicable_rules, apply_rule, find_rule
from solver.history import Derivation
from solver.numerical import solve_value_function
from solver.rules import (
    MRP_BELLMAN_RULES, START_STEP, SUGGESTED_PATH, DerivationStep, RewriteRule,
)

__all__ = [
    "applicable_rules",
    "apply_rule",
    "find_rule",
    "Derivation",
    "solve_value_function",
    "MRP_BELLMAN_RULES",
    "START_STEP",
    "SUGGESTED_PATH",
    "DerivationStep",
    "RewriteRule",
]
