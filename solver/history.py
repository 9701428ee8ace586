"""Linear derivation history with a cursor.

Applying a rule or editing the active step drops every step after the
cursor before appending the new one; there is no branching tree.
"""

import logging
from typing import Optional, Sequence

from solver.engine import applicable_rules, apply_rule, find_rule
from solver.rules import MRP_BELLMAN_RULES, START_STEP, DerivationStep, RewriteRule

logger = logging.getLogger(__name__)


class Derivation:
    """Steps of one derivation plus the index of the active step."""

    def __init__(self, rules: Sequence[RewriteRule] = MRP_BELLMAN_RULES,
                 start: DerivationStep = START_STEP):
        self.rules = tuple(rules)
        self._start = start
        self._steps: list[DerivationStep] = [start]
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._steps)

    @property
    def steps(self) -> tuple[DerivationStep, ...]:
        return tuple(self._steps)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def active(self) -> DerivationStep:
        return self._steps[self._cursor]

    # ── Cursor and sequence ──────────────────────────────────────────

    def reset(self) -> None:
        self._steps = [self._start]
        self._cursor = 0

    def advance(self, step: DerivationStep) -> DerivationStep:
        """Drop the steps after the cursor, append *step* and make it active."""
        self._steps = self._steps[:self._cursor + 1] + [step]
        self._cursor = len(self._steps) - 1
        return step

    def go_to(self, index: int) -> None:
        if not 0 <= index < len(self._steps):
            raise IndexError(
                f"Step index {index} out of range (0..{len(self._steps) - 1})."
            )
        self._cursor = index

    def back(self) -> None:
        self._cursor = max(0, self._cursor - 1)

    # ── User actions ─────────────────────────────────────────────────

    def applicable(self) -> list[RewriteRule]:
        return applicable_rules(self.active.expression, self.rules)

    def edit(self, expression: str, explanation: Optional[str] = None) -> DerivationStep:
        """Record a hand-edited expression as a new step."""
        return self.advance(DerivationStep(
            expression=expression,
            rule_name="Manual edit",
            explanation=explanation or "You edited the expression.",
        ))

    def apply(self, rule_id: str) -> DerivationStep:
        """Apply the rule with *rule_id* to the active step.

        A failing transform still adds a step, labelled
        ``Rule failed: <name>``, so the failure shows up in the history and
        the expression is carried over unchanged.
        Unknown rule ids raise ``UnknownRule``.
        """
        rule = find_rule(rule_id, self.rules)
        current = self.active
        try:
            next_step = apply_rule(current, rule)
        except Exception as e:
            logger.warning("Rule %r failed: %s", rule.id, e)
            next_step = DerivationStep(
                expression=current.expression,
                rule_name=f"Rule failed: {rule.name}",
                explanation=str(e),
            )
        return self.advance(next_step)
