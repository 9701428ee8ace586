"""Rule engine: which rewrite rules apply, and applying one of them.

The engine holds no state. Callers own the derivation history and call
these functions again whenever the current expression changes.
"""

import logging
from typing import Iterable

from solver.errors import UnknownRule
from solver.rules import DerivationStep, RewriteRule

logger = logging.getLogger(__name__)


def applicable_rules(expression: str, rules: Iterable[RewriteRule]) -> list[RewriteRule]:
    """Return the rules whose predicate accepts *expression*, in catalog order.

    A predicate that raises is treated as "does not apply", so one broken
    rule never hides the others.
    """
    matches = []
    for rule in rules:
        try:
            if rule.applies_to(expression):
                matches.append(rule)
        except Exception as e:
            logger.debug("Predicate of rule %r raised %r; skipping", rule.id, e)
    return matches


def apply_rule(step: DerivationStep, rule: RewriteRule) -> DerivationStep:
    """Apply *rule* to the expression of *step* and return the next step.

    Errors from the transform (normally ``RuleTransformError``) propagate to
    the caller unchanged.
    """
    next_expression = rule.transform(step.expression)
    logger.info("Applied rule %r", rule.id)
    return DerivationStep(
        expression=next_expression,
        rule_id=rule.id,
        rule_name=rule.name,
        explanation=rule.explanation,
    )


def find_rule(rule_id: str, rules: Iterable[RewriteRule]) -> RewriteRule:
    """Look a rule up by id; raises ``UnknownRule`` if it is not there."""
    for rule in rules:
        if rule.id == rule_id:
            return rule
    raise UnknownRule(rule_id)
