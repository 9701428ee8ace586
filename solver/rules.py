"""Rewrite rules for deriving the Bellman expectation equation of an MRP.

Rules work on the LaTeX text of the current step, not on a parsed
expression. Each rule pairs an ``applies_to`` predicate with a
``transform``; a transform either returns the rewritten text or raises
``RuleTransformError`` when the text is close to, but not exactly, the
form it knows how to rewrite.

Canonical path::

    v(s)
      → \\mathbb{E}[G_t\\mid S_t=s]                          def-value
      → \\mathbb{E}[\\sum_{k=0}^{\\infty} \\gamma^k R_{t+1+k}\\mid S_t=s]
      → ... R_{t+1} + \\gamma \\sum ... R_{t+2+k} ...        unroll-return
      → \\mathbb{E}[R_{t+1}\\mid S_t=s] + \\gamma\\,\\mathbb{E}[...]
      → r(s) + \\gamma\\,\\mathbb{E}[...\\mid S_t=s]          define-r
      → r(s) + \\gamma\\,\\sum_{s'} p(s'\\mid s)\\,\\mathbb{E}[...\\mid S_{t+1}=s']
      → r(s) + \\gamma\\,\\sum_{s'} p(s'\\mid s)\\,v(s')
      → v(s) = r(s) + \\gamma \\sum_{s'} p(s'\\mid s) v(s')
"""

import functools
import re
from dataclasses import dataclass
from typing import Callable, Optional

from solver.errors import RuleTransformError


@dataclass(frozen=True)
class DerivationStep:
    """One entry in a derivation: an expression and how it was produced."""

    expression: str
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    explanation: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "expression": self.expression,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class RewriteRule:
    """A named, pure (predicate, transform) pair."""

    id: str
    name: str
    applies_to: Callable[[str], bool]
    transform: Callable[[str], str]
    explanation: str
    display_form: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "display_form": self.display_form,
            "explanation": self.explanation,
        }


START_STEP = DerivationStep(
    expression="v(s)",
    rule_name="Start",
    explanation="Start from the value function for a state s.",
)


def normalize(expression: str) -> str:
    """Collapse whitespace runs to a single space and trim both ends."""
    return re.sub(r"\s+", " ", expression).strip()


def _normalized(transform: Callable[[str], str]) -> Callable[[str], str]:
    @functools.wraps(transform)
    def wrapper(latex: str) -> str:
        return normalize(transform(latex))
    return wrapper


def _literal(text: str) -> Callable[[re.Match], str]:
    # re.sub would read the backslashes of a LaTeX replacement as escapes.
    return lambda _m: text


# ── LaTeX fragments ──────────────────────────────────────────────────────

E_OPEN = r"\mathbb{E}["
MID = r"\mid"
EXPECTED_RETURN = r"\mathbb{E}[G_t\mid S_t=s]"
SUM_HEAD = r"\sum_{k=0}^{\infty}"
RETURN_SUM = r"\sum_{k=0}^{\infty} \gamma^k R_{t+1+k}"
SHIFTED_SUM = r"\sum_{k=0}^{\infty} \gamma^k R_{t+2+k}"
RECURSIVE_RETURN = r"R_{t+1} + \gamma G_{t+1}"
BELLMAN = r"v(s) = r(s) + \gamma \sum_{s'} p(s'\mid s) v(s')"

_VALUE_RE = re.compile(r"v\s*\(\s*s\s*\)")
_VALUE_PI_RE = re.compile(r"v_\s*\{?\s*\\pi\s*\}?\s*\(\s*s\s*\)")
_G_T_RE = re.compile(r"G_t(?!\w)")
_RETURN_SUM_RE = re.compile(
    r"\\sum_\{k=0\}\^\{\\infty\}\s*\\gamma\^k\s*R_\{t\+1\+k\}"
)
_LINEAR_INSIDE_RE = re.compile(
    r"^R_\{t\+1\}\s*\+\s*\\gamma\s*(?:\\,)?\s*(.+)$", re.DOTALL
)
_EXPECTED_REWARD_RE = re.compile(
    r"\\mathbb\{E\}\[\s*R_\{t\+1\}\s*\\mid\s*S_t\s*=\s*s\s*\]"
)
# Return from t+1 on, as G_{t+1} or as the index-shifted sum.
_FUTURE_RETURN = (
    r"(?:G_\{t\+1\}"
    r"|\\sum_\{k=0\}\^\{\\infty\}\s*\\gamma\^k\s*R_\{t\+2\+k\})"
)
_FUTURE_GIVEN_STATE_LOOSE_RE = re.compile(
    r"\\mathbb\{E\}\[\s*" + _FUTURE_RETURN + r".*?\\mid\s*S_t\s*=\s*s\s*\]"
)
_FUTURE_GIVEN_STATE_RE = re.compile(
    r"\\mathbb\{E\}\[\s*(" + _FUTURE_RETURN + r")\s*\\mid\s*S_t\s*=\s*s\s*\]"
)
_NEXT_STATE_COND_RE = re.compile(r"\\mid\s*S_\{t\+1\}\s*=\s*s'")
_FUTURE_GIVEN_NEXT_RE = re.compile(
    r"\\mathbb\{E\}\[\s*" + _FUTURE_RETURN
    + r"\s*\\mid\s*S_\{t\+1\}\s*=\s*s'\s*\]"
)
_ASSEMBLE_RE = re.compile(
    r"^r\(s\)\s*\+\s*\\gamma\s*(?:\\,)?\s*\\sum_\{s'\}\s*"
    r"p\(s'\s*\\mid\s*s\)\s*(?:\\,)?\s*v\(s'\)$"
)


# ── Definition of value ──────────────────────────────────────────────────

def _has_value(latex: str) -> bool:
    return bool(_VALUE_RE.search(latex) or _VALUE_PI_RE.search(latex))


@_normalized
def _expand_value(latex: str) -> str:
    if not _has_value(latex):
        raise RuleTransformError("Expected the value function v(s) or v_\\pi(s).")
    latex = _VALUE_PI_RE.sub(_literal(EXPECTED_RETURN), latex)
    return _VALUE_RE.sub(_literal(EXPECTED_RETURN), latex)


# ── Return ───────────────────────────────────────────────────────────────

def _has_bare_return(latex: str) -> bool:
    return bool(_G_T_RE.search(latex)) and SUM_HEAD not in latex


@_normalized
def _expand_return(latex: str) -> str:
    if not _G_T_RE.search(latex):
        raise RuleTransformError("Expected the return G_t.")
    return _G_T_RE.sub(_literal(RETURN_SUM), latex)


@_normalized
def _recurse_return(latex: str) -> str:
    if not _G_T_RE.search(latex):
        raise RuleTransformError("Expected the return G_t.")
    return _G_T_RE.sub(_literal(RECURSIVE_RETURN), latex)


def _has_return_sum(latex: str) -> bool:
    return SUM_HEAD in latex or "R_{t+1+k}" in latex


@_normalized
def _unroll_return(latex: str) -> str:
    if not _RETURN_SUM_RE.search(latex):
        raise RuleTransformError(
            "Expected the return sum in the form " + RETURN_SUM
        )
    return _RETURN_SUM_RE.sub(_literal(r"R_{t+1} + \gamma " + SHIFTED_SUM), latex)


# ── Expectation ──────────────────────────────────────────────────────────

def _is_linear_candidate(latex: str) -> bool:
    return all(token in latex for token in (E_OPEN, "R_{t+1}", "+", r"\gamma", MID))


@_normalized
def _split_expectation(latex: str) -> str:
    """Rewrite ``E[R_{t+1} + γ X | C]`` as ``E[R_{t+1} | C] + γ E[X | C]``.

    Only the first expectation is split; text around it is kept.
    """
    start = latex.find(E_OPEN)
    if start < 0:
        raise RuleTransformError("Expected an expression starting with \\mathbb{E}[ ... ]")
    mid = latex.find(MID, start)
    if mid < 0:
        raise RuleTransformError("Expected a conditional bar \\mid inside the expectation.")
    end = latex.find("]", mid)
    if end < 0:
        raise RuleTransformError("Expected a closing ']' for \\mathbb{E}[ ... ].")

    inside = latex[start + len(E_OPEN):mid].strip()
    cond = latex[mid + len(MID):end].strip()

    m = _LINEAR_INSIDE_RE.match(inside)
    if not m:
        raise RuleTransformError("Expected inside expectation: R_{t+1} + \\gamma ( ... )")
    rest = m.group(1).strip()

    split = (
        E_OPEN + "R_{t+1}" + MID + " " + cond + "] + "
        + r"\gamma\," + E_OPEN + rest + MID + " " + cond + "]"
    )
    return latex[:start] + split + latex[end + 1:]


def _has_expected_reward(latex: str) -> bool:
    return bool(_EXPECTED_REWARD_RE.search(latex))


@_normalized
def _define_reward(latex: str) -> str:
    if not _EXPECTED_REWARD_RE.search(latex):
        raise RuleTransformError("Expected \\mathbb{E}[R_{t+1}\\mid S_t=s]")
    return _EXPECTED_REWARD_RE.sub("r(s)", latex)


def _has_future_given_state(latex: str) -> bool:
    return bool(_FUTURE_GIVEN_STATE_LOOSE_RE.search(latex))


@_normalized
def _condition_on_next_state(latex: str) -> str:
    def repl(m: re.Match) -> str:
        future = normalize(m.group(1))
        return (
            r"\sum_{s'} p(s'\mid s)\," + E_OPEN + future
            + r"\mid S_{t+1}=s']"
        )

    next_latex, count = _FUTURE_GIVEN_STATE_RE.subn(repl, latex)
    if count == 0:
        raise RuleTransformError(
            "Expected \\mathbb{E}[G_{t+1}\\mid S_t=s] or "
            "\\mathbb{E}[" + SHIFTED_SUM + "\\mid S_t=s]"
        )
    return next_latex


def _has_next_state_expectation(latex: str) -> bool:
    return E_OPEN in latex and bool(_NEXT_STATE_COND_RE.search(latex))


@_normalized
def _substitute_next_value(latex: str) -> str:
    next_latex, count = _FUTURE_GIVEN_NEXT_RE.subn("v(s')", latex)
    if count == 0:
        raise RuleTransformError(
            "Expected \\mathbb{E}[G_{t+1}\\mid S_{t+1}=s'] or "
            "\\mathbb{E}[" + SHIFTED_SUM + "\\mid S_{t+1}=s']"
        )
    return next_latex


# ── Bellman equation ─────────────────────────────────────────────────────

def _has_bellman_parts(latex: str) -> bool:
    return "r(s)" in latex and r"\sum_{s'}" in latex


@_normalized
def _assemble_bellman(latex: str) -> str:
    if not _ASSEMBLE_RE.match(normalize(latex)):
        raise RuleTransformError(
            "Expected r(s) + \\gamma \\sum_{s'} p(s'\\mid s) v(s')"
        )
    return BELLMAN


MRP_BELLMAN_RULES = (
    RewriteRule(
        id="def-value",
        name="Definition of value",
        display_form=r"v(s)=\mathbb{E}[G_t\mid S_t=s]",
        applies_to=_has_value,
        transform=_expand_value,
        explanation="By definition, the value of state s is the expected return starting from s.",
    ),
    RewriteRule(
        id="def-return",
        name="Expand return definition",
        display_form=r"G_t=\sum_{k=0}^{\infty}\gamma^k R_{t+1+k}",
        applies_to=_has_bare_return,
        transform=_expand_return,
        explanation="Return is the discounted sum of future rewards.",
    ),
    RewriteRule(
        id="recursive-return",
        name="Recursive form of return",
        display_form=r"G_t = R_{t+1} + \gamma G_{t+1}",
        applies_to=lambda latex: bool(_G_T_RE.search(latex)),
        transform=_recurse_return,
        explanation="The return is the next reward plus the discounted return from the next step.",
    ),
    RewriteRule(
        id="unroll-return",
        name="Unroll return",
        display_form=(
            r"\sum_{k=0}^{\infty}\gamma^k R_{t+1+k} = "
            r"R_{t+1} + \gamma\sum_{k=0}^{\infty}\gamma^k R_{t+2+k}"
        ),
        applies_to=_has_return_sum,
        transform=_unroll_return,
        explanation="Split the first reward from the discounted sum (index shift).",
    ),
    RewriteRule(
        id="linearity",
        name="Linearity of expectation",
        display_form=r"\mathbb{E}[X+\gamma Y\mid Z]=\mathbb{E}[X\mid Z]+\gamma\mathbb{E}[Y\mid Z]",
        applies_to=_is_linear_candidate,
        transform=_split_expectation,
        explanation="Expectation is linear; split sums and pull out constants.",
    ),
    RewriteRule(
        id="define-r",
        name="Define expected reward",
        display_form=r"r(s)=\mathbb{E}[R_{t+1}\mid S_t=s]",
        applies_to=_has_expected_reward,
        transform=_define_reward,
        explanation="Define r(s) as the expected one-step reward from state s.",
    ),
    RewriteRule(
        id="total-expectation-next-state",
        name="Law of total expectation over next state",
        display_form=r"\mathbb{E}[f(S_{t+1})\mid S_t=s]=\sum_{s'}p(s'\mid s)f(s')",
        applies_to=_has_future_given_state,
        transform=_condition_on_next_state,
        explanation=(
            "Condition on S_{t+1} using the law of total expectation "
            "(Markov chain transitions)."
        ),
    ),
    RewriteRule(
        id="value-substitution",
        name="Substitute value at next state",
        display_form=r"\mathbb{E}[G_{t+1}\mid S_{t+1}=s']=v(s')",
        applies_to=_has_next_state_expectation,
        transform=_substitute_next_value,
        explanation="Recognize the expected future return from the next state as v(s').",
    ),
    RewriteRule(
        id="assemble-bellman",
        name="Assemble Bellman expectation equation",
        display_form=r"v(s)=r(s)+\gamma\sum_{s'}p(s'\mid s)v(s')",
        applies_to=_has_bellman_parts,
        transform=_assemble_bellman,
        explanation="This is the Bellman expectation equation for an MRP.",
    ),
)

# Rule ids along the lecture derivation, in order.
SUGGESTED_PATH = (
    "def-value",
    "def-return",
    "unroll-return",
    "linearity",
    "define-r",
    "total-expectation-next-state",
    "value-substitution",
    "assemble-bellman",
)
