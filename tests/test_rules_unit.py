"""Tests for the MRP Bellman rewrite catalog."""

import pytest

from solver.errors import RuleTransformError
from solver.rules import (
    BELLMAN, MRP_BELLMAN_RULES, SUGGESTED_PATH, normalize,
)

RULES = {rule.id: rule for rule in MRP_BELLMAN_RULES}

# Expression after each rule of the suggested path, starting from v(s).
CANONICAL_STEPS = [
    r"\mathbb{E}[G_t\mid S_t=s]",
    r"\mathbb{E}[\sum_{k=0}^{\infty} \gamma^k R_{t+1+k}\mid S_t=s]",
    r"\mathbb{E}[R_{t+1} + \gamma \sum_{k=0}^{\infty} \gamma^k R_{t+2+k}\mid S_t=s]",
    r"\mathbb{E}[R_{t+1}\mid S_t=s] + \gamma\,\mathbb{E}[\sum_{k=0}^{\infty} \gamma^k R_{t+2+k}\mid S_t=s]",
    r"r(s) + \gamma\,\mathbb{E}[\sum_{k=0}^{\infty} \gamma^k R_{t+2+k}\mid S_t=s]",
    r"r(s) + \gamma\,\sum_{s'} p(s'\mid s)\,\mathbb{E}[\sum_{k=0}^{\infty} \gamma^k R_{t+2+k}\mid S_{t+1}=s']",
    r"r(s) + \gamma\,\sum_{s'} p(s'\mid s)\,v(s')",
    r"v(s) = r(s) + \gamma \sum_{s'} p(s'\mid s) v(s')",
]


def test_catalog_ids_are_unique_and_cover_path() -> None:
    ids = [rule.id for rule in MRP_BELLMAN_RULES]
    assert len(ids) == len(set(ids))
    assert set(SUGGESTED_PATH) <= set(ids)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("  a   b\n\tc ", "a b c"),
        ("", ""),
        ("x", "x"),
    ],
)
def test_normalize(raw: str, expected: str) -> None:
    assert normalize(raw) == expected


def test_suggested_path_produces_bellman_equation() -> None:
    expression = "v(s)"
    for rule_id, expected in zip(SUGGESTED_PATH, CANONICAL_STEPS):
        rule = RULES[rule_id]
        assert rule.applies_to(expression), rule_id
        expression = rule.transform(expression)
        assert expression == expected, rule_id
    assert expression == BELLMAN


def test_each_rule_matches_its_predecessor_output() -> None:
    previous = ["v(s)"] + CANONICAL_STEPS[:-1]
    for rule_id, before in zip(SUGGESTED_PATH, previous):
        assert RULES[rule_id].applies_to(before), rule_id


def test_recursive_return_path() -> None:
    expression = RULES["def-value"].transform("v(s)")
    for rule_id in ("recursive-return", "linearity", "define-r",
                    "total-expectation-next-state", "value-substitution",
                    "assemble-bellman"):
        assert RULES[rule_id].applies_to(expression), rule_id
        expression = RULES[rule_id].transform(expression)
    assert expression == BELLMAN


class TestDefValue:
    def test_pi_subscript(self):
        out = RULES["def-value"].transform(r"v_\pi(s)")
        assert out == r"\mathbb{E}[G_t\mid S_t=s]"

    def test_spacing_variants(self):
        assert RULES["def-value"].applies_to("v ( s )")

    def test_next_state_value_untouched(self):
        assert not RULES["def-value"].applies_to("v(s')")

    def test_keeps_surrounding_text(self):
        out = RULES["def-value"].transform("2 v(s)  + 1")
        assert out == r"2 \mathbb{E}[G_t\mid S_t=s] + 1"


class TestDefReturn:
    def test_not_applicable_once_sum_present(self):
        assert not RULES["def-return"].applies_to(CANONICAL_STEPS[1])

    def test_not_confused_by_next_return(self):
        assert not RULES["def-return"].applies_to(r"\mathbb{E}[G_{t+1}\mid S_t=s]")


class TestUnrollReturn:
    def test_missing_sum_raises_with_expected_form(self):
        with pytest.raises(RuleTransformError, match=r"R_\{t\+1\+k\}"):
            RULES["unroll-return"].transform(r"\mathbb{E}[G_t\mid S_t=s]")

    def test_already_unrolled_raises(self):
        assert RULES["unroll-return"].applies_to(CANONICAL_STEPS[2])
        with pytest.raises(RuleTransformError, match="Expected the return sum"):
            RULES["unroll-return"].transform(CANONICAL_STEPS[2])

    def test_display_form_shows_the_unrolled_sum(self):
        form = RULES["unroll-return"].display_form
        assert form != RULES["recursive-return"].display_form
        assert r"R_{t+2+k}" in form


class TestLinearity:
    def test_keeps_text_outside_expectation(self):
        out = RULES["linearity"].transform(
            r"x + \mathbb{E}[R_{t+1} + \gamma G_{t+1}\mid S_t=s] + y"
        )
        assert out == (
            r"x + \mathbb{E}[R_{t+1}\mid S_t=s] + "
            r"\gamma\,\mathbb{E}[G_{t+1}\mid S_t=s] + y"
        )

    def test_already_split_raises(self):
        assert RULES["linearity"].applies_to(CANONICAL_STEPS[3])
        with pytest.raises(RuleTransformError, match="inside expectation"):
            RULES["linearity"].transform(CANONICAL_STEPS[3])

    def test_missing_bar_raises(self):
        with pytest.raises(RuleTransformError, match="conditional bar"):
            RULES["linearity"].transform(r"\mathbb{E}[R_{t+1} + \gamma X]")


class TestTotalExpectation:
    def test_not_applicable_to_first_reward_sum(self):
        # R_{t+1+k} still depends on S_t, so conditioning on S_{t+1} is not offered.
        assert not RULES["total-expectation-next-state"].applies_to(CANONICAL_STEPS[1])

    def test_near_miss_raises(self):
        near = r"r(s) + \gamma\,\mathbb{E}[G_{t+1} + c\mid S_t=s]"
        rule = RULES["total-expectation-next-state"]
        assert rule.applies_to(near)
        with pytest.raises(RuleTransformError):
            rule.transform(near)


class TestValueSubstitution:
    def test_no_recognised_expectation_raises(self):
        near = r"\mathbb{E}[R_{t+3}\mid S_{t+1}=s']"
        rule = RULES["value-substitution"]
        assert rule.applies_to(near)
        with pytest.raises(RuleTransformError, match="S_\\{t\\+1\\}=s'"):
            rule.transform(near)


class TestAssembleBellman:
    def test_accepts_without_thin_spaces(self):
        out = RULES["assemble-bellman"].transform(
            r"r(s) + \gamma \sum_{s'} p(s'\mid s) v(s')"
        )
        assert out == BELLMAN

    def test_final_equation_does_not_reassemble(self):
        rule = RULES["assemble-bellman"]
        assert rule.applies_to(BELLMAN)
        with pytest.raises(RuleTransformError, match="Expected r\\(s\\)"):
            rule.transform(BELLMAN)


def test_predicates_return_bool_for_arbitrary_text() -> None:
    for rule in MRP_BELLMAN_RULES:
        for text in ("", "x", "]]][[[", r"\mid"):
            assert rule.applies_to(text) in (True, False)


def test_transforms_normalise_whitespace() -> None:
    out = RULES["define-r"].transform(r"  \mathbb{E}[R_{t+1}\mid S_t=s]   +   1 ")
    assert out == "r(s) + 1"
