"""
Tests for the condition system.

Conditions are immutable structure; completeness decides whether they
may be confirmed.
"""

import dataclasses

import pytest

from sflm.expressions import Combinator, Condition, ConditionOperator, LogicSet


class TestConditionOperator:
    @pytest.mark.parametrize("token, expected", [
        ("equals", ConditionOperator.EQUALS),
        ("NOT_EQUALS", ConditionOperator.NOT_EQUALS),
        (" contains ", ConditionOperator.CONTAINS),
        ("is_empty", ConditionOperator.IS_EMPTY),
    ])
    def test_parse(self, token, expected):
        assert ConditionOperator.parse(token) is expected

    def test_parse_unknown(self):
        assert ConditionOperator.parse("resembles") is None

    def test_requires_value(self):
        assert ConditionOperator.EQUALS.requires_value
        assert ConditionOperator.GREATER_THAN.requires_value
        assert not ConditionOperator.IS_EMPTY.requires_value
        assert not ConditionOperator.IS_NOT_EMPTY.requires_value


class TestCombinator:
    def test_and(self):
        assert Combinator.AND.combine([True, True])
        assert not Combinator.AND.combine([True, False])

    def test_or(self):
        assert Combinator.OR.combine([False, True])
        assert not Combinator.OR.combine([False, False])

    def test_accepts_generators(self):
        assert Combinator.OR.combine(x > 1 for x in [0, 2])


class TestCondition:
    def test_complete_condition(self):
        condition = Condition("c1", "Q1", ConditionOperator.EQUALS, "Yes")
        assert condition.is_complete
        assert condition.missing_fields() == ()

    def test_missing_everything(self):
        assert Condition("c1").missing_fields() == ("question_label", "operator")

    def test_missing_value(self):
        condition = Condition("c1", "Q1", ConditionOperator.CONTAINS, "   ")
        assert condition.missing_fields() == ("value",)

    def test_value_not_needed_for_emptiness_tests(self):
        assert Condition("c1", "Q1", ConditionOperator.IS_EMPTY).is_complete

    def test_condition_is_frozen(self):
        condition = Condition("c1", "Q1", ConditionOperator.EQUALS, "Yes")
        with pytest.raises(dataclasses.FrozenInstanceError):
            condition.value = "No"

    def test_replace_produces_new_object(self):
        condition = Condition("c1", "Q1", ConditionOperator.EQUALS, "Yes")
        changed = dataclasses.replace(condition, question_label="Q2")
        assert condition.question_label == "Q1"
        assert changed.question_label == "Q2"


def test_logic_set_defaults():
    logic_set = LogicSet("ls1")
    assert logic_set.combinator is Combinator.AND
    assert logic_set.conditions == ()
    assert not logic_set.confirmed
