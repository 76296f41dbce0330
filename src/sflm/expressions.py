"""
Condition System for SFLM

All display, hide, skip and branching rules are built from Condition
objects, never from raw strings. The paste DSL and the CSV grammar are
parsed into these objects at the boundary and rendered back out there.

ARCHITECTURAL RULE:
    Conditions are structure only.
    Evaluation belongs in sflm.evaluation.
    Reference rewriting belongs in sflm.renumber.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class ConditionOperator(Enum):
    """
    Operators a Condition may apply to its source question's answer.

    The vocabulary is closed. Every operator here is also a valid token of
    the paste DSL and of the CSV logic columns.
    """

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"

    @property
    def requires_value(self) -> bool:
        return self not in (ConditionOperator.IS_EMPTY, ConditionOperator.IS_NOT_EMPTY)

    @classmethod
    def parse(cls, token: str) -> Optional["ConditionOperator"]:
        """Return the operator for a DSL token, or None if unrecognized."""
        try:
            return cls(token.strip().lower())
        except ValueError:
            return None


class Combinator(Enum):
    """Boolean combinator joining conditions of a rule."""

    AND = "AND"
    OR = "OR"

    def combine(self, results) -> bool:
        results = list(results)
        if self is Combinator.AND:
            return all(results)
        return any(results)


@dataclass(frozen=True)
class Condition:
    """
    A single test against an earlier question's answer.

    Properties:
        id:
            Stable identifier of the condition itself

        question_label:
            Sequential label of the source question (e.g. "Q3").
            Rewritten by the renumbering engine whenever labels change.
            Empty while the condition is still being drafted.

        operator:
            ConditionOperator, or None while drafting

        value:
            Comparison value. For choice-bearing questions this is the
            choice text, which may embed a variable prefix ("Q1_1 Yes").

        grid_value:
            Scale point id for Choice Grid conditions ("row is answered
            with column"). None otherwise.

        confirmed:
            Only confirmed conditions take part in evaluation.

    IMPORTANT:
        This object is immutable (frozen=True).
        Edits produce new Condition objects via dataclasses.replace.
    """

    id: str
    question_label: str = ""
    operator: Optional[ConditionOperator] = None
    value: str = ""
    grid_value: Optional[str] = None
    confirmed: bool = False

    def missing_fields(self) -> Tuple[str, ...]:
        """Names of required fields that are still empty."""
        missing = []
        if not self.question_label:
            missing.append("question_label")
        if self.operator is None:
            missing.append("operator")
        elif self.operator.requires_value and not str(self.value).strip():
            missing.append("value")
        return tuple(missing)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


@dataclass(frozen=True)
class LogicSet:
    """
    A nested group of conditions with its own combinator.

    Example:
        SHOW IF Q1 equals "Yes" AND (Q2 equals "A" OR Q2 equals "B")

    The parenthesized part becomes
        LogicSet(combinator=Combinator.OR, conditions=(...two conditions...))
    """

    id: str
    combinator: Combinator = Combinator.AND
    conditions: Tuple[Condition, ...] = field(default_factory=tuple)
    confirmed: bool = False
