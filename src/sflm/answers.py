"""
Answer values used by the evaluation engine.

Each question type produces one answer shape:
    - SingleChoice: Radio, Drop-Down List, Image Selector
    - MultiChoice:  Checkbox
    - GridAnswers:  Choice Grid (row choice id -> column scale point id)
    - TextAnswer:   every free-entry type (text, numeric, email, ...)

An AnswerSet maps question stable id -> answer. A missing key and an
empty answer are treated the same way by `is_empty`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Union


@dataclass(frozen=True)
class SingleChoice:
    choice_id: str


@dataclass(frozen=True)
class MultiChoice:
    choice_ids: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, *choice_ids: str) -> "MultiChoice":
        return cls(frozenset(choice_ids))


@dataclass(frozen=True)
class TextAnswer:
    value: str = ""


@dataclass(frozen=True)
class GridAnswers:
    """Selected column per answered row."""

    rows: Mapping[str, str] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.rows.items())))


Answer = Union[SingleChoice, MultiChoice, TextAnswer, GridAnswers]
AnswerSet = Dict[str, Answer]


def is_empty(answer: Answer | None) -> bool:
    """True for an absent answer, blank text, an empty set or an empty grid."""
    if answer is None:
        return True
    if isinstance(answer, SingleChoice):
        return not answer.choice_id
    if isinstance(answer, MultiChoice):
        return not answer.choice_ids
    if isinstance(answer, TextAnswer):
        return not answer.value.strip()
    if isinstance(answer, GridAnswers):
        return not answer.rows
    raise TypeError(f"Unsupported answer type: {type(answer)}")
