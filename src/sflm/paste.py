"""
Paste DSL for bulk logic entry.

Display/hide logic, one condition per line:

    [SHOW IF | HIDE IF | DISPLAY IF | IF] <QID> <operator> [<value>]

    Q1 equals Yes
    SHOW IF Q2 contains refund
    HIDE IF Q3 is_empty

Skip logic, one rule per line:

    <choice label> -> <destination>
    IF <choice label> THEN SKIP TO <destination>
    -> <destination>                       (simple skip, alone)

Destinations: next, end, a question label (Q4) or a block label (BL2).

A paste is atomic: the first bad line raises PasteError (with its
1-based line number) and nothing is applied.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sflm import drafts
from sflm.errors import EditError, LineError
from sflm.expressions import Combinator, Condition, ConditionOperator
from sflm.ids import generate_id
from sflm.model import (
    END,
    NEXT,
    Destination,
    DisplayLogic,
    Question,
    SkipKind,
    SkipLogic,
    SkipRule,
    Survey,
)


class PasteError(LineError):
    """Raised when pasted logic text is rejected."""


_PREFIXES = (("HIDE IF ", True), ("SHOW IF ", False), ("DISPLAY IF ", False), ("IF ", False))
_SKIP_SEPARATOR = re.compile(r" -> | THEN SKIP TO ", re.IGNORECASE)
_MIXED_SKIP = 'A simple skip "-> Destination" must be the only line.'


@dataclass(frozen=True)
class PastedLogic:
    display_conditions: Tuple[Condition, ...] = field(default_factory=tuple)
    hide_conditions: Tuple[Condition, ...] = field(default_factory=tuple)


def _lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def preceding_labels(survey: Survey, question_id: str) -> List[str]:
    """Labels of the addressable questions before `question_id`."""
    labels = []
    for question in survey.iter_questions():
        if question.id == question_id:
            break
        if question.qid:
            labels.append(question.qid)
    return labels


def parse_logic_text(text: str, survey: Survey, question_id: str) -> PastedLogic:
    """Parse display/hide paste text into confirmed conditions."""
    valid_sources = set(preceding_labels(survey, question_id))
    display: List[Condition] = []
    hide: List[Condition] = []

    for line_number, line in enumerate(_lines(text), start=1):
        is_hide = False
        for prefix, hides in _PREFIXES:
            if line.upper().startswith(prefix):
                line = line[len(prefix):].strip()
                is_hide = hides
                break

        parts = line.split()
        if len(parts) < 2:
            raise PasteError(line_number, 'Syntax error. Use "QuestionID operator value".')
        qid_candidate, operator_token, value_parts = parts[0], parts[1], parts[2:]

        qid = qid_candidate.upper()
        if qid not in valid_sources:
            raise PasteError(line_number, f'Question "{qid}" is not a valid preceding question.')

        operator = ConditionOperator.parse(operator_token)
        if operator is None:
            raise PasteError(line_number, f'Operator "{operator_token}" is not recognized.')

        value = _unquote(" ".join(value_parts).strip())
        if operator.requires_value and not value:
            raise PasteError(line_number, f'Missing value for operator "{operator_token}".')

        condition = Condition(
            id=generate_id("cond"),
            question_label=qid,
            operator=operator,
            value=value,
            confirmed=True,
        )
        (hide if is_hide else display).append(condition)

    if not display and not hide:
        raise PasteError(0, "No valid logic found.")
    return PastedLogic(tuple(display), tuple(hide))


def _merge(logic: Optional[DisplayLogic], conditions: Tuple[Condition, ...]) -> DisplayLogic:
    current = logic or DisplayLogic(combinator=Combinator.AND)
    return DisplayLogic(
        combinator=current.combinator,
        conditions=current.conditions + conditions,
        logic_sets=current.logic_sets,
    )


def paste_display_logic(survey: Survey, question_id: str, text: str) -> Survey:
    """
    Append pasted conditions to the question's display and hide logic.

    Returns a new survey; raises PasteError without changing anything.
    """
    if survey.get_question(question_id) is None:
        raise EditError(f"Unknown question '{question_id}'")
    pasted = parse_logic_text(text, survey, question_id)

    result = copy.deepcopy(survey)
    question = result.get_question(question_id)
    if pasted.display_conditions:
        merged = _merge(drafts.draft_of(question.display_logic), pasted.display_conditions)
        question.display_logic = drafts.edit_logic(question.display_logic, merged, question)
    if pasted.hide_conditions:
        merged = _merge(drafts.draft_of(question.hide_logic), pasted.hide_conditions)
        question.hide_logic = drafts.edit_logic(question.hide_logic, merged, question)
    return result


def find_destination(survey: Survey, token: str) -> Optional[Destination]:
    """Resolve next/end, a question label or a block label to a Destination."""
    upper = token.strip().upper()
    if upper == "NEXT":
        return NEXT
    if upper == "END":
        return END
    question = survey.get_question_by_label(upper)
    if question is not None:
        return Destination.to_question(question.id)
    for block in survey.blocks:
        if block.bid == upper:
            return Destination.to_block(block.id)
    return None


def _truncate(text: str, length: int = 20) -> str:
    return text if len(text) <= length else text[:length] + "..."


def _find_choice(question: Question, label: str):
    wanted = label.strip().lower()
    for choice in question.choices:
        if choice.label.strip().lower() == wanted:
            return choice
    return None


def parse_skip_text(text: str, survey: Survey, question_id: str) -> SkipLogic:
    """Parse skip paste text into per-choice (or simple) confirmed skip logic."""
    question = survey.get_question(question_id)
    if question is None:
        raise EditError(f"Unknown question '{question_id}'")

    rules: List[SkipRule] = []
    simple: Optional[Destination] = None
    for line_number, line in enumerate(_lines(text), start=1):
        if line.startswith("->"):
            if rules or simple is not None:
                raise PasteError(line_number, _MIXED_SKIP)
            simple = find_destination(survey, line[2:])
            if simple is None:
                raise PasteError(line_number, f'Destination "{_truncate(line[2:].strip())}" not found.')
            continue

        parts = _SKIP_SEPARATOR.split(line)
        if len(parts) != 2:
            raise PasteError(
                line_number,
                'Invalid syntax. Use "Choice Text -> Destination" or '
                '"IF Choice Text THEN SKIP TO Destination".',
            )
        choice_text = parts[0].strip()
        if choice_text.lower().startswith("if "):
            choice_text = choice_text[3:].strip()
        choice_text = _unquote(choice_text)

        choice = _find_choice(question, choice_text)
        if choice is None:
            raise PasteError(line_number, f'Choice "{_truncate(choice_text)}" not found.')

        destination = find_destination(survey, parts[1])
        if destination is None:
            raise PasteError(line_number, f'Destination "{_truncate(parts[1].strip())}" not found.')

        if simple is not None:
            raise PasteError(line_number, _MIXED_SKIP)
        rules.append(SkipRule(
            id=generate_id("sr"), choice_id=choice.id, destination=destination, confirmed=True
        ))

    if simple is not None:
        return SkipLogic(kind=SkipKind.SIMPLE, destination=simple, confirmed=True)
    if not rules:
        raise PasteError(0, "No valid rules found.")
    return SkipLogic(kind=SkipKind.PER_CHOICE, rules=tuple(rules))


def paste_skip_logic(survey: Survey, question_id: str, text: str) -> Survey:
    """Replace the question's skip logic with the pasted rules."""
    logic = parse_skip_text(text, survey, question_id)
    result = copy.deepcopy(survey)
    question = result.get_question(question_id)
    question.skip_logic = drafts.edit_logic(question.skip_logic, logic, question)
    return result
