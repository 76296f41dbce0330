"""
Logic validation: lint-style issues for survey logic.

Dangling and ill-ordered references are never errors that stop an
operation. They are reported here as LogicIssue objects so an editor can
point the author at them:

    - a condition naming a question that no longer exists
    - a display/hide condition naming the same or a later question
    - a branching condition naming a later question
    - a skip or branch destination that no longer exists
    - a skip or branch destination that points backwards (loop risk)
    - a per-choice skip rule whose choice was deleted
    - an equals/not_equals condition whose value names no current choice
      of a choice-bearing source question
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sflm.expressions import Condition, ConditionOperator
from sflm.model import (
    BranchingLogic,
    Destination,
    DestinationKind,
    DisplayLogic,
    Question,
    SkipKind,
    SkipLogic,
    Survey,
    slot_versions,
)
from sflm.renumber import display_label


@dataclass(frozen=True)
class LogicIssue:
    question_id: str
    type: str  # "display", "hide", "skip" or "branching"
    message: str
    source_id: Optional[str] = None
    field: Optional[str] = None


class _Context:
    """Lookup tables shared by every check of one validation pass."""

    def __init__(self, survey: Survey):
        self.survey = survey
        self.positions = survey.question_positions()
        self.block_positions = survey.block_positions()
        self.block_of_question: Dict[str, int] = {}
        for index, block in enumerate(survey.blocks):
            for question in block.questions:
                self.block_of_question[question.id] = index


_CHOICE_OPERATORS = (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS)


def _names_no_choice(condition: Condition, source: Question) -> bool:
    if not source.choices or not condition.value or condition.operator not in _CHOICE_OPERATORS:
        return False
    return not any(condition.value in (c.text, c.label) for c in source.choices)


def _check_conditions(ctx: _Context, question: Question, kind: str,
                      conditions: Iterable[Condition], allow_self: bool) -> List[LogicIssue]:
    issues = []
    current = ctx.positions[question.id]
    for condition in conditions:
        if not condition.question_label:
            continue
        source = ctx.survey.get_question_by_label(condition.question_label)
        if source is None:
            where = " in this branch" if kind == "branching" else ""
            issues.append(LogicIssue(
                question.id, kind,
                f"The selected question ({display_label(condition.question_label)}){where} no longer exists.",
                condition.id, "question_label",
            ))
            continue
        source_index = ctx.positions[source.id]
        too_late = source_index > current if allow_self else source_index >= current
        if too_late:
            prefix = "Advanced logic" if kind == "branching" else "Logic"
            issues.append(LogicIssue(
                question.id, kind,
                f"{prefix} cannot depend on a future question ({source.qid}).",
                condition.id, "question_label",
            ))
        elif _names_no_choice(condition, source):
            issues.append(LogicIssue(
                question.id, kind,
                f"The selected choice \"{condition.value}\" no longer exists on {source.qid}.",
                condition.id, "value",
            ))
    return issues


def _check_destination(ctx: _Context, question: Question, kind: str,
                       destination: Optional[Destination], source_id: Optional[str]) -> List[LogicIssue]:
    if destination is None or destination.kind in (DestinationKind.NEXT, DestinationKind.END):
        return []
    verb = "Skipping" if kind == "skip" else "Branching"

    if destination.kind is DestinationKind.BLOCK:
        target = ctx.block_positions.get(destination.target)
        if target is None:
            return [LogicIssue(question.id, kind, "The destination block no longer exists.", source_id, "destination")]
        if target < ctx.block_of_question[question.id]:
            return [LogicIssue(
                question.id, kind, f"{verb} backward to a previous block can cause loops.", source_id, "destination"
            )]
        return []

    target_question = ctx.survey.get_question(destination.target)
    if target_question is None:
        return [LogicIssue(question.id, kind, "The destination question no longer exists.", source_id, "destination")]
    if ctx.positions[target_question.id] <= ctx.positions[question.id]:
        return [LogicIssue(
            question.id, kind, f"{verb} backward to {target_question.qid} can cause loops.", source_id, "destination"
        )]
    return []


def _check_question(ctx: _Context, question: Question) -> List[LogicIssue]:
    issues: List[LogicIssue] = []

    for kind, slot in (("display", question.display_logic), ("hide", question.hide_logic)):
        for logic in slot_versions(slot):
            if isinstance(logic, DisplayLogic):
                issues.extend(_check_conditions(ctx, question, kind, logic.iter_conditions(), allow_self=False))

    for logic in slot_versions(question.skip_logic):
        if not isinstance(logic, SkipLogic):
            continue
        if logic.kind is SkipKind.SIMPLE:
            issues.extend(_check_destination(ctx, question, "skip", logic.destination, "simple"))
            continue
        for rule in logic.rules:
            if question.get_choice(rule.choice_id) is None:
                issues.append(LogicIssue(
                    question.id, "skip", "A choice associated with this skip rule has been deleted.", rule.choice_id
                ))
            issues.extend(_check_destination(ctx, question, "skip", rule.destination, rule.choice_id))

    for logic in slot_versions(question.branching_logic):
        if not isinstance(logic, BranchingLogic):
            continue
        for branch in logic.branches:
            issues.extend(_check_conditions(ctx, question, "branching", branch.conditions, allow_self=True))
            issues.extend(_check_destination(ctx, question, "branching", branch.destination, branch.id))
        issues.extend(_check_destination(ctx, question, "branching", logic.otherwise, "otherwise"))

    return issues


def validate_logic(survey: Survey) -> List[LogicIssue]:
    """
    Validate all logic across the survey, draft and committed.

    Never raises; returns issues in document order without duplicates.
    """
    ctx = _Context(survey)
    issues: List[LogicIssue] = []
    for question in survey.iter_questions():
        for issue in _check_question(ctx, question):
            if issue not in issues:
                issues.append(issue)
    return issues


def invalid_logic_summary(survey: Survey, display_count: int = 3) -> Optional[str]:
    """
    One-line summary of the questions whose logic is invalid, or None.

        "Logic on Q2, Q5, Q7 and 2 others is now invalid. Please review."
    """
    affected: List[str] = []
    for issue in validate_logic(survey):
        question = survey.get_question(issue.question_id)
        label = question.qid if question is not None else issue.question_id
        if label not in affected:
            affected.append(label)
    if not affected:
        return None

    message = f"Logic on {', '.join(affected[:display_count])}"
    remaining = len(affected) - display_count
    if remaining > 0:
        message += f" and {remaining} others"
    return message + " is now invalid. Please review."
