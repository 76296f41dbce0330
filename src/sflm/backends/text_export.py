"""
Plain-text survey copy.

Produces a human-readable listing of the survey: blocks, question
variables and text, choices with their variables, grid columns and the
committed logic of each question.
"""

import re
from typing import List

from sflm.backends.csv_export import format_destination
from sflm.model import (
    BranchingLogic,
    DisplayLogic,
    QuestionType,
    SkipKind,
    SkipLogic,
    Survey,
    active_logic,
)

_TAG_RE = re.compile(r"<[^>]*>?")

RULE = "=" * 40
THIN_RULE = "-" * 40


def strip_html(text: str) -> str:
    return _TAG_RE.sub("", text or "")


def _conditions_text(conditions, combinator) -> str:
    return f" {combinator.value} ".join(
        f'{c.question_label} {c.operator.value} "{c.value}"'
        for c in conditions
        if c.confirmed and c.operator is not None
    )


def generate_text_copy(survey: Survey) -> str:
    lines: List[str] = [f"SURVEY: {survey.title}", RULE, ""]

    for block in survey.blocks:
        lines.append(f"BLOCK {block.bid}: {block.title}")
        lines.append(THIN_RULE)

        for question in block.questions:
            if question.type is QuestionType.PAGE_BREAK:
                lines.extend(["[PAGE BREAK]", ""])
                continue
            if question.type is QuestionType.DESCRIPTION:
                lines.extend([f"{question.label or 'Description'}: {strip_html(question.text)}", ""])
                continue

            lines.append(f"Question Variable: {question.qid}")
            lines.append(f"Question Text: {strip_html(question.text)}")

            if question.choices:
                lines.append("Choices:")
                for choice in question.choices:
                    lines.append(f"  {choice.variable or '(No Var)'}: {strip_html(choice.label)}")

            if question.scale_points:
                lines.append("Scale Points (Columns):")
                for point in question.scale_points:
                    lines.append(f"  - {strip_html(point.label)}")

            display = active_logic(question.display_logic)
            if isinstance(display, DisplayLogic) and any(c.confirmed for c in display.conditions):
                lines.append(f"  Display Logic: SHOW IF {_conditions_text(display.conditions, display.combinator)}")

            hide = active_logic(question.hide_logic)
            if isinstance(hide, DisplayLogic) and any(c.confirmed for c in hide.conditions):
                lines.append(f"  Hide Logic: HIDE IF {_conditions_text(hide.conditions, hide.combinator)}")

            skip = active_logic(question.skip_logic)
            if isinstance(skip, SkipLogic):
                if skip.kind is SkipKind.SIMPLE and skip.confirmed:
                    lines.append(f"  Skip Logic: IF answered, skip to {format_destination(survey, skip.destination)}")
                elif skip.kind is SkipKind.PER_CHOICE:
                    rules = [r for r in skip.rules if r.confirmed and question.get_choice(r.choice_id)]
                    if rules:
                        lines.append("  Skip Logic:")
                        for rule in rules:
                            label = strip_html(question.get_choice(rule.choice_id).label)
                            destination = format_destination(survey, rule.destination)
                            lines.append(f'    IF "{label}" is selected, skip to {destination}')

            branching = active_logic(question.branching_logic)
            if isinstance(branching, BranchingLogic):
                branches = [b for b in branching.branches if b.confirmed]
                if branches or branching.otherwise_confirmed:
                    lines.append("  Branching Logic:")
                    for branch in branches:
                        conditions = _conditions_text(branch.conditions, branch.combinator)
                        destination = format_destination(survey, branch.destination)
                        lines.append(f"    IF {conditions} THEN skip to {destination}")
                    if branching.otherwise_confirmed:
                        destination = format_destination(survey, branching.otherwise)
                        lines.append(f"    OTHERWISE skip to {destination}")

            lines.append("")

    return "\n".join(lines) + "\n"
