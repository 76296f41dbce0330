"""
CSV exporter for SFLM surveys.

One row per survey item (question, description or page break):

    Block BID, Block Title, Question ID / Label, Question Text,
    Question Type, Choices, Scale Points, Force Response,
    Display Logic, Skip Logic, Branching Logic

Logic columns hold human-readable strings that sflm.csv_parser reads
back:

    Display Logic:   SHOW IF Q1 equals "Yes" AND Q2 is_not_empty ""
    Skip Logic:      IF answered, skip to Block BL3
                     IF "Yes" -> Q5; IF "No" -> End of Survey
                     IF "Row 1" is answered with "Agree" -> Next Question
    Branching Logic: IF Q3 equals "Yes" THEN -> Block BL2; OTHERWISE -> Next Question

Only committed logic is exported; drafts never leave the editor.
"""

import csv
from io import StringIO
from pathlib import Path
from typing import Dict, List, Optional, Union

from sflm.expressions import Condition
from sflm.model import (
    BranchingLogic,
    Destination,
    DestinationKind,
    DisplayLogic,
    GridSkipOperator,
    Question,
    QuestionType,
    SkipKind,
    SkipLogic,
    Survey,
    active_logic,
)

CSV_HEADER = [
    "Block BID",
    "Block Title",
    "Question ID / Label",
    "Question Text",
    "Question Type",
    "Choices",
    "Scale Points",
    "Force Response",
    "Display Logic",
    "Skip Logic",
    "Branching Logic",
]

LIST_SEPARATOR = "; "

GRID_OPERATOR_PHRASES: Dict[GridSkipOperator, str] = {
    GridSkipOperator.IS_ANSWERED_WITH: "is answered with",
    GridSkipOperator.IS_NOT_ANSWERED_WITH: "is not answered with",
    GridSkipOperator.IS_ANSWERED_AFTER: "is after",
    GridSkipOperator.IS_ANSWERED_BEFORE: "is before",
    GridSkipOperator.IS_ANSWERED: "is answered",
    GridSkipOperator.IS_NOT_ANSWERED: "is not answered",
}


def format_destination(survey: Survey, destination: Optional[Destination]) -> str:
    """Render a destination the way survey authors read it."""
    if destination is None or destination.kind is DestinationKind.NEXT:
        return "Next Question"
    if destination.kind is DestinationKind.END:
        return "End of Survey"
    if destination.kind is DestinationKind.BLOCK:
        block = survey.get_block(destination.target)
        return f"Block {block.bid}" if block else "Unknown Block"
    question = survey.get_question(destination.target)
    return question.qid if question else "Unknown Question"


def format_condition(survey: Survey, condition: Condition) -> str:
    """
    Render one condition.

    Grid conditions name the row and the column:
        Q4 "Q4_1 Speed" equals "Agree"   ->   Q4 "Speed" equals "Agree"
    """
    operator = condition.operator.value if condition.operator else ""
    source = survey.get_question_by_label(condition.question_label)
    if source is not None and source.type is QuestionType.CHOICE_GRID and condition.grid_value:
        row_label = condition.value
        for choice in source.choices:
            if condition.value in (choice.text, choice.label):
                row_label = choice.label
                break
        column = source.get_scale_point(condition.grid_value)
        column_text = column.label if column else "..."
        return f'{condition.question_label} "{row_label}" {operator} "{column_text}"'
    return f'{condition.question_label} {operator} "{condition.value}"'


def _join_conditions(survey: Survey, conditions, combinator) -> str:
    return f" {combinator.value} ".join(format_condition(survey, c) for c in conditions if c.confirmed)


def format_display_logic(survey: Survey, logic: Optional[DisplayLogic]) -> str:
    if logic is None or not any(c.confirmed for c in logic.conditions):
        return ""
    return "SHOW IF " + _join_conditions(survey, logic.conditions, logic.combinator)


def format_skip_logic(survey: Survey, question: Question, logic: Optional[SkipLogic]) -> str:
    if logic is None:
        return ""
    if logic.kind is SkipKind.SIMPLE:
        if not logic.confirmed:
            return ""
        return f"IF answered, skip to {format_destination(survey, logic.destination)}"

    parts: List[str] = []
    for rule in logic.rules:
        if not rule.confirmed:
            continue
        choice = question.get_choice(rule.choice_id)
        if choice is None:
            continue
        destination = format_destination(survey, rule.destination)
        if question.type is QuestionType.CHOICE_GRID and rule.grid_operator and rule.value_choice_id:
            column = question.get_scale_point(rule.value_choice_id)
            if column is not None:
                phrase = GRID_OPERATOR_PHRASES[rule.grid_operator]
                parts.append(f'IF "{choice.label}" {phrase} "{column.label}" -> {destination}')
                continue
        parts.append(f'IF "{choice.label}" -> {destination}')
    return LIST_SEPARATOR.join(parts)


def format_branching_logic(survey: Survey, logic: Optional[BranchingLogic]) -> str:
    if logic is None:
        return ""
    parts: List[str] = []
    for branch in logic.branches:
        if not branch.confirmed:
            continue
        conditions = _join_conditions(survey, branch.conditions, branch.combinator)
        parts.append(f"IF {conditions} THEN -> {format_destination(survey, branch.destination)}")
    if logic.otherwise_confirmed:
        parts.append(f"OTHERWISE -> {format_destination(survey, logic.otherwise)}")
    return LIST_SEPARATOR.join(parts)


def survey_rows(survey: Survey) -> List[List[str]]:
    """Header plus one row per item, in document order."""
    rows = [list(CSV_HEADER)]
    for block in survey.blocks:
        for question in block.questions:
            if question.type is QuestionType.PAGE_BREAK:
                text = "Automatic Page Break" if question.is_automatic else "Page Break"
                rows.append([block.bid, block.title, "", text, question.type.value,
                             "", "", "No", "", "", ""])
                continue
            if question.type is QuestionType.DESCRIPTION:
                rows.append([block.bid, block.title, question.label, question.text, question.type.value,
                             "", "", "No", "", "", ""])
                continue

            rows.append([
                block.bid,
                block.title,
                question.qid,
                question.text,
                question.type.value,
                LIST_SEPARATOR.join(c.label for c in question.choices),
                LIST_SEPARATOR.join(p.label for p in question.scale_points),
                "Yes" if question.force_response else "No",
                format_display_logic(survey, active_logic(question.display_logic)),
                format_skip_logic(survey, question, active_logic(question.skip_logic)),
                format_branching_logic(survey, active_logic(question.branching_logic)),
            ])
    return rows


def generate_csv(survey: Survey) -> str:
    """Export the survey as CSV text (every field quoted)."""
    buffer = StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(survey_rows(survey))
    return buffer.getvalue()


def save_csv_file(survey: Survey, path: Union[str, Path]) -> None:
    Path(path).write_text(generate_csv(survey), encoding="utf-8")
