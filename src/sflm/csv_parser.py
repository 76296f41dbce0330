"""
CSV Parser for SFLM (exported CSV → Survey).

Reads the format written by sflm.backends.csv_export back into a Survey.

CSV Format:
    Block BID, Block Title, Question ID / Label, Question Text,
    Question Type, Choices, Scale Points, Force Response,
    Display Logic, Skip Logic, Branching Logic

Syntax Notes:
    - Choices and Scale Points are joined with "; "
    - Display Logic:   SHOW IF <cond> [AND|OR <cond> ...]
    - Skip Logic:      IF answered, skip to <dest>
                       IF "<choice>" [<grid phrase> "<column>"] -> <dest>; ...
    - Branching Logic: IF <conds> THEN -> <dest>; ...; OTHERWISE -> <dest>
    - <cond>:          Q3 equals "Yes"  |  Q4 "<row>" equals "<column>"
    - <dest>:          Next Question | End of Survey | Block BL2 | Q7

Rows are grouped into blocks by Block BID. Logic strings are resolved
after every row is read, so they may reference later questions and
blocks. Imported logic is committed; the survey is then normalized
(paging rules, renumbering) like any other edit result.

A logic string that cannot be read, or that names a question, choice,
grid column or destination the file does not contain, rejects the whole
import with CSVParseError and its row number. References the exporter
wrote as already dangling ("deleted:Q2", "Unknown Block") stay dangling
and are reported with a UserWarning.
"""

import csv
import logging
import re
import warnings
from dataclasses import dataclass
from io import StringIO
from pathlib import Path
from typing import Dict, List, Optional, Union

from sflm import drafts
from sflm.backends.csv_export import GRID_OPERATOR_PHRASES, LIST_SEPARATOR
from sflm.errors import LineError
from sflm.expressions import Combinator, Condition, ConditionOperator
from sflm.ids import generate_id
from sflm.model import (
    END,
    NEXT,
    Block,
    Branch,
    BranchingLogic,
    Choice,
    Destination,
    DisplayLogic,
    PagingMode,
    Question,
    QuestionType,
    ScalePoint,
    SkipKind,
    SkipLogic,
    SkipRule,
    Survey,
)
from sflm.paging import apply_paging_rules
from sflm.renumber import DELETED_PREFIX, display_label, renumber

logger = logging.getLogger(__name__)


class CSVParseError(LineError):
    """Raised when CSV parsing fails."""


_QUESTION_ID_COLUMNS = ("Question ID / Label", "Question ID")
_REQUIRED_COLUMNS = ("Block BID", "Question Type")

_CONDITION_RE = re.compile(r'((?:deleted:)?Q\d+)\s+(?:"([^"]*)"\s+)?([a-z_]+)(?:\s*"([^"]*)")?', re.IGNORECASE)
_QUOTED_RE = re.compile(r'"[^"]*"')
_SIMPLE_SKIP_PREFIX = "if answered, skip to"
_SKIP_RULE_RE = re.compile(
    r'^IF "([^"]+)"'
    r'(?:\s(is answered with|is not answered with|is after|is before|is answered|is not answered)\s"([^"]+)")?'
    r"\s*->\s*(.*)$",
    re.IGNORECASE,
)
_BRANCH_RE = re.compile(r"^IF (.*) THEN -> (.*)$", re.IGNORECASE)
_OTHERWISE_PREFIX = "OTHERWISE ->"
_BLOCK_DEST_RE = re.compile(r"^Block (BL\d+)", re.IGNORECASE)
_QUESTION_DEST_RE = re.compile(r"^(Q\d+)", re.IGNORECASE)

_GRID_PHRASE_TO_OPERATOR = {phrase: op for op, phrase in GRID_OPERATOR_PHRASES.items()}

# Written by the exporter for destinations that were already dangling
_DANGLING_DESTINATIONS = {
    "unknown block": Destination.to_block(f"{DELETED_PREFIX}block"),
    "unknown question": Destination.to_question(f"{DELETED_PREFIX}question"),
}


@dataclass
class CSVRow:
    """Parsed CSV row."""
    line: int
    block_bid: str
    block_title: str
    question_id: str
    text: str
    question_type: QuestionType
    choices: str = ""
    scale_points: str = ""
    force_response: bool = False
    display_logic: str = ""
    skip_logic: str = ""
    branching_logic: str = ""


def _parse_csv_rows(csv_content: str) -> List[CSVRow]:
    """Parse CSV content into structured rows."""
    reader = csv.DictReader(StringIO(csv_content))

    if reader.fieldnames is None:
        raise CSVParseError(1, "CSV is empty")

    fieldnames = [name.strip() for name in reader.fieldnames]
    missing = [col for col in _REQUIRED_COLUMNS if col not in fieldnames]
    if missing:
        raise CSVParseError(1, f"Missing required columns: {missing}")
    reader.fieldnames = fieldnames

    rows = []
    for row_num, row in enumerate(reader, start=2):  # header is line 1
        values = {key: (value or "").strip() for key, value in row.items() if key is not None}
        if not any(values.values()):
            continue
        if not values.get("Block BID"):
            warnings.warn(f"Row {row_num} has no Block BID and was skipped", UserWarning)
            continue

        raw_type = values.get("Question Type", "")
        try:
            question_type = QuestionType(raw_type)
        except ValueError:
            raise CSVParseError(row_num, f'Unknown question type "{raw_type}"')

        question_id = ""
        for column in _QUESTION_ID_COLUMNS:
            if values.get(column):
                question_id = values[column]
                break

        rows.append(CSVRow(
            line=row_num,
            block_bid=values["Block BID"],
            block_title=values.get("Block Title", ""),
            question_id=question_id,
            text=values.get("Question Text", ""),
            question_type=question_type,
            choices=values.get("Choices", ""),
            scale_points=values.get("Scale Points", ""),
            force_response=values.get("Force Response", "").lower() == "yes",
            display_logic=values.get("Display Logic", ""),
            skip_logic=values.get("Skip Logic", ""),
            branching_logic=values.get("Branching Logic", ""),
        ))

    return rows


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(LIST_SEPARATOR.strip()) if item.strip()]


def _build_question(row: CSVRow) -> Question:
    if row.question_type is QuestionType.DESCRIPTION:
        return Question(id=generate_id("q"), type=row.question_type, text=row.text, label=row.question_id)
    if row.question_type is QuestionType.PAGE_BREAK:
        return Question(
            id=generate_id("pb"),
            type=row.question_type,
            text="Page Break",
            is_automatic=row.text == "Automatic Page Break",
        )
    return Question(
        id=generate_id("q"),
        type=row.question_type,
        text=row.text,
        qid=row.question_id.upper(),
        choices=[Choice.from_text(generate_id("c"), text) for text in _split_list(row.choices)],
        scale_points=[ScalePoint.from_text(generate_id("sp"), text) for text in _split_list(row.scale_points)],
        force_response=row.force_response,
    )


# ===== LOGIC STRINGS =====


class _Resolver:
    """Label lookups over the imported (not yet renumbered) survey."""

    def __init__(self, survey: Survey):
        self.survey = survey
        self.blocks_by_bid: Dict[str, Block] = {}
        for block in survey.blocks:
            self.blocks_by_bid.setdefault(block.bid.upper(), block)

    def destination(self, raw: str, line: int) -> Destination:
        """
        Resolve a destination string.

        "Unknown Block" / "Unknown Question" (written for destinations that
        were already dangling) stay dangling. Anything else that names
        nothing raises CSVParseError.
        """
        text = raw.strip()
        lowered = text.lower()
        if lowered == "next question":
            return NEXT
        if lowered == "end of survey":
            return END
        if lowered in _DANGLING_DESTINATIONS:
            warnings.warn(f"Row {line}: destination '{text}' no longer exists", UserWarning)
            return _DANGLING_DESTINATIONS[lowered]
        block_match = _BLOCK_DEST_RE.match(text)
        if block_match:
            block = self.blocks_by_bid.get(block_match.group(1).upper())
            if block is not None:
                return Destination.to_block(block.id)
        question_match = _QUESTION_DEST_RE.match(text)
        if question_match and not block_match:
            question = self.survey.get_question_by_label(question_match.group(1).upper())
            if question is not None:
                return Destination.to_question(question.id)
        raise CSVParseError(line, f'Unknown destination "{text}"')


def _find_by_label(items, label: str):
    wanted = label.strip().lower()
    for item in items:
        if item.label.strip().lower() == wanted:
            return item
    return None


def _source_label(raw: str) -> str:
    if raw.lower().startswith(DELETED_PREFIX):
        return DELETED_PREFIX + raw[len(DELETED_PREFIX):].upper()
    return raw.upper()


def parse_conditions(raw: str, resolver: _Resolver, line: int) -> tuple:
    """
    Parse `<cond> AND|OR <cond> ...` into (Combinator, conditions).

    The combinator is OR when " OR " appears outside quoted values,
    AND otherwise. Grid conditions resolve their row to the choice text
    and their column to a scale point id. A reference to a deleted
    question ("deleted:Q2") is kept detached, never re-bound to the
    question that now holds the label.
    """
    unquoted = _QUOTED_RE.sub('""', raw)
    combinator = Combinator.OR if " OR " in unquoted.upper() else Combinator.AND

    conditions = []
    for match in _CONDITION_RE.finditer(raw):
        label, row_label, op_token, value = match.groups()
        operator = ConditionOperator.parse(op_token)
        if operator is None:
            raise CSVParseError(line, f'Unknown operator "{op_token}"')

        label = _source_label(label)
        source = None
        if label.startswith(DELETED_PREFIX):
            warnings.warn(
                f"Row {line}: condition on deleted question {display_label(label)} kept unresolved",
                UserWarning,
            )
        else:
            source = resolver.survey.get_question_by_label(label)
            if source is None:
                raise CSVParseError(line, f'Condition references unknown question "{label}"')

        grid_value = None
        if row_label is not None:
            value = row_label
            if source is not None:
                row_choice = _find_by_label(source.choices, row_label)
                if row_choice is None:
                    raise CSVParseError(line, f'Grid row "{row_label}" not found on {label}')
                column = _find_by_label(source.scale_points, match.group(4) or "")
                if column is None:
                    raise CSVParseError(line, f'Grid column "{match.group(4)}" not found on {label}')
                value = row_choice.text
                grid_value = column.id

        conditions.append(Condition(
            id=generate_id("cond"),
            question_label=label,
            operator=operator,
            value=value or "",
            grid_value=grid_value,
            confirmed=True,
        ))

    if not conditions:
        raise CSVParseError(line, f"No readable condition in '{raw}'")
    return combinator, tuple(conditions)


def parse_display_logic(raw: str, resolver: _Resolver, line: int) -> DisplayLogic:
    match = re.match(r"^SHOW IF (.*)$", raw.strip(), re.IGNORECASE | re.DOTALL)
    if not match:
        raise CSVParseError(line, "Display logic must start with SHOW IF")
    combinator, conditions = parse_conditions(match.group(1), resolver, line)
    return DisplayLogic(combinator=combinator, conditions=conditions)


def parse_skip_logic(raw: str, question: Question, resolver: _Resolver, line: int) -> SkipLogic:
    text = raw.strip()
    if text.lower().startswith(_SIMPLE_SKIP_PREFIX):
        destination = resolver.destination(text[len(_SIMPLE_SKIP_PREFIX):], line)
        return SkipLogic(kind=SkipKind.SIMPLE, destination=destination, confirmed=True)

    rules = []
    for part in text.split(LIST_SEPARATOR):
        match = _SKIP_RULE_RE.match(part.strip())
        if not match:
            raise CSVParseError(line, f"Unreadable skip rule '{part.strip()}'")
        choice_label, phrase, column_label, destination_text = match.groups()

        choice = _find_by_label(question.choices, choice_label)
        if choice is None:
            raise CSVParseError(line, f"Choice '{choice_label}' not found on {question.qid}")
        destination = resolver.destination(destination_text, line)

        grid_operator = None
        value_choice_id = None
        if phrase and column_label:
            grid_operator = _GRID_PHRASE_TO_OPERATOR[phrase.lower()]
            column = _find_by_label(question.scale_points, column_label)
            if column is None:
                raise CSVParseError(line, f"Grid column '{column_label}' not found on {question.qid}")
            value_choice_id = column.id

        rules.append(SkipRule(
            id=generate_id("sr"),
            choice_id=choice.id,
            destination=destination,
            confirmed=True,
            grid_operator=grid_operator,
            value_choice_id=value_choice_id,
        ))

    return SkipLogic(kind=SkipKind.PER_CHOICE, rules=tuple(rules))


def parse_branching_logic(raw: str, resolver: _Resolver, line: int) -> BranchingLogic:
    branches = []
    otherwise = None

    for part in raw.strip().split(LIST_SEPARATOR):
        part = part.strip()
        if part.upper().startswith(_OTHERWISE_PREFIX):
            otherwise = resolver.destination(part[len(_OTHERWISE_PREFIX):], line)
            continue

        match = _BRANCH_RE.match(part)
        if not match:
            raise CSVParseError(line, f"Unreadable branch '{part}'")
        destination = resolver.destination(match.group(2), line)
        combinator, conditions = parse_conditions(match.group(1), resolver, line)
        branches.append(Branch(
            id=generate_id("branch"),
            combinator=combinator,
            conditions=conditions,
            destination=destination,
            confirmed=True,
        ))

    return BranchingLogic(branches=tuple(branches), otherwise=otherwise or NEXT, otherwise_confirmed=True)


# ===== SURVEY =====


def parse_csv_string(csv_content: str, survey_title: str = "Imported Survey") -> Survey:
    """
    Parse CSV content into a Survey object.

    Args:
        csv_content: CSV as string
        survey_title: Title for the survey; a trailing ".csv" is dropped

    Returns:
        Normalized Survey in one-per-page mode

    Raises:
        CSVParseError: If the header, a question type or a logic string is invalid
    """
    rows = _parse_csv_rows(csv_content)

    blocks: Dict[str, Block] = {}
    pending = []
    for row in rows:
        block = blocks.get(row.block_bid)
        if block is None:
            block = Block(id=generate_id("block"), title=row.block_title, bid=row.block_bid)
            blocks[row.block_bid] = block
        question = _build_question(row)
        block.questions.append(question)
        pending.append((row, question))

    survey = Survey(
        title=re.sub(r"\.csv$", "", survey_title, flags=re.IGNORECASE),
        blocks=list(blocks.values()),
        paging_mode=PagingMode.ONE_PER_PAGE,
    )

    resolver = _Resolver(survey)
    for row, question in pending:
        if not question.type.is_addressable:
            continue
        if row.display_logic:
            logic = parse_display_logic(row.display_logic, resolver, row.line)
            question.display_logic = drafts.edit_logic(None, logic, question)
        if row.skip_logic:
            logic = parse_skip_logic(row.skip_logic, question, resolver, row.line)
            question.skip_logic = drafts.edit_logic(None, logic, question)
        if row.branching_logic:
            logic = parse_branching_logic(row.branching_logic, resolver, row.line)
            question.branching_logic = drafts.edit_logic(None, logic, question)

    logger.debug("Imported %d blocks, %d rows from CSV", len(survey.blocks), len(rows))
    return renumber(apply_paging_rules(survey))


def parse_csv_file(filepath: Union[str, Path], survey_title: Optional[str] = None) -> Survey:
    """
    Parse CSV file into a Survey object.

    Raises:
        FileNotFoundError: If file doesn't exist
        CSVParseError: If parsing fails
    """
    path = Path(filepath)
    content = path.read_text(encoding="utf-8")
    if survey_title is None:
        survey_title = path.stem
    return parse_csv_string(content, survey_title=survey_title)


__all__ = [
    "CSVParseError",
    "parse_csv_string",
    "parse_csv_file",
    "parse_display_logic",
    "parse_skip_logic",
    "parse_branching_logic",
]
