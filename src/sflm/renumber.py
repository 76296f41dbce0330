"""
Identifier & Label Manager (renumbering engine).

Derives the sequential, human-facing labels of a survey and keeps every
label reference consistent with them:

    - Blocks get BL1..BLn in document order
    - Addressable questions get Q1..Qn; Description and Page Break items
      get no label
    - Description items get "Description <n>" unless the author set a
      custom label
    - Choices get the variable Q<n>_<k>; scale points keep a variable
      only if they already had one
    - Every Condition (display, hide and branching logic, committed and
      draft) and every carry-forward reference is rewritten from its old
      label to the new one
    - Condition values that embed a choice variable ("Q3_1 Often") follow
      that choice to its new variable, so inserting or removing a choice
      does not re-bind the condition to a neighbour

ARCHITECTURAL RULE:
    renumber() never mutates its input and never raises.
    References whose label names no existing question pass through
    unchanged; flagging them is the validator's job.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import replace
from typing import Callable, Dict, Iterable, Optional

from sflm.expressions import Condition
from sflm.model import (
    BranchingLogic,
    Committed,
    DisplayLogic,
    LogicSlot,
    Pending,
    QuestionType,
    Survey,
)

logger = logging.getLogger(__name__)

_DEFAULT_DESCRIPTION_LABEL = re.compile(r"^Description \d+$")
_VALUE_VARIABLE = re.compile(r"^((Q\d+)_\d+)(.*)$", re.DOTALL)

# Prefix given to references whose source question was deleted, so that
# the freed label can never be re-captured by another question.
DELETED_PREFIX = "deleted:"


def renumber(survey: Survey) -> Survey:
    """
    Return a relabelled copy of the survey with all references rewritten.

    Idempotent: renumber(renumber(s)) == renumber(s).
    """
    # Old label -> stable id. First occurrence wins on duplicates.
    old_label_to_id: Dict[str, str] = {}
    for question in survey.iter_questions():
        if question.qid and question.qid not in old_label_to_id:
            old_label_to_id[question.qid] = question.id

    result = copy.deepcopy(survey)

    custom_labels = {
        q.label
        for q in result.iter_questions()
        if q.type is QuestionType.DESCRIPTION
        and q.label
        and not _DEFAULT_DESCRIPTION_LABEL.match(q.label)
    }

    id_to_new_label: Dict[str, str] = {}
    # Old choice variable -> new one, tracked by choice identity
    variable_table: Dict[str, str] = {}
    question_counter = 1
    description_counter = 1

    for block_counter, block in enumerate(result.blocks, start=1):
        block.bid = f"BL{block_counter}"
        for question in block.questions:
            if question.type is QuestionType.PAGE_BREAK:
                question.qid = ""
                continue
            if question.type is QuestionType.DESCRIPTION:
                question.qid = ""
                if not question.label or _DEFAULT_DESCRIPTION_LABEL.match(question.label):
                    label = f"Description {description_counter}"
                    while label in custom_labels:
                        description_counter += 1
                        label = f"Description {description_counter}"
                    question.label = label
                description_counter += 1
                continue

            new_label = f"Q{question_counter}"
            question.qid = new_label
            id_to_new_label[question.id] = new_label
            for index, choice in enumerate(question.choices, start=1):
                if choice.variable:
                    variable_table.setdefault(choice.variable, f"{new_label}_{index}")
                choice.variable = f"{new_label}_{index}"
            for index, point in enumerate(question.scale_points, start=1):
                if point.variable:
                    point.variable = f"{new_label}_{index}"
            question_counter += 1

    table = {
        old: id_to_new_label[qid]
        for old, qid in old_label_to_id.items()
        if qid in id_to_new_label
    }
    logger.debug("Renumbered %d questions; label table %s", question_counter - 1, table)

    def rewrite(condition: Condition) -> Condition:
        return rewrite_condition(condition, table, variable_table)

    for question in result.iter_questions():
        question.display_logic = _map_slot(question.display_logic, rewrite)
        question.hide_logic = _map_slot(question.hide_logic, rewrite)
        question.branching_logic = _map_slot(question.branching_logic, rewrite)
        if question.carry_forward_source in table:
            question.carry_forward_source = table[question.carry_forward_source]

    return result


def rewrite_condition(condition: Condition, table: Dict[str, str],
                      variable_table: Optional[Dict[str, str]] = None) -> Condition:
    """
    Rewrite a condition's source label and any choice variable in its value.

    `table` maps old question labels to new ones; `variable_table` maps old
    choice variables to new ones. A variable missing from `variable_table`
    (its choice was deleted) only has its question part relabelled.
    """
    if condition.question_label.startswith(DELETED_PREFIX):
        return condition

    label = table.get(condition.question_label, condition.question_label)
    value = condition.value
    match = _VALUE_VARIABLE.match(value or "")
    if match:
        variable, question_label, rest = match.groups()
        if variable_table and variable in variable_table:
            value = variable_table[variable] + rest
        elif question_label in table:
            value = table[question_label] + variable[len(question_label):] + rest

    if label == condition.question_label and value == condition.value:
        return condition
    return replace(condition, question_label=label, value=value)


def map_conditions(logic, fn: Callable[[Condition], Condition]):
    """Apply fn to every condition held by a display or branching logic."""
    if isinstance(logic, DisplayLogic):
        return replace(
            logic,
            conditions=tuple(fn(c) for c in logic.conditions),
            logic_sets=tuple(
                replace(s, conditions=tuple(fn(c) for c in s.conditions))
                for s in logic.logic_sets
            ),
        )
    if isinstance(logic, BranchingLogic):
        return replace(
            logic,
            branches=tuple(
                replace(b, conditions=tuple(fn(c) for c in b.conditions))
                for b in logic.branches
            ),
        )
    # Skip logic references choices and destinations by stable id only
    return logic


def _map_slot(slot: Optional[LogicSlot], fn: Callable[[Condition], Condition]) -> Optional[LogicSlot]:
    if slot is None:
        return None
    if isinstance(slot, Committed):
        return Committed(map_conditions(slot.logic, fn))
    committed = map_conditions(slot.committed, fn) if slot.committed is not None else None
    return Pending(map_conditions(slot.logic, fn), committed)


def detach_references(survey: Survey, labels: Iterable[str]) -> int:
    """
    Mark references to removed question labels as deleted.

    Operates on a working copy owned by the caller, before renumbering,
    so that a label freed by a deletion is not silently re-bound to the
    question that inherits it. Returns the number of questions touched.
    """
    table = {label: f"{DELETED_PREFIX}{label}" for label in labels if label}
    if not table:
        return 0

    def detach(condition: Condition) -> Condition:
        if condition.question_label in table:
            return replace(condition, question_label=table[condition.question_label])
        return condition

    touched = 0
    for question in survey.iter_questions():
        changed = False
        for attr in ("display_logic", "hide_logic", "branching_logic"):
            slot = getattr(question, attr)
            rewritten = _map_slot(slot, detach)
            if rewritten != slot:
                setattr(question, attr, rewritten)
                changed = True
        if question.carry_forward_source in table:
            question.carry_forward_source = table[question.carry_forward_source]
            changed = True
        touched += changed

    if touched:
        logger.debug("Detached references to %s on %d questions", sorted(table), touched)
    return touched


def display_label(label: str) -> str:
    """Human-readable form of a possibly detached reference."""
    if label.startswith(DELETED_PREFIX):
        return label[len(DELETED_PREFIX):]
    return label
