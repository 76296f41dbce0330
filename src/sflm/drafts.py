"""
Draft/Confirm Controller.

Governs how logic edits become part of the committed document.

State machine per logic entry (Condition, LogicSet, Branch, SkipRule):

    Unconfirmed --confirm (all required fields present)--> Confirmed
    Confirmed   --any edit of the entry's fields-------->  Unconfirmed

Per logic slot (see sflm.model):

    edit_logic   : the draft replaces the slot. A fully confirmed draft
                   is promoted to Committed; anything else stays Pending
                   and keeps the last committed version active.
    rollback     : drop the draft, restore the committed version.
    cleanup      : discard every unconfirmed entry of the draft. Logic
                   left with no entries is removed entirely.

ARCHITECTURAL RULE:
    Half-specified rules never take effect. Evaluation and path analysis
    only ever see Committed logic.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Callable, List, Optional

from sflm.errors import ConfirmationError, EditError
from sflm.expressions import Condition, ConditionOperator
from sflm.model import (
    Branch,
    BranchingLogic,
    Committed,
    DisplayLogic,
    LogicSlot,
    Pending,
    Question,
    SkipKind,
    SkipLogic,
    Survey,
    active_logic,
)

logger = logging.getLogger(__name__)

LOGIC_SLOTS = ("display_logic", "hide_logic", "skip_logic", "branching_logic")

Notify = Callable[[str], None]


# =========================================================================
# COMPLETENESS
# =========================================================================


def _conditions_committable(conditions) -> bool:
    return bool(conditions) and all(c.confirmed and c.is_complete for c in conditions)


def is_branching_exhaustive(question: Question, logic: Optional[BranchingLogic] = None) -> bool:
    """
    True when confirmed `equals` branches on the question itself cover
    every one of its choices, making the otherwise route unreachable.
    """
    if not question.choices:
        return False
    if logic is None:
        slot = question.branching_logic
        logic = slot.logic if slot is not None else None
    if not isinstance(logic, BranchingLogic) or not logic.branches:
        return False

    covered = set()
    for branch in logic.branches:
        if not branch.confirmed:
            continue
        for condition in branch.conditions:
            if (
                condition.confirmed
                and condition.question_label == question.qid
                and condition.operator is ConditionOperator.EQUALS
                and condition.value
            ):
                covered.add(condition.value)

    return all(c.text in covered or c.label in covered for c in question.choices)


def is_committable(logic, question: Question) -> bool:
    """Whether a logic object is fully confirmed and may take effect."""
    if isinstance(logic, DisplayLogic):
        if not logic.conditions and not logic.logic_sets:
            return False
        if logic.conditions and not _conditions_committable(logic.conditions):
            return False
        return all(s.confirmed and _conditions_committable(s.conditions) for s in logic.logic_sets)

    if isinstance(logic, SkipLogic):
        if logic.kind is SkipKind.SIMPLE:
            return logic.confirmed and logic.destination is not None
        return bool(logic.rules) and all(r.confirmed and r.destination is not None for r in logic.rules)

    if isinstance(logic, BranchingLogic):
        for branch in logic.branches:
            if not branch.confirmed or branch.destination is None:
                return False
            if not _conditions_committable(branch.conditions):
                return False
        if logic.otherwise_confirmed and logic.otherwise is not None:
            return True
        return is_branching_exhaustive(question, logic)

    return False


# =========================================================================
# SLOT TRANSITIONS
# =========================================================================


def edit_logic(slot: Optional[LogicSlot], new_logic, question: Question) -> Optional[LogicSlot]:
    """
    Replace the logic held by a slot.

    None deletes the logic outright. A committable draft is promoted;
    otherwise the previous committed version stays active.
    """
    if new_logic is None:
        return None
    if is_committable(new_logic, question):
        return Committed(new_logic)
    return Pending(new_logic, committed=active_logic(slot))


def rollback(slot: Optional[LogicSlot]) -> Optional[LogicSlot]:
    """Discard a draft, restoring the last committed version (if any)."""
    if slot is None or isinstance(slot, Committed):
        return slot
    if slot.committed is None:
        return None
    return Committed(slot.committed)


def draft_of(slot: Optional[LogicSlot]):
    """The logic an editor should show: the draft if one exists."""
    if slot is None:
        return None
    return slot.logic


def prune(logic):
    """
    Drop every unconfirmed entry. Returns None when nothing survives.

    A branching logic with no surviving branches survives only if its
    otherwise route is confirmed.
    """
    if isinstance(logic, DisplayLogic):
        conditions = tuple(c for c in logic.conditions if c.confirmed)
        logic_sets = tuple(
            replace(s, conditions=tuple(c for c in s.conditions if c.confirmed))
            for s in logic.logic_sets
            if s.confirmed
        )
        logic_sets = tuple(s for s in logic_sets if s.conditions)
        if not conditions and not logic_sets:
            return None
        return replace(logic, conditions=conditions, logic_sets=logic_sets)

    if isinstance(logic, SkipLogic):
        if logic.kind is SkipKind.SIMPLE:
            return logic if logic.confirmed else None
        rules = tuple(r for r in logic.rules if r.confirmed)
        return replace(logic, rules=rules) if rules else None

    if isinstance(logic, BranchingLogic):
        branches = []
        for branch in logic.branches:
            if not branch.confirmed:
                continue
            conditions = tuple(c for c in branch.conditions if c.confirmed)
            if conditions:
                branches.append(replace(branch, conditions=conditions))
        if not branches and not logic.otherwise_confirmed:
            return None
        return replace(logic, branches=tuple(branches))

    return logic


def cleanup_slot(slot: Optional[LogicSlot], question: Question) -> Optional[LogicSlot]:
    """Apply cleanup to one slot; committed slots are left untouched."""
    if slot is None or isinstance(slot, Committed):
        return slot
    pruned = prune(slot.logic)
    if pruned is None:
        return None
    if is_committable(pruned, question):
        return Committed(pruned)
    return rollback(slot)


def cleanup_question(survey: Survey, question_id: str, notify: Optional[Notify] = None) -> Survey:
    """
    Discard unconfirmed logic on one question (focus lost, moved, reparented).

    Returns a new survey. `notify` is called with a human-readable message
    when anything was discarded. Unknown question ids are a no-op.
    """
    if survey.get_question(question_id) is None:
        return survey

    result = copy.deepcopy(survey)
    question = result.get_question(question_id)
    discarded: List[str] = []
    for name in LOGIC_SLOTS:
        slot = getattr(question, name)
        cleaned = cleanup_slot(slot, question)
        if cleaned != slot:
            discarded.append(name.replace("_", " "))
            setattr(question, name, cleaned)

    if discarded:
        label = question.qid or question.label or question.id
        message = f"Unconfirmed {', '.join(discarded)} on {label} was discarded."
        logger.info(message)
        if notify is not None:
            notify(message)
    return result


# =========================================================================
# CONFIRMATION
# =========================================================================


def revise(entry, **changes):
    """Edit a logic entry; any edit returns it to the unconfirmed state."""
    return replace(entry, confirmed=False, **changes)


def check_condition(survey: Survey, question: Question, condition: Condition, allow_self: bool = False) -> None:
    """Raise ConfirmationError unless the condition may be confirmed on `question`."""
    missing = condition.missing_fields()
    if missing:
        raise ConfirmationError(missing)

    source = survey.get_question_by_label(condition.question_label)
    positions = survey.question_positions()
    if source is None:
        raise ConfirmationError(
            ("question_label",), f"Question \"{condition.question_label}\" does not exist."
        )
    source_index = positions[source.id]
    current = positions[question.id]
    if source_index > current or (source_index == current and not allow_self):
        raise ConfirmationError(
            ("question_label",),
            f"Question \"{condition.question_label}\" is not a valid preceding question.",
        )


def _confirm_in_conditions(survey, question, conditions, entry_id, allow_self):
    found = False
    updated = []
    for condition in conditions:
        if condition.id == entry_id:
            check_condition(survey, question, condition, allow_self=allow_self)
            condition = replace(condition, confirmed=True)
            found = True
        updated.append(condition)
    return tuple(updated), found


def _confirm_entry(survey: Survey, question: Question, logic, entry_id: str):
    """Return `logic` with entry `entry_id` confirmed, or raise."""
    if isinstance(logic, DisplayLogic):
        conditions, found = _confirm_in_conditions(survey, question, logic.conditions, entry_id, False)
        if found:
            return replace(logic, conditions=conditions)
        logic_sets = []
        for logic_set in logic.logic_sets:
            if logic_set.id == entry_id:
                if not _conditions_committable(logic_set.conditions):
                    raise ConfirmationError(("conditions",))
                logic_set = replace(logic_set, confirmed=True)
                found = True
            else:
                nested, hit = _confirm_in_conditions(survey, question, logic_set.conditions, entry_id, False)
                if hit:
                    logic_set = replace(logic_set, conditions=nested)
                    found = True
            logic_sets.append(logic_set)
        if found:
            return replace(logic, logic_sets=tuple(logic_sets))

    elif isinstance(logic, SkipLogic):
        if logic.kind is SkipKind.SIMPLE and entry_id == "simple":
            if logic.destination is None:
                raise ConfirmationError(("destination",))
            return replace(logic, confirmed=True)
        rules = []
        found = False
        for rule in logic.rules:
            if rule.id == entry_id:
                if rule.destination is None:
                    raise ConfirmationError(("destination",))
                if question.get_choice(rule.choice_id) is None:
                    raise ConfirmationError(("choice_id",))
                rule = replace(rule, confirmed=True)
                found = True
            rules.append(rule)
        if found:
            return replace(logic, rules=tuple(rules))

    elif isinstance(logic, BranchingLogic):
        if entry_id == "otherwise":
            if logic.otherwise is None:
                raise ConfirmationError(("otherwise",))
            return replace(logic, otherwise_confirmed=True)
        branches: List[Branch] = []
        found = False
        for branch in logic.branches:
            if branch.id == entry_id:
                missing = []
                if not _conditions_committable(branch.conditions):
                    missing.append("conditions")
                if branch.destination is None:
                    missing.append("destination")
                if missing:
                    raise ConfirmationError(missing)
                branch = replace(branch, confirmed=True)
                found = True
            else:
                conditions, hit = _confirm_in_conditions(survey, question, branch.conditions, entry_id, True)
                if hit:
                    branch = replace(branch, conditions=conditions)
                    found = True
            branches.append(branch)
        if found:
            return replace(logic, branches=tuple(branches))

    raise EditError(f"No logic entry '{entry_id}' on question {question.id}")


def confirm(survey: Survey, question_id: str, slot_name: str, entry_id: str) -> Survey:
    """
    Confirm one entry of a question's draft logic.

    entry_id names a condition, logic set, branch or skip rule, or is
    "simple" (simple skip) / "otherwise" (branching fallback). When the
    draft becomes fully confirmed it is promoted to Committed.

    Raises ConfirmationError when required fields are missing or the
    condition does not reference an earlier question, and EditError for
    unknown ids.
    """
    if slot_name not in LOGIC_SLOTS:
        raise EditError(f"Unknown logic slot '{slot_name}'")
    if survey.get_question(question_id) is None:
        raise EditError(f"Unknown question '{question_id}'")

    result = copy.deepcopy(survey)
    question = result.get_question(question_id)
    slot = getattr(question, slot_name)
    if slot is None:
        raise EditError(f"Question {question_id} has no {slot_name}")

    updated = _confirm_entry(result, question, slot.logic, entry_id)
    setattr(question, slot_name, edit_logic(slot, updated, question))
    return result
