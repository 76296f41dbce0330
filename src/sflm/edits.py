"""
Document transitions: (survey, edit) -> survey.

Every edit is a small frozen dataclass. apply_edit() deep-copies the
survey, applies the edit to the copy and, for structural edits, runs the
derived-state pipeline before returning:

    1. detach references to deleted questions
    2. apply_paging_rules (automatic page breaks)
    3. renumber (labels, choice variables, logic references)

The input survey is never modified, and no intermediate state with
stale labels escapes this module.

Callers that want user-facing messages (discarded drafts, logic made
invalid by a move) pass a `notify` callback.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sflm import drafts
from sflm.errors import EditError
from sflm.ids import generate_id
from sflm.model import (
    Block,
    Choice,
    Committed,
    PagingMode,
    Pending,
    Question,
    QuestionType,
    ScalePoint,
    SkipLogic,
    Survey,
)
from sflm.paging import apply_paging_rules, make_page_break
from sflm.renumber import detach_references, renumber
from sflm.validator import invalid_logic_summary

logger = logging.getLogger(__name__)

Notify = Callable[[str], None]

PLACEHOLDER_TEXT = "This is a description question placeholder."
_DEFAULT_DESCRIPTION_LABEL = re.compile(r"^Description \d+$")


# =========================================================================
# FACTORIES
# =========================================================================


def new_choice(label: str) -> Choice:
    return Choice(id=generate_id("c"), label=label)


def new_question(question_type: QuestionType, text: str = "", choices: Iterable[str] = (),
                 scale_points: Iterable[str] = ()) -> Question:
    """A fresh question with stable ids for itself and its choices."""
    return Question(
        id=generate_id("q"),
        type=question_type,
        text=text,
        choices=[new_choice(label) for label in choices],
        scale_points=[ScalePoint(id=generate_id("sp"), label=label) for label in scale_points],
    )


def placeholder_description() -> Question:
    return Question(id=generate_id("q"), type=QuestionType.DESCRIPTION, text=PLACEHOLDER_TEXT)


def new_block(title: str, questions: Optional[List[Question]] = None) -> Block:
    return Block(
        id=generate_id("block"),
        title=title,
        questions=questions if questions is not None else [placeholder_description()],
    )


# =========================================================================
# EDIT VOCABULARY
# =========================================================================


@dataclass(frozen=True)
class SetTitle:
    title: str


@dataclass(frozen=True)
class SetPagingMode:
    mode: PagingMode


@dataclass(frozen=True)
class SetGlobalAutoAdvance:
    enabled: bool


@dataclass(frozen=True)
class AddBlock:
    """Insert a new block below (or above) `block_id`; at the end when None."""

    block_id: Optional[str] = None
    position: str = "below"
    title: str = "New block"


@dataclass(frozen=True)
class UpdateBlock:
    """Change block properties: title, continue_to, branch_name, is_convergence, automatic_page_breaks."""

    block_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteBlock:
    block_id: str


@dataclass(frozen=True)
class CopyBlock:
    block_id: str


@dataclass(frozen=True)
class MoveBlock:
    """Move a block before `before_block_id`, or to the end when None."""

    block_id: str
    before_block_id: Optional[str] = None


@dataclass(frozen=True)
class AddQuestion:
    """Add a question to a block, after `after_question_id` or at the end."""

    block_id: str
    question_type: QuestionType
    text: str = ""
    choices: Tuple[str, ...] = ()
    scale_points: Tuple[str, ...] = ()
    after_question_id: Optional[str] = None


@dataclass(frozen=True)
class UpdateQuestion:
    """Change question properties: text, type, force_response, label, carry_forward_source."""

    question_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteQuestion:
    question_id: str


@dataclass(frozen=True)
class CopyQuestion:
    question_id: str


@dataclass(frozen=True)
class MoveQuestion:
    """Move a question into `block_id` before `before_question_id` (or to the end)."""

    question_id: str
    block_id: str
    before_question_id: Optional[str] = None


@dataclass(frozen=True)
class MoveQuestionToNewBlock:
    """Move a question into a new block right after its current block."""

    question_id: str


@dataclass(frozen=True)
class AddPageBreakAfter:
    question_id: str


@dataclass(frozen=True)
class AddChoice:
    question_id: str
    label: str
    index: Optional[int] = None


@dataclass(frozen=True)
class UpdateChoice:
    question_id: str
    choice_id: str
    label: str


@dataclass(frozen=True)
class DeleteChoice:
    question_id: str
    choice_id: str


@dataclass(frozen=True)
class UpdateLogic:
    """Replace the logic in a slot (display_logic, hide_logic, skip_logic, branching_logic)."""

    question_id: str
    slot: str
    logic: Any = None


@dataclass(frozen=True)
class ConfirmLogicEntry:
    question_id: str
    slot: str
    entry_id: str


@dataclass(frozen=True)
class RollbackLogic:
    question_id: str
    slot: str


@dataclass(frozen=True)
class CleanupDrafts:
    question_id: str


# =========================================================================
# HELPERS
# =========================================================================


def _require_block(survey: Survey, block_id: str) -> Block:
    block = survey.get_block(block_id)
    if block is None:
        raise EditError(f"Unknown block '{block_id}'")
    return block


def _require_question(survey: Survey, question_id: str) -> Question:
    question = survey.get_question(question_id)
    if question is None:
        raise EditError(f"Unknown question '{question_id}'")
    return question


def _require_slot(slot: str) -> None:
    if slot not in drafts.LOGIC_SLOTS:
        raise EditError(f"Unknown logic slot '{slot}'")


def _normalize(survey: Survey) -> Survey:
    return renumber(apply_paging_rules(survey))


def _remove_question(survey: Survey, question_id: str) -> Tuple[Block, int, Question]:
    for block in survey.blocks:
        for index, question in enumerate(block.questions):
            if question.id == question_id:
                del block.questions[index]
                return block, index, question
    raise EditError(f"Unknown question '{question_id}'")


def _clone_question(question: Question) -> Question:
    """Deep copy with fresh stable ids; per-choice skip rules follow their choices."""
    clone = copy.deepcopy(question)
    clone.id = generate_id("q" if question.type is not QuestionType.PAGE_BREAK else "pb")
    choice_map: Dict[str, str] = {}
    for choice in clone.choices:
        new_id = generate_id("c")
        choice_map[choice.id] = new_id
        choice.id = new_id
    for point in clone.scale_points:
        new_id = generate_id("sp")
        choice_map[point.id] = new_id
        point.id = new_id

    def remap(logic):
        if not isinstance(logic, SkipLogic):
            return logic
        return replace(logic, rules=tuple(
            replace(
                r,
                id=generate_id("sr"),
                choice_id=choice_map.get(r.choice_id, r.choice_id),
                value_choice_id=choice_map.get(r.value_choice_id, r.value_choice_id),
            )
            for r in logic.rules
        ))

    slot = clone.skip_logic
    if isinstance(slot, Committed):
        clone.skip_logic = Committed(remap(slot.logic))
    elif isinstance(slot, Pending):
        clone.skip_logic = Pending(remap(slot.logic), remap(slot.committed) if slot.committed else None)
    return clone


def _drop_empty_block(survey: Survey, block: Block) -> None:
    if not block.questions and len(survey.blocks) > 1:
        survey.blocks = [b for b in survey.blocks if b.id != block.id]


def _after_move(survey: Survey, question_id: str, notify: Optional[Notify]) -> Survey:
    survey = drafts.cleanup_question(_normalize(survey), question_id, notify)
    message = invalid_logic_summary(survey)
    if message:
        logger.info(message)
        if notify is not None:
            notify(message)
    return survey


# =========================================================================
# HANDLERS
# =========================================================================


def _set_title(survey: Survey, edit: SetTitle, notify) -> Survey:
    survey.title = edit.title
    return survey


def _set_paging_mode(survey: Survey, edit: SetPagingMode, notify) -> Survey:
    survey.paging_mode = edit.mode
    return _normalize(survey)


def _set_auto_advance(survey: Survey, edit: SetGlobalAutoAdvance, notify) -> Survey:
    survey.global_auto_advance = edit.enabled
    return survey


def _add_block(survey: Survey, edit: AddBlock, notify) -> Survey:
    block = new_block(edit.title)
    if edit.block_id is None:
        survey.blocks.append(block)
    else:
        _require_block(survey, edit.block_id)
        index = survey.block_positions()[edit.block_id]
        survey.blocks.insert(index if edit.position == "above" else index + 1, block)
    return _normalize(survey)


_BLOCK_FIELDS = {"title", "continue_to", "branch_name", "is_convergence", "automatic_page_breaks"}


def _update_block(survey: Survey, edit: UpdateBlock, notify) -> Survey:
    block = _require_block(survey, edit.block_id)
    unknown = set(edit.changes) - _BLOCK_FIELDS
    if unknown:
        raise EditError(f"Cannot update block fields {sorted(unknown)}")
    for name, value in edit.changes.items():
        setattr(block, name, value)
    if "automatic_page_breaks" in edit.changes:
        return _normalize(survey)
    return survey


def _delete_block(survey: Survey, edit: DeleteBlock, notify) -> Survey:
    block = _require_block(survey, edit.block_id)
    survey.blocks = [b for b in survey.blocks if b.id != block.id]
    detach_references(survey, [q.qid for q in block.questions])
    if not survey.blocks:
        survey.blocks.append(new_block("Default Block"))
    return _normalize(survey)


def _copy_block(survey: Survey, edit: CopyBlock, notify) -> Survey:
    block = _require_block(survey, edit.block_id)
    clone = copy.deepcopy(block)
    clone.id = generate_id("block")
    clone.title = f"{block.title} (Copy)"
    clone.questions = [_clone_question(q) for q in block.questions]

    taken = {q.label for q in survey.iter_questions() if q.type is QuestionType.DESCRIPTION and q.label}
    for question in clone.questions:
        if question.type is not QuestionType.DESCRIPTION or not question.label:
            continue
        if _DEFAULT_DESCRIPTION_LABEL.match(question.label):
            question.label = ""
            continue
        if question.label in taken:
            attempt, n = f"{question.label} (Copy)", 1
            while attempt in taken:
                n += 1
                attempt = f"{question.label} (Copy {n})"
            question.label = attempt
        taken.add(question.label)

    survey.blocks.insert(survey.block_positions()[block.id] + 1, clone)
    return _normalize(survey)


def _move_block(survey: Survey, edit: MoveBlock, notify) -> Survey:
    block = _require_block(survey, edit.block_id)
    if edit.before_block_id is not None:
        _require_block(survey, edit.before_block_id)
    survey.blocks = [b for b in survey.blocks if b.id != block.id]
    if edit.before_block_id is None or edit.before_block_id == block.id:
        survey.blocks.append(block)
    else:
        survey.blocks.insert(survey.block_positions()[edit.before_block_id], block)
    survey = _normalize(survey)
    message = invalid_logic_summary(survey)
    if message and notify is not None:
        notify(message)
    return survey


def _add_question(survey: Survey, edit: AddQuestion, notify) -> Survey:
    block = _require_block(survey, edit.block_id)
    question = new_question(edit.question_type, edit.text, edit.choices, edit.scale_points)
    if edit.after_question_id is None:
        block.questions.append(question)
    else:
        ids = [q.id for q in block.questions]
        if edit.after_question_id not in ids:
            raise EditError(f"Question '{edit.after_question_id}' is not in block '{block.id}'")
        block.questions.insert(ids.index(edit.after_question_id) + 1, question)
    return _normalize(survey)


_QUESTION_FIELDS = {"text", "type", "force_response", "label", "carry_forward_source"}


def _update_question(survey: Survey, edit: UpdateQuestion, notify) -> Survey:
    question = _require_question(survey, edit.question_id)
    unknown = set(edit.changes) - _QUESTION_FIELDS
    if unknown:
        raise EditError(f"Cannot update question fields {sorted(unknown)}")
    for name, value in edit.changes.items():
        setattr(question, name, value)
    if "type" in edit.changes:
        if not question.type.is_choice_based:
            question.choices = []
        if question.type is not QuestionType.CHOICE_GRID:
            question.scale_points = []
        return _normalize(survey)
    return survey


def _delete_question(survey: Survey, edit: DeleteQuestion, notify) -> Survey:
    _, _, question = _remove_question(survey, edit.question_id)
    detach_references(survey, [question.qid])
    return _normalize(survey)


def _copy_question(survey: Survey, edit: CopyQuestion, notify) -> Survey:
    _require_question(survey, edit.question_id)
    block = survey.block_of(edit.question_id)
    index = [q.id for q in block.questions].index(edit.question_id)
    block.questions.insert(index + 1, _clone_question(block.questions[index]))
    return _normalize(survey)


def _move_question(survey: Survey, edit: MoveQuestion, notify) -> Survey:
    target = _require_block(survey, edit.block_id)
    source, _, question = _remove_question(survey, edit.question_id)
    ids = [q.id for q in target.questions]
    if edit.before_question_id is not None and edit.before_question_id in ids:
        target.questions.insert(ids.index(edit.before_question_id), question)
    else:
        target.questions.append(question)
    _drop_empty_block(survey, source)
    return _after_move(survey, question.id, notify)


def _move_to_new_block(survey: Survey, edit: MoveQuestionToNewBlock, notify) -> Survey:
    source, index, question = _remove_question(survey, edit.question_id)
    moved = [question]
    if question.type is QuestionType.PAGE_BREAK:
        # A page break carries its page with it
        while index < len(source.questions) and source.questions[index].type is not QuestionType.PAGE_BREAK:
            moved.append(source.questions.pop(index))
    block = new_block("New block", moved)
    survey.blocks.insert(survey.block_positions()[source.id] + 1, block)
    _drop_empty_block(survey, source)
    return _after_move(survey, question.id, notify)


def _add_page_break(survey: Survey, edit: AddPageBreakAfter, notify) -> Survey:
    _require_question(survey, edit.question_id)
    block = survey.block_of(edit.question_id)
    index = [q.id for q in block.questions].index(edit.question_id)
    block.questions.insert(index + 1, make_page_break())
    return _normalize(survey)


def _add_choice(survey: Survey, edit: AddChoice, notify) -> Survey:
    question = _require_question(survey, edit.question_id)
    choice = new_choice(edit.label)
    if edit.index is None:
        question.choices.append(choice)
    else:
        question.choices.insert(edit.index, choice)
    return _normalize(survey)


def _update_choice(survey: Survey, edit: UpdateChoice, notify) -> Survey:
    question = _require_question(survey, edit.question_id)
    choice = question.get_choice(edit.choice_id)
    if choice is None:
        raise EditError(f"Unknown choice '{edit.choice_id}'")
    choice.label = edit.label
    return survey


def _delete_choice(survey: Survey, edit: DeleteChoice, notify) -> Survey:
    question = _require_question(survey, edit.question_id)
    if question.get_choice(edit.choice_id) is None:
        raise EditError(f"Unknown choice '{edit.choice_id}'")
    question.choices = [c for c in question.choices if c.id != edit.choice_id]
    return _normalize(survey)


def _update_logic(survey: Survey, edit: UpdateLogic, notify) -> Survey:
    _require_slot(edit.slot)
    question = _require_question(survey, edit.question_id)
    slot = getattr(question, edit.slot)
    setattr(question, edit.slot, drafts.edit_logic(slot, edit.logic, question))
    return survey


def _confirm_entry(survey: Survey, edit: ConfirmLogicEntry, notify) -> Survey:
    return drafts.confirm(survey, edit.question_id, edit.slot, edit.entry_id)


def _rollback_logic(survey: Survey, edit: RollbackLogic, notify) -> Survey:
    _require_slot(edit.slot)
    question = _require_question(survey, edit.question_id)
    setattr(question, edit.slot, drafts.rollback(getattr(question, edit.slot)))
    return survey


def _cleanup(survey: Survey, edit: CleanupDrafts, notify) -> Survey:
    return drafts.cleanup_question(survey, edit.question_id, notify)


_HANDLERS = {
    SetTitle: _set_title,
    SetPagingMode: _set_paging_mode,
    SetGlobalAutoAdvance: _set_auto_advance,
    AddBlock: _add_block,
    UpdateBlock: _update_block,
    DeleteBlock: _delete_block,
    CopyBlock: _copy_block,
    MoveBlock: _move_block,
    AddQuestion: _add_question,
    UpdateQuestion: _update_question,
    DeleteQuestion: _delete_question,
    CopyQuestion: _copy_question,
    MoveQuestion: _move_question,
    MoveQuestionToNewBlock: _move_to_new_block,
    AddPageBreakAfter: _add_page_break,
    AddChoice: _add_choice,
    UpdateChoice: _update_choice,
    DeleteChoice: _delete_choice,
    UpdateLogic: _update_logic,
    ConfirmLogicEntry: _confirm_entry,
    RollbackLogic: _rollback_logic,
    CleanupDrafts: _cleanup,
}


def apply_edit(survey: Survey, edit, notify: Optional[Notify] = None) -> Survey:
    """
    Apply one edit and return the new survey snapshot.

    Raises EditError for unknown edit types and for edits naming a block,
    question, choice or logic slot the survey does not contain.
    """
    handler = _HANDLERS.get(type(edit))
    if handler is None:
        raise EditError(f"Unsupported edit: {type(edit).__name__}")
    logger.debug("Applying %s", edit)
    return handler(copy.deepcopy(survey), edit, notify)


def apply_edits(survey: Survey, edits: Sequence, notify: Optional[Notify] = None) -> Survey:
    for edit in edits:
        survey = apply_edit(survey, edit, notify)
    return survey
