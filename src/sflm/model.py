"""
Core Survey Model Objects

Defines the fundamental data structures of the Survey Flow Logic Model.

These are pure data classes representing:
    - Surveys (root container)
    - Blocks (ordered groups of questions, the nodes of the flow graph)
    - Questions (with choices, scale points and logic slots)
    - Destinations (where skip/branch rules send the respondent)
    - Display, hide, skip and branching logic

ARCHITECTURAL RULE:
    These objects:
        - Know nothing about CSV, YAML or any UI
        - Represent structure, not behavior
        - Are never mutated in place by edits: every edit deep-copies
          the survey first and returns the new snapshot
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

from .expressions import Combinator, Condition, LogicSet


class QuestionType(Enum):
    """Closed set of question type tags."""

    RADIO = "Radio Button"
    CHECKBOX = "Checkbox"
    TEXT_ENTRY = "Text Entry"
    CHOICE_GRID = "Choice Grid"
    DESCRIPTION = "Description"
    PAGE_BREAK = "Page Break"
    DROP_DOWN_LIST = "Drop-Down List"
    IMAGE_SELECTOR = "Image Selector"
    NUMERIC_ANSWER = "Numeric Answer"
    EMAIL_ADDRESS_ANSWER = "Email Address Answer"
    DATE_TIME_ANSWER = "Date Time Answer"
    RESPONDENT_PHONE = "Respondent Phone"
    HYBRID_GRID = "Hybrid Grid"
    SLIDER = "Slider"
    STAR_RATING = "Star Rating"
    NET_PROMOTER = "Net Promoter (NPS)"
    NUMERIC_RANKING = "Numeric Ranking"
    DRAG_AND_DROP_RANKING = "Drag And Drop Ranking"
    CARD_SORT = "Card Sort"
    FILE_UPLOAD = "File Upload"
    SIGNATURE = "Signature"

    @property
    def is_addressable(self) -> bool:
        """Addressable questions get a Q<n> label and count as content."""
        return self not in (QuestionType.DESCRIPTION, QuestionType.PAGE_BREAK)

    @property
    def is_choice_based(self) -> bool:
        return self in CHOICE_BASED_TYPES


CHOICE_BASED_TYPES = frozenset({
    QuestionType.RADIO,
    QuestionType.CHECKBOX,
    QuestionType.DROP_DOWN_LIST,
    QuestionType.IMAGE_SELECTOR,
    QuestionType.CHOICE_GRID,
})


class PagingMode(Enum):
    ONE_PER_PAGE = "one-per-page"
    MULTI_PER_PAGE = "multi-per-page"


# =========================================================================
# DESTINATIONS
# =========================================================================


class DestinationKind(Enum):
    NEXT = "next"
    END = "end"
    BLOCK = "block"
    QUESTION = "question"


@dataclass(frozen=True)
class Destination:
    """
    Target of a skip rule, branch or block continuation.

    Wire grammar:
        next | end | block:<blockId> | <questionStableId>

    Destinations always reference stable ids, never positions, so they
    survive reordering. They are resolved against the current document
    at the moment they are followed.
    """

    kind: DestinationKind
    target: str = ""

    @classmethod
    def parse(cls, raw: str) -> "Destination":
        value = (raw or "").strip()
        if not value:
            raise ValueError("Destination string is empty")
        if value == "next":
            return NEXT
        if value == "end":
            return END
        if value.startswith("block:"):
            block_id = value[len("block:"):]
            if not block_id:
                raise ValueError(f"Destination '{raw}' names no block")
            return cls(DestinationKind.BLOCK, block_id)
        return cls(DestinationKind.QUESTION, value)

    @classmethod
    def to_block(cls, block_id: str) -> "Destination":
        return cls(DestinationKind.BLOCK, block_id)

    @classmethod
    def to_question(cls, question_id: str) -> "Destination":
        return cls(DestinationKind.QUESTION, question_id)

    @property
    def is_next(self) -> bool:
        return self.kind is DestinationKind.NEXT

    @property
    def is_end(self) -> bool:
        return self.kind is DestinationKind.END

    def __str__(self) -> str:
        if self.kind is DestinationKind.BLOCK:
            return f"block:{self.target}"
        if self.kind is DestinationKind.QUESTION:
            return self.target
        return self.kind.value


NEXT = Destination(DestinationKind.NEXT)
END = Destination(DestinationKind.END)


# =========================================================================
# CHOICES
# =========================================================================

_CHOICE_VARIABLE_RE = re.compile(r"^\(?(Q\d+_\d+)\)?\s*")


def parse_choice_text(text: str) -> Tuple[str, str]:
    """
    Split persisted choice text into (variable, label).

        "Q1_1 Yes"  -> ("Q1_1", "Yes")
        "(Q2_3) No" -> ("Q2_3", "No")
        "Maybe"     -> ("", "Maybe")
    """
    match = _CHOICE_VARIABLE_RE.match(text or "")
    if match:
        return match.group(1), text[match.end():]
    return "", text or ""


@dataclass
class Choice:
    """
    A selectable answer option.

    The variable prefix (Q<n>_<k>) and the human label are kept apart.
    They are only joined into one string at the persistence boundary
    (see `text`).
    """

    id: str
    label: str
    variable: str = ""

    @property
    def text(self) -> str:
        if self.variable:
            return f"{self.variable} {self.label}"
        return self.label

    @classmethod
    def from_text(cls, choice_id: str, text: str) -> "Choice":
        variable, label = parse_choice_text(text)
        return cls(id=choice_id, label=label, variable=variable)


@dataclass
class ScalePoint(Choice):
    """A column header of a Choice Grid."""


# =========================================================================
# LOGIC
# =========================================================================


@dataclass(frozen=True)
class DisplayLogic:
    """
    Visibility rule: combinator over conditions and nested logic sets.

    Also used for hide rules, which share the same shape.
    """

    combinator: Combinator = Combinator.AND
    conditions: Tuple[Condition, ...] = ()
    logic_sets: Tuple[LogicSet, ...] = ()

    def iter_conditions(self) -> Iterator[Condition]:
        yield from self.conditions
        for logic_set in self.logic_sets:
            yield from logic_set.conditions


class SkipKind(Enum):
    SIMPLE = "simple"
    PER_CHOICE = "per_choice"


class GridSkipOperator(Enum):
    """Row/column tests available to per-choice skip rules on grids."""

    IS_ANSWERED_WITH = "is_answered_with"
    IS_NOT_ANSWERED_WITH = "is_not_answered_with"
    IS_ANSWERED_AFTER = "is_answered_after"
    IS_ANSWERED_BEFORE = "is_answered_before"
    IS_ANSWERED = "is_answered"
    IS_NOT_ANSWERED = "is_not_answered"


@dataclass(frozen=True)
class SkipRule:
    """One destination per matched choice (per_choice skip logic)."""

    id: str
    choice_id: str
    destination: Optional[Destination] = None
    confirmed: bool = False
    grid_operator: Optional[GridSkipOperator] = None
    value_choice_id: Optional[str] = None


@dataclass(frozen=True)
class SkipLogic:
    """
    Skip rule attached to a question.

    SIMPLE: fires when the question is answered, uses `destination`.
    PER_CHOICE: one SkipRule per matched choice, uses `rules`.
    """

    kind: SkipKind
    destination: Optional[Destination] = None
    confirmed: bool = False
    rules: Tuple[SkipRule, ...] = ()


@dataclass(frozen=True)
class Branch:
    """One IF ... THEN -> destination arm of a BranchingLogic."""

    id: str
    combinator: Combinator = Combinator.AND
    conditions: Tuple[Condition, ...] = ()
    destination: Optional[Destination] = None
    confirmed: bool = False
    path_name: str = ""


@dataclass(frozen=True)
class BranchingLogic:
    """
    Ordered branches plus the mandatory fallback (OTHERWISE) destination.

    `otherwise_path_name` names the fallback route for path analysis.
    """

    branches: Tuple[Branch, ...] = ()
    otherwise: Optional[Destination] = None
    otherwise_confirmed: bool = False
    otherwise_path_name: str = ""


L = TypeVar("L")


@dataclass(frozen=True)
class Committed(Generic[L]):
    """A fully confirmed logic object, active in evaluation."""

    logic: L


@dataclass(frozen=True)
class Pending(Generic[L]):
    """
    A logic object mid-edit.

    `logic` is the draft. `committed` is the last committed version, which
    stays active in evaluation until the draft is promoted, and which is
    restored on rollback.
    """

    logic: L
    committed: Optional[L] = None


LogicSlot = Union[Pending, Committed]


def active_logic(slot: Optional[LogicSlot]):
    """Return the logic that evaluation and path analysis may use."""
    if slot is None:
        return None
    if isinstance(slot, Committed):
        return slot.logic
    return slot.committed


def slot_versions(slot: Optional[LogicSlot]) -> List:
    """Every logic object held by a slot (draft and committed)."""
    if slot is None:
        return []
    if isinstance(slot, Committed):
        return [slot.logic]
    return [v for v in (slot.logic, slot.committed) if v is not None]


# =========================================================================
# DOCUMENT
# =========================================================================


@dataclass
class Question:
    """
    A single survey item.

    Properties:
        id:
            Stable id, assigned once at creation

        qid:
            Sequential label Q<n>. Empty for Description and Page Break.
            Derived by sflm.renumber; never used as identity.

        label:
            Display label of Description items ("Description 2" or a
            custom label). Unused by other types.

        is_automatic:
            True for page breaks inserted by the paging rules

        carry_forward_source:
            Label of a question whose choices are carried into this one
    """

    id: str
    type: QuestionType
    text: str = ""
    qid: str = ""
    label: str = ""
    choices: List[Choice] = field(default_factory=list)
    scale_points: List[ScalePoint] = field(default_factory=list)
    force_response: bool = False
    is_automatic: bool = False
    carry_forward_source: str = ""
    display_logic: Optional[LogicSlot] = None
    hide_logic: Optional[LogicSlot] = None
    skip_logic: Optional[LogicSlot] = None
    branching_logic: Optional[LogicSlot] = None

    def get_choice(self, choice_id: str) -> Optional[Choice]:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None

    def get_scale_point(self, scale_point_id: str) -> Optional[ScalePoint]:
        for point in self.scale_points:
            if point.id == scale_point_id:
                return point
        return None


@dataclass
class Block:
    """
    An ordered group of questions; the node type of the flow graph.

    Properties:
        bid: sequential label BL<n>, derived
        continue_to: explicit destination after the block's last question
        branch_name: name of the branch path this block belongs to
        is_convergence: block is the rejoin point of several named paths
        automatic_page_breaks: apply one-question-per-page inside this
            block even when the survey is in multi-per-page mode
    """

    id: str
    title: str = ""
    bid: str = ""
    questions: List[Question] = field(default_factory=list)
    continue_to: Optional[Destination] = None
    branch_name: str = ""
    is_convergence: bool = False
    automatic_page_breaks: bool = False


@dataclass
class Survey:
    """
    Root container for the whole survey document.

    INVARIANTS:
        - Stable ids are unique across blocks and questions
        - qid/bid labels are contiguous in document order after renumbering
        - Conditions reference questions by label; stale references may
          exist only transiently inside an edit
    """

    title: str = ""
    blocks: List[Block] = field(default_factory=list)
    paging_mode: PagingMode = PagingMode.ONE_PER_PAGE
    global_auto_advance: bool = False

    def iter_questions(self) -> Iterator[Question]:
        for block in self.blocks:
            yield from block.questions

    def get_block(self, block_id: str) -> Optional[Block]:
        for block in self.blocks:
            if block.id == block_id:
                return block
        return None

    def get_question(self, question_id: str) -> Optional[Question]:
        for question in self.iter_questions():
            if question.id == question_id:
                return question
        return None

    def get_question_by_label(self, qid: str) -> Optional[Question]:
        """First question carrying the label wins on duplicates."""
        if not qid:
            return None
        for question in self.iter_questions():
            if question.qid == qid:
                return question
        return None

    def block_of(self, question_id: str) -> Optional[Block]:
        for block in self.blocks:
            for question in block.questions:
                if question.id == question_id:
                    return block
        return None

    def question_positions(self) -> Dict[str, int]:
        """Map of question stable id to its index in document order."""
        return {q.id: i for i, q in enumerate(self.iter_questions())}

    def block_positions(self) -> Dict[str, int]:
        return {b.id: i for i, b in enumerate(self.blocks)}
