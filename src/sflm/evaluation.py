"""
Logic Evaluation Engine.

Decides, for a given answer set:
    - whether a question is visible (display and hide logic)
    - where the respondent goes after a page (skip and branching logic,
      then block continuation)

Only committed logic takes part. A slot that is mid-edit contributes its
last committed version (see sflm.model.active_logic).

ARCHITECTURAL RULE:
    Evaluation never raises on survey content. Any reference that does
    not resolve (deleted question, missing choice, dangling destination)
    makes the condition false or the rule not fire.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from sflm.answers import Answer, AnswerSet, GridAnswers, MultiChoice, SingleChoice, TextAnswer, is_empty
from sflm.expressions import Combinator, Condition, ConditionOperator
from sflm.model import (
    END,
    NEXT,
    Block,
    BranchingLogic,
    Choice,
    Destination,
    DestinationKind,
    DisplayLogic,
    GridSkipOperator,
    Question,
    QuestionType,
    SkipKind,
    SkipLogic,
    SkipRule,
    Survey,
    active_logic,
)
from sflm.paging import is_interactive, split_pages

logger = logging.getLogger(__name__)


# =========================================================================
# CONDITIONS
# =========================================================================


def _matches_choice(value: str, choice: Choice) -> bool:
    return value == choice.text or value == choice.label


def _selected_choices(question: Question, answer: Answer) -> List[Choice]:
    if isinstance(answer, SingleChoice):
        choice = question.get_choice(answer.choice_id)
        return [choice] if choice else []
    if isinstance(answer, MultiChoice):
        return [c for c in question.choices if c.id in answer.choice_ids]
    return []


def _to_number(raw) -> Optional[float]:
    try:
        return float(str(raw).strip())
    except (TypeError, ValueError):
        return None


def _compare_numbers(operator: ConditionOperator, actual, expected) -> bool:
    left = _to_number(actual)
    right = _to_number(expected)
    if left is None or right is None:
        return False
    if operator is ConditionOperator.GREATER_THAN:
        return left > right
    return left < right


def _evaluate_grid(condition: Condition, question: Question, answer: Optional[Answer]) -> bool:
    rows = answer.rows if isinstance(answer, GridAnswers) else {}
    row = next((c for c in question.choices if _matches_choice(condition.value, c)), None)
    if row is None:
        return False
    selected = rows.get(row.id)

    if condition.grid_value is None:
        if condition.operator is ConditionOperator.EQUALS:
            return selected is not None
        if condition.operator is ConditionOperator.NOT_EQUALS:
            return selected is None
        return False

    if condition.operator is ConditionOperator.EQUALS:
        return selected == condition.grid_value
    if condition.operator is ConditionOperator.NOT_EQUALS:
        return selected != condition.grid_value
    return False


def evaluate_condition(condition: Condition, survey: Survey, answers: AnswerSet) -> bool:
    """
    Evaluate one condition against the answers.

    Returns False for incomplete conditions and for conditions whose
    source question cannot be found.
    """
    if condition.operator is None:
        return False
    source = survey.get_question_by_label(condition.question_label)
    if source is None:
        return False

    answer = answers.get(source.id)
    operator = condition.operator

    if operator is ConditionOperator.IS_EMPTY:
        return is_empty(answer)
    if operator is ConditionOperator.IS_NOT_EMPTY:
        return not is_empty(answer)

    if source.type is QuestionType.CHOICE_GRID:
        return _evaluate_grid(condition, source, answer)

    if source.type.is_choice_based:
        selected = _selected_choices(source, answer) if answer is not None else []
        hit = any(_matches_choice(condition.value, c) for c in selected)
        if operator is ConditionOperator.EQUALS:
            return hit
        if operator is ConditionOperator.NOT_EQUALS:
            return not hit
        if operator is ConditionOperator.CONTAINS:
            return any(condition.value in c.label for c in selected)
        return any(_compare_numbers(operator, c.label, condition.value) for c in selected)

    actual = answer.value if isinstance(answer, TextAnswer) else None
    if operator is ConditionOperator.EQUALS:
        return actual == condition.value
    if operator is ConditionOperator.NOT_EQUALS:
        return actual != condition.value
    if operator is ConditionOperator.CONTAINS:
        return actual is not None and condition.value in actual
    return actual is not None and _compare_numbers(operator, actual, condition.value)


def _combine_confirmed(
    combinator: Combinator,
    conditions: Iterable[Condition],
    survey: Survey,
    answers: AnswerSet,
) -> Optional[bool]:
    """Combine confirmed conditions; None when there are none."""
    confirmed = [c for c in conditions if c.confirmed]
    if not confirmed:
        return None
    return combinator.combine(evaluate_condition(c, survey, answers) for c in confirmed)


def evaluate_logic(logic: Optional[DisplayLogic], survey: Survey, answers: AnswerSet) -> Optional[bool]:
    """
    Evaluate display-shaped logic.

    Returns None when the logic holds no confirmed entries, so callers
    can apply their own fallback.
    """
    if logic is None:
        return None
    results = [evaluate_condition(c, survey, answers) for c in logic.conditions if c.confirmed]
    for logic_set in logic.logic_sets:
        if not logic_set.confirmed:
            continue
        nested = _combine_confirmed(logic_set.combinator, logic_set.conditions, survey, answers)
        if nested is not None:
            results.append(nested)
    if not results:
        return None
    return logic.combinator.combine(results)


def is_visible(question: Question, survey: Survey, answers: AnswerSet) -> bool:
    """
    Visible unless confirmed display logic fails or confirmed hide logic passes.

    A question with no logic, or with only unconfirmed conditions, is
    always visible.
    """
    shown = evaluate_logic(active_logic(question.display_logic), survey, answers)
    if shown is False:
        return False
    hidden = evaluate_logic(active_logic(question.hide_logic), survey, answers)
    return hidden is not True


def visible_pages(survey: Survey, answers: AnswerSet) -> List[List[Question]]:
    """Pages in document order, restricted to visible items; empty pages dropped."""
    pages = []
    for block in survey.blocks:
        for page in split_pages(block, survey.paging_mode):
            visible = [q for q in page if is_visible(q, survey, answers)]
            if visible:
                pages.append(visible)
    return pages


# =========================================================================
# NAVIGATION
# =========================================================================


@dataclass(frozen=True)
class FiredRule:
    """A skip or branching rule that matched during navigation."""

    question_id: str
    kind: str  # "branch", "otherwise" or "skip"
    destination: Destination
    path_name: str = ""


@dataclass(frozen=True)
class NavigationDecision:
    """
    Outcome of leaving a page.

    Properties:
        destination: where to go (never None)
        fired: every rule that matched, in document order
        ambiguous: more than one rule matched on the page; the winner
            was picked by precedence and the survey deserves review
    """

    destination: Destination
    fired: Tuple[FiredRule, ...] = field(default_factory=tuple)
    ambiguous: bool = False


def destination_exists(survey: Survey, destination: Optional[Destination]) -> bool:
    if destination is None:
        return False
    if destination.kind is DestinationKind.BLOCK:
        return survey.get_block(destination.target) is not None
    if destination.kind is DestinationKind.QUESTION:
        return survey.get_question(destination.target) is not None
    return True


def _grid_rule_matches(rule: SkipRule, question: Question, answer: GridAnswers) -> bool:
    selected = answer.rows.get(rule.choice_id)
    operator = rule.grid_operator
    if operator is GridSkipOperator.IS_ANSWERED:
        return selected is not None
    if operator is GridSkipOperator.IS_NOT_ANSWERED:
        return selected is None
    if selected is None:
        return False
    if operator is GridSkipOperator.IS_ANSWERED_WITH:
        return selected == rule.value_choice_id
    if operator is GridSkipOperator.IS_NOT_ANSWERED_WITH:
        return selected != rule.value_choice_id

    columns = [p.id for p in question.scale_points]
    if selected not in columns or rule.value_choice_id not in columns:
        return False
    if operator is GridSkipOperator.IS_ANSWERED_AFTER:
        return columns.index(selected) > columns.index(rule.value_choice_id)
    return columns.index(selected) < columns.index(rule.value_choice_id)


def _fire_skip(logic: SkipLogic, question: Question, answer: Answer, survey: Survey) -> Optional[SkipRule | SkipLogic]:
    if logic.kind is SkipKind.SIMPLE:
        if logic.confirmed and destination_exists(survey, logic.destination):
            return logic
        return None

    live = [r for r in logic.rules if r.confirmed and destination_exists(survey, r.destination)]
    if isinstance(answer, GridAnswers):
        matched = [r for r in live if r.grid_operator is not None and _grid_rule_matches(r, question, answer)]
        return matched[-1] if matched else None

    if isinstance(answer, SingleChoice):
        selected = [answer.choice_id]
    elif isinstance(answer, MultiChoice):
        # Later choices in display order take precedence
        selected = [c.id for c in question.choices if c.id in answer.choice_ids]
    else:
        return None
    for choice_id in reversed(selected):
        for rule in live:
            if rule.choice_id == choice_id:
                return rule
    return None


def _question_rules(question: Question, survey: Survey, answers: AnswerSet) -> Tuple[Optional[FiredRule], bool]:
    """
    The rule a single answered question fires, if any.

    The flag is True when the rule is an otherwise of a branching logic
    with no branches, which short-circuits the page.
    """
    answer = answers.get(question.id)
    if answer is None:
        return None, False

    branching = active_logic(question.branching_logic)
    if isinstance(branching, BranchingLogic):
        for branch in branching.branches:
            if not branch.confirmed or not destination_exists(survey, branch.destination):
                continue
            result = _combine_confirmed(branch.combinator, branch.conditions, survey, answers)
            if result:
                return FiredRule(question.id, "branch", branch.destination, branch.path_name), False
        if branching.otherwise_confirmed and destination_exists(survey, branching.otherwise):
            unconditional = not any(b.confirmed for b in branching.branches)
            return (
                FiredRule(question.id, "otherwise", branching.otherwise, branching.otherwise_path_name),
                unconditional,
            )

    skip = active_logic(question.skip_logic)
    if isinstance(skip, SkipLogic):
        fired = _fire_skip(skip, question, answer, survey)
        if fired is not None:
            return FiredRule(question.id, "skip", fired.destination), False
    return None, False


def _default_continuation(survey: Survey, answers: AnswerSet, page: Sequence[Question]) -> Destination:
    if not page:
        return NEXT
    last = page[-1]
    block = survey.block_of(last.id)
    if block is None:
        return NEXT
    ids = [q.id for q in block.questions]
    later = block.questions[ids.index(last.id) + 1:]
    # The page ends the block once nothing interactive after it is shown
    leaves_block = not any(is_interactive(q) and is_visible(q, survey, answers) for q in later)
    if not leaves_block:
        return NEXT
    if block.continue_to is not None and not block.continue_to.is_next:
        if destination_exists(survey, block.continue_to):
            return block.continue_to
    return next_block_destination(survey, block)


def next_block_destination(survey: Survey, block: Block) -> Destination:
    """The block after `block` in document order, or END for the last one."""
    positions = survey.block_positions()
    index = positions.get(block.id)
    if index is None or index + 1 >= len(survey.blocks):
        return END
    return Destination.to_block(survey.blocks[index + 1].id)


def next_destination(survey: Survey, answers: AnswerSet, page: Sequence[Question]) -> NavigationDecision:
    """
    Resolve where the respondent goes after `page`.

    Precedence:
        1. The first answered question whose branching logic has only an
           otherwise destination short-circuits
        2. Otherwise the last rule that fires on the page wins
        3. Otherwise the owning block's continue_to (when no visible
           question of the block follows the page), then the next block,
           then END
    """
    fired: List[FiredRule] = []
    for question in page:
        rule, short_circuit = _question_rules(question, survey, answers)
        if rule is None:
            continue
        fired.append(rule)
        if short_circuit:
            return _decide(rule.destination, fired)

    if fired:
        return _decide(fired[-1].destination, fired)
    return NavigationDecision(destination=_default_continuation(survey, answers, page))


def _decide(destination: Destination, fired: List[FiredRule]) -> NavigationDecision:
    ambiguous = len(fired) > 1
    if ambiguous:
        logger.warning(
            "Ambiguous navigation: %d rules fired on one page (%s); using %s",
            len(fired),
            ", ".join(f"{r.kind}@{r.question_id}" for r in fired),
            destination,
        )
    return NavigationDecision(destination=destination, fired=tuple(fired), ambiguous=ambiguous)


def next_destination_after(survey: Survey, answers: AnswerSet, question_id: str) -> NavigationDecision:
    """Resolve navigation after a single question, treated as its own page."""
    question = survey.get_question(question_id)
    if question is None:
        return NavigationDecision(destination=NEXT)
    return next_destination(survey, answers, [question])


def simulate(survey: Survey, answers: AnswerSet) -> List[List[Question]]:
    """
    Walk the survey page by page for a fixed answer set.

    Returns the pages visited in order. A page is never visited twice, so
    the walk terminates even when logic loops backwards.
    """
    pages = visible_pages(survey, answers)
    visited: List[List[Question]] = []
    seen = set()
    index = 0
    while 0 <= index < len(pages) and index not in seen:
        seen.add(index)
        page = pages[index]
        visited.append(page)
        decision = next_destination(survey, answers, page)
        destination = decision.destination
        if destination.is_end:
            break
        if destination.is_next:
            index += 1
            continue
        found = _page_index(survey, pages, destination)
        index = found if found is not None else index + 1
    return visited


def _page_index(survey: Survey, pages: List[List[Question]], destination: Destination) -> Optional[int]:
    """First visible page that starts the destination block or holds the destination question."""
    for i, page in enumerate(pages):
        for question in page:
            if destination.kind is DestinationKind.QUESTION and question.id == destination.target:
                return i
            if destination.kind is DestinationKind.BLOCK:
                block = survey.block_of(question.id)
                if block is not None and block.id == destination.target:
                    return i
    return None
