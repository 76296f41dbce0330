"""
Paging rules.

Page breaks are ordinary items of a block. Two kinds exist:
    - manual breaks placed by the author
    - automatic breaks (is_automatic=True) derived from the paging mode

Automatic breaks are derived state: apply_paging_rules() strips and
recomputes them on every structural edit, just like sequential labels.
"""

from __future__ import annotations

import copy
from typing import Iterable, List

from sflm.ids import generate_id
from sflm.model import Block, PagingMode, Question, QuestionType, Survey


def is_interactive(question: Question) -> bool:
    """Questions that take an answer (anything but Description and Page Break)."""
    return question.type.is_addressable


def make_page_break(automatic: bool = False) -> Question:
    return Question(
        id=generate_id("pb"),
        type=QuestionType.PAGE_BREAK,
        text="Page Break",
        is_automatic=automatic,
    )


def _breaks_apply(survey: Survey, block: Block) -> bool:
    return survey.paging_mode is PagingMode.ONE_PER_PAGE or (
        survey.paging_mode is PagingMode.MULTI_PER_PAGE and block.automatic_page_breaks
    )


def apply_paging_rules(survey: Survey) -> Survey:
    """
    Return a copy with automatic page breaks recomputed.

    1. Strip every automatic break
    2. Collapse consecutive page breaks into one
    3. Where breaks apply, insert an automatic break before each
       interactive question that would share a page with another one
    """
    result = copy.deepcopy(survey)

    for block in result.blocks:
        cleaned: List[Question] = []
        for question in block.questions:
            if question.type is QuestionType.PAGE_BREAK and question.is_automatic:
                continue
            if (
                question.type is QuestionType.PAGE_BREAK
                and cleaned
                and cleaned[-1].type is QuestionType.PAGE_BREAK
            ):
                continue
            cleaned.append(question)
        block.questions = cleaned

    for block in result.blocks:
        if not _breaks_apply(result, block):
            continue
        questions: List[Question] = []
        seen_interactive = False
        for question in block.questions:
            interactive = is_interactive(question)
            if interactive and seen_interactive:
                questions.append(make_page_break(automatic=True))
                seen_interactive = False
            if question.type is QuestionType.PAGE_BREAK:
                seen_interactive = False
            questions.append(question)
            if interactive:
                seen_interactive = True
        block.questions = questions

    return result


def get_pages_for_block(block: Block) -> List[List[Question]]:
    """
    Split a block's items into pages at every page break.

    An empty block still yields one (empty) page. A trailing page break
    does not open an empty final page.
    """
    pages: List[List[Question]] = []
    current: List[Question] = []
    for question in block.questions:
        if question.type is QuestionType.PAGE_BREAK:
            pages.append(current)
            current = []
        else:
            current.append(question)

    if not pages or current:
        pages.append(current)
    return pages


def split_pages(block: Block, paging_mode: PagingMode) -> List[List[Question]]:
    """
    Pages of a block as a respondent sees them.

    In one-per-page mode, or in a block with automatic page breaks, a page
    holding several interactive questions is split before each additional
    one, whether or not automatic breaks have been materialized yet.
    """
    pages = get_pages_for_block(block)
    if paging_mode is not PagingMode.ONE_PER_PAGE and not block.automatic_page_breaks:
        return pages

    result: List[List[Question]] = []
    for page in pages:
        current: List[Question] = []
        seen_interactive = False
        for question in page:
            interactive = is_interactive(question)
            if interactive and seen_interactive:
                result.append(current)
                current = []
                seen_interactive = False
            current.append(question)
            if interactive:
                seen_interactive = True
        result.append(current)
    return result


def count_pages(blocks: Iterable[Block], paging_mode: PagingMode) -> int:
    return sum(len(split_pages(block, paging_mode)) for block in blocks)
