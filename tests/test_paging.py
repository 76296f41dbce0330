"""Tests for automatic page breaks and page splitting."""

from sflm.model import Block, PagingMode, Question, QuestionType, Survey
from sflm.paging import apply_paging_rules, count_pages, get_pages_for_block, split_pages


def _q(qid):
    return Question(id=qid.lower(), type=QuestionType.TEXT_ENTRY, qid=qid)


def _desc(question_id):
    return Question(id=question_id, type=QuestionType.DESCRIPTION)


def _break(question_id, automatic=False):
    return Question(id=question_id, type=QuestionType.PAGE_BREAK, text="Page Break", is_automatic=automatic)


def _types(block):
    return ["PB" if q.type is QuestionType.PAGE_BREAK else (q.qid or "D") for q in block.questions]


class TestApplyPagingRules:
    def test_one_per_page_inserts_breaks_between_questions(self):
        survey = Survey(paging_mode=PagingMode.ONE_PER_PAGE, blocks=[
            Block(id="b", questions=[_desc("d"), _q("Q1"), _q("Q2"), _q("Q3")]),
        ])
        block = apply_paging_rules(survey).blocks[0]
        assert _types(block) == ["D", "Q1", "PB", "Q2", "PB", "Q3"]
        assert all(q.is_automatic for q in block.questions if q.type is QuestionType.PAGE_BREAK)

    def test_multi_per_page_leaves_block_alone(self):
        survey = Survey(paging_mode=PagingMode.MULTI_PER_PAGE, blocks=[
            Block(id="b", questions=[_q("Q1"), _q("Q2")]),
        ])
        assert _types(apply_paging_rules(survey).blocks[0]) == ["Q1", "Q2"]

    def test_block_level_automatic_breaks(self):
        survey = Survey(paging_mode=PagingMode.MULTI_PER_PAGE, blocks=[
            Block(id="b1", automatic_page_breaks=True, questions=[_q("Q1"), _q("Q2")]),
            Block(id="b2", questions=[_q("Q3"), _q("Q4")]),
        ])
        result = apply_paging_rules(survey)
        assert _types(result.blocks[0]) == ["Q1", "PB", "Q2"]
        assert _types(result.blocks[1]) == ["Q3", "Q4"]

    def test_automatic_breaks_are_recomputed(self):
        survey = Survey(paging_mode=PagingMode.MULTI_PER_PAGE, blocks=[
            Block(id="b", questions=[_q("Q1"), _break("pb", automatic=True), _q("Q2")]),
        ])
        assert _types(apply_paging_rules(survey).blocks[0]) == ["Q1", "Q2"]

    def test_manual_break_kept_and_consecutive_breaks_collapse(self):
        survey = Survey(paging_mode=PagingMode.ONE_PER_PAGE, blocks=[
            Block(id="b", questions=[_q("Q1"), _break("m1"), _break("m2"), _q("Q2")]),
        ])
        block = apply_paging_rules(survey).blocks[0]
        assert _types(block) == ["Q1", "PB", "Q2"]
        assert block.questions[1].id == "m1"

    def test_input_not_mutated(self):
        survey = Survey(paging_mode=PagingMode.ONE_PER_PAGE, blocks=[
            Block(id="b", questions=[_q("Q1"), _q("Q2")]),
        ])
        apply_paging_rules(survey)
        assert len(survey.blocks[0].questions) == 2


class TestPages:
    def test_pages_split_at_breaks(self):
        block = Block(id="b", questions=[_q("Q1"), _q("Q2"), _break("pb"), _q("Q3")])
        pages = get_pages_for_block(block)
        assert [[q.qid for q in page] for page in pages] == [["Q1", "Q2"], ["Q3"]]

    def test_empty_block_has_one_page(self):
        assert get_pages_for_block(Block(id="b")) == [[]]

    def test_trailing_break_does_not_open_a_page(self):
        block = Block(id="b", questions=[_q("Q1"), _break("pb")])
        assert len(get_pages_for_block(block)) == 1

    def test_split_pages_in_one_per_page_mode(self):
        block = Block(id="b", questions=[_desc("d"), _q("Q1"), _q("Q2")])
        pages = split_pages(block, PagingMode.ONE_PER_PAGE)
        assert [[q.id for q in page] for page in pages] == [["d", "q1"], ["q2"]]
        assert len(split_pages(block, PagingMode.MULTI_PER_PAGE)) == 1

    def test_count_pages(self):
        blocks = [
            Block(id="b1", questions=[_q("Q1"), _q("Q2")]),
            Block(id="b2", questions=[_q("Q3")]),
        ]
        assert count_pages(blocks, PagingMode.ONE_PER_PAGE) == 3
        assert count_pages(blocks, PagingMode.MULTI_PER_PAGE) == 2
