"""
Tests for the renumbering engine.

Labels are derived from document order; every label reference follows
its question, and references to deleted questions are never re-bound.
"""

from sflm.edits import DeleteQuestion, apply_edit
from sflm.examples import build_customer_feedback_survey, build_three_block_survey
from sflm.expressions import Condition, ConditionOperator
from sflm.model import (
    Block,
    BranchingLogic,
    Choice,
    Committed,
    DisplayLogic,
    Pending,
    Question,
    QuestionType,
    ScalePoint,
    Survey,
    active_logic,
)
from sflm.renumber import (
    DELETED_PREFIX,
    detach_references,
    display_label,
    renumber,
    rewrite_condition,
)


def _display(label, value="x", confirmed=True):
    return DisplayLogic(conditions=(
        Condition("c-" + label, label, ConditionOperator.EQUALS, value, confirmed=confirmed),
    ))


def _unordered_survey():
    """Labels deliberately stale: Q7, Q3 in document order."""
    return Survey(
        title="Stale",
        blocks=[
            Block(id="b1", bid="BL9", questions=[
                Question(id="a", type=QuestionType.RADIO, qid="Q7",
                         choices=[Choice("a1", "Yes", "Q7_1"), Choice("a2", "No", "Q7_2")]),
                Question(id="d", type=QuestionType.DESCRIPTION),
                Question(id="b", type=QuestionType.TEXT_ENTRY, qid="Q3",
                         display_logic=Committed(_display("Q7", "Q7_1 Yes"))),
            ]),
            Block(id="b2", questions=[
                Question(id="pb", type=QuestionType.PAGE_BREAK, qid="Q99"),
                Question(id="c", type=QuestionType.TEXT_ENTRY, qid="Q1",
                         display_logic=Pending(_display("Q3", confirmed=False), committed=_display("Q7")),
                         carry_forward_source="Q7"),
            ]),
        ],
    )


class TestLabels:
    def test_blocks_and_questions_are_sequential(self):
        survey = renumber(_unordered_survey())
        assert [b.bid for b in survey.blocks] == ["BL1", "BL2"]
        assert [q.qid for q in survey.iter_questions()] == ["Q1", "", "Q2", "", "Q3"]

    def test_choice_variables_follow_label(self):
        survey = renumber(_unordered_survey())
        assert [c.text for c in survey.get_question("a").choices] == ["Q1_1 Yes", "Q1_2 No"]

    def test_description_labels(self):
        survey = renumber(_unordered_survey())
        assert survey.get_question("d").label == "Description 1"

    def test_custom_description_label_kept_and_skipped(self):
        survey = Survey(blocks=[Block(id="b", questions=[
            Question(id="d1", type=QuestionType.DESCRIPTION),
            Question(id="d2", type=QuestionType.DESCRIPTION, label="Description 2"),
            Question(id="d3", type=QuestionType.DESCRIPTION, label="Intro"),
            Question(id="d4", type=QuestionType.DESCRIPTION),
        ])])
        result = renumber(survey)
        assert [q.label for q in result.iter_questions()] == [
            "Description 1", "Description 2", "Intro", "Description 4",
        ]

    def test_scale_points_without_variable_stay_plain(self):
        survey = Survey(blocks=[Block(id="b", questions=[
            Question(id="g", type=QuestionType.CHOICE_GRID, qid="Q5",
                     scale_points=[ScalePoint("s1", "Agree"), ScalePoint("s2", "Disagree", "Q5_2")]),
        ])])
        points = renumber(survey).get_question("g").scale_points
        assert points[0].variable == ""
        assert points[1].variable == "Q1_2"


class TestReferences:
    def test_display_condition_follows_source(self):
        survey = renumber(_unordered_survey())
        condition = active_logic(survey.get_question("b").display_logic).conditions[0]
        assert condition.question_label == "Q1"
        assert condition.value == "Q1_1 Yes"

    def test_draft_and_committed_versions_rewritten(self):
        slot = renumber(_unordered_survey()).get_question("c").display_logic
        assert slot.logic.conditions[0].question_label == "Q2"
        assert slot.committed.conditions[0].question_label == "Q1"

    def test_carry_forward_rewritten(self):
        assert renumber(_unordered_survey()).get_question("c").carry_forward_source == "Q1"

    def test_unknown_label_passes_through(self):
        condition = Condition("c", "Q42", ConditionOperator.EQUALS, "Q42_1 x")
        assert rewrite_condition(condition, {"Q1": "Q2"}) == condition

    def test_value_follows_its_choice_variable(self):
        condition = Condition("c", "Q3", ConditionOperator.EQUALS, "Q3_1 Often")
        rewritten = rewrite_condition(condition, {"Q3": "Q3"}, {"Q3_1": "Q3_2"})
        assert rewritten.value == "Q3_2 Often"

    def test_value_of_deleted_choice_only_relabels_question(self):
        condition = Condition("c", "Q3", ConditionOperator.EQUALS, "Q3_1 Often")
        rewritten = rewrite_condition(condition, {"Q3": "Q2"}, {"Q3_2": "Q2_1"})
        assert (rewritten.question_label, rewritten.value) == ("Q2", "Q2_1 Often")

    def test_input_not_mutated(self):
        survey = _unordered_survey()
        renumber(survey)
        assert survey.get_question("a").qid == "Q7"
        assert survey.blocks[0].bid == "BL9"


def test_idempotent():
    once = renumber(_unordered_survey())
    assert renumber(once) == once


def test_example_survey_is_already_numbered():
    survey = build_customer_feedback_survey()
    assert renumber(survey) == survey


class TestDeletion:
    """Delete question 2 of block 1 in a 3-block, 5-question survey."""

    def test_labels_compact_and_branch_reference_follows(self):
        survey = apply_edit(build_three_block_survey(), DeleteQuestion("q2"))

        assert [q.qid for q in survey.iter_questions()] == ["Q1", "Q2", "Q3", "Q4"]
        branching = active_logic(survey.get_question("q5").branching_logic)
        assert isinstance(branching, BranchingLogic)
        condition = branching.branches[0].conditions[0]
        assert condition.question_label == "Q2"
        assert condition.value == "Q2_1 Often"

    def test_reference_to_deleted_question_is_detached(self):
        survey = build_three_block_survey()
        q4 = survey.get_question("q4")
        q4.display_logic = Committed(_display("Q2"))

        result = apply_edit(survey, DeleteQuestion("q2"))
        label = active_logic(result.get_question("q4").display_logic).conditions[0].question_label
        # Q2 now names the old Q3; the dangling reference must not capture it
        assert label == f"{DELETED_PREFIX}Q2"
        assert display_label(label) == "Q2"


def test_detach_references_counts_touched_questions():
    survey = _unordered_survey()
    assert detach_references(survey, ["Q7"]) == 2
    assert survey.get_question("c").carry_forward_source == "deleted:Q7"
    assert detach_references(survey, []) == 0
