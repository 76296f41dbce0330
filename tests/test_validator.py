"""Tests for logic validation."""

from sflm.edits import DeleteQuestion, apply_edit
from sflm.examples import build_customer_feedback_survey, build_three_block_survey
from sflm.expressions import Condition, ConditionOperator
from sflm.model import (
    Branch,
    BranchingLogic,
    Committed,
    Destination,
    DisplayLogic,
    END,
    Pending,
    SkipKind,
    SkipLogic,
    SkipRule,
)
from sflm.validator import LogicIssue, invalid_logic_summary, validate_logic


def _display(label):
    return DisplayLogic(conditions=(Condition("c1", label, ConditionOperator.IS_NOT_EMPTY, confirmed=True),))


def _messages(survey):
    return [issue.message for issue in validate_logic(survey)]


def test_clean_survey_has_no_issues():
    assert validate_logic(build_customer_feedback_survey()) == []
    assert invalid_logic_summary(build_customer_feedback_survey()) is None


def test_display_on_future_question():
    survey = build_three_block_survey()
    survey.get_question("q1").display_logic = Committed(_display("Q3"))

    assert validate_logic(survey) == [LogicIssue(
        "q1", "display", "Logic cannot depend on a future question (Q3).", "c1", "question_label",
    )]


def test_display_on_itself():
    survey = build_three_block_survey()
    survey.get_question("q3").hide_logic = Committed(_display("Q3"))
    issues = validate_logic(survey)
    assert [(i.type, i.question_id) for i in issues] == [("hide", "q3")]


def test_branching_may_use_its_own_question():
    survey = build_three_block_survey()
    survey.get_question("q3").branching_logic = Committed(BranchingLogic(
        branches=(Branch("br", conditions=(_display("Q3").conditions[0],), destination=END, confirmed=True),),
    ))
    assert validate_logic(survey) == []


def test_branching_on_future_question():
    survey = build_three_block_survey()
    survey.get_question("q1").branching_logic = Committed(BranchingLogic(
        branches=(Branch("br", conditions=(_display("Q3").conditions[0],), destination=END, confirmed=True),),
    ))
    assert _messages(survey) == ["Advanced logic cannot depend on a future question (Q3)."]


def test_deleted_source_question():
    survey = apply_edit(build_three_block_survey(), DeleteQuestion("q3"))
    assert _messages(survey) == ["The selected question (Q3) in this branch no longer exists."]


def test_missing_destination_block():
    survey = build_three_block_survey()
    survey.get_question("q1").skip_logic = Committed(SkipLogic(
        kind=SkipKind.SIMPLE, destination=Destination.to_block("gone"), confirmed=True,
    ))
    issues = validate_logic(survey)
    assert issues[0].message == "The destination block no longer exists."
    assert issues[0].source_id == "simple"
    assert issues[0].field == "destination"


def test_backward_destinations():
    survey = build_three_block_survey()
    survey.get_question("q5").skip_logic = Committed(SkipLogic(
        kind=SkipKind.SIMPLE, destination=Destination.to_block("blk1"), confirmed=True,
    ))
    survey.get_question("q4").branching_logic = Committed(BranchingLogic(
        otherwise=Destination.to_question("q1"), otherwise_confirmed=True,
    ))
    assert _messages(survey) == [
        "Branching backward to Q1 can cause loops.",
        "Skipping backward to a previous block can cause loops.",
    ]


def test_missing_destination_question():
    survey = build_three_block_survey()
    survey.get_question("q1").skip_logic = Committed(SkipLogic(
        kind=SkipKind.SIMPLE, destination=Destination.to_question("ghost"), confirmed=True,
    ))
    assert _messages(survey) == ["The destination question no longer exists."]


def test_deleted_skip_choice():
    survey = build_three_block_survey()
    survey.get_question("q3").skip_logic = Committed(SkipLogic(
        kind=SkipKind.PER_CHOICE, rules=(SkipRule("sr", "gone", END, confirmed=True),),
    ))
    assert _messages(survey) == ["A choice associated with this skip rule has been deleted."]


def test_drafts_are_validated_once():
    survey = build_three_block_survey()
    logic = _display("Q3")
    survey.get_question("q1").display_logic = Pending(logic, committed=logic)
    assert len(validate_logic(survey)) == 1


def test_summary_truncates():
    survey = build_three_block_survey()
    for question in survey.iter_questions():
        question.display_logic = Committed(_display("Q9"))

    assert invalid_logic_summary(survey) == "Logic on Q1, Q2, Q3 and 2 others is now invalid. Please review."
    assert invalid_logic_summary(survey, display_count=5) == "Logic on Q1, Q2, Q3, Q4, Q5 is now invalid. Please review."


def test_condition_value_naming_no_choice():
    survey = build_three_block_survey()
    survey.get_question("q4").display_logic = Committed(DisplayLogic(conditions=(
        Condition("c1", "Q3", ConditionOperator.EQUALS, "Often", confirmed=True),
        Condition("c2", "Q3", ConditionOperator.NOT_EQUALS, "Q3_9 Never", confirmed=True),
        Condition("c3", "Q1", ConditionOperator.EQUALS, "anything", confirmed=True),
    )))
    assert validate_logic(survey) == [LogicIssue(
        "q4", "display", 'The selected choice "Q3_9 Never" no longer exists on Q3.', "c2", "value",
    )]
