"""
Tests for the Logic Evaluation Engine.

Visibility (display and hide logic) and navigation (branching, skip,
block continuation) for fixed answer sets.
"""

import logging

import pytest

from sflm.answers import GridAnswers, MultiChoice, SingleChoice, TextAnswer
from sflm.evaluation import (
    evaluate_condition,
    evaluate_logic,
    is_visible,
    next_destination,
    next_destination_after,
    simulate,
    visible_pages,
)
from sflm.examples import build_customer_feedback_survey, build_yes_no_branching_survey
from sflm.expressions import Combinator, Condition, ConditionOperator, LogicSet
from sflm.model import (
    END,
    NEXT,
    Block,
    Branch,
    BranchingLogic,
    Choice,
    Committed,
    Destination,
    DisplayLogic,
    GridSkipOperator,
    PagingMode,
    Pending,
    Question,
    QuestionType,
    ScalePoint,
    SkipKind,
    SkipLogic,
    SkipRule,
    Survey,
)


def _cond(label, op, value="", confirmed=True, cid="c", grid_value=None):
    return Condition(cid, label, op, value, grid_value=grid_value, confirmed=confirmed)


def _survey():
    """BL1: Q1 radio, Q2 checkbox, Q3 text, Q4 grid. BL2: Q5 text."""
    return Survey(
        title="Eval",
        paging_mode=PagingMode.MULTI_PER_PAGE,
        blocks=[
            Block(id="b1", bid="BL1", questions=[
                Question(id="q1", type=QuestionType.RADIO, qid="Q1",
                         choices=[Choice("y", "Yes", "Q1_1"), Choice("n", "No", "Q1_2")]),
                Question(id="q2", type=QuestionType.CHECKBOX, qid="Q2",
                         choices=[Choice("a", "Apples", "Q2_1"), Choice("p", "Pears", "Q2_2"),
                                  Choice("k", "3", "Q2_3")]),
                Question(id="q3", type=QuestionType.TEXT_ENTRY, qid="Q3"),
                Question(id="q4", type=QuestionType.CHOICE_GRID, qid="Q4",
                         choices=[Choice("r1", "Speed", "Q4_1"), Choice("r2", "Price", "Q4_2")],
                         scale_points=[ScalePoint("s1", "Bad"), ScalePoint("s2", "Good")]),
            ]),
            Block(id="b2", bid="BL2", questions=[
                Question(id="q5", type=QuestionType.TEXT_ENTRY, qid="Q5"),
            ]),
        ],
    )


class TestEvaluateCondition:
    def test_radio_equals_by_label_or_text(self):
        survey = _survey()
        answers = {"q1": SingleChoice("y")}
        assert evaluate_condition(_cond("Q1", ConditionOperator.EQUALS, "Yes"), survey, answers)
        assert evaluate_condition(_cond("Q1", ConditionOperator.EQUALS, "Q1_1 Yes"), survey, answers)
        assert not evaluate_condition(_cond("Q1", ConditionOperator.EQUALS, "No"), survey, answers)
        assert evaluate_condition(_cond("Q1", ConditionOperator.NOT_EQUALS, "No"), survey, answers)

    def test_checkbox_any_selected(self):
        survey = _survey()
        answers = {"q2": MultiChoice.of("a", "p")}
        assert evaluate_condition(_cond("Q2", ConditionOperator.EQUALS, "Pears"), survey, answers)
        assert evaluate_condition(_cond("Q2", ConditionOperator.CONTAINS, "App"), survey, answers)

    def test_choice_numeric_compare(self):
        survey = _survey()
        answers = {"q2": MultiChoice.of("k")}
        assert evaluate_condition(_cond("Q2", ConditionOperator.GREATER_THAN, "2"), survey, answers)
        assert not evaluate_condition(_cond("Q2", ConditionOperator.LESS_THAN, "2"), survey, answers)

    def test_text_operators(self):
        survey = _survey()
        answers = {"q3": TextAnswer("42 apples")}
        assert evaluate_condition(_cond("Q3", ConditionOperator.CONTAINS, "apple"), survey, answers)
        assert evaluate_condition(_cond("Q3", ConditionOperator.EQUALS, "42 apples"), survey, answers)
        # Not a number: numeric comparison is simply false
        assert not evaluate_condition(_cond("Q3", ConditionOperator.GREATER_THAN, "1"), survey, answers)

    def test_text_numeric_compare(self):
        survey = _survey()
        answers = {"q3": TextAnswer(" 17 ")}
        assert evaluate_condition(_cond("Q3", ConditionOperator.GREATER_THAN, "9"), survey, answers)
        assert evaluate_condition(_cond("Q3", ConditionOperator.LESS_THAN, "20"), survey, answers)

    def test_emptiness(self):
        survey = _survey()
        assert evaluate_condition(_cond("Q3", ConditionOperator.IS_EMPTY), survey, {})
        assert evaluate_condition(_cond("Q3", ConditionOperator.IS_EMPTY), survey, {"q3": TextAnswer("  ")})
        assert evaluate_condition(_cond("Q1", ConditionOperator.IS_NOT_EMPTY), survey, {"q1": SingleChoice("n")})

    def test_grid_row_and_column(self):
        survey = _survey()
        answers = {"q4": GridAnswers({"r1": "s2"})}
        good = _cond("Q4", ConditionOperator.EQUALS, "Q4_1 Speed", grid_value="s2")
        bad = _cond("Q4", ConditionOperator.EQUALS, "Speed", grid_value="s1")
        assert evaluate_condition(good, survey, answers)
        assert not evaluate_condition(bad, survey, answers)
        assert evaluate_condition(_cond("Q4", ConditionOperator.EQUALS, "Speed"), survey, answers)
        assert not evaluate_condition(_cond("Q4", ConditionOperator.EQUALS, "Price"), survey, answers)

    def test_unresolvable_reference_is_false(self):
        survey = _survey()
        assert not evaluate_condition(_cond("Q99", ConditionOperator.IS_EMPTY), survey, {})
        assert not evaluate_condition(_cond("deleted:Q1", ConditionOperator.IS_EMPTY), survey, {})

    def test_incomplete_condition_is_false(self):
        assert not evaluate_condition(Condition("c", "Q1"), _survey(), {})


class TestVisibility:
    def test_no_logic_is_visible(self):
        survey = _survey()
        assert is_visible(survey.get_question("q5"), survey, {})

    def test_only_unconfirmed_conditions_is_visible(self):
        survey = _survey()
        q5 = survey.get_question("q5")
        q5.display_logic = Committed(DisplayLogic(conditions=(
            _cond("Q1", ConditionOperator.EQUALS, "Yes", confirmed=False),
        )))
        assert is_visible(q5, survey, {"q1": SingleChoice("n")})

    def test_draft_logic_does_not_apply(self):
        survey = _survey()
        q5 = survey.get_question("q5")
        q5.display_logic = Pending(DisplayLogic(conditions=(
            _cond("Q1", ConditionOperator.EQUALS, "Yes"),
        )))
        assert is_visible(q5, survey, {"q1": SingleChoice("n")})

    def test_display_logic(self):
        survey = _survey()
        q5 = survey.get_question("q5")
        q5.display_logic = Committed(DisplayLogic(conditions=(
            _cond("Q1", ConditionOperator.EQUALS, "Yes"),
        )))
        assert is_visible(q5, survey, {"q1": SingleChoice("y")})
        assert not is_visible(q5, survey, {"q1": SingleChoice("n")})

    def test_hide_logic_wins(self):
        survey = _survey()
        q5 = survey.get_question("q5")
        q5.hide_logic = Committed(DisplayLogic(conditions=(
            _cond("Q3", ConditionOperator.IS_EMPTY),
        )))
        assert not is_visible(q5, survey, {})
        assert is_visible(q5, survey, {"q3": TextAnswer("hi")})

    def test_logic_sets(self):
        survey = _survey()
        logic = DisplayLogic(
            combinator=Combinator.AND,
            conditions=(_cond("Q1", ConditionOperator.EQUALS, "Yes"),),
            logic_sets=(LogicSet("ls", Combinator.OR, (
                _cond("Q2", ConditionOperator.EQUALS, "Apples"),
                _cond("Q2", ConditionOperator.EQUALS, "Pears"),
            ), confirmed=True),),
        )
        assert evaluate_logic(logic, survey, {"q1": SingleChoice("y"), "q2": MultiChoice.of("p")})
        assert not evaluate_logic(logic, survey, {"q1": SingleChoice("y"), "q2": MultiChoice.of("k")})

    def test_visible_pages_drop_empty_pages(self):
        survey = _survey()
        q5 = survey.get_question("q5")
        q5.display_logic = Committed(DisplayLogic(conditions=(
            _cond("Q1", ConditionOperator.EQUALS, "Yes"),
        )))
        pages = visible_pages(survey, {"q1": SingleChoice("n")})
        assert len(pages) == 1
        assert [q.id for q in pages[0]] == ["q1", "q2", "q3", "q4"]


class TestYesNoBranching:
    """Radio Q1 Yes/No branching: Yes -> BL2, otherwise -> BL3."""

    def test_yes_goes_to_b2(self):
        survey = build_yes_no_branching_survey()
        decision = next_destination_after(survey, {"q1": SingleChoice("q1c1")}, "q1")
        assert decision.destination == Destination.to_block("B2")
        assert decision.fired[0].kind == "branch"

    def test_no_goes_to_b3(self):
        survey = build_yes_no_branching_survey()
        decision = next_destination_after(survey, {"q1": SingleChoice("q1c2")}, "q1")
        assert decision.destination == Destination.to_block("B3")
        assert decision.fired[0].kind == "otherwise"

    def test_simulation_follows_branch(self):
        survey = build_yes_no_branching_survey()
        pages = simulate(survey, {"q1": SingleChoice("q1c2")})
        assert [[q.id for q in page] for page in pages] == [["q1"], ["q3"]]


class TestDestinationFallback:
    def test_next_block_when_no_logic(self):
        survey = _survey()
        page = survey.blocks[0].questions
        assert next_destination(survey, {}, page).destination == Destination.to_block("b2")

    def test_end_after_last_block(self):
        survey = _survey()
        page = survey.blocks[1].questions
        assert next_destination(survey, {}, page).destination == END

    def test_next_inside_block(self):
        survey = _survey()
        assert next_destination(survey, {}, [survey.get_question("q1")]).destination == NEXT

    def test_continue_to(self):
        survey = _survey()
        survey.blocks[0].continue_to = END
        assert next_destination(survey, {}, survey.blocks[0].questions).destination == END

    def test_dangling_continue_to_falls_back(self):
        survey = _survey()
        survey.blocks[0].continue_to = Destination.to_block("gone")
        decision = next_destination(survey, {}, survey.blocks[0].questions)
        assert decision.destination == Destination.to_block("b2")

    def test_continue_to_applies_when_last_question_is_hidden(self):
        survey = Survey(
            title="Hidden tail",
            paging_mode=PagingMode.ONE_PER_PAGE,
            blocks=[
                Block(id="b1", bid="BL1", continue_to=Destination.to_block("b3"), questions=[
                    Question(id="q1", type=QuestionType.TEXT_ENTRY, qid="Q1"),
                    Question(id="q2", type=QuestionType.TEXT_ENTRY, qid="Q2",
                             display_logic=Committed(DisplayLogic(conditions=(
                                 _cond("Q1", ConditionOperator.IS_EMPTY),
                             )))),
                ]),
                Block(id="b2", bid="BL2", questions=[Question(id="q3", type=QuestionType.TEXT_ENTRY, qid="Q3")]),
                Block(id="b3", bid="BL3", questions=[Question(id="q4", type=QuestionType.TEXT_ENTRY, qid="Q4")]),
            ],
        )
        answers = {"q1": TextAnswer("filled")}
        assert next_destination_after(survey, answers, "q1").destination == Destination.to_block("b3")
        pages = simulate(survey, answers)
        assert [[q.id for q in page] for page in pages] == [["q1"], ["q4"]]
        # Shown again, Q2 keeps the respondent inside the block
        assert next_destination_after(survey, {}, "q1").destination == NEXT

    def test_dangling_branch_destination_does_not_fire(self):
        survey = _survey()
        survey.get_question("q1").branching_logic = Committed(BranchingLogic(
            branches=(Branch("br", conditions=(_cond("Q1", ConditionOperator.EQUALS, "Yes"),),
                             destination=Destination.to_block("gone"), confirmed=True),),
            otherwise=NEXT, otherwise_confirmed=True,
        ))
        decision = next_destination_after(survey, {"q1": SingleChoice("y")}, "q1")
        assert decision.fired[0].kind == "otherwise"


class TestSkipLogic:
    def test_simple_skip(self):
        survey = _survey()
        survey.get_question("q3").skip_logic = Committed(SkipLogic(
            kind=SkipKind.SIMPLE, destination=END, confirmed=True,
        ))
        assert next_destination_after(survey, {"q3": TextAnswer("x")}, "q3").destination == END
        # Unanswered questions fire nothing
        assert next_destination_after(survey, {}, "q3").destination == NEXT

    def test_per_choice_later_choice_wins(self):
        survey = _survey()
        survey.get_question("q2").skip_logic = Committed(SkipLogic(kind=SkipKind.PER_CHOICE, rules=(
            SkipRule("r1", "p", Destination.to_question("q5"), confirmed=True),
            SkipRule("r2", "a", END, confirmed=True),
        )))
        decision = next_destination_after(survey, {"q2": MultiChoice.of("a", "p")}, "q2")
        assert decision.destination == Destination.to_question("q5")

    def test_grid_rule(self):
        survey = _survey()
        survey.get_question("q4").skip_logic = Committed(SkipLogic(kind=SkipKind.PER_CHOICE, rules=(
            SkipRule("r1", "r1", END, confirmed=True,
                     grid_operator=GridSkipOperator.IS_ANSWERED_AFTER, value_choice_id="s1"),
        )))
        assert next_destination_after(survey, {"q4": GridAnswers({"r1": "s2"})}, "q4").destination == END
        # Last question of the block: no rule fires, so the block continues
        assert next_destination_after(survey, {"q4": GridAnswers({"r1": "s1"})}, "q4").destination == \
            Destination.to_block("b2")

    def test_branching_checked_before_skip(self):
        survey = _survey()
        q1 = survey.get_question("q1")
        q1.skip_logic = Committed(SkipLogic(kind=SkipKind.SIMPLE, destination=END, confirmed=True))
        q1.branching_logic = Committed(BranchingLogic(
            branches=(Branch("br", conditions=(_cond("Q1", ConditionOperator.EQUALS, "Yes"),),
                             destination=Destination.to_block("b2"), confirmed=True),),
        ))
        assert next_destination_after(survey, {"q1": SingleChoice("y")}, "q1").destination == \
            Destination.to_block("b2")
        assert next_destination_after(survey, {"q1": SingleChoice("n")}, "q1").destination == END


class TestPagePrecedence:
    def test_otherwise_only_branching_short_circuits(self):
        survey = _survey()
        survey.get_question("q1").branching_logic = Committed(BranchingLogic(
            otherwise=Destination.to_block("b2"), otherwise_confirmed=True,
        ))
        survey.get_question("q3").skip_logic = Committed(SkipLogic(
            kind=SkipKind.SIMPLE, destination=END, confirmed=True,
        ))
        answers = {"q1": SingleChoice("y"), "q3": TextAnswer("x")}
        decision = next_destination(survey, answers, survey.blocks[0].questions)
        assert decision.destination == Destination.to_block("b2")
        assert not decision.ambiguous

    def test_last_rule_wins_and_is_flagged(self, caplog):
        survey = _survey()
        survey.get_question("q1").skip_logic = Committed(SkipLogic(
            kind=SkipKind.SIMPLE, destination=Destination.to_block("b2"), confirmed=True,
        ))
        survey.get_question("q3").skip_logic = Committed(SkipLogic(
            kind=SkipKind.SIMPLE, destination=END, confirmed=True,
        ))
        answers = {"q1": SingleChoice("y"), "q3": TextAnswer("x")}
        with caplog.at_level(logging.WARNING, logger="sflm.evaluation"):
            decision = next_destination(survey, answers, survey.blocks[0].questions)
        assert decision.destination == END
        assert decision.ambiguous
        assert len(decision.fired) == 2
        assert "Ambiguous navigation" in caplog.text


def test_simulation_terminates_on_backward_loop():
    survey = _survey()
    survey.get_question("q5").skip_logic = Committed(SkipLogic(
        kind=SkipKind.SIMPLE, destination=Destination.to_block("b1"), confirmed=True,
    ))
    pages = simulate(survey, {"q5": TextAnswer("again")})
    assert len(pages) == 2


@pytest.mark.parametrize("choice_id, expected_block", [("q1c1", "block2"), ("q1c2", "block3")])
def test_customer_feedback_paths(choice_id, expected_block):
    survey = build_customer_feedback_survey()
    decision = next_destination_after(survey, {"q1": SingleChoice(choice_id)}, "q1")
    assert decision.destination == Destination.to_block(expected_block)
    assert decision.fired[0].path_name in ("Purchaser Path", "Non-Purchaser Path")
