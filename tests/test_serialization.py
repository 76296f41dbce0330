"""
Tests for serialization and deserialization of SFLM objects.

These tests ensure lossless JSON/YAML round-trip using the explicit
serialization functions in `sflm.serialization`, including logic that
is still being drafted.
"""

import json

import pytest

from sflm.examples import build_customer_feedback_survey, build_three_block_survey
from sflm.expressions import Combinator, Condition, ConditionOperator, LogicSet
from sflm.model import (
    END,
    Committed,
    Destination,
    DisplayLogic,
    GridSkipOperator,
    Pending,
    SkipKind,
    SkipLogic,
    SkipRule,
)
from sflm.serialization import (
    destination_from_dict,
    load_survey,
    logic_from_dict,
    logic_to_dict,
    save_survey,
    slot_from_dict,
    survey_from_dict,
    survey_from_json,
    survey_from_yaml,
    survey_to_dict,
    survey_to_json,
    survey_to_yaml,
)


def build_sample_survey():
    survey = build_customer_feedback_survey()
    survey.global_auto_advance = True

    committed = DisplayLogic(
        combinator=Combinator.AND,
        conditions=(Condition("c1", "Q1", ConditionOperator.EQUALS, "Q1_1 Yes", confirmed=True),),
        logic_sets=(LogicSet("ls1", Combinator.OR, (
            Condition("c2", "Q2", ConditionOperator.CONTAINS, "Latte", confirmed=True),
            Condition("c3", "Q2", ConditionOperator.IS_EMPTY, confirmed=True),
        ), confirmed=True),),
    )
    draft = DisplayLogic(conditions=(Condition("c4", "Q2"),))
    survey.get_question("q3_why").display_logic = Pending(draft, committed=committed)

    survey.get_question("q3").skip_logic = Committed(SkipLogic(kind=SkipKind.PER_CHOICE, rules=(
        SkipRule("sr1", "q3c2", Destination.to_question("q3_why"), confirmed=True,
                 grid_operator=GridSkipOperator.IS_ANSWERED_BEFORE, value_choice_id="q3s3"),
    )))
    survey.get_question("q4").hide_logic = Committed(DisplayLogic(conditions=(
        Condition("c5", "Q3", ConditionOperator.EQUALS, "Q3_3 Speed", grid_value="q3s1", confirmed=True),
    )))
    survey.get_question("q5").skip_logic = Pending(SkipLogic(kind=SkipKind.SIMPLE, destination=END))
    return survey


def test_dict_roundtrip():
    survey = build_sample_survey()
    assert survey_from_dict(survey_to_dict(survey)) == survey


def test_json_roundtrip():
    survey = build_sample_survey()
    text = survey_to_json(survey)
    assert survey_from_json(text) == survey
    # Sorted keys keep diffs of saved surveys stable
    assert list(json.loads(text)) == sorted(json.loads(text))


def test_yaml_roundtrip():
    survey = build_sample_survey()
    assert survey_from_yaml(survey_to_yaml(survey)) == survey


def test_slot_states_are_explicit():
    data = survey_to_dict(build_sample_survey())
    question = data["blocks"][1]["questions"][4]

    assert question["id"] == "q3_why"
    assert question["display_logic"]["state"] == "pending"
    assert question["display_logic"]["committed"]["type"] == "display"
    assert data["blocks"][0]["questions"][1]["branching_logic"]["state"] == "committed"


def test_choices_stored_with_variable():
    data = survey_to_dict(build_three_block_survey())
    q3 = data["blocks"][1]["questions"][0]
    assert q3["choices"] == [{"id": "q3c1", "text": "Q3_1 Often"}, {"id": "q3c2", "text": "Q3_2 Rarely"}]


def test_destinations_use_wire_grammar():
    data = survey_to_dict(build_customer_feedback_survey())
    assert data["blocks"][1]["continue_to"] == "block:block4"
    branching = data["blocks"][0]["questions"][1]["branching_logic"]["logic"]
    assert branching["otherwise"] == "end"
    assert destination_from_dict(None) is None


def test_unknown_logic_type():
    with pytest.raises(TypeError):
        logic_from_dict({"type": "loop"})
    with pytest.raises(TypeError):
        logic_to_dict("display")
    with pytest.raises(TypeError):
        slot_from_dict({"state": "floating", "logic": None})


@pytest.mark.parametrize("name", ["survey.json", "survey.yaml", "survey.yml"])
def test_save_and_load(tmp_path, name):
    survey = build_sample_survey()
    path = tmp_path / name
    save_survey(survey, path)
    assert load_survey(path) == survey
