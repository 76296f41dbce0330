"""
Serialization helpers for SFLM objects (Survey, Block, Question, logic).

Provides lossless JSON/YAML round-trip via intermediate dict representation.
This module intentionally keeps serialization structure stable and explicit.

Choices and scale points are stored as their combined text
("Q1_1 Yes"); this is the only place the variable and the label are
joined. Logic slots are stored with their state:

    {"state": "committed", "logic": {...}}
    {"state": "pending", "logic": {...draft...}, "committed": {...} | null}
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from sflm.expressions import Combinator, Condition, ConditionOperator, LogicSet
from sflm.model import (
    Block,
    Branch,
    BranchingLogic,
    Choice,
    Committed,
    Destination,
    DisplayLogic,
    GridSkipOperator,
    LogicSlot,
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


def destination_to_dict(d: Destination | None) -> Any:
    return str(d) if d is not None else None


def destination_from_dict(d: Any) -> Destination | None:
    return Destination.parse(d) if d else None


def condition_to_dict(c: Condition) -> Dict[str, Any]:
    return {
        "id": c.id,
        "question": c.question_label,
        "operator": c.operator.value if c.operator else None,
        "value": c.value,
        "grid_value": c.grid_value,
        "confirmed": c.confirmed,
    }


def condition_from_dict(d: Dict[str, Any]) -> Condition:
    return Condition(
        id=d["id"],
        question_label=d.get("question", ""),
        operator=ConditionOperator(d["operator"]) if d.get("operator") else None,
        value=d.get("value", ""),
        grid_value=d.get("grid_value"),
        confirmed=d.get("confirmed", False),
    )


def logic_set_to_dict(s: LogicSet) -> Dict[str, Any]:
    return {
        "id": s.id,
        "combinator": s.combinator.value,
        "conditions": [condition_to_dict(c) for c in s.conditions],
        "confirmed": s.confirmed,
    }


def logic_set_from_dict(d: Dict[str, Any]) -> LogicSet:
    return LogicSet(
        id=d["id"],
        combinator=Combinator(d.get("combinator", "AND")),
        conditions=tuple(condition_from_dict(c) for c in d.get("conditions", [])),
        confirmed=d.get("confirmed", False),
    )


def logic_to_dict(logic: Any) -> Any:
    if logic is None:
        return None
    if isinstance(logic, DisplayLogic):
        return {
            "type": "display",
            "combinator": logic.combinator.value,
            "conditions": [condition_to_dict(c) for c in logic.conditions],
            "logic_sets": [logic_set_to_dict(s) for s in logic.logic_sets],
        }
    if isinstance(logic, SkipLogic):
        return {
            "type": "skip",
            "kind": logic.kind.value,
            "destination": destination_to_dict(logic.destination),
            "confirmed": logic.confirmed,
            "rules": [
                {
                    "id": r.id,
                    "choice_id": r.choice_id,
                    "destination": destination_to_dict(r.destination),
                    "confirmed": r.confirmed,
                    "grid_operator": r.grid_operator.value if r.grid_operator else None,
                    "value_choice_id": r.value_choice_id,
                }
                for r in logic.rules
            ],
        }
    if isinstance(logic, BranchingLogic):
        return {
            "type": "branching",
            "branches": [
                {
                    "id": b.id,
                    "combinator": b.combinator.value,
                    "conditions": [condition_to_dict(c) for c in b.conditions],
                    "destination": destination_to_dict(b.destination),
                    "confirmed": b.confirmed,
                    "path_name": b.path_name,
                }
                for b in logic.branches
            ],
            "otherwise": destination_to_dict(logic.otherwise),
            "otherwise_confirmed": logic.otherwise_confirmed,
            "otherwise_path_name": logic.otherwise_path_name,
        }
    raise TypeError(f"Unsupported logic type: {type(logic)}")


def logic_from_dict(d: Any) -> Any:
    if d is None:
        return None
    t = d.get("type")
    if t == "display":
        return DisplayLogic(
            combinator=Combinator(d.get("combinator", "AND")),
            conditions=tuple(condition_from_dict(c) for c in d.get("conditions", [])),
            logic_sets=tuple(logic_set_from_dict(s) for s in d.get("logic_sets", [])),
        )
    if t == "skip":
        return SkipLogic(
            kind=SkipKind(d["kind"]),
            destination=destination_from_dict(d.get("destination")),
            confirmed=d.get("confirmed", False),
            rules=tuple(
                SkipRule(
                    id=r["id"],
                    choice_id=r["choice_id"],
                    destination=destination_from_dict(r.get("destination")),
                    confirmed=r.get("confirmed", False),
                    grid_operator=GridSkipOperator(r["grid_operator"]) if r.get("grid_operator") else None,
                    value_choice_id=r.get("value_choice_id"),
                )
                for r in d.get("rules", [])
            ),
        )
    if t == "branching":
        return BranchingLogic(
            branches=tuple(
                Branch(
                    id=b["id"],
                    combinator=Combinator(b.get("combinator", "AND")),
                    conditions=tuple(condition_from_dict(c) for c in b.get("conditions", [])),
                    destination=destination_from_dict(b.get("destination")),
                    confirmed=b.get("confirmed", False),
                    path_name=b.get("path_name", ""),
                )
                for b in d.get("branches", [])
            ),
            otherwise=destination_from_dict(d.get("otherwise")),
            otherwise_confirmed=d.get("otherwise_confirmed", False),
            otherwise_path_name=d.get("otherwise_path_name", ""),
        )
    raise TypeError(f"Unsupported logic type: {t}")


def slot_to_dict(slot: LogicSlot | None) -> Any:
    if slot is None:
        return None
    if isinstance(slot, Committed):
        return {"state": "committed", "logic": logic_to_dict(slot.logic)}
    return {
        "state": "pending",
        "logic": logic_to_dict(slot.logic),
        "committed": logic_to_dict(slot.committed),
    }


def slot_from_dict(d: Any) -> LogicSlot | None:
    if d is None:
        return None
    if d.get("state") == "committed":
        return Committed(logic_from_dict(d["logic"]))
    if d.get("state") == "pending":
        return Pending(logic_from_dict(d["logic"]), committed=logic_from_dict(d.get("committed")))
    raise TypeError(f"Unsupported logic slot state: {d.get('state')}")


def question_to_dict(q: Question) -> Dict[str, Any]:
    return {
        "id": q.id,
        "type": q.type.value,
        "text": q.text,
        "qid": q.qid,
        "label": q.label,
        "choices": [{"id": c.id, "text": c.text} for c in q.choices],
        "scale_points": [{"id": p.id, "text": p.text} for p in q.scale_points],
        "force_response": q.force_response,
        "is_automatic": q.is_automatic,
        "carry_forward_source": q.carry_forward_source,
        "display_logic": slot_to_dict(q.display_logic),
        "hide_logic": slot_to_dict(q.hide_logic),
        "skip_logic": slot_to_dict(q.skip_logic),
        "branching_logic": slot_to_dict(q.branching_logic),
    }


def question_from_dict(d: Dict[str, Any]) -> Question:
    return Question(
        id=d["id"],
        type=QuestionType(d["type"]),
        text=d.get("text", ""),
        qid=d.get("qid", ""),
        label=d.get("label", ""),
        choices=[Choice.from_text(c["id"], c.get("text", "")) for c in d.get("choices", [])],
        scale_points=[ScalePoint.from_text(p["id"], p.get("text", "")) for p in d.get("scale_points", [])],
        force_response=d.get("force_response", False),
        is_automatic=d.get("is_automatic", False),
        carry_forward_source=d.get("carry_forward_source", ""),
        display_logic=slot_from_dict(d.get("display_logic")),
        hide_logic=slot_from_dict(d.get("hide_logic")),
        skip_logic=slot_from_dict(d.get("skip_logic")),
        branching_logic=slot_from_dict(d.get("branching_logic")),
    )


def block_to_dict(b: Block) -> Dict[str, Any]:
    return {
        "id": b.id,
        "title": b.title,
        "bid": b.bid,
        "questions": [question_to_dict(q) for q in b.questions],
        "continue_to": destination_to_dict(b.continue_to),
        "branch_name": b.branch_name,
        "is_convergence": b.is_convergence,
        "automatic_page_breaks": b.automatic_page_breaks,
    }


def block_from_dict(d: Dict[str, Any]) -> Block:
    return Block(
        id=d["id"],
        title=d.get("title", ""),
        bid=d.get("bid", ""),
        questions=[question_from_dict(q) for q in d.get("questions", [])],
        continue_to=destination_from_dict(d.get("continue_to")),
        branch_name=d.get("branch_name", ""),
        is_convergence=d.get("is_convergence", False),
        automatic_page_breaks=d.get("automatic_page_breaks", False),
    )


def survey_to_dict(s: Survey) -> Dict[str, Any]:
    return {
        "title": s.title,
        "paging_mode": s.paging_mode.value,
        "global_auto_advance": s.global_auto_advance,
        "blocks": [block_to_dict(b) for b in s.blocks],
    }


def survey_from_dict(d: Dict[str, Any]) -> Survey:
    return Survey(
        title=d.get("title", ""),
        blocks=[block_from_dict(b) for b in d.get("blocks", [])],
        paging_mode=PagingMode(d.get("paging_mode", PagingMode.ONE_PER_PAGE.value)),
        global_auto_advance=d.get("global_auto_advance", False),
    )


def survey_to_json(s: Survey) -> str:
    return json.dumps(survey_to_dict(s), sort_keys=True)


def survey_from_json(s: str) -> Survey:
    d = json.loads(s)
    return survey_from_dict(d)


def survey_to_yaml(s: Survey) -> str:
    return yaml.safe_dump(survey_to_dict(s), sort_keys=False)


def survey_from_yaml(s: str) -> Survey:
    d = yaml.safe_load(s)
    return survey_from_dict(d)


def load_survey(path: Union[str, Path]) -> Survey:
    """Load a survey from a .json, .yaml or .yml file."""
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return survey_from_json(content)
    return survey_from_yaml(content)


def save_survey(s: Survey, path: Union[str, Path]) -> None:
    path = Path(path)
    if path.suffix.lower() == ".json":
        path.write_text(survey_to_json(s), encoding="utf-8")
    else:
        path.write_text(survey_to_yaml(s), encoding="utf-8")
