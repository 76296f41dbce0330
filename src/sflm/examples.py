"""
Example surveys used by demos and tests.

All ids are fixed strings so tests can address blocks and questions
directly. Labels (Q<n>, BL<n>) are already contiguous.
"""
from sflm.expressions import Combinator, Condition, ConditionOperator
from sflm.model import (
    Block,
    Branch,
    BranchingLogic,
    Choice,
    Committed,
    Destination,
    END,
    PagingMode,
    Question,
    QuestionType,
    ScalePoint,
    Survey,
)


def _choices(prefix: str, qid: str, labels) -> list:
    return [
        Choice(id=f"{prefix}c{i}", label=label, variable=f"{qid}_{i}")
        for i, label in enumerate(labels, start=1)
    ]


def _equals(condition_id: str, qid: str, value: str) -> Condition:
    return Condition(
        id=condition_id,
        question_label=qid,
        operator=ConditionOperator.EQUALS,
        value=value,
        confirmed=True,
    )


def _auto_break(break_id: str) -> Question:
    return Question(id=break_id, type=QuestionType.PAGE_BREAK, text="Page Break", is_automatic=True)


def _text_question(question_id: str, qid: str, text: str) -> Question:
    return Question(id=question_id, type=QuestionType.TEXT_ENTRY, text=text, qid=qid)


def build_default_survey() -> Survey:
    """The starting document of a new survey."""
    return Survey(
        title="Untitled survey",
        paging_mode=PagingMode.MULTI_PER_PAGE,
        blocks=[
            Block(
                id="b_default",
                title="Block",
                bid="BL1",
                questions=[
                    Question(
                        id="q_default",
                        type=QuestionType.CHECKBOX,
                        text="Click to write the question text",
                        qid="Q1",
                        choices=_choices("q_default", "Q1", [
                            "Click to write choice 1",
                            "Click to write choice 2",
                            "Click to write choice 3",
                        ]),
                    )
                ],
            )
        ],
    )


def build_customer_feedback_survey() -> Survey:
    """
    Four-block café feedback survey.

    Q1 branches purchasers to BL2 and non-purchasers to BL3 (named paths);
    both paths continue to the Conclusion block BL4.
    """
    q1 = Question(
        id="q1",
        type=QuestionType.RADIO,
        text="Have you purchased coffee from our café in the past month?",
        qid="Q1",
        choices=_choices("q1", "Q1", ["Yes", "No"]),
        branching_logic=Committed(BranchingLogic(
            branches=(
                Branch(
                    id="branch-q1-purchaser",
                    conditions=(_equals("cond-q1-1", "Q1", "Q1_1 Yes"),),
                    destination=Destination.to_block("block2"),
                    confirmed=True,
                    path_name="Purchaser Path",
                ),
                Branch(
                    id="branch-q1-nonpurchaser",
                    conditions=(_equals("cond-q1-2", "Q1", "Q1_2 No"),),
                    destination=Destination.to_block("block3"),
                    confirmed=True,
                    path_name="Non-Purchaser Path",
                ),
            ),
            otherwise=END,
            otherwise_confirmed=True,
        )),
    )

    grid = Question(
        id="q3",
        type=QuestionType.CHOICE_GRID,
        text="Please rate your experience:",
        qid="Q3",
        choices=_choices("q3", "Q3", ["Product", "Service", "Speed"]),
        scale_points=[
            ScalePoint(id=f"q3s{i}", label=label)
            for i, label in enumerate(
                ["Very Dissatisfied", "Dissatisfied", "Neutral", "Satisfied", "Very Satisfied"], start=1
            )
        ],
    )

    return Survey(
        title="Customer Feedback",
        paging_mode=PagingMode.ONE_PER_PAGE,
        blocks=[
            Block(
                id="block1",
                title="Introduction.",
                bid="BL1",
                questions=[
                    Question(
                        id="q-welcome",
                        type=QuestionType.DESCRIPTION,
                        text="Welcome to our feedback survey! Your opinion is important to us.",
                        label="Description 1",
                    ),
                    q1,
                ],
            ),
            Block(
                id="block2",
                title="Purchase Details",
                bid="BL2",
                branch_name="Purchaser Path",
                continue_to=Destination.to_block("block4"),
                questions=[
                    Question(
                        id="q2",
                        type=QuestionType.CHECKBOX,
                        text="What type of coffee do you usually order?",
                        qid="Q2",
                        choices=_choices("q2", "Q2", ["Espresso", "Latte/Cappuccino", "Cold Brew"]),
                    ),
                    _auto_break("pb-q2"),
                    grid,
                    _auto_break("pb-q3"),
                    _text_question("q3_why", "Q4", "We are sorry to hear that. Can you tell us why?"),
                ],
            ),
            Block(
                id="block3",
                title="Feedback for Non-Purchasers",
                bid="BL3",
                branch_name="Non-Purchaser Path",
                continue_to=Destination.to_block("block4"),
                questions=[
                    Question(
                        id="q4",
                        type=QuestionType.RADIO,
                        text="What are the main reasons for not purchasing?",
                        qid="Q5",
                        choices=_choices("q4", "Q5", ["Price", "Location", "Variety"]),
                    ),
                    _auto_break("pb-q4"),
                    _text_question("q5", "Q6", "What could we do to encourage you to visit?"),
                ],
            ),
            Block(
                id="block4",
                title="Conclusion",
                bid="BL4",
                is_convergence=True,
                questions=[
                    Question(
                        id="q6",
                        type=QuestionType.RADIO,
                        text="Would you like to receive special offers?",
                        qid="Q7",
                        choices=_choices("q6", "Q7", ["Yes", "No"]),
                    ),
                ],
            ),
        ],
    )


def build_linear_survey() -> Survey:
    """Two blocks, no logic."""
    return Survey(
        title="Linear Survey",
        paging_mode=PagingMode.MULTI_PER_PAGE,
        blocks=[
            Block(id="b1", title="Start", bid="BL1", questions=[
                _text_question("q1", "Q1", "Question 1"),
                _text_question("q2", "Q2", "Question 2"),
            ]),
            Block(id="b2", title="Middle", bid="BL2", questions=[
                _text_question("q3", "Q3", "Question 3"),
            ]),
        ],
    )


def _root_question(branches, otherwise, otherwise_path_name: str = "") -> Question:
    return Question(
        id="root_q",
        type=QuestionType.RADIO,
        text="Branch?",
        qid="Q1",
        choices=[Choice(id="root_a", label="A", variable="Q1_1"), Choice(id="root_b", label="B", variable="Q1_2")],
        branching_logic=Committed(BranchingLogic(
            branches=tuple(branches),
            otherwise=otherwise,
            otherwise_confirmed=True,
            otherwise_path_name=otherwise_path_name,
        )),
    )


def build_branching_survey() -> Survey:
    """Q1 = A goes to Path A, Q1 = B to Path B, anything else ends."""
    root = _root_question(
        [
            Branch(id="br1", conditions=(_equals("cond1", "Q1", "A"),),
                   destination=Destination.to_block("b2"), confirmed=True, path_name="Path A"),
            Branch(id="br2", conditions=(_equals("cond2", "Q1", "B"),),
                   destination=Destination.to_block("b3"), confirmed=True, path_name="Path B"),
        ],
        otherwise=END,
    )
    return Survey(
        title="Simple Branching",
        paging_mode=PagingMode.MULTI_PER_PAGE,
        blocks=[
            Block(id="b1", title="Root", bid="BL1", questions=[root]),
            Block(id="b2", title="Branch A", bid="BL2", branch_name="Path A", questions=[
                _text_question("q_a1", "Q2", "You chose A"),
            ]),
            Block(id="b3", title="Branch B", bid="BL3", branch_name="Path B", questions=[
                _text_question("q_b1", "Q3", "You chose B"),
            ]),
        ],
    )


def build_convergence_survey() -> Survey:
    """Path A and a named otherwise route (Path B) rejoin at a shared block."""
    root = _root_question(
        [
            Branch(id="br1", conditions=(_equals("cond1", "Q1", "A"),),
                   destination=Destination.to_block("b2"), confirmed=True, path_name="Path A"),
        ],
        otherwise=Destination.to_block("b3"),
        otherwise_path_name="Path B",
    )
    return Survey(
        title="Convergence",
        paging_mode=PagingMode.MULTI_PER_PAGE,
        blocks=[
            Block(id="b1", title="Root", bid="BL1", questions=[root]),
            Block(id="b2", title="Path A", bid="BL2", branch_name="Path A",
                  continue_to=Destination.to_block("b_shared"),
                  questions=[_text_question("q_a1", "Q2", "A Step")]),
            Block(id="b3", title="Path B", bid="BL3", branch_name="Path B",
                  continue_to=Destination.to_block("b_shared"),
                  questions=[_text_question("q_b1", "Q3", "B Step")]),
            Block(id="b_shared", title="Shared Convergence", bid="BL4", is_convergence=True,
                  questions=[_text_question("q_end", "Q4", "Everyone sees this")]),
        ],
    )


def build_yes_no_branching_survey() -> Survey:
    """
    Radio Q1 (Yes/No) branching Yes -> BL2, otherwise -> BL3.

    Blocks B2 and B3 end the survey after their own question.
    """
    q1 = Question(
        id="q1",
        type=QuestionType.RADIO,
        text="Do you own a car?",
        qid="Q1",
        choices=_choices("q1", "Q1", ["Yes", "No"]),
        branching_logic=Committed(BranchingLogic(
            branches=(
                Branch(
                    id="branch-yes",
                    combinator=Combinator.AND,
                    conditions=(_equals("cond-yes", "Q1", "Yes"),),
                    destination=Destination.to_block("B2"),
                    confirmed=True,
                ),
            ),
            otherwise=Destination.to_block("B3"),
            otherwise_confirmed=True,
        )),
    )
    return Survey(
        title="Car Ownership",
        paging_mode=PagingMode.MULTI_PER_PAGE,
        blocks=[
            Block(id="B1", title="Screener", bid="BL1", questions=[q1]),
            Block(id="B2", title="Owners", bid="BL2", continue_to=END, questions=[
                _text_question("q2", "Q2", "Which model do you drive?"),
            ]),
            Block(id="B3", title="Non-owners", bid="BL3", continue_to=END, questions=[
                _text_question("q3", "Q3", "How do you usually travel?"),
            ]),
        ],
    )


def build_three_block_survey() -> Survey:
    """
    Three blocks, five questions; Q5 branches on Q3.

        BL1: Q1, Q2    BL2: Q3, Q4    BL3: Q5
    """
    q5 = Question(
        id="q5",
        type=QuestionType.RADIO,
        text="Anything else?",
        qid="Q5",
        choices=_choices("q5", "Q5", ["Yes", "No"]),
        branching_logic=Committed(BranchingLogic(
            branches=(
                Branch(
                    id="branch-q5",
                    conditions=(_equals("cond-q3", "Q3", "Q3_1 Often"),),
                    destination=END,
                    confirmed=True,
                ),
            ),
            otherwise=Destination.parse("next"),
            otherwise_confirmed=True,
        )),
    )
    return Survey(
        title="Three Blocks",
        paging_mode=PagingMode.MULTI_PER_PAGE,
        blocks=[
            Block(id="blk1", title="First", bid="BL1", questions=[
                _text_question("q1", "Q1", "Your name?"),
                _text_question("q2", "Q2", "Your city?"),
            ]),
            Block(id="blk2", title="Second", bid="BL2", questions=[
                Question(
                    id="q3",
                    type=QuestionType.RADIO,
                    text="How often do you travel?",
                    qid="Q3",
                    choices=_choices("q3", "Q3", ["Often", "Rarely"]),
                ),
                _text_question("q4", "Q4", "Where to?"),
            ]),
            Block(id="blk3", title="Third", bid="BL3", questions=[q5]),
        ],
    )
