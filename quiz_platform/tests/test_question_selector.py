"""Tests for the 4/3/3 question distribution selector."""

from __future__ import annotations

import pytest

from conftest import make_candidate, make_questionnaire
from quiz_app.services import question_selector


def test_full_pool_yields_ten_contiguous_positions():
    selected = question_selector.select_questions(make_questionnaire())

    assert [q["position_id"] for q in selected] == [str(n) for n in range(1, 11)]
    assert [q["question_type"] for q in selected] == ["Easy"] * 4 + ["Medium"] * 3 + ["Hard"] * 3
    assert question_selector.distribution_summary(selected) == {"easy": 4, "medium": 3, "hard": 3}


def test_scenario_candidate_is_promoted_to_first_medium_slot():
    questionnaire = make_questionnaire()
    questionnaire["medium"] = [
        make_candidate(11),
        make_candidate(12),
        make_candidate(13, scenario_title="Migration plan"),
        make_candidate(14),
        make_candidate(15),
    ]

    selected = question_selector.select_questions(questionnaire)
    medium = [q for q in selected if q["question_type"] == "Medium"]

    assert [q["q_id"] for q in medium] == [13, 11, 12]
    assert medium[0]["position_id"] == "5"


def test_backfills_from_pool_front_when_whitelist_is_short():
    questionnaire = make_questionnaire()
    questionnaire["easy"] = [make_candidate(q_id) for q_id in (7, 8, 1, 9)]

    selected = question_selector.select_questions(questionnaire)

    assert [q["q_id"] for q in selected[:4]] == [1, 7, 8, 9]


def test_under_supplied_tier_shrinks_the_quiz():
    questionnaire = make_questionnaire()
    questionnaire["hard"] = [make_candidate(17)]

    selected = question_selector.select_questions(questionnaire)

    assert len(selected) == 8
    assert [q["position_id"] for q in selected] == [str(n) for n in range(1, 9)]
    assert selected[-1]["question_type"] == "Hard"


def test_repeated_bank_ids_get_distinct_positions():
    questionnaire = {
        "easy": [make_candidate(1) for _ in range(4)],
        "medium": [make_candidate(1) for _ in range(3)],
        "hard": [make_candidate(1) for _ in range(3)],
    }

    selected = question_selector.select_questions(questionnaire)

    assert len({q["position_id"] for q in selected}) == 10


def test_code_snippet_is_fenced_once():
    plain = make_candidate(2, code_snippet="console.log(1)\r\n")
    fenced = make_candidate(3, formatted_question="Read this:\n```js\nx()\n```", code_snippet="x()")

    assert question_selector.with_code_snippet(plain) == "Bank question 2?\n\n```js\nconsole.log(1)\n```"
    assert question_selector.with_code_snippet(fenced) == fenced["formatted_question"]


def test_extract_questionnaire_rejects_malformed_payload():
    with pytest.raises(ValueError):
        question_selector.extract_questionnaire({"data": {"quiz_question_answer": {}}})

    questionnaire = question_selector.extract_questionnaire(
        {"data": {"quiz_question_answer": {"questionaire": {"easy": [make_candidate(1)], "hard": None}}}}
    )
    assert questionnaire == {"easy": [make_candidate(1)], "medium": [], "hard": []}
