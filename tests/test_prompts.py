import json

import pytest

from quizzer.core.errors import UpstreamFormatError
from quizzer.services.prompts import (
    extract_json, feedback_prompt, parse_generated_quiz, parse_suggestions,
)

ITEM = {"question": "Capital of France?", "options": ["Paris", "Rome", "Oslo", "Bern"],
        "answer": "Paris", "difficulty": "Easy"}


def test_extract_json_prefers_fenced_block():
    text = 'Sure!\n```json\n{"a": 1}\n```\nand ```json\n{"b": 2}\n```'
    assert json.loads(extract_json(text)) == {"a": 1}


def test_extract_json_falls_back_to_whole_reply():
    assert extract_json('  [1, 2]\n') == "[1, 2]"


@pytest.mark.parametrize("payload", [
    {"quiz": [ITEM]},
    {"questions": [ITEM]},
    [ITEM],
])
def test_parse_generated_quiz_accepts_known_shapes(payload):
    [q] = parse_generated_quiz("```json\n" + json.dumps(payload) + "\n```")
    assert q.answer == "Paris" and q.difficulty == "easy"


@pytest.mark.parametrize("text", [
    "not json at all",
    '{"quiz": "nope"}',
    '{"quiz": []}',
    json.dumps([dict(ITEM, answer="Madrid")]),
    json.dumps([dict(ITEM, options=["Paris", "Rome"])]),
    json.dumps([dict(ITEM, options=["Paris", "Paris", "Oslo", "Bern"])]),
])
def test_parse_generated_quiz_rejects_bad_replies(text):
    with pytest.raises(UpstreamFormatError):
        parse_generated_quiz(text)


def test_shape_errors_are_json_safe():
    with pytest.raises(UpstreamFormatError) as exc:
        parse_generated_quiz(json.dumps([dict(ITEM, answer="Madrid")]))
    json.dumps(exc.value.details)


def test_parse_suggestions_one_per_non_blank_line():
    assert parse_suggestions("1. Review fractions\n\n   \n2. Practise daily  \n") == [
        "1. Review fractions", "2. Practise daily",
    ]
    assert parse_suggestions("") == []


def test_feedback_prompt_lists_mistakes():
    prompt = feedback_prompt([{"question": "Q", "userAnswer": "x", "correctAnswer": "y"}], 1, 2)
    assert "1 out of 2" in prompt and '"correctAnswer": "y"' in prompt
