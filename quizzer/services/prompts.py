"""
Prompt construction and reply parsing for the text-generation service.
"""
import json
import re
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from quizzer.core.errors import UpstreamFormatError

_FENCED_JSON = re.compile(r"```(?:json)?[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL | re.IGNORECASE)


class GeneratedQuestion(BaseModel):
    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=4, max_length=4)
    answer: str
    difficulty: Literal["easy", "medium", "hard"] = "medium"

    @field_validator("difficulty", mode="before")
    @classmethod
    def normalize_difficulty(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def answer_is_one_option(self) -> "GeneratedQuestion":
        if len(set(self.options)) != len(self.options):
            raise ValueError("options must be distinct")
        if self.answer not in self.options:
            raise ValueError("answer must be one of the options")
        return self


_questions_adapter = TypeAdapter(List[GeneratedQuestion])


def quiz_prompt(grade: int, subject: str, count: int, max_score: int, difficulty: str) -> str:
    return (
        f"Generate a quiz with {count} questions for a grade {grade} student in {subject} "
        f"with a difficulty of {difficulty}. The maximum score is {max_score}. "
        "Each question should have 4 options and one correct answer. "
        "Return the response as a single ```json fenced block containing an object with a "
        '"quiz" array. Each item must have "question" (the question text), "options" '
        '(an array of 4 strings), "answer" (exactly one of the options) and "difficulty" '
        "(easy, medium or hard)."
    )


def feedback_prompt(incorrect: List[Dict[str, Any]], correct_count: int, total: int) -> str:
    return (
        f"A student has completed a quiz. They got {correct_count} out of {total}. "
        "Here are the questions they got wrong, their answer and the correct answer: "
        f"{json.dumps(incorrect, ensure_ascii=False)}. "
        "Please provide 2 concise improvement tips for the student, one tip per line."
    )


def hint_prompt(question_text: str) -> str:
    return f"Generate a helpful, non-revealing hint for the following question: {question_text}"


def extract_json(text: str) -> str:
    """Return the body of the first fenced JSON block, or the stripped reply."""
    match = _FENCED_JSON.search(text)
    return match.group(1) if match else text.strip()


def parse_generated_quiz(text: str) -> List[GeneratedQuestion]:
    try:
        data = json.loads(extract_json(text))
    except json.JSONDecodeError as e:
        raise UpstreamFormatError(f"Generated quiz is not valid JSON: {e.msg}")

    if isinstance(data, dict):
        data = data.get("quiz", data.get("questions"))
    if not isinstance(data, list) or not data:
        raise UpstreamFormatError("Generated quiz does not contain a list of questions")

    try:
        return _questions_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise UpstreamFormatError("Generated quiz has an unexpected shape", details=e.errors(include_url=False, include_context=False))


def parse_suggestions(text: str) -> List[str]:
    """One suggestion per non-blank line."""
    return [line.strip() for line in text.splitlines() if line.strip()]
