"""
Answer payload variants, one per gradable question kind

A response's answer is one of these tagged models, discriminated by
``kind``. Storage keeps the flat columns of exam_responses; the helpers
at the bottom convert between the two.
"""
from pydantic import BaseModel, Field
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from exam_engine.models.question import QuestionType


class SingleChoiceAnswer(BaseModel):
    """Answer to a single_choice or true_false question"""
    kind: Literal["single_choice"] = "single_choice"
    selected_option_ids: List[UUID] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return len(self.selected_option_ids) == 0


class MultipleChoiceAnswer(BaseModel):
    """Answer to a multiple_choice question; order of ids is irrelevant"""
    kind: Literal["multiple_choice"] = "multiple_choice"
    selected_option_ids: List[UUID] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return len(self.selected_option_ids) == 0


class NumericalAnswer(BaseModel):
    kind: Literal["numerical"] = "numerical"
    value: Optional[float] = Field(None, allow_inf_nan=False)

    def is_empty(self) -> bool:
        return self.value is None


class TextAnswer(BaseModel):
    """Answer to a subjective question (stored, never auto-graded)"""
    kind: Literal["text"] = "text"
    text: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.text or not self.text.strip()


Answer = Annotated[
    Union[SingleChoiceAnswer, MultipleChoiceAnswer, NumericalAnswer, TextAnswer],
    Field(discriminator="kind"),
]

# Which answer kind each question type accepts
ANSWER_KIND_BY_QUESTION_TYPE = {
    QuestionType.SINGLE_CHOICE: "single_choice",
    QuestionType.TRUE_FALSE: "single_choice",
    QuestionType.MULTIPLE_CHOICE: "multiple_choice",
    QuestionType.NUMERICAL: "numerical",
    QuestionType.SUBJECTIVE: "text",
}


def answer_is_empty(answer) -> bool:
    return answer is None or answer.is_empty()


def answer_to_columns(answer) -> dict:
    """Flatten an answer into exam_responses payload columns"""
    columns = {"selected_option_ids": None, "numerical_answer": None, "text_answer": None}

    if answer is None:
        return columns

    if isinstance(answer, (SingleChoiceAnswer, MultipleChoiceAnswer)):
        # Sorted so the stored set has a canonical form
        columns["selected_option_ids"] = sorted(str(option_id) for option_id in answer.selected_option_ids)
    elif isinstance(answer, NumericalAnswer):
        columns["numerical_answer"] = answer.value
    elif isinstance(answer, TextAnswer):
        columns["text_answer"] = answer.text

    return columns


def answer_from_columns(question_type: str, response):
    """
    Rebuild the typed answer of a stored response

    Returns None when the stored payload is empty for the question's type.
    """
    kind = ANSWER_KIND_BY_QUESTION_TYPE.get(question_type)

    if kind == "single_choice":
        answer = SingleChoiceAnswer(selected_option_ids=response.selected_option_ids or [])
    elif kind == "multiple_choice":
        answer = MultipleChoiceAnswer(selected_option_ids=response.selected_option_ids or [])
    elif kind == "numerical":
        answer = NumericalAnswer(value=response.numerical_answer)
    elif kind == "text":
        answer = TextAnswer(text=response.text_answer)
    else:
        raise ValueError(f"Unknown question type: {question_type}")

    return None if answer.is_empty() else answer
