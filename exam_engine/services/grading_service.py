"""
Deterministic grading of objective responses

Single choice / true-false: exact single selection
Numerical: absolute tolerance around the expected value
Multiple choice: exact set match, optional partial credit for correct subsets
Subjective: left ungraded (manual grading)
"""
import logging
from typing import NamedTuple, Optional

from exam_engine.exceptions import InvalidAnswerError, QuestionConfigurationError
from exam_engine.models.question import QuestionType
from exam_engine.schemas.answers import (
    MultipleChoiceAnswer,
    NumericalAnswer,
    SingleChoiceAnswer,
)
from exam_engine.schemas.catalog import MarkingScheme, QuestionDefinition

logger = logging.getLogger(__name__)


class GradeOutcome(NamedTuple):
    is_correct: Optional[bool]  # None when not attempted
    marks_awarded: float


NOT_ATTEMPTED = GradeOutcome(is_correct=None, marks_awarded=0.0)


class GradingService:
    """
    Pure per-response grading

    grade() never touches storage; callers persist the outcome.
    """

    def grade(
        self,
        question: QuestionDefinition,
        answer,
        marking: MarkingScheme,
    ) -> Optional[GradeOutcome]:
        """
        Grade one response

        Args:
            question: Question definition with correct-answer metadata
            answer: Typed answer, or None when the student left it empty
            marking: Effective marks for this question in this exam

        Returns:
            GradeOutcome, or None for question types that are not auto-graded
        """
        q_type = question.question_type

        if q_type == QuestionType.SUBJECTIVE:
            return None

        # Not attempted is never penalised
        if answer is None or answer.is_empty():
            return NOT_ATTEMPTED

        if q_type in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE):
            is_correct = self._grade_single_choice(question, self._expect(answer, SingleChoiceAnswer, q_type))
        elif q_type == QuestionType.NUMERICAL:
            is_correct = self._grade_numerical(question, self._expect(answer, NumericalAnswer, q_type))
        elif q_type == QuestionType.MULTIPLE_CHOICE:
            return self._grade_multiple_choice(question, self._expect(answer, MultipleChoiceAnswer, q_type), marking)
        else:
            raise QuestionConfigurationError(f"Unknown question type: {q_type}")

        return self._full_or_penalty(is_correct, marking)

    def _grade_single_choice(self, question: QuestionDefinition, answer: SingleChoiceAnswer) -> bool:
        correct = question.correct_option_ids
        if len(correct) != 1:
            raise QuestionConfigurationError(
                f"Single-choice question {question.id} has {len(correct)} correct options, expected one"
            )

        selected = set(answer.selected_option_ids)
        if len(selected) != 1:
            return False
        return selected == correct

    def _grade_numerical(self, question: QuestionDefinition, answer: NumericalAnswer) -> bool:
        if question.numerical_answer is None:
            raise QuestionConfigurationError(f"Numerical question {question.id} has no expected answer")

        tolerance = question.numerical_tolerance or 0.0
        return abs(answer.value - question.numerical_answer) <= tolerance

    def _grade_multiple_choice(
        self,
        question: QuestionDefinition,
        answer: MultipleChoiceAnswer,
        marking: MarkingScheme,
    ) -> GradeOutcome:
        correct = question.correct_option_ids
        if not correct:
            raise QuestionConfigurationError(
                f"Multiple-choice question {question.id} has no correct option"
            )

        selected = set(answer.selected_option_ids)

        if selected == correct:
            return GradeOutcome(is_correct=True, marks_awarded=marking.positive_marks)

        # Every selected option is right but some right ones are missing
        if question.partial_marks_allowed and selected and selected < correct:
            partial = marking.positive_marks * len(selected) / len(correct)
            return GradeOutcome(is_correct=False, marks_awarded=partial)

        return GradeOutcome(is_correct=False, marks_awarded=-marking.negative_marks)

    @staticmethod
    def _full_or_penalty(is_correct: bool, marking: MarkingScheme) -> GradeOutcome:
        if is_correct:
            return GradeOutcome(is_correct=True, marks_awarded=marking.positive_marks)
        return GradeOutcome(is_correct=False, marks_awarded=-marking.negative_marks)

    @staticmethod
    def _expect(answer, answer_type, q_type: str):
        if not isinstance(answer, answer_type):
            raise InvalidAnswerError(
                f"{type(answer).__name__} cannot answer a {q_type} question"
            )
        return answer


# Stateless, safe to share
grading_service = GradingService()
