"""
Error taxonomy of the exam attempt engine

Every error carries the HTTP status and a stable error code so the API
layer can surface it verbatim.
"""


class ExamEngineError(Exception):
    """Base class for all engine errors"""

    status_code = 400
    error_code = "exam_engine_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ExamEngineError):
    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ExamNotAvailableError(ExamEngineError):
    status_code = 403
    error_code = "exam_not_available"


class ExamEndedError(ExamEngineError):
    status_code = 410
    error_code = "exam_ended"

    def __init__(self, message: str = "Exam has ended"):
        super().__init__(message)


class InvalidAccessCodeError(ExamEngineError):
    status_code = 403
    error_code = "invalid_access_code"

    def __init__(self, message: str = "Invalid access code"):
        super().__init__(message)


class MaxAttemptsReachedError(ExamEngineError):
    status_code = 409
    error_code = "max_attempts_reached"

    def __init__(self, max_attempts: int):
        super().__init__(f"Maximum attempts ({max_attempts}) reached")
        self.max_attempts = max_attempts


class AttemptNotInProgressError(ExamEngineError):
    status_code = 409
    error_code = "attempt_not_in_progress"

    def __init__(self, message: str = "Attempt is not in progress"):
        super().__init__(message)


class InvalidAnswerError(ExamEngineError):
    status_code = 422
    error_code = "invalid_answer"


class AccessDeniedError(ExamEngineError):
    status_code = 403
    error_code = "access_denied"

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class ReviewNotAllowedError(ExamEngineError):
    status_code = 403
    error_code = "review_not_allowed"

    def __init__(self, message: str = "Review not allowed for this exam"):
        super().__init__(message)


class QuestionConfigurationError(ExamEngineError):
    """Raised when a question definition cannot be graded as configured"""

    status_code = 500
    error_code = "question_configuration_error"
