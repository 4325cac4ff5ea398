"""
Domain errors raised by the attempt engine services.

Every error carries the HTTP status code and a stable machine-readable
code; the exception handler in main.py turns them into JSON responses.
Services raise these before writing anything, so a rejected request
leaves no partial rows behind.
"""


class AttemptEngineError(Exception):
    """Base class for all domain errors."""
    status_code = 400
    code = "ATTEMPT_ENGINE_ERROR"

    def __init__(self, message: str = None, details: dict = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__
        self.details = details or {}


class NotEligible(AttemptEngineError):
    """Student is not eligible to take this assessment."""
    status_code = 403
    code = "NOT_ELIGIBLE"


class WindowClosed(AttemptEngineError):
    """The assessment window is closed."""
    status_code = 409
    code = "WINDOW_CLOSED"


class DeviceCheckIncomplete(AttemptEngineError):
    """Required device checks have not passed."""
    status_code = 409
    code = "DEVICE_CHECK_INCOMPLETE"


class AttemptNotActive(AttemptEngineError):
    """Attempt is not in progress."""
    status_code = 409
    code = "ATTEMPT_NOT_ACTIVE"


class SessionNotFound(AttemptEngineError):
    """No active session for this operation."""
    status_code = 404
    code = "SESSION_NOT_FOUND"


class QuestionNotFound(AttemptEngineError):
    """Question not found in this assessment."""
    status_code = 404
    code = "QUESTION_NOT_FOUND"


class BacktrackNotAllowed(AttemptEngineError):
    """This assessment does not allow going back to earlier questions."""
    status_code = 409
    code = "BACKTRACK_NOT_ALLOWED"


class InvalidAnswer(AttemptEngineError):
    """Answer payload does not match the question."""
    status_code = 422
    code = "INVALID_ANSWER"


class UnsupportedLanguage(AttemptEngineError):
    """Language is not supported for this question."""
    status_code = 422
    code = "UNSUPPORTED_LANGUAGE"


class JudgeUnavailable(AttemptEngineError):
    """Code execution service did not return a result."""
    status_code = 503
    code = "JUDGE_UNAVAILABLE"
