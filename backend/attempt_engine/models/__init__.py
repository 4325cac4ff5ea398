from attempt_engine.models.assessment import Assessment, AssessmentQuestion, AssessmentBatch
from attempt_engine.models.audience import BatchStudent
from attempt_engine.models.question import Question, QuestionOption
from attempt_engine.models.attempt import Attempt
from attempt_engine.models.session import AssessmentSession, ProctoringEvent
from attempt_engine.models.answer import AttemptAnswer
from attempt_engine.models.coding_submission import CodingSubmission

__all__ = [
    "Assessment", "AssessmentQuestion", "AssessmentBatch", "BatchStudent",
    "Question", "QuestionOption", "Attempt", "AssessmentSession",
    "ProctoringEvent", "AttemptAnswer", "CodingSubmission",
]
