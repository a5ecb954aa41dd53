# quizzes/exceptions.py
from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler


# ---------- domain errors (raised by quizzes.services) ----------

class QuizEngineError(Exception):
    code = "quiz_engine_error"


class NotEligible(QuizEngineError):
    code = "not_eligible"

    def __init__(self, verdict, message: str = "You are not eligible to attempt this quiz right now."):
        super().__init__(message)
        self.verdict = verdict


class AttemptExpired(NotEligible):
    """Ticket missing or past its expiry when the submission arrived."""
    code = "attempt_expired"

    def __init__(self, verdict=None, outcome: str = "",
                 message: str = "Your quiz session has expired. Please launch the quiz again."):
        super().__init__(verdict, message)
        self.outcome = outcome


class DuplicateSubmission(QuizEngineError):
    code = "duplicate_submission"


class AlreadySubmitted(QuizEngineError):
    code = "already_submitted"


class QuizHasNoQuestions(QuizEngineError):
    code = "no_questions"


class TransientError(QuizEngineError):
    """Persistence unavailable or timed out before anything was committed; retry is safe."""
    code = "transient_error"


class PostConsumptionPersistenceFailure(QuizEngineError):
    """
    The ticket was consumed and the attempt scored, but the result row could not
    be written. Retrying will hit DuplicateSubmission; the snapshot stored on the
    ticket is what `reconcile_submissions` rebuilds the result from.
    """
    code = "submission_not_recorded"

    def __init__(self, message: str, *, student_id=None, quiz_id=None, snapshot=None):
        super().__init__(message)
        self.student_id = student_id
        self.quiz_id = quiz_id
        self.snapshot = snapshot


# ---------- HTTP mapping (DRF EXCEPTION_HANDLER) ----------

class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"
    default_code = "conflict"


class EligibilityDenied(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not eligible to attempt this quiz right now."
    default_code = "not_eligible"


class ServiceUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Temporarily unavailable, please retry."
    default_code = "transient_error"


class QuizNotReady(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "This quiz has no questions."
    default_code = "no_questions"


# first match wins, so subclasses go before their bases
HTTP_ERRORS = (
    (DuplicateSubmission, Conflict),
    (AlreadySubmitted, Conflict),
    (NotEligible, EligibilityDenied),
    (QuizHasNoQuestions, QuizNotReady),
    (TransientError, ServiceUnavailable),
    (PostConsumptionPersistenceFailure, ServiceUnavailable),
)


def http_error_for(exc: QuizEngineError) -> type[APIException]:
    for domain_cls, http_cls in HTTP_ERRORS:
        if isinstance(exc, domain_cls):
            return http_cls
    return ServiceUnavailable


def api_exception_handler(exc, context):
    """
    Turn engine errors into JSON bodies carrying a stable ``code``; eligibility
    failures also carry the full verdict so the client can say what is wrong.
    Everything else goes through DRF's default handler.
    """
    if not isinstance(exc, QuizEngineError):
        return exception_handler(exc, context)

    http_cls = http_error_for(exc)
    body = {"detail": str(exc) or http_cls.default_detail, "code": exc.code}
    verdict = getattr(exc, "verdict", None)
    if verdict is not None:
        body["eligibility"] = verdict.as_dict()
    headers = {"Retry-After": "1"} if isinstance(exc, TransientError) else None
    return Response(body, status=http_cls.status_code, headers=headers)
