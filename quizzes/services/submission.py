# quizzes/services/submission.py
"""
Submit flow: re-check eligibility, consume the ticket, score, persist.

The ticket is consumed before anything is written to SubmissionResult, so a
second request for the same (student, quiz) can never reach scoring. Once
consumed, the ticket is never re-opened; a failure past that point is raised
as PostConsumptionPersistenceFailure and repaired by `reconcile_submissions`.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Mapping, Optional

from django.db import DatabaseError, OperationalError, transaction

from common.enums import ConsumeOutcome, SecurityEvent
from ..exceptions import (
    AlreadySubmitted,
    AttemptExpired,
    DuplicateSubmission,
    NotEligible,
    PostConsumptionPersistenceFailure,
    QuizHasNoQuestions,
    TransientError,
)
from ..models import Quiz, SubmissionResult
from ..security_log import log_security_event, mask_code
from . import scoring, tickets
from .eligibility import RequestContext, check_eligibility

logger = logging.getLogger(__name__)

# predicate name -> event logged when that predicate is the reason for a rejection
REJECTION_EVENTS = {
    "within_time_window": SecurityEvent.QUIZ_NOT_OPEN,
    "access_code_ok": SecurityEvent.ACCESS_CODE_FAILED,
    "ip_allowed": SecurityEvent.IP_BLOCKED,
    "assignment_ok": SecurityEvent.NOT_ASSIGNED,
    "submission_ok": SecurityEvent.ALREADY_SUBMITTED,
}


def log_rejection(verdict, context: RequestContext, stage: str):
    for name in verdict.reasons.failed():
        event = REJECTION_EVENTS[name]
        if name == "access_code_ok" and verdict.reasons.access_code_ok.code == "missing":
            event = SecurityEvent.ACCESS_CODE_MISSING
        log_security_event(
            event,
            level=logging.WARNING,
            stage=stage,
            student_id=verdict.student_id,
            quiz_id=verdict.quiz_id,
            ip=context.ip_address,
            access_code=mask_code(context.access_code),
            code=getattr(verdict.reasons, name).code,
        )


def build_snapshot(answers: Mapping, time_spent_seconds, now: datetime, ip_address=None) -> dict:
    return {
        "answers": {str(k): v for k, v in (answers or {}).items()},
        "time_spent_seconds": max(int(time_spent_seconds or 0), 0),
        "submitted_at": now.isoformat(),
        "ip_address": ip_address,
    }


def record_result(quiz: Quiz, student_id, snapshot: dict, submitted_at: datetime) -> SubmissionResult:
    """Score a snapshot against the quiz's live answer key and insert the result row."""
    marked = scoring.score(quiz.answer_key(), snapshot.get("answers") or {})
    with transaction.atomic():
        return SubmissionResult.objects.create(
            student_id=student_id,
            quiz=quiz,
            submitted_at=submitted_at,
            time_spent_seconds=snapshot.get("time_spent_seconds") or 0,
            answers=snapshot.get("answers") or {},
            score=marked.score,
            correct_count=marked.correct_count,
            total_questions=marked.total_questions,
            breakdown=[m.as_dict() for m in marked.breakdown],
        )


def submit_attempt(
    quiz: Quiz,
    student,
    context: RequestContext,
    answers: Mapping,
    time_spent_seconds: Optional[int] = 0,
) -> SubmissionResult:
    # 0) structural checks before touching the ticket
    if not quiz.live_questions().exists():
        raise QuizHasNoQuestions("This quiz has no questions.")

    # 1) eligibility is re-evaluated on every submit, never trusted from launch
    try:
        verdict = check_eligibility(quiz, student, context)
    except OperationalError as e:
        raise TransientError("Eligibility data unavailable, please retry.") from e
    if not verdict.is_eligible:
        log_rejection(verdict, context, stage="submit")
        if not verdict.reasons.submission_ok.ok:
            # a resubmission is a duplicate whatever else changed since
            raise DuplicateSubmission("This quiz has already been submitted.")
        raise NotEligible(verdict)

    # 2) the single atomic ISSUED -> CONSUMED transition
    snapshot = build_snapshot(answers, time_spent_seconds, context.now, context.ip_address)
    consumed = tickets.consume(student.pk, quiz.pk, now=context.now, snapshot=snapshot)
    if consumed.outcome == ConsumeOutcome.ALREADY_CONSUMED:
        log_security_event(SecurityEvent.DUPLICATE_SUBMISSION, level=logging.WARNING,
                           student_id=student.pk, quiz_id=quiz.pk, ip=context.ip_address)
        raise DuplicateSubmission("This quiz has already been submitted.")
    if not consumed.ok:
        log_security_event(SecurityEvent.TICKET_EXPIRED, level=logging.WARNING,
                           student_id=student.pk, quiz_id=quiz.pk, outcome=consumed.outcome)
        raise AttemptExpired(verdict, outcome=consumed.outcome)

    # 3 + 4) score and persist; the ticket stays consumed whatever happens here
    try:
        result = record_result(quiz, student.pk, snapshot, context.now)
    except DatabaseError as e:
        logger.error(
            "Result not recorded after ticket consumption student=%s quiz=%s snapshot=%s: %s",
            student.pk, quiz.pk, snapshot, e,
        )
        log_security_event(SecurityEvent.RESULT_NOT_RECORDED, level=logging.ERROR,
                           student_id=student.pk, quiz_id=quiz.pk)
        raise PostConsumptionPersistenceFailure(
            "Your submission was received but could not be recorded. Please contact your instructor.",
            student_id=str(student.pk),
            quiz_id=str(quiz.pk),
            snapshot=snapshot,
        ) from e

    log_security_event(SecurityEvent.SUBMISSION_ACCEPTED, student_id=student.pk, quiz_id=quiz.pk,
                       score=result.score, ip=context.ip_address)
    return result


def launch_attempt(quiz: Quiz, student, context: RequestContext, user_agent: str = ""):
    """Evaluate eligibility and hand out (or return) the student's ticket for this quiz."""
    if not quiz.live_questions().exists():
        raise QuizHasNoQuestions("This quiz has no questions.")

    try:
        verdict = check_eligibility(quiz, student, context)
    except OperationalError as e:
        raise TransientError("Eligibility data unavailable, please retry.") from e
    if not verdict.is_eligible:
        log_rejection(verdict, context, stage="launch")
        log_security_event(SecurityEvent.QUIZ_LAUNCH_REJECTED, level=logging.WARNING,
                           student_id=student.pk, quiz_id=quiz.pk, failed=verdict.reasons.failed())
        if not verdict.reasons.submission_ok.ok:
            raise AlreadySubmitted("This quiz has already been submitted.")
        raise NotEligible(verdict)

    ticket = tickets.issue(student.pk, quiz.pk, now=context.now,
                           ip_address=context.ip_address, user_agent=user_agent)
    log_security_event(SecurityEvent.QUIZ_LAUNCH_SUCCESS, student_id=student.pk, quiz_id=quiz.pk,
                       ip=context.ip_address, expires_at=ticket.expires_at.isoformat())
    return ticket, verdict


def completed_results(student):
    return (SubmissionResult.objects
            .filter(student=student)
            .select_related("quiz")
            .order_by("-submitted_at"))
