# quizzes/services/eligibility.py
"""
Per-student, per-quiz eligibility.

`evaluate` is pure: it sees only the quiz's AccessRuleSet, the requester's
context and the submission history handed to it, and it always reports all
five predicates so callers can explain *why* a student is blocked.
`check_eligibility` is the thin loader that fetches those inputs from the DB.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from django.contrib.auth.hashers import check_password
from django.db.models import Exists, OuterRef, Q

from common.enums import TicketState
from ..conf import clock_skew_tolerance
from ..ipcheck import matching_network, parse_ip
from ..models import Quiz, SubmissionResult, SubmissionTicket
from ..rules import AccessRuleSet


@dataclass(frozen=True)
class RequestContext:
    now: datetime
    ip_address: Optional[str] = None
    access_code: Optional[str] = None


@dataclass(frozen=True)
class SubmissionHistory:
    has_consumed_ticket: bool = False
    prior_result: Optional[dict] = None

    @property
    def has_submitted(self) -> bool:
        return self.has_consumed_ticket or self.prior_result is not None


@dataclass(frozen=True)
class PredicateResult:
    ok: bool
    code: str
    detail: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {"ok": self.ok, "code": self.code, **self.detail}


@dataclass(frozen=True)
class EligibilityReasons:
    within_time_window: PredicateResult
    access_code_ok: PredicateResult
    ip_allowed: PredicateResult
    assignment_ok: PredicateResult
    submission_ok: PredicateResult

    def items(self):
        return [
            ("within_time_window", self.within_time_window),
            ("access_code_ok", self.access_code_ok),
            ("ip_allowed", self.ip_allowed),
            ("assignment_ok", self.assignment_ok),
            ("submission_ok", self.submission_ok),
        ]

    def failed(self) -> list[str]:
        return [name for name, r in self.items() if not r.ok]


@dataclass(frozen=True)
class EligibilityVerdict:
    quiz_id: str
    student_id: str
    evaluated_at: datetime
    is_eligible: bool
    reasons: EligibilityReasons

    def as_dict(self) -> dict:
        return {
            "quiz_id": self.quiz_id,
            "student_id": self.student_id,
            "evaluated_at": self.evaluated_at.isoformat(),
            "is_eligible": self.is_eligible,
            "failed": self.reasons.failed(),
            "reasons": {name: r.as_dict() for name, r in self.reasons.items()},
        }


# ------------------------- predicates -------------------------

def _time_predicate(rules: AccessRuleSet, now: datetime, tolerance: timedelta) -> PredicateResult:
    position = rules.window.position(now, tolerance)
    return PredicateResult(
        ok=position == "open",
        code=position,
        detail={
            "start_at": rules.window.start.isoformat(),
            "end_at": rules.window.end.isoformat() if rules.window.end else None,
            "now": now.isoformat(),
        },
    )


def _access_code_predicate(rules: AccessRuleSet, submitted: Optional[str]) -> PredicateResult:
    if not rules.requires_access_code:
        return PredicateResult(True, "not_required", {"required": False})
    if not submitted:
        return PredicateResult(False, "missing", {"required": True})
    if check_password(submitted, rules.access_code_hash):
        return PredicateResult(True, "valid", {"required": True})
    return PredicateResult(False, "mismatch", {"required": True})


def _ip_predicate(rules: AccessRuleSet, raw_ip: Optional[str]) -> PredicateResult:
    if not rules.is_ip_restricted:
        return PredicateResult(True, "unrestricted", {"restricted": False})
    if not rules.ip_allowlist:
        # configured, but no entry parses: nobody matches
        return PredicateResult(False, "invalid_allowlist", {"restricted": True, "ip": raw_ip})
    ip = parse_ip(raw_ip)
    if ip is None:
        code = "missing_ip" if not raw_ip else "invalid_ip"
        return PredicateResult(False, code, {"restricted": True, "ip": raw_ip})
    net = matching_network(ip, rules.ip_allowlist)
    if net is None:
        return PredicateResult(False, "outside_allowlist", {"restricted": True, "ip": str(ip)})
    return PredicateResult(True, "matched", {"restricted": True, "ip": str(ip), "network": str(net)})


def _assignment_predicate(rules: AccessRuleSet, student_id) -> PredicateResult:
    if not rules.is_assignment_restricted:
        return PredicateResult(True, "open", {"restricted": False})
    if student_id in rules.assigned_student_ids:
        return PredicateResult(True, "assigned", {"restricted": True})
    return PredicateResult(False, "not_assigned", {"restricted": True})


def _submission_predicate(history: SubmissionHistory) -> PredicateResult:
    detail = {
        "consumed_ticket": history.has_consumed_ticket,
        "prior_result": history.prior_result,
    }
    if history.has_submitted:
        return PredicateResult(False, "already_submitted", detail)
    return PredicateResult(True, "none", detail)


def evaluate(
    rules: AccessRuleSet,
    student_id,
    context: RequestContext,
    history: SubmissionHistory,
    tolerance: timedelta = timedelta(0),
) -> EligibilityVerdict:
    reasons = EligibilityReasons(
        within_time_window=_time_predicate(rules, context.now, tolerance),
        access_code_ok=_access_code_predicate(rules, context.access_code),
        ip_allowed=_ip_predicate(rules, context.ip_address),
        assignment_ok=_assignment_predicate(rules, student_id),
        submission_ok=_submission_predicate(history),
    )
    return EligibilityVerdict(
        quiz_id=rules.quiz_id,
        student_id=str(student_id),
        evaluated_at=context.now,
        is_eligible=all(r.ok for _, r in reasons.items()),
        reasons=reasons,
    )


# ------------------------- DB-backed loaders -------------------------

def load_history(student_id, quiz_id) -> SubmissionHistory:
    consumed = SubmissionTicket.objects.filter(
        student_id=student_id, quiz_id=quiz_id, state=TicketState.CONSUMED
    ).exists()
    result = SubmissionResult.objects.filter(student_id=student_id, quiz_id=quiz_id).first()
    return SubmissionHistory(
        has_consumed_ticket=consumed,
        prior_result=result.summary() if result else None,
    )


def check_eligibility(quiz: Quiz, student, context: RequestContext) -> EligibilityVerdict:
    return evaluate(
        quiz.access_rules(),
        student.pk,
        context,
        load_history(student.pk, quiz.pk),
        tolerance=clock_skew_tolerance(),
    )


def open_quizzes_for(student, context: RequestContext) -> list[tuple[Quiz, EligibilityVerdict]]:
    """
    Quizzes the student could launch right now. The access code is not known
    when listing, so that predicate is ignored here and surfaced as a flag.

    Histories are loaded for all candidates at once and assignments are
    prefetched, so the query count does not grow with the number of quizzes.
    Each quiz carries a ``ticket_pending`` annotation.
    """
    tol = clock_skew_tolerance()
    quizzes = list(
        Quiz.objects
        .filter(start_at__lte=context.now + tol)
        .filter(Q(end_at__isnull=True) | Q(end_at__gte=context.now - tol))
        .filter(Q(assigned_students__isnull=True) | Q(assigned_students=student))
        .distinct()
        .annotate(ticket_pending=Exists(
            SubmissionTicket.objects.filter(quiz=OuterRef("pk"), student=student, state=TicketState.ISSUED)
        ))
        .prefetch_related("assigned_students")
        .order_by("-start_at")
    )
    ids = [q.pk for q in quizzes]
    consumed = set(
        SubmissionTicket.objects
        .filter(student=student, quiz_id__in=ids, state=TicketState.CONSUMED)
        .values_list("quiz_id", flat=True)
    )
    results = {r.quiz_id: r.summary() for r in SubmissionResult.objects.filter(student=student, quiz_id__in=ids)}

    out = []
    for quiz in quizzes:
        history = SubmissionHistory(has_consumed_ticket=quiz.pk in consumed, prior_result=results.get(quiz.pk))
        verdict = evaluate(quiz.access_rules(), student.pk, context, history, tolerance=tol)
        blocking = [name for name in verdict.reasons.failed() if name != "access_code_ok"]
        if not blocking:
            out.append((quiz, verdict))
    return out
