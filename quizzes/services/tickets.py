# quizzes/services/tickets.py
"""
Single-use submission tickets.

Every (student, quiz) pair owns at most one SubmissionTicket row (unique
constraint). The only state change that matters, ISSUED -> CONSUMED, is one
conditional UPDATE filtered on identity, state and expiry; the database
decides the winner, so this holds across any number of server processes.
No in-process locks are taken anywhere in this module.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.db import IntegrityError, OperationalError, transaction
from django.db.models import Count, Q
from django.utils import timezone

from common.enums import ConsumeOutcome, TicketState
from ..conf import ticket_ttl
from ..exceptions import AlreadySubmitted, TransientError
from ..models import SubmissionTicket

logger = logging.getLogger(__name__)

ISSUE_SETTLE_ATTEMPTS = 3


@dataclass(frozen=True)
class ConsumeResult:
    outcome: str
    student_id: str
    quiz_id: str
    consumed_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.outcome == ConsumeOutcome.CONSUMED


def _create_ticket(student_id, quiz_id, now, ttl, ip_address, user_agent) -> Optional[SubmissionTicket]:
    try:
        with transaction.atomic():
            return SubmissionTicket.objects.create(
                student_id=student_id,
                quiz_id=quiz_id,
                state=TicketState.ISSUED,
                issued_at=now,
                expires_at=now + ttl,
                ip_address=ip_address or None,
                user_agent=user_agent or "",
            )
    except IntegrityError:
        # a concurrent launch created it first; caller re-reads
        return None


def issue(
    student_id,
    quiz_id,
    ttl: Optional[timedelta] = None,
    *,
    now: Optional[datetime] = None,
    ip_address: Optional[str] = None,
    user_agent: str = "",
) -> SubmissionTicket:
    """
    Return the pair's live ISSUED ticket, creating it or refreshing an expired
    one as needed. Raises AlreadySubmitted if the pair's ticket is CONSUMED.
    """
    now = now or timezone.now()
    ttl = ttl if ttl is not None else ticket_ttl()
    try:
        for _ in range(ISSUE_SETTLE_ATTEMPTS):
            ticket = SubmissionTicket.objects.filter(student_id=student_id, quiz_id=quiz_id).first()
            if ticket is None:
                created = _create_ticket(student_id, quiz_id, now, ttl, ip_address, user_agent)
                if created is not None:
                    logger.info("Issued ticket student=%s quiz=%s expires_at=%s",
                                student_id, quiz_id, created.expires_at.isoformat())
                    return created
                continue

            if ticket.state == TicketState.CONSUMED:
                raise AlreadySubmitted("This quiz has already been submitted.")

            if not ticket.is_expired(now):
                return ticket

            # expired but not yet swept: re-arm it, only if nobody else touched it
            refreshed = (SubmissionTicket.objects
                         .filter(pk=ticket.pk, state=TicketState.ISSUED, expires_at__lt=now)
                         .update(issued_at=now, expires_at=now + ttl,
                                 ip_address=ip_address or None, user_agent=user_agent or "",
                                 updated_at=now))
            if refreshed:
                logger.info("Re-issued expired ticket student=%s quiz=%s", student_id, quiz_id)
                return SubmissionTicket.objects.get(pk=ticket.pk)
    except SubmissionTicket.DoesNotExist:
        # swept between the refresh and the read; a fresh launch will recreate it
        raise TransientError("Ticket changed while being issued, please retry.")
    except OperationalError as e:
        logger.warning("Ticket issue failed for student=%s quiz=%s: %s", student_id, quiz_id, e)
        raise TransientError("Ticket store unavailable, please retry.") from e

    raise TransientError("Ticket state kept changing while being issued, please retry.")


def consume(
    student_id,
    quiz_id,
    *,
    now: Optional[datetime] = None,
    snapshot: Optional[dict] = None,
) -> ConsumeResult:
    """
    Atomically flip the pair's ticket from ISSUED to CONSUMED.

    Exactly one caller per pair can ever see CONSUMED. Everyone else sees
    ALREADY_CONSUMED, EXPIRED or NOT_FOUND. An ISSUED ticket past its
    expires_at cannot be consumed even if cleanup has not removed it yet.
    """
    now = now or timezone.now()
    try:
        updated = (SubmissionTicket.objects
                   .filter(student_id=student_id, quiz_id=quiz_id,
                           state=TicketState.ISSUED, expires_at__gte=now)
                   .update(state=TicketState.CONSUMED, consumed_at=now,
                           submission_snapshot=snapshot, updated_at=now))
    except OperationalError as e:
        logger.warning("Ticket consume failed for student=%s quiz=%s: %s", student_id, quiz_id, e)
        raise TransientError("Ticket store unavailable, please retry.") from e

    if updated == 1:
        # no further reads on the winning path
        logger.info("Consumed ticket student=%s quiz=%s snapshot=%s", student_id, quiz_id, snapshot)
        return ConsumeResult(ConsumeOutcome.CONSUMED, str(student_id), str(quiz_id), consumed_at=now)

    try:
        row = (SubmissionTicket.objects
               .filter(student_id=student_id, quiz_id=quiz_id)
               .values("state", "expires_at")
               .first())
    except OperationalError as e:
        raise TransientError("Ticket store unavailable, please retry.") from e

    if row is None:
        outcome = ConsumeOutcome.NOT_FOUND
    elif row["state"] == TicketState.CONSUMED:
        outcome = ConsumeOutcome.ALREADY_CONSUMED
    else:
        outcome = ConsumeOutcome.EXPIRED
    logger.info("Ticket not consumed student=%s quiz=%s outcome=%s", student_id, quiz_id, outcome)
    return ConsumeResult(outcome, str(student_id), str(quiz_id))


def cleanup_expired_tickets(now: Optional[datetime] = None) -> int:
    """
    Remove ISSUED tickets whose expiry has passed. CONSUMED tickets are never
    touched. SubmissionTicket has no reverse relations or delete signals, so
    Django emits one filtered DELETE and a ticket consumed or re-armed
    meanwhile no longer matches it.
    """
    now = now or timezone.now()
    deleted, _ = (SubmissionTicket.objects
                  .filter(state=TicketState.ISSUED, expires_at__lt=now)
                  .delete())
    return deleted


def quiz_ticket_stats(quiz_id, now: Optional[datetime] = None) -> dict:
    now = now or timezone.now()
    agg = SubmissionTicket.objects.filter(quiz_id=quiz_id).aggregate(
        total=Count("id"),
        consumed=Count("id", filter=Q(state=TicketState.CONSUMED)),
        issued=Count("id", filter=Q(state=TicketState.ISSUED, expires_at__gte=now)),
        expired_pending_cleanup=Count("id", filter=Q(state=TicketState.ISSUED, expires_at__lt=now)),
        unique_students=Count("student", distinct=True),
        unique_ips=Count("ip_address", distinct=True),
    )
    return {k: int(v or 0) for k, v in agg.items()}
