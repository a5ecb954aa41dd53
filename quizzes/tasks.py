# quizzes/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from .services.tickets import cleanup_expired_tickets

logger = logging.getLogger(__name__)


@shared_task(bind=True, ignore_result=True)
def cleanup_expired_tickets_task(self):
    """
    Periodic sweep (beat, every QUIZ_TICKET_CLEANUP_INTERVAL_SECONDS).
    Deletes ISSUED tickets past their expiry; CONSUMED tickets are left alone.
    Safe to overlap with itself and with live submissions.
    """
    now = timezone.now()
    logger.info("Ticket cleanup started at %s", now.isoformat())
    try:
        removed = cleanup_expired_tickets(now=now)
    except Exception:
        logger.exception("Ticket cleanup failed")
        raise
    logger.info("Ticket cleanup removed %d expired ticket(s)", removed)
    return removed
