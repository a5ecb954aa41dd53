# quizzes/conf.py
from datetime import timedelta

from django.conf import settings


def ticket_ttl() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "QUIZ_TICKET_TTL_SECONDS", 600)))


def clock_skew_tolerance() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "QUIZ_CLOCK_SKEW_TOLERANCE_SECONDS", 0)))


def trust_forwarded_for() -> bool:
    return bool(getattr(settings, "QUIZ_TRUST_X_FORWARDED_FOR", False))
