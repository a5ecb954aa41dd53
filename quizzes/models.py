from __future__ import annotations

import uuid
from typing import Optional

from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from common.enums import TicketState
from .ipcheck import normalize_cidr_list, parse_networks
from .rules import AccessRuleSet, TimeWindow
from .services.scoring import AnswerKeyEntry


class TimeStampedModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Quiz(TimeStampedModel):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    module_code = models.CharField(max_length=32, blank=True)

    start_at = models.DateTimeField()
    end_at   = models.DateTimeField(null=True, blank=True)

    # never the plaintext; produced by make_password()
    access_code_hash = models.CharField(max_length=128, blank=True)
    allowed_ip_cidrs = models.JSONField(default=list, blank=True)
    assigned_students = models.ManyToManyField(
        settings.AUTH_USER_MODEL, blank=True, related_name="assigned_quizzes"
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="authored_quizzes",
    )

    class Meta:
        ordering = ("-start_at", "created_at")
        indexes = [models.Index(fields=["start_at", "end_at"], name="quiz_window_idx")]

    def clean(self):
        if self.end_at and self.start_at and self.end_at < self.start_at:
            raise ValidationError("end_at cannot be earlier than start_at")
        self.allowed_ip_cidrs = normalize_cidr_list(self.allowed_ip_cidrs)

    def set_access_code(self, raw: Optional[str]):
        raw = (raw or "").strip()
        self.access_code_hash = make_password(raw) if raw else ""

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start_at, end=self.end_at)

    def access_rules(self) -> AccessRuleSet:
        return AccessRuleSet(
            quiz_id=str(self.pk),
            window=self.window,
            access_code_hash=self.access_code_hash or "",
            ip_allowlist=parse_networks(self.allowed_ip_cidrs or []),
            ip_restricted=bool(self.allowed_ip_cidrs),
            # .all() so a prefetch_related("assigned_students") is reused
            assigned_student_ids=frozenset(u.pk for u in self.assigned_students.all()),
        )

    def live_questions(self):
        return self.questions.filter(deleted_at__isnull=True).order_by("order", "created_at")

    def answer_key(self) -> list[AnswerKeyEntry]:
        return [
            AnswerKeyEntry(question_id=str(q.id), correct_index=q.answer_key, option_count=len(q.options or []))
            for q in self.live_questions()
        ]

    def __str__(self):
        return f"{self.module_code} · {self.title}" if self.module_code else self.title


class Question(TimeStampedModel):
    quiz = models.ForeignKey(Quiz, on_delete=models.CASCADE, related_name="questions")
    order = models.PositiveIntegerField(default=1)
    text = models.TextField()
    options = models.JSONField(default=list)
    answer_key = models.PositiveIntegerField(help_text="Index of the correct option")
    feedback = models.TextField(blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        ordering = ("quiz", "order", "created_at")
        indexes = [models.Index(fields=["quiz", "deleted_at"], name="question_quiz_live_idx")]

    @property
    def option_count(self) -> int:
        return len(self.options or [])

    def clean(self):
        if self.option_count < 2:
            raise ValidationError("A multiple-choice question needs at least 2 options.")
        if self.answer_key >= self.option_count:
            raise ValidationError("answer_key must point at one of the options.")

    def __str__(self):
        return f"Q{self.order}: {self.text[:60]}"


class SubmissionTicket(TimeStampedModel):
    """
    Single-use claim on (student, quiz).

    ISSUED when the student launches the quiz, flipped to CONSUMED exactly once
    by a conditional UPDATE when a submission is accepted. CONSUMED rows are the
    permanent proof of completion and are never removed by cleanup.
    """
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="submission_tickets")
    quiz    = models.ForeignKey(Quiz, on_delete=models.CASCADE, related_name="tickets")

    state = models.CharField(max_length=12, choices=TicketState.choices, default=TicketState.ISSUED)
    issued_at   = models.DateTimeField(default=timezone.now)
    expires_at  = models.DateTimeField()
    consumed_at = models.DateTimeField(null=True, blank=True)

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)

    # answers + time spent, written by the same UPDATE that consumes the ticket
    submission_snapshot = models.JSONField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["student", "quiz"], name="uniq_ticket_per_student_quiz"),
        ]
        indexes = [
            models.Index(fields=["state", "expires_at"], name="ticket_state_expiry_idx"),
            models.Index(fields=["quiz", "state"], name="ticket_quiz_state_idx"),
        ]

    @property
    def is_consumed(self) -> bool:
        return self.state == TicketState.CONSUMED

    def is_expired(self, now=None) -> bool:
        return self.state == TicketState.ISSUED and (now or timezone.now()) > self.expires_at

    def __str__(self):
        return f"{self.student_id} · {self.quiz_id} · {self.state}"


class SubmissionResult(TimeStampedModel):
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="quiz_results")
    quiz    = models.ForeignKey(Quiz, on_delete=models.CASCADE, related_name="results")

    submitted_at = models.DateTimeField(default=timezone.now)
    time_spent_seconds = models.PositiveIntegerField(default=0)
    answers = models.JSONField(default=dict)

    score = models.PositiveSmallIntegerField(validators=[MaxValueValidator(100)])
    correct_count = models.PositiveIntegerField()
    total_questions = models.PositiveIntegerField()
    breakdown = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ("-submitted_at",)
        constraints = [
            models.UniqueConstraint(fields=["student", "quiz"], name="uniq_result_per_student_quiz"),
            models.CheckConstraint(condition=Q(score__lte=100), name="result_score_lte_100"),
        ]
        indexes = [models.Index(fields=["quiz", "submitted_at"], name="result_quiz_submitted_idx")]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Submission results are immutable once recorded.")
        super().save(*args, **kwargs)

    def summary(self) -> dict:
        return {
            "result_id": str(self.id),
            "score": self.score,
            "correct_count": self.correct_count,
            "total_questions": self.total_questions,
            "submitted_at": self.submitted_at.isoformat(),
        }

    def __str__(self):
        return f"{self.student_id} · {self.quiz_id} · {self.score}%"
