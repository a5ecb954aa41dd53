# quizzes/management/commands/reconcile_submissions.py
import uuid
from datetime import datetime

from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError
from django.db.models import Exists, OuterRef

from common.enums import TicketState
from quizzes.models import Quiz, SubmissionResult, SubmissionTicket
from quizzes.services.submission import record_result


def orphaned_tickets(quiz_id=None):
    """CONSUMED tickets that carry a snapshot but never got a SubmissionResult."""
    has_result = SubmissionResult.objects.filter(student_id=OuterRef("student_id"), quiz_id=OuterRef("quiz_id"))
    qs = (SubmissionTicket.objects
          .filter(state=TicketState.CONSUMED, submission_snapshot__isnull=False)
          .annotate(has_result=Exists(has_result))
          .filter(has_result=False)
          .select_related("quiz")
          .order_by("consumed_at"))
    if quiz_id:
        qs = qs.filter(quiz_id=quiz_id)
    return qs


def _submitted_at(ticket):
    raw = (ticket.submission_snapshot or {}).get("submitted_at")
    if raw:
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            pass
    return ticket.consumed_at


class Command(BaseCommand):
    help = (
        "Recreate SubmissionResult rows for consumed tickets whose result write failed. "
        "Each stored answer snapshot is re-scored against the quiz's current answer key."
    )

    def add_arguments(self, parser):
        parser.add_argument("--quiz", type=uuid.UUID, help="Only reconcile this quiz (UUID)")
        parser.add_argument("--dry-run", action="store_true", help="List what would be written, write nothing")

    def handle(self, *args, **opts):
        quiz_id = opts.get("quiz")
        if quiz_id and not Quiz.objects.filter(pk=quiz_id).exists():
            raise CommandError(f"Quiz not found: {quiz_id}")

        tickets = list(orphaned_tickets(quiz_id))
        if not tickets:
            self.stdout.write("Nothing to reconcile.")
            return

        created = failed = 0
        for t in tickets:
            label = f"student={t.student_id} quiz={t.quiz_id} consumed_at={t.consumed_at:%Y-%m-%d %H:%M:%S}"
            if opts["dry_run"]:
                self.stdout.write(f"[dry-run] would record {label}")
                continue
            try:
                result = record_result(t.quiz, t.student_id, t.submission_snapshot, _submitted_at(t))
            except DatabaseError as e:
                failed += 1
                self.stderr.write(self.style.ERROR(f"Failed {label}: {e}"))
                continue
            created += 1
            self.stdout.write(f"Recorded {label} score={result.score}")

        if opts["dry_run"]:
            self.stdout.write(self.style.WARNING(f"Dry run: {len(tickets)} result(s) missing."))
        else:
            self.stdout.write(self.style.SUCCESS(f"Reconciled {created} result(s), {failed} failed."))
