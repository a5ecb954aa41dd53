from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.db import DatabaseError

from quizzes.exceptions import PostConsumptionPersistenceFailure
from quizzes.models import SubmissionResult
from quizzes.services import submission
from quizzes.services.submission import launch_attempt, submit_attempt

pytestmark = pytest.mark.django_db


@pytest.fixture
def lost_result(quiz, student, ctx, answers_for, t0, monkeypatch):
    """A consumed ticket whose SubmissionResult insert failed."""
    now = t0 + timedelta(minutes=20)
    launch_attempt(quiz, student, ctx(now))

    def broken(*args, **kwargs):
        raise DatabaseError("boom")

    with monkeypatch.context() as m:
        m.setattr(submission, "record_result", broken)
        with pytest.raises(PostConsumptionPersistenceFailure):
            submit_attempt(quiz, student, ctx(now), answers_for(quiz, 3), 90)
    return now


def _run(*args):
    out = StringIO()
    call_command("reconcile_submissions", *args, stdout=out, stderr=StringIO())
    return out.getvalue()


def test_dry_run_writes_nothing(lost_result):
    out = _run("--dry-run")
    assert "[dry-run] would record" in out
    assert not SubmissionResult.objects.exists()


def test_rebuilds_missing_result_from_snapshot(lost_result, quiz, student):
    out = _run()
    assert "Reconciled 1 result(s), 0 failed." in out

    result = SubmissionResult.objects.get(student=student, quiz=quiz)
    assert (result.score, result.correct_count, result.time_spent_seconds) == (60, 3, 90)
    assert result.submitted_at == lost_result

    assert "Nothing to reconcile." in _run()


def test_quiz_filter(lost_result, make_quiz):
    other = make_quiz(title="other")
    assert "Nothing to reconcile." in _run("--quiz", str(other.id))
    assert not SubmissionResult.objects.exists()


def test_unknown_quiz_is_an_error():
    with pytest.raises(CommandError):
        _run("--quiz", "00000000-0000-0000-0000-000000000000")


def test_malformed_quiz_id_is_an_error():
    with pytest.raises(CommandError):
        _run("--quiz", "junk")
