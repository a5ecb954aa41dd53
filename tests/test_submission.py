import logging
import threading
import time
from datetime import timedelta

import pytest
from django.db import DatabaseError, connection

from common.enums import TicketState
from quizzes.exceptions import (
    AlreadySubmitted,
    AttemptExpired,
    DuplicateSubmission,
    NotEligible,
    PostConsumptionPersistenceFailure,
    QuizHasNoQuestions,
    TransientError,
)
from quizzes.models import Question, SubmissionResult, SubmissionTicket
from quizzes.services import submission
from quizzes.services.submission import launch_attempt, submit_attempt


@pytest.mark.django_db
class TestSubmitAttempt:
    def test_scenario_a_four_of_five(self, quiz, student, ctx, answers_for, t0):
        launch_attempt(quiz, student, ctx(t0 + timedelta(minutes=55)))

        result = submit_attempt(quiz, student, ctx(t0 + timedelta(hours=1)), answers_for(quiz, 4), 300)

        assert (result.score, result.correct_count, result.total_questions) == (80, 4, 5)
        assert result.time_spent_seconds == 300
        assert len(result.breakdown) == 5
        ticket = SubmissionTicket.objects.get(student=student, quiz=quiz)
        assert ticket.state == TicketState.CONSUMED
        assert ticket.submission_snapshot["answers"] == result.answers

    def test_resubmission_is_duplicate(self, quiz, student, ctx, answers_for, t0):
        now = t0 + timedelta(hours=1)
        launch_attempt(quiz, student, ctx(now))
        submit_attempt(quiz, student, ctx(now), answers_for(quiz, 5))

        with pytest.raises(DuplicateSubmission):
            submit_attempt(quiz, student, ctx(now + timedelta(seconds=1)), answers_for(quiz, 0))
        assert SubmissionResult.objects.get().score == 100

    def test_loser_of_a_race_past_eligibility_gets_duplicate(self, quiz, student, ctx, answers_for, t0, monkeypatch):
        now = t0 + timedelta(hours=1)
        launch_attempt(quiz, student, ctx(now))
        stale = submission.check_eligibility(quiz, student, ctx(now))
        submit_attempt(quiz, student, ctx(now), answers_for(quiz, 3))

        # second request evaluated eligibility before the first consumed the ticket
        monkeypatch.setattr(submission, "check_eligibility", lambda *a, **kw: stale)
        with pytest.raises(DuplicateSubmission):
            submit_attempt(quiz, student, ctx(now), answers_for(quiz, 5))
        assert SubmissionResult.objects.count() == 1

    def test_submit_without_launch_is_expired(self, quiz, student, ctx, answers_for, t0):
        with pytest.raises(AttemptExpired) as exc:
            submit_attempt(quiz, student, ctx(t0 + timedelta(hours=1)), answers_for(quiz, 5))
        assert exc.value.outcome == "not_found"
        assert exc.value.code == "attempt_expired"
        assert not SubmissionResult.objects.exists()

    def test_submit_after_ticket_expiry_is_expired(self, quiz, student, ctx, answers_for, t0, settings):
        settings.QUIZ_TICKET_TTL_SECONDS = 60
        launch_attempt(quiz, student, ctx(t0))
        with pytest.raises(AttemptExpired) as exc:
            submit_attempt(quiz, student, ctx(t0 + timedelta(seconds=61)), answers_for(quiz, 5))
        assert exc.value.outcome == "expired"
        assert isinstance(exc.value, NotEligible)

    def test_ineligible_submission_leaves_ticket_untouched(self, make_quiz, student, ctx, answers_for, t0):
        quiz = make_quiz(access_code="ABC123")
        launch_attempt(quiz, student, ctx(t0, code="ABC123"))

        with pytest.raises(NotEligible) as exc:
            submit_attempt(quiz, student, ctx(t0 + timedelta(minutes=1)), answers_for(quiz, 5))

        assert exc.value.verdict.reasons.failed() == ["access_code_ok"]
        assert SubmissionTicket.objects.get().state == TicketState.ISSUED

    def test_submission_after_window_end_is_rejected(self, quiz, student, ctx, answers_for, t0):
        launch_attempt(quiz, student, ctx(quiz.end_at - timedelta(minutes=1)))
        with pytest.raises(NotEligible) as exc:
            submit_attempt(quiz, student, ctx(quiz.end_at + timedelta(microseconds=1)), answers_for(quiz, 5))
        assert exc.value.verdict.reasons.within_time_window.code == "ended"

    def test_submission_at_window_end_is_accepted(self, quiz, student, ctx, answers_for, t0):
        launch_attempt(quiz, student, ctx(quiz.end_at - timedelta(minutes=1)))
        assert submit_attempt(quiz, student, ctx(quiz.end_at), answers_for(quiz, 5)).score == 100

    def test_quiz_without_live_questions_is_rejected_before_ticket(self, make_quiz, student, ctx, t0):
        quiz = make_quiz(answer_keys=(1,))
        Question.objects.filter(quiz=quiz).update(deleted_at=t0)

        with pytest.raises(QuizHasNoQuestions):
            submit_attempt(quiz, student, ctx(t0 + timedelta(minutes=1)), {})
        assert not SubmissionTicket.objects.exists()

    def test_soft_deleted_questions_are_not_scored(self, make_quiz, student, ctx, t0):
        quiz = make_quiz(answer_keys=(0, 1))
        gone = quiz.live_questions().last()
        Question.objects.filter(pk=gone.pk).update(deleted_at=t0)
        first = quiz.live_questions().get()

        launch_attempt(quiz, student, ctx(t0))
        result = submit_attempt(quiz, student, ctx(t0), {str(first.id): 0, str(gone.id): 1})
        assert (result.score, result.total_questions) == (100, 1)

    def test_result_write_failure_keeps_ticket_consumed(self, quiz, student, ctx, answers_for, t0, monkeypatch, caplog):
        now = t0 + timedelta(minutes=5)
        launch_attempt(quiz, student, ctx(now))

        def broken(*args, **kwargs):
            raise DatabaseError("disk I/O error")

        monkeypatch.setattr(submission, "record_result", broken)
        with caplog.at_level(logging.ERROR, logger="quizzes"):
            with pytest.raises(PostConsumptionPersistenceFailure) as exc:
                submit_attempt(quiz, student, ctx(now), answers_for(quiz, 2), 120)

        assert exc.value.code == "submission_not_recorded"
        assert exc.value.snapshot["time_spent_seconds"] == 120
        assert SubmissionTicket.objects.get().state == TicketState.CONSUMED
        assert not SubmissionResult.objects.exists()
        assert any("Result not recorded" in r.getMessage() for r in caplog.records)

        with pytest.raises(DuplicateSubmission):
            submit_attempt(quiz, student, ctx(now), answers_for(quiz, 5))


@pytest.mark.django_db
class TestLaunchAttempt:
    def test_launch_issues_ticket(self, quiz, student, ctx, t0, caplog):
        with caplog.at_level(logging.INFO, logger="quizzes.security"):
            ticket, verdict = launch_attempt(quiz, student, ctx(t0), user_agent="ua")
        assert verdict.is_eligible
        assert ticket.state == TicketState.ISSUED
        assert ticket.user_agent == "ua"
        assert any(getattr(r, "event", None) == "QUIZ_LAUNCH_SUCCESS" for r in caplog.records)

    def test_launch_outside_allowlist_is_rejected_and_logged(self, make_quiz, student, ctx, t0, caplog):
        quiz = make_quiz(cidrs=["192.168.10.0/24"])
        with caplog.at_level(logging.INFO, logger="quizzes.security"):
            with pytest.raises(NotEligible):
                launch_attempt(quiz, student, ctx(t0, ip="10.0.0.7"))
        events = [getattr(r, "event", None) for r in caplog.records]
        assert "IP_BLOCKED" in events
        assert "QUIZ_LAUNCH_REJECTED" in events
        assert not SubmissionTicket.objects.exists()

    def test_access_code_is_never_logged_in_full(self, make_quiz, student, ctx, t0, caplog):
        quiz = make_quiz(access_code="ABC123")
        with caplog.at_level(logging.INFO, logger="quizzes.security"):
            with pytest.raises(NotEligible):
                launch_attempt(quiz, student, ctx(t0, code="WRONG-CODE"))
        assert "WRONG-CODE" not in caplog.text
        assert "WRO***" in caplog.text

    def test_launch_after_submission_is_already_submitted(self, quiz, student, ctx, answers_for, t0):
        launch_attempt(quiz, student, ctx(t0))
        submit_attempt(quiz, student, ctx(t0), answers_for(quiz, 1))
        with pytest.raises(AlreadySubmitted):
            launch_attempt(quiz, student, ctx(t0 + timedelta(minutes=1)))


@pytest.mark.django_db(transaction=True)
def test_scenario_b_two_racing_submissions(quiz, student, ctx, answers_for, t0):
    now = t0 + timedelta(minutes=30)
    launch_attempt(quiz, student, ctx(now))
    answers = answers_for(quiz, 4)

    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def submit():
        try:
            barrier.wait(timeout=30)
            for _ in range(100):
                try:
                    submit_attempt(quiz, student, ctx(now), answers)
                    outcome = "ok"
                    break
                except TransientError:
                    time.sleep(0.01)
                except DuplicateSubmission:
                    outcome = "duplicate"
                    break
            else:
                outcome = "gave_up"
            with lock:
                outcomes.append(outcome)
        finally:
            connection.close()

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["duplicate", "ok"]
    assert SubmissionResult.objects.get(student=student, quiz=quiz).score == 80
