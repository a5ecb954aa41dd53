from datetime import timedelta

import pytest
from django.db import DatabaseError, OperationalError
from django.utils import timezone
from rest_framework.test import APIClient

from common.enums import TicketState
from quizzes import views
from quizzes.exceptions import TransientError
from quizzes.models import SubmissionTicket
from quizzes.services import submission

pytestmark = pytest.mark.django_db


@pytest.fixture
def live_quiz(make_quiz):
    now = timezone.now()
    return make_quiz(start=now - timedelta(hours=1), end=now + timedelta(hours=1))


@pytest.fixture
def client_for():
    def _client(user=None):
        c = APIClient(REMOTE_ADDR="10.0.0.7")
        if user is not None:
            c.force_authenticate(user=user)
        return c
    return _client


def _url(quiz, action):
    return f"/api/quizzes/{quiz.id}/{action}/"


def test_requires_authentication(live_quiz, client_for):
    resp = client_for().get(_url(live_quiz, "eligibility"))
    assert resp.status_code == 401


def test_eligibility_returns_full_verdict(make_quiz, student, client_for):
    now = timezone.now()
    quiz = make_quiz(start=now - timedelta(hours=1), end=now + timedelta(hours=1), access_code="ABC123")

    resp = client_for(student).get(_url(quiz, "eligibility"))
    assert resp.status_code == 200
    assert resp.data["is_eligible"] is False
    assert resp.data["failed"] == ["access_code_ok"]
    assert set(resp.data["reasons"]) == {
        "within_time_window", "access_code_ok", "ip_allowed", "assignment_ok", "submission_ok",
    }

    ok = client_for(student).get(_url(quiz, "eligibility"), {"access_code": "ABC123"})
    assert ok.data["is_eligible"] is True


def test_eligibility_unknown_quiz_is_404(student, client_for):
    resp = client_for(student).get("/api/quizzes/00000000-0000-0000-0000-000000000000/eligibility/")
    assert resp.status_code == 404


def test_launch_then_submit(live_quiz, student, client_for, answers_for):
    c = client_for(student)
    launched = c.post(_url(live_quiz, "launch"), {}, format="json")
    assert launched.status_code == 201
    assert launched.data["ticket"]["state"] == TicketState.ISSUED
    assert len(launched.data["questions"]) == 5
    assert "answer_key" not in launched.data["questions"][0]

    resp = c.post(_url(live_quiz, "submit"), {"answers": answers_for(live_quiz, 4), "time_spent": 240}, format="json")
    assert resp.status_code == 201
    assert (resp.data["score"], resp.data["correct_count"], resp.data["total_questions"]) == (80, 4, 5)

    again = c.post(_url(live_quiz, "submit"), {"answers": answers_for(live_quiz, 5)}, format="json")
    assert again.status_code == 409
    assert again.data["code"] == "duplicate_submission"

    relaunch = c.post(_url(live_quiz, "launch"), {}, format="json")
    assert relaunch.status_code == 409
    assert relaunch.data["code"] == "already_submitted"


def test_submit_without_launch_is_403_attempt_expired(live_quiz, student, client_for, answers_for):
    resp = client_for(student).post(_url(live_quiz, "submit"), {"answers": answers_for(live_quiz, 5)}, format="json")
    assert resp.status_code == 403
    assert resp.data["code"] == "attempt_expired"


def test_launch_not_eligible_carries_reasons(make_quiz, student, other_student, client_for):
    now = timezone.now()
    quiz = make_quiz(start=now - timedelta(hours=1), end=now + timedelta(hours=1), assigned=[other_student])

    resp = client_for(student).post(_url(quiz, "launch"), {}, format="json")
    assert resp.status_code == 403
    assert resp.data["code"] == "not_eligible"
    assert resp.data["eligibility"]["failed"] == ["assignment_ok"]
    assert resp.data["eligibility"]["reasons"]["assignment_ok"]["ok"] is False


def test_ip_allowlist_uses_remote_addr_unless_proxy_trusted(make_quiz, student, client_for, settings):
    now = timezone.now()
    quiz = make_quiz(start=now - timedelta(hours=1), end=now + timedelta(hours=1), cidrs=["203.0.113.0/24"])
    c = client_for(student)

    spoofed = c.get(_url(quiz, "eligibility"), HTTP_X_FORWARDED_FOR="203.0.113.9")
    assert spoofed.data["reasons"]["ip_allowed"]["ok"] is False

    settings.QUIZ_TRUST_X_FORWARDED_FOR = True
    proxied = c.get(_url(quiz, "eligibility"), HTTP_X_FORWARDED_FOR="203.0.113.9, 10.0.0.1")
    assert proxied.data["reasons"]["ip_allowed"]["ok"] is True


@pytest.mark.parametrize("payload", [
    {},
    {"answers": "not-a-map"},
    {"answers": {"q": -1}},
    {"answers": {"q": "b"}},
    {"answers": {}, "time_spent": -5},
])
def test_malformed_submission_is_400_and_touches_nothing(live_quiz, student, client_for, payload):
    c = client_for(student)
    c.post(_url(live_quiz, "launch"), {}, format="json")

    resp = c.post(_url(live_quiz, "submit"), payload, format="json")
    assert resp.status_code == 400
    assert SubmissionTicket.objects.get().state == TicketState.ISSUED


def test_quiz_without_questions_is_404(make_quiz, student, client_for):
    now = timezone.now()
    quiz = make_quiz(start=now - timedelta(hours=1), end=now + timedelta(hours=1), answer_keys=())
    resp = client_for(student).post(_url(quiz, "submit"), {"answers": {}}, format="json")
    assert resp.status_code == 404
    assert resp.data["code"] == "no_questions"


def test_transient_failure_is_503_with_retry_after(live_quiz, student, client_for, answers_for, monkeypatch):
    def unavailable(*args, **kwargs):
        raise TransientError("Ticket store unavailable, please retry.")

    monkeypatch.setattr(submission.tickets, "consume", unavailable)
    resp = client_for(student).post(_url(live_quiz, "submit"), {"answers": answers_for(live_quiz, 5)}, format="json")
    assert resp.status_code == 503
    assert resp.data["code"] == "transient_error"
    assert resp["Retry-After"] == "1"


def test_eligibility_database_error_is_503_with_retry_after(live_quiz, student, client_for, monkeypatch):
    def locked(*args, **kwargs):
        raise OperationalError("database is locked")

    monkeypatch.setattr(views, "check_eligibility", locked)
    resp = client_for(student).get(_url(live_quiz, "eligibility"))
    assert resp.status_code == 503
    assert resp.data["code"] == "transient_error"
    assert resp["Retry-After"] == "1"


def test_post_consumption_failure_is_503_with_distinct_code(live_quiz, student, client_for, answers_for, monkeypatch):
    c = client_for(student)
    c.post(_url(live_quiz, "launch"), {}, format="json")

    def broken(*args, **kwargs):
        raise DatabaseError("disk I/O error")

    monkeypatch.setattr(submission, "record_result", broken)
    resp = c.post(_url(live_quiz, "submit"), {"answers": answers_for(live_quiz, 5)}, format="json")
    assert resp.status_code == 503
    assert resp.data["code"] == "submission_not_recorded"


def test_non_students_cannot_submit(live_quiz, academic, client_for):
    resp = client_for(academic).post(_url(live_quiz, "submit"), {"answers": {}}, format="json")
    assert resp.status_code == 403


def test_eligible_and_completed_lists(make_quiz, student, client_for, answers_for):
    now = timezone.now()
    window = {"start": now - timedelta(hours=1), "end": now + timedelta(hours=1)}
    done = make_quiz(title="done", **window)
    make_quiz(title="coded", access_code="K", **window)
    make_quiz(title="closed", start=now - timedelta(days=2), end=now - timedelta(days=1))
    c = client_for(student)

    c.post(_url(done, "launch"), {}, format="json")
    c.post(_url(done, "submit"), {"answers": answers_for(done, 5)}, format="json")

    eligible = c.get("/api/quizzes/eligible/")
    assert eligible.status_code == 200
    rows = {r["title"]: r for r in eligible.data["results"]}
    assert set(rows) == {"coded"}
    assert rows["coded"]["requires_access_code"] is True
    assert rows["coded"]["ticket_pending"] is False

    completed = c.get("/api/quizzes/completed/")
    assert completed.status_code == 200
    assert [(r["quiz_title"], r["score"]) for r in completed.data["results"]] == [("done", 100)]


def test_ticket_stats_is_staff_only(live_quiz, student, academic, client_for):
    client_for(student).post(_url(live_quiz, "launch"), {}, format="json")

    assert client_for(student).get(_url(live_quiz, "ticket-stats")).status_code == 403

    resp = client_for(academic).get(_url(live_quiz, "ticket-stats"))
    assert resp.status_code == 200
    assert resp.data["issued"] == 1
    assert resp.data["consumed"] == 0
    assert resp.data["unique_ips"] == 1
