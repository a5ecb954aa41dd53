from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from quizzes.models import Question, Quiz
from quizzes.services.eligibility import RequestContext

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=dt_timezone.utc)


@pytest.fixture(autouse=True)
def _fast_password_hashing(settings):
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def student(django_user_model):
    return django_user_model.objects.create_user(username="s1", password="pw-s1", reg_no="S1")


@pytest.fixture
def other_student(django_user_model):
    return django_user_model.objects.create_user(username="s2", password="pw-s2", reg_no="S2")


@pytest.fixture
def academic(django_user_model):
    return django_user_model.objects.create_user(username="lecturer", password="pw-l", role="ACADEMIC")


@pytest.fixture
def make_quiz():
    def _make(*, start=T0, end=T0 + timedelta(hours=2), access_code=None, cidrs=(),
              assigned=(), answer_keys=(0, 1, 2, 3, 0), title="Week 3 quiz"):
        quiz = Quiz(title=title, module_code="CS101", start_at=start, end_at=end,
                    allowed_ip_cidrs=list(cidrs))
        quiz.set_access_code(access_code)
        quiz.clean()
        quiz.save()
        if assigned:
            quiz.assigned_students.set(assigned)
        for i, key in enumerate(answer_keys, start=1):
            Question.objects.create(quiz=quiz, order=i, text=f"Question {i}",
                                    options=["A", "B", "C", "D"], answer_key=key)
        return quiz
    return _make


@pytest.fixture
def quiz(make_quiz):
    return make_quiz()


@pytest.fixture
def ctx():
    def _ctx(now, ip="10.0.0.7", code=None):
        return RequestContext(now=now, ip_address=ip, access_code=code)
    return _ctx


@pytest.fixture
def answers_for():
    """Answer map for `quiz` with the first `correct` live questions right and the rest wrong."""
    def _answers(quiz, correct):
        out = {}
        for i, q in enumerate(quiz.live_questions()):
            out[str(q.id)] = q.answer_key if i < correct else (q.answer_key + 1) % len(q.options)
        return out
    return _answers
