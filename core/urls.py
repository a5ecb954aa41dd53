# core/urls.py
from django.contrib import admin
from django.urls import path

from quizzes.views import (
    CompletedQuizzesView,
    EligibleQuizzesView,
    QuizEligibilityView,
    QuizLaunchView,
    QuizSubmitView,
    QuizTicketStatsView,
)

urlpatterns = [
    path('admin/', admin.site.urls),

    path("api/quizzes/eligible/",  EligibleQuizzesView.as_view(),  name="quiz-eligible-list"),
    path("api/quizzes/completed/", CompletedQuizzesView.as_view(), name="quiz-completed-list"),

    path("api/quizzes/<uuid:quiz_id>/eligibility/",  QuizEligibilityView.as_view(), name="quiz-eligibility"),
    path("api/quizzes/<uuid:quiz_id>/launch/",       QuizLaunchView.as_view(),      name="quiz-launch"),
    path("api/quizzes/<uuid:quiz_id>/submit/",       QuizSubmitView.as_view(),      name="quiz-submit"),
    path("api/quizzes/<uuid:quiz_id>/ticket-stats/", QuizTicketStatsView.as_view(), name="quiz-ticket-stats"),
]
