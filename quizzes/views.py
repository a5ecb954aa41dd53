# quizzes/views.py
from django.db import OperationalError
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import IsAdminOrAcademic, IsStudent
from .conf import trust_forwarded_for
from .exceptions import TransientError
from .models import Quiz
from .serializers import (
    LaunchInSerializer,
    PublicQuestionSerializer,
    QuizSummarySerializer,
    SubmissionResultSerializer,
    SubmitInSerializer,
    TicketSerializer,
)
from .services.eligibility import RequestContext, check_eligibility, open_quizzes_for
from .services.submission import completed_results, launch_attempt, submit_attempt
from .services.tickets import quiz_ticket_stats


def _client_ip(request):
    if trust_forwarded_for():
        xff = request.META.get("HTTP_X_FORWARDED_FOR")
        if xff:
            return xff.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def _request_context(request, access_code=None) -> RequestContext:
    return RequestContext(
        now=timezone.now(),
        ip_address=_client_ip(request),
        access_code=(access_code or "").strip() or None,
    )


class QuizEligibilityView(APIView):
    """GET: full verdict, 200 for a known quiz even when ineligible."""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, quiz_id):
        quiz = get_object_or_404(Quiz, pk=quiz_id)
        ctx = _request_context(request, request.query_params.get("access_code"))
        try:
            verdict = check_eligibility(quiz, request.user, ctx)
        except OperationalError as e:
            raise TransientError("Eligibility data unavailable, please retry.") from e
        return Response(verdict.as_dict(), status=status.HTTP_200_OK)


class QuizLaunchView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsStudent]

    def post(self, request, quiz_id):
        quiz = get_object_or_404(Quiz, pk=quiz_id)
        s = LaunchInSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        ctx = _request_context(request, s.validated_data.get("access_code"))
        user_agent = (request.META.get("HTTP_USER_AGENT") or "")[:512]
        ticket, verdict = launch_attempt(quiz, request.user, ctx, user_agent=user_agent)

        return Response({
            "quiz": QuizSummarySerializer(quiz).data,
            "ticket": TicketSerializer(ticket).data,
            "questions": PublicQuestionSerializer(quiz.live_questions(), many=True).data,
            "eligibility": verdict.as_dict(),
        }, status=status.HTTP_201_CREATED)


class QuizSubmitView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsStudent]

    def post(self, request, quiz_id):
        quiz = get_object_or_404(Quiz, pk=quiz_id)
        s = SubmitInSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        ctx = _request_context(request, s.validated_data.get("access_code"))
        result = submit_attempt(
            quiz,
            request.user,
            ctx,
            answers=s.validated_data["answers"],
            time_spent_seconds=s.validated_data.get("time_spent", 0),
        )
        return Response(SubmissionResultSerializer(result).data, status=status.HTTP_201_CREATED)


class EligibleQuizzesView(APIView):
    """Quizzes the student could launch now; access-code quizzes are listed and flagged."""
    permission_classes = [permissions.IsAuthenticated, IsStudent]

    def get(self, request):
        ctx = _request_context(request)
        rows = []
        for quiz, verdict in open_quizzes_for(request.user, ctx):
            data = QuizSummarySerializer(quiz).data
            data["ticket_pending"] = quiz.ticket_pending
            rows.append(data)
        return Response({"count": len(rows), "results": rows}, status=status.HTTP_200_OK)


class CompletedQuizzesView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsStudent]

    def get(self, request):
        qs = completed_results(request.user)
        data = SubmissionResultSerializer(qs, many=True).data
        return Response({"count": len(data), "results": data}, status=status.HTTP_200_OK)


class QuizTicketStatsView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsAdminOrAcademic]

    def get(self, request, quiz_id):
        quiz = get_object_or_404(Quiz, pk=quiz_id)
        return Response({
            "quiz_id": str(quiz.id),
            "title": quiz.title,
            "results_recorded": quiz.results.count(),
            **quiz_ticket_stats(quiz.id),
        }, status=status.HTTP_200_OK)
