# quizzes/serializers.py
from rest_framework import serializers

from .models import Question, Quiz, SubmissionResult, SubmissionTicket


# ---------- input ----------

class LaunchInSerializer(serializers.Serializer):
    access_code = serializers.CharField(required=False, allow_blank=True, max_length=128)


class SubmitInSerializer(serializers.Serializer):
    # question id -> selected option index
    answers = serializers.DictField(child=serializers.IntegerField(min_value=0), allow_empty=True)
    time_spent = serializers.IntegerField(required=False, min_value=0, default=0)
    access_code = serializers.CharField(required=False, allow_blank=True, max_length=128)


# ---------- output ----------

class PublicQuestionSerializer(serializers.ModelSerializer):
    """Question as served to a student: no answer key, no feedback."""

    class Meta:
        model = Question
        fields = ("id", "order", "text", "options")


class QuizSummarySerializer(serializers.ModelSerializer):
    requires_access_code = serializers.SerializerMethodField()
    is_ip_restricted = serializers.SerializerMethodField()

    class Meta:
        model = Quiz
        fields = (
            "id", "title", "description", "module_code",
            "start_at", "end_at", "requires_access_code", "is_ip_restricted",
        )

    def get_requires_access_code(self, obj):
        return bool(obj.access_code_hash)

    def get_is_ip_restricted(self, obj):
        return bool(obj.allowed_ip_cidrs)


class TicketSerializer(serializers.ModelSerializer):
    class Meta:
        model = SubmissionTicket
        fields = ("id", "quiz", "state", "issued_at", "expires_at")


class SubmissionResultSerializer(serializers.ModelSerializer):
    quiz_title = serializers.CharField(source="quiz.title", read_only=True)
    module_code = serializers.CharField(source="quiz.module_code", read_only=True)

    class Meta:
        model = SubmissionResult
        fields = (
            "id", "quiz", "quiz_title", "module_code",
            "score", "correct_count", "total_questions",
            "time_spent_seconds", "submitted_at", "breakdown",
        )
