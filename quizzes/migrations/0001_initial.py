import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Quiz",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("module_code", models.CharField(blank=True, max_length=32)),
                ("start_at", models.DateTimeField()),
                ("end_at", models.DateTimeField(blank=True, null=True)),
                ("access_code_hash", models.CharField(blank=True, max_length=128)),
                ("allowed_ip_cidrs", models.JSONField(blank=True, default=list)),
                ("assigned_students", models.ManyToManyField(
                    blank=True, related_name="assigned_quizzes", to=settings.AUTH_USER_MODEL,
                )),
                ("created_by", models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name="authored_quizzes",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ("-start_at", "created_at"),
                "indexes": [models.Index(fields=["start_at", "end_at"], name="quiz_window_idx")],
            },
        ),
        migrations.CreateModel(
            name="Question",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order", models.PositiveIntegerField(default=1)),
                ("text", models.TextField()),
                ("options", models.JSONField(default=list)),
                ("answer_key", models.PositiveIntegerField(help_text="Index of the correct option")),
                ("feedback", models.TextField(blank=True)),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("quiz", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="questions", to="quizzes.quiz",
                )),
            ],
            options={
                "ordering": ("quiz", "order", "created_at"),
                "indexes": [models.Index(fields=["quiz", "deleted_at"], name="question_quiz_live_idx")],
            },
        ),
        migrations.CreateModel(
            name="SubmissionTicket",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("state", models.CharField(
                    choices=[("issued", "Issued"), ("consumed", "Consumed")], default="issued", max_length=12,
                )),
                ("issued_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField()),
                ("consumed_at", models.DateTimeField(blank=True, null=True)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.TextField(blank=True)),
                ("submission_snapshot", models.JSONField(blank=True, null=True)),
                ("quiz", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="tickets", to="quizzes.quiz",
                )),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="submission_tickets",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "indexes": [
                    models.Index(fields=["state", "expires_at"], name="ticket_state_expiry_idx"),
                    models.Index(fields=["quiz", "state"], name="ticket_quiz_state_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("student", "quiz"), name="uniq_ticket_per_student_quiz"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SubmissionResult",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("submitted_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("time_spent_seconds", models.PositiveIntegerField(default=0)),
                ("answers", models.JSONField(default=dict)),
                ("score", models.PositiveSmallIntegerField(
                    validators=[django.core.validators.MaxValueValidator(100)],
                )),
                ("correct_count", models.PositiveIntegerField()),
                ("total_questions", models.PositiveIntegerField()),
                ("breakdown", models.JSONField(blank=True, default=list)),
                ("quiz", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="results", to="quizzes.quiz",
                )),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="quiz_results",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ("-submitted_at",),
                "indexes": [models.Index(fields=["quiz", "submitted_at"], name="result_quiz_submitted_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("student", "quiz"), name="uniq_result_per_student_quiz"),
                    models.CheckConstraint(condition=models.Q(("score__lte", 100)), name="result_score_lte_100"),
                ],
            },
        ),
    ]
