# quizzes/apps.py
from django.apps import AppConfig


class QuizzesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "quizzes"

    def ready(self):
        # Ensures Celery sees quizzes.tasks (for @shared_task)
        import quizzes.tasks  # noqa: F401
