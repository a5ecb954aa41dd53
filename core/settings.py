from pathlib import Path
from datetime import timedelta
import os

import environ

from core.db import SQLITE, lock_bounded_options

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
)
environ.Env.read_env(os.path.join(BASE_DIR, ".env"))

SECRET_KEY = env.str("SECRET_KEY", default="django-insecure-change-me-for-local-dev-only")

DEBUG = env.bool("DEBUG", default=False)

ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["*"])


INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",

    "accounts",
    "quizzes.apps.QuizzesConfig",
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'core.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'core.wsgi.application'


# Database
# Lock waits are bounded on every backend: SQLite `timeout`, PostgreSQL
# `lock_timeout`/`statement_timeout`, MySQL `innodb_lock_wait_timeout`.
# Exceeding one raises OperationalError, returned as a retryable 503.
DB_TIMEOUT_SECONDS = env.int("DB_TIMEOUT_SECONDS", default=5)

DATABASES = {
    "default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}

DATABASES["default"]["OPTIONS"] = lock_bounded_options(
    DATABASES["default"]["ENGINE"], DB_TIMEOUT_SECONDS, DATABASES["default"].get("OPTIONS"),
)
if DATABASES["default"]["ENGINE"] == SQLITE:
    # file-backed so threaded tests share one database
    DATABASES["default"]["TEST"] = {"NAME": str(BASE_DIR / "test_db.sqlite3")}


AUTH_USER_MODEL = "accounts.User"

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]


REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),

    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),

    "EXCEPTION_HANDLER": "quizzes.exceptions.api_exception_handler",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(days=1),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=30),
    "ROTATE_REFRESH_TOKENS": False,
    "UPDATE_LAST_LOGIN": True,
}


# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = env.str("TIME_ZONE", default="UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ─── Quiz engine ───────────────────────────────────────────────────────────────
QUIZ_TICKET_TTL_SECONDS = env.int("QUIZ_TICKET_TTL_SECONDS", default=600)
QUIZ_TICKET_CLEANUP_INTERVAL_SECONDS = env.int("QUIZ_TICKET_CLEANUP_INTERVAL_SECONDS", default=300)
QUIZ_CLOCK_SKEW_TOLERANCE_SECONDS = env.int("QUIZ_CLOCK_SKEW_TOLERANCE_SECONDS", default=0)
# only enable behind a proxy that overwrites X-Forwarded-For
QUIZ_TRUST_X_FORWARDED_FOR = env.bool("QUIZ_TRUST_X_FORWARDED_FOR", default=False)


# ─── Celery config ─────────────────────────────────────────────────────────────
CELERY_BROKER_URL = env.str("CELERY_BROKER_URL", default="redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env.str("CELERY_RESULT_BACKEND", default="redis://127.0.0.1:6379/0")
CELERY_TIMEZONE = TIME_ZONE

CELERY_BEAT_SCHEDULE = {
    "quiz-ticket-cleanup": {
        "task": "quizzes.tasks.cleanup_expired_tickets_task",
        "schedule": float(QUIZ_TICKET_CLEANUP_INTERVAL_SECONDS),
    },
}


# ─── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL = env.str("LOG_LEVEL", default="INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{levelname}] {asctime} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {"level": "WARNING"},
        "quizzes": {"level": LOG_LEVEL},
        # launch/submit audit trail stays on even when LOG_LEVEL is raised
        "quizzes.security": {"level": "INFO"},
        "celery": {"level": LOG_LEVEL},
    },
}
