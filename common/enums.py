from django.db import models


class TicketState(models.TextChoices):
    ISSUED   = "issued",   "Issued"
    CONSUMED = "consumed", "Consumed"


class SecurityEvent(models.TextChoices):
    QUIZ_LAUNCH_SUCCESS  = "QUIZ_LAUNCH_SUCCESS",  "Quiz launched"
    QUIZ_LAUNCH_REJECTED = "QUIZ_LAUNCH_REJECTED", "Quiz launch rejected"
    QUIZ_NOT_OPEN        = "QUIZ_NOT_OPEN",        "Quiz outside its window"
    ACCESS_CODE_MISSING  = "ACCESS_CODE_MISSING",  "Access code missing"
    ACCESS_CODE_FAILED   = "ACCESS_CODE_FAILED",   "Access code mismatch"
    IP_BLOCKED           = "IP_BLOCKED",           "IP outside allow-list"
    NOT_ASSIGNED         = "NOT_ASSIGNED",         "Student not assigned"
    ALREADY_SUBMITTED    = "ALREADY_SUBMITTED",    "Quiz already submitted"
    TICKET_EXPIRED       = "TICKET_EXPIRED",       "Ticket expired or missing"
    DUPLICATE_SUBMISSION = "DUPLICATE_SUBMISSION", "Duplicate submission"
    SUBMISSION_ACCEPTED  = "SUBMISSION_ACCEPTED",  "Submission accepted"
    RESULT_NOT_RECORDED  = "RESULT_NOT_RECORDED",  "Result write failed after consumption"


class ConsumeOutcome(models.TextChoices):
    CONSUMED         = "consumed",         "Consumed"
    ALREADY_CONSUMED = "already_consumed", "Already consumed"
    EXPIRED          = "expired",          "Expired"
    NOT_FOUND        = "not_found",        "Not found"
