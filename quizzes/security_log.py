# quizzes/security_log.py
"""Structured security events for launch/submit outcomes (logger ``quizzes.security``)."""
import json
import logging

logger = logging.getLogger("quizzes.security")


def mask_code(code) -> str:
    if not code:
        return ""
    code = str(code)
    return code[:3] + "***" if len(code) > 3 else "***"


def log_security_event(event, level: int = logging.INFO, **details):
    payload = {k: (str(v) if v is not None and not isinstance(v, (int, float, bool, list, dict)) else v)
               for k, v in details.items()}
    logger.log(level, "%s %s", event, json.dumps(payload, sort_keys=True, default=str),
               extra={"event": str(event), "details": payload})
