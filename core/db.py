# core/db.py
"""
Per-backend connection OPTIONS that bound how long a statement waits on a lock.

Ticket consumption is a conditional UPDATE that relies on row locking; a
writer stuck behind another must fail with OperationalError (mapped to a
retryable 503) rather than hang the request.
"""

SQLITE = "django.db.backends.sqlite3"
POSTGRES = ("django.db.backends.postgresql", "django.db.backends.postgresql_psycopg2")
MYSQL = "django.db.backends.mysql"


def lock_bounded_options(engine: str, timeout_seconds: int, options=None) -> dict:
    """Return a copy of `options` with the lock/statement limits for `engine` filled in."""
    opts = dict(options or {})
    ms = int(timeout_seconds) * 1000

    if engine == SQLITE:
        opts.setdefault("timeout", timeout_seconds)
        opts.setdefault("transaction_mode", "IMMEDIATE")
    elif engine in POSTGRES:
        opts.setdefault("connect_timeout", timeout_seconds)
        # statement_timeout is looser so a lock wait is reported as such
        limits = f"-c lock_timeout={ms} -c statement_timeout={ms * 2}"
        existing = opts.get("options")
        opts["options"] = f"{existing} {limits}" if existing else limits
    elif engine == MYSQL:
        opts.setdefault("connect_timeout", timeout_seconds)
        opts.setdefault("init_command", f"SET SESSION innodb_lock_wait_timeout={int(timeout_seconds)}")
    else:
        opts.setdefault("connect_timeout", timeout_seconds)
    return opts
