# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import Contention, Timeout
from ..extensions import db


DEFAULT_DEADLINE_SECONDS = 30

# Initial attempt plus up to three retries
DEFAULT_ATTEMPTS = 4


class Deadline:
    """
    Hard wall-clock budget for one operation.

    Uses a monotonic clock so that tests which freeze utcnow() do not stop
    the deadline from elapsing.
    """

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    @classmethod
    def from_config(cls) -> "Deadline":
        seconds = DEFAULT_DEADLINE_SECONDS
        if has_app_context():
            seconds = current_app.config.get("OPERATION_DEADLINE_SECONDS", DEFAULT_DEADLINE_SECONDS)
        return cls(seconds)

    def remaining(self) -> float:
        return self.expires_at - time.monotonic()

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self, what: str = "Operation") -> None:
        if self.expired:
            raise Timeout(f"{what} exceeded its {self.seconds:g}s deadline")


def run_with_retry(
    func,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff_base: float = 0.05,
    deadline: Deadline | None = None,
    retry_on: tuple = (OperationalError, StaleDataError),
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts); callers that race on inserts add
    IntegrityError to retry_on. The session is rolled back before each retry.
    Exhausting the attempts raises Contention; running out of time raises
    Timeout.
    """
    for attempt in range(attempts):
        if deadline is not None:
            deadline.check()
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise Contention() from exc
            delay = backoff_base * (2 ** attempt)
            if deadline is not None:
                delay = min(delay, max(deadline.remaining(), 0))
            if delay > 0:
                time.sleep(delay)
    raise Contention()
