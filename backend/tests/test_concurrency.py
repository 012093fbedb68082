# Overview: Pytest coverage for retry, deadline and optimistic-locking helpers.

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from theaterpos.errors import Contention, Timeout
from theaterpos.models import Role
from theaterpos.permissions import KIOSK_ROLE_ID
from theaterpos.services.concurrency import Deadline, run_with_retry


class Flaky:
    """Callable that fails a fixed number of times before succeeding."""

    def __init__(self, failures, exc=StaleDataError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("row changed underneath us")
        return "done"


class TestRunWithRetry:

    def test_recovers_after_conflicts(self, db_session):
        func = Flaky(2)
        assert run_with_retry(func, backoff_base=0) == "done"
        assert func.calls == 3

    def test_gives_up_with_contention(self, db_session):
        func = Flaky(100)
        with pytest.raises(Contention):
            run_with_retry(func, backoff_base=0)
        assert func.calls == 4

    def test_other_errors_propagate_immediately(self, db_session):
        func = Flaky(1, exc=ValueError)
        with pytest.raises(ValueError):
            run_with_retry(func, backoff_base=0)
        assert func.calls == 1

    def test_expired_deadline_stops_before_first_attempt(self, db_session):
        func = Flaky(0)
        with pytest.raises(Timeout):
            run_with_retry(func, backoff_base=0, deadline=Deadline(0))
        assert func.calls == 0


class TestDeadline:

    def test_from_config(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "OPERATION_DEADLINE_SECONDS", 12)
        deadline = Deadline.from_config()
        assert deadline.seconds == 12
        assert not deadline.expired
        deadline.check()

    def test_check_names_the_operation(self):
        with pytest.raises(Timeout, match="Stock sale"):
            Deadline(0).check("Stock sale")


class TestVersionedRows:

    def test_stale_role_write_is_rejected(self, db_session, theater_a):
        role = db_session.query(Role).filter_by(theater_id=theater_a.id, role_id=KIOSK_ROLE_ID).one()

        # Another writer bumps the version behind this session's back
        db_session.execute(
            update(Role)
            .where(Role.id == role.id)
            .values(version_id=Role.version_id + 1)
            .execution_options(synchronize_session=False)
        )

        role.description = "Self-service kiosk"
        with pytest.raises(StaleDataError):
            db_session.commit()
        db_session.rollback()

    def test_fresh_write_bumps_version(self, db_session, theater_a):
        role = db_session.query(Role).filter_by(theater_id=theater_a.id, role_id=KIOSK_ROLE_ID).one()
        before = role.version_id

        role.description = "Self-service kiosk"
        db_session.commit()

        assert role.version_id == before + 1
