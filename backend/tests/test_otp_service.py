# Overview: Pytest coverage for OTP issue, verification, consumption and reaping.

from datetime import timedelta

import pytest
from sqlalchemy import update

from theaterpos.errors import (
    NotFound,
    OtpExhausted,
    OtpExpired,
    OtpMismatch,
    RateLimited,
    Timeout,
    ValidationError,
)
from theaterpos.models import Otp
from theaterpos.services import maintenance_service, otp_service


PHONE = "+919876543210"


def _wrong(code: str) -> str:
    return "0" * len(code) if code != "0" * len(code) else "1" * len(code)


class TestIssue:

    def test_issue_creates_code(self, db_session, clock):
        issued = otp_service.issue(PHONE, "verification")

        assert len(issued.code) == 6
        assert issued.code.isdigit()
        assert issued.expires_at == clock.now + timedelta(seconds=600)
        assert "code" not in issued.to_dict()
        assert issued.to_dict(include_code=True)["code"] == issued.code

    def test_phone_is_normalized(self, db_session):
        issued = otp_service.issue("+91 98765-43210", "verification")
        assert issued.phone_number == PHONE

    def test_invalid_phone_rejected(self, db_session):
        with pytest.raises(ValidationError):
            otp_service.issue("12-34", "verification")

    def test_invalid_purpose_rejected(self, db_session):
        with pytest.raises(ValidationError):
            otp_service.issue(PHONE, "lottery")

    def test_reissue_replaces_unverified_code(self, db_session):
        first = otp_service.issue(PHONE, "verification")
        second = otp_service.issue(PHONE, "verification")

        rows = db_session.query(Otp).filter_by(phone_number=PHONE, purpose="verification").all()
        assert [row.public_id for row in rows] == [second.otp_id]
        if first.code != second.code:
            with pytest.raises(OtpMismatch):
                otp_service.verify(PHONE, "verification", first.code)

    def test_purposes_are_independent(self, db_session):
        login = otp_service.issue(PHONE, "login")
        order = otp_service.issue(PHONE, "order")
        assert otp_service.verify(PHONE, "login", login.code).verified
        assert otp_service.verify(PHONE, "order", order.code).verified

    def test_issue_rate_limited_per_phone(self, db_session, clock, app, monkeypatch):
        monkeypatch.setitem(app.config, "OTP_ISSUE_LIMIT", 3)
        for _ in range(3):
            otp_service.issue(PHONE, "verification")
        with pytest.raises(RateLimited):
            otp_service.issue(PHONE, "verification")

        # Other numbers are unaffected
        otp_service.issue("+919000000001", "verification")

        # The window slides
        clock.advance(seconds=901)
        otp_service.issue(PHONE, "verification")

    def test_sender_receives_code(self, db_session, app, monkeypatch):
        sent = []
        monkeypatch.setitem(app.config, "OTP_SENDER", lambda phone, code, purpose: sent.append((phone, code, purpose)))
        issued = otp_service.issue(PHONE, "order")
        assert sent == [(PHONE, issued.code, "order")]


class TestVerify:

    def test_happy_path(self, db_session, clock):
        issued = otp_service.issue(PHONE, "verification")
        record = otp_service.verify(PHONE, "verification", issued.code)
        assert record.verified is True
        assert record.attempts == 0

    def test_code_verifies_only_once(self, db_session):
        issued = otp_service.issue(PHONE, "login")
        otp_service.verify(PHONE, "login", issued.code)

        with pytest.raises(NotFound):
            otp_service.verify(PHONE, "login", issued.code)

        # The verified record itself is kept until its TTL
        assert db_session.query(Otp).filter_by(phone_number=PHONE).one().verified is True

    def test_new_code_after_verified_one(self, db_session):
        first = otp_service.issue(PHONE, "login")
        otp_service.verify(PHONE, "login", first.code)

        second = otp_service.issue(PHONE, "login")
        assert otp_service.verify(PHONE, "login", second.code).public_id == second.otp_id

    def test_unknown_phone(self, db_session):
        with pytest.raises(NotFound):
            otp_service.verify(PHONE, "verification", "123456")

    def test_expired_code(self, db_session, clock):
        issued = otp_service.issue(PHONE, "verification", ttl=60)
        clock.advance(seconds=60)
        with pytest.raises(OtpExpired):
            otp_service.verify(PHONE, "verification", issued.code)

    def test_fifth_wrong_attempt_exhausts(self, db_session, clock):
        issued = otp_service.issue(PHONE, "verification")
        for attempt in range(1, 6):
            with pytest.raises(OtpMismatch):
                otp_service.verify(PHONE, "verification", _wrong(issued.code))
            assert db_session.query(Otp).filter_by(phone_number=PHONE).one().attempts == attempt

        # Even the right code is refused now
        with pytest.raises(OtpExhausted):
            otp_service.verify(PHONE, "verification", issued.code)

    def test_expiry_checked_before_attempts(self, db_session, clock):
        issued = otp_service.issue(PHONE, "verification", ttl=60)
        for _ in range(5):
            with pytest.raises(OtpMismatch):
                otp_service.verify(PHONE, "verification", _wrong(issued.code))
        clock.advance(seconds=61)
        with pytest.raises(OtpExpired):
            otp_service.verify(PHONE, "verification", issued.code)

    def test_mismatch_counted_even_past_deadline(self, db_session, app, monkeypatch):
        issued = otp_service.issue(PHONE, "verification")
        monkeypatch.setitem(app.config, "OPERATION_DEADLINE_SECONDS", 0)

        with pytest.raises(Timeout):
            otp_service.verify(PHONE, "verification", _wrong(issued.code))
        assert db_session.query(Otp).filter_by(phone_number=PHONE).one().attempts == 1

    def test_cap_holds_when_a_concurrent_guess_lands_first(self, db_session, monkeypatch):
        issued = otp_service.issue(PHONE, "verification")
        db_session.execute(update(Otp).values(attempts=4))
        db_session.commit()

        lookup = otp_service._latest_unverified

        def lookup_then_race(phone, purpose):
            record = lookup(phone, purpose)
            # Another request spends the last attempt after this one read the row
            db_session.execute(
                update(Otp).values(attempts=Otp.attempts + 1).execution_options(synchronize_session=False)
            )
            db_session.commit()
            return record

        monkeypatch.setattr(otp_service, "_latest_unverified", lookup_then_race)

        with pytest.raises(OtpExhausted):
            otp_service.verify(PHONE, "verification", _wrong(issued.code))
        assert db_session.query(Otp).one().attempts == 5

    def test_attempts_never_exceed_cap(self, db_session):
        issued = otp_service.issue(PHONE, "verification")
        for _ in range(8):
            with pytest.raises((OtpMismatch, OtpExhausted)):
                otp_service.verify(PHONE, "verification", _wrong(issued.code))
        assert db_session.query(Otp).one().attempts == 5


class TestConsume:

    def test_consume_exactly_once(self, db_session):
        issued = otp_service.issue(PHONE, "order")
        assert otp_service.consume(PHONE, "order", issued.code) is True
        with pytest.raises(NotFound):
            otp_service.consume(PHONE, "order", issued.code)

    def test_consume_requires_verification(self, db_session):
        otp_service.issue(PHONE, "order")
        with pytest.raises(NotFound):
            otp_service.consume(PHONE, "order")

    def test_consume_after_verify(self, db_session):
        issued = otp_service.issue(PHONE, "order_verification")
        otp_service.verify(PHONE, "order_verification", issued.code)
        assert otp_service.consume(PHONE, "order_verification") is True
        assert db_session.query(Otp).count() == 0

    def test_expired_verified_record_cannot_be_consumed(self, db_session, clock):
        issued = otp_service.issue(PHONE, "order", ttl=60)
        otp_service.verify(PHONE, "order", issued.code)
        clock.advance(seconds=61)
        with pytest.raises(NotFound):
            otp_service.consume(PHONE, "order")


class TestReaper:

    def test_purge_removes_only_expired(self, db_session, clock):
        otp_service.issue(PHONE, "verification", ttl=60)
        otp_service.issue("+919000000001", "verification", ttl=600)
        clock.advance(seconds=120)

        assert maintenance_service.purge_expired_otps() == 1
        assert [row.phone_number for row in db_session.query(Otp).all()] == ["+919000000001"]

    def test_reap_once_survives_and_deletes(self, db_session, clock, app):
        otp_service.issue(PHONE, "verification", ttl=60)
        clock.advance(seconds=61)

        maintenance_service._reap_once(app)

        assert db_session.query(Otp).count() == 0

    def test_reaper_thread_stops_and_joins(self, app, monkeypatch):
        registered = []
        monkeypatch.setattr(maintenance_service, "_stop_registered", False)
        monkeypatch.setattr(maintenance_service.atexit, "register", registered.append)
        monkeypatch.setitem(app.config, "OTP_REAPER_INTERVAL_SECONDS", 3600)

        thread = maintenance_service.start_otp_reaper(app)
        assert thread.is_alive()
        assert maintenance_service.start_otp_reaper(app) is thread
        assert registered == [maintenance_service.stop_otp_reaper]

        maintenance_service.stop_otp_reaper(timeout=5)
        assert not thread.is_alive()
