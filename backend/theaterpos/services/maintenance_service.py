# Overview: Service-layer operations for maintenance; encapsulates business logic and database work.

from __future__ import annotations

import atexit
import threading
from datetime import timedelta

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow
from . import otp_service, session_service


LEGACY_INDEX_MARKERS = ("page_name", "pagename")
LEGACY_INDEX_TABLES = ("page_access", "roles")

_reaper_thread: threading.Thread | None = None
_reaper_stop = threading.Event()
_stop_registered = False


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """Delete security events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted


def purge_expired_otps() -> int:
    return otp_service.purge_expired()


def purge_expired_tokens() -> int:
    return session_service.cleanup_expired_tokens()


def _reap_once(app) -> None:
    with app.app_context():
        try:
            deleted = otp_service.purge_expired()
            if deleted:
                app.logger.info("OTP reaper removed %s expired record(s)", deleted)
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("OTP reaper pass failed")
        finally:
            db.session.remove()


def start_otp_reaper(app) -> threading.Thread:
    """
    Start the daemon thread that deletes expired OTP rows every
    OTP_REAPER_INTERVAL_SECONDS. Safe to call more than once; the thread is
    stopped and joined at interpreter exit.
    """
    global _reaper_thread, _stop_registered
    if _reaper_thread is not None and _reaper_thread.is_alive():
        return _reaper_thread

    interval = float(app.config.get("OTP_REAPER_INTERVAL_SECONDS", 60))
    _reaper_stop.clear()

    def _loop():
        while not _reaper_stop.wait(interval):
            _reap_once(app)

    _reaper_thread = threading.Thread(target=_loop, name="otp-reaper", daemon=True)
    _reaper_thread.start()
    if not _stop_registered:
        atexit.register(stop_otp_reaper)
        _stop_registered = True
    return _reaper_thread


def stop_otp_reaper(timeout: float | None = 5.0) -> None:
    """Signal the reaper loop and wait for the thread to finish."""
    global _reaper_thread
    _reaper_stop.set()
    if _reaper_thread is not None:
        _reaper_thread.join(timeout)
    _reaper_thread = None


def find_legacy_page_name_indexes() -> list[tuple[str, str]]:
    """(table, index) pairs for obsolete page-name indexes."""
    inspector = inspect(db.engine)
    found = []
    tables = set(inspector.get_table_names())
    for table in LEGACY_INDEX_TABLES:
        if table not in tables:
            continue
        for index in inspector.get_indexes(table):
            name = index.get("name") or ""
            if any(marker in name.lower() for marker in LEGACY_INDEX_MARKERS):
                found.append((table, name))
    return found


def drop_legacy_page_name_index() -> list[str]:
    """
    Drop any obsolete page-name index (pageName_1 and similar).

    Page names are display labels and repeat across theaters; a unique index
    on them blocks provisioning. Returns the dropped index names.
    """
    dropped = []
    for table, name in find_legacy_page_name_indexes():
        quoted = db.engine.dialect.identifier_preparer.quote(name)
        if db.engine.dialect.name in ("mysql", "mariadb"):
            table_quoted = db.engine.dialect.identifier_preparer.quote(table)
            db.session.execute(text(f"DROP INDEX {quoted} ON {table_quoted}"))
        else:
            db.session.execute(text(f"DROP INDEX {quoted}"))
        dropped.append(name)
    db.session.commit()
    return dropped
