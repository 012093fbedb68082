"""
Login Lockout Service

WHY: Prevent brute-force password attacks. Each failed login advances the
user's login_attempts counter; the fifth consecutive failure locks the
account for two hours.

SECURITY FEATURES:
- The counter is advanced with a single UPDATE expression, so two
  concurrent failures always advance it by 2
- An expired lock is cleared and the counter restarts at 1
- A lock that is still active is never extended by further failures
- Successful login resets the counter and clears the lock
"""

from datetime import timedelta

from sqlalchemy import and_, case, null, update

from ..extensions import db
from ..models import User
from ..time_utils import utcnow


MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(hours=2)


def is_locked(user: User) -> bool:
    return user.is_locked(utcnow())


def register_failed_login(user_id: int) -> None:
    """
    Record one failed login for user_id atomically and commit.

    Equivalent to:
      - lock expired      -> attempts = 1, lock cleared
      - attempts + 1 >= 5 and no lock -> attempts += 1, lock for LOCK_DURATION
      - otherwise         -> attempts += 1
    """
    now = utcnow()
    lock_expired = and_(User.lock_until.isnot(None), User.lock_until <= now)
    reaches_cap = and_(User.lock_until.is_(None), User.login_attempts + 1 >= MAX_LOGIN_ATTEMPTS)

    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(
            login_attempts=case(
                (lock_expired, 1),
                else_=User.login_attempts + 1,
            ),
            lock_until=case(
                (lock_expired, null()),
                (reaches_cap, now + LOCK_DURATION),
                else_=User.lock_until,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
    db.session.commit()


def reset_login_attempts(user: User) -> None:
    """Clear counter and lock after a successful login. Caller commits."""
    user.login_attempts = 0
    user.lock_until = None


def get_lockout_status(user: User) -> dict:
    """Admin view of a user's lockout state."""
    return {
        "locked": is_locked(user),
        "failed_attempts": user.login_attempts,
        "max_attempts": MAX_LOGIN_ATTEMPTS,
        "lock_duration_minutes": int(LOCK_DURATION.total_seconds() / 60),
    }
