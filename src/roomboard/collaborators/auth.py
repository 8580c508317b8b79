#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""A password gate guarding destructive dashboard actions (deleting and
editing bookings). Sessions expire after a fixed duration and at the end of
the local day; repeated failures lock the gate for a while."""

import datetime
import hmac
import logging

from roomboard.constants import DEFAULT_TZ_OFFSET_HOURS
from roomboard.exceptions import AuthenticationError, LockedOutError
from roomboard.time_utils import Clock, now_local, system_clock

logger = logging.getLogger(__name__)


class PasswordGate:
    """
    Parameters
    ----------
    password
        The shared password.
    session_hours
        Lifetime of a session opened by a successful login.
    max_attempts
        Failed attempts allowed before locking the gate.
    lockout_minutes
        How long the gate stays locked.
    clock
        Injected wall clock.
    """

    def __init__(
        self,
        password: str,
        session_hours: float = 8,
        max_attempts: int = 3,
        lockout_minutes: float = 15,
        clock: Clock = system_clock,
        tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS,
    ):
        if not password:
            raise ValueError("The password gate needs a non-empty password")
        self._password = password.encode()
        self.session_duration = datetime.timedelta(hours=session_hours)
        self.max_attempts = max_attempts
        self.lockout_duration = datetime.timedelta(minutes=lockout_minutes)
        self._clock = clock
        self._tz_offset_hours = tz_offset_hours
        self._expires_at: datetime.datetime | None = None
        self._session_day: datetime.date | None = None
        self._failed_attempts = 0
        self._locked_until: datetime.datetime | None = None

    @property
    def failed_attempts(self) -> int:
        return self._failed_attempts

    def _today(self) -> datetime.date:
        return now_local(self._clock, self._tz_offset_hours).date

    def locked_for(self) -> float:
        """Seconds left before the gate accepts attempts again, 0 when unlocked."""
        if self._locked_until is None:
            return 0.0
        remaining = (self._locked_until - self._clock()).total_seconds()
        if remaining <= 0:
            self._locked_until = None
            self._failed_attempts = 0
            return 0.0
        return remaining

    def is_authenticated(self) -> bool:
        if self._expires_at is None:
            return False
        if self._clock() >= self._expires_at or self._session_day != self._today():
            logger.info("Password session expired")
            self.logout()
            return False
        return True

    def login(self, password: str) -> None:
        """Open a session.

        Raises
        ------
        LockedOutError
            While the gate is locked after too many failures.
        AuthenticationError
            If the password is wrong.
        """
        remaining = self.locked_for()
        if remaining:
            raise LockedOutError(remaining)
        if not hmac.compare_digest(password.encode(), self._password):
            self._failed_attempts += 1
            logger.warning(
                f"Wrong password ({self._failed_attempts}/{self.max_attempts} attempts)"
            )
            if self._failed_attempts >= self.max_attempts:
                self._locked_until = self._clock() + self.lockout_duration
                raise LockedOutError(self.lockout_duration.total_seconds())
            left = self.max_attempts - self._failed_attempts
            raise AuthenticationError(f"Wrong password, {left} attempt(s) left")
        self._failed_attempts = 0
        self._expires_at = self._clock() + self.session_duration
        self._session_day = self._today()
        logger.info("Password session opened")

    def logout(self) -> None:
        self._expires_at = None
        self._session_day = None

    def require(self) -> None:
        """Raise `AuthenticationError` unless a session is open."""
        if not self.is_authenticated():
            raise AuthenticationError("This action requires the dashboard password")
