#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import pytest

from roomboard.collaborators.auth import PasswordGate
from roomboard.exceptions import AuthenticationError, LockedOutError


@pytest.fixture()
def gate(clock):
    return PasswordGate("s3cret", session_hours=2, clock=clock)


def test_requires_password():
    with pytest.raises(ValueError):
        PasswordGate("")


def test_session_lifetime(gate, clock):
    with pytest.raises(AuthenticationError):
        gate.require()
    gate.login("s3cret")
    gate.require()
    clock.advance(hours=1, minutes=59)
    assert gate.is_authenticated()
    clock.advance(minutes=1)
    assert not gate.is_authenticated()


def test_session_ends_with_the_day(clock):
    clock.set(datetime.datetime(2025, 1, 15, 23, 0))
    gate = PasswordGate("s3cret", session_hours=8, clock=clock)
    gate.login("s3cret")
    clock.advance(hours=1, minutes=1)
    assert not gate.is_authenticated()


def test_logout(gate):
    gate.login("s3cret")
    gate.logout()
    assert not gate.is_authenticated()


def test_lockout(gate, clock):
    with pytest.raises(AuthenticationError) as excinfo:
        gate.login("wrong")
    assert not isinstance(excinfo.value, LockedOutError)
    gate.login("s3cret")
    assert gate.failed_attempts == 0
    gate.logout()

    for _ in range(2):
        with pytest.raises(AuthenticationError):
            gate.login("wrong")
    with pytest.raises(LockedOutError):
        gate.login("wrong")
    with pytest.raises(LockedOutError) as excinfo:
        gate.login("s3cret")
    assert excinfo.value.remaining_seconds == pytest.approx(15 * 60)

    clock.advance(minutes=10)
    assert gate.locked_for() == pytest.approx(5 * 60)
    clock.advance(minutes=5)
    assert gate.locked_for() == 0
    gate.login("s3cret")
    assert gate.is_authenticated()
