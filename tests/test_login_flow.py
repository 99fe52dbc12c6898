"""
Login, rate limiting and lockout through FraudSandbox.
"""
import pytest

from fraud_sandbox.errors import NotFoundError, ValidationError
from fraud_sandbox.features.context import RequestContext
from tests.conftest import JUAN_HOME, disable


pytestmark = pytest.mark.integration

LAGOS = RequestContext(ip="45.33.32.156", device="Chrome/Android", geo="Lagos, NG")


def test_successful_login_from_known_context(sandbox):
    outcome = sandbox.login("jdelacruz", "password123", JUAN_HOME)

    assert outcome.success and not outcome.blocked
    assert outcome.alert_id is None
    assert sandbox.login_logs()[-1].success
    assert sandbox.event_log("AUTH")[-1].message.startswith("Login SUCCESS: jdelacruz")


def test_login_from_new_ip_and_device_raises_high_alert(sandbox):
    outcome = sandbox.login("jdelacruz", "password123", LAGOS)

    alert = sandbox.get_alert(outcome.alert_id)
    assert alert.type == "login"
    assert alert.severity == "high"
    assert alert.login_log_id == outcome.login_log_id
    assert alert.mitre_id == "T1078"


def test_login_from_new_ip_only_raises_medium_alert(sandbox):
    outcome = sandbox.login("jdelacruz", "password123", JUAN_HOME.model_copy(update={"ip": "172.16.0.1"}))
    assert sandbox.get_alert(outcome.alert_id).severity == "medium"


def test_wrong_password(sandbox):
    outcome = sandbox.login("jdelacruz", "nope", JUAN_HOME)
    assert not outcome.success and not outcome.blocked
    assert outcome.reason == "Invalid password"
    assert sandbox.get_user("user_001").failed_login_attempts == 1


def test_unknown_user_and_blank_fields(sandbox):
    with pytest.raises(NotFoundError):
        sandbox.login("ghost", "whatever", JUAN_HOME)
    with pytest.raises(ValidationError):
        sandbox.login("jdelacruz", "", JUAN_HOME)


# ============================================================================
# Lockout
# ============================================================================

def test_five_failures_lock_for_fifteen_minutes_and_sixth_is_denied(sandbox, clock):
    disable(sandbox, "rate_limiting")

    for attempt in range(1, 6):
        outcome = sandbox.login("jdelacruz", "wrong", JUAN_HOME)
        assert not outcome.blocked
        assert outcome.locked == (attempt == 5)

    user = sandbox.get_user("user_001")
    assert user.is_locked
    assert (user.lockout_until - clock.now()).total_seconds() == 15 * 60

    sixth = sandbox.login("jdelacruz", "password123", JUAN_HOME)
    assert sixth.blocked
    assert sixth.denied_by == "lockout"
    assert sixth.reason == "Account locked due to too many failed attempts"

    clock.advance(minutes=14, seconds=59)
    assert sandbox.login("jdelacruz", "password123", JUAN_HOME).blocked

    clock.advance(seconds=1)
    after = sandbox.login("jdelacruz", "password123", JUAN_HOME)
    assert after.success
    user = sandbox.get_user("user_001")
    assert not user.is_locked and user.failed_login_attempts == 0


def test_rate_limit_blocks_sixth_attempt_within_a_minute(sandbox, clock):
    for _ in range(5):
        sandbox.login("jdelacruz", "wrong", JUAN_HOME)
        clock.advance(seconds=1)

    outcome = sandbox.login("jdelacruz", "password123", JUAN_HOME)
    assert outcome.blocked
    assert outcome.denied_by == "rate_limiting"

    clock.advance(seconds=60)
    disable(sandbox, "lockout")
    assert sandbox.login("jdelacruz", "password123", JUAN_HOME).success


def test_blocked_logins_are_logged(sandbox):
    tor = JUAN_HOME.model_copy(update={"ip": "185.220.101.1"})
    outcome = sandbox.login("jdelacruz", "password123", tor)

    assert outcome.blocked and outcome.denied_by == "ip_blacklist"
    log = sandbox.login_logs()[-1]
    assert log.blocked and not log.success
    assert log.id == outcome.login_log_id
    assert sandbox.get_user("user_001").failed_login_attempts == 0


def test_disabled_lockout_never_locks(sandbox):
    disable(sandbox, "rate_limiting", "lockout")
    for _ in range(8):
        outcome = sandbox.login("jdelacruz", "wrong", JUAN_HOME)
        assert not outcome.locked
    assert sandbox.login("jdelacruz", "password123", JUAN_HOME).success


def test_unexpired_lock_survives_wrong_password_with_lockout_disabled(sandbox):
    disable(sandbox, "rate_limiting")
    for _ in range(5):
        sandbox.login("jdelacruz", "wrong", JUAN_HOME)
    until = sandbox.get_user("user_001").lockout_until

    disable(sandbox, "lockout")
    outcome = sandbox.login("jdelacruz", "wrong", JUAN_HOME)
    assert not outcome.success and not outcome.blocked

    user = sandbox.get_user("user_001")
    assert user.is_locked, "a wrong password does not lift a lock that has not expired"
    assert user.lockout_until == until
    assert not any(e.message.startswith("Lockout expired") for e in sandbox.event_log("SECURITY"))

    assert sandbox.login("jdelacruz", "password123", JUAN_HOME).success
    assert not sandbox.get_user("user_001").is_locked


def test_manual_unlock(sandbox):
    disable(sandbox, "rate_limiting")
    for _ in range(5):
        sandbox.login("jdelacruz", "wrong", JUAN_HOME)

    user = sandbox.unlock_user("user_001")
    assert not user.is_locked and user.lockout_until is None
    assert sandbox.login("jdelacruz", "password123", JUAN_HOME).success
