"""
Tests for the security control gate.

Order is fixed: blacklist, rate limit, lockout, daily limit, step-up, MFA.
With every control disabled the gate always allows.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from fraud_sandbox.controls.gate import ControlGate, GateDecision, GateRequest
from fraud_sandbox.errors import ControlDeniedError, LockedAccountError
from fraud_sandbox.ledger.seed import default_controls
from tests.conftest import JUAN_ACCOUNT, JUAN_HOME, RICO_ACCOUNT, disable


pytestmark = pytest.mark.unit

NOW = datetime(2026, 1, 15, 10, 0)


def controls_without(*categories):
    controls = default_controls()
    for control in controls:
        if control.category in categories:
            control.enabled = False
    return controls


def transaction(**fields):
    defaults = dict(now=NOW, user_id="user_001", ip="192.168.1.100", amount=Decimal("1000"))
    defaults.update(fields)
    return GateRequest(**defaults)


def login(**fields):
    defaults = dict(now=NOW, user_id="user_001", ip="192.168.1.100")
    defaults.update(fields)
    return GateRequest(**defaults)


# ============================================================================
# TEST 1: Everything disabled
# ============================================================================

@pytest.mark.parametrize("request_", [
    transaction(ip="185.220.101.1", amount=Decimal("999999"), risk_score=100,
                transferred_today=Decimal("500000")),
    login(ip="91.132.147.5", recent_login_attempts=50, is_locked=True,
          lockout_until=NOW + timedelta(minutes=10)),
])
def test_all_controls_disabled_always_allows(request_):
    controls = controls_without("rate_limiting", "lockout", "mfa", "transaction_limit",
                                "ip_blacklist", "step_up_auth")
    action = "login" if request_.amount is None else "transaction"
    decision = ControlGate().check(action, controls, request_)
    assert decision.allowed
    assert not decision.requires_step_up


# ============================================================================
# TEST 2: Login controls
# ============================================================================

def test_blacklisted_ip_is_denied_first():
    decision = ControlGate().check("login", default_controls(), login(
        ip="185.220.101.1", recent_login_attempts=9, is_locked=True, lockout_until=NOW + timedelta(minutes=5),
    ))
    assert not decision.allowed
    assert decision.reason == "IP 185.220.101.1 is blacklisted"
    assert decision.decided_by == "ip_blacklist"


def test_rate_limit_at_five_attempts():
    gate = ControlGate()
    assert gate.check("login", default_controls(), login(recent_login_attempts=4)).allowed

    decision = gate.check("login", default_controls(), login(recent_login_attempts=5))
    assert not decision.allowed
    assert decision.reason == "Rate limit exceeded"


def test_lockout_only_until_expiry():
    gate = ControlGate()
    until = NOW + timedelta(minutes=15)

    decision = gate.check("login", default_controls(), login(is_locked=True, lockout_until=until))
    assert decision.reason == "Account locked due to too many failed attempts"
    assert decision.decided_by == "lockout"

    expired = gate.check("login", default_controls(), login(now=until, is_locked=True, lockout_until=until))
    assert expired.allowed


# ============================================================================
# TEST 3: Transaction controls
# ============================================================================

def test_daily_limit():
    gate = ControlGate()
    assert gate.check("transaction", controls_without("step_up_auth"), transaction(
        amount=Decimal("40000"), transferred_today=Decimal("60000"),
    )).allowed

    decision = gate.check("transaction", controls_without("step_up_auth"), transaction(
        amount=Decimal("40000.01"), transferred_today=Decimal("60000"),
    ))
    assert not decision.allowed
    assert decision.reason == "Daily transfer limit (₱100,000) exceeded"


def test_step_up_on_amount_or_risk():
    gate = ControlGate()
    by_amount = gate.check("transaction", default_controls(), transaction(amount=Decimal("50000.01")))
    assert by_amount.allowed and by_amount.requires_step_up
    assert by_amount.decided_by == "step_up_auth"

    by_risk = gate.check("transaction", default_controls(), transaction(risk_score=71))
    assert by_risk.requires_step_up and by_risk.decided_by == "step_up_auth"

    at_threshold = gate.check("transaction", controls_without("mfa"), transaction(risk_score=70))
    assert not at_threshold.requires_step_up


def test_mfa_above_risk_threshold():
    decision = ControlGate().check("transaction", default_controls(), transaction(risk_score=61))
    assert decision.allowed and decision.requires_step_up
    assert decision.reason == "MFA required - risk threshold exceeded"

    assert not ControlGate().check("transaction", default_controls(), transaction(risk_score=60)).requires_step_up


# ============================================================================
# TEST 4: Decisions as errors
# ============================================================================

def test_denied_decision_raises():
    with pytest.raises(LockedAccountError):
        GateDecision(allowed=False, reason="locked", decided_by="lockout").raise_if_denied()

    with pytest.raises(ControlDeniedError) as exc:
        GateDecision(allowed=False, reason="IP x is blacklisted", decided_by="ip_blacklist").raise_if_denied("txn_1")
    assert exc.value.transaction_id == "txn_1"
    assert not isinstance(exc.value, LockedAccountError)

    GateDecision(allowed=True).raise_if_denied()


# ============================================================================
# TEST 5: Live toggling through the sandbox
# ============================================================================

@pytest.mark.integration
def test_blacklist_toggle_lets_previously_blacklisted_ip_transfer(sandbox):
    tor_home = JUAN_HOME.model_copy(update={"ip": "185.220.101.1"})

    blocked = sandbox.transfer(JUAN_ACCOUNT, RICO_ACCOUNT, "1000", tor_home)
    assert blocked.status == "blocked"
    assert blocked.reasons[-1] == "IP 185.220.101.1 is blacklisted"

    disable(sandbox, "ip_blacklist")
    allowed = sandbox.transfer(JUAN_ACCOUNT, RICO_ACCOUNT, "1000", tor_home)
    assert allowed.status in ("completed", "flagged")
    assert allowed.risk_score == 20, "only the unknown-IP rule applies"


@pytest.mark.integration
def test_removing_ip_from_blacklist_lets_it_transfer(sandbox):
    tor_home = JUAN_HOME.model_copy(update={"ip": "91.132.147.5"})
    assert sandbox.transfer(JUAN_ACCOUNT, RICO_ACCOUNT, "1000", tor_home).status == "blocked"

    remaining = sandbox.remove_blacklist_ip("91.132.147.5")
    assert remaining == ["185.220.101.1"]
    assert sandbox.transfer(JUAN_ACCOUNT, RICO_ACCOUNT, "1000", tor_home).status == "completed"
