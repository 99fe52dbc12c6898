"""
End-to-end transfer tests through FraudSandbox.

Covers validation, balance conservation, the daily accumulator, step-up
holds and the records each outcome leaves behind.
"""
from decimal import Decimal

import pytest

from fraud_sandbox.errors import (
    FrozenAccountError,
    InsufficientFundsError,
    InvalidCodeError,
    NotFoundError,
    ValidationError,
)
from fraud_sandbox.features.context import RequestContext
from tests.conftest import (
    JUAN_ACCOUNT,
    JUAN_HOME,
    MARIA_ACCOUNT,
    MARIA_HOME,
    MULE_ACCOUNT,
    RICO_ACCOUNT,
    disable,
)


pytestmark = pytest.mark.integration

MOSCOW_TOR = RequestContext(ip="203.0.113.42", device="Tor Browser/Unknown", geo="Moscow, RU")


def balance(sandbox, number):
    return sandbox.get_account(number).balance


# ============================================================================
# TEST 1: Validation
# ============================================================================

@pytest.mark.parametrize("amount", ["0", "-5", "abc", None, "NaN"])
def test_invalid_amounts_are_rejected(sandbox, amount):
    with pytest.raises(ValidationError) as exc:
        sandbox.transfer(JUAN_ACCOUNT, RICO_ACCOUNT, amount, JUAN_HOME)
    assert exc.value.reason == "Invalid amount"
    assert sandbox.transactions() == []


def test_same_account_is_rejected(sandbox):
    with pytest.raises(ValidationError):
        sandbox.transfer(JUAN_ACCOUNT, JUAN_ACCOUNT, "10", JUAN_HOME)


def test_unknown_account(sandbox):
    with pytest.raises(NotFoundError):
        sandbox.transfer(JUAN_ACCOUNT, "9999999999", "10", JUAN_HOME)


def test_insufficient_balance_changes_nothing(sandbox):
    total = sandbox.total_balance()
    with pytest.raises(InsufficientFundsError):
        sandbox.transfer(MULE_ACCOUNT, JUAN_ACCOUNT, "501", JUAN_HOME)
    assert sandbox.total_balance() == total
    assert sandbox.transactions() == []


def test_frozen_source_account(sandbox):
    sandbox.ledger.freeze_accounts("user_001")
    with pytest.raises(FrozenAccountError) as exc:
        sandbox.transfer(JUAN_ACCOUNT, RICO_ACCOUNT, "10", JUAN_HOME)
    assert exc.value.reason == "Source account is frozen"


def test_frozen_account_can_still_receive(sandbox):
    sandbox.ledger.freeze_accounts("user_003")
    outcome = sandbox.transfer(JUAN_ACCOUNT, RICO_ACCOUNT, "10", JUAN_HOME)
    assert outcome.status == "completed"


# ============================================================================
# TEST 2: Commit
# ============================================================================

def test_completed_transfer_conserves_money(sandbox):
    total = sandbox.total_balance()

    outcome = sandbox.transfer(JUAN_ACCOUNT, RICO_ACCOUNT, "2500.50", JUAN_HOME)

    assert outcome.status == "completed"
    assert balance(sandbox, JUAN_ACCOUNT) == Decimal("147499.50")
    assert balance(sandbox, RICO_ACCOUNT) == Decimal("77500.50")
    assert sandbox.total_balance() == total, "money is neither created nor destroyed"

    txn = sandbox.get_transaction(outcome.transaction_id)
    assert txn.amount == Decimal("2500.50")
    assert txn.review_status is None
    assert txn.ml_prediction == outcome.ml_prediction


def test_flagged_transfer_commits_and_raises_alert(sandbox):
    disable(sandbox, "mfa", "step_up_auth")
    total = sandbox.total_balance()

    outcome = sandbox.transfer(JUAN_ACCOUNT, MULE_ACCOUNT, "45000", MOSCOW_TOR)

    assert outcome.status == "flagged"
    assert outcome.risk_score == 70
    assert outcome.ml_flagged
    assert balance(sandbox, JUAN_ACCOUNT) == Decimal("105000.00")
    assert balance(sandbox, MULE_ACCOUNT) == Decimal("45500.00")
    assert sandbox.total_balance() == total

    alert = sandbox.get_alert(outcome.alert_id)
    assert alert.transaction_id == outcome.transaction_id
    assert alert.severity == "high"
    assert alert.description.startswith("Suspicious transfer: ₱45,000.00 | Unknown IP: 203.0.113.42")
    assert sandbox.get_transaction(outcome.transaction_id).review_status == "pending"


def test_blocked_transfer_is_recorded_without_moving_money(sandbox):
    total = sandbox.total_balance()
    tor = MOSCOW_TOR.model_copy(update={"ip": "185.220.101.1"})

    outcome = sandbox.transfer(JUAN_ACCOUNT, MULE_ACCOUNT, "1000", tor)

    assert outcome.status == "blocked"
    assert outcome.denied_by == "ip_blacklist"
    assert sandbox.total_balance() == total
    assert balance(sandbox, JUAN_ACCOUNT) == Decimal("150000.00")

    txn = sandbox.get_transaction(outcome.transaction_id)
    assert txn.status == "blocked"
    assert txn.is_flagged
    assert txn.fraud_reasons[-1] == "IP 185.220.101.1 is blacklisted"
    assert sandbox.event_log("BLOCKED")


# ============================================================================
# TEST 3: Daily limit
# ============================================================================

def test_daily_limit_blocks_second_60k_and_resets_next_day(sandbox, clock):
    disable(sandbox, "step_up_auth", "mfa")

    first = sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)
    assert first.status == "completed"

    clock.advance(minutes=5)
    second = sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)
    assert second.status == "blocked"
    assert second.reasons[-1] == "Daily transfer limit (₱100,000) exceeded"
    assert balance(sandbox, MARIA_ACCOUNT) == Decimal("260000.00")

    clock.advance(days=1)
    third = sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)
    assert third.status == "completed", "accumulator resets on a new local day"
    assert sandbox.get_account(MARIA_ACCOUNT).daily_transferred == Decimal("60000.00")


def test_blocked_transfers_do_not_count_toward_daily_limit(sandbox):
    disable(sandbox, "step_up_auth", "mfa")
    sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)
    sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)  # blocked

    assert sandbox.get_account(MARIA_ACCOUNT).daily_transferred == Decimal("60000.00")
    assert sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "40000", MARIA_HOME).status == "completed"


# ============================================================================
# TEST 4: Step-up
# ============================================================================

def test_large_transfer_waits_for_step_up(sandbox):
    total = sandbox.total_balance()

    held = sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)

    assert held.status == "step_up_pending"
    assert held.requires_step_up
    assert held.transaction_id is None
    assert sandbox.transactions() == [], "nothing is recorded until the code is confirmed"
    assert sandbox.total_balance() == total
    assert [p.id for p in sandbox.pending_transfers()] == [held.pending_id]

    done = sandbox.confirm_step_up(held.pending_id, "123456")
    assert done.status == "completed"
    assert balance(sandbox, MARIA_ACCOUNT) == Decimal("260000.00")
    assert sandbox.pending_transfers() == []


def test_invalid_code_keeps_transfer_pending(sandbox):
    held = sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)

    with pytest.raises(InvalidCodeError):
        sandbox.confirm_step_up(held.pending_id, "000000")

    assert len(sandbox.pending_transfers()) == 1
    assert sandbox.confirm_step_up(held.pending_id, "123456").status == "completed"


def test_unknown_pending_id(sandbox):
    with pytest.raises(NotFoundError):
        sandbox.confirm_step_up("pending_99999", "123456")


def test_abandoned_step_up_is_discarded(sandbox):
    held = sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)
    sandbox.abandon_step_up(held.pending_id)
    with pytest.raises(NotFoundError):
        sandbox.confirm_step_up(held.pending_id, "123456")


def test_confirm_reruns_the_gate(sandbox):
    """A control tightened while the transfer waited still applies."""
    held = sandbox.transfer(MARIA_ACCOUNT, JUAN_ACCOUNT, "60000", MARIA_HOME)
    limit = next(c for c in sandbox.security_controls() if c.category == "transaction_limit")
    sandbox.update_control_config(limit.id, "dailyLimit", 50000)

    outcome = sandbox.confirm_step_up(held.pending_id, "123456")
    assert outcome.status == "blocked"
    assert outcome.reasons[-1] == "Daily transfer limit (₱50,000) exceeded"


# ============================================================================
# TEST 5: Registration
# ============================================================================

def test_register_user_opens_account(sandbox):
    user, account = sandbox.register_user("acruz", "Ana Cruz", "ana@email.com", "s3cretpw")

    assert account.balance == Decimal("50000.00")
    assert account.user_id == user.id
    assert user.account_age_days == 0
    assert len(user.known_ips) == 1 and len(user.known_devices) == 1
    assert user.password_hash != "s3cretpw"
    assert sandbox.login("acruz", "s3cretpw", RequestContext(
        ip=next(iter(user.known_ips)), device=next(iter(user.known_devices)), geo="Manila, PH",
    )).success


@pytest.mark.parametrize("username,full_name,email,password", [
    ("", "Ana", "a@x.com", "s3cretpw"),
    ("ana<script>", "Ana", "a@x.com", "s3cretpw"),
    ("acruz", "Ana", "a@x.com", "short"),
    ("jdelacruz", "Juan Again", "j@x.com", "s3cretpw"),
])
def test_register_user_validation(sandbox, username, full_name, email, password):
    before = len(sandbox.users())
    with pytest.raises(ValidationError):
        sandbox.register_user(username, full_name, email, password)
    assert len(sandbox.users()) == before
