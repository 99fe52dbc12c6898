"""
Tests for the attack orchestrator and the five scripted scenarios.

Scenarios run against the live sandbox with the default controls unless a
test disables some, and pacing advances the ManualClock instead of sleeping.
"""
import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from fraud_sandbox.attacks.orchestrator import AttackOrchestrator
from fraud_sandbox.errors import AlreadyRunningError, NotFoundError
from tests.conftest import JUAN_ACCOUNT, MARIA_ACCOUNT, MULE_ACCOUNT, disable


pytestmark = pytest.mark.integration


def messages(lines):
    """Strip the "[HH:MM:SS] [TAG] " prefix."""
    return [line.split("] ", 2)[2] for line in lines]


def scenario_transactions(sandbox, name):
    return [t for t in sandbox.transactions() if t.attack_scenario == name]


# ============================================================================
# TEST 1: Single flight
# ============================================================================

def test_second_ato_while_running_is_rejected(orchestrator):
    run = orchestrator.start("ato")
    next(run)
    assert orchestrator.is_running

    with pytest.raises(AlreadyRunningError):
        orchestrator.start("ato")
    with pytest.raises(AlreadyRunningError):
        orchestrator.start("phishing")

    run.close()
    assert not orchestrator.is_running
    assert orchestrator.run("ato")[-1].endswith("Simulation complete")


def test_guard_released_when_run_is_exhausted(orchestrator):
    orchestrator.run("insider")
    assert not orchestrator.is_running
    assert orchestrator.active is None


def test_unknown_scenario(orchestrator):
    with pytest.raises(NotFoundError):
        orchestrator.start("heist")
    assert not orchestrator.is_running


def test_scenarios_listing(orchestrator):
    ids = [s.id for s in orchestrator.scenarios()]
    assert ids == ["ato", "phishing", "aml", "simswap", "insider"]


# ============================================================================
# TEST 2: Reset and early termination
# ============================================================================

def test_reset_aborts_before_next_step(sandbox, orchestrator):
    run = orchestrator.start("ato")
    assert messages([next(run), next(run), next(run)])[-1] == "Phase 1: Credential stuffing"

    sandbox.reset()
    rest = messages(list(run))

    assert rest == ["Aborted: sandbox was reset"]
    assert run.status == "aborted"
    assert sandbox.login_logs() == [], "no login reached the fresh sandbox"
    assert not orchestrator.is_running


def test_reset_from_another_thread_never_reaches_the_fresh_store(sandbox, orchestrator, monkeypatch):
    """A reset racing the first attack login lands after it, never inside it."""
    real_login = sandbox.login
    resets = []

    def login_with_racing_reset(*args, **kwargs):
        if not resets:
            thread = threading.Thread(target=sandbox.reset)
            thread.start()
            thread.join(timeout=0.2)  # blocked on the store lock held by the run
            resets.append(thread)
        return real_login(*args, **kwargs)

    monkeypatch.setattr(sandbox, "login", login_with_racing_reset)

    run = orchestrator.start("ato")
    with run:
        lines = list(run)
    resets[0].join()

    assert sandbox.generation == 1
    assert sandbox.login_logs() == [], "no attack login was recorded after the reset"
    assert sandbox.get_user("user_001").failed_login_attempts == 0
    assert run.status in ("aborted", "completed")
    if run.status == "aborted":
        assert messages(lines)[-1] == "Aborted: sandbox was reset"
    assert not orchestrator.is_running


def test_missing_account_terminates_run(sandbox, orchestrator):
    del sandbox.ledger.accounts["acc_mule"]

    lines = messages(orchestrator.run("ato"))

    assert lines[-1] == "Terminated: No account found for user_mule"
    assert not orchestrator.is_running


def test_pacing_advances_the_clock(sandbox, clock, orchestrator):
    start = clock.now()
    orchestrator.run("ato")
    assert clock.now() - start == timedelta(seconds=2.5)


def test_zero_pacing_scale_never_waits(sandbox, clock):
    start = clock.now()
    AttackOrchestrator(sandbox, pacer=clock.sleep, pacing_scale=0).run("ato")
    assert clock.now() == start


# ============================================================================
# TEST 3: Account takeover
# ============================================================================

def test_ato_is_contained_by_default_controls(sandbox, orchestrator):
    lines = messages(orchestrator.run("ato"))

    assert lines[0] == "Starting Account Takeover simulation"
    assert lines[1] == "MITRE: T1110 → T1078 → T1537"
    assert "Login BLOCKED from Moscow, RU (203.0.113.42): Rate limit exceeded" in lines
    assert "Transfer: no authenticated session, transfer not attempted" in lines
    assert lines[-1] == "Simulation complete"

    assert sandbox.get_account(JUAN_ACCOUNT).balance == Decimal("150000.00")
    assert scenario_transactions(sandbox, "Account Takeover") == []
    assert len(sandbox.event_log("ATO")) == len(lines)


def test_ato_succeeds_with_controls_disabled(sandbox, orchestrator):
    disable(sandbox, "rate_limiting", "lockout", "mfa", "step_up_auth")

    lines = messages(orchestrator.run("ato"))

    assert "Login SUCCESS from Moscow, RU (203.0.113.42)" in lines
    assert "Transfer: ₱45,000.00 → FLAGGED (Risk: 70)" in lines
    assert sandbox.get_account(JUAN_ACCOUNT).balance == Decimal("105000.00")
    assert sandbox.get_account(MULE_ACCOUNT).balance == Decimal("45500.00")

    [txn] = scenario_transactions(sandbox, "Account Takeover")
    assert txn.mitre_technique == "T1537"
    critical = [a for a in sandbox.fraud_alerts() if a.severity == "critical" and a.type == "login"]
    assert critical[0].description == "Account takeover: Login from Moscow, RU via Tor after brute force"


def test_ato_stops_at_mfa_without_otp(sandbox, orchestrator):
    disable(sandbox, "rate_limiting", "lockout")

    lines = messages(orchestrator.run("ato"))

    assert "Transfer: step-up challenge (risk 70), attacker has no OTP" in lines
    assert "Transfer: ₱45,000.00 → STOPPED AT STEP-UP (Risk: 70)" in lines
    assert sandbox.pending_transfers() == []
    assert sandbox.get_account(JUAN_ACCOUNT).balance == Decimal("150000.00")


# ============================================================================
# TEST 4: Phishing
# ============================================================================

def test_phishing_hijack_is_blacklisted(sandbox, orchestrator):
    lines = messages(orchestrator.run("phishing"))

    assert "Login SUCCESS from Lagos, NG (45.33.32.156)" in lines
    assert "Login BLOCKED from Beijing, CN (91.132.147.5): IP 91.132.147.5 is blacklisted" in lines
    assert "Transfer: ₱80,000.00 → BLOCKED (Risk: 100)" in lines

    [txn] = scenario_transactions(sandbox, "Phishing Fraud")
    assert txn.status == "blocked"
    assert sandbox.get_account(MARIA_ACCOUNT).balance == Decimal("320000.00")

    pattern = [a for a in sandbox.fraud_alerts() if a.type == "pattern"]
    assert pattern[-1].transaction_id == txn.id
    assert pattern[-1].severity == "critical"


# ============================================================================
# TEST 5: SIM swap
# ============================================================================

def test_simswap_replays_otp(sandbox, orchestrator):
    total = sandbox.total_balance()
    lines = messages(orchestrator.run("simswap"))

    assert "Transfer 3/3: step-up challenge (risk 80), replaying intercepted OTP" in lines
    assert "Transfer 3/3: ₱15,000.00 → FLAGGED (Risk: 80)" in lines

    txns = scenario_transactions(sandbox, "SIM Swap")
    assert [t.risk_score for t in txns] == [55, 55, 80]
    assert all(t.status == "flagged" for t in txns)
    assert sandbox.get_account(MARIA_ACCOUNT).balance == Decimal("250000.00")
    assert sandbox.get_account(MULE_ACCOUNT).balance == Decimal("70500.00")
    assert sandbox.total_balance() == total


# ============================================================================
# TEST 6: Insider threat
# ============================================================================

def test_insider_transfers_and_alerts(sandbox, orchestrator):
    orchestrator.run("insider")

    txns = scenario_transactions(sandbox, "Insider Threat")
    assert [t.status for t in txns] == ["completed", "completed", "flagged", "flagged"]
    assert [t.risk_score for t in txns] == [20, 20, 45, 45]
    assert sandbox.get_account(JUAN_ACCOUNT).balance == Decimal("104700.00")
    assert sandbox.get_account(JUAN_ACCOUNT).daily_transferred == Decimal("45300.00")

    by_mitre = {a.mitre_id: a for a in sandbox.fraud_alerts() if a.type == "pattern"}
    assert by_mitre["T1530"].login_log_id is not None
    assert by_mitre["T1070"].severity == "critical"


# ============================================================================
# TEST 7: Money laundering
# ============================================================================

def test_aml_structuring_is_detected(sandbox, orchestrator):
    total = sandbox.total_balance()
    lines = messages(orchestrator.run("aml"))

    smurfs = [t for t in scenario_transactions(sandbox, "Money Laundering") if t.from_account_id == "acc_001"]
    assert len(smurfs) == 8
    assert all(t.status in ("completed", "flagged") for t in smurfs)
    assert all(t.amount < 5000 for t in smurfs)

    assert "Structuring detected: 8 sub-threshold transfers" in lines
    assert any(line.startswith("Threat intel: structuring matches ti_006") for line in lines)
    assert any(a.description.startswith("Smurfing: 8 transfers") for a in sandbox.fraud_alerts())
    assert sandbox.total_balance() == total
