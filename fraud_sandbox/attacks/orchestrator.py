"""
Attack orchestrator: runs one scripted scenario at a time against the
live sandbox.

- Single-flight: a non-blocking lock is taken in `start()`; a second start
  while a run is active raises AlreadyRunningError (never queued).
- Phases run strictly in order. Pacing delays go through an injected
  `pacer(seconds)` (time.sleep in production, ManualClock.sleep in tests).
- A sandbox reset aborts the run before its next login/transfer. The
  generation check and the store call share one hold of the store lock,
  so a reset lands either before the check or after the call.
- A missing user or account ends the run early. Nothing already committed
  is rolled back.

Usage:
    orchestrator = AttackOrchestrator(sandbox)
    for line in orchestrator.start("ato"):
        print(line)
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Set

from fraud_sandbox.attacks.scenarios import SCENARIOS, SCRIPTS, ScenarioInfo
from fraud_sandbox.errors import (
    AlreadyRunningError,
    FrozenAccountError,
    InsufficientFundsError,
    NotFoundError,
    SandboxError,
    ValidationError,
)
from fraud_sandbox.features.context import RequestContext
from fraud_sandbox.inference.pipeline import FraudSandbox
from fraud_sandbox.ledger.schema import Account, LoginOutcome, TransferOutcome, User, format_peso


logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "completed": "COMPLETED",
    "flagged": "FLAGGED",
    "blocked": "BLOCKED",
    "step_up_pending": "STOPPED AT STEP-UP",
}


class ScenarioAborted(SandboxError):
    """Raised inside a run when the sandbox was reset underneath it."""


class ScenarioContext:
    """What a scenario script may do. Every call goes through the public pipeline."""

    def __init__(
            self,
            sandbox: FraudSandbox,
            scenario: ScenarioInfo,
            pacer: Callable[[float], None],
            pacing_scale: float = 1.0):
        self.sandbox = sandbox
        self.scenario = scenario
        self.selector = sandbox.selector
        self.pacer = pacer
        self.pacing_scale = pacing_scale
        self.generation = sandbox.generation
        self.sessions: Set[str] = set()

    def ensure_live(self) -> None:
        if self.sandbox.generation != self.generation:
            raise ScenarioAborted("sandbox was reset")

    @contextmanager
    def live(self):
        """Hold the store lock from the generation check through the call."""
        with self.sandbox.lock:
            self.ensure_live()
            yield

    def pause(self, seconds: float) -> None:
        if self.pacing_scale > 0:
            self.pacer(seconds * self.pacing_scale)
        self.ensure_live()

    # --- lookups ---

    def require_user(self, user_id: str) -> User:
        return self.sandbox.get_user(user_id)

    def require_account_of(self, user_id: str) -> Account:
        accounts = self.sandbox.accounts_of(user_id)
        if not accounts:
            raise NotFoundError(f"No account found for {user_id}")
        return accounts[0]

    def pattern_intel(self, value: str):
        return self.sandbox.lookup_pattern(value)

    # --- intents ---

    def login(self, user: User, password: str, context: RequestContext) -> LoginOutcome:
        with self.live():
            outcome = self.sandbox.login(user.username, password, context)
        if outcome.success:
            self.sessions.add(user.id)
        return outcome

    def transfer(
            self,
            source: Account,
            target: Account,
            amount,
            context: RequestContext,
            mitre_id: str,
            mitre_tactic: str,
            label: str = "Transfer") -> Iterator[str]:
        """
        Generator: yields log messages, returns the final TransferOutcome
        (None if the transfer was never attempted or was rejected).
        """
        self.ensure_live()
        if not self.sessions:
            yield f"{label}: no authenticated session, transfer not attempted"
            return None

        try:
            with self.live():
                outcome: TransferOutcome = self.sandbox.transfer(
                    source.account_number, target.account_number, amount, context,
                    attack_scenario=self.scenario.name,
                    mitre_technique=mitre_id,
                )
        except (FrozenAccountError, InsufficientFundsError, ValidationError) as e:
            yield f"{label}: {format_peso(amount)} rejected: {e.reason}"
            return None

        if outcome.status == "step_up_pending":
            if self.scenario.attacker_holds_otp:
                yield f"{label}: step-up challenge (risk {outcome.risk_score}), replaying intercepted OTP"
                with self.live():
                    outcome = self.sandbox.confirm_step_up(outcome.pending_id, self.sandbox.step_up_code)
            else:
                yield f"{label}: step-up challenge (risk {outcome.risk_score}), attacker has no OTP"
                with self.live():
                    self.sandbox.abandon_step_up(outcome.pending_id)

        if outcome.status == "blocked":
            self.alert_pattern(
                f"{self.scenario.name}: {format_peso(amount)} to {target.account_number}. Status: BLOCKED",
                "critical", mitre_id, mitre_tactic,
                transaction_id=outcome.transaction_id,
            )

        yield f"{label}: {format_peso(amount)} → {STATUS_LABELS[outcome.status]} (Risk: {outcome.risk_score})"
        return outcome

    # --- alerts / intel ---

    def alert_login(self, outcome: LoginOutcome, severity, description, mitre_id, mitre_tactic):
        with self.live():
            return self.sandbox.raise_login_alert(
                outcome.login_log_id, severity, description, mitre_id, mitre_tactic,
            )

    def alert_pattern(self, description, severity, mitre_id, mitre_tactic, transaction_id=None, login_log_id=None):
        with self.live():
            return self.sandbox.raise_pattern_alert(
                description, severity,
                mitre_id=mitre_id, mitre_tactic=mitre_tactic,
                transaction_id=transaction_id, login_log_id=login_log_id,
            )

    def intel(self, ip=None, device=None, email=None, account=None) -> Iterator[str]:
        with self.live():
            matches = self.sandbox.correlate_threat_intel(ip=ip, device=device, email=email, account=account)
        for match in matches:
            yield (
                f"Threat intel: {match.value} matches {match.threat_actor} "
                f"({match.source}, confidence {match.confidence})"
            )

    @staticmethod
    def describe_login(outcome: LoginOutcome, context: RequestContext) -> str:
        where = f"{context.geo} ({context.ip})"
        if outcome.success:
            return f"Login SUCCESS from {where}"
        if outcome.blocked:
            return f"Login BLOCKED from {where}: {outcome.reason}"
        return f"Login FAILED from {where}: {outcome.reason}"


class ScenarioRun:
    """
    One execution of a scenario, consumed as an iterator of log lines.

    The single-flight guard is released when the iterator is exhausted,
    raises, or is closed. Prefer `with orchestrator.start(...) as run:`.
    """

    def __init__(self, orchestrator: "AttackOrchestrator", scenario: ScenarioInfo, context: ScenarioContext):
        self.orchestrator = orchestrator
        self.scenario = scenario
        self.context = context
        self.lines: List[str] = []
        self.status = "running"  # running | completed | aborted | failed
        self._released = False
        self._steps = self._execute()

    def __iter__(self):
        return self

    def __next__(self) -> str:
        return next(self._steps)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> None:
        self._steps.close()
        self._release()

    def _release(self) -> None:
        if not self._released:
            self._released = True
            self.orchestrator._finish(self)

    def _emit(self, message: str) -> str:
        entry = self.context.sandbox.log_event(self.scenario.tag, message)
        line = entry.format()
        self.lines.append(line)
        return line

    def _execute(self) -> Iterator[str]:
        script = SCRIPTS[self.scenario.id]
        try:
            yield self._emit(f"Starting {self.scenario.name} simulation")
            yield self._emit(f"MITRE: {' → '.join(self.scenario.mitre_chain)}")
            for message in script(self.context):
                yield self._emit(message)
            self.status = "completed"
            yield self._emit("Simulation complete")
        except ScenarioAborted as e:
            self.status = "aborted"
            logger.warning(f"Scenario {self.scenario.id} aborted: {e.reason}")
            yield self._emit(f"Aborted: {e.reason}")
        except NotFoundError as e:
            self.status = "failed"
            logger.error(f"Scenario {self.scenario.id} terminated early: {e.reason}")
            yield self._emit(f"Terminated: {e.reason}")
        finally:
            self._release()


class AttackOrchestrator:

    def __init__(
            self,
            sandbox: FraudSandbox,
            pacer: Callable[[float], None] = time.sleep,
            pacing_scale: float = 1.0):
        self.sandbox = sandbox
        self.pacer = pacer
        self.pacing_scale = pacing_scale
        self._guard = threading.Lock()
        self.active: Optional[ScenarioRun] = None

    @staticmethod
    def scenarios() -> List[ScenarioInfo]:
        return list(SCENARIOS.values())

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    def start(self, scenario_id: str) -> ScenarioRun:
        scenario = SCENARIOS.get(scenario_id)
        if scenario is None:
            raise NotFoundError(f"Unknown scenario '{scenario_id}' (available: {', '.join(SCENARIOS)})")

        if not self._guard.acquire(blocking=False):
            running = self.active.scenario.id if self.active else "another scenario"
            raise AlreadyRunningError(f"Cannot start '{scenario_id}': '{running}' is already running")

        logger.info(f"🚀 Starting attack scenario: {scenario.name}")
        context = ScenarioContext(self.sandbox, scenario, self.pacer, self.pacing_scale)
        self.active = ScenarioRun(self, scenario, context)
        return self.active

    def run(self, scenario_id: str) -> List[str]:
        with self.start(scenario_id) as run:
            return list(run)

    def _finish(self, run: ScenarioRun) -> None:
        if self.active is run:
            self.active = None
        logger.info(f"Scenario {run.scenario.id} finished: {run.status}")
        self._guard.release()
