"""
Sandbox service for FastAPI integration.

Wraps the FraudSandbox and the AttackOrchestrator and adds:
- Request metrics (latency percentiles, logins, transfers, blocked)
- Health checks
- HTTP semantics for blocked requests: a blocked login or transfer is
  still recorded by the sandbox, then surfaced as ControlDeniedError /
  LockedAccountError so the API can answer 403 / 423

Usage:
    service = SandboxService.from_settings(settings)
    outcome = service.transfer("9001234567", "9005551234", "2500")
"""
import time
from collections import deque
from decimal import Decimal
from typing import Callable, Dict, Optional
import logging

import numpy as np

from fraud_sandbox.attacks.orchestrator import AttackOrchestrator, ScenarioRun
from fraud_sandbox.controls.gate import GateDecision
from fraud_sandbox.errors import ControlDeniedError, SandboxError
from fraud_sandbox.evaluation.metrics import dashboard_metrics, ml_confusion
from fraud_sandbox.features.clock import SystemClock
from fraud_sandbox.features.context import ContextSelector, RequestContext
from fraud_sandbox.inference.pipeline import FraudSandbox
from fraud_sandbox.ledger.schema import LoginOutcome, TransferOutcome
from fraud_sandbox.scoring.ml import MLScorer


logger = logging.getLogger(__name__)


class ServiceMetrics:
    """
    Tracks API request metrics.

    Metrics:
    - Total requests, errors
    - Logins, transfers and blocked requests
    - Latency percentiles (p50, p95, p99)
    - Requests per second
    """

    def __init__(self):
        self.total_requests = 0
        self.error_count = 0
        self.logins = 0
        self.transfers = 0
        self.blocked = 0
        self.latencies = deque(maxlen=10000)  # Keep last 10K latencies
        self.start_time = time.time()

    def record_request(self, latency_ms: float, kind: Optional[str] = None, blocked: bool = False):
        self.total_requests += 1
        self.latencies.append(latency_ms)
        if kind == "login":
            self.logins += 1
        elif kind == "transfer":
            self.transfers += 1
        if blocked:
            self.blocked += 1

    def record_error(self):
        self.error_count += 1

    def get_summary(self) -> Dict:
        """Get current metrics summary."""
        if not self.latencies:
            return {
                "total_requests": 0,
                "error_count": self.error_count,
                "logins": 0,
                "transfers": 0,
                "blocked": 0,
                "avg_latency_ms": 0.0,
                "p50_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "p99_latency_ms": 0.0,
                "requests_per_second": 0.0,
            }

        latencies = np.array(list(self.latencies))
        uptime_seconds = time.time() - self.start_time
        rps = self.total_requests / max(uptime_seconds, 1)

        return {
            "total_requests": self.total_requests,
            "error_count": self.error_count,
            "logins": self.logins,
            "transfers": self.transfers,
            "blocked": self.blocked,
            "avg_latency_ms": float(np.mean(latencies)),
            "p50_latency_ms": float(np.percentile(latencies, 50)),
            "p95_latency_ms": float(np.percentile(latencies, 95)),
            "p99_latency_ms": float(np.percentile(latencies, 99)),
            "requests_per_second": float(rps),
        }


class SandboxService:
    """
    Sandbox service for FastAPI.

    Every call that touches the sandbox goes through `_timed`, which
    records latency, and counts SandboxErrors as errors before
    re-raising them for the API's exception handler.
    """

    def __init__(self, sandbox: FraudSandbox, orchestrator: Optional[AttackOrchestrator] = None):
        logger.info("Initializing SandboxService...")
        self.sandbox = sandbox
        self.orchestrator = orchestrator or AttackOrchestrator(sandbox)
        self.metrics = ServiceMetrics()
        self.start_time = time.time()

        logger.info("✅ SandboxService ready")
        logger.info(f"   Users: {len(sandbox.users())}, accounts: {len(sandbox.accounts())}")
        logger.info(f"   Scenarios: {', '.join(s.id for s in self.orchestrator.scenarios())}")

    @classmethod
    def from_settings(cls, settings) -> "SandboxService":
        sandbox = FraudSandbox(
            clock=SystemClock(settings.TIMEZONE),
            selector=ContextSelector(seed=settings.RANDOM_SEED),
            ml_scorer=MLScorer(noise_amplitude=settings.ML_NOISE_AMPLITUDE, seed=settings.RANDOM_SEED),
            step_up_code=settings.STEP_UP_CODE,
            opening_balance=Decimal(str(settings.DEFAULT_OPENING_BALANCE)),
            min_password_length=settings.MIN_PASSWORD_LENGTH,
            timezone=settings.TIMEZONE,
        )
        orchestrator = AttackOrchestrator(sandbox, pacing_scale=settings.ATTACK_PACING_SCALE)
        return cls(sandbox, orchestrator)

    def _timed(self, call: Callable, *args, kind: Optional[str] = None, **kwargs):
        start_time = time.time()
        try:
            result = call(*args, **kwargs)
        except ControlDeniedError:
            self.metrics.record_request((time.time() - start_time) * 1000, kind, blocked=True)
            raise
        except SandboxError:
            self.metrics.record_error()
            raise
        self.metrics.record_request((time.time() - start_time) * 1000, kind)
        return result

    # ------------------------------------------------------------------
    # Banking
    # ------------------------------------------------------------------

    def register_user(self, username: str, full_name: str, email: str, password: str):
        return self._timed(self.sandbox.register_user, username, full_name, email, password)

    def login(self, username: str, password: str, context: Optional[RequestContext] = None) -> LoginOutcome:
        return self._timed(self._login, username, password, context, kind="login")

    def _login(self, username, password, context) -> LoginOutcome:
        outcome = self.sandbox.login(username, password, context)
        if outcome.blocked:
            logger.warning(f"🚫 Login blocked for {username}: {outcome.reason}")
            GateDecision(allowed=False, reason=outcome.reason, decided_by=outcome.denied_by).raise_if_denied()
        return outcome

    def transfer(
            self,
            from_account: str,
            to_account: str,
            amount,
            context: Optional[RequestContext] = None) -> TransferOutcome:
        return self._timed(self._transfer, from_account, to_account, amount, context, kind="transfer")

    def _transfer(self, from_account, to_account, amount, context) -> TransferOutcome:
        outcome = self.sandbox.transfer(from_account, to_account, amount, context)
        self._raise_if_blocked(outcome)
        return outcome

    def confirm_step_up(self, pending_id: str, code: str) -> TransferOutcome:
        return self._timed(self._confirm_step_up, pending_id, code, kind="transfer")

    def _confirm_step_up(self, pending_id, code) -> TransferOutcome:
        outcome = self.sandbox.confirm_step_up(pending_id, code)
        self._raise_if_blocked(outcome)
        return outcome

    @staticmethod
    def _raise_if_blocked(outcome: TransferOutcome) -> None:
        if outcome.status != "blocked":
            return
        reason = outcome.reasons[-1] if outcome.reasons else "Blocked by security controls"
        logger.warning(f"🚫 Transfer {outcome.transaction_id} blocked: {reason}")
        GateDecision(allowed=False, reason=reason, decided_by=outcome.denied_by).raise_if_denied(
            transaction_id=outcome.transaction_id,
        )

    # ------------------------------------------------------------------
    # Controls, intel, alerts: thin pass-throughs
    # ------------------------------------------------------------------

    def call(self, name: str, *args, **kwargs):
        """Invoke a FraudSandbox operation by name with metrics."""
        return self._timed(getattr(self.sandbox, name), *args, **kwargs)

    def start_scenario(self, scenario_id: str) -> ScenarioRun:
        return self._timed(self.orchestrator.start, scenario_id)

    def reset(self) -> None:
        self._timed(self.sandbox.reset)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def detection_metrics(self) -> Dict:
        transactions = self.sandbox.transactions()
        return {
            "ml": ml_confusion(transactions),
            "dashboard": dashboard_metrics(transactions, self.sandbox.fraud_alerts()),
        }

    def health_check(self) -> Dict:
        """
        Check if the sandbox is healthy.

        healthy  - seed data loaded
        degraded - store reachable but holds no users
        down     - store unreachable
        """
        try:
            users = self.sandbox.users()
            alerts = self.sandbox.fraud_alerts()
            status = "healthy" if users else "degraded"
            return {
                "status": status,
                "users": len(users),
                "accounts": len(self.sandbox.accounts()),
                "transactions": len(self.sandbox.transactions()),
                "open_alerts": sum(1 for a in alerts if a.status == "open"),
                "scenario_running": self.orchestrator.is_running,
                "total_balance": self.sandbox.total_balance(),
                "uptime_seconds": time.time() - self.start_time,
            }
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {
                "status": "down",
                "users": 0,
                "accounts": 0,
                "transactions": 0,
                "open_alerts": 0,
                "scenario_running": False,
                "total_balance": Decimal("0"),
                "uptime_seconds": time.time() - self.start_time,
            }

    def get_metrics(self) -> Dict:
        return self.metrics.get_summary()

    def close(self):
        """Abort any running scenario and log final stats."""
        logger.info("Closing SandboxService...")
        if self.orchestrator.active is not None:
            self.orchestrator.active.close()
        logger.info(f"Final stats: {self.metrics.total_requests} requests, "
                    f"{self.metrics.transfers} transfers, "
                    f"{self.metrics.blocked} blocked, "
                    f"{self.metrics.error_count} errors")
