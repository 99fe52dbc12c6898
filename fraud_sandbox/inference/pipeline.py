"""
FraudSandbox: the single store object and its decision pipeline.

Owns the ledger, profiles, controls, threat intel, alerts and event log,
and exposes every boundary operation (register, login, transfer, step-up,
control management, intel, analyst review, reset).

Concurrency:
- Every mutating operation runs entirely under `self.lock` (an RLock), so
  a reader never sees half a transfer.
- One clock reading per evaluation, shared by all scorers and the gate.
- `reset()` bumps `generation`; a running attack scenario notices the
  change and stops before its next intent.

Usage:
    sandbox = FraudSandbox()
    outcome = sandbox.login("jdelacruz", "password123")
    result = sandbox.transfer("9001234567", "9005551234", "2500")
"""
import ipaddress
import logging
import threading
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

import pydantic

from fraud_sandbox.alerts.manager import AlertManager
from fraud_sandbox.controls.gate import ControlGate, GateRequest
from fraud_sandbox.controls.schema import IpBlacklistConfig, SecurityControl, with_setting
from fraud_sandbox.errors import (
    FrozenAccountError,
    InsufficientFundsError,
    InvalidCodeError,
    NotFoundError,
    ValidationError,
)
from fraud_sandbox.features.clock import DEFAULT_TIMEZONE, Clock, SystemClock
from fraud_sandbox.features.context import ContextSelector, RequestContext
from fraud_sandbox.features.time_utils import RATE_LIMIT_WINDOW
from fraud_sandbox.intel.threat_intel import ThreatIntelIndex
from fraud_sandbox.ledger import seed
from fraud_sandbox.ledger.event_log import EventLog, EventLogEntry
from fraud_sandbox.ledger.schema import (
    Account,
    BehaviorProfile,
    FraudAlert,
    LoginLog,
    LoginOutcome,
    PendingTransfer,
    Severity,
    ThreatIntelIndicator,
    Transaction,
    TransferCandidate,
    TransferOutcome,
    User,
    format_peso,
    to_money,
)
from fraud_sandbox.ledger.store import IdGenerator, Ledger, simulated_hash, verify_hash
from fraud_sandbox.scoring.behavior import BehaviorProfiler
from fraud_sandbox.scoring.ml import MLScorer, is_ml_flagged
from fraud_sandbox.scoring.rules import RiskScorer


logger = logging.getLogger(__name__)

FORBIDDEN_CHARS = set("<>'\"")
LOGIN_FAMILIAR_RATE = 0.7
TRANSFER_FAMILIAR_RATE = 0.8


class FraudSandbox:

    def __init__(
            self,
            clock: Optional[Clock] = None,
            selector: Optional[ContextSelector] = None,
            ml_scorer: Optional[MLScorer] = None,
            step_up_code: str = "123456",
            opening_balance: Decimal = Decimal("50000"),
            min_password_length: int = 6,
            timezone: str = DEFAULT_TIMEZONE):

        self.clock = clock or SystemClock(timezone)
        self.selector = selector or ContextSelector()
        self.ml_scorer = ml_scorer or MLScorer()
        self.risk_scorer = RiskScorer()
        self.profiler = BehaviorProfiler()
        self.gate = ControlGate()

        self.step_up_code = step_up_code
        self.opening_balance = to_money(opening_balance)
        self.min_password_length = min_password_length

        self.lock = threading.RLock()
        self.generation = 0
        self._load_seed()

    def _load_seed(self) -> None:
        now = self.clock.now()
        self.ids = IdGenerator()
        self.ledger = Ledger()
        users = seed.seed_users(now)
        for user in users:
            self.ledger.add_user(user)
        for account in seed.seed_accounts():
            self.ledger.add_account(account)

        self.profiles: Dict[str, BehaviorProfile] = {p.user_id: p for p in seed.seed_profiles(users, now)}
        self.intel = ThreatIntelIndex(seed.seed_indicators(now))
        self.controls: List[SecurityControl] = seed.default_controls()
        self.alerts = AlertManager(self.ids)
        self.pending: Dict[str, PendingTransfer] = {}
        self.events = EventLog(self.clock)
        self.events.append("SYSTEM", "Banking Fraud Sandbox initialized.")

    def reset(self) -> None:
        """Reload the seed data. Any running scenario stops before its next step."""
        with self.lock:
            self.generation += 1
            self._load_seed()
            self.events.append("SYSTEM", f"Sandbox reset (generation {self.generation})")
            logger.warning(f"Sandbox reset to seed state (generation {self.generation})")

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_user(self, username: str, full_name: str, email: str, password: str) -> Tuple[User, Account]:
        fields = {"Username": username, "Full Name": full_name, "Email": email, "Password": password}
        for label, value in fields.items():
            if value is None or not str(value).strip():
                raise ValidationError(f"{label} is required")
            if FORBIDDEN_CHARS & set(value):
                raise ValidationError(f"{label} contains invalid characters")
        if len(password) < self.min_password_length:
            raise ValidationError(f"Password must be at least {self.min_password_length} characters")

        with self.lock:
            if self.ledger.find_user_by_username(username) is not None:
                raise ValidationError("Username already exists")

            now = self.clock.now()
            user = self.ledger.add_user(User(
                id=self.ids.next("user"),
                username=username,
                full_name=full_name,
                email=email,
                password_hash=simulated_hash(password),
                created_at=now,
                known_ips={self.selector.ip(familiar=True)},
                known_devices={self.selector.device(familiar=True)},
                account_age_days=0,
            ))

            number = self.selector.account_number()
            while self.ledger.is_account_number_taken(number):
                number = self.selector.account_number()

            account = self.ledger.add_account(Account(
                id=self.ids.next("acc"),
                user_id=user.id,
                account_number=number,
                balance=self.opening_balance,
            ))
            self.events.append("BANKING", f"New user registered: {username} (Account: {number})")
            return user.model_copy(deep=True), account.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, username: str, password: str, context: Optional[RequestContext] = None) -> LoginOutcome:
        if not username or not password:
            raise ValidationError("Username and password are required")

        with self.lock:
            user = self.ledger.find_user_by_username(username)
            if user is None:
                raise NotFoundError("User not found")

            ctx = context or self.selector.pick_random(LOGIN_FAMILIAR_RATE)
            now = self.clock.now()

            request = GateRequest(
                now=now,
                user_id=user.id,
                ip=ctx.ip,
                recent_login_attempts=len(self.ledger.recent_logins(user.id, now, RATE_LIMIT_WINDOW)),
                is_locked=user.is_locked,
                lockout_until=user.lockout_until,
            )
            decision = self.gate.check("login", self.controls, request)

            if not decision.allowed:
                log = self._record_login(user, ctx, now, success=False, blocked=True, reason=decision.reason)
                self.events.append("SECURITY", f"Login BLOCKED for {username}: {decision.reason}")
                return LoginOutcome(
                    success=False, blocked=True, reason=decision.reason,
                    login_log_id=log.id, locked=user.is_locked, denied_by=decision.decided_by,
                )

            if user.is_locked and (user.lockout_until is None or user.lockout_until <= now):
                self.ledger.clear_lock(user)
                self.events.append("SECURITY", f"Lockout expired for {username}")

            if verify_hash(password, user.password_hash):
                return self._login_success(user, ctx, now)
            return self._login_failure(user, ctx, now)

    def _record_login(self, user, ctx, now, success, blocked, reason=None) -> LoginLog:
        return self.ledger.record_login(LoginLog(
            id=self.ids.next("login"),
            user_id=user.id,
            username=user.username,
            timestamp=now,
            ip=ctx.ip,
            device=ctx.device,
            geo_location=ctx.geo,
            success=success,
            blocked=blocked,
            reason=reason,
        ))

    def _login_success(self, user: User, ctx: RequestContext, now) -> LoginOutcome:
        self.ledger.clear_lock(user)
        log = self._record_login(user, ctx, now, success=True, blocked=False)

        new_ip = bool(ctx.ip) and ctx.ip not in user.known_ips
        new_device = bool(ctx.device) and ctx.device not in user.known_devices
        alert = None
        if new_ip or new_device:
            parts = []
            if new_ip:
                parts.append(f"New IP {ctx.ip}")
            if new_device:
                parts.append(f"New device {ctx.device}")
            alert = self.alerts.raise_login_alert(
                log,
                severity="high" if new_ip and new_device else "medium",
                description=f"Suspicious login: {' '.join(parts)} from {ctx.geo}",
            )

        self.events.append("AUTH", f"Login SUCCESS: {user.username} from {ctx.ip} ({ctx.device}) @ {ctx.geo}")
        return LoginOutcome(
            success=True, blocked=False, login_log_id=log.id,
            alert_id=alert.id if alert else None,
        )

    def _login_failure(self, user: User, ctx: RequestContext, now) -> LoginOutcome:
        lockout = self.gate.enabled(self.controls, "lockout")
        locked = self.ledger.register_failed_login(
            user,
            now,
            max_failed_attempts=lockout.config.max_failed_attempts if lockout else None,
            lockout_minutes=lockout.config.lockout_duration_minutes if lockout else 0,
        )
        log = self._record_login(user, ctx, now, success=False, blocked=False, reason="Invalid password")
        self.events.append(
            "AUTH",
            f"Login FAILED: {user.username} - Invalid password (attempt #{user.failed_login_attempts})",
        )
        if locked:
            self.events.append(
                "SECURITY",
                f"Account {user.username} locked until {user.lockout_until.strftime('%H:%M:%S')}",
            )
        return LoginOutcome(
            success=False, blocked=False, reason="Invalid password",
            login_log_id=log.id, locked=locked,
        )

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def transfer(
            self,
            from_account_number: str,
            to_account_number: str,
            amount: Any,
            context: Optional[RequestContext] = None,
            attack_scenario: Optional[str] = None,
            mitre_technique: Optional[str] = None) -> TransferOutcome:

        with self.lock:
            ctx = context or self.selector.pick_random(TRANSFER_FAMILIAR_RATE)
            return self._process_transfer(
                from_account_number, to_account_number, amount, ctx,
                attack_scenario=attack_scenario,
                mitre_technique=mitre_technique,
                step_up_satisfied=False,
            )

    def confirm_step_up(self, pending_id: str, code: str) -> TransferOutcome:
        with self.lock:
            pending = self.pending.get(pending_id)
            if pending is None:
                raise NotFoundError(f"Pending transfer {pending_id} not found")
            if code != self.step_up_code:
                self.events.append("SECURITY", f"Step-up verification FAILED for {pending_id}")
                raise InvalidCodeError("Invalid OTP code")

            del self.pending[pending_id]
            self.events.append("AUTH", "MFA verification successful")
            return self._process_transfer(
                pending.from_account_number,
                pending.to_account_number,
                pending.amount,
                pending.context,
                attack_scenario=pending.attack_scenario,
                mitre_technique=pending.mitre_technique,
                step_up_satisfied=True,
            )

    def abandon_step_up(self, pending_id: str) -> None:
        with self.lock:
            if self.pending.pop(pending_id, None) is None:
                raise NotFoundError(f"Pending transfer {pending_id} not found")
            self.events.append("SECURITY", f"Step-up challenge {pending_id} abandoned")

    @staticmethod
    def _parse_amount(amount: Any) -> Decimal:
        try:
            value = to_money(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Invalid amount")
        if not value.is_finite() or value <= 0:
            raise ValidationError("Invalid amount")
        return value

    def _process_transfer(
            self,
            from_account_number: str,
            to_account_number: str,
            amount: Any,
            ctx: RequestContext,
            attack_scenario: Optional[str],
            mitre_technique: Optional[str],
            step_up_satisfied: bool) -> TransferOutcome:

        # 1. Validate (raises, never mutates)
        amount = self._parse_amount(amount)
        if from_account_number == to_account_number:
            raise ValidationError("Cannot transfer to same account")
        sender = self.ledger.require_account(from_account_number)
        recipient = self.ledger.require_account(to_account_number)
        if sender.is_frozen:
            raise FrozenAccountError("Source account is frozen")
        if sender.balance < amount:
            raise InsufficientFundsError("Insufficient balance")

        # 2. Score, all against one clock reading
        now = self.clock.now()
        today = now.date()
        candidate = TransferCandidate(
            from_account_id=sender.id,
            to_account_id=recipient.id,
            from_user_id=sender.user_id,
            to_user_id=recipient.user_id,
            amount=amount,
            timestamp=now,
            ip=ctx.ip,
            device=ctx.device,
            geo_location=ctx.geo,
        )
        risk = self.risk_scorer.evaluate(candidate, self.ledger)
        ml_prediction = self.ml_scorer.predict(candidate, self.ledger)
        ml_flagged = is_ml_flagged(ml_prediction)
        deviation_score, deviations = self.profiler.deviation(sender.user_id, candidate, self.profiles)

        # 3. Gate
        decision = self.gate.check("transaction", self.controls, GateRequest(
            now=now,
            user_id=sender.user_id,
            ip=ctx.ip,
            amount=amount,
            risk_score=risk.score,
            transferred_today=self.ledger.transferred_today(sender, today),
        ))

        def build(status: str, is_flagged: bool, reasons: List[str]) -> Transaction:
            return Transaction(
                id=self.ids.next("txn"),
                from_account_id=sender.id,
                to_account_id=recipient.id,
                from_user_id=sender.user_id,
                to_user_id=recipient.user_id,
                amount=amount,
                timestamp=now,
                status=status,
                risk_score=risk.score,
                is_flagged=is_flagged,
                fraud_reasons=reasons,
                ip=ctx.ip,
                device=ctx.device,
                geo_location=ctx.geo,
                ml_prediction=ml_prediction,
                ml_flagged=ml_flagged,
                deviation_score=deviation_score,
                deviations=deviations,
                attack_scenario=attack_scenario,
                mitre_technique=mitre_technique,
                review_status="pending" if status == "flagged" else None,
            )

        outcome_fields = dict(
            risk_score=risk.score,
            ml_prediction=ml_prediction,
            ml_flagged=ml_flagged,
            deviation_score=deviation_score,
        )

        # 4a. Blocked: recorded, no money moves
        if not decision.allowed:
            reasons = risk.reasons + [decision.reason]
            txn = self.ledger.record_blocked(build("blocked", True, reasons))
            self.events.append("BLOCKED", f"Transfer {format_peso(amount)} blocked: {decision.reason}")
            return TransferOutcome(
                status="blocked", transaction_id=txn.id, reasons=reasons,
                denied_by=decision.decided_by, **outcome_fields,
            )

        # 4b. Step-up: park it, nothing recorded yet
        if decision.requires_step_up and not step_up_satisfied:
            pending = PendingTransfer(
                id=self.ids.next("pending"),
                from_account_number=from_account_number,
                to_account_number=to_account_number,
                amount=amount,
                context=ctx,
                created_at=now,
                risk_score=risk.score,
                attack_scenario=attack_scenario,
                mitre_technique=mitre_technique,
            )
            self.pending[pending.id] = pending
            self.events.append(
                "SECURITY",
                f"Step-up auth triggered for {format_peso(amount)} transfer (risk: {risk.score}): {decision.reason}",
            )
            return TransferOutcome(
                status="step_up_pending",
                pending_id=pending.id,
                reasons=risk.reasons + [decision.reason],
                requires_step_up=True,
                **outcome_fields,
            )

        # 4c. Commit
        status = "flagged" if risk.is_flagged else "completed"
        txn = self.ledger.commit_transfer(build(status, risk.is_flagged, list(risk.reasons)), today)

        profile = self.profiles.get(sender.user_id)
        if profile is not None:
            self.profiler.record(profile, risk.score, deviation_score, now)

        alert = self.alerts.raise_transaction_alert(txn) if risk.is_flagged else None

        self.events.append(
            "TRANSFER",
            f"{format_peso(amount)} from {from_account_number} → {to_account_number} | "
            f"Risk: {risk.score} | Status: {status} | ML: {ml_prediction * 100:.1f}%",
        )
        return TransferOutcome(
            status=status,
            transaction_id=txn.id,
            reasons=list(risk.reasons),
            requires_step_up=decision.requires_step_up,
            alert_id=alert.id if alert else None,
            **outcome_fields,
        )

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def _control(self, control_id: str) -> SecurityControl:
        for control in self.controls:
            if control.id == control_id:
                return control
        raise NotFoundError(f"Control {control_id} not found")

    def _control_by_category(self, category: str) -> SecurityControl:
        for control in self.controls:
            if control.category == category:
                return control
        raise NotFoundError(f"No {category} control configured")

    def toggle_control(self, control_id: str) -> SecurityControl:
        with self.lock:
            control = self._control(control_id)
            control.enabled = not control.enabled
            self.events.append("DEFENSE", f"{control.name} {'ENABLED' if control.enabled else 'DISABLED'}")
            return control.model_copy(deep=True)

    def set_control_enabled(self, control_id: str, enabled: bool) -> SecurityControl:
        with self.lock:
            control = self._control(control_id)
            if control.enabled != enabled:
                return self.toggle_control(control_id)
            return control.model_copy(deep=True)

    def update_control_config(self, control_id: str, key: str, value: Any) -> SecurityControl:
        with self.lock:
            control = self._control(control_id)
            control.config = with_setting(control.config, key, value)
            self.events.append("DEFENSE", f"{control.name} config updated: {key}={value}")
            return control.model_copy(deep=True)

    def add_blacklist_ip(self, ip: str) -> List[str]:
        ip = (ip or "").strip()
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            raise ValidationError(f"Invalid IP address: '{ip}'")

        with self.lock:
            control = self._control_by_category("ip_blacklist")
            control.config = IpBlacklistConfig(blacklisted_ips=control.config.blacklisted_ips | {ip})
            self.events.append("DEFENSE", f"IP {ip} added to blacklist")
            return sorted(control.config.blacklisted_ips)

    def remove_blacklist_ip(self, ip: str) -> List[str]:
        with self.lock:
            control = self._control_by_category("ip_blacklist")
            if ip not in control.config.blacklisted_ips:
                raise NotFoundError(f"IP {ip} is not blacklisted")
            control.config = IpBlacklistConfig(blacklisted_ips=control.config.blacklisted_ips - {ip})
            self.events.append("DEFENSE", f"IP {ip} removed from blacklist")
            return sorted(control.config.blacklisted_ips)

    def unlock_user(self, user_id: str) -> User:
        with self.lock:
            user = self.ledger.require_user(user_id)
            self.ledger.clear_lock(user)
            self.events.append("DEFENSE", f"Account {user.username} manually unlocked")
            return user.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Threat intel
    # ------------------------------------------------------------------

    def correlate_threat_intel(
            self,
            ip: Optional[str] = None,
            device: Optional[str] = None,
            email: Optional[str] = None,
            account: Optional[str] = None) -> List[ThreatIntelIndicator]:

        with self.lock:
            matches = self.intel.correlate(ip=ip, device=device, email=email, account=account)
            query = ", ".join(v for v in (ip, device, email, account) if v)
            self.events.append("THREAT-INTEL", f'Correlation: "{query}" → {len(matches)} matches')
            return [m.model_copy(deep=True) for m in matches]

    def add_indicator(
            self,
            type: str,
            value: str,
            threat_actor: Optional[str] = None,
            severity: str = "medium",
            confidence: int = 50,
            source: str = "Manual Entry",
            tags: Optional[List[str]] = None,
            description: Optional[str] = None) -> ThreatIntelIndicator:

        with self.lock:
            now = self.clock.now()
            try:
                indicator = ThreatIntelIndicator(
                    id=self.ids.next("ti"),
                    type=type,
                    value=(value or "").strip(),
                    threat_actor=threat_actor or "Unknown",
                    confidence=confidence,
                    severity=severity,
                    source=source,
                    first_seen=now,
                    last_seen=now,
                    tags=[t.strip() for t in (tags or []) if t.strip()],
                    stix_type=f"indicator--{type}",
                    description=description or f"Manual {type} indicator",
                )
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid indicator: {e.errors()[0]['msg']}") from e

            self.intel.add(indicator)
            self.events.append("THREAT-INTEL", f"IOC added: {indicator.value}")
            return indicator.model_copy(deep=True)

    def toggle_indicator(self, indicator_id: str) -> ThreatIntelIndicator:
        with self.lock:
            indicator = self.intel.toggle(indicator_id)
            state = "activated" if indicator.active else "deactivated"
            self.events.append("THREAT-INTEL", f"IOC {indicator.value} {state}")
            return indicator.model_copy(deep=True)

    def lookup_pattern(self, value: str) -> List[ThreatIntelIndicator]:
        with self.lock:
            return [i.model_copy(deep=True) for i in self.intel.lookup("pattern", value)]

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def review_alert(self, alert_id: str, action: str, note: Optional[str] = None) -> FraudAlert:
        with self.lock:
            alert, frozen = self.alerts.review(alert_id, action, self.ledger, note)
            self.events.append("SOC", f"Alert {alert_id}: {action.upper()}")
            if frozen:
                self.events.append("DEFENSE", f"Accounts frozen: {', '.join(frozen)}")
            return alert.model_copy(deep=True)

    def raise_login_alert(
            self,
            login_log_id: str,
            severity: Severity,
            description: str,
            mitre_id: str,
            mitre_tactic: str) -> FraudAlert:

        with self.lock:
            log = self.ledger.get_login_log(login_log_id)
            if log is None:
                raise NotFoundError(f"Login {login_log_id} not found")
            alert = self.alerts.raise_login_alert(log, severity, description, mitre_id, mitre_tactic)
            return alert.model_copy(deep=True)

    def raise_pattern_alert(
            self,
            description: str,
            severity: Severity,
            mitre_id: Optional[str] = None,
            mitre_tactic: Optional[str] = None,
            transaction_id: Optional[str] = None,
            login_log_id: Optional[str] = None) -> FraudAlert:

        with self.lock:
            if transaction_id and self.ledger.get_transaction(transaction_id) is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            if login_log_id and self.ledger.get_login_log(login_log_id) is None:
                raise NotFoundError(f"Login {login_log_id} not found")
            alert = self.alerts.raise_pattern_alert(
                description, severity, self.clock.now(),
                mitre_id=mitre_id, mitre_tactic=mitre_tactic,
                transaction_id=transaction_id, login_log_id=login_log_id,
            )
            return alert.model_copy(deep=True)

    def log_event(self, category: str, message: str) -> EventLogEntry:
        with self.lock:
            return self.events.append(category, message)

    # ------------------------------------------------------------------
    # Read accessors (copies, safe to hand out)
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User:
        with self.lock:
            return self.ledger.require_user(user_id).model_copy(deep=True)

    def get_account(self, account_number: str) -> Account:
        with self.lock:
            return self.ledger.require_account(account_number).model_copy(deep=True)

    def accounts_of(self, user_id: str) -> List[Account]:
        with self.lock:
            return [a.model_copy(deep=True) for a in self.ledger.accounts_of(user_id)]

    def get_transaction(self, transaction_id: str) -> Transaction:
        with self.lock:
            txn = self.ledger.get_transaction(transaction_id)
            if txn is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            return txn.model_copy(deep=True)

    def get_alert(self, alert_id: str) -> FraudAlert:
        with self.lock:
            return self.alerts.get(alert_id).model_copy(deep=True)

    def users(self) -> List[User]:
        with self.lock:
            return [u.model_copy(deep=True) for u in self.ledger.users.values()]

    def accounts(self) -> List[Account]:
        with self.lock:
            return [a.model_copy(deep=True) for a in self.ledger.accounts.values()]

    def transactions(self) -> List[Transaction]:
        with self.lock:
            return [t.model_copy(deep=True) for t in self.ledger.transactions]

    def login_logs(self) -> List[LoginLog]:
        with self.lock:
            return list(self.ledger.login_logs)

    def fraud_alerts(self) -> List[FraudAlert]:
        with self.lock:
            return [a.model_copy(deep=True) for a in self.alerts.alerts]

    def security_controls(self) -> List[SecurityControl]:
        with self.lock:
            return [c.model_copy(deep=True) for c in self.controls]

    def indicators(self) -> List[ThreatIntelIndicator]:
        with self.lock:
            return [i.model_copy(deep=True) for i in self.intel.all()]

    def behavior_profile(self, user_id: str) -> BehaviorProfile:
        with self.lock:
            profile = self.profiles.get(user_id)
            if profile is None:
                raise NotFoundError(f"No behavior profile for {user_id}")
            return profile.model_copy(deep=True)

    def pending_transfers(self) -> List[PendingTransfer]:
        with self.lock:
            return [p.model_copy(deep=True) for p in self.pending.values()]

    def event_log(self, category: Optional[str] = None) -> List[EventLogEntry]:
        with self.lock:
            return self.events.entries(category)

    def total_balance(self) -> Decimal:
        with self.lock:
            return self.ledger.total_balance()
