"""
Control gate: decides allow / deny / step-up for one login or transfer.

Pure function of (action, controls, request). The request carries snapshot
values the pipeline computed from the same clock reading (recent login
count, today's accumulated amount, the freshly computed risk score), so
the gate never reads the store.

Order is fixed and the first denial wins:
    1. IP blacklist        (login + transaction)
    2. Rate limiting       (login)
    3. Lockout             (login)
    4. Daily limit         (transaction)
    5. Step-up auth        (transaction) -> allowed, step-up required
    6. MFA risk threshold  (transaction) -> allowed, step-up required
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Literal, Optional

from pydantic import BaseModel

from fraud_sandbox.controls.schema import SecurityControl
from fraud_sandbox.errors import ControlDeniedError, LockedAccountError


logger = logging.getLogger(__name__)

Action = Literal["login", "transaction"]


class GateRequest(BaseModel):
    now: datetime
    user_id: Optional[str] = None
    ip: Optional[str] = None
    amount: Optional[Decimal] = None
    risk_score: int = 0
    recent_login_attempts: int = 0
    is_locked: bool = False
    lockout_until: Optional[datetime] = None
    transferred_today: Decimal = Decimal("0")


class GateDecision(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    requires_step_up: bool = False
    decided_by: Optional[str] = None  # category of the control that produced the reason

    def raise_if_denied(self, transaction_id: Optional[str] = None) -> None:
        if self.allowed:
            return
        if self.decided_by == "lockout":
            raise LockedAccountError(self.reason, transaction_id=transaction_id)
        raise ControlDeniedError(self.reason, transaction_id=transaction_id)


ALLOW = GateDecision(allowed=True)


def _deny(reason: str, category: str) -> GateDecision:
    return GateDecision(allowed=False, reason=reason, decided_by=category)


def _step_up(reason: str, category: str) -> GateDecision:
    return GateDecision(allowed=True, reason=reason, requires_step_up=True, decided_by=category)


class ControlGate:

    @staticmethod
    def enabled(controls: Iterable[SecurityControl], category: str) -> Optional[SecurityControl]:
        for control in controls:
            if control.category == category:
                return control if control.enabled else None
        return None

    def check(self, action: Action, controls: Iterable[SecurityControl], request: GateRequest) -> GateDecision:
        controls = list(controls)

        blacklist = self.enabled(controls, "ip_blacklist")
        if blacklist and request.ip and request.ip in blacklist.config.blacklisted_ips:
            return _deny(f"IP {request.ip} is blacklisted", "ip_blacklist")

        if action == "login":
            return self._check_login(controls, request)
        return self._check_transaction(controls, request)

    def _check_login(self, controls, request: GateRequest) -> GateDecision:
        rate = self.enabled(controls, "rate_limiting")
        if rate and request.user_id:
            if request.recent_login_attempts >= rate.config.max_attempts_per_minute:
                return _deny("Rate limit exceeded", "rate_limiting")

        lockout = self.enabled(controls, "lockout")
        if lockout and request.user_id and request.is_locked:
            if request.lockout_until is not None and request.now < request.lockout_until:
                return _deny("Account locked due to too many failed attempts", "lockout")

        return ALLOW

    def _check_transaction(self, controls, request: GateRequest) -> GateDecision:
        amount = request.amount or Decimal("0")

        limit = self.enabled(controls, "transaction_limit")
        if limit and amount > 0 and request.user_id:
            daily_limit = limit.config.daily_limit
            if request.transferred_today + amount > daily_limit:
                return _deny(f"Daily transfer limit (₱{daily_limit:,.0f}) exceeded", "transaction_limit")

        step_up = self.enabled(controls, "step_up_auth")
        if step_up:
            if amount > step_up.config.amount_threshold or request.risk_score > step_up.config.risk_threshold:
                return _step_up("Step-up authentication required", "step_up_auth")

        mfa = self.enabled(controls, "mfa")
        if mfa and request.risk_score > mfa.config.risk_threshold:
            return _step_up("MFA required - risk threshold exceeded", "mfa")

        return ALLOW
