from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Literal, Optional, Set, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from fraud_sandbox.features.context import RequestContext


CENT = Decimal("0.01")

TransactionStatus = Literal["completed", "flagged", "blocked", "pending_review"]
ReviewStatus = Literal["pending", "approved", "denied", "escalated"]
AlertType = Literal["transaction", "login", "pattern"]
Severity = Literal["low", "medium", "high", "critical"]
AlertStatus = Literal["open", "investigating", "resolved", "false_positive"]
IndicatorType = Literal["ip", "email", "device", "account", "pattern"]


def to_money(value) -> Decimal:
    """Fixed-point currency: everything is quantized to centavos."""
    if isinstance(value, float):
        # Go through str so 0.1 stays 0.1
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_peso(amount) -> str:
    return f"₱{Decimal(amount):,.2f}"


# --- 1. IDENTITIES ---

class User(BaseModel):
    id: str
    username: str
    full_name: str
    email: str
    password_hash: str  # opaque, see ledger.store.simulated_hash
    created_at: datetime

    # Lockout state. is_locked implies lockout_until is in the future
    # (or None only after a manual unlock cleared both).
    is_locked: bool = False
    lockout_until: Optional[datetime] = None
    failed_login_attempts: int = Field(0, ge=0)

    mfa_enabled: bool = False
    known_ips: Set[str] = Field(default_factory=set)
    known_devices: Set[str] = Field(default_factory=set)
    account_age_days: int = Field(0, ge=0)


class Account(BaseModel):
    id: str
    user_id: str
    account_number: str
    balance: Decimal = Field(..., ge=0)
    daily_transferred: Decimal = Decimal("0.00")
    daily_transfer_date: Optional[date] = None
    is_frozen: bool = False
    type: Literal["checking", "savings"] = "checking"

    class Config:
        validate_assignment = True  # a negative balance must never be stored

    @field_validator("balance", "daily_transferred", mode="before")
    @classmethod
    def quantize_money(cls, v):
        return to_money(v)


# --- 2. EVENTS ---

class Transaction(BaseModel):
    """
    Append-only. Scores are computed once at creation and never recomputed.
    Only `status` and the review fields are touched afterwards, and only
    through the Ledger.
    """
    id: str
    from_account_id: str
    to_account_id: str
    from_user_id: str
    to_user_id: str
    amount: Decimal
    timestamp: datetime
    type: Literal["transfer", "deposit", "withdrawal"] = "transfer"
    status: TransactionStatus

    # Rule engine
    risk_score: int = Field(..., ge=0, le=100)
    is_flagged: bool
    fraud_reasons: List[str] = Field(default_factory=list)

    # Context
    ip: Optional[str] = None
    device: Optional[str] = None
    geo_location: Optional[str] = None

    # ML + UEBA
    ml_prediction: Optional[float] = Field(None, ge=0.0, le=1.0)
    ml_flagged: Optional[bool] = None
    deviation_score: int = Field(0, ge=0, le=100)
    deviations: List[str] = Field(default_factory=list)

    # Attack replay tagging
    attack_scenario: Optional[str] = None
    mitre_technique: Optional[str] = None

    # Downstream reviewer fields (mutable)
    review_status: Optional[ReviewStatus] = None
    reviewed_by: Optional[str] = None
    review_note: Optional[str] = None


class LoginLog(BaseModel):
    id: str
    user_id: str
    username: str
    timestamp: datetime
    ip: Optional[str] = None
    device: Optional[str] = None
    geo_location: Optional[str] = None
    success: bool
    blocked: bool
    reason: Optional[str] = None

    class Config:
        frozen = True


class FraudAlert(BaseModel):
    id: str
    transaction_id: Optional[str] = None
    login_log_id: Optional[str] = None
    type: AlertType
    severity: Severity
    description: str
    timestamp: datetime
    status: AlertStatus = "open"
    assigned_to: Optional[str] = None
    mitre_id: Optional[str] = None
    mitre_tactic: Optional[str] = None

    @model_validator(mode="after")
    def at_most_one_link(self):
        if self.transaction_id is not None and self.login_log_id is not None:
            raise ValueError("An alert links to a transaction OR a login, never both")
        return self


# --- 3. PROFILES & INTEL ---

class BehaviorProfile(BaseModel):
    user_id: str
    avg_transaction_amount: Decimal = Decimal("0")
    avg_transactions_per_day: float = 0.0
    typical_hours: Tuple[int, int] = (0, 23)  # inclusive [start, end]
    typical_geos: Set[str] = Field(default_factory=set)
    typical_devices: Set[str] = Field(default_factory=set)
    typical_ips: Set[str] = Field(default_factory=set)
    risk_trend: List[int] = Field(default_factory=list)  # last 10 risk scores
    last_activity: Optional[datetime] = None
    deviation_score: int = 0


class ThreatIntelIndicator(BaseModel):
    id: str
    type: IndicatorType
    value: str
    threat_actor: str = "Unknown"
    confidence: int = Field(50, ge=0, le=100)
    severity: Severity = "medium"
    source: str = "Manual Entry"
    first_seen: datetime
    last_seen: datetime
    tags: List[str] = Field(default_factory=list)
    stix_type: str = ""
    description: str = ""
    active: bool = True


# --- 4. PIPELINE INPUTS / OUTPUTS ---

class TransferCandidate(BaseModel):
    """A transfer as the scorers see it: resolved ids, one timestamp."""
    from_account_id: str
    to_account_id: str
    from_user_id: str
    to_user_id: str
    amount: Decimal
    timestamp: datetime
    ip: Optional[str] = None
    device: Optional[str] = None
    geo_location: Optional[str] = None

    class Config:
        frozen = True


class PendingTransfer(BaseModel):
    """A transfer paused on step-up. No Transaction exists for it yet."""
    id: str
    from_account_number: str
    to_account_number: str
    amount: Decimal
    context: RequestContext
    created_at: datetime
    risk_score: int
    attack_scenario: Optional[str] = None
    mitre_technique: Optional[str] = None


class LoginOutcome(BaseModel):
    success: bool
    blocked: bool
    reason: Optional[str] = None
    login_log_id: str
    alert_id: Optional[str] = None
    locked: bool = False
    denied_by: Optional[str] = None  # control category when blocked


class TransferOutcome(BaseModel):
    status: Literal["completed", "flagged", "blocked", "step_up_pending"]
    transaction_id: Optional[str] = None
    pending_id: Optional[str] = None
    risk_score: int
    reasons: List[str] = Field(default_factory=list)
    ml_prediction: float
    ml_flagged: bool
    deviation_score: int = 0
    requires_step_up: bool = False
    alert_id: Optional[str] = None
    denied_by: Optional[str] = None
