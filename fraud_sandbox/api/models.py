"""
Pydantic models for API request/response validation.
Domain records (Transaction, FraudAlert, ...) are returned as-is; the
models here cover request bodies and the service-level responses.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from fraud_sandbox.features.context import RequestContext
from fraud_sandbox.ledger.schema import Account, IndicatorType, Severity, User


class RegisterRequest(BaseModel):
    username: str = Field(..., description="Login name, unique")
    full_name: str
    email: str
    password: str = Field(..., description="Min 6 characters")

    class Config:
        json_schema_extra = {
            "example": {
                "username": "acruz",
                "full_name": "Ana Cruz",
                "email": "ana@email.com",
                "password": "s3cretpw",
            }
        }


class UserView(BaseModel):
    """User without the password hash."""
    id: str
    username: str
    full_name: str
    email: str
    created_at: datetime
    is_locked: bool
    lockout_until: Optional[datetime] = None
    failed_login_attempts: int
    mfa_enabled: bool
    known_ips: List[str]
    known_devices: List[str]
    account_age_days: int

    @classmethod
    def from_user(cls, user: User) -> "UserView":
        data = user.model_dump(exclude={"password_hash"})
        data["known_ips"] = sorted(user.known_ips)
        data["known_devices"] = sorted(user.known_devices)
        return cls(**data)


class RegisterResponse(BaseModel):
    user: UserView
    account: Account


class LoginRequest(BaseModel):
    username: str
    password: str
    context: Optional[RequestContext] = Field(None, description="Omit to let the sandbox pick one")


class TransferRequest(BaseModel):
    from_account: str = Field(..., description="Sender account number")
    to_account: str = Field(..., description="Recipient account number")
    amount: Decimal = Field(..., description="Amount in PHP")
    context: Optional[RequestContext] = None

    class Config:
        json_schema_extra = {
            "example": {
                "from_account": "9001234567",
                "to_account": "9005551234",
                "amount": "2500.00",
                "context": {"ip": "192.168.1.100", "device": "Chrome/Windows", "geo": "Manila, PH"},
            }
        }


class StepUpRequest(BaseModel):
    code: str = Field(..., description="One-time code")


class ControlConfigUpdate(BaseModel):
    key: str = Field(..., description="Setting name, snake_case or camelCase")
    value: Any


class ControlToggle(BaseModel):
    enabled: Optional[bool] = Field(None, description="Omit to flip the current state")


class BlacklistRequest(BaseModel):
    ip: str


class BlacklistResponse(BaseModel):
    blacklisted_ips: List[str]


class IndicatorRequest(BaseModel):
    type: IndicatorType
    value: str
    threat_actor: Optional[str] = None
    severity: Severity = "medium"
    confidence: int = Field(50, ge=0, le=100)
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v


class ReviewRequest(BaseModel):
    action: str = Field(..., description="approve | deny | escalate | false_positive | freeze")
    note: Optional[str] = None


class EventLogResponse(BaseModel):
    total: int
    lines: List[str]


class HealthCheckResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "down"
    users: int
    accounts: int
    transactions: int
    open_alerts: int
    scenario_running: bool
    total_balance: Decimal
    uptime_seconds: float


class MetricsResponse(BaseModel):
    total_requests: int
    error_count: int
    logins: int
    transfers: int
    blocked: int
    avg_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    requests_per_second: float


class DetectionMetricsResponse(BaseModel):
    ml: Dict[str, Any]
    dashboard: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    message: str
    transaction_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
