"""
Security control definitions.

Exactly six categories exist and each has a fixed configuration schema.
A control's `config` is a tagged union selected by `category`, so a lockout
control cannot carry a `daily_limit` and a typo'd key is rejected instead of
silently stored.

Config keys accept snake_case (`max_attempts_per_minute`) or the camelCase
names the dashboard uses (`maxAttemptsPerMinute`).
"""
from decimal import Decimal
from typing import Annotated, Any, Literal, Set, Union

import pydantic
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from fraud_sandbox.errors import ValidationError


class _ControlConfig(BaseModel):

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "forbid"


class RateLimitConfig(_ControlConfig):
    category: Literal["rate_limiting"] = "rate_limiting"
    max_attempts_per_minute: int = Field(5, ge=1)


class LockoutConfig(_ControlConfig):
    category: Literal["lockout"] = "lockout"
    max_failed_attempts: int = Field(5, ge=1)
    lockout_duration_minutes: int = Field(15, ge=1)


class MfaConfig(_ControlConfig):
    category: Literal["mfa"] = "mfa"
    risk_threshold: int = Field(60, ge=0, le=100)


class TransactionLimitConfig(_ControlConfig):
    category: Literal["transaction_limit"] = "transaction_limit"
    daily_limit: Decimal = Field(Decimal("100000"), gt=0)


class IpBlacklistConfig(_ControlConfig):
    category: Literal["ip_blacklist"] = "ip_blacklist"
    blacklisted_ips: Set[str] = Field(default_factory=set)

    @field_validator("blacklisted_ips", mode="before")
    @classmethod
    def split_csv(cls, v):
        # The dashboard stores the list as "1.2.3.4,5.6.7.8"
        if isinstance(v, str):
            return {ip.strip() for ip in v.split(",") if ip.strip()}
        return v


class StepUpConfig(_ControlConfig):
    category: Literal["step_up_auth"] = "step_up_auth"
    amount_threshold: Decimal = Field(Decimal("50000"), ge=0)
    risk_threshold: int = Field(70, ge=0, le=100)


ControlConfig = Annotated[
    Union[
        RateLimitConfig,
        LockoutConfig,
        MfaConfig,
        TransactionLimitConfig,
        IpBlacklistConfig,
        StepUpConfig,
    ],
    Field(discriminator="category"),
]

CATEGORIES = (
    "rate_limiting", "lockout", "mfa", "transaction_limit", "ip_blacklist", "step_up_auth",
)


class SecurityControl(BaseModel):
    id: str
    name: str
    description: str = ""
    enabled: bool = True
    config: ControlConfig

    @property
    def category(self) -> str:
        return self.config.category


def resolve_config_key(config: BaseModel, key: str) -> str:
    """Map a snake_case or camelCase key onto the config's field name."""
    for name, field in type(config).model_fields.items():
        if name == "category":
            continue
        if key == name or key == field.alias:
            return name
    raise ValidationError(
        f"Unknown setting '{key}' for {config.category} control "
        f"(allowed: {', '.join(n for n in type(config).model_fields if n != 'category')})"
    )


def with_setting(config: BaseModel, key: str, value: Any) -> BaseModel:
    """Return a re-validated copy of `config` with one setting replaced."""
    field_name = resolve_config_key(config, key)
    data = config.model_dump()
    data[field_name] = value
    try:
        return type(config).model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        raise ValidationError(f"Invalid value for '{key}': {first['msg']}") from e
