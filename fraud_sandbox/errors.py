"""
Expected, caller-correctable failures raised by the sandbox.

Blocked transfers and failed logins are NOT errors: they are recorded as
data (status=blocked, success=False). These exceptions are reserved for
malformed or impossible requests and carry a human-readable reason.
"""
from typing import Optional


class SandboxError(Exception):
    """Base class. `reason` is safe to show to the caller."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(SandboxError):
    """Bad input. Never mutates state."""


class NotFoundError(SandboxError):
    """Unknown user, account, alert, control, indicator or pending transfer."""


class InsufficientFundsError(SandboxError):
    pass


class FrozenAccountError(SandboxError):
    pass


class ControlDeniedError(SandboxError):
    """A security control refused the request outright."""

    def __init__(self, reason: str, transaction_id: Optional[str] = None):
        super().__init__(reason)
        # Blocked transfers are still recorded; point the caller at the record
        self.transaction_id = transaction_id


class LockedAccountError(ControlDeniedError):
    """Denied by the lockout control."""


class AlreadyRunningError(SandboxError):
    """Another attack scenario holds the single-flight guard."""


class InvalidCodeError(SandboxError):
    """Step-up one-time code did not match."""
