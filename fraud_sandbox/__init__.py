"""
Banking Fraud Sandbox
=====================

In-memory fraud decision engine with a red-team attack orchestrator:
- Rule-based and fixed-weight logistic risk scoring
- Per-user behavioral baselines (UEBA deviation)
- Toggleable security controls (blacklist, rate limit, lockout, limits, step-up, MFA)
- Alert lifecycle and threat-intel correlation
- Scripted multi-phase attack scenarios run through the same pipeline

All state is ephemeral and lives in one FraudSandbox instance.
"""

__version__ = "1.0.0"
__status__ = "Development"
