"""
Pytest configuration and fixtures for the sandbox tests.

Every fixture runs on a ManualClock (2026-01-15 10:00 Asia/Manila) and a
noise-free ML scorer, so scores and windows are exact.
"""
from decimal import Decimal

import pytest

from fraud_sandbox.attacks.orchestrator import AttackOrchestrator
from fraud_sandbox.features.clock import ManualClock
from fraud_sandbox.features.context import ContextSelector, RequestContext
from fraud_sandbox.inference.pipeline import FraudSandbox
from fraud_sandbox.scoring.ml import MLScorer


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (full sandbox or HTTP stack)"
    )
    config.addinivalue_line(
        "markers",
        "unit: mark test as unit test (fast, isolated)"
    )


# Seeded customer contexts (known IP + known device + domestic geo)
JUAN_HOME = RequestContext(ip="192.168.1.100", device="Chrome/Windows", geo="Manila, PH")
MARIA_HOME = RequestContext(ip="192.168.1.100", device="Firefox/MacOS", geo="Manila, PH")
RICO_HOME = RequestContext(ip="10.0.0.55", device="Chrome/Windows", geo="Manila, PH")

JUAN_ACCOUNT = "9001234567"
MARIA_ACCOUNT = "9009876543"
RICO_ACCOUNT = "9005551234"
MULE_ACCOUNT = "9006660001"


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sandbox(clock):
    return FraudSandbox(
        clock=clock,
        selector=ContextSelector(seed=7),
        ml_scorer=MLScorer(noise=lambda: 0.0),
        opening_balance=Decimal("50000"),
    )


@pytest.fixture
def orchestrator(sandbox, clock):
    return AttackOrchestrator(sandbox, pacer=clock.sleep)


def disable(sandbox, *categories):
    """Turn off every control in `categories`."""
    for control in sandbox.security_controls():
        if control.category in categories:
            sandbox.set_control_enabled(control.id, False)
