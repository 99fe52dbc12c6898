"""
Tests for the simulated logistic ML model.
"""
import numpy as np
import pytest

from fraud_sandbox.scoring.ml import BIAS, MLScorer, is_ml_flagged, sigmoid
from tests.test_risk_scorer import MOSCOW_TOR, make_candidate


pytestmark = pytest.mark.unit


def test_familiar_transfer_features(sandbox):
    features = MLScorer(noise=lambda: 0.0).features(make_candidate(sandbox, amount="1000"), sandbox.ledger)

    expected = np.array([
        0.01,             # 1,000 / 100,000
        0.0,              # no prior transfers
        0.0, 0.0, 0.0,    # known ip, known device, domestic
        1 - 90 / 365,     # juan, 90 days
        1 - 30 / 365,     # rico, 30 days
    ])
    np.testing.assert_allclose(features, expected)


def test_familiar_transfer_is_not_ml_flagged(sandbox):
    p = MLScorer(noise=lambda: 0.0).predict(make_candidate(sandbox), sandbox.ledger)
    assert p < 0.01
    assert not is_ml_flagged(p)


def test_foreign_transfer_to_mule_is_ml_flagged(sandbox):
    candidate = make_candidate(sandbox, amount="45000", to_user_id="user_mule", ctx=MOSCOW_TOR)
    p = MLScorer(noise=lambda: 0.0).predict(candidate, sandbox.ledger)

    z = BIAS + 2.5 * 0.45 + 2.0 + 1.5 + 2.2 - 1.5 * (1 - 90 / 365) - 1.8 * (1 - 2 / 365)
    assert p == pytest.approx(sigmoid(z))
    assert is_ml_flagged(p)


def test_amount_feature_is_capped(sandbox):
    features = MLScorer().features(make_candidate(sandbox, amount="140000"), sandbox.ledger)
    assert features[0] == 1.0


@pytest.mark.parametrize("noise,expected", [(5.0, 1.0), (-5.0, 0.0)])
def test_prediction_is_clipped(sandbox, noise, expected):
    p = MLScorer(noise=lambda: noise).predict(make_candidate(sandbox), sandbox.ledger)
    assert p == expected


def test_seeded_noise_stays_within_amplitude(sandbox):
    scorer = MLScorer(noise_amplitude=0.025, seed=42)
    candidate = make_candidate(sandbox, amount="45000", to_user_id="user_mule", ctx=MOSCOW_TOR)
    raw = scorer.raw_probability(candidate, sandbox.ledger)

    for _ in range(50):
        assert abs(scorer.predict(candidate, sandbox.ledger) - raw) <= 0.025 + 1e-12


def test_threshold_is_strict():
    assert not is_ml_flagged(0.5)
    assert is_ml_flagged(0.5000001)
