"""
Simulated ML fraud model.

A logistic regression with fixed, hand-picked weights. There is no training
step and nothing is persisted; the point is a second opinion that can be
compared against the rule engine on the same transfers.

    z = bias + w . x
    p = clip(sigmoid(z) + noise, 0, 1)

Age features enter as (1 - normalized_age), so older accounts lower z.
"""
import logging
from typing import Callable, Dict, Optional

import numpy as np

from fraud_sandbox.features.time_utils import VELOCITY_WINDOW
from fraud_sandbox.ledger.schema import TransferCandidate
from fraud_sandbox.ledger.store import Ledger
from fraud_sandbox.scoring.rules import DOMESTIC_GEOS


logger = logging.getLogger(__name__)

FEATURE_NAMES = (
    "amount",
    "velocity",
    "new_ip",
    "new_device",
    "foreign_geo",
    "sender_age",
    "recipient_age",
)

WEIGHTS: Dict[str, float] = {
    "amount": 2.5,
    "velocity": 3.0,
    "new_ip": 2.0,
    "new_device": 1.5,
    "foreign_geo": 2.2,
    "sender_age": -1.5,     # older = less risky
    "recipient_age": -1.8,
}
BIAS = -3.0

AMOUNT_SCALE = 100000.0
VELOCITY_SCALE = 5.0
AGE_SCALE_DAYS = 365.0
UNKNOWN_AGE = 0.5
ML_THRESHOLD = 0.5

_WEIGHT_VECTOR = np.array([WEIGHTS[name] for name in FEATURE_NAMES], dtype=float)


def sigmoid(z: float) -> float:
    return float(1.0 / (1.0 + np.exp(-z)))


def is_ml_flagged(probability: float, threshold: float = ML_THRESHOLD) -> bool:
    return probability > threshold


class MLScorer:
    """
    Usage:
        scorer = MLScorer(seed=42)
        p = scorer.predict(candidate, ledger)

    Pass `noise=lambda: 0.0` for exact, repeatable probabilities.
    """

    def __init__(
            self,
            noise_amplitude: float = 0.025,
            noise: Optional[Callable[[], float]] = None,
            seed: Optional[int] = None):
        self.noise_amplitude = noise_amplitude
        self._rng = np.random.default_rng(seed)
        self.noise = noise if noise is not None else self._uniform_noise

    def _uniform_noise(self) -> float:
        return float(self._rng.uniform(-self.noise_amplitude, self.noise_amplitude))

    def features(self, candidate: TransferCandidate, ledger: Ledger) -> np.ndarray:
        sender = ledger.get_user(candidate.from_user_id)
        recipient = ledger.get_user(candidate.to_user_id)

        amount = min(float(candidate.amount) / AMOUNT_SCALE, 1.0)
        prior = ledger.recent_transactions(candidate.from_user_id, candidate.timestamp, VELOCITY_WINDOW)
        velocity = len(prior) / VELOCITY_SCALE  # deliberately uncapped

        new_ip = 0.0
        new_device = 0.0
        if sender is not None and candidate.ip:
            new_ip = 0.0 if candidate.ip in sender.known_ips else 1.0
        if sender is not None and candidate.device:
            new_device = 0.0 if candidate.device in sender.known_devices else 1.0

        foreign_geo = 1.0 if candidate.geo_location and candidate.geo_location not in DOMESTIC_GEOS else 0.0

        sender_age = min(sender.account_age_days / AGE_SCALE_DAYS, 1.0) if sender else UNKNOWN_AGE
        recipient_age = min(recipient.account_age_days / AGE_SCALE_DAYS, 1.0) if recipient else UNKNOWN_AGE

        return np.array([
            amount,
            velocity,
            new_ip,
            new_device,
            foreign_geo,
            1.0 - sender_age,
            1.0 - recipient_age,
        ], dtype=float)

    def raw_probability(self, candidate: TransferCandidate, ledger: Ledger) -> float:
        z = BIAS + float(np.dot(_WEIGHT_VECTOR, self.features(candidate, ledger)))
        return sigmoid(z)

    def predict(self, candidate: TransferCandidate, ledger: Ledger) -> float:
        p = self.raw_probability(candidate, ledger) + self.noise()
        return float(np.clip(p, 0.0, 1.0))
