"""
Rule-based risk scoring.

Seven additive rules, capped at 100. A score of 40 or more flags the
transfer for analyst review.

| Rule            | Trigger                                       | Weight |
|-----------------|-----------------------------------------------|--------|
| Large amount    | amount > 50,000                               | +30    |
| Velocity        | >= 2 earlier transfers by sender in last 60s  | +25    |
| Unknown IP      | IP not in sender's known IPs                  | +20    |
| Unknown device  | device not in sender's known devices          | +15    |
| New destination | recipient account younger than 7 days         | +20    |
| Foreign geo     | geo outside Manila / Cebu / Davao             | +15    |
| Off-hours       | local hour < 6 or >= 23                       | +10    |
"""
from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field

from fraud_sandbox.features.context import HOME_GEOS
from fraud_sandbox.features.time_utils import VELOCITY_WINDOW
from fraud_sandbox.ledger.schema import TransferCandidate
from fraud_sandbox.ledger.store import Ledger


LARGE_AMOUNT = Decimal("50000")
VELOCITY_MIN_PRIOR = 2
NEW_ACCOUNT_DAYS = 7
OFF_HOURS_END = 6     # hour < 6
OFF_HOURS_START = 23  # hour >= 23
FLAG_THRESHOLD = 40
MAX_SCORE = 100

DOMESTIC_GEOS = frozenset(HOME_GEOS)

WEIGHTS = {
    "large_amount": 30,
    "velocity": 25,
    "unknown_ip": 20,
    "unknown_device": 15,
    "new_destination": 20,
    "foreign_geo": 15,
    "off_hours": 10,
}


class RiskAssessment(BaseModel):
    score: int = Field(..., ge=0, le=MAX_SCORE)
    reasons: List[str] = Field(default_factory=list)
    is_flagged: bool


class RiskScorer:
    """Reads the ledger, never writes it."""

    def evaluate(self, candidate: TransferCandidate, ledger: Ledger) -> RiskAssessment:
        score = 0
        reasons = []

        if candidate.amount > LARGE_AMOUNT:
            score += WEIGHTS["large_amount"]
            reasons.append("Large transaction (>₱50,000)")

        prior = ledger.recent_transactions(candidate.from_user_id, candidate.timestamp, VELOCITY_WINDOW)
        if len(prior) >= VELOCITY_MIN_PRIOR:
            score += WEIGHTS["velocity"]
            reasons.append(f"Velocity: {len(prior) + 1} transactions in 1 minute")

        sender = ledger.get_user(candidate.from_user_id)
        if sender is not None and candidate.ip and candidate.ip not in sender.known_ips:
            score += WEIGHTS["unknown_ip"]
            reasons.append(f"Unknown IP: {candidate.ip}")

        if sender is not None and candidate.device and candidate.device not in sender.known_devices:
            score += WEIGHTS["unknown_device"]
            reasons.append(f"Unknown device: {candidate.device}")

        recipient = ledger.get_user(candidate.to_user_id)
        if recipient is not None and recipient.account_age_days < NEW_ACCOUNT_DAYS:
            score += WEIGHTS["new_destination"]
            reasons.append(f"Transfer to new account (<{NEW_ACCOUNT_DAYS} days old)")

        if candidate.geo_location and candidate.geo_location not in DOMESTIC_GEOS:
            score += WEIGHTS["foreign_geo"]
            reasons.append(f"Foreign location: {candidate.geo_location}")

        hour = candidate.timestamp.hour
        if hour < OFF_HOURS_END or hour >= OFF_HOURS_START:
            score += WEIGHTS["off_hours"]
            reasons.append("Off-hours transaction")

        score = min(score, MAX_SCORE)
        return RiskAssessment(score=score, reasons=reasons, is_flagged=score >= FLAG_THRESHOLD)
