"""
UEBA: per-user behavioral deviation.

Baselines are seeded and never retrained. After a transfer commits the
profiler only rolls the risk trend forward and stamps the latest
deviation score.
"""
from datetime import datetime
from typing import Dict, List, Tuple

from fraud_sandbox.ledger.schema import BehaviorProfile, TransferCandidate


AMOUNT_MULTIPLIER = 3
RISK_TREND_LENGTH = 10

DEVIATION_WEIGHTS = {
    "amount": 20,
    "hours": 15,
    "geo": 25,
    "device": 15,
    "ip": 15,
}


class BehaviorProfiler:

    def deviation(
            self,
            user_id: str,
            candidate: TransferCandidate,
            profiles: Dict[str, BehaviorProfile]) -> Tuple[int, List[str]]:

        profile = profiles.get(user_id)
        if profile is None:
            return 0, []

        score = 0
        deviations = []

        avg = profile.avg_transaction_amount
        if avg > 0 and candidate.amount > avg * AMOUNT_MULTIPLIER:
            score += DEVIATION_WEIGHTS["amount"]
            deviations.append(f"Amount {float(candidate.amount / avg):.1f}x above average")

        start, end = profile.typical_hours
        hour = candidate.timestamp.hour
        if hour < start or hour > end:
            score += DEVIATION_WEIGHTS["hours"]
            deviations.append(f"Outside typical hours ({start}:00-{end}:00)")

        if candidate.geo_location and candidate.geo_location not in profile.typical_geos:
            score += DEVIATION_WEIGHTS["geo"]
            deviations.append(f"Unusual location: {candidate.geo_location}")

        if candidate.device and candidate.device not in profile.typical_devices:
            score += DEVIATION_WEIGHTS["device"]
            deviations.append(f"Unusual device: {candidate.device}")

        if candidate.ip and candidate.ip not in profile.typical_ips:
            score += DEVIATION_WEIGHTS["ip"]
            deviations.append(f"Unusual IP: {candidate.ip}")

        return min(score, 100), deviations

    def record(self, profile: BehaviorProfile, risk_score: int, deviation_score: int, when: datetime) -> None:
        profile.risk_trend = (profile.risk_trend + [risk_score])[-RISK_TREND_LENGTH:]
        profile.deviation_score = deviation_score
        profile.last_activity = when
