"""
Threat-intel indicator store (IOCs).

Indicators are keyed by (type, value). Correlation checks a login or
transfer context against every active indicator and returns the hits in
the order the indicators were registered.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from fraud_sandbox.errors import NotFoundError, ValidationError
from fraud_sandbox.ledger.schema import ThreatIntelIndicator


logger = logging.getLogger(__name__)

# Correlation parameter -> indicator type
CORRELATABLE = {
    "ip": "ip",
    "device": "device",
    "email": "email",
    "account": "account",
}


class ThreatIntelIndex:

    def __init__(self, indicators: Iterable[ThreatIntelIndicator] = ()):
        self._indicators: List[ThreatIntelIndicator] = []
        self._by_key: Dict[Tuple[str, str], List[ThreatIntelIndicator]] = {}
        for indicator in indicators:
            self.add(indicator)

    def __len__(self) -> int:
        return len(self._indicators)

    def all(self) -> List[ThreatIntelIndicator]:
        return list(self._indicators)

    def get(self, indicator_id: str) -> ThreatIntelIndicator:
        for indicator in self._indicators:
            if indicator.id == indicator_id:
                return indicator
        raise NotFoundError(f"Indicator {indicator_id} not found")

    def add(self, indicator: ThreatIntelIndicator) -> ThreatIntelIndicator:
        if any(i.id == indicator.id for i in self._indicators):
            raise ValidationError(f"Indicator {indicator.id} already exists")
        if not indicator.value.strip():
            raise ValidationError("Indicator value is required")
        self._indicators.append(indicator)
        self._by_key.setdefault((indicator.type, indicator.value), []).append(indicator)
        return indicator

    def toggle(self, indicator_id: str) -> ThreatIntelIndicator:
        indicator = self.get(indicator_id)
        indicator.active = not indicator.active
        return indicator

    def lookup(self, indicator_type: str, value: str) -> List[ThreatIntelIndicator]:
        """Active indicators registered under exactly (type, value)."""
        return [i for i in self._by_key.get((indicator_type, value), []) if i.active]

    def correlate(
            self,
            ip: Optional[str] = None,
            device: Optional[str] = None,
            email: Optional[str] = None,
            account: Optional[str] = None) -> List[ThreatIntelIndicator]:

        query = {"ip": ip, "device": device, "email": email, "account": account}
        hits = []
        for param, value in query.items():
            if not value:
                continue
            hits.extend(self._by_key.get((CORRELATABLE[param], value), []))

        position = {id(ind): n for n, ind in enumerate(self._indicators)}
        matches = sorted((h for h in hits if h.active), key=lambda h: position[id(h)])
        logger.debug(f"Correlation {query} -> {len(matches)} matches")
        return matches
