"""
Request context (IP / device / geo) and the categorized selector.

Two fixed pools per dimension:
- home:    what the seeded customers normally use (Philippines, home ISPs)
- foreign: what attackers use (Tor exits, proxies, foreign geos)

Selection goes through a seedable random.Random so tests can force
deterministic picks.
"""
import random
from typing import Optional, Tuple

from pydantic import BaseModel


HOME_IPS: Tuple[str, ...] = ("192.168.1.100", "10.0.0.55", "172.16.0.1")
FOREIGN_IPS: Tuple[str, ...] = (
    "203.0.113.42", "198.51.100.7", "45.33.32.156", "185.220.101.1", "91.132.147.5",
)

HOME_DEVICES: Tuple[str, ...] = ("Chrome/Windows", "Firefox/MacOS", "Safari/iOS")
FOREIGN_DEVICES: Tuple[str, ...] = (
    "Chrome/Android", "Edge/Windows", "Unknown/Linux", "Tor Browser/Unknown",
)

HOME_GEOS: Tuple[str, ...] = ("Manila, PH", "Cebu, PH", "Davao, PH")
FOREIGN_GEOS: Tuple[str, ...] = ("Lagos, NG", "Moscow, RU", "Beijing, CN", "New York, US", "London, UK")


class RequestContext(BaseModel):
    """Where a login or transfer came from."""
    ip: Optional[str] = None
    device: Optional[str] = None
    geo: Optional[str] = None

    class Config:
        frozen = True


class ContextSelector:
    """
    Picks request contexts from the home or foreign pools.

    Usage:
        selector = ContextSelector(seed=7)
        ctx = selector.pick(familiar=False)      # attacker-looking context
        ctx = selector.pick_random(0.7)          # 70% chance of familiar
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random(seed)

    def ip(self, familiar: bool = True) -> str:
        return self.rng.choice(HOME_IPS if familiar else FOREIGN_IPS)

    def device(self, familiar: bool = True) -> str:
        return self.rng.choice(HOME_DEVICES if familiar else FOREIGN_DEVICES)

    def geo(self, familiar: bool = True) -> str:
        return self.rng.choice(HOME_GEOS if familiar else FOREIGN_GEOS)

    def pick(self, familiar: bool = True) -> RequestContext:
        return RequestContext(
            ip=self.ip(familiar),
            device=self.device(familiar),
            geo=self.geo(familiar),
        )

    def pick_random(self, p_familiar: float = 0.7) -> RequestContext:
        # Each dimension is drawn independently, like a real session mix
        return RequestContext(
            ip=self.ip(self.rng.random() < p_familiar),
            device=self.device(self.rng.random() < p_familiar),
            geo=self.geo(self.rng.random() < p_familiar),
        )

    def account_number(self) -> str:
        return "9" + "".join(str(self.rng.randrange(10)) for _ in range(9))
