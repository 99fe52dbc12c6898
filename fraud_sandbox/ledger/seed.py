"""
Demo population loaded on startup and on every reset.

Four customers (one of them a freshly opened mule account), their accounts,
UEBA baselines, the threat-intel feed and the default control set.
Timestamps are relative to the clock reading passed in, so a reset
re-anchors everything to "now".
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List

from fraud_sandbox.controls.schema import (
    IpBlacklistConfig,
    LockoutConfig,
    MfaConfig,
    RateLimitConfig,
    SecurityControl,
    StepUpConfig,
    TransactionLimitConfig,
)
from fraud_sandbox.ledger.schema import Account, BehaviorProfile, ThreatIntelIndicator, User
from fraud_sandbox.ledger.store import simulated_hash


# id, username, full name, email, password, mfa, known ips, known devices, age (days)
SEED_USERS = [
    ("user_001", "jdelacruz", "Juan Dela Cruz", "juan@email.com", "password123", False,
     {"192.168.1.100", "10.0.0.55"}, {"Chrome/Windows", "Safari/iOS"}, 90),
    ("user_002", "mreyes", "Maria Reyes", "maria@email.com", "securepass", True,
     {"192.168.1.100", "172.16.0.1"}, {"Firefox/MacOS", "Chrome/Android"}, 180),
    ("user_003", "rsantos", "Ricardo Santos", "rico@email.com", "mypassword", False,
     {"10.0.0.55"}, {"Chrome/Windows"}, 30),
    ("user_mule", "mule_account", "Mule Account (Suspicious)", "mule@temp.com", "mule123", False,
     {"203.0.113.42"}, {"Tor Browser/Unknown"}, 2),
]

SEED_ACCOUNTS = [
    ("acc_001", "user_001", "9001234567", "150000", "checking"),
    ("acc_002", "user_002", "9009876543", "320000", "savings"),
    ("acc_003", "user_003", "9005551234", "75000", "checking"),
    ("acc_mule", "user_mule", "9006660001", "500", "checking"),
]

# user id -> (avg amount, tx/day, typical hours, geos)
SEED_BASELINES = {
    "user_001": ("12000", 2, (8, 20), {"Manila, PH", "Cebu, PH"}),
    "user_002": ("25000", 1, (9, 18), {"Manila, PH"}),
    "user_003": ("8000", 3, (7, 22), {"Manila, PH", "Davao, PH"}),
    "user_mule": ("0", 0, (0, 23), set()),
}

SEED_INDICATORS = [
    {
        "id": "ti_001", "type": "ip", "value": "185.220.101.1", "threat_actor": "APT-FIN7",
        "confidence": 95, "severity": "critical", "source": "STIX/TAXII Feed - FS-ISAC",
        "first_seen_days": 30, "last_seen_days": 2,
        "tags": ["tor-exit", "banking-trojan", "credential-harvesting"],
        "stix_type": "indicator--ipv4-addr",
        "description": "Known Tor exit node used in banking fraud campaigns",
    },
    {
        "id": "ti_002", "type": "ip", "value": "91.132.147.5", "threat_actor": "Lazarus Group",
        "confidence": 88, "severity": "high", "source": "STIX/TAXII Feed - MISP",
        "first_seen_days": 60, "last_seen_days": 5,
        "tags": ["apt", "nation-state", "swift-attack"],
        "stix_type": "indicator--ipv4-addr",
        "description": "C2 infrastructure associated with SWIFT banking attacks",
    },
    {
        "id": "ti_003", "type": "ip", "value": "203.0.113.42", "threat_actor": "Carbanak",
        "confidence": 72, "severity": "high", "source": "Open Threat Exchange (OTX)",
        "first_seen_days": 15, "last_seen_days": 1,
        "tags": ["carbanak", "ato", "mule-network"],
        "stix_type": "indicator--ipv4-addr",
        "description": "Proxy node in Carbanak mule account network",
    },
    {
        "id": "ti_004", "type": "email", "value": "mule@temp.com", "threat_actor": "Unknown",
        "confidence": 65, "severity": "medium", "source": "Internal Intelligence",
        "first_seen_days": 7, "last_seen_days": 0,
        "tags": ["mule", "money-laundering", "disposable"],
        "stix_type": "indicator--email-addr",
        "description": "Disposable email associated with mule account recruitment",
    },
    {
        "id": "ti_005", "type": "device", "value": "Tor Browser/Unknown", "threat_actor": "Multiple",
        "confidence": 80, "severity": "medium", "source": "Device Fingerprint DB",
        "first_seen_days": 90, "last_seen_days": 0,
        "tags": ["anonymization", "fraud-tool", "tor"],
        "stix_type": "indicator--software",
        "description": "Tor browser usage pattern in financial fraud",
    },
    {
        "id": "ti_006", "type": "pattern", "value": "smurfing_<5000_x8", "threat_actor": "AML Networks",
        "confidence": 90, "severity": "high", "source": "FinCEN Advisory",
        "first_seen_days": 45, "last_seen_days": 0,
        "tags": ["structuring", "smurfing", "aml"],
        "stix_type": "indicator--pattern",
        "description": "Structuring pattern: 8+ transactions under ₱5,000 reporting threshold",
    },
    {
        "id": "ti_007", "type": "ip", "value": "45.33.32.156", "threat_actor": "SilverTerrier",
        "confidence": 78, "severity": "high", "source": "Palo Alto Unit 42",
        "first_seen_days": 20, "last_seen_days": 3,
        "tags": ["bec", "phishing", "nigeria"],
        "stix_type": "indicator--ipv4-addr",
        "description": "Infrastructure used in BEC/phishing campaigns targeting banks",
    },
    {
        "id": "ti_008", "type": "account", "value": "9006660001", "threat_actor": "Unknown",
        "confidence": 55, "severity": "medium", "source": "Internal SAR Database",
        "first_seen_days": 3, "last_seen_days": 0,
        "tags": ["mule-account", "rapid-movement", "new-account"],
        "stix_type": "indicator--account",
        "description": "Newly created account with suspicious inflow patterns",
    },
]

DEFAULT_BLACKLIST = {"185.220.101.1", "91.132.147.5"}


def seed_users(now: datetime) -> List[User]:
    users = []
    for uid, username, full_name, email, password, mfa, ips, devices, age in SEED_USERS:
        users.append(User(
            id=uid,
            username=username,
            full_name=full_name,
            email=email,
            password_hash=simulated_hash(password),
            created_at=now - timedelta(days=age),
            mfa_enabled=mfa,
            known_ips=set(ips),
            known_devices=set(devices),
            account_age_days=age,
        ))
    return users


def seed_accounts() -> List[Account]:
    return [
        Account(id=aid, user_id=uid, account_number=number, balance=Decimal(balance), type=kind)
        for aid, uid, number, balance, kind in SEED_ACCOUNTS
    ]


def seed_profiles(users: List[User], now: datetime) -> List[BehaviorProfile]:
    """Baselines mirror each seeded user's known IPs and devices."""
    profiles = []
    for user in users:
        avg_amount, per_day, hours, geos = SEED_BASELINES[user.id]
        profiles.append(BehaviorProfile(
            user_id=user.id,
            avg_transaction_amount=Decimal(avg_amount),
            avg_transactions_per_day=per_day,
            typical_hours=hours,
            typical_geos=set(geos),
            typical_devices=set(user.known_devices),
            typical_ips=set(user.known_ips),
            last_activity=now,
        ))
    return profiles


def seed_indicators(now: datetime) -> List[ThreatIntelIndicator]:
    indicators = []
    for row in SEED_INDICATORS:
        data = dict(row)
        first_seen_days = data.pop("first_seen_days")
        last_seen_days = data.pop("last_seen_days")
        indicators.append(ThreatIntelIndicator(
            first_seen=now - timedelta(days=first_seen_days),
            last_seen=now - timedelta(days=last_seen_days),
            **data,
        ))
    return indicators


def default_controls() -> List[SecurityControl]:
    return [
        SecurityControl(
            id="ctrl_1", name="Rate Limiting",
            description="Limit login attempts per minute",
            config=RateLimitConfig(max_attempts_per_minute=5),
        ),
        SecurityControl(
            id="ctrl_2", name="Account Lockout",
            description="Lock account after X failed attempts",
            config=LockoutConfig(max_failed_attempts=5, lockout_duration_minutes=15),
        ),
        SecurityControl(
            id="ctrl_3", name="MFA (Simulated OTP)",
            description="Require OTP when risk_score > threshold",
            config=MfaConfig(risk_threshold=60),
        ),
        SecurityControl(
            id="ctrl_4", name="Transaction Limits",
            description="Daily transfer cap per account",
            config=TransactionLimitConfig(daily_limit=Decimal("100000")),
        ),
        SecurityControl(
            id="ctrl_5", name="IP Blacklisting",
            description="Block known malicious IPs",
            config=IpBlacklistConfig(blacklisted_ips=set(DEFAULT_BLACKLIST)),
        ),
        SecurityControl(
            id="ctrl_6", name="Step-Up Authentication",
            description="Extra verification for high-risk transactions",
            config=StepUpConfig(amount_threshold=Decimal("50000"), risk_threshold=70),
        ),
    ]
