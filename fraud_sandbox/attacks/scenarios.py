"""
Scripted red-team scenarios.

Each scenario is metadata (name, MITRE chain, whether the attacker holds a
valid OTP) plus a script: a generator function that takes a ScenarioContext,
issues logins and transfers through it, and yields one log message per step.

Scripts never touch the store directly. Everything goes through the same
pipeline real customers use, so live control configuration decides how far
an attack gets (an account locked in phase 1 stops phase 2).
"""
from typing import Callable, Dict, Iterator, List

from pydantic import BaseModel, Field

from fraud_sandbox.features.context import RequestContext
from fraud_sandbox.ledger.seed import SEED_USERS


class ScenarioInfo(BaseModel):
    id: str
    name: str
    tag: str                      # event log category, e.g. ATO
    description: str
    mitre_chain: List[str] = Field(default_factory=list)
    attacker_holds_otp: bool = False

    class Config:
        frozen = True


# Credentials the attacker "obtained" (phished, leaked, insider knowledge)
LEAKED_PASSWORDS = {row[0]: row[4] for row in SEED_USERS}

WRONG_PASSWORDS = ("123456", "password", "admin123", "qwerty", "letmein")
SMURF_AMOUNTS = (4800, 4500, 4900, 3200, 4700, 3800, 4100, 4600)
STRUCTURING_PATTERN = "smurfing_<5000_x8"

MOSCOW_TOR = RequestContext(ip="203.0.113.42", device="Tor Browser/Unknown", geo="Moscow, RU")
LAGOS = RequestContext(ip="45.33.32.156", device="Chrome/Android", geo="Lagos, NG")
BEIJING = RequestContext(ip="91.132.147.5", device="Unknown/Linux", geo="Beijing, CN")
LONDON = RequestContext(ip="198.51.100.7", device="Chrome/Android", geo="London, UK")
MANILA_HOME = RequestContext(ip="192.168.1.100", device="Chrome/Windows", geo="Manila, PH")
MANILA_OFFICE = RequestContext(ip="10.0.0.55", device="Chrome/Windows", geo="Manila, PH")


# --- 1. ACCOUNT TAKEOVER ---

def account_takeover(ctx) -> Iterator[str]:
    victim = ctx.require_user("user_001")
    victim_account = ctx.require_account_of("user_001")
    mule_account = ctx.require_account_of("user_mule")

    yield "Phase 1: Credential stuffing"
    for guess in WRONG_PASSWORDS:
        ctx.pause(0.3)
        context = ctx.selector.pick(familiar=False)
        outcome = ctx.login(victim, guess, context)
        ctx.alert_login(
            outcome, "high",
            f"Brute force: {victim.username} from {context.ip} ({context.geo})",
            "T1110", "Credential Access",
        )
        suffix = f" → BLOCKED ({outcome.reason})" if outcome.blocked else ""
        if outcome.locked and not outcome.blocked:
            suffix = " → ACCOUNT LOCKED"
        yield f"Failed: {guess} from {context.ip}{suffix}"

    ctx.pause(0.5)
    yield "Phase 2: Valid credentials obtained"
    yield from ctx.intel(ip=MOSCOW_TOR.ip, device=MOSCOW_TOR.device)
    outcome = ctx.login(victim, LEAKED_PASSWORDS[victim.id], MOSCOW_TOR)
    if outcome.success:
        ctx.alert_login(
            outcome, "critical",
            "Account takeover: Login from Moscow, RU via Tor after brute force",
            "T1078", "Initial Access",
        )
    yield ctx.describe_login(outcome, MOSCOW_TOR)

    ctx.pause(0.5)
    yield "Phase 3: Fund transfer to mule"
    yield from ctx.intel(account=mule_account.account_number)
    yield from ctx.transfer(victim_account, mule_account, 45000, MOSCOW_TOR, "T1537", "Exfiltration")


# --- 2. PHISHING ---

def phishing(ctx) -> Iterator[str]:
    victim = ctx.require_user("user_002")
    victim_account = ctx.require_account_of("user_002")
    mule_account = ctx.require_account_of("user_mule")

    ctx.pause(0.4)
    yield "Phase 1: Stolen credentials used"
    yield from ctx.intel(ip=LAGOS.ip)
    outcome = ctx.login(victim, LEAKED_PASSWORDS[victim.id], LAGOS)
    if outcome.success:
        ctx.alert_login(
            outcome, "critical",
            f"Phishing login: {victim.username} from Lagos, NG",
            "T1566", "Initial Access",
        )
    yield ctx.describe_login(outcome, LAGOS)

    ctx.pause(0.4)
    yield "Phase 2: Session hijack: Lagos → Beijing"
    yield from ctx.intel(ip=BEIJING.ip)
    outcome = ctx.login(victim, LEAKED_PASSWORDS[victim.id], BEIJING)
    if outcome.success:
        ctx.alert_login(
            outcome, "critical",
            "Impossible travel: Lagos, NG → Beijing, CN in seconds",
            "T1539", "Credential Access",
        )
    yield ctx.describe_login(outcome, BEIJING)

    ctx.pause(0.4)
    yield "Phase 3: Balance extraction"
    yield from ctx.transfer(victim_account, mule_account, 80000, BEIJING, "T1537", "Exfiltration")


# --- 3. MONEY LAUNDERING ---

def money_laundering(ctx) -> Iterator[str]:
    holder = ctx.require_user("user_001")
    source_account = ctx.require_account_of("user_001")
    mid_account = ctx.require_account_of("user_003")
    mule_account = ctx.require_account_of("user_mule")

    yield "Phase 1: Account holder session"
    outcome = ctx.login(holder, LEAKED_PASSWORDS[holder.id], MANILA_HOME)
    yield ctx.describe_login(outcome, MANILA_HOME)

    yield "Phase 2: Structuring small transactions"
    moved = []
    for n, amount in enumerate(SMURF_AMOUNTS, start=1):
        ctx.pause(0.2)
        result = yield from ctx.transfer(
            source_account, mid_account, amount, ctx.selector.pick(familiar=True),
            "T1565", "Impact", label=f"Smurf {n}/{len(SMURF_AMOUNTS)}",
        )
        if result is not None and result.status in ("completed", "flagged"):
            moved.append(result)

    if len(moved) >= len(SMURF_AMOUNTS):
        for indicator in ctx.pattern_intel(STRUCTURING_PATTERN):
            yield (
                f"Threat intel: structuring matches {indicator.id} "
                f"({indicator.threat_actor}, confidence {indicator.confidence})"
            )
        ctx.alert_pattern(
            f"Smurfing: {len(moved)} transfers under ₱5,000 into {mid_account.account_number}",
            "high", "T1565", "Impact",
            transaction_id=moved[-1].transaction_id,
        )
        yield f"Structuring detected: {len(moved)} sub-threshold transfers"

    ctx.pause(0.5)
    yield "Phase 3: Layering through intermediate"
    yield from ctx.transfer(
        mid_account, mule_account, 25000, ctx.selector.pick(familiar=False),
        "T1565", "Impact", label="Layering",
    )


# --- 4. SIM SWAP ---

def sim_swap(ctx) -> Iterator[str]:
    victim = ctx.require_user("user_002")
    victim_account = ctx.require_account_of("user_002")
    mule_account = ctx.require_account_of("user_mule")

    ctx.pause(0.5)
    yield "Phase 1: SIM ported via social engineering"
    ctx.alert_pattern(
        f"SIM Swap: {victim.username}'s number ported. MFA compromised.",
        "high", "T1111", "Credential Access",
    )

    ctx.pause(0.5)
    yield "Phase 2: Login with intercepted OTP"
    outcome = ctx.login(victim, LEAKED_PASSWORDS[victim.id], LONDON)
    if outcome.success:
        ctx.alert_login(
            outcome, "critical",
            f"MFA bypass via SIM swap: {victim.username} from London, UK",
            "T1078", "Initial Access",
        )
    yield ctx.describe_login(outcome, LONDON)

    ctx.pause(0.4)
    yield "Phase 3: Rapid fund extraction"
    amounts = (25000, 30000, 15000)
    for n, amount in enumerate(amounts, start=1):
        ctx.pause(0.3)
        yield from ctx.transfer(
            victim_account, mule_account, amount, LONDON,
            "T1537", "Exfiltration", label=f"Transfer {n}/{len(amounts)}",
        )


# --- 5. INSIDER THREAT ---

def insider_threat(ctx) -> Iterator[str]:
    insider = ctx.require_user("user_003")
    victim_account = ctx.require_account_of("user_001")
    mule_account = ctx.require_account_of("user_mule")

    ctx.pause(0.4)
    yield "Phase 1: Legitimate login"
    login = ctx.login(insider, LEAKED_PASSWORDS[insider.id], MANILA_OFFICE)
    yield ctx.describe_login(login, MANILA_OFFICE)

    ctx.pause(0.5)
    yield "Phase 2: Abnormal data access (15 accounts in 2 min)"
    ctx.alert_pattern(
        f"Unusual data access: {insider.username} queried 15 accounts in 2 minutes",
        "medium", "T1530", "Collection",
        login_log_id=login.login_log_id,
    )

    ctx.pause(0.4)
    yield "Phase 3: Unauthorized transfers"
    amounts = (12000, 8500, 15000, 9800)
    for n, amount in enumerate(amounts, start=1):
        ctx.pause(0.25)
        yield from ctx.transfer(
            victim_account, mule_account, amount, MANILA_OFFICE,
            "T1078.004", "Privilege Escalation", label=f"Transfer {n}/{len(amounts)}",
        )

    ctx.pause(0.4)
    yield "Phase 4: Log tampering attempt detected"
    ctx.alert_pattern(
        f"Log tampering by {insider.username}. Audit integrity violation.",
        "critical", "T1070", "Defense Evasion",
    )


SCENARIOS: Dict[str, ScenarioInfo] = {
    "ato": ScenarioInfo(
        id="ato", name="Account Takeover", tag="ATO",
        description="Brute-force → credential stuffing → mule transfer",
        mitre_chain=["T1110", "T1078", "T1537"],
    ),
    "phishing": ScenarioInfo(
        id="phishing", name="Phishing Fraud", tag="PHISHING",
        description="Stolen creds → session hijack → extraction",
        mitre_chain=["T1566", "T1539", "T1537"],
    ),
    "aml": ScenarioInfo(
        id="aml", name="Money Laundering", tag="AML",
        description="Smurfing → layering → mule account",
        mitre_chain=["T1565"],
        attacker_holds_otp=True,  # the account holder is complicit
    ),
    "simswap": ScenarioInfo(
        id="simswap", name="SIM Swap", tag="SIM-SWAP",
        description="Social engineering → MFA bypass → extraction",
        mitre_chain=["T1111", "T1078", "T1537"],
        attacker_holds_otp=True,  # OTPs now arrive on the attacker's SIM
    ),
    "insider": ScenarioInfo(
        id="insider", name="Insider Threat", tag="INSIDER",
        description="Legit access → data recon → unauthorized transfers",
        mitre_chain=["T1078.004", "T1530", "T1070"],
    ),
}

SCRIPTS: Dict[str, Callable[..., Iterator[str]]] = {
    "ato": account_takeover,
    "phishing": phishing,
    "aml": money_laundering,
    "simswap": sim_swap,
    "insider": insider_threat,
}
