"""
Fraud alert lifecycle.

    open -> investigating -> resolved | false_positive
    open -> resolved | false_positive

resolved and false_positive are terminal. Review actions also write the
analyst's verdict onto the linked transaction, and `freeze` freezes every
account of the transaction's sender.
"""
import logging
from datetime import datetime
from typing import List, Literal, Optional, Tuple

from fraud_sandbox.errors import NotFoundError, ValidationError
from fraud_sandbox.ledger.schema import FraudAlert, LoginLog, Severity, Transaction
from fraud_sandbox.ledger.store import IdGenerator, Ledger


logger = logging.getLogger(__name__)

ReviewAction = Literal["approve", "deny", "escalate", "false_positive", "freeze"]
REVIEW_ACTIONS = ("approve", "deny", "escalate", "false_positive", "freeze")

TERMINAL_STATUSES = ("resolved", "false_positive")

# action -> (alert status, linked transaction review_status)
REVIEW_TRANSITIONS = {
    "approve": ("resolved", "approved"),
    "deny": ("resolved", "denied"),
    "escalate": ("investigating", "escalated"),
    "false_positive": ("false_positive", "approved"),
    "freeze": ("resolved", None),
}

ANALYST = "Analyst"
SENIOR_ANALYST = "Senior Analyst"


def severity_for_risk(risk_score: int) -> Severity:
    if risk_score >= 80:
        return "critical"
    elif risk_score >= 60:
        return "high"
    elif risk_score >= 40:
        return "medium"
    return "low"


class AlertManager:

    def __init__(self, ids: IdGenerator):
        self.ids = ids
        self.alerts: List[FraudAlert] = []

    def get(self, alert_id: str) -> FraudAlert:
        for alert in self.alerts:
            if alert.id == alert_id:
                return alert
        raise NotFoundError(f"Alert {alert_id} not found")

    def _append(self, **fields) -> FraudAlert:
        alert = FraudAlert(id=self.ids.next("alert"), **fields)
        self.alerts.append(alert)
        logger.info(f"🚨 {alert.severity.upper()} {alert.type} alert {alert.id}: {alert.description}")
        return alert

    def raise_transaction_alert(
            self,
            txn: Transaction,
            description: Optional[str] = None,
            severity: Optional[Severity] = None,
            mitre_id: Optional[str] = None,
            mitre_tactic: Optional[str] = None) -> FraudAlert:

        if description is None:
            description = f"Suspicious transfer: ₱{txn.amount:,.2f} | {', '.join(txn.fraud_reasons)}"
        return self._append(
            transaction_id=txn.id,
            type="transaction",
            severity=severity or severity_for_risk(txn.risk_score),
            description=description,
            timestamp=txn.timestamp,
            mitre_id=mitre_id,
            mitre_tactic=mitre_tactic,
        )

    def raise_login_alert(
            self,
            log: LoginLog,
            severity: Severity,
            description: str,
            mitre_id: str = "T1078",
            mitre_tactic: str = "Initial Access") -> FraudAlert:

        return self._append(
            login_log_id=log.id,
            type="login",
            severity=severity,
            description=description,
            timestamp=log.timestamp,
            mitre_id=mitre_id,
            mitre_tactic=mitre_tactic,
        )

    def raise_pattern_alert(
            self,
            description: str,
            severity: Severity,
            when: datetime,
            mitre_id: Optional[str] = None,
            mitre_tactic: Optional[str] = None,
            transaction_id: Optional[str] = None,
            login_log_id: Optional[str] = None) -> FraudAlert:

        return self._append(
            transaction_id=transaction_id,
            login_log_id=login_log_id,
            type="pattern",
            severity=severity,
            description=description,
            timestamp=when,
            mitre_id=mitre_id,
            mitre_tactic=mitre_tactic,
        )

    def review(
            self,
            alert_id: str,
            action: str,
            ledger: Ledger,
            note: Optional[str] = None) -> Tuple[FraudAlert, List[str]]:
        """
        Apply an analyst action. Returns the alert and the account numbers
        frozen by the action (empty unless action == "freeze").
        """
        if action not in REVIEW_TRANSITIONS:
            raise ValidationError(f"Unknown review action '{action}' (allowed: {', '.join(REVIEW_ACTIONS)})")

        alert = self.get(alert_id)
        if alert.status in TERMINAL_STATUSES:
            raise ValidationError(f"Alert {alert_id} is already {alert.status}")

        status, review_status = REVIEW_TRANSITIONS[action]
        reviewer = SENIOR_ANALYST if action == "escalate" else ANALYST

        alert.status = status
        alert.assigned_to = reviewer

        frozen: List[str] = []
        if alert.transaction_id:
            txn = ledger.get_transaction(alert.transaction_id)
            assert txn is not None, f"Alert {alert.id} links to missing transaction"
            if review_status is not None:
                ledger.record_review(txn.id, review_status, reviewer, note or action)
            if action == "freeze":
                frozen = ledger.freeze_accounts(txn.from_user_id)

        return alert, frozen
