"""
Detection metrics: rule engine vs ML model, and SOC dashboard counters.

Ground truth caveat:
    There are no independent fraud labels in the sandbox. `ml_confusion`
    scores the ML model against the rule engine's `is_flagged`, so
    "precision" here means "agreement with the rules", not "fraud caught".
    This is kept on purpose so the two detectors can be compared; do not
    read these numbers as real-world detection quality.

Percentages are on a 0-100 scale, as the dashboard shows them.
"""
from typing import Dict, Iterable

import numpy as np
import pandas as pd

from fraud_sandbox.ledger.schema import FraudAlert, Transaction
from fraud_sandbox.scoring.ml import ML_THRESHOLD


PREDICTION_BUCKETS = [0.0, 0.1, 0.3, 0.5, 0.7, 0.9, 1.0]
PREDICTION_LABELS = ["0-10%", "11-30%", "31-50%", "51-70%", "71-90%", "91-100%"]

RISK_BUCKETS = [-1, 20, 40, 60, 80, 100]
RISK_LABELS = ["0-20", "21-40", "41-60", "61-80", "81-100"]


def transactions_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    rows = [
        {
            "id": t.id,
            "status": t.status,
            "amount": float(t.amount),
            "risk_score": t.risk_score,
            "is_flagged": t.is_flagged,
            "ml_prediction": t.ml_prediction,
            "review_status": t.review_status,
            "attack_scenario": t.attack_scenario,
        }
        for t in transactions
    ]
    columns = ["id", "status", "amount", "risk_score", "is_flagged", "ml_prediction", "review_status", "attack_scenario"]
    return pd.DataFrame(rows, columns=columns)


def _pct(numerator: float, denominator: float) -> float:
    return float(numerator / denominator * 100) if denominator > 0 else 0.0


def ml_confusion(transactions: Iterable[Transaction], threshold: float = ML_THRESHOLD) -> Dict:
    """
    Confusion matrix of the ML model against the rule engine.

    Returns:
        Dict with true/false positives/negatives, accuracy, precision,
        recall, f1 (0-100), the rule-vs-ML agreement breakdown and the
        prediction histogram.
    """
    df = transactions_frame(transactions)
    df = df[df["ml_prediction"].notna()]

    ml_pos = df["ml_prediction"].astype(float).to_numpy() > threshold
    rule_pos = df["is_flagged"].astype(bool).to_numpy()

    tp = int(np.sum(ml_pos & rule_pos))
    fp = int(np.sum(ml_pos & ~rule_pos))
    tn = int(np.sum(~ml_pos & ~rule_pos))
    fn = int(np.sum(~ml_pos & rule_pos))
    total = tp + fp + tn + fn

    precision = _pct(tp, tp + fp)
    recall = _pct(tp, tp + fn)
    f1 = (2 * precision * recall) / (precision + recall) if (precision + recall) > 0 else 0.0

    buckets = pd.cut(
        df["ml_prediction"].astype(float),
        bins=PREDICTION_BUCKETS,
        labels=PREDICTION_LABELS,
        include_lowest=True,
    )
    histogram = buckets.value_counts().reindex(PREDICTION_LABELS, fill_value=0)

    return {
        "threshold": threshold,
        "total": total,
        "true_positives": tp,
        "false_positives": fp,
        "true_negatives": tn,
        "false_negatives": fn,
        "accuracy": _pct(tp + tn, total),
        "precision": precision,
        "recall": recall,
        "f1_score": float(f1),
        "both_flagged": tp,
        "only_rule_flagged": fn,
        "only_ml_flagged": fp,
        "prediction_buckets": {label: int(n) for label, n in histogram.items()},
    }


def dashboard_metrics(transactions: Iterable[Transaction], alerts: Iterable[FraudAlert]) -> Dict:
    """
    SOC dashboard counters. Analyst verdicts define true/false positives:
    a flagged transaction the analyst denied is a true positive, one the
    analyst approved is a false positive.
    """
    df = transactions_frame(transactions)
    alert_df = pd.DataFrame(
        [{"status": a.status, "severity": a.severity, "type": a.type} for a in alerts],
        columns=["status", "severity", "type"],
    )

    flagged = df[df["is_flagged"].astype(bool)] if len(df) else df
    true_positives = int((flagged["review_status"] == "denied").sum())
    false_positives = int((flagged["review_status"] == "approved").sum())

    risk_hist = pd.cut(df["risk_score"].astype(float), bins=RISK_BUCKETS, labels=RISK_LABELS)
    risk_hist = risk_hist.value_counts().reindex(RISK_LABELS, fill_value=0)

    return {
        "total_transactions": int(len(df)),
        "flagged_transactions": int(len(flagged)),
        "blocked_transactions": int((df["status"] == "blocked").sum()),
        "total_alerts": int(len(alert_df)),
        "open_alerts": int((alert_df["status"] == "open").sum()),
        "resolved_alerts": int((alert_df["status"] == "resolved").sum()),
        "false_positive_alerts": int((alert_df["status"] == "false_positive").sum()),
        "true_positives": true_positives,
        "false_positives": false_positives,
        "detection_rate": _pct(true_positives, max(len(flagged), 1)),
        "average_risk": float(np.mean(df["risk_score"])) if len(df) else 0.0,
        "alerts_by_severity": {
            s: int((alert_df["severity"] == s).sum()) for s in ("critical", "high", "medium", "low")
        },
        "alerts_by_type": {
            t: int((alert_df["type"] == t).sum()) for t in ("transaction", "login", "pattern")
        },
        "risk_distribution": {label: int(n) for label, n in risk_hist.items()},
    }
