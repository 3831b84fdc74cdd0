import logging
import math
from datetime import datetime
from typing import Optional

from app.triage.entities import Cluster, FixStatus, PriorityResult, Severity, utcnow

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {
    'severity': 0.55,
    'frequency': 0.25,
    'recency': 0.10,
    'sentiment': 0.10,
}

DEFAULT_THRESHOLDS = {
    'P0': 70.0,
    'P1': 50.0,
    'P2': 30.0,
}

SEVERITY_SCORES = {
    Severity.P0: 100.0,
    Severity.P1: 75.0,
    Severity.P2: 50.0,
    Severity.P3: 25.0,
}


def effective_severity(cluster: Cluster) -> Severity:
    """Severity used for ranking, accounting for fix state."""
    if cluster.fix_status == FixStatus.FIX_DEPLOYED and cluster.current_severity:
        return cluster.current_severity
    if cluster.fix_status == FixStatus.FAILED:
        return cluster.original_severity or cluster.severity
    return cluster.severity


class PriorityScorer:
    """Weighted blend of severity, frequency, recency and negativity (0-100)."""

    def __init__(self, weights: Optional[dict] = None, thresholds: Optional[dict] = None):
        self.weights = dict(DEFAULT_WEIGHTS, **(weights or {}))
        self.thresholds = dict(DEFAULT_THRESHOLDS, **(thresholds or {}))

    @classmethod
    def from_config(cls, config) -> 'PriorityScorer':
        return cls(weights=config.PRIORITY_WEIGHTS, thresholds=config.PRIORITY_THRESHOLDS)

    def score(self, cluster: Cluster, now: Optional[datetime] = None) -> PriorityResult:
        now = now or utcnow()
        severity = effective_severity(cluster)

        components = {
            'severity': self._calculate_severity(severity),
            'frequency': self._calculate_frequency(cluster.count),
            'recency': self._calculate_recency(cluster.last_seen, now),
            'sentiment': self._calculate_negativity(cluster.sentiment_score),
        }
        total = sum(self.weights[name] * value for name, value in components.items())

        return PriorityResult(
            score=total,
            level=self.level_for(total),
            effective_severity=severity,
            components=components,
        )

    def level_for(self, score: float) -> str:
        if score >= self.thresholds['P0']:
            return 'P0'
        if score >= self.thresholds['P1']:
            return 'P1'
        if score >= self.thresholds['P2']:
            return 'P2'
        return 'P3'

    def _calculate_severity(self, severity) -> float:
        return SEVERITY_SCORES.get(Severity.parse(severity), 50.0)

    def _calculate_frequency(self, count: int) -> float:
        # logarithmic: the 2nd report matters far more than the 200th
        return min(100.0, math.log10(max(count, 0) + 1) * 50)

    def _calculate_recency(self, last_seen: datetime, now: datetime) -> float:
        hours = max(0.0, (now - last_seen).total_seconds() / 3600)
        return max(0.0, 100.0 - hours * 2)

    def _calculate_negativity(self, sentiment_score: Optional[float]) -> float:
        if sentiment_score is None:
            sentiment_score = 0.5
        return 100.0 - sentiment_score * 100
