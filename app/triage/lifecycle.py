"""
Fix lifecycle: open -> fix_deployed -> resolved | failed.

`mark_fixed` is the administrative transition out of `open`. `evaluate` runs
once per cluster per digest pass and moves a deployed fix to its verdict once
the rollout window has elapsed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.triage.entities import Cluster, FixStatus, Severity, utcnow

logger = logging.getLogger(__name__)

DOWNGRADE_MAP = {
    Severity.P0: Severity.P2,
    Severity.P1: Severity.P3,
    Severity.P2: Severity.P3,
    Severity.P3: Severity.P3,
}

# reports_before_fix is averaged over a fixed one-week baseline
BASELINE_DAYS = 7


@dataclass(frozen=True)
class LifecycleTransition:
    cluster_id: str
    previous: FixStatus
    current: FixStatus
    avg_before: Optional[float] = None
    avg_after: Optional[float] = None


class FixLifecycleManager:
    def __init__(self, default_rollout_days: int = 7, success_ratio: float = 0.2):
        self.default_rollout_days = default_rollout_days
        self.success_ratio = success_ratio

    @classmethod
    def from_config(cls, config) -> 'FixLifecycleManager':
        return cls(default_rollout_days=config.DEFAULT_ROLLOUT_DAYS, success_ratio=config.FIX_SUCCESS_RATIO)

    def mark_fixed(
        self,
        cluster: Cluster,
        deployed_version: Optional[str] = None,
        rollout_days: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Cluster:
        """Record a deployed fix and downgrade the cluster's working severity."""
        cluster.fix_status = FixStatus.FIX_DEPLOYED
        cluster.fix_deployed_date = now or utcnow()
        cluster.fix_deployed_version = deployed_version
        cluster.rollout_period_days = rollout_days or self.default_rollout_days
        cluster.original_severity = cluster.severity
        cluster.current_severity = DOWNGRADE_MAP.get(cluster.severity, Severity.P2)
        cluster.reports_before_fix = cluster.count
        cluster.reports_after_fix = 0
        cluster.fix_notes = notes

        logger.info(
            f"Cluster {cluster.id[:8]} marked fixed ({deployed_version or 'no version'}): "
            f"{cluster.original_severity.value} -> {cluster.current_severity.value}, "
            f"monitoring for {cluster.rollout_period_days} days"
        )
        return cluster

    def evaluate(self, cluster: Cluster, now: Optional[datetime] = None) -> Optional[LifecycleTransition]:
        """Advance a deployed fix by at most one step.

        Returns the transition when the status changed, None otherwise.
        """
        if cluster.fix_status != FixStatus.FIX_DEPLOYED or cluster.fix_deployed_date is None:
            return None

        now = now or utcnow()
        days_since_fix = (now - cluster.fix_deployed_date).total_seconds() / 86400
        rollout_days = cluster.rollout_period_days or self.default_rollout_days

        if days_since_fix <= rollout_days:
            # Counts evaluation passes during rollout, not matched reports.
            cluster.reports_after_fix = (cluster.reports_after_fix or 0) + 1
            return None

        avg_before = (cluster.reports_before_fix or cluster.count) / BASELINE_DAYS
        avg_after = (cluster.reports_after_fix or 0) / rollout_days

        previous = cluster.fix_status
        if avg_after < avg_before * self.success_ratio:
            cluster.fix_status = FixStatus.RESOLVED
            logger.info(
                f"Fix for cluster {cluster.id[:8]} resolved: "
                f"{avg_before:.2f}/day -> {avg_after:.2f}/day"
            )
        else:
            cluster.fix_status = FixStatus.FAILED
            cluster.current_severity = cluster.original_severity or cluster.severity
            logger.warning(
                f"Fix for cluster {cluster.id[:8]} failed: "
                f"{avg_before:.2f}/day -> {avg_after:.2f}/day, re-escalating to {cluster.current_severity.value}"
            )

        return LifecycleTransition(
            cluster_id=cluster.id,
            previous=previous,
            current=cluster.fix_status,
            avg_before=avg_before,
            avg_after=avg_after,
        )
