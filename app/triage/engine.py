"""
Triage engine: folds a batch of feedback items into the cluster set.

Classification and embedding run concurrently through the intelligence
service; matching and cluster mutation are strictly sequential, one item at
a time in arrival order, against the shared in-memory cluster list.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from app.nlp.intelligence import IntelligenceService
from app.triage.aggregator import ClusterAggregator, ClusterStore
from app.triage.entities import Cluster, FeedbackItem, utcnow
from app.triage.matcher import SimilarityMatcher

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    clusters: list[Cluster] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    merged: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    degraded: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.created) + len(self.merged)


class TriageEngine:
    def __init__(
        self,
        store: ClusterStore,
        intelligence: IntelligenceService,
        matcher: Optional[SimilarityMatcher] = None,
        lookback_days: int = 7,
    ):
        self.store = store
        self.intelligence = intelligence
        self.matcher = matcher or SimilarityMatcher()
        self.aggregator = ClusterAggregator(store)
        self.lookback_days = lookback_days

    @classmethod
    def from_config(cls, config, store: ClusterStore, intelligence: IntelligenceService) -> 'TriageEngine':
        return cls(
            store,
            intelligence,
            matcher=SimilarityMatcher.from_config(config),
            lookback_days=config.CLUSTER_LOOKBACK_DAYS,
        )

    def process_batch(self, items: Iterable[FeedbackItem], now: Optional[datetime] = None) -> list[Cluster]:
        """Cluster `items`; returns every active cluster after the pass."""
        return self.run_batch(items, now).clusters

    def run_batch(self, items: Iterable[FeedbackItem], now: Optional[datetime] = None) -> BatchResult:
        now = now or utcnow()
        since = now - timedelta(days=self.lookback_days)
        clusters = self.store.load_active_clusters(since)
        result = BatchResult(clusters=clusters)
        logger.info(f"Loaded {len(clusters)} active clusters since {since.isoformat()}")

        pending = self._pending(items, result)
        if not pending:
            return result

        analyses = self.intelligence.analyze_batch(pending)

        for item in pending:
            analysis = analyses[item.id]
            if analysis.is_degraded:
                result.degraded.append(item.id)

            if self.matcher.user_specific(item.content):
                logger.info(f"User-specific feedback detected: {item.content[:60]}...")
                cluster = self.aggregator.create(
                    item, analysis.classification, analysis.embedding, individual=True
                )
                clusters.append(cluster)
                result.created.append(cluster.id)
                continue

            match = self.matcher.match(analysis.embedding, item.content, analysis.classification, clusters)
            if match is None:
                cluster = self.aggregator.create(item, analysis.classification, analysis.embedding)
                clusters.append(cluster)
                result.created.append(cluster.id)
            elif self.aggregator.merge(match.cluster, item, analysis.embedding):
                result.merged.append(match.cluster.id)
            else:
                result.skipped.append(item.id)

        logger.info(
            f"Batch complete: {len(result.created)} clusters created, {len(result.merged)} merges, "
            f"{len(result.skipped)} skipped, {len(result.degraded)} degraded"
        )
        return result

    def _pending(self, items: Iterable[FeedbackItem], result: BatchResult) -> list[FeedbackItem]:
        """Unique, not-yet-clustered items in arrival order."""
        seen = set()
        pending = []
        for item in sorted(items, key=lambda i: i.timestamp):
            if item.id in seen:
                continue
            seen.add(item.id)
            if self.store.is_clustered(item.id):
                result.skipped.append(item.id)
                continue
            pending.append(item)
        return pending
