"""
Cluster aggregator: creates clusters and folds matched items into them.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Protocol, Sequence

import numpy as np

from app.triage.entities import Classification, Cluster, FeedbackItem

logger = logging.getLogger(__name__)


class ClusterStore(Protocol):
    """Record store operations the triage core depends on."""

    def add_feedback(self, item: FeedbackItem) -> bool: ...

    def load_active_clusters(self, since: datetime) -> list[Cluster]: ...

    def upsert_cluster(self, cluster: Cluster) -> None: ...

    def add_membership(self, cluster_id: str, feedback_id: str) -> bool: ...

    def membership_exists(self, cluster_id: str, feedback_id: str) -> bool: ...

    def is_clustered(self, feedback_id: str) -> bool: ...


def cluster_title(classification: Classification, individual: bool = False) -> str:
    category = classification.category.value
    if individual:
        return f"{category} - Individual Support"
    return f"{category[:1].upper()}{category[1:]} Issue"


def running_mean(centroid: np.ndarray, embedding: np.ndarray, count: int) -> np.ndarray:
    """Incremental mean after `count` members, the newest being `embedding`."""
    return (centroid * (count - 1) + embedding) / count


class ClusterAggregator:
    def __init__(self, store: ClusterStore):
        self.store = store

    def create(
        self,
        item: FeedbackItem,
        classification: Classification,
        embedding: Sequence[float],
        individual: bool = False,
    ) -> Cluster:
        """Start a new single-member cluster for `item`."""
        cluster = Cluster(
            id=str(uuid.uuid4()),
            title=cluster_title(classification, individual),
            category=classification.category,
            severity=classification.severity,
            centroid=np.array(embedding, dtype=float),
            count=1,
            first_seen=item.timestamp,
            last_seen=item.timestamp,
            representative_id=item.id,
            representative_text=item.content,
            sources=[item.source],
        )
        # Membership rows reference the stored feedback row
        self.store.add_feedback(item)
        self.store.upsert_cluster(cluster)
        self.store.add_membership(cluster.id, item.id)
        logger.info(f"Created cluster {cluster.id[:8]} ({cluster.title}) for feedback {item.id}")
        return cluster

    def merge(self, cluster: Cluster, item: FeedbackItem, embedding: Optional[Sequence[float]]) -> bool:
        """Fold `item` into `cluster`. Returns False if it was already a member."""
        if self.store.membership_exists(cluster.id, item.id):
            logger.info(f"Feedback {item.id} already in cluster {cluster.id[:8]}, skipping")
            return False

        cluster.count += 1
        cluster.last_seen = max(cluster.last_seen, item.timestamp)
        if item.source not in cluster.sources:
            cluster.sources.append(item.source)

        vector = np.asarray(embedding if embedding is not None else [], dtype=float)
        if vector.shape == cluster.centroid.shape:
            cluster.centroid = running_mean(cluster.centroid, vector, cluster.count)
        else:
            logger.warning(
                f"Embedding length mismatch for cluster {cluster.id}: "
                f"{vector.shape[0] if vector.ndim else 0} != {cluster.dimension}, centroid unchanged"
            )

        self.store.add_feedback(item)
        self.store.upsert_cluster(cluster)
        self.store.add_membership(cluster.id, item.id)
        return True
