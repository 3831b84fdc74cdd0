"""
SQLAlchemy record store for feedback, clusters, memberships and digests.

Maps ORM rows to the triage entities and back. Every SQLAlchemyError is
rolled back and re-raised as StorageException.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.cluster import ClusterMember, ClusterRecord
from app.models.digest import DigestRecord, InstantAlert
from app.models.feedback import Feedback
from app.triage.entities import (
    Category,
    Classification,
    Cluster,
    Digest,
    FeedbackItem,
    FixStatus,
    Severity,
    Source,
    utcnow,
)
from app.triage.exceptions import StorageException

logger = logging.getLogger(__name__)


def _to_item(row: Feedback) -> FeedbackItem:
    return FeedbackItem(
        id=row.id,
        content=row.content,
        source=Source.parse(row.source, Source.SUPPORT),
        timestamp=row.timestamp,
        author=row.author,
        link=row.link,
    )


def _to_cluster(row: ClusterRecord) -> Cluster:
    sources = [Source.parse(s) for s in (row.top_sources or [])]
    return Cluster(
        id=row.id,
        title=row.title or '',
        category=Category.parse(row.category, Category.OTHER),
        severity=Severity.parse(row.severity, Severity.P2),
        centroid=row.centroid or [],
        count=row.count,
        first_seen=row.first_seen,
        last_seen=row.last_seen,
        representative_id=row.representative_feedback_id,
        representative_text=row.representative_feedback or '',
        sources=[s for s in sources if s is not None],
        summary=row.summary or '',
        suggested_action=row.suggested_action or '',
        user_impact=row.user_impact or '',
        priority_score=row.priority_score or 0.0,
        sentiment_score=row.sentiment_score if row.sentiment_score is not None else 0.5,
        fix_status=FixStatus.parse(row.fix_status, FixStatus.OPEN),
        fix_deployed_date=row.fix_deployed_date,
        fix_deployed_version=row.fix_deployed_version,
        rollout_period_days=row.rollout_period_days or 7,
        original_severity=Severity.parse(row.original_severity),
        current_severity=Severity.parse(row.current_severity),
        reports_before_fix=row.reports_before_fix,
        reports_after_fix=row.reports_after_fix,
        fix_notes=row.fix_notes,
    )


def _copy_cluster(cluster: Cluster, row: ClusterRecord) -> None:
    row.title = cluster.title
    row.category = cluster.category.value
    row.severity = cluster.severity.value
    row.centroid = [float(x) for x in cluster.centroid.tolist()] if cluster.centroid.ndim else []
    row.count = cluster.count
    row.first_seen = cluster.first_seen
    row.last_seen = cluster.last_seen
    row.representative_feedback_id = cluster.representative_id
    row.representative_feedback = cluster.representative_text
    row.top_sources = [source.value for source in cluster.sources]
    row.summary = cluster.summary
    row.suggested_action = cluster.suggested_action
    row.user_impact = cluster.user_impact
    row.priority_score = cluster.priority_score
    row.sentiment_score = cluster.sentiment_score
    row.fix_status = cluster.fix_status.value
    row.fix_deployed_date = cluster.fix_deployed_date
    row.fix_deployed_version = cluster.fix_deployed_version
    row.rollout_period_days = cluster.rollout_period_days
    row.original_severity = cluster.original_severity.value if cluster.original_severity else None
    row.current_severity = cluster.current_severity.value if cluster.current_severity else None
    row.reports_before_fix = cluster.reports_before_fix
    row.reports_after_fix = cluster.reports_after_fix
    row.fix_notes = cluster.fix_notes


class FeedbackStore:
    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _guarded(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Storage failure while trying to {action}: {e}")
            raise StorageException(f"Failed to {action}: {e}", details={'action': action}) from e

    # Feedback

    def add_feedback(self, item: FeedbackItem) -> bool:
        """Insert a feedback item. Returns False if the id already exists."""
        with self._guarded('store feedback'):
            if self.session.get(Feedback, item.id) is not None:
                logger.debug(f"Feedback {item.id} already stored, skipping")
                return False
            self.session.add(Feedback(
                id=item.id,
                content=item.content,
                source=item.source.value,
                timestamp=item.timestamp,
                author=item.author,
                link=item.link,
                processed=False,
                instant_alert_sent=False,
            ))
            self.session.commit()
            return True

    def get_feedback(self, feedback_id: str) -> Optional[FeedbackItem]:
        with self._guarded('load feedback'):
            row = self.session.get(Feedback, feedback_id)
            return _to_item(row) if row else None

    def load_unprocessed_feedback(self) -> list[FeedbackItem]:
        """Feedback not yet in a digest and not already sent as an instant alert."""
        with self._guarded('load unprocessed feedback'):
            rows = (
                self.session.query(Feedback)
                .filter(Feedback.processed.is_(False), Feedback.instant_alert_sent.is_(False))
                .order_by(Feedback.timestamp.asc())
                .all()
            )
            return [_to_item(row) for row in rows]

    def mark_processed(self, feedback_ids: Iterable[str]) -> int:
        ids = list(feedback_ids)
        if not ids:
            return 0
        with self._guarded('mark feedback processed'):
            updated = (
                self.session.query(Feedback)
                .filter(Feedback.id.in_(ids))
                .update({Feedback.processed: True}, synchronize_session=False)
            )
            self.session.commit()
            return updated

    def set_classification(self, feedback_id: str, classification: Classification) -> None:
        with self._guarded('store classification'):
            row = self.session.get(Feedback, feedback_id)
            if row is None:
                return
            row.classification_category = classification.category.value
            row.classification_severity = classification.severity.value
            row.classification_confidence = classification.confidence
            self.session.commit()

    def mark_alert_sent(self, feedback_id: str) -> None:
        with self._guarded('flag instant alert'):
            row = self.session.get(Feedback, feedback_id)
            if row is None:
                return
            row.instant_alert_sent = True
            self.session.commit()

    def record_instant_alert(
        self,
        feedback_id: str,
        classification: Classification,
        message: str,
        delivered: bool,
        error: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> str:
        alert_id = str(uuid.uuid4())
        with self._guarded('record instant alert'):
            self.session.add(InstantAlert(
                id=alert_id,
                feedback_id=feedback_id,
                severity=classification.severity.value,
                category=classification.category.value,
                message=message,
                sent_at=sent_at or utcnow(),
                delivered=delivered,
                error=error,
            ))
            self.session.commit()
        return alert_id

    # Clusters

    def load_active_clusters(self, since: datetime) -> list[Cluster]:
        """Clusters seen after `since`, plus every cluster still under fix rollout."""
        with self._guarded('load active clusters'):
            rows = (
                self.session.query(ClusterRecord)
                .filter(or_(
                    ClusterRecord.last_seen > since,
                    ClusterRecord.fix_status == FixStatus.FIX_DEPLOYED.value,
                ))
                .order_by(ClusterRecord.last_seen.desc())
                .all()
            )
            return [_to_cluster(row) for row in rows]

    def get_cluster(self, cluster_id: str) -> Optional[Cluster]:
        with self._guarded('load cluster'):
            row = self.session.get(ClusterRecord, cluster_id)
            return _to_cluster(row) if row else None

    def upsert_cluster(self, cluster: Cluster) -> None:
        with self._guarded('write cluster'):
            row = self.session.get(ClusterRecord, cluster.id)
            if row is None:
                row = ClusterRecord(id=cluster.id)
                self.session.add(row)
            _copy_cluster(cluster, row)
            self.session.commit()

    def add_membership(self, cluster_id: str, feedback_id: str) -> bool:
        """Record that an item belongs to a cluster. Existing pairs are a no-op."""
        if self.membership_exists(cluster_id, feedback_id):
            return False
        with self._guarded('record cluster membership'):
            try:
                self.session.add(ClusterMember(cluster_id=cluster_id, feedback_id=feedback_id))
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                # Only a concurrent insert of the same pair is benign
                if self.session.get(ClusterMember, (cluster_id, feedback_id)) is None:
                    raise
                logger.info(f"Membership ({cluster_id[:8]}, {feedback_id}) already recorded")
                return False
        return True

    def membership_exists(self, cluster_id: str, feedback_id: str) -> bool:
        with self._guarded('check cluster membership'):
            return self.session.get(ClusterMember, (cluster_id, feedback_id)) is not None

    def is_clustered(self, feedback_id: str) -> bool:
        with self._guarded('check cluster membership'):
            return (
                self.session.query(ClusterMember.cluster_id)
                .filter(ClusterMember.feedback_id == feedback_id)
                .first()
            ) is not None

    def first_member(self, cluster_id: str) -> Optional[FeedbackItem]:
        """Earliest member of a cluster, used for author/link details."""
        with self._guarded('load cluster members'):
            row = (
                self.session.query(Feedback)
                .join(ClusterMember, ClusterMember.feedback_id == Feedback.id)
                .filter(ClusterMember.cluster_id == cluster_id)
                .order_by(Feedback.timestamp.asc())
                .first()
            )
            return _to_item(row) if row else None

    def member_texts(self, cluster_id: str, limit: int = 5) -> list[str]:
        with self._guarded('load cluster members'):
            rows = (
                self.session.query(Feedback.content)
                .join(ClusterMember, ClusterMember.feedback_id == Feedback.id)
                .filter(ClusterMember.cluster_id == cluster_id)
                .order_by(Feedback.timestamp.asc())
                .limit(limit)
                .all()
            )
            return [row[0] for row in rows]

    # Digests

    def save_digest(self, digest: Digest, message: Optional[str] = None) -> None:
        with self._guarded('store digest'):
            self.session.add(DigestRecord(
                id=digest.id,
                generated_at=digest.generated_at,
                payload=digest.to_dict(),
                summary=digest.summary,
                message=message,
                sent_to_telegram=False,
            ))
            self.session.commit()

    def mark_digest_sent(self, digest_id: str) -> None:
        with self._guarded('flag digest sent'):
            row = self.session.get(DigestRecord, digest_id)
            if row is None:
                return
            row.sent_to_telegram = True
            self.session.commit()

    def latest_digest(self) -> Optional[dict]:
        with self._guarded('load latest digest'):
            row = self.session.query(DigestRecord).order_by(DigestRecord.generated_at.desc()).first()
            if row is None:
                return None
            payload = dict(row.payload or {})
            payload['sent_to_telegram'] = bool(row.sent_to_telegram)
            payload['message'] = row.message
            return payload

    def reset(self) -> dict:
        """Delete every stored record. Returns per-table delete counts."""
        with self._guarded('reset storage'):
            counts = {}
            for name, model in (
                ('cluster_members', ClusterMember),
                ('instant_alerts', InstantAlert),
                ('clusters', ClusterRecord),
                ('digests', DigestRecord),
                ('feedback', Feedback),
            ):
                counts[name] = self.session.query(model).delete(synchronize_session=False)
            self.session.commit()
            logger.warning(f"Storage reset: {counts}")
            return counts
