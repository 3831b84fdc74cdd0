import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from app.notify.formatter import format_morning_digest
from app.triage.digest import DigestAssembler
from app.triage.engine import TriageEngine
from app.triage.entities import FixStatus, utcnow
from app.triage.exceptions import StorageException
from app.triage.lifecycle import FixLifecycleManager
from app.triage.scoring import PriorityScorer
from app.triage.summarizer import ClusterSummarizer
from config.config import Config

logger = logging.getLogger(__name__)


@dataclass
class DigestRunResult:
    success: bool
    stage: str
    message: str
    details: dict = field(default_factory=dict)
    degraded: bool = False
    aborted: bool = False

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'stage': self.stage,
            'message': self.message,
            'details': self.details,
            'degraded': self.degraded,
            'aborted': self.aborted,
        }


class DigestWorker:
    def __init__(self, store, intelligence, notifier, config=Config):
        """Initialize the digest worker."""
        self.store = store
        self.notifier = notifier
        self.config = config

        self.engine = TriageEngine.from_config(config, store, intelligence)
        self.lifecycle = FixLifecycleManager.from_config(config)
        self.scorer = PriorityScorer.from_config(config)
        self.summarizer = ClusterSummarizer()
        self.assembler = DigestAssembler.from_config(config, self.scorer.level_for)

    def generate_digest(self, now: Optional[datetime] = None) -> DigestRunResult:
        """Run one digest pass end to end and report where it stopped."""
        now = now or utcnow()
        stage = 'load'
        try:
            items = self.store.load_unprocessed_feedback()
            if not items:
                logger.info("No unprocessed feedbacks for digest")
                return DigestRunResult(success=False, stage=stage, message='No unprocessed feedbacks for digest')
            logger.info(f"Processing {len(items)} feedbacks for digest...")

            stage = 'cluster'
            batch = self.engine.run_batch(items, now)
            clusters = batch.clusters
            degraded = bool(batch.degraded)
            if degraded:
                logger.warning(f"Classification/embedding degraded for {len(batch.degraded)} feedbacks")

            stage = 'lifecycle'
            for cluster in clusters:
                if cluster.fix_status != FixStatus.FIX_DEPLOYED:
                    continue
                self.lifecycle.evaluate(cluster, now)
                self.store.upsert_cluster(cluster)

            stage = 'score'
            for cluster in clusters:
                cluster.priority_score = self.scorer.score(cluster, now).score
                self.summarizer.apply(cluster)
                self.store.upsert_cluster(cluster)

            stage = 'assemble'
            digest = self.assembler.assemble(clusters, feedback_count=len(items), now=now)

            stage = 'format'
            message = format_morning_digest(
                digest,
                now=now,
                tz_name=self.config.DIGEST_TIMEZONE,
                feedback_lookup=self.store.get_feedback,
                feedback_count=len(items),
            )

            stage = 'save'
            self.store.save_digest(digest, message)

            details = {
                'feedbacksProcessed': len(items),
                'clustersCreated': len(batch.created),
                'clustersMerged': len(batch.merged),
                'topIssues': len(digest.top_issues),
                'digestId': digest.id,
                'degradedFeedbacks': len(batch.degraded),
            }

            stage = 'deliver'
            result = self.notifier.send(message)
            if not result.ok:
                logger.error(f"Failed to send digest {digest.id[:8]}: {result.error}")
                details.update(messageLength=len(message), telegramError=result.error or 'Unknown error')
                return DigestRunResult(
                    success=False,
                    stage=stage,
                    message='Digest generated but failed to send to Telegram',
                    details=details,
                    degraded=degraded,
                )

            stage = 'finalize'
            self.store.mark_digest_sent(digest.id)
            self.store.mark_processed(item.id for item in items)

        except StorageException as e:
            logger.error(f"Digest generation aborted at stage '{stage}': {e.message}")
            return DigestRunResult(
                success=False,
                stage=stage,
                message=f"Digest generation aborted: storage failure during {stage}",
                details={'error': e.message, **e.details},
                aborted=True,
            )

        message = 'Digest generated and sent to Telegram'
        if degraded:
            message += ' (classification degraded, lower confidence)'
        logger.info("Morning digest generation complete")
        return DigestRunResult(success=True, stage='done', message=message, details=details, degraded=degraded)
