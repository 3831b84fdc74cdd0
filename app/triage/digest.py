"""
Digest assembler: partitions scored clusters into the digest buckets.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

from app.nlp.heuristics import is_positive_feedback
from app.triage.entities import Cluster, Digest, DigestEntry, FixStatus, utcnow

logger = logging.getLogger(__name__)

LEVELS = ('P0', 'P1', 'P2', 'P3')


def _ranked(clusters: Iterable[Cluster]) -> list[Cluster]:
    return sorted(clusters, key=lambda c: c.priority_score, reverse=True)


class DigestAssembler:
    def __init__(
        self,
        level_for: Callable[[float], str],
        max_issues: int = 15,
        individual_limit: int = 10,
        is_positive: Callable[[str], bool] = is_positive_feedback,
    ):
        self.level_for = level_for
        self.max_issues = max_issues
        self.individual_limit = individual_limit
        self.is_positive = is_positive

    @classmethod
    def from_config(cls, config, level_for: Callable[[float], str]) -> 'DigestAssembler':
        return cls(
            level_for=level_for,
            max_issues=config.DIGEST_MAX_ISSUES,
            individual_limit=config.INDIVIDUAL_SUPPORT_LIMIT,
        )

    def _entries(self, clusters: Iterable[Cluster]) -> list[DigestEntry]:
        return [
            DigestEntry(priority_score=c.priority_score, priority_level=self.level_for(c.priority_score), cluster=c)
            for c in clusters
        ]

    def assemble(
        self,
        clusters: Iterable[Cluster],
        feedback_count: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Digest:
        """Build a digest from clusters whose priority_score is already set."""
        clusters = list(clusters)
        visible = [c for c in clusters if c.fix_status != FixStatus.RESOLVED]

        general = [c for c in visible if c.count > 1]
        singles = [c for c in visible if c.count == 1]
        positive = [c for c in singles if self.is_positive(c.representative_text)]
        individual = [c for c in singles if not self.is_positive(c.representative_text)]

        new_issues = _ranked(
            c for c in general if c.fix_status in (FixStatus.OPEN, None)
        )[:self.max_issues]
        seen = {c.id for c in new_issues}
        monitoring = _ranked(
            c for c in general if c.fix_status == FixStatus.FIX_DEPLOYED and c.id not in seen
        )
        failed = _ranked(
            c for c in general if c.fix_status == FixStatus.FAILED and c.id not in seen
        )

        digest = Digest(
            id=str(uuid.uuid4()),
            generated_at=now or utcnow(),
            new_issues=self._entries(new_issues),
            monitoring=self._entries(monitoring),
            failed_fixes=self._entries(failed),
            individual_support=self._entries(_ranked(individual)[:self.individual_limit]),
            positive_feedback=self._entries(_ranked(positive)),
        )
        digest.summary = self.summarize(clusters, len(general), len(individual), feedback_count)

        logger.info(
            f"Assembled digest {digest.id[:8]}: {len(digest.new_issues)} new, "
            f"{len(digest.monitoring)} monitoring, {len(digest.failed_fixes)} failed, "
            f"{len(digest.individual_support)} individual, {len(digest.positive_feedback)} positive"
        )
        return digest

    def summarize(
        self,
        clusters: list[Cluster],
        general_count: int,
        individual_count: int,
        feedback_count: Optional[int],
    ) -> str:
        levels = [self.level_for(c.priority_score) for c in clusters]
        counts = ', '.join(f"{levels.count(level)} {level}" for level in LEVELS)
        if feedback_count is None:
            feedback_count = sum(c.count for c in clusters)
        return (
            f"{general_count} general issues and {individual_count} individual support cases "
            f"from {feedback_count} feedback items. {counts} priorities."
        )
