"""
Triage domain entities.

Plain Python objects shared by the clustering, scoring, lifecycle and digest
code. Storage rows are mapped to and from these in app.models.store.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import numpy as np


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _ParseableEnum(str, Enum):
    """String enum that tolerates unknown values from collaborators."""

    @classmethod
    def parse(cls, value: Any, default=None):
        if isinstance(value, cls):
            return value
        if value is None:
            return default
        try:
            return cls(cls._normalize(str(value)))
        except ValueError:
            return default

    @staticmethod
    def _normalize(value: str) -> str:
        return value.strip().lower()


class Source(_ParseableEnum):
    SUPPORT = 'support'
    DISCORD = 'discord'
    GITHUB = 'github'
    EMAIL = 'email'
    TWITTER = 'twitter'


class Category(_ParseableEnum):
    CRASH = 'crash'
    LOGIN = 'login'
    PAYMENT = 'payment'
    PERFORMANCE = 'performance'
    UI = 'ui'
    FEATURE_REQUEST = 'feature_request'
    BUG = 'bug'
    OTHER = 'other'


class Severity(_ParseableEnum):
    P0 = 'P0'
    P1 = 'P1'
    P2 = 'P2'
    P3 = 'P3'

    @staticmethod
    def _normalize(value: str) -> str:
        return value.strip().upper()

    @property
    def rank(self) -> int:
        """0 for P0 (most urgent) through 3 for P3."""
        return int(self.value[1])


class FixStatus(_ParseableEnum):
    OPEN = 'open'
    FIX_DEPLOYED = 'fix_deployed'
    RESOLVED = 'resolved'
    FAILED = 'failed'
    WONT_FIX = 'wont_fix'


@dataclass(frozen=True)
class FeedbackItem:
    """A single piece of user feedback. Never mutated after ingestion."""
    id: str
    content: str
    source: Source
    timestamp: datetime
    author: Optional[str] = None
    link: Optional[str] = None


@dataclass
class Classification:
    """Category/severity assigned to a feedback item."""
    category: Category = Category.OTHER
    severity: Severity = Severity.P2
    confidence: float = 0.7
    one_line_summary: str = ''
    reasoning: str = ''

    def __post_init__(self):
        self.category = Category.parse(self.category, Category.OTHER)
        self.severity = Severity.parse(self.severity, Severity.P2)
        try:
            confidence = float(self.confidence)
        except (TypeError, ValueError):
            confidence = 0.8
        if math.isnan(confidence):
            confidence = 0.8
        self.confidence = max(0.0, min(1.0, confidence))

    @classmethod
    def coerce(cls, payload: Any, text: str = '') -> 'Classification':
        """Build a Classification from whatever a classifier returned.

        Accepts a Classification, a dict or any object exposing the same
        attribute names. Missing or unknown values fall back to other/P2.
        """
        if isinstance(payload, Classification):
            return payload
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            payload = {
                key: getattr(payload, key)
                for key in ('category', 'severity', 'confidence', 'one_line_summary', 'reasoning')
                if hasattr(payload, key)
            }
        return cls(
            category=payload.get('category'),
            severity=payload.get('severity'),
            confidence=payload.get('confidence', 0.8),
            one_line_summary=payload.get('one_line_summary') or text[:100],
            reasoning=payload.get('reasoning') or '',
        )


@dataclass
class Cluster:
    """A deduplicated group of feedback items describing one issue."""
    id: str
    category: Category
    severity: Severity
    centroid: np.ndarray
    count: int
    first_seen: datetime
    last_seen: datetime
    representative_id: str
    representative_text: str
    sources: list[Source] = field(default_factory=list)
    title: str = ''
    summary: str = ''
    suggested_action: str = ''
    user_impact: str = ''
    priority_score: float = 0.0
    sentiment_score: float = 0.5

    # Fix tracking
    fix_status: FixStatus = FixStatus.OPEN
    fix_deployed_date: Optional[datetime] = None
    fix_deployed_version: Optional[str] = None
    rollout_period_days: int = 7
    original_severity: Optional[Severity] = None
    current_severity: Optional[Severity] = None
    reports_before_fix: Optional[int] = None
    reports_after_fix: Optional[int] = None
    fix_notes: Optional[str] = None

    def __post_init__(self):
        self.centroid = np.asarray(self.centroid, dtype=float)

    @property
    def dimension(self) -> int:
        return int(self.centroid.shape[0]) if self.centroid.ndim else 0

    def to_dict(self, include_centroid: bool = False) -> dict:
        data = {
            'cluster_id': self.id,
            'title': self.title,
            'category': self.category.value,
            'severity': self.severity.value,
            'count': self.count,
            'first_seen': self.first_seen.isoformat(),
            'last_seen': self.last_seen.isoformat(),
            'representative_feedback': self.representative_text,
            'top_sources': [source.value for source in self.sources],
            'summary': self.summary,
            'suggested_action': self.suggested_action,
            'user_impact': self.user_impact,
            'priority_score': self.priority_score,
            'sentiment_score': self.sentiment_score,
            'fix_status': self.fix_status.value,
            'fix_deployed_date': self.fix_deployed_date.isoformat() if self.fix_deployed_date else None,
            'fix_deployed_version': self.fix_deployed_version,
            'rollout_period_days': self.rollout_period_days,
            'original_severity': self.original_severity.value if self.original_severity else None,
            'current_severity': self.current_severity.value if self.current_severity else None,
            'reports_before_fix': self.reports_before_fix,
            'reports_after_fix': self.reports_after_fix,
            'fix_notes': self.fix_notes,
        }
        if include_centroid:
            data['centroid'] = self.centroid.tolist()
            data['representative_feedback_id'] = self.representative_id
        return data


@dataclass(frozen=True)
class PriorityResult:
    score: float
    level: str
    effective_severity: Severity
    components: dict = field(default_factory=dict)


@dataclass
class DigestEntry:
    priority_score: float
    priority_level: str
    cluster: Cluster

    def to_dict(self) -> dict:
        return {
            'priority_score': self.priority_score,
            'priority_level': self.priority_level,
            'cluster': self.cluster.to_dict(),
        }


@dataclass
class Digest:
    """Ranked output of one digest pass."""
    id: str
    generated_at: datetime
    new_issues: list[DigestEntry] = field(default_factory=list)
    monitoring: list[DigestEntry] = field(default_factory=list)
    failed_fixes: list[DigestEntry] = field(default_factory=list)
    individual_support: list[DigestEntry] = field(default_factory=list)
    positive_feedback: list[DigestEntry] = field(default_factory=list)
    summary: str = ''

    @property
    def top_issues(self) -> list[DigestEntry]:
        """New issues (capped) followed by monitoring and failed fixes."""
        return self.new_issues + self.monitoring + self.failed_fixes

    def to_dict(self) -> dict:
        return {
            'digest_id': self.id,
            'generated_at': self.generated_at.isoformat(),
            'top_issues': [entry.to_dict() for entry in self.top_issues],
            'new_issues': [entry.to_dict() for entry in self.new_issues],
            'monitoring': [entry.to_dict() for entry in self.monitoring],
            'failed_fixes': [entry.to_dict() for entry in self.failed_fixes],
            'individual_support': [entry.to_dict() for entry in self.individual_support],
            'positive_feedback': [entry.to_dict() for entry in self.positive_feedback],
            'summary': self.summary,
        }
