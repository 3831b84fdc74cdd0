import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from app.nlp.classifier import rule_based_classification
from app.nlp.heuristics import match_p0_keywords
from app.notify.formatter import format_instant_alert
from app.triage.entities import Classification, FeedbackItem, Severity, Source, utcnow
from app.triage.exceptions import DuplicateFeedback, InvalidFeedback
from config.config import DEFAULT_P0_KEYWORDS

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> datetime:
    if value is None or value == '':
        return utcnow()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError as e:
        raise InvalidFeedback(f"Invalid timestamp: {value}") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_feedback(payload: dict) -> FeedbackItem:
    """Build a FeedbackItem from an ingestion payload."""
    if not isinstance(payload, dict):
        raise InvalidFeedback("Feedback payload must be a JSON object")

    content = (payload.get('content') or '').strip()
    if not content:
        raise InvalidFeedback("Feedback content is required")

    source = Source.parse(payload.get('source'))
    if source is None:
        raise InvalidFeedback(
            f"Unknown source '{payload.get('source')}'",
            details={'allowed': [s.value for s in Source]},
        )

    return FeedbackItem(
        id=str(payload.get('id') or uuid.uuid4()),
        content=content,
        source=source,
        timestamp=_parse_timestamp(payload.get('timestamp')),
        author=payload.get('user') or payload.get('author'),
        link=payload.get('link'),
    )


@dataclass
class AlertDecision:
    feedback_id: str
    should_alert: bool
    classification: Classification
    sent: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.feedback_id,
            'message': 'Feedback received',
            'instant_alert': 'sent' if self.sent else (
                'failed' if self.should_alert else 'queued for morning digest'
            ),
            'severity': self.classification.severity.value,
            'category': self.classification.category.value,
            'confidence': self.classification.confidence,
            'error': self.error,
        }


class AlertWorker:
    def __init__(
        self,
        store,
        intelligence,
        notifier,
        p0_keywords: Iterable[str] = DEFAULT_P0_KEYWORDS,
        min_p1_confidence: float = 0.7,
    ):
        """Initialize the instant alert worker."""
        self.store = store
        self.intelligence = intelligence
        self.notifier = notifier
        self.p0_keywords = list(p0_keywords)
        self.min_p1_confidence = min_p1_confidence

    @classmethod
    def from_config(cls, config, store, intelligence, notifier) -> 'AlertWorker':
        return cls(store, intelligence, notifier, p0_keywords=config.P0_KEYWORDS)

    def triage(self, item: FeedbackItem) -> tuple[bool, Classification]:
        """Two layers: hard P0 keywords, then classification."""
        matched = match_p0_keywords(item.content, self.p0_keywords)
        if matched:
            # Keyword hits skip the model; rules only supply the category
            logger.info(f"P0 keywords matched: {', '.join(matched)}")
            quick = rule_based_classification(item.content)
            classification = Classification(
                category=quick.category,
                severity=Severity.P0,
                confidence=1.0,
                one_line_summary=quick.one_line_summary,
                reasoning=f"P0 keywords matched: {', '.join(matched)}",
            )
            return True, classification

        classification = self.intelligence.classify(item.content)
        should_alert = classification.severity == Severity.P0 or (
            classification.severity == Severity.P1 and classification.confidence >= self.min_p1_confidence
        )
        return should_alert, classification

    def handle_feedback(self, payload: dict, now: Optional[datetime] = None) -> AlertDecision:
        """Store one posted feedback item and send an instant alert when warranted."""
        item = parse_feedback(payload)
        if not self.store.add_feedback(item):
            # The stored row keeps its original content
            raise DuplicateFeedback(item.id)

        should_alert, classification = self.triage(item)
        self.store.set_classification(item.id, classification)
        decision = AlertDecision(feedback_id=item.id, should_alert=should_alert, classification=classification)

        if not should_alert:
            logger.info(f"Feedback {item.id} queued for morning digest ({classification.severity.value})")
            return decision

        message = format_instant_alert(item, classification, now)
        result = self.notifier.send(message)
        decision.sent = result.ok
        decision.error = result.error
        self.store.record_instant_alert(
            item.id, classification, message, delivered=result.ok, error=result.error, sent_at=now
        )

        if result.ok:
            # Alerted items stay out of the digest
            self.store.mark_alert_sent(item.id)
            logger.info(f"Instant alert sent for feedback {item.id} ({classification.severity.value})")
        else:
            logger.error(f"Instant alert failed for feedback {item.id}: {result.error}")
        return decision
