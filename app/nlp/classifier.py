import logging
import threading
from typing import Dict, List, Optional

from app.triage.entities import Category, Classification, Severity

logger = logging.getLogger(__name__)

# Zero-shot hypothesis labels and the category each one maps to
ZERO_SHOT_LABELS = {
    "app crash": Category.CRASH,
    "login or authentication problem": Category.LOGIN,
    "payment or billing problem": Category.PAYMENT,
    "slow performance": Category.PERFORMANCE,
    "user interface or design issue": Category.UI,
    "feature request": Category.FEATURE_REQUEST,
    "software bug": Category.BUG,
    "general comment": Category.OTHER,
}

# Severity assumed for a category when the model picks a different one than the rules
CATEGORY_SEVERITY = {
    Category.CRASH: Severity.P0,
    Category.LOGIN: Severity.P1,
    Category.PAYMENT: Severity.P1,
    Category.PERFORMANCE: Severity.P2,
    Category.UI: Severity.P3,
    Category.FEATURE_REQUEST: Severity.P3,
    Category.BUG: Severity.P2,
    Category.OTHER: Severity.P2,
}

RULE_CONFIDENCE = 0.7


def _has_any(text: str, *needles: str) -> bool:
    return any(needle in text for needle in needles)


def rule_based_classification(text: str) -> Classification:
    """Deterministic keyword classification; also the fallback for model failures."""
    lower = (text or '').lower()
    category, severity = Category.OTHER, Severity.P2

    if _has_any(lower, 'crash', "won't open", 'stuck'):
        category, severity = Category.CRASH, Severity.P0
    elif _has_any(lower, 'login', 'sign in', 'otp'):
        category = Category.LOGIN
        severity = Severity.P0 if _has_any(lower, 'critical', 'urgent') else Severity.P1
    elif _has_any(lower, 'payment', 'billing', 'charged', 'subscription'):
        category, severity = Category.PAYMENT, Severity.P1
    elif _has_any(lower, 'slow', 'lag', 'performance'):
        category, severity = Category.PERFORMANCE, Severity.P2
    elif _has_any(lower, 'dark mode', 'ui', 'ux', 'navigation'):
        category, severity = Category.UI, Severity.P3
    elif _has_any(lower, 'feature request', 'would love', 'add'):
        category, severity = Category.FEATURE_REQUEST, Severity.P3
    elif _has_any(lower, 'error', 'bug', 'broken'):
        category, severity = Category.BUG, Severity.P2
    elif _has_any(lower, 'rate limit', '429'):
        category, severity = Category.PERFORMANCE, Severity.P2
    elif _has_any(lower, 'docs', 'documentation'):
        category, severity = Category.OTHER, Severity.P3

    return Classification(
        category=category,
        severity=severity,
        confidence=RULE_CONFIDENCE,
        one_line_summary=(text or '')[:100],
        reasoning=f"Rule-based: {category.value}",
    )


class FeedbackClassifier:
    def __init__(
        self,
        model_name: str = "facebook/bart-large-mnli",
        use_model: bool = False,
        use_gpu: bool = False,
        min_confidence: float = 0.5,
    ):
        """
        Initialize the feedback classifier.
        Rules always run; a zero-shot model refines the category when enabled.
        The model is loaded on first use.
        """
        self.model_name = model_name
        self.use_model = use_model
        self.use_gpu = use_gpu
        self.min_confidence = min_confidence
        self._classifier = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> 'FeedbackClassifier':
        return cls(model_name=config.CLASSIFIER_MODEL, use_model=config.USE_ZERO_SHOT)

    def _build_pipeline(self):
        import torch
        from transformers import pipeline

        device = 0 if self.use_gpu and torch.cuda.is_available() else -1
        return pipeline("zero-shot-classification", model=self.model_name, device=device)

    def _load_pipeline(self):
        if self._classifier is None:
            with self._lock:
                if self._classifier is None:
                    self._classifier = self._build_pipeline()
                    logger.info(f"Initialized zero-shot classifier with {self.model_name}")
        return self._classifier

    def classify_zero_shot(self, text: str, candidate_labels: Optional[List[str]] = None) -> Dict:
        """Raw zero-shot scores for the candidate labels."""
        if not candidate_labels:
            candidate_labels = list(ZERO_SHOT_LABELS)

        result = self._load_pipeline()(text, candidate_labels, multi_label=False)
        return {
            "labels": result["labels"],
            "scores": result["scores"],
            "text": text
        }

    def classify(self, text: str) -> Classification:
        """Classify feedback text. Never raises for model problems."""
        quick = rule_based_classification(text)
        logger.debug(f"Quick classification: {quick.category.value} / {quick.severity.value}")

        if not self.use_model or not text or not text.strip():
            return quick

        try:
            result = self.classify_zero_shot(text)
        except Exception as e:
            logger.warning(f"Zero-shot classification failed, using rule-based result: {e}")
            return quick

        if not result["labels"]:
            return quick

        label, score = result["labels"][0], float(result["scores"][0])
        category = ZERO_SHOT_LABELS.get(label)
        if category is None or score < self.min_confidence:
            return quick

        severity = quick.severity if category == quick.category else CATEGORY_SEVERITY[category]
        return Classification(
            category=category,
            severity=severity,
            confidence=score,
            one_line_summary=text[:100],
            reasoning=f"Model: {category.value} / {severity.value}",
        )
