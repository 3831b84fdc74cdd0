"""
Intelligence service: classification + embedding per feedback item.

Calls go through a thread pool under one caller-side deadline per batch. Any failure or
timeout degrades to the rule-based classification and the zero vector, so
a batch is never aborted because a model is unavailable.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

from app.nlp.classifier import rule_based_classification
from app.triage.entities import Classification, FeedbackItem
from app.triage.exceptions import IntelligenceUnavailable

logger = logging.getLogger(__name__)


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())


@dataclass
class Analysis:
    classification: Classification
    embedding: np.ndarray
    degraded: list[str] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)


class IntelligenceService:
    def __init__(self, classifier, embedder, dimension: int = 1024, timeout: float = 10.0, max_workers: int = 4):
        self.classifier = classifier
        self.embedder = embedder
        self.dimension = dimension
        self.timeout = timeout
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_config(cls, config, classifier, embedder) -> 'IntelligenceService':
        return cls(
            classifier,
            embedder,
            dimension=config.EMBEDDING_DIMENSION,
            timeout=config.INTELLIGENCE_TIMEOUT,
            max_workers=config.INTELLIGENCE_WORKERS,
        )

    def zero_vector(self) -> np.ndarray:
        return np.zeros(self.dimension)

    def _classify(self, text: str) -> Classification:
        result = self.classifier.classify(text)
        if result is None:
            raise IntelligenceUnavailable("Classifier returned no result")
        return Classification.coerce(result, text)

    def _embed(self, text: str) -> np.ndarray:
        result = self.embedder.embed_text(text)
        if result is None:
            raise IntelligenceUnavailable("Embedder returned no vector")
        embedding = np.asarray(result, dtype=float)
        if embedding.ndim != 1:
            raise IntelligenceUnavailable(f"Embedder returned shape {embedding.shape}")
        return embedding

    def _finish(self, text: str, classification=None, embedding=None, degraded=None) -> Analysis:
        degraded = list(degraded or [])
        if classification is None:
            classification = rule_based_classification(text)
        if embedding is None or embedding.ndim != 1 or not np.any(embedding):
            if 'embedding' not in degraded:
                degraded.append('embedding')
            embedding = self.zero_vector()
        return Analysis(classification=classification, embedding=embedding, degraded=degraded)

    def classify(self, text: str) -> Classification:
        """Classification only, under the same timeout and fallback as a batch."""
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            return executor.submit(self._classify, text).result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning("Classification timed out, using rule-based result")
        except Exception as e:
            logger.warning(f"Classification failed, using rule-based result: {e}")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return rule_based_classification(text)

    def analyze_batch(self, items: Iterable[FeedbackItem]) -> dict[str, Analysis]:
        """Analyze every item concurrently; one Analysis per item id."""
        items = list(items)
        if not items:
            return {}

        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            # One deadline covers every future in the batch
            deadline = time.monotonic() + self.timeout
            futures = {
                item.id: (executor.submit(self._classify, item.content), executor.submit(self._embed, item.content))
                for item in items
            }
            results = {}
            for item in items:
                if item.id in results:
                    continue
                classify_future, embed_future = futures[item.id]
                classification = embedding = None
                degraded = []

                try:
                    classification = classify_future.result(timeout=_remaining(deadline))
                except FutureTimeout:
                    logger.warning(f"Classification timed out for feedback {item.id}, using rule-based result")
                    degraded.append('classification')
                except Exception as e:
                    logger.warning(f"Classification failed for feedback {item.id}, using rule-based result: {e}")
                    degraded.append('classification')

                try:
                    embedding = embed_future.result(timeout=_remaining(deadline))
                except FutureTimeout:
                    logger.warning(f"Embedding timed out for feedback {item.id}, using zero vector")
                    degraded.append('embedding')
                except Exception as e:
                    logger.warning(f"Embedding failed for feedback {item.id}, using zero vector: {e}")
                    degraded.append('embedding')

                results[item.id] = self._finish(item.content, classification, embedding, degraded)
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
