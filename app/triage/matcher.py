"""
Similarity matcher: decides which existing cluster (if any) a new feedback
item belongs to.

Embedding similarity is tried first. When the embedding is the zero vector
(intelligence unavailable) or nothing clears the threshold, text heuristics
take over so clustering degrades gracefully instead of producing singletons.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from app.nlp.heuristics import (
    DEFAULT_PHRASE_LIBRARY,
    PhraseLibrary,
    is_user_specific,
    significant_words,
)
from app.triage.entities import Classification, Cluster
from app.triage.scoring import effective_severity

logger = logging.getLogger(__name__)


def is_valid_embedding(vector) -> bool:
    """False for empty vectors and the all-zero 'no embedding' sentinel."""
    if vector is None:
        return False
    array = np.asarray(vector, dtype=float)
    return array.size > 0 and bool(np.any(array != 0))


def cosine_similarity(a, b) -> float:
    """dot(a, b) / (|a| * |b|); 0.0 on length mismatch, zero norm or NaN."""
    if a is None or b is None:
        return 0.0
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    if vec_a.size == 0 or vec_b.size == 0 or vec_a.shape != vec_b.shape:
        return 0.0

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    if np.isnan(similarity):
        return 0.0
    return similarity


def is_user_specific_cluster(cluster: Cluster, predicate: Callable[[str], bool] = is_user_specific) -> bool:
    return cluster.count == 1 and predicate(cluster.representative_text)


@dataclass(frozen=True)
class MatchResult:
    cluster: Cluster
    method: str  # 'embedding', 'phrase' or 'keyword'
    similarity: Optional[float] = None
    evidence: tuple = ()


class SimilarityMatcher:
    def __init__(
        self,
        threshold: float = 0.86,
        phrase_library: PhraseLibrary = DEFAULT_PHRASE_LIBRARY,
        user_specific: Callable[[str], bool] = is_user_specific,
    ):
        self.threshold = threshold
        self.phrase_library = phrase_library
        self.user_specific = user_specific

    @classmethod
    def from_config(cls, config) -> 'SimilarityMatcher':
        return cls(threshold=config.SIMILARITY_THRESHOLD)

    def candidates(self, clusters: Sequence[Cluster]) -> list[Cluster]:
        """Clusters that may take part in matching, in the caller's order."""
        return [c for c in clusters if not is_user_specific_cluster(c, self.user_specific)]

    def match(
        self,
        embedding,
        text: str,
        classification: Optional[Classification],
        clusters: Sequence[Cluster],
    ) -> Optional[MatchResult]:
        if self.user_specific(text):
            return None

        candidates = self.candidates(clusters)
        if not candidates:
            return None

        result = None
        if is_valid_embedding(embedding):
            result = self.match_embedding(embedding, candidates)
        if result is None:
            result = self.match_text(text, classification, candidates)
        return result

    def match_embedding(self, embedding, candidates: Sequence[Cluster]) -> Optional[MatchResult]:
        for cluster in candidates:
            if not is_valid_embedding(cluster.centroid):
                continue
            similarity = cosine_similarity(embedding, cluster.centroid)
            logger.debug(f"Similarity with cluster {cluster.id[:8]}: {similarity:.3f}")
            if similarity > self.threshold:
                logger.info(f"Matched cluster {cluster.id[:8]} by embedding (similarity: {similarity:.3f})")
                return MatchResult(cluster=cluster, method='embedding', similarity=similarity)
        return None

    def match_text(
        self,
        text: str,
        classification: Optional[Classification],
        candidates: Sequence[Cluster],
    ) -> Optional[MatchResult]:
        phrases = self.phrase_library.extract(text)
        words = None

        for cluster in candidates:
            common_phrases = phrases & self.phrase_library.extract(cluster.representative_text)
            if common_phrases:
                logger.info(f"Matched cluster {cluster.id[:8]} by phrases: {', '.join(sorted(common_phrases))}")
                return MatchResult(cluster=cluster, method='phrase', evidence=tuple(sorted(common_phrases)))

            if classification is None:
                continue
            if cluster.category != classification.category or effective_severity(cluster) != classification.severity:
                continue

            if words is None:
                words = significant_words(text)
            common_words = words & significant_words(cluster.representative_text)
            if common_words:
                logger.info(f"Matched cluster {cluster.id[:8]} by keywords: {', '.join(sorted(common_words))}")
                return MatchResult(cluster=cluster, method='keyword', evidence=tuple(sorted(common_words)))

        return None
