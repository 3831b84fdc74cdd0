"""
Tests for the intelligence service fallbacks
"""

import threading
import time

import numpy as np
import pytest

from app.nlp.intelligence import IntelligenceService
from app.triage.entities import Category, Classification, Severity
from tests.fakes import DIMENSION, FailingClassifier, FailingEmbedder, FakeClassifier, FakeEmbedder


class BlockingClassifier:
    """Blocks until released, simulating a hung model call."""

    def __init__(self):
        self.release = threading.Event()

    def classify(self, text):
        self.release.wait(5)
        return Classification(category=Category.UI, severity=Severity.P3)


class BlockingEmbedder:
    def __init__(self):
        self.release = threading.Event()

    def embed_text(self, text):
        self.release.wait(5)
        return np.ones(DIMENSION)


class MalformedEmbedder:
    def embed_text(self, text):
        return np.ones((2, DIMENSION))


@pytest.fixture
def blocking():
    classifier = BlockingClassifier()
    yield classifier
    classifier.release.set()


@pytest.fixture
def hung_embedder():
    embedder = BlockingEmbedder()
    yield embedder
    embedder.release.set()


def test_analyze_batch_returns_one_analysis_per_item(intelligence, embedder, make_item):
    embedder.vectors["App crashes on resume"] = [1.0, 0.0, 0.0]
    items = [make_item("App crashes on resume"), make_item("Dashboard is slow")]

    analyses = intelligence.analyze_batch(items)

    assert set(analyses) == {item.id for item in items}
    crash = analyses[items[0].id]
    assert crash.classification.category == Category.CRASH
    np.testing.assert_allclose(crash.embedding, [1.0, 0.0, 0.0])
    assert not crash.is_degraded
    # unknown text embeds to zeros
    assert analyses[items[1].id].degraded == ['embedding']


def test_empty_batch(intelligence):
    assert intelligence.analyze_batch([]) == {}


def test_classifier_errors_use_rule_fallback(embedder, make_item):
    service = IntelligenceService(FailingClassifier(), embedder, dimension=DIMENSION, timeout=5)
    item = make_item("Login failed twice")

    analysis = service.analyze_batch([item])[item.id]

    assert analysis.classification.category == Category.LOGIN
    assert analysis.classification.reasoning == "Rule-based: login"
    assert 'classification' in analysis.degraded


def test_embedding_errors_use_zero_vector(classifier, make_item):
    service = IntelligenceService(classifier, FailingEmbedder(), dimension=DIMENSION, timeout=5)
    item = make_item("App crashes on resume")

    analysis = service.analyze_batch([item])[item.id]

    assert analysis.embedding.shape == (DIMENSION,)
    assert not analysis.embedding.any()
    assert analysis.degraded == ['embedding']


def test_malformed_embedding_is_replaced(classifier, make_item):
    service = IntelligenceService(classifier, MalformedEmbedder(), dimension=DIMENSION, timeout=5)
    item = make_item("App crashes on resume")

    analysis = service.analyze_batch([item])[item.id]

    assert analysis.embedding.shape == (DIMENSION,)
    assert analysis.degraded == ['embedding']


def test_classification_timeout_falls_back(blocking, make_item):
    embedder = FakeEmbedder({"App crashes on resume": [1.0, 0.0, 0.0]})
    service = IntelligenceService(blocking, embedder, dimension=DIMENSION, timeout=0.05)
    item = make_item("App crashes on resume")

    analysis = service.analyze_batch([item])[item.id]

    assert analysis.classification.category == Category.CRASH
    assert analysis.degraded == ['classification']


def test_timeout_covers_the_whole_batch(classifier, hung_embedder, make_item):
    service = IntelligenceService(classifier, hung_embedder, dimension=DIMENSION, timeout=0.2, max_workers=1)
    items = [make_item(f"App crashes {n}") for n in range(10)]

    started = time.monotonic()
    analyses = service.analyze_batch(items)
    elapsed = time.monotonic() - started

    assert elapsed < 1.0
    assert len(analyses) == 10
    assert all('embedding' in analysis.degraded for analysis in analyses.values())
    assert all(not analysis.embedding.any() for analysis in analyses.values())


def test_single_classify_times_out_to_rules(blocking):
    service = IntelligenceService(blocking, FakeEmbedder(), dimension=DIMENSION, timeout=0.05)
    result = service.classify("Payment page shows error")
    assert result.category == Category.PAYMENT


def test_single_classify_survives_exceptions():
    service = IntelligenceService(FailingClassifier(), FakeEmbedder(), dimension=DIMENSION)
    assert service.classify("App crashes").category == Category.CRASH


def test_dict_results_with_unknown_values_are_coerced(embedder, make_item):
    classifier = FakeClassifier({
        "Weird": {'category': 'spaceship', 'severity': 'P9', 'confidence': 'high'},
    })
    service = IntelligenceService(classifier, embedder, dimension=DIMENSION, timeout=5)
    item = make_item("Weird")

    classification = service.analyze_batch([item])[item.id].classification

    assert classification.category == Category.OTHER
    assert classification.severity == Severity.P2
    assert classification.confidence == 0.8
    assert classification.one_line_summary == "Weird"


def test_coerce_normalizes_case_and_clamps_confidence():
    classification = Classification.coerce({'category': 'CRASH', 'severity': 'p1', 'confidence': 3})
    assert classification.category == Category.CRASH
    assert classification.severity == Severity.P1
    assert classification.confidence == 1.0


def test_empty_classifier_result_counts_as_unavailable(embedder, make_item):
    class SilentClassifier:
        def classify(self, text):
            return None

    service = IntelligenceService(SilentClassifier(), embedder, dimension=DIMENSION, timeout=5)
    item = make_item("Dashboard is slow")

    analysis = service.analyze_batch([item])[item.id]

    assert analysis.classification.category == Category.PERFORMANCE
    assert 'classification' in analysis.degraded
