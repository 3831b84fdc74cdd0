"""
Tests for the feedback classifier and the text embedder
"""

import threading
import time

import numpy as np
import pytest

from app.nlp.classifier import FeedbackClassifier, rule_based_classification
from app.nlp.embedder import TextEmbedder
from app.nlp.intelligence import IntelligenceService
from app.triage.entities import Category, Severity
from tests.fakes import FakeClassifier


@pytest.mark.parametrize('text, category, severity', [
    ("App crashes on launch", Category.CRASH, Severity.P0),
    ("Stuck on the splash screen", Category.CRASH, Severity.P0),
    ("Login is broken, urgent", Category.LOGIN, Severity.P0),
    ("Can't sign in with Google", Category.LOGIN, Severity.P1),
    ("I was charged twice", Category.PAYMENT, Severity.P1),
    ("Dashboard is slow", Category.PERFORMANCE, Severity.P2),
    ("Navigation is confusing", Category.UI, Severity.P3),
    ("Would love CSV export", Category.FEATURE_REQUEST, Severity.P3),
    ("Found a bug in export", Category.BUG, Severity.P2),
    ("Hitting the rate limit constantly", Category.PERFORMANCE, Severity.P2),
    ("The docs are outdated", Category.OTHER, Severity.P3),
    ("Hello there", Category.OTHER, Severity.P2),
])
def test_rule_based_classification(text, category, severity):
    result = rule_based_classification(text)
    assert result.category == category
    assert result.severity == severity
    assert result.confidence == 0.7
    assert result.one_line_summary == text


def test_classifier_without_model_uses_rules():
    classifier = FeedbackClassifier(use_model=False)
    result = classifier.classify("App crashes on launch")
    assert result.category == Category.CRASH
    assert classifier._classifier is None


def _fake_pipeline(label, score):
    def pipeline(text, labels, multi_label=False):
        others = [candidate for candidate in labels if candidate != label]
        return {'labels': [label] + others, 'scores': [score] + [0.0] * len(others)}
    return pipeline


def test_zero_shot_refines_category():
    classifier = FeedbackClassifier(use_model=True)
    classifier._classifier = _fake_pipeline("feature request", 0.82)

    result = classifier.classify("Dashboard is slow, please add caching")

    assert result.category == Category.FEATURE_REQUEST
    assert result.severity == Severity.P3
    assert result.confidence == pytest.approx(0.82)


def test_zero_shot_keeps_rule_severity_when_categories_agree():
    classifier = FeedbackClassifier(use_model=True)
    classifier._classifier = _fake_pipeline("login or authentication problem", 0.9)

    result = classifier.classify("Login is broken, urgent")

    assert result.category == Category.LOGIN
    assert result.severity == Severity.P0


def test_low_confidence_model_result_is_ignored():
    classifier = FeedbackClassifier(use_model=True, min_confidence=0.5)
    classifier._classifier = _fake_pipeline("app crash", 0.3)

    result = classifier.classify("Dashboard is slow")

    assert result.category == Category.PERFORMANCE
    assert result.confidence == 0.7


def test_model_failure_falls_back_to_rules():
    def broken(text, labels, multi_label=False):
        raise RuntimeError("CUDA out of memory")

    classifier = FeedbackClassifier(use_model=True)
    classifier._classifier = broken

    result = classifier.classify("App crashes on launch")

    assert result.category == Category.CRASH
    assert result.reasoning == "Rule-based: crash"


class FakeModel:
    def __init__(self, output=None, error=None):
        self.output = output
        self.error = error

    def encode(self, texts, convert_to_numpy=True):
        if self.error:
            raise self.error
        return self.output


def test_embedder_returns_model_vector():
    embedder = TextEmbedder(dimension=3)
    embedder._model = FakeModel(output=np.array([0.1, 0.2, 0.3], dtype=np.float32))

    np.testing.assert_allclose(embedder.embed_text("App crashes"), [0.1, 0.2, 0.3], rtol=1e-6)


@pytest.mark.parametrize('model, text', [
    (FakeModel(error=RuntimeError("model not downloaded")), "App crashes"),
    (FakeModel(output=np.ones((2, 3))), "App crashes"),
    (FakeModel(output=np.ones(3)), "   "),
])
def test_embedder_degrades_to_zero_vector(model, text):
    embedder = TextEmbedder(dimension=3)
    embedder._model = model

    vector = embedder.embed_text(text)

    assert vector.shape == (3,)
    assert not vector.any()


def test_embed_batch_failure_gives_zero_rows():
    embedder = TextEmbedder(dimension=4)
    embedder._model = FakeModel(error=RuntimeError("boom"))

    assert embedder.embed_batch(["a", "b"]).shape == (2, 4)
    assert embedder.embed_batch([]).shape == (0, 4)


class SlowBuilder:
    """Counts model constructions; each one takes a while."""

    def __init__(self, model):
        self.model = model
        self.builds = 0

    def __call__(self):
        self.builds += 1
        time.sleep(0.2)
        return self.model


def test_embedding_model_is_built_once_across_worker_threads(make_item):
    embedder = TextEmbedder(dimension=3)
    builder = SlowBuilder(FakeModel(output=np.array([1.0, 0.0, 0.0])))
    embedder._build_model = builder
    service = IntelligenceService(FakeClassifier(), embedder, dimension=3, timeout=5, max_workers=4)

    analyses = service.analyze_batch([make_item(f"App crashes {n}") for n in range(8)])

    assert builder.builds == 1
    assert all(not analysis.is_degraded for analysis in analyses.values())


def test_zero_shot_pipeline_is_built_once_across_threads():
    classifier = FeedbackClassifier(use_model=True)
    builder = SlowBuilder(_fake_pipeline("app crash", 0.9))
    classifier._build_pipeline = builder

    threads = [threading.Thread(target=classifier.classify, args=("App crashes",)) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert builder.builds == 1
