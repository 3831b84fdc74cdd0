"""
End-to-end tests for the triage engine against an in-memory store
"""

from datetime import timedelta

import pytest

from app.nlp.intelligence import IntelligenceService
from app.triage.engine import TriageEngine
from app.triage.entities import Category, Severity
from tests.fakes import DIMENSION, FailingClassifier, FailingEmbedder, FakeEmbedder

CRASH = "App crashes on resume"
FORCE_CLOSE = "App force closes when returning from background"
PRAISE = "Love the new update"

VECTORS = {
    CRASH: [1.0, 0.0, 0.0],
    FORCE_CLOSE: [0.9, 0.43589, 0.0],
    PRAISE: [0.0, 0.0, 1.0],
}


@pytest.fixture
def embedder():
    return FakeEmbedder(VECTORS)


@pytest.fixture
def engine(store, intelligence):
    return TriageEngine(store, intelligence)


def _by_representative(clusters):
    return {cluster.representative_text: cluster for cluster in clusters}


def test_similar_reports_merge_and_praise_stays_single(engine, make_item, now):
    items = [make_item(CRASH), make_item(FORCE_CLOSE), make_item(PRAISE)]

    result = engine.run_batch(items, now)

    clusters = _by_representative(result.clusters)
    assert len(result.clusters) == 2
    assert clusters[CRASH].count == 2
    assert clusters[CRASH].category == Category.CRASH
    assert clusters[PRAISE].count == 1
    assert result.processed == 3
    assert result.merged == [clusters[CRASH].id]
    assert result.degraded == []


def test_classification_runs_once_per_item(engine, classifier, make_item, now):
    engine.run_batch([make_item(CRASH), make_item(FORCE_CLOSE), make_item(PRAISE)], now)
    assert sorted(classifier.calls) == sorted([CRASH, FORCE_CLOSE, PRAISE])


def test_classification_failures_degrade_but_still_cluster(store, embedder, make_item, now):
    failing = FailingClassifier()
    intelligence = IntelligenceService(failing, embedder, dimension=DIMENSION, timeout=5)
    engine = TriageEngine(store, intelligence)
    items = [make_item(CRASH), make_item(FORCE_CLOSE)]

    result = engine.run_batch(items, now)

    assert failing.calls == 2
    assert len(result.clusters) == 1
    assert result.clusters[0].count == 2
    # rule-based fallback classification
    assert result.clusters[0].severity == Severity.P0
    assert sorted(result.degraded) == sorted(item.id for item in items)


def test_without_any_intelligence_text_heuristics_cluster(store, make_item, now):
    intelligence = IntelligenceService(FailingClassifier(), FailingEmbedder(), dimension=DIMENSION, timeout=5)
    engine = TriageEngine(store, intelligence)

    result = engine.run_batch(
        [make_item("App crashes on resume"), make_item("Crash after background resume")], now
    )

    assert len(result.clusters) == 1
    assert result.clusters[0].count == 2
    assert not result.clusters[0].centroid.any()


def test_second_pass_over_same_items_changes_nothing(engine, store, make_item, now):
    items = [make_item(CRASH), make_item(FORCE_CLOSE), make_item(PRAISE)]
    engine.run_batch(items, now)

    second = engine.run_batch(items, now + timedelta(minutes=5))

    assert second.processed == 0
    assert sorted(second.skipped) == sorted(item.id for item in items)
    counts = sorted(cluster.count for cluster in second.clusters)
    assert counts == [1, 2]



def test_rerun_on_unstored_items_stores_them_and_counts_once(engine, store, make_item, now):
    items = [make_item(CRASH), make_item(FORCE_CLOSE)]
    assert all(store.get_feedback(item.id) is None for item in items)

    engine.run_batch(items, now)
    second = engine.run_batch(items, now + timedelta(minutes=5))

    assert [cluster.count for cluster in second.clusters] == [2]
    assert all(store.is_clustered(item.id) for item in items)
    assert store.get_feedback(items[0].id).content == CRASH


def test_duplicate_items_in_one_batch_are_counted_once(engine, make_item, now):
    item = make_item(CRASH)
    result = engine.run_batch([item, item], now)
    assert len(result.clusters) == 1
    assert result.clusters[0].count == 1


def test_user_specific_feedback_gets_its_own_cluster(engine, embedder, make_item, now):
    personal = "My subscription was cancelled without notice"
    embedder.vectors[personal] = [1.0, 0.0, 0.0]

    result = engine.run_batch([make_item(CRASH), make_item(personal), make_item(FORCE_CLOSE)], now)

    clusters = _by_representative(result.clusters)
    assert clusters[personal].count == 1
    assert clusters[personal].title == 'payment - Individual Support'
    assert clusters[CRASH].count == 2


def test_items_are_processed_oldest_first(engine, make_item, now):
    newer = make_item(FORCE_CLOSE, timestamp=now - timedelta(minutes=5))
    older = make_item(CRASH, timestamp=now - timedelta(hours=2))

    result = engine.run_batch([newer, older], now)

    assert len(result.clusters) == 1
    cluster = result.clusters[0]
    assert cluster.representative_id == older.id
    assert cluster.first_seen == older.timestamp
    assert cluster.last_seen == newer.timestamp


def test_existing_clusters_outside_lookback_are_ignored(engine, store, make_item, make_cluster, now):
    stale = make_cluster(CRASH, count=3, last_seen=now - timedelta(days=30))
    store.upsert_cluster(stale)

    result = engine.run_batch([make_item(FORCE_CLOSE)], now)

    assert stale.id not in [cluster.id for cluster in result.clusters]
    assert len(result.created) == 1
    assert store.get_cluster(stale.id).count == 3


def test_existing_active_cluster_absorbs_new_report(engine, store, make_item, make_cluster, now):
    active = make_cluster(CRASH, count=3, last_seen=now - timedelta(hours=6))
    store.upsert_cluster(active)

    clusters = engine.process_batch([make_item(FORCE_CLOSE)], now)

    assert len(clusters) == 1
    assert clusters[0].id == active.id
    assert store.get_cluster(active.id).count == 4
