"""
Tests for the SQLAlchemy feedback store
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.models.store import FeedbackStore
from app.triage.entities import Classification, Digest, FixStatus, Severity, Source
from app.triage.exceptions import StorageException


def test_feedback_round_trip_keeps_utc(store, make_item, now):
    item = make_item("App crashes", source=Source.GITHUB, author="octo", link="https://github.com/x/y/issues/1")

    assert store.add_feedback(item) is True
    loaded = store.get_feedback(item.id)

    assert loaded == item
    assert loaded.timestamp.utcoffset() == timedelta(0)


def test_duplicate_feedback_is_not_inserted(store, make_item):
    item = make_item("App crashes")
    assert store.add_feedback(item) is True
    assert store.add_feedback(item) is False


def test_unprocessed_feedback_excludes_processed_and_alerted(store, make_item, now):
    late = make_item("Second", timestamp=now - timedelta(minutes=5))
    early = make_item("First", timestamp=now - timedelta(hours=3))
    processed = make_item("Done")
    alerted = make_item("Alerted")
    for item in (late, early, processed, alerted):
        store.add_feedback(item)
    store.mark_processed([processed.id])
    store.mark_alert_sent(alerted.id)

    pending = store.load_unprocessed_feedback()

    assert [item.id for item in pending] == [early.id, late.id]


def test_mark_processed_with_no_ids(store):
    assert store.mark_processed([]) == 0


def test_cluster_round_trip(store, make_cluster, now):
    cluster = make_cluster(
        count=4,
        sources=[Source.SUPPORT, Source.DISCORD],
        fix_status=FixStatus.FIX_DEPLOYED,
        fix_deployed_date=now - timedelta(days=2),
        original_severity=Severity.P0,
        current_severity=Severity.P2,
        reports_before_fix=4,
        reports_after_fix=1,
    )
    store.upsert_cluster(cluster)

    loaded = store.get_cluster(cluster.id)

    assert loaded.count == 4
    assert loaded.sources == [Source.SUPPORT, Source.DISCORD]
    assert loaded.fix_status == FixStatus.FIX_DEPLOYED
    assert loaded.fix_deployed_date == cluster.fix_deployed_date
    assert loaded.current_severity == Severity.P2
    assert loaded.centroid.tolist() == [1.0, 0.0, 0.0]
    assert loaded.last_seen.utcoffset() == timedelta(0)


def test_active_clusters_include_deployed_fixes_outside_lookback(store, make_cluster, now):
    recent = make_cluster(last_seen=now - timedelta(hours=1))
    stale = make_cluster(last_seen=now - timedelta(days=20))
    rollout = make_cluster(last_seen=now - timedelta(days=20), fix_status=FixStatus.FIX_DEPLOYED)
    for cluster in (recent, stale, rollout):
        store.upsert_cluster(cluster)

    active = store.load_active_clusters(now - timedelta(days=7))

    assert [cluster.id for cluster in active][0] == recent.id
    assert {cluster.id for cluster in active} == {recent.id, rollout.id}


def test_membership_is_idempotent(store, make_cluster, make_item):
    cluster = make_cluster()
    item = make_item("App crashes")
    store.upsert_cluster(cluster)
    store.add_feedback(item)

    assert store.add_membership(cluster.id, item.id) is True
    assert store.add_membership(cluster.id, item.id) is False
    assert store.membership_exists(cluster.id, item.id)
    assert store.is_clustered(item.id)
    assert not store.is_clustered("missing")


def test_membership_for_unstored_feedback_is_an_error(store, make_cluster):
    cluster = make_cluster()
    store.upsert_cluster(cluster)

    with pytest.raises(StorageException) as excinfo:
        store.add_membership(cluster.id, "never-stored")

    assert excinfo.value.details == {'action': 'record cluster membership'}
    assert not store.is_clustered("never-stored")


def test_sqlite_engine_enforces_foreign_keys(db_engine):
    with db_engine.connect() as connection:
        assert connection.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1


def test_member_lookups(store, make_cluster, make_item, now):
    cluster = make_cluster()
    store.upsert_cluster(cluster)
    second = make_item("Crash again", author="b", timestamp=now - timedelta(minutes=10))
    first = make_item("Crash first", author="a", timestamp=now - timedelta(hours=2))
    for item in (second, first):
        store.add_feedback(item)
        store.add_membership(cluster.id, item.id)

    assert store.first_member(cluster.id).author == "a"
    assert store.member_texts(cluster.id) == ["Crash first", "Crash again"]


def test_classification_and_instant_alert_records(store, make_item, db_session):
    from app.models.digest import InstantAlert
    from app.models.feedback import Feedback

    item = make_item("Payment failed")
    store.add_feedback(item)
    classification = Classification(category='payment', severity='P0', confidence=1.0)

    store.set_classification(item.id, classification)
    alert_id = store.record_instant_alert(item.id, classification, "alert", delivered=False, error="offline")

    row = db_session.get(Feedback, item.id)
    assert row.classification_category == 'payment'
    assert row.classification_severity == 'P0'
    alert = db_session.get(InstantAlert, alert_id)
    assert alert.delivered is False
    assert alert.error == "offline"


def test_latest_digest_and_sent_flag(store, now):
    older = Digest(id='digest-old', generated_at=now - timedelta(days=1), summary="old")
    newer = Digest(id='digest-new', generated_at=now, summary="new")
    store.save_digest(older, "<b>old</b>")
    store.save_digest(newer, "<b>new</b>")
    store.mark_digest_sent(newer.id)

    latest = store.latest_digest()

    assert latest['digest_id'] == 'digest-new'
    assert latest['summary'] == "new"
    assert latest['message'] == "<b>new</b>"
    assert latest['sent_to_telegram'] is True


def test_latest_digest_when_empty(store):
    assert store.latest_digest() is None


def test_reset_deletes_everything(store, make_item, make_cluster, now):
    item = make_item("App crashes")
    cluster = make_cluster()
    store.add_feedback(item)
    store.upsert_cluster(cluster)
    store.add_membership(cluster.id, item.id)
    store.save_digest(Digest(id='d-1', generated_at=now))

    counts = store.reset()

    assert counts == {'cluster_members': 1, 'instant_alerts': 0, 'clusters': 1, 'digests': 1, 'feedback': 1}
    assert store.get_feedback(item.id) is None
    assert store.latest_digest() is None


def test_database_errors_become_storage_exceptions():
    session = MagicMock()
    session.get.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    store = FeedbackStore(session)

    with pytest.raises(StorageException) as excinfo:
        store.get_cluster("cluster-1")

    assert excinfo.value.details == {'action': 'load cluster'}
    session.rollback.assert_called_once()
