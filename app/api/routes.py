from flask import Blueprint, Response, current_app, request, jsonify
from contextlib import contextmanager
from datetime import timedelta
from html import escape
import logging
import random

from app.api.mock_data import MOCK_FEEDBACK
from app.models.store import FeedbackStore
from app.triage.entities import utcnow
from app.triage.exceptions import ClusterNotFound, DuplicateFeedback, InvalidFeedback, StorageException
from app.triage.lifecycle import FixLifecycleManager
from app.workers.alert_worker import AlertWorker, parse_feedback
from app.workers.digest_worker import DigestWorker

logger = logging.getLogger(__name__)

# Create blueprints
feedback_bp = Blueprint('feedback', __name__)
digest_bp = Blueprint('digest', __name__)
clusters_bp = Blueprint('clusters', __name__)
admin_bp = Blueprint('admin', __name__)

VIEW_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>DigestSync - Morning Digest</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; max-width: 700px;
               margin: 0 auto; padding: 20px; background: #1a1a2e; color: #eee; line-height: 1.6; }}
        .container {{ background: #16213e; padding: 25px; border-radius: 8px;
                      white-space: pre-wrap; word-wrap: break-word; }}
        a {{ color: #e94560; }}
    </style>
</head>
<body>
    <div class="container">{body}</div>
    <p><a href="/api/digest">View as JSON</a></p>
</body>
</html>"""


def _services() -> dict:
    return current_app.extensions['digestsync']


@contextmanager
def _store():
    session = _services()['session_factory']()
    try:
        yield FeedbackStore(session)
    finally:
        session.close()


def _storage_error(e: StorageException):
    return jsonify({'error': e.message, 'stage': e.stage or 'storage'}), 503


# Feedback routes
@feedback_bp.route('', methods=['POST'])
@feedback_bp.route('/', methods=['POST'])
def post_feedback():
    """Store a feedback item and run instant-alert triage on it."""
    services = _services()
    try:
        with _store() as store:
            worker = AlertWorker.from_config(services['config'], store, services['intelligence'], services['notifier'])
            decision = worker.handle_feedback(request.get_json(silent=True))
        return jsonify(decision.to_dict()), 201
    except InvalidFeedback as e:
        return jsonify({'error': e.message, **e.details}), 400
    except DuplicateFeedback as e:
        return jsonify({'error': e.message, 'id': e.feedback_id}), 409
    except StorageException as e:
        return _storage_error(e)


# Digest routes
@digest_bp.route('/run', methods=['POST'])
def run_digest():
    """Trigger morning digest generation."""
    services = _services()
    with _store() as store:
        worker = DigestWorker(store, services['intelligence'], services['notifier'], services['config'])
        result = worker.generate_digest()

    status = 500 if result.aborted else 200
    return jsonify({
        'message': 'Morning digest generation triggered',
        'details': result.to_dict()
    }), status


@digest_bp.route('', methods=['GET'])
@digest_bp.route('/', methods=['GET'])
def get_digest():
    """Latest digest as JSON, without internal fields."""
    try:
        with _store() as store:
            digest = store.latest_digest()
    except StorageException as e:
        return _storage_error(e)

    if digest is None:
        return jsonify({'message': 'No digest found. Run POST /api/digest/run to generate one.'})

    digest.pop('message', None)
    for bucket in ('top_issues', 'new_issues', 'monitoring', 'failed_fixes', 'individual_support', 'positive_feedback'):
        for entry in digest.get(bucket) or []:
            entry.get('cluster', {}).pop('centroid', None)
            entry.get('cluster', {}).pop('representative_feedback_id', None)
    return jsonify(digest)


@digest_bp.route('/view', methods=['GET'])
def view_digest():
    """Latest digest rendered exactly as it was sent to Telegram."""
    try:
        with _store() as store:
            digest = store.latest_digest()
    except StorageException as e:
        return _storage_error(e)

    if digest is None or not digest.get('message'):
        body = 'No digest found. Run <code>POST /api/digest/run</code> to generate one.'
    else:
        body = digest['message']
    return Response(VIEW_TEMPLATE.format(body=body), mimetype='text/html')


# Cluster routes
@clusters_bp.route('/<cluster_id>/mark-fixed', methods=['POST'])
def mark_fixed(cluster_id):
    """Record a deployed fix for a cluster and start monitoring it."""
    data = request.get_json(silent=True) or {}
    rollout_days = data.get('rollout_days')
    if rollout_days is not None:
        try:
            rollout_days = int(rollout_days)
        except (TypeError, ValueError):
            return jsonify({'error': 'rollout_days must be an integer'}), 400
        if rollout_days <= 0:
            return jsonify({'error': 'rollout_days must be positive'}), 400

    try:
        with _store() as store:
            cluster = store.get_cluster(cluster_id)
            if cluster is None:
                raise ClusterNotFound(cluster_id)

            lifecycle = FixLifecycleManager.from_config(_services()['config'])
            lifecycle.mark_fixed(
                cluster,
                deployed_version=data.get('deployed_version'),
                rollout_days=rollout_days,
                notes=data.get('notes'),
            )
            store.upsert_cluster(cluster)
    except ClusterNotFound as e:
        return jsonify({'error': e.message}), 404
    except StorageException as e:
        return _storage_error(e)

    original = cluster.original_severity.value
    current = cluster.current_severity.value
    return jsonify({
        'message': 'Cluster marked as fixed',
        'cluster_id': cluster_id,
        'original_severity': original,
        'current_severity': current,
        'note': (
            f"Priority downgraded from {original} to {current}. "
            f"Monitoring for {cluster.rollout_period_days} days."
        )
    })


# Admin routes
@admin_bp.route('/seed', methods=['POST'])
def seed():
    """Store the sample feedback set, spread over the last 24 hours, without triage."""
    now = utcnow()
    seeded = []
    try:
        with _store() as store:
            for payload in MOCK_FEEDBACK:
                timestamp = now - timedelta(seconds=random.uniform(0, 86400))
                item = parse_feedback({**payload, 'timestamp': timestamp})
                store.add_feedback(item)
                seeded.append({
                    'id': item.id[:8],
                    'user': item.author,
                    'content': item.content[:60] + ('...' if len(item.content) > 60 else ''),
                })
    except StorageException as e:
        return _storage_error(e)

    logger.info(f"Seeded {len(seeded)} feedback items")
    return jsonify({
        'message': f"Seeded {len(seeded)} feedback items",
        'items': seeded
    })


@admin_bp.route('/reset', methods=['POST'])
def reset():
    """Delete every feedback, cluster, alert and digest."""
    try:
        with _store() as store:
            counts = store.reset()
    except StorageException as e:
        return _storage_error(e)

    return jsonify({
        'message': 'Complete reset - all data cleared',
        'deleted': counts
    })


@admin_bp.route('/telegram/test', methods=['POST'])
def test_telegram():
    """Send a test message to the configured chat."""
    result = _services()['notifier'].send(escape('🧪 Test message from DigestSync'))
    return jsonify({
        'success': result.ok,
        'message': 'Telegram message sent successfully' if result.ok else 'Failed to send Telegram message',
        'error': result.error
    })
