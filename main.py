#!/usr/bin/env python3
"""
DigestSync - Main application entry point
Runs the Flask API and the daily morning digest scheduler
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from dotenv import load_dotenv

# Load environment variables before config reads them
load_dotenv()

from app.api.app import build_services, create_app  # noqa: E402
from app.models.store import FeedbackStore  # noqa: E402
from app.workers.digest_worker import DigestWorker  # noqa: E402
from config.config import get_config  # noqa: E402

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def seconds_until(hour_utc: int, now: Optional[datetime] = None) -> float:
    """Seconds from `now` until the next HH:00 UTC."""
    now = now or datetime.now(timezone.utc)
    target = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def run_flask_api(services):
    """Run the Flask API server."""
    try:
        config = services['config']
        app = create_app(services=services)
        logger.info(f"Starting Flask API server on {config.FLASK_HOST}:{config.FLASK_PORT}")
        app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=config.FLASK_DEBUG, use_reloader=False)
    except Exception as e:
        logger.error(f"Failed to start Flask API: {e}")


def run_digest(services):
    """Generate and deliver one morning digest."""
    session = services['session_factory']()
    try:
        worker = DigestWorker(FeedbackStore(session), services['intelligence'], services['notifier'], services['config'])
        result = worker.generate_digest()
        logger.info(f"Scheduled digest finished: {result.message} (stage: {result.stage})")
    finally:
        session.close()


def run_scheduler(services):
    """Run the digest once a day at DIGEST_HOUR_UTC."""
    hour = services['config'].DIGEST_HOUR_UTC
    while True:
        delay = seconds_until(hour)
        logger.info(f"Next morning digest in {delay / 3600:.1f} hours ({hour:02d}:00 UTC)")
        time.sleep(delay)
        logger.info(f"Morning digest triggered at {datetime.now(timezone.utc).isoformat()}")
        try:
            run_digest(services)
        except Exception as e:
            logger.error(f"Error in scheduled morning digest: {e}")


def main():
    """Main application entry point."""
    logger.info("Starting DigestSync application...")

    config = get_config()
    for problem in config.validate():
        logger.warning(f"Configuration: {problem}")

    services = build_services(config)

    # Start Flask API in a separate thread
    flask_thread = threading.Thread(target=run_flask_api, args=(services,), daemon=True)
    flask_thread.start()

    # Scheduler in main thread
    try:
        run_scheduler(services)
    except KeyboardInterrupt:
        logger.info("Shutting down DigestSync...")


if __name__ == "__main__":
    main()
