from apscheduler.schedulers.background import BackgroundScheduler
import atexit
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def init_scheduler(app):
    """Poll every connected Gmail mailbox on an interval inside the app context."""
    interval = int(app.config.get("GMAIL_POLL_INTERVAL_MINUTES", 5))

    def poll_gmail():
        from eventpilot.extensions import db
        from eventpilot.services.gmail_ingestion_service import GmailIngestionService

        with app.app_context():
            try:
                results = GmailIngestionService.poll_all_mailboxes(app.config.get("GMAIL_POLL_QUERY"))
                logger.info(f"[SCHEDULER] Gmail poll finished for {len(results)} mailbox(es)")
            except Exception:
                db.session.rollback()
                logger.exception("[SCHEDULER] Gmail poll failed")

    scheduler.add_job(
        poll_gmail,
        "interval",
        minutes=interval,
        id="gmail_poll",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if not scheduler.running:
        scheduler.start()
        logger.info("[SCHEDULER] Scheduler started")
    else:
        logger.info("[SCHEDULER] Scheduler already running (skipping duplicate start)")

    # Shut down the scheduler when exiting the app
    atexit.register(lambda: scheduler.shutdown(wait=False) if scheduler.running else None)
