# family_finance/scheduler.py
import os
import logging
from datetime import date

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import text
from sqlalchemy.engine import Engine

from .extensions import db
from .services.notifications import send_summaries
from .services.recurring import run_due
from .services.reminders import send_due_date_reminders

logger = logging.getLogger(__name__)

PG_LOCK_KEY = 0x46_46_54_0000_0001  # any int < 2^63


def _is_postgres(engine: Engine) -> bool:
    return engine.dialect.name.startswith("postgres")


def _acquire_lock() -> bool:
    """Use advisory lock on Postgres; on other DBs, just proceed."""
    engine = db.session.get_bind()
    if not _is_postgres(engine):
        logger.info("[scheduler] Non-Postgres DB detected; skipping advisory lock.")
        return True
    got = db.session.execute(text("SELECT pg_try_advisory_lock(:k)"), {"k": PG_LOCK_KEY}).scalar()
    logger.info(f"[scheduler] Acquire lock -> {bool(got)}")
    return bool(got)


def _release_lock():
    engine = db.session.get_bind()
    if not _is_postgres(engine):
        return
    db.session.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": PG_LOCK_KEY})
    db.session.commit()
    logger.info("[scheduler] Lock released")


def _locked_job(app, name: str, fn):
    """Run fn inside an app context, once across workers."""
    with app.app_context():
        if not _acquire_lock():
            logger.info(f"[scheduler] {name} skipped, another instance holds the lock.")
            return
        try:
            fn()
        except Exception:
            db.session.rollback()
            logger.exception(f"[scheduler] {name} failed")
        finally:
            _release_lock()


def _run_recurring(app):
    _locked_job(app, "recurring", lambda: run_due(today=date.today()))


def _weekly_summary(app):
    _locked_job(app, "weekly-summary", lambda: send_summaries("weekly"))


def _monthly_summary(app):
    _locked_job(app, "monthly-summary", lambda: send_summaries("monthly"))


def _due_date_reminders(app):
    _locked_job(app, "due-date-reminders", lambda: send_due_date_reminders(today=date.today()))


def start_scheduler(app):
    """
    Start APScheduler exactly once.
    - Recurring catch-up daily at 00:05, plus once at boot.
    - Due-date reminders daily at 07:00.
    - Weekly summary Mondays 08:00, monthly summary on the 1st at 08:00.
    """
    if not app.config.get("SCHEDULER_ENABLED", True):
        logger.info("[scheduler] Disabled by config.")
        return
    # Avoid double-start with Flask reloader / multiple imports
    if app.config.get("APSCHEDULER_STARTED"):
        return
    if os.environ.get("WERKZEUG_RUN_MAIN") == "true" or not app.debug:
        tz = app.config.get("SCHEDULER_TIMEZONE", "Asia/Jakarta")
        sched = BackgroundScheduler(timezone=tz)
        sched.add_job(lambda: _run_recurring(app), CronTrigger(hour=0, minute=5), id="recurring")
        sched.add_job(lambda: _weekly_summary(app), CronTrigger(day_of_week="mon", hour=8), id="weekly-summary")
        sched.add_job(lambda: _monthly_summary(app), CronTrigger(day=1, hour=8), id="monthly-summary")
        sched.add_job(lambda: _due_date_reminders(app), CronTrigger(hour=7), id="due-date-reminders")
        sched.start()
        app.config["APSCHEDULER_STARTED"] = True
        app.extensions["apscheduler"] = sched
        logger.info(f"[scheduler] Started ({tz}: recurring 00:05, reminders 07:00, weekly Mon 08:00, monthly 1st 08:00)")

        # Boot catch-up once
        _run_recurring(app)
    else:
        logger.info("[scheduler] Skipping scheduler in reloader parent process.")
