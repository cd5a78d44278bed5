import asyncio
import logging
import os
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from app.core.config import settings
from app.services.exam_session_service import exam_session_service

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def _with_db(service, work):
    db = service.session_factory()
    try:
        return work(db)
    finally:
        db.close()


async def autosave_sessions(service=exam_session_service):
    try:
        flushed = await asyncio.to_thread(_with_db, service, service.autosave)
        if flushed:
            logger.debug(f"Autosave flushed {flushed} exam sessions")
    except Exception as e:
        logger.error(f"Error autosaving exam sessions: {e}")


async def enforce_exam_deadlines(service=exam_session_service):
    try:
        live, orphaned = await asyncio.to_thread(_with_db, service, service.enforce_deadlines)
        if live or orphaned:
            logger.info(f"Deadline sweep submitted {live} live and {orphaned} disconnected attempts")
    except Exception as e:
        logger.error(f"Error enforcing exam deadlines: {e}")


async def evict_idle_sessions(service=exam_session_service):
    try:
        await asyncio.to_thread(_with_db, service, service.evict_idle)
    except Exception as e:
        logger.error(f"Error evicting idle exam sessions: {e}")


def start_scheduler():
    if os.getenv("TESTING") == "true":
        logger.info("Scheduler disabled in test environment")
        return

    if not scheduler.running:
        scheduler.add_job(
            autosave_sessions,
            'interval',
            seconds=settings.AUTOSAVE_INTERVAL_SECONDS,
            id='autosave_sessions',
            name='Flush Dirty Exam Sessions',
            max_instances=1,
            replace_existing=True
        )
        scheduler.add_job(
            enforce_exam_deadlines,
            'interval',
            seconds=settings.DEADLINE_SWEEP_INTERVAL_SECONDS,
            id='enforce_exam_deadlines',
            name='Submit Expired Exam Attempts',
            max_instances=1,
            replace_existing=True
        )
        scheduler.add_job(
            evict_idle_sessions,
            'interval',
            minutes=5,
            id='evict_idle_sessions',
            name='Evict Idle Exam Sessions',
            max_instances=1,
            replace_existing=True
        )
        scheduler.start()
        logger.info("Scheduler started with autosave, deadline and eviction jobs")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
