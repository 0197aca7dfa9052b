from datetime import datetime
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import get_settings
from ..core import timerange
from ..core.constants import JOB_RETRY_DELAYS, SEND_NOTIFICATIONS_JOB
from ..db import models
from ..db.session import SessionLocal
from ..services import notification_service, schedule_service

logger = logging.getLogger(__name__)


def _retry_delay(attempts: int):
    index = min(max(attempts - 1, 0), len(JOB_RETRY_DELAYS) - 1)
    return JOB_RETRY_DELAYS[index]


def _record_failure(job: models.Job, error: str, now: datetime, stats: dict[str, int]) -> None:
    job.error = error
    if job.attempts >= job.max_attempts:
        job.status = models.JobStatus.dead
        stats["dead"] += 1
        logger.error(
            "Notification job exhausted its retries",
            extra={"job_id": job.id, "attempts": job.attempts},
        )
    else:
        job.status = models.JobStatus.failed
        job.scheduled_at = now + _retry_delay(job.attempts)
        stats["failed"] += 1
        logger.warning(
            "Notification job failed, will retry",
            extra={"job_id": job.id, "attempts": job.attempts},
        )


def run_pending_jobs(
    db: Session, batch_size: int | None = None, now: datetime | None = None
) -> dict[str, int]:
    """Deliver due notification jobs, highest priority first."""

    batch_size = batch_size or get_settings().job_batch_size
    now = now or timerange.utc_now()
    jobs = (
        db.query(models.Job)
        .filter(models.Job.type == SEND_NOTIFICATIONS_JOB)
        .filter(models.Job.status.in_([models.JobStatus.pending, models.JobStatus.failed]))
        .filter(or_(models.Job.scheduled_at.is_(None), models.Job.scheduled_at <= now))
        .order_by(models.Job.priority.desc(), models.Job.created_at, models.Job.id)
        .limit(batch_size)
        .all()
    )
    stats = {"completed": 0, "failed": 0, "dead": 0}
    for job in jobs:
        job.status = models.JobStatus.processing
        job.started_at = now
        job.attempts = (job.attempts or 0) + 1
        db.commit()
        try:
            notification_service.deliver(job)
        except notification_service.NotificationDeliveryError as exc:
            _record_failure(job, str(exc), now, stats)
        except Exception as exc:
            logger.exception("Unexpected error delivering notification job", extra={"job_id": job.id})
            _record_failure(job, str(exc) or exc.__class__.__name__, now, stats)
        else:
            job.status = models.JobStatus.completed
            job.completed_at = now
            job.error = None
            stats["completed"] += 1
        db.commit()
    return stats


def process_jobs() -> None:
    with SessionLocal() as db:
        stats = run_pending_jobs(db)
        if any(stats.values()):
            logger.info("Processed notification jobs", extra=stats)


def materialize_upcoming_job() -> None:
    with SessionLocal() as db:
        schedule_service.materialize_upcoming(db)


def get_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(process_jobs, "interval", minutes=1)
    scheduler.add_job(materialize_upcoming_job, "interval", hours=1)
    return scheduler
