"""
Celery worker: nightly follow-up recalculation and failed webhook retries.
"""
from celery import Celery
from celery.schedules import crontab
import logging
from .config import settings
from .database import SessionLocal
from .repositories import SqlAlchemyOpsRepository
from .use_cases.follow_ups import recalculate_all_follow_ups_use_case
from .use_cases.webhook_processing import retry_failed_webhooks_use_case

logger = logging.getLogger(__name__)

celery_app = Celery(
    "custom_ops",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)


@celery_app.task(name="recalculate_follow_ups")
def recalculate_follow_ups():
    """Recompute next_follow_up_at for every open work item."""
    db = SessionLocal()

    try:
        changes = recalculate_all_follow_ups_use_case(repo=SqlAlchemyOpsRepository(db))
        logger.info(f"✅ Recalculated follow-ups, {len(changes)} changed")
        return {"updated": len(changes)}

    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error recalculating follow-ups: {e}", exc_info=True)
        raise

    finally:
        db.close()


@celery_app.task(name="retry_failed_webhooks")
def retry_failed_webhooks(limit: int = 50):
    """Replay failed webhook deliveries that are still under the retry limit."""
    db = SessionLocal()

    try:
        receipts = retry_failed_webhooks_use_case(repo=SqlAlchemyOpsRepository(db), limit=limit)
        recovered = sum(1 for receipt in receipts if receipt.status != "failed")
        logger.info(f"🔄 Retried {len(receipts)} failed webhooks, {recovered} recovered")
        return {"retried": len(receipts), "recovered": recovered}

    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error retrying webhooks: {e}", exc_info=True)
        raise

    finally:
        db.close()


# Schedule periodic processing
celery_app.conf.beat_schedule = {
    'recalculate-follow-ups-nightly': {
        'task': 'recalculate_follow_ups',
        'schedule': crontab(hour=6, minute=0),
    },
    'retry-failed-webhooks-every-15m': {
        'task': 'retry_failed_webhooks',
        'schedule': 900.0,  # Every 15 minutes
    },
}
