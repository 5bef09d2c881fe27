"""
Celery tasks for nightly production forecasting and accuracy review
"""
import asyncio
from datetime import datetime, timedelta
from celery import Celery
from celery.schedules import crontab
from config.settings import settings
import logging

logger = logging.getLogger(__name__)

# Initialize Celery
celery_app = Celery(
    "bakery_forecasting",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

# Celery configuration
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # 1 hour max
    task_soft_time_limit=3300,  # 55 minutes soft limit
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)


def run_async(coro):
    """Helper to run async functions in Celery tasks"""
    return asyncio.run(coro)


@celery_app.task(name="tasks.generate_daily_forecasts")
def generate_daily_forecasts(target_date: str = None):
    """
    Generate production forecasts for every active market

    Args:
        target_date: ISO date to forecast, or None for FORECAST_DAYS_AHEAD from today
    """
    if target_date is None:
        target_date = (datetime.utcnow().date() + timedelta(days=settings.FORECAST_DAYS_AHEAD)).isoformat()

    logger.info(f"Starting production forecasting for {target_date}")

    async def _generate():
        from src.database import AsyncSessionLocal
        from src.services.forecasting.forecasting_service import ForecastingService

        async with AsyncSessionLocal() as session:
            service = ForecastingService(session)
            return await service.generate_for_all_markets(target_date)

    try:
        result = run_async(_generate())
        logger.info(
            f"Production forecasting completed: {result['successful']} successful, "
            f"{result['failed']} failed across {result['markets']} markets"
        )
        return result
    except Exception as e:
        logger.error(f"Error in production forecasting task: {e}")
        raise


@celery_app.task(name="tasks.analyze_forecast_accuracy")
def analyze_forecast_accuracy(days_back: int = 7):
    """
    Reconcile recent forecasts with actuals and report recommendations

    Args:
        days_back: Number of days up to yesterday to analyze
    """
    end_date = datetime.utcnow().date() - timedelta(days=1)
    start_date = end_date - timedelta(days=days_back - 1)

    logger.info(f"Analyzing forecast accuracy from {start_date} to {end_date}")

    async def _analyze():
        from src.database import AsyncSessionLocal
        from src.services.accuracy.accuracy_service import AccuracyService

        async with AsyncSessionLocal() as session:
            service = AccuracyService(session)
            return await service.analyze(start_date, end_date)

    try:
        analysis = run_async(_analyze())
        summary = analysis['summary']

        for recommendation in analysis['recommendations']:
            if recommendation['priority'] == 'high':
                logger.warning(f"{recommendation['target']}: {recommendation['suggestion']}")

        return {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "summary": summary,
            "recommendations": analysis['recommendations']
        }
    except Exception as e:
        logger.error(f"Error in accuracy analysis task: {e}")
        raise


# Periodic task schedule (for Celery Beat)
celery_app.conf.beat_schedule = {
    'nightly-production-forecasts': {
        'task': 'tasks.generate_daily_forecasts',
        'schedule': crontab(hour=2, minute=0),
    },
    'daily-accuracy-review': {
        'task': 'tasks.analyze_forecast_accuracy',
        'schedule': crontab(hour=6, minute=0),
        'args': (7,)
    },
}

if __name__ == "__main__":
    # For testing individual tasks
    celery_app.start()
