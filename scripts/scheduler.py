import asyncio
import schedule
import time
import sys
from pathlib import Path
from datetime import datetime, timedelta
import logging

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import settings
from src.database import AsyncSessionLocal
from src.services.accuracy.accuracy_service import AccuracyService
from src.services.forecasting.forecasting_service import ForecastingService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_nightly_forecasting():
    """Generate tomorrow's production forecasts for every market"""
    target_date = datetime.utcnow().date() + timedelta(days=settings.FORECAST_DAYS_AHEAD)
    logger.info(f"Starting nightly forecasting for {target_date}...")

    try:
        async with AsyncSessionLocal() as db:
            service = ForecastingService(db)
            result = await service.generate_for_all_markets(target_date)

            logger.info(
                f"Forecasting completed: {result['successful']} successful, "
                f"{result['failed']} failed"
            )

    except Exception as e:
        logger.error(f"Error in nightly forecasting: {e}")


async def run_accuracy_review():
    """Reconcile last week's forecasts and log the top recommendations"""
    end_date = datetime.utcnow().date() - timedelta(days=1)
    start_date = end_date - timedelta(days=6)
    logger.info("Reviewing forecast accuracy...")

    try:
        async with AsyncSessionLocal() as db:
            service = AccuracyService(db)
            analysis = await service.analyze(start_date, end_date)
            summary = analysis['summary']

            logger.info(
                f"Accuracy {summary['overall_accuracy']}%: waste cost {summary['total_waste_cost']}, "
                f"lost margin {summary['total_stockout_revenue']}, "
                f"{summary['pending_forecasts']} forecasts pending"
            )

            for recommendation in analysis['recommendations'][:5]:  # Log first 5
                logger.warning(
                    f"[{recommendation['priority']}] {recommendation['target']}: "
                    f"{recommendation['suggestion']}"
                )

    except Exception as e:
        logger.error(f"Error in accuracy review: {e}")


def schedule_tasks():
    """Schedule all periodic tasks"""

    # Nightly forecasting at 2 AM
    schedule.every().day.at("02:00").do(
        lambda: asyncio.run(run_nightly_forecasting())
    )

    # Accuracy review daily at 6 AM
    schedule.every().day.at("06:00").do(
        lambda: asyncio.run(run_accuracy_review())
    )

    logger.info("Scheduler tasks configured:")
    logger.info("- Nightly forecasting: 2 AM")
    logger.info("- Accuracy review: Daily 6 AM")


def main():
    """Main scheduler loop"""
    logger.info("Starting production forecasting scheduler...")

    schedule_tasks()

    # Main loop
    while True:
        try:
            schedule.run_pending()
            time.sleep(60)  # Check every minute

        except KeyboardInterrupt:
            logger.info("Scheduler stopped by user")
            break

        except Exception as e:
            logger.error(f"Error in scheduler loop: {e}")
            time.sleep(60)


if __name__ == "__main__":
    main()
