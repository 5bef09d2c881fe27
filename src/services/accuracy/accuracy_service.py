from datetime import date, timedelta
from typing import List, Dict, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import InvalidForecastInput
from src.services.accuracy.aggregator import AccuracyAggregator
from src.services.accuracy.comparison import build_comparison_records
from src.services.accuracy.recommendations import RecommendationGenerator
from src.services.store.data_store import ForecastDataStore
from src.utils.date_utils import as_date

logger = logging.getLogger(__name__)


class AccuracyService:
    """Forecast vs. actuals reconciliation with database integration"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.store = ForecastDataStore(db_session)
        self.aggregator = AccuracyAggregator()
        self.recommender = RecommendationGenerator()

    async def get_records(self, start_date: date, end_date: date, market_id: Optional[str] = None) -> List[Dict]:
        """Comparison records for every forecast in [start_date, end_date]"""
        forecasts = await self.store.get_forecasts(start_date, end_date, market_id)
        if not forecasts:
            return []

        sales = await self.store.get_sales(start_date, end_date + timedelta(days=1), market_id)
        inventory = await self.store.get_inventory(start_date, end_date)
        return build_comparison_records(forecasts, sales, inventory)

    async def get_comparisons(self, comparison_date: date, market_id: Optional[str] = None) -> List[Dict]:
        """Forecast vs. actual for one day"""
        comparison_date = as_date(comparison_date)
        return await self.get_records(comparison_date, comparison_date, market_id)

    async def analyze(self, start_date: date, end_date: date, market_id: Optional[str] = None) -> Dict:
        """
        Accuracy analysis for a date range

        Returns:
            Summary, daily trend, weekday/product/market accuracy, rankings,
            recommendations and the underlying comparison records
        """
        start_date, end_date = as_date(start_date), as_date(end_date)
        if start_date > end_date:
            raise InvalidForecastInput(
                f"start_date {start_date} is after end_date {end_date}",
                details={'start_date': start_date.isoformat(), 'end_date': end_date.isoformat()}
            )

        logger.info(f"Analyzing forecast accuracy from {start_date} to {end_date}")

        records = await self.get_records(start_date, end_date, market_id)
        analysis = self.aggregator.aggregate(records)
        analysis['recommendations'] = self.recommender.generate(analysis)
        analysis['records'] = records
        analysis['start_date'] = start_date.isoformat()
        analysis['end_date'] = end_date.isoformat()

        summary = analysis['summary']
        logger.info(
            f"Accuracy {summary['overall_accuracy']} over {summary['total_forecasts']} forecasts "
            f"({summary['pending_forecasts']} pending)"
        )
        return analysis

    async def get_recommendations(self, start_date: date, end_date: date, market_id: Optional[str] = None) -> List[Dict]:
        analysis = await self.analyze(start_date, end_date, market_id)
        return analysis['recommendations']
