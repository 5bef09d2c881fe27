from datetime import date, datetime, timedelta
from typing import List, Dict, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.exceptions import ForecastEngineError, InsufficientHistory, InvalidForecastInput
from src.models.database import ProductionForecast
from src.services.accuracy.comparison import build_comparison_records
from src.services.forecasting.calibration import BiasCalibrator
from src.services.forecasting.demand_sampler import HistoricalDemandSampler
from src.services.forecasting.estimation import OutlierFilter, BaselineEstimator
from src.services.forecasting.weather import WeatherAdjuster
from src.services.optimization.newsvendor import NewsvendorOptimizer
from src.services.store.data_store import ForecastDataStore
from src.utils.date_utils import as_date

logger = logging.getLogger(__name__)


class ProductionForecaster:
    """Sample -> filter -> baseline -> weather -> calibration -> newsvendor for one SKU"""

    def __init__(self):
        self.sampler = HistoricalDemandSampler()
        self.outlier_filter = OutlierFilter()
        self.estimator = BaselineEstimator()
        self.weather_adjuster = WeatherAdjuster()
        self.calibrator = BiasCalibrator()
        self.optimizer = NewsvendorOptimizer()

    def forecast(
        self,
        sku: Dict,
        sales_records: List[Dict],
        target_date: date,
        weather: Optional[str] = None,
        calibration_records: Optional[List[Dict]] = None,
        service_level: Optional[float] = None,
        fallback_rate: Optional[float] = None
    ) -> Dict:
        """
        Complete production decision for one SKU and day

        Args:
            sku: product/variant/market identity with category and unit economics
            sales_records: sales log rows (any SKU; filtered here)
            target_date: day being produced for
            weather: forecast weather condition for the market
            calibration_records: past comparison records of the product
            service_level: in-stock target overriding the critical fractile
            fallback_rate: demand rate used when the SKU has too little history

        Raises:
            InsufficientHistory: too little history and no fallback rate
            InvalidForecastInput: invalid price, cost or service level
        """
        try:
            sample = self.sampler.sample(
                sales_records, sku['product_id'], sku['market_id'], target_date, sku.get('variant_id')
            )
        except InsufficientHistory as e:
            if fallback_rate is None:
                raise
            logger.warning(f"{e.message}; using fallback rate {fallback_rate:.2f}")
            sample = None

        if sample is not None:
            filtered = self.outlier_filter.filter(sample['observations'])
            baseline = self.estimator.estimate(filtered['observations'])
            data_points = len(sample['observations'])
            outliers_removed = filtered['outliers_removed']
            sampling_mode = sample['sampling_mode']
            history = sample['history']
        else:
            baseline = max(0.0, fallback_rate)
            data_points = 0
            outliers_removed = 0
            sampling_mode = 'fallback_rate'
            history = None

        weather_result = self.weather_adjuster.adjust(baseline, weather, sku.get('category'), history)
        calibration = self.calibrator.calibrate(calibration_records or [])
        lam = weather_result['weather_adjusted'] * calibration['factor']

        optimization = self.optimizer.optimize(
            lam,
            sku['unit_price'],
            sku['unit_cost'],
            service_level=service_level,
            sample_size=data_points,
            outliers_removed=outliers_removed
        )

        return {
            'baseline': baseline,
            'weather': weather_result,
            'calibration': calibration,
            'lambda': lam,
            'data_points': data_points,
            'outliers_removed': outliers_removed,
            'sampling_mode': sampling_mode,
            'optimization': optimization
        }


class ForecastRecordBuilder:
    """Assembles a ProductionForecast row from a pipeline result"""

    @staticmethod
    def build(sku: Dict, target_date: date, result: Dict) -> ProductionForecast:
        optimization = result['optimization']
        economics = optimization['economics']
        condition = result['weather']['condition']

        return ProductionForecast(
            created_at=datetime.utcnow(),
            product_id=sku['product_id'],
            variant_id=sku.get('variant_id'),
            market_id=sku['market_id'],
            forecast_for_date=as_date(target_date),
            product_name=sku['product_name'],
            variant_name=sku.get('variant_name'),
            market_name=sku.get('market_name') or sku['market_id'],
            product_category=sku.get('category'),
            weather_forecast=None if condition == 'none' else condition,
            historical_data_points=result['data_points'],
            outliers_removed=result['outliers_removed'],
            sampling_mode=result['sampling_mode'],
            baseline_forecast=result['baseline'],
            weather_adjusted_forecast=result['weather']['weather_adjusted'],
            lambda_poisson=result['lambda'],
            optimal_quantity=optimization['optimal_quantity'],
            service_level_target=optimization['service_level_target'],
            stockout_probability=optimization['stockout_probability'],
            waste_probability=optimization['waste_probability'],
            confidence_level=optimization['confidence_level'],
            prediction_interval_lower=optimization['prediction_interval_lower'],
            prediction_interval_upper=optimization['prediction_interval_upper'],
            unit_price=economics['unit_price'],
            unit_cost=economics['unit_cost'],
            expected_demand=economics['expected_demand'],
            expected_profit=economics['expected_profit']
        )


class ForecastingService:
    """Main forecasting service with database integration"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.store = ForecastDataStore(db_session)
        self.forecaster = ProductionForecaster()
        self.builder = ForecastRecordBuilder()

    async def get_calibration_records(
        self,
        target_date: date,
        market_id: str,
        sales_records: List[Dict]
    ) -> Dict[str, List[Dict]]:
        """Past comparison records of a market grouped by product"""
        if not settings.CALIBRATION_ENABLED:
            return {}

        start_date = target_date - timedelta(days=settings.CALIBRATION_LOOKBACK_DAYS)
        end_date = target_date - timedelta(days=1)

        forecasts = await self.store.get_forecasts(start_date, end_date, market_id)
        if not forecasts:
            return {}

        inventory = await self.store.get_inventory(start_date, end_date)
        records = build_comparison_records(forecasts, sales_records, inventory)

        grouped = {}
        for record in records:
            grouped.setdefault(record['product_id'], []).append(record)
        return grouped

    async def generate_forecasts(
        self,
        target_date: date,
        market_id: str,
        product_ids: Optional[List[str]] = None,
        service_level: Optional[float] = None,
        weather: Optional[str] = None
    ) -> Dict:
        """
        Forecast every active SKU of a market for one day

        Each SKU is computed independently; a failing SKU is reported in
        the results and never blocks the others. Successful forecasts are
        appended to the store.
        """
        target_date = as_date(target_date)

        if service_level is not None and not 0 < service_level < 1:
            raise InvalidForecastInput(f"Service level must be between 0 and 1, got {service_level}")

        market = await self.store.get_market(market_id)
        if market is None:
            raise InvalidForecastInput(f"Unknown market {market_id}", details={'market_id': market_id})

        logger.info(f"Generating forecasts for market {market_id} on {target_date}")

        if weather is None:
            weather = await self.store.get_weather(market_id, target_date)

        history_days = max(settings.MAX_HISTORY_DAYS, settings.CALIBRATION_LOOKBACK_DAYS)
        sales = await self.store.get_sales(target_date - timedelta(days=history_days), target_date, market_id)
        calibration = await self.get_calibration_records(target_date, market_id, sales)
        skus = await self.store.get_skus(market, product_ids)

        fallback_rates = {}
        storewide_rate = self.forecaster.sampler.fallback_rate(sales, market_id, target_date)

        rows = []
        results = []
        for sku in skus:
            category = sku.get('category')
            if category not in fallback_rates:
                rate = self.forecaster.sampler.fallback_rate(sales, market_id, target_date, category)
                fallback_rates[category] = rate if rate is not None else storewide_rate

            try:
                result = self.forecaster.forecast(
                    sku,
                    sales,
                    target_date,
                    weather=weather,
                    calibration_records=calibration.get(sku['product_id']),
                    service_level=service_level,
                    fallback_rate=fallback_rates[category]
                )
                rows.append(self.builder.build(sku, target_date, result))
                results.append({
                    'success': True,
                    'product_id': sku['product_id'],
                    'variant_id': sku.get('variant_id'),
                    'confidence_label': result['optimization']['confidence_label'],
                    'calibration_factor': result['calibration']['factor'],
                    'weather_source': result['weather']['source']
                })

            except ForecastEngineError as e:
                logger.error(f"Forecast failed for product {sku['product_id']} at market {market_id}: {e}")
                results.append({
                    'success': False,
                    'product_id': sku['product_id'],
                    'variant_id': sku.get('variant_id'),
                    'error': e.message,
                    'error_type': e.code
                })

        stored = await self.store.append_forecasts(rows)
        successes = iter(stored)
        for entry in results:
            if entry['success']:
                entry['forecast'] = next(successes).to_dict()

        successful = len(stored)
        logger.info(
            f"Forecasts for market {market_id} on {target_date}: "
            f"{successful} successful, {len(results) - successful} failed"
        )

        return {
            'target_date': target_date.isoformat(),
            'market_id': market_id,
            'weather': weather,
            'total': len(results),
            'successful': successful,
            'failed': len(results) - successful,
            'results': results
        }

    async def generate_for_all_markets(self, target_date: date, **kwargs) -> Dict:
        """Run generate_forecasts for every active market"""
        markets = await self.store.get_markets()
        summaries = []

        for market in markets:
            summaries.append(await self.generate_forecasts(target_date, market.id, **kwargs))

        return {
            'target_date': as_date(target_date).isoformat(),
            'markets': len(summaries),
            'successful': sum(s['successful'] for s in summaries),
            'failed': sum(s['failed'] for s in summaries),
            'results': summaries
        }

    async def get_forecasts(self, forecast_date: date, market_id: Optional[str] = None) -> List[Dict]:
        """Every stored forecast for a date, oldest first"""
        forecast_date = as_date(forecast_date)
        return await self.store.get_forecasts(forecast_date, forecast_date, market_id)

    async def delete_forecasts_for_date(
        self,
        forecast_date: date,
        market_id: Optional[str] = None,
        confirm: bool = False
    ) -> int:
        """Delete a day's forecasts; irreversible, so confirm must be True"""
        if not confirm:
            raise ValueError("Deleting forecasts requires confirm=True")

        return await self.store.delete_forecasts_for_date(as_date(forecast_date), market_id)
