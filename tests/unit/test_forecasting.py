import pytest
from datetime import timedelta
from scipy import stats

from conftest import TARGET_DATE, comparison_record
from src.exceptions import InsufficientHistory, InvalidForecastInput
from src.services.forecasting.forecasting_service import (
    ProductionForecaster, ForecastRecordBuilder, ForecastingService
)


@pytest.fixture
def forecaster():
    """Create forecaster instance"""
    return ProductionForecaster()


def test_pipeline_for_weekday_pattern(forecaster, sku, croissant_sales):
    """Eight Mondays of 20 croissants on a rainy Monday"""
    result = forecaster.forecast(sku, croissant_sales, TARGET_DATE, weather="rain")

    assert result['sampling_mode'] == 'same_weekday'
    assert result['data_points'] == 8
    assert result['outliers_removed'] == 0
    assert result['baseline'] == pytest.approx(20.0)
    assert result['weather']['source'] == 'table'
    assert result['weather']['weather_adjusted'] == pytest.approx(16.0)
    assert result['lambda'] == pytest.approx(16.0)

    expected_q = int(stats.poisson.ppf(2 / 3, 16.0))
    assert result['optimization']['optimal_quantity'] == expected_q
    assert result['optimization']['critical_fractile'] == pytest.approx(2 / 3)


def test_pipeline_without_weather(forecaster, sku, croissant_sales):
    result = forecaster.forecast(sku, croissant_sales, TARGET_DATE)

    assert result['weather']['condition'] == 'none'
    assert result['lambda'] == pytest.approx(result['baseline'])


def test_fallback_rate_on_short_history(forecaster, sku):
    result = forecaster.forecast(sku, [], TARGET_DATE, fallback_rate=12.0)

    assert result['sampling_mode'] == 'fallback_rate'
    assert result['data_points'] == 0
    assert result['baseline'] == 12.0
    assert result['optimization']['confidence_level'] == 0.0
    assert result['optimization']['confidence_label'] == 'low'


def test_short_history_without_fallback(forecaster, sku):
    with pytest.raises(InsufficientHistory):
        forecaster.forecast(sku, [], TARGET_DATE)


def test_calibration_corrects_lambda(forecaster, sku, croissant_sales):
    """Past forecasts were 25% too high for demand"""
    past = [comparison_record(f"2024-06-0{d}", 20, 16) for d in range(1, 6)]

    result = forecaster.forecast(sku, croissant_sales, TARGET_DATE, calibration_records=past)

    assert result['calibration']['applied'] is True
    assert result['lambda'] == pytest.approx(20.0 * 0.8)


def test_unbiased_history_keeps_high_service_level(forecaster, sku, croissant_sales):
    """Mondays forecast at rate 20 and produced at the 95% quantile, demand exactly 20"""
    high_quantity = int(stats.poisson.ppf(0.95, 20.0))
    past = [
        comparison_record(day, high_quantity, 20, forecast_rate=20.0)
        for day in ("2024-05-13", "2024-05-20", "2024-05-27", "2024-06-03")
    ]

    uncalibrated = forecaster.forecast(sku, croissant_sales, TARGET_DATE, service_level=0.95)
    result = forecaster.forecast(sku, croissant_sales, TARGET_DATE, service_level=0.95, calibration_records=past)

    assert result['calibration']['applied'] is True
    assert result['calibration']['factor'] == pytest.approx(1.0)
    assert result['lambda'] == pytest.approx(20.0)
    assert result['optimization']['optimal_quantity'] == uncalibrated['optimization']['optimal_quantity']
    assert stats.poisson.cdf(result['optimization']['optimal_quantity'], 20.0) >= 0.95


def test_record_builder_snapshots(forecaster, sku, croissant_sales):
    result = forecaster.forecast(sku, croissant_sales, TARGET_DATE, weather="storm")

    row = ForecastRecordBuilder.build(sku, TARGET_DATE, result)

    assert row.product_id == "croissant"
    assert row.market_name == "Farmers Market"
    assert row.product_category == "bakery"
    assert row.forecast_for_date == TARGET_DATE
    assert row.weather_forecast == "storm"
    assert row.historical_data_points == 8
    assert row.optimal_quantity == result['optimization']['optimal_quantity']
    assert row.unit_price == 3.0
    assert row.expected_demand == pytest.approx(result['lambda'])
    assert row.created_at is not None


@pytest.mark.asyncio
async def test_generate_forecasts(seeded_session):
    """Every SKU of the farmers market is forecast and stored"""
    service = ForecastingService(seeded_session)

    result = await service.generate_forecasts(TARGET_DATE, "m1")

    assert result['total'] == 4
    assert result['successful'] == 4
    assert result['failed'] == 0
    assert result['weather'] == "rain"

    by_sku = {(r['product_id'], r['variant_id']): r['forecast'] for r in result['results']}
    assert set(by_sku) == {("croissant", None), ("coffee", "coffee-s"), ("coffee", "coffee-l"), ("tart", None)}

    croissant = by_sku[("croissant", None)]
    assert croissant['lambda_poisson'] == pytest.approx(16.0)
    assert croissant['sampling_mode'] == 'same_weekday'

    large = by_sku[("coffee", "coffee-l")]
    assert large['unit_price'] == 5.0
    assert large['unit_cost'] == 1.5
    assert large['weather_adjusted_forecast'] == pytest.approx(5 * 0.75)

    tart = by_sku[("tart", None)]
    assert tart['sampling_mode'] == 'fallback_rate'
    assert tart['historical_data_points'] == 0


@pytest.mark.asyncio
async def test_generate_twice_appends(seeded_session):
    service = ForecastingService(seeded_session)

    await service.generate_forecasts(TARGET_DATE, "m1", product_ids=["croissant"])
    await service.generate_forecasts(TARGET_DATE, "m1", product_ids=["croissant"], weather="sunny")

    forecasts = await service.get_forecasts(TARGET_DATE)
    assert len(forecasts) == 2
    assert forecasts[-1]['weather_forecast'] == "sunny"


@pytest.mark.asyncio
async def test_failures_are_reported_per_sku(seeded_session):
    """The high street shop has no sales at all, so nothing can be estimated"""
    service = ForecastingService(seeded_session)

    result = await service.generate_for_all_markets(TARGET_DATE)

    assert result['markets'] == 2
    assert result['successful'] == 4
    assert result['failed'] == 4
    shop = result['results'][1]
    assert all(r['error_type'] == 'insufficient_history' for r in shop['results'])


@pytest.mark.asyncio
async def test_unknown_market(seeded_session):
    service = ForecastingService(seeded_session)

    with pytest.raises(InvalidForecastInput):
        await service.generate_forecasts(TARGET_DATE, "nowhere")


@pytest.mark.asyncio
async def test_invalid_service_level(seeded_session):
    service = ForecastingService(seeded_session)

    with pytest.raises(InvalidForecastInput):
        await service.generate_forecasts(TARGET_DATE, "m1", service_level=1.2)


@pytest.mark.asyncio
async def test_delete_requires_confirmation(seeded_session):
    service = ForecastingService(seeded_session)
    await service.generate_forecasts(TARGET_DATE, "m1")

    with pytest.raises(ValueError):
        await service.delete_forecasts_for_date(TARGET_DATE)

    deleted = await service.delete_forecasts_for_date(TARGET_DATE, confirm=True)

    assert deleted == 4
    assert await service.get_forecasts(TARGET_DATE) == []
    assert await service.get_forecasts(TARGET_DATE + timedelta(days=1)) == []
