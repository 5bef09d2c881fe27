import pytest
from datetime import date, timedelta

from src.services.forecasting.weather import WeatherAdjuster, BAKED_GOODS_FACTORS, BEVERAGE_FACTORS


@pytest.fixture
def adjuster():
    return WeatherAdjuster(min_samples=3, learned_enabled=True)


def history(pairs):
    start = date(2024, 1, 1)
    return [(start + timedelta(days=i), qty, weather) for i, (qty, weather) in enumerate(pairs)]


def test_unknown_weather_is_neutral(adjuster):
    for weather in (None, "", "hail"):
        result = adjuster.adjust(12.0, weather)
        assert result['factor'] == 1.0
        assert result['weather_adjusted'] == 12.0
        assert result['condition'] == 'none'


def test_table_factor_for_baked_goods(adjuster):
    result = adjuster.adjust(10.0, "Rain", "bakery")

    assert result['source'] == 'table'
    assert result['factor'] == BAKED_GOODS_FACTORS['rain']
    assert result['weather_adjusted'] == pytest.approx(8.0)


def test_beverages_react_differently(adjuster):
    sunny = adjuster.adjust(10.0, "sunny", "beverage")
    cold = adjuster.adjust(10.0, "cold", "beverage")

    assert sunny['factor'] == BEVERAGE_FACTORS['sunny'] > 1.0
    assert cold['factor'] < 1.0 < BAKED_GOODS_FACTORS['cold']


def test_learned_factor_overrides_table(adjuster):
    labelled = history([(20, "sunny")] * 3 + [(5, "rain")] * 3)

    result = adjuster.adjust(10.0, "rain", "bakery", labelled)

    assert result['source'] == 'learned'
    assert result['factor'] == pytest.approx(0.25)
    assert result['weather_adjusted'] == pytest.approx(2.5)


def test_too_few_samples_falls_back_to_table(adjuster):
    labelled = history([(20, "sunny")] * 3 + [(5, "rain")] * 2)

    assert adjuster.learn_factors(labelled) == {'sunny': 1.0}
    assert adjuster.adjust(10.0, "rain", "bakery", labelled)['source'] == 'table'


def test_no_sunny_baseline_learns_nothing(adjuster):
    assert adjuster.learn_factors(history([(5, "rain")] * 5)) == {}


def test_learned_factors_are_clamped(adjuster):
    labelled = history([(1, "sunny")] * 3 + [(50, "cold")] * 3)

    assert adjuster.learn_factors(labelled)['cold'] == 2.0


def test_learning_can_be_disabled():
    adjuster = WeatherAdjuster(min_samples=3, learned_enabled=False)
    labelled = history([(20, "sunny")] * 3 + [(5, "rain")] * 3)

    assert adjuster.adjust(10.0, "rain", "bakery", labelled)['source'] == 'table'
