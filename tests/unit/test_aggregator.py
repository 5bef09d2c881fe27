import pytest
from conftest import comparison_record as record
from src.services.accuracy.aggregator import AccuracyAggregator, calculate_accuracy, calculate_bias


@pytest.fixture
def aggregator():
    return AccuracyAggregator(top_limit=2)


def test_accuracy_formula():
    assert calculate_accuracy(5, 20) == pytest.approx(75.0)
    assert calculate_accuracy(50, 20) == 0.0
    assert calculate_accuracy(0, 0) == 100.0
    assert calculate_accuracy(3, 0) == 0.0
    assert calculate_bias(-4, 20) == pytest.approx(-20.0)
    assert calculate_bias(3, 0) == 0.0


def test_summary(aggregator):
    records = [
        record("2024-06-10", 20, 15, waste_cost=5.0),
        record("2024-06-10", 10, 12, product_id="tart", stockout_revenue=4.0),
        record("2024-06-11", 10, None),
    ]

    summary = aggregator.aggregate(records)['summary']

    # sum|diff| = 7 over 30 forecast units
    assert summary['overall_accuracy'] == pytest.approx(round(100 * (1 - 7 / 30), 2))
    assert summary['overall_bias_percent'] == pytest.approx(round(100 * 3 / 30, 2))
    assert summary['total_waste_cost'] == 5.0
    assert summary['total_stockout_revenue'] == 4.0
    assert summary['total_forecasts'] == 3
    assert summary['pending_forecasts'] == 1
    assert summary['days_with_data'] == 1
    assert summary['total_days'] == 2


def test_empty_records(aggregator):
    result = aggregator.aggregate([])

    assert result['summary']['overall_accuracy'] is None
    assert result['summary']['total_forecasts'] == 0
    assert result['product_accuracy'] == []
    assert len(result['day_accuracy']) == 7
    assert result['daily_trend'] == []


def test_daily_trend_marks_days_without_actuals(aggregator):
    records = [record("2024-06-10", 10, 10), record("2024-06-11", 10, None)]

    trend = aggregator.aggregate(records)['daily_trend']

    assert [p['date'] for p in trend] == ["2024-06-10", "2024-06-11"]
    assert trend[0]['accuracy'] == 100.0
    assert trend[0]['exact_matches'] == 1
    assert trend[1]['accuracy'] is None
    assert trend[1]['forecast_count'] == 1
    assert trend[1]['actual_count'] == 0


def test_day_accuracy_covers_every_weekday(aggregator):
    records = [record("2024-06-10", 10, 8), record("2024-06-17", 10, 12)]

    days = aggregator.aggregate(records)['day_accuracy']

    assert [d['day_name'] for d in days][0] == 'Monday'
    monday = days[0]
    assert monday['has_data'] is True
    assert monday['sample_size'] == 2
    assert monday['accuracy'] == pytest.approx(80.0)
    assert all(d['has_data'] is False and d['accuracy'] is None and d['sample_size'] == 0 for d in days[1:])


def test_product_accuracy_skips_pending_only_products(aggregator):
    records = [
        record("2024-06-10", 10, 9),
        record("2024-06-10", 10, None, product_id="tart"),
    ]

    products = aggregator.aggregate(records)['product_accuracy']

    assert [p['product_id'] for p in products] == ["croissant"]
    assert products[0]['variant_id'] is None
    assert products[0]['bias_percent'] == pytest.approx(10.0)


def test_variants_are_separate_products(aggregator):
    records = [
        record("2024-06-10", 10, 10, product_id="coffee", variant_id="s"),
        record("2024-06-10", 10, 5, product_id="coffee", variant_id="l"),
    ]

    products = aggregator.aggregate(records)['product_accuracy']

    assert {(p['variant_id'], p['accuracy']) for p in products} == {("s", 100.0), ("l", 50.0)}


def test_market_accuracy(aggregator):
    records = [record("2024-06-10", 10, 10), record("2024-06-10", 10, 4, market_id="m2")]

    markets = {m['market_id']: m for m in aggregator.aggregate(records)['market_accuracy']}

    assert markets['m1']['accuracy'] == 100.0
    assert markets['m2']['accuracy'] == pytest.approx(40.0)
    assert markets['m2']['market_name'] == "M2"


def test_rankings(aggregator):
    records = [
        record("2024-06-10", 10, 10, product_id="a"),
        record("2024-06-10", 10, 8, product_id="b"),
        record("2024-06-10", 10, 2, product_id="c"),
    ]

    result = aggregator.aggregate(records)

    assert [p['product_id'] for p in result['top_performers']] == ["a", "b"]
    assert [p['product_id'] for p in result['needs_improvement']] == ["c", "b"]


def test_partitions_merge_by_concatenation(aggregator):
    week_one = [record("2024-06-10", 10, 8), record("2024-06-11", 12, 12)]
    week_two = [record("2024-06-17", 10, 13, product_id="tart")]

    combined = aggregator.aggregate(week_one + week_two)
    reordered = aggregator.aggregate(week_two + week_one)

    assert combined['summary'] == reordered['summary']
    assert combined['product_accuracy'] == reordered['product_accuracy']
