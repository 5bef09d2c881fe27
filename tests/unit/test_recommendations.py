import pytest

from src.services.accuracy.aggregator import AccuracyAggregator
from src.services.accuracy.recommendations import RecommendationGenerator
from conftest import comparison_record as record


def analyze(records):
    return AccuracyAggregator().aggregate(records)


@pytest.fixture
def generator():
    return RecommendationGenerator(
        day_bias_pct=30, product_bias_pct=20, min_accuracy=60, min_samples=2,
        high_cost=500, high_cost_share=0.25
    )


def steady_tarts():
    return [record(day, 10, 10, product_id="tart") for day in ("2024-06-10", "2024-06-17") for _ in range(3)]


def test_weekday_over_production(generator):
    records = [
        record("2024-06-10", 20, 10, waste_cost=10.0),
        record("2024-06-17", 20, 10, waste_cost=10.0),
    ] + steady_tarts()

    recommendations = generator.generate(analyze(records))

    assert [(r['type'], r['target']) for r in recommendations] == [
        ('product', "Croissant"),
        ('product', "Croissant (Monday)"),
    ]
    weekday = recommendations[1]
    assert weekday['issue'] == "Over-produced by 50% on Mondays"
    assert weekday['suggestion'].startswith("Reduce production of Croissant on Mondays")
    assert weekday['cost'] == 20.0
    assert weekday['priority'] == 'high'


def test_under_production_suggests_increase(generator):
    records = [
        record("2024-06-10", 10, 15, stockout_revenue=8.0),
        record("2024-06-17", 10, 15, stockout_revenue=8.0),
    ] + steady_tarts()

    recommendations = generator.generate(analyze(records))

    assert recommendations
    assert all(r['suggestion'].startswith("Increase") for r in recommendations)


def test_low_market_accuracy(generator):
    records = [
        record("2024-06-10", 10, 3, market_id="m2"),
        record("2024-06-11", 10, 3, market_id="m2"),
    ]

    recommendations = generator.generate(analyze(records))

    markets = [r for r in recommendations if r['type'] == 'market']
    assert len(markets) == 1
    assert markets[0]['target'] == "M2"
    assert "30%" in markets[0]['issue']


def test_low_weekday_accuracy(generator):
    records = [
        record("2024-06-11", 10, 3, product_id="a"),
        record("2024-06-18", 10, 17, product_id="b"),
    ] + steady_tarts()

    recommendations = generator.generate(analyze(records))

    days = [r for r in recommendations if r['type'] == 'day']
    assert [d['target'] for d in days] == ["Tuesday"]


def test_single_observation_is_not_a_pattern(generator):
    assert generator.generate(analyze([record("2024-06-10", 20, 5)])) == []


def test_priority_by_cost_share():
    generator = RecommendationGenerator(high_cost=1000, high_cost_share=0.5)
    records = [
        record("2024-06-10", 20, 10, product_id="a", waste_cost=15.0),
        record("2024-06-17", 20, 10, product_id="a", waste_cost=15.0),
        record("2024-06-10", 20, 10, product_id="b", waste_cost=5.0),
        record("2024-06-17", 20, 10, product_id="b", waste_cost=5.0),
    ] + steady_tarts() * 3

    recommendations = [r for r in generator.generate(analyze(records)) if r['type'] == 'product']

    priorities = {(r['target'], r['priority']) for r in recommendations}
    assert ("A", 'high') in priorities
    assert ("B", 'medium') in priorities
    assert recommendations[0]['priority'] == 'high'
    costs = [r['cost'] for r in recommendations if r['priority'] == 'medium']
    assert costs == sorted(costs, reverse=True)


def test_absolute_cost_threshold():
    generator = RecommendationGenerator(high_cost=5, high_cost_share=0.99)

    assert generator.priority(5.0, 1000.0) == 'high'
    assert generator.priority(4.0, 1000.0) == 'medium'
