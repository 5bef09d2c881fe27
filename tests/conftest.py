import pytest
from datetime import date, timedelta

from src.database import build_engine, build_session_factory, init_db
from src.models.database import Market, Product, ProductVariant, ProductSale, MarketWeather

# A Monday
TARGET_DATE = date(2024, 6, 10)
HISTORY_DAYS = 56


def make_sale(day, qty, product_id="croissant", market_id="m1", variant_id=None, weather="sunny", category="bakery"):
    """Sales log row as returned by the store"""
    return {
        'sale_date': day,
        'market_id': market_id,
        'market_name': "Farmers Market",
        'product_id': product_id,
        'product_name': product_id.title(),
        'variant_id': variant_id,
        'variant_name': None,
        'category': category,
        'quantity_sold': qty,
        'price_per_unit': 3.0,
        'cost_per_unit': 1.0,
        'weather_condition': weather
    }


def comparison_record(day, forecast_qty, actual_qty, product_id="croissant", market_id="m1", variant_id=None,
                      waste_cost=0.0, stockout_revenue=0.0, forecast_rate=None):
    """Comparison record with a status matching its quantities"""
    d = date.fromisoformat(day)
    if actual_qty is None:
        diff, status = None, 'pending'
    else:
        diff = forecast_qty - actual_qty
        status = 'over-produced' if diff > 0 else 'under-produced' if diff < 0 else 'matched-exact'
    return {
        'date': day,
        'day_of_week': d.weekday(),
        'day_name': d.strftime('%A'),
        'product_id': product_id,
        'variant_id': variant_id,
        'product_name': product_id.title(),
        'market_id': market_id,
        'market_name': market_id.upper(),
        'forecast_qty': forecast_qty,
        'forecast_rate': float(forecast_qty) if forecast_rate is None else forecast_rate,
        'actual_qty': actual_qty,
        'diff': diff,
        'waste_qty': max(diff or 0, 0),
        'waste_cost': waste_cost,
        'stockout_qty': 0,
        'stockout_revenue': stockout_revenue,
        'status': status
    }


def croissant_quantity(day: date) -> int:
    """Croissants sell 20 on Mondays and 10 on other days"""
    return 20 if day.weekday() == 0 else 10


def seed_rows():
    """Catalog and eight weeks of sales ending the day before TARGET_DATE"""
    rows = [
        Market(id="m1", name="Farmers Market", is_outdoor=True),
        Market(id="m2", name="High Street Shop", is_outdoor=False),
        Product(id="croissant", name="Croissant", category="bakery", price=3.0, cost=1.0),
        Product(id="coffee", name="Coffee", category="beverage", price=4.0, cost=1.0),
        Product(id="tart", name="Lemon Tart", category="bakery", price=5.0, cost=2.0),
        ProductVariant(id="coffee-s", product_id="coffee", name="Small"),
        ProductVariant(id="coffee-l", product_id="coffee", name="Large", price=5.0, cost=1.5),
        MarketWeather(market_id="m1", forecast_date=TARGET_DATE, condition="rain"),
    ]

    for offset in range(1, HISTORY_DAYS + 1):
        day = TARGET_DATE - timedelta(days=offset)
        rows.append(ProductSale(
            sale_date=day, market_id="m1", market_name="Farmers Market",
            product_id="croissant", product_name="Croissant", category="bakery",
            quantity_sold=croissant_quantity(day), price_per_unit=3.0, cost_per_unit=1.0,
            weather_condition="sunny"
        ))
        rows.append(ProductSale(
            sale_date=day, market_id="m1", market_name="Farmers Market",
            product_id="coffee", product_name="Coffee", variant_id="coffee-s", variant_name="Small",
            category="beverage", quantity_sold=15, price_per_unit=4.0, cost_per_unit=1.0,
            weather_condition="sunny"
        ))
        rows.append(ProductSale(
            sale_date=day, market_id="m1", market_name="Farmers Market",
            product_id="coffee", product_name="Coffee", variant_id="coffee-l", variant_name="Large",
            category="beverage", quantity_sold=5, price_per_unit=5.0, cost_per_unit=1.5,
            weather_condition="sunny"
        ))

    return rows


async def create_seeded_database(database_url: str):
    """Create tables and insert the sample bakery"""
    engine = build_engine(database_url)
    await init_db(engine)

    session_factory = build_session_factory(engine)
    async with session_factory() as session:
        session.add_all(seed_rows())
        await session.commit()

    await engine.dispose()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
async def test_engine(database_url):
    """Create test database engine"""
    engine = build_engine(database_url)
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    """Create database session for tests"""
    session_factory = build_session_factory(test_engine)

    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded_session(db_session):
    """Session over a database holding the sample bakery"""
    db_session.add_all(seed_rows())
    await db_session.commit()
    return db_session


@pytest.fixture
def sku():
    """Croissant at the farmers market"""
    return {
        'product_id': "croissant",
        'variant_id': None,
        'market_id': "m1",
        'product_name': "Croissant",
        'variant_name': None,
        'market_name': "Farmers Market",
        'category': "bakery",
        'unit_price': 3.0,
        'unit_cost': 1.0
    }


@pytest.fixture
def croissant_sales():
    return [
        make_sale(TARGET_DATE - timedelta(days=offset), croissant_quantity(TARGET_DATE - timedelta(days=offset)))
        for offset in range(1, HISTORY_DAYS + 1)
    ]
