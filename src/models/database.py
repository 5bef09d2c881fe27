from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey, Boolean, Index
from sqlalchemy.orm import declarative_base
from datetime import datetime
from typing import Dict, Any

Base = declarative_base()


class Market(Base):
    """Selling location (shop front or outdoor market stall)"""
    __tablename__ = "markets"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    is_outdoor = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Product(Base):
    """Product catalog with category and unit economics"""
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    category = Column(String(100), index=True)
    price = Column(Float, nullable=False)
    cost = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProductVariant(Base):
    """Sellable variant of a product (size, filling, flavour)"""
    __tablename__ = "product_variants"

    id = Column(String(64), primary_key=True)
    product_id = Column(String(64), ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Float)  # falls back to product price when null
    cost = Column(Float)
    is_active = Column(Boolean, default=True)


class ProductSale(Base):
    """Daily sales log per product/variant/market"""
    __tablename__ = "product_sales"

    id = Column(Integer, primary_key=True, index=True)
    sale_date = Column(Date, nullable=False, index=True)
    market_id = Column(String(64), nullable=False, index=True)
    market_name = Column(String(200))  # snapshot at time of sale
    product_id = Column(String(64), nullable=False, index=True)
    product_name = Column(String(200))  # snapshot at time of sale
    variant_id = Column(String(64))
    variant_name = Column(String(200))
    category = Column(String(100))
    quantity_sold = Column(Integer, nullable=False)
    price_per_unit = Column(Float)
    cost_per_unit = Column(Float)
    waste_qty = Column(Integer, default=0)
    weather_condition = Column(String(20))  # sunny, cloudy, rain, storm, wind, cold
    recorded_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sale_date': self.sale_date,
            'market_id': self.market_id,
            'market_name': self.market_name,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'variant_id': self.variant_id,
            'variant_name': self.variant_name,
            'category': self.category,
            'quantity_sold': self.quantity_sold,
            'price_per_unit': self.price_per_unit,
            'cost_per_unit': self.cost_per_unit,
            'waste_qty': self.waste_qty,
            'weather_condition': self.weather_condition
        }


class DailyInventory(Base):
    """End-of-day stock movements; market_id null means every market"""
    __tablename__ = "daily_inventory"

    id = Column(Integer, primary_key=True, index=True)
    business_date = Column(Date, nullable=False, index=True)
    product_id = Column(String(64), nullable=False, index=True)
    variant_id = Column(String(64))
    market_id = Column(String(64))
    produced_qty = Column(Integer, default=0)
    to_shop_qty = Column(Integer, default=0)
    sold_qty = Column(Integer, default=0)
    waste_qty = Column(Integer, default=0)  # discarded before reaching the shop
    leftover_qty = Column(Integer)  # unsold at close; null when not counted
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'business_date': self.business_date,
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'market_id': self.market_id,
            'produced_qty': self.produced_qty,
            'to_shop_qty': self.to_shop_qty,
            'sold_qty': self.sold_qty,
            'waste_qty': self.waste_qty,
            'leftover_qty': self.leftover_qty
        }


class MarketWeather(Base):
    """Weather forecast per market and day"""
    __tablename__ = "market_weather"

    id = Column(Integer, primary_key=True, index=True)
    market_id = Column(String(64), nullable=False)
    forecast_date = Column(Date, nullable=False)
    condition = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_market_weather_market_date', 'market_id', 'forecast_date'),
    )


class ProductionForecast(Base):
    """Newsvendor production forecast; rows are append-only"""
    __tablename__ = "production_forecasts"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Identity
    product_id = Column(String(64), nullable=False, index=True)
    variant_id = Column(String(64))
    market_id = Column(String(64), nullable=False, index=True)
    forecast_for_date = Column(Date, nullable=False, index=True)

    # Snapshot of descriptive fields at forecast time
    product_name = Column(String(200), nullable=False)
    variant_name = Column(String(200))
    market_name = Column(String(200), nullable=False)
    product_category = Column(String(100))

    # Inputs
    weather_forecast = Column(String(20))
    historical_data_points = Column(Integer, nullable=False, default=0)
    outliers_removed = Column(Integer, nullable=False, default=0)
    sampling_mode = Column(String(20))  # same_weekday, all_weekdays, fallback_rate

    # Model outputs
    baseline_forecast = Column(Float, nullable=False)
    weather_adjusted_forecast = Column(Float, nullable=False)
    lambda_poisson = Column(Float, nullable=False)
    optimal_quantity = Column(Integer, nullable=False)
    service_level_target = Column(Float, nullable=False)
    stockout_probability = Column(Float, nullable=False)
    waste_probability = Column(Float, nullable=False)
    confidence_level = Column(Float, nullable=False)
    prediction_interval_lower = Column(Integer, nullable=False)
    prediction_interval_upper = Column(Integer, nullable=False)

    # Economics
    unit_price = Column(Float, nullable=False)
    unit_cost = Column(Float, nullable=False)
    expected_demand = Column(Float, nullable=False)
    expected_profit = Column(Float, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'market_id': self.market_id,
            'forecast_for_date': self.forecast_for_date.isoformat(),
            'product_name': self.product_name,
            'variant_name': self.variant_name,
            'market_name': self.market_name,
            'product_category': self.product_category,
            'weather_forecast': self.weather_forecast,
            'historical_data_points': self.historical_data_points,
            'outliers_removed': self.outliers_removed,
            'sampling_mode': self.sampling_mode,
            'baseline_forecast': self.baseline_forecast,
            'weather_adjusted_forecast': self.weather_adjusted_forecast,
            'lambda_poisson': self.lambda_poisson,
            'optimal_quantity': self.optimal_quantity,
            'service_level_target': self.service_level_target,
            'stockout_probability': self.stockout_probability,
            'waste_probability': self.waste_probability,
            'confidence_level': self.confidence_level,
            'prediction_interval_lower': self.prediction_interval_lower,
            'prediction_interval_upper': self.prediction_interval_upper,
            'unit_price': self.unit_price,
            'unit_cost': self.unit_cost,
            'expected_demand': self.expected_demand,
            'expected_profit': self.expected_profit
        }

    def __repr__(self) -> str:
        return (
            f"<ProductionForecast(id={self.id}, product_id='{self.product_id}', "
            f"market_id='{self.market_id}', date={self.forecast_for_date}, qty={self.optimal_quantity})>"
        )

    __table_args__ = (
        Index('idx_forecasts_sku_date', 'product_id', 'market_id', 'forecast_for_date'),
    )
