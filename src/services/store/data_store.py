from datetime import date
from typing import List, Dict, Optional
import logging

from sqlalchemy import select, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.database import (
    Market, Product, ProductVariant, ProductSale, DailyInventory, MarketWeather, ProductionForecast
)

logger = logging.getLogger(__name__)


class ForecastDataStore:
    """Read/write access to catalog, sales, weather, inventory and forecasts"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_market(self, market_id: str) -> Optional[Market]:
        result = await self.db.execute(select(Market).where(Market.id == market_id))
        return result.scalar_one_or_none()

    async def get_markets(self, active_only: bool = True) -> List[Market]:
        query = select(Market).order_by(Market.id)
        if active_only:
            query = query.where(Market.is_active == True)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_skus(self, market: Market, product_ids: Optional[List[str]] = None) -> List[Dict]:
        """
        Sellable SKUs of the active catalog, one per active variant

        Products without active variants are forecast as a single SKU with
        no variant. Variant price/cost fall back to the product's.
        """
        query = select(Product).where(Product.is_active == True).order_by(Product.id)
        if product_ids:
            query = query.where(Product.id.in_(product_ids))

        result = await self.db.execute(query)
        products = result.scalars().all()

        variant_query = select(ProductVariant).where(
            and_(
                ProductVariant.product_id.in_([p.id for p in products]),
                ProductVariant.is_active == True
            )
        ).order_by(ProductVariant.id)
        variant_result = await self.db.execute(variant_query)

        variants_by_product = {}
        for variant in variant_result.scalars().all():
            variants_by_product.setdefault(variant.product_id, []).append(variant)

        skus = []
        for product in products:
            variants = variants_by_product.get(product.id, [])
            base = {
                'product_id': product.id,
                'product_name': product.name,
                'market_id': market.id,
                'market_name': market.name,
                'category': product.category,
            }

            if not variants:
                skus.append({
                    **base,
                    'variant_id': None,
                    'variant_name': None,
                    'unit_price': float(product.price),
                    'unit_cost': float(product.cost or 0)
                })
                continue

            for variant in variants:
                skus.append({
                    **base,
                    'variant_id': variant.id,
                    'variant_name': variant.name,
                    'unit_price': float(variant.price if variant.price is not None else product.price),
                    'unit_cost': float(variant.cost if variant.cost is not None else (product.cost or 0))
                })

        return skus

    async def get_sales(
        self,
        start_date: date,
        end_date: date,
        market_id: Optional[str] = None
    ) -> List[Dict]:
        """Sales log rows with start_date <= sale_date < end_date"""
        conditions = [ProductSale.sale_date >= start_date, ProductSale.sale_date < end_date]
        if market_id:
            conditions.append(ProductSale.market_id == market_id)

        query = select(ProductSale).where(and_(*conditions)).order_by(ProductSale.sale_date)
        result = await self.db.execute(query)
        return [r.to_dict() for r in result.scalars().all()]

    async def get_weather(self, market_id: str, forecast_date: date) -> Optional[str]:
        """Most recently recorded weather forecast for a market and day"""
        query = select(MarketWeather).where(
            and_(
                MarketWeather.market_id == market_id,
                MarketWeather.forecast_date == forecast_date
            )
        ).order_by(MarketWeather.created_at.desc(), MarketWeather.id.desc()).limit(1)

        result = await self.db.execute(query)
        weather = result.scalar_one_or_none()
        return weather.condition if weather else None

    async def get_forecasts(
        self,
        start_date: date,
        end_date: date,
        market_id: Optional[str] = None,
        product_id: Optional[str] = None
    ) -> List[Dict]:
        """Forecast rows for start_date <= forecast_for_date <= end_date"""
        conditions = [
            ProductionForecast.forecast_for_date >= start_date,
            ProductionForecast.forecast_for_date <= end_date
        ]
        if market_id:
            conditions.append(ProductionForecast.market_id == market_id)
        if product_id:
            conditions.append(ProductionForecast.product_id == product_id)

        query = select(ProductionForecast).where(and_(*conditions)).order_by(
            ProductionForecast.forecast_for_date,
            ProductionForecast.created_at,
            ProductionForecast.id
        )
        result = await self.db.execute(query)
        return [f.to_dict() for f in result.scalars().all()]

    async def get_inventory(self, start_date: date, end_date: date) -> List[Dict]:
        """Daily inventory rows for start_date <= business_date <= end_date"""
        query = select(DailyInventory).where(
            and_(
                DailyInventory.business_date >= start_date,
                DailyInventory.business_date <= end_date
            )
        ).order_by(DailyInventory.business_date)

        result = await self.db.execute(query)
        return [r.to_dict() for r in result.scalars().all()]

    async def append_forecasts(self, forecasts: List[ProductionForecast]) -> List[ProductionForecast]:
        """Insert new forecast rows; existing rows are never updated"""
        if not forecasts:
            return []

        self.db.add_all(forecasts)
        await self.db.commit()

        for forecast in forecasts:
            await self.db.refresh(forecast)

        logger.info(f"Stored {len(forecasts)} production forecasts")
        return forecasts

    async def delete_forecasts_for_date(self, forecast_date: date, market_id: Optional[str] = None) -> int:
        """Remove every forecast for a date; returns the number of rows deleted"""
        conditions = [ProductionForecast.forecast_for_date == forecast_date]
        if market_id:
            conditions.append(ProductionForecast.market_id == market_id)

        result = await self.db.execute(delete(ProductionForecast).where(and_(*conditions)))
        await self.db.commit()

        logger.warning(f"Deleted {result.rowcount} forecasts for {forecast_date}")
        return result.rowcount
