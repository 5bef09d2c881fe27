"""
Forecast vs. actuals reconciliation

ActualsJoiner pairs each production forecast with what was really sold
and left over; ComparisonRecordBuilder turns each pair into quantities,
losses and a status.
"""
from typing import Dict, List, Optional, Tuple
import logging

from src.utils.date_utils import as_date, weekday_name

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_MATCHED = 'matched-exact'
STATUS_OVER = 'over-produced'
STATUS_UNDER = 'under-produced'


def sku_key(record: Dict) -> Tuple:
    return record['product_id'], record.get('variant_id')


class ActualsJoiner:
    """Joins forecasts with sales log and daily inventory rows"""

    @staticmethod
    def latest_forecasts(forecasts: List[Dict]) -> List[Dict]:
        """
        Keep only the most recent forecast per SKU, market and date

        Rows are append-only, so a regenerated forecast leaves the earlier
        row in place; the latest one is the decision being judged.
        """
        latest = {}
        for forecast in forecasts:
            key = sku_key(forecast) + (forecast['market_id'], as_date(forecast['forecast_for_date']))
            current = latest.get(key)
            stamp = (str(forecast.get('created_at') or ''), forecast.get('id') or 0)
            if current is None or stamp >= current[0]:
                latest[key] = (stamp, forecast)

        return [forecast for _, forecast in latest.values()]

    @staticmethod
    def index_sales(sales: List[Dict]) -> Dict[Tuple, int]:
        """Total quantity sold per SKU, market and date"""
        totals = {}
        for sale in sales:
            key = sku_key(sale) + (sale['market_id'], as_date(sale['sale_date']))
            totals[key] = totals.get(key, 0) + int(sale.get('quantity_sold') or 0)
        return totals

    @staticmethod
    def index_inventory(inventory: List[Dict]) -> Dict[Tuple, Dict]:
        """Inventory rows per SKU, market (None = every market) and date"""
        index = {}
        for row in inventory:
            key = sku_key(row) + (row.get('market_id'), as_date(row['business_date']))
            index[key] = row
        return index

    def join(
        self,
        forecasts: List[Dict],
        sales: List[Dict],
        inventory: List[Dict]
    ) -> List[Tuple[Dict, Optional[int], Optional[Dict]]]:
        """
        Pair each forecast with its realized quantity and inventory row

        Realized quantity is the sales log total; a day counted only in
        daily inventory uses its sold quantity. Neither means actuals are
        not in yet and the quantity is None (pending, not an error).
        """
        sales_index = self.index_sales(sales)
        inventory_index = self.index_inventory(inventory)
        joined = []

        for forecast in self.latest_forecasts(forecasts):
            forecast_date = as_date(forecast['forecast_for_date'])
            key = sku_key(forecast)

            stock = inventory_index.get(key + (forecast['market_id'], forecast_date))
            if stock is None:
                stock = inventory_index.get(key + (None, forecast_date))

            actual_qty = sales_index.get(key + (forecast['market_id'], forecast_date))
            if actual_qty is None and stock is not None:
                actual_qty = int(stock.get('sold_qty') or 0)

            joined.append((forecast, actual_qty, stock))

        joined.sort(key=lambda item: (
            as_date(item[0]['forecast_for_date']),
            item[0]['market_id'],
            item[0]['product_name']
        ))
        return joined


class ComparisonRecordBuilder:
    """Derives diff, waste, stockout and status for one forecast"""

    @staticmethod
    def classify(diff: int) -> str:
        if diff > 0:
            return STATUS_OVER
        elif diff < 0:
            return STATUS_UNDER
        return STATUS_MATCHED

    @staticmethod
    def display_name(forecast: Dict) -> str:
        if forecast.get('variant_name'):
            return f"{forecast['product_name']} ({forecast['variant_name']})"
        return forecast['product_name']

    def build(self, forecast: Dict, actual_qty: Optional[int], stock: Optional[Dict] = None) -> Dict:
        """
        Comparison record for one forecast

        Waste prefers the counted leftover (Real Waste) over the forecast's
        own diff. Stockout losses are only booked when the inventory row
        shows a sell-out on an under-produced day; lost units are estimated
        as prediction_interval_upper minus the quantity supplied, valued at
        unit margin.
        """
        forecast_date = as_date(forecast['forecast_for_date'])
        forecast_qty = int(forecast['optimal_quantity'])
        unit_cost = float(forecast.get('unit_cost') or 0)
        unit_price = float(forecast.get('unit_price') or 0)

        to_shop_qty = int(stock.get('to_shop_qty') or 0) if stock else None
        leftover_qty = stock.get('leftover_qty') if stock else None

        record = {
            'date': forecast_date.isoformat(),
            'day_of_week': forecast_date.weekday(),
            'day_name': weekday_name(forecast_date.weekday()),
            'forecast_id': forecast.get('id'),
            'product_id': forecast['product_id'],
            'variant_id': forecast.get('variant_id'),
            'product_name': self.display_name(forecast),
            'market_id': forecast['market_id'],
            'market_name': forecast.get('market_name') or forecast['market_id'],
            'forecast_qty': forecast_qty,
            'forecast_rate': float(forecast.get('weather_adjusted_forecast') or forecast.get('lambda_poisson') or 0.0),
            'actual_qty': actual_qty,
            'to_shop_qty': to_shop_qty,
            'leftover_qty': leftover_qty,
            'diff': None,
            'waste_qty': 0,
            'stockout_qty': 0,
            'waste_cost': 0.0,
            'stockout_revenue': 0.0,
            'waste_source': None,
            'sold_out': False,
            'status': STATUS_PENDING
        }

        if actual_qty is None:
            return record

        diff = forecast_qty - actual_qty

        if leftover_qty is not None:
            waste_qty = max(int(leftover_qty), 0)
            waste_source = 'leftover'
        else:
            waste_qty = max(diff, 0)
            waste_source = 'forecast_diff'

        sold_out = leftover_qty is not None and int(leftover_qty) == 0
        stockout_qty = 0
        if sold_out and diff < 0:
            supplied = to_shop_qty or actual_qty
            stockout_qty = max(int(forecast.get('prediction_interval_upper') or 0) - supplied, 0)

        record.update({
            'diff': diff,
            'waste_qty': waste_qty,
            'stockout_qty': stockout_qty,
            'waste_cost': waste_qty * unit_cost,
            'stockout_revenue': stockout_qty * max(unit_price - unit_cost, 0.0),
            'waste_source': waste_source,
            'sold_out': sold_out,
            'status': self.classify(diff)
        })
        return record


def build_comparison_records(
    forecasts: List[Dict],
    sales: List[Dict],
    inventory: List[Dict]
) -> List[Dict]:
    """Join forecasts with actuals and build every comparison record"""
    joiner = ActualsJoiner()
    builder = ComparisonRecordBuilder()

    records = [builder.build(forecast, actual_qty, stock) for forecast, actual_qty, stock in joiner.join(forecasts, sales, inventory)]

    pending = sum(1 for r in records if r['status'] == STATUS_PENDING)
    if pending:
        logger.info(f"{pending} of {len(records)} forecasts are awaiting actuals")

    return records
