"""
Historical demand sampling

Pulls the observations relevant to one SKU (product/variant/market) and
target weekday out of the sales log.
"""
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional
import logging

import numpy as np

from config.settings import settings
from src.exceptions import InsufficientHistory
from src.utils.date_utils import as_date

logger = logging.getLogger(__name__)


class HistoricalDemandSampler:
    """Selects the demand sample a forecast is estimated from"""

    def __init__(
        self,
        lookback_occurrences: Optional[int] = None,
        min_data_points: Optional[int] = None,
        max_history_days: Optional[int] = None,
        special_dates: Optional[Iterable[date]] = None,
        exclude_payday_period: Optional[bool] = None
    ):
        self.lookback_occurrences = lookback_occurrences or settings.LOOKBACK_OCCURRENCES
        self.min_data_points = min_data_points or settings.MIN_DATA_POINTS
        self.max_history_days = max_history_days or settings.MAX_HISTORY_DAYS
        self.special_dates = {
            as_date(d) for d in (settings.SPECIAL_DATES if special_dates is None else special_dates)
        }
        self.exclude_payday_period = (
            settings.EXCLUDE_PAYDAY_PERIOD if exclude_payday_period is None else exclude_payday_period
        )

    def is_payday_period(self, day: date) -> bool:
        start, end = settings.PAYDAY_PERIOD_START_DAY, settings.PAYDAY_PERIOD_END_DAY
        if start <= end:
            return start <= day.day <= end
        return day.day >= start or day.day <= end

    def is_special_day(self, day: date) -> bool:
        """Holidays, events and (optionally) payday days never enter a demand sample"""
        if day in self.special_dates:
            return True
        return self.exclude_payday_period and self.is_payday_period(day)

    def _daily_history(
        self,
        sales_records: List[Dict],
        product_id: str,
        market_id: str,
        target_date: date,
        variant_id: Optional[str] = None
    ) -> Dict[date, Dict]:
        """Sum the SKU's sales per ordinary day inside the history window"""
        window_start = target_date - timedelta(days=self.max_history_days)
        daily = {}
        skipped = set()

        for record in sales_records:
            if record['product_id'] != product_id or record.get('market_id') != market_id:
                continue
            if record.get('variant_id') != variant_id:
                continue

            sale_date = as_date(record['sale_date'])
            if not window_start <= sale_date < target_date:
                continue
            if self.is_special_day(sale_date):
                skipped.add(sale_date)
                continue

            entry = daily.setdefault(sale_date, {'quantity': 0, 'weather': None})
            entry['quantity'] += int(record.get('quantity_sold') or 0)
            if entry['weather'] is None:
                entry['weather'] = record.get('weather_condition')

        if skipped:
            logger.debug(f"Excluded {len(skipped)} special days from history of product {product_id}")

        return daily

    def sample(
        self,
        sales_records: List[Dict],
        product_id: str,
        market_id: str,
        target_date: date,
        variant_id: Optional[str] = None
    ) -> Dict:
        """
        Build the demand sample for a SKU

        Prefers the trailing N occurrences of the target weekday; when fewer
        than the minimum exist, every day in the history window is used.
        Special days (holidays, events, optional payday period) are skipped.

        Returns:
            Dict with chronological (date, quantity) observations, the
            sampling mode, and the full weather-labelled history

        Raises:
            InsufficientHistory: fewer than min_data_points observations
        """
        target_date = as_date(target_date)
        daily = self._daily_history(sales_records, product_id, market_id, target_date, variant_id)
        dates = sorted(daily)

        same_weekday = [d for d in dates if d.weekday() == target_date.weekday()]

        if len(same_weekday) >= self.min_data_points:
            selected = same_weekday[-self.lookback_occurrences:]
            sampling_mode = 'same_weekday'
        else:
            selected = dates
            sampling_mode = 'all_weekdays'

        if len(selected) < self.min_data_points:
            raise InsufficientHistory(
                f"Need at least {self.min_data_points} sales days for product {product_id} "
                f"at market {market_id}, got {len(selected)}",
                details={
                    'product_id': product_id,
                    'variant_id': variant_id,
                    'market_id': market_id,
                    'data_points': len(selected)
                }
            )

        logger.debug(
            f"Sampled {len(selected)} {sampling_mode} observations for "
            f"product {product_id} at market {market_id}"
        )

        return {
            'observations': [(d, daily[d]['quantity']) for d in selected],
            'sampling_mode': sampling_mode,
            'same_weekday_points': len(same_weekday),
            'total_points': len(dates),
            'history': [(d, daily[d]['quantity'], daily[d]['weather']) for d in dates]
        }

    def fallback_rate(
        self,
        sales_records: List[Dict],
        market_id: str,
        target_date: date,
        category: Optional[str] = None
    ) -> Optional[float]:
        """
        Average daily units per SKU for a category (storewide when category is None)

        Used in place of a SKU-level estimate when that SKU lacks history.
        Returns None when there is nothing to average.
        """
        target_date = as_date(target_date)
        window_start = target_date - timedelta(days=self.max_history_days)
        sku_days = {}

        for record in sales_records:
            if record.get('market_id') != market_id:
                continue
            if category is not None and record.get('category') != category:
                continue

            sale_date = as_date(record['sale_date'])
            if not window_start <= sale_date < target_date or self.is_special_day(sale_date):
                continue

            key = (record['product_id'], record.get('variant_id'), sale_date)
            sku_days[key] = sku_days.get(key, 0) + int(record.get('quantity_sold') or 0)

        if not sku_days:
            return None

        return float(np.mean(list(sku_days.values())))
