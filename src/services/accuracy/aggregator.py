"""
Forecast Accuracy Aggregation

Reduces comparison records to:
- Overall summary (accuracy, bias, waste and stockout losses)
- Daily trend
- Day-of-week, product, market and product x weekday accuracy
- Top performers and products needing improvement
"""
import pandas as pd
from typing import Dict, List, Optional

from config.settings import settings
from src.utils.date_utils import WEEKDAY_NAMES

LOSS_COLUMNS = ['waste_qty', 'waste_cost', 'stockout_qty', 'stockout_revenue']


def calculate_accuracy(abs_diff_total: float, forecast_total: float) -> float:
    """
    Volume-weighted accuracy in percent

    accuracy = 100 * (1 - sum|diff| / sum(forecast)), clamped to [0, 100].
    With nothing forecast it is 100 only if nothing was sold either.
    """
    if forecast_total <= 0:
        return 100.0 if abs_diff_total == 0 else 0.0
    return float(min(100.0, max(0.0, 100.0 * (1.0 - abs_diff_total / forecast_total))))


def calculate_bias(diff_total: float, forecast_total: float) -> float:
    """Signed over(+)/under(-) production in percent of forecast"""
    if forecast_total <= 0:
        return 0.0
    return float(100.0 * diff_total / forecast_total)


class AccuracyAggregator:
    """Pure reduction of comparison records into accuracy statistics"""

    def __init__(self, top_limit: Optional[int] = None):
        self.top_limit = top_limit or settings.TOP_PERFORMERS_LIMIT

    @staticmethod
    def to_frame(records: List[Dict]) -> pd.DataFrame:
        """DataFrame of every record with helper columns"""
        columns = [
            'date', 'day_of_week', 'product_id', 'variant_id', 'product_name', 'market_id',
            'market_name', 'forecast_qty', 'actual_qty', 'diff', 'status'
        ] + LOSS_COLUMNS

        df = pd.DataFrame(records, columns=columns)
        for column in ['forecast_qty', 'actual_qty', 'diff'] + LOSS_COLUMNS:
            df[column] = pd.to_numeric(df[column])
        df['variant_key'] = df['variant_id'].fillna('').astype(str)
        df['is_pending'] = df['status'] == 'pending'
        df['is_exact'] = df['status'] == 'matched-exact'
        df['abs_diff'] = df['diff'].abs()
        return df

    @staticmethod
    def completed(df: pd.DataFrame) -> pd.DataFrame:
        """Records whose actuals are in"""
        done = df[~df['is_pending']].copy()
        for column in ['forecast_qty', 'actual_qty', 'diff', 'abs_diff']:
            done[column] = done[column].astype(float)
        return done

    @staticmethod
    def _group_stats(done: pd.DataFrame, keys: List[str]) -> pd.DataFrame:
        """Totals and accuracy per group of completed records"""
        grouped = done.groupby(keys, sort=True).agg(
            forecast_total=('forecast_qty', 'sum'),
            actual_total=('actual_qty', 'sum'),
            diff_total=('diff', 'sum'),
            abs_diff_total=('abs_diff', 'sum'),
            waste_qty=('waste_qty', 'sum'),
            waste_cost=('waste_cost', 'sum'),
            stockout_qty=('stockout_qty', 'sum'),
            stockout_revenue=('stockout_revenue', 'sum'),
            sample_size=('diff', 'size')
        ).reset_index()

        grouped['accuracy'] = [
            calculate_accuracy(a, f) for a, f in zip(grouped['abs_diff_total'], grouped['forecast_total'])
        ]
        grouped['bias_percent'] = [
            calculate_bias(d, f) for d, f in zip(grouped['diff_total'], grouped['forecast_total'])
        ]
        return grouped

    @staticmethod
    def _stats_dict(row) -> Dict:
        return {
            'accuracy': round(float(row['accuracy']), 2),
            'bias_percent': round(float(row['bias_percent']), 2),
            'sample_size': int(row['sample_size']),
            'forecast_total': int(row['forecast_total']),
            'actual_total': int(row['actual_total']),
            'waste_qty': int(row['waste_qty']),
            'waste_cost': round(float(row['waste_cost']), 2),
            'stockout_qty': int(row['stockout_qty']),
            'stockout_revenue': round(float(row['stockout_revenue']), 2)
        }

    def summarize(self, df: pd.DataFrame) -> Dict:
        """Headline numbers for the whole range"""
        done = self.completed(df)
        forecast_total = float(done['forecast_qty'].sum())

        return {
            'overall_accuracy': (
                round(calculate_accuracy(float(done['abs_diff'].sum()), forecast_total), 2)
                if len(done) else None
            ),
            'overall_bias_percent': round(calculate_bias(float(done['diff'].sum()), forecast_total), 2),
            'total_waste_qty': int(done['waste_qty'].sum()),
            'total_waste_cost': round(float(done['waste_cost'].sum()), 2),
            'total_stockout_qty': int(done['stockout_qty'].sum()),
            'total_stockout_revenue': round(float(done['stockout_revenue'].sum()), 2),
            'exact_matches': int(done['is_exact'].sum()),
            'days_with_data': int(done['date'].nunique()),
            'total_days': int(df['date'].nunique()),
            'total_forecasts': int(len(df)),
            'pending_forecasts': int(df['is_pending'].sum())
        }

    def daily_trend(self, df: pd.DataFrame) -> List[Dict]:
        """One point per forecast date; accuracy None until actuals arrive"""
        trend = []
        for day, group in df.groupby('date', sort=True):
            done = self.completed(group)
            trend.append({
                'date': day,
                'accuracy': (
                    round(calculate_accuracy(float(done['abs_diff'].sum()), float(done['forecast_qty'].sum())), 2)
                    if len(done) else None
                ),
                'waste_cost': round(float(done['waste_cost'].sum()), 2),
                'stockout_revenue': round(float(done['stockout_revenue'].sum()), 2),
                'forecast_count': int(len(group)),
                'actual_count': int(len(done)),
                'exact_matches': int(done['is_exact'].sum())
            })
        return trend

    def day_accuracy(self, df: pd.DataFrame) -> List[Dict]:
        """All seven weekdays, Monday first, including ones without data"""
        done = self.completed(df)
        stats = {}
        if len(done):
            for _, row in self._group_stats(done, ['day_of_week']).iterrows():
                stats[int(row['day_of_week'])] = self._stats_dict(row)

        days = []
        for day_of_week, day_name in enumerate(WEEKDAY_NAMES):
            if day_of_week in stats:
                days.append({'day_of_week': day_of_week, 'day_name': day_name, 'has_data': True, **stats[day_of_week]})
            else:
                days.append({
                    'day_of_week': day_of_week,
                    'day_name': day_name,
                    'has_data': False,
                    'accuracy': None,
                    'bias_percent': None,
                    'sample_size': 0,
                    'forecast_total': 0,
                    'actual_total': 0,
                    'waste_qty': 0,
                    'waste_cost': 0.0,
                    'stockout_qty': 0,
                    'stockout_revenue': 0.0
                })
        return days

    def product_accuracy(self, df: pd.DataFrame) -> List[Dict]:
        """Per product/variant, only those with at least one completed record"""
        done = self.completed(df)
        if not len(done):
            return []

        names = done.groupby(['product_id', 'variant_key'])['product_name'].last()
        products = []
        for _, row in self._group_stats(done, ['product_id', 'variant_key']).iterrows():
            products.append({
                'product_id': row['product_id'],
                'variant_id': row['variant_key'] or None,
                'product_name': names[(row['product_id'], row['variant_key'])],
                **self._stats_dict(row)
            })
        return products

    def market_accuracy(self, df: pd.DataFrame) -> List[Dict]:
        done = self.completed(df)
        if not len(done):
            return []

        names = done.groupby('market_id')['market_name'].last()
        return [
            {'market_id': row['market_id'], 'market_name': names[row['market_id']], **self._stats_dict(row)}
            for _, row in self._group_stats(done, ['market_id']).iterrows()
        ]

    def product_day_accuracy(self, df: pd.DataFrame) -> List[Dict]:
        """Per product/variant and weekday"""
        done = self.completed(df)
        if not len(done):
            return []

        names = done.groupby(['product_id', 'variant_key'])['product_name'].last()
        cells = []
        for _, row in self._group_stats(done, ['product_id', 'variant_key', 'day_of_week']).iterrows():
            day_of_week = int(row['day_of_week'])
            cells.append({
                'product_id': row['product_id'],
                'variant_id': row['variant_key'] or None,
                'product_name': names[(row['product_id'], row['variant_key'])],
                'day_of_week': day_of_week,
                'day_name': WEEKDAY_NAMES[day_of_week],
                **self._stats_dict(row)
            })
        return cells

    def rank_products(self, products: List[Dict]) -> Dict[str, List[Dict]]:
        """Best and worst products by accuracy"""
        best = sorted(products, key=lambda p: (-p['accuracy'], p['product_name']))
        worst = sorted(products, key=lambda p: (p['accuracy'], p['product_name']))
        return {
            'top_performers': best[:self.top_limit],
            'needs_improvement': worst[:self.top_limit]
        }

    def aggregate(self, records: List[Dict]) -> Dict:
        """
        Every accuracy view of a set of comparison records

        Records of several date partitions can simply be concatenated
        before calling this; nothing depends on the partitioning.
        """
        df = self.to_frame(records)
        products = self.product_accuracy(df)

        return {
            'summary': self.summarize(df),
            'daily_trend': self.daily_trend(df),
            'day_accuracy': self.day_accuracy(df),
            'product_accuracy': products,
            'market_accuracy': self.market_accuracy(df),
            'product_day_accuracy': self.product_day_accuracy(df),
            **self.rank_products(products)
        }
