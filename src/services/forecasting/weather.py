"""
Weather adjustment of the baseline demand rate
"""
from typing import Dict, List, Optional, Tuple
from datetime import date
import logging

import numpy as np

from config.settings import settings

logger = logging.getLogger(__name__)

WEATHER_CONDITIONS = ('sunny', 'cloudy', 'rain', 'storm', 'wind', 'cold')

# Multipliers relative to a sunny day
BAKED_GOODS_FACTORS = {
    'sunny': 1.0,
    'cloudy': 0.95,
    'rain': 0.8,
    'storm': 0.4,
    'wind': 0.9,
    'cold': 1.05,
}

BEVERAGE_FACTORS = {
    'sunny': 1.15,
    'cloudy': 0.95,
    'rain': 0.75,
    'storm': 0.35,
    'wind': 0.9,
    'cold': 0.85,
}

BEVERAGE_CATEGORIES = {'beverage', 'beverages', 'drink', 'drinks', 'coffee', 'tea'}

MIN_LEARNED_FACTOR = 0.05
MAX_LEARNED_FACTOR = 2.0


class WeatherAdjuster:
    """Scales lambda by a category-aware weather multiplier"""

    def __init__(self, min_samples: Optional[int] = None, learned_enabled: Optional[bool] = None):
        self.min_samples = min_samples or settings.WEATHER_MIN_SAMPLES
        self.learned_enabled = (
            settings.LEARNED_WEATHER_ENABLED if learned_enabled is None else learned_enabled
        )

    @staticmethod
    def normalize_condition(weather: Optional[str]) -> Optional[str]:
        """Known condition name, or None for missing/unknown weather"""
        if not weather:
            return None
        condition = weather.strip().lower()
        return condition if condition in WEATHER_CONDITIONS else None

    @staticmethod
    def factor_table(category: Optional[str] = None) -> Dict[str, float]:
        """Lookup table for a product category"""
        if category and category.strip().lower() in BEVERAGE_CATEGORIES:
            return BEVERAGE_FACTORS
        return BAKED_GOODS_FACTORS

    def learn_factors(self, history: List[Tuple[date, int, Optional[str]]]) -> Dict[str, float]:
        """
        Market/product-specific multipliers from weather-labelled history

        Each condition with enough observations gets mean(condition) /
        mean(sunny). Without enough sunny days there is no baseline and
        nothing is learned.
        """
        groups = {}
        for _, quantity, weather in history:
            condition = self.normalize_condition(weather)
            if condition is not None:
                groups.setdefault(condition, []).append(quantity)

        sunny = groups.get('sunny', [])
        if len(sunny) < self.min_samples:
            return {}

        baseline = float(np.mean(sunny))
        if baseline <= 0:
            return {}

        learned = {}
        for condition, quantities in groups.items():
            if len(quantities) >= self.min_samples:
                ratio = float(np.mean(quantities)) / baseline
                learned[condition] = min(MAX_LEARNED_FACTOR, max(MIN_LEARNED_FACTOR, ratio))

        return learned

    def adjust(
        self,
        baseline: float,
        weather: Optional[str],
        category: Optional[str] = None,
        history: Optional[List[Tuple[date, int, Optional[str]]]] = None
    ) -> Dict:
        """
        Apply the weather multiplier to a baseline rate

        Returns:
            Dict with the normalized condition, factor, its source
            (learned, table or none) and the adjusted rate
        """
        condition = self.normalize_condition(weather)

        if condition is None:
            return {
                'condition': 'none',
                'factor': 1.0,
                'source': 'none',
                'weather_adjusted': baseline
            }

        learned = self.learn_factors(history) if (self.learned_enabled and history) else {}

        if condition in learned:
            factor = learned[condition]
            source = 'learned'
            logger.debug(f"Using learned {condition} factor {factor:.2f}")
        else:
            factor = self.factor_table(category)[condition]
            source = 'table'

        return {
            'condition': condition,
            'factor': factor,
            'source': source,
            'weather_adjusted': baseline * factor
        }
