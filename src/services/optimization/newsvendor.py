import math
import numpy as np
from typing import Dict, Optional, Tuple
from scipy import stats
from config.settings import settings
from src.exceptions import InvalidForecastInput
import logging

logger = logging.getLogger(__name__)

# A zero unit cost makes the critical fractile 1.0 (infinite order quantity)
MAX_SERVICE_LEVEL = 0.999


class NewsvendorOptimizer:
    """Single-period production quantity under Poisson demand"""

    def __init__(
        self,
        interval_lower: Optional[float] = None,
        interval_upper: Optional[float] = None,
        confidence_scale: Optional[float] = None
    ):
        self.interval_lower = interval_lower or settings.PREDICTION_INTERVAL_LOWER
        self.interval_upper = interval_upper or settings.PREDICTION_INTERVAL_UPPER
        self.confidence_scale = confidence_scale or settings.CONFIDENCE_SAMPLE_SCALE
        self.default_service_level = settings.DEFAULT_SERVICE_LEVEL

    @staticmethod
    def validate_inputs(lam: float, unit_price: float, unit_cost: float):
        """Reject rates and prices that indicate a programming error"""
        if lam is None or not math.isfinite(lam) or lam < 0:
            raise InvalidForecastInput(f"Demand rate must be finite and non-negative, got {lam}")

        if unit_price is None or not math.isfinite(unit_price) or unit_price <= 0:
            raise InvalidForecastInput(f"Unit price must be positive, got {unit_price}")

        if unit_cost is None or not math.isfinite(unit_cost) or unit_cost < 0:
            raise InvalidForecastInput(f"Unit cost cannot be negative, got {unit_cost}")

    def calculate_critical_fractile(
        self,
        unit_price: float,
        unit_cost: float,
        underage_cost: Optional[float] = None,
        overage_cost: Optional[float] = None
    ) -> float:
        """
        Critical fractile of the newsvendor problem

        CF = Cu / (Cu + Co)
        where:
        Cu = underage cost (margin lost per unit short) = p - c by default
        Co = overage cost (cost per unit wasted) = c by default

        With the defaults this reduces to (p - c) / p.
        """
        cu = unit_price - unit_cost if underage_cost is None else underage_cost
        co = unit_cost if overage_cost is None else overage_cost

        if cu < 0 or co < 0:
            raise InvalidForecastInput("Underage and overage costs cannot be negative")

        if cu + co <= 0:
            return 0.0

        return cu / (cu + co)

    def calculate_optimal_quantity(self, lam: float, service_level: float) -> int:
        """
        Smallest integer Q with PoissonCDF(Q; lambda) >= service_level
        """
        if lam == 0 or service_level <= 0:
            return 0

        if service_level >= 1:
            service_level = MAX_SERVICE_LEVEL

        return max(0, int(stats.poisson.ppf(service_level, lam)))

    def calculate_risk(self, lam: float, quantity: int) -> Dict:
        """
        Stockout and waste probabilities for an order quantity

        stockout = P(D > Q) = 1 - CDF(Q)
        waste    = P(D < Q) = CDF(Q - 1)

        They do not sum to 1: the exact-match event P(D = Q) is in neither.
        """
        if lam == 0:
            return {'stockout_probability': 0.0, 'waste_probability': 0.0}

        stockout = float(stats.poisson.sf(quantity, lam))
        waste = float(stats.poisson.cdf(quantity - 1, lam))

        return {
            'stockout_probability': min(1.0, max(0.0, stockout)),
            'waste_probability': min(1.0, max(0.0, waste))
        }

    def calculate_prediction_interval(self, lam: float) -> Tuple[int, int]:
        """Lower/upper percentiles of the demand distribution"""
        if lam == 0:
            return 0, 0

        lower = int(stats.poisson.ppf(self.interval_lower, lam))
        upper = int(stats.poisson.ppf(self.interval_upper, lam))
        return max(0, lower), max(0, upper)

    def calculate_confidence(self, sample_size: int, outliers_removed: int = 0) -> float:
        """
        Confidence in the estimate, bounded to [0, 1]

        confidence = (1 - exp(-n / scale)) * (1 - removed / n)

        Grows with history length and shrinks with the share of days that
        had to be discarded as outliers.
        """
        if sample_size <= 0:
            return 0.0

        outlier_ratio = min(1.0, max(0, outliers_removed) / sample_size)
        history_term = 1.0 - math.exp(-sample_size / self.confidence_scale)
        return min(1.0, max(0.0, history_term * (1.0 - outlier_ratio)))

    @staticmethod
    def confidence_label(confidence: float) -> str:
        if confidence >= 0.7:
            return 'high'
        elif confidence >= 0.4:
            return 'medium'
        return 'low'

    def calculate_expected_sales(self, lam: float, quantity: int) -> float:
        """
        E[min(D, Q)] = sum_{k<Q} k * PMF(k) + Q * P(D >= Q)
        """
        if lam == 0 or quantity <= 0:
            return 0.0

        k = np.arange(quantity)
        partial = float(np.sum(k * stats.poisson.pmf(k, lam)))
        tail = quantity * float(stats.poisson.sf(quantity - 1, lam))
        return partial + tail

    def optimize(
        self,
        lam: float,
        unit_price: float,
        unit_cost: float,
        service_level: Optional[float] = None,
        sample_size: int = 0,
        outliers_removed: int = 0,
        underage_cost: Optional[float] = None,
        overage_cost: Optional[float] = None
    ) -> Dict:
        """
        Complete newsvendor decision for one SKU

        Args:
            lam: Final Poisson rate (expected daily demand)
            unit_price: Selling price per unit
            unit_cost: Production cost per unit
            service_level: In-stock probability target; overrides the
                critical fractile (e.g. "always 95% in stock" policies)
            sample_size: Historical data points behind lambda
            outliers_removed: Points discarded by the outlier filter
            underage_cost / overage_cost: Explicit cost asymmetry override

        Returns:
            Dict with quantity, risk, interval, confidence and economics
        """
        self.validate_inputs(lam, unit_price, unit_cost)

        critical_fractile = self.calculate_critical_fractile(
            unit_price, unit_cost, underage_cost, overage_cost
        )

        if service_level is None:
            service_level = self.default_service_level
        elif not 0 < service_level < 1:
            raise InvalidForecastInput(f"Service level must be between 0 and 1, got {service_level}")

        if service_level is None:
            target = min(MAX_SERVICE_LEVEL, max(0.0, critical_fractile))
            if target < critical_fractile:
                logger.info(
                    f"Critical fractile {critical_fractile:.4f} capped at {MAX_SERVICE_LEVEL} "
                    f"(price {unit_price}, cost {unit_cost})"
                )
        else:
            target = service_level

        quantity = self.calculate_optimal_quantity(lam, target)
        logger.debug(f"Newsvendor: lambda={lam:.2f}, target={target:.3f} -> Q={quantity}")

        risk = self.calculate_risk(lam, quantity)
        lower, upper = self.calculate_prediction_interval(lam)
        confidence = self.calculate_confidence(sample_size, outliers_removed)

        expected_sales = self.calculate_expected_sales(lam, quantity)
        expected_profit = unit_price * expected_sales - unit_cost * quantity

        return {
            'critical_fractile': critical_fractile,
            'service_level_target': target,
            'optimal_quantity': quantity,
            'stockout_probability': risk['stockout_probability'],
            'waste_probability': risk['waste_probability'],
            'prediction_interval_lower': lower,
            'prediction_interval_upper': upper,
            'confidence_level': confidence,
            'confidence_label': self.confidence_label(confidence),
            'economics': {
                'unit_price': unit_price,
                'unit_cost': unit_cost,
                'expected_demand': lam,
                'expected_sales': expected_sales,
                'expected_waste': quantity - expected_sales,
                'expected_profit': expected_profit
            }
        }
