"""
Robust demand-rate estimation

OutlierFilter drops anomalous days (parties, catering orders, data entry
slips) before BaselineEstimator turns the sample into a Poisson rate.
"""
from datetime import date
from typing import Dict, List, Optional, Tuple

import numpy as np

from config.settings import settings


class OutlierFilter:
    """Median-absolute-deviation outlier removal that never empties a sample"""

    # Scales MAD to the standard deviation of a normal distribution
    MAD_SCALE = 1.4826

    def __init__(
        self,
        method: Optional[str] = None,
        mad_threshold: Optional[float] = None,
        std_multiplier: Optional[float] = None,
        min_kept: Optional[int] = None
    ):
        self.method = method or settings.OUTLIER_METHOD
        self.mad_threshold = mad_threshold or settings.OUTLIER_MAD_THRESHOLD
        self.std_multiplier = std_multiplier or settings.OUTLIER_STD_MULTIPLIER
        self.min_kept = max(2, min_kept or settings.OUTLIER_MIN_KEPT)

        if self.method not in ('mad', 'std'):
            raise ValueError("method must be 'mad' or 'std'")

    def flag_outliers(self, values: np.ndarray) -> np.ndarray:
        """
        Boolean mask of outliers

        MAD rule: |x - median| / (1.4826 * MAD) > threshold. Falls back to
        |x - median| > k * std when MAD is zero (most days identical).
        """
        median = np.median(values)
        deviations = np.abs(values - median)
        mad = np.median(deviations)

        if self.method == 'mad' and mad > 0:
            return deviations / (self.MAD_SCALE * mad) > self.mad_threshold

        return deviations > self.std_multiplier * np.std(values)

    def filter(self, observations: List[Tuple[date, int]]) -> Dict:
        """
        Remove outliers from a demand sample

        Args:
            observations: (date, quantity) pairs

        Returns:
            Dict with the kept observations (original order), the number
            removed and the sample median
        """
        if len(observations) <= self.min_kept:
            median = float(np.median([q for _, q in observations])) if observations else 0.0
            return {
                'observations': list(observations),
                'outliers_removed': 0,
                'median': median
            }

        values = np.array([q for _, q in observations], dtype=float)
        flagged = self.flag_outliers(values)

        if (~flagged).sum() < self.min_kept:
            # Restore the points closest to the median, most recent first on ties
            deviations = np.abs(values - np.median(values))
            closest = sorted(range(len(values)), key=lambda i: (deviations[i], -i))
            for i in closest[:self.min_kept]:
                flagged[i] = False

        kept = [obs for obs, is_outlier in zip(observations, flagged) if not is_outlier]

        return {
            'observations': kept,
            'outliers_removed': int(flagged.sum()),
            'median': float(np.median(values))
        }


class BaselineEstimator:
    """
    Recency-weighted mean demand

    Weight of an observation is exp(-decay_rate * rank), rank 0 being the
    most recent occurrence, so weights never increase with distance. A
    decay rate of 0 gives the plain mean.
    """

    def __init__(self, decay_rate: Optional[float] = None):
        self.decay_rate = settings.BASELINE_DECAY_RATE if decay_rate is None else decay_rate

        if self.decay_rate < 0:
            raise ValueError("decay_rate cannot be negative")

    def weights(self, n: int) -> np.ndarray:
        """Weights for n chronologically ordered observations"""
        ranks = np.arange(n)[::-1]
        return np.exp(-self.decay_rate * ranks)

    def estimate(self, observations: List[Tuple[date, int]]) -> float:
        """Baseline lambda (>= 0) from a filtered sample"""
        if not observations:
            return 0.0

        ordered = sorted(observations, key=lambda obs: obs[0])
        values = np.array([max(q, 0) for _, q in ordered], dtype=float)

        baseline = float(np.average(values, weights=self.weights(len(values))))
        return max(0.0, baseline)
