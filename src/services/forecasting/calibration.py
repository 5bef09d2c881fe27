"""
Bias calibration from reconciled forecasts

Demand rates that were consistently too high (or too low) for a product at a
market pull the next rate in the opposite direction. Error is measured
against the forecast demand rate before correction, never against the
production quantity.
"""
from typing import Dict, List, Optional

from config.settings import settings
from src.utils.date_utils import as_date


class BiasCalibrator:
    """EWMA of relative forecast error turned into a multiplicative correction"""

    def __init__(
        self,
        alpha: Optional[float] = None,
        min_records: Optional[int] = None,
        enabled: Optional[bool] = None
    ):
        self.alpha = alpha or settings.CALIBRATION_ALPHA
        self.min_records = min_records or settings.CALIBRATION_MIN_RECORDS
        self.enabled = settings.CALIBRATION_ENABLED if enabled is None else enabled
        self.min_factor = settings.CALIBRATION_MIN_FACTOR
        self.max_factor = settings.CALIBRATION_MAX_FACTOR

    @staticmethod
    def uncensored_demand(record: Dict) -> int:
        """Sold quantity plus the estimated units lost to a sell-out"""
        return record['actual_qty'] + record.get('stockout_qty', 0)

    def calibrate(self, comparison_records: List[Dict]) -> Dict:
        """
        Correction factor for the next forecast of a SKU

        Args:
            comparison_records: Comparison records of the same product and
                market, any order; pending ones are ignored

        Returns:
            Dict with the factor (1.0 when not applied), the EWMA of the
            relative error and how many records were used
        """
        usable = sorted(
            (r for r in comparison_records if r['status'] != 'pending' and (r.get('forecast_rate') or 0) > 0),
            key=lambda r: as_date(r['date'])
        )

        if not self.enabled or len(usable) < self.min_records:
            return {'factor': 1.0, 'ewma_error': 0.0, 'records_used': len(usable), 'applied': False}

        ewma = None
        for record in usable:
            rate = record['forecast_rate']
            error = (rate - self.uncensored_demand(record)) / rate
            ewma = error if ewma is None else self.alpha * error + (1 - self.alpha) * ewma

        factor = min(self.max_factor, max(self.min_factor, 1.0 - ewma))

        return {
            'factor': factor,
            'ewma_error': ewma,
            'records_used': len(usable),
            'applied': True
        }
