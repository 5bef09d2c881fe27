from typing import Dict, List, Optional
import logging

from config.settings import settings

logger = logging.getLogger(__name__)


class RecommendationGenerator:
    """Rule-based production adjustments from accuracy aggregates"""

    def __init__(
        self,
        day_bias_pct: Optional[float] = None,
        product_bias_pct: Optional[float] = None,
        min_accuracy: Optional[float] = None,
        min_samples: Optional[int] = None,
        high_cost: Optional[float] = None,
        high_cost_share: Optional[float] = None
    ):
        self.day_bias_pct = settings.RECOMMENDATION_DAY_BIAS_PCT if day_bias_pct is None else day_bias_pct
        self.product_bias_pct = settings.RECOMMENDATION_PRODUCT_BIAS_PCT if product_bias_pct is None else product_bias_pct
        self.min_accuracy = settings.RECOMMENDATION_MIN_ACCURACY if min_accuracy is None else min_accuracy
        self.min_samples = settings.RECOMMENDATION_MIN_SAMPLES if min_samples is None else min_samples
        self.high_cost = settings.RECOMMENDATION_HIGH_COST if high_cost is None else high_cost
        self.high_cost_share = settings.RECOMMENDATION_HIGH_COST_SHARE if high_cost_share is None else high_cost_share

    @staticmethod
    def pattern_cost(stats: Dict) -> float:
        return round(stats['waste_cost'] + stats['stockout_revenue'], 2)

    def priority(self, cost: float, total_cost: float) -> str:
        """High when the pattern is expensive in absolute terms or relative to the range"""
        if cost >= self.high_cost:
            return 'high'
        if total_cost > 0 and cost >= self.high_cost_share * total_cost:
            return 'high'
        return 'medium'

    @staticmethod
    def bias_advice(bias: float, name: str, when: str = '') -> Dict[str, str]:
        direction = 'Over' if bias > 0 else 'Under'
        action = 'Reduce' if bias > 0 else 'Increase'
        return {
            'issue': f"{direction}-produced by {abs(bias):.0f}%{when}",
            'suggestion': f"{action} production of {name}{when} by about {abs(bias):.0f}%"
        }

    def _recommendation(self, type_: str, target: str, advice: Dict, cost: float, total_cost: float) -> Dict:
        return {
            'type': type_,
            'target': target,
            'issue': advice['issue'],
            'suggestion': advice['suggestion'],
            'priority': self.priority(cost, total_cost),
            'cost': cost
        }

    def generate(self, analysis: Dict) -> List[Dict]:
        """
        Recommendations for an aggregated date range

        Args:
            analysis: AccuracyAggregator.aggregate() output

        Returns:
            Recommendations ordered high priority first, then by cost
        """
        summary = analysis['summary']
        total_cost = summary['total_waste_cost'] + summary['total_stockout_revenue']
        recommendations = []

        for cell in analysis.get('product_day_accuracy', []):
            if cell['sample_size'] >= self.min_samples and abs(cell['bias_percent']) > self.day_bias_pct:
                advice = self.bias_advice(cell['bias_percent'], cell['product_name'], f" on {cell['day_name']}s")
                recommendations.append(self._recommendation(
                    'product', f"{cell['product_name']} ({cell['day_name']})", advice,
                    self.pattern_cost(cell), total_cost
                ))

        for product in analysis.get('product_accuracy', []):
            if product['sample_size'] >= self.min_samples and abs(product['bias_percent']) > self.product_bias_pct:
                advice = self.bias_advice(product['bias_percent'], product['product_name'])
                recommendations.append(self._recommendation(
                    'product', product['product_name'], advice, self.pattern_cost(product), total_cost
                ))

        for market in analysis.get('market_accuracy', []):
            if market['sample_size'] >= self.min_samples and market['accuracy'] < self.min_accuracy:
                advice = {
                    'issue': f"Forecast accuracy at {market['market_name']} is {market['accuracy']:.0f}%",
                    'suggestion': (
                        f"Check sales and leftover recording at {market['market_name']} "
                        f"and review local demand drivers such as events and weather exposure"
                    )
                }
                recommendations.append(self._recommendation(
                    'market', market['market_name'], advice, self.pattern_cost(market), total_cost
                ))

        for day in analysis.get('day_accuracy', []):
            if day['has_data'] and day['sample_size'] >= self.min_samples and day['accuracy'] < self.min_accuracy:
                advice = {
                    'issue': f"Forecast accuracy on {day['day_name']}s is {day['accuracy']:.0f}%",
                    'suggestion': f"Review {day['day_name']} demand patterns and recurring events"
                }
                recommendations.append(self._recommendation(
                    'day', day['day_name'], advice, self.pattern_cost(day), total_cost
                ))

        recommendations.sort(key=lambda r: (
            0 if r['priority'] == 'high' else 1,
            -r['cost'],
            r['type'],
            r['target']
        ))

        logger.debug(f"Generated {len(recommendations)} recommendations")
        return recommendations
