"""
Dynamic Pricing Engine
Demand scoring, price changes with an append-only history, flash sales and
the independent pricing rule layers (demand, competitor, time, seasonal,
inventory, personalized)

Rule layers do not compose. Each one that applies calls update_price itself
and overwrites whatever price the previous layer set.
"""

from datetime import datetime, time
from typing import Callable, Dict, List, Optional

import structlog

from config.scoring_config import PRICING_CONFIG
from scoring_engine.errors import InvalidStateError, NotFoundError, ValidationError
from scoring_engine.models.pricing import (
    DynamicPriceRecord, PriceHistoryEntry, PricingAlert, FlashSale, Competitor,
    PRICE_CHANGE_TYPES
)
from scoring_engine.models.base import parse_datetime, utcnow

logger = structlog.get_logger()

# (lower bound, level), checked in order
DEMAND_LEVEL_BUCKETS = [(80, 'very-high'), (60, 'high'), (40, 'medium'), (20, 'low')]

UNAVAILABLE_STATES = ('out-of-stock', 'discontinued')


def demand_level_for(score: float) -> str:
    for lower, level in DEMAND_LEVEL_BUCKETS:
        if score >= lower:
            return level
    return 'very-low'


def apply_adjustment(base: float, adjustment_type: str, value: float) -> float:
    """Apply a percentage or fixed-amount adjustment; negative values discount"""
    if adjustment_type == 'percentage':
        return round(base * (1 + value / 100), 2)
    if adjustment_type == 'fixed-amount':
        return round(base + value, 2)
    raise ValidationError(f"Unknown adjustment type: {adjustment_type}")


def _parse_clock(value: str) -> time:
    try:
        hours, minutes = value.split(':')
        return time(int(hours), int(minutes))
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid time of day: {value!r}")


def _js_weekday(moment: datetime) -> int:
    """Weekday with 0 = Sunday"""
    return (moment.weekday() + 1) % 7


class DynamicPricingEngine:
    """Scores demand and applies price changes to a DynamicPriceRecord"""

    def __init__(self, clock: Callable[[], datetime] = utcnow, config: Optional[Dict] = None):
        self.clock = clock
        self.config = config or PRICING_CONFIG

    # ------------------------------------------------------------------
    # Record lifecycle
    # ------------------------------------------------------------------

    def create_record(self, data: Dict) -> DynamicPriceRecord:
        """Build a new record from a request document, validating base pricing"""
        if not data.get('productId'):
            raise ValidationError("productId is required")

        base = data.get('basePricing') or {}
        for key in ('originalPrice', 'costPrice', 'minimumPrice'):
            if base.get(key) is None:
                raise ValidationError(f"basePricing.{key} is required")
            try:
                value = float(base[key])
            except (TypeError, ValueError):
                raise ValidationError(f"basePricing.{key} must be a number")
            if value < 0:
                raise ValidationError(f"basePricing.{key} cannot be negative")
        if float(base['originalPrice']) == 0:
            raise ValidationError("basePricing.originalPrice must be greater than zero")

        record = DynamicPriceRecord.from_dict(data)
        if not base.get('currency'):
            record.base_pricing.currency = self.config['default_currency']
        if 'maxDiscountPercentage' not in (data.get('rules') or {}):
            record.rules.max_discount_percentage = self.config['max_discount_percentage']
        now = self.clock()
        if not data.get('currentPrice'):
            record.current_price.amount = record.base_pricing.original_price
        record.current_price.last_updated = now
        record.created_at = now
        record.last_calculated = now
        return record

    # ------------------------------------------------------------------
    # Demand scoring
    # ------------------------------------------------------------------

    def calculate_demand_score(self, record: DynamicPriceRecord) -> DynamicPriceRecord:
        """Weighted sum of the behavioural counters, clamped to [0, 100]"""
        factors = record.demand_based_pricing.demand_factors
        score = (
            factors.page_views.count * factors.page_views.weight
            + factors.cart_adds.count * factors.cart_adds.weight
            + factors.wishlist_adds.count * factors.wishlist_adds.weight
            + factors.search_frequency.count * factors.search_frequency.weight
            + factors.conversion_rate.rate * 100 * factors.conversion_rate.weight
        )
        score = min(max(score, 0), 100)

        record.demand_based_pricing.demand_score = score
        record.demand_based_pricing.demand_level = demand_level_for(score)
        record.last_calculated = self.clock()

        logger.info("Demand score calculated", product_id=record.product_id,
                    demand_score=score, demand_level=record.demand_based_pricing.demand_level)
        return record

    # ------------------------------------------------------------------
    # Price changes
    # ------------------------------------------------------------------

    def update_price(self, record: DynamicPriceRecord, reason: str, new_price: float,
                     adjustment_type: Optional[str] = None) -> DynamicPriceRecord:
        """
        Commit a new current price, logging the previous one to price history.

        Does not check minimumPrice or costPrice; see check_price_floor.
        """
        try:
            new_price = float(new_price)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid price: {new_price!r}")
        if new_price < 0:
            raise ValidationError("Price cannot be negative")

        if adjustment_type is None:
            adjustment_type = reason if reason in PRICE_CHANGE_TYPES else 'manual'

        now = self.clock()
        previous = record.current_price.amount
        record.price_history.append(PriceHistoryEntry(
            price=previous,
            adjustment_reason=reason,
            adjustment_type=adjustment_type,
            timestamp=now
        ))

        original = record.base_pricing.original_price
        record.current_price.amount = new_price
        record.current_price.adjustment_percentage = (new_price - original) / original * 100
        record.current_price.adjustment_reason = reason
        record.current_price.last_updated = now

        logger.info("Price updated", product_id=record.product_id, reason=reason,
                    previous_price=previous, new_price=new_price)
        return record

    def check_price_floor(self, record: DynamicPriceRecord, price: Optional[float] = None) -> float:
        """
        Validate a price against minimumPrice (and costPrice when the record
        never sells below cost). Raises ValidationError on violation.
        """
        price = record.current_price.amount if price is None else float(price)
        base = record.base_pricing
        if price < base.minimum_price:
            raise ValidationError(
                f"Price {price:.2f} is below the minimum price {base.minimum_price:.2f}"
            )
        if record.rules.never_below_cost and price < base.cost_price:
            raise ValidationError(
                f"Price {price:.2f} is below the cost price {base.cost_price:.2f}"
            )
        max_discount = record.rules.max_discount_percentage
        if max_discount is not None and price < base.original_price * (1 - max_discount / 100):
            raise ValidationError(f"Price {price:.2f} exceeds the maximum discount of {max_discount:g}%")
        return price

    # ------------------------------------------------------------------
    # Flash sales
    # ------------------------------------------------------------------

    def activate_flash_sale(self, record: DynamicPriceRecord, sale_data: Dict) -> DynamicPriceRecord:
        """Start a flash sale at originalPrice discounted by discountPercentage"""
        if not sale_data or sale_data.get('discountPercentage') is None:
            raise ValidationError("discountPercentage is required")
        try:
            discount = float(sale_data['discountPercentage'])
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid discountPercentage: {sale_data['discountPercentage']!r}")
        if not 0 < discount <= 100:
            raise ValidationError("discountPercentage must be between 0 and 100")

        try:
            end_date = parse_datetime(sale_data.get('endDate'))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid endDate: {sale_data.get('endDate')!r}")

        quantity_limit = sale_data.get('quantityLimit')
        sale = FlashSale(
            name=sale_data.get('name'),
            start_date=self.clock(),
            end_date=end_date,
            discount_percentage=discount,
            flash_price=record.base_pricing.original_price * (1 - discount / 100),
            quantity_limit=int(quantity_limit) if quantity_limit is not None else None,
            quantity_sold=0,
            active=True
        )

        record.flash_sales.active_sale = sale
        record.flash_sales.enabled = True

        logger.info("Flash sale activated", product_id=record.product_id,
                    discount_percentage=discount, flash_price=sale.flash_price)
        return self.update_price(record, 'flash-sale', sale.flash_price)

    def end_flash_sale(self, record: DynamicPriceRecord) -> DynamicPriceRecord:
        sale = record.flash_sales.active_sale
        if not sale.active:
            raise InvalidStateError("No active flash sale")
        sale.active = False
        sale.end_date = self.clock()
        return self.update_price(record, 'flash-sale-ended', record.base_pricing.original_price,
                                 adjustment_type='flash-sale')

    def record_flash_sale_units(self, record: DynamicPriceRecord, quantity: int) -> FlashSale:
        sale = record.flash_sales.active_sale
        if not sale.active:
            raise InvalidStateError("No active flash sale")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if sale.quantity_limit is not None and sale.quantity_sold + quantity > sale.quantity_limit:
            raise InvalidStateError(
                f"Flash sale limit reached ({sale.quantity_sold}/{sale.quantity_limit} sold)"
            )
        sale.quantity_sold += quantity
        return sale

    # ------------------------------------------------------------------
    # Rule layers
    # ------------------------------------------------------------------

    def _automation_allowed(self, record: DynamicPriceRecord, layer: str) -> bool:
        if record.status != 'active':
            logger.info("Pricing rule skipped", product_id=record.product_id,
                        layer=layer, status=record.status)
            return False
        return True

    def apply_demand_rule(self, record: DynamicPriceRecord) -> Optional[float]:
        """Apply the adjustment rule for the record's current demand level"""
        pricing = record.demand_based_pricing
        if not pricing.enabled or not self._automation_allowed(record, 'demand'):
            return None

        rule = next((r for r in pricing.price_adjustment_rules if r.demand_level == pricing.demand_level), None)
        if rule is None:
            return None

        value = rule.adjustment_value
        if rule.max_adjustment is not None:
            value = max(-rule.max_adjustment, min(rule.max_adjustment, value))

        new_price = apply_adjustment(record.base_pricing.original_price, rule.adjustment_type, value)
        self.update_price(record, 'demand', new_price)
        return new_price

    def update_competitor_prices(self, record: DynamicPriceRecord,
                                 competitors: List[Dict]) -> DynamicPriceRecord:
        """Replace tracked competitors and refresh the competitor price summary"""
        now = self.clock()
        tracking = record.competitor_tracking
        tracking.competitors = [Competitor.from_dict(c) for c in competitors or []]
        for competitor in tracking.competitors:
            if competitor.last_checked is None:
                competitor.last_checked = now

        prices = [
            c.current_price for c in tracking.competitors
            if c.current_price is not None and c.availability not in UNAVAILABLE_STATES
        ]
        if prices:
            tracking.lowest_competitor_price = min(prices)
            tracking.average_competitor_price = round(sum(prices) / len(prices), 2)
            tracking.competitor_price_range.min = min(prices)
            tracking.competitor_price_range.max = max(prices)
        else:
            tracking.lowest_competitor_price = None
            tracking.average_competitor_price = None
            tracking.competitor_price_range.min = None
            tracking.competitor_price_range.max = None
        tracking.last_scraped_at = now

        lowest = tracking.lowest_competitor_price
        if lowest is not None and lowest < record.current_price.amount:
            record.alerts.append(PricingAlert(
                type='competitor-price-drop',
                message=f"Competitor price {lowest:.2f} is below current price {record.current_price.amount:.2f}",
                severity='warning',
                timestamp=now
            ))
        return record

    def apply_competitor_rule(self, record: DynamicPriceRecord) -> Optional[float]:
        matching = record.rules.competitor_matching
        lowest = record.competitor_tracking.lowest_competitor_price
        if not matching.enabled or lowest is None:
            return None
        if not self._automation_allowed(record, 'competitor'):
            return None

        if matching.match_type == 'exact':
            new_price = lowest
        elif matching.match_type == 'beat-by-percentage':
            new_price = round(lowest * (1 - matching.value / 100), 2)
        elif matching.match_type == 'beat-by-amount':
            new_price = round(lowest - matching.value, 2)
        else:
            raise ValidationError(f"Unknown competitor match type: {matching.match_type}")

        self.update_price(record, 'competitor', new_price)
        return new_price

    def apply_time_schedule(self, record: DynamicPriceRecord, at: Optional[datetime] = None) -> Optional[float]:
        """Apply the first active day/time schedule covering ``at``"""
        pricing = record.time_based_pricing
        if not pricing.enabled or not self._automation_allowed(record, 'time'):
            return None

        at = at or self.clock()
        weekday = _js_weekday(at)
        now = at.time()
        for schedule in pricing.schedules:
            if not schedule.active:
                continue
            if schedule.day_of_week and weekday not in schedule.day_of_week:
                continue
            start, end = _parse_clock(schedule.start_time), _parse_clock(schedule.end_time)
            if start <= end:
                covered = start <= now < end
            else:  # window wraps past midnight
                covered = now >= start or now < end
            if covered:
                adjustment = schedule.price_adjustment
                new_price = apply_adjustment(record.base_pricing.original_price, adjustment.type, adjustment.value)
                self.update_price(record, 'time', new_price)
                return new_price
        return None

    def apply_seasonal_pricing(self, record: DynamicPriceRecord, at: Optional[datetime] = None) -> Optional[float]:
        pricing = record.time_based_pricing
        if not pricing.enabled or not self._automation_allowed(record, 'seasonal'):
            return None

        at = at or self.clock()
        for season in pricing.seasonal_pricing:
            if not season.active or season.start_date is None or season.end_date is None:
                continue
            if season.start_date <= at <= season.end_date:
                adjustment = season.price_adjustment
                new_price = apply_adjustment(record.base_pricing.original_price, adjustment.type, adjustment.value)
                self.update_price(record, 'time', new_price)
                return new_price
        return None

    def apply_inventory_rule(self, record: DynamicPriceRecord,
                             stock_level: Optional[float] = None) -> Optional[float]:
        """Critical stock is checked before low stock, then overstock"""
        pricing = record.inventory_based_pricing
        if stock_level is not None:
            pricing.stock_level.current = stock_level
        if not pricing.enabled or not self._automation_allowed(record, 'inventory'):
            return None

        current = pricing.stock_level.current
        if current is None:
            return None
        thresholds = pricing.stock_level.threshold
        rules = pricing.pricing_rules
        candidates = [
            (rules.critical_stock, thresholds.critical is not None and current <= thresholds.critical),
            (rules.low_stock, thresholds.low is not None and current <= thresholds.low),
            (rules.overstock, thresholds.overstock is not None and current >= thresholds.overstock),
        ]
        for rule, triggered in candidates:
            if triggered and rule.enabled:
                new_price = apply_adjustment(record.base_pricing.original_price,
                                             rule.adjustment_type, rule.adjustment_value)
                self.update_price(record, 'inventory', new_price)
                return new_price
        return None

    def personalized_price(self, record: DynamicPriceRecord, segment_name: str) -> float:
        """Current price adjusted for a user segment; does not change the record"""
        segment = next(
            (s for s in record.personalized_pricing.user_segments
             if s.segment_name == segment_name and s.active),
            None
        )
        if segment is None:
            raise NotFoundError(f"User segment '{segment_name}' not found")
        return round(record.current_price.amount * (1 + segment.price_adjustment / 100), 2)

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    @staticmethod
    def unacknowledged_alerts(record: DynamicPriceRecord) -> List[PricingAlert]:
        return [alert for alert in record.alerts if not alert.acknowledged]

    @staticmethod
    def acknowledge_alerts(record: DynamicPriceRecord) -> int:
        pending = [alert for alert in record.alerts if not alert.acknowledged]
        for alert in pending:
            alert.acknowledged = True
        return len(pending)
