"""
Unit tests for the dynamic pricing engine and service
Tests demand scoring, price history, flash sales and the pricing rule layers
"""

from datetime import datetime
from unittest.mock import Mock

import pytest

from scoring_engine.algorithms.dynamic_pricing import (
    DynamicPricingEngine, apply_adjustment, demand_level_for
)
from scoring_engine.errors import InvalidStateError, NotFoundError, ValidationError
from scoring_engine.services.document_store import InMemoryDocumentStore, PRICING
from scoring_engine.services.pricing_service import PricingService


def product_data(**overrides):
    data = {
        'productId': 'prod-1',
        'sellerId': 'seller-1',
        'basePricing': {'originalPrice': 100, 'costPrice': 60, 'minimumPrice': 70, 'currency': 'USD'},
    }
    data.update(overrides)
    return data


class TestDemandScoring:
    """Test weighted demand scores and levels"""

    def setup_method(self):
        self.engine = DynamicPricingEngine(clock=lambda: datetime(2026, 1, 31, 12, 0))
        self.record = self.engine.create_record(product_data())

    def test_zero_signals_is_very_low(self):
        self.engine.calculate_demand_score(self.record)

        assert self.record.demand_based_pricing.demand_score == 0
        assert self.record.demand_based_pricing.demand_level == 'very-low'

    def test_full_conversion_rate_alone(self):
        self.record.demand_based_pricing.demand_factors.conversion_rate.rate = 1.0
        self.engine.calculate_demand_score(self.record)

        assert self.record.demand_based_pricing.demand_score == pytest.approx(25)
        assert self.record.demand_based_pricing.demand_level == 'low'

    def test_partial_factor_keeps_default_weight(self):
        record = self.engine.create_record(product_data(
            demandBasedPricing={'demandFactors': {'pageViews': {'count': 100}}}
        ))
        self.engine.calculate_demand_score(record)

        factors = record.demand_based_pricing.demand_factors
        assert factors.page_views.weight == 0.2
        assert factors.cart_adds.weight == 0.25
        assert factors.wishlist_adds.weight == 0.15
        assert factors.search_frequency.weight == 0.15
        assert record.demand_based_pricing.demand_score == pytest.approx(20)
        assert record.demand_based_pricing.demand_level == 'low'

    def test_score_is_clamped(self):
        self.record.demand_based_pricing.demand_factors.page_views.count = 10000
        self.engine.calculate_demand_score(self.record)

        assert self.record.demand_based_pricing.demand_score == 100
        assert self.record.demand_based_pricing.demand_level == 'very-high'

    @pytest.mark.parametrize("score,level", [
        (0, 'very-low'), (19.9, 'very-low'), (20, 'low'), (40, 'medium'), (60, 'high'), (80, 'very-high')
    ])
    def test_demand_levels(self, score, level):
        assert demand_level_for(score) == level


class TestPriceChanges:
    """Test price updates, history and the price floor check"""

    def setup_method(self):
        self.engine = DynamicPricingEngine(clock=lambda: datetime(2026, 1, 31, 12, 0))
        self.record = self.engine.create_record(product_data())

    def test_current_price_defaults_to_original(self):
        assert self.record.current_price.amount == 100
        assert self.record.price_history == []

    @pytest.mark.parametrize("data", [
        {'basePricing': {'originalPrice': 100, 'costPrice': 60, 'minimumPrice': 70}},
        product_data(basePricing={'originalPrice': 100, 'costPrice': -1, 'minimumPrice': 70}),
        product_data(basePricing={'originalPrice': 0, 'costPrice': 0, 'minimumPrice': 0}),
        product_data(basePricing={'originalPrice': 100, 'minimumPrice': 70}),
        product_data(basePricing={'originalPrice': 'cheap', 'costPrice': 1, 'minimumPrice': 1}),
    ])
    def test_create_record_validation(self, data):
        with pytest.raises(ValidationError):
            self.engine.create_record(data)

    def test_update_price_records_previous_price(self):
        self.engine.update_price(self.record, 'manual', 90)
        self.engine.update_price(self.record, 'demand', 95)

        assert [entry.price for entry in self.record.price_history] == [100, 90]
        assert self.record.price_history[1].adjustment_type == 'demand'
        assert self.record.current_price.amount == 95
        assert self.record.current_price.adjustment_percentage == pytest.approx(-5)
        assert self.record.current_price.adjustment_reason == 'demand'

    def test_update_price_does_not_enforce_minimum(self):
        self.engine.update_price(self.record, 'manual', 50)

        assert self.record.current_price.amount == 50
        assert self.record.current_price.adjustment_percentage == pytest.approx(-50)

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            self.engine.update_price(self.record, 'manual', -1)
        assert self.record.price_history == []

    def test_price_floor(self):
        assert self.engine.check_price_floor(self.record) == 100
        with pytest.raises(ValidationError, match="minimum price"):
            self.engine.check_price_floor(self.record, 65)

        self.record.base_pricing.minimum_price = 0
        with pytest.raises(ValidationError, match="cost price"):
            self.engine.check_price_floor(self.record, 50)

        self.record.rules.never_below_cost = False
        assert self.engine.check_price_floor(self.record, 50) == 50
        with pytest.raises(ValidationError, match="maximum discount"):
            self.engine.check_price_floor(self.record, 40)

    def test_config_defaults(self):
        engine = DynamicPricingEngine(config={'default_currency': 'PKR', 'max_discount_percentage': 30})
        record = engine.create_record(product_data(basePricing={
            'originalPrice': 100, 'costPrice': 60, 'minimumPrice': 70
        }))

        assert record.base_pricing.currency == 'PKR'
        assert record.rules.max_discount_percentage == 30

    def test_apply_adjustment(self):
        assert apply_adjustment(100, 'percentage', -15) == 85
        assert apply_adjustment(100, 'fixed-amount', 7.5) == 107.5
        with pytest.raises(ValidationError):
            apply_adjustment(100, 'multiplier', 2)


class TestFlashSales:
    """Test flash sale lifecycle"""

    def setup_method(self):
        self.engine = DynamicPricingEngine(clock=lambda: datetime(2026, 1, 31, 12, 0))
        self.record = self.engine.create_record(product_data())

    def test_activate_flash_sale(self):
        self.engine.activate_flash_sale(self.record, {
            'name': 'Midnight Deal', 'discountPercentage': 20,
            'endDate': '2026-02-01T00:00:00Z', 'quantityLimit': 5
        })

        sale = self.record.flash_sales.active_sale
        assert sale.active
        assert sale.flash_price == pytest.approx(80)
        assert sale.end_date == datetime(2026, 2, 1)
        assert self.record.current_price.amount == pytest.approx(80)
        assert self.record.price_history[-1].adjustment_type == 'flash-sale'
        assert self.record.price_history[-1].price == 100

    @pytest.mark.parametrize("sale_data", [
        {}, {'discountPercentage': 0}, {'discountPercentage': 150}, {'discountPercentage': 'half'},
        {'discountPercentage': 10, 'endDate': 'tomorrow'},
    ])
    def test_invalid_flash_sale(self, sale_data):
        with pytest.raises(ValidationError):
            self.engine.activate_flash_sale(self.record, sale_data)
        assert self.record.current_price.amount == 100

    def test_end_flash_sale_restores_original_price(self):
        self.engine.activate_flash_sale(self.record, {'discountPercentage': 30})
        self.engine.end_flash_sale(self.record)

        assert not self.record.flash_sales.active_sale.active
        assert self.record.current_price.amount == 100
        assert self.record.price_history[-1].adjustment_reason == 'flash-sale-ended'
        assert self.record.price_history[-1].adjustment_type == 'flash-sale'

    def test_end_without_active_sale(self):
        with pytest.raises(InvalidStateError):
            self.engine.end_flash_sale(self.record)

    def test_quantity_limit(self):
        self.engine.activate_flash_sale(self.record, {'discountPercentage': 10, 'quantityLimit': 5})
        self.engine.record_flash_sale_units(self.record, 3)

        with pytest.raises(InvalidStateError):
            self.engine.record_flash_sale_units(self.record, 3)
        assert self.record.flash_sales.active_sale.quantity_sold == 3


class TestRuleLayers:
    """Test the independent pricing rule layers"""

    def setup_method(self):
        # Saturday 2026-01-31
        self.now = datetime(2026, 1, 31, 23, 30)
        self.engine = DynamicPricingEngine(clock=lambda: self.now)
        self.record = self.engine.create_record(product_data(
            demandBasedPricing={
                'enabled': True,
                'demandLevel': 'high',
                'priceAdjustmentRules': [
                    {'demandLevel': 'high', 'adjustmentType': 'percentage',
                     'adjustmentValue': 10, 'maxAdjustment': 5},
                ],
            },
            timeBasedPricing={
                'enabled': True,
                'schedules': [{
                    'name': 'Late night', 'dayOfWeek': [6], 'startTime': '22:00', 'endTime': '02:00',
                    'priceAdjustment': {'type': 'percentage', 'value': -10},
                }],
                'seasonalPricing': [{
                    'name': 'Winter', 'startDate': '2026-01-01T00:00:00', 'endDate': '2026-02-01T00:00:00',
                    'priceAdjustment': {'type': 'fixed-amount', 'value': -15},
                }],
            },
            inventoryBasedPricing={
                'enabled': True,
                'stockLevel': {'current': 50, 'threshold': {'low': 20, 'critical': 5, 'overstock': 500}},
                'pricingRules': {
                    'lowStock': {'enabled': True, 'adjustmentType': 'percentage', 'adjustmentValue': 10},
                    'criticalStock': {'enabled': True, 'adjustmentType': 'percentage', 'adjustmentValue': 20},
                    'overstock': {'enabled': True, 'adjustmentType': 'percentage', 'adjustmentValue': -25},
                },
            },
            personalizedPricing={
                'enabled': True,
                'userSegments': [
                    {'segmentName': 'vip', 'priceAdjustment': -10},
                    {'segmentName': 'retired', 'priceAdjustment': -50, 'active': False},
                ],
            },
            rules={'competitorMatching': {'enabled': True, 'matchType': 'beat-by-amount', 'value': 1}},
        ))

    def test_demand_rule_is_capped(self):
        assert self.engine.apply_demand_rule(self.record) == 105
        assert self.record.price_history[-1].adjustment_type == 'demand'

    def test_demand_rule_without_matching_level(self):
        self.record.demand_based_pricing.demand_level = 'low'

        assert self.engine.apply_demand_rule(self.record) is None
        assert self.record.price_history == []

    def test_competitor_tracking_and_matching(self):
        self.engine.update_competitor_prices(self.record, [
            {'name': 'A', 'currentPrice': 90},
            {'name': 'B', 'currentPrice': 85, 'availability': 'out-of-stock'},
            {'name': 'C', 'currentPrice': 95},
        ])

        tracking = self.record.competitor_tracking
        assert tracking.lowest_competitor_price == 90
        assert tracking.average_competitor_price == 92.5
        assert (tracking.competitor_price_range.min, tracking.competitor_price_range.max) == (90, 95)
        assert self.record.alerts[0].type == 'competitor-price-drop'
        assert self.engine.apply_competitor_rule(self.record) == 89

    def test_time_window_past_midnight(self):
        assert self.engine.apply_time_schedule(self.record) == 90
        assert self.engine.apply_time_schedule(self.record, datetime(2026, 1, 31, 12, 0)) is None
        # Sunday 01:00 is inside the window but not on a scheduled day
        assert self.engine.apply_time_schedule(self.record, datetime(2026, 2, 1, 1, 0)) is None

    def test_seasonal_pricing(self):
        assert self.engine.apply_seasonal_pricing(self.record) == 85
        assert self.engine.apply_seasonal_pricing(self.record, datetime(2026, 3, 1)) is None

    @pytest.mark.parametrize("stock,expected", [(3, 120), (15, 110), (50, None), (800, 75)])
    def test_inventory_rule(self, stock, expected):
        assert self.engine.apply_inventory_rule(self.record, stock) == expected
        assert self.record.inventory_based_pricing.stock_level.current == stock

    def test_layers_do_not_compose(self):
        self.engine.apply_inventory_rule(self.record, 3)
        self.engine.apply_time_schedule(self.record)

        assert self.record.current_price.amount == 90
        assert [entry.price for entry in self.record.price_history] == [100, 120]

    def test_paused_record_skips_automation(self):
        self.record.status = 'paused'

        assert self.engine.apply_demand_rule(self.record) is None
        assert self.engine.apply_inventory_rule(self.record, 3) is None
        assert self.record.current_price.amount == 100

    def test_personalized_price(self):
        self.engine.update_price(self.record, 'manual', 80)

        assert self.engine.personalized_price(self.record, 'vip') == 72
        assert self.record.current_price.amount == 80
        with pytest.raises(NotFoundError):
            self.engine.personalized_price(self.record, 'retired')
        with pytest.raises(NotFoundError):
            self.engine.personalized_price(self.record, 'unknown')


class TestPricingService:
    """Test stored pricing records"""

    def setup_method(self):
        self.store = InMemoryDocumentStore()
        self.cache = Mock()
        self.cache.get.return_value = None
        self.service = PricingService(self.store, cache=self.cache)
        self.service.create(product_data())

    def test_duplicate_create(self):
        with pytest.raises(InvalidStateError):
            self.service.create(product_data())

    def test_missing_record(self):
        with pytest.raises(NotFoundError):
            self.service.update_price('nope', 'manual', 10)

    def test_update_invalidates_cache(self):
        self.service.update_price('prod-1', 'manual', 90)

        self.cache.invalidate.assert_called_with('prod-1')
        assert self.service.get('prod-1')['currentPrice']['amount'] == 90
        self.cache.set.assert_called()

    def test_failed_update_is_not_persisted(self):
        with pytest.raises(ValidationError):
            self.service.update_price('prod-1', 'manual', 'free')

        assert self.service.price_history('prod-1') == []

    def test_display_price_conversion(self):
        price = self.service.get_display_price('prod-1', 'eur')

        assert price['amount'] == 100
        assert price['convertedAmount'] == 92.0
        assert price['convertedCurrency'] == 'EUR'

    def test_inactive_record_hidden(self):
        paused = {**self.store.get(PRICING, 'prod-1'), 'productId': 'prod-2', 'status': 'paused'}
        self.store.put(PRICING, 'prod-2', paused)

        with pytest.raises(NotFoundError):
            self.service.get_display_price('prod-2')

    def test_price_floor_check(self):
        self.service.update_price('prod-1', 'manual', 65)
        result = self.service.check_price_floor('prod-1')

        assert result['valid'] is False
        assert result['price'] == 65
        assert self.service.check_price_floor('prod-1', 75)['valid'] is True

    def test_demand_signals(self):
        result = self.service.calculate_demand_score('prod-1', {'pageViews': 100, 'conversionRate': 0.5})

        assert result['demandScore'] == pytest.approx(32.5)
        assert result['demandLevel'] == 'low'
        with pytest.raises(ValidationError):
            self.service.calculate_demand_score('prod-1', {'clicks': 4})

    def test_unknown_rule_layer(self):
        with pytest.raises(ValidationError):
            self.service.apply_rule('prod-1', 'weather')

    def test_recalculate_competitor_prices(self):
        with self.store.transaction(PRICING, 'prod-1') as tx:
            document = tx.document
            document['competitorTracking']['enabled'] = True
            document['rules']['competitorMatching'] = {'enabled': True, 'matchType': 'exact', 'value': 0}
            tx.store(document)
        self.service.update_competitors('prod-1', [{'name': 'A', 'currentPrice': 97}])

        assert self.service.recalculate_competitor_prices() == {'checked': 1, 'updated': 1}
        assert self.service.get('prod-1')['currentPrice']['amount'] == 97
        assert len(self.service.alerts('prod-1')) == 1
        assert self.service.acknowledge_alerts('prod-1') == 1
        assert self.service.alerts('prod-1') == []
