"""
Dynamic Pricing Service
Runs the pricing engine against one stored price record per call and keeps
the price cache in step with every write
"""

from contextlib import contextmanager
from typing import Dict, List, Optional

import structlog

from scoring_engine.algorithms.dynamic_pricing import DynamicPricingEngine
from scoring_engine.errors import InvalidStateError, NotFoundError, ValidationError
from scoring_engine.metrics import PRICE_UPDATES
from scoring_engine.models.base import parse_datetime
from scoring_engine.models.pricing import DynamicPriceRecord
from scoring_engine.services.document_store import DocumentStore, PRICING
from scoring_engine.services.exchange_rates import StaticExchangeRates
from scoring_engine.services.price_cache import PriceCache

logger = structlog.get_logger()

RULE_LAYERS = ('demand', 'competitor', 'time', 'seasonal', 'inventory')


class PricingService:
    """Dynamic price record operations"""

    def __init__(self, store: DocumentStore, engine: Optional[DynamicPricingEngine] = None,
                 cache: Optional[PriceCache] = None, exchange_rates: Optional[StaticExchangeRates] = None):
        self.store = store
        self.engine = engine or DynamicPricingEngine()
        self.cache = cache or PriceCache()
        self.exchange_rates = exchange_rates or StaticExchangeRates()
        self.logger = logger.bind(component="PricingService")

    @contextmanager
    def _edit(self, product_id: str):
        """Load, yield and store back one price record"""
        with self.store.transaction(PRICING, product_id) as tx:
            if tx.document is None:
                raise NotFoundError("Pricing configuration not found")
            record = DynamicPriceRecord.from_dict(tx.document)
            history_before = len(record.price_history)
            yield record
            tx.store(record.to_dict())

        for entry in record.price_history[history_before:]:
            PRICE_UPDATES.labels(reason=entry.adjustment_reason or 'unknown').inc()
        self.cache.invalidate(product_id)

    def _load(self, product_id: str) -> DynamicPriceRecord:
        document = self.store.get(PRICING, product_id)
        if document is None:
            raise NotFoundError("Pricing not found")
        return DynamicPriceRecord.from_dict(document)

    # ------------------------------------------------------------------

    def create(self, data: Dict) -> Dict:
        record = self.engine.create_record(data)
        with self.store.transaction(PRICING, record.product_id) as tx:
            if tx.document is not None:
                raise InvalidStateError("Pricing configuration already exists")
            tx.store(record.to_dict())
        self.logger.info("Pricing configuration created", product_id=record.product_id)
        return tx.document

    def get(self, product_id: str) -> Dict:
        cached = self.cache.get(product_id)
        if cached:
            return cached
        document = self._load(product_id).to_dict()
        self.cache.set(product_id, document)
        return document

    def get_display_price(self, product_id: str, currency: Optional[str] = None) -> Dict:
        """Current price of an active record, optionally converted"""
        document = self.get(product_id)
        if document['status'] != 'active':
            raise NotFoundError("Pricing not found")

        amount = document['currentPrice']['amount']
        base_currency = document['basePricing']['currency']
        result = {
            'productId': product_id,
            'amount': amount,
            'currency': base_currency,
            'adjustmentPercentage': document['currentPrice']['adjustmentPercentage'],
        }
        if currency and currency.upper() != base_currency:
            result['convertedAmount'] = self.exchange_rates.convert(amount, base_currency, currency)
            result['convertedCurrency'] = currency.upper()
        return result

    def update_price(self, product_id: str, reason: str, new_price: float) -> Dict:
        if not reason:
            raise ValidationError("reason is required")
        with self._edit(product_id) as record:
            self.engine.update_price(record, reason, new_price)
        return record.to_dict()

    def check_price_floor(self, product_id: str, price: Optional[float] = None) -> Dict:
        record = self._load(product_id)
        try:
            checked = self.engine.check_price_floor(record, price)
            return {'valid': True, 'price': checked}
        except ValidationError as e:
            return {'valid': False, 'price': record.current_price.amount if price is None else price,
                    'message': e.message}

    def calculate_demand_score(self, product_id: str, signals: Optional[Dict] = None) -> Dict:
        """Optionally record fresh demand counters, then rescore"""
        with self._edit(product_id) as record:
            factors = record.demand_based_pricing.demand_factors
            for key, value in (signals or {}).items():
                if key == 'conversionRate':
                    factors.conversion_rate.rate = float(value)
                elif key == 'pageViews':
                    factors.page_views.count = value
                elif key == 'cartAdds':
                    factors.cart_adds.count = value
                elif key == 'wishlistAdds':
                    factors.wishlist_adds.count = value
                elif key == 'searchFrequency':
                    factors.search_frequency.count = value
                else:
                    raise ValidationError(f"Unknown demand signal: {key}")
            self.engine.calculate_demand_score(record)
        return {
            'demandScore': record.demand_based_pricing.demand_score,
            'demandLevel': record.demand_based_pricing.demand_level,
        }

    def activate_flash_sale(self, product_id: str, sale_data: Dict) -> Dict:
        with self._edit(product_id) as record:
            self.engine.activate_flash_sale(record, sale_data)
        return record.flash_sales.active_sale.to_dict()

    def end_flash_sale(self, product_id: str) -> Dict:
        with self._edit(product_id) as record:
            self.engine.end_flash_sale(record)
        return record.to_dict()

    def record_flash_sale_units(self, product_id: str, quantity: int) -> Dict:
        with self._edit(product_id) as record:
            sale = self.engine.record_flash_sale_units(record, quantity)
        return sale.to_dict()

    def update_competitors(self, product_id: str, competitors: List[Dict]) -> Dict:
        with self._edit(product_id) as record:
            self.engine.update_competitor_prices(record, competitors)
        return record.competitor_tracking.to_dict()

    def apply_rule(self, product_id: str, layer: str, params: Optional[Dict] = None) -> Dict:
        """Run one pricing rule layer; it overwrites the current price if it applies"""
        if layer not in RULE_LAYERS:
            raise ValidationError(f"Unknown pricing rule layer: {layer}")
        params = params or {}
        try:
            at = parse_datetime(params.get('at'))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid timestamp: {params.get('at')!r}")

        with self._edit(product_id) as record:
            if layer == 'demand':
                new_price = self.engine.apply_demand_rule(record)
            elif layer == 'competitor':
                new_price = self.engine.apply_competitor_rule(record)
            elif layer == 'time':
                new_price = self.engine.apply_time_schedule(record, at)
            elif layer == 'seasonal':
                new_price = self.engine.apply_seasonal_pricing(record, at)
            else:
                new_price = self.engine.apply_inventory_rule(record, params.get('stockLevel'))

        return {
            'applied': new_price is not None,
            'price': record.current_price.amount,
            'layer': layer,
        }

    def personalized_price(self, product_id: str, segment: str) -> Dict:
        record = self._load(product_id)
        return {
            'personalizedPrice': self.engine.personalized_price(record, segment),
            'segment': segment,
        }

    def price_history(self, product_id: str) -> List[Dict]:
        return [entry.to_dict() for entry in self._load(product_id).price_history]

    def alerts(self, product_id: str) -> List[Dict]:
        record = self._load(product_id)
        return [alert.to_dict() for alert in self.engine.unacknowledged_alerts(record)]

    def acknowledge_alerts(self, product_id: str) -> int:
        with self._edit(product_id) as record:
            count = self.engine.acknowledge_alerts(record)
        return count

    def recalculate_competitor_prices(self) -> Dict:
        """Apply competitor matching to every active, tracked record in turn"""
        documents = self.store.find(
            PRICING,
            lambda d: d['competitorTracking']['enabled'] and d['status'] == 'active'
        )
        updated = 0
        for document in documents:
            with self._edit(document['productId']) as record:
                if self.engine.apply_competitor_rule(record) is not None:
                    updated += 1
        self.logger.info("Competitor prices recalculated", checked=len(documents), updated=updated)
        return {'checked': len(documents), 'updated': updated}
