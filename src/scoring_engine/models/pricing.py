"""
Dynamic pricing models
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from scoring_engine.models.base import DocumentMixin

DEMAND_LEVELS = ('very-low', 'low', 'medium', 'high', 'very-high')
ADJUSTMENT_TYPES = ('percentage', 'fixed-amount')
PRICE_CHANGE_TYPES = ('manual', 'competitor', 'demand', 'time', 'flash-sale', 'inventory', 'personalized')
RECORD_STATUSES = ('active', 'paused', 'manual-override')


@dataclass
class BasePricing(DocumentMixin):
    original_price: float = 0.0
    cost_price: float = 0.0
    minimum_price: float = 0.0
    maximum_price: Optional[float] = None
    currency: str = 'USD'


@dataclass
class CurrentPrice(DocumentMixin):
    amount: float = 0.0
    adjustment_percentage: float = 0.0
    adjustment_reason: Optional[str] = None
    last_updated: Optional[datetime] = None


@dataclass
class DemandFactor(DocumentMixin):
    weight: float = 0.0
    count: float = 0


@dataclass
class ConversionFactor(DocumentMixin):
    weight: float = 0.25
    rate: float = 0.0  # 0-1 fraction


# One class per counter so a partially supplied factor keeps its own default weight
@dataclass
class PageViewsFactor(DemandFactor):
    weight: float = 0.2


@dataclass
class CartAddsFactor(DemandFactor):
    weight: float = 0.25


@dataclass
class WishlistAddsFactor(DemandFactor):
    weight: float = 0.15


@dataclass
class SearchFrequencyFactor(DemandFactor):
    weight: float = 0.15


@dataclass
class DemandFactors(DocumentMixin):
    page_views: PageViewsFactor = field(default_factory=PageViewsFactor)
    cart_adds: CartAddsFactor = field(default_factory=CartAddsFactor)
    wishlist_adds: WishlistAddsFactor = field(default_factory=WishlistAddsFactor)
    search_frequency: SearchFrequencyFactor = field(default_factory=SearchFrequencyFactor)
    conversion_rate: ConversionFactor = field(default_factory=ConversionFactor)


@dataclass
class PriceAdjustmentRule(DocumentMixin):
    demand_level: str = 'medium'
    adjustment_type: str = 'percentage'
    adjustment_value: float = 0.0
    max_adjustment: Optional[float] = None


@dataclass
class DemandBasedPricing(DocumentMixin):
    enabled: bool = False
    demand_level: str = 'medium'
    demand_score: float = 50
    demand_factors: DemandFactors = field(default_factory=DemandFactors)
    price_adjustment_rules: List[PriceAdjustmentRule] = field(default_factory=list)


@dataclass
class CompetitorPriceRange(DocumentMixin):
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass
class Competitor(DocumentMixin):
    name: str = ''
    url: Optional[str] = None
    current_price: Optional[float] = None
    currency: Optional[str] = None
    availability: Optional[str] = None  # in-stock | out-of-stock | pre-order | discontinued
    shipping_cost: Optional[float] = None
    rating: Optional[float] = None
    last_checked: Optional[datetime] = None


@dataclass
class CompetitorTracking(DocumentMixin):
    enabled: bool = False
    competitors: List[Competitor] = field(default_factory=list)
    lowest_competitor_price: Optional[float] = None
    average_competitor_price: Optional[float] = None
    competitor_price_range: CompetitorPriceRange = field(default_factory=CompetitorPriceRange)
    last_scraped_at: Optional[datetime] = None


@dataclass
class PriceAdjustment(DocumentMixin):
    type: str = 'percentage'
    value: float = 0.0


@dataclass
class TimeSchedule(DocumentMixin):
    name: str = ''
    day_of_week: List[int] = field(default_factory=list)  # 0 = Sunday
    start_time: str = '00:00'
    end_time: str = '23:59'
    price_adjustment: PriceAdjustment = field(default_factory=PriceAdjustment)
    active: bool = True


@dataclass
class SeasonalPricing(DocumentMixin):
    name: str = ''
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    price_adjustment: PriceAdjustment = field(default_factory=PriceAdjustment)
    active: bool = True


@dataclass
class TimeBasedPricing(DocumentMixin):
    enabled: bool = False
    schedules: List[TimeSchedule] = field(default_factory=list)
    seasonal_pricing: List[SeasonalPricing] = field(default_factory=list)


@dataclass
class FlashSale(DocumentMixin):
    name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    discount_percentage: float = 0.0
    flash_price: Optional[float] = None
    quantity_limit: Optional[int] = None
    quantity_sold: int = 0
    active: bool = False


@dataclass
class FlashSales(DocumentMixin):
    enabled: bool = False
    active_sale: FlashSale = field(default_factory=FlashSale)


@dataclass
class StockThresholds(DocumentMixin):
    low: Optional[float] = None
    critical: Optional[float] = None
    overstock: Optional[float] = None


@dataclass
class StockLevel(DocumentMixin):
    current: Optional[float] = None
    threshold: StockThresholds = field(default_factory=StockThresholds)


@dataclass
class InventoryRule(DocumentMixin):
    enabled: bool = False
    adjustment_type: str = 'percentage'
    adjustment_value: float = 0.0


@dataclass
class InventoryPricingRules(DocumentMixin):
    low_stock: InventoryRule = field(default_factory=InventoryRule)
    critical_stock: InventoryRule = field(default_factory=InventoryRule)
    overstock: InventoryRule = field(default_factory=InventoryRule)


@dataclass
class InventoryBasedPricing(DocumentMixin):
    enabled: bool = False
    stock_level: StockLevel = field(default_factory=StockLevel)
    pricing_rules: InventoryPricingRules = field(default_factory=InventoryPricingRules)


@dataclass
class UserSegmentPricing(DocumentMixin):
    segment_name: str = ''
    price_adjustment: float = 0.0  # percent
    active: bool = True


@dataclass
class PersonalizedPricing(DocumentMixin):
    enabled: bool = False
    user_segments: List[UserSegmentPricing] = field(default_factory=list)


@dataclass
class CompetitorMatching(DocumentMixin):
    enabled: bool = False
    match_type: str = 'exact'  # exact | beat-by-percentage | beat-by-amount
    value: float = 0.0


@dataclass
class PricingRules(DocumentMixin):
    min_profit_margin: float = 0.0
    max_discount_percentage: float = 50.0
    never_below_cost: bool = True
    competitor_matching: CompetitorMatching = field(default_factory=CompetitorMatching)


@dataclass
class PriceHistoryEntry(DocumentMixin):
    """Price in effect *before* a change; never mutated once appended"""
    price: float = 0.0
    adjustment_reason: Optional[str] = None
    adjustment_type: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass
class PricingAlert(DocumentMixin):
    type: str = ''
    message: str = ''
    severity: str = 'info'
    timestamp: Optional[datetime] = None
    acknowledged: bool = False


@dataclass
class DynamicPriceRecord(DocumentMixin):
    """Dynamic pricing configuration and state for one product"""
    product_id: str = ''
    seller_id: Optional[str] = None
    status: str = 'active'
    base_pricing: BasePricing = field(default_factory=BasePricing)
    current_price: CurrentPrice = field(default_factory=CurrentPrice)
    demand_based_pricing: DemandBasedPricing = field(default_factory=DemandBasedPricing)
    competitor_tracking: CompetitorTracking = field(default_factory=CompetitorTracking)
    time_based_pricing: TimeBasedPricing = field(default_factory=TimeBasedPricing)
    flash_sales: FlashSales = field(default_factory=FlashSales)
    inventory_based_pricing: InventoryBasedPricing = field(default_factory=InventoryBasedPricing)
    personalized_pricing: PersonalizedPricing = field(default_factory=PersonalizedPricing)
    rules: PricingRules = field(default_factory=PricingRules)
    price_history: List[PriceHistoryEntry] = field(default_factory=list)
    alerts: List[PricingAlert] = field(default_factory=list)
    last_calculated: Optional[datetime] = None
    created_at: Optional[datetime] = None
