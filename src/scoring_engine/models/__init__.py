"""
Record models for segmentation, pricing and installments
"""

from .segmentation import CustomerSegmentProfile, SegmentHistoryEntry, SEGMENTS
from .pricing import DynamicPriceRecord, PriceHistoryEntry, PricingAlert
from .installments import InstallmentPlan, Installment, CreditApplication

__all__ = [
    'CustomerSegmentProfile',
    'SegmentHistoryEntry',
    'SEGMENTS',
    'DynamicPriceRecord',
    'PriceHistoryEntry',
    'PricingAlert',
    'InstallmentPlan',
    'Installment',
    'CreditApplication'
]
