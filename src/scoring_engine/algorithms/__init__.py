"""
Scoring algorithms package
"""

from .rfm_segmentation import RFMSegmentationEngine
from .dynamic_pricing import DynamicPricingEngine
from .installments import InstallmentEngine, compute_installment_schedule

__all__ = [
    'RFMSegmentationEngine',
    'DynamicPricingEngine',
    'InstallmentEngine',
    'compute_installment_schedule'
]
