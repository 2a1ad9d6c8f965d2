"""
Commerce Scoring Engine
RFM customer segmentation, dynamic pricing and installment calculations
"""

__version__ = "1.0.0"
