"""
Customer segmentation models
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from scoring_engine.models.base import DocumentMixin

SEGMENTS = (
    'champion',
    'loyal',
    'potential_loyalist',
    'new',
    'promising',
    'needs_attention',
    'about_to_sleep',
    'at_risk',
    'cant_lose_them',
    'hibernating',
    'lost',
    'occasional',
)

DEFAULT_SEGMENT = 'occasional'


@dataclass
class RecencyScore(DocumentMixin):
    days_since_last_purchase: Optional[float] = None
    score: Optional[int] = None
    last_purchase_date: Optional[datetime] = None


@dataclass
class FrequencyScore(DocumentMixin):
    total_orders: int = 0
    score: Optional[int] = None


@dataclass
class MonetaryScore(DocumentMixin):
    total_spent: float = 0.0
    score: Optional[int] = None
    avg_order_value: Optional[float] = None


@dataclass
class RFMScores(DocumentMixin):
    """Recency/Frequency/Monetary sub-scores and their sum"""
    recency: RecencyScore = field(default_factory=RecencyScore)
    frequency: FrequencyScore = field(default_factory=FrequencyScore)
    monetary: MonetaryScore = field(default_factory=MonetaryScore)
    combined_score: Optional[int] = None
    last_calculated: Optional[datetime] = None


@dataclass
class SegmentHistoryEntry(DocumentMixin):
    segment: str = DEFAULT_SEGMENT
    start_date: Optional[datetime] = None
    reason: str = 'RFM Analysis'


@dataclass
class CustomerSegmentProfile(DocumentMixin):
    """
    One segmentation profile per user.

    ``primary_segment`` is derived by the classifier and never set by callers.
    ``segment_history`` is an append-only log.
    """
    user_id: str = ''
    primary_segment: str = DEFAULT_SEGMENT
    rfm: RFMScores = field(default_factory=RFMScores)
    segment_history: List[SegmentHistoryEntry] = field(default_factory=list)
    last_segmented: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def scores(self) -> tuple:
        return (self.rfm.recency.score, self.rfm.frequency.score, self.rfm.monetary.score)
