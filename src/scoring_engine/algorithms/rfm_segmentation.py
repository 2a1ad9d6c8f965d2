"""
RFM Segmentation Engine
Scores customers on Recency, Frequency and Monetary value and maps the three
scores onto twelve lifecycle segments
"""

from collections import Counter
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
import structlog

from scoring_engine.errors import ValidationError
from scoring_engine.models.base import utcnow
from scoring_engine.models.segmentation import (
    CustomerSegmentProfile, SegmentHistoryEntry, DEFAULT_SEGMENT
)

logger = structlog.get_logger()

# (upper bound in days, score), checked in order
RECENCY_BUCKETS = [(30, 5), (60, 4), (90, 3), (180, 2)]
# (lower bound, score), checked in order
FREQUENCY_BUCKETS = [(20, 5), (10, 4), (5, 3), (2, 2)]
MONETARY_BUCKETS = [(5000, 5), (2000, 4), (1000, 3), (500, 2)]

SEGMENT_HISTORY_REASON = 'RFM Analysis'

# Ordered (predicate, segment) pairs; the first predicate that holds wins.
# Predicates use & so the same table works on ints and on pandas Series.
# NOTE: at_risk is shadowed by about_to_sleep (both need R == 2 and
# about_to_sleep only needs F >= 2), so at_risk never matches. Order is kept
# as is because stored segment histories depend on it.
SEGMENT_RULES: List[Tuple[Callable, str]] = [
    (lambda r, f, m: (r >= 4) & (f >= 4) & (m >= 4), 'champion'),
    (lambda r, f, m: (r >= 3) & (f >= 4), 'loyal'),
    (lambda r, f, m: (r >= 4) & (f >= 2) & (m >= 3), 'potential_loyalist'),
    (lambda r, f, m: (r >= 4) & (f == 1), 'new'),
    (lambda r, f, m: (r >= 3) & (f == 1), 'promising'),
    (lambda r, f, m: (r == 3) & (f >= 2) & (m >= 2), 'needs_attention'),
    (lambda r, f, m: (r == 2) & (f >= 2), 'about_to_sleep'),
    (lambda r, f, m: (r == 2) & (f >= 3) & (m >= 3), 'at_risk'),
    (lambda r, f, m: (r <= 2) & (f >= 4) & (m >= 4), 'cant_lose_them'),
    (lambda r, f, m: (r == 1) & (f >= 2), 'hibernating'),
    (lambda r, f, m: (r == 1) & (f == 1), 'lost'),
]

AT_RISK_SEGMENTS = ('at_risk', 'about_to_sleep', 'cant_lose_them')


def recency_score(days_since_last_purchase: Optional[float]) -> int:
    """Fewer days since the last purchase scores higher; no purchase scores 1"""
    if days_since_last_purchase is None:
        return 1
    for upper, score in RECENCY_BUCKETS:
        if days_since_last_purchase <= upper:
            return score
    return 1


def frequency_score(total_orders: int) -> int:
    for lower, score in FREQUENCY_BUCKETS:
        if total_orders >= lower:
            return score
    return 1


def monetary_score(total_spent: float) -> int:
    for lower, score in MONETARY_BUCKETS:
        if total_spent >= lower:
            return score
    return 1


def classify(r: int, f: int, m: int) -> str:
    """Map (R, F, M) scores to a segment using first-match-wins rules"""
    for predicate, segment in SEGMENT_RULES:
        if predicate(r, f, m):
            return segment
    return DEFAULT_SEGMENT


class RFMSegmentationEngine:
    """Calculates RFM scores and classifies customer segment profiles"""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def calculate_rfm(self, profile: CustomerSegmentProfile) -> CustomerSegmentProfile:
        """Recompute the three sub-scores and the combined score in place"""
        rfm = profile.rfm
        rfm.recency.score = recency_score(rfm.recency.days_since_last_purchase)
        rfm.frequency.score = frequency_score(rfm.frequency.total_orders)
        rfm.monetary.score = monetary_score(rfm.monetary.total_spent)
        rfm.combined_score = rfm.recency.score + rfm.frequency.score + rfm.monetary.score
        rfm.last_calculated = self.clock()
        return profile

    def determine_segment(self, profile: CustomerSegmentProfile) -> str:
        """
        Classify the profile from its current scores.

        Every call appends a history entry, even when the segment did not
        change. Analytics count these entries, so they are not deduplicated.
        A profile that was never scored falls through to the default segment;
        its scores are left untouched.
        """
        r, f, m = profile.scores
        if r is None or f is None or m is None:
            segment = DEFAULT_SEGMENT
        else:
            segment = classify(r, f, m)
        profile.primary_segment = segment
        profile.segment_history.append(SegmentHistoryEntry(
            segment=segment,
            start_date=self.clock(),
            reason=SEGMENT_HISTORY_REASON
        ))
        return segment

    def update_segmentation(self, profile: CustomerSegmentProfile,
                            order_event: Optional[Dict] = None) -> CustomerSegmentProfile:
        """
        Fold a completed order into the profile and re-segment it.

        Without an order event the scores are simply recomputed from the
        existing totals.
        """
        if order_event:
            total = order_event.get('total')
            if total is None:
                raise ValidationError("Order total is required")
            try:
                total = float(total)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid order total: {total!r}")
            if total < 0:
                raise ValidationError("Order total cannot be negative")

            rfm = profile.rfm
            rfm.recency.days_since_last_purchase = 0
            rfm.recency.last_purchase_date = self.clock()
            rfm.frequency.total_orders += 1
            rfm.monetary.total_spent += total
            rfm.monetary.avg_order_value = rfm.monetary.total_spent / rfm.frequency.total_orders

        self.calculate_rfm(profile)
        segment = self.determine_segment(profile)
        profile.last_segmented = self.clock()

        logger.info("Customer re-segmented", user_id=profile.user_id, segment=segment,
                    combined_score=profile.rfm.combined_score,
                    from_order=bool(order_event))
        return profile


def build_rfm_frame(orders: pd.DataFrame, as_of: Optional[datetime] = None) -> pd.DataFrame:
    """
    Aggregate an order ledger into one RFM input row per user

    Args:
        orders: DataFrame with columns ['user_id', 'order_date', 'total']
        as_of: Reference date for recency (defaults to the latest order date)

    Returns:
        DataFrame with columns ['user_id', 'days_since_last_purchase',
        'total_orders', 'total_spent']
    """
    if orders.empty:
        return pd.DataFrame(columns=['user_id', 'days_since_last_purchase', 'total_orders', 'total_spent'])

    orders = orders.copy()
    orders['order_date'] = pd.to_datetime(orders['order_date'])
    reference = pd.Timestamp(as_of) if as_of is not None else orders['order_date'].max()

    rfm = orders.groupby('user_id').agg(
        last_order=('order_date', 'max'),
        total_orders=('order_date', 'count'),
        total_spent=('total', 'sum'),
    ).reset_index()
    rfm['days_since_last_purchase'] = (reference - rfm['last_order']).dt.days

    return rfm[['user_id', 'days_since_last_purchase', 'total_orders', 'total_spent']]


def _bucket(values: pd.Series, buckets, ascending: bool) -> np.ndarray:
    if ascending:
        conditions = [values <= bound for bound, _ in buckets]
    else:
        conditions = [values >= bound for bound, _ in buckets]
    return np.select(conditions, [score for _, score in buckets], default=1)


def score_frame(rfm: pd.DataFrame) -> pd.DataFrame:
    """
    Vectorised scoring and classification of an RFM input frame.

    Produces the same scores and segments as RFMSegmentationEngine, one row
    per customer. np.select takes the first true condition, which keeps the
    rule order intact.
    """
    scored = rfm.copy()
    days = pd.to_numeric(scored['days_since_last_purchase'], errors='coerce')
    scored['r_score'] = _bucket(days, RECENCY_BUCKETS, ascending=True)
    scored['f_score'] = _bucket(scored['total_orders'], FREQUENCY_BUCKETS, ascending=False)
    scored['m_score'] = _bucket(scored['total_spent'], MONETARY_BUCKETS, ascending=False)
    scored['combined_score'] = scored['r_score'] + scored['f_score'] + scored['m_score']

    r, f, m = scored['r_score'], scored['f_score'], scored['m_score']
    conditions = [predicate(r, f, m) for predicate, _ in SEGMENT_RULES]
    labels = [segment for _, segment in SEGMENT_RULES]
    scored['segment'] = np.select(conditions, labels, default=DEFAULT_SEGMENT)

    logger.info("Scored RFM frame", n_customers=len(scored))
    return scored


def segment_distribution(profiles: Iterable[CustomerSegmentProfile]) -> List[Dict]:
    """Count profiles per primary segment, most common first"""
    counts = Counter(profile.primary_segment for profile in profiles)
    return [{'segment': segment, 'count': count} for segment, count in counts.most_common()]
