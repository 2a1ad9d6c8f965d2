"""
Customer Segmentation Service
Loads one profile, runs the RFM engine on it and stores it back
"""

from typing import Dict, List, Optional, Tuple

import structlog

from scoring_engine.algorithms.rfm_segmentation import (
    RFMSegmentationEngine, AT_RISK_SEGMENTS, segment_distribution
)
from scoring_engine.errors import NotFoundError
from scoring_engine.metrics import SEGMENT_CLASSIFICATIONS
from scoring_engine.models.segmentation import CustomerSegmentProfile
from scoring_engine.services.document_store import DocumentStore, SEGMENTATION

logger = structlog.get_logger()


class SegmentationService:
    """Customer segment profile operations, one record per call"""

    def __init__(self, store: DocumentStore, engine: Optional[RFMSegmentationEngine] = None):
        self.store = store
        self.engine = engine or RFMSegmentationEngine()
        self.logger = logger.bind(component="SegmentationService")

    def _new_profile(self, user_id: str) -> CustomerSegmentProfile:
        self.logger.info("Creating segmentation profile", user_id=user_id)
        return CustomerSegmentProfile(user_id=user_id, created_at=self.engine.clock())

    def get_or_create(self, user_id: str) -> Dict:
        with self.store.transaction(SEGMENTATION, user_id) as tx:
            if tx.document is None:
                tx.store(self._new_profile(user_id).to_dict())
            return tx.document

    def calculate_rfm(self, user_id: str) -> Dict:
        with self.store.transaction(SEGMENTATION, user_id) as tx:
            if tx.document is None:
                raise NotFoundError("Segmentation not found")
            profile = CustomerSegmentProfile.from_dict(tx.document)
            self.engine.calculate_rfm(profile)
            tx.store(profile.to_dict())
            return tx.document

    def determine_segment(self, user_id: str) -> Tuple[str, Dict]:
        with self.store.transaction(SEGMENTATION, user_id) as tx:
            if tx.document is None:
                raise NotFoundError("Segmentation not found")
            profile = CustomerSegmentProfile.from_dict(tx.document)
            segment = self.engine.determine_segment(profile)
            tx.store(profile.to_dict())
        SEGMENT_CLASSIFICATIONS.labels(segment=segment).inc()
        return segment, tx.document

    def update_from_order(self, user_id: str, order_data: Optional[Dict] = None) -> Dict:
        """Fold a completed order into the user's profile, creating it if needed"""
        with self.store.transaction(SEGMENTATION, user_id) as tx:
            if tx.document is None:
                profile = self._new_profile(user_id)
            else:
                profile = CustomerSegmentProfile.from_dict(tx.document)
            self.engine.update_segmentation(profile, order_data)
            tx.store(profile.to_dict())
        SEGMENT_CLASSIFICATIONS.labels(segment=profile.primary_segment).inc()
        return tx.document

    def distribution(self) -> List[Dict]:
        profiles = [CustomerSegmentProfile.from_dict(d) for d in self.store.find(SEGMENTATION)]
        return segment_distribution(profiles)

    def at_risk_customers(self, limit: int = 100) -> List[Dict]:
        """Profiles in an at-risk segment, longest since last purchase first"""
        documents = self.store.find(
            SEGMENTATION, lambda d: d.get('primarySegment') in AT_RISK_SEGMENTS
        )

        def days_lapsed(document):
            days = document['rfm']['recency'].get('daysSinceLastPurchase')
            return days if days is not None else float('inf')

        documents.sort(key=days_lapsed, reverse=True)
        return documents[:limit]
