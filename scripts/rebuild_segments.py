#!/usr/bin/env python3
"""
Rebuild customer segment profiles from an order ledger

Reads a CSV of completed orders, scores every customer in one vectorised pass
and writes the resulting profiles to the configured document store.

Usage:
    python scripts/rebuild_segments.py orders.csv [--as-of 2026-01-31] [--dry-run]

The CSV needs the columns user_id, order_date and total.

Environment Variables:
    STORE_BACKEND=postgres plus DATABASE_URL or individual PG_* variables
    (required unless --dry-run)
"""
import argparse
import sys
from pathlib import Path

# Add paths
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd
import structlog

from config.scoring_config import PG_CONFIG, SERVICE_CONFIG
from scoring_engine.algorithms.rfm_segmentation import build_rfm_frame, score_frame
from scoring_engine.logging_config import configure_logging
from scoring_engine.models.base import parse_datetime, utcnow
from scoring_engine.models.segmentation import CustomerSegmentProfile, SegmentHistoryEntry
from scoring_engine.services.document_store import SEGMENTATION, create_document_store

logger = structlog.get_logger()

REQUIRED_COLUMNS = {'user_id', 'order_date', 'total'}


def load_orders(path: str) -> pd.DataFrame:
    orders = pd.read_csv(path, dtype={'user_id': str})
    missing = REQUIRED_COLUMNS - set(orders.columns)
    if missing:
        raise SystemExit(f"Missing columns in {path}: {', '.join(sorted(missing))}")
    return orders


def apply_scores(document, row, now):
    """Merge one scored row into an existing or new profile document"""
    if document:
        profile = CustomerSegmentProfile.from_dict(document)
    else:
        profile = CustomerSegmentProfile(user_id=str(row.user_id), created_at=now)

    rfm = profile.rfm
    rfm.recency.days_since_last_purchase = int(row.days_since_last_purchase)
    rfm.recency.score = int(row.r_score)
    rfm.frequency.total_orders = int(row.total_orders)
    rfm.frequency.score = int(row.f_score)
    rfm.monetary.total_spent = float(row.total_spent)
    rfm.monetary.avg_order_value = float(row.total_spent) / int(row.total_orders)
    rfm.monetary.score = int(row.m_score)
    rfm.combined_score = int(row.combined_score)
    rfm.last_calculated = now

    profile.primary_segment = str(row.segment)
    profile.segment_history.append(SegmentHistoryEntry(segment=str(row.segment), start_date=now))
    profile.last_segmented = now
    return profile.to_dict()


def main(argv=None):
    parser = argparse.ArgumentParser(description='Rebuild RFM segments from an order CSV')
    parser.add_argument('orders', help='CSV file with user_id, order_date, total')
    parser.add_argument('--as-of', help='Reference date for recency (default: latest order)')
    parser.add_argument('--dry-run', action='store_true', help='Print the distribution without writing')
    args = parser.parse_args(argv)

    backend = SERVICE_CONFIG['store_backend']
    if not args.dry_run and backend != 'postgres':
        raise SystemExit(f"Refusing to write segments to the {backend!r} store, "
                         "set STORE_BACKEND=postgres or pass --dry-run")

    configure_logging(SERVICE_CONFIG['log_level'])

    orders = load_orders(args.orders)
    as_of = parse_datetime(args.as_of) if args.as_of else None
    scored = score_frame(build_rfm_frame(orders, as_of=as_of))

    distribution = scored['segment'].value_counts()
    print("\n" + "=" * 60)
    print(f"Scored {len(scored)} customers from {len(orders)} orders")
    print("=" * 60)
    for segment, count in distribution.items():
        print(f"  {segment:<20} {count:>8}")

    if args.dry_run:
        return

    store = create_document_store(
        backend, PG_CONFIG,
        minconn=1, maxconn=SERVICE_CONFIG['pool_max']
    )
    try:
        now = utcnow()
        for row in scored.itertuples(index=False):
            with store.transaction(SEGMENTATION, row.user_id) as tx:
                tx.store(apply_scores(tx.document, row, now))
        logger.info("Segments rebuilt", customers=len(scored),
                    backend=backend)
    finally:
        store.close()


if __name__ == '__main__':
    main()
