"""
Tests for the batch segment rebuild script
"""

import os
import sys
from unittest.mock import Mock

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'scripts'))

import rebuild_segments
from scoring_engine.services.document_store import InMemoryDocumentStore, SEGMENTATION


@pytest.fixture
def ledger(tmp_path):
    path = tmp_path / 'orders.csv'
    path.write_text(
        "user_id,order_date,total\n"
        "a,2026-01-20,3000\n"
        "a,2026-01-25,2500\n"
        "b,2025-06-01,40\n"
    )
    return str(path)


class TestRebuildSegments:
    """Backend guard, dry runs and profile writes"""

    def test_memory_backend_refuses_to_write(self, ledger, monkeypatch):
        factory = Mock()
        monkeypatch.setitem(rebuild_segments.SERVICE_CONFIG, 'store_backend', 'memory')
        monkeypatch.setattr(rebuild_segments, 'create_document_store', factory)

        with pytest.raises(SystemExit, match="STORE_BACKEND=postgres"):
            rebuild_segments.main([ledger])
        factory.assert_not_called()

    def test_dry_run_prints_distribution_without_a_store(self, ledger, monkeypatch, capsys):
        factory = Mock()
        monkeypatch.setitem(rebuild_segments.SERVICE_CONFIG, 'store_backend', 'memory')
        monkeypatch.setattr(rebuild_segments, 'create_document_store', factory)

        rebuild_segments.main([ledger, '--as-of', '2026-01-31', '--dry-run'])

        assert "Scored 2 customers from 3 orders" in capsys.readouterr().out
        factory.assert_not_called()

    def test_postgres_backend_writes_profiles(self, ledger, monkeypatch):
        store = InMemoryDocumentStore()
        monkeypatch.setitem(rebuild_segments.SERVICE_CONFIG, 'store_backend', 'postgres')
        monkeypatch.setattr(rebuild_segments, 'create_document_store', lambda *args, **kwargs: store)

        rebuild_segments.main([ledger, '--as-of', '2026-01-31'])

        profile = store.get(SEGMENTATION, 'a')
        assert profile['rfm']['frequency']['totalOrders'] == 2
        assert profile['rfm']['monetary']['totalSpent'] == 5500
        assert profile['rfm']['recency']['daysSinceLastPurchase'] == 6
        assert len(profile['segmentHistory']) == 1
        assert store.get(SEGMENTATION, 'b')['primarySegment'] == 'lost'

    def test_missing_columns(self, tmp_path):
        path = tmp_path / 'orders.csv'
        path.write_text("user_id,total\na,10\n")

        with pytest.raises(SystemExit, match="order_date"):
            rebuild_segments.load_orders(str(path))
