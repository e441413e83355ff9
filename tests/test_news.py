"""
Tests for src/staking/news.py - News item registry.
"""

import re
from datetime import datetime, timezone

import pytest

from src.staking.errors import AlreadySettled, InvalidRecord, UnknownNews
from src.staking.journal import Journal
from src.staking.models import PoolSide, Status
from src.staking.news import NewsRegistry, has_ended


def create(registry, **overrides):
    fields = {
        "title": "Rate cut in March",
        "description": "Will the central bank cut rates?",
        "category": "economy",
        "end_time_utc": "2026-03-31T00:00:00Z",
        "resolution_criteria": "Official announcement",
        "creator": "ed",
    }
    fields.update(overrides)
    return registry.create_news(**fields)


class TestCreateNews:
    """Tests for NewsRegistry.create_news."""

    def test_creates_active_item(self):
        """Test a new item is active with zero totals."""
        news = create(NewsRegistry())

        assert re.match(r"^news_[a-f0-9]{12}$", news.news_id)
        assert news.status is Status.ACTIVE
        assert news.total_staked == 0
        assert news.total_pools == 0
        assert news.end_time_utc == "2026-03-31T00:00:00+00:00"

    def test_invalid_end_time(self):
        """Test that a malformed end time is rejected."""
        with pytest.raises(InvalidRecord, match="end_time_utc"):
            create(NewsRegistry(), end_time_utc="next tuesday")

    def test_empty_title(self):
        """Test that schema validation applies without a journal."""
        with pytest.raises(InvalidRecord):
            create(NewsRegistry(), title="   ")

    def test_written_to_journal(self, tmp_path):
        """Test that creation is journaled."""
        journal = Journal(tmp_path)
        news = create(NewsRegistry(journal))

        records = journal.get_news()
        assert len(records) == 1
        assert records[0]["news_id"] == news.news_id
        assert records[0]["record_type"] == "news"


class TestLookups:
    """Tests for registry reads."""

    def test_get_unknown(self):
        """Test that unknown ids fail."""
        with pytest.raises(UnknownNews):
            NewsRegistry().get("news_000000000000")

    def test_list_filters(self):
        """Test category and status filters."""
        registry = NewsRegistry()
        a = create(registry, category="economy")
        create(registry, category="sports")
        registry.mark_resolved(a.news_id, PoolSide.YES, "admin", "Reuters")

        assert len(registry.list_news()) == 2
        assert len(registry.list_news(category="sports")) == 1
        assert [n.news_id for n in registry.list_news(status="resolved")] == [a.news_id]
        assert registry.categories() == ["economy", "sports"]

    def test_get_returns_copy(self):
        """Test that callers cannot mutate registry state."""
        registry = NewsRegistry()
        news = create(registry)
        news.status = Status.RESOLVED

        assert registry.get(news.news_id).is_active


class TestMarkResolved:
    """Tests for NewsRegistry.mark_resolved."""

    def test_records_resolution(self):
        """Test resolution fields are set."""
        registry = NewsRegistry()
        news = create(registry)

        resolved = registry.mark_resolved(news.news_id, PoolSide.NO, "admin", "Reuters", "Confirmed")

        assert resolved.status is Status.RESOLVED
        assert resolved.outcome is PoolSide.NO
        assert resolved.resolved_by == "admin"
        assert resolved.resolution_source == "Reuters"
        assert resolved.resolution_notes == "Confirmed"
        assert resolved.resolved_at_utc is not None

    def test_resolve_twice(self):
        """Test resolution is one-way."""
        registry = NewsRegistry()
        news = create(registry)
        registry.mark_resolved(news.news_id, PoolSide.YES, "admin", "Reuters")

        with pytest.raises(AlreadySettled):
            registry.mark_resolved(news.news_id, PoolSide.NO, "admin", "Reuters")
        assert registry.get(news.news_id).outcome is PoolSide.YES


class TestHasEnded:
    """Tests for has_ended function."""

    def test_before_and_after(self):
        """Test the end time comparison."""
        news = create(NewsRegistry(), end_time_utc="2026-03-31T00:00:00Z")

        assert not has_ended(news, now=datetime(2026, 3, 30, tzinfo=timezone.utc))
        assert has_ended(news, now=datetime(2026, 3, 31, tzinfo=timezone.utc))
