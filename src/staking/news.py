"""
News item registry.

Owns NewsItem records: creation, the derived totals written by
aggregation, and the one-way transition to resolved.
"""

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from . import aggregator
from .errors import AlreadySettled, InvalidRecord, UnknownNews
from .journal import Journal, validate_record
from .ledger import new_id
from .models import NewsItem, Pool, PoolSide, Status, parse_iso_datetime, utc_now_iso

logger = logging.getLogger(__name__)


class NewsRegistry:
    """In-memory news items, optionally mirrored to a journal."""

    def __init__(self, journal: Optional[Journal] = None):
        self.journal = journal
        self._items: Dict[str, NewsItem] = {}
        self._lock = threading.Lock()

    def create_news(
        self,
        title: str,
        description: str,
        category: str,
        end_time_utc: str,
        resolution_criteria: str,
        creator: str,
    ) -> NewsItem:
        """
        Create a news item.

        Args:
            title: Statement being predicted
            description: Longer context
            category: Topic, used for reputation specialties
            end_time_utc: ISO 8601 time after which it can be resolved
            resolution_criteria: How the outcome will be judged
            creator: Identity of the creating user

        Returns:
            Snapshot of the new item

        Raises:
            InvalidRecord: If fields fail schema validation or end_time_utc
                is not an ISO 8601 timestamp
        """
        try:
            end_time = parse_iso_datetime(end_time_utc)
        except ValueError:
            raise InvalidRecord(f"end_time_utc is not an ISO 8601 timestamp: {end_time_utc!r}")

        item = NewsItem(
            news_id=new_id("news"),
            title=title.strip(),
            description=description,
            category=category.strip(),
            resolution_criteria=resolution_criteria.strip(),
            creator=creator,
            end_time_utc=end_time.isoformat(),
            created_at_utc=utc_now_iso(),
        )

        record = item.to_record()
        if self.journal is not None:
            self.journal.append("news", record)
        else:
            validate_record({**record, "record_type": "news"}, "news")

        with self._lock:
            self._items[item.news_id] = item
        logger.info(f"Created news {item.news_id} [{item.category}]: {item.title}")
        return copy.deepcopy(item)

    def restore(self, record: Dict) -> None:
        item = NewsItem.from_record(record)
        with self._lock:
            self._items[item.news_id] = item

    def get(self, news_id: str) -> NewsItem:
        """
        Snapshot of a news item.

        Raises:
            UnknownNews: If the id is not registered
        """
        with self._lock:
            if news_id not in self._items:
                raise UnknownNews(f"News not found: {news_id}")
            return copy.deepcopy(self._items[news_id])

    def list_news(self, category: Optional[str] = None, status: Optional[Status] = None) -> List[NewsItem]:
        with self._lock:
            items = [copy.deepcopy(n) for n in self._items.values()]
        if category:
            items = [n for n in items if n.category == category]
        if status:
            items = [n for n in items if n.status is Status(status)]
        return items

    def categories(self) -> List[str]:
        with self._lock:
            return sorted({n.category for n in self._items.values()})

    def refresh_totals(self, news_id: str, pools: List[Pool]) -> NewsItem:
        """Recompute derived totals from the item's pools."""
        with self._lock:
            if news_id not in self._items:
                raise UnknownNews(f"News not found: {news_id}")
            item = aggregator.recompute(self._items[news_id], pools)
            return copy.deepcopy(item)

    def mark_resolved(
        self,
        news_id: str,
        outcome: PoolSide,
        resolved_by: str,
        resolution_source: str,
        resolution_notes: str = "",
        resolved_at_utc: Optional[str] = None,
    ) -> NewsItem:
        """
        Transition a news item to resolved. One-way.

        Raises:
            AlreadySettled: If the item is already resolved
            UnknownNews: If the id is not registered
        """
        with self._lock:
            if news_id not in self._items:
                raise UnknownNews(f"News not found: {news_id}")
            item = self._items[news_id]
            if not item.is_active:
                raise AlreadySettled(f"News {news_id} already resolved as {item.outcome.value}")

            item.status = Status.RESOLVED
            item.outcome = PoolSide(outcome)
            item.resolved_by = resolved_by
            item.resolution_source = resolution_source
            item.resolution_notes = resolution_notes
            item.resolved_at_utc = resolved_at_utc or utc_now_iso()
            return copy.deepcopy(item)


def has_ended(news: NewsItem, now: Optional[datetime] = None) -> bool:
    """True once the news item's end time has passed."""
    now = now or datetime.now(timezone.utc)
    return parse_iso_datetime(news.end_time_utc) <= now
