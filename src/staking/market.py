"""
Market facade: wires news registry, ledger, settlement and reputation.

Each component owns its own state; this module only sequences calls
between them. Stake intake, pool settlement and news resolution all
enter here.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config.settings import EngineConfig
from . import aggregator, reporter
from .errors import AlreadySettled, NewsClosed, ResolutionTooEarly
from .journal import Journal
from .ledger import Ledger
from .models import (
    NewsItem,
    Outcome,
    Pool,
    PoolSide,
    PoolStake,
    Position,
    SettlementResult,
    coerce_enum,
    utc_now_iso,
)
from .news import NewsRegistry, has_ended
from .reputation import ReputationRecord, ReputationTracker
from .settlement import SettlementEngine

logger = logging.getLogger(__name__)


@dataclass
class NewsResolution:
    """Result of resolving a news item and settling its pools."""
    news: NewsItem
    settlements: List[SettlementResult] = field(default_factory=list)

    @property
    def degenerate_pools(self) -> List[str]:
        return [s.pool_id for s in self.settlements if s.degenerate]


class Market:
    """
    One marketplace instance.

    With a journal_dir every accepted change is appended to the journal
    before it is applied in memory; Market.load() rebuilds the same state.

    Lock order is news, then author, then pool. A news lock keeps pools
    from opening while the item resolves. An author lock makes settlement
    and the reputation update one step, so an author's record is folded
    in the order their pools settle.
    """

    def __init__(self, config: Optional[EngineConfig] = None, journal_dir: Optional[Path] = None):
        self.config = config or EngineConfig()
        self.journal = Journal(Path(journal_dir)) if journal_dir else None
        self.news = NewsRegistry(self.journal)
        self.ledger = Ledger(min_stake=self.config.min_stake, journal=self.journal)
        self.engine = SettlementEngine(self.ledger, fee_bps=self.config.fee_bps, journal=self.journal)
        self.reputation = ReputationTracker()
        self.ledger.add_listener(self._on_pool_changed)
        self._news_locks: Dict[str, threading.Lock] = {}
        self._author_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _keyed_lock(self, locks: Dict[str, threading.Lock], key: str) -> threading.Lock:
        with self._registry_lock:
            if key not in locks:
                locks[key] = threading.Lock()
            return locks[key]

    def _on_pool_changed(self, pool: Pool) -> None:
        self.news.refresh_totals(pool.news_id, self.ledger.pools_for_news(pool.news_id))

    def _attach_journal(self, journal: Journal) -> None:
        self.journal = journal
        self.news.journal = journal
        self.ledger.journal = journal
        self.engine.journal = journal

    def create_news(
        self,
        title: str,
        description: str,
        category: str,
        end_time_utc: str,
        resolution_criteria: str,
        creator: str,
    ) -> NewsItem:
        return self.news.create_news(
            title=title,
            description=description,
            category=category,
            end_time_utc=end_time_utc,
            resolution_criteria=resolution_criteria,
            creator=creator,
        )

    def open_pool(
        self,
        news_id: str,
        creator: str,
        position: PoolSide,
        creator_stake: int,
        reasoning: str = "",
        evidence: Optional[List[str]] = None,
    ) -> Pool:
        """
        Open an analysis pool on an active news item.

        Raises:
            UnknownNews: If the news item does not exist
            NewsClosed: If the news item is resolved
            InvalidAmount: If creator_stake fails intake rules
        """
        with self._keyed_lock(self._news_locks, news_id):
            news = self.news.get(news_id)
            if not news.is_active:
                raise NewsClosed(f"News {news_id} is resolved; no new pools")
            return self.ledger.open_pool(news_id, creator, position, creator_stake, reasoning, evidence)

    def stake(self, pool_id: str, staker: str, position: Position, amount: int) -> PoolStake:
        return self.ledger.record_stake(pool_id, staker, position, amount)

    def preview_payout(self, pool_id: str, position: Position, amount: int) -> int:
        return self.engine.preview_payout(pool_id, position, amount)

    def _record_reputation(self, result: SettlementResult) -> ReputationRecord:
        pool = self.ledger.get_pool(result.pool_id)
        news = self.news.get(pool.news_id)
        return self.reputation.on_pool_resolved(
            author=pool.creator,
            category=news.category,
            outcome=result.outcome,
            resolved_at_utc=result.settled_at_utc,
            authored_at_utc=pool.created_at_utc,
        )

    def settle_pool(self, pool_id: str, outcome: Outcome) -> SettlementResult:
        """
        Settle one pool and credit its author's reputation.

        Raises:
            AlreadySettled: If the pool is already resolved
            EmptyPool: If neither side has stake
            InvalidRecord: If outcome is not a valid tag
            UnknownPool: If the pool does not exist
        """
        creator = self.ledger.get_pool(pool_id).creator
        with self._keyed_lock(self._author_locks, creator):
            result = self.engine.settle(pool_id, outcome)
            self._record_reputation(result)
        return result

    def resolve_news(
        self,
        news_id: str,
        outcome: PoolSide,
        resolved_by: str,
        resolution_source: str,
        resolution_notes: str = "",
        emergency: bool = False,
        now: Optional[datetime] = None,
    ) -> NewsResolution:
        """
        Resolve a news item and settle every pool still active on it.

        A pool is correct when its declared position matches the news
        outcome. Whether resolved_by may resolve is the caller's check.

        Pools settle first and the item is marked resolved last. If a
        settlement fails the item stays active, and calling again settles
        only the pools still open.

        Args:
            news_id: News item to resolve
            outcome: YES or NO
            resolved_by: Identity of the resolver
            resolution_source: Where the outcome was read from
            resolution_notes: Optional notes
            emergency: Allow resolution before the item's end time
            now: Clock override

        Returns:
            NewsResolution with the resolved item and one settlement per pool
            settled by this call

        Raises:
            ResolutionTooEarly: If the end time has not passed and emergency is False
            AlreadySettled: If the news item is already resolved
            InvalidRecord: If outcome is not YES or NO
            UnknownNews: If the news item does not exist
        """
        outcome = coerce_enum(PoolSide, outcome, "outcome")

        with self._keyed_lock(self._news_locks, news_id):
            news = self.news.get(news_id)
            if not news.is_active:
                raise AlreadySettled(f"News {news_id} already resolved as {news.outcome.value}")
            if not emergency and not has_ended(news, now):
                raise ResolutionTooEarly(f"News {news_id} ends at {news.end_time_utc}")

            settlements = []
            for pool in self.ledger.pools_for_news(news_id):
                if not pool.is_active:
                    continue
                pool_outcome = Outcome.CORRECT if pool.position is outcome else Outcome.INCORRECT
                try:
                    settlements.append(self.settle_pool(pool.pool_id, pool_outcome))
                except AlreadySettled:
                    logger.info(f"Pool {pool.pool_id} settled concurrently, skipping")

            resolved_at_utc = utc_now_iso()
            if self.journal is not None:
                self.journal.append("news_resolution", {
                    "news_id": news_id,
                    "outcome": outcome.value,
                    "resolved_by": resolved_by,
                    "resolution_source": resolution_source,
                    "resolution_notes": resolution_notes,
                    "emergency": emergency,
                    "resolved_at_utc": resolved_at_utc,
                })
            resolved = self.news.mark_resolved(
                news_id, outcome, resolved_by, resolution_source, resolution_notes,
                resolved_at_utc=resolved_at_utc,
            )

        if emergency:
            logger.warning(f"Emergency resolution of {news_id} as {outcome.value} by {resolved_by}")

        resolution = NewsResolution(news=resolved, settlements=settlements)
        logger.info(
            f"Resolved news {news_id} as {outcome.value}: settled {len(resolution.settlements)} pool(s), "
            f"{len(resolution.degenerate_pools)} degenerate"
        )
        return resolution

    def ranked_pools(self, news_id: str, sort_by: str = "quality") -> List[Pool]:
        """
        Pools on a news item in display order.

        Raises:
            UnknownNews: If the news item does not exist
            ValueError: If sort_by is unknown
        """
        self.news.get(news_id)
        records = {r.user: r for r in self.reputation.all_records()}
        return reporter.sort_pools(self.ledger.pools_for_news(news_id), sort_by, records)

    def profile(self, user: str) -> Dict[str, Any]:
        """
        Read-only summary of a user's activity.

        Pool creation and staking are reported separately; only pool
        creation feeds reputation.
        """
        created = self.ledger.pools_by_creator(user)
        creator_stake_ids = {self.ledger.stakes_for(p.pool_id)[0].stake_id for p in created}
        stakes = self.ledger.stakes_by_user(user)
        own = [s for s in stakes if s.stake_id in creator_stake_ids]
        others = [s for s in stakes if s.stake_id not in creator_stake_ids]

        record = self.reputation.get(user)
        return {
            "user": user,
            "reputation": record.to_dict() if record else None,
            "pools_created": len(created),
            "pools_active": sum(1 for p in created if p.is_active),
            "news_created": sum(1 for n in self.news.list_news() if n.creator == user),
            "pool_earnings": aggregator.staking_stats(own),
            "staking": aggregator.staking_stats(others),
        }

    @classmethod
    def load(cls, journal_dir: Path, config: Optional[EngineConfig] = None) -> "Market":
        """
        Rebuild a market by replaying its journal.

        Settlements are applied as recorded, not recomputed, and feed
        reputation in the order they were written.

        Raises:
            JournalError: If a journal file is unreadable or inconsistent
        """
        journal = Journal(Path(journal_dir))
        market = cls(config=config)

        for record in journal.get_news():
            market.news.restore(record)
        for record in journal.get_pools():
            market.ledger.restore_pool(record)
        for record in journal.get_stakes():
            market.ledger.restore_stake(record)
        for record in journal.get_settlements():
            result = market.engine.apply_record(record)
            market._record_reputation(result)
        for record in journal.get_news_resolutions():
            market.news.mark_resolved(
                record["news_id"],
                PoolSide(record["outcome"]),
                record["resolved_by"],
                record["resolution_source"],
                record.get("resolution_notes", ""),
                resolved_at_utc=record["resolved_at_utc"],
            )

        pools = market.ledger.all_pools()
        for news in market.news.list_news():
            market.news.refresh_totals(news.news_id, pools)

        market._attach_journal(journal)
        logger.info(
            f"Loaded journal {journal_dir}: {len(market.news.list_news())} news, "
            f"{len(pools)} pools"
        )
        return market
