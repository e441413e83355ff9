"""
Stake ledger for analysis pools.

Owns every Pool and PoolStake. Accepts stakes, maintains the running side
totals, and hands a pool's stake collection to settlement under the pool's
lock. Contains no payout logic.
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .errors import InvalidAmount, PoolClosed, UnknownPool
from .journal import Journal
from .models import (
    Pool,
    PoolSide,
    PoolStake,
    Position,
    coerce_enum,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_STAKE = 1


def new_id(prefix: str) -> str:
    """Generate a record id such as ``pool_1a2b3c4d5e6f``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class Ledger:
    """
    In-memory stake bookkeeping, optionally mirrored to a journal.

    Each pool owns one lock that covers its totals and its stake list.
    Different pools never contend with each other.
    """

    def __init__(self, min_stake: int = DEFAULT_MIN_STAKE, journal: Optional[Journal] = None):
        self.min_stake = min_stake
        self.journal = journal
        self._pools: Dict[str, Pool] = {}
        self._stakes: Dict[str, List[PoolStake]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._listeners: List[Callable[[Pool], None]] = []

    def add_listener(self, listener: Callable[[Pool], None]) -> None:
        """Register a callback run with a pool snapshot after every accepted change."""
        self._listeners.append(listener)

    def notify(self, pool_id: str) -> None:
        snapshot = self.get_pool(pool_id)
        for listener in self._listeners:
            listener(snapshot)

    def validate_amount(self, amount: int) -> None:
        """
        Check a stake amount against intake rules.

        Raises:
            InvalidAmount: If amount is not a positive integer of at least min_stake
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount(f"Stake amount must be an integer of minor units, got {amount!r}")
        if amount <= 0:
            raise InvalidAmount(f"Stake amount must be positive, got {amount}")
        if amount < self.min_stake:
            raise InvalidAmount(f"Stake amount {amount} is below minimum stake {self.min_stake}")

    @contextmanager
    def locked(self, pool_id: str) -> Iterator[Tuple[Pool, List[PoolStake]]]:
        """
        Hold a pool's lock and yield its live state.

        Only settlement mutates pools through this; everything else reads
        snapshots.

        Raises:
            UnknownPool: If the pool does not exist
        """
        with self._registry_lock:
            if pool_id not in self._pools:
                raise UnknownPool(f"Pool not found: {pool_id}")
            lock = self._locks[pool_id]
        with lock:
            yield self._pools[pool_id], self._stakes[pool_id]

    def _register(self, pool: Pool, creator_stake: PoolStake) -> None:
        pool.add_to_side(Position.AGREE, creator_stake.amount)
        with self._registry_lock:
            self._pools[pool.pool_id] = pool
            self._stakes[pool.pool_id] = [creator_stake]
            self._locks[pool.pool_id] = threading.Lock()

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
        Open a pool with the creator's initial stake.

        The creator's stake is recorded as the pool's first agree stake.
        Whether the news item accepts new pools is the caller's check.

        Args:
            news_id: Owning news item
            creator: Identity of the analyst
            position: YES or NO on the news item
            creator_stake: Initial stake in minor units
            reasoning: Analyst's reasoning text
            evidence: Supporting links

        Returns:
            Snapshot of the new pool

        Raises:
            InvalidAmount: If creator_stake fails intake rules
            InvalidRecord: If position is not YES or NO
        """
        position = coerce_enum(PoolSide, position, "position")
        self.validate_amount(creator_stake)

        now = utc_now_iso()
        pool = Pool(
            pool_id=new_id("pool"),
            news_id=news_id,
            creator=creator,
            position=position,
            creator_stake=creator_stake,
            created_at_utc=now,
            reasoning=reasoning,
            evidence=list(evidence or []),
        )
        stake = PoolStake(
            stake_id=new_id("stk"),
            pool_id=pool.pool_id,
            staker=creator,
            position=Position.AGREE,
            amount=creator_stake,
            created_at_utc=now,
        )

        if self.journal is not None:
            self.journal.append("pool", pool_record(pool, stake))

        self._register(pool, stake)
        logger.info(f"Opened pool {pool.pool_id} on {news_id} by {creator}: {position.value}, stake {creator_stake}")
        self.notify(pool.pool_id)
        return self.get_pool(pool.pool_id)

    def record_stake(self, pool_id: str, staker: str, position: Position, amount: int) -> PoolStake:
        """
        Accept a stake into a pool.

        Args:
            pool_id: Target pool
            staker: Identity of the staker
            position: agree or disagree
            amount: Stake in minor units

        Returns:
            Snapshot of the recorded stake

        Raises:
            InvalidAmount: If amount is non-positive or below the minimum stake
            InvalidRecord: If position is not agree or disagree
            PoolClosed: If the pool is not active
            UnknownPool: If the pool does not exist
        """
        position = coerce_enum(Position, position, "position")
        try:
            self.validate_amount(amount)
        except InvalidAmount as e:
            logger.info(f"Rejected stake on {pool_id} by {staker}: {e}")
            raise

        with self.locked(pool_id) as (pool, stakes):
            if not pool.is_active:
                logger.info(f"Rejected stake on resolved pool {pool_id} by {staker}")
                raise PoolClosed(f"Pool {pool_id} is {pool.status.value}")

            stake = PoolStake(
                stake_id=new_id("stk"),
                pool_id=pool_id,
                staker=staker,
                position=position,
                amount=amount,
                created_at_utc=utc_now_iso(),
            )
            if self.journal is not None:
                self.journal.append("stake", stake.to_record())

            pool.add_to_side(position, amount)
            stakes.append(stake)
            snapshot = copy.deepcopy(stake)

        logger.info(f"Recorded stake {stake.stake_id} on {pool_id}: {staker} {position.value} {amount}")
        self.notify(pool_id)
        return snapshot

    def stakes_for(self, pool_id: str) -> List[PoolStake]:
        """
        All stakes for a pool, in stake-creation order.

        Raises:
            UnknownPool: If the pool does not exist
        """
        with self.locked(pool_id) as (_, stakes):
            return copy.deepcopy(stakes)

    def get_pool(self, pool_id: str) -> Pool:
        """
        Snapshot of a pool.

        Raises:
            UnknownPool: If the pool does not exist
        """
        with self.locked(pool_id) as (pool, _):
            return copy.deepcopy(pool)

    def has_pool(self, pool_id: str) -> bool:
        with self._registry_lock:
            return pool_id in self._pools

    def pool_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._pools)

    def all_pools(self) -> List[Pool]:
        return [self.get_pool(pool_id) for pool_id in self.pool_ids()]

    def pools_for_news(self, news_id: str) -> List[Pool]:
        return [p for p in self.all_pools() if p.news_id == news_id]

    def pools_by_creator(self, creator: str) -> List[Pool]:
        return [p for p in self.all_pools() if p.creator == creator]

    def stakes_by_user(self, user: str) -> List[PoolStake]:
        """All stakes placed by a user across pools, including creator stakes."""
        result = []
        for pool_id in self.pool_ids():
            result.extend(s for s in self.stakes_for(pool_id) if s.staker == user)
        return result

    def restore_pool(self, record: Dict) -> None:
        """Rebuild a pool and its creator stake from a journal record."""
        pool = Pool(
            pool_id=record["pool_id"],
            news_id=record["news_id"],
            creator=record["creator"],
            position=PoolSide(record["position"]),
            creator_stake=record["creator_stake"],
            created_at_utc=record["created_at_utc"],
            reasoning=record.get("reasoning", ""),
            evidence=list(record.get("evidence", [])),
        )
        stake = PoolStake(
            stake_id=record["creator_stake_id"],
            pool_id=pool.pool_id,
            staker=pool.creator,
            position=Position.AGREE,
            amount=pool.creator_stake,
            created_at_utc=pool.created_at_utc,
        )
        self._register(pool, stake)

    def restore_stake(self, record: Dict) -> None:
        """
        Rebuild a stake from a journal record.

        Intake minimums are not re-applied; the record was accepted when written.
        """
        stake = PoolStake(
            stake_id=record["stake_id"],
            pool_id=record["pool_id"],
            staker=record["staker"],
            position=Position(record["position"]),
            amount=record["amount"],
            created_at_utc=record["created_at_utc"],
        )
        with self.locked(stake.pool_id) as (pool, stakes):
            if not pool.is_active:
                raise PoolClosed(f"Journal stake {stake.stake_id} follows settlement of {pool.pool_id}")
            pool.add_to_side(stake.position, stake.amount)
            stakes.append(stake)


def pool_record(pool: Pool, creator_stake: PoolStake) -> Dict:
    """Journal record for a newly opened pool."""
    return {
        "pool_id": pool.pool_id,
        "news_id": pool.news_id,
        "creator": pool.creator,
        "position": pool.position.value,
        "creator_stake": pool.creator_stake,
        "creator_stake_id": creator_stake.stake_id,
        "reasoning": pool.reasoning,
        "evidence": list(pool.evidence),
        "created_at_utc": pool.created_at_utc,
    }
