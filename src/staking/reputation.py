"""
Analyst reputation derived from the outcomes of authored pools.

Only pools a user created count toward reputation; staking on other
people's pools does not. Tier is always derived from accuracy and is
never stored on its own.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import Outcome, coerce_enum, parse_iso_datetime, utc_now_iso

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    NOVICE = "Novice"
    ANALYST = "Analyst"
    EXPERT = "Expert"
    MASTER = "Master"
    LEGEND = "Legend"


# Inclusive lower bounds, highest first. Legend covers [95, 100].
TIER_BANDS = [
    (95, Tier.LEGEND),
    (85, Tier.MASTER),
    (70, Tier.EXPERT),
    (50, Tier.ANALYST),
    (0, Tier.NOVICE),
]

TIER_ORDER = {tier: rank for rank, (_, tier) in enumerate(reversed(TIER_BANDS), 1)}


def tier_for(accuracy: int) -> Tier:
    """
    Map an accuracy percentage to its tier.

    Bands: Novice [0,50), Analyst [50,70), Expert [70,85), Master [85,95),
    Legend [95,100].

    Raises:
        ValueError: If accuracy is outside [0, 100]
    """
    if not 0 <= accuracy <= 100:
        raise ValueError(f"accuracy must be in [0, 100], got {accuracy}")
    for lower, tier in TIER_BANDS:
        if accuracy >= lower:
            return tier
    return Tier.NOVICE


def accuracy_pct(correct: int, total: int) -> int:
    """Percentage of correct outcomes, rounded half up. 0 when total is 0."""
    if total == 0:
        return 0
    return (200 * correct + total) // (2 * total)


@dataclass
class ReputationRecord:
    """
    Per-user rollup of authored pool outcomes.

    Attributes:
        user: User identity
        total_pools: Resolved pools authored (active pools excluded)
        correct_pools: Pools resolved correct
        wrong_pools: Pools resolved incorrect
        current_streak: Consecutive correct resolutions, most recent first
        best_streak: Longest streak ever reached
        specialties: Categories with at least one resolved authored pool
        category_stats: Per category {"total": n, "correct": n}
        member_since_utc: Earliest activity seen
        last_active_utc: Latest resolution seen
    """
    user: str
    total_pools: int = 0
    correct_pools: int = 0
    wrong_pools: int = 0
    current_streak: int = 0
    best_streak: int = 0
    specialties: List[str] = field(default_factory=list)
    category_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)
    member_since_utc: Optional[str] = None
    last_active_utc: Optional[str] = None

    @property
    def accuracy(self) -> int:
        return accuracy_pct(self.correct_pools, self.total_pools)

    @property
    def tier(self) -> Tier:
        return tier_for(self.accuracy)

    def category_accuracy(self, category: str) -> int:
        stats = self.category_stats.get(category, {"total": 0, "correct": 0})
        return accuracy_pct(stats["correct"], stats["total"])

    @property
    def primary_specialty(self) -> Optional[str]:
        """Best category: highest accuracy, then most pools, then name."""
        if not self.category_stats:
            return None
        return min(
            self.category_stats,
            key=lambda c: (-self.category_accuracy(c), -self.category_stats[c]["total"], c),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user,
            "tier": self.tier.value,
            "accuracy": self.accuracy,
            "total_pools": self.total_pools,
            "correct_pools": self.correct_pools,
            "wrong_pools": self.wrong_pools,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "specialties": list(self.specialties),
            "primary_specialty": self.primary_specialty,
            "category_stats": {
                c: {**s, "accuracy": self.category_accuracy(c)}
                for c, s in self.category_stats.items()
            },
            "member_since_utc": self.member_since_utc,
            "last_active_utc": self.last_active_utc,
        }


def _earliest(a: Optional[str], b: Optional[str]) -> Optional[str]:
    if a is None or b is None:
        return a or b
    return a if parse_iso_datetime(a) <= parse_iso_datetime(b) else b


def _latest(a: Optional[str], b: Optional[str]) -> Optional[str]:
    if a is None or b is None:
        return a or b
    return a if parse_iso_datetime(a) >= parse_iso_datetime(b) else b


class ReputationTracker:
    """
    Owns every ReputationRecord.

    Writes happen only through on_pool_resolved, serialized per user.
    Reads return copies.
    """

    def __init__(self):
        self._records: Dict[str, ReputationRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    tier_for = staticmethod(tier_for)

    def _lock_for(self, user: str) -> threading.Lock:
        with self._registry_lock:
            if user not in self._locks:
                self._locks[user] = threading.Lock()
                self._records[user] = ReputationRecord(user=user)
            return self._locks[user]

    def on_pool_resolved(
        self,
        author: str,
        category: str,
        outcome: Outcome,
        resolved_at_utc: Optional[str] = None,
        authored_at_utc: Optional[str] = None,
    ) -> ReputationRecord:
        """
        Fold one resolved authored pool into the author's record.

        Must be called exactly once per pool resolution.

        Args:
            author: Pool creator
            category: Category of the pool's news item
            outcome: correct or incorrect
            resolved_at_utc: Resolution time (defaults to now)
            authored_at_utc: When the pool was opened, for member_since

        Returns:
            Snapshot of the updated record
        """
        outcome = coerce_enum(Outcome, outcome, "outcome")
        resolved_at_utc = resolved_at_utc or utc_now_iso()

        with self._lock_for(author):
            record = self._records[author]
            stats = record.category_stats.setdefault(category, {"total": 0, "correct": 0})

            record.total_pools += 1
            stats["total"] += 1
            if outcome is Outcome.CORRECT:
                record.correct_pools += 1
                record.current_streak += 1
                stats["correct"] += 1
            else:
                record.wrong_pools += 1
                record.current_streak = 0
            record.best_streak = max(record.best_streak, record.current_streak)

            if category not in record.specialties:
                record.specialties.append(category)

            record.member_since_utc = _earliest(
                record.member_since_utc, _earliest(authored_at_utc, resolved_at_utc)
            )
            record.last_active_utc = _latest(record.last_active_utc, resolved_at_utc)

            snapshot = copy.deepcopy(record)

        logger.info(
            f"Reputation {author}: {outcome.value} in {category}, "
            f"accuracy={snapshot.accuracy} tier={snapshot.tier.value} streak={snapshot.current_streak}"
        )
        return snapshot

    def get(self, user: str) -> Optional[ReputationRecord]:
        """Snapshot of a user's record, or None if they have no resolved pools."""
        with self._registry_lock:
            lock = self._locks.get(user)
        if lock is None:
            return None
        with lock:
            return copy.deepcopy(self._records[user])

    def all_records(self) -> List[ReputationRecord]:
        with self._registry_lock:
            users = list(self._records)
        return [r for r in (self.get(u) for u in users) if r is not None]
