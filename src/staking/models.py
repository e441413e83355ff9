"""
Data models for news items, pools, stakes and settlement results.

Amounts are integers in the settlement currency's smallest unit.
Timestamps are ISO 8601 UTC strings.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import AlreadySettled, InvalidRecord


class Position(str, Enum):
    """Side of a pool a stake backs."""
    AGREE = "agree"
    DISAGREE = "disagree"


class Outcome(str, Enum):
    """Resolved outcome of a pool, relative to its creator's claim."""
    CORRECT = "correct"
    INCORRECT = "incorrect"

    @property
    def winning_side(self) -> Position:
        # The creator's own stake is always an agree stake
        return Position.AGREE if self is Outcome.CORRECT else Position.DISAGREE


class StakeOutcome(str, Enum):
    WON = "won"
    LOST = "lost"


class PoolSide(str, Enum):
    """Position a pool creator declares on a news item."""
    YES = "YES"
    NO = "NO"


class Status(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


def coerce_enum(enum_cls, value, field_name: str):
    """
    Convert a tag to an enum member.

    Raises:
        InvalidRecord: If value is not a valid tag for enum_cls
    """
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(m.value for m in enum_cls)
        raise InvalidRecord(f"Invalid {field_name} {value!r}, expected one of: {valid}")


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_iso_datetime(dt_str: str) -> datetime:
    """
    Parse ISO 8601 datetime string to datetime object.

    Args:
        dt_str: ISO format datetime string

    Returns:
        Parsed datetime with UTC timezone
    """
    dt_str = dt_str.replace('Z', '+00:00')
    dt = datetime.fromisoformat(dt_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class NewsItem:
    """
    A predicted event that analysts open pools on.

    Attributes:
        news_id: Unique news identifier
        title: Statement being predicted
        description: Longer context
        category: Topic used for reputation specialties
        resolution_criteria: How the outcome will be judged
        creator: Identity of the user who created the item
        end_time_utc: When the event can be resolved
        created_at_utc: Creation timestamp
        status: active until resolved
        total_staked: Sum of pool totals (derived by aggregation)
        total_pools: Number of pools (derived by aggregation)
    """
    news_id: str
    title: str
    description: str
    category: str
    resolution_criteria: str
    creator: str
    end_time_utc: str
    created_at_utc: str
    status: Status = Status.ACTIVE
    total_staked: int = 0
    total_pools: int = 0
    outcome: Optional[PoolSide] = None
    resolved_at_utc: Optional[str] = None
    resolved_by: Optional[str] = None
    resolution_source: Optional[str] = None
    resolution_notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is Status.ACTIVE

    def to_record(self) -> Dict[str, Any]:
        """Creation fields, as written to the journal."""
        return {
            "news_id": self.news_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "resolution_criteria": self.resolution_criteria,
            "creator": self.creator,
            "end_time_utc": self.end_time_utc,
            "created_at_utc": self.created_at_utc,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_record()
        d.update({
            "status": self.status.value,
            "total_staked": self.total_staked,
            "total_pools": self.total_pools,
            "outcome": self.outcome.value if self.outcome else None,
            "resolved_at_utc": self.resolved_at_utc,
            "resolved_by": self.resolved_by,
            "resolution_source": self.resolution_source,
            "resolution_notes": self.resolution_notes,
        })
        return d

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "NewsItem":
        return cls(
            news_id=record["news_id"],
            title=record["title"],
            description=record.get("description", ""),
            category=record["category"],
            resolution_criteria=record["resolution_criteria"],
            creator=record["creator"],
            end_time_utc=record["end_time_utc"],
            created_at_utc=record["created_at_utc"],
        )


@dataclass
class PoolStake:
    """
    One user's stake on one side of a pool.

    Immutable after creation except for the one-time payout annotation
    written at settlement.
    """
    stake_id: str
    pool_id: str
    staker: str
    position: Position
    amount: int
    created_at_utc: str
    payout: Optional[int] = None
    outcome: Optional[StakeOutcome] = None

    @property
    def is_settled(self) -> bool:
        return self.outcome is not None

    def annotate(self, payout: int, outcome: StakeOutcome) -> None:
        """
        Record the settlement payout for this stake.

        Raises:
            AlreadySettled: If the stake already carries a payout
        """
        if self.is_settled:
            raise AlreadySettled(f"Stake {self.stake_id} already settled")
        self.payout = payout
        self.outcome = outcome

    def to_record(self) -> Dict[str, Any]:
        return {
            "stake_id": self.stake_id,
            "pool_id": self.pool_id,
            "staker": self.staker,
            "position": self.position.value,
            "amount": self.amount,
            "created_at_utc": self.created_at_utc,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_record()
        d["payout"] = self.payout
        d["outcome"] = self.outcome.value if self.outcome else None
        return d


@dataclass
class Pool:
    """
    An analyst's stated position on a news item, with its two stake sides.

    total_staked is derived from the side totals, so
    total_staked == agree_stakes + disagree_stakes always holds.
    """
    pool_id: str
    news_id: str
    creator: str
    position: PoolSide
    creator_stake: int
    created_at_utc: str
    reasoning: str = ""
    evidence: List[str] = field(default_factory=list)
    agree_stakes: int = 0
    disagree_stakes: int = 0
    status: Status = Status.ACTIVE
    outcome: Optional[Outcome] = None
    resolved_at_utc: Optional[str] = None
    protocol_fee: Optional[int] = None

    @property
    def total_staked(self) -> int:
        return self.agree_stakes + self.disagree_stakes

    @property
    def is_active(self) -> bool:
        return self.status is Status.ACTIVE

    def side_total(self, position: Position) -> int:
        if position is Position.AGREE:
            return self.agree_stakes
        return self.disagree_stakes

    def add_to_side(self, position: Position, amount: int) -> None:
        if position is Position.AGREE:
            self.agree_stakes += amount
        else:
            self.disagree_stakes += amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool_id": self.pool_id,
            "news_id": self.news_id,
            "creator": self.creator,
            "position": self.position.value,
            "creator_stake": self.creator_stake,
            "reasoning": self.reasoning,
            "evidence": list(self.evidence),
            "agree_stakes": self.agree_stakes,
            "disagree_stakes": self.disagree_stakes,
            "total_staked": self.total_staked,
            "status": self.status.value,
            "outcome": self.outcome.value if self.outcome else None,
            "created_at_utc": self.created_at_utc,
            "resolved_at_utc": self.resolved_at_utc,
            "protocol_fee": self.protocol_fee,
        }


@dataclass
class StakePayout:
    stake_id: str
    staker: str
    position: Position
    amount: int
    payout: int
    outcome: StakeOutcome

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stake_id": self.stake_id,
            "staker": self.staker,
            "position": self.position.value,
            "amount": self.amount,
            "payout": self.payout,
            "outcome": self.outcome.value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "StakePayout":
        return cls(
            stake_id=d["stake_id"],
            staker=d["staker"],
            position=Position(d["position"]),
            amount=d["amount"],
            payout=d["payout"],
            outcome=StakeOutcome(d["outcome"]),
        )


@dataclass
class SettlementResult:
    """
    Outcome of settling one pool.

    Attributes:
        pool_id: Settled pool
        outcome: correct or incorrect
        winning_side: Side that was paid
        total_staked: Pool total at settlement
        protocol_fee: Amount removed to the protocol sink
        reward_pool: total_staked - protocol_fee
        winning_total: Sum of winning stakes
        losing_total: Sum of losing stakes
        residual: Rounding remainder added to the largest winning stake
        degenerate: True when nobody backed the winning side
        payouts: Per-stake payouts in stake-creation order
    """
    pool_id: str
    outcome: Outcome
    winning_side: Position
    total_staked: int
    protocol_fee: int
    reward_pool: int
    winning_total: int
    losing_total: int
    residual: int
    degenerate: bool
    payouts: List[StakePayout]
    settled_at_utc: str

    @property
    def total_paid(self) -> int:
        return sum(p.payout for p in self.payouts)

    def payout_for(self, stake_id: str) -> Optional[StakePayout]:
        for p in self.payouts:
            if p.stake_id == stake_id:
                return p
        return None

    def winners(self) -> List[StakePayout]:
        return [p for p in self.payouts if p.outcome is StakeOutcome.WON]

    def losers(self) -> List[StakePayout]:
        return [p for p in self.payouts if p.outcome is StakeOutcome.LOST]

    def to_record(self) -> Dict[str, Any]:
        return {
            "pool_id": self.pool_id,
            "outcome": self.outcome.value,
            "winning_side": self.winning_side.value,
            "total_staked": self.total_staked,
            "protocol_fee": self.protocol_fee,
            "reward_pool": self.reward_pool,
            "winning_total": self.winning_total,
            "losing_total": self.losing_total,
            "residual": self.residual,
            "degenerate": self.degenerate,
            "payouts": [p.to_dict() for p in self.payouts],
            "settled_at_utc": self.settled_at_utc,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "SettlementResult":
        return cls(
            pool_id=record["pool_id"],
            outcome=Outcome(record["outcome"]),
            winning_side=Position(record["winning_side"]),
            total_staked=record["total_staked"],
            protocol_fee=record["protocol_fee"],
            reward_pool=record["reward_pool"],
            winning_total=record["winning_total"],
            losing_total=record["losing_total"],
            residual=record["residual"],
            degenerate=record["degenerate"],
            payouts=[StakePayout.from_dict(p) for p in record["payouts"]],
            settled_at_utc=record["settled_at_utc"],
        )
