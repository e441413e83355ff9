"""
Pool settlement: fee extraction and pro-rata payouts.

A resolved pool pays its winning side in full plus a share of the
fee-adjusted pool proportional to stake size. All arithmetic is integer
minor units.

Rounding policy: each winner's share is floored; the remainder left over
(always smaller than the number of winners) is added to the largest
winning stake, the earliest one on ties. In a non-degenerate settlement
the payouts therefore sum to exactly the reward pool.
"""

import logging
from typing import Any, Dict, List, Optional

from ..config.settings import BPS_DENOMINATOR, DEFAULT_FEE_BPS
from .errors import AlreadySettled, EmptyPool, JournalError, PoolClosed
from .journal import Journal
from .ledger import Ledger
from .models import (
    Outcome,
    Pool,
    PoolStake,
    Position,
    SettlementResult,
    StakeOutcome,
    StakePayout,
    Status,
    coerce_enum,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


def protocol_fee(total_staked: int, fee_bps: int = DEFAULT_FEE_BPS) -> int:
    """Fee taken off the top of the whole pool, floored to a minor unit."""
    return total_staked * fee_bps // BPS_DENOMINATOR


def compute_settlement(
    pool_id: str,
    stakes: List[PoolStake],
    outcome: Outcome,
    fee_bps: int = DEFAULT_FEE_BPS,
    settled_at_utc: Optional[str] = None,
) -> SettlementResult:
    """
    Compute per-stake payouts for a pool outcome.

    Winner payout = amount + (reward_pool - winning_total) * amount / winning_total
    Loser payout = 0

    Pure: neither the stakes nor the pool are modified.

    Args:
        pool_id: Pool being settled
        stakes: All stakes of the pool, in creation order
        outcome: correct pays agree, incorrect pays disagree
        fee_bps: Protocol fee in basis points of the whole pool
        settled_at_utc: Settlement timestamp (defaults to now)

    Returns:
        SettlementResult with payouts in stake order

    Raises:
        EmptyPool: If there is no stake on either side
    """
    total_staked = sum(s.amount for s in stakes)
    if total_staked == 0:
        raise EmptyPool(f"Pool {pool_id} has no stakes")

    fee = protocol_fee(total_staked, fee_bps)
    reward_pool = total_staked - fee
    winning_side = outcome.winning_side

    winners = [s for s in stakes if s.position is winning_side]
    winning_total = sum(s.amount for s in winners)
    losing_total = total_staked - winning_total

    payouts = []
    residual = 0

    if winning_total == 0:
        # Nobody backed the winning side; the reward pool goes to the protocol sink
        for s in stakes:
            payouts.append(StakePayout(s.stake_id, s.staker, s.position, s.amount, 0, StakeOutcome.LOST))
    else:
        # Negative when the losing side is smaller than the fee
        distributable = reward_pool - winning_total
        shares = {s.stake_id: distributable * s.amount // winning_total for s in winners}
        residual = distributable - sum(shares.values())
        largest = max(winners, key=lambda s: s.amount)

        for s in stakes:
            if s.position is winning_side:
                payout = s.amount + shares[s.stake_id]
                if s.stake_id == largest.stake_id:
                    payout += residual
                payouts.append(StakePayout(s.stake_id, s.staker, s.position, s.amount, payout, StakeOutcome.WON))
            else:
                payouts.append(StakePayout(s.stake_id, s.staker, s.position, s.amount, 0, StakeOutcome.LOST))

    return SettlementResult(
        pool_id=pool_id,
        outcome=outcome,
        winning_side=winning_side,
        total_staked=total_staked,
        protocol_fee=fee,
        reward_pool=reward_pool,
        winning_total=winning_total,
        losing_total=losing_total,
        residual=residual,
        degenerate=winning_total == 0,
        payouts=payouts,
        settled_at_utc=settled_at_utc or utc_now_iso(),
    )


def apply_settlement(pool: Pool, stakes: List[PoolStake], result: SettlementResult) -> None:
    """
    Write a settlement onto live pool state: payout annotations and the
    terminal status flip.

    Raises:
        AlreadySettled: If the pool is already resolved
        JournalError: If the result does not cover exactly the pool's stakes
    """
    if not pool.is_active:
        raise AlreadySettled(f"Pool {pool.pool_id} already settled")

    by_id = {p.stake_id: p for p in result.payouts}
    if set(by_id) != {s.stake_id for s in stakes}:
        raise JournalError(f"Settlement for {pool.pool_id} does not match its stakes")

    for s in stakes:
        p = by_id[s.stake_id]
        s.annotate(p.payout, p.outcome)

    pool.status = Status.RESOLVED
    pool.outcome = result.outcome
    pool.resolved_at_utc = result.settled_at_utc
    pool.protocol_fee = result.protocol_fee


class SettlementEngine:
    """
    Settles pools held by a Ledger, at most once each.

    The resolved-check, payout computation, journal write and status flip
    all happen under the pool's lock.
    """

    def __init__(self, ledger: Ledger, fee_bps: int = DEFAULT_FEE_BPS, journal: Optional[Journal] = None):
        self.ledger = ledger
        self.fee_bps = fee_bps
        self.journal = journal

    def settle(self, pool_id: str, outcome: Outcome) -> SettlementResult:
        """
        Resolve a pool and pay its winning side.

        Args:
            pool_id: Pool to settle
            outcome: correct or incorrect

        Returns:
            SettlementResult

        Raises:
            AlreadySettled: If the pool is already resolved
            EmptyPool: If neither side has stake
            InvalidRecord: If outcome is not a valid tag
            UnknownPool: If the pool does not exist
        """
        outcome = coerce_enum(Outcome, outcome, "outcome")

        with self.ledger.locked(pool_id) as (pool, stakes):
            if not pool.is_active:
                raise AlreadySettled(f"Pool {pool_id} already settled as {pool.outcome.value}")

            result = compute_settlement(pool_id, stakes, outcome, self.fee_bps)

            if self.journal is not None:
                self.journal.append("settlement", result.to_record())

            apply_settlement(pool, stakes, result)

        if result.degenerate:
            logger.warning(
                f"Degenerate resolution of {pool_id}: no stake on winning side "
                f"{result.winning_side.value}, {result.reward_pool} sent to protocol sink"
            )
        logger.info(
            f"Settled {pool_id} as {outcome.value}: total={result.total_staked} "
            f"fee={result.protocol_fee} paid={result.total_paid} residual={result.residual}"
        )

        self.ledger.notify(pool_id)
        return result

    def preview_payout(self, pool_id: str, position: Position, amount: int) -> int:
        """
        Payout a new stake would receive if its side wins, assuming no
        further stakes arrive. Read-only.

        Raises:
            InvalidAmount: If amount fails intake rules
            PoolClosed: If the pool is not active
        """
        position = coerce_enum(Position, position, "position")
        self.ledger.validate_amount(amount)
        pool = self.ledger.get_pool(pool_id)
        if not pool.is_active:
            raise PoolClosed(f"Pool {pool_id} is {pool.status.value}")

        total = pool.total_staked + amount
        reward_pool = total - protocol_fee(total, self.fee_bps)
        side_total = pool.side_total(position) + amount
        return amount + (reward_pool - side_total) * amount // side_total

    def apply_record(self, record: Dict[str, Any]) -> SettlementResult:
        """Replay a journaled settlement without recomputing it."""
        result = SettlementResult.from_record(record)
        with self.ledger.locked(result.pool_id) as (pool, stakes):
            apply_settlement(pool, stakes, result)
        return result
