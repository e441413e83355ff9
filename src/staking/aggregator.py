"""
Read-side rollups over ledger state.

News totals are recomputed from scratch on every ledger change; pool
counts are small enough that no incremental bookkeeping is kept.
"""

from typing import Any, Dict, List, Optional

from .models import NewsItem, Pool, PoolSide, PoolStake, Position, StakeOutcome
from .reputation import ReputationRecord, accuracy_pct

# Inclusive lower bounds, highest first
QUALITY_BADGES = [
    (80, "Excellent"),
    (60, "Good"),
    (40, "Decent"),
    (0, "Basic"),
]


def recompute(news: NewsItem, pools: List[Pool]) -> NewsItem:
    """
    Set a news item's derived totals from its pools.

    Pools of every status count. Pools that reference another news item
    are ignored.

    Args:
        news: News item to update in place
        pools: Candidate pools

    Returns:
        The same news item
    """
    own = [p for p in pools if p.news_id == news.news_id]
    news.total_staked = sum(p.total_staked for p in own)
    news.total_pools = len(own)
    return news


def news_stats(news_id: str, pools: List[Pool]) -> Dict[str, Any]:
    """Pool counts by declared position, and total value staked, for one news item."""
    own = [p for p in pools if p.news_id == news_id]
    return {
        "total_pools": len(own),
        "yes_pools": sum(1 for p in own if p.position is PoolSide.YES),
        "no_pools": sum(1 for p in own if p.position is PoolSide.NO),
        "active_pools": sum(1 for p in own if p.is_active),
        "total_staked": sum(p.total_staked for p in own),
    }


def pool_stats(pool: Pool, stakes: List[PoolStake]) -> Dict[str, Any]:
    """
    Side split of a pool.

    Percentages are of total value staked; staker counts are distinct
    identities per side.
    """
    total = pool.total_staked
    agree_pct = round(100 * pool.agree_stakes / total, 2) if total > 0 else 0.0
    disagree_pct = round(100 * pool.disagree_stakes / total, 2) if total > 0 else 0.0

    agree = {s.staker for s in stakes if s.position is Position.AGREE}
    disagree = {s.staker for s in stakes if s.position is Position.DISAGREE}

    return {
        "agree_percentage": agree_pct,
        "disagree_percentage": disagree_pct,
        "total_stakers": len(agree | disagree),
        "agree_stakers": len(agree),
        "disagree_stakers": len(disagree),
    }


def staking_stats(stakes: List[PoolStake]) -> Dict[str, Any]:
    """
    Win/loss and earnings summary over a set of stakes.

    Earnings are payout minus amount for settled stakes; active stakes
    count toward total_staked only.

    Returns:
        Dictionary with:
        - total_stakes, won_stakes, lost_stakes, active_stakes
        - win_rate: won / settled as an integer percentage
        - total_staked: Sum of all stake amounts
        - total_returned: Sum of payouts received
        - net_earnings: total_returned minus amounts of settled stakes
    """
    won = [s for s in stakes if s.outcome is StakeOutcome.WON]
    lost = [s for s in stakes if s.outcome is StakeOutcome.LOST]
    settled = won + lost
    returned = sum(s.payout for s in settled)

    return {
        "total_stakes": len(stakes),
        "won_stakes": len(won),
        "lost_stakes": len(lost),
        "active_stakes": len(stakes) - len(settled),
        "win_rate": accuracy_pct(len(won), len(settled)),
        "total_staked": sum(s.amount for s in stakes),
        "total_returned": returned,
        "net_earnings": returned - sum(s.amount for s in settled),
    }


def quality_score(pool: Pool, creator_record: Optional[ReputationRecord] = None) -> int:
    """
    Score a pool's analysis from 0 to 100.

    Scoring breakdown:
    - Reasoning: 1 point per 10 characters, up to 40
    - Evidence links: 5 points each, up to 20
    - Creator accuracy: accuracy / 100 * 25, 0 without a record

    Computed in hundredths so the final rounding is half up and exact.

    Args:
        pool: Pool to score
        creator_record: Reputation of the pool's creator, if known

    Returns:
        Integer score, capped at 100
    """
    hundredths = min(len(pool.reasoning) * 10, 4000)
    hundredths += min(len(pool.evidence) * 500, 2000)
    if creator_record is not None:
        hundredths += creator_record.accuracy * 25
    return min((hundredths + 50) // 100, 100)


def quality_badge(score: int) -> str:
    """Badge label for a quality score."""
    for lower, label in QUALITY_BADGES:
        if score >= lower:
            return label
    return QUALITY_BADGES[-1][1]
