"""
Report generation for analysts, settlements and market status.

Generates markdown tables and JSON-ready summaries from engine state.
Nothing here mutates state.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from . import aggregator
from .amounts import format_units
from .models import Pool, SettlementResult
from .reputation import TIER_BANDS, TIER_ORDER, ReputationRecord, Tier

SORT_KEYS = ("accuracy", "total_pools", "recent")
POOL_SORT_KEYS = ("quality", "stake", "recent")


def sort_analysts(records: List[ReputationRecord], sort_by: str = "accuracy") -> List[ReputationRecord]:
    """
    Order analysts for a leaderboard.

    Args:
        records: Reputation records
        sort_by: "accuracy" (tier, then accuracy, then volume),
            "total_pools", or "recent" (newest member first)

    Returns:
        New sorted list

    Raises:
        ValueError: If sort_by is unknown
    """
    if sort_by == "accuracy":
        key = lambda r: (-TIER_ORDER[r.tier], -r.accuracy, -r.total_pools, r.user)
    elif sort_by == "total_pools":
        key = lambda r: (-r.total_pools, -r.accuracy, r.user)
    elif sort_by == "recent":
        return sorted(records, key=lambda r: (r.member_since_utc or "", r.user), reverse=True)
    else:
        raise ValueError(f"Unknown sort key '{sort_by}'. Valid: {SORT_KEYS}")
    return sorted(records, key=key)


def sort_pools(
    pools: List[Pool],
    sort_by: str = "quality",
    records: Optional[Dict[str, ReputationRecord]] = None
) -> List[Pool]:
    """
    Order pools for display, best first.

    Args:
        pools: Pools to order
        sort_by: "quality" (see aggregator.quality_score), "stake"
            (total staked) or "recent" (newest first)
        records: Reputation records by user, used for creator accuracy

    Returns:
        New sorted list; ties keep their input order

    Raises:
        ValueError: If sort_by is unknown
    """
    records = records or {}
    if sort_by == "quality":
        return sorted(pools, key=lambda p: aggregator.quality_score(p, records.get(p.creator)), reverse=True)
    if sort_by == "stake":
        return sorted(pools, key=lambda p: p.total_staked, reverse=True)
    if sort_by == "recent":
        return sorted(pools, key=lambda p: p.created_at_utc, reverse=True)
    raise ValueError(f"Unknown sort key '{sort_by}'. Valid: {POOL_SORT_KEYS}")


def filter_analysts(
    records: List[ReputationRecord],
    tier: Optional[str] = None,
    category: Optional[str] = None
) -> List[ReputationRecord]:
    """Keep analysts in a tier and/or with a category among their specialties."""
    result = records
    if tier:
        wanted = Tier(tier)
        result = [r for r in result if r.tier is wanted]
    if category:
        result = [r for r in result if category in r.specialties]
    return result


def global_stats(records: List[ReputationRecord]) -> Dict[str, Any]:
    """
    Aggregate statistics across analysts.

    Returns:
        Dictionary with total_analysts, avg_accuracy, total_pools and
        tier_distribution (every tier present, zero if empty)
    """
    distribution = {tier.value: 0 for _, tier in TIER_BANDS}
    for r in records:
        distribution[r.tier.value] += 1

    return {
        "total_analysts": len(records),
        "avg_accuracy": round(sum(r.accuracy for r in records) / len(records), 2) if records else 0.0,
        "total_pools": sum(r.total_pools for r in records),
        "tier_distribution": distribution,
    }


def format_leaderboard_table(records: List[ReputationRecord]) -> str:
    """
    Format analysts as a markdown table, in the given order.

    Returns:
        Markdown table string
    """
    if not records:
        return "*No entries*"

    lines = [
        "| # | Analyst | Tier | Accuracy | Correct/Total | Streak (best) | Specialty |",
        "|---|---------|------|----------|---------------|---------------|-----------|",
    ]
    for rank, r in enumerate(records, 1):
        lines.append(
            f"| {rank} | {r.user} | {r.tier.value} | {r.accuracy}% | "
            f"{r.correct_pools}/{r.total_pools} | {r.current_streak} ({r.best_streak}) | "
            f"{r.primary_specialty or '-'} |"
        )
    return "\n".join(lines)


def generate_leaderboard(
    records: List[ReputationRecord],
    sort_by: str = "accuracy",
    tier: Optional[str] = None,
    category: Optional[str] = None,
    limit: Optional[int] = None
) -> str:
    """
    Generate leaderboard markdown.

    Args:
        records: Reputation records
        sort_by: See sort_analysts
        tier: Optional tier filter
        category: Optional specialty filter
        limit: Optional maximum rows

    Returns:
        Markdown string with a header, the table and tier distribution
    """
    if not records:
        return "## Analyst Leaderboard\n\n*No data available*\n"

    selected = sort_analysts(filter_analysts(records, tier, category), sort_by)
    if limit is not None:
        selected = selected[:limit]

    stats = global_stats(records)
    lines = ["## Analyst Leaderboard", ""]
    lines.append(format_leaderboard_table(selected))
    lines.append("")
    lines.append(
        f"*{stats['total_analysts']} analysts, {stats['total_pools']} resolved pools, "
        f"average accuracy {stats['avg_accuracy']}%*"
    )
    lines.append("")
    lines.append("### Tier Distribution")
    lines.append("")
    for name, count in stats["tier_distribution"].items():
        lines.append(f"- **{name}**: {count}")
    lines.append("")
    return "\n".join(lines)


def format_settlement_table(result: SettlementResult, decimals: int = 6) -> str:
    """
    Format a pool settlement as markdown.

    Args:
        result: Settlement to render
        decimals: Minor-unit decimals for amount formatting

    Returns:
        Markdown string with a summary line and one row per stake
    """
    fmt = lambda units: format_units(units, decimals)

    lines = [
        f"### Settlement {result.pool_id}: {result.outcome.value}",
        "",
        f"- Winning side: {result.winning_side.value}",
        f"- Total staked: {fmt(result.total_staked)}",
        f"- Protocol fee: {fmt(result.protocol_fee)}",
        f"- Reward pool: {fmt(result.reward_pool)}",
        f"- Rounding residual: {fmt(result.residual)}",
    ]
    if result.degenerate:
        lines.append("- **Degenerate**: no stake on the winning side, reward pool sent to protocol")
    lines.append("")
    lines.append("| Stake | Staker | Side | Amount | Payout | Result |")
    lines.append("|-------|--------|------|--------|--------|--------|")
    for p in result.payouts:
        lines.append(
            f"| {p.stake_id} | {p.staker} | {p.position.value} | {fmt(p.amount)} | "
            f"{fmt(p.payout)} | {p.outcome.value} |"
        )
    return "\n".join(lines)


def generate_status_report(market) -> Dict[str, Any]:
    """
    Generate status summary for CLI output.

    Args:
        market: Market instance

    Returns:
        Status dictionary
    """
    news = market.news.list_news()
    pools = market.ledger.all_pools()
    resolved = [p for p in pools if not p.is_active]

    fees = 0
    sunk = 0
    stake_count = 0
    for pool in pools:
        stakes = market.ledger.stakes_for(pool.pool_id)
        stake_count += len(stakes)
        if not pool.is_active:
            # Fee charged at settlement, not the current rate
            fee = pool.protocol_fee or 0
            paid = sum(s.payout or 0 for s in stakes)
            fees += fee
            # Degenerate pools send their whole reward pool to the sink
            sunk += pool.total_staked - paid - fee

    return {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "total_news": len(news),
        "active_news": sum(1 for n in news if n.is_active),
        "total_pools": len(pools),
        "active_pools": len(pools) - len(resolved),
        "resolved_pools": len(resolved),
        "total_stakes": stake_count,
        "total_value_staked": sum(p.total_staked for p in pools),
        "protocol_fees": fees,
        "unclaimed_rewards": sunk,
        "analysts": len(market.reputation.all_records()),
    }
