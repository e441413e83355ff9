"""
Command-line interface for the dual-staking engine.

Every command loads market state by replaying the journal directory,
applies at most one change, and exits. Amounts are entered as decimal
strings (e.g. "25" or "12.5") and converted to minor units.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from ..config.settings import ConfigError, EngineConfig, load_engine_config
from ..logging_config import configure_logging
from . import aggregator
from . import reporter
from .amounts import format_units, to_units
from .errors import StakingError
from .market import Market
from .models import Outcome, PoolSide, Position, Status


def _load(args: argparse.Namespace) -> Market:
    config = load_engine_config()
    journal_dir = Path(args.journal_dir) if args.journal_dir else Path(config.journal_dir)
    return Market.load(journal_dir, config=config)


def _fmt(units: int, config: EngineConfig) -> str:
    return format_units(units, config.decimals)


def cmd_news_create(args: argparse.Namespace) -> int:
    """Create a news item."""
    try:
        market = _load(args)
        news = market.create_news(
            title=args.title,
            description=args.description,
            category=args.category,
            end_time_utc=args.end_time,
            resolution_criteria=args.criteria,
            creator=args.creator,
        )
        print(f"Created {news.news_id}: {news.title}")
        print(f"  Category: {news.category}")
        print(f"  Ends:     {news.end_time_utc}")
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_news_list(args: argparse.Namespace) -> int:
    """List news items."""
    try:
        market = _load(args)
        items = market.news.list_news(category=args.category, status=args.status)

        if not items:
            print("No news items")
            return 0

        pools = market.ledger.all_pools()
        for n in sorted(items, key=lambda n: n.created_at_utc):
            stats = aggregator.news_stats(n.news_id, pools)
            outcome = f" -> {n.outcome.value}" if n.outcome else ""
            print(f"{n.news_id} [{n.category}] {n.status.value}{outcome}: {n.title}")
            print(
                f"  pools={stats['total_pools']} (YES {stats['yes_pools']} / NO {stats['no_pools']}) "
                f"staked={_fmt(n.total_staked, market.config)}"
            )
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_pool_open(args: argparse.Namespace) -> int:
    """Open an analysis pool with the creator's stake."""
    try:
        market = _load(args)
        pool = market.open_pool(
            news_id=args.news_id,
            creator=args.creator,
            position=PoolSide(args.position),
            creator_stake=to_units(args.stake, market.config.decimals),
            reasoning=args.reasoning,
            evidence=args.evidence,
        )
        print(f"Opened {pool.pool_id} on {pool.news_id}: {pool.position.value}")
        print(f"  Creator stake: {_fmt(pool.creator_stake, market.config)}")
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_pool_list(args: argparse.Namespace) -> int:
    """List pools on a news item, best first."""
    try:
        market = _load(args)
        pools = market.ranked_pools(args.news_id, sort_by=args.sort)

        if not pools:
            print(f"No pools on {args.news_id}")
            return 0

        for pool in pools:
            record = market.reputation.get(pool.creator)
            score = aggregator.quality_score(pool, record)
            print(
                f"{pool.pool_id} by {pool.creator}: {pool.position.value} ({pool.status.value}) "
                f"quality={score} [{aggregator.quality_badge(score)}] "
                f"staked={_fmt(pool.total_staked, market.config)}"
            )
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_pool_show(args: argparse.Namespace) -> int:
    """Show a pool with its stakes."""
    try:
        market = _load(args)
        pool = market.ledger.get_pool(args.pool_id)
        stakes = market.ledger.stakes_for(args.pool_id)

        if args.json:
            print(json.dumps({
                "pool": pool.to_dict(),
                "stats": aggregator.pool_stats(pool, stakes),
                "stakes": [s.to_dict() for s in stakes],
            }, indent=2))
            return 0

        stats = aggregator.pool_stats(pool, stakes)
        print(f"{pool.pool_id} by {pool.creator}: {pool.position.value} on {pool.news_id} ({pool.status.value})")
        print(f"  Agree:    {_fmt(pool.agree_stakes, market.config)} ({stats['agree_percentage']}%)")
        print(f"  Disagree: {_fmt(pool.disagree_stakes, market.config)} ({stats['disagree_percentage']}%)")
        print(f"  Total:    {_fmt(pool.total_staked, market.config)}")
        if args.verbose:
            for s in stakes:
                payout = f" -> {_fmt(s.payout, market.config)}" if s.is_settled else ""
                print(f"    {s.stake_id} {s.staker} {s.position.value} {_fmt(s.amount, market.config)}{payout}")
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_stake(args: argparse.Namespace) -> int:
    """Stake on one side of a pool."""
    try:
        market = _load(args)
        stake = market.stake(
            pool_id=args.pool_id,
            staker=args.staker,
            position=Position(args.position),
            amount=to_units(args.amount, market.config.decimals),
        )
        print(f"Recorded {stake.stake_id}: {stake.staker} {stake.position.value} "
              f"{_fmt(stake.amount, market.config)} on {stake.pool_id}")
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_preview(args: argparse.Namespace) -> int:
    """Preview the payout of a prospective stake."""
    try:
        market = _load(args)
        amount = to_units(args.amount, market.config.decimals)
        payout = market.preview_payout(args.pool_id, Position(args.position), amount)
        print(f"Stake {_fmt(amount, market.config)} {args.position} on {args.pool_id}")
        print(f"  Payout if {args.position} wins: {_fmt(payout, market.config)}")
        print(f"  Profit:                {_fmt(payout - amount, market.config)}")
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_settle(args: argparse.Namespace) -> int:
    """Settle a single pool."""
    try:
        market = _load(args)
        result = market.settle_pool(args.pool_id, Outcome(args.outcome))
        print(reporter.format_settlement_table(result, market.config.decimals))
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_resolve(args: argparse.Namespace) -> int:
    """Resolve a news item and settle its pools."""
    try:
        market = _load(args)
        resolution = market.resolve_news(
            news_id=args.news_id,
            outcome=PoolSide(args.outcome),
            resolved_by=args.resolved_by,
            resolution_source=args.source,
            resolution_notes=args.notes,
            emergency=args.emergency,
        )

        print(f"Resolved {args.news_id} as {args.outcome}: settled {len(resolution.settlements)} pool(s)")
        if resolution.degenerate_pools:
            print(f"  Degenerate: {', '.join(resolution.degenerate_pools)}")
        if args.verbose:
            for result in resolution.settlements:
                print()
                print(reporter.format_settlement_table(result, market.config.decimals))
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_reputation(args: argparse.Namespace) -> int:
    """Show a user's reputation and staking profile."""
    try:
        market = _load(args)
        profile = market.profile(args.user)

        if args.json:
            print(json.dumps(profile, indent=2))
            return 0

        rep = profile["reputation"]
        print(f"Analyst {args.user}")
        print("=" * 40)
        if rep is None:
            print("No resolved pools yet")
        else:
            print(f"Tier:        {rep['tier']}")
            print(f"Accuracy:    {rep['accuracy']}% ({rep['correct_pools']}/{rep['total_pools']})")
            print(f"Streak:      {rep['current_streak']} (best {rep['best_streak']})")
            print(f"Specialties: {', '.join(rep['specialties'])}")
        staking = profile["staking"]
        print(f"Pools created: {profile['pools_created']} ({profile['pools_active']} active)")
        print(f"Stakes:        {staking['total_stakes']} (won {staking['won_stakes']}, lost {staking['lost_stakes']})")
        print(f"Net earnings:  {_fmt(staking['net_earnings'] + profile['pool_earnings']['net_earnings'], market.config)}")
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_leaderboard(args: argparse.Namespace) -> int:
    """Print the analyst leaderboard."""
    try:
        market = _load(args)
        content = reporter.generate_leaderboard(
            market.reputation.all_records(),
            sort_by=args.sort,
            tier=args.tier,
            category=args.category,
            limit=args.limit,
        )

        if args.output:
            with open(args.output, 'w') as f:
                f.write(content)
            print(f"Leaderboard written to {args.output}")
        else:
            print(content)
        return 0

    except (StakingError, ConfigError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Show market status summary."""
    try:
        market = _load(args)
        status = reporter.generate_status_report(market)

        if args.json:
            print(json.dumps(status, indent=2))
            return 0

        print("Staking Market Status")
        print("=" * 40)
        print(f"News items:       {status['total_news']} ({status['active_news']} active)")
        print(f"Pools:            {status['total_pools']} ({status['active_pools']} active)")
        print(f"Stakes:           {status['total_stakes']}")
        print(f"Value staked:     {_fmt(status['total_value_staked'], market.config)}")
        print(f"Protocol fees:    {_fmt(status['protocol_fees'], market.config)}")
        print(f"Unclaimed:        {_fmt(status['unclaimed_rewards'], market.config)}")
        print(f"Analysts:         {status['analysts']}")
        return 0

    except (StakingError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="staking",
        description="Dual-staking settlement and reputation engine"
    )

    # Global options
    parser.add_argument(
        "--journal-dir",
        help="Path to journal directory (default: from config)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # news commands
    news_parser = subparsers.add_parser("news", help="Create or list news items")
    news_sub = news_parser.add_subparsers(dest="news_command")

    create_parser = news_sub.add_parser("create", help="Create a news item")
    create_parser.add_argument("--title", required=True)
    create_parser.add_argument("--description", default="")
    create_parser.add_argument("--category", required=True)
    create_parser.add_argument("--end-time", required=True, help="ISO 8601 UTC end time")
    create_parser.add_argument("--criteria", required=True, help="Resolution criteria")
    create_parser.add_argument("--creator", required=True)
    create_parser.set_defaults(func=cmd_news_create)

    list_parser = news_sub.add_parser("list", help="List news items")
    list_parser.add_argument("--category", help="Filter by category")
    list_parser.add_argument("--status", choices=[s.value for s in Status], help="Filter by status")
    list_parser.set_defaults(func=cmd_news_list)

    # pool commands
    pool_parser = subparsers.add_parser("pool", help="Open, list or show analysis pools")
    pool_sub = pool_parser.add_subparsers(dest="pool_command")

    open_parser = pool_sub.add_parser("open", help="Open a pool on a news item")
    open_parser.add_argument("--news-id", required=True)
    open_parser.add_argument("--creator", required=True)
    open_parser.add_argument("--position", required=True, choices=[s.value for s in PoolSide])
    open_parser.add_argument("--stake", required=True, help="Creator stake, e.g. 25")
    open_parser.add_argument("--reasoning", default="")
    open_parser.add_argument("--evidence", nargs="*", default=[], help="Supporting links")
    open_parser.set_defaults(func=cmd_pool_open)

    pool_list_parser = pool_sub.add_parser("list", help="List pools on a news item")
    pool_list_parser.add_argument("--news-id", required=True)
    pool_list_parser.add_argument("--sort", choices=list(reporter.POOL_SORT_KEYS), default="quality")
    pool_list_parser.set_defaults(func=cmd_pool_list)

    show_parser = pool_sub.add_parser("show", help="Show a pool")
    show_parser.add_argument("pool_id")
    show_parser.add_argument("--json", action="store_true", help="JSON output")
    show_parser.set_defaults(func=cmd_pool_show)

    # stake command
    stake_parser = subparsers.add_parser("stake", help="Stake on a pool")
    stake_parser.add_argument("pool_id")
    stake_parser.add_argument("--staker", required=True)
    stake_parser.add_argument("--position", required=True, choices=[p.value for p in Position])
    stake_parser.add_argument("--amount", required=True, help="Amount, e.g. 12.5")
    stake_parser.set_defaults(func=cmd_stake)

    # preview command
    preview_parser = subparsers.add_parser("preview", help="Preview payout for a prospective stake")
    preview_parser.add_argument("pool_id")
    preview_parser.add_argument("--position", required=True, choices=[p.value for p in Position])
    preview_parser.add_argument("--amount", required=True)
    preview_parser.set_defaults(func=cmd_preview)

    # settle command
    settle_parser = subparsers.add_parser("settle", help="Settle a single pool")
    settle_parser.add_argument("pool_id")
    settle_parser.add_argument("--outcome", required=True, choices=[o.value for o in Outcome])
    settle_parser.set_defaults(func=cmd_settle)

    # resolve command
    resolve_parser = subparsers.add_parser("resolve", help="Resolve a news item and settle its pools")
    resolve_parser.add_argument("news_id")
    resolve_parser.add_argument("--outcome", required=True, choices=[s.value for s in PoolSide])
    resolve_parser.add_argument("--resolved-by", required=True)
    resolve_parser.add_argument("--source", required=True, help="Resolution source")
    resolve_parser.add_argument("--notes", default="")
    resolve_parser.add_argument("--emergency", action="store_true",
                                help="Allow resolution before the end time")
    resolve_parser.set_defaults(func=cmd_resolve)

    # reputation command
    rep_parser = subparsers.add_parser("reputation", help="Show a user's reputation")
    rep_parser.add_argument("user")
    rep_parser.add_argument("--json", action="store_true", help="JSON output")
    rep_parser.set_defaults(func=cmd_reputation)

    # leaderboard command
    lb_parser = subparsers.add_parser("leaderboard", help="Show analyst leaderboard")
    lb_parser.add_argument("--sort", choices=list(reporter.SORT_KEYS), default="accuracy")
    lb_parser.add_argument("--tier", help="Filter by tier")
    lb_parser.add_argument("--category", help="Filter by specialty")
    lb_parser.add_argument("--limit", type=int)
    lb_parser.add_argument("--output", "-o", help="Output file (markdown)")
    lb_parser.set_defaults(func=cmd_leaderboard)

    # status command
    status_parser = subparsers.add_parser("status", help="Show market status")
    status_parser.add_argument("--json", action="store_true", help="JSON output")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    configure_logging(logging.INFO if args.verbose else logging.WARNING)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
