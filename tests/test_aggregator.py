"""
Tests for src/staking/aggregator.py - Read-side rollups.
"""

import pytest

from src.staking import aggregator
from src.staking.models import (
    NewsItem,
    Pool,
    PoolSide,
    PoolStake,
    Position,
    StakeOutcome,
    Status,
)
from src.staking.reputation import ReputationRecord

TS = "2026-01-01T00:00:00+00:00"


def make_news(news_id="news_aaaaaaaaaaaa"):
    return NewsItem(
        news_id=news_id,
        title="Rate cut in March",
        description="",
        category="economy",
        resolution_criteria="Central bank announcement",
        creator="ed",
        end_time_utc=TS,
        created_at_utc=TS,
    )


def make_pool(pool_id, news_id="news_aaaaaaaaaaaa", position=PoolSide.YES, agree=0, disagree=0, status=Status.ACTIVE):
    return Pool(
        pool_id=pool_id,
        news_id=news_id,
        creator="alice",
        position=position,
        creator_stake=agree,
        created_at_utc=TS,
        agree_stakes=agree,
        disagree_stakes=disagree,
        status=status,
    )


def make_stake(staker, position, amount, payout=None, outcome=None):
    return PoolStake(
        stake_id=f"stk_{staker}",
        pool_id="pool_1",
        staker=staker,
        position=position,
        amount=amount,
        created_at_utc=TS,
        payout=payout,
        outcome=outcome,
    )


class TestRecompute:
    """Tests for recompute function."""

    def test_sums_own_pools(self):
        """Test totals include every pool of the item regardless of status."""
        news = make_news()
        pools = [
            make_pool("pool_1", agree=100, disagree=50),
            make_pool("pool_2", agree=30, status=Status.RESOLVED),
            make_pool("pool_3", news_id="news_bbbbbbbbbbbb", agree=999),
        ]

        aggregator.recompute(news, pools)

        assert news.total_staked == 180
        assert news.total_pools == 2

    def test_no_pools(self):
        """Test an item without pools has zero totals."""
        news = make_news()
        news.total_staked = 40
        news.total_pools = 1

        aggregator.recompute(news, [])

        assert news.total_staked == 0
        assert news.total_pools == 0


class TestNewsStats:
    """Tests for news_stats function."""

    def test_position_split(self):
        """Test YES/NO pool counts."""
        pools = [
            make_pool("pool_1", position=PoolSide.YES, agree=10),
            make_pool("pool_2", position=PoolSide.NO, agree=20, status=Status.RESOLVED),
            make_pool("pool_3", position=PoolSide.YES, agree=30),
        ]

        stats = aggregator.news_stats("news_aaaaaaaaaaaa", pools)

        assert stats["total_pools"] == 3
        assert stats["yes_pools"] == 2
        assert stats["no_pools"] == 1
        assert stats["active_pools"] == 2
        assert stats["total_staked"] == 60


class TestPoolStats:
    """Tests for pool_stats function."""

    def test_percentages_and_stakers(self):
        """Test side percentages and distinct staker counts."""
        pool = make_pool("pool_1", agree=150, disagree=50)
        stakes = [
            make_stake("alice", Position.AGREE, 100),
            make_stake("bob", Position.AGREE, 50),
            make_stake("carol", Position.DISAGREE, 25),
            make_stake("carol", Position.DISAGREE, 25),
        ]

        stats = aggregator.pool_stats(pool, stakes)

        assert stats["agree_percentage"] == 75.0
        assert stats["disagree_percentage"] == 25.0
        assert stats["agree_stakers"] == 2
        assert stats["disagree_stakers"] == 1
        assert stats["total_stakers"] == 3

    def test_empty_pool(self):
        """Test an empty pool reports zero percentages."""
        stats = aggregator.pool_stats(make_pool("pool_1"), [])
        assert stats["agree_percentage"] == 0.0
        assert stats["total_stakers"] == 0


class TestStakingStats:
    """Tests for staking_stats function."""

    def test_mixed_outcomes(self):
        """Test counts, win rate and earnings across settled and active stakes."""
        stakes = [
            make_stake("a", Position.AGREE, 100, payout=196, outcome=StakeOutcome.WON),
            make_stake("b", Position.DISAGREE, 150, payout=0, outcome=StakeOutcome.LOST),
            make_stake("c", Position.AGREE, 50, payout=98, outcome=StakeOutcome.WON),
            make_stake("d", Position.AGREE, 40),
        ]

        stats = aggregator.staking_stats(stakes)

        assert stats["total_stakes"] == 4
        assert stats["won_stakes"] == 2
        assert stats["lost_stakes"] == 1
        assert stats["active_stakes"] == 1
        assert stats["win_rate"] == 67
        assert stats["total_staked"] == 340
        assert stats["total_returned"] == 294
        assert stats["net_earnings"] == -6

    def test_no_stakes(self):
        """Test empty input."""
        stats = aggregator.staking_stats([])
        assert stats["total_stakes"] == 0
        assert stats["win_rate"] == 0
        assert stats["net_earnings"] == 0


class TestQualityScore:
    """Tests for quality_score and quality_badge."""

    def quality_pool(self, reasoning="", evidence=None):
        pool = make_pool("pool_1", agree=10)
        pool.reasoning = reasoning
        pool.evidence = evidence or []
        return pool

    def test_bare_pool(self):
        """Test that a pool without analysis or creator record scores zero."""
        assert aggregator.quality_score(self.quality_pool()) == 0

    def test_components_are_capped(self):
        """Test that reasoning caps at 40 and evidence at 20."""
        pool = self.quality_pool(reasoning="x" * 5000, evidence=["https://a.example"] * 10)
        assert aggregator.quality_score(pool) == 60

    def test_creator_accuracy(self):
        """Test creator accuracy adds up to 25 points."""
        pool = self.quality_pool(reasoning="x" * 400, evidence=["https://a.example"] * 4)
        record = ReputationRecord(user="alice", total_pools=4, correct_pools=3, wrong_pools=1)
        # 40 + 20 + 75% of 25
        assert aggregator.quality_score(pool, record) == 79

    def test_rounds_half_up(self):
        """Test fractional points round half up."""
        assert aggregator.quality_score(self.quality_pool(reasoning="x" * 15)) == 2
        assert aggregator.quality_score(self.quality_pool(reasoning="x" * 14)) == 1

    def test_maximum(self):
        """Test a perfect creator with full analysis reaches 85."""
        pool = self.quality_pool(reasoning="x" * 400, evidence=["https://a.example"] * 4)
        record = ReputationRecord(user="alice", total_pools=1, correct_pools=1)
        assert aggregator.quality_score(pool, record) == 85

    @pytest.mark.parametrize("score,label", [
        (0, "Basic"),
        (39, "Basic"),
        (40, "Decent"),
        (60, "Good"),
        (79, "Good"),
        (80, "Excellent"),
        (100, "Excellent"),
    ])
    def test_badges(self, score, label):
        """Test badge band edges."""
        assert aggregator.quality_badge(score) == label
