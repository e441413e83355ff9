"""
Tests for src/staking/settlement.py - Fee extraction and pro-rata payouts.
"""

import logging
import threading

import pytest

from src.staking.errors import AlreadySettled, EmptyPool, InvalidRecord, PoolClosed
from src.staking.ledger import Ledger
from src.staking.models import (
    Outcome,
    PoolSide,
    PoolStake,
    Position,
    StakeOutcome,
    Status,
)
from src.staking.settlement import (
    SettlementEngine,
    compute_settlement,
    protocol_fee,
)


@pytest.fixture
def ledger():
    """Ledger with a one-unit minimum stake."""
    return Ledger(min_stake=1)


@pytest.fixture
def engine(ledger):
    """Settlement engine with the default 2% fee."""
    return SettlementEngine(ledger)


def open_pool(ledger, creator_stake, *stakes):
    """Open a pool and add (staker, position, amount) stakes."""
    pool = ledger.open_pool("news_0123456789ab", "creator", PoolSide.YES, creator_stake)
    for staker, position, amount in stakes:
        ledger.record_stake(pool.pool_id, staker, position, amount)
    return pool.pool_id


def payouts_by_staker(result):
    return {p.staker: p.payout for p in result.payouts}


class TestProtocolFee:
    """Tests for protocol_fee function."""

    def test_two_percent(self):
        """Test the default fee."""
        assert protocol_fee(300) == 6

    def test_floors(self):
        """Test that the fee rounds down to a whole unit."""
        assert protocol_fee(110) == 2
        assert protocol_fee(49) == 0

    def test_custom_bps(self):
        """Test a non-default fee rate."""
        assert protocol_fee(1000, fee_bps=150) == 15


class TestSettle:
    """Tests for SettlementEngine.settle."""

    def test_correct_pays_agree_side(self, ledger, engine):
        """Test a correct pool pays agree stakes pro-rata."""
        pool_id = open_pool(
            ledger, 100,
            ("bob", Position.AGREE, 50),
            ("carol", Position.DISAGREE, 150),
        )

        result = engine.settle(pool_id, Outcome.CORRECT)

        assert result.total_staked == 300
        assert result.protocol_fee == 6
        assert result.reward_pool == 294
        assert result.winning_total == 150
        assert result.losing_total == 150
        assert payouts_by_staker(result) == {"creator": 196, "bob": 98, "carol": 0}
        assert result.total_paid == 294
        assert result.residual == 0
        assert not result.degenerate

    def test_incorrect_pays_disagree_side(self, ledger, engine):
        """Test a lone disagree stake takes the whole reward pool."""
        pool_id = open_pool(ledger, 100, ("dave", Position.DISAGREE, 10))

        result = engine.settle(pool_id, Outcome.INCORRECT)

        assert result.winning_side is Position.DISAGREE
        assert result.protocol_fee == 2
        assert payouts_by_staker(result) == {"creator": 0, "dave": 108}
        assert result.payout_for(ledger.stakes_for(pool_id)[0].stake_id).outcome is StakeOutcome.LOST

    def test_pool_and_stakes_annotated(self, ledger, engine):
        """Test that settlement flips status and annotates every stake."""
        pool_id = open_pool(ledger, 100, ("carol", Position.DISAGREE, 150))

        engine.settle(pool_id, Outcome.CORRECT)

        pool = ledger.get_pool(pool_id)
        assert pool.status is Status.RESOLVED
        assert pool.outcome is Outcome.CORRECT
        assert pool.resolved_at_utc is not None
        stakes = ledger.stakes_for(pool_id)
        assert [s.outcome for s in stakes] == [StakeOutcome.WON, StakeOutcome.LOST]
        assert stakes[0].payout == 245

    def test_residual_goes_to_largest_winner(self, ledger, engine):
        """Test that the rounding remainder is added to the largest winning stake."""
        pool_id = open_pool(
            ledger, 10,
            ("bob", Position.AGREE, 25),
            ("carol", Position.AGREE, 7),
            ("dave", Position.DISAGREE, 58),
        )

        result = engine.settle(pool_id, Outcome.CORRECT)

        assert result.residual == 1
        assert payouts_by_staker(result) == {"creator": 23, "bob": 59, "carol": 16, "dave": 0}
        assert result.total_paid == result.reward_pool == 98

    def test_residual_tie_goes_to_earliest(self, ledger, engine):
        """Test that among equal largest stakes the earliest gets the remainder."""
        pool_id = open_pool(
            ledger, 100,
            ("bob", Position.AGREE, 100),
            ("carol", Position.AGREE, 100),
            ("dave", Position.DISAGREE, 100),
        )

        result = engine.settle(pool_id, Outcome.CORRECT)

        assert result.residual == 2
        assert payouts_by_staker(result) == {"creator": 132, "bob": 130, "carol": 130, "dave": 0}

    def test_equal_winning_stakes_equal_shares(self, ledger, engine):
        """Test that equal winning stakes receive equal payouts when nothing is left over."""
        pool_id = open_pool(
            ledger, 50,
            ("bob", Position.AGREE, 50),
            ("carol", Position.DISAGREE, 50),
            ("dave", Position.DISAGREE, 50),
        )

        result = engine.settle(pool_id, Outcome.INCORRECT)

        payouts = payouts_by_staker(result)
        assert payouts["carol"] == payouts["dave"] == 98
        assert result.total_paid == 196

    def test_losing_side_smaller_than_fee(self, ledger, engine):
        """Test that winners absorb the fee when the losing side cannot cover it."""
        pool_id = open_pool(ledger, 1000, ("bob", Position.DISAGREE, 1))

        result = engine.settle(pool_id, Outcome.CORRECT)

        assert result.protocol_fee == 20
        assert payouts_by_staker(result) == {"creator": 981, "bob": 0}
        assert result.total_paid == result.reward_pool

    def test_conservation(self, ledger, engine):
        """Test payouts plus fee equal the total staked."""
        pool_id = open_pool(
            ledger, 37,
            ("a", Position.AGREE, 11),
            ("b", Position.AGREE, 3),
            ("c", Position.DISAGREE, 29),
            ("d", Position.DISAGREE, 1013),
        )

        result = engine.settle(pool_id, Outcome.CORRECT)

        assert result.total_paid + result.protocol_fee == result.total_staked
        assert 0 <= result.residual < len(result.winners())
        for p in result.winners():
            assert p.payout >= p.amount

    def test_zero_fee(self, ledger):
        """Test that with no fee the whole pool is returned to winners."""
        engine = SettlementEngine(ledger, fee_bps=0)
        pool_id = open_pool(ledger, 100, ("bob", Position.DISAGREE, 100))

        result = engine.settle(pool_id, Outcome.CORRECT)

        assert payouts_by_staker(result) == {"creator": 200, "bob": 0}

    def test_degenerate_resolution(self, ledger, engine, caplog):
        """Test that a pool with no winning stake pays nothing and warns."""
        pool_id = open_pool(ledger, 100, ("bob", Position.AGREE, 40))

        with caplog.at_level(logging.WARNING, logger="src.staking.settlement"):
            result = engine.settle(pool_id, Outcome.INCORRECT)

        assert result.degenerate
        assert result.winning_total == 0
        assert result.total_paid == 0
        assert all(p.outcome is StakeOutcome.LOST for p in result.payouts)
        assert ledger.get_pool(pool_id).status is Status.RESOLVED
        assert "Degenerate" in caplog.text

    def test_settle_twice(self, ledger, engine):
        """Test that a second settle fails and leaves the first result in place."""
        pool_id = open_pool(ledger, 100, ("carol", Position.DISAGREE, 150))
        engine.settle(pool_id, Outcome.CORRECT)

        with pytest.raises(AlreadySettled):
            engine.settle(pool_id, Outcome.INCORRECT)

        pool = ledger.get_pool(pool_id)
        assert pool.outcome is Outcome.CORRECT
        assert [s.payout for s in ledger.stakes_for(pool_id)] == [245, 0]

    def test_concurrent_settle_single_winner(self, ledger, engine):
        """Test that concurrent settles produce exactly one settlement."""
        pool_id = open_pool(ledger, 100, ("carol", Position.DISAGREE, 150))
        results, failures = [], []

        def worker():
            try:
                results.append(engine.settle(pool_id, Outcome.CORRECT))
            except AlreadySettled:
                failures.append(True)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1
        assert len(failures) == 7


class TestComputeSettlement:
    """Tests for the pure compute_settlement function."""

    def test_empty_pool(self):
        """Test that a pool with no stake cannot be settled."""
        with pytest.raises(EmptyPool):
            compute_settlement("pool_000000000000", [], Outcome.CORRECT)

    def test_inputs_not_modified(self):
        """Test that computing a settlement does not annotate stakes."""
        stakes = [
            PoolStake("stk_1", "pool_x", "a", Position.AGREE, 10, "2026-01-01T00:00:00+00:00"),
            PoolStake("stk_2", "pool_x", "b", Position.DISAGREE, 10, "2026-01-01T00:00:00+00:00"),
        ]

        result = compute_settlement("pool_x", stakes, Outcome.CORRECT)

        assert result.payout_for("stk_1").payout == 20
        assert all(not s.is_settled for s in stakes)

    def test_settled_at_passthrough(self):
        """Test that an explicit settlement timestamp is kept."""
        stakes = [PoolStake("stk_1", "pool_x", "a", Position.AGREE, 10, "2026-01-01T00:00:00+00:00")]
        result = compute_settlement("pool_x", stakes, Outcome.CORRECT, settled_at_utc="2026-02-01T00:00:00+00:00")
        assert result.settled_at_utc == "2026-02-01T00:00:00+00:00"

    def test_record_round_trip(self):
        """Test that journal records rebuild the same result."""
        from src.staking.models import SettlementResult

        stakes = [
            PoolStake("stk_1", "pool_x", "a", Position.AGREE, 70, "2026-01-01T00:00:00+00:00"),
            PoolStake("stk_2", "pool_x", "b", Position.DISAGREE, 30, "2026-01-01T00:00:00+00:00"),
        ]
        result = compute_settlement("pool_x", stakes, Outcome.INCORRECT)

        assert SettlementResult.from_record(result.to_record()) == result


class TestPreviewPayout:
    """Tests for SettlementEngine.preview_payout."""

    def test_matches_settlement(self, ledger, engine):
        """Test that a preview equals the payout if no further stakes arrive."""
        pool_id = open_pool(ledger, 100, ("carol", Position.DISAGREE, 150))

        preview = engine.preview_payout(pool_id, Position.AGREE, 50)
        ledger.record_stake(pool_id, "bob", Position.AGREE, 50)
        result = engine.settle(pool_id, Outcome.CORRECT)

        assert preview == 98
        assert payouts_by_staker(result)["bob"] == preview

    def test_read_only(self, ledger, engine):
        """Test that previews do not change the pool."""
        pool_id = open_pool(ledger, 100)

        engine.preview_payout(pool_id, Position.DISAGREE, 100)

        assert ledger.get_pool(pool_id).total_staked == 100
        assert len(ledger.stakes_for(pool_id)) == 1

    def test_resolved_pool(self, ledger, engine):
        """Test that previews on resolved pools fail."""
        pool_id = open_pool(ledger, 100, ("carol", Position.DISAGREE, 1))
        engine.settle(pool_id, Outcome.CORRECT)

        with pytest.raises(PoolClosed):
            engine.preview_payout(pool_id, Position.AGREE, 10)


class TestTagValidation:
    """Tests for outcome and position tags passed as strings."""

    def test_unknown_outcome_leaves_pool_active(self, ledger, engine):
        """Test that an unknown outcome raises InvalidRecord before settling."""
        pool_id = open_pool(ledger, 100, ("carol", Position.DISAGREE, 50))

        with pytest.raises(InvalidRecord, match="maybe"):
            engine.settle(pool_id, "maybe")

        assert ledger.get_pool(pool_id).status is Status.ACTIVE
        assert all(not s.is_settled for s in ledger.stakes_for(pool_id))

    def test_string_outcome_accepted(self, ledger, engine):
        """Test that a valid outcome string settles the pool."""
        pool_id = open_pool(ledger, 100, ("carol", Position.DISAGREE, 50))

        result = engine.settle(pool_id, "incorrect")
        assert result.outcome is Outcome.INCORRECT

    def test_unknown_preview_position(self, ledger, engine):
        """Test that previews reject unknown positions."""
        pool_id = open_pool(ledger, 100)

        with pytest.raises(InvalidRecord):
            engine.preview_payout(pool_id, "up", 10)


class TestChargedFee:
    """Tests for the fee recorded on a settled pool."""

    def test_pool_keeps_fee_charged(self, ledger):
        """Test that the pool records the fee taken at its settlement rate."""
        pool_id = open_pool(ledger, 100, ("carol", Position.DISAGREE, 200))
        assert ledger.get_pool(pool_id).protocol_fee is None

        SettlementEngine(ledger, fee_bps=500).settle(pool_id, Outcome.CORRECT)

        pool = ledger.get_pool(pool_id)
        assert pool.protocol_fee == 15
        assert pool.to_dict()["protocol_fee"] == 15
