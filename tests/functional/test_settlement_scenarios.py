"""
test_settlement_scenarios.py - End-to-end settlement of single periods

Scenarios:
1. Five-match credit to the 5-match tier
2. Jackpot hit: 1000 reserve -> 900 to the winner, 100 reseed, 2% bonus
3. Every oracle read fails -> outcome {0..5}, period still finalises
4. Two selections of one participant win independently
5. Deferred start for enrollment inside the pick lock
6. Expiry removal during matching
7. Batched payouts and even splits with remainder
8. Solvency circuit breaker and yield capture
"""

import pytest
from datetime import timedelta
from decimal import Decimal, ROUND_DOWN

from rankpool import (
    GameParameters,
    InMemoryCustody,
    SettlementKeeper,
    SettlementPhase,
    SolvencyViolation,
    TIER_BPS,
    mask_from_indices,
)

from tests.helpers import START, WEEK, ENDPOINTS, settle, publish_outcome, assert_conserved, bucket_sum


def run_matching(engine, now):
    """Resolve and match to DISTRIBUTING; return the progress record."""
    engine.resolve_period(now)
    engine.advance_matching(now)
    while engine.settlement == SettlementPhase.MATCHING:
        engine.advance_matching(now)
    return engine.progress


class TestFiveMatch:

    def test_credited_to_five_match_tier(self, engine):
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=4, now=START)
        outcome = settle(engine, [0, 1, 2, 3, 4, 6], START + WEEK)

        assert outcome.ranking == (0, 1, 2, 3, 4, 6)
        assert outcome.mask == mask_from_indices([0, 1, 2, 3, 4, 6])
        assert outcome.winners[5] == [("alice", 0)]
        assert outcome.winners[6] == []

        # pot 32: pool 3.2 -> jackpot 0.64, tiers 1.12 / 0.8 / 0.64, carry 28.8
        assert engine.unclaimed("alice") == Decimal("1.12")
        assert engine.accountant.jackpot == Decimal("0.32")
        assert engine.accountant.pot == Decimal("30.56")
        assert engine.accountant.treasury == Decimal("8")
        assert engine.period == 2
        assert engine.settlement == SettlementPhase.IDLE
        assert bucket_sum(engine) == Decimal("40")
        assert_conserved(engine)

    def test_history_is_kept(self, engine):
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=4, now=START)
        settle(engine, [0, 1, 2, 3, 4, 6], START + WEEK)
        settle(engine, [10, 11, 12, 13, 14, 15], START + 2 * WEEK)
        assert engine.outcome(1).ranking == (0, 1, 2, 3, 4, 6)
        assert engine.outcome(2).ranking == (10, 11, 12, 13, 14, 15)
        assert engine.outcome(2).winner_count(5) == 0
        assert engine.outcome(3) is None


class TestJackpot:

    def test_hit_pays_ninety_percent_and_reseeds(self, make_engine):
        # intake 62500 -> pot 50000 -> pool 5000 -> jackpot contribution 1000
        engine = make_engine(GameParameters(entry_price=Decimal("62500")))
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=1, now=START)
        now = START + WEEK
        publish_outcome(engine, [0, 1, 2, 3, 4, 5], now)
        run_matching(engine, now)
        assert engine.accountant.jackpot == Decimal("1000")
        assert engine.progress.allocation.period_pool == Decimal("5000")

        engine.advance_distribution(now)
        outcome = engine.outcome(1)
        assert outcome.winners[6] == [("alice", 0)]
        assert engine.unclaimed("alice") == Decimal("900")
        assert engine.accountant.jackpot == Decimal("0")

        bonus = [tx for tx in engine.accountant.ledger.transaction_log
                 if tx.origin.event_type == "JACKPOT_BONUS"]
        assert len(bonus) == 1
        carved = {move.dest: move.quantity for move in bonus[0].moves}
        assert sum(carved.values()) == Decimal("100")
        assert carved["tier_5"] == Decimal("43.75")
        assert carved["tier_4"] == Decimal("31.25")
        assert carved["tier_3"] == Decimal("25")

        # carry 45000 + reseed 100 - bonus 100 + unclaimed tier pools 4100
        assert engine.accountant.pot == Decimal("49100")
        assert engine.accountant.treasury == Decimal("12500")
        assert engine.settlement == SettlementPhase.IDLE
        assert_conserved(engine)

    def test_hit_split_between_winners(self, make_engine):
        engine = make_engine(GameParameters(entry_price=Decimal("31250")))
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=1, now=START)
        engine.enroll("bob", [[5, 4, 3, 2, 1, 0]], periods=1, now=START)
        settle(engine, [0, 1, 2, 3, 4, 5], START + WEEK)
        assert engine.unclaimed("alice") == Decimal("450")
        assert engine.unclaimed("bob") == Decimal("450")
        assert_conserved(engine)

    def test_miss_recycles_half_the_contribution(self, engine):
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=1, now=START)
        settle(engine, [20, 21, 22, 23, 24, 25], START + WEEK)
        # pot 8 -> pool 0.8 -> contribution 0.16, half recycled
        assert engine.accountant.jackpot == Decimal("0.08")
        assert engine.accountant.pot == Decimal("7.92")
        assert_conserved(engine)

    def test_reserve_rolls_over(self, engine):
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=3, now=START)
        settle(engine, [20, 21, 22, 23, 24, 25], START + WEEK)
        first = engine.accountant.jackpot
        settle(engine, [20, 21, 22, 23, 24, 25], START + 2 * WEEK)
        assert engine.accountant.jackpot > first


class TestOracleFailure:

    def test_all_reads_fail(self, engine):
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=2, now=START)
        now = START + WEEK
        engine.oracle.fail(*ENDPOINTS)
        actions = SettlementKeeper(engine).step(now)

        outcome = engine.outcome(1)
        assert outcome.ranking == (0, 1, 2, 3, 4, 5)
        assert len(outcome.disqualified) == 42
        assert outcome.winners[6] == [("alice", 0)]
        assert actions[0] == "resolve_period"
        assert engine.period == 2
        assert engine.settlement == SettlementPhase.IDLE
        assert all(price is None for price in engine.start_prices)
        assert_conserved(engine)

    def test_asset_failing_at_start_sits_out(self, make_engine):
        from tests.helpers import flat_oracle
        oracle = flat_oracle(START)
        oracle.fail(ENDPOINTS[0])
        engine = make_engine(oracle=oracle)
        oracle.restore()
        outcome = settle(engine, [0, 1, 2, 3, 4, 5], START + WEEK)
        assert 0 not in outcome.ranking
        assert outcome.disqualified == (0,)


class TestSelections:

    def test_two_selections_win_independently(self, engine):
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5], [0, 1, 2, 3, 4, 6]], periods=1, now=START)
        outcome = settle(engine, [0, 1, 2, 3, 4, 6], START + WEEK)
        assert outcome.winners[5] == [("alice", 0)]
        assert outcome.winners[6] == [("alice", 1)]
        assert engine.unclaimed("alice") > 0
        assert_conserved(engine)

    def test_fewer_than_three_matches_wins_nothing(self, engine):
        engine.enroll("alice", [[0, 1, 10, 11, 12, 13]], periods=1, now=START)
        outcome = settle(engine, [0, 1, 2, 3, 4, 5], START + WEEK)
        assert all(outcome.winner_count(tier) == 0 for tier in (6, 5, 4, 3))
        assert engine.unclaimed("alice") == 0


class TestRegistryDuringMatching:

    def test_deferred_start(self, engine):
        engine.enroll("bob", [[0, 1, 2, 3, 4, 5]], periods=1, now=START + WEEK - timedelta(minutes=30))
        assert engine.registry.get("bob").start_period == 2

        now = START + WEEK
        publish_outcome(engine, [0, 1, 2, 3, 4, 5], now)
        progress = run_matching(engine, now)
        assert progress.deferred == 1
        assert progress.scored == 0
        engine.advance_distribution(now)
        assert engine.outcome(1).winner_count(6) == 0

        outcome = settle(engine, [0, 1, 2, 3, 4, 5], START + 2 * WEEK)
        assert outcome.winners[6] == [("bob", 0)]

    def test_expired_removed_during_matching(self, engine):
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=1, now=START)
        engine.enroll("bob", [[0, 1, 2, 3, 4, 5]], periods=2, now=START)
        settle(engine, [0, 1, 2, 3, 4, 6], START + WEEK)
        assert len(engine.registry) == 2

        now = START + 2 * WEEK
        publish_outcome(engine, [0, 1, 2, 3, 4, 6], now)
        progress = run_matching(engine, now)
        assert progress.removed == ["alice"]
        assert progress.scored == 1
        assert engine.registry.ids() == ["bob"]
        assert not engine.is_founder("alice")
        engine.registry.check_positions()
        engine.advance_distribution(now)
        assert engine.outcome(2).winners[5] == [("bob", 0)]


class TestBatching:

    def test_payout_batches(self, make_engine):
        engine = make_engine(GameParameters(payout_batch_size=2))
        for i in range(5):
            engine.enroll(f"p{i}", [[0, 1, 2, 3, 10, 11]], periods=1, now=START)
        now = START + WEEK
        publish_outcome(engine, [0, 1, 2, 3, 4, 5], now)
        run_matching(engine, now)
        assert engine.progress.outcome.winner_count(4) == 5

        results = []
        while engine.settlement == SettlementPhase.DISTRIBUTING:
            results.append(engine.advance_distribution(now))
        assert [r.credits for r in results] == [2, 2, 1]
        assert [r.done for r in results] == [False, False, True]
        assert len({engine.unclaimed(f"p{i}") for i in range(5)}) == 1
        assert_conserved(engine)

    def test_even_split_remainder_to_pot(self, engine):
        for i in range(3):
            engine.enroll(f"p{i}", [[0, 1, 2, 3, 4, 10]], periods=1, now=START)
        now = START + WEEK
        publish_outcome(engine, [0, 1, 2, 3, 4, 5], now)
        progress = run_matching(engine, now)
        tier_pool = progress.allocation.tier_pools[5]
        assert tier_pool == (Decimal("2.4") * TIER_BPS[5] / 10000)

        engine.advance_distribution(now)
        share = (tier_pool / 3).quantize(Decimal("0.000001"), rounding=ROUND_DOWN)
        for i in range(3):
            assert engine.unclaimed(f"p{i}") == share
        assert engine.accountant.pending_total() == 0
        assert_conserved(engine)

    def test_matching_batches(self, make_engine):
        engine = make_engine(GameParameters(match_batch_size=3))
        for i in range(7):
            engine.enroll(f"p{i}", [[0, 1, 2, 3, 4, 5]], periods=1, now=START)
        now = START + WEEK
        engine.resolve_period(now)
        first = engine.advance_matching(now)
        assert first.processed == 0 and not first.done
        processed = []
        while engine.settlement == SettlementPhase.MATCHING:
            processed.append(engine.advance_matching(now).processed)
        assert processed == [3, 3, 1]


class TestSolvency:

    def test_unabsorbable_loss_aborts_matching(self, make_engine):
        custody = InMemoryCustody()
        engine = make_engine(custody=custody)
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=4, now=START)
        settle(engine, [0, 1, 2, 3, 4, 6], START + WEEK)
        assert engine.unclaimed("alice") == Decimal("1.12")

        custody.accrue(Decimal("-39"))
        now = START + 2 * WEEK
        publish_outcome(engine, [0, 1, 2, 3, 4, 6], now)
        engine.resolve_period(now)
        before = engine.bucket_balances()
        log_size = len(engine.accountant.ledger.transaction_log)
        with pytest.raises(SolvencyViolation):
            engine.advance_matching(now)
        assert engine.bucket_balances() == before
        assert len(engine.accountant.ledger.transaction_log) == log_size
        assert engine.settlement == SettlementPhase.IDLE
        assert engine.pending_outcome is not None

        custody.accrue(Decimal("39"))
        engine.advance_matching(now)
        assert engine.settlement == SettlementPhase.MATCHING

    def test_yield_gain_captured_before_allocation(self, make_engine):
        custody = InMemoryCustody()
        engine = make_engine(custody=custody)
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=4, now=START)
        custody.accrue(Decimal("5"))
        now = START + WEEK
        publish_outcome(engine, [20, 21, 22, 23, 24, 25], now)
        progress = run_matching(engine, now)
        assert progress.allocation.pot_before == Decimal("37")
        assert engine.accountant.total_intake == Decimal("45")
        assert engine.solvency_report()['solvent']
        assert_conserved(engine)

    def test_absorbable_loss_reduces_pot(self, make_engine):
        custody = InMemoryCustody()
        engine = make_engine(custody=custody)
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=4, now=START)
        custody.accrue(Decimal("-2"))
        now = START + WEEK
        publish_outcome(engine, [20, 21, 22, 23, 24, 25], now)
        progress = run_matching(engine, now)
        assert progress.allocation.pot_before == Decimal("30")
        assert engine.accountant.treasury == Decimal("8")
        assert_conserved(engine)
