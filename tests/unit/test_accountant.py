"""
test_accountant.py - Unit Tests for the Ledger & Solvency Accountant

Tests cover:
1. Intake split between pot and treasury
2. Transfers, zero-dropping and rejection of negatives
3. Even splits with floored shares
4. Yield capture: gain to pot, loss waterfall pot -> treasury
5. Solvency checks with proportional tolerance
6. Bucket-sum conservation
"""

import pytest
from decimal import Decimal

from rankpool import (
    LedgerError,
    OriginType,
    SolvencyViolation,
    POT_WALLET,
    TREASURY_WALLET,
    JACKPOT_WALLET,
    TIER_WALLETS,
    unclaimed_wallet,
)


class TestIntake:

    def test_split(self, accountant):
        pot, treasury = accountant.intake(Decimal("20"), 2000, "alice", period=1)
        assert (pot, treasury) == (Decimal("16"), Decimal("4"))
        assert accountant.pot == Decimal("16")
        assert accountant.treasury == Decimal("4")
        assert accountant.total_intake == Decimal("20")

    def test_zero_treasury_share(self, accountant):
        accountant.intake(Decimal("20"), 0, "alice")
        assert accountant.treasury == Decimal("0")
        assert accountant.pot == Decimal("20")

    def test_treasury_share_floors(self, accountant):
        pot, treasury = accountant.intake(Decimal("0.000003"), 5000, "alice")
        assert treasury == Decimal("0.000001")
        assert pot == Decimal("0.000002")

    def test_intake_is_audited(self, accountant):
        accountant.intake(Decimal("10"), 2000, "alice", period=3)
        tx = accountant.ledger.transaction_log[-1]
        assert tx.origin.origin_type == OriginType.INTAKE
        assert tx.origin.source_id == "alice"
        assert tx.origin.period == 3


class TestTransfers:

    def test_zero_quantities_dropped(self, accountant):
        accountant.intake(Decimal("10"), 0, "alice")
        pending = accountant.build(
            [(Decimal("0"), POT_WALLET, JACKPOT_WALLET), (Decimal("1"), POT_WALLET, JACKPOT_WALLET)],
            OriginType.SETTLEMENT, "test", "T",
        )
        assert len(pending.moves) == 1

    def test_negative_rejected(self, accountant):
        with pytest.raises(LedgerError, match="negative"):
            accountant.build([(Decimal("-1"), POT_WALLET, JACKPOT_WALLET)], OriginType.SETTLEMENT, "t", "T")

    def test_overdraft_raises(self, accountant):
        accountant.intake(Decimal("10"), 0, "alice")
        with pytest.raises(LedgerError):
            accountant.transfer([(Decimal("11"), POT_WALLET, JACKPOT_WALLET)], OriginType.SETTLEMENT, "t", "T")
        assert accountant.pot == Decimal("10")

    def test_repeated_equal_transfers_all_apply(self, accountant):
        accountant.intake(Decimal("10"), 0, "alice")
        for _ in range(3):
            accountant.transfer([(Decimal("1"), POT_WALLET, JACKPOT_WALLET)], OriginType.SETTLEMENT, "t", "T")
        assert accountant.jackpot == Decimal("3")

    def test_unclaimed_total(self, accountant):
        accountant.intake(Decimal("10"), 0, "alice")
        accountant.ensure_participant_wallet("alice")
        accountant.ensure_participant_wallet("bob")
        accountant.transfer(
            [(Decimal("2"), POT_WALLET, unclaimed_wallet("alice")),
             (Decimal("3"), POT_WALLET, unclaimed_wallet("bob"))],
            OriginType.SETTLEMENT, "t", "T",
        )
        assert accountant.unclaimed("alice") == Decimal("2")
        assert accountant.unclaimed("nobody") == Decimal("0")
        assert accountant.unclaimed_total() == Decimal("5")


class TestArithmetic:

    def test_bps_of(self, accountant):
        assert accountant.bps_of(Decimal("100"), 3500) == Decimal("35")
        assert accountant.bps_of(Decimal("0.000019"), 5000) == Decimal("0.000009")

    def test_split_evenly(self, accountant):
        share, remainder = accountant.split_evenly(Decimal("10"), 3)
        assert share == Decimal("3.333333")
        assert remainder == Decimal("0.000001")
        assert share * 3 + remainder == Decimal("10")

    def test_split_among_nobody(self, accountant):
        assert accountant.split_evenly(Decimal("10"), 0) == (Decimal("0"), Decimal("10"))


class TestYield:

    def test_gain_goes_to_pot(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        applied = accountant.capture_yield(Decimal("105"))
        assert applied == Decimal("5")
        assert accountant.pot == Decimal("85")
        assert accountant.treasury == Decimal("20")
        assert accountant.jackpot == Decimal("0")
        assert accountant.total_intake == Decimal("105")

    def test_loss_drains_pot_first(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        applied = accountant.capture_yield(Decimal("90"))
        assert applied == Decimal("-10")
        assert accountant.pot == Decimal("70")
        assert accountant.treasury == Decimal("20")

    def test_loss_spills_into_treasury(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        accountant.capture_yield(Decimal("10"))
        assert accountant.pot == Decimal("0")
        assert accountant.treasury == Decimal("10")
        assert accountant.total_intake == Decimal("10")

    def test_loss_floors_at_zero(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        accountant.transfer([(Decimal("30"), POT_WALLET, JACKPOT_WALLET)], OriginType.SETTLEMENT, "t", "T")
        applied = accountant.capture_yield(Decimal("0"))
        assert applied == Decimal("-70")
        assert accountant.pot == Decimal("0")
        assert accountant.treasury == Decimal("0")
        assert accountant.jackpot == Decimal("30")

    def test_no_change(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        assert accountant.capture_yield(Decimal("100")) == Decimal("0")


class TestSolvency:

    def test_report(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        report = accountant.solvency_report(Decimal("100"))
        assert report['solvent']
        assert report['held'] == Decimal("100")
        assert report['absorbable'] == Decimal("100")

    def test_tolerance_scales_with_value(self, accountant):
        assert accountant.tolerance(Decimal("1000")) == Decimal("1000") * Decimal("1e-9")
        assert accountant.tolerance(Decimal("1e12")) > accountant.tolerance(Decimal("1000"))

    def test_absorbable_loss_passes(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        accountant.require_solvency(Decimal("1"))

    def test_unabsorbable_loss_raises(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        accountant.transfer(
            [(Decimal("50"), POT_WALLET, TIER_WALLETS[5])], OriginType.SETTLEMENT, "t", "T",
        )
        with pytest.raises(SolvencyViolation):
            accountant.require_solvency(Decimal("40"))
        assert accountant.pot == Decimal("30")

    def test_gain_always_solvent(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        accountant.require_solvency(Decimal("1000"))


class TestConservation:

    def test_holds_after_movements(self, accountant):
        accountant.intake(Decimal("100"), 2000, "alice")
        accountant.transfer(
            [(Decimal("10"), POT_WALLET, JACKPOT_WALLET), (Decimal("5"), POT_WALLET, TIER_WALLETS[4])],
            OriginType.SETTLEMENT, "t", "T",
        )
        accountant.capture_yield(Decimal("103"))
        result = accountant.verify_conservation()
        assert result['valid']
        assert result['bucket_sum'] == Decimal("103")

    def test_bucket_balances_keys(self, accountant):
        assert set(accountant.bucket_balances()) == {
            'pot', 'treasury', 'jackpot', 'unclaimed', 'tier_pending', 'withdrawn', 'total_intake',
        }

    def test_treasury_and_pot_wallets_registered(self, accountant):
        wallets = accountant.ledger.list_wallets()
        assert POT_WALLET in wallets
        assert TREASURY_WALLET in wallets
