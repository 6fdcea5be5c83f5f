"""Tests for AccountLedger balances, reserve transfers and the supply invariant."""
import pytest

from dchat.exceptions import InsufficientFunds, InsufficientReserve, LedgerError, ValidationError
from dchat.ledger import RESERVE, AccountLedger, MAX_TOKEN_VALUE


class TestAccountLedger:
    @pytest.fixture
    def ledger(self):
        return AccountLedger(1000)

    def test_new_ledger_holds_supply_in_reserve(self, ledger):
        assert ledger.reserve_balance == 1000
        assert ledger.total_supply == 1000
        assert ledger.check_invariant()

    def test_unknown_account_has_zero_balance(self, ledger):
        assert ledger.balance_of("nobody") == 0
        # reading does not create the account
        assert list(ledger.accounts()) == []

    def test_transfer_from_reserve(self, ledger):
        ledger.transfer(RESERVE, "alice", 12)
        assert ledger.balance_of("alice") == 12
        assert ledger.reserve_balance == 988
        assert ledger.check_invariant()

    def test_transfer_to_reserve(self, ledger):
        ledger.transfer(RESERVE, "alice", 12)
        ledger.transfer("alice", RESERVE, 3)
        assert ledger.balance_of("alice") == 9
        assert ledger.reserve_balance == 991
        assert ledger.check_invariant()

    def test_insufficient_funds_has_no_effect(self, ledger):
        ledger.transfer(RESERVE, "alice", 2)
        with pytest.raises(InsufficientFunds) as ei:
            ledger.transfer("alice", RESERVE, 3)
        assert not isinstance(ei.value, InsufficientReserve)
        assert ledger.balance_of("alice") == 2
        assert ledger.reserve_balance == 998

    def test_reserve_shortfall_is_insufficient_reserve(self):
        ledger = AccountLedger(5)
        with pytest.raises(InsufficientReserve):
            ledger.transfer(RESERVE, "alice", 6)
        assert ledger.reserve_balance == 5
        assert ledger.balance_of("alice") == 0

    def test_transfer_between_accounts_is_refused(self, ledger):
        ledger.transfer(RESERVE, "alice", 10)
        with pytest.raises(LedgerError, match="reserve"):
            ledger.transfer("alice", "bob", 1)

    def test_zero_transfer_is_allowed(self, ledger):
        ledger.transfer(RESERVE, "alice", 0)
        assert ledger.balance_of("alice") == 0
        assert ledger.check_invariant()

    @pytest.mark.parametrize("amount", [-1, 1.5, "3", True, MAX_TOKEN_VALUE + 1])
    def test_bad_amounts_rejected(self, ledger, amount):
        with pytest.raises(ValidationError):
            ledger.transfer(RESERVE, "alice", amount)

    def test_snapshot_roundtrip(self, ledger):
        ledger.transfer(RESERVE, "alice", 7)
        restored = AccountLedger.from_snapshot(ledger.snapshot())
        assert restored.balance_of("alice") == 7
        assert restored.reserve_balance == 993
        assert restored.check_invariant()
