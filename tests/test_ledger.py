"""NullNet ledger tests.

These tests ensure that:
1. Transfers move exactly the amount between two wallets
2. Balances never go negative and failed transfers change nothing
3. Invalid addresses are rejected before any storage access
4. Concurrent writers on one wallet never lose an update
"""

import asyncio
from decimal import Decimal
from unittest.mock import patch

import pytest

from nullwallet.errors import (
    InsufficientBalance,
    InvalidAddressFormat,
    InvalidRequest,
    LedgerConflict,
    UnknownWallet,
)
from nullwallet.ledger.accounts import generate_address, hash_access_key, validate_address
from nullwallet.ledger.database import get_db
from nullwallet.ledger.models import LedgerBalance
from nullwallet.ledger.repository import LedgerRepository


async def new_wallet(ledger) -> str:
    address, _ = await ledger.open_account()
    return address


class TestAddresses:
    """NullNet address format."""

    def test_valid_address(self):
        assert validate_address("null_" + "a1B2c3D4e5" * 2)

    @pytest.mark.parametrize(
        "address",
        [
            None,
            "",
            "null_abc",
            "null_" + "a" * 21,
            "nul_" + "a" * 20,
            "null_" + "a" * 19 + "!",
            "0x" + "ab" * 20,
        ],
    )
    def test_invalid_address(self, address):
        assert not validate_address(address)

    def test_generated_addresses_are_valid(self):
        addresses = {generate_address() for _ in range(50)}
        assert len(addresses) == 50
        assert all(validate_address(a) for a in addresses)


class TestAccounts:
    """Wallet issuance and access keys."""

    async def test_open_account(self, ledger):
        address, access_key = await ledger.open_account("user-1")

        assert validate_address(address)
        assert await ledger.account_exists(address)
        assert await ledger.get_balances(address) == {}

    async def test_access_key_is_stored_hashed(self, ledger, ledger_repo):
        address, access_key = await ledger.open_account("user-1")

        wallet = await ledger_repo.get_wallet(address)
        assert wallet.access_key_hash == hash_access_key(access_key)
        assert access_key not in wallet.access_key_hash

    async def test_verify_access_key(self, ledger):
        address, access_key = await ledger.open_account()

        assert await ledger.verify_access_key(address, access_key)
        assert not await ledger.verify_access_key(address, "wrong-key")
        assert not await ledger.verify_access_key(address, None)
        assert not await ledger.verify_access_key("not-an-address", access_key)

    async def test_wallets_by_owner(self, ledger, ledger_repo):
        first, _ = await ledger.open_account("user-7")
        second, _ = await ledger.open_account("user-7")
        await ledger.open_account("user-8")

        wallets = await ledger_repo.get_wallets_by_owner("user-7")
        assert [w.address for w in wallets] == [first, second]

    async def test_list_accounts(self, ledger):
        first, _ = await ledger.open_account("user-9")
        second, _ = await ledger.open_account("user-9")

        wallets = await ledger.list_accounts("user-9")

        assert [w["address"] for w in wallets] == [first, second]
        assert await ledger.list_accounts("nobody") == []


class TestBalances:
    """Credit and debit."""

    async def test_missing_balance_is_zero(self, ledger):
        address = generate_address()
        assert await ledger.get_balance(address, "GOLD") == Decimal("0")

    async def test_credit_creates_ticker(self, ledger):
        address = await new_wallet(ledger)

        await ledger.credit(address, "gold", "100")

        assert await ledger.get_balance(address, "GOLD") == Decimal("100")

    async def test_credit_unopened_wallet(self, ledger):
        address = generate_address()

        with pytest.raises(UnknownWallet):
            await ledger.credit(address, "GOLD", 1)

        assert not await ledger.account_exists(address)

    async def test_credit_then_debit(self, ledger):
        address = await new_wallet(ledger)
        await ledger.credit(address, "SILVER", Decimal("1.5"))

        remaining = await ledger.debit(address, "SILVER", Decimal("0.5"))

        assert remaining == Decimal("1.0")
        assert await ledger.get_balance(address, "SILVER") == Decimal("1.0")

    async def test_debit_more_than_balance(self, ledger):
        address = await new_wallet(ledger)
        await ledger.credit(address, "GOLD", 10)

        with pytest.raises(InsufficientBalance):
            await ledger.debit(address, "GOLD", 11)

        assert await ledger.get_balance(address, "GOLD") == Decimal("10")

    async def test_debit_unknown_ticker(self, ledger):
        address = await new_wallet(ledger)
        await ledger.credit(address, "GOLD", 10)

        with pytest.raises(InsufficientBalance):
            await ledger.debit(address, "DIAMOND", 1)

    @pytest.mark.parametrize("amount", [0, -1, "0", "-0.5", "abc", None, True, "NaN"])
    async def test_non_positive_amount_rejected(self, ledger, amount):
        with pytest.raises(InvalidRequest):
            await ledger.credit(generate_address(), "GOLD", amount)

    async def test_invalid_address_rejected_before_storage(self, ledger):
        with patch("nullwallet.ledger.accounts.get_db") as mock_get_db:
            with pytest.raises(InvalidAddressFormat):
                await ledger.credit("0xnot-a-ledger-address", "GOLD", 1)
            with pytest.raises(InvalidAddressFormat):
                await ledger.get_balance("null_short", "GOLD")

        mock_get_db.assert_not_called()

    async def test_top_up_is_logged(self, ledger):
        address = generate_address()

        transfer_id = await ledger.top_up(address, "PLATINUM", 5)

        assert await ledger.account_exists(address)
        transfers = await ledger.get_transfers(address)
        assert transfers[0]["transfer_id"] == transfer_id
        assert transfers[0]["from"] is None
        assert transfers[0]["to"] == address
        assert Decimal(transfers[0]["amount"]) == Decimal("5")


class TestTransfers:
    """Ledger transfers."""

    async def test_transfer_moves_funds(self, ledger):
        """50 GOLD from a wallet holding 100 to a fresh wallet."""
        sender, _ = await ledger.open_account("alice")
        receiver, _ = await ledger.open_account("bob")
        await ledger.credit(sender, "GOLD", 100)

        transfer_id = await ledger.transfer(sender, receiver, "GOLD", 50)

        assert transfer_id.startswith("nullnet_")
        assert await ledger.get_balance(sender, "GOLD") == Decimal("50")
        assert await ledger.get_balance(receiver, "GOLD") == Decimal("50")

    async def test_transfer_preserves_total_supply(self, ledger):
        wallets = [await new_wallet(ledger) for _ in range(3)]
        await ledger.credit(wallets[0], "GOLD", 100)
        await ledger.credit(wallets[1], "GOLD", 30)

        await ledger.transfer(wallets[0], wallets[2], "GOLD", Decimal("12.5"))
        await ledger.transfer(wallets[1], wallets[0], "GOLD", 30)
        await ledger.transfer(wallets[2], wallets[1], "GOLD", Decimal("2.25"))

        balances = [await ledger.get_balance(w, "GOLD") for w in wallets]
        assert sum(balances) == Decimal("130")
        assert balances == [Decimal("117.5"), Decimal("2.25"), Decimal("10.25")]

    async def test_insufficient_balance_changes_nothing(self, ledger):
        sender, receiver = await new_wallet(ledger), await new_wallet(ledger)
        await ledger.credit(sender, "GOLD", 10)
        await ledger.credit(receiver, "GOLD", 3)

        with pytest.raises(InsufficientBalance):
            await ledger.transfer(sender, receiver, "GOLD", 11)

        assert await ledger.get_balance(sender, "GOLD") == Decimal("10")
        assert await ledger.get_balance(receiver, "GOLD") == Decimal("3")
        assert await ledger.get_transfers(sender) == []

    async def test_transfer_is_recorded(self, ledger):
        sender, receiver = await new_wallet(ledger), await new_wallet(ledger)
        await ledger.credit(sender, "SILVER", 5)

        transfer_id = await ledger.transfer(sender, receiver, "silver", 2)

        history = await ledger.get_transfers(receiver)
        assert len(history) == 1
        assert history[0]["transfer_id"] == transfer_id
        assert history[0]["from"] == sender
        assert history[0]["asset"] == "SILVER"

    async def test_failure_after_debit_rolls_back(self, ledger):
        sender, receiver = await new_wallet(ledger), await new_wallet(ledger)
        await ledger.credit(sender, "GOLD", 10)

        with patch.object(
            LedgerRepository, "record_transfer", side_effect=RuntimeError("disk full")
        ):
            with pytest.raises(RuntimeError):
                await ledger.transfer(sender, receiver, "GOLD", 4)

        assert await ledger.get_balance(sender, "GOLD") == Decimal("10")
        assert await ledger.get_balance(receiver, "GOLD") == Decimal("0")

    async def test_transfer_rejects_invalid_receiver(self, ledger):
        sender = await new_wallet(ledger)
        await ledger.credit(sender, "GOLD", 10)

        with pytest.raises(InvalidAddressFormat):
            await ledger.transfer(sender, "null_bad", "GOLD", 1)

        assert await ledger.get_balance(sender, "GOLD") == Decimal("10")

    async def test_transfer_to_unopened_wallet(self, ledger):
        """Funds sent to an address nobody holds a key for would be stranded."""
        sender = await new_wallet(ledger)
        receiver = generate_address()
        await ledger.credit(sender, "GOLD", 100)

        with pytest.raises(UnknownWallet):
            await ledger.transfer(sender, receiver, "GOLD", 50)

        assert await ledger.get_balance(sender, "GOLD") == Decimal("100")
        assert await ledger.get_balance(receiver, "GOLD") == Decimal("0")
        assert not await ledger.account_exists(receiver)
        assert await ledger.get_transfers(sender) == []

    async def test_self_transfer_rejected(self, ledger):
        address = await new_wallet(ledger)
        await ledger.credit(address, "GOLD", 10)

        with pytest.raises(InvalidRequest):
            await ledger.transfer(address, address, "GOLD", 1)

        assert await ledger.get_balance(address, "GOLD") == Decimal("10")
        assert await ledger.get_transfers(address) == []


class TestConcurrency:
    """Concurrent writers on the same wallet."""

    async def test_concurrent_debits_never_overdraw(self, ledger):
        sender, receiver = await new_wallet(ledger), await new_wallet(ledger)
        await ledger.credit(sender, "GOLD", 10)

        results = await asyncio.gather(
            *(ledger.transfer(sender, receiver, "GOLD", 3) for _ in range(5)),
            return_exceptions=True,
        )

        succeeded = [r for r in results if isinstance(r, str)]
        failed = [r for r in results if isinstance(r, InsufficientBalance)]
        assert len(succeeded) == 3
        assert len(failed) == 2
        assert await ledger.get_balance(sender, "GOLD") == Decimal("1")
        assert await ledger.get_balance(receiver, "GOLD") == Decimal("9")

    async def test_opposite_transfers_do_not_deadlock(self, ledger):
        a, b = await new_wallet(ledger), await new_wallet(ledger)
        await ledger.credit(a, "GOLD", 10)
        await ledger.credit(b, "GOLD", 10)

        await asyncio.wait_for(
            asyncio.gather(
                ledger.transfer(a, b, "GOLD", 1),
                ledger.transfer(b, a, "GOLD", 2),
            ),
            timeout=10,
        )

        assert await ledger.get_balance(a, "GOLD") == Decimal("11")
        assert await ledger.get_balance(b, "GOLD") == Decimal("9")

    async def test_stale_version_raises_conflict(self, ledger, session_factory):
        """A writer outside this process's locks is caught by the version counter."""
        address = await new_wallet(ledger)
        await ledger.credit(address, "GOLD", 10)

        with pytest.raises(LedgerConflict):
            async with get_db(session_factory) as first:
                stale = await LedgerRepository(first).get_balance(address, "GOLD")

                async with get_db(session_factory) as second:
                    fresh = await LedgerRepository(second).get_balance(address, "GOLD")
                    fresh.amount -= Decimal("4")

                stale.amount -= Decimal("7")
                await first.flush()

        assert await ledger.get_balance(address, "GOLD") == Decimal("6")

    async def test_version_increments(self, ledger, session_factory):
        address = await new_wallet(ledger)
        await ledger.credit(address, "GOLD", 1)

        async def current_version() -> int:
            async with get_db(session_factory) as session:
                balance: LedgerBalance = await LedgerRepository(session).get_balance(address, "GOLD")
                return balance.version

        before = await current_version()
        await ledger.credit(address, "GOLD", 1)

        assert await current_version() == before + 1
