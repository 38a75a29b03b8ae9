"""NullNet ledger accounts.

NullNet is the internal, non-blockchain chain. Wallets are opaque
``null_`` + 20 alphanumeric addresses holding a map of asset ticker to
balance. All mutations go through this service, which:

- validates addresses before any storage access
- serializes writers per address with an in-process lock
- relies on the balance row's version counter to catch writers in other
  processes
- applies a transfer's debit and credit in one database transaction
"""

import hashlib
import hmac
import logging
import re
import secrets
import string
import time
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nullwallet.errors import InvalidAddressFormat, InvalidRequest, UnknownWallet
from nullwallet.ledger.database import get_db
from nullwallet.ledger.repository import LedgerRepository
from nullwallet.utils.amounts import Amount, parse_amount
from nullwallet.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

WALLET_PREFIX = "null_"
WALLET_BODY_LENGTH = 20

_ADDRESS_RE = re.compile(rf"^{WALLET_PREFIX}[A-Za-z0-9]{{{WALLET_BODY_LENGTH}}}$")
_ALPHABET = string.ascii_letters + string.digits


def validate_address(address: Optional[str]) -> bool:
    """Check the NullNet address format."""
    if not address or not isinstance(address, str):
        return False
    return bool(_ADDRESS_RE.match(address))


def generate_address() -> str:
    body = "".join(secrets.choice(_ALPHABET) for _ in range(WALLET_BODY_LENGTH))
    return f"{WALLET_PREFIX}{body}"


def hash_access_key(access_key: str) -> str:
    return hashlib.sha256(access_key.encode()).hexdigest()


def new_transfer_id() -> str:
    return f"nullnet_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


class LedgerAccount:
    """Balance read/debit/credit/transfer interface over the NullNet ledger."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        lock_timeout: Optional[float] = 30.0,
    ):
        self._session_factory = session_factory
        self._lock_timeout = lock_timeout

    validate_address = staticmethod(validate_address)

    def require_address(self, *addresses: str) -> None:
        for address in addresses:
            if not validate_address(address):
                raise InvalidAddressFormat(f"Invalid NullNet wallet address format: {address!r}")

    def _lock(self, *addresses: str, operation: str) -> KeyedLock:
        return KeyedLock(
            [f"ledger:{address}" for address in addresses],
            timeout=self._lock_timeout,
            operation=operation,
        )

    async def open_account(self, owner_user_id: Optional[str] = None) -> tuple[str, str]:
        """Issue a new wallet.

        Returns:
            (address, access_key). The access key is only ever returned here;
            the ledger keeps its sha256 hash.
        """
        access_key = secrets.token_urlsafe(32)
        async with get_db(self._session_factory) as session:
            repo = LedgerRepository(session)
            address = generate_address()
            while await repo.get_wallet(address) is not None:
                address = generate_address()
            await repo.create_wallet(address, owner_user_id, hash_access_key(access_key))

        logger.info(f"Opened NullNet wallet {address} for user {owner_user_id}")
        return address, access_key

    async def account_exists(self, address: str) -> bool:
        self.require_address(address)
        async with get_db(self._session_factory) as session:
            return await LedgerRepository(session).get_wallet(address) is not None

    async def list_accounts(self, owner_user_id: str) -> list[dict]:
        """Wallets opened for a user, oldest first."""
        async with get_db(self._session_factory) as session:
            wallets = await LedgerRepository(session).get_wallets_by_owner(owner_user_id)
            return [
                {
                    "address": w.address,
                    "created_at": w.created_at.isoformat() if w.created_at else None,
                }
                for w in wallets
            ]

    async def get_balance(self, address: str, ticker: str) -> Decimal:
        """Balance of one asset, 0 if the wallet or ticker is absent."""
        self.require_address(address)
        async with get_db(self._session_factory) as session:
            balance = await LedgerRepository(session).get_balance(address, ticker)
            return balance.amount if balance is not None else Decimal("0")

    async def get_balances(self, address: str) -> dict[str, Decimal]:
        self.require_address(address)
        async with get_db(self._session_factory) as session:
            rows = await LedgerRepository(session).get_all_balances(address)
            return {row.asset: row.amount for row in rows}

    async def get_transfers(self, address: str, limit: int = 50) -> list[dict]:
        self.require_address(address)
        async with get_db(self._session_factory) as session:
            transfers = await LedgerRepository(session).get_transfers(address, limit)
            return [
                {
                    "transfer_id": t.transfer_id,
                    "from": t.from_address,
                    "to": t.to_address,
                    "asset": t.asset,
                    "amount": str(t.amount),
                    "created_at": t.created_at.isoformat() if t.created_at else None,
                }
                for t in transfers
            ]

    async def credit(self, address: str, ticker: str, amount: Amount) -> Decimal:
        """Increase a balance, opening the ticker entry if absent.

        Raises:
            UnknownWallet: no wallet was opened at ``address``
        """
        self.require_address(address)
        value = parse_amount(amount)
        async with self._lock(address, operation="credit"):
            async with get_db(self._session_factory) as session:
                balance = await LedgerRepository(session).credit_balance(address, ticker, value)
                new_amount = balance.amount
        logger.debug(f"Credited {value} {ticker.upper()} to {address}")
        return new_amount

    async def debit(self, address: str, ticker: str, amount: Amount) -> Decimal:
        """Decrease a balance. Raises InsufficientBalance if it would go negative."""
        self.require_address(address)
        value = parse_amount(amount)
        async with self._lock(address, operation="debit"):
            async with get_db(self._session_factory) as session:
                balance = await LedgerRepository(session).debit_balance(address, ticker, value)
                new_amount = balance.amount
        logger.debug(f"Debited {value} {ticker.upper()} from {address}")
        return new_amount

    async def top_up(self, address: str, ticker: str, amount: Amount) -> str:
        """Credit a wallet from outside the ledger and log it as a transfer.

        The only path that opens a wallet implicitly (without an access key).
        """
        self.require_address(address)
        value = parse_amount(amount)
        transfer_id = new_transfer_id()
        async with self._lock(address, operation="top_up"):
            async with get_db(self._session_factory) as session:
                repo = LedgerRepository(session)
                await repo.credit_balance(address, ticker, value, open_wallet=True)
                await repo.record_transfer(transfer_id, None, address, ticker, value)

        logger.info(f"Top-up {transfer_id}: {value} {ticker.upper()} -> {address}")
        return transfer_id

    async def transfer(self, from_address: str, to_address: str, ticker: str, amount: Amount) -> str:
        """Move an amount between two wallets.

        Debit and credit share one database transaction, so a failure on
        either side leaves both balances untouched.

        Returns:
            Ledger transfer id

        Raises:
            InvalidRequest: sender and receiver are the same wallet
            UnknownWallet: the receiver wallet was never opened
            InsufficientBalance: the sender holds less than ``amount``
        """
        self.require_address(from_address, to_address)
        value = parse_amount(amount)
        if from_address == to_address:
            raise InvalidRequest("Cannot transfer to the same wallet")
        transfer_id = new_transfer_id()

        async with self._lock(from_address, to_address, operation="transfer"):
            async with get_db(self._session_factory) as session:
                repo = LedgerRepository(session)
                if await repo.get_wallet(to_address) is None:
                    raise UnknownWallet(f"Wallet not found: {to_address}", address=to_address)
                await repo.debit_balance(from_address, ticker, value)
                await repo.credit_balance(to_address, ticker, value)
                await repo.record_transfer(transfer_id, from_address, to_address, ticker, value)

        logger.info(
            f"Ledger transfer {transfer_id}: {value} {ticker.upper()} "
            f"{from_address} -> {to_address}"
        )
        return transfer_id

    async def verify_access_key(self, address: str, secret: Optional[str]) -> bool:
        """Check a caller-supplied access key against the stored hash."""
        if not secret or not validate_address(address):
            return False
        async with get_db(self._session_factory) as session:
            wallet = await LedgerRepository(session).get_wallet(address)
        if wallet is None or not wallet.access_key_hash:
            return False
        return hmac.compare_digest(wallet.access_key_hash, hash_access_key(secret))
