"""Gas sponsorship coordinator.

Runs the two-phase sponsor -> execute protocol for ERC-20 transfers:

    Requested --(sponsor signs sponsorTransaction)--> Sponsored
    Sponsored --(initiator signs executeSponsoredTransaction)--> Executed

Every attempt is recorded in ``sponsored_transfers`` under an idempotency
key. A retry with the same key resumes from the recorded state: a pending
``sponsored_tx_hash`` is executed instead of sponsoring again, and an
executed record is refused with AlreadyExecuted.
"""

import logging
import uuid
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nullwallet.chains import Chain
from nullwallet.errors import (
    AlreadyExecuted,
    GasLimitTooHigh,
    GasPriceTooHigh,
    InvalidRequest,
    NativeNotSponsorable,
    NoSponsorDeployed,
    SelfSponsorshipForbidden,
    SponsorKeyMissing,
    WalletError,
)
from nullwallet.ledger.database import get_db
from nullwallet.ledger.models import SponsoredTransfer, SponsoredTransferStatus
from nullwallet.ledger.repository import LedgerRepository
from nullwallet.sponsorship.contract import (
    SponsoredTransaction,
    SponsorInfo,
    SponsorshipContract,
)
from nullwallet.transfer.base import TOKEN_TRANSFER_GAS, TransferResult, TransferStatus
from nullwallet.transfer.evm import checksum_address, encode_erc20_transfer, load_account
from nullwallet.transfer.rpc import EvmRpcClient
from nullwallet.utils.amounts import from_base_units, to_base_units
from nullwallet.utils.locks import keyed_lock

logger = logging.getLogger(__name__)

NATIVE_DECIMALS = 18


def estimated_cost(gas_limit: int, gas_price: int) -> Decimal:
    """Worst-case gas cost in native units."""
    return from_base_units(gas_limit * gas_price, NATIVE_DECIMALS)


class GasSponsorshipCoordinator:
    """Relays ERC-20 transfers through a GasSponsor deployment per chain."""

    def __init__(
        self,
        contracts: dict[str, SponsorshipContract],
        rpc_factory: Callable[[Chain], EvmRpcClient],
        sponsor_key_configured: bool,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        default_gas_limit: int = TOKEN_TRANSFER_GAS,
    ):
        self.contracts = contracts
        self._rpc_factory = rpc_factory
        self.sponsor_key_configured = sponsor_key_configured
        self._session_factory = session_factory
        self.default_gas_limit = default_gas_limit

    def is_available(self, chain_id: str) -> bool:
        """Check if a GasSponsor contract is deployed on the chain."""
        return chain_id in self.contracts

    def available_chains(self) -> list[str]:
        return sorted(self.contracts)

    def contract_for(self, chain_id: str) -> SponsorshipContract:
        contract = self.contracts.get(chain_id)
        if contract is None:
            raise NoSponsorDeployed(f"GasSponsor contract not deployed on {chain_id}")
        return contract

    async def get_sponsored_transaction(self, chain_id: str, sponsored_tx_hash: str) -> SponsoredTransaction:
        return await self.contract_for(chain_id).get_sponsored_transaction(sponsored_tx_hash)

    async def get_sponsor_info(self, chain_id: str, address: Optional[str] = None) -> SponsorInfo:
        contract = self.contract_for(chain_id)
        address = address or contract.sponsor_address
        if not address:
            raise SponsorKeyMissing(f"No sponsor signing key configured for {chain_id}")
        return await contract.get_sponsor_info(address)

    @staticmethod
    def estimated_cost(gas_limit: int, gas_price: int) -> Decimal:
        return estimated_cost(gas_limit, gas_price)

    # Persistence
    async def _load_record(self, idempotency_key: str) -> Optional[SponsoredTransfer]:
        async with get_db(self._session_factory) as session:
            return await LedgerRepository(session).get_sponsored_transfer(idempotency_key)

    async def _save_record(self, idempotency_key: str, **fields) -> None:
        async with get_db(self._session_factory) as session:
            repo = LedgerRepository(session)
            if await repo.get_sponsored_transfer(idempotency_key) is None:
                await repo.create_sponsored_transfer(idempotency_key=idempotency_key, **fields)
            else:
                status = fields.pop("status")
                await repo.update_sponsored_transfer(idempotency_key, status, **fields)

    async def _set_status(self, idempotency_key: str, status: SponsoredTransferStatus, **fields) -> None:
        async with get_db(self._session_factory) as session:
            await LedgerRepository(session).update_sponsored_transfer(idempotency_key, status, **fields)

    @staticmethod
    def _same_transfer(
        record: SponsoredTransfer,
        chain_id: str,
        sender: str,
        token_contract: str,
        receiver: str,
        amount: Decimal,
    ) -> bool:
        return (
            record.chain_id == chain_id
            and record.from_address.lower() == sender.lower()
            and record.token_contract.lower() == token_contract.lower()
            and record.receiver_address.lower() == receiver.lower()
            and Decimal(record.amount) == amount
        )

    async def execute(
        self,
        chain: Chain,
        token_contract_address: Optional[str],
        token_decimals: int,
        sender_secret: str,
        sender_address: str,
        receiver_address: str,
        amount: Decimal,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
        idempotency_key: Optional[str] = None,
        token_symbol: Optional[str] = None,
    ) -> TransferResult:
        """Sponsor and execute one ERC-20 transfer.

        Raises:
            NoSponsorDeployed, SponsorKeyMissing, NativeNotSponsorable: not sponsorable
            SelfSponsorshipForbidden, GasPriceTooHigh, GasLimitTooHigh: rejected
                before any contract write
            AlreadyExecuted: the idempotency key's transfer already ran
            SponsorshipError / ChainError: contract or RPC failure, verbatim
        """
        # Requested
        contract = self.contract_for(chain.id)
        if not self.sponsor_key_configured:
            raise SponsorKeyMissing(f"No sponsor signing key configured for {chain.id}")
        if not token_contract_address:
            raise NativeNotSponsorable(
                f"Native {chain.native_currency.symbol} transfers cannot be gas-sponsored"
            )

        token_contract = checksum_address(token_contract_address.lower(), "token contract")
        receiver = checksum_address(receiver_address, "receiver address")
        sender = load_account(sender_secret, sender_address).address
        if sender.lower() in (receiver.lower(), token_contract.lower()):
            raise SelfSponsorshipForbidden("Cannot sponsor self-transaction")
        try:
            units = to_base_units(amount, token_decimals)
        except ValueError as e:
            raise InvalidRequest(str(e)) from e
        data = encode_erc20_transfer(receiver, units)

        key = idempotency_key or uuid.uuid4().hex
        async with keyed_lock(f"sponsorship:{key}", operation="sponsored_transfer"):
            record = await self._load_record(key) if idempotency_key else None

            if record is not None and not self._same_transfer(
                record, chain.id, sender, token_contract, receiver, amount
            ):
                raise InvalidRequest(
                    f"Idempotency key {key} was already used with different parameters"
                )

            if record is not None and record.status == SponsoredTransferStatus.EXECUTED:
                raise AlreadyExecuted(
                    f"Sponsored transfer {key} already executed in {record.execution_tx_hash}"
                )

            if record is not None and record.status == SponsoredTransferStatus.SPONSORED:
                logger.info(f"Resuming sponsored transfer {key} at {record.sponsored_tx_hash}")
                sponsored_tx_hash = record.sponsored_tx_hash
                sponsor_tx_hash = record.sponsor_tx_hash
                gas_limit, gas_price = record.gas_limit, record.gas_price
            else:
                gas_limit = gas_limit or self.default_gas_limit
                if gas_price is None:
                    gas_price = await self._rpc_factory(chain).get_gas_price()

                parameters = await contract.get_parameters()
                if gas_price > parameters.max_gas_price:
                    raise GasPriceTooHigh(
                        f"Gas price {gas_price} exceeds maximum {parameters.max_gas_price}"
                    )
                if gas_limit > parameters.max_gas_limit:
                    raise GasLimitTooHigh(
                        f"Gas limit {gas_limit} exceeds maximum {parameters.max_gas_limit}"
                    )

                await self._save_record(
                    key,
                    status=SponsoredTransferStatus.REQUESTED,
                    chain_id=chain.id,
                    from_address=sender,
                    token_contract=token_contract,
                    receiver_address=receiver,
                    token_symbol=token_symbol.upper() if token_symbol else token_contract,
                    amount=amount,
                    gas_limit=gas_limit,
                    gas_price=gas_price,
                )

                # Sponsored
                try:
                    sponsorship = await contract.sponsor_transaction(
                        sender, token_contract, gas_limit, gas_price, data
                    )
                except WalletError as e:
                    await self._set_status(key, SponsoredTransferStatus.FAILED, error_message=e.message)
                    logger.error(f"Sponsorship failed on {chain.id} for {sender}: {e.message}")
                    raise

                sponsored_tx_hash = sponsorship.sponsored_tx_hash
                sponsor_tx_hash = sponsorship.tx_hash
                await self._set_status(
                    key,
                    SponsoredTransferStatus.SPONSORED,
                    sponsored_tx_hash=sponsored_tx_hash,
                    sponsor_tx_hash=sponsor_tx_hash,
                )

            # Executed
            try:
                execution = await contract.execute_sponsored_transaction(
                    sponsored_tx_hash, data, sender_secret
                )
            except AlreadyExecuted:
                await self._set_status(key, SponsoredTransferStatus.EXECUTED)
                raise
            except WalletError as e:
                # Record stays SPONSORED; a retry with the same key re-targets it
                await self._set_status(key, SponsoredTransferStatus.SPONSORED, error_message=e.message)
                logger.error(
                    f"Execution of {sponsored_tx_hash} failed on {chain.id}, "
                    f"retry with idempotency key {key}: {e.message}"
                )
                raise

            await self._set_status(
                key,
                SponsoredTransferStatus.EXECUTED,
                execution_tx_hash=execution.execution_tx_hash,
                gas_used=execution.gas_used,
                error_message=None,
            )

        cost = self.estimated_cost(gas_limit, gas_price)
        logger.info(
            f"Sponsored transfer of {amount} {token_symbol or token_contract} on {chain.id}: "
            f"{sender} -> {receiver} ({execution.execution_tx_hash})"
        )
        return TransferResult(
            success=True,
            chain_id=chain.id,
            token_symbol=token_symbol.upper() if token_symbol else token_contract,
            from_address=sender,
            to_address=receiver,
            amount=amount,
            status=TransferStatus.CONFIRMED,
            transaction_hash=execution.execution_tx_hash,
            gas_sponsored=True,
            sponsorship_details={
                "executionTxHash": execution.execution_tx_hash,
                "sponsoredTxHash": sponsored_tx_hash,
                "sponsorTxHash": sponsor_tx_hash,
                "gasUsed": str(execution.gas_used),
                "effectiveGasPrice": str(execution.effective_gas_price),
                "estimatedCost": str(cost),
                "idempotencyKey": key,
            },
            extra={"type": "erc20", "contract": token_contract, "units": str(units)},
        )
