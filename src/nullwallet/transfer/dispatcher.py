"""Transfer dispatcher.

Single entry point for outgoing transfers. Validates the request, asks the
chain registry which path the (chain, token) pair takes and hands the
transfer to exactly one executor:

    ledger chain          -> LedgerTransferExecutor
    contract address None -> NativeTransferExecutor
    otherwise             -> TokenTransferExecutor, or the gas sponsorship
                             coordinator when sponsorship is requested

Request errors are raised as-is before any executor runs. Errors raised by
an executor are wrapped in TransferFailed. Nothing is retried here.
"""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from nullwallet.chains import Chain, ChainRegistry, TokenOnChain, TransferPath
from nullwallet.errors import (
    InvalidRequest,
    NativeNotSponsorable,
    NoSponsorDeployed,
    SponsorshipNotSupportedForNative,
    SponsorshipUnavailable,
    TransferFailed,
    WalletError,
)
from nullwallet.transfer.base import TransferResult
from nullwallet.transfer.evm import NativeTransferExecutor, TokenTransferExecutor
from nullwallet.transfer.ledger import LedgerTransferExecutor
from nullwallet.utils.amounts import Amount, parse_amount

if TYPE_CHECKING:
    from nullwallet.sponsorship.coordinator import GasSponsorshipCoordinator

logger = logging.getLogger(__name__)


def _require_fields(**fields) -> None:
    for name, value in fields.items():
        if not isinstance(value, str) or not value.strip():
            raise InvalidRequest(f"Missing required field: {name}")


class TransferDispatcher:
    """Routes a transfer request to the executor for its chain and token."""

    def __init__(
        self,
        registry: ChainRegistry,
        native_executor: NativeTransferExecutor,
        token_executor: TokenTransferExecutor,
        ledger_executor: LedgerTransferExecutor,
        sponsorship: Optional["GasSponsorshipCoordinator"] = None,
    ):
        self.registry = registry
        self.native_executor = native_executor
        self.token_executor = token_executor
        self.ledger_executor = ledger_executor
        self.sponsorship = sponsorship

    @property
    def sponsorship_available(self) -> bool:
        return self.sponsorship is not None

    async def send_token(
        self,
        amount: Amount,
        receiver_address: str,
        token_symbol: str,
        sender_address: str,
        sender_secret: str,
        chain_id: str,
        sponsorship_requested: bool = False,
        idempotency_key: Optional[str] = None,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
    ) -> TransferResult:
        """Send ``amount`` of a token from a custodial wallet.

        Sponsorship is only honoured for ERC-20 tokens; asking for it on a
        native token raises SponsorshipNotSupportedForNative and it is
        ignored for ledger transfers, which carry no gas.

        Raises:
            InvalidRequest, UnsupportedChain, UnsupportedToken: bad request,
                no executor was invoked
            SponsorshipUnavailable, NoSponsorDeployed,
                SponsorshipNotSupportedForNative: sponsorship cannot be served
            TransferFailed: the executor failed; keeps the original error
        """
        value, chain, deployment, path = self._prepare(
            amount, receiver_address, token_symbol, sender_address, sender_secret, chain_id
        )

        if sponsorship_requested:
            if path == TransferPath.NATIVE:
                raise SponsorshipNotSupportedForNative(
                    f"Gas sponsorship is not supported for native {token_symbol.upper()} transfers"
                )
            if path == TransferPath.LEDGER:
                logger.debug(f"Ignoring sponsorship request for ledger transfer on {chain.id}")
            else:
                return await self._send_sponsored(
                    chain, deployment, token_symbol, value, receiver_address,
                    sender_address, sender_secret, idempotency_key, gas_limit, gas_price,
                )

        return await self._send_direct(
            path, chain, deployment, token_symbol, value,
            receiver_address, sender_address, sender_secret,
        )

    async def send_token_sponsored(
        self,
        amount: Amount,
        receiver_address: str,
        token_symbol: str,
        sender_address: str,
        sender_secret: str,
        chain_id: str,
        idempotency_key: Optional[str] = None,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
    ) -> TransferResult:
        """Send an ERC-20 transfer with gas paid by the sponsor.

        Unlike ``send_token`` there is no unsponsored fallback: native and
        ledger tokens are refused before any contract is contacted.
        """
        value, chain, deployment, path = self._prepare(
            amount, receiver_address, token_symbol, sender_address, sender_secret, chain_id
        )

        if path == TransferPath.LEDGER:
            raise NoSponsorDeployed(f"Gas sponsorship is not available on {chain.display_name}")
        if path == TransferPath.NATIVE:
            raise NativeNotSponsorable(
                f"Native {token_symbol.upper()} transfers cannot be gas-sponsored"
            )

        return await self._send_sponsored(
            chain, deployment, token_symbol, value, receiver_address,
            sender_address, sender_secret, idempotency_key, gas_limit, gas_price,
        )

    def _prepare(
        self,
        amount: Amount,
        receiver_address: str,
        token_symbol: str,
        sender_address: str,
        sender_secret: str,
        chain_id: str,
    ) -> tuple[Decimal, Chain, TokenOnChain, TransferPath]:
        value = parse_amount(amount)
        _require_fields(
            receiver_address=receiver_address,
            token_symbol=token_symbol,
            sender_address=sender_address,
            sender_secret=sender_secret,
            chain_id=chain_id,
        )

        chain, deployment = self.registry.validate_chain_and_token(chain_id, token_symbol)
        path = self.registry.classify(chain_id, token_symbol)
        logger.info(
            f"Dispatching {value} {token_symbol.upper()} on {chain.id} via {path.value}: "
            f"{sender_address} -> {receiver_address}"
        )
        return value, chain, deployment, path

    async def _send_direct(
        self,
        path: TransferPath,
        chain: Chain,
        deployment: TokenOnChain,
        token_symbol: str,
        value: Decimal,
        receiver_address: str,
        sender_address: str,
        sender_secret: str,
    ) -> TransferResult:
        try:
            if path == TransferPath.LEDGER:
                result = await self.ledger_executor.execute(
                    chain=chain,
                    token_symbol=token_symbol,
                    sender_address=sender_address,
                    sender_secret=sender_secret,
                    receiver_address=receiver_address,
                    amount=value,
                )
            elif path == TransferPath.NATIVE:
                result = await self.native_executor.execute(
                    chain=chain,
                    sender_secret=sender_secret,
                    receiver_address=receiver_address,
                    amount=value,
                    decimals=deployment.decimals,
                    sender_address=sender_address,
                    token_symbol=token_symbol.upper(),
                )
            else:
                result = await self.token_executor.execute(
                    chain=chain,
                    token_contract_address=deployment.contract_address,
                    token_decimals=deployment.decimals,
                    sender_secret=sender_secret,
                    receiver_address=receiver_address,
                    amount=value,
                    sender_address=sender_address,
                    token_symbol=token_symbol.upper(),
                )
        except WalletError as e:
            logger.error(f"{path.value} transfer on {chain.id} failed: [{e.code}] {e.message}")
            raise TransferFailed(e, chain.id, path.value) from e

        return replace(result, gas_sponsored=False)

    async def _send_sponsored(
        self,
        chain: Chain,
        deployment: TokenOnChain,
        token_symbol: str,
        value: Decimal,
        receiver_address: str,
        sender_address: str,
        sender_secret: str,
        idempotency_key: Optional[str],
        gas_limit: Optional[int],
        gas_price: Optional[int],
    ) -> TransferResult:
        if self.sponsorship is None:
            raise SponsorshipUnavailable("Gas sponsorship service is not available")
        if not self.sponsorship.is_available(chain.id):
            raise NoSponsorDeployed(f"Gas sponsorship is not available on {chain.display_name}")

        try:
            result = await self.sponsorship.execute(
                chain=chain,
                token_contract_address=deployment.contract_address,
                token_decimals=deployment.decimals,
                sender_secret=sender_secret,
                sender_address=sender_address,
                receiver_address=receiver_address,
                amount=value,
                gas_limit=gas_limit,
                gas_price=gas_price,
                idempotency_key=idempotency_key,
                token_symbol=token_symbol,
            )
        except WalletError as e:
            logger.error(f"Sponsored transfer on {chain.id} failed: [{e.code}] {e.message}")
            raise TransferFailed(e, chain.id, "sponsored") from e

        return replace(result, gas_sponsored=True)
