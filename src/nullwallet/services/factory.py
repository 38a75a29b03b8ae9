"""Service construction.

Every service is built once at process start and passed by reference. The
gas sponsorship coordinator is optional: if it cannot be built the rest of
the wallet still works and sponsored requests get SponsorshipUnavailable.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from eth_account import Account
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nullwallet.chains import Chain, ChainRegistry
from nullwallet.config import ZERO_ADDRESS, Settings, get_settings
from nullwallet.ledger.accounts import LedgerAccount
from nullwallet.services.balance_service import BalanceService
from nullwallet.sponsorship.contract import SponsorshipContract
from nullwallet.sponsorship.coordinator import GasSponsorshipCoordinator
from nullwallet.transfer.dispatcher import TransferDispatcher
from nullwallet.transfer.evm import NativeTransferExecutor, TokenTransferExecutor
from nullwallet.transfer.ledger import LedgerTransferExecutor
from nullwallet.transfer.rpc import EvmRpcClient

logger = logging.getLogger(__name__)

RpcFactory = Callable[[Chain], EvmRpcClient]


@dataclass
class TransferServices:
    """Process-wide service container."""

    settings: Settings
    registry: ChainRegistry
    ledger: LedgerAccount
    dispatcher: TransferDispatcher
    balances: BalanceService
    sponsorship: Optional[GasSponsorshipCoordinator] = None


def create_sponsorship_contract(
    settings: Settings,
    chain: Chain,
    address: str,
    rpc_factory: RpcFactory,
) -> SponsorshipContract:
    """Create the GasSponsor backend for one chain.

    ``simulated`` keeps the contract state in memory with the sponsor key's
    account as owner; sponsors must still be registered and funded.
    """
    backend = settings.sponsorship_backend.lower()
    sponsor_key = settings.gas_sponsor_private_key

    if backend == "onchain":
        from nullwallet.sponsorship.onchain import OnChainSponsorshipContract
        return OnChainSponsorshipContract(
            chain,
            address,
            rpc_factory(chain),
            sponsor_secret=sponsor_key,
            confirmation_timeout=settings.confirmation_timeout,
        )

    if backend == "simulated":
        from nullwallet.sponsorship.simulated import SimulatedSponsorshipContract
        owner = Account.from_key(sponsor_key).address if sponsor_key else ZERO_ADDRESS
        return SimulatedSponsorshipContract(
            owner_address=owner,
            sponsor_secret=sponsor_key,
            address=address.lower(),
        )

    raise ValueError(f"Unknown sponsorship backend: {settings.sponsorship_backend}")


def create_sponsorship_coordinator(
    settings: Settings,
    registry: ChainRegistry,
    rpc_factory: RpcFactory,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Optional[GasSponsorshipCoordinator]:
    """Build the coordinator, or None if it cannot be initialized."""
    try:
        contracts = {}
        for chain in registry.list_enabled_chains():
            if chain.is_ledger:
                continue
            address = settings.get_gas_sponsor_address(chain.id)
            if address:
                contracts[chain.id] = create_sponsorship_contract(
                    settings, chain, address, rpc_factory
                )

        if not settings.has_sponsor_key:
            logger.warning("GAS_SPONSOR_PRIVATE_KEY not set: sponsored transfers will be refused")

        coordinator = GasSponsorshipCoordinator(
            contracts,
            rpc_factory,
            sponsor_key_configured=settings.has_sponsor_key,
            session_factory=session_factory,
            default_gas_limit=settings.sponsored_gas_limit,
        )
    except Exception as e:
        logger.error(f"Gas sponsorship service unavailable: {e}")
        return None

    logger.info(
        f"Gas sponsorship ({settings.sponsorship_backend}) on: "
        f"{', '.join(coordinator.available_chains()) or 'no chains'}"
    )
    return coordinator


def build_services(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    rpc_factory: Optional[RpcFactory] = None,
    registry: Optional[ChainRegistry] = None,
) -> TransferServices:
    """Wire the registry, ledger, executors, dispatcher and balance reads."""
    settings = settings or get_settings()
    registry = registry or ChainRegistry.from_settings(settings)
    if rpc_factory is None:
        def rpc_factory(chain: Chain) -> EvmRpcClient:
            return EvmRpcClient(chain.rpc_url, timeout=settings.rpc_timeout)

    ledger = LedgerAccount(session_factory)
    executor_options = {
        "rpc_factory": rpc_factory,
        "wait_for_confirmation": settings.wait_for_confirmation,
        "confirmation_timeout": settings.confirmation_timeout,
    }
    sponsorship = create_sponsorship_coordinator(settings, registry, rpc_factory, session_factory)

    dispatcher = TransferDispatcher(
        registry=registry,
        native_executor=NativeTransferExecutor(**executor_options),
        token_executor=TokenTransferExecutor(**executor_options),
        ledger_executor=LedgerTransferExecutor(
            ledger, require_access_key=settings.ledger_require_access_key
        ),
        sponsorship=sponsorship,
    )
    balances = BalanceService(
        registry,
        ledger,
        rpc_factory,
        explorer_api_key=settings.get_explorer_api_key,
        retry_attempts=settings.balance_retry_attempts,
        retry_backoff=settings.balance_retry_backoff,
        http_timeout=settings.rpc_timeout,
    )

    return TransferServices(
        settings=settings,
        registry=registry,
        ledger=ledger,
        dispatcher=dispatcher,
        balances=balances,
        sponsorship=sponsorship,
    )
