"""Wallet transfer and balance endpoints."""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from nullwallet.api.deps import get_services, get_sponsorship
from nullwallet.errors import UnsupportedChain
from nullwallet.services.factory import TransferServices
from nullwallet.sponsorship.coordinator import GasSponsorshipCoordinator
from nullwallet.transfer.base import TransferResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallet")


# Request/Response models
class SendTokenRequest(BaseModel):
    """Transfer request. Field names are camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    amount: Union[str, int, float]
    receiver_wallet_address: str
    token_to_send: str
    sender_wallet_address: str
    sender_private_key: str
    chain_id: str
    use_gas_sponsorship: bool = False
    idempotency_key: Optional[str] = None
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None


class SendTokenResponse(BaseModel):
    success: bool
    message: str
    data: dict


def _transfer_response(result: TransferResult) -> SendTokenResponse:
    if result.gas_sponsored:
        message = f"Sent {result.amount} {result.token_symbol} with sponsored gas"
    else:
        message = f"Sent {result.amount} {result.token_symbol}"
    return SendTokenResponse(success=True, message=message, data=result.to_dict())


@router.post("/send-token", response_model=SendTokenResponse)
async def send_token(
    request: SendTokenRequest,
    services: TransferServices = Depends(get_services),
) -> SendTokenResponse:
    """Send a native, ERC-20 or NullNet token."""
    result = await services.dispatcher.send_token(
        amount=request.amount,
        receiver_address=request.receiver_wallet_address,
        token_symbol=request.token_to_send,
        sender_address=request.sender_wallet_address,
        sender_secret=request.sender_private_key,
        chain_id=request.chain_id,
        sponsorship_requested=request.use_gas_sponsorship,
        idempotency_key=request.idempotency_key,
        gas_limit=request.gas_limit,
        gas_price=request.gas_price,
    )
    return _transfer_response(result)


@router.post("/send-token-sponsored", response_model=SendTokenResponse)
async def send_token_sponsored(
    request: SendTokenRequest,
    services: TransferServices = Depends(get_services),
) -> SendTokenResponse:
    """Send an ERC-20 token with gas paid by the sponsor."""
    result = await services.dispatcher.send_token_sponsored(
        amount=request.amount,
        receiver_address=request.receiver_wallet_address,
        token_symbol=request.token_to_send,
        sender_address=request.sender_wallet_address,
        sender_secret=request.sender_private_key,
        chain_id=request.chain_id,
        idempotency_key=request.idempotency_key,
        gas_limit=request.gas_limit,
        gas_price=request.gas_price,
    )
    return _transfer_response(result)


@router.get("/balance/{chain_id}/{wallet_address}")
async def get_native_balance(
    chain_id: str,
    wallet_address: str,
    services: TransferServices = Depends(get_services),
) -> dict:
    """Native currency balance."""
    chain = services.registry.get_chain(chain_id)
    if chain is None:
        raise UnsupportedChain(f"Chain {chain_id} is not supported")
    balance = await services.balances.get_native_balance(chain_id, wallet_address)
    return {
        "success": True,
        "chainId": chain_id,
        "address": wallet_address,
        "symbol": chain.native_currency.symbol,
        "balance": str(balance),
    }


@router.get("/balance/{chain_id}/{token_symbol}/{wallet_address}")
async def get_token_balance(
    chain_id: str,
    token_symbol: str,
    wallet_address: str,
    services: TransferServices = Depends(get_services),
) -> dict:
    """Balance of one token."""
    balance = await services.balances.get_token_balance(chain_id, token_symbol, wallet_address)
    return {
        "success": True,
        "chainId": chain_id,
        "address": wallet_address,
        "symbol": token_symbol.upper(),
        "balance": str(balance),
    }


@router.get("/chains")
async def list_chains(services: TransferServices = Depends(get_services)) -> dict:
    """Enabled chains and whether gas sponsorship is offered on them."""
    sponsorship = services.sponsorship
    return {
        "success": True,
        "chains": [
            {
                "id": chain.id,
                "name": chain.display_name,
                "network": chain.network,
                "chainId": chain.numeric_chain_id,
                "nativeCurrency": {
                    "name": chain.native_currency.name,
                    "symbol": chain.native_currency.symbol,
                    "decimals": chain.native_currency.decimals,
                },
                "explorerUrl": chain.explorer_url,
                "gasSponsorship": bool(sponsorship and sponsorship.is_available(chain.id)),
            }
            for chain in services.registry.list_enabled_chains()
        ],
    }


@router.get("/chains/{chain_id}/tokens")
async def list_chain_tokens(
    chain_id: str,
    services: TransferServices = Depends(get_services),
) -> dict:
    """Tokens supported on one chain."""
    if services.registry.get_chain(chain_id) is None:
        raise UnsupportedChain(f"Chain {chain_id} is not supported")
    return {"success": True, "chainId": chain_id, "tokens": services.registry.get_chain_tokens(chain_id)}


@router.get("/sponsorship/{chain_id}")
async def get_sponsor_info(
    chain_id: str,
    sponsorship: GasSponsorshipCoordinator = Depends(get_sponsorship),
) -> dict:
    """Escrow state of the configured sponsor."""
    info = await sponsorship.get_sponsor_info(chain_id)
    return {"success": True, "chainId": chain_id, "sponsor": info.to_dict()}


@router.get("/sponsorship/{chain_id}/{sponsored_tx_hash}")
async def get_sponsored_transaction(
    chain_id: str,
    sponsored_tx_hash: str,
    sponsorship: GasSponsorshipCoordinator = Depends(get_sponsorship),
) -> dict:
    """Contract record of one sponsored transaction."""
    record = await sponsorship.get_sponsored_transaction(chain_id, sponsored_tx_hash)
    return {"success": True, "chainId": chain_id, "transaction": record.to_dict()}
