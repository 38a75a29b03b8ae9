"""NullNet ledger wallet endpoints."""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from nullwallet.api.deps import get_services, require_admin_token
from nullwallet.chains import LEDGER_CHAIN_ID
from nullwallet.services.factory import TransferServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/nullnet")


class CreateWalletRequest(BaseModel):
    user_id: Optional[str] = None


class TopUpRequest(BaseModel):
    asset: str
    amount: Union[str, int, float]


@router.post("/wallets")
async def create_wallet(
    request: CreateWalletRequest,
    services: TransferServices = Depends(get_services),
) -> dict:
    """Open a ledger wallet. The access key is only returned here."""
    address, access_key = await services.ledger.open_account(request.user_id)
    return {
        "success": True,
        "address": address,
        "accessKey": access_key,
        "message": "Store the access key now; it cannot be recovered",
    }


@router.get("/users/{user_id}/wallets")
async def list_user_wallets(
    user_id: str,
    services: TransferServices = Depends(get_services),
) -> dict:
    wallets = await services.ledger.list_accounts(user_id)
    return {"success": True, "userId": user_id, "wallets": wallets}


@router.get("/wallets/{address}")
async def get_wallet(
    address: str,
    services: TransferServices = Depends(get_services),
) -> dict:
    """Balances and recent transfers of a ledger wallet."""
    if not await services.ledger.account_exists(address):
        raise HTTPException(status_code=404, detail=f"Unknown NullNet wallet: {address}")
    balances = await services.ledger.get_balances(address)
    return {
        "success": True,
        "address": address,
        "balances": {asset: str(amount) for asset, amount in balances.items()},
        "transfers": await services.ledger.get_transfers(address, limit=20),
    }


@router.post("/wallets/{address}/top-up", dependencies=[Depends(require_admin_token)])
async def top_up_wallet(
    address: str,
    request: TopUpRequest,
    services: TransferServices = Depends(get_services),
) -> dict:
    """Credit a ledger wallet (admin only)."""
    services.registry.validate_chain_and_token(LEDGER_CHAIN_ID, request.asset)
    transfer_id = await services.ledger.top_up(address, request.asset, request.amount)
    balance = await services.ledger.get_balance(address, request.asset)
    return {
        "success": True,
        "address": address,
        "asset": request.asset.upper(),
        "transferId": transfer_id,
        "balance": str(balance),
    }
