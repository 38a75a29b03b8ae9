"""Shared route dependencies."""

from fastapi import Header, HTTPException, Request

from nullwallet.config import get_settings
from nullwallet.errors import SponsorshipUnavailable
from nullwallet.services.factory import TransferServices


def get_services(request: Request) -> TransferServices:
    services = request.app.state.services
    if services is None:
        raise HTTPException(status_code=503, detail="Services are not initialized")
    return services


def get_sponsorship(request: Request):
    services = get_services(request)
    if services.sponsorship is None:
        raise SponsorshipUnavailable("Gas sponsorship service is not available")
    return services.sponsorship


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token."""
    settings = get_settings()
    if not settings.admin_token or x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")
    return True
