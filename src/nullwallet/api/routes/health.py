"""Health check endpoints."""

from fastapi import APIRouter, Depends

from nullwallet import __version__
from nullwallet.api.deps import get_services
from nullwallet.services.factory import TransferServices

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "nullwallet"}


@router.get("/health/detailed")
async def detailed_health(services: TransferServices = Depends(get_services)):
    """Detailed health check with configuration info."""
    settings = services.settings
    sponsorship = services.sponsorship
    return {
        "status": "healthy",
        "service": "nullwallet",
        "version": __version__,
        "chains": [chain.id for chain in services.registry.list_enabled_chains()],
        "sponsorship": {
            "available": sponsorship is not None,
            "chains": sponsorship.available_chains() if sponsorship else [],
        },
        "config": settings.get_safe_dict(),
    }
