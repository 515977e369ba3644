"""
Profile routes.
Lists the configured credential profiles without their secrets.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from bulkdesk.dependencies import get_profile_store
from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.services.profile_store import ProfileStore, ProfileStoreError

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["profiles"])


@router.get("/profiles")
async def list_profiles(profile_store: ProfileStore = Depends(get_profile_store)) -> list[dict]:
    """Public view of every profile: credentials are never returned."""
    try:
        return profile_store.public_profiles()
    except ProfileStoreError as e:
        logger.error("Could not load profiles", path=str(e.path), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not load profiles.",
        ) from e
