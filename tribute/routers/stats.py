"""Platform statistics router."""

from fastapi import APIRouter, Depends

from tribute.models.donation import DonationStats
from tribute.routers.donations import STORAGE_ERRORS, storage_fault
from tribute.services.donations import (
    DonationRepository, donation_stats, get_donation_repository
)

router = APIRouter(prefix="/stats", tags=["Stats"])


@router.get("", response_model=DonationStats)
async def get_stats(
    repository: DonationRepository = Depends(get_donation_repository)
):
    """Donation totals and top recipients by amount."""
    try:
        return donation_stats(repository)
    except STORAGE_ERRORS as e:
        raise storage_fault(e)
