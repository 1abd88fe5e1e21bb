"""Donations router: the settlement ledger."""

import httpx
from fastapi import APIRouter, HTTPException, Depends, Response
from typing import List
from postgrest.exceptions import APIError

from tribute.config import get_settings
from tribute.logger import configure_logger
from tribute.models.donation import DonationCreate, DonationRecord, DuplicateReport
from tribute.services.donations import (
    DonationRepository, create_donation, find_duplicates,
    get_donation_repository, list_donations
)

logger = configure_logger(__name__)

router = APIRouter(prefix="/donations", tags=["Donations"])

STORAGE_ERRORS = (APIError, httpx.HTTPError)


def storage_fault(e: Exception) -> HTTPException:
    logger.error("Donation storage fault", extra={"error": str(e)})
    return HTTPException(status_code=500, detail=f"Storage error: {e}")


@router.post("", response_model=DonationRecord, status_code=201)
async def record_donation(
    data: DonationCreate,
    response: Response,
    repository: DonationRepository = Depends(get_donation_repository)
):
    """Record a settled donation. Repeating the same donation returns the stored record."""
    if not data.donor_address or not data.recipient_username or not data.amount:
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        record, created = create_donation(repository, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except STORAGE_ERRORS as e:
        raise storage_fault(e)

    if not created:
        response.status_code = 200

    return record


@router.get("", response_model=List[DonationRecord])
async def get_recent_donations(
    repository: DonationRepository = Depends(get_donation_repository)
):
    """Public feed of the most recent completed donations."""
    try:
        return list_donations(repository, limit=get_settings().donations_feed_limit)
    except STORAGE_ERRORS as e:
        raise storage_fault(e)


@router.get("/duplicates", response_model=DuplicateReport)
async def check_duplicates(
    repository: DonationRepository = Depends(get_donation_repository)
):
    """Audit groups of donations sharing donor, recipient and amount."""
    try:
        return find_duplicates(repository)
    except STORAGE_ERRORS as e:
        raise storage_fault(e)


@router.get("/recipient/{username}", response_model=List[DonationRecord])
async def get_donations_by_recipient(
    username: str,
    repository: DonationRepository = Depends(get_donation_repository)
):
    """Completed donations received by a profile."""
    try:
        return list_donations(repository, recipient_username=username)
    except STORAGE_ERRORS as e:
        raise storage_fault(e)


@router.get("/donor/{address}", response_model=List[DonationRecord])
async def get_donations_by_donor(
    address: str,
    repository: DonationRepository = Depends(get_donation_repository)
):
    """Completed donations sent from a wallet."""
    try:
        return list_donations(repository, donor_address=address)
    except STORAGE_ERRORS as e:
        raise storage_fault(e)
