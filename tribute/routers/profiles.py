"""Profiles router: Ethos lookups with donation eligibility."""

import httpx
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import AsyncIterator, List

from tribute.config import get_settings
from tribute.models.profile import ProfileWithEligibility, RecipientCandidate
from tribute.services.eligibility import evaluate_eligibility
from tribute.services.notifications import build_share_link
from tribute.services.reputation import EthosClient

router = APIRouter(prefix="/profiles", tags=["Profiles"])


async def get_ethos_client() -> AsyncIterator[EthosClient]:
    client = EthosClient.from_settings()
    try:
        yield client
    finally:
        await client.aclose()


@router.get("/top", response_model=List[RecipientCandidate])
async def get_top_profiles(
    limit: int = Query(50, ge=1, le=100),
    ethos: EthosClient = Depends(get_ethos_client)
):
    """Highest-credibility Ethos profiles above the listing threshold."""
    try:
        return await ethos.list_top_profiles(limit=limit)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"Ethos unavailable: {e}")


@router.get("/{identifier}", response_model=ProfileWithEligibility)
async def get_profile(
    identifier: str,
    ethos: EthosClient = Depends(get_ethos_client)
):
    """Profile by username, profile id or wallet address, with donation eligibility."""
    try:
        profile = await ethos.get_profile(identifier)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"Ethos unavailable: {e}")

    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")

    settings = get_settings()
    eligibility = evaluate_eligibility(profile, settings.donation_min_score)

    return ProfileWithEligibility(
        profile=profile,
        eligibility=eligibility,
        donatable=eligibility.donatable,
        share_link=build_share_link(settings.public_app_url, profile.username)
    )
