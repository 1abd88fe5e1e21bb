"""Credibility gate for donations."""

from typing import Optional

from tribute.models.profile import (
    AddressKey, Eligibility, IneligibilityReason, RecipientCandidate
)


def settlement_address(candidate: RecipientCandidate) -> Optional[str]:
    """First linked wallet address in key order, or None."""
    for key in candidate.parsed_keys:
        if isinstance(key, AddressKey):
            return key.address
    return None


def evaluate_eligibility(
    candidate: RecipientCandidate,
    minimum_score: int
) -> Eligibility:
    """
    Decide whether a candidate can receive a donation.

    A candidate below the threshold reports BELOW_THRESHOLD whether or not
    a wallet is linked.
    """
    eligible = candidate.credibility_score >= minimum_score
    address = settlement_address(candidate)

    reason = None
    if not eligible:
        reason = IneligibilityReason.BELOW_THRESHOLD
    elif address is None:
        reason = IneligibilityReason.NO_WALLET

    return Eligibility(
        eligible=eligible,
        settlement_address=address,
        minimum_score=minimum_score,
        reason=reason
    )
