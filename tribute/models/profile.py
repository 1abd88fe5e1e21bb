"""Reputation profile models and user key parsing."""

from enum import Enum
from pydantic import BaseModel
from typing import Literal, Optional, Union

SOCIAL_SCHEMES = frozenset(
    {"service", "twitter", "x", "github", "discord", "farcaster", "telegram"}
)


class AddressKey(BaseModel):
    """A wallet address linked to the profile."""
    kind: Literal["address"] = "address"
    address: str


class SocialHandleKey(BaseModel):
    """A social account linked to the profile."""
    kind: Literal["social"] = "social"
    scheme: str
    handle: str


class UnknownKey(BaseModel):
    """A key we do not understand; kept for display only."""
    kind: Literal["unknown"] = "unknown"
    raw: str


UserKey = Union[AddressKey, SocialHandleKey, UnknownKey]


def parse_user_key(raw: str) -> UserKey:
    """Classify an Ethos userkey string such as ``address:0xabc``."""
    if not isinstance(raw, str) or ":" not in raw:
        return UnknownKey(raw=str(raw))

    scheme, _, value = raw.partition(":")
    scheme = scheme.strip().lower()
    value = value.strip()

    if not value:
        return UnknownKey(raw=raw)
    if scheme == "address":
        return AddressKey(address=value)
    if scheme in SOCIAL_SCHEMES:
        return SocialHandleKey(scheme=scheme, handle=value)
    return UnknownKey(raw=raw)


class RecipientCandidate(BaseModel):
    """A reputation profile that may receive donations."""
    id: str
    display_name: str
    username: str
    avatar_url: Optional[str] = None
    description: str = ""
    credibility_score: int = 0
    keys: list[str] = []
    profile_url: Optional[str] = None

    @property
    def parsed_keys(self) -> list[UserKey]:
        return [parse_user_key(k) for k in self.keys]


class IneligibilityReason(str, Enum):
    """Why a profile cannot receive a donation."""
    BELOW_THRESHOLD = "below_threshold"
    NO_WALLET = "no_wallet"


class Eligibility(BaseModel):
    """Result of checking a candidate against a credibility threshold."""
    eligible: bool
    settlement_address: Optional[str] = None
    minimum_score: int
    reason: Optional[IneligibilityReason] = None

    @property
    def donatable(self) -> bool:
        return self.eligible and self.settlement_address is not None


class ProfileWithEligibility(BaseModel):
    """Profile lookup response."""
    profile: RecipientCandidate
    eligibility: Eligibility
    donatable: bool
    share_link: str
