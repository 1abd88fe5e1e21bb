"""Ethos reputation network client."""

import asyncio
import re
from typing import Any, Optional

import httpx

from tribute.config import Settings, get_settings
from tribute.logger import configure_logger
from tribute.models.profile import RecipientCandidate

logger = configure_logger(__name__)

SEARCH_KEYWORDS = [
    "eth", "bit", "defi", "nft", "web3", "dao",
    "token", "smart", "chain", "swap",
]

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def to_candidate(user: dict) -> RecipientCandidate:
    """Map an Ethos user payload to a RecipientCandidate."""
    username = user.get("username") or ""
    profile_id = user.get("profileId") or user.get("id")
    links = user.get("links") or {}

    return RecipientCandidate(
        id=str(profile_id) if profile_id is not None else username,
        display_name=user.get("displayName") or username,
        username=username,
        avatar_url=user.get("avatarUrl")
        or f"https://api.dicebear.com/7.x/avataaars/svg?seed={username}",
        description=user.get("description") or "",
        credibility_score=int(user.get("score") or 0),
        keys=[k for k in (user.get("userkeys") or []) if isinstance(k, str)],
        profile_url=links.get("profile") or f"https://ethos.network/user/{username}"
    )


def _listable(user: dict, minimum_score: int) -> bool:
    return (
        (user.get("score") or 0) >= minimum_score
        and user.get("status") == "ACTIVE"
        and bool(user.get("username"))
    )


class EthosClient:
    """Read-only access to Ethos profiles."""

    def __init__(
        self,
        base_url: str,
        client_header: str = "TokenTribute/1.0.0",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        search_delay: float = 0.3
    ):
        self.base_url = base_url.rstrip("/")
        self.search_delay = search_delay
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {"X-Ethos-Client": client_header}

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EthosClient":
        settings = settings or get_settings()
        return cls(
            settings.ethos_api_base,
            client_header=settings.ethos_client_header,
            timeout=settings.ethos_timeout_seconds
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Optional[Any]:
        """JSON body, or None when Ethos answers 404."""
        response = await self._client.request(
            method, f"{self.base_url}{path}", headers=self._headers, **kwargs
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def get_profile(self, identifier: str) -> Optional[RecipientCandidate]:
        """Look up a profile by wallet address, numeric id or username."""
        identifier = identifier.strip()
        if _ADDRESS_RE.match(identifier):
            path = f"/user/by/address/{identifier}"
        elif identifier.isdigit():
            path = f"/user/{identifier}"
        else:
            path = f"/user/by/username/{identifier}"

        user = await self._request("GET", path)
        if not user:
            return None
        return to_candidate(user)

    async def search_users(self, keyword: str, limit: int = 50) -> list[dict]:
        if len(keyword) < 2:
            return []
        data = await self._request(
            "GET", "/users/search",
            params={"query": keyword, "limit": limit, "offset": 0}
        )
        values = (data or {}).get("values")
        return values if isinstance(values, list) else []

    async def fetch_users_by_ids(self, user_ids: list[int]) -> list[dict]:
        data = await self._request("POST", "/users/by/ids", json={"userIds": user_ids})
        return data if isinstance(data, list) else []

    async def list_top_profiles(
        self,
        limit: int = 50,
        minimum_score: Optional[int] = None
    ) -> list[RecipientCandidate]:
        """
        Best-effort snapshot of high-credibility profiles, highest score first.

        Aggregates keyword searches; if none returns anything, falls back to
        fetching the first `limit` user ids in one batch.
        """
        if minimum_score is None:
            minimum_score = get_settings().listing_min_score

        users: dict[str, dict] = {}
        any_results = False

        for keyword in SEARCH_KEYWORDS:
            try:
                results = await self.search_users(keyword)
            except httpx.HTTPError as e:
                logger.warning(
                    "Ethos search failed",
                    extra={"keyword": keyword, "error": str(e)}
                )
                continue

            any_results = any_results or bool(results)
            for user in results:
                if _listable(user, minimum_score):
                    users[user["username"]] = user

            if self.search_delay:
                await asyncio.sleep(self.search_delay)

        if not any_results:
            logger.info("Ethos search empty, fetching users by id")
            for user in await self.fetch_users_by_ids(list(range(1, limit + 1))):
                if _listable(user, minimum_score):
                    users[user["username"]] = user

        ranked = sorted(users.values(), key=lambda u: u.get("score") or 0, reverse=True)
        return [to_candidate(u) for u in ranked[:limit]]
