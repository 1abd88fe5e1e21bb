"""Client for the donation storage service and the settlement recorder."""

from typing import Optional

import httpx

from tribute.config import Settings, get_settings
from tribute.errors import StorageError
from tribute.logger import configure_logger
from tribute.models.donation import DonationCreate, DonationRecord

logger = configure_logger(__name__)


class DonationApiClient:
    """HTTP client for the /donations endpoints."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DonationApiClient":
        settings = settings or get_settings()
        return cls(
            settings.donation_api_url,
            timeout=settings.donation_api_timeout_seconds
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "Donation API unreachable",
                extra={"url": url, "error": str(e)}
            )
            raise StorageError(str(e), recoverable=True) from e

        if response.status_code >= 500:
            raise StorageError(
                f"storage fault {response.status_code}: {response.text}",
                recoverable=True
            )
        if response.status_code >= 400:
            raise StorageError(
                f"rejected {response.status_code}: {response.text}",
                recoverable=False
            )
        return response

    async def save_donation(self, donation: DonationCreate) -> DonationRecord:
        response = await self._request(
            "POST", "/donations", json=donation.model_dump()
        )
        return DonationRecord(**response.json())

    async def _list(self, path: str) -> list[DonationRecord]:
        response = await self._request("GET", path)
        return [DonationRecord(**d) for d in response.json()]

    async def get_all_donations(self) -> list[DonationRecord]:
        return await self._list("/donations")

    async def get_donations_by_recipient(self, username: str) -> list[DonationRecord]:
        return await self._list(f"/donations/recipient/{username}")

    async def get_donations_by_donor(self, address: str) -> list[DonationRecord]:
        return await self._list(f"/donations/donor/{address}")


class SettlementRecorder:
    """Persists confirmed transfers; safe to call again for the same transfer."""

    def __init__(self, client: DonationApiClient):
        self.client = client

    async def record_donation(self, donation: DonationCreate) -> DonationRecord:
        record = await self.client.save_donation(donation)
        logger.info(
            "Settlement recorded",
            extra={
                "donation_id": record.id,
                "transaction_hash": record.transaction_hash,
            }
        )
        return record
