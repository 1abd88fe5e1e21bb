"""
Pytest fixtures: in-memory ledger, fake wallet and chain watcher, API clients.
"""

from typing import Optional

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from tribute.main import app
from tribute.models.profile import RecipientCandidate
from tribute.models.settlement import ConfirmationResult, ConfirmationStatus
from tribute.services.donations import DuplicateDonationError, get_donation_repository

DONOR = "0x1111111111111111111111111111111111111111"
RECIPIENT_WALLET = "0xD1C7bf8990FbA07F9C8B57529e3D9753D00A73aA"


class InMemoryDonationRepository:
    """DonationRepository backed by a list, enforcing unique dedupe keys."""

    def __init__(self):
        self.rows: list[dict] = []
        self.fail_with: Optional[Exception] = None
        self.inserts = 0

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def find_by_dedupe_key(self, dedupe_key):
        self._check()
        for row in self.rows:
            if row["dedupe_key"] == dedupe_key:
                return dict(row)
        return None

    def find_unhashed_since(self, recipient_username, amount, since_ms):
        self._check()
        return [
            dict(r) for r in self.rows
            if r["recipient_username"] == recipient_username
            and r["amount"] == amount
            and r["transaction_hash"] is None
            and r["timestamp"] >= since_ms
        ]

    def insert(self, row):
        self._check()
        if row.get("dedupe_key") and any(
            r["dedupe_key"] == row["dedupe_key"] for r in self.rows
        ):
            raise DuplicateDonationError(row["dedupe_key"])
        self.inserts += 1
        stored = {**row, "id": f"don-{self.inserts}"}
        self.rows.append(stored)
        return dict(stored)

    def list_completed(self, limit=None, recipient_username=None, donor_address=None):
        self._check()
        rows = [r for r in self.rows if r["status"] == "completed"]
        if recipient_username:
            rows = [r for r in rows if r["recipient_username"] == recipient_username]
        if donor_address:
            rows = [r for r in rows if r["donor_address"].lower() == donor_address.lower()]
        rows = sorted(rows, key=lambda r: r["timestamp"], reverse=True)
        if limit:
            rows = rows[:limit]
        return [dict(r) for r in rows]


class FakeWallet:
    """WalletProvider that records calls and returns a scripted hash or error."""

    def __init__(self, address: Optional[str] = DONOR, tx_hash: str = "0xHASH1", error: Optional[Exception] = None):
        self.address = address
        self.tx_hash = tx_hash
        self.error = error
        self.calls: list[tuple] = []

    def current_address(self):
        return self.address

    async def send_token_transfer(self, token_address, to, amount):
        self.calls.append((token_address, to, amount))
        if self.error is not None:
            raise self.error
        return self.tx_hash


class FakeWatcher:
    """ConfirmationWatcher returning a scripted status."""

    def __init__(self, status: ConfirmationStatus = ConfirmationStatus.CONFIRMED, error: Optional[BaseException] = None):
        self.status = status
        self.error = error
        self.calls: list[tuple] = []

    async def await_confirmation(self, transaction_hash, timeout):
        self.calls.append((transaction_hash, timeout))
        if self.error is not None:
            raise self.error
        return ConfirmationResult(status=self.status, transaction_hash=transaction_hash)


@pytest.fixture
def repository():
    return InMemoryDonationRepository()


@pytest.fixture
def client(repository):
    """FastAPI TestClient over the in-memory ledger."""
    app.dependency_overrides[get_donation_repository] = lambda: repository
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def asgi_http(repository):
    """httpx.AsyncClient routed straight into the app, for the recorder."""
    app.dependency_overrides[get_donation_repository] = lambda: repository
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def candidate():
    return RecipientCandidate(
        id="0",
        display_name="Hallenjay",
        username="hallenjayArt",
        avatar_url="https://api.dicebear.com/7.x/avataaars/svg?seed=hallenjayArt",
        credibility_score=1800,
        keys=[
            f"address:{RECIPIENT_WALLET}",
            "twitter:hallenjayArt",
            "github:jaytechent",
        ],
    )
