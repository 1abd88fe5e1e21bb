import httpx
import pytest

from conftest import DONOR
from tribute.errors import StorageError
from tribute.models.donation import DonationCreate
from tribute.services.recorder import DonationApiClient, SettlementRecorder


def donation():
    return DonationCreate(
        donor_address=DONOR,
        recipient_username="hallenjayArt",
        amount="50",
        transaction_hash="0xHASH1",
    )


def api_client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DonationApiClient("http://ledger/", client=http)


@pytest.mark.asyncio
async def test_record_posts_to_ledger():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(201, json={
            "id": "don-1", "donor_address": DONOR, "recipient_username": "hallenjayArt",
            "amount": "50", "timestamp": 1700000000000, "transaction_hash": "0xHASH1",
            "status": "completed",
        })

    record = await SettlementRecorder(api_client(handler)).record_donation(donation())

    assert record.id == "don-1"
    assert seen[0].method == "POST"
    assert str(seen[0].url) == "http://ledger/donations"


@pytest.mark.asyncio
async def test_record_is_idempotent_through_api(asgi_http, repository):
    recorder = SettlementRecorder(DonationApiClient("http://test", client=asgi_http))

    first = await recorder.record_donation(donation())
    second = await recorder.record_donation(donation())

    assert first.id == second.id
    assert len(repository.rows) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status, recoverable", [(500, True), (503, True), (400, False)])
async def test_http_errors_map_to_storage_error(status, recoverable):
    recorder = SettlementRecorder(api_client(lambda request: httpx.Response(status, text="nope")))

    with pytest.raises(StorageError) as exc:
        await recorder.record_donation(donation())

    assert exc.value.recoverable is recoverable


@pytest.mark.asyncio
async def test_transport_error_is_recoverable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(StorageError) as exc:
        await SettlementRecorder(api_client(handler)).record_donation(donation())

    assert exc.value.recoverable


@pytest.mark.asyncio
async def test_read_helpers(asgi_http):
    client = DonationApiClient("http://test", client=asgi_http)
    await client.save_donation(donation())

    assert len(await client.get_all_donations()) == 1
    assert len(await client.get_donations_by_recipient("hallenjayArt")) == 1
    assert len(await client.get_donations_by_donor(DONOR)) == 1
    assert await client.get_donations_by_recipient("nobody") == []
