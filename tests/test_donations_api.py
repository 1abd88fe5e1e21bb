from postgrest.exceptions import APIError

from conftest import DONOR


def body(**overrides):
    data = {
        "donor_address": DONOR,
        "recipient_username": "hallenjayArt",
        "recipient_avatar": "https://example.com/a.png",
        "amount": "50",
        "transaction_hash": "0xHASH1",
    }
    data.update(overrides)
    return data


def test_create_donation_returns_201(client):
    response = client.post("/donations", json=body())

    assert response.status_code == 201
    donation = response.json()
    assert donation["amount"] == "50"
    assert donation["transaction_hash"] == "0xHASH1"
    assert donation["status"] == "completed"


def test_repeat_post_returns_existing_record(client, repository):
    first = client.post("/donations", json=body())
    second = client.post("/donations", json=body())

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert len(repository.rows) == 1


def test_missing_fields_returns_400(client):
    for field in ("donor_address", "recipient_username", "amount"):
        response = client.post("/donations", json=body(**{field: None}))
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required fields"


def test_non_numeric_amount_returns_400(client):
    response = client.post("/donations", json=body(amount="lots"))
    assert response.status_code == 400


def test_storage_fault_returns_500(client, repository):
    repository.fail_with = APIError({"message": "connection reset", "code": "08006"})

    response = client.post("/donations", json=body())
    assert response.status_code == 500

    response = client.get("/donations")
    assert response.status_code == 500


def test_feeds(client):
    client.post("/donations", json=body(transaction_hash="0x1"))
    client.post("/donations", json=body(transaction_hash="0x2", recipient_username="bob"))
    client.post("/donations", json=body(transaction_hash="0x3", donor_address="0x2222222222222222222222222222222222222222"))

    assert len(client.get("/donations").json()) == 3
    assert [d["recipient_username"] for d in client.get("/donations/recipient/bob").json()] == ["bob"]
    assert len(client.get(f"/donations/donor/{DONOR.upper()}").json()) == 2


def test_stats_endpoint(client):
    client.post("/donations", json=body(transaction_hash="0x1", amount="10"))
    client.post("/donations", json=body(transaction_hash="0x2", amount="2.5"))

    stats = client.get("/stats").json()
    assert stats["total_donations"] == 2
    assert stats["total_amount"] == 12.5
    assert stats["top_recipients"][0]["recipient_username"] == "hallenjayArt"


def test_duplicates_endpoint(client):
    client.post("/donations", json=body(transaction_hash="0x1"))
    client.post("/donations", json=body(transaction_hash="0x2"))

    report = client.get("/donations/duplicates").json()
    assert report["duplicate_groups"] == 1
    assert report["details"][0]["count"] == 2


def test_health(client):
    assert client.get("/").json()["status"] == "healthy"
    assert client.get("/health").json()["donation_min_score"] == 1400


def test_donor_feed_does_not_treat_percent_as_wildcard(client):
    client.post("/donations", json=body(transaction_hash="0x1"))

    response = client.get("/donations/donor/%25")

    assert response.status_code == 200
    assert response.json() == []


def test_stats_survive_a_corrupt_row(client, repository):
    client.post("/donations", json=body(transaction_hash="0x1", amount="10"))
    repository.rows.append({
        "id": "legacy", "donor_address": DONOR, "recipient_username": "bob",
        "amount": None, "timestamp": 1, "transaction_hash": None,
        "status": "completed", "dedupe_key": None,
    })

    response = client.get("/stats")

    assert response.status_code == 200
    assert response.json()["total_donations"] == 1
