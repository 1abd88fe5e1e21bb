import pytest

from tribute.models.profile import (
    AddressKey, IneligibilityReason, RecipientCandidate, SocialHandleKey,
    UnknownKey, parse_user_key
)
from tribute.services.eligibility import evaluate_eligibility, settlement_address


def make_candidate(score, keys):
    return RecipientCandidate(
        id="1", display_name="Alice", username="alice",
        credibility_score=score, keys=keys
    )


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("address:0xabc", AddressKey(address="0xabc")),
        ("twitter:alice", SocialHandleKey(scheme="twitter", handle="alice")),
        ("service:x.com:123", SocialHandleKey(scheme="service", handle="x.com:123")),
        ("profileId:42", UnknownKey(raw="profileId:42")),
        ("address:", UnknownKey(raw="address:")),
        ("no-scheme", UnknownKey(raw="no-scheme")),
    ],
)
def test_parse_user_key(raw, expected):
    assert parse_user_key(raw) == expected


def test_eligible_with_address():
    c = make_candidate(1500, ["twitter:alice", "address:0xFIRST", "address:0xSECOND"])
    result = evaluate_eligibility(c, 1400)

    assert result.eligible
    assert result.donatable
    assert result.settlement_address == "0xFIRST"
    assert result.reason is None


def test_threshold_is_inclusive():
    result = evaluate_eligibility(make_candidate(1400, ["address:0xabc"]), 1400)
    assert result.donatable


@pytest.mark.parametrize("keys", [[], ["address:0xabc"], ["github:alice"]])
def test_below_threshold_regardless_of_keys(keys):
    result = evaluate_eligibility(make_candidate(800, keys), 1400)

    assert not result.donatable
    assert result.reason == IneligibilityReason.BELOW_THRESHOLD


def test_no_wallet():
    result = evaluate_eligibility(make_candidate(1800, ["twitter:alice", "address:"]), 1400)

    assert result.eligible
    assert not result.donatable
    assert result.settlement_address is None
    assert result.reason == IneligibilityReason.NO_WALLET


def test_evaluation_is_repeatable():
    c = make_candidate(1600, ["address:0xabc"])
    assert evaluate_eligibility(c, 1400) == evaluate_eligibility(c, 1400)
    assert settlement_address(c) == "0xabc"
