"""Donation ledger: idempotent writes and read models over Supabase."""

import hashlib
import time
from collections import defaultdict
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

from postgrest.exceptions import APIError
from supabase import Client

from tribute.config import get_settings
from tribute.database import get_supabase
from tribute.logger import configure_logger
from tribute.models.donation import (
    DonationCreate, DonationRecord, DonationStats, DonationStatus,
    DuplicateGroup, DuplicateReport, RecipientTotal
)

logger = configure_logger(__name__)

UNIQUE_VIOLATION = "23505"


class DuplicateDonationError(Exception):
    """Insert lost a race against an identical donation."""


class DonationRepository(Protocol):
    """Row-level access to the donations table."""

    def find_by_dedupe_key(self, dedupe_key: str) -> Optional[dict]:
        ...

    def find_unhashed_since(
        self, recipient_username: str, amount: str, since_ms: int
    ) -> list[dict]:
        ...

    def insert(self, row: dict) -> dict:
        ...

    def list_completed(
        self,
        limit: Optional[int] = None,
        recipient_username: Optional[str] = None,
        donor_address: Optional[str] = None
    ) -> list[dict]:
        ...


class SupabaseDonationRepository:
    """DonationRepository on a Supabase table with a unique dedupe_key column."""

    def __init__(self, client: Client, table: str = "donations"):
        self.client = client
        self.table = table

    def find_by_dedupe_key(self, dedupe_key: str) -> Optional[dict]:
        result = self.client.table(self.table).select("*").eq(
            "dedupe_key", dedupe_key
        ).limit(1).execute()
        return result.data[0] if result.data else None

    def find_unhashed_since(
        self, recipient_username: str, amount: str, since_ms: int
    ) -> list[dict]:
        result = self.client.table(self.table).select("*").eq(
            "recipient_username", recipient_username
        ).eq("amount", amount).is_("transaction_hash", "null").gte(
            "timestamp", since_ms
        ).execute()
        return result.data or []

    def insert(self, row: dict) -> dict:
        try:
            result = self.client.table(self.table).insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateDonationError(row.get("dedupe_key")) from e
            raise
        return result.data[0]

    def list_completed(
        self,
        limit: Optional[int] = None,
        recipient_username: Optional[str] = None,
        donor_address: Optional[str] = None
    ) -> list[dict]:
        query = self.client.table(self.table).select("*").eq(
            "status", DonationStatus.COMPLETED.value
        )

        if recipient_username:
            query = query.eq("recipient_username", recipient_username)

        if donor_address:
            query = query.eq("donor_address", normalise_address(donor_address))

        query = query.order("timestamp", desc=True)
        if limit:
            query = query.limit(limit)

        return query.execute().data or []


def get_donation_repository() -> DonationRepository:
    """FastAPI dependency for the ledger."""
    settings = get_settings()
    return SupabaseDonationRepository(get_supabase(), settings.donations_table)


def normalise_address(address: str) -> str:
    """Stored and queried form of a wallet address."""
    return address.strip().lower()


def canonical_amount(amount: str) -> str:
    """Normalise decimal text so '50', '50.0' and '50.00' compare equal."""
    try:
        value = Decimal(amount.strip())
    except (InvalidOperation, AttributeError):
        raise ValueError(f"invalid amount: {amount!r}")

    if not value.is_finite() or value <= 0:
        raise ValueError(f"invalid amount: {amount!r}")

    return format(value.normalize(), "f")


def dedupe_key(
    donor_address: str,
    recipient_username: str,
    amount: str,
    transaction_hash: str
) -> str:
    """Identity of a confirmed donation."""
    identity = "|".join([
        normalise_address(donor_address),
        recipient_username.strip(),
        canonical_amount(amount),
        transaction_hash.strip().lower(),
    ])
    return hashlib.sha256(identity.encode()).hexdigest()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_record(row: dict) -> DonationRecord:
    return DonationRecord(**{**row, "id": str(row["id"])})


def create_donation(
    repository: DonationRepository,
    data: DonationCreate,
    window_seconds: Optional[int] = None
) -> tuple[DonationRecord, bool]:
    """
    Record a donation unless the same logical donation is already stored.

    Returns (record, created). With a transaction hash the identity is
    (donor, recipient, amount, hash). Without one, a hash-less record for the
    same donor, recipient and amount inside the window counts as the same.
    """
    if window_seconds is None:
        window_seconds = get_settings().degraded_dedupe_window_seconds

    amount = canonical_amount(data.amount)
    transaction_hash = (data.transaction_hash or "").strip() or None
    now = _now_ms()

    key = None
    if transaction_hash:
        key = dedupe_key(
            data.donor_address, data.recipient_username, amount, transaction_hash
        )
        existing = repository.find_by_dedupe_key(key)
        if existing:
            logger.info("Duplicate donation ignored", extra={"dedupe_key": key})
            return _to_record(existing), False
    else:
        since = now - window_seconds * 1000
        donor = normalise_address(data.donor_address)
        for row in repository.find_unhashed_since(data.recipient_username, amount, since):
            if row["donor_address"].strip().lower() == donor:
                logger.info(
                    "Duplicate unhashed donation ignored",
                    extra={"donation_id": row["id"], "recipient": data.recipient_username}
                )
                return _to_record(row), False

    row = {
        "donor_address": normalise_address(data.donor_address),
        "recipient_username": data.recipient_username,
        "recipient_avatar": data.recipient_avatar,
        "amount": amount,
        "timestamp": now,
        "transaction_hash": transaction_hash,
        "status": DonationStatus.COMPLETED.value,
        "dedupe_key": key,
    }

    try:
        inserted = repository.insert(row)
    except DuplicateDonationError:
        existing = repository.find_by_dedupe_key(key)
        if not existing:
            raise
        return _to_record(existing), False

    logger.info(
        "Donation recorded",
        extra={
            "donation_id": inserted["id"],
            "recipient": data.recipient_username,
            "amount": amount,
            "transaction_hash": transaction_hash,
        }
    )
    return _to_record(inserted), True


def list_donations(
    repository: DonationRepository,
    limit: Optional[int] = None,
    recipient_username: Optional[str] = None,
    donor_address: Optional[str] = None
) -> list[DonationRecord]:
    rows = repository.list_completed(
        limit=limit,
        recipient_username=recipient_username,
        donor_address=donor_address
    )
    return [_to_record(r) for r in rows]


def donation_stats(repository: DonationRepository, top: int = 10) -> DonationStats:
    """Totals over completed donations and the top recipients by amount."""
    rows = repository.list_completed()

    per_recipient: dict[str, list] = defaultdict(lambda: [0, Decimal(0)])
    total = Decimal(0)
    counted = 0
    for r in rows:
        try:
            amount = Decimal(canonical_amount(str(r.get("amount"))))
        except ValueError:
            logger.warning(
                "Skipping donation with unreadable amount",
                extra={"donation_id": r.get("id"), "amount": r.get("amount")}
            )
            continue
        counted += 1
        total += amount
        entry = per_recipient[r["recipient_username"]]
        entry[0] += 1
        entry[1] += amount

    ranked = sorted(per_recipient.items(), key=lambda kv: kv[1][1], reverse=True)

    return DonationStats(
        total_donations=counted,
        total_amount=float(total),
        top_recipients=[
            RecipientTotal(recipient_username=name, count=count, total=float(amount))
            for name, (count, amount) in ranked[:top]
        ]
    )


def find_duplicates(repository: DonationRepository) -> DuplicateReport:
    """Group completed donations by donor, recipient and amount."""
    rows = repository.list_completed()

    grouped: dict[str, list[str]] = defaultdict(list)
    for r in rows:
        key = f"{r['donor_address'].lower()}-{r['recipient_username']}-{r['amount']}"
        grouped[key].append(str(r["id"]))

    duplicates = [
        DuplicateGroup(donation=key, count=len(ids), record_ids=ids)
        for key, ids in grouped.items()
        if len(ids) > 1
    ]

    return DuplicateReport(
        total_donations=len(rows),
        unique_donations=len(grouped),
        duplicate_groups=len(duplicates),
        details=duplicates
    )
