"""Donation ledger models."""

from enum import Enum
from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List


class DonationStatus(str, Enum):
    """Donation record status."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DonationCreate(BaseModel):
    """Payload to record a settled donation.

    Required fields are checked by the router so a missing one answers 400.
    """
    donor_address: Optional[str] = None
    recipient_username: Optional[str] = None
    recipient_avatar: Optional[str] = None
    amount: Optional[str] = None
    transaction_hash: Optional[str] = None


class DonationRecord(BaseModel):
    """Donation record from the ledger."""
    id: str
    donor_address: str
    recipient_username: str
    recipient_avatar: Optional[str] = None
    amount: str
    timestamp: int  # ms since epoch
    transaction_hash: Optional[str] = None
    status: DonationStatus = DonationStatus.COMPLETED
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecipientTotal(BaseModel):
    """Aggregate donations for one recipient."""
    recipient_username: str
    count: int
    total: float


class DonationStats(BaseModel):
    """Platform-wide donation statistics."""
    total_donations: int
    total_amount: float
    top_recipients: List[RecipientTotal]


class DuplicateGroup(BaseModel):
    """Records sharing donor, recipient and amount."""
    donation: str
    count: int
    record_ids: List[str]


class DuplicateReport(BaseModel):
    """Audit of possibly duplicated ledger entries."""
    total_donations: int
    unique_donations: int
    duplicate_groups: int
    details: List[DuplicateGroup]
