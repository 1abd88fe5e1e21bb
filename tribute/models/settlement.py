"""Transfer and settlement models."""

from enum import Enum
from pydantic import BaseModel
from typing import Optional

from tribute.models.donation import DonationRecord
from tribute.models.profile import Eligibility


class TransferRequest(BaseModel):
    """One on-chain transfer attempt."""
    recipient_address: str
    amount: str  # user-entered decimal text
    chain_id: int


class TransferState(str, Enum):
    """Submitter lifecycle."""
    IDLE = "idle"
    AWAITING_WALLET = "awaiting_wallet_confirmation"
    AWAITING_CHAIN = "awaiting_chain_confirmation"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class OutcomeStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why a broadcast or wallet step failed."""
    WALLET_REJECTED = "wallet_rejected"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    CHAIN_ERROR = "chain_error"
    REVERTED = "reverted"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    WATCH_STOPPED = "watch_stopped"


class TransferOutcome(BaseModel):
    """Where a transfer ended up.

    A failed outcome may still carry a transaction hash: after a timeout or
    when watching stopped, the transfer can confirm later out-of-band.
    """
    status: OutcomeStatus = OutcomeStatus.PENDING
    transaction_hash: Optional[str] = None
    failure: Optional[FailureReason] = None
    detail: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.status == OutcomeStatus.CONFIRMED


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    TIMED_OUT = "timed_out"


class ConfirmationResult(BaseModel):
    """What the chain watcher saw for a transaction hash."""
    status: ConfirmationStatus
    transaction_hash: str
    block_number: Optional[int] = None


class DonationResultStatus(str, Enum):
    """Terminal state of one donation attempt."""
    NOT_ELIGIBLE = "not_eligible"
    INVALID_AMOUNT = "invalid_amount"
    WALLET_NOT_CONNECTED = "wallet_not_connected"
    TRANSFER_FAILED = "transfer_failed"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    RECORDED = "recorded"
    RECORD_PENDING = "record_pending"


class DonationResult(BaseModel):
    """Combined on-chain and persistence outcome handed back to the UI."""
    status: DonationResultStatus
    message: str
    recipient_username: str
    amount: str
    eligibility: Optional[Eligibility] = None
    outcome: Optional[TransferOutcome] = None
    record: Optional[DonationRecord] = None
    error_kind: Optional[str] = None
    recoverable: bool = True
    donor_address: Optional[str] = None
    recipient_avatar: Optional[str] = None

    @property
    def funds_moved(self) -> bool:
        return self.outcome is not None and self.outcome.confirmed
