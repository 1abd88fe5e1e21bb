"""Errors raised along the donation settlement flow."""

from typing import Optional


class DonationError(Exception):
    """Base class for every failure a donation attempt can end in."""

    kind = "donation_error"
    user_message = "Something went wrong with this donation."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(detail or self.user_message)


class NotEligible(DonationError):
    kind = "not_eligible"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    @property
    def user_message(self) -> str:
        if self.reason == "no_wallet":
            return "This profile has no linked wallet to receive donations."
        return "This profile is below the credibility threshold for donations."


class InvalidAmount(DonationError):
    kind = "invalid_amount"
    user_message = "Enter a positive USDC amount."


class WalletNotConnected(DonationError):
    kind = "wallet_not_connected"
    user_message = "Connect your wallet to send tokens."


class WalletRejected(DonationError):
    kind = "wallet_rejected"
    user_message = "The transfer was rejected in your wallet."


class InsufficientBalance(DonationError):
    kind = "insufficient_balance"
    user_message = "Insufficient USDC balance."


class ChainError(DonationError):
    kind = "chain_error"
    user_message = "Transaction failed. Please try again."


class ConfirmationTimeout(DonationError):
    """The transfer was broadcast but not confirmed within the wait window."""

    kind = "confirmation_timeout"
    user_message = (
        "The transfer was sent but not confirmed in time. "
        "It may still confirm; check the transaction before donating again."
    )

    def __init__(self, transaction_hash: str, detail: Optional[str] = None):
        self.transaction_hash = transaction_hash
        super().__init__(detail or f"no confirmation for {transaction_hash}")


class StorageError(DonationError):
    """The donation ledger could not be written or read."""

    kind = "storage_error"
    user_message = (
        "Donation was sent on-chain but failed to save. Retry saving; "
        "do not donate again."
    )

    def __init__(self, detail: Optional[str] = None, recoverable: bool = True):
        self.recoverable = recoverable
        super().__init__(detail)


class TransferStateError(RuntimeError):
    """A submitter was asked to do something its current state forbids."""
