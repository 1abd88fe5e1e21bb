"""Single on-chain token transfer with a forward-only lifecycle."""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

from tribute.errors import (
    ChainError, DonationError, InsufficientBalance, InvalidAmount,
    TransferStateError, WalletNotConnected, WalletRejected
)
from tribute.logger import configure_logger
from tribute.models.settlement import (
    ConfirmationResult, ConfirmationStatus, FailureReason, OutcomeStatus,
    TransferOutcome, TransferRequest, TransferState
)

logger = configure_logger(__name__)

_REJECTION_MARKERS = (
    "user rejected",
    "user denied",
    "rejected the request",
    "request rejected",
    "denied transaction",
)
_BALANCE_MARKERS = (
    "insufficient",
    "exceeds balance",
    "transfer amount exceeds",
)

_FAILURE_BY_ERROR = {
    WalletRejected: FailureReason.WALLET_REJECTED,
    InsufficientBalance: FailureReason.INSUFFICIENT_BALANCE,
    ChainError: FailureReason.CHAIN_ERROR,
}


class WalletProvider(Protocol):
    """The donor's wallet session."""

    def current_address(self) -> Optional[str]:
        ...

    async def send_token_transfer(
        self, token_address: str, to: str, amount: int
    ) -> str:
        """Broadcast an ERC-20 transfer of `amount` base units, return its hash."""
        ...


class ConfirmationWatcher(Protocol):
    """Waits for a broadcast transaction to finalize."""

    async def await_confirmation(
        self, transaction_hash: str, timeout: float
    ) -> ConfirmationResult:
        ...


def parse_amount(amount: str, decimals: int) -> int:
    """
    Convert user-entered decimal text to token base units.

    Raises InvalidAmount for empty, non-numeric, non-finite, zero, negative
    or over-precise input.
    """
    text = (amount or "").strip()
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise InvalidAmount(f"not a number: {amount!r}")

    if not value.is_finite() or value <= 0:
        raise InvalidAmount(f"amount must be positive: {amount!r}")

    units = value.scaleb(decimals)
    if units != units.to_integral_value():
        raise InvalidAmount(f"more than {decimals} decimal places: {amount!r}")

    return int(units)


def classify_wallet_error(error: Exception) -> FailureReason:
    """Best-effort mapping of provider error text to a failure reason."""
    for error_type, reason in _FAILURE_BY_ERROR.items():
        if isinstance(error, error_type):
            return reason

    text = str(error).lower()
    if any(marker in text for marker in _REJECTION_MARKERS):
        return FailureReason.WALLET_REJECTED
    if any(marker in text for marker in _BALANCE_MARKERS):
        return FailureReason.INSUFFICIENT_BALANCE
    return FailureReason.CHAIN_ERROR


class ChainTransferSubmitter:
    """
    Submits one token transfer and follows it to a terminal state.

    idle -> awaiting_wallet_confirmation -> awaiting_chain_confirmation
    -> confirmed | failed

    Validation failures raise and leave the submitter idle. Wallet and chain
    failures end in a failed outcome. A submitter is used for exactly one
    transfer; a new attempt needs a new submitter.
    """

    def __init__(
        self,
        wallet: WalletProvider,
        watcher: ConfirmationWatcher,
        token_address: str,
        token_decimals: int = 6,
        confirmation_timeout: float = 120.0
    ):
        self.wallet = wallet
        self.watcher = watcher
        self.token_address = token_address
        self.token_decimals = token_decimals
        self.confirmation_timeout = confirmation_timeout

        self.state = TransferState.IDLE
        self.outcome = TransferOutcome()
        self.request: Optional[TransferRequest] = None
        self.donor_address: Optional[str] = None

    @property
    def transaction_hash(self) -> Optional[str]:
        return self.outcome.transaction_hash

    def _transition(self, state: TransferState) -> None:
        logger.info(
            "Transfer state change",
            extra={
                "from_state": self.state.value,
                "to_state": state.value,
                "transaction_hash": self.transaction_hash,
            }
        )
        self.state = state

    def _fail(self, reason: FailureReason, detail: str) -> TransferOutcome:
        self.outcome = TransferOutcome(
            status=OutcomeStatus.FAILED,
            transaction_hash=self.transaction_hash,
            failure=reason,
            detail=detail
        )
        self._transition(TransferState.FAILED)
        return self.outcome

    async def submit(self, request: TransferRequest) -> TransferOutcome:
        """Run the transfer to a terminal outcome."""
        if self.state != TransferState.IDLE:
            raise TransferStateError(
                f"submitter already used (state={self.state.value})"
            )

        units = parse_amount(request.amount, self.token_decimals)

        donor = self.wallet.current_address()
        if not donor:
            raise WalletNotConnected()

        self.request = request
        self.donor_address = donor
        self._transition(TransferState.AWAITING_WALLET)

        try:
            transaction_hash = await self.wallet.send_token_transfer(
                self.token_address, request.recipient_address, units
            )
        except asyncio.CancelledError:
            self._fail(FailureReason.CHAIN_ERROR, "cancelled before broadcast")
            raise
        except Exception as e:
            logger.warning(
                "Wallet did not broadcast transfer",
                extra={"error": str(e), "recipient": request.recipient_address}
            )
            return self._fail(classify_wallet_error(e), str(e))

        self.outcome = TransferOutcome(
            status=OutcomeStatus.PENDING,
            transaction_hash=transaction_hash
        )
        self._transition(TransferState.AWAITING_CHAIN)

        try:
            result = await self.watcher.await_confirmation(
                transaction_hash, self.confirmation_timeout
            )
        except asyncio.CancelledError:
            # The transfer is out; we only stop watching it.
            self._fail(FailureReason.WATCH_STOPPED, "stopped watching transaction")
            raise
        except asyncio.TimeoutError:
            return self._fail(
                FailureReason.CONFIRMATION_TIMEOUT, "confirmation timeout"
            )
        except DonationError as e:
            return self._fail(classify_wallet_error(e), str(e))
        except Exception as e:
            logger.error(
                "Confirmation watch failed",
                extra={"error": str(e), "transaction_hash": transaction_hash}
            )
            return self._fail(FailureReason.CHAIN_ERROR, str(e))

        if result.status == ConfirmationStatus.TIMED_OUT:
            return self._fail(
                FailureReason.CONFIRMATION_TIMEOUT, "confirmation timeout"
            )
        if result.status == ConfirmationStatus.REVERTED:
            return self._fail(FailureReason.REVERTED, "transaction reverted")

        self.outcome = TransferOutcome(
            status=OutcomeStatus.CONFIRMED,
            transaction_hash=result.transaction_hash or transaction_hash
        )
        self._transition(TransferState.CONFIRMED)
        return self.outcome
