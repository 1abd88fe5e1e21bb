"""Donation settlement flow: eligibility -> transfer -> record."""

import asyncio
from collections import OrderedDict
from typing import Awaitable, Callable, Optional

from tribute.config import Settings, get_settings
from tribute.errors import (
    ChainError, ConfirmationTimeout, DonationError, InsufficientBalance,
    InvalidAmount, NotEligible, StorageError, TransferStateError,
    WalletNotConnected, WalletRejected
)
from tribute.logger import configure_logger
from tribute.models.donation import DonationCreate
from tribute.models.profile import Eligibility, RecipientCandidate
from tribute.models.settlement import (
    DonationResult, DonationResultStatus, FailureReason, TransferOutcome,
    TransferRequest
)
from tribute.services.eligibility import evaluate_eligibility
from tribute.services.notifications import (
    DonationNotification, NotificationHub, NotificationKind
)
from tribute.services.recorder import SettlementRecorder
from tribute.services.submitter import (
    ChainTransferSubmitter, ConfirmationWatcher, WalletProvider
)

logger = configure_logger(__name__)

RECORDED_MESSAGE = (
    "Tribute sent! Your donation has been confirmed on-chain and saved."
)

_ERROR_FOR_FAILURE = {
    FailureReason.WALLET_REJECTED: WalletRejected,
    FailureReason.INSUFFICIENT_BALANCE: InsufficientBalance,
    FailureReason.CHAIN_ERROR: ChainError,
    FailureReason.REVERTED: ChainError,
    FailureReason.WATCH_STOPPED: ChainError,
}

_NOTIFICATION_KIND = {
    DonationResultStatus.RECORDED: NotificationKind.SUCCESS,
    DonationResultStatus.RECORD_PENDING: NotificationKind.WARNING,
    DonationResultStatus.CONFIRMATION_TIMEOUT: NotificationKind.WARNING,
}


class SettlementLatch:
    """
    One save per transaction hash.

    Share one latch across orchestrators so a confirmation seen again after
    a remount or a duplicate event does not record twice. Callers arriving
    while a save is running wait for it and get its result. A save that ends
    in `record_pending` or raises releases the hash so it can be saved again.
    Only the most recent `max_recorded` recorded hashes are remembered; the
    ledger's dedupe key covers anything older.
    """

    def __init__(self, max_recorded: int = 1024):
        self.max_recorded = max_recorded
        self._saves: OrderedDict[str, asyncio.Future] = OrderedDict()
        self._lock = asyncio.Lock()

    async def run_once(
        self,
        transaction_hash: str,
        save: Callable[[], Awaitable[DonationResult]]
    ) -> DonationResult:
        """Run `save` unless a save for this hash is running or already recorded."""
        key = transaction_hash.lower()

        while True:
            async with self._lock:
                future = self._saves.get(key)
                if future is None:
                    future = asyncio.get_running_loop().create_future()
                    self._saves[key] = future
                    break

            try:
                return await asyncio.shield(future)
            except asyncio.CancelledError:
                # The first save raised or was cancelled; run this one instead.
                if not future.cancelled():
                    raise

        try:
            result = await save()
        except BaseException:
            async with self._lock:
                self._saves.pop(key, None)
            future.cancel()
            raise

        async with self._lock:
            if result.status == DonationResultStatus.RECORDED:
                excess = len(self._saves) - self.max_recorded
                settled = [k for k, f in self._saves.items() if f.done()]
                for old_key in settled[:max(excess, 0)]:
                    del self._saves[old_key]
            else:
                self._saves.pop(key, None)
        future.set_result(result)
        return result

    def has_recorded(self, transaction_hash: str) -> bool:
        future = self._saves.get(transaction_hash.lower())
        return (
            future is not None
            and future.done()
            and not future.cancelled()
            and future.result().status == DonationResultStatus.RECORDED
        )


class DonationOrchestrator:
    """
    Runs one donation attempt.

    Create a new orchestrator (and submitter) for every attempt; a failed
    transfer is only ever retried by the user starting a new attempt.
    """

    def __init__(
        self,
        submitter: ChainTransferSubmitter,
        recorder: SettlementRecorder,
        latch: SettlementLatch,
        notifier: Optional[NotificationHub] = None,
        minimum_score: int = 1400,
        chain_id: int = 84532
    ):
        self.submitter = submitter
        self.recorder = recorder
        self.latch = latch
        self.notifier = notifier
        self.minimum_score = minimum_score
        self.chain_id = chain_id

        self.candidate: Optional[RecipientCandidate] = None
        self.amount: Optional[str] = None
        self.donor_address: Optional[str] = None
        self.eligibility: Optional[Eligibility] = None
        self.result: Optional[DonationResult] = None

    async def donate(self, candidate: RecipientCandidate, amount: str) -> DonationResult:
        """Evaluate, transfer and record a donation to `candidate`."""
        self.candidate = candidate
        self.amount = amount

        eligibility = evaluate_eligibility(candidate, self.minimum_score)
        self.eligibility = eligibility
        if not eligibility.donatable:
            error = NotEligible(eligibility.reason.value)
            logger.info(
                "Donation blocked",
                extra={"recipient": candidate.username, "reason": error.reason}
            )
            return await self._finish(
                DonationResultStatus.NOT_ELIGIBLE,
                error.user_message,
                error=error,
                eligibility=eligibility
            )

        request = TransferRequest(
            recipient_address=eligibility.settlement_address,
            amount=amount,
            chain_id=self.chain_id
        )

        try:
            outcome = await self.submitter.submit(request)
        except InvalidAmount as e:
            return await self._finish(
                DonationResultStatus.INVALID_AMOUNT, e.user_message,
                error=e, eligibility=eligibility
            )
        except WalletNotConnected as e:
            return await self._finish(
                DonationResultStatus.WALLET_NOT_CONNECTED, e.user_message,
                error=e, eligibility=eligibility
            )

        self.donor_address = self.submitter.donor_address

        if outcome.confirmed:
            return await self.handle_confirmation(outcome)

        if outcome.failure == FailureReason.CONFIRMATION_TIMEOUT:
            error = ConfirmationTimeout(outcome.transaction_hash)
            return await self._finish(
                DonationResultStatus.CONFIRMATION_TIMEOUT, error.user_message,
                error=error, eligibility=eligibility, outcome=outcome
            )

        error = _ERROR_FOR_FAILURE.get(outcome.failure, ChainError)(outcome.detail)
        return await self._finish(
            DonationResultStatus.TRANSFER_FAILED, error.user_message,
            error=error, eligibility=eligibility, outcome=outcome
        )

    async def handle_confirmation(
        self,
        outcome: TransferOutcome,
        candidate: Optional[RecipientCandidate] = None,
        amount: Optional[str] = None,
        donor_address: Optional[str] = None
    ) -> DonationResult:
        """
        Record a confirmed transfer.

        Without arguments beyond `outcome` this records the transfer started
        by `donate`. A confirmation picked up elsewhere (after a remount, or
        from an out-of-band watcher) must pass the candidate, amount and
        donor address it belongs to.

        Only one save per transaction hash runs at a time. A call that
        arrives while that save is running, or after it recorded the
        donation, returns that save's result.
        """
        if candidate is not None:
            self.candidate = candidate
        if amount is not None:
            self.amount = amount
        if donor_address is not None:
            self.donor_address = donor_address

        if not outcome.confirmed or not outcome.transaction_hash:
            raise TransferStateError("only a confirmed transfer can be recorded")
        if self.candidate is None or not self.amount or not self.donor_address:
            raise TransferStateError(
                "confirmation needs the candidate, amount and donor address"
            )

        donation = DonationCreate(
            donor_address=self.donor_address,
            recipient_username=self.candidate.username,
            recipient_avatar=self.candidate.avatar_url,
            amount=self.amount,
            transaction_hash=outcome.transaction_hash
        )
        return await self._save_once(donation, outcome)

    async def retry_save(self, result: DonationResult) -> DonationResult:
        """Re-post the record for a transfer that confirmed but did not save."""
        if result.status != DonationResultStatus.RECORD_PENDING:
            raise ValueError(f"nothing to retry for status {result.status.value}")

        self.amount = result.amount
        self.donor_address = result.donor_address
        donation = DonationCreate(
            donor_address=result.donor_address,
            recipient_username=result.recipient_username,
            recipient_avatar=result.recipient_avatar,
            amount=result.amount,
            transaction_hash=result.outcome.transaction_hash
        )
        return await self._save_once(donation, result.outcome)

    async def _save_once(self, donation: DonationCreate, outcome: TransferOutcome) -> DonationResult:
        result = await self.latch.run_once(
            outcome.transaction_hash, lambda: self._save(donation, outcome)
        )
        if result is not self.result:
            logger.info(
                "Confirmation already handled",
                extra={
                    "transaction_hash": outcome.transaction_hash,
                    "status": result.status.value,
                }
            )
            self.result = result
        return result

    async def _save(self, donation: DonationCreate, outcome: TransferOutcome) -> DonationResult:
        saved = {
            "outcome": outcome,
            "donor_address": donation.donor_address,
            "recipient_username": donation.recipient_username,
            "recipient_avatar": donation.recipient_avatar,
            "amount": donation.amount,
        }
        try:
            record = await self.recorder.record_donation(donation)
        except StorageError as e:
            logger.error(
                "Funds moved but record not saved",
                extra={
                    "transaction_hash": outcome.transaction_hash,
                    "recoverable": e.recoverable,
                    "error": str(e),
                }
            )
            return await self._finish(
                DonationResultStatus.RECORD_PENDING, e.user_message,
                error=e, **saved
            )

        return await self._finish(
            DonationResultStatus.RECORDED, RECORDED_MESSAGE,
            record=record, **saved
        )

    def _build(
        self,
        status: DonationResultStatus,
        message: str,
        error: Optional[DonationError] = None,
        **fields
    ) -> DonationResult:
        fields.setdefault("donor_address", self.donor_address)
        fields.setdefault("eligibility", self.eligibility)
        fields.setdefault(
            "recipient_avatar", self.candidate.avatar_url if self.candidate else None
        )
        fields.setdefault(
            "recipient_username", self.candidate.username if self.candidate else ""
        )
        fields.setdefault("amount", self.amount or "")
        return DonationResult(
            status=status,
            message=message,
            error_kind=error.kind if error else None,
            recoverable=getattr(error, "recoverable", True),
            **fields
        )

    async def _finish(
        self,
        status: DonationResultStatus,
        message: str,
        error: Optional[DonationError] = None,
        **fields
    ) -> DonationResult:
        self.result = self._build(status, message, error=error, **fields)

        if self.notifier is not None:
            await self.notifier.publish(DonationNotification(
                kind=_NOTIFICATION_KIND.get(status, NotificationKind.ERROR),
                message=message,
                result=self.result
            ))

        return self.result


def new_donation_attempt(
    wallet: WalletProvider,
    watcher: ConfirmationWatcher,
    recorder: SettlementRecorder,
    latch: SettlementLatch,
    notifier: Optional[NotificationHub] = None,
    settings: Optional[Settings] = None
) -> DonationOrchestrator:
    """Fresh submitter and orchestrator for one donation attempt."""
    settings = settings or get_settings()
    submitter = ChainTransferSubmitter(
        wallet,
        watcher,
        token_address=settings.usdc_contract_address,
        token_decimals=settings.usdc_decimals,
        confirmation_timeout=settings.confirmation_timeout_seconds
    )
    return DonationOrchestrator(
        submitter,
        recorder,
        latch,
        notifier=notifier,
        minimum_score=settings.donation_min_score,
        chain_id=settings.chain_id
    )
