"""EVM wallet and confirmation watcher backed by web3.py."""

from typing import Optional

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from tribute.config import Settings, get_settings
from tribute.errors import ChainError
from tribute.logger import configure_logger
from tribute.models.settlement import ConfirmationResult, ConfirmationStatus

logger = configure_logger(__name__)

ERC20_ABI = [
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
]


def make_web3(rpc_url: str) -> AsyncWeb3:
    """Async web3 client over HTTP."""
    return AsyncWeb3(AsyncHTTPProvider(rpc_url))


class Web3WalletProvider:
    """
    Wallet session holding a local signing key.

    With no key configured the session counts as disconnected.
    """

    def __init__(self, w3: AsyncWeb3, private_key: str = "", chain_id: int = 84532):
        self.w3 = w3
        self.chain_id = chain_id
        self._account = None
        if private_key:
            key = private_key[2:] if private_key.startswith("0x") else private_key
            self._account = Account.from_key(key)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Web3WalletProvider":
        settings = settings or get_settings()
        return cls(
            make_web3(settings.rpc_url),
            private_key=settings.wallet_private_key,
            chain_id=settings.chain_id
        )

    def current_address(self) -> Optional[str]:
        return self._account.address if self._account else None

    def disconnect(self) -> None:
        self._account = None

    async def token_balance(self, token_address: str) -> int:
        """Balance of the connected account in token base units."""
        if not self._account:
            return 0
        token = self.w3.eth.contract(
            address=Web3.to_checksum_address(token_address), abi=ERC20_ABI
        )
        return await token.functions.balanceOf(self._account.address).call()

    async def send_token_transfer(self, token_address: str, to: str, amount: int) -> str:
        """Sign and broadcast ERC-20 transfer(to, amount); returns the tx hash."""
        if not self._account:
            raise ChainError("no signing account configured")

        try:
            token_checksum = Web3.to_checksum_address(token_address)
            to_checksum = Web3.to_checksum_address(to)
        except ValueError as e:
            raise ChainError(f"invalid address: {e}") from e

        token = self.w3.eth.contract(address=token_checksum, abi=ERC20_ABI)
        sender = self._account.address

        nonce = await self.w3.eth.get_transaction_count(sender, "pending")
        tx = await token.functions.transfer(to_checksum, amount).build_transaction(
            {
                "from": sender,
                "nonce": nonce,
                "chainId": self.chain_id,
            }
        )

        signed = self._account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hash_hex = Web3.to_hex(tx_hash)

        logger.info(
            "Token transfer broadcast",
            extra={"transaction_hash": tx_hash_hex, "to": to_checksum, "units": amount}
        )
        return tx_hash_hex


class Web3ConfirmationWatcher:
    """Polls for a receipt until it appears or the timeout runs out."""

    def __init__(self, w3: AsyncWeb3, poll_latency: float = 2.0):
        self.w3 = w3
        self.poll_latency = poll_latency

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Web3ConfirmationWatcher":
        settings = settings or get_settings()
        return cls(make_web3(settings.rpc_url), settings.confirmation_poll_seconds)

    async def await_confirmation(
        self, transaction_hash: str, timeout: float
    ) -> ConfirmationResult:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                transaction_hash, timeout=timeout, poll_latency=self.poll_latency
            )
        except TimeExhausted:
            logger.warning(
                "No receipt before timeout",
                extra={"transaction_hash": transaction_hash, "timeout": timeout}
            )
            return ConfirmationResult(
                status=ConfirmationStatus.TIMED_OUT,
                transaction_hash=transaction_hash
            )

        status = (
            ConfirmationStatus.CONFIRMED
            if receipt["status"] == 1
            else ConfirmationStatus.REVERTED
        )
        return ConfirmationResult(
            status=status,
            transaction_hash=transaction_hash,
            block_number=receipt.get("blockNumber")
        )
