"""
Token registry adapter.

Talks to a TradeTrust-style token registry contract over JSON-RPC through
web3. The dry-run mint reports a MintOutcome instead of raising, so callers
can tell a contract rejection from a transport failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from transferable_vc.chain import ChainBinding, GasFees
from transferable_vc.remarks import to_hex_bytes
from transferable_vc.token_id import TokenId


logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

TOKEN_REGISTRY_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "mint",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "beneficiary", "type": "address"},
            {"name": "holder", "type": "address"},
            {"name": "tokenId", "type": "uint256"},
            {"name": "remark", "type": "bytes"},
        ],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function",
        "name": "ownerOf",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
]


class RegistryError(Exception):
    """Raised when the registry cannot be reached or rejects a request."""


class ReceiptTimeout(RegistryError):
    """Raised when a transaction is not mined within the timeout."""


@dataclass(frozen=True)
class MintRequest:
    """Arguments of a mint call."""

    owner: str
    holder: str
    token_id: TokenId
    encrypted_remarks: str


class MintOutcomeKind(Enum):
    ACCEPTED = "accepted"
    WOULD_REVERT = "would_revert"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class MintOutcome:
    """Result of a dry-run mint."""

    kind: MintOutcomeKind
    detail: str = ""

    @classmethod
    def accepted(cls) -> MintOutcome:
        return cls(MintOutcomeKind.ACCEPTED)

    @classmethod
    def would_revert(cls, reason: str) -> MintOutcome:
        return cls(MintOutcomeKind.WOULD_REVERT, reason)

    @classmethod
    def transport_error(cls, detail: str) -> MintOutcome:
        return cls(MintOutcomeKind.TRANSPORT_ERROR, detail)

    @property
    def is_accepted(self) -> bool:
        return self.kind is MintOutcomeKind.ACCEPTED


@dataclass(frozen=True)
class MintReceipt:
    """Confirmation of a mined mint transaction."""

    transaction_hash: str
    block_number: int | None
    status: int
    gas_used: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "blockNumber": self.block_number,
            "status": self.status,
            "gasUsed": self.gas_used,
        }


class TokenRegistry(Protocol):
    """Minting and ownership operations of a token registry."""

    address: str

    def simulate_mint(self, request: MintRequest) -> MintOutcome: ...

    def submit_mint(self, request: MintRequest, fees: GasFees | None = None) -> str: ...

    def wait_for_receipt(self, transaction_hash: str, timeout: float) -> MintReceipt: ...

    def owner_of(self, token_id: TokenId) -> str | None: ...


def make_web3(rpc_url: str, timeout: float = 30.0) -> Web3:
    """Create the JSON-RPC client for an endpoint."""
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


class Web3TokenRegistry:
    """Token registry contract accessed through web3.

    Read-only when created without an account; minting requires one.
    """

    def __init__(
        self,
        web3: Web3,
        address: str,
        chain_id: int,
        account: LocalAccount | None = None,
        poll_latency: float = 2.0,
    ) -> None:
        if not Web3.is_address(address):
            raise ValueError(f"Invalid token registry address: {address}")
        self.web3 = web3
        self.address = Web3.to_checksum_address(address)
        self.chain_id = chain_id
        self.account = account
        self.poll_latency = poll_latency
        self.contract = web3.eth.contract(address=self.address, abi=TOKEN_REGISTRY_ABI)

    @classmethod
    def connect(
        cls,
        chain: ChainBinding,
        private_key: str | None = None,
        timeout: float = 30.0,
        registry_address: str | None = None,
    ) -> Web3TokenRegistry:
        """Connect to the registry named by a chain binding."""
        account = Account.from_key(private_key) if private_key else None
        return cls(
            make_web3(chain.rpc_url, timeout=timeout),
            registry_address or chain.registry_address,
            chain_id=chain.chain_id,
            account=account,
        )

    def _require_account(self) -> LocalAccount:
        if self.account is None:
            raise RegistryError("A wallet account is required to mint")
        return self.account

    def _mint_call(self, request: MintRequest) -> Any:
        return self.contract.functions.mint(
            Web3.to_checksum_address(request.owner),
            Web3.to_checksum_address(request.holder),
            request.token_id.as_int(),
            Web3.to_bytes(hexstr=to_hex_bytes(request.encrypted_remarks)),
        )

    def simulate_mint(self, request: MintRequest) -> MintOutcome:
        """Run the mint as an eth_call against the latest state."""
        for role, value in (("owner", request.owner), ("holder", request.holder)):
            if not Web3.is_address(value):
                return MintOutcome.would_revert(f"Invalid {role} address: {value}")

        try:
            account = self._require_account()
            self._mint_call(request).call({"from": account.address})
        except ContractLogicError as e:
            return MintOutcome.would_revert(e.message or str(e))
        except (RegistryError, Web3Exception, OSError, ValueError) as e:
            return MintOutcome.transport_error(str(e))
        return MintOutcome.accepted()

    def submit_mint(self, request: MintRequest, fees: GasFees | None = None) -> str:
        """Sign and send the mint transaction.

        Returns:
            The transaction hash.

        Raises:
            RegistryError: If the transaction cannot be built or sent.
        """
        account = self._require_account()
        try:
            params: dict[str, Any] = {
                "from": account.address,
                "chainId": self.chain_id,
                "nonce": self.web3.eth.get_transaction_count(account.address, "pending"),
            }
            if fees is not None:
                params["maxFeePerGas"] = fees.max_fee_per_gas or 0
                params["maxPriorityFeePerGas"] = fees.max_priority_fee_per_gas or 0

            transaction = self._mint_call(request).build_transaction(params)
            signed = account.sign_transaction(transaction)
            transaction_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, OSError, ValueError) as e:
            raise RegistryError(f"Failed to submit mint: {e}") from e
        return Web3.to_hex(transaction_hash)

    def wait_for_receipt(self, transaction_hash: str, timeout: float) -> MintReceipt:
        """Block until the transaction is mined.

        Raises:
            ReceiptTimeout: If it is not mined within timeout seconds.
            RegistryError: If the node cannot be queried.
        """
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(
                transaction_hash,
                timeout=timeout,
                poll_latency=self.poll_latency,
            )
        except TimeExhausted as e:
            raise ReceiptTimeout(str(e)) from e
        except (Web3Exception, OSError, ValueError) as e:
            raise RegistryError(f"Failed to fetch receipt for {transaction_hash}: {e}") from e

        return MintReceipt(
            transaction_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt.get("blockNumber"),
            status=int(receipt.get("status", 0)),
            gas_used=receipt.get("gasUsed"),
        )

    def owner_of(self, token_id: TokenId) -> str | None:
        """Owner of a token, or None if it was never minted.

        Raises:
            RegistryError: If the node cannot be queried.
        """
        try:
            owner = self.contract.functions.ownerOf(token_id.as_int()).call()
        except ContractLogicError:
            return None
        except (Web3Exception, OSError, ValueError) as e:
            raise RegistryError(f"Failed to query owner of {token_id}: {e}") from e
        if not owner or owner == ZERO_ADDRESS:
            return None
        return owner
