"""Shared fixtures for transferable-vc tests."""

import copy
import itertools
import json

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from transferable_vc.chain import ChainBinding, GasFees
from transferable_vc.did_resolver import build_did_document
from transferable_vc.documents import build_credential, resolve_template
from transferable_vc.keys import KeyPair
from transferable_vc.registry import (
    MintOutcome,
    MintReceipt,
    MintRequest,
    ReceiptTimeout,
    RegistryError,
)
from transferable_vc.signer import DataIntegritySigner


DID = "did:web:example.com"
METHOD_ID = "did:web:example.com#key-1"
DID_URL = "https://example.com/.well-known/did.json"
REGISTRY_ADDRESS = "0x" + "ab" * 20
OWNER = "0x" + "11" * 20
HOLDER = "0x" + "22" * 20
WALLET_PRIVATE_KEY = "0x" + "4c" * 32


class InMemoryTokenRegistry:
    """Token registry fake that mints into a dict.

    Counts submissions so tests can assert that nothing was sent.
    """

    def __init__(self, address=REGISTRY_ADDRESS):
        self.address = address
        self.tokens = {}
        self.requests = []
        self.fees = []
        self.submissions = 0
        self.reject_with = None
        self.transport_error = None
        self.revert_on_mine = False
        self.timeout_on_wait = False
        self._pending = {}
        self._hashes = itertools.count(1)

    def simulate_mint(self, request: MintRequest) -> MintOutcome:
        if self.transport_error:
            return MintOutcome.transport_error(self.transport_error)
        if self.reject_with:
            return MintOutcome.would_revert(self.reject_with)
        if request.token_id in self.tokens:
            return MintOutcome.would_revert("ERC721: token already minted")
        return MintOutcome.accepted()

    def submit_mint(self, request: MintRequest, fees: GasFees | None = None) -> str:
        self.submissions += 1
        self.requests.append(request)
        self.fees.append(fees)
        transaction_hash = "0x%064x" % next(self._hashes)
        self._pending[transaction_hash] = request
        return transaction_hash

    def wait_for_receipt(self, transaction_hash: str, timeout: float) -> MintReceipt:
        if self.timeout_on_wait:
            raise ReceiptTimeout(f"Transaction {transaction_hash} not mined")
        request = self._pending.pop(transaction_hash)
        if self.revert_on_mine:
            return MintReceipt(transaction_hash, block_number=7, status=0)
        self.tokens[request.token_id] = request.owner
        return MintReceipt(transaction_hash, block_number=7, status=1, gas_used=21000)

    def owner_of(self, token_id):
        return self.tokens.get(token_id)


class UnreachableRegistry(InMemoryTokenRegistry):
    """Registry whose node cannot be reached."""

    def owner_of(self, token_id):
        raise RegistryError("connection refused")


class FixedSigner:
    """Signer that always returns the same signed credential."""

    def __init__(self, signed):
        self.signed = signed

    @property
    def verification_method(self):
        return self.signed["proof"]["verificationMethod"]

    def sign(self, credential):
        return copy.deepcopy(self.signed)


@pytest.fixture
def key_pair():
    """A P-256 Multikey pair for did:web:example.com."""
    return KeyPair(
        id=METHOD_ID,
        controller=DID,
        type="Multikey",
        private_key=ec.generate_private_key(ec.SECP256R1()),
    )


@pytest.fixture
def jwk_key_pair():
    """A P-256 JsonWebKey pair for did:web:example.com."""
    return KeyPair(
        id=METHOD_ID,
        controller=DID,
        type="JsonWebKey",
        private_key=ec.generate_private_key(ec.SECP256R1()),
    )


@pytest.fixture
def did_document(key_pair):
    """The DID Document published for key_pair."""
    return build_did_document([key_pair])


@pytest.fixture
def key_pairs_json(key_pair):
    """DID_KEY_PAIRS value for key_pair."""
    return json.dumps(key_pair.to_dict())


@pytest.fixture
def signer(key_pair):
    return DataIntegritySigner(key_pair)


@pytest.fixture
def chain():
    """Chain binding for XDC mainnet without a gas station."""
    return ChainBinding(
        chain_id=50,
        currency="XDC",
        registry_address=REGISTRY_ADDRESS,
        rpc_url="https://rpc.example.com",
    )


@pytest.fixture
def registry():
    return InMemoryTokenRegistry()


@pytest.fixture
def subject():
    return {
        "type": ["BillOfLading"],
        "blNumber": "BL-2024-0042",
        "shipper": {"name": "Acme Exports"},
        "consignee": {"name": "Globex Imports"},
    }


@pytest.fixture
def unsigned_credential(subject, chain):
    """An unsigned SAMPLE credential bound to the test chain."""
    return build_credential(resolve_template("SAMPLE"), subject, chain)


@pytest.fixture
def registry_factory(registry):
    """Verifier registry factory returning the in-memory registry."""
    return lambda chain, address: registry
