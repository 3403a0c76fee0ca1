"""Tests for the web3 token registry adapter.

These never reach a node: they cover the checks made before any RPC call.
"""

import pytest

from transferable_vc.registry import (
    MintOutcome,
    MintOutcomeKind,
    MintReceipt,
    MintRequest,
    RegistryError,
    Web3TokenRegistry,
    make_web3,
)
from transferable_vc.remarks import EMPTY_REMARKS
from transferable_vc.token_id import TokenId

from conftest import HOLDER, OWNER, REGISTRY_ADDRESS


TOKEN_ID = TokenId("0x" + "0f" * 32)


@pytest.fixture
def read_only_registry():
    return Web3TokenRegistry(make_web3("http://127.0.0.1:8545"), REGISTRY_ADDRESS, chain_id=50)


class TestWeb3TokenRegistry:

    def test_rejects_invalid_registry_address(self):
        with pytest.raises(ValueError):
            Web3TokenRegistry(make_web3("http://127.0.0.1:8545"), "not-an-address", chain_id=50)

    def test_address_is_checksummed(self, read_only_registry):
        assert read_only_registry.address.lower() == REGISTRY_ADDRESS
        assert read_only_registry.address != REGISTRY_ADDRESS

    def test_invalid_owner_would_revert(self, read_only_registry):
        outcome = read_only_registry.simulate_mint(
            MintRequest("0x1234", HOLDER, TOKEN_ID, EMPTY_REMARKS)
        )
        assert outcome.kind is MintOutcomeKind.WOULD_REVERT
        assert "owner" in outcome.detail

    def test_simulate_without_account_is_transport_error(self, read_only_registry):
        outcome = read_only_registry.simulate_mint(MintRequest(OWNER, HOLDER, TOKEN_ID, EMPTY_REMARKS))
        assert outcome.kind is MintOutcomeKind.TRANSPORT_ERROR

    def test_submit_requires_account(self, read_only_registry):
        with pytest.raises(RegistryError):
            read_only_registry.submit_mint(MintRequest(OWNER, HOLDER, TOKEN_ID, EMPTY_REMARKS))


class TestMintResults:

    def test_outcomes(self):
        assert MintOutcome.accepted().is_accepted
        rejected = MintOutcome.would_revert("Ownable: caller is not the owner")
        assert not rejected.is_accepted
        assert rejected.detail == "Ownable: caller is not the owner"

    def test_receipt(self):
        receipt = MintReceipt("0xabc", block_number=12, status=1, gas_used=50000)
        assert receipt.succeeded
        assert receipt.to_dict() == {
            "transactionHash": "0xabc",
            "blockNumber": 12,
            "status": 1,
            "gasUsed": 50000,
        }
        assert not MintReceipt("0xabc", block_number=12, status=0).succeeded

    def test_token_id_as_uint256(self):
        assert TOKEN_ID.as_int() == int("0f" * 32, 16)
