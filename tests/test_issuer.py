"""Tests for the issuance orchestrator."""

import logging
from dataclasses import replace

import pytest
import respx
from httpx import Response

from transferable_vc.chain import GasFees, PolygonGasStation
from transferable_vc.errors import (
    ConfigurationMissing,
    InvalidRequest,
    MintConfirmationTimeout,
    MintReverted,
    MintSubmissionFailed,
    MintWouldFail,
    SigningFailed,
)
from transferable_vc.issuer import CredentialIssuer, issue_credential
from transferable_vc.remarks import EMPTY_REMARKS, decrypt_remarks
from transferable_vc.token_id import derive_token_id

from conftest import HOLDER, OWNER, FixedSigner


GAS_STATION_URL = "https://gasstation.example.com/v2"


@pytest.fixture
def issuer(chain, registry, signer):
    return CredentialIssuer(chain=chain, registry=registry, signer=signer)


@pytest.fixture
def polygon(chain):
    return replace(chain, chain_id=137, currency="POL", gas_station=PolygonGasStation(GAS_STATION_URL))


def gas_quote(max_fee, max_priority_fee):
    return Response(200, json={"standard": {"maxFee": max_fee, "maxPriorityFee": max_priority_fee}})


class FailingSigner:
    verification_method = "did:web:example.com#key-1"

    def sign(self, credential):
        raise RuntimeError("HSM unavailable")


class TestCredentialIssuer:

    def test_issue_sample(self, issuer, unsigned_credential, registry):
        """Issuing returns the signed credential bound to the chain and a receipt."""
        result = issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)

        assert result.signed_credential["credentialStatus"]["chainId"] == 50
        assert result.signed_credential["proof"]["cryptosuite"] == "ecdsa-jcs-2022"
        assert result.receipt.transaction_hash.startswith("0x")
        assert result.receipt.succeeded
        assert result.token_id == derive_token_id(result.signed_credential)
        assert registry.owner_of(result.token_id) == OWNER
        assert registry.submissions == 1

    def test_mint_arguments(self, issuer, unsigned_credential, registry):
        result = issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER, remarks="Handle with care")

        request = registry.requests[0]
        assert (request.owner, request.holder, request.token_id) == (OWNER, HOLDER, result.token_id)
        assert decrypt_remarks(request.encrypted_remarks, result.signed_credential["id"]) == "Handle with care"

    def test_no_remarks(self, issuer, unsigned_credential, registry):
        issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)
        assert registry.requests[0].encrypted_remarks == EMPTY_REMARKS

    def test_no_gas_station_sends_no_fees(self, issuer, unsigned_credential, registry):
        issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)
        assert registry.fees == [None]

    @pytest.mark.parametrize("owner, holder", [("", HOLDER), (OWNER, "")])
    def test_owner_and_holder_required(self, issuer, unsigned_credential, registry, owner, holder):
        with pytest.raises(InvalidRequest):
            issuer.issue(unsigned_credential, owner=owner, holder=holder)
        assert registry.submissions == 0

    def test_dry_run_rejection_submits_nothing(self, issuer, unsigned_credential, registry):
        registry.reject_with = "TitleEscrow: caller is not a minter"

        with pytest.raises(MintWouldFail) as exc_info:
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)

        assert exc_info.value.reason == "TitleEscrow: caller is not a minter"
        assert registry.submissions == 0

    def test_dry_run_transport_error(self, issuer, unsigned_credential, registry):
        registry.transport_error = "connection refused"

        with pytest.raises(MintSubmissionFailed):
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)
        assert registry.submissions == 0

    def test_duplicate_token_rejected(self, chain, registry, signer, unsigned_credential):
        """Identical signed content derives the same token id; the second mint is refused."""
        issuer = CredentialIssuer(chain, registry, FixedSigner(signer.sign(unsigned_credential)))

        first = issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)
        with pytest.raises(MintWouldFail):
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)

        assert derive_token_id(first.signed_credential) == first.token_id
        assert registry.submissions == 1

    def test_signing_failure(self, chain, registry, unsigned_credential):
        issuer = CredentialIssuer(chain, registry, FailingSigner())
        with pytest.raises(SigningFailed):
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)
        assert registry.submissions == 0

    def test_reverted_mint(self, issuer, unsigned_credential, registry):
        registry.revert_on_mine = True

        with pytest.raises(MintReverted) as exc_info:
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)

        assert exc_info.value.transaction_hash.startswith("0x")

    def test_confirmation_timeout(self, chain, registry, signer, unsigned_credential):
        registry.timeout_on_wait = True
        issuer = CredentialIssuer(chain, registry, signer, receipt_timeout=5)

        with pytest.raises(MintConfirmationTimeout) as exc_info:
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)

        assert isinstance(exc_info.value, MintSubmissionFailed)
        assert exc_info.value.timeout == 5

    def test_issue_credential(self, chain, registry, signer, unsigned_credential):
        result = issue_credential(unsigned_credential, signer, chain, registry, OWNER, HOLDER)
        assert registry.owner_of(result.token_id) == OWNER


class TestGasFees:

    @respx.mock
    def test_fees_from_gas_station(self, polygon, registry, signer, unsigned_credential):
        respx.get(GAS_STATION_URL).mock(return_value=gas_quote(30.5, 30))
        issuer = CredentialIssuer(polygon, registry, signer)

        issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)

        assert registry.fees == [GasFees(30_500_000_000, 30_000_000_000)]

    @respx.mock
    def test_fees_quoted_per_issuance(self, polygon, registry, signer, unsigned_credential):
        route = respx.get(GAS_STATION_URL).mock(side_effect=[gas_quote(30, 30), gas_quote(45, 40)])
        issuer = CredentialIssuer(polygon, registry, signer)

        issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)
        issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)

        assert route.call_count == 2
        assert registry.fees[1] == GasFees(45_000_000_000, 40_000_000_000)

    @respx.mock
    def test_degenerate_quote_refused(self, polygon, registry, signer, unsigned_credential):
        respx.get(GAS_STATION_URL).mock(return_value=gas_quote(0, 0))
        issuer = CredentialIssuer(polygon, registry, signer)

        with pytest.raises(ConfigurationMissing):
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)
        assert registry.submissions == 0

    @respx.mock
    def test_degenerate_quote_allowed(self, polygon, registry, signer, unsigned_credential, caplog):
        respx.get(GAS_STATION_URL).mock(return_value=gas_quote(0, 0))
        issuer = CredentialIssuer(polygon, registry, signer, allow_zero_fees=True)

        with caplog.at_level(logging.WARNING, logger="transferable_vc.issuer"):
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)

        assert registry.fees == [GasFees(0, 0)]
        assert "zero fees" in caplog.text

    @respx.mock
    def test_gas_station_unreachable(self, polygon, registry, signer, unsigned_credential):
        respx.get(GAS_STATION_URL).mock(return_value=Response(502))
        issuer = CredentialIssuer(polygon, registry, signer)

        with pytest.raises(MintSubmissionFailed):
            issuer.issue(unsigned_credential, owner=OWNER, holder=HOLDER)
        assert registry.submissions == 0
