"""
Transferable record issuer.

Signs a credential and mints its token on the registry:

1. Sign the credential
2. Derive the token id and encrypt the remarks (concurrently)
3. Dry-run the mint; a rejection aborts before anything is submitted
4. Quote fees from the chain's gas station, if it has one
5. Submit the mint and wait for the receipt
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from transferable_vc.chain import ChainBinding, GasFees
from transferable_vc.errors import (
    ConfigurationMissing,
    InvalidRequest,
    MintConfirmationTimeout,
    MintReverted,
    MintSubmissionFailed,
    MintWouldFail,
    SigningFailed,
)
from transferable_vc.registry import (
    MintOutcomeKind,
    MintReceipt,
    MintRequest,
    ReceiptTimeout,
    RegistryError,
    TokenRegistry,
)
from transferable_vc.remarks import encrypt_remarks
from transferable_vc.signer import Signer
from transferable_vc.token_id import TokenId, derive_token_id, is_signed


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuanceResult:
    """A signed credential together with the receipt of its mint."""

    signed_credential: dict[str, Any]
    token_id: TokenId
    receipt: MintReceipt


class CredentialIssuer:
    """Issues transferable-record credentials on one chain binding."""

    def __init__(
        self,
        chain: ChainBinding,
        registry: TokenRegistry,
        signer: Signer,
        allow_zero_fees: bool = False,
        receipt_timeout: float = 120.0,
    ) -> None:
        """Initialize the issuer.

        Args:
            chain: Chain binding the credentials are minted on.
            registry: Token registry the binding names.
            signer: Signing capability holding the issuer key material.
            allow_zero_fees: Submit with zero fee fields when the gas station
                returns a degenerate quote, instead of refusing.
            receipt_timeout: Seconds to wait for the mint to be mined.
        """
        self.chain = chain
        self.registry = registry
        self.signer = signer
        self.allow_zero_fees = allow_zero_fees
        self.receipt_timeout = receipt_timeout

    def issue(
        self,
        credential: dict[str, Any],
        owner: str,
        holder: str,
        remarks: str | None = None,
    ) -> IssuanceResult:
        """Sign a credential and mint it to owner and holder.

        Args:
            credential: The unsigned credential.
            owner: Beneficiary address of the minted token.
            holder: Holder address of the minted token.
            remarks: Optional plaintext remarks, encrypted before minting.

        Returns:
            IssuanceResult with the signed credential and the mint receipt.

        Raises:
            InvalidRequest: If owner or holder is missing.
            SigningFailed: If the credential cannot be signed.
            MintWouldFail: If the dry-run mint reverts.
            MintSubmissionFailed: If the mint cannot be submitted or confirmed.
            MintReverted: If the mint was mined with a failed status.
            ConfigurationMissing: If the fee quote is degenerate and zero
                fees are not allowed.
        """
        if not owner or not holder:
            raise InvalidRequest("owner and holder are required")

        logger.info(
            "Issuing on chain %s via %s, registry %s",
            self.chain.chain_id, self.chain.rpc_url, self.chain.registry_address,
        )

        signed = self._sign(credential)

        with ThreadPoolExecutor(max_workers=2) as executor:
            token_future = executor.submit(derive_token_id, signed)
            remarks_future = executor.submit(encrypt_remarks, remarks, signed["id"])
            token_id = token_future.result()
            encrypted_remarks = remarks_future.result()

        request = MintRequest(
            owner=owner,
            holder=holder,
            token_id=token_id,
            encrypted_remarks=encrypted_remarks,
        )

        outcome = self.registry.simulate_mint(request)
        if not outcome.is_accepted:
            if outcome.kind is MintOutcomeKind.WOULD_REVERT:
                logger.warning("Dry-run mint of %s rejected: %s", token_id, outcome.detail)
                raise MintWouldFail(outcome.detail)
            raise MintSubmissionFailed(f"Dry-run mint failed: {outcome.detail}")

        fees = self._quote_fees()

        try:
            transaction_hash = self.registry.submit_mint(request, fees)
        except RegistryError as e:
            raise MintSubmissionFailed(str(e)) from e
        logger.info("Submitted mint of %s in transaction %s", token_id, transaction_hash)

        try:
            receipt = self.registry.wait_for_receipt(transaction_hash, self.receipt_timeout)
        except ReceiptTimeout as e:
            raise MintConfirmationTimeout(transaction_hash, self.receipt_timeout) from e
        except RegistryError as e:
            raise MintSubmissionFailed(str(e)) from e

        if not receipt.succeeded:
            raise MintReverted(receipt.transaction_hash)

        logger.info(
            "Minted %s in block %s, tx %s",
            token_id, receipt.block_number, receipt.transaction_hash,
        )
        return IssuanceResult(signed_credential=signed, token_id=token_id, receipt=receipt)

    def _sign(self, credential: dict[str, Any]) -> dict[str, Any]:
        try:
            signed = self.signer.sign(credential)
        except Exception as e:
            raise SigningFailed(f"Failed to sign credential: {e}") from e
        if not is_signed(signed) or not signed.get("id"):
            raise SigningFailed("Signer returned a credential without a verification method")
        return signed

    def _quote_fees(self) -> GasFees | None:
        """Query the gas station; fees are never reused across calls."""
        if self.chain.gas_station is None:
            return None

        try:
            fees = self.chain.gas_station()
        except Exception as e:
            raise MintSubmissionFailed(f"Gas station query failed: {e}") from e
        logger.info(
            "Gas station quote: maxFeePerGas=%s maxPriorityFeePerGas=%s",
            fees.max_fee_per_gas, fees.max_priority_fee_per_gas,
        )

        if fees.is_degenerate:
            if not self.allow_zero_fees:
                raise ConfigurationMissing(
                    "Gas station returned an empty fee quote and zero fees are not allowed"
                )
            logger.warning("Gas station quote is empty; submitting with zero fees as configured")
            return GasFees(
                max_fee_per_gas=fees.max_fee_per_gas or 0,
                max_priority_fee_per_gas=fees.max_priority_fee_per_gas or 0,
            )
        return fees


def issue_credential(
    credential: dict[str, Any],
    signer: Signer,
    chain: ChainBinding,
    registry: TokenRegistry,
    owner: str,
    holder: str,
    remarks: str | None = None,
) -> IssuanceResult:
    """Convenience function to issue a single credential."""
    issuer = CredentialIssuer(chain=chain, registry=registry, signer=signer)
    return issuer.issue(credential, owner=owner, holder=holder, remarks=remarks)
