"""
Request entry points.

Request-shaped wrappers around the issuer and verifier for an HTTP layer:
they take the document type and decoded JSON body, and return a status code
with a JSON-serializable payload.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from transferable_vc.chain import ChainBinding
from transferable_vc.config import Settings
from transferable_vc.documents import build_credential, resolve_template
from transferable_vc.errors import (
    InvalidRequest,
    InvalidTemplate,
    IssuanceError,
    MintWouldFail,
    UnsupportedDocumentType,
)
from transferable_vc.issuer import CredentialIssuer
from transferable_vc.registry import TokenRegistry, Web3TokenRegistry
from transferable_vc.signer import DataIntegritySigner, Signer
from transferable_vc.statuslist import create_status_list_entry
from transferable_vc.verifier import CredentialVerifier, ValidityReport


logger = logging.getLogger(__name__)

CLIENT_ERRORS = (InvalidRequest, InvalidTemplate, UnsupportedDocumentType, MintWouldFail)

RegistryBuilder = Callable[[ChainBinding, Settings], TokenRegistry]


class IssuanceRequest(BaseModel):
    """Body of an issuance request."""

    model_config = ConfigDict(populate_by_name=True)

    credential_subject: dict[str, Any] = Field(..., alias="credentialSubject")
    owner: str = Field(..., min_length=1)
    holder: str = Field(..., min_length=1)
    remarks: Optional[str] = None
    status_list_credential: Optional[str] = Field(None, alias="statusListCredential")
    status_list_index: Optional[int] = Field(None, alias="statusListIndex", ge=0)
    status_purpose: Literal["revocation", "suspension"] = Field("revocation", alias="statusPurpose")

    @model_validator(mode="after")
    def check_status_list(self) -> "IssuanceRequest":
        if (self.status_list_credential is None) != (self.status_list_index is None):
            raise ValueError("statusListCredential and statusListIndex must be given together")
        return self

    def status_entry(self) -> dict[str, Any] | None:
        """The bitstring status list entry requested for the credential, if any."""
        if self.status_list_credential is None or self.status_list_index is None:
            return None
        return create_status_list_entry(
            self.status_list_credential, self.status_list_index, self.status_purpose,
        )


def default_registry(chain: ChainBinding, settings: Settings) -> TokenRegistry:
    return Web3TokenRegistry.connect(
        chain,
        private_key=settings.WALLET_PRIVATE_KEY,
        timeout=settings.HTTP_TIMEOUT,
    )


def error_response(error: Exception, settings: Settings) -> tuple[int, dict[str, Any]]:
    """Map an issuance failure to a status code and error payload.

    Details are only included outside production.
    """
    status_code = 400 if isinstance(error, CLIENT_ERRORS) else 500
    if isinstance(error, IssuanceError):
        body: dict[str, Any] = {"type": type(error).__name__, "message": str(error)}
    else:
        body = {"type": "InternalError", "message": "Internal server error"}
    if not settings.is_production:
        body["details"] = repr(error)
    return status_code, {"error": body}


def create_document(
    document_type: str,
    body: Any,
    settings: Settings,
    signer: Signer | None = None,
    registry_builder: RegistryBuilder = default_registry,
) -> tuple[int, dict[str, Any]]:
    """Handle an issuance request.

    Args:
        document_type: Document type key from the request path.
        body: Decoded JSON body {credentialSubject, owner, holder, remarks},
            optionally with statusListCredential, statusListIndex and
            statusPurpose to attach a bitstring status list entry.
        settings: Runtime settings.
        signer: Signer to use; built from DID_KEY_PAIRS when not given.
        registry_builder: Builds the token registry for the chain binding.

    Returns:
        (200, {"signedW3CDocument": ...}) on success, otherwise an error
        status with {"error": {...}}.
    """
    try:
        template = resolve_template(document_type)
        try:
            request = IssuanceRequest.model_validate(body if body is not None else {})
        except ValidationError as e:
            raise InvalidRequest(f"Invalid issuance request: {e.error_count()} error(s)") from e

        settings.require_issuance()
        chain = settings.chain_binding()
        signer = signer or DataIntegritySigner(settings.key_pair())

        credential = build_credential(
            template, request.credential_subject, chain, status_entry=request.status_entry(),
        )
        issuer = CredentialIssuer(
            chain=chain,
            registry=registry_builder(chain, settings),
            signer=signer,
            allow_zero_fees=settings.ALLOW_ZERO_GAS_FEES,
            receipt_timeout=settings.RECEIPT_TIMEOUT,
        )
        result = issuer.issue(
            credential,
            owner=request.owner,
            holder=request.holder,
            remarks=request.remarks,
        )
    except Exception as e:
        logger.error("Create error: %s", e, exc_info=not isinstance(e, CLIENT_ERRORS))
        return error_response(e, settings)

    logger.info(
        "Document %s minted on tx hash %s",
        template.document_type, result.receipt.transaction_hash,
    )
    return 200, {"signedW3CDocument": result.signed_credential}


def verify_document(
    body: Any,
    settings: Settings,
    verifier: CredentialVerifier | None = None,
) -> tuple[int, dict[str, bool]]:
    """Handle a verification request.

    Always answers 200; verification failures are reported in the body.
    """
    try:
        verifier = verifier or CredentialVerifier(timeout=settings.HTTP_TIMEOUT)
        report = verifier.verify(body, settings.chain_binding())
    except Exception as e:
        logger.error("Verification error: %s", e)
        report = ValidityReport()
    return 200, report.to_dict()

