"""
Issuance error taxonomy.

Every error raised while building, signing or minting a credential derives
from IssuanceError. Verification never raises; its failures are reported as
fragments instead.
"""

from __future__ import annotations


class IssuanceError(Exception):
    """Base class for issuance failures."""


class InvalidRequest(IssuanceError):
    """Raised when an issuance request is missing required fields."""


class InvalidTemplate(IssuanceError):
    """Raised when a document template supplies no context URI."""


class UnsupportedDocumentType(IssuanceError):
    """Raised when a document type key is not in the supported registry."""

    def __init__(self, document_type: str) -> None:
        super().__init__(f"Document type not supported: {document_type}")
        self.document_type = document_type


class UnsignedCredential(IssuanceError):
    """Raised when a signed credential is required but no proof is present."""


class SigningFailed(IssuanceError):
    """Raised when the signer cannot produce a usable proof."""


class MintWouldFail(IssuanceError):
    """Raised when the dry-run mint reverts. Nothing was submitted."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Mint would fail: {reason}")
        self.reason = reason


class MintSubmissionFailed(IssuanceError):
    """Raised when the mint transaction cannot be submitted or confirmed."""


class MintConfirmationTimeout(MintSubmissionFailed):
    """Raised when a submitted mint is not mined within the receipt timeout."""

    def __init__(self, transaction_hash: str, timeout: float) -> None:
        super().__init__(
            f"Transaction {transaction_hash} not mined within {timeout:g}s"
        )
        self.transaction_hash = transaction_hash
        self.timeout = timeout


class MintReverted(IssuanceError):
    """Raised when the mint transaction was mined with a failed status."""

    def __init__(self, transaction_hash: str) -> None:
        super().__init__(f"Mint transaction reverted: {transaction_hash}")
        self.transaction_hash = transaction_hash


class ConfigurationMissing(IssuanceError):
    """Raised when required chain or key configuration is absent."""
