"""
Transferable VC - issue and verify transferable-record Verifiable Credentials.

Supports:
- W3C Data Integrity Proofs (ecdsa-jcs-2022 cryptosuite, P-256)
- did:web DID method resolution (JsonWebKey and Multikey)
- Minting on TradeTrust-style token registries over JSON-RPC
- W3C Bitstring Status List revocation/suspension
"""

from transferable_vc.chain import ChainBinding, GasFees, SUPPORTED_CHAINS, get_chain
from transferable_vc.config import Settings
from transferable_vc.did_resolver import DIDResolver, DIDResolutionError, build_did_document
from transferable_vc.documents import SUPPORTED_DOCUMENTS, build_credential, resolve_template
from transferable_vc.errors import (
    ConfigurationMissing,
    InvalidRequest,
    InvalidTemplate,
    IssuanceError,
    MintConfirmationTimeout,
    MintReverted,
    MintSubmissionFailed,
    MintWouldFail,
    SigningFailed,
    UnsignedCredential,
    UnsupportedDocumentType,
)
from transferable_vc.issuer import CredentialIssuer, IssuanceResult, issue_credential
from transferable_vc.keys import KeyPair, load_key_pairs
from transferable_vc.remarks import decrypt_remarks, encrypt_remarks
from transferable_vc.signer import DataIntegritySigner
from transferable_vc.statuslist import CredentialStatus, StatusList, StatusListChecker
from transferable_vc.token_id import TokenId, derive_token_id
from transferable_vc.verifier import (
    CredentialVerifier,
    ValidityReport,
    verify_credential,
)

__version__ = "0.1.0"

__all__ = [
    "ChainBinding",
    "GasFees",
    "SUPPORTED_CHAINS",
    "get_chain",
    "Settings",
    "DIDResolver",
    "DIDResolutionError",
    "build_did_document",
    "SUPPORTED_DOCUMENTS",
    "build_credential",
    "resolve_template",
    "ConfigurationMissing",
    "InvalidRequest",
    "InvalidTemplate",
    "IssuanceError",
    "MintConfirmationTimeout",
    "MintReverted",
    "MintSubmissionFailed",
    "MintWouldFail",
    "SigningFailed",
    "UnsignedCredential",
    "UnsupportedDocumentType",
    "CredentialIssuer",
    "IssuanceResult",
    "issue_credential",
    "KeyPair",
    "load_key_pairs",
    "decrypt_remarks",
    "encrypt_remarks",
    "DataIntegritySigner",
    "CredentialStatus",
    "StatusList",
    "StatusListChecker",
    "TokenId",
    "derive_token_id",
    "CredentialVerifier",
    "ValidityReport",
    "verify_credential",
]
