"""
Verifiable Credentials Verifier.

Verifies transferable-record credentials by running three independent
checks and folding their fragments into a validity report:

- DOCUMENT_INTEGRITY: Data Integrity proof (ecdsa-jcs-2022, P-256)
- DOCUMENT_STATUS: token minted on the registry, bitstring status lists
- ISSUER_IDENTITY: proof key authorized by the issuer's did:web document

Verification never raises; every failure becomes a fragment.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from transferable_vc.canonical import base64url_decode, canonical_bytes, without_proof
from transferable_vc.chain import ChainBinding
from transferable_vc.did_resolver import DIDResolutionError, DIDResolver
from transferable_vc.registry import Web3TokenRegistry, make_web3
from transferable_vc.signer import CRYPTOSUITE, PROOF_TYPE
from transferable_vc.statuslist import STATUS_ENTRY_TYPES, CredentialStatus, StatusListChecker
from transferable_vc.token_id import TokenId, derive_token_id


logger = logging.getLogger(__name__)

ASSERTION_METHOD = "assertionMethod"


class FragmentCategory(Enum):
    """What aspect of validity a fragment speaks for."""

    DOCUMENT_INTEGRITY = "DOCUMENT_INTEGRITY"
    DOCUMENT_STATUS = "DOCUMENT_STATUS"
    ISSUER_IDENTITY = "ISSUER_IDENTITY"


class FragmentStatus(Enum):
    """Outcome of one check."""

    VALID = "VALID"
    INVALID = "INVALID"
    ERROR = "ERROR"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class VerificationFragment:
    """Result of one named check."""

    name: str
    category: FragmentCategory
    status: FragmentStatus
    reason: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "type": self.category.value,
            "status": self.status.value,
            "reason": self.reason,
        }


def category_is_valid(
    fragments: list[VerificationFragment],
    category: FragmentCategory,
) -> bool:
    """A category holds when at least one of its fragments is VALID and
    none is INVALID or ERROR."""
    statuses = [f.status for f in fragments if f.category is category]
    return FragmentStatus.VALID in statuses and all(
        s in (FragmentStatus.VALID, FragmentStatus.SKIPPED) for s in statuses
    )


@dataclass
class ValidityReport:
    """Validity verdict built from verification fragments."""

    fragments: list[VerificationFragment] = field(default_factory=list)

    @property
    def document_integrity(self) -> bool:
        return category_is_valid(self.fragments, FragmentCategory.DOCUMENT_INTEGRITY)

    @property
    def document_status(self) -> bool:
        return category_is_valid(self.fragments, FragmentCategory.DOCUMENT_STATUS)

    @property
    def issuer_identity(self) -> bool:
        return category_is_valid(self.fragments, FragmentCategory.ISSUER_IDENTITY)

    @property
    def is_valid(self) -> bool:
        """Overall validity: every category holds."""
        return self.document_integrity and self.document_status and self.issuer_identity

    @property
    def errors(self) -> list[str]:
        return [
            f"{f.name}: {f.reason}"
            for f in self.fragments
            if f.status in (FragmentStatus.INVALID, FragmentStatus.ERROR)
        ]

    def to_dict(self) -> dict[str, bool]:
        return {
            "VALIDITY": self.is_valid,
            "DOCUMENT_INTEGRITY": self.document_integrity,
            "DOCUMENT_STATUS": self.document_status,
            "ISSUER_IDENTITY": self.issuer_identity,
        }


@dataclass
class ProofVerificationResult:
    """Result of cryptographic proof verification."""

    valid: bool
    cryptosuite: str
    verification_method: str
    error: str | None = None


class OwnershipReader(Protocol):
    def owner_of(self, token_id: TokenId) -> str | None: ...


RegistryFactory = Callable[[ChainBinding, str], OwnershipReader]


class CredentialVerifier:
    """Verification aggregator for transferable-record credentials.

    Supports:
    - Data Integrity Proofs with ecdsa-jcs-2022 cryptosuite
    - did:web DID resolution (JsonWebKey and Multikey methods)
    - TransferableRecords on-chain status
    - BitstringStatusList / StatusList2021 revocation checking
    """

    SUPPORTED_CRYPTOSUITES = {CRYPTOSUITE}
    SUPPORTED_PROOF_TYPES = {PROOF_TYPE}

    def __init__(
        self,
        did_resolver: DIDResolver | None = None,
        statuslist_checker: StatusListChecker | None = None,
        registry_factory: RegistryFactory | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the verifier.

        Args:
            did_resolver: Custom DID resolver. Created if not provided.
            statuslist_checker: Custom StatusList checker. Created if not provided.
            registry_factory: Builds a read-only registry for a chain binding
                and registry address. Defaults to a web3 registry.
            timeout: Network timeout for the default collaborators.
        """
        self.did_resolver = did_resolver or DIDResolver(timeout=timeout)
        self.statuslist_checker = statuslist_checker or StatusListChecker(timeout=timeout)
        self.registry_factory = registry_factory or self._default_registry_factory(timeout)

    @staticmethod
    def _default_registry_factory(timeout: float) -> RegistryFactory:
        def factory(chain: ChainBinding, address: str) -> OwnershipReader:
            return Web3TokenRegistry(
                make_web3(chain.rpc_url, timeout=timeout),
                address,
                chain_id=chain.chain_id,
            )
        return factory

    def verify(self, credential: Any, chain: ChainBinding) -> ValidityReport:
        """Verify a credential against a chain binding.

        The three checks run concurrently; the report lists their fragments
        in a fixed order regardless of completion order.

        Args:
            credential: The credential to verify. Anything that is not a
                JSON object yields an all-false report.
            chain: Chain binding the credential is expected to be minted on.

        Returns:
            ValidityReport with one or more fragments per category.
        """
        if not isinstance(credential, dict):
            return ValidityReport(fragments=[
                VerificationFragment(
                    "W3CCredentialParse", category, FragmentStatus.ERROR,
                    "Credential is not a JSON object",
                )
                for category in FragmentCategory
            ])

        checks: list[tuple[str, FragmentCategory, Callable[[], list[VerificationFragment]]]] = [
            ("W3CSignatureIntegrity", FragmentCategory.DOCUMENT_INTEGRITY,
             lambda: self._check_integrity(credential)),
            ("W3CCredentialStatus", FragmentCategory.DOCUMENT_STATUS,
             lambda: self._check_status(credential, chain)),
            ("W3CIssuerIdentity", FragmentCategory.ISSUER_IDENTITY,
             lambda: self._check_issuer(credential)),
        ]

        with ThreadPoolExecutor(max_workers=len(checks)) as executor:
            futures = [
                executor.submit(self._guard, name, category, check)
                for name, category, check in checks
            ]
            fragments = [fragment for future in futures for fragment in future.result()]

        return ValidityReport(fragments=fragments)

    def _guard(
        self,
        name: str,
        category: FragmentCategory,
        check: Callable[[], list[VerificationFragment]],
    ) -> list[VerificationFragment]:
        """Run a check, turning any exception into an ERROR fragment."""
        try:
            return check()
        except Exception as e:
            logger.warning("%s check errored: %s", name, e)
            return [VerificationFragment(name, category, FragmentStatus.ERROR, str(e))]

    # ------------------------------------------------------------------
    # DOCUMENT_INTEGRITY
    # ------------------------------------------------------------------

    def _check_integrity(self, credential: dict[str, Any]) -> list[VerificationFragment]:
        name, category = "W3CSignatureIntegrity", FragmentCategory.DOCUMENT_INTEGRITY

        structure_errors = self._validate_structure(credential)
        if structure_errors:
            return [VerificationFragment(
                name, category, FragmentStatus.INVALID, "; ".join(structure_errors),
            )]

        proof_result = self._verify_proof(credential)
        if not proof_result.valid:
            return [VerificationFragment(
                name, category, FragmentStatus.INVALID,
                f"Proof verification failed: {proof_result.error}",
            )]
        return [VerificationFragment(
            name, category, FragmentStatus.VALID,
            f"Proof verified with {proof_result.verification_method}",
        )]

    def _extract_issuer(self, credential: dict[str, Any]) -> str | None:
        """Extract issuer ID from credential."""
        issuer = credential.get("issuer")
        if isinstance(issuer, str):
            return issuer
        if isinstance(issuer, dict):
            return issuer.get("id")
        return None

    def _validate_structure(self, credential: dict[str, Any]) -> list[str]:
        """Validate basic VC structure.

        Returns:
            List of validation errors (empty if valid).
        """
        errors: list[str] = []

        if "@context" not in credential:
            errors.append("Missing @context")
        if "type" not in credential:
            errors.append("Missing type")
        elif "VerifiableCredential" not in credential.get("type", []):
            errors.append("type must include 'VerifiableCredential'")
        if "issuer" not in credential:
            errors.append("Missing issuer")
        if "credentialSubject" not in credential:
            errors.append("Missing credentialSubject")
        if "proof" not in credential:
            errors.append("Missing proof")
        elif not isinstance(credential["proof"], dict):
            errors.append("proof must be an object")

        return errors

    def _verify_proof(self, credential: dict[str, Any]) -> ProofVerificationResult:
        """Verify the cryptographic proof.

        Args:
            credential: The signed credential.

        Returns:
            ProofVerificationResult with verification details.
        """
        proof = credential.get("proof", {})

        proof_type = proof.get("type")
        if proof_type not in self.SUPPORTED_PROOF_TYPES:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=proof.get("cryptosuite", "unknown"),
                verification_method=proof.get("verificationMethod", "unknown"),
                error=f"Unsupported proof type: {proof_type}",
            )

        cryptosuite = proof.get("cryptosuite")
        if cryptosuite not in self.SUPPORTED_CRYPTOSUITES:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=cryptosuite or "unknown",
                verification_method=proof.get("verificationMethod", "unknown"),
                error=f"Unsupported cryptosuite: {cryptosuite}",
            )

        verification_method = proof.get("verificationMethod", "")
        if not verification_method:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=cryptosuite,
                verification_method="",
                error="Missing verificationMethod in proof",
            )

        try:
            vm = self.did_resolver.resolve_verification_method(verification_method)
            public_key = vm.public_key()
        except DIDResolutionError as e:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=cryptosuite,
                verification_method=verification_method,
                error=f"DID resolution failed: {e}",
            )

        try:
            signature_valid = self._verify_signature(credential, proof, public_key)
        except Exception as e:
            return ProofVerificationResult(
                valid=False,
                cryptosuite=cryptosuite,
                verification_method=verification_method,
                error=f"Signature verification error: {e}",
            )

        return ProofVerificationResult(
            valid=signature_valid,
            cryptosuite=cryptosuite,
            verification_method=verification_method,
            error=None if signature_valid else "Invalid signature",
        )

    def _verify_signature(
        self,
        credential: dict[str, Any],
        proof: dict[str, Any],
        public_key: ec.EllipticCurvePublicKey,
    ) -> bool:
        """Verify the ECDSA signature.

        Implements ecdsa-jcs-2022 verification:
        1. Remove proof from credential
        2. Canonicalize with JCS (RFC 8785)
        3. Verify ECDSA P-256 signature (DER or raw r||s)
        """
        message_bytes = canonical_bytes(without_proof(credential))
        signature_bytes = base64url_decode(proof.get("proofValue", ""))

        try:
            public_key.verify(
                signature_bytes,
                message_bytes,
                ec.ECDSA(hashes.SHA256()),
            )
            return True
        except InvalidSignature:
            pass

        # Try raw r||s format (64 bytes for P-256)
        if len(signature_bytes) == 64:
            r = int.from_bytes(signature_bytes[:32], byteorder="big")
            s = int.from_bytes(signature_bytes[32:], byteorder="big")
            try:
                public_key.verify(
                    encode_dss_signature(r, s),
                    message_bytes,
                    ec.ECDSA(hashes.SHA256()),
                )
                return True
            except InvalidSignature:
                return False
        return False

    # ------------------------------------------------------------------
    # DOCUMENT_STATUS
    # ------------------------------------------------------------------

    def _check_status(
        self,
        credential: dict[str, Any],
        chain: ChainBinding,
    ) -> list[VerificationFragment]:
        category = FragmentCategory.DOCUMENT_STATUS
        status_data = credential.get("credentialStatus")
        entries = status_data if isinstance(status_data, list) else [status_data] if status_data else []

        fragments: list[VerificationFragment] = []
        for entry in entries:
            if isinstance(entry, dict) and entry.get("type") == "TransferableRecords":
                fragments.append(self._guard(
                    "TransferableRecords", category,
                    lambda entry=entry: [self._check_transferable_record(credential, entry, chain)],
                )[0])

        if any(isinstance(entry, dict) and entry.get("type") in STATUS_ENTRY_TYPES for entry in entries):
            fragments.extend(self._guard(
                "W3CCredentialStatus", category,
                lambda: self._check_status_lists(credential),
            ))

        if not fragments:
            fragments.append(VerificationFragment(
                "W3CCredentialStatus", category, FragmentStatus.SKIPPED,
                "Credential has no credentialStatus",
            ))
        return fragments

    def _check_transferable_record(
        self,
        credential: dict[str, Any],
        entry: dict[str, Any],
        chain: ChainBinding,
    ) -> VerificationFragment:
        name, category = "TransferableRecords", FragmentCategory.DOCUMENT_STATUS

        chain_id = entry.get("chainId")
        if str(chain_id) != str(chain.chain_id):
            return VerificationFragment(
                name, category, FragmentStatus.INVALID,
                f"Credential is bound to chain {chain_id}, expected {chain.chain_id}",
            )
        registry_address = entry.get("tokenRegistry")
        if not registry_address:
            return VerificationFragment(
                name, category, FragmentStatus.INVALID,
                "credentialStatus has no tokenRegistry",
            )

        token_id = derive_token_id(credential)
        owner = self.registry_factory(chain, registry_address).owner_of(token_id)
        if owner is None:
            return VerificationFragment(
                name, category, FragmentStatus.INVALID,
                f"Token {token_id} is not minted on registry {registry_address}",
            )
        return VerificationFragment(
            name, category, FragmentStatus.VALID,
            f"Token {token_id} is owned by {owner}",
        )

    def _check_status_lists(self, credential: dict[str, Any]) -> list[VerificationFragment]:
        category = FragmentCategory.DOCUMENT_STATUS
        fragments = []
        for result in self.statuslist_checker.check_status(credential):
            status = (
                FragmentStatus.VALID
                if result.status == CredentialStatus.VALID
                else FragmentStatus.INVALID
            )
            fragments.append(VerificationFragment(
                "W3CCredentialStatus", category, status, result.message,
            ))
        return fragments

    # ------------------------------------------------------------------
    # ISSUER_IDENTITY
    # ------------------------------------------------------------------

    def _check_issuer(self, credential: dict[str, Any]) -> list[VerificationFragment]:
        name, category = "W3CIssuerIdentity", FragmentCategory.ISSUER_IDENTITY

        issuer = self._extract_issuer(credential)
        if not issuer:
            return [VerificationFragment(name, category, FragmentStatus.INVALID, "Missing issuer")]

        proof = credential.get("proof")
        verification_method = proof.get("verificationMethod") if isinstance(proof, dict) else None
        if not verification_method:
            return [VerificationFragment(
                name, category, FragmentStatus.INVALID, "Missing verificationMethod in proof",
            )]
        if verification_method.split("#")[0] != issuer:
            return [VerificationFragment(
                name, category, FragmentStatus.INVALID,
                f"Verification method {verification_method} does not belong to issuer {issuer}",
            )]

        purpose = proof.get("proofPurpose")
        if purpose != ASSERTION_METHOD:
            return [VerificationFragment(
                name, category, FragmentStatus.INVALID,
                f"Proof purpose must be {ASSERTION_METHOD}, got {purpose}",
            )]

        try:
            document = self.did_resolver.resolve(issuer)
            authorized = document.is_authorized(verification_method, ASSERTION_METHOD)
        except DIDResolutionError as e:
            return [VerificationFragment(name, category, FragmentStatus.INVALID, str(e))]

        if not authorized:
            return [VerificationFragment(
                name, category, FragmentStatus.INVALID,
                f"{verification_method} is not authorized for {ASSERTION_METHOD} by {issuer}",
            )]
        return [VerificationFragment(
            name, category, FragmentStatus.VALID,
            f"{verification_method} is authorized for {ASSERTION_METHOD} by {issuer}",
        )]


def verify_credential(credential: Any, chain: ChainBinding) -> ValidityReport:
    """Convenience function to verify a credential.

    Args:
        credential: The Verifiable Credential to verify.
        chain: Chain binding the credential should be minted on.

    Returns:
        ValidityReport with the fragments of all checks.
    """
    verifier = CredentialVerifier()
    return verifier.verify(credential, chain)
