"""
DID Resolver for did:web method.

Resolves did:web identifiers to DID Documents per W3C DID specification,
and builds the DID Document an issuer publishes for its key pairs.
https://w3c-ccg.github.io/did-method-web/
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable
from urllib.parse import quote

import httpx
from cryptography.hazmat.primitives.asymmetric import ec

from transferable_vc.keys import (
    KeyMaterialError,
    KeyPair,
    public_key_from_jwk,
    public_key_from_multibase,
)


logger = logging.getLogger(__name__)

DID_CONTEXTS = [
    "https://www.w3.org/ns/did/v1",
    "https://w3id.org/security/multikey/v1",
]

VERIFICATION_RELATIONSHIPS = (
    "authentication",
    "assertionMethod",
    "capabilityInvocation",
    "capabilityDelegation",
)


class DIDResolutionError(Exception):
    """Raised when DID resolution fails."""


@dataclass
class PublicKeyJWK:
    """EC P-256 public key in JWK format."""

    kty: str
    crv: str
    x: str
    y: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublicKeyJWK:
        """Create PublicKeyJWK from a JWK dictionary."""
        return cls(
            kty=data.get("kty", ""),
            crv=data.get("crv", ""),
            x=data.get("x", ""),
            y=data.get("y", ""),
        )

    def is_valid_p256(self) -> bool:
        """Check if this is a valid P-256 EC key."""
        return self.kty == "EC" and self.crv == "P-256" and bool(self.x) and bool(self.y)

    def to_dict(self) -> dict[str, str]:
        return {"kty": self.kty, "crv": self.crv, "x": self.x, "y": self.y}


@dataclass
class VerificationMethod:
    """DID Document verification method."""

    id: str
    type: str
    controller: str
    public_key_jwk: PublicKeyJWK | None = None
    public_key_multibase: str | None = None

    def public_key(self) -> ec.EllipticCurvePublicKey:
        """Load the P-256 public key of this method.

        Raises:
            DIDResolutionError: If the method carries no usable P-256 key.
        """
        try:
            if self.public_key_jwk is not None:
                if not self.public_key_jwk.is_valid_p256():
                    raise DIDResolutionError(
                        f"Public key is not a valid P-256 EC key: {self.public_key_jwk}"
                    )
                return public_key_from_jwk(self.public_key_jwk.to_dict())
            if self.public_key_multibase:
                return public_key_from_multibase(self.public_key_multibase)
        except KeyMaterialError as e:
            raise DIDResolutionError(f"Invalid key in {self.id}: {e}") from e
        raise DIDResolutionError(f"No public key in verification method {self.id}")


@dataclass
class DIDDocument:
    """W3C DID Document."""

    id: str
    verification_methods: list[VerificationMethod]
    authentication: list[str]
    assertion_method: list[str]
    capability_invocation: list[str] = field(default_factory=list)
    capability_delegation: list[str] = field(default_factory=list)

    def get_verification_method(self, method_id: str) -> VerificationMethod | None:
        """Get a verification method by ID."""
        for vm in self.verification_methods:
            if vm.id == method_id:
                return vm
        return None

    def is_authorized(self, method_id: str, relationship: str = "assertionMethod") -> bool:
        """Check that a verification method is listed under a relationship."""
        allowed = {
            "authentication": self.authentication,
            "assertionMethod": self.assertion_method,
            "capabilityInvocation": self.capability_invocation,
            "capabilityDelegation": self.capability_delegation,
        }.get(relationship)
        if allowed is None:
            raise ValueError(f"Unknown verification relationship: {relationship}")
        return method_id in allowed and self.get_verification_method(method_id) is not None


class DIDResolver:
    """Resolver for did:web DID method.

    Documents are fetched on every call; a rotated or removed key takes
    effect on the next resolution.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the DID resolver.

        Args:
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def _did_to_url(self, did: str) -> str:
        """Convert a did:web identifier to its resolution URL.

        did:web:example.com -> https://example.com/.well-known/did.json
        did:web:example.com:path:to:doc -> https://example.com/path/to/doc/did.json
        did:web:example.com%3A8080 -> https://example.com:8080/.well-known/did.json

        Args:
            did: The did:web identifier.

        Returns:
            The HTTPS URL to fetch the DID Document.

        Raises:
            DIDResolutionError: If the DID format is invalid.
        """
        if not did.startswith("did:web:"):
            raise DIDResolutionError(f"Invalid did:web identifier: {did}")

        domain_path = did[8:]

        # Handle fragment (e.g., did:web:example.com#key-1)
        if "#" in domain_path:
            domain_path = domain_path.split("#")[0]

        parts = domain_path.split(":")

        # First part is the domain (with potential port encoded as %3A)
        domain = parts[0].replace("%3A", ":")

        if len(parts) > 1:
            path = "/" + "/".join(quote(p, safe="") for p in parts[1:]) + "/did.json"
        else:
            path = "/.well-known/did.json"

        return f"https://{domain}{path}"

    def resolve(self, did: str) -> DIDDocument:
        """Resolve a did:web identifier to its DID Document.

        Args:
            did: The did:web identifier (e.g., "did:web:example.com").

        Returns:
            The resolved DIDDocument.

        Raises:
            DIDResolutionError: If resolution fails.
        """
        base_did = did.split("#")[0]
        url = self._did_to_url(base_did)
        logger.debug("Resolving %s via %s", base_did, url)

        try:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.get(
                    url,
                    headers={"Accept": "application/did+ld+json, application/json"},
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            raise DIDResolutionError(
                f"HTTP error resolving {did}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise DIDResolutionError(f"Network error resolving {did}: {e}") from e
        except ValueError as e:
            raise DIDResolutionError(f"Invalid JSON in DID Document for {did}") from e

        if not isinstance(data, dict):
            raise DIDResolutionError(f"DID Document for {did} is not an object")

        return self._parse_did_document(data, base_did)

    def resolve_verification_method(self, method_id: str) -> VerificationMethod:
        """Resolve a verification method id (did#fragment) to its method.

        Raises:
            DIDResolutionError: If the DID or the method cannot be found.
        """
        document = self.resolve(method_id)
        vm = document.get_verification_method(method_id)
        if vm is None:
            raise DIDResolutionError(
                f"Verification method {method_id} not found in DID Document"
            )
        return vm

    def _parse_did_document(self, data: dict[str, Any], did: str) -> DIDDocument:
        """Parse a DID Document from JSON.

        Args:
            data: The raw JSON data.
            did: The expected DID.

        Returns:
            Parsed DIDDocument.

        Raises:
            DIDResolutionError: If the document is invalid.
        """
        doc_id = data.get("id", "")
        if doc_id != did:
            raise DIDResolutionError(
                f"DID Document id mismatch: expected {did}, got {doc_id}"
            )

        verification_methods: list[VerificationMethod] = []
        for vm_data in data.get("verificationMethod", []):
            public_key_jwk = None
            if "publicKeyJwk" in vm_data:
                public_key_jwk = PublicKeyJWK.from_dict(vm_data["publicKeyJwk"])

            verification_methods.append(VerificationMethod(
                id=self._absolute_id(vm_data.get("id", ""), doc_id),
                type=vm_data.get("type", ""),
                controller=vm_data.get("controller", ""),
                public_key_jwk=public_key_jwk,
                public_key_multibase=vm_data.get("publicKeyMultibase"),
            ))

        relationships = {
            name: self._parse_verification_relationship(data.get(name, []), doc_id)
            for name in VERIFICATION_RELATIONSHIPS
        }

        return DIDDocument(
            id=doc_id,
            verification_methods=verification_methods,
            authentication=relationships["authentication"],
            assertion_method=relationships["assertionMethod"],
            capability_invocation=relationships["capabilityInvocation"],
            capability_delegation=relationships["capabilityDelegation"],
        )

    def _parse_verification_relationship(
        self, items: list[Any], did: str
    ) -> list[str]:
        """Parse a verification relationship array.

        Items can be either strings (references) or objects (embedded methods).
        We only extract the ID references, made absolute against the DID.
        """
        result: list[str] = []
        for item in items:
            if isinstance(item, str):
                result.append(self._absolute_id(item, did))
            elif isinstance(item, dict) and "id" in item:
                result.append(self._absolute_id(item["id"], did))
        return result

    @staticmethod
    def _absolute_id(method_id: str, did: str) -> str:
        if method_id.startswith("#"):
            return did + method_id
        return method_id


def build_did_document(key_pairs: Iterable[KeyPair]) -> dict[str, Any]:
    """Build the DID Document to publish for an issuer's key pairs.

    Every key is listed under all four verification relationships.

    Raises:
        ValueError: If no key pairs are given or they name different DIDs.
    """
    pairs = list(key_pairs)
    if not pairs:
        raise ValueError("At least one key pair is required")
    controllers = {pair.controller for pair in pairs}
    if len(controllers) != 1:
        raise ValueError(f"Key pairs belong to different DIDs: {sorted(controllers)}")

    method_ids = [pair.id for pair in pairs]
    document: dict[str, Any] = {
        "@context": list(DID_CONTEXTS),
        "id": pairs[0].controller,
        "verificationMethod": [pair.verification_method() for pair in pairs],
    }
    if any(pair.type == "JsonWebKey" for pair in pairs):
        document["@context"].append("https://w3id.org/security/jwk/v1")
    for relationship in VERIFICATION_RELATIONSHIPS:
        document[relationship] = list(method_ids)
    return document
