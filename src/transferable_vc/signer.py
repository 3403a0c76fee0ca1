"""
Data Integrity signer.

Produces DataIntegrityProof / ecdsa-jcs-2022 proofs with a P-256 key pair,
the counterpart of the proof check in transferable_vc.verifier.
"""

from __future__ import annotations

import copy
import uuid
from datetime import datetime
from typing import Any, Protocol

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from transferable_vc.canonical import (
    base64url_encode,
    canonical_bytes,
    format_datetime,
    without_proof,
)
from transferable_vc.keys import KeyPair


PROOF_TYPE = "DataIntegrityProof"
CRYPTOSUITE = "ecdsa-jcs-2022"


class Signer(Protocol):
    """Signing capability used by the issuer."""

    @property
    def verification_method(self) -> str: ...

    def sign(self, credential: dict[str, Any]) -> dict[str, Any]: ...


class DataIntegritySigner:
    """Signs credentials with an ecdsa-jcs-2022 Data Integrity proof.

    Signing fills in the credential id (urn:uuid), the issuer (the key
    pair's controller DID) and validFrom when they are absent, then signs
    the JCS canonical form of the credential without its proof.
    """

    def __init__(self, key_pair: KeyPair) -> None:
        self.key_pair = key_pair

    @property
    def verification_method(self) -> str:
        return self.key_pair.id

    def sign(
        self,
        credential: dict[str, Any],
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Sign a credential.

        Args:
            credential: The unsigned credential. It is not modified.
            now: Signing time, defaults to the current time.

        Returns:
            A new credential carrying the proof.
        """
        timestamp = format_datetime(now)

        unsigned = copy.deepcopy(without_proof(credential))
        unsigned.setdefault("id", f"urn:uuid:{uuid.uuid4()}")
        unsigned["issuer"] = self.key_pair.did
        unsigned.setdefault("validFrom", timestamp)

        signature = self.key_pair.private_key.sign(
            canonical_bytes(unsigned),
            ec.ECDSA(hashes.SHA256()),
        )

        signed = dict(unsigned)
        signed["proof"] = {
            "type": PROOF_TYPE,
            "cryptosuite": CRYPTOSUITE,
            "created": timestamp,
            "verificationMethod": self.key_pair.id,
            "proofPurpose": "assertionMethod",
            "proofValue": base64url_encode(signature),
        }
        return signed
