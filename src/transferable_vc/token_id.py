"""
Token id derivation.

The registry token id of a transferable record is the SHA-256 digest of the
JCS canonical bytes of the signed credential, proof included.
"""

from __future__ import annotations

import hashlib
from typing import Any

from transferable_vc.canonical import canonical_bytes
from transferable_vc.errors import UnsignedCredential


class TokenId(str):
    """A 0x-prefixed, 64 hex digit token id."""

    def as_int(self) -> int:
        """The uint256 value passed to the registry contract."""
        return int(self, 16)


def is_signed(credential: dict[str, Any]) -> bool:
    """True when the credential carries a proof with a verification method."""
    proof = credential.get("proof")
    if isinstance(proof, list):
        proof = proof[0] if proof else None
    return isinstance(proof, dict) and bool(proof.get("verificationMethod"))


def derive_token_id(signed_credential: dict[str, Any]) -> TokenId:
    """Derive the token id of a signed credential.

    Raises:
        UnsignedCredential: If the credential carries no proof.
    """
    if not is_signed(signed_credential):
        raise UnsignedCredential("Cannot derive a token id from an unsigned credential")
    digest = hashlib.sha256(canonical_bytes(signed_credential)).hexdigest()
    return TokenId("0x" + digest)
