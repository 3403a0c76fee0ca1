"""
DID key material.

Loads issuer key pairs in the Multikey (publicKeyMultibase /
secretKeyMultibase) and JsonWebKey (publicKeyJwk / privateKeyJwk) formats
and converts them to P-256 keys.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

import base58
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from transferable_vc.canonical import base64url_decode, base64url_encode


# Multicodec varint prefixes
P256_PUBLIC_CODEC = b"\x80\x24"  # p256-pub (0x1200)
P256_PRIVATE_CODEC = b"\x86\x26"  # p256-priv (0x1306)

_ESCAPED_QUOTE = re.compile(r'\\(?=")')


class KeyMaterialError(Exception):
    """Raised when key material cannot be loaded."""


def public_key_to_multibase(public_key: ec.EllipticCurvePublicKey) -> str:
    """Encode a P-256 public key as a base58btc Multikey value (z...)."""
    point = public_key.public_bytes(Encoding.X962, PublicFormat.CompressedPoint)
    return "z" + base58.b58encode(P256_PUBLIC_CODEC + point).decode("ascii")


def public_key_from_multibase(value: str) -> ec.EllipticCurvePublicKey:
    """Decode a base58btc Multikey value into a P-256 public key."""
    raw = _decode_multibase(value, P256_PUBLIC_CODEC)
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), raw)
    except ValueError as e:
        raise KeyMaterialError(f"Invalid P-256 public key: {e}") from e


def private_key_to_multibase(private_key: ec.EllipticCurvePrivateKey) -> str:
    """Encode a P-256 private key as a base58btc Multikey secret value."""
    secret = private_key.private_numbers().private_value.to_bytes(32, byteorder="big")
    return "z" + base58.b58encode(P256_PRIVATE_CODEC + secret).decode("ascii")


def private_key_from_multibase(value: str) -> ec.EllipticCurvePrivateKey:
    """Decode a base58btc Multikey secret value into a P-256 private key."""
    raw = _decode_multibase(value, P256_PRIVATE_CODEC)
    if len(raw) != 32:
        raise KeyMaterialError(f"Expected 32-byte P-256 secret, got {len(raw)} bytes")
    try:
        return ec.derive_private_key(int.from_bytes(raw, byteorder="big"), ec.SECP256R1())
    except ValueError as e:
        raise KeyMaterialError(f"Invalid P-256 secret: {e}") from e


def _decode_multibase(value: str, codec: bytes) -> bytes:
    if not value or not value.startswith("z"):
        raise KeyMaterialError("Multikey value must be multibase base58btc (z...)")
    try:
        decoded = base58.b58decode(value[1:])
    except ValueError as e:
        raise KeyMaterialError(f"Invalid base58 in Multikey value: {e}") from e
    if not decoded.startswith(codec):
        raise KeyMaterialError("Multikey value is not a P-256 key")
    return decoded[len(codec):]


def public_key_from_jwk(jwk: dict[str, Any]) -> ec.EllipticCurvePublicKey:
    """Convert a P-256 JWK to an EC public key object."""
    if jwk.get("kty") != "EC" or jwk.get("crv") != "P-256":
        raise KeyMaterialError(f"Not a P-256 EC key: kty={jwk.get('kty')} crv={jwk.get('crv')}")
    try:
        x = int.from_bytes(base64url_decode(jwk["x"]), byteorder="big")
        y = int.from_bytes(base64url_decode(jwk["y"]), byteorder="big")
        return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256R1()).public_key()
    except (KeyError, ValueError) as e:
        raise KeyMaterialError(f"Invalid P-256 JWK: {e}") from e


def public_key_to_jwk(public_key: ec.EllipticCurvePublicKey) -> dict[str, str]:
    """Convert an EC public key to a P-256 JWK."""
    numbers = public_key.public_numbers()
    return {
        "kty": "EC",
        "crv": "P-256",
        "x": base64url_encode(numbers.x.to_bytes(32, byteorder="big")),
        "y": base64url_encode(numbers.y.to_bytes(32, byteorder="big")),
    }


@dataclass(frozen=True)
class KeyPair:
    """An issuer key pair bound to a DID verification method."""

    id: str
    controller: str
    type: str
    private_key: ec.EllipticCurvePrivateKey = field(repr=False, compare=False)

    @property
    def did(self) -> str:
        return self.controller

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self.private_key.public_key()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyPair:
        """Create a KeyPair from a Multikey or JsonWebKey dictionary.

        Raises:
            KeyMaterialError: If the key pair is incomplete or not P-256.
        """
        method_id = data.get("id")
        if not method_id:
            raise KeyMaterialError("Key pair is missing its verification method id")
        controller = data.get("controller") or method_id.split("#")[0]

        if data.get("secretKeyMultibase"):
            private_key = private_key_from_multibase(data["secretKeyMultibase"])
            expected = data.get("publicKeyMultibase")
            if expected and public_key_to_multibase(private_key.public_key()) != expected:
                raise KeyMaterialError(
                    f"publicKeyMultibase does not match secret key for {method_id}"
                )
        elif isinstance(data.get("privateKeyJwk"), dict) and data["privateKeyJwk"].get("d"):
            jwk = data["privateKeyJwk"]
            public_key_from_jwk(jwk)
            try:
                secret = int.from_bytes(base64url_decode(jwk["d"]), byteorder="big")
                private_key = ec.derive_private_key(secret, ec.SECP256R1())
            except ValueError as e:
                raise KeyMaterialError(f"Invalid P-256 JWK secret for {method_id}: {e}") from e
        else:
            raise KeyMaterialError(f"No private key material for {method_id}")

        return cls(
            id=method_id,
            controller=controller,
            type=data.get("type", "Multikey"),
            private_key=private_key,
        )

    @classmethod
    def generate(cls, controller: str, key_name: str = "keys-1") -> KeyPair:
        """Generate a fresh P-256 Multikey pair for a controller DID."""
        return cls(
            id=f"{controller}#{key_name}",
            controller=controller,
            type="Multikey",
            private_key=ec.generate_private_key(ec.SECP256R1()),
        )

    def verification_method(self) -> dict[str, Any]:
        """Public verification method entry for a DID Document."""
        entry: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
        }
        if self.type == "JsonWebKey":
            entry["publicKeyJwk"] = public_key_to_jwk(self.public_key)
        else:
            entry["publicKeyMultibase"] = public_key_to_multibase(self.public_key)
        return entry

    def to_dict(self) -> dict[str, Any]:
        """Serialize including the secret, in the DID_KEY_PAIRS format."""
        data = self.verification_method()
        if self.type == "JsonWebKey":
            jwk = dict(data["publicKeyJwk"])
            jwk["d"] = base64url_encode(
                self.private_key.private_numbers().private_value.to_bytes(32, byteorder="big")
            )
            data["privateKeyJwk"] = jwk
        else:
            data["secretKeyMultibase"] = private_key_to_multibase(self.private_key)
        return data


def load_key_pairs(raw: str) -> list[KeyPair]:
    """Parse the DID_KEY_PAIRS value.

    Accepts a single key pair object or a list of them. Backslash-escaped
    quotes, as produced by some secret stores, are unescaped first.

    Raises:
        KeyMaterialError: If the value is not valid JSON or holds no key pair.
    """
    try:
        data = json.loads(_ESCAPED_QUOTE.sub("", raw))
    except ValueError as e:
        raise KeyMaterialError(f"DID key pairs are not valid JSON: {e}") from e

    items = data if isinstance(data, list) else [data]
    pairs = [KeyPair.from_dict(item) for item in items if isinstance(item, dict)]
    if not pairs:
        raise KeyMaterialError("No key pairs found")
    return pairs
