"""
Remarks cipher.

Remarks minted with a transferable record are encrypted with ChaCha20
under SHA-256(credential id), so anyone holding the credential can read
them. The hex payload is the 12-byte nonce followed by the ciphertext.
"""

from __future__ import annotations

import hashlib
import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms


NONCE_SIZE = 12
EMPTY_REMARKS = "0x00"


class RemarksError(Exception):
    """Raised when remarks cannot be decrypted."""


def _cipher(credential_id: str, nonce: bytes) -> Cipher:
    key = hashlib.sha256(credential_id.encode("utf-8")).digest()
    # 32-bit little-endian block counter (0) followed by the 96-bit nonce
    return Cipher(algorithms.ChaCha20(key, b"\x00" * 4 + nonce), mode=None)


def _strip_prefix(value: str) -> str:
    value = value.strip()
    while value[:2].lower() == "0x":
        value = value[2:]
    return value


def encrypt_remarks(plaintext: str | None, credential_id: str) -> str:
    """Encrypt remarks for minting.

    Args:
        plaintext: Free-text remarks; None or "" gives EMPTY_REMARKS.
        credential_id: The signed credential's id.

    Returns:
        0x-prefixed hex of nonce and ciphertext.
    """
    if not plaintext:
        return EMPTY_REMARKS
    if not credential_id:
        raise ValueError("credential_id is required to encrypt remarks")

    nonce = os.urandom(NONCE_SIZE)
    encryptor = _cipher(credential_id, nonce).encryptor()
    ciphertext = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()
    return to_hex_bytes((nonce + ciphertext).hex())


def to_hex_bytes(value: str) -> str:
    """Normalize a hex string to a single 0x prefix; empty becomes EMPTY_REMARKS."""
    body = _strip_prefix(value or "")
    return "0x" + body if body else EMPTY_REMARKS


def decrypt_remarks(ciphertext_hex: str, credential_id: str) -> str:
    """Decrypt remarks read from the registry.

    Raises:
        RemarksError: If the payload is not valid hex or is too short.
    """
    body = _strip_prefix(ciphertext_hex or "")
    if body in ("", "00"):
        return ""
    try:
        raw = bytes.fromhex(body)
    except ValueError as e:
        raise RemarksError(f"Remarks are not valid hex: {e}") from e
    if len(raw) <= NONCE_SIZE:
        raise RemarksError("Remarks payload is shorter than its nonce")

    decryptor = _cipher(credential_id, raw[:NONCE_SIZE]).decryptor()
    plaintext = decryptor.update(raw[NONCE_SIZE:]) + decryptor.finalize()
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise RemarksError("Remarks did not decrypt to UTF-8; wrong credential id?") from e
