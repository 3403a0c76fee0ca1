"""
Bitstring status list module.

Implements W3C Bitstring Status List (and StatusList2021) encoding,
decoding, publication and status checking.
https://www.w3.org/TR/vc-bitstring-status-list/
"""

from __future__ import annotations

import base64
import gzip
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from transferable_vc.canonical import base64url_decode, base64url_encode

if TYPE_CHECKING:
    from transferable_vc.signer import Signer


logger = logging.getLogger(__name__)

DEFAULT_LENGTH = 131072

STATUS_ENTRY_TYPES = {"BitstringStatusListEntry", "StatusList2021Entry"}
STATUS_LIST_CONTEXT = "https://www.w3.org/ns/credentials/v2"


class CredentialStatus(Enum):
    """Credential status values."""

    VALID = "valid"
    REVOKED = "revoked"
    SUSPENDED = "suspended"
    UNKNOWN = "unknown"


class StatusListError(Exception):
    """Raised when StatusList operations fail."""


class StatusList:
    """A fixed-length revocation bitstring.

    Bit 0 is the leftmost (most significant) bit of byte 0. Encoding is
    gzip with a zero mtime followed by multibase base64url, so the same
    bits always encode to the same string.
    """

    def __init__(self, length: int = DEFAULT_LENGTH, data: bytes | None = None) -> None:
        if length <= 0 or length % 8:
            raise StatusListError(f"Status list length must be a positive multiple of 8, got {length}")
        if data is None:
            data = bytes(length // 8)
        elif len(data) * 8 != length:
            raise StatusListError(
                f"Bitstring holds {len(data) * 8} bits, expected {length}"
            )
        self.length = length
        self._bits = bytearray(data)

    def __len__(self) -> int:
        return self.length

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StatusList):
            return NotImplemented
        return self.length == other.length and self._bits == other._bits

    def to_bytes(self) -> bytes:
        return bytes(self._bits)

    def _position(self, index: int) -> tuple[int, int]:
        if index < 0 or index >= self.length:
            raise StatusListError(
                f"StatusList index {index} out of range [0, {self.length})"
            )
        return index // 8, 7 - (index % 8)

    def get(self, index: int) -> bool:
        """Return True if the bit at index is set."""
        byte_index, bit_position = self._position(index)
        return bool((self._bits[byte_index] >> bit_position) & 1)

    def set(self, index: int, value: bool = True) -> None:
        """Set or clear the bit at index."""
        byte_index, bit_position = self._position(index)
        if value:
            self._bits[byte_index] |= 1 << bit_position
        else:
            self._bits[byte_index] &= ~(1 << bit_position) & 0xFF

    def revoked_indices(self) -> list[int]:
        """Indices of all set bits, ascending."""
        indices = []
        for byte_index, byte in enumerate(self._bits):
            if not byte:
                continue
            for offset in range(8):
                if byte & (0x80 >> offset):
                    indices.append(byte_index * 8 + offset)
        return indices

    def encode(self) -> str:
        """Encode as multibase base64url of the gzipped bitstring."""
        compressed = gzip.compress(self.to_bytes(), mtime=0)
        return "u" + base64url_encode(compressed)

    @classmethod
    def decode(cls, encoded: str, length: int | None = None) -> StatusList:
        """Decode an encodedList value.

        Accepts the multibase base64url form ("u" prefix) and the plain
        base64 form used by StatusList2021.

        Args:
            encoded: The encodedList string.
            length: Expected base length; the decoded bitstring must be a
                multiple of it.

        Raises:
            StatusListError: If decoding fails or the length is wrong.
        """
        try:
            if encoded.startswith("u"):
                compressed = base64url_decode(encoded[1:])
            else:
                compressed = base64.b64decode(encoded)
            data = gzip.decompress(compressed)
        except Exception as e:
            raise StatusListError(f"Failed to decode bitstring: {e}") from e

        bits = len(data) * 8
        if bits == 0:
            raise StatusListError("Decoded bitstring is empty")
        if length is not None and bits % length:
            raise StatusListError(
                f"Decoded bitstring of {bits} bits is not a multiple of {length}"
            )
        return cls(length=bits, data=data)


@dataclass
class StatusListEntry:
    """Parsed credentialStatus entry from a VC."""

    status_list_credential: str
    status_list_index: int
    status_purpose: str
    id: str | None = None
    type: str = "BitstringStatusListEntry"


@dataclass
class StatusCheckResult:
    """Result of a status check."""

    status: CredentialStatus
    purpose: str
    index: int
    message: str


def create_status_list_entry(
    status_list_url: str,
    index: int,
    purpose: str = "revocation",
) -> dict[str, Any]:
    """Build the credentialStatus entry pointing at a status list bit."""
    return {
        "id": f"{status_list_url}#{index}",
        "type": "BitstringStatusListEntry",
        "statusPurpose": purpose,
        "statusListIndex": str(index),
        "statusListCredential": status_list_url,
    }


def create_status_list_credential(
    url: str,
    status_list: StatusList,
    signer: Signer,
    purpose: str = "revocation",
) -> dict[str, Any]:
    """Build and sign a BitstringStatusListCredential snapshot.

    Each call produces a new immutable snapshot; republish it whenever a
    bit changes.
    """
    credential = {
        "@context": [STATUS_LIST_CONTEXT],
        "id": url,
        "type": ["VerifiableCredential", "BitstringStatusListCredential"],
        "credentialSubject": {
            "id": f"{url}#list",
            "type": "BitstringStatusList",
            "statusPurpose": purpose,
            "encodedList": status_list.encode(),
        },
    }
    logger.info(
        "Publishing %s status list %s (%d bits, %d set)",
        purpose, url, len(status_list), len(status_list.revoked_indices()),
    )
    return signer.sign(credential)


def read_status_list_credential(
    credential: dict[str, Any],
    length: int | None = None,
) -> tuple[StatusList, str]:
    """Decode the bitstring and purpose of a status list credential.

    Raises:
        StatusListError: If the credential carries no encodedList.
    """
    subject = credential.get("credentialSubject") or {}
    if isinstance(subject, list):
        subject = subject[0] if subject else {}
    encoded_list = subject.get("encodedList")
    if not encoded_list:
        raise StatusListError("Missing encodedList in StatusList credential")
    return StatusList.decode(encoded_list, length=length), subject.get("statusPurpose", "")


class StatusListChecker:
    """Verifies credential status against published bitstring status lists.

    Status lists are fetched on every check; each publication is a new
    snapshot and the latest one is authoritative.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the StatusList checker.

        Args:
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def parse_credential_status(
        self, credential: dict[str, Any]
    ) -> list[StatusListEntry]:
        """Parse bitstring status entries from a VC's credentialStatus.

        Handles both a single credentialStatus object and an array
        (e.g. a transferable records binding next to a revocation entry).
        Entries of other types are ignored.

        Raises:
            StatusListError: If a status list entry is malformed.
        """
        status_data = credential.get("credentialStatus")
        if not status_data:
            return []

        if not isinstance(status_data, list):
            status_data = [status_data]

        entries: list[StatusListEntry] = []
        for item in status_data:
            if not isinstance(item, dict) or item.get("type") not in STATUS_ENTRY_TYPES:
                continue
            try:
                entries.append(StatusListEntry(
                    id=item.get("id"),
                    type=item["type"],
                    status_list_credential=item["statusListCredential"],
                    status_list_index=int(item["statusListIndex"]),
                    status_purpose=item["statusPurpose"],
                ))
            except (KeyError, ValueError, TypeError) as e:
                raise StatusListError(f"Invalid credentialStatus: {e}") from e

        return entries

    def check_status(self, credential: dict[str, Any]) -> list[StatusCheckResult]:
        """Check the revocation/suspension status of a credential.

        Args:
            credential: The Verifiable Credential to check.

        Returns:
            List of StatusCheckResult (empty if no status list entry).

        Raises:
            StatusListError: If status check fails.
        """
        results: list[StatusCheckResult] = []
        for entry in self.parse_credential_status(credential):
            status_list = self.fetch_status_list(entry.status_list_credential, entry.status_purpose)
            is_set = status_list.get(entry.status_list_index)

            if is_set:
                if entry.status_purpose == "revocation":
                    status = CredentialStatus.REVOKED
                    message = f"Credential is revoked (index {entry.status_list_index})"
                elif entry.status_purpose == "suspension":
                    status = CredentialStatus.SUSPENDED
                    message = f"Credential is suspended (index {entry.status_list_index})"
                else:
                    status = CredentialStatus.UNKNOWN
                    message = f"Unknown status purpose: {entry.status_purpose}"
            else:
                status = CredentialStatus.VALID
                message = f"Credential status is valid ({entry.status_purpose}, index {entry.status_list_index})"

            results.append(StatusCheckResult(
                status=status,
                purpose=entry.status_purpose,
                index=entry.status_list_index,
                message=message,
            ))

        return results

    def fetch_status_list(self, url: str, purpose: str | None = None) -> StatusList:
        """Fetch and decode a status list credential.

        When purpose is given, the list must declare the same statusPurpose.

        Raises:
            StatusListError: If fetching or decoding fails, or the purpose differs.
        """
        try:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.get(
                    url,
                    headers={"Accept": "application/vc+ld+json, application/json"},
                )
                response.raise_for_status()
                sl_credential = response.json()

        except httpx.HTTPStatusError as e:
            raise StatusListError(
                f"HTTP error fetching StatusList from {url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise StatusListError(f"Network error fetching StatusList: {e}") from e
        except ValueError as e:
            raise StatusListError(f"Invalid JSON in StatusList from {url}") from e

        if not isinstance(sl_credential, dict):
            raise StatusListError(f"StatusList from {url} is not an object")

        status_list, list_purpose = read_status_list_credential(sl_credential)
        if purpose and list_purpose and list_purpose != purpose:
            raise StatusListError(
                f"StatusList from {url} has purpose {list_purpose}, expected {purpose}"
            )
        return status_list
