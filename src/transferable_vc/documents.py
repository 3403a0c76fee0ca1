"""
Document builder.

Assembles unsigned transferable-record credentials from a document
template, a credential subject and a chain binding.
"""

from __future__ import annotations

import calendar
import copy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from transferable_vc.canonical import format_datetime
from transferable_vc.chain import ChainBinding
from transferable_vc.errors import InvalidRequest, InvalidTemplate, UnsupportedDocumentType


ATTACHMENTS_CONTEXT = "https://trustvc.io/context/attachments-context.json"
TRANSFERABLE_RECORDS_CONTEXT = "https://trustvc.io/context/transferable-records-context.json"
RENDER_METHOD_CONTEXT = "https://trustvc.io/context/render-method-context-v2.json"
BITSTRING_STATUS_CONTEXT = "https://w3id.org/vc/status-list/2021/v1"

RENDERER_URL = "https://generic-templates.tradetrust.io"
RENDERER_TYPE = "EMBEDDED_RENDERER"

SUPPORTED_DOCUMENTS: dict[str, str] = {
    "SAMPLE": "https://chaindox.com/contexts/chaindox-sample-document.json",
    "BILL_OF_LADING": "https://chaindox.com/contexts/bol-context.json",
    "CERTIFICATE_OF_ORIGIN": "https://chaindox.com/contexts/coo-context.json",
    "INVOICE": "https://chaindox.com/contexts/invoice-context.json",
    "WAREHOUSE_RECEIPT": "https://chaindox.com/contexts/warehouse-context.json",
    "ELECTRONIC_PROMISSORY_NOTE": "https://chaindox.com/contexts/electronic.json",
}

DEFAULT_EXPIRY_MONTHS = 3


@dataclass(frozen=True)
class DocumentTemplate:
    """A document type and the context URIs defining its vocabulary."""

    document_type: str
    contexts: tuple[str, ...]


def resolve_template(document_type: str) -> DocumentTemplate:
    """Look up the template for a document type key (case-insensitive).

    Raises:
        UnsupportedDocumentType: If the key is not supported.
    """
    key = (document_type or "").strip().upper()
    if key not in SUPPORTED_DOCUMENTS:
        raise UnsupportedDocumentType(document_type)
    return DocumentTemplate(document_type=key, contexts=(SUPPORTED_DOCUMENTS[key],))


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month is Feb 28 (or Feb 29 in a leap year).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def build_credential(
    template: DocumentTemplate,
    subject: dict[str, Any],
    chain: ChainBinding,
    expires_in_months: int = DEFAULT_EXPIRY_MONTHS,
    render_hint: str | None = None,
    status_entry: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build an unsigned transferable-record credential.

    Args:
        template: Document template; its contexts come first.
        subject: Credential subject payload. Only its presence is checked.
        chain: Chain binding recorded as the credentialStatus block.
        expires_in_months: Calendar months until validUntil.
        render_hint: Renderer template name, defaults to the document type.
        status_entry: Optional bitstring status list entry. When given,
            credentialStatus becomes a list of the binding and this entry.
        now: Reference time, defaults to the current time.

    Returns:
        The unsigned credential.

    Raises:
        InvalidTemplate: If the template has no context.
        InvalidRequest: If the subject is missing or empty.
    """
    if not template.contexts or not all(template.contexts):
        raise InvalidTemplate(f"Template {template.document_type!r} has no context")
    if not isinstance(subject, dict) or not subject:
        raise InvalidRequest("credentialSubject is required")
    if expires_in_months < 0:
        raise InvalidRequest("expires_in_months must not be negative")

    if now is None:
        now = datetime.now(timezone.utc)

    contexts = [*template.contexts, ATTACHMENTS_CONTEXT, TRANSFERABLE_RECORDS_CONTEXT, RENDER_METHOD_CONTEXT]
    if status_entry is not None:
        contexts.append(BITSTRING_STATUS_CONTEXT)

    credential_status: Any = chain.credential_status()
    if status_entry is not None:
        credential_status = [credential_status, copy.deepcopy(status_entry)]

    return {
        "@context": list(dict.fromkeys(contexts)),
        "type": ["VerifiableCredential"],
        "credentialStatus": credential_status,
        "credentialSubject": copy.deepcopy(subject),
        "validUntil": format_datetime(add_months(now, expires_in_months)),
        "renderMethod": [
            {
                "id": RENDERER_URL,
                "type": RENDERER_TYPE,
                "templateName": render_hint or template.document_type,
            }
        ],
    }
