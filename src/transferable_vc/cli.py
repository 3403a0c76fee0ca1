"""
Command-line interface for transferable-record credentials.

Usage:
    vc-registry verify credential.json
    vc-registry verify https://example.com/credentials/123
    vc-registry issue BILL_OF_LADING --subject subject.json --owner 0x.. --holder 0x..
    vc-registry issue SAMPLE --subject subject.json --owner 0x.. --holder 0x.. --status-list https://example.com/status/1 --status-index 42
    vc-registry status-list create --url https://example.com/status/1 -o status-1.json
    vc-registry status-list set status-1.json 42 -o status-1.json
    vc-registry did-document
    vc-registry keygen did:web:example.com -o key-pairs.json
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import httpx
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from transferable_vc.config import Settings
from transferable_vc.did_resolver import DIDResolver, build_did_document
from transferable_vc.documents import build_credential, resolve_template
from transferable_vc.errors import IssuanceError
from transferable_vc.issuer import CredentialIssuer
from transferable_vc.keys import KeyMaterialError, KeyPair, load_key_pairs
from transferable_vc.registry import Web3TokenRegistry
from transferable_vc.signer import DataIntegritySigner
from transferable_vc.statuslist import (
    DEFAULT_LENGTH,
    StatusList,
    StatusListChecker,
    StatusListError,
    create_status_list_credential,
    create_status_list_entry,
    read_status_list_credential,
)
from transferable_vc.verifier import CredentialVerifier, FragmentStatus, ValidityReport


console = Console()
logger = logging.getLogger(__name__)

STATUS_STYLES = {
    FragmentStatus.VALID: "[green]Valid[/]",
    FragmentStatus.INVALID: "[red]Invalid[/]",
    FragmentStatus.ERROR: "[yellow]Error[/]",
    FragmentStatus.SKIPPED: "[dim]Skipped[/]",
}


def format_report(report: ValidityReport, credential: Any) -> None:
    """Format and print a validity report."""
    if report.is_valid:
        status_icon = "[bold green]VALID[/]"
        panel_style = "green"
    else:
        status_icon = "[bold red]INVALID[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", status_icon)

    if isinstance(credential, dict):
        if credential.get("id"):
            table.add_row("Credential ID", str(credential["id"]))
        issuer = credential.get("issuer")
        if isinstance(issuer, dict):
            issuer = issuer.get("id")
        if issuer:
            table.add_row("Issuer", str(issuer))

    for label, value in (
        ("Document Integrity", report.document_integrity),
        ("Document Status", report.document_status),
        ("Issuer Identity", report.issuer_identity),
    ):
        table.add_row(label, "[green]Valid[/]" if value else "[red]Invalid[/]")

    console.print(Panel(table, title="Verification Result", border_style=panel_style))

    fragments = Table(show_header=True, box=None, padding=(0, 2))
    fragments.add_column("Fragment")
    fragments.add_column("Category", style="dim")
    fragments.add_column("Status")
    fragments.add_column("Reason")
    for fragment in report.fragments:
        fragments.add_row(
            fragment.name,
            fragment.category.value,
            STATUS_STYLES[fragment.status],
            fragment.reason,
        )
    console.print(fragments)


def load_json(source: str, timeout: float = 30.0) -> Any:
    """Load JSON from file, URL, or stdin.

    Args:
        source: File path, URL, or "-" for stdin.

    Returns:
        Parsed JSON.
    """
    if source == "-":
        return json.loads(sys.stdin.read())

    if source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=timeout) as client:
            response = client.get(
                source,
                headers={"Accept": "application/vc+ld+json, application/json"},
            )
            response.raise_for_status()
            return response.json()

    path = Path(source)
    if not path.exists():
        raise click.ClickException(f"File not found: {source}")

    with path.open() as f:
        return json.load(f)


def write_json(data: Any, output: str | None) -> None:
    """Write JSON to a file, or to stdout when no file is given."""
    if output is None or output == "-":
        console.print_json(data=data)
        return
    Path(output).write_text(json.dumps(data, indent=2) + "\n")
    console.print(f"[green]Wrote[/] {output}", highlight=False)


def load_settings() -> Settings:
    try:
        return Settings.from_env()
    except (ValidationError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


def make_signer(settings: Settings) -> DataIntegritySigner:
    try:
        return DataIntegritySigner(settings.key_pair())
    except IssuanceError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="transferable-vc")
def main(verbose: bool) -> None:
    """Issue and verify transferable-record Verifiable Credentials."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@main.command()
@click.argument("source", required=True)
@click.option(
    "--no-ssl-verify",
    is_flag=True,
    help="Disable SSL certificate verification",
)
@click.option(
    "--json-output",
    is_flag=True,
    help="Output result as JSON",
)
@click.option(
    "--timeout",
    type=float,
    default=30.0,
    help="HTTP request timeout in seconds",
)
def verify(
    source: str,
    no_ssl_verify: bool,
    json_output: bool,
    timeout: float,
) -> None:
    """Verify a transferable-record Verifiable Credential.

    SOURCE can be:
    - A file path (e.g., credential.json)
    - A URL (e.g., https://example.com/credentials/123)
    - "-" to read from stdin

    Examples:

        vc-registry verify credential.json

        cat credential.json | vc-registry verify -
    """
    try:
        credential = load_json(source, timeout=timeout)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON: %s", e)
        credential = None
    except httpx.HTTPError as e:
        if json_output:
            console.print_json(data={"error": f"HTTP error: {e}"})
        else:
            console.print(f"[red]Error:[/] HTTP error: {e}")
        sys.exit(2)

    settings = load_settings()
    verifier = CredentialVerifier(
        did_resolver=DIDResolver(timeout=timeout, verify_ssl=not no_ssl_verify),
        statuslist_checker=StatusListChecker(timeout=timeout, verify_ssl=not no_ssl_verify),
        timeout=timeout,
    )
    report = verifier.verify(credential, settings.chain_binding())

    if json_output:
        output: dict[str, Any] = dict(report.to_dict())
        output["fragments"] = [fragment.to_dict() for fragment in report.fragments]
        console.print_json(data=output)
    else:
        format_report(report, credential)

    sys.exit(0 if report.is_valid else 1)


@main.command()
@click.argument("document_type")
@click.option("--subject", "subject_source", required=True, help="Credential subject JSON (file, URL or -)")
@click.option("--owner", required=True, help="Owner (beneficiary) address")
@click.option("--holder", required=True, help="Holder address")
@click.option("--remarks", default=None, help="Remarks, encrypted before minting")
@click.option("--expires-in-months", type=int, default=3, show_default=True)
@click.option("--status-list", "status_list_url", default=None, help="Status list credential URL to attach")
@click.option("--status-index", type=click.IntRange(min=0), default=None, help="Bit index in the status list")
@click.option(
    "--status-purpose",
    type=click.Choice(["revocation", "suspension"]),
    default="revocation",
    show_default=True,
)
@click.option("-o", "--output", default=None, help="Write the signed credential to this file")
def issue(
    document_type: str,
    subject_source: str,
    owner: str,
    holder: str,
    remarks: str | None,
    expires_in_months: int,
    status_list_url: str | None,
    status_index: int | None,
    status_purpose: str,
    output: str | None,
) -> None:
    """Sign a credential and mint it on the token registry."""
    if (status_list_url is None) != (status_index is None):
        raise click.UsageError("--status-list and --status-index must be given together")
    status_entry = None
    if status_list_url is not None and status_index is not None:
        status_entry = create_status_list_entry(status_list_url, status_index, status_purpose)

    settings = load_settings()
    try:
        template = resolve_template(document_type)
        subject = load_json(subject_source, timeout=settings.HTTP_TIMEOUT)
        settings.require_issuance()
        chain = settings.chain_binding()
        credential = build_credential(
            template, subject, chain,
            expires_in_months=expires_in_months,
            status_entry=status_entry,
        )
        issuer = CredentialIssuer(
            chain=chain,
            registry=Web3TokenRegistry.connect(
                chain,
                private_key=settings.WALLET_PRIVATE_KEY,
                timeout=settings.HTTP_TIMEOUT,
            ),
            signer=make_signer(settings),
            allow_zero_fees=settings.ALLOW_ZERO_GAS_FEES,
            receipt_timeout=settings.RECEIPT_TIMEOUT,
        )
        result = issuer.issue(credential, owner=owner, holder=holder, remarks=remarks)
    except IssuanceError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e
    except (json.JSONDecodeError, httpx.HTTPError) as e:
        raise click.ClickException(f"Cannot load credential subject: {e}") from e

    console.print(
        f"Minted token [bold]{result.token_id}[/] in tx {result.receipt.transaction_hash}",
        highlight=False,
    )
    write_json(result.signed_credential, output)


@main.group("status-list")
def status_list() -> None:
    """Publish bitstring status list credentials."""


@status_list.command("create")
@click.option("--url", required=True, help="URL the status list credential is hosted at")
@click.option("--length", type=int, default=DEFAULT_LENGTH, show_default=True)
@click.option(
    "--purpose",
    type=click.Choice(["revocation", "suspension"]),
    default="revocation",
    show_default=True,
)
@click.option("-o", "--output", default=None, help="Output file (stdout if omitted)")
def status_list_create(url: str, length: int, purpose: str, output: str | None) -> None:
    """Create and sign an empty status list credential."""
    signer = make_signer(load_settings())
    try:
        credential = create_status_list_credential(url, StatusList(length), signer, purpose)
    except StatusListError as e:
        raise click.ClickException(str(e)) from e
    write_json(credential, output)


@status_list.command("set")
@click.argument("source")
@click.argument("index", type=int)
@click.option("--clear", is_flag=True, help="Clear the bit instead of setting it")
@click.option("-o", "--output", default=None, help="Output file (stdout if omitted)")
def status_list_set(source: str, index: int, clear: bool, output: str | None) -> None:
    """Set (or clear) a bit and republish the status list as a new snapshot."""
    signer = make_signer(load_settings())
    previous = load_json(source)
    try:
        bits, purpose = read_status_list_credential(previous)
        bits.set(index, not clear)
        credential = create_status_list_credential(
            previous["id"], bits, signer, purpose or "revocation",
        )
    except (StatusListError, KeyError) as e:
        raise click.ClickException(f"Cannot update status list: {e}") from e
    write_json(credential, output)


@main.command("did-document")
@click.option("-o", "--output", default=None, help="Output file (stdout if omitted)")
def did_document(output: str | None) -> None:
    """Print the DID Document to publish for DID_KEY_PAIRS."""
    settings = load_settings()
    if not settings.DID_KEY_PAIRS:
        raise click.ClickException("DID_KEY_PAIRS is not set")
    try:
        document = build_did_document(load_key_pairs(settings.DID_KEY_PAIRS))
    except (KeyMaterialError, ValueError) as e:
        raise click.ClickException(str(e)) from e
    write_json(document, output)


@main.command()
@click.argument("controller")
@click.option("--key-name", default="keys-1", show_default=True, help="Fragment of the verification method id")
@click.option("-o", "--output", default=None, help="Output file (stdout if omitted)")
def keygen(controller: str, key_name: str, output: str | None) -> None:
    """Generate a P-256 Multikey pair in the DID_KEY_PAIRS format."""
    if not controller.startswith("did:"):
        raise click.BadParameter("must be a DID", param_hint="CONTROLLER")
    write_json([KeyPair.generate(controller, key_name).to_dict()], output)


if __name__ == "__main__":
    main()
