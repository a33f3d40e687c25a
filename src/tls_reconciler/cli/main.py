"""CLI entry point for tls-reconciler.

Invoked as::

    tls-reconciler [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m tls_reconciler.cli.main

All commands operate on a filesystem store rooted at ``--state-dir``.

Commands
--------
version          Show version information
ca init          Create the Certificate Authority record
instance add     Register a serving instance manifest
instance list    List serving instance manifests
inspect          Evaluate a record without changing it
reconcile        Run one reconciliation pass for a record
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="tls-reconciler")
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False),
    default="./state",
    show_default=True,
    envvar="TLS_RECONCILER_STATE_DIR",
    help="Root directory of the filesystem store.",
)
@click.option("--namespace", default=None, help="Namespace of the records and instances.")
@click.option("--hostname", default=None, help="Name of the executing instance.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def cli(
    ctx: click.Context,
    state_dir: str,
    namespace: str | None,
    hostname: str | None,
    log_level: str,
) -> None:
    """Keep a TLS certificate record valid and restart its servers on rotation"""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["state_dir"] = Path(state_dir)
    ctx.obj["overrides"] = {
        k: v for k, v in {"namespace": namespace, "hostname": hostname}.items() if v is not None
    }


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from tls_reconciler import __version__

    console.print(f"[bold]tls-reconciler[/bold] v{__version__}")


# ------------------------------------------------------------------
# ca command group
# ------------------------------------------------------------------


@cli.group(name="ca")
def ca_group() -> None:
    """Manage the Certificate Authority record."""


@ca_group.command(name="init")
@click.option("--common-name", default="tls-reconciler CA", show_default=True)
@click.option("--organization", default="tls-reconciler", show_default=True)
@click.option("--validity-days", type=int, default=3650, show_default=True)
@click.option("--force", is_flag=True, default=False, help="Replace an existing CA.")
@click.pass_context
def ca_init_command(
    ctx: click.Context,
    common_name: str,
    organization: str,
    validity_days: int,
    force: bool,
) -> None:
    """Generate a self-signed CA and store it in the CA record."""
    from tls_reconciler.certificates import CertificateAuthority
    from tls_reconciler.store import RecordNotFoundError

    settings = _load_settings(ctx)
    store = _load_store(ctx)

    try:
        store.get_record(settings.ca_record_id)
        exists = True
    except RecordNotFoundError:
        exists = False

    if exists and not force:
        console.print(
            f"[yellow]CA record {settings.ca_record_id} already exists.[/yellow] "
            "Use --force to replace it."
        )
        sys.exit(1)

    ca = CertificateAuthority.generate_ca(
        common_name=common_name,
        organization=organization,
        validity_days=validity_days,
    )
    outcome = store.create_or_update(
        settings.ca_record_id, lambda data: data.update(ca.to_record_data())
    )

    console.print(f"[green]CA {outcome.value}[/green] in record [bold]{settings.ca_record_id}[/bold]")
    console.print(f"  Subject:   {ca.ca_cert.subject.rfc4514_string()}")
    console.print(f"  Not after: {ca.ca_cert.not_valid_after_utc.isoformat()}")


# ------------------------------------------------------------------
# instance command group
# ------------------------------------------------------------------


@cli.group(name="instance")
def instance_group() -> None:
    """Manage serving instance manifests."""


@instance_group.command(name="add")
@click.argument("name")
@click.option(
    "--label",
    "-l",
    multiple=True,
    help="Group label as KEY=VALUE (repeatable).",
)
@click.pass_context
def instance_add_command(ctx: click.Context, name: str, label: tuple[str, ...]) -> None:
    """Register the serving instance NAME."""
    from tls_reconciler.models import ProcessInstance

    labels: dict[str, str] = {}
    for item in label:
        key, sep, value = item.partition("=")
        if not sep or not key:
            console.print(f"[red]Error:[/red] label {item!r} is not KEY=VALUE")
            sys.exit(1)
        labels[key] = value

    settings = _load_settings(ctx)
    store = _load_store(ctx)
    store.add_instance(ProcessInstance(namespace=settings.namespace, name=name, labels=labels))
    console.print(f"[green]Added[/green] instance [bold]{settings.namespace}/{name}[/bold]")


@instance_group.command(name="list")
@click.pass_context
def instance_list_command(ctx: click.Context) -> None:
    """List serving instances in the namespace."""
    settings = _load_settings(ctx)
    store = _load_store(ctx)
    instances = store.list_instances(settings.namespace, {})

    if not instances:
        console.print("[yellow]No instances registered.[/yellow]")
        return

    table = Table(title=f"Instances — {settings.namespace}", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Labels")
    table.add_column("Self", justify="center")

    for instance in instances:
        labels = ", ".join(f"{k}={v}" for k, v in sorted(instance.labels.items())) or "(none)"
        is_self = "[green]Yes[/green]" if instance.name == settings.hostname else ""
        table.add_row(instance.name, labels, is_self)

    console.print(table)


# ------------------------------------------------------------------
# inspect
# ------------------------------------------------------------------


@cli.command(name="inspect")
@click.argument("record", required=False)
@click.pass_context
def inspect_command(ctx: click.Context, record: str | None) -> None:
    """Evaluate RECORD (default: the serving TLS record) without changing it."""
    from tls_reconciler.certificates import StoreAuthorityResolver
    from tls_reconciler.decision import decide
    from tls_reconciler.errors import ReconcileError
    from tls_reconciler.evaluator import Invalid, Valid, evaluate
    from tls_reconciler.models import CertificateRecord, RecordId
    from tls_reconciler.store import RecordNotFoundError

    settings = _load_settings(ctx)
    store = _load_store(ctx)
    record_id = RecordId(settings.namespace, record or settings.tls_record_name)

    try:
        authority = StoreAuthorityResolver(store, settings.ca_record_id)()
    except ReconcileError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    try:
        current = store.get_record(record_id)
    except RecordNotFoundError:
        current = CertificateRecord(record_id=record_id)

    evaluation = evaluate(current, authority, dns_name=settings.dns_name)
    decision = decide(evaluation, lifetime=settings.certificate_lifetime)

    table = Table(title=f"TLS record — {record_id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Exists", "yes" if current.resource_version else "no")
    table.add_row("Evaluation", type(evaluation).__name__)
    if isinstance(evaluation, Invalid):
        table.add_row("Reason", evaluation.reason)
    if isinstance(evaluation, Valid):
        table.add_row("Not after", evaluation.not_after.isoformat())
    table.add_row("Decision", type(decision).__name__)
    table.add_row("Re-check in", str(decision.requeue_after))
    console.print(table)


# ------------------------------------------------------------------
# reconcile
# ------------------------------------------------------------------


@cli.command(name="reconcile")
@click.argument("record", required=False)
@click.pass_context
def reconcile_command(ctx: click.Context, record: str | None) -> None:
    """Run one reconciliation pass for RECORD (default: the serving TLS record)."""
    from tls_reconciler.errors import ReconcileError
    from tls_reconciler.models import RecordId
    from tls_reconciler.reconciler import TLSReconciler

    settings = _load_settings(ctx)
    store = _load_store(ctx)
    record_id = RecordId(settings.namespace, record or settings.tls_record_name)

    try:
        result = TLSReconciler.from_settings(settings, store).reconcile(record_id)
    except ReconcileError as exc:
        console.print(f"[red]Reconciliation failed:[/red] {exc}")
        sys.exit(1)

    console.print(f"[green]Reconciled[/green] [bold]{record_id}[/bold]")
    console.print(f"  Decision:     {type(result.decision).__name__}")
    console.print(f"  Write:        {result.write_outcome.value}")
    console.print(f"  Re-check in:  {result.requeue_after}")

    if result.restart is None:
        return
    if result.restart.skipped:
        console.print(f"  Restart:      [yellow]skipped[/yellow] ({result.restart.skipped})")
        return
    console.print(f"  Restarted:    {', '.join(result.restart.terminated) or '(none)'}")
    for failure in result.restart.failures:
        console.print(f"  [red]FAIL[/red]  {failure}")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _load_settings(ctx: click.Context):  # type: ignore[no-untyped-def]
    """Return ReconcilerSettings with command-line overrides applied."""
    from tls_reconciler.config import ReconcilerSettings

    try:
        return ReconcilerSettings(**ctx.obj["overrides"])
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        sys.exit(1)


def _load_store(ctx: click.Context):  # type: ignore[no-untyped-def]
    """Return the filesystem store rooted at --state-dir."""
    from tls_reconciler.store import FilesystemClusterStore

    return FilesystemClusterStore(base_dir=ctx.obj["state_dir"])


if __name__ == "__main__":
    cli()
