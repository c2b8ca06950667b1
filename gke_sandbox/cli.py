"""``gke-sandbox`` command line.

Commands:
- create: provision a sandbox VM with access to a private GKE cluster
- list: list your sandbox VMs
- show: print the IAP ssh command for a sandbox
- connect: open an interactive IAP ssh session
- delete: delete a sandbox (and optionally its network's IAP firewall rule)

Exit status is 0 on success or when the operator cancels, 1 on any error.
"""

from __future__ import annotations

import dataclasses
import getpass
import shlex
import subprocess
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Annotated, Optional

import click
import typer
from loguru import logger
from rich.console import Console

from gke_sandbox import __version__
from gke_sandbox.config import SandboxConfig, get_config
from gke_sandbox.deletion import SandboxDeleter
from gke_sandbox.errors import SandboxError, SandboxNotFoundError
from gke_sandbox.observability import LogConfig, setup_logging, teardown_logging
from gke_sandbox.provisioning import CreatePipeline, CreateRequest, FirewallProvisioner
from gke_sandbox.selection import SandboxSelector
from gke_sandbox.terminal import RichTerminal, Terminal
from gke_sandbox.types import (
    Cancelled,
    DeleteCancelled,
    Deleted,
    NotFound,
    ProvisionReport,
    Readiness,
    Selected,
    SelectionEntry,
)

if TYPE_CHECKING:
    from gke_sandbox.cloud import CloudResourceClient

log = logger.bind(component="cli")

app = typer.Typer(
    name="gke-sandbox",
    help="Provision and manage sandbox VMs for private GKE cluster access",
    add_completion=False,
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


# =============================================================================
# Wiring (replaced in tests)
# =============================================================================


def make_client() -> CloudResourceClient:
    from gke_sandbox.cloud.gcp import GCPCloudClient

    return GCPCloudClient()


def make_terminal() -> Terminal:
    return RichTerminal()


def make_output() -> Terminal:
    """Terminal on stdout, for results meant to be read or piped."""
    return RichTerminal(Console(highlight=False, soft_wrap=True))


def current_user() -> str:
    return getpass.getuser()


# =============================================================================
# Shared options
# =============================================================================

ProjectOpt = Annotated[
    Optional[str],  # noqa: UP007
    typer.Option("--project", "-p", help="GCP project ID (default: from config)"),
]
ZoneOpt = Annotated[
    Optional[str],  # noqa: UP007
    typer.Option("--zone", "-z", help="Compute zone (default: from config)"),
]
VerboseOpt = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Show debug output"),
]
NameArg = Annotated[
    Optional[str],  # noqa: UP007
    typer.Argument(help="VM name (omit to choose from your sandboxes)"),
]


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"gke-sandbox {__version__}")
        raise typer.Exit()


@app.callback()
def _root(
    ctx: typer.Context,
    log_file: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--log-file", help="Also write debug logs to this file"),
    ] = None,
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    ctx.obj = {"log_file": log_file}


@contextmanager
def _session(
    ctx: typer.Context,
    verbose: bool,
    **overrides: str | None,
) -> Iterator[SandboxConfig]:
    """Install logging and resolve config for one command.

    Any ``SandboxError`` raised inside is logged and turned into exit code 1.
    """
    log_file = (ctx.obj or {}).get("log_file")
    ids = setup_logging(
        LogConfig(level="DEBUG" if verbose else "INFO", verbose=verbose, file=log_file)
    )
    try:
        config = get_config()
        changes = {k: v for k, v in overrides.items() if v}
        yield dataclasses.replace(config, **changes) if changes else config
    except SandboxError as e:
        log.error("{err}", err=e)
        raise typer.Exit(1) from e
    finally:
        teardown_logging(ids)


def _pick(
    name: str | None, zone: str, project: str, client: CloudResourceClient,
) -> SelectionEntry | None:
    """Resolve the target sandbox. None means the operator cancelled."""
    selector = SandboxSelector(client, make_terminal())
    match selector.resolve(name, zone, project, current_user()):
        case Selected(entry=entry):
            pass
        case Cancelled():
            return None
        case NotFound(project=p, user=u):
            raise SandboxNotFoundError(f"No sandbox VMs found for user '{u}' in project '{p}'")

    log.info("Checking if VM '{name}' exists...", name=entry.name)
    if client.get_instance(project, entry.zone, entry.name) is None:
        raise SandboxNotFoundError(
            f"VM '{entry.name}' not found in zone '{entry.zone}' of project '{project}'"
        )
    return entry


# =============================================================================
# Commands
# =============================================================================


@app.command()
def create(
    ctx: typer.Context,
    cluster: Annotated[str, typer.Option("--cluster", "-c", help="Target GKE cluster name")],
    project: ProjectOpt = None,
    zone: ZoneOpt = None,
    vm_size: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--vm-size", "-s", help="Machine type (default: from config)"),
    ] = None,
    vm_name: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--vm-name", "-n", help="VM name (default: sbx-<user>-<cluster>-<HHMM>)"),
    ] = None,
    vpc: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--vpc", help="Create the VM on this VPC instead of the cluster's"),
    ] = None,
    subnet: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--subnet", help="Subnet of --vpc to create the VM on"),
    ] = None,
    verbose: VerboseOpt = False,
) -> None:
    """Create a sandbox VM that can reach the cluster's private endpoint."""
    if bool(vpc) != bool(subnet):
        typer.echo("Error: --vpc and --subnet must be used together", err=True)
        raise typer.Exit(1)

    with _session(ctx, verbose, project=project, zone=zone, vm_size=vm_size) as config:
        pipeline = CreatePipeline(make_client(), config)
        report = pipeline.run(
            CreateRequest(
                cluster=cluster, user=current_user(), name=vm_name, vpc=vpc, subnet=subnet,
            )
        )
        _print_summary(make_terminal(), report, cluster)


def _print_summary(terminal: Terminal, report: ProvisionReport, cluster: str) -> None:
    sandbox = report.sandbox
    topology = report.topology
    lines = [
        f"[bold]VM Name:[/bold]         {sandbox.name}",
        f"[bold]Internal IP:[/bold]     {sandbox.internal_ip or 'unknown'}",
        f"[bold]Zone:[/bold]            {sandbox.zone}",
        f"[bold]Machine Type:[/bold]    {sandbox.machine_type}",
        f"[bold]Service Account:[/bold] {sandbox.service_account}",
        f"[bold]Network:[/bold]         {topology.network}",
        f"[bold]Subnet:[/bold]          {topology.subnet}",
        f"[bold]Cluster:[/bold]         {cluster}",
    ]
    if topology.external:
        lines.append(
            f"[bold]VPC Peering:[/bold]     {topology.network} <-> {topology.cluster.network}"
        )
    if report.readiness is Readiness.DEGRADED:
        lines.append("")
        lines.append("[yellow]VM is still initializing; kubectl setup was skipped.[/yellow]")
    lines += [
        "",
        "[bold]Connect:[/bold]",
        f"  gke-sandbox connect {sandbox.name} --project {sandbox.project} --zone {sandbox.zone}",
        "[bold]Delete:[/bold]",
        f"  gke-sandbox delete {sandbox.name} --project {sandbox.project} --zone {sandbox.zone}",
        "[bold]List your VMs:[/bold]",
        f"  gke-sandbox list --project {sandbox.project}",
    ]
    terminal.panel("\n".join(lines), title="Sandbox VM Created")


@app.command("list")
def list_(
    ctx: typer.Context,
    project: ProjectOpt = None,
    user: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--user", "-u", help="Owner to list VMs for (default: you)"),
    ] = None,
    verbose: VerboseOpt = False,
) -> None:
    """List your sandbox VMs."""
    with _session(ctx, verbose, project=project) as config:
        project_id = config.require_project()
        owner = user or current_user()
        records = SandboxSelector(make_client(), make_terminal()).list_sandboxes(project_id, owner)
        if not records:
            log.info(
                "No sandbox VMs found for user '{user}' in project '{project}'",
                user=owner, project=project_id,
            )
            return
        make_output().table(
            ("NAME", "ZONE", "CLUSTER", "MACHINE_TYPE", "INTERNAL_IP", "CREATED"),
            [
                [r.name, r.zone, r.cluster, r.machine_type, r.internal_ip or "-", r.created_at]
                for r in records
            ],
            title=f"Sandbox VMs for {owner}",
        )


@app.command()
def show(
    ctx: typer.Context,
    name: NameArg = None,
    project: ProjectOpt = None,
    zone: ZoneOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Print the IAP ssh command for a sandbox."""
    with _session(ctx, verbose, project=project, zone=zone) as config:
        project_id = config.require_project()
        client = make_client()
        entry = _pick(name, config.zone, project_id, client)
        if entry is None:
            return
        command = client.ssh_command(project_id, entry.zone, entry.name)
        make_terminal().header("IAP Connection Command")
        typer.echo(shlex.join(command))


@app.command()
def connect(
    ctx: typer.Context,
    name: NameArg = None,
    project: ProjectOpt = None,
    zone: ZoneOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Open an interactive ssh session to a sandbox through IAP."""
    with _session(ctx, verbose, project=project, zone=zone) as config:
        project_id = config.require_project()
        client = make_client()
        entry = _pick(name, config.zone, project_id, client)
        if entry is None:
            return
        log.info("Connecting to VM '{name}' via IAP...", name=entry.name)
        command = list(client.ssh_command(project_id, entry.zone, entry.name))

    try:
        returncode = subprocess.run(command, check=False).returncode
    except OSError as e:
        typer.echo(f"Error: cannot run {command[0]}: {e}", err=True)
        raise typer.Exit(1) from e
    if returncode != 0:
        raise typer.Exit(1)


@app.command()
def delete(
    ctx: typer.Context,
    name: NameArg = None,
    project: ProjectOpt = None,
    zone: ZoneOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Delete a sandbox VM after confirmation."""
    with _session(ctx, verbose, project=project, zone=zone) as config:
        project_id = config.require_project()
        client = make_client()
        terminal = make_terminal()
        deleter = SandboxDeleter(
            client, terminal, SandboxSelector(client, terminal), FirewallProvisioner(client),
        )
        match deleter.delete(name, project_id, config.zone, current_user()):
            case Deleted(name=deleted):
                log.debug("Deleted {name}", name=deleted)
            case DeleteCancelled():
                pass


# =============================================================================
# Entry point
# =============================================================================


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return its exit status.

    Click reports usage errors with status 2; they are folded into 1 here.
    """
    try:
        code = app(
            args=list(argv) if argv is not None else None,
            prog_name="gke-sandbox",
            standalone_mode=False,
        )
    except click.ClickException as e:
        e.show()
        return 1
    except click.Abort:
        typer.echo("Aborted.", err=True)
        return 1
    return code if isinstance(code, int) else 0
