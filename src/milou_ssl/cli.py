"""CLI entry point for the Milou SSL certificate manager."""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from milou_ssl.model.certificate import CertificateInfo
from milou_ssl.model.config import AcquisitionMode, load_config
from milou_ssl.model.errors import SSLError

app = typer.Typer(
    name="milou-ssl",
    help="Milou SSL certificate manager - generate, import and validate TLS certificates",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


class CliContext:
    """Global options shared by every command."""

    def __init__(self, ssl_dir: Path | None, config_file: Path | None, quiet: bool) -> None:
        self.ssl_dir = ssl_dir
        self.config_file = config_file
        self.quiet = quiet

    def controller(self):
        from milou_ssl.lifecycle import LifecycleController
        from milou_ssl.utils.output import Reporter

        config = load_config(self.config_file, ssl_dir=self.ssl_dir)
        return LifecycleController(config, reporter=Reporter(console, quiet=self.quiet))


@app.callback()
def main_callback(
    ctx: typer.Context,
    ssl_dir: Annotated[
        Optional[Path],
        typer.Option("--ssl-dir", envvar="MILOU_SSL_DIR", help="Directory holding the certificate pair"),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="YAML configuration file"),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress output and hide executed commands"),
    ] = False,
) -> None:
    """Milou SSL certificate manager."""
    ctx.obj = CliContext(ssl_dir, config_file, quiet)


def _handle_error(error: SSLError) -> None:
    """Handle certificate errors with rich formatting."""
    console.print(f"[red]Error ({error.code.value}):[/red] {error.message}")
    if error.suggestion:
        console.print(f"[dim]{error.suggestion}[/dim]")
    raise typer.Exit(1)


def _info_rows(table: Table, info: CertificateInfo) -> None:
    table.add_row("Subject", info.subject)
    table.add_row("Issuer", "(self-signed)" if info.self_signed else info.issuer)
    table.add_row("Valid From", info.not_before.strftime("%Y-%m-%d %H:%M:%S UTC"))
    table.add_row("Valid Until", info.not_after.strftime("%Y-%m-%d %H:%M:%S UTC"))
    table.add_row("Alt Names", ", ".join(info.alt_names) or "(none)")
    key = info.key_type if info.key_size is None else f"{info.key_type} {info.key_size} bits"
    table.add_row("Key", key)
    table.add_row("Serial", info.serial_number)
    table.add_row("SHA-256", info.fingerprint_sha256)


@app.command()
def setup(
    ctx: typer.Context,
    domain: Annotated[str, typer.Argument(help="Domain the certificate is for")] = "localhost",
    mode: Annotated[
        str,
        typer.Option("--mode", "-m", help="auto, generate, existing, letsencrypt or none"),
    ] = AcquisitionMode.AUTO.value,
    source: Annotated[
        Optional[Path],
        typer.Option("--source", "-s", help="Certificate file or directory (existing mode)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Replace valid existing certificates"),
    ] = False,
) -> None:
    """Obtain and install a certificate for a domain.

    [bold]Example:[/bold]
        milou-ssl setup localhost
        milou-ssl setup example.com --mode letsencrypt
        milou-ssl setup example.com --mode existing --source /etc/letsencrypt/live/example.com
    """
    try:
        controller = ctx.obj.controller()
    except SSLError as e:
        _handle_error(e)

    result = controller.setup(domain, mode=mode, source=source, force=force)
    if not result.success:
        if result.error is not None:
            _handle_error(result.error)
        console.print(f"[red]Error:[/red] {result.message}")
        raise typer.Exit(1)

    if not ctx.obj.quiet:
        console.print(f"[green]{result.message}[/green]")


@app.command()
def status(
    ctx: typer.Context,
    domain: Annotated[str, typer.Argument(help="Domain to check against")] = "localhost",
) -> None:
    """Show the status of the installed certificate.

    Exits with 1 when the certificate needs attention.
    """
    try:
        report = ctx.obj.controller().status(domain)
    except SSLError as e:
        _handle_error(e)

    if not report.installed:
        if not ctx.obj.quiet:
            console.print("[yellow]No SSL certificates found[/yellow]")
            console.print("[dim]Use 'milou-ssl setup' to create them.[/dim]")
        raise typer.Exit(1)

    validation = report.report
    table = Table(title=f"SSL Status: {domain}")
    table.add_column("Check", style="cyan")
    table.add_column("Result")

    def mark(ok: bool) -> str:
        return "[green]ok[/green]" if ok else "[red]failed[/red]"

    table.add_row("Certificate format", mark(validation.cert_format_valid))
    table.add_row("Private key format", mark(validation.key_format_valid))
    table.add_row("Key pair match", mark(validation.pair_matches))
    if validation.days_until_expiry is not None:
        if validation.expired:
            expiry = "[red]expired[/red]"
        elif validation.expiring_soon:
            expiry = f"[yellow]{validation.days_until_expiry} days (expires soon)[/yellow]"
        else:
            expiry = f"[green]{validation.days_until_expiry} days[/green]"
        table.add_row("Expires in", expiry)
    table.add_row("Domain match", "[green]yes[/green]" if validation.domain_matches else "[yellow]no[/yellow]")
    if report.metadata is not None:
        table.add_row("Type", report.metadata.ssl_type)
        table.add_row("Generated", report.metadata.generated_at)
    if report.info is not None:
        _info_rows(table, report.info)

    if not ctx.obj.quiet:
        console.print(table)
        if report.healthy:
            console.print("[green]SSL certificates are healthy[/green]")
        else:
            console.print("[red]SSL certificates need attention[/red]")
            for issue in validation.errors:
                console.print(f"  [red]-[/red] {issue.message}")

    raise typer.Exit(report.exit_code)


@app.command()
def validate(
    ctx: typer.Context,
    domain: Annotated[str, typer.Argument(help="Domain to check against")] = "localhost",
    min_days: Annotated[
        Optional[int],
        typer.Option("--min-days", help="Minimum remaining validity in days"),
    ] = None,
) -> None:
    """Validate the installed certificate pair."""
    try:
        report = ctx.obj.controller().validate(domain, min_days_valid=min_days)
    except SSLError as e:
        _handle_error(e)

    raise typer.Exit(0 if report.passed else 1)


@app.command()
def cleanup(ctx: typer.Context) -> None:
    """Back up and remove the installed certificates."""
    try:
        entry = ctx.obj.controller().cleanup()
    except SSLError as e:
        _handle_error(e)

    if entry is not None and not ctx.obj.quiet:
        console.print(f"[dim]Backup: {entry.timestamp}[/dim]")


@app.command()
def info(ctx: typer.Context) -> None:
    """Show details of the installed certificate."""
    try:
        details = ctx.obj.controller().describe()
    except SSLError as e:
        _handle_error(e)

    table = Table(title="Certificate")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    _info_rows(table, details)
    console.print(table)


@app.command()
def backups(ctx: typer.Context) -> None:
    """List certificate backups."""
    from milou_ssl.store import backups_table

    try:
        entries = ctx.obj.controller().backups()
    except SSLError as e:
        _handle_error(e)

    if not entries:
        console.print("[yellow]No backups found.[/yellow]")
        raise typer.Exit(0)

    console.print(backups_table(entries))


@app.command()
def version() -> None:
    """Show version information."""
    from milou_ssl import __version__

    console.print(f"milou-ssl version {__version__}")


if __name__ == "__main__":
    app()
