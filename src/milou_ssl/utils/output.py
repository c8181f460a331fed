"""Console reporting for certificate operations."""

from rich.console import Console


class Reporter:
    """Rich console output that honours the quiet flag."""

    def __init__(self, console: Console | None = None, quiet: bool = False) -> None:
        self.console = console or Console()
        self.quiet = quiet

    def print(self, *objects, **kwargs) -> None:
        if not self.quiet:
            self.console.print(*objects, **kwargs)

    def step(self, message: str) -> None:
        self.print(f"\n[bold blue]{message}[/bold blue]")

    def info(self, message: str) -> None:
        self.print(f"[cyan]{message}[/cyan]")

    def success(self, message: str) -> None:
        self.print(f"[green]{message}[/green]")

    def warn(self, message: str) -> None:
        self.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self.print(f"[red]Error:[/red] {message}")

    def debug(self, message: str) -> None:
        self.print(f"[dim]{message}[/dim]")
