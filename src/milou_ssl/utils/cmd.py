"""Command execution utilities with logging."""

import shutil
import subprocess
from typing import Any

from rich.console import Console

console = Console(stderr=True)


def quote_arg(arg: str) -> str:
    """Quote argument if it contains spaces or special characters."""
    if " " in arg or any(c in arg for c in "'\"$\\"):
        # Use single quotes, escape any single quotes in the string
        return "'" + arg.replace("'", "'\\''") + "'"
    return arg


def command_exists(name: str) -> bool:
    """Check if an executable is on PATH."""
    return shutil.which(name) is not None


def run_cmd(
    cmd: list[str],
    *,
    check: bool = True,
    capture_output: bool = True,
    text: bool = True,
    timeout: int | None = None,
    show: bool = True,
    **kwargs: Any,
) -> subprocess.CompletedProcess[str]:
    """Run a command with optional display.

    Args:
        cmd: Command and arguments as list
        check: Raise on non-zero exit code
        capture_output: Capture stdout/stderr
        text: Return text instead of bytes
        timeout: Timeout in seconds
        show: Echo the command before running it
        **kwargs: Additional subprocess.run arguments

    Returns:
        CompletedProcess result
    """
    if show:
        cmd_str = " ".join(quote_arg(arg) for arg in cmd)
        console.print(f"[dim]$ {cmd_str}[/dim]")

    return subprocess.run(
        cmd,
        check=check,
        capture_output=capture_output,
        text=text,
        timeout=timeout,
        **kwargs,
    )
