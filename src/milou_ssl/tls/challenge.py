"""Challenge-solving tool integration (certbot)."""

import socket
import subprocess
from typing import Protocol

from milou_ssl.model.errors import ErrorCode, SSLError
from milou_ssl.utils.cmd import command_exists, run_cmd

# Package managers tried in order, with the commands that install certbot
PACKAGE_MANAGERS: dict[str, list[list[str]]] = {
    "apt-get": [
        ["apt-get", "update", "-qq"],
        ["apt-get", "install", "-y", "certbot"],
    ],
    "yum": [["yum", "install", "-y", "certbot"]],
    "dnf": [["dnf", "install", "-y", "certbot"]],
}


class ChallengeSolver(Protocol):
    """Capability interface for domain-validated issuance."""

    def is_installed(self) -> bool: ...

    def install(self) -> str:
        """Install the tool and return the package manager used."""
        ...

    def port_in_use(self, port: int) -> bool: ...

    def service_active(self, service: str) -> bool: ...

    def stop_service(self, service: str) -> bool: ...

    def start_service(self, service: str) -> bool: ...

    def obtain(self, domain: str, email: str, staging: bool = False) -> bool:
        """Run a standalone HTTP-01 issuance; True on success."""
        ...


def detect_package_manager() -> str | None:
    """Return the first known package manager found on PATH."""
    for name in PACKAGE_MANAGERS:
        if command_exists(name):
            return name
    return None


class CertbotSolver:
    """ChallengeSolver that shells out to certbot and systemctl."""

    def __init__(self, show_commands: bool = True) -> None:
        self.show_commands = show_commands

    def is_installed(self) -> bool:
        return command_exists("certbot")

    def install(self) -> str:
        manager = detect_package_manager()
        if manager is None:
            raise SSLError(
                ErrorCode.UNSUPPORTED_PACKAGE_MANAGER,
                "Cannot install certbot: unsupported package manager "
                f"(supported: {', '.join(PACKAGE_MANAGERS)})",
                suggestion="Install certbot manually: https://certbot.eff.org/",
            )

        for cmd in PACKAGE_MANAGERS[manager]:
            try:
                run_cmd(cmd, show=self.show_commands)
            except (subprocess.CalledProcessError, FileNotFoundError) as e:
                raise SSLError(
                    ErrorCode.CHALLENGE_UNAVAILABLE,
                    f"Failed to install certbot with {manager}: {e}",
                    suggestion=f"Try installing manually: {manager} install certbot",
                ) from e
        return manager

    def port_in_use(self, port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(1)
            return sock.connect_ex(("127.0.0.1", port)) == 0

    def _systemctl(self, action: str, service: str) -> bool:
        try:
            result = run_cmd(
                ["systemctl", action, service],
                check=False,
                show=self.show_commands and action != "is-active",
            )
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def service_active(self, service: str) -> bool:
        return self._systemctl("is-active", service)

    def stop_service(self, service: str) -> bool:
        return self._systemctl("stop", service)

    def start_service(self, service: str) -> bool:
        return self._systemctl("start", service)

    def obtain(self, domain: str, email: str, staging: bool = False) -> bool:
        cmd = [
            "certbot",
            "certonly",
            "--standalone",
            "--non-interactive",
            "--agree-tos",
            "--email",
            email,
            "-d",
            domain,
        ]
        if staging:
            cmd.append("--staging")
        try:
            result = run_cmd(cmd, check=False, show=self.show_commands)
        except FileNotFoundError:
            return False
        return result.returncode == 0
