"""Let's Encrypt acquisition through an external challenge solver."""

import re

from milou_ssl.model.certificate import CertificatePair
from milou_ssl.model.config import AcquisitionType, ChallengeMethod, StoreConfig
from milou_ssl.model.errors import ErrorCode, SSLError
from milou_ssl.tls.challenge import ChallengeSolver
from milou_ssl.utils.output import Reporter
from milou_ssl.validator import load_certificate, load_private_key, public_keys_match

_LABEL = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
_IPV4 = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")


def can_use_external_ca(domain: str) -> bool:
    """Check whether a public CA can issue for the domain.

    Rejects localhost and bare IPv4 addresses; accepts syntactically
    valid DNS hostnames only.
    """
    domain = domain.strip().rstrip(".")
    if not domain or domain.lower() == "localhost" or _IPV4.match(domain):
        return False
    if len(domain) > 253:
        return False
    return all(_LABEL.match(label) for label in domain.split("."))


def troubleshooting_guide(domain: str) -> str:
    """Common causes of a failed domain validation, as rich markup."""
    return f"""
[bold blue]Let's Encrypt Troubleshooting Guide for {domain}[/bold blue]

[green]1. Domain Configuration:[/green]
   - Ensure {domain} points to this server's IP address
   - Check DNS with: nslookup {domain}

[green]2. Network Connectivity:[/green]
   - Port 80 must be accessible from the internet
   - Check firewall: ufw status or iptables -L
   - Test external access: curl -I http://{domain}

[green]3. Server Requirements:[/green]
   - Ensure no other service uses port 80
   - Check with: ss -tlnp | grep :80

[green]4. Rate Limiting:[/green]
   - Let's Encrypt allows 5 failed validations per hour
   - Use the staging environment for testing (letsencrypt_staging: true)

[cyan]Manual Let's Encrypt Commands:[/cyan]
   - Test: certbot certonly --dry-run --standalone -d {domain}
   - Get cert: certbot certonly --standalone -d {domain}
   - Check status: certbot certificates
"""


class LetsEncryptStrategy:
    """Obtain a domain-validated certificate.

    Sequences tool installation, the port check and the two challenge
    methods; the ACME exchange itself belongs to the solver.
    """

    acquisition_type = AcquisitionType.LETSENCRYPT

    def __init__(
        self,
        config: StoreConfig,
        solver: ChallengeSolver,
        reporter: Reporter | None = None,
    ) -> None:
        self.config = config
        self.solver = solver
        self.reporter = reporter or Reporter(quiet=True)

    def acquire(self, domain: str) -> CertificatePair:
        """Run domain validation and return the issued pair.

        Args:
            domain: Public DNS name to issue for

        Returns:
            CertificatePair read from the solver's live directory

        Raises:
            SSLError: INELIGIBLE_DOMAIN, UNSUPPORTED_PACKAGE_MANAGER,
                CHALLENGE_UNAVAILABLE or CHALLENGE_FAILED
        """
        self.reporter.info(f"Generating Let's Encrypt certificate for: {domain}")

        if not can_use_external_ca(domain):
            raise SSLError(
                ErrorCode.INELIGIBLE_DOMAIN,
                f"Let's Encrypt not suitable for domain: {domain}",
                suggestion="Use a public DNS name, or the generate mode for local setups",
            )

        self._ensure_installed()
        port_free = self._check_port()
        email = self.config.email_for(domain)

        for method in ChallengeMethod:
            if self._attempt(method, domain, email, port_free):
                self.reporter.success(f"Let's Encrypt certificate obtained ({method.value} mode)")
                return self._read_issued(domain)

        self.reporter.print(troubleshooting_guide(domain))
        raise SSLError(
            ErrorCode.CHALLENGE_FAILED,
            f"Failed to obtain Let's Encrypt certificate for {domain}",
        )

    def _ensure_installed(self) -> None:
        if self.solver.is_installed():
            self.reporter.debug("certbot already installed")
            return
        self.reporter.info("Installing certbot...")
        manager = self.solver.install()
        self.reporter.success(f"certbot installed successfully ({manager})")

    def _check_port(self) -> bool:
        """Return True when the challenge port is free.

        A busy port is acceptable only if the proxy holding it can be
        stopped for the proxy-stop attempt.
        """
        port = self.config.challenge_port
        if not self.solver.port_in_use(port):
            return True

        proxy = self.config.proxy_service
        if self.solver.service_active(proxy):
            self.reporter.warn(f"Port {port} is in use by {proxy}; it will be stopped during validation")
            return False

        raise SSLError(
            ErrorCode.CHALLENGE_UNAVAILABLE,
            f"Port {port} is in use and required for Let's Encrypt validation",
            suggestion=f"Free port {port} or stop the service listening on it",
        )

    def _attempt(self, method: ChallengeMethod, domain: str, email: str, port_free: bool) -> bool:
        staging = self.config.letsencrypt_staging

        if method == ChallengeMethod.STANDALONE:
            if not port_free:
                self.reporter.debug("Skipping standalone mode: port is busy")
                return False
            self.reporter.debug("Trying standalone mode")
            return self.solver.obtain(domain, email, staging)

        proxy = self.config.proxy_service
        if not self.solver.service_active(proxy):
            self.reporter.debug(f"Skipping {method.value} mode: {proxy} is not running")
            return False

        self.reporter.info(f"Temporarily stopping {proxy} for validation")
        if not self.solver.stop_service(proxy):
            self.reporter.warn(f"Failed to stop {proxy}")
            return False
        try:
            return self.solver.obtain(domain, email, staging)
        finally:
            if not self.solver.start_service(proxy):
                self.reporter.warn(f"Failed to restart {proxy}; start it manually")

    def _read_issued(self, domain: str) -> CertificatePair:
        live = self.config.letsencrypt_live_dir / domain
        cert_path, key_path = live / "fullchain.pem", live / "privkey.pem"

        cert = load_certificate(cert_path)
        key = load_private_key(key_path)
        if not public_keys_match(cert, key):
            raise SSLError(
                ErrorCode.KEY_MISMATCH,
                f"Issued certificate in {live} does not match its private key",
            )
        return CertificatePair(
            certificate=cert_path.read_bytes(),
            private_key=key_path.read_bytes(),
        )
