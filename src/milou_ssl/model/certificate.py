"""Certificate data models."""

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

LOCAL_DOMAINS = ("localhost", "127.0.0.1")


def is_ip_address(value: str) -> bool:
    """Check whether a name is a literal IPv4/IPv6 address."""
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def parent_domain(domain: str) -> str | None:
    """Strip the leftmost label of a domain (shop.example.com -> example.com)."""
    if "." not in domain or is_ip_address(domain):
        return None
    return domain.split(".", 1)[1]


@dataclass(frozen=True)
class CertificatePair:
    """PEM-encoded certificate and private key, installed together."""

    certificate: bytes
    private_key: bytes


@dataclass
class CertificateMetadata:
    """Descriptive sidecar record stored next to the live pair."""

    domain: str
    ssl_type: str
    generated_at: str
    cert_file: str
    key_file: str
    validity_days: int
    key_size: int

    _KEYS = {
        "DOMAIN": "domain",
        "SSL_TYPE": "ssl_type",
        "GENERATED_AT": "generated_at",
        "CERT_FILE": "cert_file",
        "KEY_FILE": "key_file",
        "VALIDITY_DAYS": "validity_days",
        "KEY_SIZE": "key_size",
    }

    def to_text(self) -> str:
        """Render as line-oriented KEY=VALUE text."""
        lines = [f"{key}={getattr(self, attr)}" for key, attr in self._KEYS.items()]
        return "\n".join(lines) + "\n"

    @classmethod
    def from_text(cls, text: str) -> "CertificateMetadata":
        """Parse KEY=VALUE text; unknown keys are ignored."""
        values: dict[str, str] = {}
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            if key in cls._KEYS:
                values[cls._KEYS[key]] = value

        def as_int(name: str) -> int:
            try:
                return int(values.get(name, 0))
            except ValueError:
                return 0

        return cls(
            domain=values.get("domain", ""),
            ssl_type=values.get("ssl_type", ""),
            generated_at=values.get("generated_at", ""),
            cert_file=values.get("cert_file", ""),
            key_file=values.get("key_file", ""),
            validity_days=as_int("validity_days"),
            key_size=as_int("key_size"),
        )


@dataclass
class OpenSSLConfig:
    """Input for self-signed generation, rebuilt on every run."""

    common_name: str
    country: str = "US"
    state: str = "State"
    locality: str = "City"
    organization: str = "Milou"
    organizational_unit: str = "IT Department"
    key_usage: list[str] = field(default_factory=lambda: ["digitalSignature", "keyEncipherment", "dataEncipherment"])
    extended_key_usage: list[str] = field(default_factory=lambda: ["serverAuth"])
    alt_names: list[str] = field(default_factory=list)

    @classmethod
    def for_domain(cls, domain: str) -> "OpenSSLConfig":
        """Build the generation config for a domain.

        SANs are the domain itself, localhost, 127.0.0.1 and, for
        non-local names with a real parent, a wildcard over the parent.
        """
        names = [domain, "localhost", "127.0.0.1"]
        if domain not in LOCAL_DOMAINS:
            parent = parent_domain(domain)
            if parent and "." in parent:
                names.append(f"*.{parent}")

        alt_names: list[str] = []
        for name in names:
            if name not in alt_names:
                alt_names.append(name)
        return cls(common_name=domain, alt_names=alt_names)

    @property
    def dns_names(self) -> list[str]:
        return [n for n in self.alt_names if not is_ip_address(n)]

    @property
    def ip_addresses(self) -> list[str]:
        return [n for n in self.alt_names if is_ip_address(n)]

    def render(self) -> str:
        """Render as an openssl req configuration file."""
        lines = [
            "[req]",
            "distinguished_name = req_distinguished_name",
            "req_extensions = v3_req",
            "x509_extensions = v3_req",
            "prompt = no",
            "",
            "[req_distinguished_name]",
            f"C = {self.country}",
            f"ST = {self.state}",
            f"L = {self.locality}",
            f"O = {self.organization}",
            f"OU = {self.organizational_unit}",
            f"CN = {self.common_name}",
            "",
            "[v3_req]",
            f"keyUsage = {', '.join(self.key_usage)}",
            f"extendedKeyUsage = {', '.join(self.extended_key_usage)}",
            "subjectAltName = @alt_names",
            "",
            "[alt_names]",
        ]
        for i, name in enumerate(self.dns_names, start=1):
            lines.append(f"DNS.{i} = {name}")
        for i, ip in enumerate(self.ip_addresses, start=1):
            lines.append(f"IP.{i} = {ip}")
        return "\n".join(lines) + "\n"


@dataclass
class BackupEntry:
    """Files saved from one backup operation."""

    timestamp: str
    cert_file: Path | None = None
    key_file: Path | None = None
    info_file: Path | None = None

    @property
    def is_complete_pair(self) -> bool:
        return self.cert_file is not None and self.key_file is not None


@dataclass
class CertificateInfo:
    """Human-readable facts extracted from a certificate."""

    subject: str
    issuer: str
    serial_number: str
    not_before: datetime
    not_after: datetime
    alt_names: list[str]
    fingerprint_sha256: str
    key_type: str
    key_size: int | None = None

    @property
    def self_signed(self) -> bool:
        return self.subject == self.issuer
