"""Pytest configuration and shared fixtures."""

import ipaddress
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID
from typer.testing import CliRunner

from milou_ssl.model.certificate import CertificatePair, is_ip_address
from milou_ssl.model.config import StoreConfig
from milou_ssl.model.errors import ErrorCode, SSLError
from milou_ssl.store import CertStore
from milou_ssl.tls.authority import CryptographyAuthority


@pytest.fixture
def cli_runner():
    """CLI runner for typer testing."""
    return CliRunner()


@pytest.fixture
def ssl_dir(tmp_path):
    """Empty SSL directory path (not created)."""
    return tmp_path / "ssl"


@pytest.fixture
def config(tmp_path, ssl_dir):
    """Store configuration rooted in a temporary directory."""
    return StoreConfig(
        ssl_dir=ssl_dir,
        letsencrypt_live_dir=tmp_path / "letsencrypt" / "live",
    )


@pytest.fixture
def store(config):
    """Certificate store on the temporary configuration."""
    return CertStore(config)


@pytest.fixture
def make_pair():
    """Factory fixture producing real PEM certificate/key pairs."""

    def _make(
        names: tuple[str, ...] = ("localhost",),
        key_type: str = "rsa",
        key_format: str = "traditional",
        valid_for: timedelta = timedelta(days=365),
        not_after: datetime | None = None,
    ) -> CertificatePair:
        if key_type == "ec":
            key = ec.generate_private_key(ec.SECP256R1())
        else:
            key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

        now = datetime.now(timezone.utc)
        not_after = not_after or now + valid_for
        not_before = min(now, not_after) - timedelta(days=1)

        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, names[0])])
        alt_names = [
            x509.IPAddress(ipaddress.ip_address(n)) if is_ip_address(n) else x509.DNSName(n) for n in names
        ]
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
            .sign(key, hashes.SHA256())
        )

        private_format = {
            "traditional": serialization.PrivateFormat.TraditionalOpenSSL,
            "pkcs8": serialization.PrivateFormat.PKCS8,
        }[key_format]
        return CertificatePair(
            certificate=cert.public_bytes(serialization.Encoding.PEM),
            private_key=key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=private_format,
                encryption_algorithm=serialization.NoEncryption(),
            ),
        )

    return _make


@pytest.fixture
def write_pair():
    """Factory fixture writing a pair to arbitrary file names."""

    def _write(cert_path: Path, key_path: Path, pair: CertificatePair) -> tuple[Path, Path]:
        cert_path.parent.mkdir(parents=True, exist_ok=True)
        cert_path.write_bytes(pair.certificate)
        key_path.write_bytes(pair.private_key)
        return cert_path, key_path

    return _write


@pytest.fixture
def installed_pair(config, make_pair, write_pair):
    """Valid localhost pair written as the live certificate."""
    pair = make_pair(names=("localhost", "127.0.0.1"))
    write_pair(config.cert_file, config.key_file, pair)
    return pair


class FakeAuthority:
    """CertificateAuthority with controllable defects."""

    def __init__(self, validity_days: int | None = None, mismatched: bool = False, fail: bool = False) -> None:
        self.real = CryptographyAuthority()
        self.validity_days = validity_days
        self.mismatched = mismatched
        self.fail = fail
        self.calls: list[str] = []

    def generate_private_key(self, key_size: int) -> bytes:
        self.calls.append("generate_private_key")
        if self.fail:
            raise SSLError(ErrorCode.GENERATION_FAILED, "Simulated key generation failure")
        return self.real.generate_private_key(key_size)

    def self_sign(self, private_key, openssl_config, validity_days: int) -> bytes:
        self.calls.append("self_sign")
        if self.mismatched:
            private_key = self.real.generate_private_key(2048)
        days = validity_days if self.validity_days is None else self.validity_days
        return self.real.self_sign(private_key, openssl_config, days)


class FakeSolver:
    """ChallengeSolver that records calls and writes issued files on success."""

    def __init__(
        self,
        live_dir: Path,
        make_pair,
        installed: bool = True,
        port_busy: bool = False,
        proxy_active: bool = False,
        results: tuple[bool, ...] = (True,),
        install_error: SSLError | None = None,
        valid_for: timedelta = timedelta(days=365),
    ) -> None:
        self.live_dir = live_dir
        self.make_pair = make_pair
        self.installed = installed
        self.port_busy = port_busy
        self.proxy_active = proxy_active
        self.results = list(results)
        self.install_error = install_error
        self.valid_for = valid_for
        self.calls: list[tuple] = []

    def is_installed(self) -> bool:
        return self.installed

    def install(self) -> str:
        self.calls.append(("install",))
        if self.install_error is not None:
            raise self.install_error
        self.installed = True
        return "apt-get"

    def port_in_use(self, port: int) -> bool:
        self.calls.append(("port_in_use", port))
        return self.port_busy

    def service_active(self, service: str) -> bool:
        return self.proxy_active

    def stop_service(self, service: str) -> bool:
        self.calls.append(("stop_service", service))
        return True

    def start_service(self, service: str) -> bool:
        self.calls.append(("start_service", service))
        return True

    def obtain(self, domain: str, email: str, staging: bool = False) -> bool:
        self.calls.append(("obtain", domain, email, staging))
        ok = self.results.pop(0) if self.results else False
        if ok:
            pair = self.make_pair(names=(domain,), valid_for=self.valid_for)
            live = self.live_dir / domain
            live.mkdir(parents=True, exist_ok=True)
            (live / "fullchain.pem").write_bytes(pair.certificate)
            (live / "privkey.pem").write_bytes(pair.private_key)
        return ok

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def fake_authority():
    """Factory fixture for FakeAuthority."""

    def _create(**kwargs) -> FakeAuthority:
        return FakeAuthority(**kwargs)

    return _create


@pytest.fixture
def fake_solver(config, make_pair):
    """Factory fixture for FakeSolver bound to the configured live directory."""

    def _create(**kwargs) -> FakeSolver:
        return FakeSolver(config.letsencrypt_live_dir, make_pair, **kwargs)

    return _create
