"""Certificate inspection and validation.

Every check re-reads the PEM files; metadata is never trusted. Format,
pair match and expiry are hard gates, domain coverage is advisory.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa
from cryptography.x509.oid import ExtensionOID, NameOID

from milou_ssl.model.certificate import CertificateInfo, parent_domain
from milou_ssl.model.config import StorePaths, ValidationOutcome
from milou_ssl.model.errors import ErrorCode, SSLError
from milou_ssl.utils.output import Reporter

SUPPORTED_KEY_TYPES = (
    rsa.RSAPrivateKey,
    ec.EllipticCurvePrivateKey,
    ed25519.Ed25519PrivateKey,
    ed448.Ed448PrivateKey,
)


@dataclass
class Issue:
    """A single validation finding."""

    code: ErrorCode
    message: str
    hard: bool | None = None

    def __post_init__(self) -> None:
        if self.hard is None:
            self.hard = not self.code.is_soft


@dataclass
class ExpiryCheck:
    """Expiry facts for a certificate at a point in time."""

    not_after: datetime
    days_until_expiry: int
    expired: bool
    min_days_valid: int

    @property
    def below_minimum(self) -> bool:
        return not self.expired and self.days_until_expiry < self.min_days_valid

    @property
    def ok(self) -> bool:
        return not self.expired and not self.below_minimum


@dataclass
class ValidationReport:
    """Result of a validation pass. Never persisted."""

    domain: str
    cert_format_valid: bool = False
    key_format_valid: bool = False
    pair_matches: bool = False
    expired: bool = False
    days_until_expiry: int | None = None
    domain_matches: bool = False
    expiring_soon: bool = False
    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.hard]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if not i.hard]

    @property
    def outcome(self) -> ValidationOutcome:
        return ValidationOutcome.FAILED if self.errors else ValidationOutcome.PASSED

    @property
    def passed(self) -> bool:
        return self.outcome == ValidationOutcome.PASSED

    @property
    def healthy(self) -> bool:
        """Health as reported by status: usable now, regardless of thresholds."""
        return self.cert_format_valid and self.key_format_valid and self.pair_matches and not self.expired

    def first_error(self) -> Issue | None:
        errors = self.errors
        return errors[0] if errors else None


def _read(path: Path, label: str) -> bytes:
    if not path.is_file():
        raise SSLError(ErrorCode.MISSING_FILE, f"{label} file not found: {path}")
    try:
        return path.read_bytes()
    except OSError as e:
        raise SSLError(ErrorCode.MISSING_FILE, f"Cannot read {label.lower()} file {path}: {e}") from e


def parse_certificate(data: bytes) -> x509.Certificate:
    """Parse the first PEM certificate in data (fullchain files included)."""
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise SSLError(ErrorCode.MALFORMED_CERTIFICATE, f"Invalid certificate format: {e}") from e


def parse_private_key(data: bytes):
    """Parse a PEM private key (PKCS#1, PKCS#8 or SEC1).

    RSA keys additionally get a consistency check on their primes; EC and
    EdDSA keys are admitted through the generic parse.
    """
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except TypeError as e:
        raise SSLError(
            ErrorCode.MALFORMED_KEY,
            "Private key is encrypted; provide an unencrypted key",
        ) from e
    except (ValueError, UnsupportedAlgorithm) as e:
        raise SSLError(ErrorCode.MALFORMED_KEY, f"Invalid private key format: {e}") from e

    if isinstance(key, rsa.RSAPrivateKey):
        numbers = key.private_numbers()
        if numbers.p * numbers.q != numbers.public_numbers.n:
            raise SSLError(ErrorCode.MALFORMED_KEY, "RSA key check failed")
    elif not isinstance(key, SUPPORTED_KEY_TYPES):
        raise SSLError(
            ErrorCode.MALFORMED_KEY,
            f"Unsupported private key type: {type(key).__name__}",
        )
    return key


def load_certificate(cert_path: Path) -> x509.Certificate:
    return parse_certificate(_read(cert_path, "Certificate"))


def load_private_key(key_path: Path):
    return parse_private_key(_read(key_path, "Private key"))


def check_format(cert_path: Path) -> bool:
    """Check that the file parses as an X.509 certificate."""
    try:
        load_certificate(cert_path)
    except SSLError:
        return False
    return True


def check_key_format(key_path: Path) -> bool:
    """Check that the file parses as a supported private key."""
    try:
        load_private_key(key_path)
    except SSLError:
        return False
    return True


def public_keys_match(cert: x509.Certificate, key) -> bool:
    """Compare the certificate's public key with the one derived from key."""

    def spki(public_key) -> bytes:
        return public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    return spki(cert.public_key()) == spki(key.public_key())


def pair_matches(cert_path: Path, key_path: Path) -> bool:
    """Check that certificate and key belong together."""
    try:
        return public_keys_match(load_certificate(cert_path), load_private_key(key_path))
    except SSLError:
        return False


def _expiry(cert: x509.Certificate, min_days_valid: int, now: datetime | None) -> ExpiryCheck:
    now = now or datetime.now(timezone.utc)
    not_after = cert.not_valid_after_utc
    remaining = (not_after - now).total_seconds()
    return ExpiryCheck(
        not_after=not_after,
        days_until_expiry=int(remaining // 86400),
        expired=remaining <= 0,
        min_days_valid=min_days_valid,
    )


def check_expiry(cert_path: Path, min_days_valid: int = 7, now: datetime | None = None) -> ExpiryCheck:
    """Compute expiry facts; ``ok`` is False when expired or below the minimum."""
    return _expiry(load_certificate(cert_path), min_days_valid, now)


def certificate_names(cert: x509.Certificate) -> list[str]:
    """Lower-cased CN and SAN (DNS and IP) entries."""
    names = [str(attr.value).lower() for attr in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]
    try:
        san = cert.extensions.get_extension_for_oid(ExtensionOID.SUBJECT_ALTERNATIVE_NAME).value
    except x509.ExtensionNotFound:
        return names
    names.extend(name.lower() for name in san.get_values_for_type(x509.DNSName))
    names.extend(str(ip) for ip in san.get_values_for_type(x509.IPAddress))
    return names


def names_cover_domain(names: list[str], domain: str) -> bool:
    """Exact match, then wildcard over the parent, then the localhost allowance."""
    domain = domain.lower().rstrip(".")
    if domain in names:
        return True

    parent = parent_domain(domain)
    if parent and f"*.{parent}" in names:
        return True

    if domain == "localhost" and ("localhost" in names or "127.0.0.1" in names):
        return True

    return False


def domain_matches(cert_path: Path, domain: str) -> bool:
    """Check whether the certificate covers a domain."""
    try:
        cert = load_certificate(cert_path)
    except SSLError:
        return False
    return names_cover_domain(certificate_names(cert), domain)


def _name_to_string(name: x509.Name) -> str:
    return name.rfc4514_string() or "(empty)"


def describe_certificate(cert_path: Path) -> CertificateInfo:
    """Extract display details from a certificate file."""
    cert = load_certificate(cert_path)
    public_key = cert.public_key()
    if isinstance(public_key, rsa.RSAPublicKey):
        key_type, key_size = "RSA", public_key.key_size
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        key_type, key_size = f"EC ({public_key.curve.name})", public_key.curve.key_size
    else:
        key_type, key_size = type(public_key).__name__.replace("PublicKey", ""), None

    try:
        san = cert.extensions.get_extension_for_oid(ExtensionOID.SUBJECT_ALTERNATIVE_NAME).value
        alt_names = [str(name.value) for name in san]
    except x509.ExtensionNotFound:
        alt_names = []

    return CertificateInfo(
        subject=_name_to_string(cert.subject),
        issuer=_name_to_string(cert.issuer),
        serial_number=format(cert.serial_number, "x"),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        alt_names=alt_names,
        fingerprint_sha256=cert.fingerprint(hashes.SHA256()).hex(),
        key_type=key_type,
        key_size=key_size,
    )


def full_check(
    paths: StorePaths,
    domain: str,
    min_days_valid: int = 7,
    expiry_warning_days: int = 30,
    now: datetime | None = None,
    reporter: Reporter | None = None,
) -> ValidationReport:
    """Run every check against the live pair and aggregate the result.

    Args:
        paths: Store paths holding the pair
        domain: Domain the certificate should cover (advisory)
        min_days_valid: Remaining validity below which the check fails
        expiry_warning_days: Remaining validity flagged as "expires soon"
        now: Reference time (defaults to current UTC time)
        reporter: Optional console reporter

    Returns:
        ValidationReport
    """
    reporter = reporter or Reporter(quiet=True)
    report = ValidationReport(domain=domain)
    reporter.debug(f"Validating SSL certificates for: {domain}")

    for path, label in ((paths.cert_file, "Certificate"), (paths.key_file, "Private key")):
        if not path.is_file():
            report.issues.append(Issue(ErrorCode.MISSING_FILE, f"{label} file not found: {path}"))
    if report.issues:
        _log_issues(report, reporter)
        return report

    cert = key = None
    try:
        cert = load_certificate(paths.cert_file)
        report.cert_format_valid = True
    except SSLError as e:
        report.issues.append(Issue(e.code, e.message))

    try:
        key = load_private_key(paths.key_file)
        report.key_format_valid = True
    except SSLError as e:
        report.issues.append(Issue(e.code, e.message))

    if cert is not None and key is not None:
        report.pair_matches = public_keys_match(cert, key)
    if not report.pair_matches:
        report.issues.append(Issue(ErrorCode.KEY_MISMATCH, "Certificate and private key do not match"))

    if cert is not None:
        expiry = _expiry(cert, min_days_valid, now)
        report.expired = expiry.expired
        report.days_until_expiry = expiry.days_until_expiry
        report.expiring_soon = not expiry.expired and expiry.days_until_expiry < expiry_warning_days
        if expiry.expired:
            report.issues.append(Issue(ErrorCode.EXPIRED, "Certificate has expired"))
        elif expiry.below_minimum:
            report.issues.append(
                Issue(
                    ErrorCode.EXPIRING_SOON,
                    f"Certificate expires in {expiry.days_until_expiry} days (minimum: {min_days_valid})",
                    hard=True,
                )
            )
        elif report.expiring_soon:
            report.issues.append(
                Issue(ErrorCode.EXPIRING_SOON, f"Certificate expires in {expiry.days_until_expiry} days")
            )

        report.domain_matches = names_cover_domain(certificate_names(cert), domain)
        if not report.domain_matches:
            report.issues.append(Issue(ErrorCode.DOMAIN_MISMATCH, f"Certificate domain may not match: {domain}"))

    _log_issues(report, reporter)
    return report


def _log_issues(report: ValidationReport, reporter: Reporter) -> None:
    for issue in report.issues:
        if issue.hard:
            reporter.error(issue.message)
        else:
            reporter.warn(issue.message)

    if report.passed:
        reporter.success("SSL certificate validation passed")
    else:
        reporter.error(f"SSL certificate validation failed ({len(report.errors)} errors)")
