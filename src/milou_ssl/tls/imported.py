"""Import of externally provided certificates."""

from pathlib import Path

from milou_ssl.model.certificate import CertificatePair
from milou_ssl.model.config import AcquisitionType
from milou_ssl.model.errors import ErrorCode, SSLError
from milou_ssl.utils.output import Reporter
from milou_ssl.validator import load_certificate, load_private_key, public_keys_match

# Directory layouts checked before the generic name search, in order
PRIORITY_PAIRS = (
    ("fullchain.pem", "privkey.pem"),
    ("cert.pem", "privkey.pem"),
)

FALLBACK_BASES = ("cert", "server", "certificate", "ssl", "milou")
FALLBACK_EXTENSIONS = (".crt", ".pem")
FIXED_KEY_NAMES = ("privkey.pem", "private.key", "key.pem", "server.key", "ssl.key", "private.pem")

CERT_SUFFIXES = (".crt", ".pem", ".cer")
KEY_SUFFIXES = (".key", "-key.pem", "_key.pem", ".pem")

SUPPORTED_FORMATS = (
    "Let's Encrypt (fullchain.pem + privkey.pem), "
    "cert.pem + privkey.pem, "
    "<name>.crt/.pem + <name>.key (name: cert, server, certificate, ssl)"
)


def _stem(cert_path: Path) -> str:
    name = cert_path.name
    for suffix in CERT_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return cert_path.stem


def _matching_key(cert_path: Path, exclude: list[Path] | None = None) -> Path | None:
    """Key file sharing the certificate's basename."""
    stem = _stem(cert_path)
    skip = [cert_path, *(exclude or [])]
    for suffix in KEY_SUFFIXES:
        candidate = cert_path.with_name(f"{stem}{suffix}")
        if candidate not in skip and candidate.is_file():
            return candidate
    return None


def find_peer_key(cert_path: Path) -> Path:
    """Guess the key file for a certificate by swapping its extension.

    Raises:
        SSLError: SOURCE_NOT_FOUND if no candidate exists
    """
    key_path = _matching_key(cert_path)
    if key_path is None:
        tried = ", ".join(f"{_stem(cert_path)}{s}" for s in KEY_SUFFIXES)
        raise SSLError(
            ErrorCode.SOURCE_NOT_FOUND,
            f"Could not find corresponding private key for: {cert_path} (tried {tried})",
        )
    return key_path


def resolve_directory(directory: Path) -> tuple[Path, Path]:
    """Find a certificate/key pair inside a directory.

    Known layouts win over the generic name search; a stray file never
    outranks a Let's Encrypt style pair.

    Raises:
        SSLError: SOURCE_NOT_FOUND or AMBIGUOUS_SOURCE_PAIR
    """
    for cert_name, key_name in PRIORITY_PAIRS:
        cert_path, key_path = directory / cert_name, directory / key_name
        if cert_path.is_file() and key_path.is_file():
            return cert_path, key_path

    candidates = [
        directory / f"{base}{ext}"
        for base in FALLBACK_BASES
        for ext in FALLBACK_EXTENSIONS
        if (directory / f"{base}{ext}").is_file()
    ]

    # One certificate per basename (.crt before .pem); a sibling .pem may be its key
    certs: dict[str, Path] = {}
    for cert_path in candidates:
        certs.setdefault(_stem(cert_path), cert_path)

    by_stem: dict[str, tuple[Path, Path]] = {}
    for stem, cert_path in certs.items():
        key_path = _matching_key(cert_path, exclude=list(certs.values()))
        if key_path is not None:
            by_stem[stem] = (cert_path, key_path)

    if len(by_stem) == 1:
        return next(iter(by_stem.values()))
    if len(by_stem) > 1:
        found = ", ".join(f"{c.name} + {k.name}" for c, k in by_stem.values())
        raise SSLError(
            ErrorCode.AMBIGUOUS_SOURCE_PAIR,
            f"Multiple certificate pairs found in {directory}: {found}. Point to a single certificate file instead.",
        )

    keys = [
        directory / name
        for name in FIXED_KEY_NAMES
        if (directory / name).is_file() and directory / name not in candidates
    ]
    if candidates and keys:
        stems = {_stem(c) for c in candidates}
        if len(stems) > 1:
            raise SSLError(
                ErrorCode.AMBIGUOUS_SOURCE_PAIR,
                f"Several certificates found in {directory} for key {keys[0].name}: "
                + ", ".join(c.name for c in candidates),
            )
        return candidates[0], keys[0]

    raise SSLError(
        ErrorCode.SOURCE_NOT_FOUND,
        f"No certificate/key match found in {directory}. Supported formats are: {SUPPORTED_FORMATS}",
    )


def resolve_source(source: Path | None) -> tuple[Path, Path]:
    """Resolve a certificate file or directory to a (cert, key) pair."""
    if source is None or not str(source).strip():
        raise SSLError(
            ErrorCode.SOURCE_NOT_FOUND,
            "Certificate source path required for existing mode",
        )

    source = source.expanduser()
    if source.is_file():
        return source, find_peer_key(source)
    if source.is_dir():
        return resolve_directory(source)

    raise SSLError(
        ErrorCode.SOURCE_NOT_FOUND,
        f"Certificate path does not exist: {source}",
    )


class ImportedStrategy:
    """Copy an externally provided certificate pair, validated first."""

    acquisition_type = AcquisitionType.EXISTING

    def __init__(self, source: Path | None, reporter: Reporter | None = None) -> None:
        self.source = source
        self.reporter = reporter or Reporter(quiet=True)

    def acquire(self, domain: str) -> CertificatePair:
        """Resolve and validate the source pair.

        Args:
            domain: Domain the certificate is imported for

        Returns:
            CertificatePair read from the source files

        Raises:
            SSLError: If the source cannot be resolved or fails validation
        """
        self.reporter.info(f"Setting up existing certificates from: {self.source}")
        cert_path, key_path = resolve_source(self.source)
        self.reporter.debug(f"Certificate: {cert_path}")
        self.reporter.debug(f"Private key: {key_path}")

        cert = load_certificate(cert_path)
        key = load_private_key(key_path)
        if not public_keys_match(cert, key):
            raise SSLError(
                ErrorCode.KEY_MISMATCH,
                f"Certificate {cert_path.name} and private key {key_path.name} do not match",
            )

        try:
            return CertificatePair(
                certificate=cert_path.read_bytes(),
                private_key=key_path.read_bytes(),
            )
        except OSError as e:
            raise SSLError(
                ErrorCode.SOURCE_NOT_FOUND,
                f"Failed to read certificates: {e}",
            ) from e
