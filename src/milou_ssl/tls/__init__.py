"""TLS certificate acquisition strategies."""

from milou_ssl.tls.authority import CertificateAuthority, CryptographyAuthority
from milou_ssl.tls.base import AcquisitionStrategy
from milou_ssl.tls.challenge import CertbotSolver, ChallengeSolver
from milou_ssl.tls.imported import ImportedStrategy, resolve_source
from milou_ssl.tls.letsencrypt import LetsEncryptStrategy, can_use_external_ca
from milou_ssl.tls.selfsigned import SelfSignedStrategy

__all__ = [
    "AcquisitionStrategy",
    "CertbotSolver",
    "CertificateAuthority",
    "ChallengeSolver",
    "CryptographyAuthority",
    "ImportedStrategy",
    "LetsEncryptStrategy",
    "SelfSignedStrategy",
    "can_use_external_ca",
    "resolve_source",
]
