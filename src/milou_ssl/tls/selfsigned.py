"""Self-signed certificate generation."""

from milou_ssl.model.certificate import LOCAL_DOMAINS, CertificatePair, OpenSSLConfig
from milou_ssl.model.config import AcquisitionType
from milou_ssl.model.errors import ErrorCode, SSLError
from milou_ssl.store import CertStore
from milou_ssl.tls.authority import CertificateAuthority
from milou_ssl.utils.output import Reporter
from milou_ssl.validator import parse_certificate, parse_private_key, public_keys_match


class SelfSignedStrategy:
    """Generate a fresh key and self-sign a certificate for the domain."""

    acquisition_type = AcquisitionType.SELF_SIGNED

    def __init__(
        self,
        store: CertStore,
        authority: CertificateAuthority,
        reporter: Reporter | None = None,
    ) -> None:
        self.store = store
        self.authority = authority
        self.reporter = reporter or Reporter(quiet=True)

    def acquire(self, domain: str) -> CertificatePair:
        """Generate a certificate pair.

        Args:
            domain: Domain name for the certificate

        Returns:
            CertificatePair whose key matches the certificate

        Raises:
            SSLError: If generation fails
        """
        config = self.store.config
        self.reporter.info(f"Generating self-signed certificate for: {domain}")

        openssl_config = OpenSSLConfig.for_domain(domain)
        self.store.write_generation_config(openssl_config)

        self.reporter.debug(f"Generating RSA private key ({config.key_size} bits)")
        private_key = self.authority.generate_private_key(config.key_size)

        self.reporter.debug(f"Generating certificate (valid for {config.validity_days} days)")
        certificate = self.authority.self_sign(private_key, openssl_config, config.validity_days)

        if not public_keys_match(parse_certificate(certificate), parse_private_key(private_key)):
            raise SSLError(
                ErrorCode.GENERATION_FAILED,
                "Generated certificate does not match its private key",
            )

        if domain not in LOCAL_DOMAINS:
            self.reporter.info("Note: Browsers will show security warnings for self-signed certificates")
            self.reporter.info("For production, consider using Let's Encrypt certificates")

        return CertificatePair(certificate=certificate, private_key=private_key)
