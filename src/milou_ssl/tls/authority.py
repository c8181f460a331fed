"""Certificate authority operations: key generation and self-signing."""

import ipaddress
from datetime import datetime, timedelta, timezone
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from milou_ssl.model.certificate import OpenSSLConfig
from milou_ssl.model.errors import ErrorCode, SSLError

_EXTENDED_KEY_USAGES = {
    "serverAuth": ExtendedKeyUsageOID.SERVER_AUTH,
    "clientAuth": ExtendedKeyUsageOID.CLIENT_AUTH,
}


class CertificateAuthority(Protocol):
    """Capability interface for the cryptographic primitives."""

    def generate_private_key(self, key_size: int) -> bytes:
        """Return a new PEM-encoded private key."""
        ...

    def self_sign(self, private_key: bytes, openssl_config: OpenSSLConfig, validity_days: int) -> bytes:
        """Return a PEM certificate signed by private_key itself."""
        ...


class CryptographyAuthority:
    """CertificateAuthority backed by the cryptography library."""

    def generate_private_key(self, key_size: int) -> bytes:
        try:
            key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        except ValueError as e:
            raise SSLError(ErrorCode.GENERATION_FAILED, f"Failed to generate private key: {e}") from e
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def self_sign(self, private_key: bytes, openssl_config: OpenSSLConfig, validity_days: int) -> bytes:
        try:
            key = serialization.load_pem_private_key(private_key, password=None)
            name = x509.Name(
                [
                    x509.NameAttribute(NameOID.COUNTRY_NAME, openssl_config.country),
                    x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, openssl_config.state),
                    x509.NameAttribute(NameOID.LOCALITY_NAME, openssl_config.locality),
                    x509.NameAttribute(NameOID.ORGANIZATION_NAME, openssl_config.organization),
                    x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, openssl_config.organizational_unit),
                    x509.NameAttribute(NameOID.COMMON_NAME, openssl_config.common_name),
                ]
            )
            alt_names: list[x509.GeneralName] = [x509.DNSName(n) for n in openssl_config.dns_names]
            alt_names.extend(x509.IPAddress(ipaddress.ip_address(ip)) for ip in openssl_config.ip_addresses)

            usages = set(openssl_config.key_usage)
            now = datetime.now(timezone.utc)
            cert = (
                x509.CertificateBuilder()
                .subject_name(name)
                .issuer_name(name)
                .public_key(key.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now - timedelta(minutes=1))
                .not_valid_after(now + timedelta(days=validity_days))
                .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
                .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
                .add_extension(
                    x509.KeyUsage(
                        digital_signature="digitalSignature" in usages,
                        content_commitment=False,
                        key_encipherment="keyEncipherment" in usages,
                        data_encipherment="dataEncipherment" in usages,
                        key_agreement=False,
                        key_cert_sign=False,
                        crl_sign=False,
                        encipher_only=False,
                        decipher_only=False,
                    ),
                    critical=True,
                )
                .add_extension(
                    x509.ExtendedKeyUsage(
                        [_EXTENDED_KEY_USAGES[u] for u in openssl_config.extended_key_usage if u in _EXTENDED_KEY_USAGES]
                    ),
                    critical=False,
                )
                .sign(key, hashes.SHA256())
            )
        except (ValueError, TypeError) as e:
            raise SSLError(ErrorCode.GENERATION_FAILED, f"Failed to generate certificate: {e}") from e

        return cert.public_bytes(serialization.Encoding.PEM)
