"""Data models for certificate lifecycle management."""

from milou_ssl.model.certificate import (
    BackupEntry,
    CertificateInfo,
    CertificateMetadata,
    CertificatePair,
    OpenSSLConfig,
)
from milou_ssl.model.config import (
    AcquisitionMode,
    AcquisitionType,
    LifecycleState,
    StoreConfig,
    StorePaths,
    ValidationOutcome,
)
from milou_ssl.model.errors import ErrorCode, SSLError

__all__ = [
    "AcquisitionMode",
    "AcquisitionType",
    "BackupEntry",
    "CertificateInfo",
    "CertificateMetadata",
    "CertificatePair",
    "ErrorCode",
    "LifecycleState",
    "OpenSSLConfig",
    "SSLError",
    "StoreConfig",
    "StorePaths",
    "ValidationOutcome",
]
