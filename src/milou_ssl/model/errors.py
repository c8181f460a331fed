"""Error types for certificate operations."""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes raised by certificate operations."""

    MISSING_FILE = "MISSING_FILE"
    MALFORMED_CERTIFICATE = "MALFORMED_CERTIFICATE"
    MALFORMED_KEY = "MALFORMED_KEY"
    KEY_MISMATCH = "KEY_MISMATCH"
    EXPIRED = "EXPIRED"
    EXPIRING_SOON = "EXPIRING_SOON"
    DOMAIN_MISMATCH = "DOMAIN_MISMATCH"
    CHALLENGE_UNAVAILABLE = "CHALLENGE_UNAVAILABLE"
    UNSUPPORTED_PACKAGE_MANAGER = "UNSUPPORTED_PACKAGE_MANAGER"
    SOURCE_NOT_FOUND = "SOURCE_NOT_FOUND"
    AMBIGUOUS_SOURCE_PAIR = "AMBIGUOUS_SOURCE_PAIR"

    # Operational failures
    INELIGIBLE_DOMAIN = "INELIGIBLE_DOMAIN"
    CHALLENGE_FAILED = "CHALLENGE_FAILED"
    BACKUP_FAILED = "BACKUP_FAILED"
    INSTALL_FAILED = "INSTALL_FAILED"
    GENERATION_FAILED = "GENERATION_FAILED"
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_MODE = "INVALID_MODE"

    @property
    def is_soft(self) -> bool:
        """Soft errors are reported but never flip an overall result."""
        return self in (ErrorCode.EXPIRING_SOON, ErrorCode.DOMAIN_MISMATCH)


class SSLError(Exception):
    """Certificate error with error code."""

    def __init__(self, code: ErrorCode, message: str, suggestion: str | None = None) -> None:
        self.code = code
        self.message = message
        self.suggestion = suggestion
        super().__init__(f"{code.value}: {message}")
