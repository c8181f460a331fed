"""Certificate store configuration model."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from milou_ssl.model.errors import ErrorCode, SSLError


class AcquisitionMode(str, Enum):
    """Requested way of obtaining a certificate."""

    AUTO = "auto"
    GENERATE = "generate"
    EXISTING = "existing"
    LETSENCRYPT = "letsencrypt"
    NONE = "none"

    @classmethod
    def parse(cls, value: "str | AcquisitionMode") -> "AcquisitionMode":
        """Parse a mode name, accepting legacy aliases."""
        if isinstance(value, cls):
            return value
        aliases = {"self-signed": cls.GENERATE, "disabled": cls.NONE}
        normalized = value.strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise SSLError(
                ErrorCode.INVALID_MODE,
                f"Unknown SSL mode '{value}'. Choose one of: {choices}",
            ) from None


class AcquisitionType(str, Enum):
    """How the installed certificate was obtained (recorded in metadata)."""

    SELF_SIGNED = "self-signed"
    LETSENCRYPT = "letsencrypt"
    EXISTING = "existing"
    PRESERVED = "preserved"


class ValidationOutcome(str, Enum):
    """Aggregate result of a validation pass."""

    PASSED = "passed"
    FAILED = "failed"


class LifecycleState(str, Enum):
    """State of the certificate store during a setup run."""

    ABSENT = "absent"
    INSTALLING = "installing"
    VALIDATING = "validating"
    INSTALLED = "installed"
    ROLLED_BACK = "rolled-back"


class ChallengeMethod(str, Enum):
    """Domain validation strategies tried in order."""

    STANDALONE = "standalone"
    PROXY_STOP = "proxy-stop"


@dataclass(frozen=True)
class StorePaths:
    """Fixed file locations of the active certificate pair."""

    cert_file: Path
    key_file: Path
    info_file: Path
    config_file: Path
    backup_dir: Path


class StoreConfig(BaseModel):
    """Configuration for the certificate store and acquisition defaults."""

    ssl_dir: Path = Field(default_factory=lambda: Path.cwd() / "ssl")

    # Generation defaults
    validity_days: int = Field(default=365, ge=1)
    key_size: int = Field(default=2048, ge=1024)

    # Validation thresholds
    min_days_valid: int = Field(default=7, ge=0)
    expiry_warning_days: int = Field(default=30, ge=0)

    # Let's Encrypt
    admin_email: str | None = Field(default=None)
    proxy_service: str = Field(default="nginx")
    challenge_port: int = Field(default=80, ge=1, le=65535)
    letsencrypt_live_dir: Path = Field(default=Path("/etc/letsencrypt/live"))
    letsencrypt_staging: bool = Field(default=False)

    # Safety
    abort_on_backup_failure: bool = Field(default=True)
    rollback_on_failure: bool = Field(default=True)

    @property
    def cert_file(self) -> Path:
        return self.ssl_dir / "milou.crt"

    @property
    def key_file(self) -> Path:
        return self.ssl_dir / "milou.key"

    @property
    def info_file(self) -> Path:
        return self.ssl_dir / ".ssl_info"

    @property
    def config_file(self) -> Path:
        return self.ssl_dir / "openssl.conf"

    @property
    def backup_dir(self) -> Path:
        return self.ssl_dir / "backup"

    def paths_for(self, domain: str) -> StorePaths:
        """Return the store paths.

        The store holds a single active pair, so every domain maps to the
        same location.
        """
        return StorePaths(
            cert_file=self.cert_file,
            key_file=self.key_file,
            info_file=self.info_file,
            config_file=self.config_file,
            backup_dir=self.backup_dir,
        )

    def email_for(self, domain: str) -> str:
        """Registration email for the ACME account."""
        return self.admin_email or f"admin@{domain}"


def load_config(path: Path | None = None, **overrides) -> StoreConfig:
    """Load store configuration from an optional YAML file.

    Args:
        path: YAML file whose keys map onto StoreConfig fields
        **overrides: Values that take precedence over the file (None is ignored)

    Returns:
        StoreConfig instance

    Raises:
        SSLError: If the file is missing or holds invalid settings
    """
    data: dict = {}
    if path is not None:
        if not path.exists():
            raise SSLError(ErrorCode.INVALID_CONFIG, f"Config file not found: {path}")
        with path.open() as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise SSLError(ErrorCode.INVALID_CONFIG, f"Config file must be a mapping: {path}")
        data.update(loaded)

    data.update({k: v for k, v in overrides.items() if v is not None})

    unknown = set(data) - set(StoreConfig.model_fields)
    if unknown:
        raise SSLError(
            ErrorCode.INVALID_CONFIG,
            f"Unknown config keys: {', '.join(sorted(unknown))}",
        )

    try:
        return StoreConfig(**data)
    except ValidationError as e:
        raise SSLError(ErrorCode.INVALID_CONFIG, str(e)) from e
