"""On-disk store for the active certificate pair, its metadata and backups."""

import os
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from rich.table import Table

from milou_ssl.model.certificate import (
    BackupEntry,
    CertificateMetadata,
    CertificatePair,
    OpenSSLConfig,
)
from milou_ssl.model.config import AcquisitionType, StoreConfig, StorePaths
from milou_ssl.model.errors import ErrorCode, SSLError
from milou_ssl.utils.output import Reporter

CERT_MODE = 0o644
KEY_MODE = 0o600

_BACKUP_NAME = re.compile(r"^(milou\.crt|milou\.key|ssl_info)\.(\d{8}_\d{6})(?:_(\d+))?$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CertStore:
    """Sole writer of the live certificate pair.

    Holds exactly one active pair (``milou.crt``/``milou.key``), the
    ``.ssl_info`` sidecar, the ephemeral ``openssl.conf`` and an
    append-only ``backup/`` directory.
    """

    def __init__(
        self,
        config: StoreConfig,
        reporter: Reporter | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self.reporter = reporter or Reporter(quiet=True)
        self._clock = clock

    def paths_for(self, domain: str) -> StorePaths:
        return self.config.paths_for(domain)

    def ensure_dirs(self) -> None:
        """Create the SSL and backup directories."""
        self.config.ssl_dir.mkdir(parents=True, exist_ok=True)
        self.config.backup_dir.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        """True iff both certificate and key are present."""
        return self.config.cert_file.is_file() and self.config.key_file.is_file()

    def has_any(self) -> bool:
        return self.config.cert_file.is_file() or self.config.key_file.is_file()

    def read_pair(self) -> CertificatePair:
        if not self.exists():
            raise SSLError(
                ErrorCode.MISSING_FILE,
                f"No certificate pair installed in {self.config.ssl_dir}",
            )
        return CertificatePair(
            certificate=self.config.cert_file.read_bytes(),
            private_key=self.config.key_file.read_bytes(),
        )

    # Backups

    def _timestamp(self) -> str:
        return self._clock().astimezone().strftime("%Y%m%d_%H%M%S")

    def _unique_timestamp(self, names: list[str]) -> str:
        """Timestamp that no existing backup file uses yet."""
        base = self._timestamp()
        stamp = base
        counter = 0
        while any((self.config.backup_dir / f"{name}.{stamp}").exists() for name in names):
            counter += 1
            stamp = f"{base}_{counter}"
        return stamp

    def backup(self) -> BackupEntry | None:
        """Copy the present cert/key files into the backup directory.

        Returns:
            The new BackupEntry, or None when there was nothing to back up

        Raises:
            SSLError: BACKUP_FAILED on copy errors
        """
        cert_file, key_file = self.config.cert_file, self.config.key_file
        if not self.has_any():
            self.reporter.debug("No certificates to backup")
            return None

        try:
            self.config.backup_dir.mkdir(parents=True, exist_ok=True)
            stamp = self._unique_timestamp([cert_file.name, key_file.name, "ssl_info"])
            entry = BackupEntry(timestamp=stamp)

            if cert_file.is_file():
                entry.cert_file = self.config.backup_dir / f"{cert_file.name}.{stamp}"
                shutil.copy2(cert_file, entry.cert_file)
            if key_file.is_file():
                entry.key_file = self.config.backup_dir / f"{key_file.name}.{stamp}"
                shutil.copy2(key_file, entry.key_file)
        except OSError as e:
            raise SSLError(
                ErrorCode.BACKUP_FAILED,
                f"Failed to backup SSL certificates: {e}",
            ) from e

        count = sum(1 for f in (entry.cert_file, entry.key_file) if f is not None)
        self.reporter.success(f"SSL certificates backed up ({count} files)")
        return entry

    def list_backups(self) -> list[BackupEntry]:
        """Backup entries grouped by timestamp, oldest first."""
        backup_dir = self.config.backup_dir
        if not backup_dir.is_dir():
            return []

        entries: dict[str, BackupEntry] = {}
        order: dict[str, tuple[str, int]] = {}
        for path in backup_dir.iterdir():
            match = _BACKUP_NAME.match(path.name)
            if not match:
                continue
            kind, base, counter = match.groups()
            stamp = f"{base}_{counter}" if counter else base
            entry = entries.setdefault(stamp, BackupEntry(timestamp=stamp))
            order[stamp] = (base, int(counter or 0))
            if kind == "milou.crt":
                entry.cert_file = path
            elif kind == "milou.key":
                entry.key_file = path
            else:
                entry.info_file = path

        return [entries[stamp] for stamp in sorted(entries, key=order.__getitem__)]

    def latest_backup(self) -> BackupEntry | None:
        pairs = [e for e in self.list_backups() if e.is_complete_pair]
        return pairs[-1] if pairs else None

    def restore(self, entry: BackupEntry) -> None:
        """Reinstall a backed-up pair as the live pair."""
        if not entry.is_complete_pair:
            raise SSLError(
                ErrorCode.MISSING_FILE,
                f"Backup {entry.timestamp} does not contain a complete certificate pair",
            )
        self.install(
            CertificatePair(
                certificate=entry.cert_file.read_bytes(),
                private_key=entry.key_file.read_bytes(),
            )
        )
        if entry.info_file is not None and entry.info_file.is_file():
            shutil.copy2(entry.info_file, self.config.info_file)
        self.reporter.info(f"Restored certificates from backup {entry.timestamp}")

    # Writes

    def _stage(self, data: bytes, mode: int) -> Path:
        fd, name = tempfile.mkstemp(dir=self.config.ssl_dir, prefix=".milou-", suffix=".tmp")
        with os.fdopen(fd, "wb") as f:
            os.fchmod(f.fileno(), mode)
            f.write(data)
        return Path(name)

    def install(self, pair: CertificatePair) -> None:
        """Write the pair as the live certificate (0644) and key (0600).

        Both files are staged next to their destination and moved into
        place with os.replace.
        """
        self.ensure_dirs()
        staged: list[Path] = []
        try:
            cert_tmp = self._stage(pair.certificate, CERT_MODE)
            staged.append(cert_tmp)
            key_tmp = self._stage(pair.private_key, KEY_MODE)
            staged.append(key_tmp)

            os.replace(key_tmp, self.config.key_file)
            os.replace(cert_tmp, self.config.cert_file)
        except OSError as e:
            for tmp in staged:
                tmp.unlink(missing_ok=True)
            raise SSLError(
                ErrorCode.INSTALL_FAILED,
                f"Failed to install certificates: {e}",
            ) from e

        self.reporter.debug(f"Installed certificate: {self.config.cert_file}")
        self.reporter.debug(f"Installed private key: {self.config.key_file}")

    def remove_pair(self) -> None:
        """Delete the live certificate and key."""
        self.config.cert_file.unlink(missing_ok=True)
        self.config.key_file.unlink(missing_ok=True)

    def write_generation_config(self, openssl_config: OpenSSLConfig) -> Path:
        self.ensure_dirs()
        self.config.config_file.write_text(openssl_config.render())
        self.reporter.debug(f"OpenSSL configuration created: {self.config.config_file}")
        return self.config.config_file

    # Metadata

    def write_metadata(self, domain: str, ssl_type: AcquisitionType) -> CertificateMetadata:
        """Overwrite the metadata sidecar."""
        metadata = CertificateMetadata(
            domain=domain,
            ssl_type=ssl_type.value,
            generated_at=self._clock().astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            cert_file=str(self.config.cert_file),
            key_file=str(self.config.key_file),
            validity_days=self.config.validity_days,
            key_size=self.config.key_size,
        )
        self.config.ssl_dir.mkdir(parents=True, exist_ok=True)
        self.config.info_file.write_text(metadata.to_text())
        self.reporter.debug(f"SSL information saved to: {self.config.info_file}")
        return metadata

    def read_metadata(self) -> CertificateMetadata | None:
        if not self.config.info_file.is_file():
            return None
        return CertificateMetadata.from_text(self.config.info_file.read_text())

    # Cleanup

    def cleanup(self) -> BackupEntry | None:
        """Backup and remove the live pair; archive the metadata file."""
        entry = self.backup()

        self.remove_pair()
        self.config.config_file.unlink(missing_ok=True)

        info_file = self.config.info_file
        if info_file.is_file():
            self.config.backup_dir.mkdir(parents=True, exist_ok=True)
            stamp = entry.timestamp if entry else self._unique_timestamp(["ssl_info"])
            archived = self.config.backup_dir / f"ssl_info.{stamp}"
            info_file.rename(archived)
            if entry is None:
                entry = BackupEntry(timestamp=stamp)
            entry.info_file = archived

        self.reporter.success("SSL certificates cleaned up")
        return entry


def backups_table(entries: list[BackupEntry]) -> Table:
    """Summary table of backup entries."""
    table = Table(title="Certificate Backups")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Certificate")
    table.add_column("Key")
    table.add_column("Metadata", style="dim")

    def mark(path: Path | None) -> str:
        return "[green]yes[/green]" if path is not None else "[dim]-[/dim]"

    for entry in entries:
        table.add_row(entry.timestamp, mark(entry.cert_file), mark(entry.key_file), mark(entry.info_file))
    return table
