"""Certificate lifecycle: acquire, back up, install, validate, commit or roll back."""

from dataclasses import dataclass
from pathlib import Path

from milou_ssl.model.certificate import (
    LOCAL_DOMAINS,
    BackupEntry,
    CertificateInfo,
    CertificateMetadata,
)
from milou_ssl.model.config import AcquisitionMode, AcquisitionType, LifecycleState, StoreConfig
from milou_ssl.model.errors import ErrorCode, SSLError
from milou_ssl.store import CertStore
from milou_ssl.tls.authority import CertificateAuthority, CryptographyAuthority
from milou_ssl.tls.base import AcquisitionStrategy
from milou_ssl.tls.challenge import CertbotSolver, ChallengeSolver
from milou_ssl.tls.imported import ImportedStrategy
from milou_ssl.tls.letsencrypt import LetsEncryptStrategy, can_use_external_ca
from milou_ssl.tls.selfsigned import SelfSignedStrategy
from milou_ssl.utils.output import Reporter
from milou_ssl.validator import ValidationReport, describe_certificate, full_check


@dataclass
class SetupResult:
    """Outcome of a setup run."""

    success: bool
    state: LifecycleState
    mode: AcquisitionMode
    acquisition_type: AcquisitionType | None = None
    report: ValidationReport | None = None
    backup: BackupEntry | None = None
    message: str = ""
    error: SSLError | None = None


@dataclass
class StatusReport:
    """Health summary of the installed pair."""

    domain: str
    installed: bool
    report: ValidationReport
    metadata: CertificateMetadata | None = None
    info: CertificateInfo | None = None

    @property
    def healthy(self) -> bool:
        return self.installed and self.report.healthy

    @property
    def exit_code(self) -> int:
        return 0 if self.healthy else 1


class LifecycleController:
    """Drives setup runs through the store and the validator.

    Strategies only produce candidate pairs. Every overwrite of the live
    files is preceded by a backup and followed by a full check, whose
    result decides between committing metadata and rolling back.
    """

    def __init__(
        self,
        config: StoreConfig,
        authority: CertificateAuthority | None = None,
        solver: ChallengeSolver | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self.config = config
        self.reporter = reporter or Reporter(quiet=True)
        self.authority = authority or CryptographyAuthority()
        self.solver = solver or CertbotSolver(show_commands=not self.reporter.quiet)
        self.store = CertStore(config, self.reporter)
        self.state = LifecycleState.INSTALLED if self.store.exists() else LifecycleState.ABSENT

    # Strategy factories

    def self_signed(self) -> SelfSignedStrategy:
        return SelfSignedStrategy(self.store, self.authority, self.reporter)

    def imported(self, source: Path | None) -> ImportedStrategy:
        return ImportedStrategy(source, self.reporter)

    def letsencrypt(self) -> LetsEncryptStrategy:
        return LetsEncryptStrategy(self.config, self.solver, self.reporter)

    # Operations

    def setup(
        self,
        domain: str = "localhost",
        mode: AcquisitionMode | str = AcquisitionMode.AUTO,
        source: Path | None = None,
        force: bool = False,
    ) -> SetupResult:
        """Bring the store to a validated pair for the domain.

        Args:
            domain: Domain the certificate is for
            mode: Acquisition mode (auto, generate, existing, letsencrypt, none)
            source: Certificate file or directory for existing mode
            force: Replace a valid existing pair in auto mode

        Returns:
            SetupResult; errors are reported through it, not raised
        """
        try:
            mode = AcquisitionMode.parse(mode)
        except SSLError as e:
            return self._failed(AcquisitionMode.AUTO, e)

        self.reporter.step(f"Setting up SSL certificates for: {domain} (mode: {mode.value})")

        try:
            if mode == AcquisitionMode.NONE:
                entry = self.store.cleanup()
                self.state = LifecycleState.ABSENT
                return SetupResult(
                    success=True,
                    state=self.state,
                    mode=mode,
                    backup=entry,
                    message="SSL disabled, certificates removed",
                )
            if mode == AcquisitionMode.EXISTING:
                return self._run(self.imported(source), domain, mode)
            if mode == AcquisitionMode.GENERATE:
                return self._run(self.self_signed(), domain, mode)
            if mode == AcquisitionMode.LETSENCRYPT:
                return self._run(self.letsencrypt(), domain, mode)
            return self._auto(domain, force)
        except SSLError as e:
            return self._failed(mode, e)

    def _auto(self, domain: str, force: bool) -> SetupResult:
        mode = AcquisitionMode.AUTO

        if not force and self.store.exists():
            report = self._check(domain)
            if report.passed:
                self.store.write_metadata(domain, AcquisitionType.PRESERVED)
                self.reporter.success("Existing SSL certificates are valid, preserving them")
                self.state = LifecycleState.INSTALLED
                return SetupResult(
                    success=True,
                    state=self.state,
                    mode=mode,
                    acquisition_type=AcquisitionType.PRESERVED,
                    report=report,
                    message="Existing certificates preserved",
                )
            self.reporter.warn("Existing certificates are not usable, replacing them")

        if domain in LOCAL_DOMAINS:
            return self._run(self.self_signed(), domain, mode)

        if can_use_external_ca(domain):
            try:
                result = self._run(self.letsencrypt(), domain, mode)
            except SSLError as e:
                if e.code == ErrorCode.BACKUP_FAILED:
                    raise
                self.reporter.warn(f"Let's Encrypt failed ({e.code.value}), falling back to self-signed")
            else:
                if result.success:
                    return result
                self.reporter.warn("Let's Encrypt certificate failed validation, falling back to self-signed")
                if result.backup is not None:
                    return self._run(self.self_signed(), domain, mode, backup=result.backup)

        return self._run(self.self_signed(), domain, mode)

    def _run(
        self,
        strategy: AcquisitionStrategy,
        domain: str,
        mode: AcquisitionMode,
        backup: BackupEntry | None = None,
    ) -> SetupResult:
        """Acquire a pair, then back up, install and validate it.

        Acquisition errors propagate before anything on disk changes. A
        backup already taken earlier in the same setup is reused.
        """
        pair = strategy.acquire(domain)

        if backup is None and self.store.has_any():
            try:
                backup = self.store.backup()
            except SSLError as e:
                if self.config.abort_on_backup_failure:
                    raise
                self.reporter.warn(f"{e.message}; continuing without a backup")

        self.state = LifecycleState.INSTALLING
        try:
            self.store.install(pair)
        except SSLError as e:
            return self._rollback(mode, strategy.acquisition_type, backup, None, e)

        self.state = LifecycleState.VALIDATING
        report = self._check(domain)
        if report.passed:
            self.store.write_metadata(domain, strategy.acquisition_type)
            self.state = LifecycleState.INSTALLED
            self.reporter.success(f"SSL certificates installed ({strategy.acquisition_type.value})")
            return SetupResult(
                success=True,
                state=self.state,
                mode=mode,
                acquisition_type=strategy.acquisition_type,
                report=report,
                backup=backup,
                message=f"Certificate installed for {domain}",
            )

        cause = report.first_error()
        error = SSLError(cause.code, cause.message) if cause else None
        return self._rollback(mode, strategy.acquisition_type, backup, report, error)

    def _rollback(
        self,
        mode: AcquisitionMode,
        acquisition_type: AcquisitionType,
        backup: BackupEntry | None,
        report: ValidationReport | None,
        error: SSLError | None,
    ) -> SetupResult:
        message = error.message if error else "Certificate validation failed"

        if not self.config.rollback_on_failure:
            self.reporter.error(f"{message}; installed files left in place")
            self.state = LifecycleState.INSTALLED if self.store.exists() else LifecycleState.ABSENT
            return SetupResult(
                success=False,
                state=self.state,
                mode=mode,
                acquisition_type=acquisition_type,
                report=report,
                backup=backup,
                message=message,
                error=error,
            )

        if backup is not None and backup.is_complete_pair:
            self.store.restore(backup)
        else:
            self.store.remove_pair()
            if backup is not None:
                self.reporter.warn(f"Previous incomplete pair kept in backup {backup.timestamp}")
        self.reporter.error(f"{message}; rolled back")

        self.state = LifecycleState.ROLLED_BACK
        return SetupResult(
            success=False,
            state=self.state,
            mode=mode,
            acquisition_type=acquisition_type,
            report=report,
            backup=backup,
            message=message,
            error=error,
        )

    def _failed(self, mode: AcquisitionMode, error: SSLError) -> SetupResult:
        self.reporter.error(error.message)
        if error.suggestion:
            self.reporter.debug(error.suggestion)
        self.state = LifecycleState.INSTALLED if self.store.exists() else LifecycleState.ABSENT
        return SetupResult(
            success=False,
            state=self.state,
            mode=mode,
            message=error.message,
            error=error,
        )

    def _check(
        self, domain: str, min_days_valid: int | None = None, reporter: Reporter | None = None
    ) -> ValidationReport:
        return full_check(
            self.store.paths_for(domain),
            domain,
            min_days_valid=self.config.min_days_valid if min_days_valid is None else min_days_valid,
            expiry_warning_days=self.config.expiry_warning_days,
            reporter=reporter or self.reporter,
        )

    def validate(self, domain: str = "localhost", min_days_valid: int | None = None) -> ValidationReport:
        """Run the full check against the live pair."""
        return self._check(domain, min_days_valid)

    def status(self, domain: str = "localhost") -> StatusReport:
        """Summarize the installed pair.

        Remaining validity is reported down to zero days; only an expired
        or broken pair counts as needing attention.
        """
        report = self._check(domain, min_days_valid=0, reporter=Reporter(quiet=True))
        info = describe_certificate(self.config.cert_file) if report.cert_format_valid else None
        return StatusReport(
            domain=domain,
            installed=self.store.exists(),
            report=report,
            metadata=self.store.read_metadata(),
            info=info,
        )

    def cleanup(self) -> BackupEntry | None:
        """Back up and remove the live pair."""
        entry = self.store.cleanup()
        self.state = LifecycleState.ABSENT
        return entry

    def backups(self) -> list[BackupEntry]:
        return self.store.list_backups()

    def describe(self) -> CertificateInfo:
        """Certificate details of the live pair."""
        if not self.config.cert_file.is_file():
            raise SSLError(
                ErrorCode.MISSING_FILE,
                f"Certificate file not found: {self.config.cert_file}",
            )
        return describe_certificate(self.config.cert_file)
