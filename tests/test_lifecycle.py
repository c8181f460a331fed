"""Tests for the lifecycle controller."""

import shutil
from datetime import timedelta

import pytest

from milou_ssl.lifecycle import LifecycleController
from milou_ssl.model.config import AcquisitionMode, AcquisitionType, LifecycleState
from milou_ssl.model.errors import ErrorCode
from milou_ssl.validator import pair_matches


@pytest.fixture
def controller(config, fake_solver):
    """Controller with the real authority and a succeeding fake solver."""
    return LifecycleController(config, solver=fake_solver())


def _live_bytes(config) -> tuple[bytes, bytes]:
    return config.cert_file.read_bytes(), config.key_file.read_bytes()


class TestSelfSignedRoundtrip:
    """Test generate mode end to end."""

    def test_generate_localhost(self, controller, config):
        result = controller.setup("localhost", "generate", force=True)

        assert result.success
        assert result.state == LifecycleState.INSTALLED
        assert result.acquisition_type == AcquisitionType.SELF_SIGNED
        assert pair_matches(config.cert_file, config.key_file)
        assert config.config_file.exists()
        assert controller.validate("localhost").passed
        assert controller.store.read_metadata().ssl_type == "self-signed"

    def test_generate_records_metadata(self, controller, config):
        controller.setup("example.com", AcquisitionMode.GENERATE)
        metadata = controller.store.read_metadata()
        assert metadata.domain == "example.com"
        assert metadata.validity_days == 365
        assert metadata.key_size == 2048
        assert metadata.generated_at.endswith("Z")


class TestIdempotence:
    """Test that auto mode preserves a valid pair."""

    def test_second_auto_run_preserves(self, controller, config):
        first = controller.setup("localhost")
        assert first.success
        before = _live_bytes(config)
        mtimes = (config.cert_file.stat().st_mtime_ns, config.key_file.stat().st_mtime_ns)

        second = controller.setup("localhost")

        assert second.success
        assert second.acquisition_type == AcquisitionType.PRESERVED
        assert _live_bytes(config) == before
        assert (config.cert_file.stat().st_mtime_ns, config.key_file.stat().st_mtime_ns) == mtimes
        assert controller.backups() == []
        assert controller.store.read_metadata().ssl_type == "preserved"

    def test_auto_replaces_broken_pair(self, controller, config, make_pair, write_pair):
        """A mismatched pair is backed up and regenerated."""
        write_pair(config.cert_file, config.key_file, make_pair())
        config.key_file.write_bytes(make_pair().private_key)

        result = controller.setup("localhost")

        assert result.success
        assert result.acquisition_type == AcquisitionType.SELF_SIGNED
        assert result.backup is not None
        assert pair_matches(config.cert_file, config.key_file)


class TestBackupMonotonicity:
    """Test that forced runs never lose a backup."""

    def test_forced_runs_accumulate_backups(self, controller, config):
        controller.setup("localhost")
        assert controller.backups() == []

        seen = []
        for _ in range(3):
            seen.append(_live_bytes(config))
            result = controller.setup("localhost", force=True)
            assert result.success
            assert result.backup is not None

        entries = controller.backups()
        assert len(entries) == 3
        assert len({e.timestamp for e in entries}) == 3
        assert [(e.cert_file.read_bytes(), e.key_file.read_bytes()) for e in entries] == seen


class TestRollback:
    """Test rollback after a failed validation."""

    def test_expired_generation_restores_previous(self, config, installed_pair, fake_authority):
        controller = LifecycleController(config, authority=fake_authority(validity_days=0))

        result = controller.setup("localhost", "generate")

        assert not result.success
        assert result.state == LifecycleState.ROLLED_BACK
        assert result.error.code == ErrorCode.EXPIRED
        assert _live_bytes(config) == (installed_pair.certificate, installed_pair.private_key)
        assert controller.store.read_metadata() is None
        assert len(controller.backups()) == 1

    def test_short_validity_without_predecessor(self, config, fake_authority):
        """Nothing to restore means the failed pair is removed."""
        controller = LifecycleController(config, authority=fake_authority(validity_days=3))

        result = controller.setup("localhost", "generate")

        assert not result.success
        assert result.state == LifecycleState.ROLLED_BACK
        assert result.error.code == ErrorCode.EXPIRING_SOON
        assert not controller.store.has_any()

    def test_rollback_disabled(self, config, fake_authority):
        config = config.model_copy(update={"rollback_on_failure": False})
        controller = LifecycleController(config, authority=fake_authority(validity_days=3))

        result = controller.setup("localhost", "generate")

        assert not result.success
        assert result.state == LifecycleState.INSTALLED
        assert controller.store.exists()

    def test_mismatched_generation_never_installs(self, config, installed_pair, fake_authority):
        controller = LifecycleController(config, authority=fake_authority(mismatched=True))

        result = controller.setup("localhost", "generate", force=True)

        assert not result.success
        assert result.error.code == ErrorCode.GENERATION_FAILED
        assert _live_bytes(config) == (installed_pair.certificate, installed_pair.private_key)
        assert controller.backups() == []

    def test_generation_failure(self, config, fake_authority):
        controller = LifecycleController(config, authority=fake_authority(fail=True))
        result = controller.setup("localhost", "generate")
        assert not result.success
        assert result.state == LifecycleState.ABSENT
        assert result.error.code == ErrorCode.GENERATION_FAILED


class TestBackupFailure:
    """Test backup failures before an overwrite."""

    @pytest.fixture
    def failing_copy(self, monkeypatch):
        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(shutil, "copy2", fail)

    def test_aborts_by_default(self, controller, config, installed_pair, failing_copy):
        result = controller.setup("localhost", "generate")
        assert not result.success
        assert result.error.code == ErrorCode.BACKUP_FAILED
        assert _live_bytes(config) == (installed_pair.certificate, installed_pair.private_key)

    def test_proceeds_when_allowed(self, config, installed_pair, failing_copy):
        config = config.model_copy(update={"abort_on_backup_failure": False})
        controller = LifecycleController(config)
        result = controller.setup("localhost", "generate")
        assert result.success
        assert result.backup is None
        assert _live_bytes(config) != (installed_pair.certificate, installed_pair.private_key)


class TestExistingMode:
    """Test importing existing certificates."""

    def test_import_directory(self, controller, config, tmp_path, make_pair, write_pair):
        pair = make_pair(names=("example.com",))
        source = tmp_path / "source"
        write_pair(source / "fullchain.pem", source / "privkey.pem", pair)

        result = controller.setup("example.com", "existing", source=source)

        assert result.success
        assert result.acquisition_type == AcquisitionType.EXISTING
        assert _live_bytes(config) == (pair.certificate, pair.private_key)
        assert controller.store.read_metadata().ssl_type == "existing"

    def test_missing_source(self, controller, config):
        result = controller.setup("example.com", "existing", source=None)
        assert not result.success
        assert result.error.code == ErrorCode.SOURCE_NOT_FOUND
        assert not config.ssl_dir.exists()

    def test_expired_import_rolls_back(self, controller, config, installed_pair, tmp_path, make_pair, write_pair):
        source = tmp_path / "source"
        stale = make_pair(valid_for=timedelta(days=-1))
        write_pair(source / "server.crt", source / "server.key", stale)

        result = controller.setup("localhost", "existing", source=source)

        assert not result.success
        assert result.state == LifecycleState.ROLLED_BACK
        assert result.error.code == ErrorCode.EXPIRED
        assert _live_bytes(config) == (installed_pair.certificate, installed_pair.private_key)


class TestLetsEncryptModes:
    """Test explicit and automatic Let's Encrypt selection."""

    def test_explicit_ineligible_is_fatal(self, controller, config):
        result = controller.setup("localhost", "letsencrypt")
        assert not result.success
        assert result.error.code == ErrorCode.INELIGIBLE_DOMAIN
        assert not controller.store.exists()

    def test_explicit_failure_does_not_fall_back(self, config, fake_solver):
        controller = LifecycleController(config, solver=fake_solver(results=(False,)))
        result = controller.setup("example.com", "letsencrypt")
        assert not result.success
        assert result.error.code == ErrorCode.CHALLENGE_FAILED
        assert not controller.store.exists()

    def test_auto_uses_letsencrypt(self, controller, config):
        result = controller.setup("example.com")
        assert result.success
        assert result.acquisition_type == AcquisitionType.LETSENCRYPT
        live = config.letsencrypt_live_dir / "example.com"
        assert config.cert_file.read_bytes() == (live / "fullchain.pem").read_bytes()

    def test_auto_falls_back_to_self_signed(self, config, fake_solver):
        solver = fake_solver(results=(False,))
        controller = LifecycleController(config, solver=solver)

        result = controller.setup("example.com")

        assert result.success
        assert result.acquisition_type == AcquisitionType.SELF_SIGNED
        assert len(solver.called("obtain")) == 1

    def test_auto_local_domain_skips_letsencrypt(self, config, fake_solver):
        solver = fake_solver()
        controller = LifecycleController(config, solver=solver)
        result = controller.setup("127.0.0.1")
        assert result.acquisition_type == AcquisitionType.SELF_SIGNED
        assert solver.calls == []

    def test_auto_ip_address_goes_self_signed(self, config, fake_solver):
        solver = fake_solver()
        controller = LifecycleController(config, solver=solver)
        result = controller.setup("192.168.1.10")
        assert result.success
        assert result.acquisition_type == AcquisitionType.SELF_SIGNED
        assert solver.calls == []

    def test_auto_fallback_after_failed_check_keeps_one_backup(self, config, installed_pair, fake_solver):
        """An issued pair failing the full check is rolled back and replaced without a second backup."""
        solver = fake_solver(valid_for=timedelta(days=-1))
        controller = LifecycleController(config, solver=solver)

        result = controller.setup("example.com", force=True)

        assert result.success
        assert result.acquisition_type == AcquisitionType.SELF_SIGNED
        assert len(solver.called("obtain")) == 1
        backups = controller.backups()
        assert len(backups) == 1
        assert backups[0].cert_file.read_bytes() == installed_pair.certificate
        assert result.backup == backups[0]

    def test_auto_backup_failure_does_not_fall_back(self, config, installed_pair, fake_solver, monkeypatch):
        def fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(shutil, "copy2", fail)
        controller = LifecycleController(config, solver=fake_solver())

        result = controller.setup("example.com", force=True)

        assert not result.success
        assert result.error.code == ErrorCode.BACKUP_FAILED
        assert not config.config_file.exists()
        assert _live_bytes(config) == (installed_pair.certificate, installed_pair.private_key)


class TestOtherModes:
    """Test none mode and mode parsing."""

    def test_none_cleans_up(self, controller, config):
        controller.setup("localhost")
        result = controller.setup("localhost", "none")
        assert result.success
        assert result.state == LifecycleState.ABSENT
        assert not controller.store.has_any()
        assert result.backup.is_complete_pair

    def test_legacy_alias(self, controller):
        result = controller.setup("localhost", "self-signed")
        assert result.mode == AcquisitionMode.GENERATE
        assert result.success

    def test_invalid_mode(self, controller):
        result = controller.setup("localhost", "bogus")
        assert not result.success
        assert result.error.code == ErrorCode.INVALID_MODE


class TestStatusAndValidate:
    """Test status and validate queries."""

    def test_status_healthy(self, controller):
        controller.setup("localhost")
        status = controller.status("localhost")
        assert status.installed
        assert status.healthy
        assert status.exit_code == 0
        assert status.metadata.ssl_type == "self-signed"
        assert status.info.self_signed

    def test_status_missing(self, controller):
        status = controller.status("localhost")
        assert not status.installed
        assert status.exit_code == 1
        assert status.info is None

    def test_status_reports_last_days(self, controller, config, make_pair, write_pair):
        """Close to expiry is still healthy for status, not for validate."""
        write_pair(config.cert_file, config.key_file, make_pair(valid_for=timedelta(days=3)))
        status = controller.status("localhost")
        assert status.healthy
        assert status.report.expiring_soon
        assert not controller.validate("localhost").passed

    def test_status_expired(self, controller, config, make_pair, write_pair):
        write_pair(config.cert_file, config.key_file, make_pair(valid_for=timedelta(days=-1)))
        status = controller.status("localhost")
        assert not status.healthy
        assert status.exit_code == 1

    def test_validate_min_days_override(self, controller):
        controller.setup("localhost")
        assert controller.validate("localhost").passed
        assert not controller.validate("localhost", min_days_valid=400).passed

    def test_cleanup_and_backups(self, controller):
        controller.setup("localhost")
        entry = controller.cleanup()
        assert entry.is_complete_pair
        assert controller.state == LifecycleState.ABSENT
        assert [e.timestamp for e in controller.backups()] == [entry.timestamp]
