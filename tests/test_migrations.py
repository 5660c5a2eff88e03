"""
Tests for the schema migration commands
"""
import pytest
from unittest.mock import patch


@pytest.fixture
def no_logging_setup():
    with patch("review_entitlements.logging_config.setup_logging") as setup:
        yield setup


class TestAlembicConfig:
    """Test alembic_config"""

    def test_resolves_script_location_next_to_ini(self):
        from review_entitlements.db.migrations import alembic_config, DEFAULT_ALEMBIC_INI

        cfg = alembic_config()

        assert cfg.get_main_option("script_location") == str(DEFAULT_ALEMBIC_INI.parent / "alembic")

    def test_env_override(self, monkeypatch, tmp_path):
        from review_entitlements.db.migrations import alembic_config

        ini = tmp_path / "alembic.ini"
        ini.write_text("[alembic]\nscript_location = migrations\n")
        monkeypatch.setenv("ALEMBIC_CONFIG", str(ini))

        cfg = alembic_config()

        assert cfg.get_main_option("script_location") == str(tmp_path / "migrations")

    def test_missing_ini(self, tmp_path):
        from review_entitlements.db.migrations import alembic_config

        with pytest.raises(FileNotFoundError):
            alembic_config(str(tmp_path / "missing.ini"))


class TestRevisionStatus:
    """Test revision_status"""

    def test_uninitialized_database(self, db_session):
        from review_entitlements.db.migrations import alembic_config, revision_status

        status = revision_status(alembic_config())

        assert status["current"] is None
        assert status["head"] == "1a2b3c4d5e60"
        assert status["up_to_date"] is False


class TestMain:
    """Test command dispatch"""

    def test_defaults_to_upgrade_head(self, no_logging_setup):
        from review_entitlements.db.migrations import main

        with patch("review_entitlements.db.migrations.command") as alembic_command:
            assert main([]) == 0

        cfg, revision = alembic_command.upgrade.call_args.args
        assert revision == "head"
        assert alembic_command.upgrade.call_args.kwargs == {"sql": False}
        no_logging_setup.assert_called_once()

    def test_downgrade_revision(self, no_logging_setup):
        from review_entitlements.db.migrations import main

        with patch("review_entitlements.db.migrations.command") as alembic_command:
            assert main(["downgrade", "base", "--sql"]) == 0

        assert alembic_command.downgrade.call_args.args[1] == "base"
        assert alembic_command.downgrade.call_args.kwargs == {"sql": True}
        alembic_command.upgrade.assert_not_called()

    def test_check_fails_when_behind(self, no_logging_setup):
        from review_entitlements.db.migrations import main

        with patch(
            "review_entitlements.db.migrations.revision_status",
            return_value={"current": None, "head": "1a2b3c4d5e60", "up_to_date": False},
        ):
            assert main(["check"]) == 1

    def test_check_passes_at_head(self, no_logging_setup):
        from review_entitlements.db.migrations import main

        with patch(
            "review_entitlements.db.migrations.revision_status",
            return_value={"current": "1a2b3c4d5e60", "head": "1a2b3c4d5e60", "up_to_date": True},
        ):
            assert main(["check"]) == 0

    def test_current_prints_revisions(self, no_logging_setup, capsys):
        from review_entitlements.db.migrations import main

        with patch(
            "review_entitlements.db.migrations.revision_status",
            return_value={"current": None, "head": "1a2b3c4d5e60", "up_to_date": False},
        ):
            assert main(["current"]) == 0

        output = capsys.readouterr().out
        assert "<not initialized>" in output
        assert "1a2b3c4d5e60" in output
