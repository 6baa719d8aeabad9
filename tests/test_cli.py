"""
Tests for the CLI interface.
"""

import os
import shutil
import tempfile
from unittest.mock import patch

import yaml
from typer.testing import CliRunner

from autoguardian.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app
from autoguardian.core.usage_gate import Tier
from autoguardian.storage.models import ConsultationRecord, WaitlistEntry
from autoguardian.storage.repository import UsageRepository

runner = CliRunner()


class TestCLI:
    """Test CLI commands against a throwaway database."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "cli.db")
        self.config_path = os.path.join(self.temp_dir, "autoguardian.yaml")
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.dump({"storage": {"db_path": self.db_path}, "quota": {"free_tier_limit": 3}}, f)
        self.repository = UsageRepository(self.db_path)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _invoke(self, *args):
        return runner.invoke(app, [*args, "--config", self.config_path])

    def test_no_command_prints_hint(self):
        result = runner.invoke(app, [])
        assert "Use --help" in result.output

    def test_init(self):
        result = self._invoke("init")

        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized" in result.output
        assert os.path.exists(self.db_path)

    def test_init_bad_config(self):
        result = runner.invoke(app, ["init", "--config", os.path.join(self.temp_dir, "missing.yaml")])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error initializing database" in result.output

    def test_create_user(self):
        result = self._invoke("create-user", "Owner@Example.com", "--tier", "pro")

        assert result.exit_code == EXIT_CODE_PASS
        assert "Created owner@example.com (pro)" in result.output
        assert "Access token:" in result.output

    def test_create_user_invalid_tier(self):
        result = self._invoke("create-user", "owner@example.com", "--tier", "gold")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "unknown tier" in result.output

    def test_set_tier(self):
        self.repository.initialize()
        profile = self.repository.create_profile("owner@example.com")

        result = self._invoke("set-tier", profile.user_id, "shop")

        assert result.exit_code == EXIT_CODE_PASS
        assert self.repository.get_tier(profile.user_id) is Tier.SHOP

    def test_set_tier_unknown_user(self):
        self.repository.initialize()

        result = self._invoke("set-tier", "no-such-user", "pro")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "no account" in result.output

    def test_usage_free_tier(self):
        self.repository.initialize()
        profile = self.repository.create_profile("owner@example.com")
        self.repository.insert_record(ConsultationRecord(
            user_id=profile.user_id,
            result={},
            vehicle_make="Toyota",
            vehicle_model="Camry",
            vehicle_year=2019,
            vehicle_mileage=45000,
            description="Grinding noise when braking",
        ))

        result = self._invoke("usage", profile.user_id)

        assert result.exit_code == EXIT_CODE_PASS
        assert "consultations" in result.output
        assert "Tier: free" in result.output
        assert "Remaining consultations: 2" in result.output

    def test_usage_paid_tier(self):
        self.repository.initialize()
        profile = self.repository.create_profile("owner@example.com", tier=Tier.PRO)

        result = self._invoke("usage", profile.user_id)

        assert result.exit_code == EXIT_CODE_PASS
        assert "Remaining consultations: unlimited" in result.output

    def test_usage_unknown_user(self):
        self.repository.initialize()

        result = self._invoke("usage", "no-such-user")

        assert result.exit_code == EXIT_CODE_FAIL

    def test_waitlist_empty(self):
        self.repository.initialize()

        result = self._invoke("waitlist")

        assert result.exit_code == EXIT_CODE_PASS
        assert "No one on the waitlist yet." in result.output

    def test_waitlist_lists_entries(self):
        self.repository.initialize()
        self.repository.add_to_waitlist(WaitlistEntry(email="a@example.com"))
        self.repository.add_to_waitlist(WaitlistEntry(email="b@example.com", source="blog"))

        result = self._invoke("waitlist")

        assert result.exit_code == EXIT_CODE_PASS
        assert "a@example.com" in result.output
        assert "b@example.com" in result.output

    @patch("autoguardian.api.app.InferenceClient")
    @patch("uvicorn.run")
    def test_serve(self, mock_run, mock_client):
        result = self._invoke("serve", "--port", "9000")

        assert result.exit_code == EXIT_CODE_PASS
        _, kwargs = mock_run.call_args
        assert kwargs["port"] == 9000
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["log_level"] == "info"
