"""
Tests for hera_api/config.py.

Tests cover:
- ENVIRONMENT normalization (production→prod, development→dev)
- CORS origin parsing
- Secret redaction in the effective config dump
- Startup validation of required variables
"""

from __future__ import annotations

import logging
import os
from unittest.mock import patch

import pytest

from hera_api.config import (
    Settings,
    get_settings,
    print_effective_config,
    validate_required_env,
)


def _minimal_env() -> dict[str, str]:
    """Minimal valid environment for Settings instantiation."""
    return {
        "SUPABASE_URL": "https://test.supabase.co",
        "SUPABASE_SERVICE_ROLE_KEY": "a" * 120,  # Must be 100+ chars
    }


def _create_settings_no_env_file(**overrides):
    """Create Settings without loading an env file, isolated from current env."""
    all_values = _minimal_env() | overrides
    with patch.dict(os.environ, {}, clear=True):
        return Settings(_env_file="", **all_values)  # type: ignore[call-arg]


class TestEnvironmentNormalization:
    """Tests for ENVIRONMENT value normalization."""

    @pytest.mark.parametrize("value", ["dev", "staging", "prod"])
    def test_accepts_canonical_values(self, value):
        s = _create_settings_no_env_file(ENVIRONMENT=value)
        assert s.ENVIRONMENT == value

    def test_normalizes_production_to_prod(self, caplog):
        """production is normalized to prod with a warning."""
        with caplog.at_level(logging.WARNING):
            s = _create_settings_no_env_file(ENVIRONMENT="production")
        assert s.ENVIRONMENT == "prod"
        assert s.is_production
        assert "deprecated" in caplog.text.lower()

    def test_normalizes_development_to_dev(self, caplog):
        """development is normalized to dev with a warning."""
        with caplog.at_level(logging.WARNING):
            s = _create_settings_no_env_file(ENVIRONMENT="development")
        assert s.ENVIRONMENT == "dev"
        assert s.is_development
        assert "development" in caplog.text

    def test_case_and_quotes_are_stripped(self):
        s = _create_settings_no_env_file(ENVIRONMENT='"  STAGING "')
        assert s.ENVIRONMENT == "staging"

    def test_rejects_unknown_environment(self):
        with pytest.raises(ValueError, match="invalid"):
            _create_settings_no_env_file(ENVIRONMENT="qa")

    def test_log_level_uppercased(self):
        s = _create_settings_no_env_file(LOG_LEVEL="debug")
        assert s.LOG_LEVEL == "DEBUG"

    def test_short_service_role_key_rejected(self):
        with pytest.raises(ValueError):
            _create_settings_no_env_file(SUPABASE_SERVICE_ROLE_KEY="short")


class TestSettingsDefaults:
    def test_defaults(self):
        s = _create_settings_no_env_file()
        assert s.environment == "dev"
        assert s.port == 8080
        assert s.RPC_MAX_ATTEMPTS == 3
        assert s.MAX_BATCH_SIZE == 500
        assert s.platform_organization_id == "00000000-0000-0000-0000-000000000000"
        assert s.hera_api_key is None

    def test_platform_org_is_lowercased(self):
        s = _create_settings_no_env_file(PLATFORM_ORGANIZATION_ID="ABCDEF00-0000-0000-0000-000000000000")
        assert s.platform_organization_id == "abcdef00-0000-0000-0000-000000000000"


class TestCorsOrigins:
    def test_default_origins(self):
        s = _create_settings_no_env_file()
        assert s.cors_allowed_origins == ["http://localhost:3000", "http://localhost:5173"]

    def test_comma_and_space_separated(self):
        s = _create_settings_no_env_file(
            HERA_CORS_ORIGINS="https://app.heraerp.com/, https://pos.heraerp.com  http://localhost:3000"
        )
        assert s.cors_allowed_origins == [
            "https://app.heraerp.com",
            "https://pos.heraerp.com",
            "http://localhost:3000",
        ]

    def test_non_http_entries_ignored(self):
        s = _create_settings_no_env_file(HERA_CORS_ORIGINS="*, ftp://files")
        assert s.cors_allowed_origins == ["http://localhost:3000", "http://localhost:5173"]


class TestEffectiveConfig:
    def test_secrets_redacted(self):
        config = print_effective_config()

        assert config["HERA_API_KEY"].startswith("***SET***")
        assert "test-hera-api-key" not in str(config)
        assert config["SUPABASE_SERVICE_ROLE_KEY"].startswith("***SET***")
        assert config["SUPABASE_URL"] == get_settings().SUPABASE_URL
        assert config["_computed"]["is_production"] is False

    def test_show_secrets(self):
        config = print_effective_config(redact_secrets=False)
        assert config["HERA_API_KEY"] == "test-hera-api-key-12345"


class TestValidateRequiredEnv:
    def test_all_present(self):
        result = validate_required_env(fail_fast=True)
        assert result["valid"] is True
        assert result["missing"] == []
        assert "SUPABASE_URL" in result["present"]

    def test_missing_vars_reported(self):
        with patch.dict(os.environ, {"SUPABASE_URL": ""}, clear=False):
            result = validate_required_env(fail_fast=False)
        assert result["valid"] is False
        assert result["missing"] == ["SUPABASE_URL"]

    def test_fail_fast_raises(self):
        with patch.dict(os.environ, {"SUPABASE_SERVICE_ROLE_KEY": "  "}, clear=False):
            with pytest.raises(RuntimeError, match="SUPABASE_SERVICE_ROLE_KEY"):
                validate_required_env(fail_fast=True)

    def test_prod_recommendations(self):
        env = {"ENVIRONMENT": "production", "HERA_CORS_ORIGINS": ""}
        with patch.dict(os.environ, env, clear=False):
            result = validate_required_env(fail_fast=False)
        assert any("HERA_CORS_ORIGINS" in w for w in result["warnings"])
        assert not any("HERA_API_KEY" in w for w in result["warnings"])
