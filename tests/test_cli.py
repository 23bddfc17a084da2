"""Tests for the hera-api command line."""

from __future__ import annotations

import json
from unittest.mock import patch

from typer.testing import CliRunner

from hera_api.cli import app

runner = CliRunner()


class TestSmartCodeCommand:
    def test_valid_code(self) -> None:
        result = runner.invoke(app, ["smart-code", "HERA.SALON.POS.SALE.TXN.RETAIL.v2"])

        assert result.exit_code == 0
        assert result.output.strip() == (
            "OK HERA.SALON.POS.SALE.TXN.RETAIL.v2: domain=SALON segments=SALON.POS.SALE.TXN.RETAIL version=2"
        )

    def test_invalid_code_exits_1(self) -> None:
        result = runner.invoke(app, ["smart-code", "HERA.SALON.SALE.TXN.RETAIL.v1", "HERA.BAD"])

        assert result.exit_code == 1
        lines = result.output.strip().splitlines()
        assert lines[0].startswith("OK ")
        assert lines[1].startswith("INVALID HERA.BAD: [SMARTCODE-FORMAT]")

    def test_uppercase_version_reported(self) -> None:
        result = runner.invoke(app, ["smart-code", "HERA.SALON.SALE.TXN.RETAIL.V1"])

        assert result.exit_code == 1
        assert "[SMARTCODE-VERSION-CASE]" in result.output

    def test_requires_an_argument(self) -> None:
        assert runner.invoke(app, ["smart-code"]).exit_code != 0


class TestPresetsCommand:
    def test_list(self) -> None:
        result = runner.invoke(app, ["presets"])

        assert result.exit_code == 0
        first_words = [line.split()[0] for line in result.output.strip().splitlines()]
        assert "PRODUCT" in first_words
        assert "SERVICE" in first_words

    def test_check_passes_for_builtin_presets(self) -> None:
        assert runner.invoke(app, ["presets", "--check"]).exit_code == 0

    def test_check_fails_on_malformed_code(self) -> None:
        with patch("hera_api.cli.invalid_smart_codes", return_value=["HERA.BROKEN"]):
            result = runner.invoke(app, ["presets", "--check"])

        assert result.exit_code == 1
        assert "malformed smart code: HERA.BROKEN" in result.output

    def test_dump_one(self) -> None:
        result = runner.invoke(app, ["presets", "staff"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["entity_type"] == "EMPLOYEE"
        assert any(f["name"] == "email" for f in data["dynamic_fields"])

    def test_unknown_preset(self) -> None:
        result = runner.invoke(app, ["presets", "spaceship"])

        assert result.exit_code == 1
        assert "No preset for entity type 'spaceship'" in result.output


class TestConfigCommand:
    def test_redacts_by_default(self) -> None:
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["HERA_API_KEY"].startswith("***SET***")
        assert data["ENVIRONMENT"] == "dev"

    def test_show_secrets(self) -> None:
        result = runner.invoke(app, ["config", "--show-secrets"])

        assert json.loads(result.output)["HERA_API_KEY"] == "test-hera-api-key-12345"


def test_serve_uses_settings() -> None:
    with patch("uvicorn.run") as run:
        result = runner.invoke(app, ["serve", "--port", "9000"])

    assert result.exit_code == 0
    assert run.call_args.args == ("hera_api.main:app",)
    assert run.call_args.kwargs["port"] == 9000
    assert run.call_args.kwargs["reload"] is False
    assert run.call_args.kwargs["log_level"] == "warning"
