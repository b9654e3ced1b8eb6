"""Tests for environment-driven configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from spendwise.config import (
    AppSettings,
    GeminiSettings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)


class TestGeminiSettings:
    def test_no_key_by_default(self):
        settings = GeminiSettings()
        assert settings.api_key is None
        assert settings.has_credentials is False
        assert settings.model_name == "gemini-2.5-flash"

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "  abc123  ")
        settings = GeminiSettings()
        assert settings.api_key == "abc123"
        assert settings.has_credentials is True

    def test_blank_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "")
        assert GeminiSettings().has_credentials is False

    def test_temperature_bounds(self):
        with pytest.raises(ValidationError):
            GeminiSettings(temperature=2.0)


class TestStorageSettings:
    def test_data_dir_from_environment(self, tmp_path):
        settings = StorageSettings()
        assert settings.data_dir == tmp_path / "data"
        assert settings.expenses_key == "student_expenses_data"
        assert settings.budgets_key == "student_budgets_data"
        assert settings.write_attempts == 3

    def test_default_data_dir_is_under_home(self, monkeypatch):
        monkeypatch.delenv("SPENDWISE_STORAGE_DATA_DIR")
        assert StorageSettings().data_dir == Path.home() / ".spendwise"

    def test_write_attempts_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("SPENDWISE_STORAGE_WRITE_ATTEMPTS", "0")
        with pytest.raises(ValidationError):
            StorageSettings()


class TestAppSettings:
    def test_defaults(self):
        settings = AppSettings()
        assert settings.currency == "INR"
        assert settings.insight_max_expenses == 50
        assert settings.budget_warning_percent == 85.0

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SPENDWISE_INSIGHT_MAX_EXPENSES", "20")
        monkeypatch.setenv("SPENDWISE_CURRENCY", "EUR")
        settings = get_settings().app
        assert settings.insight_max_expenses == 20
        assert settings.currency == "EUR"


class TestValidateAllSettings:
    def test_all_sections_valid(self):
        assert validate_all_settings() == {"gemini": True, "storage": True, "app": True}

    def test_reports_broken_section(self, monkeypatch):
        monkeypatch.setenv("SPENDWISE_INSIGHT_MAX_EXPENSES", "not-a-number")
        results = validate_all_settings()
        assert results["app"] is False
        assert "app_error" in results
        assert results["gemini"] is True
