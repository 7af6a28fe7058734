"""Unit tests for exposure-chain configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from exposure_chain.config import (
    PUSH_MULTICAST_LIMIT,
    STORE_WRITE_LIMIT,
    Settings,
    StiIncubationTable,
)


class TestStiIncubationTable:
    """Tests for StiIncubationTable."""

    def test_defaults(self):
        table = StiIncubationTable()
        assert table.hiv == 30
        assert table.syphilis == 90
        assert table.hpv == 180

    def test_days_for_is_case_insensitive(self):
        table = StiIncubationTable()
        assert table.days_for("CHLAMYDIA") == 21
        assert table.days_for(" gonorrhea ") == 14

    def test_days_for_unknown(self):
        assert StiIncubationTable().days_for("MYSTERY") is None

    def test_longest(self):
        assert StiIncubationTable().longest() == 180
        assert StiIncubationTable(hpv=20, syphilis=25).longest() == 30

    def test_periods_must_be_positive(self):
        with pytest.raises(ValidationError):
            StiIncubationTable(hiv=0)

    def test_unknown_entries_rejected(self):
        with pytest.raises(ValidationError):
            StiIncubationTable(flu=3)


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings(self):
        """Default settings should be reasonable."""
        settings = Settings(_env_file=None)
        assert settings.qdrant_url == "http://localhost:6333"
        assert settings.collection_prefix == "exposure"
        assert settings.retention_days == 180
        assert settings.max_chain_depth == 10
        assert settings.batching_enabled is True
        assert settings.log_format in ("json", "text")

    def test_effective_sizes_are_clamped(self):
        settings = Settings(
            notification_batch_size=2000,
            push_multicast_size=900,
            _env_file=None,
        )
        assert settings.effective_batch_size == STORE_WRITE_LIMIT
        assert settings.effective_multicast_size == PUSH_MULTICAST_LIMIT

    def test_effective_sizes_below_limit(self):
        settings = Settings(notification_batch_size=50, push_multicast_size=10, _env_file=None)
        assert settings.effective_batch_size == 50
        assert settings.effective_multicast_size == 10

    def test_chain_depth_bounds(self):
        with pytest.raises(ValidationError):
            Settings(max_chain_depth=0, _env_file=None)
        with pytest.raises(ValidationError):
            Settings(max_chain_depth=51, _env_file=None)

    def test_in_query_limit_capped(self):
        with pytest.raises(ValidationError):
            Settings(identity_in_query_limit=31, _env_file=None)

    def test_retention_must_cover_incubation(self):
        """The longest incubation period has to fit inside retention."""
        with pytest.raises(ValueError, match="retention_days"):
            Settings(retention_days=90, _env_file=None)

    def test_shorter_retention_with_shorter_table(self):
        settings = Settings(
            retention_days=90,
            sti_incubation=StiIncubationTable(hpv=60),
            _env_file=None,
        )
        assert settings.retention_days == 90

    def test_production_requires_fcm(self):
        with pytest.raises(ValueError, match="EXPOSURE_FCM_PROJECT_ID"):
            Settings(env="production", fcm_project_id=None, _env_file=None)

    def test_production_with_fcm(self):
        settings = Settings(
            env="production",
            fcm_project_id="proj",
            fcm_access_token="token",
            _env_file=None,
        )
        assert settings.fcm_project_id == "proj"

    def test_env_prefix(self):
        """Settings should use EXPOSURE_ prefix for environment variables."""
        with patch.dict(os.environ, {"EXPOSURE_LOG_LEVEL": "DEBUG"}):
            settings = Settings(_env_file=None)
            assert settings.log_level == "DEBUG"

    def test_env_nested_incubation(self):
        with patch.dict(os.environ, {"EXPOSURE_STI_INCUBATION__SYPHILIS": "60"}):
            settings = Settings(_env_file=None)
            assert settings.sti_incubation.syphilis == 60
            assert settings.sti_incubation.hiv == 30
