"""Tests for configuration validation"""
import pytest

from prayer_engine import config


class TestConfigValidation:
    """Test validate_config against module-level settings"""

    def test_defaults_are_valid(self):
        """Test that the shipped defaults pass validation"""
        config.validate_config()

    def test_missing_database_url(self, monkeypatch):
        monkeypatch.setattr(config, "DATABASE_URL", "")
        with pytest.raises(ValueError, match="DATABASE_URL"):
            config.validate_config()

    @pytest.mark.parametrize("hour", [-1, 24])
    def test_day_start_hour_out_of_range(self, monkeypatch, hour):
        monkeypatch.setattr(config, "DAY_START_HOUR", hour)
        with pytest.raises(ValueError, match="DAY_START_HOUR"):
            config.validate_config()

    def test_level_table_too_small(self, monkeypatch):
        monkeypatch.setattr(config, "LEVEL_TABLE_SIZE", 1)
        with pytest.raises(ValueError, match="LEVEL_TABLE_SIZE"):
            config.validate_config()

    def test_pool_sizes_inconsistent(self, monkeypatch):
        monkeypatch.setattr(config, "DB_POOL_MIN_SIZE", 5)
        monkeypatch.setattr(config, "DB_POOL_MAX_SIZE", 2)
        with pytest.raises(ValueError, match="DB_POOL"):
            config.validate_config()

    def test_negative_retries(self, monkeypatch):
        monkeypatch.setattr(config, "STORE_MAX_RETRIES", -1)
        with pytest.raises(ValueError, match="STORE_MAX_RETRIES"):
            config.validate_config()

    def test_unknown_timezone(self, monkeypatch):
        monkeypatch.setattr(config, "DEFAULT_TIMEZONE", "Mars/Olympus_Mons")
        with pytest.raises(ValueError, match="DEFAULT_TIMEZONE"):
            config.validate_config()
