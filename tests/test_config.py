"""
Tests for configuration loading, environment overrides and validation.
"""

import json
import os
from unittest.mock import patch

import pytest

from config.config import (
    Config,
    DatabaseConfig,
    FeatureFlags,
    GridDefaultsConfig,
    PersistenceSettings,
    StudyParticipationConfig,
)
from config.environments import EnvironmentManager
from src.logic.grid_configuration import MAX_ABS_RANGE, MAX_INSTRUCTIONS_LENGTH, default_grid_configuration


class TestConfigSections:
    """Dataclass sections and their environment variables."""

    def test_database_dsn_from_env(self):
        with patch.dict(os.environ, {"DATABASE_URL": "sqlite:///qstudy.db"}, clear=False):
            assert DatabaseConfig().dsn == "sqlite:///qstudy.db"

    def test_grid_defaults_from_env(self):
        env = {
            "GRID_DEFAULT_RANGE_MIN": "-4",
            "GRID_DEFAULT_RANGE_MAX": "4",
            "GRID_DEFAULT_TOTAL_CELLS": "25",
            "GRID_DEFAULT_DISTRIBUTION": "FLAT",
        }
        with patch.dict(os.environ, env):
            defaults = GridDefaultsConfig()
        grid = default_grid_configuration(defaults)
        assert grid.column_count == 9
        assert grid.total_cells == 25
        assert set(grid.cell_counts) == {2, 3}

    def test_participation_flags_from_env(self):
        with patch.dict(os.environ, {"PRE_SCREENING_REQUIRED": "true", "ALLOW_POST_SURVEY_SKIP": "false"}):
            participation = StudyParticipationConfig()
        assert participation.pre_screening_required is True
        assert participation.allow_post_survey_skip is False

    def test_feature_flags_from_env(self):
        with patch.dict(os.environ, {"FEATURE_ENABLE_SUBMISSION_RETRY": "false"}):
            assert FeatureFlags().enable_submission_retry is False

    def test_persistence_backend_from_env(self):
        with patch.dict(os.environ, {"PERSISTENCE_BACKEND": "sql"}):
            assert PersistenceSettings().backend == "sql"

    def test_persistence_backend_rejects_unknown(self):
        with patch.dict(os.environ, {"PERSISTENCE_BACKEND": "redis"}):
            with pytest.raises(ValueError):
                PersistenceSettings()


class TestConfigValidation:
    """Config.validate rejects inconsistent settings."""

    def test_default_config_valid(self, test_config):
        test_config.validate()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"range_min": 3, "range_max": -3},
            {"range_min": -7},
            {"total_cells": 3},
            {"distribution": "pyramid"},
            {"instructions": "x" * 501},
        ],
    )
    def test_bad_grid_defaults(self, test_config, overrides):
        for key, value in overrides.items():
            setattr(test_config.grid_defaults, key, value)
        with pytest.raises(ValueError, match="Grid defaults"):
            test_config.validate()

    def test_grid_defaults_share_grid_limits(self):
        """Defaults are checked against the same limits as saved grids."""
        assert not hasattr(GridDefaultsConfig(), "max_abs_range")
        at_limit = GridDefaultsConfig(range_min=-MAX_ABS_RANGE, range_max=MAX_ABS_RANGE, total_cells=40)
        assert at_limit.validate() == []
        at_limit.instructions = "x" * (MAX_INSTRUCTIONS_LENGTH + 1)
        assert at_limit.validate() == [f"instructions must be at most {MAX_INSTRUCTIONS_LENGTH} characters"]
        beyond = GridDefaultsConfig(range_min=-MAX_ABS_RANGE - 1, range_max=MAX_ABS_RANGE, total_cells=40)
        assert beyond.validate() == [f"grid range must stay within -{MAX_ABS_RANGE}..{MAX_ABS_RANGE}"]

    def test_negative_step_minutes(self, test_config):
        test_config.study_participation.step_minutes["q-sort"] = -1
        with pytest.raises(ValueError, match="Study participation"):
            test_config.validate()

    def test_production_requires_sql_backend(self, test_config):
        test_config.environment = "production"
        test_config.persistence.backend = "memory"
        with pytest.raises(ValueError):
            test_config.validate()

    def test_feature_flag_lookup(self, test_config):
        assert test_config.get_feature_flag("enable_study_builder") is True
        assert test_config.get_feature_flag("no_such_flag") is False


class TestEnvironmentOverrides:
    """Per-environment JSON/YAML overrides."""

    def test_yaml_and_json_overrides(self, tmp_path):
        env_dir = tmp_path / "environments"
        env_dir.mkdir()
        (env_dir / "staging.json").write_text(json.dumps({"log_level": "WARNING", "database": {"pool_size": 3}}))
        (env_dir / "testing.yaml").write_text("grid_defaults:\n  total_cells: 20\nfeature_flags:\n  log_step_payloads: true\n")

        manager = EnvironmentManager(tmp_path)
        assert sorted(manager.list_environments()) == ["staging", "testing"]

        config = manager.apply_environment(Config(), "testing")
        assert config.grid_defaults.total_cells == 20
        assert config.feature_flags.log_step_payloads is True

        config = manager.apply_environment(Config(), "staging")
        assert config.log_level == "WARNING"
        assert config.database.pool_size == 3

    def test_unknown_environment_is_noop(self, tmp_path):
        config = Config()
        assert EnvironmentManager(tmp_path).apply_environment(config, "nowhere") is config

    def test_broken_file_skipped(self, tmp_path):
        env_dir = tmp_path / "environments"
        env_dir.mkdir()
        (env_dir / "broken.json").write_text("{not json")
        assert EnvironmentManager(tmp_path).list_environments() == []

    def test_shipped_environments_load(self):
        manager = EnvironmentManager()
        assert {"development", "testing", "production"} <= set(manager.list_environments())
        config = manager.apply_environment(Config(), "production")
        assert config.persistence.backend == "sql"
