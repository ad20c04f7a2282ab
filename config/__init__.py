"""
Configuration package for QSTUDY.
Provides centralized configuration management with environment overrides and feature flags.
"""

from .config import (
    Config,
    DatabaseConfig,
    FeatureFlags,
    GridDefaultsConfig,
    PersistenceSettings,
    StudyParticipationConfig,
    config,
)
from .environments import environment_manager

__all__ = [
    "config",
    "Config",
    "DatabaseConfig",
    "FeatureFlags",
    "GridDefaultsConfig",
    "PersistenceSettings",
    "StudyParticipationConfig",
    "environment_manager",
]
