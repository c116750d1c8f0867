"""Configuration loading, validation, and defaults."""

from atlas.config.loader import load_config
from atlas.config.schema import AtlasConfig, CsvMappingConfig, RiskThresholdConfig

__all__ = ["load_config", "AtlasConfig", "CsvMappingConfig", "RiskThresholdConfig"]
