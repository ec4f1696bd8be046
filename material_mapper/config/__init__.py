"""Configuration module - exports Settings and load_config."""

from material_mapper.config.loader import load_config
from material_mapper.config.settings import Settings

__all__ = ["Settings", "load_config"]
