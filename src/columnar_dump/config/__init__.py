"""Configuration management: dump options and TOML loading.

Usage:
    >>> from columnar_dump.config import load_dump_config, DumpConfig
"""

from columnar_dump.config.loader import load_dump_config
from columnar_dump.config.models import DumpConfig

__all__ = ["load_dump_config", "DumpConfig"]
