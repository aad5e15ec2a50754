"""Configuration management for FLOWGATE."""

from flowgate.config.manager import ConfigManager
from flowgate.config.settings import CONFIG_FILE, Settings

__all__ = ["ConfigManager", "Settings", "CONFIG_FILE"]
