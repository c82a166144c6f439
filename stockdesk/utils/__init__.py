"""Configuration and logging helpers"""

from .config import Config, get_config
from .logger import setup_logging

__all__ = ["Config", "get_config", "setup_logging"]
