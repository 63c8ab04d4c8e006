"""
FolioEdit - Utils Package

Utility modules for the library.
"""

from folioedit.utils.config_manager import ConfigManager, get_config_manager
from folioedit.utils.i18n import _
from folioedit.utils.logger import logger

__all__ = [
    "logger",
    "_",
    "ConfigManager",
    "get_config_manager",
]
