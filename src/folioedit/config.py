"""
FolioEdit - Configuration Module

This module contains all configuration constants and paths used by the library.
"""

import logging
import os
from typing import Final

# ============================================================================
# Application Constants
# ============================================================================

APP_NAME: Final[str] = "FolioEdit"
APP_ID: Final[str] = "org.folioedit.FolioEdit"
APP_VERSION: Final[str] = "1.0.0"

# ============================================================================
# Configuration Directory
# ============================================================================

CONFIG_DIR: Final[str] = os.path.expanduser("~/.config/folioedit")
CONFIG_FILE_PATH: Final[str] = os.path.join(CONFIG_DIR, "settings.json")

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: int = logging.INFO
LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOGGER_NAME: Final[str] = "FolioEdit"

# ============================================================================
# Built-in stamp artwork (RGB)
# ============================================================================

STAMP_COLORS: Final[dict[str, tuple[int, int, int]]] = {
    "approved": (40, 160, 60),
    "rejected": (200, 40, 40),
    "draft": (200, 150, 0),
    "confidential": (40, 70, 200),
}
