"""
FolioEdit - Numeric Constants

Simple numeric constants with ZERO internal imports to avoid circular dependencies.
For application-level constants (strings, paths), use config.py.
"""

from typing import Final

# ============================================================================
# Page Geometry (PDF points, 1/72 inch)
# ============================================================================

POINTS_PER_INCH: Final[float] = 72.0
DEFAULT_PAGE_WIDTH: Final[float] = 612.0
DEFAULT_PAGE_HEIGHT: Final[float] = 792.0
VALID_ROTATIONS: Final[tuple[int, ...]] = (0, 90, 180, 270)

# ============================================================================
# Overlay Defaults
# ============================================================================

DEFAULT_STAMP_WIDTH: Final[float] = 100.0
DEFAULT_STAMP_HEIGHT: Final[float] = 50.0
DEFAULT_TEXT_FONT_SIZE: Final[float] = 12.0
MIN_OVERLAY_SIZE: Final[float] = 1.0
# Custom stamps keep their aspect ratio, longest side scaled to this
CUSTOM_STAMP_MAX_SIZE: Final[float] = 100.0
MIN_TEXT_FONT_SIZE: Final[float] = 8.0
MAX_TEXT_FONT_SIZE: Final[float] = 72.0
# Text boxes are estimated at 0.6 em per character and 1.2 em per line
TEXT_CHAR_WIDTH_EM: Final[float] = 0.6
TEXT_LINE_HEIGHT_EM: Final[float] = 1.2

# ============================================================================
# Render Cache
# ============================================================================

DEFAULT_CACHE_SIZE: Final[int] = 200
DEFAULT_RENDER_WORKERS: Final[int] = 4
DEFAULT_RENDER_SCALE: Final[float] = 0.25
SCALE_KEY_PRECISION: Final[int] = 4

# ============================================================================
# Subprocess Timeouts (seconds)
# ============================================================================

PDFTOPPM_TIMEOUT_SECS: Final[int] = 30
