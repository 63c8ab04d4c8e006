"""
FolioEdit - Overlay Compositor

Places stamps and text boxes on pages. Overlays live on their PageRef and
are only burned into page content at export time.

Positions are page space: PDF points, origin at the top-left corner of the
page before editor rotation, y growing downwards. Use page_to_display() and
display_to_page() to translate from on-screen coordinates.
"""

import hashlib
from collections.abc import Sequence
from dataclasses import replace

from folioedit.constants import (
    CUSTOM_STAMP_MAX_SIZE,
    MAX_TEXT_FONT_SIZE,
    MIN_OVERLAY_SIZE,
    MIN_TEXT_FONT_SIZE,
    TEXT_CHAR_WIDTH_EM,
    TEXT_LINE_HEIGHT_EM,
)
from folioedit.editor.page_model import (
    CustomStampContent,
    Document,
    OverlayContent,
    OverlayItem,
    PageRef,
    Rect,
    StampContent,
    TextContent,
    normalize_rotation,
)
from folioedit.utils.config_manager import get_config_manager
from folioedit.utils.exceptions import OverlayNotFoundError
from folioedit.utils.logger import logger


def text_content(value: str, font_size: float | None = None) -> TextContent:
    """Text content with the font size clamped to the supported range."""
    if font_size is None:
        font_size = get_config_manager().get("overlay.text_font_size", 12.0)
    font_size = min(MAX_TEXT_FONT_SIZE, max(MIN_TEXT_FONT_SIZE, float(font_size)))
    return TextContent(value, font_size)


def default_size(content: OverlayContent, assets=None) -> tuple[float, float]:
    """Size a new overlay gets when the caller gives no rectangle.

    Stamps use the configured stamp size. Custom stamps keep the aspect
    ratio of their image with the longest side at CUSTOM_STAMP_MAX_SIZE.
    Text boxes are estimated from the longest line and the number of lines.

    Raises:
        StampNotFoundError: If a custom stamp is not registered
    """
    if isinstance(content, StampContent):
        config = get_config_manager()
        return (
            float(config.get("overlay.stamp_width", 100.0)),
            float(config.get("overlay.stamp_height", 50.0)),
        )

    if isinstance(content, CustomStampContent):
        if assets is None:
            from folioedit.services.stamp_assets import get_stamp_assets

            assets = get_stamp_assets()
        stamp = assets.get_custom(content.name)
        scale = CUSTOM_STAMP_MAX_SIZE / max(stamp.width, stamp.height, 1)
        return stamp.width * scale, stamp.height * scale

    lines = content.text.splitlines() or [""]
    longest = max(len(line) for line in lines)
    width = max(1, longest) * content.font_size * TEXT_CHAR_WIDTH_EM
    height = len(lines) * content.font_size * TEXT_LINE_HEIGHT_EM
    return width, height


def _clamped(rect: Rect) -> Rect:
    return rect.resized(max(MIN_OVERLAY_SIZE, rect.width), max(MIN_OVERLAY_SIZE, rect.height))


# ---------------------------------------------------------------------------
# Compositor operations
# ---------------------------------------------------------------------------


def add_overlay(
    doc: Document,
    page_id: int,
    content: OverlayContent,
    rect: Rect | None = None,
    assets=None,
) -> int:
    """Attach a new overlay to a page.

    Args:
        doc: Document owning the page
        page_id: Identity of the page
        content: Stamp or text to place
        rect: Position in page space. When omitted the overlay gets its
              default size and is centered on the page.
        assets: Stamp asset provider used to size custom stamps
                (default: shared provider)

    Returns:
        The new overlay id. Ids grow with creation order.

    Raises:
        PageNotFoundError: If the page is not in the document
        StampNotFoundError: If *rect* is omitted for an unregistered custom stamp
    """
    size = default_size(content, assets) if rect is None else None
    new_id = 0

    def _add(page: PageRef) -> bool:
        nonlocal new_id
        placed = rect
        if placed is None:
            width, height = size
            placed = Rect(
                (page.content.width - width) / 2,
                (page.content.height - height) / 2,
                width,
                height,
            )
        new_id = page.next_overlay_id
        page.next_overlay_id += 1
        page.overlays = page.overlays + (OverlayItem(new_id, content, _clamped(placed)),)
        return True

    doc.edit_page(page_id, _add)
    logger.info(f"Added overlay {new_id} to page {page_id} of {doc.name}")
    return new_id


def remove_overlay(doc: Document, page_id: int, overlay_id: int) -> bool:
    """Detach an overlay from a page.

    Returns:
        True if the overlay existed and was removed
    """

    def _remove(page: PageRef) -> bool:
        kept = tuple(item for item in page.overlays if item.overlay_id != overlay_id)
        if len(kept) == len(page.overlays):
            return False
        page.overlays = kept
        return True

    removed = doc.edit_page(page_id, _remove)
    if removed:
        logger.info(f"Removed overlay {overlay_id} from page {page_id} of {doc.name}")
    return removed


def _update_rect(doc: Document, page_id: int, overlay_id: int, new_rect) -> None:
    def _update(page: PageRef) -> bool:
        item = page.find_overlay(overlay_id)
        if item is None:
            raise OverlayNotFoundError(overlay_id, page_id)
        rect = _clamped(new_rect(item.rect))
        if rect == item.rect:
            return False
        page.overlays = tuple(
            replace(o, rect=rect) if o.overlay_id == overlay_id else o for o in page.overlays
        )
        return True

    doc.edit_page(page_id, _update)


def move_overlay(doc: Document, page_id: int, overlay_id: int, x: float, y: float) -> None:
    """Move an overlay so that its top-left corner is at (x, y) in page space.

    Raises:
        OverlayNotFoundError: If the overlay is not on the page
    """
    _update_rect(doc, page_id, overlay_id, lambda r: r.moved_to(x, y))
    logger.debug(f"Moved overlay {overlay_id} on page {page_id} to ({x:.1f}, {y:.1f})")


def resize_overlay(
    doc: Document, page_id: int, overlay_id: int, width: float, height: float
) -> None:
    """Change the size of an overlay, keeping its top-left corner.

    Raises:
        OverlayNotFoundError: If the overlay is not on the page
    """
    _update_rect(doc, page_id, overlay_id, lambda r: r.resized(width, height))
    logger.debug(f"Resized overlay {overlay_id} on page {page_id} to {width:.1f}x{height:.1f}")


def list_overlays(doc: Document, page_id: int) -> list[OverlayItem]:
    """Overlays of a page, in creation order."""
    page = doc.find_page(page_id)
    return sorted(page.overlays, key=lambda item: item.overlay_id)


def overlay_fingerprint(overlays: Sequence[OverlayItem]) -> str:
    """Stable digest of an overlay list, used in render cache keys."""
    digest = hashlib.sha256()
    for item in sorted(overlays, key=lambda o: o.overlay_id):
        if isinstance(item.content, StampContent):
            desc = f"stamp:{item.content.kind.value}"
        elif isinstance(item.content, CustomStampContent):
            desc = f"custom:{item.content.name}"
        else:
            desc = f"text:{item.content.font_size!r}:{item.content.text}"
        r = item.rect
        line = f"{item.overlay_id}|{desc}|{r.x!r},{r.y!r},{r.width!r},{r.height!r}\n"
        digest.update(line.encode())
    return digest.hexdigest()[:16]


# ---------------------------------------------------------------------------
# Coordinate translation
# ---------------------------------------------------------------------------


def page_to_display(
    rect: Rect,
    page_size: tuple[float, float],
    rotation: int,
    zoom: float = 1.0,
) -> Rect:
    """Project a page-space rectangle onto the rotated, zoomed display.

    Args:
        rect: Rectangle in page space
        page_size: Unrotated page (width, height) in points
        rotation: Editor rotation, clockwise degrees
        zoom: Display pixels per point

    Returns:
        Rectangle in display coordinates (top-left origin)
    """
    page_w, page_h = page_size
    x, y, w, h = rect.x, rect.y, rect.width, rect.height
    rotation = normalize_rotation(rotation)

    if rotation == 90:
        x, y, w, h = page_h - y - h, x, h, w
    elif rotation == 180:
        x, y = page_w - x - w, page_h - y - h
    elif rotation == 270:
        x, y, w, h = y, page_w - x - w, h, w

    return Rect(x * zoom, y * zoom, w * zoom, h * zoom)


def display_to_page(
    rect: Rect,
    page_size: tuple[float, float],
    rotation: int,
    zoom: float = 1.0,
) -> Rect:
    """Inverse of page_to_display()."""
    if zoom <= 0:
        raise ValueError("zoom must be > 0")

    page_w, page_h = page_size
    x, y = rect.x / zoom, rect.y / zoom
    w, h = rect.width / zoom, rect.height / zoom
    rotation = normalize_rotation(rotation)

    if rotation == 90:
        x, y, w, h = y, page_h - x - w, h, w
    elif rotation == 180:
        x, y = page_w - x - w, page_h - y - h
    elif rotation == 270:
        x, y, w, h = page_w - y - h, x, h, w

    return Rect(x, y, w, h)
