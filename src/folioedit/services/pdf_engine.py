"""
FolioEdit - PDF Engine

Page-level PDF primitives behind the document model:

  - open a document from bytes and report page count / geometry
  - snapshot single pages into self-contained PageContent objects
  - rasterize a page via pdftoppm (poppler-utils)
  - flatten overlay items onto a page (drawn with ReportLab)
  - apply editor rotation and serialize an ordered page list

Uses pikepdf for all PDF object manipulation.
"""

import io
import logging
import os
import subprocess
import tempfile
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

import pikepdf
from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas

from folioedit.constants import (
    DEFAULT_PAGE_HEIGHT,
    DEFAULT_PAGE_WIDTH,
    POINTS_PER_INCH,
    TEXT_LINE_HEIGHT_EM,
)
from folioedit.editor.page_model import (
    OverlayItem,
    PageContent,
    TextContent,
    normalize_rotation,
)
from folioedit.services import image_engine
from folioedit.utils.config_manager import get_config_manager
from folioedit.utils.exceptions import LoadError, LoadErrorKind, RenderError
from folioedit.utils.i18n import _

if TYPE_CHECKING:
    from folioedit.services.stamp_assets import StampAssetProvider

logger = logging.getLogger(__name__)


def _classify_load_error(e: Exception) -> LoadError:
    """Map an exception raised while opening a PDF to a LoadError."""
    if isinstance(e, pikepdf.PasswordError):
        return LoadError(
            LoadErrorKind.UNSUPPORTED,
            _("This PDF is password-protected. Remove the password first."),
        )
    if isinstance(e, pikepdf.PdfError):
        return LoadError(
            LoadErrorKind.CORRUPT,
            _("The PDF file appears to be damaged or invalid: {error}").format(error=e),
        )
    return LoadError(LoadErrorKind.IO, str(e))


def _resolve_source_rotation(page: pikepdf.Page) -> int:
    """Resolve the effective /Rotate of a page, including inherited values."""
    node = page.obj
    while node is not None:
        if "/Rotate" in node:
            return normalize_rotation(int(node["/Rotate"]))
        node = node.get("/Parent")
    return 0


def _mediabox(page: pikepdf.Page) -> tuple[float, float, float, float]:
    """Return (x0, y0, x1, y1) of the page, falling back to US Letter."""
    try:
        x0, y0, x1, y1 = (float(v) for v in page.mediabox)
    except (KeyError, TypeError, ValueError, pikepdf.PdfError):
        return 0.0, 0.0, DEFAULT_PAGE_WIDTH, DEFAULT_PAGE_HEIGHT
    return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)


def _placement_matrix(
    rotation: int, box: tuple[float, float, float, float]
) -> tuple[float, float, float, float, float, float]:
    """Matrix mapping displayed page space onto the page's user space.

    The displayed page is the page as a viewer shows it, with its /Rotate
    applied (origin bottom-left). Used to stamp an overlay layer drawn in
    displayed space onto a page that carries a /Rotate.
    """
    x0, y0, x1, y1 = box
    w, h = x1 - x0, y1 - y0
    if rotation == 90:
        return (0, 1, -1, 0, x0 + w, y0)
    if rotation == 180:
        return (-1, 0, 0, -1, x0 + w, y0 + h)
    if rotation == 270:
        return (0, -1, 1, 0, x0, y0 + h)
    return (1, 0, 0, 1, x0, y0)


def _save(pdf: pikepdf.Pdf) -> bytes:
    buf = io.BytesIO()
    pdf.save(buf)
    return buf.getvalue()


class PdfEngine:
    """Stateless facade over pikepdf, ReportLab and pdftoppm."""

    def __init__(
        self,
        pdftoppm_timeout: int | None = None,
        text_font: str | None = None,
        text_font_file: str | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            pdftoppm_timeout: Seconds before a rasterization is abandoned
                              (default: ``render.pdftoppm_timeout``)
            text_font: ReportLab font used for text overlays
                       (default: ``overlay.text_font``)
            text_font_file: TrueType file used instead of *text_font*
                            (default: ``overlay.text_font_file``)
        """
        config = get_config_manager()
        self.pdftoppm_timeout = pdftoppm_timeout or config.get("render.pdftoppm_timeout", 30)
        self.text_font = text_font or config.get("overlay.text_font", "Helvetica")
        if text_font_file is None:
            text_font_file = config.get("overlay.text_font_file", "")
        self.text_font_file = text_font_file
        self._text_font_name: str | None = None

    # -- documents --------------------------------------------------------

    def open(self, data: bytes) -> pikepdf.Pdf:
        """Open a PDF from bytes.

        Raises:
            LoadError: CORRUPT, UNSUPPORTED (encrypted) or IO
        """
        if not data:
            raise LoadError(LoadErrorKind.CORRUPT, _("The file is empty."))
        try:
            return pikepdf.open(io.BytesIO(data))
        except (pikepdf.PdfError, OSError) as e:
            logger.error(f"Failed to open PDF: {e}")
            raise _classify_load_error(e) from e

    def close(self, handle: pikepdf.Pdf) -> None:
        handle.close()

    def page_count(self, handle: pikepdf.Pdf) -> int:
        return len(handle.pages)

    def page_size(self, handle: pikepdf.Pdf, index: int) -> tuple[float, float]:
        """Displayed size (points) of page *index*, with its /Rotate applied."""
        page = handle.pages[index]
        x0, y0, x1, y1 = _mediabox(page)
        width, height = x1 - x0, y1 - y0
        if _resolve_source_rotation(page) in (90, 270):
            return height, width
        return width, height

    def extract_pages(self, handle: pikepdf.Pdf, indices: Iterable[int]) -> tuple[PageContent, ...]:
        """Snapshot pages into self-contained single-page PDFs.

        Inherited /MediaBox and /Rotate are pinned on the copied page so the
        snapshot looks the same outside its original page tree.

        Raises:
            LoadError: CORRUPT if a page cannot be copied
        """
        contents: list[PageContent] = []
        for index in indices:
            try:
                src_page = handle.pages[index]
                rotation = _resolve_source_rotation(src_page)
                box = _mediabox(src_page)

                single = pikepdf.Pdf.new()
                try:
                    single.pages.append(src_page)
                    page = single.pages[0]
                    page.obj[pikepdf.Name.MediaBox] = pikepdf.Array(list(box))
                    if rotation:
                        page.obj[pikepdf.Name.Rotate] = rotation
                    elif "/Rotate" in page.obj:
                        del page.obj[pikepdf.Name.Rotate]
                    data = _save(single)
                finally:
                    single.close()
            except pikepdf.PdfError as e:
                logger.error(f"Failed to extract page {index}: {e}")
                raise _classify_load_error(e) from e

            width, height = box[2] - box[0], box[3] - box[1]
            if rotation in (90, 270):
                width, height = height, width
            contents.append(
                PageContent(data=data, width=width, height=height, source_rotation=rotation)
            )
        return tuple(contents)

    # -- rendering --------------------------------------------------------

    def rasterize(self, content: PageContent, scale: float, rotation: int = 0) -> Image.Image:
        """Render a page to an RGBA image at *scale* pixels per point.

        Args:
            content: Page to render
            scale: Pixels per PDF point (1.0 = 72 dpi)
            rotation: Extra clockwise rotation applied to the raster

        Raises:
            RenderError: If pdftoppm is missing, fails or times out
        """
        if scale <= 0:
            raise ValueError("scale must be > 0")

        dpi = POINTS_PER_INCH * scale
        with tempfile.TemporaryDirectory() as tmpdir:
            pdf_path = os.path.join(tmpdir, "page.pdf")
            with open(pdf_path, "wb") as f:
                f.write(content.data)
            try:
                result = subprocess.run(
                    [
                        "pdftoppm",
                        "-png",
                        "-r",
                        f"{dpi:.4f}",
                        "-f",
                        "1",
                        "-l",
                        "1",
                        "-singlefile",
                        pdf_path,
                    ],
                    capture_output=True,
                    timeout=self.pdftoppm_timeout,
                )
            except (OSError, subprocess.SubprocessError) as e:
                raise RenderError(f"pdftoppm could not run: {e}") from e

        if result.returncode != 0 or not result.stdout:
            stderr = result.stderr.decode(errors="replace").strip()
            raise RenderError(f"pdftoppm failed ({result.returncode}): {stderr}")

        try:
            image = image_engine.decode(result.stdout)
        except ValueError as e:
            raise RenderError(str(e)) from e
        return image_engine.rotate(image, rotation)

    # -- export -----------------------------------------------------------

    def composite(
        self,
        content: PageContent,
        overlays: Sequence[OverlayItem],
        assets: "StampAssetProvider",
    ) -> PageContent:
        """Flatten *overlays* onto the page, in creation order.

        Overlay rectangles are in the page's displayed space (top-left
        origin); the drawn layer is mapped through the page's /Rotate so it
        lands where the editor showed it.
        """
        if not overlays:
            return content

        layer_bytes = self._draw_overlay_layer(content.width, content.height, overlays, assets)

        with (
            pikepdf.open(io.BytesIO(content.data)) as pdf,
            pikepdf.open(io.BytesIO(layer_bytes)) as layer,
        ):
            page = pdf.pages[0]
            form = pdf.copy_foreign(layer.pages[0].as_form_xobject())
            name = page.add_resource(form, pikepdf.Name.XObject, prefix="FxOv")

            a, b, c, d, e, f = _placement_matrix(content.source_rotation, _mediabox(page))
            page.contents_add(pdf.make_stream(b"q\n"), prepend=True)
            page.contents_add(
                pdf.make_stream(f"\nQ\nq {a} {b} {c} {d} {e:.4f} {f:.4f} cm {name} Do Q\n".encode())
            )
            data = _save(pdf)

        logger.debug(f"Flattened {len(overlays)} overlay(s) onto content {content.content_key}")
        return PageContent(
            data=data,
            width=content.width,
            height=content.height,
            source_rotation=content.source_rotation,
        )

    def _resolve_text_font(self) -> str:
        """ReportLab font name for text overlays, registering the font file once."""
        if self._text_font_name is not None:
            return self._text_font_name

        name = self.text_font
        if self.text_font_file:
            stem = os.path.splitext(os.path.basename(self.text_font_file))[0]
            candidate = f"FolioEdit-{stem}"
            try:
                if candidate not in pdfmetrics.getRegisteredFontNames():
                    pdfmetrics.registerFont(TTFont(candidate, self.text_font_file))
                name = candidate
            except (OSError, TTFError) as e:
                logger.warning(f"Cannot load font {self.text_font_file}, using {name}: {e}")
        self._text_font_name = name
        return name

    def _draw_overlay_layer(
        self,
        width: float,
        height: float,
        overlays: Sequence[OverlayItem],
        assets: "StampAssetProvider",
    ) -> bytes:
        """Draw overlays on a transparent page of the displayed size.

        Text uses the preview layout: first baseline one font size below the
        top of the box, TEXT_LINE_HEIGHT_EM between lines, clipped to the box.
        """
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=(width, height))

        for item in sorted(overlays, key=lambda o: o.overlay_id):
            rect = item.rect
            bottom = height - rect.y - rect.height
            if isinstance(item.content, TextContent):
                size = item.content.font_size
                c.saveState()
                clip = c.beginPath()
                clip.rect(rect.x, bottom, rect.width, rect.height)
                c.clipPath(clip, stroke=0, fill=0)
                c.setFont(self._resolve_text_font(), size)
                baseline = height - rect.y - size
                for line in item.content.text.splitlines() or [""]:
                    c.drawString(rect.x, baseline, line)
                    baseline -= size * TEXT_LINE_HEIGHT_EM
                c.restoreState()
            else:
                artwork = ImageReader(io.BytesIO(assets.artwork(item.content)))
                c.drawImage(
                    artwork,
                    rect.x,
                    bottom,
                    width=rect.width,
                    height=rect.height,
                    mask="auto",
                )

        c.showPage()
        c.save()
        return buf.getvalue()

    def rotate(self, content: PageContent, degrees: int) -> PageContent:
        """Return the page with its /Rotate advanced by *degrees* clockwise."""
        degrees = normalize_rotation(degrees)
        if degrees == 0:
            return content

        final_rotation = (content.source_rotation + degrees) % 360
        with pikepdf.open(io.BytesIO(content.data)) as pdf:
            page = pdf.pages[0]
            if final_rotation:
                page.obj[pikepdf.Name.Rotate] = final_rotation
            elif "/Rotate" in page.obj:
                del page.obj[pikepdf.Name.Rotate]
            data = _save(pdf)

        width, height = content.width, content.height
        if degrees in (90, 270):
            width, height = height, width
        return PageContent(data=data, width=width, height=height, source_rotation=final_rotation)

    def serialize(self, contents: Sequence[PageContent]) -> bytes:
        """Concatenate pages into one output PDF."""
        out = pikepdf.Pdf.new()
        opened: list[pikepdf.Pdf] = []
        try:
            for content in contents:
                src = pikepdf.open(io.BytesIO(content.data))
                opened.append(src)
                out.pages.append(src.pages[0])
            return _save(out)
        finally:
            for src in opened:
                src.close()
            out.close()


# Global instance
_engine: PdfEngine | None = None


def get_pdf_engine() -> PdfEngine:
    global _engine
    if _engine is None:
        _engine = PdfEngine()
    return _engine
