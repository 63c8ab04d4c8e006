"""Pytest configuration for folioedit tests.

Every test runs against a throwaway configuration file so nothing is
written to the user's ~/.config. Rendering tests use FakeEngine, an
in-process stand-in for the PDF engine that does not need pdftoppm.
"""

import io
import threading

import pikepdf
import pytest
from PIL import Image

from folioedit.editor.page_model import Document, PageContent, PageRef
from folioedit.services import image_engine
from folioedit.utils import config_manager
from folioedit.utils.config_manager import ConfigManager
from folioedit.utils.exceptions import RenderError


def make_pdf_bytes(num_pages: int = 3, width: float = 612, height: float = 792) -> bytes:
    """Create a simple PDF with the given number of pages."""
    pdf = pikepdf.Pdf.new()
    for i in range(num_pages):
        page = pikepdf.Page(
            pikepdf.Dictionary(
                Type=pikepdf.Name.Page,
                MediaBox=[0, 0, width, height],
                Contents=pdf.make_stream(f"BT /F1 12 Tf 100 700 Td (Page {i + 1}) Tj ET".encode()),
            )
        )
        pdf.pages.append(page)
    buf = io.BytesIO()
    pdf.save(buf)
    return buf.getvalue()


class FakeEngine:
    """Rasterizes every page as a white image of the right size.

    Set ``gate`` to a threading.Event to hold renders until it is set, and
    ``fail`` to make rasterize raise RenderError.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[int, float]] = []
        self.gate: threading.Event | None = None
        self.fail = False
        self._lock = threading.Lock()

    def rasterize(self, content, scale, rotation=0):
        with self._lock:
            self.calls.append((content.content_key, scale))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise RenderError("engine exploded")
        size = (max(1, round(content.width * scale)), max(1, round(content.height * scale)))
        return Image.new("RGBA", size, (255, 255, 255, 255))


class FakeAssets:
    """Every stamp, built-in or custom, is a solid red square."""

    def __init__(self) -> None:
        self.data = image_engine.encode_png(Image.new("RGBA", (10, 10), (255, 0, 0, 255)))
        self.generation = 0

    def get(self, kind) -> bytes:
        return self.data

    def artwork(self, content) -> bytes:
        return self.data


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the global configuration manager at a temporary file."""
    manager = ConfigManager(config_path=str(tmp_path / "config" / "settings.json"))
    monkeypatch.setattr(config_manager, "_config_manager", manager)
    return manager


@pytest.fixture
def pdf_bytes():
    return make_pdf_bytes(5)


@pytest.fixture
def make_document():
    """Factory for documents of blank US Letter pages with distinct content."""

    def _make(num_pages: int = 3, name: str = "test.pdf") -> Document:
        pages = [
            PageRef(content=PageContent(data=f"%PDF page {i}".encode(), width=612.0, height=792.0))
            for i in range(num_pages)
        ]
        return Document(pages, name=name)

    return _make


@pytest.fixture
def fake_engine():
    engine = FakeEngine()
    yield engine
    if engine.gate is not None:
        engine.gate.set()


@pytest.fixture
def fake_assets():
    return FakeAssets()
