"""
FolioEdit - Stamp Assets

Resolves stamp overlays to image bytes. Built-in kinds are read from
``<asset_dir>/<name>.png`` when a directory is configured and the file
exists; otherwise a built-in stamp is drawn with Pillow.

Custom stamps are images registered at runtime under a name. Overlays only
store that name, so the artwork never enters the document model.
"""

import os
import threading
from dataclasses import dataclass, field

from PIL import Image, ImageDraw, ImageFont

from folioedit.config import STAMP_COLORS
from folioedit.editor.page_model import CustomStampContent, StampContent, StampKind
from folioedit.services.image_engine import decode, encode_png
from folioedit.utils.config_manager import get_config_manager
from folioedit.utils.exceptions import StampNotFoundError
from folioedit.utils.logger import logger

# Built-in artwork is drawn at 2:1, matching the default stamp size
_ARTWORK_SIZE = (400, 200)


def draw_builtin_stamp(kind: StampKind) -> Image.Image:
    """Draw the built-in artwork for *kind*: a rounded frame with its label."""
    width, height = _ARTWORK_SIZE
    r, g, b = STAMP_COLORS[kind.value]

    img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    border = 12
    draw.rounded_rectangle(
        (border // 2, border // 2, width - border // 2, height - border // 2),
        radius=24,
        fill=(r, g, b, 48),
        outline=(r, g, b, 255),
        width=border,
    )

    font = ImageFont.load_default(size=int(height * 0.36))
    left, top, right, bottom = draw.textbbox((0, 0), kind.label, font=font)
    text_x = (width - (right - left)) / 2 - left
    text_y = (height - (bottom - top)) / 2 - top
    draw.text((text_x, text_y), kind.label, fill=(r, g, b, 255), font=font)
    return img


@dataclass(frozen=True)
class CustomStamp:
    """A registered custom stamp: its name, image bytes and pixel size."""

    name: str
    data: bytes = field(repr=False)
    width: int
    height: int


class StampAssetProvider:
    """Supplies stamp artwork bytes.

    Built-in kinds are cached per kind. Custom stamps are registered at
    runtime under a name and kept until unregistered.
    """

    def __init__(self, asset_dir: str | None = None) -> None:
        """Initialize the provider.

        Args:
            asset_dir: Directory holding ``<name>.png`` files.
                       Defaults to the ``stamps.asset_dir`` setting.
        """
        if asset_dir is None:
            asset_dir = get_config_manager().get("stamps.asset_dir", "")
        self.asset_dir = asset_dir or ""
        self._cache: dict[StampKind, bytes] = {}
        self._custom: dict[str, CustomStamp] = {}
        self._lock = threading.Lock()
        # Bumped whenever custom artwork changes; renders drawn before are outdated
        self.generation = 0

    def get(self, kind: StampKind) -> bytes:
        """PNG bytes for *kind*."""
        with self._lock:
            if kind in self._cache:
                return self._cache[kind]

        data = self._read_custom(kind)
        if data is None:
            data = encode_png(draw_builtin_stamp(kind))

        with self._lock:
            self._cache[kind] = data
        return data

    def artwork(self, content: StampContent | CustomStampContent) -> bytes:
        """Image bytes for a stamp overlay, built-in or custom.

        Raises:
            StampNotFoundError: If a custom stamp is not registered
        """
        if isinstance(content, CustomStampContent):
            return self.get_custom(content.name).data
        return self.get(content.kind)

    def _read_custom(self, kind: StampKind) -> bytes | None:
        if not self.asset_dir:
            return None
        path = os.path.join(self.asset_dir, f"{kind.value}.png")
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            logger.warning(f"Cannot read stamp artwork {path}, using built-in: {e}")
            return None

    # -- custom stamps ----------------------------------------------------

    def register(self, name: str, data: bytes) -> CustomStamp:
        """Register image bytes as a custom stamp.

        Registering an existing name replaces its artwork.

        Raises:
            ValueError: If the name is empty or the bytes are not an image
        """
        if not name:
            raise ValueError("custom stamp name must not be empty")
        image = decode(data)
        stamp = CustomStamp(name=name, data=data, width=image.width, height=image.height)
        with self._lock:
            self._custom[name] = stamp
            self.generation += 1
        logger.info(f"Registered custom stamp {name} ({image.width}x{image.height})")
        return stamp

    def register_file(self, path: str) -> CustomStamp:
        """Register an image file as a custom stamp named after the file.

        Raises:
            OSError: If the file cannot be read
            ValueError: If the file is not an image
        """
        with open(path, "rb") as f:
            data = f.read()
        name = os.path.splitext(os.path.basename(path))[0]
        return self.register(name, data)

    def unregister(self, name: str) -> bool:
        """Forget a custom stamp.

        Overlays still referring to it fail to render until a stamp with
        the same name is registered again.

        Returns:
            True if the stamp was registered
        """
        with self._lock:
            removed = self._custom.pop(name, None)
            if removed is not None:
                self.generation += 1
        if removed is not None:
            logger.info(f"Unregistered custom stamp {name}")
        return removed is not None

    def get_custom(self, name: str) -> CustomStamp:
        """The registered custom stamp *name*.

        Raises:
            StampNotFoundError: If no stamp has that name
        """
        with self._lock:
            stamp = self._custom.get(name)
        if stamp is None:
            raise StampNotFoundError(name)
        return stamp

    def custom_stamps(self) -> list[CustomStamp]:
        """Registered custom stamps, in registration order."""
        with self._lock:
            return list(self._custom.values())


# Global instance
_provider: StampAssetProvider | None = None


def get_stamp_assets() -> StampAssetProvider:
    global _provider
    if _provider is None:
        _provider = StampAssetProvider()
    return _provider
