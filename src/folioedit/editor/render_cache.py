"""
FolioEdit - Render Cache

Renders page previews in a bounded thread pool and caches them in an LRU
keyed by everything that affects the picture: document, page, page version,
rotation, overlays and scale.

Documents publish invalidation events on every edit. The cache keeps the
live version of each page it has rendered, evicts entries of superseded
versions, and drops a background render on completion if the page changed
while it was in flight.
"""

import threading
from collections import OrderedDict
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

import numpy as np
from PIL import Image

from folioedit.constants import SCALE_KEY_PRECISION
from folioedit.editor.overlays import overlay_fingerprint
from folioedit.editor.page_model import (
    Document,
    DocumentEvent,
    OverlayItem,
    PageInvalidated,
    PageRef,
    TextContent,
)
from folioedit.services import image_engine
from folioedit.utils.config_manager import get_config_manager
from folioedit.utils.exceptions import RenderError
from folioedit.utils.logger import logger


class RenderState(Enum):
    """Lifecycle of a cache key."""

    ABSENT = auto()
    PENDING = auto()
    READY = auto()
    STALE = auto()
    FAILED = auto()


@dataclass(frozen=True)
class RenderKey:
    doc_id: int
    page_id: int
    version: int
    rotation: int
    overlay_fingerprint: str
    scale: float

    @property
    def page(self) -> tuple[int, int]:
        return self.doc_id, self.page_id


@dataclass(frozen=True)
class RenderEntry:
    """A decoded raster: read-only HxWx4 RGBA pixels plus dimensions."""

    pixels: np.ndarray
    width: int
    height: int

    @classmethod
    def from_image(cls, image: Image.Image) -> "RenderEntry":
        return cls(image_engine.to_buffer(image), image.width, image.height)


@dataclass(frozen=True)
class RenderResult:
    """Answer to a render request.

    Attributes:
        key: Cache key the request resolved to
        state: READY for a hit; PENDING while rendering; STALE when a
               finished render was dropped; FAILED after an engine error
        entry: The raster, or a placeholder unless state is READY
        future: Resolves to the final RenderResult while PENDING
        error: The engine error when state is FAILED
    """

    key: RenderKey
    state: RenderState
    entry: RenderEntry
    future: Future | None = None
    error: RenderError | None = None

    @property
    def ready(self) -> bool:
        return self.state is RenderState.READY


def _direct_dispatch(func: Callable[..., Any], *args: Any) -> None:
    func(*args)


class RenderCache:
    """Page previews with background rendering and LRU caching.

    Uses the PDF engine (pdftoppm) for rasterization via a bounded thread
    pool; overlays are composited with the image engine before the page
    rotation is applied.
    """

    def __init__(
        self,
        engine=None,
        assets=None,
        cache_size: int | None = None,
        max_workers: int | None = None,
        default_scale: float | None = None,
        dispatch: Callable[..., Any] | None = None,
    ) -> None:
        """Initialize the render cache.

        Args:
            engine: PDF engine used to rasterize (default: shared engine)
            assets: Stamp asset provider (default: shared provider)
            cache_size: Maximum number of cached rasters
            max_workers: Size of the render thread pool
            default_scale: Scale used when a request gives none
            dispatch: Called as ``dispatch(callback, result)`` to deliver
                      completion callbacks, e.g. ``GLib.idle_add``.
                      Defaults to calling the callback directly.
        """
        config = get_config_manager()
        if engine is None:
            from folioedit.services.pdf_engine import get_pdf_engine

            engine = get_pdf_engine()
        if assets is None:
            from folioedit.services.stamp_assets import get_stamp_assets

            assets = get_stamp_assets()

        self.engine = engine
        self.assets = assets
        self._cache_size = cache_size or config.get("render.cache_size", 200)
        if default_scale is None:
            default_scale = config.get("render.default_scale", 0.25)
        if default_scale <= 0:
            raise ValueError("default_scale must be > 0")
        self._default_scale = default_scale
        self._text_font_file = config.get("overlay.text_font_file", "")
        self._dispatch = dispatch or _direct_dispatch

        self._cache: OrderedDict[RenderKey, RenderEntry] = OrderedDict()
        self._pending: dict[RenderKey, Future] = {}
        self._failed: dict[RenderKey, RenderError] = {}
        self._live_versions: dict[tuple[int, int], int] = {}
        self._visible: set[tuple[int, int]] = set()
        self._subscriptions: dict[int, Callable[[], None]] = {}
        self._assets_generation = assets.generation
        self._lock = threading.Lock()
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers or config.get("render.max_workers", 4),
            thread_name_prefix="folioedit-render",
        )

    # -- keys and states --------------------------------------------------

    def _make_key(self, doc_id: int, page: PageRef, scale: float) -> RenderKey:
        return RenderKey(
            doc_id=doc_id,
            page_id=page.page_id,
            version=page.version,
            rotation=page.rotation,
            overlay_fingerprint=overlay_fingerprint(page.overlays),
            scale=round(scale, SCALE_KEY_PRECISION),
        )

    def key_for(self, doc: Document, page_id: int, scale: float | None = None) -> RenderKey:
        """Cache key the current state of a page renders under."""
        page = doc.find_page(page_id)
        if scale is None:
            scale = self._default_scale
        return self._make_key(doc.doc_id, page, scale)

    def state(self, key: RenderKey) -> RenderState:
        with self._lock:
            live = self._live_versions.get(key.page)
            if live is not None and live != key.version:
                return RenderState.STALE
            if key in self._cache:
                return RenderState.READY
            if key in self._pending:
                return RenderState.PENDING
            if key in self._failed:
                return RenderState.FAILED
            return RenderState.ABSENT

    def _is_live(self, key: RenderKey) -> bool:
        return self._live_versions.get(key.page) == key.version

    # -- requests ---------------------------------------------------------

    def request(
        self,
        doc: Document,
        page_id: int,
        scale: float | None = None,
        on_ready: Callable[[RenderResult], None] | None = None,
        retry: bool = False,
    ) -> RenderResult:
        """Return the cached raster of a page or schedule a background render.

        Args:
            doc: Document owning the page
            page_id: Identity of the page
            scale: Pixels per point (default: configured default scale)
            on_ready: Called through the dispatcher with the final result:
                      immediately for a hit, on completion otherwise
            retry: Render again a key whose previous render failed

        Returns:
            A READY result on a hit, a FAILED result for a failed key when
            *retry* is False, otherwise a PENDING result holding a placeholder

        Raises:
            PageNotFoundError: If the page is not in the document
        """
        if scale is None:
            scale = self._default_scale
        if scale <= 0:
            raise ValueError("scale must be > 0")

        self._ensure_subscribed(doc)
        result = doc.read_page(
            page_id, lambda page: self._lookup_or_schedule(doc, page, scale, retry)
        )

        if on_ready is not None:
            if result.future is None:
                self._dispatch(on_ready, result)
            else:
                result.future.add_done_callback(lambda f: self._deliver(f, on_ready))
        return result

    def _deliver(self, future: Future, on_ready: Callable[[RenderResult], None]) -> None:
        if future.cancelled():
            return
        self._dispatch(on_ready, future.result())

    def request_thumbnail(
        self,
        doc: Document,
        page_id: int,
        max_width: float,
        max_height: float,
        on_ready: Callable[[RenderResult], None] | None = None,
    ) -> RenderResult:
        """Request the largest render of a page that fits a pixel box."""
        width, height = doc.find_page(page_id).display_size
        scale = min(max_width / width, max_height / height)
        return self.request(doc, page_id, scale=scale, on_ready=on_ready)

    def _lookup_or_schedule(
        self, doc: Document, page: PageRef, scale: float, retry: bool
    ) -> RenderResult:
        """Resolve a request. Runs under the document lock."""
        key = self._make_key(doc.doc_id, page, scale)
        with self._lock:
            self._check_assets_generation()
            self._live_versions[key.page] = page.version

            entry = self._cache.get(key)
            if entry is not None:
                self._cache.move_to_end(key)
                return RenderResult(key, RenderState.READY, entry)

            error = self._failed.get(key)
            if error is not None and not retry:
                return RenderResult(
                    key, RenderState.FAILED, self._placeholder(page, scale, error=True), error=error
                )
            self._failed.pop(key, None)

            future = self._pending.get(key)
            if future is None:
                future = self._pool.submit(self._render_worker, key, page)
                self._pending[key] = future

        return RenderResult(key, RenderState.PENDING, self._placeholder(page, scale), future=future)

    def _check_assets_generation(self) -> None:
        """Drop every render once stamp artwork changed. Caller holds the lock."""
        generation = self.assets.generation
        if generation != self._assets_generation:
            self._assets_generation = generation
            self._cache.clear()
            self._failed.clear()
            logger.debug("Stamp artwork changed, dropped cached renders")

    def _placeholder(self, page: PageRef, scale: float, error: bool = False) -> RenderEntry:
        width, height = page.display_size
        return RenderEntry.from_image(
            image_engine.placeholder(round(width * scale), round(height * scale), error=error)
        )

    # -- background rendering ---------------------------------------------

    def _render_worker(self, key: RenderKey, page: PageRef) -> RenderResult:
        """Worker thread: rasterize, composite overlays, rotate, publish."""
        generation = self.assets.generation
        error: RenderError | None = None
        entry: RenderEntry | None = None
        try:
            image = self.engine.rasterize(page.content, key.scale)
            for item in sorted(page.overlays, key=lambda o: o.overlay_id):
                image = self._draw_overlay(image, item, key.scale)
            image = image_engine.rotate(image, page.rotation)
            entry = RenderEntry.from_image(image)
        except RenderError as e:
            error = e
        except Exception as e:
            error = RenderError(str(e), page_id=key.page_id)

        with self._lock:
            self._pending.pop(key, None)

            if not self._is_live(key) or self.assets.generation != generation:
                logger.debug(f"Discarding render of page {key.page_id} v{key.version}: superseded")
                return RenderResult(key, RenderState.STALE, self._placeholder(page, key.scale))

            if error is not None:
                logger.error(f"Failed to render page {key.page_id}: {error}")
                self._failed[key] = error
                return RenderResult(
                    key,
                    RenderState.FAILED,
                    self._placeholder(page, key.scale, error=True),
                    error=error,
                )

            self._cache[key] = entry
            self._evict_cache(keep=key)

        return RenderResult(key, RenderState.READY, entry)

    def _draw_overlay(self, image: Image.Image, item: OverlayItem, scale: float) -> Image.Image:
        rect = item.rect
        width, height = rect.width * scale, rect.height * scale
        if isinstance(item.content, TextContent):
            layer = image_engine.render_text(
                item.content.text,
                item.content.font_size * scale,
                round(width),
                round(height),
                font_file=self._text_font_file,
            )
        else:
            artwork = image_engine.decode(self.assets.artwork(item.content))
            layer = image_engine.resize(artwork, width, height)
        return image_engine.composite(image, layer, (rect.x * scale, rect.y * scale))

    # -- invalidation -----------------------------------------------------

    def _ensure_subscribed(self, doc: Document) -> None:
        with self._lock:
            if doc.doc_id in self._subscriptions:
                return
        unsubscribe = doc.subscribe(self._on_document_event)
        with self._lock:
            if doc.doc_id in self._subscriptions:
                duplicate = unsubscribe
            else:
                self._subscriptions[doc.doc_id] = unsubscribe
                duplicate = None
        if duplicate is not None:
            duplicate()

    def _on_document_event(self, event: DocumentEvent) -> None:
        """Handle an invalidation event. Runs under the document lock."""
        page = (event.doc_id, event.page_id)
        with self._lock:
            if page not in self._live_versions:
                return
            if isinstance(event, PageInvalidated):
                self._live_versions[page] = event.version
            else:
                del self._live_versions[page]
                self._visible.discard(page)
            self._drop_where(lambda key: key.page == page and not self._is_live(key))

    def _drop_where(self, predicate: Callable[[RenderKey], bool]) -> None:
        """Remove cached and failed entries matching *predicate*. Caller holds the lock."""
        for key in [k for k in self._cache if predicate(k)]:
            del self._cache[key]
        for key in [k for k in self._failed if predicate(k)]:
            del self._failed[key]

    def _evict_cache(self, keep: RenderKey | None = None) -> None:
        """Evict least recently used entries of pages that are not visible.

        *keep* is the entry just published; it is never evicted, so a render
        always lands in the cache even when every older entry is pinned.
        """
        if len(self._cache) <= self._cache_size:
            return
        for key in list(self._cache):
            if len(self._cache) <= self._cache_size:
                break
            if key == keep or key.page in self._visible:
                continue
            del self._cache[key]
            logger.debug(f"Evicted render of page {key.page_id} at scale {key.scale}")

    def set_visible(self, doc_id: int, page_ids: Iterable[int]) -> None:
        """Declare the pages of a document currently on screen; they are never evicted."""
        with self._lock:
            self._visible = {p for p in self._visible if p[0] != doc_id}
            self._visible.update((doc_id, page_id) for page_id in page_ids)

    def invalidate(self, doc_id: int, page_id: int | None = None) -> None:
        """Drop cached renders of one page, or of a whole document."""
        with self._lock:
            if page_id is None:
                self._drop_where(lambda key: key.doc_id == doc_id)
            else:
                self._drop_where(lambda key: key.page == (doc_id, page_id))

    def clear_document(self, doc: Document) -> None:
        """Forget a closed document: renders, live versions and subscription."""
        with self._lock:
            unsubscribe = self._subscriptions.pop(doc.doc_id, None)
        if unsubscribe is not None:
            unsubscribe()

        with self._lock:
            self._drop_where(lambda key: key.doc_id == doc.doc_id)
            for page in [p for p in self._live_versions if p[0] == doc.doc_id]:
                del self._live_versions[page]
            self._visible = {p for p in self._visible if p[0] != doc.doc_id}
        logger.debug(f"Cleared renders of {doc.name}")

    def clear_all(self) -> None:
        """Drop every cached render."""
        with self._lock:
            self._cache.clear()
            self._failed.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the render pool and unsubscribe from all documents."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for unsubscribe in subscriptions:
            unsubscribe()
        self._pool.shutdown(wait=wait, cancel_futures=True)
        self.clear_all()


# Global instance
_render_cache: RenderCache | None = None


def get_render_cache() -> RenderCache:
    global _render_cache
    if _render_cache is None:
        _render_cache = RenderCache()
    return _render_cache
