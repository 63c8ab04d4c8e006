"""
FolioEdit - Page Model

Data models for document, page and overlay state management.

A Document is an ordered list of PageRef objects. Each PageRef points at an
immutable PageContent snapshot produced by the PDF engine, so pages can be
shared between documents (merge) or copied (split) without aliasing: all
mutable state (rotation, overlays, version) lives on the PageRef itself.
"""

from __future__ import annotations

import itertools
import os
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from folioedit.constants import DEFAULT_TEXT_FONT_SIZE, VALID_ROTATIONS
from folioedit.utils.exceptions import (
    EmptyResultError,
    InvalidRangeError,
    LoadError,
    LoadErrorKind,
    OperationCancelledError,
    OutOfRangeError,
    PageNotFoundError,
)
from folioedit.utils.logger import logger

if TYPE_CHECKING:
    from folioedit.services.pdf_engine import PdfEngine

_content_keys = itertools.count(1)
_page_ids = itertools.count(1)
_doc_ids = itertools.count(1)

T = TypeVar("T")


def normalize_rotation(degrees: int) -> int:
    """Normalize an angle into (0, 90, 180, 270), rounding to the nearest quarter turn."""
    rotation = degrees % 360
    if rotation not in VALID_ROTATIONS:
        rotation = round(rotation / 90) * 90 % 360
    return rotation


# ---------------------------------------------------------------------------
# Overlays
# ---------------------------------------------------------------------------


class StampKind(Enum):
    """Stamp artwork available for stamp overlays."""

    APPROVED = "approved"
    REJECTED = "rejected"
    DRAFT = "draft"
    CONFIDENTIAL = "confidential"

    @property
    def label(self) -> str:
        """Text printed on the stamp."""
        return self.value.upper()

    @classmethod
    def all(cls) -> tuple[StampKind, ...]:
        """All stamp kinds in menu order."""
        return (cls.APPROVED, cls.REJECTED, cls.DRAFT, cls.CONFIDENTIAL)


@dataclass(frozen=True)
class Rect:
    """Position of an overlay in page space.

    Coordinates are PDF points with the origin at the top-left corner of
    the unrotated page, y growing downwards. They do not depend on zoom.
    """

    x: float
    y: float
    width: float
    height: float

    def moved_to(self, x: float, y: float) -> Rect:
        return replace(self, x=x, y=y)

    def resized(self, width: float, height: float) -> Rect:
        return replace(self, width=width, height=height)


@dataclass(frozen=True)
class StampContent:
    """Overlay showing one of the predefined stamps."""

    kind: StampKind


@dataclass(frozen=True)
class CustomStampContent:
    """Overlay showing a user-registered stamp image.

    Only the registration name is stored; the artwork is looked up in the
    stamp asset provider when the overlay is drawn.
    """

    name: str


@dataclass(frozen=True)
class TextContent:
    """Overlay showing a line of user text."""

    text: str
    font_size: float = DEFAULT_TEXT_FONT_SIZE


OverlayContent = StampContent | CustomStampContent | TextContent


@dataclass(frozen=True)
class OverlayItem:
    """A stamp or text box placed on one page.

    Attributes:
        overlay_id: Identifier unique within the owning page. Ids are handed
            out in increasing order, so they double as the creation order
            used for stacking (higher ids draw on top).
        content: What is drawn
        rect: Where it is drawn, in unrotated page space
    """

    overlay_id: int
    content: OverlayContent
    rect: Rect


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PageContent:
    """Immutable snapshot of one page as produced by the PDF engine.

    Attributes:
        data: A complete single-page PDF holding the page
        width: Page width in points, with the source /Rotate applied
        height: Page height in points, with the source /Rotate applied
        source_rotation: /Rotate of the page in the document it came from
        content_key: Opaque handle identifying this snapshot
    """

    data: bytes = field(repr=False)
    width: float
    height: float
    source_rotation: int = 0
    content_key: int = field(default_factory=lambda: next(_content_keys))


@dataclass
class PageRef:
    """State of a single page inside a Document.

    Attributes:
        content: Page content snapshot (shared, never mutated)
        rotation: Editor rotation in degrees (0, 90, 180, 270), clockwise
        version: Bumped whenever rotation or overlays change
        overlays: Overlay items ordered by creation
        page_id: Identity of this page reference
        next_overlay_id: Next id handed out to a new overlay
    """

    content: PageContent
    rotation: int = 0
    version: int = 0
    overlays: tuple[OverlayItem, ...] = ()
    page_id: int = field(default_factory=lambda: next(_page_ids))
    next_overlay_id: int = 1

    def __post_init__(self) -> None:
        """Validate and normalize rotation angle."""
        self.rotation = normalize_rotation(self.rotation)

    def rotate_right(self) -> None:
        """Rotate page 90 degrees clockwise."""
        self.rotation = (self.rotation + 90) % 360

    def rotate_left(self) -> None:
        """Rotate page 90 degrees counter-clockwise."""
        self.rotation = (self.rotation - 90) % 360

    @property
    def display_size(self) -> tuple[float, float]:
        """Page size in points as shown, with the editor rotation applied."""
        if self.rotation in (90, 270):
            return self.content.height, self.content.width
        return self.content.width, self.content.height

    def find_overlay(self, overlay_id: int) -> OverlayItem | None:
        for item in self.overlays:
            if item.overlay_id == overlay_id:
                return item
        return None

    def snapshot(self) -> PageRef:
        """Copy of this page with the same identity, for readers."""
        return replace(self)

    def copy(self) -> PageRef:
        """Independent copy with a new identity (used by merge and split)."""
        return PageRef(
            content=self.content,
            rotation=self.rotation,
            overlays=self.overlays,
            next_overlay_id=self.next_overlay_id,
        )


# ---------------------------------------------------------------------------
# Invalidation events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PageInvalidated:
    """A page changed; renders of older versions are stale."""

    doc_id: int
    page_id: int
    version: int


@dataclass(frozen=True)
class PageRemoved:
    """A page left the document; all of its renders are stale."""

    doc_id: int
    page_id: int


DocumentEvent = PageInvalidated | PageRemoved
Subscriber = Callable[[DocumentEvent], None]


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class Document:
    """An open, editable document made of ordered pages.

    Every mutation validates its arguments first and raises without touching
    anything when they are wrong. A successful mutation bumps the document
    revision and the versions of the pages it touched, then publishes the
    matching invalidation events, all while holding the document lock.
    """

    def __init__(self, pages: Iterable[PageRef], name: str = "") -> None:
        """Initialize the document.

        Args:
            pages: Initial pages, in order (at least one)
            name: Display name

        Raises:
            EmptyResultError: If no pages are given
        """
        self._pages: list[PageRef] = list(pages)
        if not self._pages:
            raise EmptyResultError(0)

        self.doc_id = next(_doc_ids)
        self.name = name or f"Document {self.doc_id}"
        self.modified = False
        self._revision = 0
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []

    def __repr__(self) -> str:
        return (
            f"Document(doc_id={self.doc_id}, name={self.name!r}, "
            f"pages={len(self._pages)}, revision={self._revision})"
        )

    # -- reading ----------------------------------------------------------

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    def page_count(self) -> int:
        with self._lock:
            return len(self._pages)

    def pages(self) -> list[PageRef]:
        """Snapshot of all pages in order.

        The returned objects are copies: iterating over them is safe while
        the document keeps being edited, and editing them does not affect
        the document.
        """
        with self._lock:
            return [page.snapshot() for page in self._pages]

    def page(self, index: int) -> PageRef:
        """Snapshot of the page at *index*."""
        with self._lock:
            self._check_index(index)
            return self._pages[index].snapshot()

    def find_page(self, page_id: int) -> PageRef:
        """Snapshot of the page with identity *page_id*."""
        with self._lock:
            return self._live_page(page_id).snapshot()

    def index_of(self, page_id: int) -> int:
        with self._lock:
            for index, page in enumerate(self._pages):
                if page.page_id == page_id:
                    return index
            raise PageNotFoundError(page_id, self.doc_id)

    def has_page(self, page_id: int) -> bool:
        with self._lock:
            return any(page.page_id == page_id for page in self._pages)

    def read_page(self, page_id: int, reader: Callable[[PageRef], T]) -> T:
        """Call *reader* with a snapshot of page *page_id* while holding the lock.

        No mutation (and so no invalidation event) can happen while the
        reader runs, which lets it register interest in the exact version
        it was given.
        """
        with self._lock:
            return reader(self._live_page(page_id).snapshot())

    # -- modification flag ------------------------------------------------

    def mark_modified(self) -> None:
        """Mark the document as modified."""
        self.modified = True

    def clear_modifications(self) -> None:
        """Clear the modified flag."""
        self.modified = False

    # -- subscriptions ----------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for invalidation events.

        Callbacks run synchronously on the mutating thread while the
        document lock is held; they must not block or mutate the document.
        Exceptions raised by a callback are logged and do not stop delivery.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    # -- mutations --------------------------------------------------------

    def insert_at(self, index: int, pages: Sequence[PageRef]) -> list[PageRef]:
        """Insert copies of *pages* before position *index* (``page_count()`` appends).

        Returns:
            Snapshots of the inserted pages, which carry their new identities
        """
        with self._lock:
            if index < 0 or index > len(self._pages):
                raise OutOfRangeError(index, len(self._pages), "insert position")
            if not pages:
                return []

            new_pages = [page.copy() for page in pages]
            self._pages[index:index] = new_pages
            self._commit(touched=new_pages)
            inserted = [page.snapshot() for page in new_pages]

        logger.debug(f"Inserted {len(inserted)} page(s) at {index} in {self.name}")
        return inserted

    def remove_at(self, indices: Iterable[int]) -> list[PageRef]:
        """Remove the pages at *indices* (any order, duplicates ignored).

        Returns:
            The removed pages, in document order

        Raises:
            OutOfRangeError: If any index is outside the document
            EmptyResultError: If every page would be removed
        """
        with self._lock:
            targets = sorted(set(indices))
            for index in targets:
                self._check_index(index)
            if not targets:
                return []
            if len(targets) >= len(self._pages):
                raise EmptyResultError(len(self._pages))

            removed = [self._pages[index] for index in targets]
            for index in reversed(targets):
                del self._pages[index]
            self._commit(removed=removed)

        logger.debug(f"Removed {len(removed)} page(s) from {self.name}")
        return [page.snapshot() for page in removed]

    def move_range(self, start: int, end: int, target: int) -> bool:
        """Move pages [start, end) so that they begin at *target*.

        *target* is a position in the page list after the range has been
        taken out. A target past the end appends the range; a target equal
        to *start* leaves the document untouched.

        Returns:
            True if the page order changed
        """
        with self._lock:
            count = len(self._pages)
            if start < 0 or end > count or start >= end:
                raise InvalidRangeError(start, end, count)
            if target < 0:
                raise OutOfRangeError(target, count, "target position")

            remaining = count - (end - start)
            target = min(target, remaining)
            if target == start:
                return False

            block = self._pages[start:end]
            del self._pages[start:end]
            self._pages[target:target] = block
            self._commit(touched=block)

        logger.debug(f"Moved pages {start}-{end - 1} to position {target} in {self.name}")
        return True

    def set_rotation(self, index: int, rotation: int) -> bool:
        """Set the editor rotation of one page.

        Returns:
            True if the rotation changed
        """
        rotation = normalize_rotation(rotation)
        with self._lock:
            self._check_index(index)
            page = self._pages[index]
            if page.rotation == rotation:
                return False
            page.rotation = rotation
            self._commit(touched=[page])
        return True

    def rotate_at(self, indices: Iterable[int], quarter_turns: int = 1) -> int:
        """Advance the rotation of several pages by clockwise quarter turns.

        Returns:
            Number of pages rotated
        """
        with self._lock:
            targets = sorted(set(indices))
            for index in targets:
                self._check_index(index)
            turns = quarter_turns % 4
            if not targets or turns == 0:
                return 0

            pages = [self._pages[index] for index in targets]
            for page in pages:
                for _ in range(turns):
                    page.rotate_right()
            self._commit(touched=pages)
        return len(pages)

    def edit_page(self, page_id: int, editor: Callable[[PageRef], bool]) -> bool:
        """Apply *editor* to the live page *page_id* under the document lock.

        The editor must validate before changing anything and return
        whether it changed the page. Counters and events follow the usual
        mutation rules.
        """
        with self._lock:
            page = self._live_page(page_id)
            changed = editor(page)
            if changed:
                self._commit(touched=[page])
            return changed

    # -- internals --------------------------------------------------------

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self._pages):
            raise OutOfRangeError(index, len(self._pages))

    def _live_page(self, page_id: int) -> PageRef:
        for page in self._pages:
            if page.page_id == page_id:
                return page
        raise PageNotFoundError(page_id, self.doc_id)

    def _commit(
        self,
        touched: Sequence[PageRef] = (),
        removed: Sequence[PageRef] = (),
    ) -> None:
        """Bump counters and publish events. Caller holds the lock."""
        self._revision += 1
        self.mark_modified()

        events: list[DocumentEvent] = []
        for page in touched:
            page.version += 1
            events.append(PageInvalidated(self.doc_id, page.page_id, page.version))
        for page in removed:
            events.append(PageRemoved(self.doc_id, page.page_id))

        # The mutation is already applied; a failing subscriber must not hide
        # it from the caller or from the subscribers after it
        for callback in list(self._subscribers):
            for event in events:
                try:
                    callback(event)
                except Exception:
                    logger.exception(f"Subscriber {callback!r} failed on {event}")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_document(
    data: bytes,
    name: str = "",
    engine: PdfEngine | None = None,
    should_cancel: Callable[[], bool] | None = None,
) -> Document:
    """Build a Document from PDF bytes.

    Args:
        data: The PDF file contents
        name: Display name for the document
        engine: PDF engine to use (default: shared engine)
        should_cancel: Optional hook polled between pages

    Returns:
        The new Document

    Raises:
        LoadError: If the bytes are corrupt, unsupported or unreadable
        OperationCancelledError: If *should_cancel* returned True
    """
    if engine is None:
        from folioedit.services.pdf_engine import get_pdf_engine

        engine = get_pdf_engine()

    handle = engine.open(data)
    try:
        count = engine.page_count(handle)
        if count == 0:
            raise LoadError(LoadErrorKind.UNSUPPORTED, "document has no pages")

        pages: list[PageRef] = []
        for index in range(count):
            if should_cancel is not None and should_cancel():
                raise OperationCancelledError("load")
            (content,) = engine.extract_pages(handle, [index])
            pages.append(PageRef(content=content))
    finally:
        engine.close(handle)

    doc = Document(pages, name=name)
    logger.info(f"Loaded {doc.name} ({count} pages)")
    return doc


def load_document_file(
    path: str,
    engine: PdfEngine | None = None,
    should_cancel: Callable[[], bool] | None = None,
) -> Document:
    """Read *path* and build a Document named after the file.

    Raises:
        LoadError: With kind IO if the file cannot be read
    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        logger.error(f"Failed to read {path}: {e}")
        raise LoadError(LoadErrorKind.IO, str(e)) from e

    return load_document(
        data,
        name=os.path.basename(path),
        engine=engine,
        should_cancel=should_cancel,
    )
