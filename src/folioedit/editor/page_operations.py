"""
FolioEdit - Page Operations

Functions for manipulating documents: reordering, deletion, rotation,
merging and splitting.

Reorder, delete and rotate change the document they are given. Merge and
split never touch their sources; they build a new Document from copies of
the selected pages.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from folioedit.editor.page_model import Document, PageRef
from folioedit.utils.exceptions import EmptySelectionError, InvalidRangeError
from folioedit.utils.i18n import _
from folioedit.utils.logger import logger


def reorder_pages(doc: Document, start: int, end: int, target: int) -> bool:
    """Move pages [start, end) so that they begin at *target*.

    Args:
        doc: The Document to modify
        start: First page of the range (inclusive)
        end: End of the range (exclusive)
        target: New position of the first moved page, counted after the
                range has been taken out. Past the end appends.

    Returns:
        True if the order changed, False for a move onto itself

    Raises:
        InvalidRangeError: If the range is empty or outside the document
        OutOfRangeError: If the target is negative
    """
    moved = doc.move_range(start, end, target)
    if moved:
        logger.info(f"Moved {end - start} page(s) from position {start} to {target}")
    return moved


def delete_pages(doc: Document, page_indices: Iterable[int]) -> list[PageRef]:
    """Delete pages along with their overlays.

    Args:
        doc: The Document to modify
        page_indices: Positions of the pages to delete

    Returns:
        The deleted pages

    Raises:
        OutOfRangeError: If an index is outside the document
        EmptyResultError: If no page would be left
    """
    removed = doc.remove_at(page_indices)
    if removed:
        logger.info(f"Deleted {len(removed)} page(s)")
    return removed


def rotate_pages(doc: Document, page_indices: Iterable[int], clockwise: bool = True) -> int:
    """Rotate pages by a quarter turn.

    Args:
        doc: The Document to modify
        page_indices: Positions of the pages to rotate
        clockwise: Direction; counter-clockwise is three clockwise turns

    Returns:
        Number of pages rotated
    """
    rotated = doc.rotate_at(page_indices, quarter_turns=1 if clockwise else 3)
    if rotated:
        logger.info(f"Rotated {rotated} page(s) by {90 if clockwise else -90}°")
    return rotated


@dataclass(frozen=True)
class PageSelection:
    """Half-open page range [start, end) of one document, used by merge."""

    document: Document
    start: int
    end: int

    @classmethod
    def whole(cls, document: Document) -> "PageSelection":
        """Selection covering every page of *document*."""
        return cls(document, 0, document.page_count())


def _snapshot_range(doc: Document, start: int, end: int) -> list[PageRef]:
    """Copy pages [start, end) of *doc* under its lock, then release it."""
    pages = doc.pages()
    if start < 0 or end > len(pages) or start >= end:
        raise InvalidRangeError(start, end, len(pages))
    return [page.copy() for page in pages[start:end]]


def merge_documents(selections: Sequence[PageSelection], name: str = "") -> Document:
    """Build a new Document from page ranges of one or more documents.

    Pages are snapshots taken at call time: overlays and rotation are
    carried over, and later edits on a source do not reach the result.

    Args:
        selections: Page ranges, in output order
        name: Display name of the new document

    Returns:
        The merged Document

    Raises:
        EmptySelectionError: If no selection is given
        InvalidRangeError: If a selection is empty or out of range
    """
    if not selections:
        raise EmptySelectionError()

    pages: list[PageRef] = []
    for selection in selections:
        pages.extend(_snapshot_range(selection.document, selection.start, selection.end))

    merged = Document(pages, name=name or _("Merged document"))
    merged.mark_modified()
    logger.info(f"Merged {len(pages)} page(s) from {len(selections)} selection(s)")
    return merged


def split_document(doc: Document, start: int, end: int, name: str = "") -> Document:
    """Copy pages [start, end) of *doc* into a new Document.

    Args:
        doc: Source document (left unmodified)
        start: First page of the range (inclusive)
        end: End of the range (exclusive)
        name: Display name of the new document

    Returns:
        The new Document

    Raises:
        InvalidRangeError: If start >= end or the range exceeds the document
    """
    pages = _snapshot_range(doc, start, end)
    if not name:
        name = _("{name} (pages {first}-{last})").format(name=doc.name, first=start + 1, last=end)

    part = Document(pages, name=name)
    part.mark_modified()
    logger.info(f"Split pages {start + 1}-{end} of {doc.name} into a new document")
    return part
