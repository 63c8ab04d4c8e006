"""
FolioEdit - Editor Package

The document/page state engine behind the visual editor.

Main Components:
- Document, PageRef: Document model with per-page state and versions
- page_operations: Reorder, delete, rotate, merge and split
- overlays: Stamp, custom stamp and text overlay placement
- RenderCache: Background page rendering with LRU caching
- exporter: Flattening a document into PDF bytes
"""

from folioedit.editor.exporter import export_to_file, flatten
from folioedit.editor.overlays import (
    add_overlay,
    display_to_page,
    list_overlays,
    move_overlay,
    page_to_display,
    remove_overlay,
    resize_overlay,
)
from folioedit.editor.page_model import (
    CustomStampContent,
    Document,
    OverlayItem,
    PageContent,
    PageRef,
    Rect,
    StampContent,
    StampKind,
    TextContent,
    load_document,
    load_document_file,
)
from folioedit.editor.page_operations import (
    PageSelection,
    delete_pages,
    merge_documents,
    reorder_pages,
    rotate_pages,
    split_document,
)
from folioedit.editor.render_cache import RenderCache, RenderState, get_render_cache

__all__ = [
    "Document",
    "PageRef",
    "PageContent",
    "OverlayItem",
    "Rect",
    "StampContent",
    "CustomStampContent",
    "StampKind",
    "TextContent",
    "load_document",
    "load_document_file",
    "reorder_pages",
    "delete_pages",
    "rotate_pages",
    "PageSelection",
    "merge_documents",
    "split_document",
    "add_overlay",
    "remove_overlay",
    "move_overlay",
    "resize_overlay",
    "list_overlays",
    "page_to_display",
    "display_to_page",
    "RenderCache",
    "RenderState",
    "get_render_cache",
    "flatten",
    "export_to_file",
]
