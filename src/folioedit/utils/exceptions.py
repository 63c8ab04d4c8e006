"""
FolioEdit - Custom Exceptions Module

This module defines the exception classes raised by the document model,
the page operations, the render cache and the exporter.
"""

from enum import Enum, auto


class FolioEditError(Exception):
    """Base exception for all FolioEdit errors.

    All custom exceptions should inherit from this class to allow
    catching any FolioEdit-specific error.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional technical details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class LoadErrorKind(Enum):
    """Why a document could not be loaded."""

    CORRUPT = auto()
    UNSUPPORTED = auto()
    IO = auto()


class LoadError(FolioEditError):
    """Raised when document bytes cannot be turned into a Document."""

    def __init__(self, kind: LoadErrorKind, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            kind: Classification of the failure
            reason: Optional reason reported by the PDF engine
        """
        self.kind = kind
        self.reason = reason

        msg = f"Could not load document ({kind.name.lower()})"
        if reason:
            msg += f": {reason}"

        super().__init__(msg, details=f"kind={kind.name}")


# ---------------------------------------------------------------------------
# Structural validation (caller mistakes, nothing is mutated)
# ---------------------------------------------------------------------------


class OutOfRangeError(FolioEditError, IndexError):
    """Raised when a page index or range falls outside the document."""

    def __init__(self, index: int, page_count: int, what: str = "page index") -> None:
        """Initialize the exception.

        Args:
            index: The offending index
            page_count: Number of pages in the document
            what: Name of the argument that was out of range
        """
        self.index = index
        self.page_count = page_count

        msg = f"{what.capitalize()} {index} is out of range"
        super().__init__(msg, details=f"page_count={page_count}")


class PageNotFoundError(OutOfRangeError):
    """Raised when a page identity is not part of the document."""

    def __init__(self, page_id: int, doc_id: int) -> None:
        self.page_id = page_id
        self.doc_id = doc_id
        self.index = page_id
        self.page_count = None
        FolioEditError.__init__(
            self,
            f"Page {page_id} is not part of document {doc_id}",
            details=f"page_id={page_id}, doc_id={doc_id}",
        )


class StateError(FolioEditError):
    """Base class for operations rejected because of document state."""


class EmptyResultError(StateError):
    """Raised when an operation would leave a document with zero pages."""

    def __init__(self, page_count: int) -> None:
        self.page_count = page_count
        super().__init__(
            "A document must keep at least one page",
            details=f"page_count={page_count}",
        )


class EmptySelectionError(StateError):
    """Raised when a merge is requested without any page selection."""

    def __init__(self) -> None:
        super().__init__("Nothing selected to merge")


class InvalidRangeError(StateError, ValueError):
    """Raised when a half-open page range is empty or exceeds the document."""

    def __init__(self, start: int, end: int, page_count: int) -> None:
        """Initialize the exception.

        Args:
            start: First page index of the range (inclusive)
            end: Last page index of the range (exclusive)
            page_count: Number of pages in the document
        """
        self.start = start
        self.end = end
        self.page_count = page_count
        super().__init__(
            f"Invalid page range [{start}, {end})",
            details=f"page_count={page_count}",
        )


class OverlayNotFoundError(FolioEditError, KeyError):
    """Raised when an overlay id is not attached to the given page."""

    def __init__(self, overlay_id: int, page_id: int) -> None:
        self.overlay_id = overlay_id
        self.page_id = page_id
        super().__init__(
            f"Overlay {overlay_id} is not attached to page {page_id}",
            details=f"overlay_id={overlay_id}, page_id={page_id}",
        )

    def __str__(self) -> str:
        # KeyError.__str__ would quote the message
        return FolioEditError.__str__(self)


class StampNotFoundError(FolioEditError, KeyError):
    """Raised when a custom stamp name has no registered artwork."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No custom stamp named {name!r}", details=f"name={name}")

    def __str__(self) -> str:
        return FolioEditError.__str__(self)


# ---------------------------------------------------------------------------
# Engine failures (reported to the user, in-memory state is untouched)
# ---------------------------------------------------------------------------


class RenderError(FolioEditError):
    """Raised when the PDF or image engine fails to produce a raster."""

    def __init__(self, reason: str, page_id: int | None = None) -> None:
        self.reason = reason
        self.page_id = page_id

        details = f"page_id={page_id}" if page_id is not None else None
        super().__init__(f"Rendering failed: {reason}", details=details)


class ExportErrorKind(Enum):
    """Why an export failed."""

    ENGINE_FAILURE = auto()
    IO = auto()


class ExportError(FolioEditError):
    """Raised when the document cannot be materialized or written."""

    def __init__(self, kind: ExportErrorKind, reason: str, output_path: str | None = None) -> None:
        """Initialize the exception.

        Args:
            kind: Classification of the failure
            reason: Reason reported by the engine or the OS
            output_path: Optional destination that could not be written
        """
        self.kind = kind
        self.reason = reason
        self.output_path = output_path

        details = f"kind={kind.name}"
        if output_path:
            details += f", path={output_path}"

        super().__init__(f"Export failed: {reason}", details=details)


class OperationCancelledError(FolioEditError):
    """Raised when a caller-supplied cancellation hook stops a load or export."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation.capitalize()} cancelled")


# Exception hierarchy summary:
# FolioEditError (base)
# ├── LoadError
# ├── OutOfRangeError (IndexError)
# │   └── PageNotFoundError
# ├── StateError
# │   ├── EmptyResultError
# │   ├── EmptySelectionError
# │   └── InvalidRangeError (ValueError)
# ├── OverlayNotFoundError (KeyError)
# ├── StampNotFoundError (KeyError)
# ├── RenderError
# ├── ExportError
# └── OperationCancelledError
