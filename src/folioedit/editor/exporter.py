"""
FolioEdit - Exporter

Materializes a Document into PDF bytes: every page gets its overlays
flattened in creation order, then its editor rotation, and the pages are
serialized in document order.
"""

import os
import shutil
import tempfile
from collections.abc import Callable

from folioedit.editor.page_model import Document
from folioedit.utils.exceptions import (
    ExportError,
    ExportErrorKind,
    OperationCancelledError,
)
from folioedit.utils.logger import logger


def _check_cancelled(should_cancel: Callable[[], bool] | None) -> None:
    if should_cancel is not None and should_cancel():
        raise OperationCancelledError("export")


def flatten(
    doc: Document,
    engine=None,
    assets=None,
    should_cancel: Callable[[], bool] | None = None,
) -> bytes:
    """Produce the output PDF of a document.

    Works on a snapshot taken at call time, so the document can keep being
    edited while the export runs.

    Args:
        doc: Document to export
        engine: PDF engine (default: shared engine)
        assets: Stamp asset provider (default: shared provider)
        should_cancel: Optional hook polled between pages

    Returns:
        The PDF file contents

    Raises:
        ExportError: ENGINE_FAILURE if the PDF engine fails or a custom
            stamp is not registered
        OperationCancelledError: If *should_cancel* returned True
    """
    if engine is None:
        from folioedit.services.pdf_engine import get_pdf_engine

        engine = get_pdf_engine()
    if assets is None:
        from folioedit.services.stamp_assets import get_stamp_assets

        assets = get_stamp_assets()

    pages = doc.pages()
    try:
        contents = []
        for page in pages:
            _check_cancelled(should_cancel)
            overlays = sorted(page.overlays, key=lambda item: item.overlay_id)
            content = engine.composite(page.content, overlays, assets)
            contents.append(engine.rotate(content, page.rotation))

        _check_cancelled(should_cancel)
        data = engine.serialize(contents)
    except (ExportError, OperationCancelledError):
        raise
    except Exception as e:
        logger.error(f"Failed to export {doc.name}: {e}")
        raise ExportError(ExportErrorKind.ENGINE_FAILURE, str(e)) from e

    logger.info(f"Exported {len(pages)} page(s) of {doc.name} ({len(data)} bytes)")
    return data


def export_to_file(
    doc: Document,
    output_path: str,
    engine=None,
    assets=None,
    should_cancel: Callable[[], bool] | None = None,
) -> str:
    """Export a document and write it to *output_path*.

    The file is written to a temporary path first and moved into place, so
    a failed export never leaves a truncated file behind. The document's
    modified flag is cleared unless it was edited during the export.

    Returns:
        The output path

    Raises:
        ExportError: ENGINE_FAILURE from flatten(), IO if writing fails
        OperationCancelledError: If *should_cancel* returned True
    """
    revision = doc.revision
    data = flatten(doc, engine=engine, assets=assets, should_cancel=should_cancel)

    output_dir = os.path.dirname(os.path.abspath(output_path))
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(suffix=".pdf", prefix="folioedit_export_", dir=output_dir)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        shutil.move(tmp_path, output_path)
        tmp_path = None
    except OSError as e:
        logger.error(f"Failed to write {output_path}: {e}")
        raise ExportError(ExportErrorKind.IO, str(e), output_path=output_path) from e
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.remove(tmp_path)

    if doc.revision == revision:
        doc.clear_modifications()
    logger.info(f"Saved {doc.name} to {output_path}")
    return output_path
