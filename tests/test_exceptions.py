"""Tests for the exception hierarchy."""

from folioedit.utils.exceptions import (
    EmptyResultError,
    EmptySelectionError,
    ExportError,
    ExportErrorKind,
    FolioEditError,
    InvalidRangeError,
    LoadError,
    LoadErrorKind,
    OutOfRangeError,
    OverlayNotFoundError,
    PageNotFoundError,
    RenderError,
    StampNotFoundError,
    StateError,
)


class TestExceptions:
    def test_str_includes_details(self):
        err = FolioEditError("Something failed", details="code=3")
        assert str(err) == "Something failed (code=3)"
        assert str(FolioEditError("plain")) == "plain"

    def test_load_error(self):
        err = LoadError(LoadErrorKind.CORRUPT, "bad xref")
        assert err.kind is LoadErrorKind.CORRUPT
        assert "bad xref" in str(err)

    def test_out_of_range_is_index_error(self):
        err = OutOfRangeError(7, 3)
        assert isinstance(err, IndexError)
        assert err.index == 7
        assert "out of range" in str(err)

    def test_page_not_found_is_out_of_range(self):
        err = PageNotFoundError(1, 2)
        assert isinstance(err, OutOfRangeError)
        assert isinstance(err, IndexError)
        assert err.page_id == 1
        assert str(err).startswith("Page 1 is not part of document 2")

    def test_state_errors(self):
        for err in (EmptyResultError(3), EmptySelectionError(), InvalidRangeError(3, 1, 5)):
            assert isinstance(err, StateError)
            assert isinstance(err, FolioEditError)
        assert isinstance(InvalidRangeError(3, 1, 5), ValueError)

    def test_overlay_not_found_message(self):
        err = OverlayNotFoundError(4, 9)
        assert isinstance(err, KeyError)
        assert str(err).startswith("Overlay 4 is not attached to page 9")

    def test_render_and_export_errors(self):
        assert "page_id=5" in str(RenderError("boom", page_id=5))
        err = ExportError(ExportErrorKind.IO, "disk full", output_path="/tmp/x.pdf")
        assert err.kind is ExportErrorKind.IO
        assert "path=/tmp/x.pdf" in str(err)

    def test_stamp_not_found_message(self):
        err = StampNotFoundError("logo")
        assert isinstance(err, KeyError)
        assert err.name == "logo"
        assert str(err).startswith("No custom stamp named 'logo'")
