"""Tests for page_model module (Document, PageRef and loading)."""

import os
import tempfile
from unittest.mock import MagicMock

import pytest

from conftest import make_pdf_bytes
from folioedit.editor.page_model import (
    Document,
    PageContent,
    PageInvalidated,
    PageRef,
    PageRemoved,
    StampKind,
    load_document,
    load_document_file,
    normalize_rotation,
)
from folioedit.services.pdf_engine import PdfEngine
from folioedit.utils.exceptions import (
    EmptyResultError,
    InvalidRangeError,
    LoadError,
    LoadErrorKind,
    OperationCancelledError,
    OutOfRangeError,
    PageNotFoundError,
)


def _order(doc):
    return [p.page_id for p in doc.pages()]


class TestNormalizeRotation:
    def test_valid_values_unchanged(self):
        for rotation in (0, 90, 180, 270):
            assert normalize_rotation(rotation) == rotation

    def test_wraps_around(self):
        assert normalize_rotation(450) == 90
        assert normalize_rotation(-90) == 270

    def test_rounds_to_quarter_turn(self):
        assert normalize_rotation(100) == 90
        assert normalize_rotation(350) == 0


class TestStampKind:
    def test_all_in_menu_order(self):
        names = [k.value for k in StampKind.all()]
        assert names == ["approved", "rejected", "draft", "confidential"]

    def test_label(self):
        assert StampKind.CONFIDENTIAL.label == "CONFIDENTIAL"


class TestPageRef:
    def _page(self, **kwargs):
        return PageRef(content=PageContent(data=b"x", width=612, height=792), **kwargs)

    def test_default_values(self):
        page = self._page()
        assert page.rotation == 0
        assert page.version == 0
        assert page.overlays == ()

    def test_rotation_normalization(self):
        assert self._page(rotation=450).rotation == 90

    def test_rotate_right_and_left(self):
        page = self._page()
        page.rotate_right()
        assert page.rotation == 90
        page.rotate_left()
        page.rotate_left()
        assert page.rotation == 270

    def test_display_size_swaps_on_quarter_turn(self):
        assert self._page().display_size == (612, 792)
        assert self._page(rotation=90).display_size == (792, 612)
        assert self._page(rotation=180).display_size == (612, 792)

    def test_snapshot_keeps_identity(self):
        page = self._page(rotation=90)
        snap = page.snapshot()
        assert snap.page_id == page.page_id
        assert snap is not page
        snap.rotation = 0
        assert page.rotation == 90

    def test_copy_gets_new_identity(self):
        page = self._page(rotation=180, version=7)
        copy = page.copy()
        assert copy.page_id != page.page_id
        assert copy.content is page.content
        assert copy.rotation == 180
        assert copy.version == 0


class TestDocument:
    def test_requires_pages(self):
        with pytest.raises(EmptyResultError):
            Document([])

    def test_default_name_and_flags(self, make_document):
        doc = make_document(2, name="")
        assert doc.name.startswith("Document ")
        assert doc.modified is False
        assert doc.revision == 0
        assert doc.page_count() == 2

    def test_pages_returns_snapshots(self, make_document):
        doc = make_document(3)
        pages = doc.pages()
        pages[0].rotation = 180
        pages.pop()
        assert doc.page(0).rotation == 0
        assert doc.page_count() == 3

    def test_page_out_of_range(self, make_document):
        doc = make_document(3)
        with pytest.raises(OutOfRangeError):
            doc.page(3)
        with pytest.raises(IndexError):
            doc.page(-1)

    def test_find_page_and_index_of(self, make_document):
        doc = make_document(3)
        page_id = doc.page(2).page_id
        assert doc.find_page(page_id).page_id == page_id
        assert doc.index_of(page_id) == 2
        assert doc.has_page(page_id)

    def test_unknown_page_id(self, make_document):
        doc = make_document(1)
        with pytest.raises(PageNotFoundError):
            doc.find_page(-1)
        assert doc.has_page(-1) is False

    def test_read_page_runs_reader_on_snapshot(self, make_document):
        doc = make_document(2)
        page_id = doc.page(1).page_id
        assert doc.read_page(page_id, lambda page: page.page_id) == page_id

    def test_mark_and_clear_modified(self, make_document):
        doc = make_document(1)
        doc.mark_modified()
        assert doc.modified is True
        doc.clear_modifications()
        assert doc.modified is False


class TestInsertAt:
    def test_inserts_copies(self, make_document):
        doc = make_document(2)
        other = make_document(1)
        source = other.page(0)
        inserted = doc.insert_at(1, [source])
        assert doc.page_count() == 3
        assert inserted[0].page_id != source.page_id
        assert doc.page(1).page_id == inserted[0].page_id
        assert doc.page(1).content is source.content
        assert doc.revision == 1
        assert doc.modified is True

    def test_append_at_end(self, make_document):
        doc = make_document(2)
        doc.insert_at(2, [make_document(1).page(0)])
        assert doc.page_count() == 3

    def test_invalid_position(self, make_document):
        doc = make_document(2)
        with pytest.raises(OutOfRangeError):
            doc.insert_at(3, [make_document(1).page(0)])
        assert doc.revision == 0

    def test_nothing_to_insert(self, make_document):
        doc = make_document(2)
        assert doc.insert_at(0, []) == []
        assert doc.revision == 0


class TestRemoveAt:
    def test_removes_pages(self, make_document):
        doc = make_document(4)
        before = _order(doc)
        removed = doc.remove_at([3, 1])
        assert [p.page_id for p in removed] == [before[1], before[3]]
        assert _order(doc) == [before[0], before[2]]
        assert doc.revision == 1

    def test_out_of_range_mutates_nothing(self, make_document):
        doc = make_document(3)
        before = _order(doc)
        with pytest.raises(OutOfRangeError):
            doc.remove_at([0, 5])
        assert _order(doc) == before
        assert doc.revision == 0

    def test_removing_everything_fails(self, make_document):
        doc = make_document(3)
        before = _order(doc)
        with pytest.raises(EmptyResultError):
            doc.remove_at([0, 1, 2])
        assert _order(doc) == before

    def test_duplicates_ignored(self, make_document):
        doc = make_document(3)
        doc.remove_at([1, 1])
        assert doc.page_count() == 2


class TestMoveRange:
    def test_move_forward(self, make_document):
        doc = make_document(5)
        a, b, c, d, e = _order(doc)
        assert doc.move_range(0, 2, 1) is True
        assert _order(doc) == [c, a, b, d, e]

    def test_move_backward(self, make_document):
        doc = make_document(5)
        a, b, c, d, e = _order(doc)
        doc.move_range(3, 5, 0)
        assert _order(doc) == [d, e, a, b, c]

    def test_target_past_end_appends(self, make_document):
        doc = make_document(4)
        a, b, c, d = _order(doc)
        doc.move_range(0, 1, 99)
        assert _order(doc) == [b, c, d, a]

    def test_move_onto_itself_is_noop(self, make_document):
        doc = make_document(4)
        before = _order(doc)
        assert doc.move_range(1, 3, 1) is False
        assert _order(doc) == before
        assert doc.revision == 0
        assert doc.modified is False

    def test_invalid_range(self, make_document):
        doc = make_document(3)
        for start, end in ((2, 2), (2, 1), (-1, 1), (1, 4)):
            with pytest.raises(InvalidRangeError):
                doc.move_range(start, end, 0)
        assert doc.revision == 0

    def test_negative_target(self, make_document):
        doc = make_document(3)
        with pytest.raises(OutOfRangeError):
            doc.move_range(0, 1, -1)

    def test_moved_pages_get_new_versions(self, make_document):
        doc = make_document(3)
        doc.move_range(0, 1, 2)
        versions = {p.page_id: p.version for p in doc.pages()}
        assert sorted(versions.values()) == [0, 0, 1]


class TestRotation:
    def test_set_rotation(self, make_document):
        doc = make_document(2)
        assert doc.set_rotation(0, 270) is True
        assert doc.page(0).rotation == 270
        assert doc.page(0).version == 1

    def test_set_same_rotation_is_noop(self, make_document):
        doc = make_document(2)
        assert doc.set_rotation(0, 360) is False
        assert doc.revision == 0

    def test_set_rotation_out_of_range(self, make_document):
        doc = make_document(2)
        with pytest.raises(OutOfRangeError):
            doc.set_rotation(2, 90)

    def test_rotate_at_advances_clockwise(self, make_document):
        doc = make_document(3)
        doc.set_rotation(1, 270)
        assert doc.rotate_at([0, 1]) == 2
        assert doc.page(0).rotation == 90
        assert doc.page(1).rotation == 0
        assert doc.page(2).rotation == 0

    def test_rotate_at_validates_all_indices_first(self, make_document):
        doc = make_document(2)
        with pytest.raises(OutOfRangeError):
            doc.rotate_at([0, 9])
        assert doc.page(0).rotation == 0


class TestEvents:
    def test_mutations_publish_events(self, make_document):
        doc = make_document(3)
        events = []
        doc.subscribe(events.append)
        first, second = doc.page(0).page_id, doc.page(1).page_id

        doc.rotate_at([0])
        doc.remove_at([1])

        assert events == [PageInvalidated(doc.doc_id, first, 1), PageRemoved(doc.doc_id, second)]

    def test_event_sees_committed_state(self, make_document):
        doc = make_document(2)
        seen = []
        doc.subscribe(lambda event: seen.append((doc.revision, doc.page(0).version)))
        doc.rotate_at([0])
        assert seen == [(1, 1)]

    def test_unsubscribe(self, make_document):
        doc = make_document(2)
        events = []
        unsubscribe = doc.subscribe(events.append)
        unsubscribe()
        doc.rotate_at([0])
        assert events == []

    def test_failing_subscriber_does_not_stop_delivery(self, make_document):
        doc = make_document(2)
        seen = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        doc.subscribe(broken)
        doc.subscribe(seen.append)
        page_id = doc.page(0).page_id

        assert doc.rotate_at([0]) == 1

        assert doc.page(0).rotation == 90
        assert doc.revision == 1
        assert seen == [PageInvalidated(doc.doc_id, page_id, 1)]

    def test_failed_mutation_publishes_nothing(self, make_document):
        doc = make_document(2)
        events = []
        doc.subscribe(events.append)
        with pytest.raises(EmptyResultError):
            doc.remove_at([0, 1])
        assert events == []


class TestLoadDocument:
    def test_load_pages(self):
        doc = load_document(make_pdf_bytes(4), name="report.pdf", engine=PdfEngine())
        assert doc.page_count() == 4
        assert doc.name == "report.pdf"
        assert doc.modified is False
        page = doc.page(0)
        assert (page.content.width, page.content.height) == (612, 792)
        assert page.content.data.startswith(b"%PDF")

    def test_pages_have_distinct_content(self):
        doc = load_document(make_pdf_bytes(2), engine=PdfEngine())
        first, second = doc.pages()
        assert first.content.content_key != second.content.content_key

    def test_corrupt_bytes(self):
        with pytest.raises(LoadError) as exc_info:
            load_document(b"this is not a pdf", engine=PdfEngine())
        assert exc_info.value.kind is LoadErrorKind.CORRUPT

    def test_document_without_pages(self):
        engine = MagicMock()
        engine.page_count.return_value = 0
        with pytest.raises(LoadError) as exc_info:
            load_document(b"%PDF", engine=engine)
        assert exc_info.value.kind is LoadErrorKind.UNSUPPORTED
        engine.close.assert_called_once()

    def test_cancel(self):
        with pytest.raises(OperationCancelledError):
            load_document(make_pdf_bytes(3), engine=PdfEngine(), should_cancel=lambda: True)

    def test_load_file(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "scan.pdf")
            with open(path, "wb") as f:
                f.write(make_pdf_bytes(2))
            doc = load_document_file(path, engine=PdfEngine())
        assert doc.name == "scan.pdf"
        assert doc.page_count() == 2

    def test_missing_file(self):
        with pytest.raises(LoadError) as exc_info:
            load_document_file("/nonexistent/file.pdf", engine=PdfEngine())
        assert exc_info.value.kind is LoadErrorKind.IO
