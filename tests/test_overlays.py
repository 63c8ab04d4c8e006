"""Tests for overlays module (overlay compositor and coordinate helpers)."""

import pytest
from PIL import Image

from folioedit.editor.overlays import (
    add_overlay,
    default_size,
    display_to_page,
    list_overlays,
    move_overlay,
    overlay_fingerprint,
    page_to_display,
    remove_overlay,
    resize_overlay,
    text_content,
)
from folioedit.editor.page_model import (
    CustomStampContent,
    OverlayItem,
    Rect,
    StampContent,
    StampKind,
    TextContent,
)
from folioedit.editor.render_cache import RenderCache
from folioedit.services import image_engine
from folioedit.services.stamp_assets import StampAssetProvider
from folioedit.utils.exceptions import (
    OverlayNotFoundError,
    PageNotFoundError,
    StampNotFoundError,
)


class TestAddOverlay:
    def test_ids_follow_creation_order(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        first = add_overlay(doc, page_id, StampContent(StampKind.APPROVED))
        second = add_overlay(doc, page_id, TextContent("hello"))
        assert second > first
        assert [o.overlay_id for o in list_overlays(doc, page_id)] == [first, second]

    def test_ids_not_reused_after_remove(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        first = add_overlay(doc, page_id, TextContent("a"))
        remove_overlay(doc, page_id, first)
        assert add_overlay(doc, page_id, TextContent("b")) > first

    def test_bumps_page_version(self, make_document):
        doc = make_document(2)
        page_id = doc.page(1).page_id
        add_overlay(doc, page_id, StampContent(StampKind.DRAFT))
        assert doc.page(1).version == 1
        assert doc.page(0).version == 0
        assert doc.revision == 1

    def test_default_stamp_is_centered(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        add_overlay(doc, page_id, StampContent(StampKind.REJECTED))
        (item,) = list_overlays(doc, page_id)
        assert item.rect == Rect(256.0, 371.0, 100.0, 50.0)

    def test_stamp_size_from_config(self, isolated_config):
        isolated_config.set("overlay.stamp_width", 200, save_immediately=False)
        assert default_size(StampContent(StampKind.DRAFT)) == (200.0, 50.0)

    def test_explicit_rect_is_kept(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        add_overlay(doc, page_id, TextContent("x"), Rect(5, 6, 70, 20))
        assert list_overlays(doc, page_id)[0].rect == Rect(5, 6, 70, 20)

    def test_degenerate_size_is_clamped(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        add_overlay(doc, page_id, TextContent("x"), Rect(5, 6, 0, -3))
        rect = list_overlays(doc, page_id)[0].rect
        assert (rect.width, rect.height) == (1.0, 1.0)

    def test_custom_stamp_keeps_aspect_ratio(self, make_document):
        assets = StampAssetProvider(asset_dir="")
        assets.register("tall", image_engine.encode_png(Image.new("RGBA", (20, 80))))
        doc = make_document(1)
        page_id = doc.page(0).page_id
        add_overlay(doc, page_id, CustomStampContent("tall"), assets=assets)
        (item,) = list_overlays(doc, page_id)
        assert item.rect == Rect(293.5, 346.0, 25.0, 100.0)
        assert item.content == CustomStampContent("tall")

    def test_unregistered_custom_stamp_needs_rect(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        with pytest.raises(StampNotFoundError):
            add_overlay(doc, page_id, CustomStampContent("nope"), assets=StampAssetProvider(""))
        assert doc.revision == 0
        add_overlay(doc, page_id, CustomStampContent("nope"), Rect(0, 0, 10, 10))
        assert doc.revision == 1

    def test_unknown_page(self, make_document):
        doc = make_document(1)
        with pytest.raises(PageNotFoundError):
            add_overlay(doc, -1, TextContent("x"))
        assert doc.revision == 0


class TestRemoveOverlay:
    def test_remove(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        overlay_id = add_overlay(doc, page_id, TextContent("x"))
        assert remove_overlay(doc, page_id, overlay_id) is True
        assert list_overlays(doc, page_id) == []
        assert doc.page(0).version == 2

    def test_remove_unknown_returns_false(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        assert remove_overlay(doc, page_id, 42) is False
        assert doc.page(0).version == 0


class TestMoveAndResize:
    def test_move(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        overlay_id = add_overlay(doc, page_id, StampContent(StampKind.DRAFT), Rect(0, 0, 100, 50))
        move_overlay(doc, page_id, overlay_id, 30, 40)
        assert list_overlays(doc, page_id)[0].rect == Rect(30, 40, 100, 50)

    def test_move_changes_render_key(self, make_document, fake_engine, fake_assets):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        overlay_id = add_overlay(doc, page_id, StampContent(StampKind.DRAFT), Rect(0, 0, 100, 50))
        cache = RenderCache(engine=fake_engine, assets=fake_assets, max_workers=1)
        try:
            before = cache.key_for(doc, page_id, scale=0.5)
            move_overlay(doc, page_id, overlay_id, 10, 10)
            after = cache.key_for(doc, page_id, scale=0.5)
        finally:
            cache.shutdown()
        assert after != before
        assert after.version == before.version + 1

    def test_move_to_same_position_is_noop(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        overlay_id = add_overlay(doc, page_id, TextContent("x"), Rect(1, 2, 30, 10))
        move_overlay(doc, page_id, overlay_id, 1, 2)
        assert doc.page(0).version == 1

    def test_move_unknown_overlay(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        with pytest.raises(OverlayNotFoundError):
            move_overlay(doc, page_id, 9, 0, 0)
        assert doc.page(0).version == 0

    def test_resize(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        overlay_id = add_overlay(doc, page_id, StampContent(StampKind.DRAFT), Rect(5, 5, 100, 50))
        resize_overlay(doc, page_id, overlay_id, 60, 30)
        assert list_overlays(doc, page_id)[0].rect == Rect(5, 5, 60, 30)

    def test_resize_unknown_overlay(self, make_document):
        doc = make_document(1)
        with pytest.raises(KeyError):
            resize_overlay(doc, doc.page(0).page_id, 1, 10, 10)


class TestOverlayHelpers:
    def test_text_content_clamps_font_size(self):
        assert text_content("a", 2).font_size == 8.0
        assert text_content("a", 200).font_size == 72.0
        assert text_content("a").font_size == 12.0

    def test_default_text_size(self):
        width, height = default_size(TextContent("abcd\nxy", 10))
        assert width == pytest.approx(24.0)
        assert height == pytest.approx(24.0)

    def test_fingerprint_tracks_content_and_position(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        empty = overlay_fingerprint(())
        overlay_id = add_overlay(doc, page_id, TextContent("x"), Rect(0, 0, 10, 10))
        placed = overlay_fingerprint(doc.page(0).overlays)
        move_overlay(doc, page_id, overlay_id, 1, 0)
        moved = overlay_fingerprint(doc.page(0).overlays)
        assert len({empty, placed, moved}) == 3

    def test_fingerprint_distinguishes_custom_stamps(self):
        rect = Rect(0, 0, 10, 10)
        first = overlay_fingerprint([OverlayItem(1, CustomStampContent("a"), rect)])
        second = overlay_fingerprint([OverlayItem(1, CustomStampContent("b"), rect)])
        builtin = overlay_fingerprint([OverlayItem(1, StampContent(StampKind.DRAFT), rect)])
        assert len({first, second, builtin}) == 3

    def test_fingerprint_is_stable(self, make_document):
        doc = make_document(1)
        page_id = doc.page(0).page_id
        add_overlay(doc, page_id, TextContent("x"), Rect(0, 0, 10, 10))
        overlays = doc.page(0).overlays
        assert overlay_fingerprint(overlays) == overlay_fingerprint(tuple(overlays))


class TestCoordinates:
    PAGE = (600.0, 800.0)
    RECT = Rect(10, 20, 100, 50)

    @pytest.mark.parametrize(
        "rotation,expected",
        [
            (0, Rect(10, 20, 100, 50)),
            (90, Rect(730, 10, 50, 100)),
            (180, Rect(490, 730, 100, 50)),
            (270, Rect(20, 490, 50, 100)),
        ],
    )
    def test_page_to_display(self, rotation, expected):
        assert page_to_display(self.RECT, self.PAGE, rotation) == expected

    @pytest.mark.parametrize("rotation", [0, 90, 180, 270])
    def test_display_to_page_inverts(self, rotation):
        shown = page_to_display(self.RECT, self.PAGE, rotation, zoom=1.5)
        back = display_to_page(shown, self.PAGE, rotation, zoom=1.5)
        assert back.x == pytest.approx(self.RECT.x)
        assert back.y == pytest.approx(self.RECT.y)
        assert back.width == pytest.approx(self.RECT.width)
        assert back.height == pytest.approx(self.RECT.height)

    def test_zoom_scales(self):
        assert page_to_display(self.RECT, self.PAGE, 0, zoom=2) == Rect(20, 40, 200, 100)

    def test_invalid_zoom(self):
        with pytest.raises(ValueError):
            display_to_page(self.RECT, self.PAGE, 0, zoom=0)
