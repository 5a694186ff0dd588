"""Tests for the SVG slide renderers."""

from carousel_studio.core.brand import build_brand_tokens
from carousel_studio.core.render import (
    DEFAULT_BG,
    overlay_style,
    render_overlay_svg,
    render_slide_svg,
    slide_badge,
    truncate_text,
    wrap_text,
)

BG_URL = "https://cdn.test/bg.png"


class TestTextHelpers:
    def test_wrap(self):
        assert wrap_text("a b c", 3) == ["a b", "c"]
        assert wrap_text("", 10) == []
        assert wrap_text("supercalifragilistic x", 5) == ["supercalifragilistic", "x"]

    def test_truncate_at_word_boundary(self):
        assert truncate_text("hello world again", 12) == "hello world…"
        assert truncate_text("short", 12) == "short"
        assert truncate_text(None, 12) is None

    def test_badges(self):
        assert slide_badge(0, 5) == "CAPA"
        assert slide_badge(4, 5) == "CTA"
        assert slide_badge(2, 5) == "3/5"


class TestRenderSlideSvg:
    def test_cover_uses_brand_palette_and_fonts(self):
        tokens = build_brand_tokens(
            {"name": "B", "palette": ["#111111", "#222222"], "fonts": {"headings": "Montserrat"}}
        )
        svg = render_slide_svg({"headline": "Sleep better"}, 0, 3, tokens)
        assert svg.startswith("<svg")
        assert 'width="1080" height="1350"' in svg
        assert 'fill="#111111"' in svg
        assert 'fill="#222222"' in svg
        assert "Montserrat" in svg
        assert ">Sleep better</text>" in svg
        assert ">CAPA</text>" in svg

    def test_palette_defaults(self):
        svg = render_slide_svg({"headline": "x"}, 1, 3, build_brand_tokens({"name": "B"}))
        assert f'fill="{DEFAULT_BG}"' in svg
        assert 'font-family="Inter, sans-serif"' in svg

    def test_text_card_layout(self):
        tokens = build_brand_tokens({"name": "B"})
        card = render_slide_svg({"headline": "x", "templateHint": "wave_text_card"}, 1, 3, tokens)
        cover = render_slide_svg({"headline": "x"}, 1, 3, tokens)
        assert 'rx="24" fill="white"' in card
        assert 'rx="24" fill="white"' not in cover
        assert 'text-anchor="middle" fill=' in card

    def test_escapes_text(self):
        svg = render_slide_svg({"headline": "A & B <x>"}, 2, 3, build_brand_tokens({"name": "B"}))
        assert "A &amp; B &lt;x&gt;" in svg
        assert ">CTA</text>" in svg

    def test_story_height(self):
        svg = render_slide_svg({}, 0, 1, build_brand_tokens({"name": "B"}), height=1920)
        assert 'viewBox="0 0 1080 1920"' in svg


class TestOverlay:
    def test_style_defaults(self):
        style = overlay_style({"overlay_style": {"text_align": "center", "font_scale": None}})
        assert style["text_align"] == "center"
        assert style["font_scale"] == 1.0
        assert style["safe_area_bottom"] == 120

    def test_non_positive_font_scale_uses_default(self):
        for scale in (0, -1):
            svg = render_overlay_svg({"headline": "Hi", "overlay_style": {"font_scale": scale}}, BG_URL)
            assert 'font-size="72"' in svg
            assert ">Hi</text>" in svg

    def test_background_and_scrim(self):
        svg = render_overlay_svg({"headline": "Hi", "body": "there"}, BG_URL)
        assert f'<image href="{BG_URL}"' in svg
        assert 'fill="url(#scrim)"' in svg
        assert '<text x="43.2"' in svg
        assert 'text-anchor="middle"' not in svg

    def test_centered(self):
        svg = render_overlay_svg(
            {"headline": "Hi", "overlay_style": {"text_align": "center"}}, BG_URL
        )
        assert '<text x="540" y=' in svg
        assert 'text-anchor="middle"' in svg

    def test_overlay_text_wins_and_bullets(self):
        slide = {"headline": "Slide headline", "overlay": {"headline": "Overlay", "bullets": ["one", "", "two"]}}
        svg = render_overlay_svg(slide, BG_URL)
        assert ">Overlay</text>" in svg
        assert "Slide headline" not in svg
        assert "• one" in svg
        assert "• two" in svg

    def test_headline_line_limit(self):
        slide = {
            "headline": "one two three four five six seven eight nine ten eleven",
            "overlay_style": {"max_headline_lines": 1},
        }
        svg = render_overlay_svg(slide, BG_URL)
        assert svg.count('font-weight="800"') == 1

    def test_cover_body_is_truncated(self):
        slide = {"role": "cover", "body": "word " * 60}
        svg = render_overlay_svg(slide, BG_URL)
        assert "…" in svg

    def test_rows_above_safe_area_are_dropped(self):
        slide = {"headline": "Hi", "body": "there", "overlay_style": {"safe_area_top": 1300}}
        assert "<text" not in render_overlay_svg(slide, BG_URL)
