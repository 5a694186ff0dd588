"""SVG rendering of carousel slides.

Two families of output:

* ``render_slide_svg``: the deterministic brand templates (``wave_cover`` and
  ``wave_text_card``) drawn entirely from the brand palette and fonts.
* ``render_overlay_svg``: an AI background image with a bottom scrim and the
  slide text laid over it, shaped by the slide's ``overlay_style``.
"""

from __future__ import annotations

import re
from html import escape
from typing import Any

from carousel_studio.core.brand import BrandTokens

TEMPLATE_WAVE_COVER = "wave_cover"
TEMPLATE_WAVE_TEXT_CARD = "wave_text_card"

DEFAULT_BG = "#a4d3eb"
DEFAULT_DARK = "#10559a"
DEFAULT_ACCENT = "#c52244"
DEFAULT_CARD_BG = "#f5eaee"

HEADLINE_WRAP = 28
BODY_WRAP = 45

OVERLAY_STYLE_DEFAULTS: dict[str, Any] = {
    "text_align": "left",
    "max_headline_lines": 2,
    "font_scale": 1.0,
    "safe_area_top": 80,
    "safe_area_bottom": 120,
}


def _esc(value: str) -> str:
    return escape(value or "", quote=True)


def _fmt(value: float) -> str:
    # 918.0 -> "918", 1147.5 -> "1147.5"
    return f"{value:g}"


def wrap_text(text: str, max_chars: int) -> list[str]:
    """Greedy word wrap. A single word longer than ``max_chars`` gets its own line."""
    lines: list[str] = []
    current = ""
    for word in (text or "").split():
        if current and len(current) + len(word) + 1 > max_chars:
            lines.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        lines.append(current)
    return lines


def truncate_text(text: str | None, max_chars: int) -> str | None:
    """Cut ``text`` at a word boundary before ``max_chars`` and mark it with an ellipsis."""
    if not text or len(text) <= max_chars:
        return text
    return re.sub(r"\s+\S*$", "…", text[:max_chars])


def slide_badge(index: int, total: int) -> str:
    if index == 0:
        return "CAPA"
    if index == total - 1:
        return "CTA"
    return f"{index + 1}/{total}"


def _wave_path(width: int, height: int) -> str:
    w, h = width, height
    return (
        f"M0,{_fmt(h * 0.85)} "
        f"C{_fmt(w * 0.17)},{_fmt(h * 0.82)} {_fmt(w * 0.33)},{_fmt(h * 0.88)} {_fmt(w * 0.5)},{_fmt(h * 0.85)} "
        f"C{_fmt(w * 0.67)},{_fmt(h * 0.82)} {_fmt(w * 0.83)},{_fmt(h * 0.88)} {_fmt(w)},{_fmt(h * 0.85)} "
        f"L{_fmt(w)},{_fmt(h)} L0,{_fmt(h)} Z"
    )


def _badge(width: int, label: str, color: str, font: str) -> list[str]:
    return [
        f'<rect x="{width - 130}" y="30" width="100" height="36" rx="18" fill="{color}"/>',
        f'<text x="{width - 80}" y="54" text-anchor="middle" fill="white" '
        f'font-family="{_esc(font)}, sans-serif" font-size="16" font-weight="600">{_esc(label)}</text>',
    ]


def render_slide_svg(
    slide: dict[str, Any],
    index: int,
    total: int,
    tokens: BrandTokens,
    width: int = 1080,
    height: int = 1350,
) -> str:
    """Render one slide with its brand template (``templateHint``; default ``wave_cover``)."""
    hexes = tokens.hexes
    bg = hexes[0] if len(hexes) > 0 else DEFAULT_BG
    dark = hexes[1] if len(hexes) > 1 else DEFAULT_DARK
    accent = hexes[2] if len(hexes) > 2 else DEFAULT_ACCENT
    card_bg = hexes[3] if len(hexes) > 3 else DEFAULT_CARD_BG
    heading_font = tokens.fonts.get("headings") or "Inter"
    body_font = tokens.fonts.get("body") or "Inter"

    headline_lines = wrap_text(slide.get("headline") or "", HEADLINE_WRAP)
    body_lines = wrap_text(slide.get("body") or "", BODY_WRAP)

    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}">',
        f'<rect width="{width}" height="{height}" fill="{bg}"/>',
        f'<path d="{_wave_path(width, height)}" fill="white"/>',
    ]

    if slide.get("templateHint") == TEMPLATE_WAVE_TEXT_CARD:
        card_y = height * 0.25
        card_h = height * 0.45
        card_w = width * 0.82
        card_x = (width - card_w) / 2
        center = _fmt(width / 2)
        parts.append(
            f'<rect x="{_fmt(card_x)}" y="{_fmt(card_y)}" width="{_fmt(card_w)}" height="{_fmt(card_h)}" '
            f'rx="24" fill="white" stroke="{card_bg}" stroke-width="3"/>'
        )
        parts.append(
            f'<rect x="{_fmt(width / 2 - 24)}" y="{_fmt(card_y + 48)}" width="48" height="4" rx="2" fill="{accent}"/>'
        )
        for i, line in enumerate(headline_lines):
            parts.append(
                f'<text x="{center}" y="{_fmt(card_y + 100 + i * 52)}" text-anchor="middle" fill="{dark}" '
                f'font-family="{_esc(heading_font)}, sans-serif" font-size="48" font-weight="700">{_esc(line)}</text>'
            )
        body_top = card_y + 100 + len(headline_lines) * 52 + 30
        for i, line in enumerate(body_lines):
            parts.append(
                f'<text x="{center}" y="{_fmt(body_top + i * 36)}" text-anchor="middle" fill="{dark}" '
                f'font-family="{_esc(body_font)}, sans-serif" font-size="28" opacity="0.75">{_esc(line)}</text>'
            )
    else:
        text_y = height * 0.4
        parts.append(f'<rect x="60" y="{_fmt(text_y)}" width="60" height="6" rx="3" fill="{accent}"/>')
        for i, line in enumerate(headline_lines):
            parts.append(
                f'<text x="60" y="{_fmt(text_y + 60 + i * 68)}" fill="{dark}" '
                f'font-family="{_esc(heading_font)}, sans-serif" font-size="64" font-weight="800">{_esc(line)}</text>'
            )
        body_top = text_y + 60 + len(headline_lines) * 68 + 30
        for i, line in enumerate(body_lines):
            parts.append(
                f'<text x="60" y="{_fmt(body_top + i * 40)}" fill="{dark}" '
                f'font-family="{_esc(body_font)}, sans-serif" font-size="32" opacity="0.8">{_esc(line)}</text>'
            )

    parts.extend(_badge(width, slide_badge(index, total), dark, heading_font))
    parts.append("</svg>")
    return "\n".join(parts)


def overlay_style(slide: dict[str, Any]) -> dict[str, Any]:
    """The slide's overlay style with defaults filled in."""
    style = dict(OVERLAY_STYLE_DEFAULTS)
    style.update({k: v for k, v in (slide.get("overlay_style") or {}).items() if v is not None})
    return style


def render_overlay_svg(
    slide: dict[str, Any],
    background_url: str,
    tokens: BrandTokens | None = None,
    width: int = 1080,
    height: int = 1350,
) -> str:
    """Render the slide text over ``background_url``.

    Text comes from ``slide["overlay"]`` when present, otherwise from the
    slide's ``headline``/``body``. The block is anchored to the bottom safe
    area and grows upwards; anything that would cross the top safe area is
    dropped.
    """
    overlay = slide.get("overlay") or {}
    style = overlay_style(slide)
    scale = float(style["font_scale"])
    if scale <= 0:
        scale = OVERLAY_STYLE_DEFAULTS["font_scale"]
    max_lines = int(style["max_headline_lines"])
    centered = style["text_align"] == "center"

    fonts = tokens.fonts if tokens else {}
    heading_font = fonts.get("headings") or "Inter"
    body_font = fonts.get("body") or "Inter"

    headline = truncate_text(overlay.get("headline") or slide.get("headline"), max_lines * 40)
    body_limit = 120 if slide.get("role") == "cover" else 200
    body = truncate_text(overlay.get("body") or slide.get("body"), body_limit)
    bullets = [b for b in (overlay.get("bullets") or []) if b][:5]

    headline_size = 36 * scale * 2
    body_size = 20 * scale * 2
    headline_step = headline_size * 1.15
    body_step = body_size * 1.5

    headline_lines = wrap_text(headline or "", max(8, int(HEADLINE_WRAP / scale)))[:max_lines]
    body_lines = wrap_text(body or "", max(12, int(BODY_WRAP / scale)))
    body_lines.extend(f"• {b}" for b in bullets)

    x = width / 2 if centered else width * 0.04
    anchor = ' text-anchor="middle"' if centered else ""

    # lay out from the bottom safe area upwards
    rows: list[tuple[str, float, str, float, str]] = []
    y = height - float(style["safe_area_bottom"])
    for line in reversed(body_lines):
        rows.append((line, y, body_font, body_size, 'font-weight="400" fill-opacity="0.9"'))
        y -= body_step
    if body_lines and headline_lines:
        y -= body_step * 0.5
    for line in reversed(headline_lines):
        rows.append((line, y, heading_font, headline_size, 'font-weight="800"'))
        y -= headline_step
    top = float(style["safe_area_top"])
    rows = [r for r in rows if r[1] - r[3] >= top]

    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" '
        f'width="{width}" height="{height}" viewBox="0 0 {width} {height}">',
        "<defs>",
        '<linearGradient id="scrim" x1="0" y1="1" x2="0" y2="0">',
        '<stop offset="0%" stop-color="#000000" stop-opacity="0.6"/>',
        '<stop offset="50%" stop-color="#000000" stop-opacity="0.2"/>',
        '<stop offset="100%" stop-color="#000000" stop-opacity="0"/>',
        "</linearGradient>",
        "</defs>",
        f'<image href="{_esc(background_url)}" x="0" y="0" width="{width}" height="{height}" '
        f'preserveAspectRatio="xMidYMid slice"/>',
        f'<rect x="0" y="{_fmt(height * 0.45)}" width="{width}" height="{_fmt(height * 0.55)}" fill="url(#scrim)"/>',
    ]
    for line, line_y, font, size, extra in reversed(rows):
        parts.append(
            f'<text x="{_fmt(x)}" y="{_fmt(line_y)}"{anchor} fill="#ffffff" '
            f'font-family="{_esc(font)}, sans-serif" font-size="{_fmt(size)}" {extra}>{_esc(line)}</text>'
        )
    parts.append("</svg>")
    return "\n".join(parts)
