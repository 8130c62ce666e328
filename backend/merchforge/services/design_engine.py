"""
Design variant generation.

A two-stage pipeline: a proposer (the model, or the hand-authored fallback
set) picks layout tokens from small closed vocabularies, and a pure renderer
maps any sanitized token set to SVG markup using per-composition coordinate
tables.  The proposer can make a layout boring but never invalid.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from xml.sax.saxutils import escape, quoteattr

from merchforge.config import DESIGN_TOKENS_PROMPT
from merchforge.models.design import DesignTokens, DesignVariant
from merchforge.models.product import Icon
from merchforge.services import llm_client
from merchforge.services.catalog import NO_ICON, find_icon

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Token vocabularies
# ---------------------------------------------------------------------------
COMPOSITIONS = ["stacked", "badge", "split", "overlay", "minimal", "banner"]
TEXT_SIZES: dict[str, int] = {"small": 32, "medium": 40, "large": 48, "xl": 56}
TEXT_STYLES = ["uppercase", "titlecase", "lowercase", "none"]
FONTS: dict[str, str] = {
    "sans": "'Helvetica Neue', sans-serif",
    "serif": "'Georgia', serif",
    "impact": "'Impact', sans-serif",
    "mono": "'Courier New', monospace",
    "script": "'Brush Script MT', cursive",
}
FONT_WEIGHTS: dict[str, int] = {"regular": 400, "bold": 700, "black": 900}
LETTER_SPACINGS: dict[str, int] = {"tight": -1, "normal": 0, "wide": 2, "wider": 4}
ICON_POSITIONS = ["above", "below", "left", "right", "behind"]
ICON_SIZES: dict[str, float] = {"small": 1.5, "medium": 2.5, "large": 4.0}
ICON_STYLES = ["outline", "filled"]
BORDERS = ["none", "circle", "double_circle", "dashed_circle", "rounded_rect"]
ACCENTS = ["none", "underline", "dots", "rays"]

TOKEN_VOCABULARY: dict[str, list[str]] = {
    "composition": COMPOSITIONS,
    "text_size": list(TEXT_SIZES),
    "text_style": TEXT_STYLES,
    "font": list(FONTS),
    "font_weight": list(FONT_WEIGHTS),
    "letter_spacing": list(LETTER_SPACINGS),
    "icon_position": ICON_POSITIONS,
    "icon_size": list(ICON_SIZES),
    "icon_style": ICON_STYLES,
    "border": BORDERS,
    "accent": ACCENTS,
}

# Text baseline per composition: (with icon, text only)
_TEXT_BASELINES: dict[str, tuple[int, int]] = {
    "stacked": (280, 215),
    "badge": (260, 215),
    "split": (215, 215),
    "overlay": (215, 215),
    "minimal": (180, 210),
    "banner": (230, 215),
}

CANVAS = 400
CENTER = CANVAS // 2
_CHAR_WIDTH = 0.62  # average glyph width relative to font size

Completion = Callable[..., Awaitable[str]]


# ---------------------------------------------------------------------------
# Sanitizing
# ---------------------------------------------------------------------------

def _snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _short_str(value: Any, limit: int) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.split())[:limit]


def sanitize_design(raw: Any, index: int = 0) -> DesignTokens:
    """Coerce a proposed layout onto the closed vocabulary.

    Unknown or missing tokens fall back to the ``DesignTokens`` default for
    that field; free-text fields are trimmed.
    """
    source = raw if isinstance(raw, dict) else {}
    defaults = DesignTokens()
    values: dict[str, Any] = {
        "name": _short_str(source.get("name"), 40) or f"Design {index + 1}",
        "style": _short_str(source.get("style"), 120),
        "reasoning": _short_str(source.get("reasoning"), 240),
    }
    for field, allowed in TOKEN_VOCABULARY.items():
        value = source.get(_snake_to_camel(field), source.get(field))
        token = value.strip().lower() if isinstance(value, str) else None
        values[field] = token if token in allowed else getattr(defaults, field)
    return DesignTokens(**values)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _apply_text_style(text: str, style: str) -> str:
    if style == "uppercase":
        return text.upper()
    if style == "lowercase":
        return text.lower()
    if style == "titlecase":
        return text.title()
    return text


def _fit_font_size(base: int, text: str, max_width: float) -> int:
    if not text:
        return base
    fitted = int(max_width / (_CHAR_WIDTH * len(text)))
    return max(14, min(base, fitted))


def _fmt(value: float) -> str:
    return f"{value:g}"


def _icon_markup(icon: Icon, x: float, y: float, scale: float, filled: bool, opacity: float) -> str:
    offset = -12 * scale
    paint = (
        'fill="currentColor"'
        if filled
        else 'fill="none" stroke="currentColor" stroke-width="2" stroke-linecap="round" stroke-linejoin="round"'
    )
    return (
        f'<g transform="translate({_fmt(x)}, {_fmt(y)})">'
        f'<path d={quoteattr(icon.path)} {paint} opacity="{_fmt(opacity)}" '
        f'transform="translate({_fmt(offset)}, {_fmt(offset)}) scale({_fmt(scale)})" /></g>'
    )


def _border_markup(border: str) -> list[str]:
    if border == "circle":
        return [f'<circle cx="{CENTER}" cy="{CENTER}" r="140" fill="none" stroke="currentColor" stroke-width="6" />']
    if border == "double_circle":
        return [
            f'<circle cx="{CENTER}" cy="{CENTER}" r="140" fill="none" stroke="currentColor" stroke-width="6" />',
            f'<circle cx="{CENTER}" cy="{CENTER}" r="150" fill="none" stroke="currentColor" stroke-width="2" stroke-dasharray="5,5" />',
        ]
    if border == "dashed_circle":
        return [f'<circle cx="{CENTER}" cy="{CENTER}" r="145" fill="none" stroke="currentColor" stroke-width="3" stroke-dasharray="8,6" />']
    if border == "rounded_rect":
        return ['<rect x="40" y="40" width="320" height="320" rx="28" fill="none" stroke="currentColor" stroke-width="5" />']
    return []


def render_design(tokens: DesignTokens, text: str, icon: Icon | None = None) -> str:
    """Deterministically render *tokens* to a 400x400 SVG document."""
    show_icon = icon is not None and icon.id != NO_ICON and bool(icon.path)
    composition = tokens.composition if tokens.composition in _TEXT_BASELINES else "stacked"
    position = tokens.icon_position
    if composition == "split" and position not in ("left", "right"):
        position = "left"
    elif composition == "overlay":
        position = "behind"

    display = _apply_text_style(text, tokens.text_style)
    text_x: float = CENTER
    text_y: float = _TEXT_BASELINES[composition][0 if show_icon else 1]
    max_width = 300.0
    if show_icon and position in ("left", "right"):
        max_width = 210.0
        text_x = 235 if position == "left" else 165
    font_size = _fit_font_size(TEXT_SIZES.get(tokens.text_size, 48), display, max_width)
    text_width = min(max_width, _CHAR_WIDTH * font_size * len(display))

    parts: list[str] = [f'<svg viewBox="0 0 {CANVAS} {CANVAS}" xmlns="http://www.w3.org/2000/svg">']

    border = tokens.border
    if composition == "badge" and border == "none":
        border = "circle"
    parts.extend(_border_markup(border))

    if composition == "banner":
        band_h = font_size * 1.6
        parts.append(
            f'<rect x="20" y="{_fmt(text_y - font_size * 1.15)}" width="360" height="{_fmt(band_h)}" '
            f'fill="currentColor" opacity="0.12" />'
        )

    icon_x = icon_y = 0.0
    scale = ICON_SIZES.get(tokens.icon_size, 2.5)
    if show_icon:
        half = 12 * scale
        opacity = 1.0
        if position == "above":
            icon_x, icon_y = CENTER, max(half + 8, text_y - font_size - half - 36)
        elif position == "below":
            icon_x, icon_y = CENTER, min(CANVAS - half - 8, text_y + half + 42)
        elif position == "left":
            icon_x, icon_y = 75, text_y - font_size * 0.35
        elif position == "right":
            icon_x, icon_y = 325, text_y - font_size * 0.35
        else:
            scale = min(ICON_SIZES["large"] * 1.8, scale * 2)
            icon_x, icon_y = CENTER, text_y - font_size * 0.35
            opacity = 0.2
        parts.append(_icon_markup(icon, icon_x, icon_y, scale, tokens.icon_style == "filled", opacity))

    parts.append(
        f'<text x="{_fmt(text_x)}" y="{_fmt(text_y)}" font-family="{FONTS.get(tokens.font, FONTS["sans"])}" '
        f'font-size="{font_size}" font-weight="{FONT_WEIGHTS.get(tokens.font_weight, 700)}" '
        f'text-anchor="middle" fill="currentColor" letter-spacing="{LETTER_SPACINGS.get(tokens.letter_spacing, 0)}">'
        f"{escape(display)}</text>"
    )

    if tokens.accent == "underline":
        y = text_y + 18
        parts.append(
            f'<line x1="{_fmt(text_x - text_width / 2)}" y1="{_fmt(y)}" x2="{_fmt(text_x + text_width / 2)}" '
            f'y2="{_fmt(y)}" stroke="currentColor" stroke-width="4" />'
        )
    elif tokens.accent == "dots":
        y = text_y - font_size * 0.35
        for x in (text_x - text_width / 2 - 18, text_x + text_width / 2 + 18):
            parts.append(f'<circle cx="{_fmt(x)}" cy="{_fmt(y)}" r="4" fill="currentColor" />')
    elif tokens.accent == "rays" and show_icon:
        inner, outer = 12 * scale + 8, 12 * scale + 20
        for dx, dy in ((0, -1), (1, 0), (0, 1), (-1, 0), (0.7071, -0.7071), (0.7071, 0.7071), (-0.7071, 0.7071), (-0.7071, -0.7071)):
            parts.append(
                f'<line x1="{_fmt(round(icon_x + dx * inner, 1))}" y1="{_fmt(round(icon_y + dy * inner, 1))}" '
                f'x2="{_fmt(round(icon_x + dx * outer, 1))}" y2="{_fmt(round(icon_y + dy * outer, 1))}" '
                f'stroke="currentColor" stroke-width="2" stroke-linecap="round" />'
            )

    parts.append("</svg>")
    return "\n".join(parts)


def render_text_only(text: str) -> str:
    """Plain centered text, used when no variant has been chosen."""
    display = text.upper()
    font_size = _fit_font_size(56, display, 320)
    return (
        f'<svg viewBox="0 0 {CANVAS} {CANVAS}" xmlns="http://www.w3.org/2000/svg">\n'
        f'<text x="{CENTER}" y="210" font-family="{FONTS["sans"]}" font-size="{font_size}" '
        f'font-weight="700" text-anchor="middle" fill="currentColor">{escape(display)}</text>\n'
        f"</svg>"
    )


def get_contrast_color(bg_hex: str) -> str:
    """Dark ink for light backgrounds, light ink for dark ones."""
    value = bg_hex.lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    try:
        r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return "#1a1a1a"
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return "#1a1a1a" if luminance > 0.5 else "#f5f5f5"


# ---------------------------------------------------------------------------
# Fallback layouts
# ---------------------------------------------------------------------------
FALLBACK_DESIGNS: list[DesignTokens] = [
    DesignTokens(
        name="Minimal",
        style="Clean text-focused with subtle accent",
        reasoning="Clean composition with restrained icon placement.",
        composition="minimal",
        text_size="large",
        font="sans",
        font_weight="bold",
        letter_spacing="tight",
        icon_position="below",
        icon_size="small",
        icon_style="outline",
    ),
    DesignTokens(
        name="Bold Statement",
        style="Maximum impact with large elements",
        reasoning="Commands attention through scale and contrast.",
        composition="stacked",
        text_size="xl",
        font="impact",
        font_weight="black",
        letter_spacing="wide",
        icon_position="above",
        icon_size="large",
        icon_style="filled",
        accent="underline",
    ),
    DesignTokens(
        name="Retro Badge",
        style="Vintage-inspired circular composition",
        reasoning="Nostalgic aesthetic with circular framing.",
        composition="badge",
        text_size="medium",
        font="serif",
        font_weight="bold",
        icon_position="above",
        icon_size="medium",
        icon_style="filled",
        border="double_circle",
    ),
]

_VIBE_LEADS: dict[str, str] = {
    "minimal": "Minimal",
    "bold": "Bold Statement",
    "sporty": "Bold Statement",
    "retro": "Retro Badge",
    "cute": "Retro Badge",
}


def fallback_designs(vibe: str | None = None) -> list[DesignTokens]:
    """The hand-authored trio, with the one matching *vibe* first."""
    lead = _VIBE_LEADS.get(vibe or "")
    if lead is None:
        return list(FALLBACK_DESIGNS)
    return sorted(FALLBACK_DESIGNS, key=lambda t: t.name != lead)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def build_design_prompt(text: str, icon_id: str | None, vibe: str | None, occasion: str | None) -> str:
    extra: list[str] = []
    if vibe:
        extra.append(f"- Design vibe: {vibe}")
    if occasion:
        extra.append(f"- Occasion: {occasion}")
    return DESIGN_TOKENS_PROMPT.format(
        compositions=json.dumps(COMPOSITIONS),
        text_sizes=json.dumps(list(TEXT_SIZES)),
        text_styles=json.dumps(TEXT_STYLES),
        fonts=json.dumps(list(FONTS)),
        font_weights=json.dumps(list(FONT_WEIGHTS)),
        letter_spacings=json.dumps(list(LETTER_SPACINGS)),
        icon_positions=json.dumps(ICON_POSITIONS),
        icon_sizes=json.dumps(list(ICON_SIZES)),
        icon_styles=json.dumps(ICON_STYLES),
        borders=json.dumps(BORDERS),
        accents=json.dumps(ACCENTS),
        text=text,
        icon_line=f'Icon: "{icon_id}".' if icon_id else "No icon is selected; icon tokens are ignored.",
        extra_lines="\n".join(extra),
    )


def _layouts_from_reply(parsed: Any) -> list[Any]:
    if isinstance(parsed, dict):
        parsed = parsed.get("designs") or parsed.get("layouts") or parsed.get("variants")
    if not isinstance(parsed, list) or not parsed:
        raise ValueError("model reply holds no layouts")
    return parsed


def build_variants(token_sets: list[DesignTokens], text: str, icon: Icon | None) -> list[DesignVariant]:
    """Render token sets into variants ``A, B, C`` with descending scores."""
    return [
        DesignVariant(
            id=chr(65 + i),
            name=tokens.name,
            style=tokens.style,
            svg=render_design(tokens, text, icon),
            score=90 - i * 5,
            reasoning=tokens.reasoning,
        )
        for i, tokens in enumerate(token_sets[:3])
    ]


async def generate_designs(
    text: str,
    icon_id: str | None = None,
    vibe: str | None = None,
    occasion: str | None = None,
    complete: Completion | None = None,
) -> list[DesignVariant]:
    """Produce exactly three rendered variants.

    The model proposes token sets; anything it gets wrong is sanitized, and
    any failure at all falls back to the hand-authored trio.
    """
    icon = find_icon(icon_id) if icon_id and icon_id != NO_ICON else None
    complete = complete or llm_client.chat_completion

    try:
        prompt = build_design_prompt(text, icon.id if icon else None, vibe, occasion)
        raw = await complete([{"role": "system", "content": prompt}], json_mode=True)
        layouts = _layouts_from_reply(llm_client.parse_json_payload(raw))
        token_sets = [sanitize_design(layout, i) for i, layout in enumerate(layouts[:3])]
        for extra in fallback_designs(vibe):
            if len(token_sets) >= 3:
                break
            token_sets.append(extra)
    except llm_client.LlmUnavailableError as exc:
        logger.warning("[design] model unavailable, using fallback layouts: %s", exc)
        token_sets = fallback_designs(vibe)
    except Exception as exc:
        logger.warning("[design] design generation failed, using fallback layouts: %s", exc)
        token_sets = fallback_designs(vibe)

    return build_variants(token_sets, text, icon)
