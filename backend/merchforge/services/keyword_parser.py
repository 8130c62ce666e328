"""
Deterministic keyword extraction for the customization chat.

Pure regex and vocabulary matching over the raw utterance, with no I/O.  The
output is a raw update dict in the same shape the model is asked to return,
so it goes through the same validator before merging.
"""

from __future__ import annotations

import re
from typing import Any

from merchforge.config import OCCASION_KEYWORDS, OCCASIONS, TEXT_COLOR_OPTIONS, VIBE_KEYWORDS
from merchforge.services.catalog import ICON_IDS, NO_ICON, find_icon_by_keyword

# ---------------------------------------------------------------------------
# Vocabulary and patterns
# ---------------------------------------------------------------------------

PRODUCT_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("classic-tee", re.compile(r"\b(?:t-?shirts?|tshirts?|tees?|shirts?)\b")),
    ("hoodie", re.compile(r"\b(?:hoodies?|sweatshirts?)\b")),
    ("tote", re.compile(r"\b(?:totes?|bags?)\b")),
    ("mug", re.compile(r"\b(?:mugs?|cups?)\b")),
]

COLOR_WORDS: list[str] = list(TEXT_COLOR_OPTIONS)

_PRODUCT_NOUNS = r"(?:t-shirt|tshirt|tee|shirt|hoodie|sweatshirt|tote|bag|mug|top|garment|item)s?"
_DESIGN_NOUNS = r"(?:text|icon|star|heart|logo|arrow|wave|sun|moon|mountain|design|print|letters?|font|graphic)s?"

# Apostrophe guard keeps "I'm" and "it's" from reading as sizes M and S
SIZE_PATTERN = re.compile(r"(?<!['’])\b(2xl|xxl|xl|xs|s|m|l)\b")
SIZE_WORDS: dict[str, str] = {
    "extra small": "XS",
    "extra large": "XL",
    "small": "S",
    "medium": "M",
    "large": "L",
}
SIZE_WORD_PATTERN = re.compile(r"\bsize\s+(extra small|extra large|small|medium|large)\b|\b(extra small|extra large|small|medium|large)\s+size\b")

QUANTITY_PATTERN = re.compile(
    r"\b(\d+)\s*(?:x\s*)?(?:items|pcs|pieces|units|copies|shirts|tees|hoodies|totes|bags|mugs)\b"
    r"|\b(?:quantity|qty)\s*(?:of|:)?\s*(\d+)\b"
)

QUOTE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r'"([^"]+)"'),
    re.compile(r"“([^”]+)”"),
    re.compile(r"‘([^’]+)’"),
    re.compile(r"(?<![\w])'([^']+)'(?![\w])"),
]

ADD_TO_CART_PATTERN = re.compile(r"\badd (?:it |this |them )?to (?:my |the )?cart\b|\bcheck ?out\b|\bready to buy\b|\bbuy (?:it |this )?now\b")
# "a hiking icon" names an icon by one of its keywords
NAMED_ICON_PATTERN = re.compile(r"\b([a-z]{4,})\s+(?:icon|graphic|symbol)s?\b")
REMOVE_ICON_PATTERN = re.compile(
    r"\b(?:remove|drop|delete|lose|ditch)\b[\w\s]{0,20}?\b(?:icon|graphic|logo|symbol|" + "|".join(ICON_IDS[1:]) + r")s?\b"
    r"|\b(?:no|without)\s+(?:an?\s+)?(?:icon|graphic|logo|symbol)s?\b"
    r"|\btext only\b"
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def extract_quoted_text(message: str) -> str | None:
    """First quoted substring (straight, curly, or single quotes)."""
    for pattern in QUOTE_PATTERNS:
        match = pattern.search(message)
        if match and match.group(1).strip():
            return match.group(1)
    return None


def _strip_quoted(message: str) -> str:
    """Blank out quoted segments so their words do not read as options."""
    for pattern in QUOTE_PATTERNS:
        message = pattern.sub(" ", message)
    return message


def _match_product(text: str) -> str | None:
    for product_id, pattern in PRODUCT_PATTERNS:
        if pattern.search(text):
            return product_id
    return None


def _match_colors(text: str) -> dict[str, str]:
    """Split color mentions into garment color vs print color by adjacency."""
    updates: dict[str, str] = {}
    for color in COLOR_WORDS:
        if not re.search(rf"\b{color}\b", text):
            continue
        near_product = re.search(rf"\b{color}\s+{_PRODUCT_NOUNS}\b", text) or re.search(
            rf"\b{_PRODUCT_NOUNS}\s+(?:in|of)\s+{color}\b", text
        )
        near_design = re.search(rf"\b{color}\s+{_DESIGN_NOUNS}\b", text) or re.search(
            rf"\b{_DESIGN_NOUNS}\s+(?:in|of)\s+{color}\b", text
        )
        if near_product:
            updates["productColor"] = color
        elif near_design:
            updates["textColor"] = color
        elif "productColor" not in updates:
            updates["productColor"] = color
    return updates


def _match_size(text: str) -> str | None:
    match = SIZE_PATTERN.search(text)
    if match:
        return match.group(1).upper()
    word = SIZE_WORD_PATTERN.search(text)
    if word:
        return SIZE_WORDS[word.group(1) or word.group(2)]
    return None


def _match_icon(text: str) -> str | None:
    for icon_id in ICON_IDS:
        if icon_id == NO_ICON:
            continue
        if icon_id in OCCASIONS:
            # "a gift for my sister" names an occasion, not an icon
            if re.search(rf"\b{icon_id}\s+(?:icon|graphic|symbol)\b", text):
                return icon_id
            continue
        if re.search(rf"\b{icon_id}s?\b", text):
            return icon_id
    named = NAMED_ICON_PATTERN.search(text)
    if named:
        icon = find_icon_by_keyword(named.group(1))
        if icon.id != NO_ICON:
            return icon.id
    return None


def _match_keyword_table(text: str, table: dict[str, list[str]]) -> str | None:
    for value, keywords in table.items():
        if any(re.search(rf"\b{re.escape(k)}\b", text) for k in keywords):
            return value
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_keyword_updates(message: str) -> dict[str, Any]:
    """Extract raw customization updates from *message* without any model.

    The result uses the wire field names (``productId``, ``iconId``,
    ``productColor`` ...) and still has to be validated.
    """
    updates: dict[str, Any] = {}
    if not message:
        return updates

    quoted = extract_quoted_text(message)
    if quoted:
        updates["text"] = quoted

    text = _strip_quoted(message).lower()

    product_id = _match_product(text)
    if product_id:
        updates["productId"] = product_id

    updates.update(_match_colors(text))

    size = _match_size(text)
    if size:
        updates["size"] = size

    qty = QUANTITY_PATTERN.search(text)
    if qty:
        updates["quantity"] = int(qty.group(1) or qty.group(2))

    if REMOVE_ICON_PATTERN.search(text):
        updates["action"] = "remove_icon"
        updates["iconId"] = NO_ICON
    else:
        icon_id = _match_icon(text)
        if icon_id:
            updates["iconId"] = icon_id

    occasion = _match_keyword_table(text, OCCASION_KEYWORDS)
    if occasion:
        updates["occasion"] = occasion

    vibe = _match_keyword_table(text, VIBE_KEYWORDS)
    if vibe:
        updates["vibe"] = vibe

    if ADD_TO_CART_PATTERN.search(text):
        updates["action"] = "add_to_cart"

    return updates
