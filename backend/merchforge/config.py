"""
Central configuration module for the MerchForge backend.

Loads environment variables, defines LLM transport settings, customization
limits, the shared vocabularies used by both conversational engines, and the
LLM prompt templates.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_CHAT_MODEL = os.getenv("GEMINI_CHAT_MODEL", "gemini-2.5-flash")

LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "2"))
LLM_RETRY_DELAY_MS = int(os.getenv("LLM_RETRY_DELAY_MS", "400"))
LLM_TIMEOUT_MS = int(os.getenv("LLM_TIMEOUT_MS", "30000"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.4"))
LLM_HISTORY_WINDOW = int(os.getenv("LLM_HISTORY_WINDOW", "8"))

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "https://merch-builder-app.vercel.app")

# Langfuse tracing of model calls; disabled unless both keys are set
LANGFUSE_PUBLIC_KEY = os.getenv("LANGFUSE_PUBLIC_KEY", "")
LANGFUSE_SECRET_KEY = os.getenv("LANGFUSE_SECRET_KEY", "")
LANGFUSE_HOST = os.getenv("LANGFUSE_HOST", "https://cloud.langfuse.com").rstrip("/")

OFFER_TTL_SECONDS = int(os.getenv("OFFER_TTL_SECONDS", "0"))  # 0 disables expiry
DELIVERY_ESTIMATE_DAYS = int(os.getenv("DELIVERY_ESTIMATE_DAYS", "7"))

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Static data files
# ---------------------------------------------------------------------------
DATA_DIR = Path(__file__).resolve().parent / "data"
INVENTORY_PATH = DATA_DIR / "inventory.acp.json"
UCP_CAPABILITIES_PATH = DATA_DIR / "ucp-capabilities.json"
UCP_PRODUCTS_PATH = DATA_DIR / "ucp-products.json"

# ---------------------------------------------------------------------------
# Customization limits
# ---------------------------------------------------------------------------
TEXT_MAX_LENGTH = int(os.getenv("TEXT_MAX_LENGTH", "50"))
MIN_QUANTITY = int(os.getenv("MIN_QUANTITY", "1"))
MAX_QUANTITY = int(os.getenv("MAX_QUANTITY", "99"))

PRINT_FEE = 3.00  # Flat print fee added to every product's base price (EUR)
DEFAULT_CURRENCY = "EUR"

# ---------------------------------------------------------------------------
# Customization vocabularies
# ---------------------------------------------------------------------------
STAGES: list[str] = [
    "welcome",
    "product",
    "intent",
    "text",
    "icon",
    "generating",
    "preview",
    "complete",
]

OCCASIONS: list[str] = ["gift", "team", "event", "personal"]
VIBES: list[str] = ["minimal", "bold", "retro", "cute", "sporty"]

ACTIONS: list[str] = ["add_to_cart", "remove_icon"]

TEXT_COLOR_OPTIONS: dict[str, dict[str, str]] = {
    "white": {"name": "White", "hex": "#ffffff"},
    "black": {"name": "Black", "hex": "#111111"},
    "navy": {"name": "Navy", "hex": "#1e3a5f"},
    "forest": {"name": "Forest", "hex": "#2d5016"},
    "burgundy": {"name": "Burgundy", "hex": "#6b1f3a"},
    "charcoal": {"name": "Charcoal", "hex": "#4a4a4a"},
    "natural": {"name": "Natural", "hex": "#f5f1e8"},
    "red": {"name": "Red", "hex": "#e4002b"},
    "pink": {"name": "Pink", "hex": "#ff6fb1"},
    "blue": {"name": "Blue", "hex": "#2f6fed"},
    "green": {"name": "Green", "hex": "#2d9d78"},
}

# Sizes accepted before a product is resolved, in display order
GENERIC_SIZES: list[str] = ["XS", "S", "M", "L", "XL", "2XL"]
SIZE_ALIASES: dict[str, str] = {"XXL": "2XL", "XXXL": "3XL"}

# Literal values models tend to echo back from a JSON schema
PLACEHOLDER_TOKENS: set[str] = {
    "",
    "string",
    "color",
    "colour",
    "size",
    "number",
    "text",
    "value",
    "null",
    "none",
    "undefined",
    "n/a",
    "optional",
    "<color>",
    "<size>",
    "...",
}

# Occasion and vibe keyword tables for the deterministic parser
OCCASION_KEYWORDS: dict[str, list[str]] = {
    "gift": ["gift", "present", "birthday"],
    "team": ["team", "group", "club"],
    "event": ["event", "party", "concert", "wedding"],
    "personal": ["personal", "myself", "for me"],
}

VIBE_KEYWORDS: dict[str, list[str]] = {
    "minimal": ["minimal", "clean", "simple"],
    "bold": ["bold", "loud", "statement"],
    "retro": ["retro", "vintage"],
    "cute": ["cute", "fun", "playful"],
    "sporty": ["sport", "sporty", "athletic", "active"],
}

SLOGANS: dict[str, list[str]] = {
    "gift": ["Made With Love", "You Are Amazing", "Celebrate Good Times", "Special For You"],
    "team": ["Stronger Together", "Team Spirit", "United We Stand", "One Team One Dream"],
    "event": ["Make Memories", "Good Vibes Only", "Celebrate Life", "Epic Moments"],
    "personal": ["Be Yourself", "Stay True", "Own Your Story", "Live Fully"],
    "default": ["Stay Wild", "Dream Big", "Good Vibes", "Make It Happen", "Born To Create", "Never Stop"],
}

# ---------------------------------------------------------------------------
# Discovery vocabularies
# ---------------------------------------------------------------------------
DISCOVER_STAGES: list[str] = ["welcome", "constraints", "results"]

CATEGORIES: list[str] = ["tee", "hoodie", "tote", "mug"]

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "tee": ["tee", "t-shirt", "tshirt", "shirt"],
    "hoodie": ["hoodie", "sweatshirt"],
    "tote": ["tote", "bag"],
    "mug": ["mug", "cup"],
}

MATERIAL_KEYWORDS: list[str] = ["cotton", "canvas", "ceramic", "organic", "recycled", "poly", "polyester"]
# "sustainable" maps to the flag only
TAG_KEYWORDS: list[str] = ["eco", "minimal", "bold", "retro", "cute", "sporty"]
DISCOVER_COLORS: list[str] = ["white", "black", "navy", "forest", "burgundy", "natural", "charcoal"]

MONTHS: list[str] = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

# Relaxation order when a strict filter comes back empty
RELAXATION_ORDER: list[str] = ["color", "materials", "leadTimeMax"]

RESULTS_LIMIT = 3
CATALOG_SEARCH_DEFAULT_LIMIT = 12
CATALOG_SEARCH_MAX_LIMIT = 50

# ---------------------------------------------------------------------------
# Assistant copy
# ---------------------------------------------------------------------------
CHAT_FALLBACK_MESSAGE = (
    "I'm having trouble connecting right now. I've updated based on what I understood."
)
CHAT_EMPTY_MESSAGE = "Tell me a bit more about what you'd like to make."
JSON_CORRECTION_MESSAGE = (
    "You failed to provide valid JSON. Please correct your previous response "
    "and return ONLY a valid JSON object."
)

DISCOVER_CONSTRAINTS_MESSAGE = (
    "Tell me what you need (budget, material, style, quantity, timing) and I'll narrow options."
)
DISCOVER_RESULTS_MESSAGE = "Got it. Here are the best matches based on your constraints."
DISCOVER_RELAXED_MESSAGE = "We don't have an exact match for that {dropped}, but here's what we do have."
DISCOVER_MATERIALS_MESSAGE = "Available materials right now: {materials}. Do you have a preference?"
DISCOVER_DEFAULT_MATERIALS_MESSAGE = (
    "I can work with cotton, premium cotton, recycled blends, canvas, and ceramic. "
    "Do you have a preference?"
)

# ---------------------------------------------------------------------------
# LLM Prompts
# ---------------------------------------------------------------------------

CUSTOMIZATION_SYSTEM_PROMPT = """\
You are a friendly, confident merch design assistant. Keep responses concise, \
helpful, and action-oriented. Ask only one question at a time.

Return ONLY a JSON object with this shape, with no markdown and no code fences:
{{ "assistant": string, "updates": {{ "stage"?: string, "productId"?: string, \
"occasion"?: string, "vibe"?: string, "text"?: string, "iconId"?: string, \
"productColor"?: string, "textColor"?: string, "size"?: string, \
"quantity"?: number, "action"?: "add_to_cart" | "remove_icon" }} }}

NEVER use placeholders like "string", "number", or type names as values. \
If you cannot confidently extract a value, leave it out.

## Catalog (strict)
- Only the products listed below exist. If the user asks for anything else, \
politely say we don't offer it and name the products we do have.
- Products: {products}
- Icons: {icons}
- Text colors: {text_colors}
- Allowed vibes: {vibes}
- Allowed occasions: {occasions}

## Slot rules
- The user can give product, text, icon, colors, size and quantity in any \
order or all at once.
- productColor is the garment color and must exist on the chosen product \
(e.g. "navy tee" sets productId and productColor).
- textColor is the print color (e.g. "white star", "red text").
- When the user gives a phrase or slogan for the print, set text to it \
exactly. Text longer than {text_max_length} characters must be shortened; \
ask the user to do so.
- "remove the icon" sets action "remove_icon" and iconId "none".
- "add to cart" or "checkout" sets action "add_to_cart".

## Stage progression
welcome -> product -> intent -> text -> icon -> preview -> complete. \
Stages are advisory; skip any the user has already answered.
{missing_fields}

Current state: {state}
"""

DISCOVER_SYSTEM_PROMPT = """\
You are an inventory discovery assistant for custom merch.

Return ONLY a JSON object with this shape, with no markdown and no code fences:
{{ "assistant": string, "updates": {{ "stage"?: string, "category"?: string, \
"budgetMax"?: number, "materials"?: string[], "sustainable"?: boolean, \
"quantity"?: number, "eventDate"?: string, "tags"?: string[], \
"occasion"?: string, "color"?: string, "leadTimeMax"?: number, \
"size"?: string }}, "selection": {{ "primaryIds"?: string[], \
"fallbackIds"?: string[], "rationale"?: string }} }}

- Only use categories: {categories}.
- Only use colors: {colors}.
- Only use sizes: {sizes}.
- Only choose item_id values that exist in Inventory.
- Prefer 1 primary item and up to 2 fallback items.
- If constraints are ambiguous or missing (no category, budget, quantity or \
color), ask one clarifying question in assistant.
- Use stage progression: welcome -> constraints -> results.

Current state: {state}
Inventory: {inventory}
"""

DESIGN_TOKENS_PROMPT = """\
You are a graphic design AI for a merch print shop. Propose exactly 3 \
layouts for a 400x400 print area by choosing tokens from the closed \
vocabularies below. Return ONLY a JSON array of 3 objects, no markdown.

Each object:
{{ "name": string, "style": string, "reasoning": string, \
"composition": {compositions}, "textSize": {text_sizes}, \
"textStyle": {text_styles}, "font": {fonts}, "fontWeight": {font_weights}, \
"letterSpacing": {letter_spacings}, "iconPosition": {icon_positions}, \
"iconSize": {icon_sizes}, "iconStyle": {icon_styles}, \
"border": {borders}, "accent": {accents} }}

- Make the 3 layouts clearly different (composition, font, icon placement).
- Print text: "{text}"
- {icon_line}
{extra_lines}
"""
