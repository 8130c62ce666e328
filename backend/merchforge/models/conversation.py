"""Pydantic v2 models for the customization conversation."""

from typing import Any, Literal

from pydantic import Field

from merchforge.models.common import CamelModel
from merchforge.models.product import Product

Stage = Literal["welcome", "product", "intent", "text", "icon", "generating", "preview", "complete"]


class Message(CamelModel):
    """A single entry of the append-only conversation log."""

    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: int  # epoch milliseconds


class ChatTurn(CamelModel):
    """A history entry as sent by the client (no id or timestamp needed)."""

    role: Literal["user", "assistant"]
    content: str


class ConversationState(CamelModel):
    """Everything the customization flow has collected so far."""

    stage: Stage = "welcome"
    product: Product | None = None
    occasion: str | None = None
    vibe: str | None = None
    text: str | None = None
    icon: str | None = None
    product_color: str | None = None
    text_color: str | None = None
    size: str | None = None
    quantity: int | None = None
    messages: list[Message] = Field(default_factory=list)


class TurnResult(CamelModel):
    """Outcome of one conversational turn."""

    assistant_message: str
    updates: dict[str, Any] = Field(default_factory=dict)
    fallback_used: bool = False
    error: str | None = None


class ChatRequest(CamelModel):
    """Body of ``POST /api/chat``."""

    state: ConversationState | None = None
    user_message: str | None = None
    messages: list[ChatTurn] = Field(default_factory=list)
    stream: bool = False
