"""Conversation assembly for the stateless chat assistant.

Every request rebuilds the model context from stored turns:

1. load prior turns oldest first,
2. seed the list with the system instruction,
3. replay each turn as a user/assistant pair,
4. append the new (optionally multimodal) user message,
5. bound the list to a fixed number of entries,
6. call the model and decode its reply,
7. store the new turn.

Bounding counts message entries, not tokens. When the list grows past
``MAX_CONTEXT_MESSAGES`` it is cut to the system instruction plus the last
``RETAINED_MESSAGES`` entries.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from ..config import Settings
from ..errors import PersistenceError
from ..repository import Repository
from .openai import OpenAIClient

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a friendly, knowledgeable assistant. Answer clearly and concisely, "
    "and describe attached images when the user shares one."
)
DEFAULT_IMAGE_PROMPT = "What's in this image?"
IMAGE_ONLY_PROMPT = "[Image]"
NO_RESPONSE_TEXT = "No response generated."

MAX_CONTEXT_MESSAGES = 20
RETAINED_MESSAGES = 16

# Turns are replayed as pairs; an odd window would split one.
if RETAINED_MESSAGES < 2 or RETAINED_MESSAGES % 2 or RETAINED_MESSAGES >= MAX_CONTEXT_MESSAGES:
    raise RuntimeError("RETAINED_MESSAGES must be an even number below MAX_CONTEXT_MESSAGES")

Message = dict[str, Any]


class StoredTurn(Protocol):
    prompt: str
    reply: str


class ReplyShape(enum.Enum):
    """Known layouts of a model reply payload."""

    OUTPUT_TEXT = "output_text"
    OUTPUT_ITEMS = "output_items"
    CHAT_CHOICE = "chat_choice"
    EMPTY = "empty"


@dataclass(frozen=True, slots=True)
class DecodedReply:
    shape: ReplyShape
    text: str


def system_message() -> Message:
    return {"role": "system", "content": SYSTEM_INSTRUCTION}


def user_message(text: str | None, image: str | None = None) -> Message:
    """Build the new user entry, multimodal when an image data URL is attached."""

    if image:
        return {
            "role": "user",
            "content": [
                {"type": "input_text", "text": text or DEFAULT_IMAGE_PROMPT},
                {"type": "input_image", "image_url": image},
            ],
        }
    return {"role": "user", "content": text or ""}


def build_context(turns: Iterable[StoredTurn], new_message: Message) -> list[Message]:
    """Return the unbounded context: system, replayed pairs, then the new message."""

    messages = [system_message()]
    for turn in turns:
        messages.append({"role": "user", "content": turn.prompt})
        messages.append({"role": "assistant", "content": turn.reply})
    messages.append(new_message)
    return messages


def bound_context(messages: list[Message]) -> list[Message]:
    """Keep the system entry plus the most recent entries once over the limit."""

    if len(messages) <= MAX_CONTEXT_MESSAGES:
        return messages
    return [messages[0], *messages[-RETAINED_MESSAGES:]]


def decode_reply(payload: object) -> DecodedReply:
    """Classify a reply payload and pull out its text."""

    if isinstance(payload, dict):
        text = payload.get("output_text")
        if isinstance(text, str) and text.strip():
            return DecodedReply(ReplyShape.OUTPUT_TEXT, text.strip())

        text = _first_output_text(payload.get("output"))
        if text:
            return DecodedReply(ReplyShape.OUTPUT_ITEMS, text)

        text = _first_choice_text(payload.get("choices"))
        if text:
            return DecodedReply(ReplyShape.CHAT_CHOICE, text)

    return DecodedReply(ReplyShape.EMPTY, NO_RESPONSE_TEXT)


def _first_output_text(output: object) -> str | None:
    if not isinstance(output, list) or not output:
        return None
    item = output[0]
    if not isinstance(item, dict):
        return None
    content = item.get("content")
    if not isinstance(content, list) or not content:
        return None
    first = content[0]
    if not isinstance(first, dict):
        return None
    text = first.get("text")
    if isinstance(text, str) and text.strip():
        return text.strip()
    return None


def _first_choice_text(choices: object) -> str | None:
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    message = choice.get("message")
    if not isinstance(message, dict):
        return None
    text = message.get("content")
    if isinstance(text, str) and text.strip():
        return text.strip()
    return None


class ChatService:
    """Answers chat messages using the user's stored conversation as context."""

    def __init__(
        self,
        settings: Settings,
        openai_client: OpenAIClient,
        repository: Repository,
    ):
        self._settings = settings
        self._ai = openai_client
        self._repository = repository

    async def assemble(
        self, user_id: str, message: str | None, image: str | None = None
    ) -> list[Message]:
        turns = await self._repository.list_turns(user_id)
        return bound_context(build_context(turns, user_message(message, image)))

    async def reply(
        self, user_id: str, message: str | None, image: str | None = None
    ) -> str:
        """Produce the assistant reply and record the exchange.

        A failed write is logged and ignored, so the turn is missing from
        future context but the caller still receives the reply.
        """

        messages = await self.assemble(user_id, message, image)
        model = (
            self._settings.openai_vision_model if image else self._settings.openai_chat_model
        )
        logger.info(
            "Chat request for %s with %s context messages (image=%s)",
            user_id,
            len(messages),
            bool(image),
        )
        payload = await self._ai.create_response(messages, model=model)
        decoded = decode_reply(payload)
        if decoded.shape is ReplyShape.EMPTY:
            logger.warning("Model reply for %s contained no text", user_id)

        prompt = message or IMAGE_ONLY_PROMPT
        try:
            await self._repository.add_turn(user_id, prompt, decoded.text)
        except PersistenceError:
            logger.exception("Failed to store chat turn for %s", user_id)
        return decoded.text
