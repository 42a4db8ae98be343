"""Integration helpers for the OpenAI API.

Every copywriting operation is total: failures are logged and replaced with
a fixed fallback, and the returned :class:`AIResult` records whether that
happened. Only :meth:`OpenAIClient.create_response`, used by the chat
assistant, raises.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import UpstreamError
from ..models import AIResult, MoodAnalysis, TitleRecord
from ..utils import clean_labels, extract_json_object, extract_json_value, strip_quotes

logger = logging.getLogger(__name__)

SUPPORTED_GENRES: tuple[str, ...] = (
    "action",
    "adventure",
    "animation",
    "comedy",
    "crime",
    "documentary",
    "drama",
    "family",
    "fantasy",
    "history",
    "horror",
    "music",
    "mystery",
    "romance",
    "sci-fi",
    "thriller",
    "war",
    "western",
)
MAX_MOOD_TAGS = 5

FALLBACK_MOOD = MoodAnalysis(mood_tags=["general"], genres=["drama", "comedy"], avoid=[])
FALLBACK_FIT = "A great pick for your current mood."
FALLBACK_VIEWER_FIT = "Perfect for viewers who appreciate quality storytelling."
FALLBACK_PERSONALITY = (
    "You are a cinema explorer with eclectic taste and an open heart. Every mood "
    "brings a new adventure, and you embrace the full spectrum of storytelling."
)

MOOD_PROMPT = (
    "You translate mood descriptions into filters for a movie recommendation system. "
    "The mood may be written in any language. Respond with ONLY a JSON object: "
    '{"mood_tags": [...], "genres": [...], "avoid": [...]}. '
    f"mood_tags are up to {MAX_MOOD_TAGS} lowercase adjectives. genres are lowercase and "
    f"chosen from: {', '.join(SUPPORTED_GENRES)}. avoid lists lowercase themes or genres "
    "to steer clear of. No markdown and no commentary.\n"
    'Example input: "أبغى شيء خفيف يونسني"\n'
    'Example output: {"mood_tags":["light","uplifting","fun","easy","warm"],'
    '"genres":["comedy","romance"],"avoid":["dark","heavy"]}'
)
FIT_PROMPT = (
    "You are a cinematic copywriter for a movie recommendation app. For every title "
    "write ONE casual, warm sentence under 20 words explaining why it fits the "
    "user's mood. No spoilers. Respond with ONLY a JSON array of strings, one per "
    "title, in the same order."
)
ATMOSPHERE_PROMPT = (
    "You are a film critic writing spoiler-free descriptions. Write 3-5 atmospheric "
    "sentences capturing the themes and emotions of the title. Plain text only."
)
VIEWER_FIT_PROMPT = (
    "You are a movie matchmaker. In 2-3 friendly sentences describe the kind of "
    "viewer who would love this title. Plain text only."
)
PERSONALITY_PROMPT = (
    "You are a cinema personality analyst. From the user's moods and viewing history "
    "write a playful, poetic 4-6 sentence profile, like a movie horoscope. Plain text only."
)
CAPTION_PROMPT = (
    "You write captions for movie carousels. Write ONE inviting sentence under 12 "
    "words introducing the section. No cliches. Plain text only."
)


class OpenAIClient:
    """Client responsible for talking to OpenAI's completion endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    async def parse_mood(self, text: str) -> AIResult[MoodAnalysis]:
        """Extract mood tags, genres and themes to avoid from free text."""

        try:
            content = await self._complete(
                MOOD_PROMPT, text, temperature=0.3, max_tokens=200
            )
            parsed = extract_json_object(content)
            analysis = MoodAnalysis.model_validate(
                {
                    "mood_tags": clean_labels(parsed.get("mood_tags"), limit=MAX_MOOD_TAGS),
                    "genres": [
                        genre
                        for genre in clean_labels(parsed.get("genres"))
                        if genre in SUPPORTED_GENRES
                    ],
                    "avoid": clean_labels(parsed.get("avoid")),
                }
            )
        except (UpstreamError, ValueError, ValidationError) as exc:
            logger.warning("Mood parsing fell back to defaults: %s", exc)
            return AIResult.fallback(FALLBACK_MOOD.model_copy(deep=True), str(exc))
        return AIResult.ok(analysis)

    async def explain_fit(
        self,
        mood_text: str,
        mood_tags: Sequence[str],
        titles: Sequence[TitleRecord],
    ) -> AIResult[list[str]]:
        """Return one sentence per title, always exactly ``len(titles)`` long."""

        if not titles:
            return AIResult.ok([])

        listing = "\n".join(
            f"{index}. {title.title} ({title.year or 'n/a'}) - {title.type}"
            for index, title in enumerate(titles, start=1)
        )
        prompt = (
            f'Mood: "{mood_text}"\n'
            f"Mood tags: {', '.join(mood_tags)}\n\n"
            f"Titles:\n{listing}\n\n"
            f"Return an array of {len(titles)} sentences:"
        )
        fallback = [FALLBACK_FIT] * len(titles)
        try:
            content = await self._complete(
                FIT_PROMPT, prompt, temperature=0.7, max_tokens=500
            )
            parsed = extract_json_value(content)
        except (UpstreamError, ValueError) as exc:
            logger.warning("Mood-fit copy fell back to defaults: %s", exc)
            return AIResult.fallback(fallback, str(exc))

        if not isinstance(parsed, list):
            return AIResult.fallback(fallback, "Model did not return a JSON array")

        sentences = [
            entry.strip() if isinstance(entry, str) and entry.strip() else FALLBACK_FIT
            for entry in parsed[: len(titles)]
        ]
        if len(sentences) < len(titles):
            sentences.extend([FALLBACK_FIT] * (len(titles) - len(sentences)))
        if len(parsed) != len(titles):
            logger.info(
                "Model returned %s mood-fit sentences for %s titles", len(parsed), len(titles)
            )
            return AIResult.fallback(sentences, "Sentence count did not match titles")
        return AIResult.ok(sentences)

    async def describe_atmosphere(
        self, title: str, overview: str, genres: Sequence[str]
    ) -> AIResult[str]:
        prompt = (
            f"Title: {title}\n"
            f"Genres: {', '.join(genres)}\n"
            f"Official overview: {overview}\n\n"
            "Write the description:"
        )
        return await self._plain_text(
            ATMOSPHERE_PROMPT,
            prompt,
            fallback=overview,
            temperature=0.8,
            max_tokens=200,
            label="atmosphere description",
        )

    async def describe_audience_fit(
        self, title: str, genres: Sequence[str], mood_tags: Sequence[str] = ()
    ) -> AIResult[str]:
        lines = [f"Title: {title}", f"Genres: {', '.join(genres)}"]
        if mood_tags:
            lines.append(f"User mood: {', '.join(mood_tags)}")
        lines.append("")
        lines.append("Who would love this?")
        return await self._plain_text(
            VIEWER_FIT_PROMPT,
            "\n".join(lines),
            fallback=FALLBACK_VIEWER_FIT,
            temperature=0.7,
            max_tokens=150,
            label="viewer fit",
        )

    async def summarize_taste(
        self,
        recent_moods: Sequence[str],
        favorites: Sequence[str],
        viewed_titles: Sequence[str],
    ) -> AIResult[str]:
        """Write a short personality blurb from the user's history.

        Only the ten most recent moods and five most recent viewed titles are
        included; both sequences are expected oldest-first.
        """

        moods = "; ".join(recent_moods[-10:]) or "None yet"
        favorite_text = ", ".join(favorites) or "None yet"
        viewed = ", ".join(viewed_titles[-5:]) or "None yet"
        prompt = (
            f"Recent moods: {moods}\n"
            f"Favorites: {favorite_text}\n"
            f"Recently viewed: {viewed}\n\n"
            "Write their Cinema Personality:"
        )
        return await self._plain_text(
            PERSONALITY_PROMPT,
            prompt,
            fallback=FALLBACK_PERSONALITY,
            temperature=0.8,
            max_tokens=250,
            label="cinema personality",
        )

    async def caption_section(
        self, name: str, sample_titles: Sequence[str]
    ) -> AIResult[str]:
        prompt = (
            f"Section: {name}\n"
            f"Sample titles: {', '.join(sample_titles[:3])}\n\n"
            "Write caption:"
        )
        result = await self._plain_text(
            CAPTION_PROMPT,
            prompt,
            fallback=name,
            temperature=0.9,
            max_tokens=50,
            label="section caption",
        )
        if result.degraded:
            return result
        caption = strip_quotes(result.value)
        if not caption:
            return AIResult.fallback(name, "Caption was empty after cleanup")
        return AIResult.ok(caption)

    async def create_response(
        self, messages: list[dict[str, Any]], *, model: str
    ) -> dict[str, Any]:
        """Send a conversation to the Responses endpoint and return its payload."""

        api_key = self._settings.openai_api_key
        if not api_key:
            raise UpstreamError("OpenAI API key is not configured")

        try:
            response = await self._client.post(
                "/responses",
                json={"model": model, "input": messages},
                headers=self._headers(api_key),
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"OpenAI request failed: {exc}") from exc
        if response.status_code >= 400:
            raise UpstreamError(
                f"OpenAI request failed ({response.status_code}): {response.text}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("OpenAI returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise UpstreamError("OpenAI returned an unexpected payload")
        return data

    async def _plain_text(
        self,
        system_prompt: str,
        prompt: str,
        *,
        fallback: str,
        temperature: float,
        max_tokens: int,
        label: str,
    ) -> AIResult[str]:
        try:
            content = await self._complete(
                system_prompt, prompt, temperature=temperature, max_tokens=max_tokens
            )
        except UpstreamError as exc:
            logger.warning("%s fell back to default text: %s", label.capitalize(), exc)
            return AIResult.fallback(fallback, str(exc))
        return AIResult.ok(content)

    async def _complete(
        self,
        system_prompt: str,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        api_key = self._settings.openai_api_key
        if not api_key:
            raise UpstreamError("OpenAI API key is not configured")

        payload = {
            "model": self._settings.openai_model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
        }
        try:
            response = await self._client.post(
                "/chat/completions", json=payload, headers=self._headers(api_key)
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"OpenAI request failed: {exc}") from exc
        if response.status_code >= 400:
            raise UpstreamError(
                f"OpenAI request failed ({response.status_code}): {response.text}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("OpenAI returned a non-JSON response") from exc
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise UpstreamError("Model returned no choices")
        first = choices[0] if isinstance(choices[0], dict) else {}
        message = first.get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError("Model response missing content")
        return content.strip()

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
