"""Utility helpers for the CineMood service."""

from __future__ import annotations

import json
import re
from collections import Counter
from typing import Any, Iterable


JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*([\[{].*?[\]}])\s*```", re.DOTALL)
QUOTES_RE = re.compile(r"[\"'“”‘’]")


def extract_json_value(content: str) -> Any:
    """Extract and parse the first JSON object or array from a model reply.

    Prose around a bare value is tolerated; whichever opening bracket comes
    first decides whether an object or an array is read.
    """

    text = content.strip()
    match = JSON_BLOCK_RE.search(text)
    if match:
        payload = match.group(1)
    else:
        payload = _bare_json_span(text)

    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON payload produced by the model") from exc


def _bare_json_span(text: str) -> str:
    starts = [index for index in (text.find("{"), text.find("[")) if index >= 0]
    if not starts:
        raise ValueError("No JSON value found in response")
    start = min(starts)
    end = text.rfind("}" if text[start] == "{" else "]")
    if end < start:
        raise ValueError("No JSON value found in response")
    return text[start : end + 1]


def extract_json_object(content: str) -> dict[str, Any]:
    """Extract the first JSON object from the model response."""

    value = extract_json_value(content)
    if not isinstance(value, dict):
        raise ValueError("Expected a JSON object in response")
    return value


def strip_quotes(value: str) -> str:
    return QUOTES_RE.sub("", value).strip()


def parse_year(value: object) -> int | None:
    """Return the leading four-digit year of an ISO date string."""

    if not isinstance(value, str) or len(value) < 4:
        return None
    try:
        return int(value[:4])
    except ValueError:
        return None


def clean_labels(values: object, *, limit: int | None = None) -> list[str]:
    """Lower-case, de-duplicate and drop non-string entries from a label list."""

    if not isinstance(values, list):
        return []
    cleaned: list[str] = []
    for entry in values:
        if not isinstance(entry, str):
            continue
        label = entry.strip().lower()
        if label and label not in cleaned:
            cleaned.append(label)
        if limit is not None and len(cleaned) >= limit:
            break
    return cleaned


def top_counts(
    groups: Iterable[Iterable[str]], *, key: str, limit: int = 5
) -> list[dict[str, object]]:
    """Count labels across groups, most common first."""

    counter: Counter[str] = Counter()
    for group in groups:
        counter.update(label for label in group if isinstance(label, str) and label)
    return [
        {key: label, "count": count} for label, count in counter.most_common(limit)
    ]
