from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

from epubviewer.config import AppConfig, AssistantProviderConfig
from epubviewer.errors import FetchError, InvalidInputError
from epubviewer.library.models import Tag

log = logging.getLogger(__name__)

MAX_SUGGESTED_TAGS = 3
TAG_CONTENT_CHARS = 2000

_TAG_SPLIT_RE = re.compile(r"[,、\n]")


def parse_suggested_tags(response: str, tags: list[Tag]) -> list[str]:
    """Map a comma separated model answer onto existing tag ids (max three)."""
    matched: list[str] = []
    for raw in _TAG_SPLIT_RE.split(response):
        name = raw.strip().strip("\"'").lower()
        if not name:
            continue
        for tag in tags:
            tag_name = tag.name.lower()
            if (tag_name == name or tag_name in name) and tag.id not in matched:
                matched.append(tag.id)
                break
        if len(matched) >= MAX_SUGGESTED_TAGS:
            break
    return matched


class AssistantEngine:
    """Reading assistant over an OpenAI-compatible ``chat/completions`` endpoint."""

    def __init__(
        self, config: AppConfig, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._config = config
        self._client = client

    @property
    def provider(self) -> Optional[AssistantProviderConfig]:
        return self._config.get_active_provider()

    @property
    def is_configured(self) -> bool:
        p = self.provider
        if not p:
            return False
        if p.name == "ollama":
            return bool(p.base_url)
        return bool(p.api_key and p.base_url)

    async def chat(self, message: str, context: Optional[str] = None) -> str:
        if not message or not message.strip():
            raise InvalidInputError("Message is required")
        if not self.is_configured:
            raise InvalidInputError("AI assistant is not configured")

        system_prompt = (
            "You are a reading assistant. Answer questions about the book the "
            "user is reading, clearly and concisely."
        )
        if context:
            system_prompt += f"\n\nContext from the book:\n{context}"
        return await self._call_api(message, system_prompt=system_prompt, max_tokens=2000)

    async def suggest_tags(self, title: str, content: str, tags: list[Tag]) -> list[str]:
        """Ids of up to three existing tags that fit the book. Empty when unconfigured."""
        if not self.is_configured or not tags:
            return []

        names = ", ".join(t.name for t in tags)
        prompt = (
            f"Title: {title}\n\n"
            f"Content:\n{content[:TAG_CONTENT_CHARS]}\n\n"
            f"Available tags: {names}"
        )
        system_prompt = (
            "Pick at most three tags from the available list that describe this "
            "book. Answer with tag names only, separated by commas. Never invent "
            "new tags."
        )
        answer = await self._call_api(prompt, system_prompt=system_prompt, max_tokens=100)
        suggested = parse_suggested_tags(answer, tags)
        log.info("Suggested tags for %r: %s", title, suggested)
        return suggested

    async def describe_clip(self, context: str, book_title: str = "") -> str:
        if not self.is_configured:
            raise InvalidInputError("AI assistant is not configured")

        prompt = f"Book: {book_title}\n\nPage text:\n{context[:TAG_CONTENT_CHARS]}"
        system_prompt = (
            "The reader clipped a figure or passage from this page. Write a one or "
            "two sentence note describing what it shows. Only output the note."
        )
        return await self._call_api(prompt, system_prompt=system_prompt, max_tokens=200)

    async def _call_api(
        self, text: str, system_prompt: str, max_tokens: int = 500
    ) -> str:
        p = self.provider
        if not p:
            raise InvalidInputError("No AI provider configured")

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=120.0)

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if p.api_key:
            headers["Authorization"] = f"Bearer {p.api_key}"

        url = f"{p.base_url.rstrip('/')}/chat/completions"
        payload = {
            "model": p.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": text},
            ],
            "temperature": 0.3,
            "max_tokens": max_tokens,
        }

        try:
            resp = await self._client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
            return data["choices"][0]["message"]["content"].strip()
        except httpx.HTTPStatusError as e:
            log.error(
                "Assistant API error: %s %s",
                e.response.status_code,
                e.response.text[:200],
            )
            raise FetchError(
                f"AI request failed: HTTP {e.response.status_code}",
                status=e.response.status_code,
            ) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            log.error("Unexpected API response format: %s", e)
            raise FetchError("AI request failed: unexpected response format") from e
        except httpx.RequestError as e:
            log.error(
                "Assistant request error: %s %s -> %s",
                type(e).__name__,
                url,
                e,
            )
            raise FetchError(f"AI request failed: {type(e).__name__} ({url})") from e

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
