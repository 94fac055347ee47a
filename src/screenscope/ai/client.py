"""Async client for OpenAI-compatible vision chat completions."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import openai

from screenscope.types import AIResponse, FetchedItem, TokenUsage
from screenscope.utils.image import to_data_url

logger = logging.getLogger(__name__)


class AsyncAIClient:
    """Sends one screenshot-analysis request per call.

    No retrying happens here: SDK exceptions propagate unchanged so the
    retry orchestrator can classify them.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
        )

    async def send_request(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        images: Sequence[FetchedItem] = (),
        max_tokens: int = 8192,
        temperature: float = 0.0,
    ) -> AIResponse:
        """Send a single request with every image attached."""
        messages = self._build_messages(system_prompt, user_prompt, images)
        logger.debug("Sending %d images to %s", len(images), model)

        response = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return self._parse_response(response)

    async def close(self) -> None:
        await self._client.close()

    @staticmethod
    def _build_messages(
        system_prompt: str, user_prompt: str, images: Sequence[FetchedItem]
    ) -> list[dict]:
        messages: list[dict] = [{"role": "system", "content": system_prompt}]

        if not images:
            messages.append({"role": "user", "content": user_prompt})
            return messages

        content: list[dict] = []
        for index, item in enumerate(images):
            label = f"Screenshot {index + 1}"
            if item.ref.caption:
                label += f": {item.ref.caption}"
            content.append({"type": "text", "text": label})
            content.append({
                "type": "image_url",
                "image_url": {"url": to_data_url(item.data, item.mime_type)},
            })
        content.append({"type": "text", "text": user_prompt})
        messages.append({"role": "user", "content": content})
        return messages

    @staticmethod
    def _parse_response(response: openai.types.chat.ChatCompletion) -> AIResponse:
        choice = response.choices[0]
        usage = response.usage

        return AIResponse(
            content=choice.message.content or "",
            model=response.model,
            token_usage=TokenUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            finish_reason=choice.finish_reason,
        )
