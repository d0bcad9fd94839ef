from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional, Protocol

from openai import AsyncOpenAI, RateLimitError


SYSTEM_PROMPT = "You are the decision engine of a browser automation agent. Reply with JSON only when asked for JSON."


class LanguageModel(Protocol):
    async def generate(self, prompt: str) -> str: ...

    def generate_streaming(self, prompt: str) -> AsyncIterator[str]: ...


class OpenAIModel:
    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: Optional[str] = None,
        max_retries: int = 2,
        backoff_on_rate_limit: float = 1.0,
    ) -> None:
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required for OpenAIModel.")
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.max_retries = max_retries
        self.backoff_on_rate_limit = backoff_on_rate_limit

    def _messages(self, prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def generate(self, prompt: str) -> str:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    temperature=0,
                    messages=self._messages(prompt),
                )
            except RateLimitError as exc:
                last_error = exc
                if attempt < self.max_retries and self.backoff_on_rate_limit > 0:
                    await asyncio.sleep(self.backoff_on_rate_limit)
                continue
            choice = response.choices[0]
            return choice.message.content or ""
        raise RuntimeError(f"Model call failed after {self.max_retries + 1} attempts: {last_error}")

    async def generate_streaming(self, prompt: str) -> AsyncIterator[str]:
        stream = await self.client.chat.completions.create(
            model=self.model,
            temperature=0,
            messages=self._messages(prompt),
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta
