import logging
from typing import AsyncIterator, Optional

from openai import AsyncOpenAI

from ..core.config import settings

logger = logging.getLogger(__name__)


class OpenAIChatModel:
    """Single-prompt chat completions, whole or streamed"""

    def __init__(self, model: str = settings.openai_model, api_key: Optional[str] = None):
        self.model = model
        self.api_key = api_key or settings.openai_api_key
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use so the app starts without an API key
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
            logger.info(f"OpenAI client ready ({self.model})")
        return self._client

    async def complete(self, prompt: str) -> str:
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
        )
        return completion.choices[0].message.content or ""

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield text deltas in the order the model emits them."""
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            stream=True,
        )
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        finally:
            # Releases the HTTP connection when the consumer stops early
            await response.close()

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None
