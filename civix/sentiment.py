# Sentiment classification of citizen text via the OpenAI chat API

import asyncio
import logging
from typing import Optional

import openai as openai_mod
from openai import AsyncOpenAI

from .config import OPENAI_API_KEY, OPENAI_MODEL
from .models import Sentiment

logger = logging.getLogger(__name__)


def truncate_text(text: str, max_chars: int = 3000) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


class SentimentAnalyzer:
    def __init__(self, api_key: Optional[str] = OPENAI_API_KEY, model: str = OPENAI_MODEL,
                 max_retries: int = 3):
        self.api_key = api_key
        self.model = model
        self.max_retries = max_retries
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> Optional[AsyncOpenAI]:
        if self._client is None and self.api_key:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def _chat(self, prompt: str) -> Optional[str]:
        if self.client is None:
            return None
        for attempt in range(self.max_retries):
            try:
                resp = await self.client.chat.completions.create(
                    model=self.model, messages=[{"role": "user", "content": prompt}])
                return resp.choices[0].message.content.strip()
            except (openai_mod.RateLimitError, openai_mod.APIConnectionError) as e:
                logger.warning("OpenAI retry %d: %s", attempt + 1, e)
                if attempt == self.max_retries - 1:
                    raise
                await asyncio.sleep(2 ** attempt)
        return None

    async def analyze(self, text: str) -> Sentiment:
        text = truncate_text(text)
        prompt = (
            "Analyze the sentiment of this citizen text about local civic issues. "
            "Classify as exactly one of: positive, neutral, negative.\n\n"
            f'Text: "{text}"\n\nRespond with only one word.'
        )
        try:
            result = await self._chat(prompt)
            if result:
                r = result.lower()
                if "negative" in r: return Sentiment.NEGATIVE
                if "positive" in r: return Sentiment.POSITIVE
            return Sentiment.NEUTRAL
        except Exception as e:
            logger.error("Sentiment analysis error: %s", e)
            return Sentiment.NEUTRAL
