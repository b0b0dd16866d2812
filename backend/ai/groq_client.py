"""
Groq API Client: async chat completions with tool calling.

The client only talks to Groq. It never touches the database or the chain;
tool calls it returns are executed by ai.agent against the wallet tool layer.
Every failure returns None so the caller can fall back to the rule-based
orchestrator.
"""

import asyncio
import logging
from typing import List, Optional

from groq import APIError, APITimeoutError, AsyncGroq, RateLimitError

from app.core.config import settings

# NEVER log API keys
logger = logging.getLogger(__name__)


class GroqClient:
    """
    Thin async wrapper for Groq chat completions.

    - Temperature 0.3: short, mostly deterministic replies
    - Timeouts and rate limits retry with exponential backoff
    - Permanent API errors return None immediately
    """

    TEMPERATURE = 0.3
    MAX_TOKENS = 512
    TIMEOUT_SECONDS = 10

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key if api_key is not None else settings.GROQ_API_KEY
        self.model = model or settings.GROQ_MODEL

        if not api_key:
            logger.warning(
                "⚠️ GROQ_API_KEY not found in environment. "
                "LLM agent is DISABLED; the rule-based agent will answer instead."
            )
            self.client = None
        else:
            try:
                self.client = AsyncGroq(api_key=api_key, timeout=self.TIMEOUT_SECONDS)
                logger.info("✅ Groq client initialized successfully")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Groq client: {e}")
                self.client = None

    def is_available(self) -> bool:
        return self.client is not None

    async def chat(self, messages: List[dict], tools: Optional[List[dict]] = None, max_retries: int = 2):
        """
        One chat completion round.

        Returns:
            The assistant message (content and optional tool_calls), or None on error
        """
        if not self.is_available():
            logger.debug("Groq client not available - skipping LLM call")
            return None

        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": self.TEMPERATURE,
            "max_tokens": self.MAX_TOKENS,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        for attempt in range(max_retries + 1):
            try:
                response = await self.client.chat.completions.create(**kwargs)
                if response.choices:
                    logger.debug(f"LLM response received (attempt {attempt + 1})")
                    return response.choices[0].message
                logger.warning("LLM returned empty response")
                return None

            except APITimeoutError:
                if attempt < max_retries:
                    wait_time = 0.5 * (2 ** attempt)
                    logger.warning(f"⏱️ Groq timeout, retry {attempt + 1}/{max_retries} after {wait_time}s")
                    await asyncio.sleep(wait_time)
                else:
                    logger.warning(f"⏱️ Groq API timeout after {max_retries} retries")
                    return None

            except RateLimitError:
                if attempt < max_retries:
                    wait_time = 1.0 * (2 ** attempt)
                    logger.warning(f"⚠️ Groq rate limit, retry {attempt + 1}/{max_retries} after {wait_time}s")
                    await asyncio.sleep(wait_time)
                else:
                    logger.warning("⚠️ Groq API rate limit exceeded after retries")
                    return None

            except APIError as e:
                logger.error(f"❌ Groq API error (permanent): {e}")
                return None

            except Exception as e:
                logger.error(f"❌ Unexpected error calling Groq: {e}")
                return None

        return None


_groq_client: Optional[GroqClient] = None


def get_groq_client() -> GroqClient:
    """Get or create the shared Groq client."""
    global _groq_client
    if _groq_client is None:
        _groq_client = GroqClient()
    return _groq_client
