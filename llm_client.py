"""
OpenRouter Chat Client
======================

Async chat-completions client used by the day generator and the revision
path. One request per call, OpenAI-compatible payload, aiohttp transport.

Retrying is NOT done here: a failed call raises LLMServiceError and the
caller's attempt loop decides whether to try again (with its own backoff
and a lower temperature).

Usage:
    client = get_chat_client()
    text = await client.chat(
        system_prompt=MEAL_PLAN_SYSTEM_PROMPT,
        messages=[{"role": "user", "content": prompt}],
        temperature=0.7,
        max_tokens=4000,
    )
"""

import asyncio
import json
from typing import Dict, List, Optional

import aiohttp

import config
from planner_errors import LLMServiceError
from tools.logging_utils import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUSES = (429, 500, 502, 503, 504)


class OpenRouterChatClient:
    """
    Chat completion client for OpenRouter.

    Any object exposing the same `chat` coroutine can stand in for this
    class (tests use a scripted fake).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else config.load_chat_api_key()
        self.model = model or config.CHAT_MODEL
        self.api_url = (api_url or config.CHAT_API_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or config.LLM_TIMEOUT
        self.stats = {"calls": 0, "failures": 0}

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "HTTP-Referer": "https://github.com/blueprint-meal-planner",
            "X-Title": "Blueprint Meal Planner",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_payload(
        self,
        system_prompt: Optional[str],
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> Dict[str, object]:
        chat_messages = []
        if system_prompt:
            chat_messages.append({"role": "system", "content": system_prompt})
        chat_messages.extend({"role": m["role"], "content": m["content"]} for m in messages)
        return {
            "model": self.model,
            "messages": chat_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }

    async def chat(
        self,
        system_prompt: Optional[str],
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 4000,
    ) -> str:
        """
        Send one chat completion request.

        Args:
            system_prompt: System instruction text
            messages: Ordered role/content dicts (user/assistant)
            temperature: Sampling temperature
            max_tokens: Output-size cap

        Returns:
            Reply text (stripped)

        Raises:
            LLMServiceError: HTTP error, API error body, timeout, or empty content
        """
        payload = self.build_payload(system_prompt, messages, temperature, max_tokens)
        self.stats["calls"] += 1

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.api_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    if response.status != 200:
                        error_body = await response.text()
                        self.stats["failures"] += 1
                        level = "transient" if response.status in TRANSIENT_STATUSES else "permanent"
                        logger.error(f"❌ OpenRouter {level} error {response.status}: {error_body[:300]}")
                        raise LLMServiceError(
                            f"OpenRouter error {response.status}: {error_body[:200]}",
                            status_code=response.status,
                        )
                    try:
                        data = await response.json()
                    except json.JSONDecodeError as e:
                        body = await response.text()
                        self.stats["failures"] += 1
                        logger.error(f"❌ Invalid JSON body from OpenRouter: {body[:300]}")
                        raise LLMServiceError(f"Invalid JSON body from OpenRouter: {e}") from e
        except aiohttp.ClientError as e:
            self.stats["failures"] += 1
            logger.warning(f"⚠️ OpenRouter request failed: {e}")
            raise LLMServiceError(f"Chat request failed: {e}") from e
        except asyncio.TimeoutError as e:
            self.stats["failures"] += 1
            logger.warning(f"⚠️ OpenRouter request timed out after {self.timeout_seconds}s")
            raise LLMServiceError(f"Chat request timed out after {self.timeout_seconds}s") from e

        return self._extract_content(data)

    def _extract_content(self, data: Dict[str, object]) -> str:
        if not isinstance(data, dict):
            self.stats["failures"] += 1
            logger.error(f"❌ OpenRouter returned a non-object body: {str(data)[:300]}")
            raise LLMServiceError(f"Unexpected response format: expected an object, got {type(data).__name__}")

        if "error" in data:
            error = data.get("error")
            error_text = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            self.stats["failures"] += 1
            logger.error(f"❌ OpenRouter API error: {error_text}")
            raise LLMServiceError(f"OpenRouter API error: {error_text}")

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            self.stats["failures"] += 1
            logger.error(f"❌ Unexpected response structure from OpenRouter: {json.dumps(data)[:500]}")
            raise LLMServiceError(f"Unexpected response format, missing {e}") from e

        if content is None or not str(content).strip():
            self.stats["failures"] += 1
            logger.error("❌ OpenRouter returned empty content")
            raise LLMServiceError("OpenRouter returned empty content. Check API status or model availability.")
        return str(content).strip()


_chat_client: Optional[OpenRouterChatClient] = None


def get_chat_client() -> OpenRouterChatClient:
    """Module-level singleton built from config."""
    global _chat_client
    if _chat_client is None:
        _chat_client = OpenRouterChatClient()
    return _chat_client
