from __future__ import annotations

import logging
import os
from typing import Optional, Sequence

import openai
from dotenv import load_dotenv
from openai import OpenAI
from pydantic import BaseModel

# Load .env once when module is imported so that OPENROUTER_API_KEY can live in
# a persisted config file rather than every shell session.
load_dotenv()

_log = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_CHAT_MODEL = "nex-agi/deepseek-v3.1-nex-n1:free"

SYSTEM_PROMPT_TEMPLATE = (
    "You are an assistant that answers questions using the provided context.\n\n"
    "Context:\n{context}\n\n"
    "Answer only from this context. If the information is insufficient, say so."
)


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatCompletionError(RuntimeError):
    """The chat provider returned an error or no usable answer."""


class ChatClient:
    """Chat completion client for OpenRouter's OpenAI-compatible API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_CHAT_MODEL,
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        # Created lazily so a missing key only fails when a question is asked.
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise ChatCompletionError(
                    "OpenRouter API key not found. Set OPENROUTER_API_KEY (or RTF_RAG_OPENROUTER_API_KEY) "
                    "in the environment or a .env file."
                )
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                default_headers={"X-Title": "RTF RAG"},
            )
        return self._client

    def complete(self, messages: Sequence[ChatMessage]) -> str:
        """Send ``messages`` and return the first choice's text."""
        client = self._get_client()
        _log.info("Requesting chat completion from %s (%d messages)", self.model, len(messages))
        try:
            resp = client.chat.completions.create(
                model=self.model,
                messages=[m.model_dump() for m in messages],
                stream=False,
            )
        except openai.OpenAIError as exc:
            raise ChatCompletionError(f"Chat completion failed: {exc}") from exc

        # OpenRouter reports some upstream failures in the body of a 200 response.
        error = getattr(resp, "error", None)
        if error:
            raise ChatCompletionError(f"Chat provider returned an error: {error}")
        if not resp.choices:
            raise ChatCompletionError("No response from LLM")

        content = resp.choices[0].message.content
        if not content or not content.strip():
            raise ChatCompletionError("LLM returned an empty answer")
        return content

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


__all__ = ["ChatClient", "ChatCompletionError", "ChatMessage", "SYSTEM_PROMPT_TEMPLATE"]
