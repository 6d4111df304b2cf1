from __future__ import annotations

import time

import requests
from loguru import logger

from .settings import settings


SYSTEM_PROMPT = "You are a crypto trading analyst. Answer using the exact labels requested."


def _message_text(content) -> str | None:
    # content is either a plain string or a list of typed parts
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            str(part.get("text", ""))
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return None


class OpenAIClient:
    """Chat-completions backend speaking the same text protocol as Ollama."""

    name = "openai"

    def __init__(self, model: str | None = None, timeout_seconds: int | None = None) -> None:
        self.endpoint = settings.openai_base_url.rstrip("/") + "/chat/completions"
        self.model = model or settings.openai_model
        self.timeout_seconds = settings.ai_timeout_seconds if timeout_seconds is None else timeout_seconds

    def is_configured(self) -> bool:
        return bool(settings.openai_api_key.strip())

    def health_check(self) -> bool:
        # no cheap ping endpoint; a configured key is as far as we check
        if self.is_configured():
            return True
        logger.warning("OpenAI selected but OPENAI_API_KEY is empty")
        return False

    def _build_request(self, prompt: str) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": settings.ai_temperature,
            "max_tokens": settings.openai_max_output_tokens,
        }

    def complete(self, prompt: str) -> str:
        if not self.is_configured():
            raise RuntimeError("OpenAI API key is not configured")

        started = time.perf_counter()
        response = requests.post(
            self.endpoint,
            headers={"Authorization": f"Bearer {settings.openai_api_key}"},
            json=self._build_request(prompt),
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        choices = (response.json() or {}).get("choices") or []
        text = _message_text(choices[0].get("message", {}).get("content")) if choices else None
        if text is None:
            raise RuntimeError("OpenAI response has no message content")
        logger.debug("OpenAI {} answered in {:.1f}s", self.model, time.perf_counter() - started)
        return text
