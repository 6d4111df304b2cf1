from __future__ import annotations

import time

import requests
from loguru import logger

from .settings import settings


class OllamaClient:
    """Text completions from a local Ollama server."""

    name = "ollama"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model = model or settings.ollama_model
        self.timeout_seconds = settings.ai_timeout_seconds if timeout_seconds is None else timeout_seconds

    def health_check(self) -> bool:
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=settings.ollama_health_timeout_seconds)
        except requests.RequestException as exc:
            logger.warning("Cannot connect to Ollama at {}: {}", self.base_url, exc)
            return False
        if not response.ok:
            logger.warning("Ollama responded with error: {}", response.status_code)
            return False
        logger.debug("Ollama is running at {}", self.base_url)
        return True

    def complete(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": settings.ai_temperature,
                "num_predict": settings.ollama_num_predict,
            },
        }

        start = time.perf_counter()
        response = requests.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout_seconds)
        response.raise_for_status()

        body = response.json()
        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise RuntimeError("Ollama response body has no 'response' text")
        logger.debug("Ollama {} answered in {:.1f}s", self.model, time.perf_counter() - start)
        return text
