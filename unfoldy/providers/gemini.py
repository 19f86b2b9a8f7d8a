"""Primary provider: Gemini text generation and Imagen image synthesis over REST.

Both clients issue exactly one bounded request per call and translate every
failure into a :class:`ProviderError`.  Retrying is the orchestrator's job.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

import requests

from unfoldy.providers.base import ImageResult, TextResult, run_with_deadline
from unfoldy.providers.errors import ProviderError

logger = logging.getLogger(__name__)

_CHUNK_BYTES = 8192


class _GeminiEndpoint:
    """Shared request plumbing for the generativelanguage REST API."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        *,
        excerpt_chars: int = 200,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.excerpt_chars = excerpt_chars
        self._session = session or requests.Session()

    def _post(self, method: str, body: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        url = f"{self.base_url}/{self.model}:{method}"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}
        start = time.monotonic()
        deadline = start + timeout
        cancelled = threading.Event()

        def fetch() -> Tuple[int, bytes]:
            resp = self._session.post(url, headers=headers, json=body, timeout=timeout, stream=True)
            try:
                chunks = []
                for chunk in resp.iter_content(chunk_size=_CHUNK_BYTES):
                    if cancelled.is_set() or time.monotonic() > deadline:
                        raise ProviderError.timeout(self.name, timeout)
                    chunks.append(chunk)
                return resp.status_code, b"".join(chunks)
            finally:
                resp.close()

        try:
            status, raw = run_with_deadline(fetch, timeout, self.name, on_timeout=cancelled.set)
        except requests.Timeout as exc:
            raise ProviderError.timeout(self.name, timeout) from exc
        except requests.RequestException as exc:
            raise ProviderError.http_error(self.name, None, str(exc), self.excerpt_chars) from exc

        elapsed_ms = (time.monotonic() - start) * 1000
        if not 200 <= status < 300:
            logger.warning("%s %s HTTP %d (%.0fms)", self.name, self.model, status, elapsed_ms)
            text = raw.decode("utf-8", errors="replace")
            raise ProviderError.http_error(self.name, status, text, self.excerpt_chars)

        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ProviderError.empty_result(self.name, "JSON body") from exc
        logger.debug("%s %s ok (%.0fms)", self.name, self.model, elapsed_ms)
        return data if isinstance(data, dict) else {}


class GeminiTextProvider(_GeminiEndpoint):
    """``models/{model}:generateContent`` with JSON response mode."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        *,
        temperature: float = 0.9,
        max_output_tokens: int = 4096,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, model, base_url, **kwargs)
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def generate(self, prompt: str, timeout: float) -> TextResult:
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
                "responseMimeType": "application/json",
            },
        }
        data = self._post("generateContent", body, timeout)
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = ""
        if not isinstance(text, str) or not text.strip():
            raise ProviderError.empty_result(self.name, "candidate text")
        return TextResult(text=text, provider=self.name)


class ImagenProvider(_GeminiEndpoint):
    """``models/{model}:predict`` returning a single base64 PNG."""

    name = "imagen"

    def generate(self, prompt: str, timeout: float) -> ImageResult:
        body = {"instances": [{"prompt": prompt}], "parameters": {"sampleCount": 1}}
        data = self._post("predict", body, timeout)
        predictions = data.get("predictions") or []
        first = predictions[0] if isinstance(predictions, list) and predictions else {}
        encoded = first.get("bytesBase64Encoded") if isinstance(first, dict) else None
        if not encoded:
            raise ProviderError.empty_result(self.name, "image data")
        logger.info("Imagen image received, %dKB", len(encoded) // 1024)
        return ImageResult(image_ref=f"data:image/png;base64,{encoded}", provider=self.name)
