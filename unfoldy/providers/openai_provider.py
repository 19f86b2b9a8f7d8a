"""Secondary provider: OpenAI chat completions and DALL-E images.

Thin wrappers around the ``openai`` SDK.  The SDK's own retry loop is turned
off (``max_retries=0``) so a failing call surfaces immediately and the
orchestrator decides what happens next.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import openai

from unfoldy.providers.base import ImageResult, TextResult, run_with_deadline
from unfoldy.providers.errors import ProviderError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a creative interactive fiction storyteller."


class _OpenAIEndpoint:
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str = "",
        excerpt_chars: int = 200,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.excerpt_chars = excerpt_chars
        self._client: Any = None

    # ── lazy OpenAI client ────────────────────────────────
    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = openai.OpenAI(
                    api_key=self.api_key,
                    base_url=self.base_url or None,
                    max_retries=0,
                )
            except Exception as exc:
                logger.error("Failed to create OpenAI client: %s", exc)
                raise
        return self._client

    def _call(self, request: Callable[[Any], Any], timeout: float) -> Any:
        """Run one SDK request against a hard wall-clock *timeout*."""
        client = self.client

        def abort() -> None:
            # closing the http pool drops the in-flight connection
            if self._client is client:
                self._client = None
            try:
                client.close()
            except Exception as exc:
                logger.warning("Closing the %s client after a timeout failed: %s", self.name, exc)

        try:
            return run_with_deadline(lambda: request(client), timeout, self.name, on_timeout=abort)
        except openai.OpenAIError as exc:
            raise self._translate(exc, timeout) from exc

    def _translate(self, exc: Exception, timeout: float) -> ProviderError:
        """Map SDK exceptions onto the provider error taxonomy."""
        if isinstance(exc, openai.APITimeoutError):
            return ProviderError.timeout(self.name, timeout)
        if isinstance(exc, openai.APIStatusError):
            body = exc.response.text if exc.response is not None else exc.message
            return ProviderError.http_error(self.name, exc.status_code, body, self.excerpt_chars)
        return ProviderError.http_error(self.name, None, str(exc), self.excerpt_chars)


class OpenAITextProvider(_OpenAIEndpoint):
    """Chat-completion text generation."""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        temperature: float = 0.9,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> None:
        super().__init__(api_key, model, **kwargs)
        self.temperature = temperature
        self.max_tokens = max_tokens

    def generate(self, prompt: str, timeout: float) -> TextResult:
        start = time.monotonic()
        response = self._call(
            lambda client: client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=timeout,
            ),
            timeout,
        )

        text: Optional[str] = None
        if response.choices:
            text = response.choices[0].message.content
        if not text or not text.strip():
            raise ProviderError.empty_result(self.name, "message content")
        logger.debug("openai %s ok (%.0fms)", self.model, (time.monotonic() - start) * 1000)
        return TextResult(text=text, provider=self.name)


class DalleImageProvider(_OpenAIEndpoint):
    """``images.generate`` returning a hosted URL (or inline base64)."""

    name = "dalle"

    def __init__(self, api_key: str, model: str, *, size: str = "1024x1024", **kwargs: Any) -> None:
        super().__init__(api_key, model, **kwargs)
        self.size = size

    def generate(self, prompt: str, timeout: float) -> ImageResult:
        response = self._call(
            lambda client: client.images.generate(
                model=self.model,
                prompt=prompt,
                n=1,
                size=self.size,
                quality="standard",
                timeout=timeout,
            ),
            timeout,
        )

        image = response.data[0] if response.data else None
        if image is not None and image.url:
            return ImageResult(image_ref=image.url, provider=self.name)
        if image is not None and image.b64_json:
            return ImageResult(image_ref=f"data:image/png;base64,{image.b64_json}", provider=self.name)
        raise ProviderError.empty_result(self.name, "image url")
