"""Primary → secondary provider fallback for text and image generation.

Each operation runs a two-stage sequential workflow: the primary provider is
tried first and the secondary only after the primary has definitively failed,
with the identical prompt.  Stages are never raced.  Failures are collected
as values so that a double failure can report both causes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from unfoldy.providers.base import ImageProvider, TextProvider
from unfoldy.providers.errors import AllProvidersFailedError, ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    TRY_PRIMARY = "primary"
    TRY_SECONDARY = "secondary"


@dataclass(frozen=True)
class TextOutcome:
    text: str
    used_fallback: bool
    provider: str


def apply_style_prefix(scene_prompt: str, style_prompt: str) -> str:
    """Prefix *scene_prompt* with *style_prompt* unless it already starts with it."""
    if not style_prompt or scene_prompt.startswith(style_prompt):
        return scene_prompt
    return f"{style_prompt}, {scene_prompt}"


class FallbackOrchestrator:
    """Route generation requests through the primary and secondary providers."""

    def __init__(
        self,
        primary_text: Optional[TextProvider] = None,
        secondary_text: Optional[TextProvider] = None,
        primary_image: Optional[ImageProvider] = None,
        secondary_image: Optional[ImageProvider] = None,
        *,
        text_timeout: float = 30.0,
        image_timeout: float = 60.0,
    ) -> None:
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.primary_image = primary_image
        self.secondary_image = secondary_image
        self.text_timeout = text_timeout
        self.image_timeout = image_timeout

    @classmethod
    def from_settings(cls, settings: Any = None) -> "FallbackOrchestrator":
        """Gemini/Imagen as primary and OpenAI/DALL-E as secondary, where keys exist."""
        if settings is None:
            from config import settings

        from unfoldy.providers.gemini import GeminiTextProvider, ImagenProvider
        from unfoldy.providers.openai_provider import DalleImageProvider, OpenAITextProvider

        primary_text = primary_image = secondary_text = secondary_image = None
        if settings.GEMINI_API_KEY:
            primary_text = GeminiTextProvider(
                settings.GEMINI_API_KEY,
                settings.GEMINI_TEXT_MODEL,
                settings.GEMINI_BASE_URL,
                temperature=settings.TEXT_TEMPERATURE,
                max_output_tokens=settings.TEXT_MAX_TOKENS,
                excerpt_chars=settings.ERROR_EXCERPT_CHARS,
            )
            primary_image = ImagenProvider(
                settings.GEMINI_API_KEY,
                settings.GEMINI_IMAGE_MODEL,
                settings.GEMINI_BASE_URL,
                excerpt_chars=settings.ERROR_EXCERPT_CHARS,
            )
        if settings.OPENAI_API_KEY:
            secondary_text = OpenAITextProvider(
                settings.OPENAI_API_KEY,
                settings.OPENAI_TEXT_MODEL,
                temperature=settings.TEXT_TEMPERATURE,
                max_tokens=settings.TEXT_MAX_TOKENS,
                base_url=settings.OPENAI_BASE_URL,
                excerpt_chars=settings.ERROR_EXCERPT_CHARS,
            )
            secondary_image = DalleImageProvider(
                settings.OPENAI_API_KEY,
                settings.OPENAI_IMAGE_MODEL,
                size=settings.OPENAI_IMAGE_SIZE,
                base_url=settings.OPENAI_BASE_URL,
                excerpt_chars=settings.ERROR_EXCERPT_CHARS,
            )
        return cls(
            primary_text,
            secondary_text,
            primary_image,
            secondary_image,
            text_timeout=settings.TEXT_TIMEOUT_S,
            image_timeout=settings.IMAGE_TIMEOUT_S,
        )

    def ensure_configured(self) -> None:
        """Raise :class:`ConfigurationError` if an operation has no provider at all."""
        missing = []
        if self.primary_text is None and self.secondary_text is None:
            missing.append("text")
        if self.primary_image is None and self.secondary_image is None:
            missing.append("image")
        if missing:
            raise ConfigurationError(
                f"No provider configured for {' and '.join(missing)} generation. "
                "Set GEMINI_API_KEY and/or OPENAI_API_KEY."
            )

    # ── public API ────────────────────────────────────────
    def generate_text(self, prompt: str) -> TextOutcome:
        """Return the first successful text; raise ``AllProvidersFailedError`` otherwise."""
        result, stage = self._run(
            "text generation",
            ((Stage.TRY_PRIMARY, self.primary_text), (Stage.TRY_SECONDARY, self.secondary_text)),
            prompt,
            self.text_timeout,
        )
        logger.info("Text via %s (%s), %d chars", result.provider, stage.value, len(result.text))
        return TextOutcome(
            text=result.text,
            used_fallback=stage is Stage.TRY_SECONDARY,
            provider=result.provider,
        )

    def generate_image(self, scene_prompt: str, style_prompt: str) -> Optional[str]:
        """Return an image URL / data URI, or ``None`` when every provider failed."""
        full_prompt = apply_style_prefix(scene_prompt, style_prompt)
        try:
            result, stage = self._run(
                "image generation",
                ((Stage.TRY_PRIMARY, self.primary_image), (Stage.TRY_SECONDARY, self.secondary_image)),
                full_prompt,
                self.image_timeout,
            )
        except AllProvidersFailedError as exc:
            logger.error("No image for this turn: %s", exc)
            return None
        logger.info("Image via %s (%s)", result.provider, stage.value)
        return result.image_ref

    # ── workflow ──────────────────────────────────────────
    def _run(
        self,
        operation: str,
        stages: Sequence[Tuple[Stage, Any]],
        prompt: str,
        timeout: float,
    ) -> Tuple[Any, Stage]:
        errors: List[ProviderError] = []
        for stage, provider in stages:
            if provider is None:
                errors.append(ProviderError.not_configured(stage.value))
                continue
            try:
                return provider.generate(prompt, timeout), stage
            except ProviderError as exc:
                logger.warning("%s failed on %s provider: %s", operation, stage.value, exc)
                errors.append(exc)
        raise AllProvidersFailedError(operation, errors[0], errors[1])
