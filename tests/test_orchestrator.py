"""Tests for the primary → secondary fallback orchestrator."""
from types import SimpleNamespace

import pytest

from unfoldy.engine.orchestrator import FallbackOrchestrator, apply_style_prefix
from unfoldy.providers.base import ImageResult, TextResult
from unfoldy.providers.errors import (
    AllProvidersFailedError,
    ConfigurationError,
    ProviderError,
    ProviderErrorKind,
)
from unfoldy.providers.gemini import GeminiTextProvider, ImagenProvider
from unfoldy.providers.openai_provider import DalleImageProvider, OpenAITextProvider

STYLE = "Black and white, high contrast ink style, film noir"


# ── Fake providers ──────────────────────────────────────────────────

class FakeText:
    def __init__(self, name, text="", error=None):
        self.name = name
        self.text = text
        self.error = error
        self.prompts = []

    def generate(self, prompt, timeout):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return TextResult(text=self.text, provider=self.name)


class FakeImage(FakeText):
    def generate(self, prompt, timeout):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return ImageResult(image_ref=f"https://img/{self.name}.png", provider=self.name)


def _timeout(name):
    return ProviderError.timeout(name, 30)


def _http(name, status=500):
    return ProviderError.http_error(name, status, f"{name} exploded", 200)


# ── Text ────────────────────────────────────────────────────────────

class TestGenerateText:
    def test_primary_success_skips_secondary(self):
        primary = FakeText("gemini", "from primary")
        secondary = FakeText("openai", "from secondary")
        outcome = FallbackOrchestrator(primary, secondary).generate_text("prompt")
        assert outcome.text == "from primary"
        assert outcome.used_fallback is False
        assert outcome.provider == "gemini"
        assert secondary.prompts == []

    def test_fallback_to_secondary(self):
        primary = FakeText("gemini", error=_timeout("gemini"))
        secondary = FakeText("openai", "from secondary")
        outcome = FallbackOrchestrator(primary, secondary).generate_text("the prompt")
        assert outcome.used_fallback is True
        assert outcome.text == "from secondary"
        assert outcome.provider == "openai"

    def test_secondary_receives_identical_prompt(self):
        primary = FakeText("gemini", error=_http("gemini", 429))
        secondary = FakeText("openai", "ok")
        FallbackOrchestrator(primary, secondary).generate_text("exact prompt")
        assert primary.prompts == secondary.prompts == ["exact prompt"]

    def test_both_fail_aggregates_messages(self):
        primary = FakeText("gemini", error=_http("gemini", 503))
        secondary = FakeText("openai", error=_http("openai", 401))
        orch = FallbackOrchestrator(primary, secondary)
        with pytest.raises(AllProvidersFailedError) as info:
            orch.generate_text("prompt")
        err = info.value
        assert err.kind is ProviderErrorKind.ALL_PROVIDERS_FAILED
        assert "gemini exploded" in str(err)
        assert "openai exploded" in str(err)
        assert err.primary_error.status == 503
        assert err.secondary_error.status == 401

    def test_missing_primary_goes_straight_to_secondary(self):
        secondary = FakeText("openai", "only one")
        outcome = FallbackOrchestrator(None, secondary).generate_text("p")
        assert outcome.text == "only one"
        assert outcome.used_fallback is True

    def test_missing_secondary_reports_not_configured(self):
        primary = FakeText("gemini", error=_timeout("gemini"))
        with pytest.raises(AllProvidersFailedError) as info:
            FallbackOrchestrator(primary, None).generate_text("p")
        assert info.value.primary_error.kind is ProviderErrorKind.TIMEOUT
        assert info.value.secondary_error.kind is ProviderErrorKind.NOT_CONFIGURED

    def test_timeouts_are_passed_through(self):
        seen = []

        class Recorder(FakeText):
            def generate(self, prompt, timeout):
                seen.append(timeout)
                return super().generate(prompt, timeout)

        FallbackOrchestrator(Recorder("gemini", "x"), text_timeout=17).generate_text("p")
        assert seen == [17]


# ── Image ───────────────────────────────────────────────────────────

class TestGenerateImage:
    def test_primary_image(self):
        primary = FakeImage("imagen")
        orch = FallbackOrchestrator(primary_image=primary, secondary_image=FakeImage("dalle"))
        assert orch.generate_image("a pier", STYLE) == "https://img/imagen.png"

    def test_image_fallback(self):
        primary = FakeImage("imagen", error=_timeout("imagen"))
        secondary = FakeImage("dalle")
        orch = FallbackOrchestrator(primary_image=primary, secondary_image=secondary)
        assert orch.generate_image("a pier", STYLE) == "https://img/dalle.png"
        assert primary.prompts == secondary.prompts

    def test_both_fail_returns_none(self):
        orch = FallbackOrchestrator(
            primary_image=FakeImage("imagen", error=_http("imagen")),
            secondary_image=FakeImage("dalle", error=_http("dalle")),
        )
        assert orch.generate_image("a pier", STYLE) is None

    def test_style_prefix_is_idempotent(self):
        primary = FakeImage("imagen")
        orch = FallbackOrchestrator(primary_image=primary)
        orch.generate_image("a rainy alley", STYLE)
        orch.generate_image("a rainy alley", STYLE)
        orch.generate_image(f"{STYLE}, a rainy alley", STYLE)
        assert len(primary.prompts) == 3
        for prompt in primary.prompts:
            assert prompt == f"{STYLE}, a rainy alley"
            assert prompt.count(STYLE) == 1


class TestApplyStylePrefix:
    def test_prepends(self):
        assert apply_style_prefix("scene", "Style") == "Style, scene"

    def test_already_prefixed(self):
        assert apply_style_prefix("Style, scene", "Style") == "Style, scene"

    def test_twice_is_same_as_once(self):
        once = apply_style_prefix("scene", "Style")
        assert apply_style_prefix(once, "Style") == once

    def test_empty_style(self):
        assert apply_style_prefix("scene", "") == "scene"


# ── Configuration ───────────────────────────────────────────────────

def _settings(**overrides):
    values = dict(
        GEMINI_API_KEY="", GEMINI_BASE_URL="https://g", GEMINI_TEXT_MODEL="gt", GEMINI_IMAGE_MODEL="gi",
        OPENAI_API_KEY="", OPENAI_BASE_URL="", OPENAI_TEXT_MODEL="ot", OPENAI_IMAGE_MODEL="oi",
        OPENAI_IMAGE_SIZE="1024x1024", TEXT_TEMPERATURE=0.9, TEXT_MAX_TOKENS=4096,
        TEXT_TIMEOUT_S=25.0, IMAGE_TIMEOUT_S=50.0, ERROR_EXCERPT_CHARS=200,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestConfiguration:
    def test_from_settings_builds_both_pairs(self):
        orch = FallbackOrchestrator.from_settings(_settings(GEMINI_API_KEY="g", OPENAI_API_KEY="o"))
        assert isinstance(orch.primary_text, GeminiTextProvider)
        assert isinstance(orch.primary_image, ImagenProvider)
        assert isinstance(orch.secondary_text, OpenAITextProvider)
        assert isinstance(orch.secondary_image, DalleImageProvider)
        assert orch.text_timeout == 25.0
        assert orch.image_timeout == 50.0

    def test_from_settings_secondary_only(self):
        orch = FallbackOrchestrator.from_settings(_settings(OPENAI_API_KEY="o"))
        assert orch.primary_text is None
        assert orch.secondary_text is not None
        orch.ensure_configured()

    def test_no_providers_is_configuration_error(self):
        orch = FallbackOrchestrator.from_settings(_settings())
        with pytest.raises(ConfigurationError):
            orch.ensure_configured()

    def test_missing_image_providers_named(self):
        orch = FallbackOrchestrator(FakeText("gemini", "x"))
        with pytest.raises(ConfigurationError, match="image"):
            orch.ensure_configured()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
