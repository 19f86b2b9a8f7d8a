"""Error taxonomy shared by every provider client and the fallback orchestrator.

``ProviderError`` is the only exception a provider client raises.  Its ``kind``
tells callers what went wrong without inspecting provider-specific payloads;
``AllProvidersFailedError`` aggregates the primary and secondary failures so
both messages reach the player and the logs.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ProviderErrorKind(str, Enum):
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    EMPTY_RESULT = "empty_result"
    NOT_CONFIGURED = "not_configured"
    ALL_PROVIDERS_FAILED = "all_providers_failed"


class ProviderError(Exception):
    """A single provider call failed (or could not be made)."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        provider: str,
        message: str,
        *,
        status: Optional[int] = None,
        body_excerpt: str = "",
    ) -> None:
        self.kind = kind
        self.provider = provider
        self.message = message
        self.status = status
        self.body_excerpt = body_excerpt
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"{self.provider}: {self.message}"
        if self.body_excerpt:
            text += f" - {self.body_excerpt}"
        return text

    # ── constructors ──────────────────────────────────────
    @classmethod
    def timeout(cls, provider: str, seconds: float) -> "ProviderError":
        return cls(ProviderErrorKind.TIMEOUT, provider, f"timed out after {seconds:g}s")

    @classmethod
    def http_error(
        cls, provider: str, status: Optional[int], body: str, limit: int
    ) -> "ProviderError":
        label = f"HTTP {status}" if status is not None else "request failed"
        return cls(
            ProviderErrorKind.HTTP_ERROR,
            provider,
            label,
            status=status,
            body_excerpt=excerpt(body, limit),
        )

    @classmethod
    def empty_result(cls, provider: str, what: str) -> "ProviderError":
        return cls(ProviderErrorKind.EMPTY_RESULT, provider, f"no {what} in response")

    @classmethod
    def not_configured(cls, slot: str) -> "ProviderError":
        return cls(ProviderErrorKind.NOT_CONFIGURED, slot, "provider not configured")


class AllProvidersFailedError(ProviderError):
    """Both the primary and the secondary provider failed for one operation."""

    def __init__(self, operation: str, primary_error: ProviderError, secondary_error: ProviderError) -> None:
        self.operation = operation
        self.primary_error = primary_error
        self.secondary_error = secondary_error
        super().__init__(
            ProviderErrorKind.ALL_PROVIDERS_FAILED,
            "all providers",
            f"{operation} failed. Primary ({primary_error}) | Secondary ({secondary_error})",
        )

    def __str__(self) -> str:
        return self.message


class ConfigurationError(RuntimeError):
    """No provider is configured for an operation the game needs."""


def excerpt(text: Optional[str], limit: int) -> str:
    """Collapse whitespace and truncate *text* to *limit* characters."""
    if not text:
        return ""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit].rstrip() + "…"
