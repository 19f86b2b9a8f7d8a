"""Story and illustration generation for one turn.

``generate_story_content`` composes the prompt builder, the text fallback
chain and the response parser; ``generate_image`` sends the scene prompt,
prefixed with the session's locked art style, through the image chain.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from unfoldy.engine.orchestrator import FallbackOrchestrator
from unfoldy.engine.state import GenerationResult, SessionState
from unfoldy.nlg.prompt_builder import build_story_prompt
from unfoldy.nlg.response_parser import parse_response

logger = logging.getLogger(__name__)


class StoryGenerator:
    """LLM-powered narrator and illustrator for the story."""

    def __init__(self, orchestrator: Optional[FallbackOrchestrator] = None) -> None:
        self.orchestrator = orchestrator or FallbackOrchestrator.from_settings()

    def ensure_configured(self) -> None:
        self.orchestrator.ensure_configured()

    def generate_story_content(self, state: SessionState) -> GenerationResult:
        """Generate narrative, image prompt and choices for ``state.current_turn``.

        Raises ``AllProvidersFailedError`` when neither text provider answers.
        """
        prompt = build_story_prompt(state)
        logger.info(
            "Generating turn %d/%d (genre=%s, history=%d turns, last choice=%r, prompt=%d chars)",
            state.current_turn, state.max_turns, state.genre,
            len(state.history), state.last_choice, len(prompt),
        )

        outcome = self.orchestrator.generate_text(prompt)
        result = dataclasses.replace(parse_response(outcome.text), used_fallback=outcome.used_fallback)

        logger.info(
            "Parsed turn %d via %s stage: %d choices, image prompt %s, fallback=%s",
            state.current_turn, result.parse_stage, len(result.choices),
            "present" if result.image_prompt else "absent", result.used_fallback,
        )
        return result

    def generate_image(self, image_prompt: str, art_style_prompt: str) -> Optional[str]:
        """Return an image reference, or ``None`` if no illustration could be made."""
        return self.orchestrator.generate_image(image_prompt, art_style_prompt)
