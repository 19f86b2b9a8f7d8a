"""Session state machine for Unfoldy.

Phases::

    menu ──start──▶ loading ──▶ playing ──choice──▶ loading ──▶ … ──▶ epilogue
                       │
                       └─ text failed on both providers ─▶ error shown over
                          playing (history non-empty) or menu

Each entry into ``loading`` runs exactly one generation cycle:
prompt → text fallback chain → parser → (image fallback chain) → state.
Every settled state is persisted; ``loading`` never is.
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
import threading
from typing import Iterator, Optional

from config import settings
from unfoldy.engine.genres import GenreProfile
from unfoldy.engine.persistence import JsonFileStore, SessionStore
from unfoldy.engine.state import GenerationResult, Phase, SessionState, TurnRecord
from unfoldy.nlg.response_parser import FALLBACK_CHOICES
from unfoldy.nlg.story_generator import StoryGenerator
from unfoldy.providers.errors import ProviderError

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "The last turn was interrupted before it finished. Retry to continue."


class InvalidTransitionError(RuntimeError):
    """An action was requested in a phase that does not allow it."""


class GenerationInProgressError(RuntimeError):
    """A generation cycle is already running for this session."""


class GameEngine:
    """Owns the :class:`SessionState` and drives it through the game phases."""

    def __init__(
        self,
        story_generator: Optional[StoryGenerator] = None,
        store: Optional[SessionStore] = None,
    ) -> None:
        self.story_gen = story_generator or StoryGenerator()
        self.store: SessionStore = store if store is not None else JsonFileStore(settings.SESSION_FILE)
        self.state = SessionState()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def restore(self) -> bool:
        """Resume a saved game, if one was in progress.  Returns ``True`` on resume."""
        with self._exclusive("restore a saved game"):
            saved = self.store.load()
            if saved is None or saved.phase is Phase.MENU:
                return False
            if saved.phase is Phase.LOADING:
                # only settled states are saved; treat anything else as interrupted
                saved.phase = Phase.PLAYING if saved.history else Phase.MENU
                saved.error = INTERRUPTED_MESSAGE
            self.state = saved
        logger.info("Restored %s story at turn %d/%d", saved.genre, saved.current_turn, saved.max_turns)
        return True

    def start_session(self, genre: GenreProfile, language: str = "English") -> Optional[GenerationResult]:
        """Begin a new story in *genre* and generate its opening turn.

        Raises ``ConfigurationError`` before touching the state when no
        provider is configured.
        """
        with self._exclusive("start a new story"):
            self.story_gen.ensure_configured()
            self.state = SessionState(
                current_turn=1,
                max_turns=settings.MAX_TURNS,
                genre=genre.display_name,
                genre_id=genre.id,
                art_style_prompt=genre.art_style_prompt,
                genre_color=genre.accent_color,
                language=language,
                phase=Phase.LOADING,
            )
            logger.info("New %s story (%s)", genre.display_name, language)
            return self._run_cycle()

    def generate_turn(self) -> Optional[GenerationResult]:
        """Run one generation cycle for the current turn.

        Returns the applied result, or ``None`` when text generation failed on
        every provider (the message is then in ``state.error``).
        """
        with self._exclusive("generate a turn"):
            if self.state.phase is not Phase.LOADING:
                raise InvalidTransitionError(f"Cannot generate a turn in phase {self.state.phase.value!r}.")
            return self._run_cycle()

    def select_choice(self, choice_text: str) -> Optional[GenerationResult]:
        """Record *choice_text* for the turn on screen and generate the next one."""
        with self._exclusive("choose"):
            if self.state.phase is not Phase.PLAYING:
                raise InvalidTransitionError(f"Cannot choose in phase {self.state.phase.value!r}.")
            if choice_text not in self.state.current_choices:
                raise ValueError(f"{choice_text!r} is not one of the presented choices.")

            s = self.state
            s.history.append(
                TurnRecord(
                    turn_number=s.current_turn,
                    narrative=s.current_narrative,
                    image=s.current_image,
                    choice_made=choice_text,
                )
            )
            s.current_turn += 1
            s.current_choices = []
            s.error = None
            s.phase = Phase.LOADING
            return self._run_cycle()

    def retry(self) -> Optional[GenerationResult]:
        """Re-run the failed turn from scratch with a freshly built prompt."""
        with self._exclusive("retry"):
            if self.state.error is None or not self.state.art_style_prompt:
                raise InvalidTransitionError("There is no failed turn to retry.")
            self.state.error = None
            self.state.phase = Phase.LOADING
            return self._run_cycle()

    def reset_session(self) -> None:
        """Abandon the story and return to the menu."""
        with self._exclusive("reset"):
            self.state = SessionState()
            self.store.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _exclusive(self, action: str) -> Iterator[None]:
        # one action per session; a second caller is refused, never queued
        if not self._lock.acquire(blocking=False):
            raise GenerationInProgressError(f"Cannot {action} while a turn is generating.")
        try:
            yield
        finally:
            self._lock.release()

    def _run_cycle(self) -> Optional[GenerationResult]:
        try:
            content = self.story_gen.generate_story_content(self.state)
        except ProviderError as exc:
            logger.error("Turn %d generation failed: %s", self.state.current_turn, exc)
            self._fail(str(exc))
            return None

        image = None
        if content.image_prompt:
            image = self.story_gen.generate_image(content.image_prompt, self.state.art_style_prompt)
        return self._apply(content, image)

    def _apply(self, content: GenerationResult, image: Optional[str]) -> GenerationResult:
        s = self.state
        if s.is_final_turn:
            choices = []
        elif content.choices:
            choices = list(content.choices)
        else:
            logger.warning("Turn %d came back without choices; offering stock choices.", s.current_turn)
            choices = list(FALLBACK_CHOICES)

        s.current_narrative = content.narrative
        s.current_image = image
        s.current_choices = choices
        s.used_fallback = content.used_fallback
        s.error = None
        s.phase = Phase.EPILOGUE if s.is_final_turn else Phase.PLAYING
        self._persist()
        return dataclasses.replace(content, choices=choices)

    def _fail(self, message: str) -> None:
        self.state.error = message
        self.state.phase = Phase.PLAYING if self.state.history else Phase.MENU
        self._persist()

    def _persist(self) -> None:
        if self.state.phase is Phase.LOADING:
            return
        if self.state.phase is Phase.MENU:
            self.store.clear()
        else:
            self.store.save(self.state)
