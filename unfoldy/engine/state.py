"""Session state data structures for Unfoldy."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from config import settings


class Phase(str, Enum):
    MENU = "menu"
    LOADING = "loading"
    PLAYING = "playing"
    EPILOGUE = "epilogue"


@dataclass(frozen=True)
class TurnRecord:
    """One completed turn: what the player read and what they chose."""

    turn_number: int
    narrative: str
    image: Optional[str] = None
    choice_made: Optional[str] = None


@dataclass
class GenerationResult:
    """Structured output of one text generation, before it joins the session."""

    narrative: str
    image_prompt: str = ""
    choices: List[str] = field(default_factory=list)
    used_fallback: bool = False
    parse_stage: str = "direct"


@dataclass
class SessionState:
    """Single source of truth for an in-progress story.

    ``genre``, ``art_style_prompt`` and ``genre_color`` are copied from the
    chosen genre when the session starts and never change afterwards.  The
    ``current_*`` fields hold the turn on screen; it only becomes a
    :class:`TurnRecord` once the player picks a choice.
    """

    current_turn: int = 1
    max_turns: int = settings.MAX_TURNS
    genre: str = ""
    genre_id: str = ""
    art_style_prompt: str = ""
    genre_color: str = "#e040fb"
    language: str = "English"
    history: List[TurnRecord] = field(default_factory=list)
    phase: Phase = Phase.MENU

    current_narrative: str = ""
    current_image: Optional[str] = None
    current_choices: List[str] = field(default_factory=list)
    used_fallback: bool = False
    error: Optional[str] = None

    @property
    def is_final_turn(self) -> bool:
        return self.current_turn >= self.max_turns

    @property
    def last_choice(self) -> Optional[str]:
        return self.history[-1].choice_made if self.history else None

    @property
    def progress(self) -> float:
        """Fraction of the story completed, for the turn bar."""
        return min(1.0, self.current_turn / self.max_turns) if self.max_turns else 1.0

    # ── serialisation ─────────────────────────────────────
    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        """Rebuild a state saved with :meth:`to_dict`.  Unknown keys are ignored."""
        try:
            phase = Phase(data.get("phase", Phase.MENU.value))
        except ValueError:
            phase = Phase.MENU
        history = [
            TurnRecord(
                turn_number=int(h.get("turn_number", i + 1)),
                narrative=str(h.get("narrative", "")),
                image=h.get("image"),
                choice_made=h.get("choice_made"),
            )
            for i, h in enumerate(data.get("history") or [])
            if isinstance(h, dict)
        ]
        return cls(
            current_turn=int(data.get("current_turn", 1)),
            max_turns=int(data.get("max_turns", settings.MAX_TURNS)),
            genre=str(data.get("genre", "")),
            genre_id=str(data.get("genre_id", "")),
            art_style_prompt=str(data.get("art_style_prompt", "")),
            genre_color=str(data.get("genre_color", "#e040fb")),
            language=str(data.get("language", "English")),
            history=history,
            phase=phase,
            current_narrative=str(data.get("current_narrative", "")),
            current_image=data.get("current_image"),
            current_choices=[str(c) for c in data.get("current_choices") or []],
            used_fallback=bool(data.get("used_fallback", False)),
            error=data.get("error"),
        )
