"""Static genre table, supported languages and the turn-indexed pacing table.

Each genre's ``art_style_prompt`` is copied into the session at start and
prefixed to every image request for that session.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class GenreProfile:
    id: str
    display_name: str
    description: str
    art_style_prompt: str
    accent_color: str
    emoji: str = ""


GENRES: Tuple[GenreProfile, ...] = (
    GenreProfile(
        "cyberpunk", "Cyberpunk",
        "Neon-lit streets, rogue hackers, and megacorporations.",
        "Digital art, neon palette, glitched edges, synthwave aesthetic, cyberpunk cityscape",
        "#e040fb", "🌆",
    ),
    GenreProfile(
        "fantasy", "Fantasy",
        "Ancient magic, epic quests, and mythical creatures.",
        "Watercolor illustration, medieval fantasy, warm golden tones, detailed environments",
        "#ffab40", "🧙",
    ),
    GenreProfile(
        "horror", "Horror",
        "Dark secrets, creeping dread, and things in the shadows.",
        "Gritty, dark, film grain, photorealistic horror, unsettling atmosphere, muted colors",
        "#ff1744", "👻",
    ),
    GenreProfile(
        "space-opera", "Space Opera",
        "Galactic empires, starships, and interstellar conflict.",
        "Epic cinematic sci-fi, vibrant nebula colors, detailed spacecraft, space opera grandeur",
        "#448aff", "🚀",
    ),
    GenreProfile(
        "noir", "Noir Mystery",
        "Rain-slicked alleys, femme fatales, and hard-boiled detectives.",
        "Black and white, high contrast ink style, film noir, dramatic shadows, 1940s aesthetic",
        "#b0bec5", "🕵️",
    ),
    GenreProfile(
        "post-apocalyptic", "Post-Apocalyptic",
        "A broken world, desperate survivors, and hope in the ruins.",
        "Muted desaturated palette, ruined landscapes, gritty realism, post-apocalyptic desolation",
        "#8d6e63", "☢️",
    ),
)

LANGUAGES: Tuple[str, ...] = ("English", "한국어", "日本語")

# Narrative stage per turn number; turns outside 1..10 get no instruction
PACING: Dict[int, str] = {
    1: "Introduction: Set the scene and introduce the protagonist. Establish the world and tone.",
    2: "Rising Action: Introduce the first challenge or mystery. Build intrigue.",
    3: "Rising Action: Deepen the conflict. Introduce a secondary character or complication.",
    4: "Rising Action: Raise the stakes. Something unexpected happens.",
    5: "Rising Action: Build tension. The protagonist faces a difficult decision.",
    6: "Rising Action: The situation becomes dire. Foreshadow the coming climax.",
    7: "CLIMAX: This is the turning point! Maximum tension, danger, or revelation. "
       "The protagonist faces their greatest challenge.",
    8: "Falling Action: The aftermath of the climax. Show consequences of the protagonist's choice.",
    9: "Resolution Setup: Tie up loose threads. Prepare for the final outcome.",
    10: "CONCLUSION: Deliver the ending. Wrap up the story satisfyingly. "
        "Do NOT provide choices, this is the final scene.",
}


def pacing_for_turn(turn: int) -> str:
    return PACING.get(turn, "")


def get_genre(key: str) -> GenreProfile:
    """Look a genre up by id or display name (case-insensitive)."""
    wanted = key.strip().lower()
    for genre in GENRES:
        if wanted in (genre.id, genre.display_name.lower()):
            return genre
    raise KeyError(f"Unknown genre: {key!r}")
