"""Render the full story-turn instruction from session state.

``build_story_prompt`` is a pure function: identical state always renders the
identical prompt, which is what lets the orchestrator resend the exact same
request to the secondary provider.
"""
from __future__ import annotations

import json
from typing import Optional

from config import settings
from unfoldy.engine.genres import pacing_for_turn
from unfoldy.engine.state import SessionState
from unfoldy.nlg.prompt_templates import (
    CHOICES_TASK,
    EMPTY_HISTORY,
    FINAL_CHOICES_EXAMPLE,
    FINAL_TURN_TASK,
    HISTORY_CHOICE,
    HISTORY_ENTRY,
    LANGUAGE_INSTRUCTION,
    LAST_CHOICE_DIRECTIVE,
    STORY_PROMPT,
)


def render_history(state: SessionState) -> str:
    """Every past turn, oldest first, each followed by the choice made."""
    if not state.history:
        return EMPTY_HISTORY
    entries = []
    for number, record in enumerate(state.history, start=1):
        entry = HISTORY_ENTRY.format(number=number, narrative=record.narrative)
        if record.choice_made:
            entry += HISTORY_CHOICE.format(choice=record.choice_made)
        entries.append(entry)
    return "\n\n".join(entries)


def build_story_prompt(state: SessionState, num_choices: Optional[int] = None) -> str:
    num_choices = num_choices or settings.NUM_CHOICES

    last_choice = state.last_choice
    directive = LAST_CHOICE_DIRECTIVE.format(choice=last_choice) if last_choice else ""

    if state.is_final_turn:
        choice_task = FINAL_TURN_TASK
        choices_example = FINAL_CHOICES_EXAMPLE
    else:
        choice_task = CHOICES_TASK.format(num_choices=num_choices)
        choices_example = json.dumps(
            [f"Choice {i} text" for i in range(1, num_choices + 1)], ensure_ascii=False
        )

    return STORY_PROMPT.format(
        genre=state.genre,
        language_instruction=LANGUAGE_INSTRUCTION.format(language=state.language or "English"),
        art_style=state.art_style_prompt,
        turn=state.current_turn,
        max_turns=state.max_turns,
        pacing=pacing_for_turn(state.current_turn),
        history=render_history(state),
        last_choice=directive,
        choice_task=choice_task,
        choices_example=choices_example,
    )
