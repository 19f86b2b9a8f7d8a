"""Unfoldy – Gradio front-end for the ten-turn illustrated story game.

Layout (gr.Blocks):
  Menu:      language dropdown + genre radio + start button
  Story:     turn bar, illustration, narrative, choice radio
  Epilogue:  final illustration + narrative + play-again button
  Banner:    error message with Retry / Back to Menu (shown over menu or story)
"""
from __future__ import annotations

import html
import logging
import threading
from collections import OrderedDict

import gradio as gr

from config import settings
from unfoldy.engine.game_engine import GameEngine, GenerationInProgressError, InvalidTransitionError
from unfoldy.engine.genres import GENRES, LANGUAGES, get_genre
from unfoldy.engine.persistence import JsonFileStore
from unfoldy.engine.state import Phase, SessionState
from unfoldy.nlg.story_generator import StoryGenerator
from unfoldy.providers.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ── Engines (one per browser tab, sharing providers and the save file) ──
MAX_LIVE_SESSIONS = 100

_engines: "OrderedDict[str, GameEngine]" = OrderedDict()
_engines_lock = threading.Lock()
_story_gen: StoryGenerator | None = None
_store: JsonFileStore | None = None


def _get_engine(request: gr.Request) -> GameEngine:
    """The engine owned by the tab behind *request*, created on first use."""
    global _story_gen, _store
    key = request.session_hash or ""
    with _engines_lock:
        engine = _engines.get(key)
        if engine is None:
            if _story_gen is None:
                _story_gen = StoryGenerator()
            if _store is None:
                _store = JsonFileStore(settings.SESSION_FILE)
            engine = _engines[key] = GameEngine(_story_gen, _store)
            while len(_engines) > MAX_LIVE_SESSIONS:
                evicted, _ = _engines.popitem(last=False)
                logger.info("Dropped idle session %s", evicted)
        _engines.move_to_end(key)
        return engine


# ── Helpers ──────────────────────────────────────────────────────────────

def _genre_choices() -> list[tuple[str, str]]:
    return [(f"{g.emoji} {g.display_name} – {g.description}", g.id) for g in GENRES]


def _image_html(image_ref: str | None, placeholder: str, accent: str) -> str:
    frame = f"border:3px solid {html.escape(accent, quote=True)};border-radius:12px"
    if not image_ref:
        return f"<div style='font-size:96px;text-align:center;padding:48px;{frame}'>{placeholder}</div>"
    return f"<img src='{html.escape(image_ref, quote=True)}' alt='Story scene' style='width:100%;{frame}'>"


def _turn_bar(state: SessionState) -> str:
    bar = f"**Turn {state.current_turn}/{state.max_turns}** · {state.genre} · {state.progress:.0%}"
    if state.used_fallback:
        bar += "  ·  ⚡ *Using backup AI*"
    return bar


def _render(engine: GameEngine, notice: str = ""):
    """Map the engine state onto every output component."""
    state = engine.state
    error = notice or state.error or ""
    in_menu = state.phase is Phase.MENU
    in_story = state.phase in (Phase.PLAYING, Phase.LOADING)
    in_epilogue = state.phase is Phase.EPILOGUE

    choices = [(f"{i}. {c}", c) for i, c in enumerate(state.current_choices, start=1)]
    return (
        gr.update(visible=in_menu),
        gr.update(visible=in_story),
        gr.update(visible=in_epilogue),
        gr.update(visible=bool(error)),
        f"**⚠ Something went wrong**\n\n{error}" if error else "",
        gr.update(visible=bool(state.error)),
        _turn_bar(state) if in_story else "",
        _image_html(state.current_image, "🎭", state.genre_color) if in_story else "",
        state.current_narrative if in_story else "",
        gr.update(choices=choices, value=None, visible=bool(choices)),
        f"## Your {state.genre} Story" if in_epilogue else "",
        _image_html(state.current_image, "✨", state.genre_color) if in_epilogue else "",
        state.current_narrative if in_epilogue else "",
    )


# ── Callbacks ────────────────────────────────────────────────────────────

def on_load(request: gr.Request):
    engine = _get_engine(request)
    try:
        engine.restore()
    except GenerationInProgressError as exc:
        logger.warning("Restore skipped: %s", exc)
    return _render(engine)


def start_story(genre_id: str | None, language: str, request: gr.Request):
    engine = _get_engine(request)
    if not genre_id:
        return _render(engine, "Pick a genre to begin.")
    try:
        engine.start_session(get_genre(genre_id), language or "English")
    except (ConfigurationError, GenerationInProgressError) as exc:
        logger.error("Cannot start story: %s", exc)
        return _render(engine, str(exc))
    return _render(engine)


def choose(choice: str | None, request: gr.Request):
    engine = _get_engine(request)
    if not choice:
        return _render(engine)
    try:
        engine.select_choice(choice)
    except (ValueError, InvalidTransitionError, GenerationInProgressError) as exc:
        # stale click from an outdated page
        logger.warning("Ignored choice %r: %s", choice, exc)
        return _render(engine, str(exc))
    return _render(engine)


def retry(request: gr.Request):
    engine = _get_engine(request)
    try:
        engine.retry()
    except (InvalidTransitionError, GenerationInProgressError) as exc:
        logger.warning("Retry ignored: %s", exc)
        return _render(engine, str(exc))
    return _render(engine)


def back_to_menu(request: gr.Request):
    engine = _get_engine(request)
    try:
        engine.reset_session()
    except GenerationInProgressError as exc:
        return _render(engine, str(exc))
    return _render(engine)


# ── UI Layout ────────────────────────────────────────────────────────────

def build_ui() -> gr.Blocks:
    with gr.Blocks(title="Unfoldy – Choose your story", theme=gr.themes.Soft(primary_hue="purple")) as demo:
        with gr.Column(visible=False) as banner:
            banner_md = gr.Markdown("")
            with gr.Row():
                retry_btn = gr.Button("Retry", variant="primary", visible=False)
                menu_btn = gr.Button("Back to Menu")

        with gr.Column(visible=True) as menu_col:
            gr.Markdown("# Unfoldy\n*Choose your story. Shape your fate.*")
            language_dd = gr.Dropdown(choices=list(LANGUAGES), value=LANGUAGES[0], label="Language")
            genre_radio = gr.Radio(choices=_genre_choices(), label="Genre")
            start_btn = gr.Button("Begin", variant="primary")

        with gr.Column(visible=False) as story_col:
            turn_md = gr.Markdown("")
            image_html = gr.HTML("")
            narrative_md = gr.Markdown("")
            choice_radio = gr.Radio(choices=[], label="What will you do?", interactive=True, visible=False)
            quit_btn = gr.Button("✕ Quit story", size="sm")

        with gr.Column(visible=False) as epilogue_col:
            gr.Markdown("### The End")
            epilogue_title = gr.Markdown("")
            epilogue_image = gr.HTML("")
            epilogue_md = gr.Markdown("")
            again_btn = gr.Button("Play Again", variant="primary")

        outputs = [
            menu_col, story_col, epilogue_col, banner, banner_md, retry_btn,
            turn_md, image_html, narrative_md, choice_radio,
            epilogue_title, epilogue_image, epilogue_md,
        ]

        # ── Wiring ──
        demo.load(fn=on_load, outputs=outputs)
        start_btn.click(fn=start_story, inputs=[genre_radio, language_dd], outputs=outputs)
        choice_radio.input(fn=choose, inputs=[choice_radio], outputs=outputs)
        retry_btn.click(fn=retry, outputs=outputs)
        for btn in (menu_btn, quit_btn, again_btn):
            btn.click(fn=back_to_menu, outputs=outputs)

    return demo


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    demo = build_ui()
    demo.launch(server_name="0.0.0.0", server_port=settings.GRADIO_PORT, share=False)
