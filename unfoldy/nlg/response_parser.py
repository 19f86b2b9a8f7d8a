"""Turn the text provider's raw output into a :class:`GenerationResult`.

Providers are asked for a bare JSON object but regularly wrap it in markdown
fences, surround it with prose, or leave an unescaped ``"`` inside a string
value.  ``parse_response`` never raises; it walks a cascade of increasingly
lenient strategies and stops at the first one that yields a narrative:

1. strip a code fence and narrow to the first balanced top-level ``{...}``
2. strict ``json.loads``
3. per-field pattern extraction tolerant of interior quotes
4. quote-escape repair followed by a second strict parse
5. rescue of a narrative cut off before its closing quote
6. a generic result built from the raw text with three stock choices
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from unfoldy.engine.state import GenerationResult

logger = logging.getLogger(__name__)

PLACEHOLDER_NARRATIVE = "The story continues..."
FALLBACK_CHOICES = ("Continue forward", "Look around", "Take a different path")
MAX_CHOICES = 3
MAX_FALLBACK_NARRATIVE = 500

_FIELDS = ("narrative", "imagePrompt", "choices")

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_CHOICES_RE = re.compile(r'"choices"\s*:\s*\[(?P<body>[\s\S]*?)\]')
_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
_STRIP_RE = re.compile(r'[{}"]')
# a captured value that runs over an unrecognised `"key":` is not one value
_EMBEDDED_KEY_RE = re.compile(r'"\s*,\s*"[^"\n]*"\s*:')


def _string_field_re(name: str) -> "re.Pattern[str]":
    # value closes at the next known key, the final brace, or end of text
    others = "|".join(re.escape(f) for f in _FIELDS if f != name)
    return re.compile(
        r'"%s"\s*:\s*"(?P<value>[\s\S]*?)"\s*(?=,\s*"(?:%s)"\s*:|\}\s*$|$)'
        % (re.escape(name), others)
    )


_NARRATIVE_RE = _string_field_re("narrative")
_IMAGE_PROMPT_RE = _string_field_re("imagePrompt")
# output cut off mid-value: no closing quote at all
_TRUNCATED_NARRATIVE_RE = re.compile(r'"narrative"\s*:\s*"(?P<value>[\s\S]+)\Z')


# ── public API ────────────────────────────────────────────
def parse_response(raw_text: Optional[str]) -> GenerationResult:
    """Parse *raw_text* into narrative, image prompt and at most three choices.

    ``used_fallback`` is left ``False``; provider selection is the caller's
    concern.
    """
    raw_text = raw_text or ""
    candidate = extract_json_candidate(raw_text)

    result = _parse_direct(candidate)
    if result is not None:
        return result

    logger.warning("Strict JSON parse failed, trying field extraction. Raw: %s", raw_text[:500])
    result = _parse_fields(candidate)
    if result is not None:
        return result

    result = _parse_repaired(candidate)
    if result is not None:
        return result

    result = _parse_truncated(candidate)
    if result is not None:
        return result

    logger.warning("All parse strategies failed; using generic fallback result.")
    return _fallback_result(raw_text)


# ── stage 1: fence / object extraction ────────────────────
def extract_json_candidate(raw_text: str) -> str:
    text = raw_text.strip()
    fence = _FENCE_RE.search(text)
    if fence:
        text = fence.group(1).strip()
    span = _first_object(text)
    return span if span is not None else text


def _first_object(text: str) -> Optional[str]:
    """The first ``{...}`` whose braces balance, ignoring braces inside strings.

    Unbalanced (truncated) output yields everything from the first ``{``.
    """
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


# ── stage 2: strict parse ─────────────────────────────────
def _parse_direct(candidate: str) -> Optional[GenerationResult]:
    try:
        parsed = json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    return _from_mapping(parsed, stage="direct")


def _from_mapping(parsed: Dict[str, Any], stage: str) -> GenerationResult:
    narrative = parsed.get("narrative")
    image_prompt = parsed.get("imagePrompt")
    choices = parsed.get("choices")
    return GenerationResult(
        narrative=narrative.strip() if isinstance(narrative, str) and narrative.strip() else PLACEHOLDER_NARRATIVE,
        image_prompt=image_prompt.strip() if isinstance(image_prompt, str) else "",
        choices=_clean_choices(choices) if isinstance(choices, list) else [],
        parse_stage=stage,
    )


def _clean_choices(values: List[Any]) -> List[str]:
    cleaned = [str(v).strip() for v in values if v is not None]
    return [c for c in cleaned if c][:MAX_CHOICES]


# ── stage 3: field-pattern extraction ─────────────────────
def _parse_fields(candidate: str) -> Optional[GenerationResult]:
    narrative = _find_string(_NARRATIVE_RE, candidate)
    if not narrative:
        return None

    choices: List[str] = []
    match = _CHOICES_RE.search(candidate)
    if match:
        choices = _clean_choices([_unescape(q) for q in _QUOTED_RE.findall(match.group("body"))])

    return GenerationResult(
        narrative=narrative,
        image_prompt=_find_string(_IMAGE_PROMPT_RE, candidate),
        choices=choices,
        parse_stage="fields",
    )


def _find_string(pattern: "re.Pattern[str]", text: str) -> str:
    match = pattern.search(text)
    if not match or _EMBEDDED_KEY_RE.search(match.group("value")):
        return ""
    return _unescape(match.group("value"))


def _unescape(value: str) -> str:
    """Decode JSON escapes, tolerating the stray quotes that broke strict parsing."""
    try:
        decoded = json.loads(f'"{value}"', strict=False)
    except (ValueError, RecursionError):
        decoded = (
            value.replace('\\"', '"')
            .replace("\\n", "\n")
            .replace("\\t", "\t")
            .replace("\\\\", "\\")
        )
    return decoded.strip() if isinstance(decoded, str) else ""


# ── stage 4: escape repair + reparse ──────────────────────
def repair_unescaped_quotes(text: str) -> str:
    """Escape quotes that cannot be the end of a JSON string value.

    Inside a string, a ``"`` only closes it when the next non-space character
    is ``,``, ``:``, ``}``, ``]`` or end of text; any other ``"`` is escaped.
    Raw newlines inside strings are escaped as well.
    """
    out: List[str] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if not in_string:
            if ch == '"':
                in_string = True
            out.append(ch)
            continue
        if escaped:
            escaped = False
            out.append(ch)
        elif ch == "\\":
            escaped = True
            out.append(ch)
        elif ch == '"':
            rest = text[i + 1:].lstrip()
            if not rest or rest[0] in ",:}]":
                in_string = False
                out.append(ch)
            else:
                out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        else:
            out.append(ch)
    return "".join(out)


def _parse_repaired(candidate: str) -> Optional[GenerationResult]:
    try:
        parsed = json.loads(repair_unescaped_quotes(candidate))
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    narrative = parsed.get("narrative")
    if not isinstance(narrative, str) or not narrative.strip():
        return None
    return _from_mapping(parsed, stage="repaired")


# ── stage 5: value cut off before its closing quote ───────
def _parse_truncated(candidate: str) -> Optional[GenerationResult]:
    match = _TRUNCATED_NARRATIVE_RE.search(candidate)
    if not match:
        return None
    narrative = _unescape(match.group("value").rstrip().rstrip('}"').rstrip())
    if not narrative:
        return None
    return GenerationResult(narrative=narrative, parse_stage="truncated")


# ── stage 6: last resort ──────────────────────────────────
def _fallback_result(raw_text: str) -> GenerationResult:
    narrative = _STRIP_RE.sub("", raw_text).strip()[:MAX_FALLBACK_NARRATIVE].strip()
    return GenerationResult(
        narrative=narrative or PLACEHOLDER_NARRATIVE,
        image_prompt="",
        choices=list(FALLBACK_CHOICES),
        parse_stage="fallback",
    )
