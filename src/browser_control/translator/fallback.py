"""Deterministic keyword parser turning free text into an action.

Used whenever the inference service is unavailable or answers with something
that cannot be parsed. :func:`fallback_action` never raises: any input,
including empty or garbage text, yields a structurally valid action.
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import quote_plus

from ..models import Action, ActionKind, ActionOrigin, ScrollDirection

LOGGER = logging.getLogger(__name__)

DEFAULT_SEARCH_URL = "https://www.google.com/search?q="
MAX_SCROLL_AMOUNT = 100_000
MAX_WAIT_SECONDS = 86_400.0

WELL_KNOWN_SITES = {
    "google": "https://www.google.com",
    "youtube": "https://www.youtube.com",
    "github": "https://github.com",
    "wikipedia": "https://www.wikipedia.org",
    "amazon": "https://www.amazon.com",
    "reddit": "https://www.reddit.com",
    "twitter": "https://twitter.com",
    "facebook": "https://www.facebook.com",
    "linkedin": "https://www.linkedin.com",
    "stackoverflow": "https://stackoverflow.com",
    "stack overflow": "https://stackoverflow.com",
    "gmail": "https://mail.google.com",
    "bing": "https://www.bing.com",
    "duckduckgo": "https://duckduckgo.com",
}

SEARCH_INPUT_LOCATOR = 'input[type="search"], input[name="q"], textarea[name="q"]'
EMAIL_INPUT_LOCATOR = 'input[type="email"], input[name*="email"]'
PASSWORD_INPUT_LOCATOR = 'input[type="password"]'
TEXT_INPUT_LOCATOR = 'input[type="text"], input:not([type]), textarea'
SUBMIT_LOCATOR = 'button[type="submit"], input[type="submit"]'
BUTTON_LOCATOR = 'button, input[type="submit"], [role="button"]'
LINK_LOCATOR = "a[href]"

_NAVIGATE_RE = re.compile(r"\b(go to|goto|navigate|visit|open)\b", re.IGNORECASE)
_TYPE_RE = re.compile(r"\b(type|enter|input|fill in|fill|write)\b", re.IGNORECASE)
_CLICK_RE = re.compile(r"\b(click|press|tap|button)\b", re.IGNORECASE)
_SUBMIT_KEY_RE = re.compile(r"\b(press|hit)\s+(the\s+)?(enter|return)\b", re.IGNORECASE)
_SCROLL_RE = re.compile(r"\bscroll\b", re.IGNORECASE)
_WAIT_RE = re.compile(r"\b(wait|sleep|pause for)\b", re.IGNORECASE)
_SCREENSHOT_RE = re.compile(r"\b(screenshot|screen shot|capture the screen)\b", re.IGNORECASE)
_PAGE_INFO_RE = re.compile(
    r"\b(page info|what page|which page|current page|page title|where am i)\b",
    re.IGNORECASE,
)
_SEARCH_RE = re.compile(r"\b(?:search|look up|lookup)\b(?:\s+for)?\s*(.*)$", re.IGNORECASE)

_URL_RE = re.compile(r"https?://[^\s\"'<>]+", re.IGNORECASE)
_DOMAIN_RE = re.compile(
    r"\b((?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,})(/[^\s\"'<>]*)?",
    re.IGNORECASE,
)
_QUOTED_RE = re.compile(r"\"([^\"]*)\"|“([^”]*)”|(?:(?<=\s)|^)'([^']*)'")
_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_DURATION_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(ms|milliseconds?|millis|s|secs?|seconds?|m|mins?|minutes?)?\b",
    re.IGNORECASE,
)
_TYPE_VALUE_RE = re.compile(r"\b(?:type|enter|input|fill in|fill|write)\b\s+(.*)$", re.IGNORECASE)
_TYPE_TARGET_SUFFIX_RE = re.compile(
    r"\s+(?:in|into|on|inside)\s+(?:the\s+|a\s+)?[\w\s-]*?"
    r"(?:field|box|input|bar|area|form)\s*$",
    re.IGNORECASE,
)
_CLICK_PHRASE_RE = re.compile(
    r"\b(?:click|press|tap)\b\s+(?:on\s+)?(?:the\s+|a\s+)?(.+?)(?:\s+(?:button|link))?\s*$",
    re.IGNORECASE,
)
_TRAILING_PUNCTUATION = ".,;:!?)"
_VAGUE_TARGETS = {"", "it", "here", "there", "button", "link", "that", "this"}


def fallback_action(text: Optional[str], *, search_url: str = DEFAULT_SEARCH_URL) -> Action:
    """Map ``text`` onto a single translated :class:`Action`."""

    instruction = (text or "").strip()
    try:
        return _build(instruction, search_url)
    except (ValueError, OverflowError):
        LOGGER.warning("Heuristic parse produced an invalid action for %r", instruction)
        return _action(ActionKind.PAGE_INFO, instruction)


def _build(instruction: str, search_url: str) -> Action:
    lower = instruction.lower()
    if not lower:
        return _action(ActionKind.PAGE_INFO, instruction)
    if _NAVIGATE_RE.search(lower):
        return _action(
            ActionKind.NAVIGATE,
            instruction,
            url=_navigation_url(instruction, search_url),
        )
    typing = _TYPE_RE.search(lower)
    clicking = _CLICK_RE.search(lower)
    submit = _SUBMIT_KEY_RE.search(lower)
    if submit and (not typing or submit.start() <= typing.start()):
        return _action(ActionKind.CLICK, instruction, locator=SUBMIT_LOCATOR)
    if typing and (not clicking or typing.start() < clicking.start()):
        return _action(
            ActionKind.TYPE,
            instruction,
            locator=_input_locator(lower),
            text=_typed_value(instruction),
        )
    if clicking:
        return _action(ActionKind.CLICK, instruction, locator=_click_locator(instruction))
    if _SCROLL_RE.search(lower):
        return _scroll_action(instruction, lower)
    if _WAIT_RE.search(lower):
        return _action(ActionKind.WAIT, instruction, seconds=_duration_seconds(lower))
    if _SCREENSHOT_RE.search(lower):
        return _action(ActionKind.SCREENSHOT, instruction)
    if _PAGE_INFO_RE.search(lower):
        return _action(ActionKind.PAGE_INFO, instruction)
    search = _SEARCH_RE.search(instruction)
    if search:
        query = search.group(1).strip() or instruction
        return _action(ActionKind.NAVIGATE, instruction, url=search_url + quote_plus(query))
    explicit = _explicit_url(instruction)
    if explicit:
        return _action(ActionKind.NAVIGATE, instruction, url=explicit)
    return _action(ActionKind.NAVIGATE, instruction, url=search_url + quote_plus(instruction))


def _action(kind: ActionKind, instruction: str, **params: object) -> Action:
    return Action(
        kind=kind,
        origin=ActionOrigin.TRANSLATED,
        instruction=instruction,
        **params,
    )


def _navigation_url(instruction: str, search_url: str) -> str:
    explicit = _explicit_url(instruction)
    if explicit:
        return explicit
    return search_url + quote_plus(instruction)


def _explicit_url(instruction: str) -> Optional[str]:
    match = _URL_RE.search(instruction)
    if match:
        return match.group(0).rstrip(_TRAILING_PUNCTUATION)
    match = _DOMAIN_RE.search(instruction)
    if match:
        return "https://" + match.group(0).rstrip(_TRAILING_PUNCTUATION)
    lower = instruction.lower()
    for name, url in WELL_KNOWN_SITES.items():
        if re.search(rf"\b{re.escape(name)}\b", lower):
            return url
    return None


def _quoted(instruction: str) -> Optional[str]:
    match = _QUOTED_RE.search(instruction)
    if not match:
        return None
    return next(group for group in match.groups() if group is not None)


def _input_locator(lower: str) -> str:
    if "search" in lower:
        return SEARCH_INPUT_LOCATOR
    if "email" in lower or "e-mail" in lower:
        return EMAIL_INPUT_LOCATOR
    if "password" in lower:
        return PASSWORD_INPUT_LOCATOR
    return TEXT_INPUT_LOCATOR


def _typed_value(instruction: str) -> str:
    quoted = _quoted(instruction)
    if quoted is not None:
        return quoted
    match = _TYPE_VALUE_RE.search(instruction)
    if not match:
        return ""
    value = _TYPE_TARGET_SUFFIX_RE.sub("", match.group(1))
    return value.strip().rstrip(_TRAILING_PUNCTUATION)


def _click_locator(instruction: str) -> str:
    quoted = _quoted(instruction)
    if quoted:
        return _text_locator(quoted)
    lower = instruction.lower()
    if re.search(r"\bsubmit\b", lower):
        return SUBMIT_LOCATOR
    match = _CLICK_PHRASE_RE.search(instruction)
    if match:
        phrase = match.group(1).strip().rstrip(_TRAILING_PUNCTUATION)
        if phrase.lower() not in _VAGUE_TARGETS:
            return _text_locator(phrase)
    if re.search(r"\blink\b", lower):
        return LINK_LOCATOR
    return BUTTON_LOCATOR


def _text_locator(label: str) -> str:
    escaped = label.replace("\\", "\\\\").replace('"', '\\"')
    return f'text="{escaped}"'


def _scroll_action(instruction: str, lower: str) -> Action:
    direction = ScrollDirection.DOWN
    if re.search(r"\b(up|top)\b", lower):
        direction = ScrollDirection.UP
    amount: Optional[int] = None
    number = _NUMBER_RE.search(lower)
    if number:
        amount = _scroll_amount(number.group(1))
    elif re.search(r"\b(top|bottom)\b", lower):
        amount = MAX_SCROLL_AMOUNT
    return _action(
        ActionKind.SCROLL,
        instruction,
        direction=direction,
        amount=amount,
    )


def _scroll_amount(value: str) -> int:
    digits = value.split(".")[0]
    if len(digits) > len(str(MAX_SCROLL_AMOUNT)):
        return MAX_SCROLL_AMOUNT
    return min(int(digits), MAX_SCROLL_AMOUNT)


def _duration_seconds(lower: str) -> float:
    match = _DURATION_RE.search(lower)
    if not match:
        return 1.0
    value = float(match.group(1))
    unit = (match.group(2) or "s").lower()
    if unit.startswith("ms") or unit.startswith("milli"):
        return min(value / 1000, MAX_WAIT_SECONDS)
    if unit.startswith("m"):
        return min(value * 60, MAX_WAIT_SECONDS)
    return min(value, MAX_WAIT_SECONDS)
