from urllib.parse import quote_plus

import pytest

from browser_control.models import ActionKind, ActionOrigin, ScrollDirection
from browser_control.translator.fallback import (
    DEFAULT_SEARCH_URL,
    LINK_LOCATOR,
    MAX_SCROLL_AMOUNT,
    MAX_WAIT_SECONDS,
    PASSWORD_INPUT_LOCATOR,
    SEARCH_INPUT_LOCATOR,
    SUBMIT_LOCATOR,
    fallback_action,
)


def test_navigate_with_explicit_url():
    action = fallback_action("go to https://example.com/docs.")
    assert action.kind == ActionKind.NAVIGATE
    assert action.url == "https://example.com/docs"
    assert action.origin == ActionOrigin.TRANSLATED
    assert action.instruction == "go to https://example.com/docs."


def test_navigate_with_bare_domain():
    action = fallback_action("open example.org")
    assert action.kind == ActionKind.NAVIGATE
    assert action.url == "https://example.org"


def test_navigate_to_well_known_site():
    action = fallback_action("Visit YouTube")
    assert action.url == "https://www.youtube.com"


def test_navigate_to_unknown_place_becomes_search():
    action = fallback_action("go to the nearest bakery")
    assert action.kind == ActionKind.NAVIGATE
    assert action.url == DEFAULT_SEARCH_URL + quote_plus("go to the nearest bakery")


def test_type_quoted_text_into_search_box():
    action = fallback_action('type "weather today" in the search box')
    assert action.kind == ActionKind.TYPE
    assert action.locator == SEARCH_INPUT_LOCATOR
    assert action.text == "weather today"


def test_type_unquoted_text_strips_target_suffix():
    action = fallback_action("enter hunter2 into the password field")
    assert action.kind == ActionKind.TYPE
    assert action.locator == PASSWORD_INPUT_LOCATOR
    assert action.text == "hunter2"


def test_click_quoted_label():
    action = fallback_action('click "Sign in"')
    assert action.kind == ActionKind.CLICK
    assert action.locator == 'text="Sign in"'


def test_click_named_button():
    action = fallback_action("click the login button")
    assert action.kind == ActionKind.CLICK
    assert action.locator == 'text="login"'


def test_click_submit_and_press_enter():
    assert fallback_action("click submit").locator == SUBMIT_LOCATOR
    assert fallback_action("press enter").locator == SUBMIT_LOCATOR


def test_click_vague_link():
    action = fallback_action("click the link")
    assert action.locator == LINK_LOCATOR


@pytest.mark.parametrize(
    ("text", "direction", "amount"),
    [
        ("scroll down", ScrollDirection.DOWN, None),
        ("scroll up 300 pixels", ScrollDirection.UP, 300),
        ("scroll to the top", ScrollDirection.UP, 100_000),
        ("scroll to the bottom", ScrollDirection.DOWN, 100_000),
    ],
)
def test_scroll(text, direction, amount):
    action = fallback_action(text)
    assert action.kind == ActionKind.SCROLL
    assert action.direction == direction
    assert action.amount == amount


@pytest.mark.parametrize(
    ("text", "seconds"),
    [
        ("wait", 1.0),
        ("wait 3 seconds", 3.0),
        ("wait 250ms", 0.25),
        ("wait 2 minutes", 120.0),
    ],
)
def test_wait_durations(text, seconds):
    action = fallback_action(text)
    assert action.kind == ActionKind.WAIT
    assert action.seconds == pytest.approx(seconds)


def test_screenshot_and_page_info_keywords():
    assert fallback_action("take a screenshot").kind == ActionKind.SCREENSHOT
    assert fallback_action("what page am I on? where am i").kind == ActionKind.PAGE_INFO


def test_search_for_phrase():
    action = fallback_action("search for python asyncio tutorial")
    assert action.kind == ActionKind.NAVIGATE
    assert action.url == DEFAULT_SEARCH_URL + quote_plus("python asyncio tutorial")


def test_custom_search_url():
    action = fallback_action("look up otters", search_url="https://duckduckgo.com/?q=")
    assert action.url == "https://duckduckgo.com/?q=otters"


def test_empty_instruction_maps_to_page_info():
    assert fallback_action("").kind == ActionKind.PAGE_INFO
    assert fallback_action("   ").kind == ActionKind.PAGE_INFO
    assert fallback_action(None).kind == ActionKind.PAGE_INFO


@pytest.mark.parametrize(
    "text",
    [
        "!!!",
        "type",
        "click",
        '"',
        "scroll 99999999999999999999999",
        "scroll down " + "9" * 400,
        "wait " + "9" * 400 + " minutes",
        "\x00\x01\x02",
        "ünïcödé ✓ 🚀",
        "a" * 5000,
    ],
)
def test_fallback_is_total(text):
    action = fallback_action(text)
    assert action.kind in set(ActionKind)
    assert action.origin == ActionOrigin.TRANSLATED


def test_huge_numbers_are_clamped():
    scroll = fallback_action("scroll down " + "9" * 400)
    assert scroll.kind == ActionKind.SCROLL
    assert scroll.amount == MAX_SCROLL_AMOUNT
    assert fallback_action("scroll up 250000 pixels").amount == MAX_SCROLL_AMOUNT

    wait = fallback_action("wait " + "9" * 400 + " seconds")
    assert wait.kind == ActionKind.WAIT
    assert wait.seconds == MAX_WAIT_SECONDS


def test_fallback_is_deterministic():
    text = "type 'hello' in the search field"
    assert fallback_action(text) == fallback_action(text)
