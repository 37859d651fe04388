"""Prompt construction utilities."""

from __future__ import annotations

from textwrap import dedent
from typing import Optional

from ..models import Action, ActionKind, PageInfo

DEFAULT_SYSTEM_PROMPT = (
    "You are a browser automation assistant. Convert the user's instruction into "
    "exactly one browser action. Respond with a single JSON object and nothing else."
)


class PromptBuilder:
    """Build the user prompt for a single instruction."""

    def build(self, instruction: str, page: Optional[PageInfo]) -> str:
        if page:
            state_lines = [
                f"Current URL: {page.url or 'unknown'}",
                f"Page title: {page.title or 'unknown'}",
                f"Viewport: {page.viewport_width}x{page.viewport_height}",
            ]
        else:
            state_lines = ["Current page: unknown"]
        state_section = "\n".join(state_lines)
        kinds = ", ".join(kind.value for kind in ActionKind)
        prompt = dedent(
            f"""
            Browser state:
            {state_section}

            User instruction: "{instruction}"

            Respond with one JSON object describing the action. Allowed values for
            "kind": {kinds}.
            Examples of valid objects:
            {self._actions_schema()}

            Use CSS or Playwright text selectors for "locator" and be specific:
            buttons (button, input[type="submit"]), links (a[href*="keyword"]),
            inputs (input[name="q"], [placeholder*="search"]).
            Provide only valid JSON with double quotes.
            """
        ).strip()
        return prompt

    @staticmethod
    def _actions_schema() -> str:
        examples = [
            Action(kind=ActionKind.NAVIGATE, url="https://example.com"),
            Action(kind=ActionKind.CLICK, locator="#submit"),
            Action(kind=ActionKind.TYPE, locator="input[name=q]", text="weather today"),
            Action(kind=ActionKind.SCROLL, amount=500),
            Action(kind=ActionKind.WAIT, seconds=2),
        ]
        return "\n".join(
            action.model_dump_json(
                exclude_none=True,
                exclude={"origin", "instruction"},
            )
            for action in examples
        )
