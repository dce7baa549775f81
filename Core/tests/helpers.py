from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta

from selector_engine.llm.client import CompletionClient, CompletionOptions


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ScriptedCompletionClient(CompletionClient):
    """Replays canned responses in order; exceptions in the script are raised."""

    provider_name = "scripted"

    def __init__(self, responses: list[str | Exception], delay: float = 0.0) -> None:
        self.responses = list(responses)
        self.delay = delay
        self.prompts: list[str] = []
        self.options: list[CompletionOptions | None] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        self.prompts.append(prompt)
        self.options.append(options)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if not self.responses:
                raise RuntimeError("No scripted response left")
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.in_flight -= 1


def fenced(payload: dict) -> str:
    return "Here is the result.\n```json\n" + json.dumps(payload, indent=2) + "\n```\n"


CHECKOUT_MARKUP = """
<html><body>
<main>
  <button data-testid="submit-order">Place order</button>
  <a href="/cart" aria-label="Cart">Cart</a>
  <button>Cancel</button>
  <input name="coupon">
  <div id="panel-99999" onclick="toggle()">Panel</div>
</main>
</body></html>
"""
