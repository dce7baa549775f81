from __future__ import annotations

import json

from bs4 import Tag
from selenium.webdriver.common.by import By

from selector_engine.core.metadata import SuggestedLocator
from selector_engine.utils.paths import build_css_path, is_dynamic_id

# Heuristic stability estimates per strategy. These are tuning constants with no
# derivation behind them; changing them changes every ranking downstream.
LOCATOR_CONFIDENCE = {
    "testId": 0.95,
    "ariaLabel": 0.90,
    "role": 0.85,
    "text": 0.80,
    "id": 0.70,
    "cssPath": 0.50,
}
TEST_ID_ATTRIBUTES = ("data-testid", "data-test-id", "data-test", "data-qa", "data-cy")
MAX_TEXT_LOCATOR_LENGTH = 50
MAX_ROLE_NAME_LENGTH = 50

_BY_NAMES = {
    By.CSS_SELECTOR: "CSS_SELECTOR",
    By.XPATH: "XPATH",
    By.LINK_TEXT: "LINK_TEXT",
}


def generate_locators(element: Tag, css_path: str | None = None) -> list[SuggestedLocator]:
    """Returns the element's candidate locators, most stable first. Never empty."""

    attrs = {key: _as_text(value) for key, value in element.attrs.items()}
    tag = (element.name or "").lower()
    text = element.get_text().strip()
    locators: list[SuggestedLocator] = []

    test_id_attribute = next((name for name in TEST_ID_ATTRIBUTES if attrs.get(name)), None)
    if test_id_attribute:
        test_id = attrs[test_id_attribute]
        locators.append(
            _locator(
                "testId",
                test_id,
                LOCATOR_CONFIDENCE["testId"],
                By.CSS_SELECTOR,
                f"[{test_id_attribute}={_css_string(test_id)}]",
            )
        )

    aria_label = attrs.get("aria-label")
    if aria_label:
        locators.append(
            _locator(
                "ariaLabel",
                aria_label,
                LOCATOR_CONFIDENCE["ariaLabel"],
                By.CSS_SELECTOR,
                f"[aria-label={_css_string(aria_label)}]",
            )
        )

    role = attrs.get("role")
    if role:
        name = aria_label or text[:MAX_ROLE_NAME_LENGTH]
        if name:
            name_predicate = (
                f"@aria-label={xpath_literal(name)}" if aria_label else f"normalize-space()={xpath_literal(name)}"
            )
            locators.append(
                _locator(
                    "role",
                    f'{role}[name="{name}"]',
                    LOCATOR_CONFIDENCE["role"],
                    By.XPATH,
                    f"//*[@role={xpath_literal(role)} and {name_predicate}]",
                )
            )

    if text and len(text) < MAX_TEXT_LOCATOR_LENGTH:
        if tag == "button" or role == "button":
            locators.append(
                _locator(
                    "text",
                    text,
                    LOCATOR_CONFIDENCE["text"],
                    By.XPATH,
                    f"//{tag or '*'}[normalize-space()={xpath_literal(text)}]",
                )
            )
        elif tag == "a":
            locators.append(_locator("text", text, LOCATOR_CONFIDENCE["text"], By.LINK_TEXT, text))

    element_id = attrs.get("id")
    if element_id and not is_dynamic_id(element_id):
        locators.append(
            _locator("css", f"#{element_id}", LOCATOR_CONFIDENCE["id"], By.CSS_SELECTOR, f"#{element_id}")
        )

    path = css_path if css_path is not None else build_css_path(element)
    locators.append(_locator("css", path, LOCATOR_CONFIDENCE["cssPath"], By.CSS_SELECTOR, path))

    locators.sort(key=lambda item: item.confidence, reverse=True)
    return locators


def stability_for(confidence: float) -> str:
    if confidence > 0.9:
        return "high"
    if confidence > 0.7:
        return "medium"
    return "low"


def code_template(by: str, query: str) -> str:
    return f"driver.find_element(By.{_BY_NAMES[by]}, {json.dumps(query)})"


def xpath_literal(value: str) -> str:
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    pieces = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{piece}'" for piece in pieces) + ")"


def _locator(strategy: str, value: str, confidence: float, by: str, query: str) -> SuggestedLocator:
    return SuggestedLocator(
        strategy=strategy,
        value=value,
        confidence=confidence,
        by=by,
        query=query,
        code_template=code_template(by, query),
    )


def _css_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _as_text(value) -> str:
    if isinstance(value, list):
        return " ".join(value)
    return str(value)
