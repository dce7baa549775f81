from __future__ import annotations

import logging

from bs4 import BeautifulSoup, Tag

from selector_engine.core.metadata import (
    ElementInfo,
    ElementType,
    FormField,
    FormSummary,
    InteractiveElement,
    PageSection,
)
from selector_engine.utils.locators import generate_locators
from selector_engine.utils.paths import build_css_path, build_xpath, split_classes

logger = logging.getLogger(__name__)

INTERACTIVE_SELECTORS = (
    "button",
    "a[href]",
    "input",
    "select",
    "textarea",
    '[role="button"]',
    '[role="link"]',
    '[role="checkbox"]',
    '[role="radio"]',
    '[role="switch"]',
    '[role="tab"]',
    '[role="menuitem"]',
    "[onclick]",
    "[tabindex]",
)

SECTION_SELECTORS = (
    ("header", "Header"),
    ("nav", "Navigation"),
    ("main", "Main Content"),
    ("aside", "Sidebar"),
    ("footer", "Footer"),
    ('[role="navigation"]', "Navigation"),
    ('[role="main"]', "Main Content"),
    ('[role="banner"]', "Banner"),
    ('[role="search"]', "Search"),
    ("form", "Form"),
)

FORM_FIELD_SELECTOR = "input, select, textarea"
MAX_ELEMENT_TEXT = 100


class ElementExtractor:
    """Parses page markup and describes its interactive elements."""

    def __init__(self, markup: str) -> None:
        self.markup = markup
        self.soup = BeautifulSoup(markup or "", "html.parser", multi_valued_attributes=None)

    def interactive_elements(self) -> list[InteractiveElement]:
        elements = [
            InteractiveElement(element=self.element_info(node), type=self.element_type(node))
            for node in self.soup.select(", ".join(INTERACTIVE_SELECTORS))
        ]
        logger.debug("Extracted %d interactive elements", len(elements))
        return elements

    def element_info(self, node: Tag) -> ElementInfo:
        attributes = {key: _as_text(value) for key, value in node.attrs.items()}
        css_path = build_css_path(node)
        return ElementInfo(
            tag=(node.name or "").lower(),
            id=attributes.get("id"),
            classes=split_classes(attributes.get("class")),
            attributes=attributes,
            text=node.get_text().strip()[:MAX_ELEMENT_TEXT],
            xpath=build_xpath(node),
            css_path=css_path,
            suggested_locators=generate_locators(node, css_path),
        )

    @staticmethod
    def element_type(node: Tag) -> ElementType:
        tag = (node.name or "").lower()
        role = _as_text(node.attrs.get("role", ""))
        input_type = _as_text(node.attrs.get("type", "")).lower()

        if tag == "button" or role == "button":
            return "button"
        if tag == "a":
            return "link"
        if tag == "select":
            return "select"
        if tag == "textarea":
            return "textarea"
        if tag == "form":
            return "form"
        if tag == "input":
            if input_type == "checkbox":
                return "checkbox"
            if input_type == "radio":
                return "radio"
            if input_type in {"submit", "button"}:
                return "button"
            return "input"
        return "other"

    def page_sections(self) -> list[PageSection]:
        sections: list[PageSection] = []
        for selector, name in SECTION_SELECTORS:
            matches = self.soup.select(selector)
            if not matches:
                continue
            descendants = {id(child) for match in matches for child in match.find_all(True)}
            sections.append(PageSection(name=name, selector=selector, elements=len(descendants)))
        return sections

    def form_fields(self) -> list[FormSummary]:
        forms: list[FormSummary] = []
        for form_index, form in enumerate(self.soup.find_all("form")):
            fields: list[FormField] = []
            for node in form.select(FORM_FIELD_SELECTOR):
                attrs = {key: _as_text(value) for key, value in node.attrs.items()}
                locators = generate_locators(node)
                fields.append(
                    FormField(
                        name=attrs.get("name") or attrs.get("id") or f"field-{len(fields)}",
                        type=attrs.get("type") or (node.name or "").lower() or "text",
                        label=self._label_for(node, attrs.get("id")),
                        required="required" in attrs,
                        locator=locators[0].code_template,
                    )
                )
            forms.append(FormSummary(form=f"form:nth-of-type({form_index + 1})", fields=fields))
        return forms

    def _label_for(self, node: Tag, field_id: str | None) -> str | None:
        if field_id:
            label = self.soup.find("label", attrs={"for": field_id})
            if label is not None:
                text = label.get_text().strip()
                if text:
                    return text
        wrapper = node.find_parent("label")
        if wrapper is not None:
            return wrapper.get_text().strip() or None
        return None


def extract_interactive_elements(markup: str) -> list[InteractiveElement]:
    return ElementExtractor(markup).interactive_elements()


def _as_text(value) -> str:
    if isinstance(value, list):
        return " ".join(value)
    return str(value)
