from __future__ import annotations

import logging

from selector_engine.core.metadata import DiffResult, DomChanges, ElementInfo, ModifiedElement
from selector_engine.utils.dom_extract import extract_interactive_elements

logger = logging.getLogger(__name__)


def compare_markup(before: str, after: str) -> DiffResult:
    """Structural diff of two documents' interactive elements.

    Elements are matched by css path only. A sibling inserted ahead of an
    element shifts its nth-child suffix, so the element is reported as removed
    and re-added rather than matched.
    """

    before_map = _index_by_css_path(before)
    after_map = _index_by_css_path(after)

    result = DiffResult()
    result.added = [element for path, element in after_map.items() if path not in before_map]
    result.removed = [element for path, element in before_map.items() if path not in after_map]
    for path, before_element in before_map.items():
        after_element = after_map.get(path)
        if after_element is None:
            continue
        changes = describe_changes(before_element, after_element)
        if changes:
            result.modified.append(ModifiedElement(before=before_element, after=after_element, changes=changes))

    logger.debug(
        "Diff: %d added, %d removed, %d modified",
        len(result.added),
        len(result.removed),
        len(result.modified),
    )
    return result


def describe_changes(before: ElementInfo, after: ElementInfo) -> list[str]:
    changes: list[str] = []
    if before.text != after.text:
        changes.append(f'text: "{before.text}" -> "{after.text}"')
    if before.id != after.id:
        changes.append(f'id: "{before.id or ""}" -> "{after.id or ""}"')
    if set(before.classes) != set(after.classes):
        changes.append("classes changed")
    return changes


def summarize_diff(result: DiffResult) -> DomChanges:
    return DomChanges(
        added=[element.css_path for element in result.added],
        removed=[element.css_path for element in result.removed],
        modified=[f"{item.before.css_path}: {', '.join(item.changes)}" for item in result.modified],
    )


def _index_by_css_path(markup: str) -> dict[str, ElementInfo]:
    index: dict[str, ElementInfo] = {}
    for item in extract_interactive_elements(markup):
        index[item.element.css_path] = item.element
    return index
