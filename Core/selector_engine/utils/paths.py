from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

# Tuning constants. The patterns match identifiers emitted by UUID generators,
# counters and framework id/class hashing.
DYNAMIC_ID_PATTERNS = (
    re.compile(r"^[a-f0-9-]{36}$", re.IGNORECASE),
    re.compile(r"\d{4,}$"),
    re.compile(r"^:r[a-z0-9]+:$"),
)
DYNAMIC_CLASS_PATTERNS = (
    re.compile(r"[_-][a-zA-Z0-9]{5,}$"),
    re.compile(r"^(css|styles?|sc)-"),
)
ROOT_CONTAINER_TAGS = frozenset({"html", "body"})
MAX_PATH_CLASSES = 2


def is_dynamic_id(value: str) -> bool:
    return any(pattern.search(value) for pattern in DYNAMIC_ID_PATTERNS)


def is_dynamic_class(value: str) -> bool:
    return any(pattern.search(value) for pattern in DYNAMIC_CLASS_PATTERNS)


def split_classes(value: str | None) -> list[str]:
    """Whitespace-split class attribute, empties and repeats dropped, order kept."""

    return list(dict.fromkeys(item for item in (value or "").split() if item))


def build_xpath(element: Tag) -> str:
    # The parsed document is a Tag too, so top-level fragment siblings get indexed.
    parts: list[str] = []
    current: Tag | None = element
    while _is_element(current):
        tag = current.name.lower()
        parent = current.parent
        if isinstance(parent, Tag):
            siblings = parent.find_all(current.name, recursive=False)
            if len(siblings) > 1:
                parts.append(f"{tag}[{_index_of(siblings, current) + 1}]")
            else:
                parts.append(tag)
        else:
            parts.append(tag)
        current = parent
    return "/" + "/".join(reversed(parts))


def build_css_path(element: Tag) -> str:
    parts: list[str] = []
    current: Tag | None = element
    while _is_element(current):
        tag = current.name.lower()
        if tag in ROOT_CONTAINER_TAGS:
            break

        element_id = _attribute(current, "id")
        if element_id and not is_dynamic_id(element_id):
            parts.append(f"#{element_id}")
            break

        selector = tag
        classes = [item for item in split_classes(_attribute(current, "class")) if not is_dynamic_class(item)]
        if classes:
            selector += "." + ".".join(classes[:MAX_PATH_CLASSES])

        parent = current.parent
        if isinstance(parent, Tag):
            siblings = parent.find_all(True, recursive=False)
            same_tag = [sibling for sibling in siblings if sibling.name.lower() == tag]
            if len(same_tag) > 1:
                selector += f":nth-child({_index_of(siblings, current) + 1})"

        parts.append(selector)
        current = parent
    return " > ".join(reversed(parts))


def _is_element(node) -> bool:
    return isinstance(node, Tag) and not isinstance(node, BeautifulSoup) and bool(node.name)


def _attribute(element: Tag, name: str) -> str | None:
    value = element.attrs.get(name)
    if value is None:
        return None
    if isinstance(value, list):
        return " ".join(value)
    return str(value)


def _index_of(siblings: list[Tag], element: Tag) -> int:
    # Tag equality compares markup, so two identical siblings must be told apart by identity.
    for index, sibling in enumerate(siblings):
        if sibling is element:
            return index
    return -1
