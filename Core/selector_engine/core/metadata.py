from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

LocatorStrategy = Literal["testId", "ariaLabel", "role", "text", "css", "xpath"]
ElementType = Literal["button", "link", "input", "select", "textarea", "checkbox", "radio", "form", "other"]
Stability = Literal["high", "medium", "low"]
RootCauseType = Literal["selector_changed", "timing", "element_removed", "logic_error", "unknown"]


@dataclass(slots=True)
class SuggestedLocator:
    strategy: LocatorStrategy
    value: str
    confidence: float
    by: str
    query: str
    code_template: str


@dataclass(slots=True)
class ElementInfo:
    tag: str
    id: str | None
    classes: list[str]
    attributes: dict[str, str]
    text: str
    xpath: str
    css_path: str
    suggested_locators: list[SuggestedLocator]
    children: list[ElementInfo] = field(default_factory=list)

    @property
    def best_locator(self) -> SuggestedLocator:
        return self.suggested_locators[0]


@dataclass(slots=True)
class InteractiveElement:
    element: ElementInfo
    type: ElementType


@dataclass(slots=True)
class PageSection:
    name: str
    selector: str
    elements: int


@dataclass(slots=True)
class FormField:
    name: str
    type: str
    label: str | None
    required: bool
    locator: str


@dataclass(slots=True)
class FormSummary:
    form: str
    fields: list[FormField]


@dataclass(slots=True)
class ModifiedElement:
    before: ElementInfo
    after: ElementInfo
    changes: list[str]


@dataclass(slots=True)
class DiffResult:
    added: list[ElementInfo] = field(default_factory=list)
    removed: list[ElementInfo] = field(default_factory=list)
    modified: list[ModifiedElement] = field(default_factory=list)


class Snapshot(BaseModel):
    """A captured copy of a page's markup. Never mutated after it is written."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    markup: str
    timestamp: datetime
    test_file: str | None = None
    metadata: dict[str, Any] | None = Field(default=None)

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)


@dataclass(slots=True)
class SnapshotComparison:
    before: Snapshot
    after: Snapshot
    markup_diff: str
    changes_summary: list[str]


@dataclass(slots=True)
class HealingCandidate:
    selector: str
    code_template: str
    stability: Stability
    reason: str


@dataclass(slots=True)
class Recommendation:
    index: int
    explanation: str


@dataclass(slots=True)
class SelectorHealResult:
    found: bool
    candidates: list[HealingCandidate]
    recommendation: Recommendation | None = None
    source: Literal["model", "heuristic"] = "heuristic"


@dataclass(slots=True)
class TestFailure:
    __test__ = False

    test_file: str
    test_name: str
    failed_line: int
    error_message: str
    error_stack: str | None = None
    selector: str | None = None
    url: str | None = None

    @property
    def key(self) -> str:
        return f"{self.test_file}:{self.test_name}"


@dataclass(slots=True)
class RootCause:
    type: RootCauseType
    description: str
    confidence: float


@dataclass(slots=True)
class AffectedCode:
    file: str
    line: int
    original: str


@dataclass(slots=True)
class DomChanges:
    added: list[str]
    removed: list[str]
    modified: list[str]


@dataclass(slots=True)
class FailureAnalysis:
    root_cause: RootCause
    affected_code: AffectedCode
    dom_changes: DomChanges | None = None


@dataclass(slots=True)
class FixAlternative:
    code: str
    pros: list[str]
    cons: list[str]


@dataclass(slots=True)
class ProposedFix:
    corrected_code: str
    explanation: str
    locator_strategy: str
    alternatives: list[FixAlternative] = field(default_factory=list)
    prevention: list[str] = field(default_factory=list)


@dataclass(slots=True)
class HealResult:
    success: bool
    analysis: FailureAnalysis
    fix: ProposedFix | None = None
    selector_result: SelectorHealResult | None = None
    applied_changes: str | None = None


@dataclass(slots=True)
class HealAttempt:
    original_selector: str
    source: str
    llm_provider: str
    found: bool
    candidates: list[dict[str, Any]]
    recommended_selector: str
    recommended_code: str
    timestamp: str


def as_utc(value: datetime) -> datetime:
    """Reads timezone-less values as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
