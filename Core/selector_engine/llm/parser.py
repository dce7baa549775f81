from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

T = TypeVar("T")

FENCED_JSON_PATTERN = re.compile(r"```(?:json)?[ \t]*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)


@dataclass(slots=True, frozen=True)
class ParseSuccess(Generic[T]):
    value: T


@dataclass(slots=True, frozen=True)
class ParseFailure:
    reason: str


ParseResult = Union[ParseSuccess[T], ParseFailure]


class _ResponseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CandidatePayload(_ResponseModel):
    selector: str
    code_template: str = Field(default="", alias="codeTemplate")
    stability: Literal["high", "medium", "low"] = "low"
    reason: str = ""


class RecommendationPayload(_ResponseModel):
    index: int
    explanation: str = ""


class SelectorHealPayload(_ResponseModel):
    found: bool
    candidates: list[CandidatePayload] = Field(default_factory=list)
    recommendation: RecommendationPayload | None = None


class RootCausePayload(_ResponseModel):
    type: Literal["selector_changed", "timing", "element_removed", "logic_error", "unknown"]
    description: str
    confidence: float


class FixPayload(_ResponseModel):
    corrected_code: str = Field(alias="correctedCode")
    explanation: str
    locator_strategy: str = Field(alias="locatorStrategy")


class AlternativePayload(_ResponseModel):
    code: str
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)


class FailureAnalysisPayload(_ResponseModel):
    root_cause: RootCausePayload = Field(alias="rootCause")
    fix: FixPayload
    alternatives: list[AlternativePayload] = Field(default_factory=list)
    prevention: list[str] = Field(default_factory=list)


def extract_fenced_json(response: str | None) -> ParseResult[Any]:
    """Decodes the first fenced JSON block of a model response, or the whole
    response when it is bare JSON."""

    if not response or not response.strip():
        return ParseFailure("empty response")
    match = FENCED_JSON_PATTERN.search(response)
    if match is not None:
        body = match.group(1)
    elif response.strip().startswith(("{", "[")):
        body = response.strip()
    else:
        return ParseFailure("no fenced JSON block")
    try:
        return ParseSuccess(json.loads(body))
    except json.JSONDecodeError as exc:
        return ParseFailure(f"invalid JSON: {exc.msg}")


def parse_selector_heal_response(response: str | None) -> ParseResult[SelectorHealPayload]:
    return _parse_as(response, SelectorHealPayload)


def parse_failure_analysis_response(response: str | None) -> ParseResult[FailureAnalysisPayload]:
    return _parse_as(response, FailureAnalysisPayload)


def _parse_as(response: str | None, model: type[BaseModel]) -> ParseResult[Any]:
    extracted = extract_fenced_json(response)
    if isinstance(extracted, ParseFailure):
        return extracted
    try:
        return ParseSuccess(model.model_validate(extracted.value))
    except ValidationError as exc:
        return ParseFailure(f"unexpected payload shape: {exc.error_count()} errors")
