from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Iterable

from selector_engine.config.schema import HealingSettings
from selector_engine.core.diff import compare_markup, summarize_diff
from selector_engine.core.exceptions import HealingError
from selector_engine.core.metadata import (
    AffectedCode,
    DomChanges,
    FailureAnalysis,
    FixAlternative,
    HealAttempt,
    HealingCandidate,
    HealResult,
    ProposedFix,
    Recommendation,
    RootCause,
    SelectorHealResult,
    TestFailure,
)
from selector_engine.core.snapshots import SnapshotStore
from selector_engine.llm.client import CompletionClient, CompletionOptions
from selector_engine.llm.parser import (
    FailureAnalysisPayload,
    ParseFailure,
    SelectorHealPayload,
    parse_failure_analysis_response,
    parse_selector_heal_response,
)
from selector_engine.llm.prompts import SYSTEM_PROMPT, build_failure_analysis_prompt, build_selector_heal_prompt
from selector_engine.logging.audit import HealingAuditLogger
from selector_engine.utils.dom_extract import extract_interactive_elements
from selector_engine.utils.locators import stability_for

logger = logging.getLogger(__name__)

FALLBACK_ROOT_CAUSE_CONFIDENCE = 0.3
SUCCESS_CONFIDENCE = 0.7
LINE_CONTEXT = 5


class SelectorHealer:
    """Proposes replacement locators for failing selectors.

    The language model is asked first. When it is not configured, times out,
    errors, or answers with something that does not parse, candidates come from
    the locator heuristics run over the current markup instead.
    """

    def __init__(
        self,
        llm_client: CompletionClient | None,
        snapshot_store: SnapshotStore | None = None,
        settings: HealingSettings | None = None,
        audit_logger: HealingAuditLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.snapshot_store = snapshot_store
        self.settings = settings or HealingSettings()
        self.audit_logger = audit_logger
        self.clock = clock or (lambda: datetime.now(UTC))

    async def heal_selector(
        self,
        original_selector: str,
        current_markup: str,
        element_description: str | None = None,
        context: str | None = None,
    ) -> SelectorHealResult:
        prompt = build_selector_heal_prompt(
            original_selector,
            current_markup,
            element_description=element_description,
            context=context,
            markup_budget=self.settings.markup_budget,
        )
        response = await self._complete(prompt)
        parsed = parse_selector_heal_response(response)
        if isinstance(parsed, ParseFailure):
            if response is not None:
                logger.warning("Model answer for %r unusable (%s), using heuristics", original_selector, parsed.reason)
            result = self.heuristic_candidates(current_markup)
        else:
            result = _selector_result_from_payload(parsed.value)
        await self._audit(original_selector, result)
        return result

    def heuristic_candidates(self, current_markup: str) -> SelectorHealResult:
        candidates: list[HealingCandidate] = []
        for item in extract_interactive_elements(current_markup):
            locator = item.element.best_locator
            if locator.confidence <= self.settings.min_confidence:
                continue
            candidates.append(
                HealingCandidate(
                    selector=locator.value,
                    code_template=locator.code_template,
                    stability=stability_for(locator.confidence),
                    reason=f"Found via {locator.strategy}",
                )
            )
            if len(candidates) >= self.settings.max_candidates:
                break
        return SelectorHealResult(
            found=bool(candidates),
            candidates=candidates,
            recommendation=Recommendation(index=0, explanation="Best available match") if candidates else None,
            source="heuristic",
        )

    async def heal(self, failure: TestFailure) -> HealResult:
        source = await asyncio.to_thread(_read_test_file, failure.test_file)
        before, focus_line, after = extract_line_context(source, failure.failed_line)

        current_markup = ""
        dom_changes: DomChanges | None = None
        if failure.url and self.snapshot_store is not None:
            latest = await self.snapshot_store.get_latest(failure.url)
            previous = await self.snapshot_store.get_previous(failure.url)
            current_markup = latest.markup if latest else ""
            if latest and previous:
                dom_changes = summarize_diff(compare_markup(previous.markup, latest.markup))

        prompt = build_failure_analysis_prompt(
            test_file=failure.test_file,
            test_name=failure.test_name,
            failed_line=failure.failed_line,
            error_message=failure.error_message,
            original_code="\n".join([*before, f">>> {focus_line} <<<", *after]),
            dom_changes=describe_dom_changes(dom_changes),
            current_markup=current_markup,
        )
        parsed = parse_failure_analysis_response(await self._complete(prompt))
        if isinstance(parsed, ParseFailure):
            logger.info("No model analysis for %s (%s)", failure.key, parsed.reason)
            root_cause = RootCause(
                type="unknown",
                description="Unable to determine root cause automatically",
                confidence=FALLBACK_ROOT_CAUSE_CONFIDENCE,
            )
            fix = ProposedFix(
                corrected_code=focus_line,
                explanation="No automatic fix available",
                locator_strategy="manual",
            )
        else:
            root_cause, fix = _analysis_from_payload(parsed.value)

        selector_result = None
        if failure.selector and current_markup:
            selector_result = await self.heal_selector(
                failure.selector,
                current_markup,
                context=describe_dom_changes(dom_changes) or failure.error_message,
            )

        success = root_cause.confidence > SUCCESS_CONFIDENCE and fix is not None
        applied_changes = None
        if success and self.settings.auto_apply:
            applied_changes = await asyncio.to_thread(
                apply_fix, failure.test_file, failure.failed_line, fix.corrected_code
            )

        return HealResult(
            success=success,
            analysis=FailureAnalysis(
                root_cause=root_cause,
                affected_code=AffectedCode(file=failure.test_file, line=failure.failed_line, original=focus_line),
                dom_changes=dom_changes,
            ),
            fix=fix,
            selector_result=selector_result,
            applied_changes=applied_changes,
        )

    async def heal_batch(self, failures: Iterable[TestFailure]) -> dict[str, HealResult]:
        """Heals failures one after another; a failing entry never stops the rest."""

        results: dict[str, HealResult] = {}
        for failure in failures:
            try:
                results[failure.key] = await self.heal(failure)
            except Exception as exc:  # noqa: BLE001 - recorded as an unknown root cause.
                logger.exception("Healing %s failed", failure.key)
                results[failure.key] = HealResult(
                    success=False,
                    analysis=FailureAnalysis(
                        root_cause=RootCause(type="unknown", description=f"Healing failed: {exc}", confidence=0.0),
                        affected_code=AffectedCode(file=failure.test_file, line=failure.failed_line, original=""),
                    ),
                )
        return results

    async def _complete(self, prompt: str) -> str | None:
        if self.llm_client is None:
            return None
        options = CompletionOptions(system=SYSTEM_PROMPT, max_output_tokens=self.settings.max_output_tokens)
        try:
            return await asyncio.wait_for(
                self.llm_client.complete(prompt, options),
                timeout=self.settings.llm_timeout_seconds,
            )
        except TimeoutError:
            logger.warning("Model call timed out after %.1fs", self.settings.llm_timeout_seconds)
        except Exception as exc:  # noqa: BLE001 - provider errors fall through to heuristics.
            logger.warning("Model call failed: %s", exc)
        return None

    async def _audit(self, original_selector: str, result: SelectorHealResult) -> None:
        if self.audit_logger is None:
            return
        recommended: HealingCandidate | None = None
        if result.recommendation is not None:
            recommended = result.candidates[result.recommendation.index]
        attempt = HealAttempt(
            original_selector=original_selector,
            source=result.source,
            llm_provider=getattr(self.llm_client, "provider_name", "none"),
            found=result.found,
            candidates=[asdict(candidate) for candidate in result.candidates],
            recommended_selector=recommended.selector if recommended else "",
            recommended_code=recommended.code_template if recommended else "",
            timestamp=self.clock().isoformat(),
        )
        try:
            await asyncio.to_thread(self.audit_logger.write, attempt)
        except OSError as exc:
            logger.warning("Could not record healing attempt for %r: %s", original_selector, exc)


def extract_line_context(source: str, line_number: int, context_lines: int = LINE_CONTEXT) -> tuple[list[str], str, list[str]]:
    lines = source.split("\n")
    index = line_number - 1
    focus_line = lines[index] if 0 <= index < len(lines) else ""
    before = lines[max(0, index - context_lines) : max(0, index)]
    after = lines[index + 1 : index + 1 + context_lines] if index >= 0 else []
    return before, focus_line, after


def describe_dom_changes(changes: DomChanges | None) -> str:
    if changes is None:
        return ""
    lines = [f"+ {path}" for path in changes.added]
    lines.extend(f"- {path}" for path in changes.removed)
    lines.extend(f"~ {entry}" for entry in changes.modified)
    return "\n".join(lines) or "No interactive element changes"


def apply_fix(test_file: str, line_number: int, new_code: str) -> str:
    path = Path(test_file)
    lines = path.read_text(encoding="utf-8").split("\n")
    if not 1 <= line_number <= len(lines):
        raise HealingError(f"Line {line_number} is outside {test_file}")
    old_line = lines[line_number - 1]
    lines[line_number - 1] = new_code
    path.write_text("\n".join(lines), encoding="utf-8")
    return f"Replaced line {line_number}:\n- {old_line}\n+ {new_code}"


def _read_test_file(test_file: str) -> str:
    try:
        return Path(test_file).read_text(encoding="utf-8")
    except OSError as exc:
        raise HealingError(f"Cannot read test file: {test_file}") from exc


def _selector_result_from_payload(payload: SelectorHealPayload) -> SelectorHealResult:
    candidates = [
        HealingCandidate(
            selector=item.selector,
            code_template=item.code_template,
            stability=item.stability,
            reason=item.reason,
        )
        for item in payload.candidates
    ]
    recommendation = None
    if payload.recommendation is not None and 0 <= payload.recommendation.index < len(candidates):
        recommendation = Recommendation(
            index=payload.recommendation.index,
            explanation=payload.recommendation.explanation,
        )
    return SelectorHealResult(
        found=payload.found,
        candidates=candidates,
        recommendation=recommendation,
        source="model",
    )


def _analysis_from_payload(payload: FailureAnalysisPayload) -> tuple[RootCause, ProposedFix]:
    root_cause = RootCause(
        type=payload.root_cause.type,
        description=payload.root_cause.description,
        confidence=payload.root_cause.confidence,
    )
    fix = ProposedFix(
        corrected_code=payload.fix.corrected_code,
        explanation=payload.fix.explanation,
        locator_strategy=payload.fix.locator_strategy,
        alternatives=[FixAlternative(code=item.code, pros=item.pros, cons=item.cons) for item in payload.alternatives],
        prevention=payload.prevention,
    )
    return root_cause, fix
