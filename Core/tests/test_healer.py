from __future__ import annotations

from pathlib import Path

import pytest

from selector_engine.config.schema import HealingSettings
from selector_engine.core.healer import SelectorHealer, extract_line_context
from selector_engine.core.metadata import TestFailure
from tests.helpers import CHECKOUT_MARKUP, ScriptedCompletionClient, fenced

MODEL_ANSWER = {
    "found": True,
    "candidates": [
        {
            "selector": "[data-testid='submit-order']",
            "codeTemplate": "driver.find_element(By.CSS_SELECTOR, \"[data-testid='submit-order']\")",
            "stability": "high",
            "reason": "Dedicated test hook",
        }
    ],
    "recommendation": {"index": 0, "explanation": "Test ids survive refactors"},
}

ANALYSIS_ANSWER = {
    "rootCause": {
        "type": "selector_changed",
        "description": "The order button lost its id",
        "confidence": 0.9,
    },
    "fix": {
        "correctedCode": '    driver.find_element(By.CSS_SELECTOR, "[data-testid=\\"submit-order\\"]").click()',
        "explanation": "Use the test id",
        "locatorStrategy": "testId",
    },
    "prevention": ["Add test ids to every action button"],
}

TEST_SOURCE = """from selenium.webdriver.common.by import By

def test_checkout(driver):
    driver.find_element(By.ID, "place-order").click()
    assert driver.title == "Thanks"
"""


def _write_test_file(tmp_path: Path) -> Path:
    path = tmp_path / "test_checkout.py"
    path.write_text(TEST_SOURCE, encoding="utf-8")
    return path


@pytest.mark.asyncio
async def test_model_answer_is_used_when_it_parses(healing_settings):
    client = ScriptedCompletionClient([fenced(MODEL_ANSWER)])
    healer = SelectorHealer(client, settings=healing_settings)

    result = await healer.heal_selector("#place-order", CHECKOUT_MARKUP, element_description="Place order button")

    assert result.source == "model"
    assert result.found is True
    assert result.candidates[0].selector == "[data-testid='submit-order']"
    assert result.candidates[0].stability == "high"
    assert result.recommendation.explanation == "Test ids survive refactors"
    assert "#place-order" in client.prompts[0]
    assert "Place order button" in client.prompts[0]
    assert client.options[0].max_output_tokens == healing_settings.max_output_tokens


@pytest.mark.asyncio
async def test_prompt_markup_is_truncated(healing_settings):
    client = ScriptedCompletionClient([fenced(MODEL_ANSWER)])
    healer = SelectorHealer(client, settings=healing_settings)
    markup = "<div>" + "x" * 20_000 + "</div>"

    await healer.heal_selector("#gone", markup)

    assert "<div>" + "x" * 9_995 in client.prompts[0]
    assert "x" * 9_996 not in client.prompts[0]


@pytest.mark.parametrize(
    "answer",
    [
        "I could not find it, sorry.",
        "```json\n{\"found\": true, \"candidates\": [\n```",
        fenced({"candidates": "nope"}),
        "",
    ],
)
@pytest.mark.asyncio
async def test_malformed_answers_fall_back_to_heuristics(answer, healing_settings):
    client = ScriptedCompletionClient([answer])
    healer = SelectorHealer(client, settings=healing_settings)

    result = await healer.heal_selector("#place-order", CHECKOUT_MARKUP)

    assert result.source == "heuristic"
    assert [candidate.selector for candidate in result.candidates] == ["submit-order", "Cart", "Cancel"]


@pytest.mark.asyncio
async def test_heuristic_candidates(healing_settings):
    healer = SelectorHealer(None, settings=healing_settings)

    result = await healer.heal_selector("#place-order", CHECKOUT_MARKUP)

    assert result.found is True
    assert [candidate.stability for candidate in result.candidates] == ["high", "medium", "medium"]
    assert [candidate.reason for candidate in result.candidates] == [
        "Found via testId",
        "Found via ariaLabel",
        "Found via text",
    ]
    assert result.candidates[2].code_template == "driver.find_element(By.XPATH, \"//button[normalize-space()='Cancel']\")"
    assert result.recommendation.index == 0
    assert result.recommendation.explanation == "Best available match"


@pytest.mark.asyncio
async def test_heuristics_keep_top_five(healing_settings):
    markup = "".join(f'<button data-testid="action-{index}">Action {index}</button>' for index in range(7))
    healer = SelectorHealer(None, settings=healing_settings)

    result = await healer.heal_selector("#gone", markup)

    assert [candidate.selector for candidate in result.candidates] == [f"action-{index}" for index in range(5)]


@pytest.mark.asyncio
async def test_nothing_found_is_not_an_error(healing_settings):
    healer = SelectorHealer(None, settings=healing_settings)

    result = await healer.heal_selector("#gone", "<div><input name='q'><p>text</p></div>")

    assert result.found is False
    assert result.candidates == []
    assert result.recommendation is None


@pytest.mark.asyncio
async def test_fallback_is_deterministic(healing_settings):
    healer = SelectorHealer(ScriptedCompletionClient([RuntimeError("down"), RuntimeError("down")]), settings=healing_settings)

    first = await healer.heal_selector("#place-order", CHECKOUT_MARKUP)
    second = await healer.heal_selector("#place-order", CHECKOUT_MARKUP)

    assert first == second
    assert first.source == "heuristic"


@pytest.mark.asyncio
async def test_model_timeout_falls_back():
    client = ScriptedCompletionClient([fenced(MODEL_ANSWER)], delay=1.0)
    healer = SelectorHealer(client, settings=HealingSettings(llm_timeout_seconds=0.05, audit_root=None))

    result = await healer.heal_selector("#place-order", CHECKOUT_MARKUP)

    assert result.source == "heuristic"
    assert result.found is True


@pytest.mark.asyncio
async def test_attempts_are_audited(healing_settings, audit_logger, clock):
    healer = SelectorHealer(None, settings=healing_settings, audit_logger=audit_logger, clock=clock)

    await healer.heal_selector("#place-order", CHECKOUT_MARKUP)

    attempts = audit_logger.read_attempts()
    assert len(attempts) == 1
    assert attempts[0]["source"] == "heuristic"
    assert attempts[0]["llm_provider"] == "none"
    assert attempts[0]["recommended_selector"] == "submit-order"
    assert attempts[0]["timestamp"] == clock.now.isoformat()
    assert attempts[0]["recommended_code"] == 'driver.find_element(By.CSS_SELECTOR, "[data-testid=\\"submit-order\\"]")'
    assert audit_logger.read_overrides() == {"#place-order": attempts[0]["recommended_code"]}


@pytest.mark.asyncio
async def test_model_selector_is_the_override_without_a_code_template(healing_settings, audit_logger):
    answer = {"found": True, "candidates": [{"selector": "#checkout"}], "recommendation": {"index": 0}}
    healer = SelectorHealer(ScriptedCompletionClient([fenced(answer)]), settings=healing_settings, audit_logger=audit_logger)

    await healer.heal_selector("#place-order", CHECKOUT_MARKUP)

    assert audit_logger.read_overrides() == {"#place-order": "#checkout"}


@pytest.mark.asyncio
async def test_audit_write_failure_does_not_break_healing(healing_settings, audit_logger):
    audit_logger.healed_selectors_path.mkdir()
    healer = SelectorHealer(None, settings=healing_settings, audit_logger=audit_logger)

    result = await healer.heal_selector("#place-order", CHECKOUT_MARKUP)

    assert result.found is True
    assert audit_logger.read_overrides() == {}


@pytest.mark.asyncio
async def test_heal_uses_snapshot_diff_and_model_analysis(tmp_path, snapshot_store, clock, healing_settings):
    url = "https://shop.example.com/checkout"
    await snapshot_store.save(url, '<main><button id="place-order">Place order</button></main>')
    clock.advance(minutes=5)
    await snapshot_store.save(url, CHECKOUT_MARKUP)
    test_file = _write_test_file(tmp_path)
    client = ScriptedCompletionClient([fenced(ANALYSIS_ANSWER), "no json here"])
    healer = SelectorHealer(client, snapshot_store=snapshot_store, settings=healing_settings)

    result = await healer.heal(
        TestFailure(
            test_file=str(test_file),
            test_name="test_checkout",
            failed_line=4,
            error_message="NoSuchElementException: #place-order",
            selector="#place-order",
            url=url,
        )
    )

    assert result.success is True
    assert result.analysis.root_cause.type == "selector_changed"
    assert result.analysis.affected_code.original == '    driver.find_element(By.ID, "place-order").click()'
    assert "#place-order" in result.analysis.dom_changes.removed
    assert "main > button:nth-child(1)" in result.analysis.dom_changes.added
    assert result.fix.locator_strategy == "testId"
    assert result.fix.prevention == ["Add test ids to every action button"]
    assert result.selector_result.source == "heuristic"
    assert result.applied_changes is None
    assert ">>>     driver.find_element(By.ID, \"place-order\").click() <<<" in client.prompts[0]
    assert test_file.read_text(encoding="utf-8") == TEST_SOURCE


@pytest.mark.asyncio
async def test_heal_without_model_reports_unknown_cause(tmp_path, healing_settings):
    test_file = _write_test_file(tmp_path)
    healer = SelectorHealer(None, settings=healing_settings)

    result = await healer.heal(
        TestFailure(test_file=str(test_file), test_name="test_checkout", failed_line=4, error_message="timeout")
    )

    assert result.success is False
    assert result.analysis.root_cause.type == "unknown"
    assert result.analysis.root_cause.confidence == 0.3
    assert result.fix.corrected_code == '    driver.find_element(By.ID, "place-order").click()'
    assert result.fix.locator_strategy == "manual"
    assert result.selector_result is None


@pytest.mark.asyncio
async def test_heal_applies_fix_when_enabled(tmp_path):
    test_file = _write_test_file(tmp_path)
    client = ScriptedCompletionClient([fenced(ANALYSIS_ANSWER)])
    healer = SelectorHealer(client, settings=HealingSettings(auto_apply=True, audit_root=None))

    result = await healer.heal(
        TestFailure(test_file=str(test_file), test_name="test_checkout", failed_line=4, error_message="missing")
    )

    assert result.applied_changes.startswith("Replaced line 4:")
    assert test_file.read_text(encoding="utf-8").splitlines()[3] == ANALYSIS_ANSWER["fix"]["correctedCode"]


@pytest.mark.asyncio
async def test_batch_isolates_failures_and_runs_sequentially(tmp_path, healing_settings):
    test_file = _write_test_file(tmp_path)
    client = ScriptedCompletionClient([fenced(ANALYSIS_ANSWER), fenced(ANALYSIS_ANSWER)], delay=0.01)
    healer = SelectorHealer(client, settings=healing_settings)
    failures = [
        TestFailure(test_file=str(test_file), test_name="test_one", failed_line=4, error_message="missing"),
        TestFailure(test_file=str(tmp_path / "missing.py"), test_name="test_two", failed_line=1, error_message="x"),
        TestFailure(test_file=str(test_file), test_name="test_three", failed_line=4, error_message="missing"),
    ]

    results = await healer.heal_batch(failures)

    assert list(results) == [failure.key for failure in failures]
    assert results[failures[0].key].success is True
    broken = results[failures[1].key]
    assert broken.success is False
    assert broken.analysis.root_cause.type == "unknown"
    assert broken.analysis.root_cause.confidence == 0.0
    assert broken.analysis.root_cause.description.startswith("Healing failed: Cannot read test file")
    assert results[failures[2].key].success is True
    assert client.max_in_flight == 1


def test_line_context_bounds():
    before, focus, after = extract_line_context("a\nb\nc", 1, context_lines=5)
    assert (before, focus, after) == ([], "a", ["b", "c"])
    assert extract_line_context("a", 9)[1] == ""
