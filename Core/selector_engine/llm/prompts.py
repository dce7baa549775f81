from __future__ import annotations

from string import Template

SYSTEM_PROMPT = """You repair broken Selenium selectors in end-to-end tests.
Rules:
1. Use only elements present in the provided DOM.
2. Do not invent tags, attributes, text, or hierarchy.
3. Prefer test ids, then accessible names and roles, then visible text, then structural CSS.
4. Avoid ids and classes that look generated (UUIDs, numeric counters, hashed suffixes).
5. Answer with a single ```json fenced block matching the requested format."""

SELECTOR_HEAL_TEMPLATE = Template(
    """The following selector is broken. Find a working replacement.

## Original Selector
```
$original_selector
```

## Current DOM
```html
$current_markup
```

## Element Description
$element_description

## Context
$context

## Output Format
```json
{
  "found": true,
  "candidates": [
    {
      "selector": "...",
      "codeTemplate": "driver.find_element(By.CSS_SELECTOR, \\"...\\")",
      "stability": "high | medium | low",
      "reason": "Why this selector is good or bad"
    }
  ],
  "recommendation": {
    "index": 0,
    "explanation": "Why this is the best choice"
  }
}
```"""
)

FAILURE_ANALYSIS_TEMPLATE = Template(
    """Analyze this test failure and provide a fix.

## Failed Test
- File: $test_file
- Test Name: $test_name
- Failed Line: $failed_line

## Error Message
```
$error_message
```

## Original Code
```python
$original_code
```

## DOM Changes Since Last Passing Snapshot
$dom_changes

## DOM at Failure Time
```html
$current_markup
```

## Output Format
```json
{
  "rootCause": {
    "type": "selector_changed | timing | element_removed | logic_error | unknown",
    "description": "Detailed explanation",
    "confidence": 0.95
  },
  "fix": {
    "correctedCode": "The fixed line of code",
    "explanation": "Why this fix works",
    "locatorStrategy": "The strategy used"
  },
  "alternatives": [
    {"code": "Alternative fix", "pros": ["..."], "cons": ["..."]}
  ],
  "prevention": ["Suggestion to prevent similar issues"]
}
```"""
)


def build_selector_heal_prompt(
    original_selector: str,
    current_markup: str,
    element_description: str | None = None,
    context: str | None = None,
    markup_budget: int = 10_000,
) -> str:
    return SELECTOR_HEAL_TEMPLATE.substitute(
        original_selector=original_selector,
        current_markup=current_markup[:markup_budget],
        element_description=element_description or "Unknown element",
        context=context or "No additional context",
    )


def build_failure_analysis_prompt(
    *,
    test_file: str,
    test_name: str,
    failed_line: int,
    error_message: str,
    original_code: str,
    dom_changes: str,
    current_markup: str,
    markup_budget: int = 8_000,
) -> str:
    return FAILURE_ANALYSIS_TEMPLATE.substitute(
        test_file=test_file,
        test_name=test_name,
        failed_line=failed_line,
        error_message=error_message,
        original_code=original_code,
        dom_changes=dom_changes or "Not available",
        current_markup=current_markup[:markup_budget] or "Not available",
    )
