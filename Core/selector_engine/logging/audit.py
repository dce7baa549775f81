from __future__ import annotations

import json
from pathlib import Path

from selector_engine.core.metadata import HealAttempt


class HealingAuditLogger:
    """Persists selector healing attempts and the latest recommended replacements.

    Overrides map an original selector to the Selenium lookup expression that
    replaces it, or to the bare selector when no expression was proposed.
    """

    def __init__(self, root: str | Path = "artifacts") -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.healed_selectors_path = self.root / "healed_selectors.jsonl"
        self.selector_overrides_path = self.root / "selector_overrides.json"

    def write(self, attempt: HealAttempt) -> None:
        payload = {
            "original_selector": attempt.original_selector,
            "source": attempt.source,
            "llm_provider": attempt.llm_provider,
            "found": attempt.found,
            "candidates": attempt.candidates,
            "recommended_selector": attempt.recommended_selector,
            "recommended_code": attempt.recommended_code,
            "timestamp": attempt.timestamp,
        }
        with self.healed_selectors_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload) + "\n")

        replacement = attempt.recommended_code or attempt.recommended_selector
        if attempt.found and replacement:
            overrides = self.read_overrides()
            overrides[attempt.original_selector] = replacement
            self.selector_overrides_path.write_text(
                json.dumps(overrides, indent=2, sort_keys=True),
                encoding="utf-8",
            )

    def read_attempts(self) -> list[dict]:
        if not self.healed_selectors_path.exists():
            return []
        lines = self.healed_selectors_path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]

    def read_overrides(self) -> dict[str, str]:
        if not self.selector_overrides_path.exists():
            return {}
        return json.loads(self.selector_overrides_path.read_text(encoding="utf-8"))
