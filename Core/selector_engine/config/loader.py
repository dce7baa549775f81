from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from selector_engine.config.schema import EngineSettings

CONFIG_PATH_ENV = "SELECTOR_ENGINE_CONFIG"


class ConfigLoader:
    """Loads engine settings from JSON, with provider choices overridable from the environment."""

    @staticmethod
    def load(path: str | Path | None = None) -> EngineSettings:
        location = path or os.getenv(CONFIG_PATH_ENV)
        payload: dict[str, Any] = {}
        if location:
            with Path(location).open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        return EngineSettings.model_validate(ConfigLoader._apply_env(payload))

    @staticmethod
    def _apply_env(payload: dict[str, Any]) -> dict[str, Any]:
        llm = dict(payload.get("llm") or {})
        if os.getenv("LLM_PROVIDER"):
            llm["provider"] = os.environ["LLM_PROVIDER"]
        if os.getenv("LLM_MODEL"):
            llm["model"] = os.environ["LLM_MODEL"]
        return {**payload, "llm": llm}
