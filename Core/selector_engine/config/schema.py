from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

SUPPORTED_PROVIDERS = {"openai", "anthropic", "gemini"}


class SnapshotSettings(BaseModel):
    directory: str = "snapshots"
    retention_days: int = 30

    @field_validator("retention_days")
    @classmethod
    def validate_retention(cls, value: int) -> int:
        if value < 0:
            raise ValueError("retention_days must not be negative")
        return value


class HealingSettings(BaseModel):
    llm_timeout_seconds: float = 30.0
    max_output_tokens: int = 2048
    markup_budget: int = 10_000
    max_candidates: int = 5
    min_confidence: float = 0.7
    auto_apply: bool = False
    audit_root: str | None = "artifacts"

    @field_validator("llm_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("llm_timeout_seconds must be positive")
        return value

    @field_validator("min_confidence")
    @classmethod
    def validate_confidence(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("min_confidence must be between 0 and 1")
        return value


class LLMSettings(BaseModel):
    provider: str = "openai"
    model: str | None = None

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, value: str) -> str:
        normalized = value.lower()
        if normalized not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported LLM provider: {value}")
        return normalized


class EngineSettings(BaseModel):
    snapshots: SnapshotSettings = Field(default_factory=SnapshotSettings)
    healing: HealingSettings = Field(default_factory=HealingSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
