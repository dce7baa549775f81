from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from selector_engine.config.schema import EngineSettings
from selector_engine.core.healer import SelectorHealer
from selector_engine.core.snapshots import SnapshotStore
from selector_engine.llm.client import CompletionClient, create_completion_client
from selector_engine.logging.audit import HealingAuditLogger

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EngineRuntime:
    settings: EngineSettings
    snapshot_store: SnapshotStore
    llm_client: CompletionClient | None
    audit_logger: HealingAuditLogger | None
    healer: SelectorHealer


def build_runtime(
    settings: EngineSettings | None = None,
    llm_client: CompletionClient | None = None,
    clock: Callable[[], datetime] | None = None,
    use_llm: bool = True,
) -> EngineRuntime:
    """Wires one instance of every collaborator. The only place defaults are chosen."""

    settings = settings or EngineSettings()
    if llm_client is None and use_llm:
        try:
            llm_client = create_completion_client(settings.llm.provider, settings.llm.model)
        except RuntimeError as exc:
            logger.warning("Language model unavailable, healing will use heuristics only: %s", exc)

    snapshot_store = SnapshotStore(
        settings.snapshots.directory,
        retention_days=settings.snapshots.retention_days,
        clock=clock,
    )
    audit_logger = HealingAuditLogger(settings.healing.audit_root) if settings.healing.audit_root else None
    healer = SelectorHealer(
        llm_client,
        snapshot_store=snapshot_store,
        settings=settings.healing,
        audit_logger=audit_logger,
        clock=clock,
    )
    return EngineRuntime(
        settings=settings,
        snapshot_store=snapshot_store,
        llm_client=llm_client,
        audit_logger=audit_logger,
        healer=healer,
    )
