from __future__ import annotations

import pytest

from selector_engine.config.schema import HealingSettings
from selector_engine.core.snapshots import SnapshotStore
from selector_engine.logging.audit import HealingAuditLogger
from tests.helpers import FakeClock


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def snapshot_store(tmp_path, clock):
    return SnapshotStore(tmp_path / "snapshots", retention_days=30, clock=clock)


@pytest.fixture()
def audit_logger(tmp_path):
    return HealingAuditLogger(tmp_path / "artifacts")


@pytest.fixture()
def healing_settings():
    return HealingSettings(llm_timeout_seconds=0.5, audit_root=None)
