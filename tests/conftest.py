from __future__ import annotations

from pathlib import Path

import pytest

from prevc.config import WorkflowConfig
from prevc.models import ScaleLevel
from prevc.orchestrator import Orchestrator
from prevc.store.status_store import StatusStore


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PREVC_CONFIG", "PREVC_CONTEXT_DIR", "PREVC_MAX_WRITE_RETRIES", "PREVC_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / ".context").mkdir(parents=True)
    return root


@pytest.fixture()
def config() -> WorkflowConfig:
    return WorkflowConfig()


@pytest.fixture()
def store(project_root: Path, config: WorkflowConfig) -> StatusStore:
    return StatusStore(project_root / ".context", config)


@pytest.fixture()
def orchestrator(project_root: Path, config: WorkflowConfig) -> Orchestrator:
    return Orchestrator(project_root / ".context", config)


@pytest.fixture()
def medium_workflow(orchestrator: Orchestrator) -> Orchestrator:
    orchestrator.init_workflow_with_scale("demo", ScaleLevel.MEDIUM)
    return orchestrator
