from __future__ import annotations

import json
import logging
import re
import shutil
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from jsonschema import ValidationError, validate

from prevc.config import WorkflowConfig
from prevc.errors import CorruptStatusError, NoWorkflowError, StaleWriteError, WorkflowExistsError
from prevc.models import ScaleLevel, WorkflowStatus
from prevc.scaling import parse_scale
from prevc.store.locking import StatusFileLock
from prevc.store.templates import new_status
from prevc.utils.io import read_text, write_json_atomic
from prevc.utils.time import utc_timestamp

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schemas" / "workflow_status.schema.json"


@lru_cache(maxsize=1)
def _status_schema() -> Dict:
    return json.loads(read_text(SCHEMA_PATH))


class StatusStore:
    def __init__(self, context_dir: Path, config: WorkflowConfig) -> None:
        self.context_dir = context_dir
        self.config = config
        self.path = context_dir / config.status_file
        self.archive_root = context_dir / config.archive_dir

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> WorkflowStatus:
        if not self.exists():
            raise NoWorkflowError()
        payload = self._read_document()
        scale = ScaleLevel[payload["project"]["scale"]]
        try:
            status = WorkflowStatus.from_dict(payload, self.config.settings_for(scale))
        except (KeyError, ValueError, TypeError) as exc:
            raise CorruptStatusError(f"Status document {self.path} is malformed: {exc}") from exc
        logger.debug("[store] loaded path=%s revision=%s", self.path, status.revision)
        return status

    def save(self, status: WorkflowStatus) -> None:
        """Persist ``status`` if nobody else has written since it was loaded.

        Raises StaleWriteError when the on-disk revision differs from the one
        the caller loaded. On success ``status.revision`` is advanced.
        """
        with StatusFileLock(self.path):
            on_disk = self._disk_revision()
            if on_disk != status.revision:
                raise StaleWriteError(expected=status.revision, actual=on_disk)
            payload = status.to_dict()
            payload["revision"] = status.revision + 1
            write_json_atomic(self.path, payload)
            status.revision += 1
        logger.debug("[store] saved path=%s revision=%s", self.path, status.revision)

    def create_from_scale(
        self,
        name: str,
        scale: ScaleLevel,
        settings_overrides: Optional[Dict] = None,
        archive_previous: Optional[bool] = None,
        description: Optional[str] = None,
    ) -> WorkflowStatus:
        level = parse_scale(scale)
        if self.exists():
            if archive_previous is None:
                raise WorkflowExistsError()
            if archive_previous:
                self.archive()
            else:
                self.delete()

        settings = self.config.settings_for(level).merged(settings_overrides)
        status = new_status(name, level, settings, description=description)
        self.save(status)
        logger.info(
            "[store] workflow created name=%s scale=%s phase=%s",
            name,
            level.name,
            status.project.current_phase.value,
        )
        return status

    def archive(self) -> Optional[Path]:
        if not self.exists():
            return None
        try:
            name = self.load().project.name
        except CorruptStatusError:
            name = "workflow"
        safe_name = re.sub(r"[^a-zA-Z0-9_-]", "-", name) or "workflow"
        target_dir = self.archive_root / f"{safe_name}-{utc_timestamp()}"
        suffix = 1
        while target_dir.exists():
            suffix += 1
            target_dir = self.archive_root / f"{safe_name}-{utc_timestamp()}-{suffix}"
        target_dir.mkdir(parents=True)
        target = target_dir / self.path.name
        shutil.move(str(self.path), str(target))
        logger.info("[store] workflow archived to=%s", target)
        return target

    def delete(self) -> None:
        if self.exists():
            self.path.unlink()
            logger.info("[store] workflow deleted path=%s", self.path)

    def _read_document(self) -> Dict:
        raw = read_text(self.path)
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptStatusError(f"Status document {self.path} is not valid JSON: {exc}") from exc
        try:
            validate(instance=payload, schema=_status_schema())
        except ValidationError as exc:
            raise CorruptStatusError(
                f"Status document {self.path} failed validation: {exc.message}"
            ) from exc
        return payload

    def _disk_revision(self) -> int:
        if not self.exists():
            return 0
        return int(self._read_document().get("revision", 0))
