from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import load_dotenv

from prevc.models import ScaleLevel, WorkflowSettings
from prevc.scaling import parse_scale
from prevc.utils.logging import configure_logging

CONFIG_FILE_NAME = "prevc.yaml"


class ConfigError(ValueError):
    pass


def default_scale_settings() -> Dict[ScaleLevel, WorkflowSettings]:
    return {
        ScaleLevel.QUICK: WorkflowSettings(
            autonomous_mode=True, require_plan=False, require_approval=False
        ),
        ScaleLevel.SMALL: WorkflowSettings(
            autonomous_mode=False, require_plan=True, require_approval=False
        ),
        ScaleLevel.MEDIUM: WorkflowSettings(),
        ScaleLevel.LARGE: WorkflowSettings(),
        ScaleLevel.ENTERPRISE: WorkflowSettings(),
    }


@dataclass
class WorkflowConfig:
    context_dir_name: str = ".context"
    status_file: str = "workflow/status.json"
    archive_dir: str = "workflow/archive"
    max_write_retries: int = 3
    log_level: str = "INFO"
    scale_defaults: Dict[ScaleLevel, WorkflowSettings] = field(
        default_factory=default_scale_settings
    )

    def settings_for(self, scale: ScaleLevel) -> WorkflowSettings:
        return WorkflowSettings(**self.scale_defaults[scale].to_dict())

    @classmethod
    def load(cls, base_dir: Path, config_path: Optional[Path] = None) -> "WorkflowConfig":
        load_dotenv(base_dir / ".env")
        config = cls()

        if config_path is None:
            env_path = os.getenv("PREVC_CONFIG")
            config_path = Path(env_path) if env_path else base_dir / CONFIG_FILE_NAME
        if config_path.exists():
            config._apply_file(config_path)

        config._apply_env()
        config.configure_logging()
        return config

    def configure_logging(self) -> None:
        try:
            configure_logging(self.log_level)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    def _apply_file(self, path: Path) -> None:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level.")

        for key in ("context_dir_name", "status_file", "archive_dir", "log_level"):
            if key in data:
                setattr(self, key, str(data[key]))
        if "max_write_retries" in data:
            self.max_write_retries = self._parse_retries(data["max_write_retries"])

        scale_settings = data.get("settings", {})
        if not isinstance(scale_settings, dict):
            raise ConfigError("'settings' must map scale names to setting overrides.")
        for scale_key, overrides in scale_settings.items():
            scale = parse_scale(scale_key)
            if str(scale_key).upper() != scale.name and str(scale_key) != str(int(scale)):
                raise ConfigError(f"Unknown scale in settings: {scale_key}")
            if not isinstance(overrides, dict):
                raise ConfigError(f"Settings for {scale_key} must be a mapping.")
            try:
                self.scale_defaults[scale] = self.scale_defaults[scale].merged(overrides)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc

    def _apply_env(self) -> None:
        context_dir = os.getenv("PREVC_CONTEXT_DIR")
        if context_dir:
            self.context_dir_name = context_dir
        retries = os.getenv("PREVC_MAX_WRITE_RETRIES")
        if retries:
            self.max_write_retries = self._parse_retries(retries)
        log_level = os.getenv("PREVC_LOG_LEVEL")
        if log_level:
            self.log_level = log_level

    def _parse_retries(self, value: object) -> int:
        try:
            retries = int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"max_write_retries must be an integer, got {value!r}") from exc
        if retries < 0:
            raise ConfigError("max_write_retries must not be negative.")
        return retries
