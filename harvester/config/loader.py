"""Locating, reading and storing harvester configuration files.

Everything lives under one home directory, taken from ``HARVESTER_HOME``
when set::

    <home>/data/global_config.yaml
    <home>/data/targets/<slug>.yaml|.yml|.json
    <home>/data/outputs/
    <home>/logs/
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Iterator

import yaml
from pydantic import ValidationError

from ..errors import ConfigFileError
from .models import GlobalConfig, TargetConfig

HOME_ENV = "HARVESTER_HOME"
GLOBAL_CONFIG_FILENAME = "global_config.yaml"
TARGET_SUFFIXES = (".yaml", ".yml", ".json")


def harvester_home(default: Path | None = None) -> Path:
    env_root = os.environ.get(HOME_ENV)
    if env_root:
        return Path(env_root).expanduser().resolve()
    return (default or Path(__file__).resolve().parents[2]).resolve()


def file_slug(name: str) -> str:
    """Lowercase, hyphen-separated file stem for a target name."""

    return re.sub(r"[\W_]+", "-", name.strip().lower()).strip("-") or "target"


def read_mapping(path: Path) -> dict[str, Any]:
    """Parse a YAML or JSON file that must hold a mapping at the top level."""

    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigFileError(path, f"cannot parse file: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigFileError(path, f"expected a mapping, got {type(data).__name__}")
    return data


def write_mapping(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".json":
        text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    else:
        text = yaml.safe_dump(payload, allow_unicode=True, sort_keys=False)
    path.write_text(text, encoding="utf-8")


def parse_target(path: Path) -> TargetConfig:
    try:
        return TargetConfig.model_validate(read_mapping(path))
    except ValidationError as exc:
        raise ConfigFileError(path, str(exc)) from exc


class ConfigLocator:
    """Directory layout rooted at the harvester home."""

    def __init__(self, project_root: Path | None = None) -> None:
        self.project_root = harvester_home(project_root)
        self.data_dir = self.project_root / "data"
        self.targets_dir = self.data_dir / "targets"
        self.outputs_dir = self.data_dir / "outputs"
        self.logs_dir = self.project_root / "logs"
        for directory in (self.targets_dir, self.outputs_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME

    def resolve(self, path: Path) -> Path:
        """Anchor a relative configured path at the home directory."""

        if path.is_absolute():
            return path
        return (self.project_root / path).resolve()


class ConfigRepository:
    """Validated access to the global settings and the target files.

    A target is addressed by name; its file is ``<slug>`` with any of the
    supported suffixes. New targets are always stored as YAML.
    """

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global: GlobalConfig | None = None

    def load_global_config(self) -> GlobalConfig:
        if self._global is None:
            path = self.locator.global_config_path()
            if path.exists():
                try:
                    self._global = GlobalConfig.model_validate(read_mapping(path))
                except ValidationError as exc:
                    raise ConfigFileError(path, str(exc)) from exc
            else:
                # First run: materialise defaults so they can be edited
                self.save_global_config(GlobalConfig())
        return self._global  # type: ignore[return-value]

    def save_global_config(self, config: GlobalConfig) -> None:
        write_mapping(self.locator.global_config_path(), config.model_dump(mode="json"))
        self._global = config

    def outputs_dir(self) -> Path:
        return self.locator.resolve(self.load_global_config().outputs_dir)

    # ------------------------------------------------------------------
    def target_path(self, target_name: str) -> Path:
        """Where ``save_target`` stores the named target."""

        return self.locator.targets_dir / f"{file_slug(target_name)}.yaml"

    def find_target_file(self, target_name: str) -> Path | None:
        stem = file_slug(target_name)
        for suffix in TARGET_SUFFIXES:
            candidate = self.locator.targets_dir / f"{stem}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def list_target_files(self) -> Iterator[Path]:
        for path in sorted(self.locator.targets_dir.iterdir()):
            if path.is_file() and path.suffix in TARGET_SUFFIXES:
                yield path

    def list_targets(self) -> list[TargetConfig]:
        return [parse_target(path) for path in self.list_target_files()]

    def load_target(self, identifier: str | Path) -> TargetConfig:
        path = identifier if isinstance(identifier, Path) else self.find_target_file(identifier)
        if path is None or not path.exists():
            raise FileNotFoundError(f"Target configuration not found: {identifier}")
        return parse_target(path)

    def save_target(self, config: TargetConfig) -> Path:
        path = self.target_path(config.name)
        write_mapping(path, config.model_dump(mode="json", exclude_none=True))
        return path

    def import_target(self, source: Path, replace: bool = False) -> tuple[TargetConfig, Path]:
        """Validate a target file from anywhere and store it under the targets directory."""

        config = parse_target(source)
        existing = self.find_target_file(config.name)
        if existing is not None:
            if not replace:
                raise FileExistsError(f"Target {config.name!r} already exists: {existing}")
            existing.unlink()
        return config, self.save_target(config)

    def delete_target(self, target_name: str) -> bool:
        path = self.find_target_file(target_name)
        if path is None:
            return False
        path.unlink()
        return True


__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "TARGET_SUFFIXES",
    "file_slug",
    "harvester_home",
    "parse_target",
    "read_mapping",
]
