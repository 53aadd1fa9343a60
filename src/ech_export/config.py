from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from src.ech_model.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_FORBIDDEN_CHARACTERS = "/%()^$,;?"
DEFAULT_FORBIDDEN_CHARACTERS_REPLACEMENT = "#"
NAMING_STRATEGIES = ("cut", "sequential", "table")


@dataclass(frozen=True)
class ExportConfig:
    no_generator_min_max_q: bool = False
    aggregate_topology: bool = False
    exclude_switch_adjacent_buses: bool = True
    forbidden_characters: str = DEFAULT_FORBIDDEN_CHARACTERS
    forbidden_characters_replacement: str = DEFAULT_FORBIDDEN_CHARACTERS_REPLACEMENT
    svc_as_fixed_injection: bool = False
    compatibility_mode: bool = False
    export_main_component_only: bool = False
    naming_strategy: str = "cut"
    naming_table_file: str | None = None

    def __post_init__(self) -> None:
        if len(self.forbidden_characters_replacement) != 1:
            raise ConfigError(
                f"Invalid forbidden characters replacement '{self.forbidden_characters_replacement}': "
                "exactly one character expected"
            )
        if self.forbidden_characters_replacement in self.forbidden_characters:
            raise ConfigError(
                f"Replacement '{self.forbidden_characters_replacement}' cannot be one of the "
                f"forbidden characters '{self.forbidden_characters}'"
            )
        if self.naming_strategy not in NAMING_STRATEGIES:
            raise ConfigError(
                f"Unsupported naming_strategy '{self.naming_strategy}', expected one of {NAMING_STRATEGIES}"
            )
        if self.compatibility_mode and not self.svc_as_fixed_injection:
            logger.info("Compatibility mode enabled: SVCs are exported as fixed injections")
            object.__setattr__(self, "svc_as_fixed_injection", True)


def _load_yaml(path: str | Path) -> dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def export_config_from_dict(data: dict[str, Any]) -> ExportConfig:
    known = {f.name for f in fields(ExportConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown ech_export options: {unknown}")
    return ExportConfig(**data)


def load_export_config(path: str | Path | None) -> ExportConfig:
    if path is None:
        return ExportConfig()
    data = _load_yaml(path)
    section = data.get("ech_export")
    if section is None:
        logger.warning("No ech_export section in %s, using default export options", path)
        return ExportConfig()
    if not isinstance(section, dict):
        raise ConfigError(f"ech_export section of {path} must be a mapping")
    config = export_config_from_dict(section)
    if config.naming_table_file and not Path(config.naming_table_file).is_absolute():
        table = Path(path).parent / config.naming_table_file
        config = ExportConfig(**{**_as_dict(config), "naming_table_file": str(table)})
    return config


def _as_dict(config: ExportConfig) -> dict[str, Any]:
    return {f.name: getattr(config, f.name) for f in fields(ExportConfig)}
