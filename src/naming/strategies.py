from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Iterable, Protocol

import pandas as pd

from src.ech_model.errors import AlreadyBoundError, ConfigError, RenameExhaustedError
from src.naming.dictionary import DEFAULT_NAME_WIDTH, IdentifierDictionary, NameType

logger = logging.getLogger(__name__)


class NamingStrategy(Protocol):
    def fill(self, dictionary: IdentifierDictionary, category: NameType, source_ids: Iterable[str]) -> None:
        ...


def cut_to_width(source_id: str, width: int) -> str:
    return source_id[:width] if len(source_id) > width else source_id.ljust(width)


def resolve_collision(candidate: str, width: int, is_taken: Callable[[str], bool], source_id: str) -> str:
    """Overwrite the trailing characters of ``candidate`` with 0, 1, 2... until the name is free."""
    name = candidate
    counter = 0
    while is_taken(name):
        suffix = str(counter)
        counter += 1
        if len(suffix) > width:
            raise RenameExhaustedError(f"Renaming fatal error {source_id} -> {candidate}")
        name = name[: width - len(suffix)] + suffix
    return name


class CutNameStrategy:
    def __init__(
        self,
        reserved_ids: Iterable[str] = (),
        forbidden_characters: str = "",
        replacement: str = "#",
    ) -> None:
        self._reserved = set(reserved_ids)
        self._forbidden = None
        self._replacement = replacement
        if forbidden_characters:
            self._forbidden = re.compile("[" + re.escape(forbidden_characters + '"') + "]")

    def target_id(self, dictionary: IdentifierDictionary, category: NameType, source_id: str) -> str:
        candidate = cut_to_width(source_id, category.width)
        if self._forbidden is not None:
            candidate = self._forbidden.sub(self._replacement, candidate)
        return resolve_collision(
            candidate,
            category.width,
            lambda name: dictionary.exists_target(name) or name in self._reserved,
            source_id,
        )

    def fill(self, dictionary: IdentifierDictionary, category: NameType, source_ids: Iterable[str]) -> None:
        for source_id in sorted(set(source_ids)):
            if dictionary.exists_source(source_id):
                continue
            dictionary.add(source_id, self.target_id(dictionary, category, source_id))


class SequentialNamingStrategy:
    def __init__(self) -> None:
        self._counters: dict[NameType, int] = {}

    def fill(self, dictionary: IdentifierDictionary, category: NameType, source_ids: Iterable[str]) -> None:
        digits = category.width - 1
        for source_id in sorted(set(source_ids)):
            if dictionary.exists_source(source_id):
                continue
            counter = self._counters.get(category, 0)
            while True:
                if len(str(counter)) > digits:
                    raise RenameExhaustedError(f"No {category.name} name left for {source_id}")
                target_id = category.code + str(counter).zfill(digits)
                counter += 1
                if not dictionary.exists_target(target_id):
                    break
            self._counters[category] = counter
            dictionary.add(source_id, target_id)


class ExplicitTableStrategy:
    """Looks ids up in a ``source_id;target_id`` table, cutting names for misses."""

    def __init__(
        self,
        table_file: str | Path,
        forbidden_characters: str = "",
        replacement: str = "#",
    ) -> None:
        self._table = _read_naming_table(Path(table_file))
        self._fallback = CutNameStrategy(
            reserved_ids=self._table.values(),
            forbidden_characters=forbidden_characters,
            replacement=replacement,
        )

    @property
    def table(self) -> dict[str, str]:
        return dict(self._table)

    def fill(self, dictionary: IdentifierDictionary, category: NameType, source_ids: Iterable[str]) -> None:
        for source_id in sorted(set(source_ids)):
            if dictionary.exists_source(source_id):
                continue
            target_id = self._table.get(source_id)
            if target_id is None:
                target_id = self._fallback.target_id(dictionary, category, source_id)
                level = logging.INFO if category is NameType.NODE else logging.WARNING
                logger.log(
                    level,
                    "%s %s not found in naming table, using %s",
                    category.name.lower(),
                    source_id,
                    target_id,
                )
            dictionary.add(source_id, target_id)


def _read_naming_table(path: Path) -> dict[str, str]:
    if not path.exists():
        raise ConfigError(f"Naming table {path} does not exist")
    frame = pd.read_csv(
        path,
        sep=";",
        header=None,
        skiprows=1,
        names=["source_id", "target_id", "trailing"],
        dtype=str,
        keep_default_na=False,
    )
    table: dict[str, str] = {}
    seen_targets: dict[str, str] = {}
    for offset, row in frame.iterrows():
        line_number = int(offset) + 2
        source_id = row["source_id"].strip()
        target_id = row["target_id"].strip()
        if not source_id or not target_id:
            raise ConfigError(f"Empty id in naming table {path} at line {line_number}")
        if len(target_id) > DEFAULT_NAME_WIDTH:
            logger.warning(
                "Skipping line %d of %s: target id %s longer than %d characters",
                line_number,
                path,
                target_id,
                DEFAULT_NAME_WIDTH,
            )
            continue
        if target_id in seen_targets:
            raise ConfigError(
                f"Target id {target_id} used for both {seen_targets[target_id]} and {source_id} in {path}"
            )
        seen_targets[target_id] = source_id
        table[source_id] = target_id
    return table


def create_naming_strategy(config) -> NamingStrategy:
    if config.naming_table_file:
        logger.info("Using naming table %s", config.naming_table_file)
        return ExplicitTableStrategy(
            config.naming_table_file,
            forbidden_characters=config.forbidden_characters,
            replacement=config.forbidden_characters_replacement,
        )
    if config.naming_strategy == "sequential":
        return SequentialNamingStrategy()
    if config.naming_strategy not in {"cut", "table"}:
        raise ConfigError(f"Unsupported naming_strategy '{config.naming_strategy}'")
    if config.naming_strategy == "table":
        logger.warning("naming_strategy 'table' requires naming_table_file, falling back to cut names")
    return CutNameStrategy(
        forbidden_characters=config.forbidden_characters,
        replacement=config.forbidden_characters_replacement,
    )


def add_derived_id(dictionary: IdentifierDictionary, source_id: str, category: NameType) -> str:
    """Registers a synthetic element with the cut-name rule and returns its target id."""
    if dictionary.exists_source(source_id):
        raise AlreadyBoundError(f"Source id '{source_id}' is already mapped")
    target_id = CutNameStrategy().target_id(dictionary, category, source_id)
    dictionary.add(source_id, target_id)
    return target_id
