from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Iterator

import pandas as pd

from src.ech_model.errors import AlreadyBoundError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_NAME_WIDTH = 8
AREA_NAME_WIDTH = 2


class NameType(Enum):
    NODE = ("N", 8)
    GENERATOR = ("G", 8)
    LOAD = ("L", 8)
    BANK = ("B", 8)
    SVC = ("S", 8)
    VSC = ("V", 8)
    THREE_WINDINGS_TRANSFORMER = ("T", 8)

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def width(self) -> int:
        return self.value[1]


class IdentifierDictionary:
    """Bijective mapping between source ids and fixed-width target ids."""

    def __init__(self) -> None:
        self._source_to_target: dict[str, str] = {}
        self._target_to_source: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._source_to_target)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._source_to_target.items())

    def add(self, source_id: str, target_id: str) -> None:
        if source_id in self._source_to_target:
            raise AlreadyBoundError(
                f"Source id '{source_id}' is already mapped to '{self._source_to_target[source_id]}'"
            )
        if target_id in self._target_to_source:
            raise AlreadyBoundError(
                f"Target id '{target_id}' is already mapped to '{self._target_to_source[target_id]}'"
            )
        self._source_to_target[source_id] = target_id
        self._target_to_source[target_id] = source_id
        logger.debug("Mapped %s -> %s", source_id, target_id)

    def add_if_absent(self, source_id: str, target_id: str) -> None:
        if source_id in self._source_to_target:
            return
        if target_id in self._target_to_source:
            raise AlreadyBoundError(
                f"Target id '{target_id}' is already mapped to '{self._target_to_source[target_id]}'"
            )
        self.add(source_id, target_id)

    def exists_source(self, source_id: str) -> bool:
        return source_id in self._source_to_target

    def exists_target(self, target_id: str) -> bool:
        return target_id in self._target_to_source

    def get_target(self, source_id: str) -> str:
        try:
            return self._source_to_target[source_id]
        except KeyError:
            raise NotFoundError(f"No target id for source id '{source_id}'") from None

    def get_source(self, target_id: str) -> str:
        try:
            return self._target_to_source[target_id]
        except KeyError:
            raise NotFoundError(f"No source id for target id '{target_id}'") from None

    def to_dict(self) -> dict[str, str]:
        return dict(self._source_to_target)

    def dump(self, path: str | Path) -> None:
        frame = pd.DataFrame(
            list(self._source_to_target.items()), columns=["source_id", "target_id"]
        )
        frame.to_csv(path, sep=";", header=False, index=False)

    @classmethod
    def load(cls, path: str | Path) -> "IdentifierDictionary":
        frame = pd.read_csv(
            path,
            sep=";",
            header=None,
            names=["source_id", "target_id"],
            dtype=str,
            keep_default_na=False,
        )
        dictionary = cls()
        for _, row in frame.iterrows():
            dictionary.add(row["source_id"], row["target_id"])
        return dictionary
