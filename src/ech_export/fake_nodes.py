from __future__ import annotations

from typing import Iterator

from src.grid.model import SourceNetwork, VoltageLevel
from src.naming.strategies import cut_to_width, resolve_collision

FAKE_NODE_PREFIX = "FK"
FAKE_NODE_BODY_WIDTH = 6
FAKE_NODE_NAME1 = "FAKENOD1"
FAKE_NODE_NAME2 = "FAKENOD2"


class FakeNodeRegistry:
    """Auxiliary nodes hosting terminals that have no exportable bus of their own."""

    def __init__(self) -> None:
        self._by_voltage_level: dict[str, str] = {}
        self._voltage_levels: dict[str, VoltageLevel] = {}
        self._use_count: dict[str, int] = {FAKE_NODE_NAME1: 1, FAKE_NODE_NAME2: 1}

    @classmethod
    def build(cls, network: SourceNetwork) -> "FakeNodeRegistry":
        registry = cls()
        for voltage_level in network.voltage_levels():
            registry._add(voltage_level)
        return registry

    def _add(self, voltage_level: VoltageLevel) -> str:
        body = resolve_collision(
            cut_to_width(voltage_level.id, FAKE_NODE_BODY_WIDTH),
            FAKE_NODE_BODY_WIDTH,
            lambda name: FAKE_NODE_PREFIX + name in self._use_count,
            voltage_level.id,
        )
        target_id = FAKE_NODE_PREFIX + body
        self._by_voltage_level[voltage_level.id] = target_id
        self._voltage_levels[target_id] = voltage_level
        self._use_count[target_id] = 0
        return target_id

    def target_id(self, voltage_level_id: str) -> str:
        return self._by_voltage_level[voltage_level_id]

    def reference(self, voltage_level_id: str) -> str:
        target_id = self._by_voltage_level[voltage_level_id]
        self._use_count[target_id] += 1
        return target_id

    def use_count(self, target_id: str) -> int:
        return self._use_count[target_id]

    def target_ids(self) -> list[str]:
        return list(self._use_count)

    def referenced_ids(self) -> Iterator[str]:
        return (target_id for target_id, count in self._use_count.items() if count > 0)

    def voltage_level_of(self, target_id: str) -> VoltageLevel | None:
        return self._voltage_levels.get(target_id)
