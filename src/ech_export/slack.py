from __future__ import annotations

import logging
from dataclasses import dataclass

from src.ech_model.errors import InconsistentModelError
from src.grid.topology import ExportBus, NetworkTopology

logger = logging.getLogger(__name__)

MIN_SLACK_MAX_P = 100.0


@dataclass
class _BusGeneration:
    bus: ExportBus
    regulating_generators: int = 0
    max_p: float = 0.0
    min_p: float = 0.0
    target_p: float = 0.0

    @property
    def margin(self) -> float:
        return (self.max_p - self.min_p) / 2 - self.target_p


def _decorate(topology: NetworkTopology) -> dict[str, _BusGeneration]:
    decorated = {bus.id: _BusGeneration(bus) for bus in topology.buses()}
    for generator in topology.network.generators():
        if not generator.voltage_regulator_on:
            continue
        bus = topology.bus_of(generator.terminal)
        if bus is None:
            continue
        entry = decorated[bus.id]
        entry.regulating_generators += 1
        entry.max_p += generator.max_p
        entry.min_p += generator.min_p
        entry.target_p += generator.target_p
    return decorated


def _select(decorated: dict[str, _BusGeneration], topology: NetworkTopology, avoid: set[str]) -> ExportBus | None:
    candidates = [
        decorated[bus_id]
        for bus_id in sorted(decorated)
        if bus_id not in avoid and topology.is_in_main_component(bus_id)
    ]
    candidates = [c for c in candidates if c.regulating_generators > 0 and c.max_p > MIN_SLACK_MAX_P]
    if not candidates:
        return None
    # sorted() is stable: equal margins keep ascending bus id order
    return sorted(candidates, key=lambda c: c.margin)[0].bus


def select_slack_bus(topology: NetworkTopology, exclude_switch_adjacent: bool = True) -> ExportBus:
    decorated = _decorate(topology)
    avoid: set[str] = set()
    if exclude_switch_adjacent:
        for _, bus1, bus2 in topology.switches():
            avoid.update((bus1.id, bus2.id))
    bus = _select(decorated, topology, avoid)
    if bus is None and avoid:
        bus = _select(decorated, topology, set())
    if bus is None:
        raise InconsistentModelError("Slack bus not found")
    logger.debug("Slack bus is %s", bus.id)
    return bus
