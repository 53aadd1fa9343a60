from __future__ import annotations

import math
from dataclasses import dataclass

import networkx as nx

from src.grid.model import SourceNetwork, Switch, Terminal


@dataclass(frozen=True)
class ExportBus:
    id: str
    voltage_level_id: str
    v: float = math.nan
    angle: float = math.nan
    members: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConnectionBus:
    connected: bool
    id: str | None

    def same_as(self, other: "ConnectionBus") -> bool:
        return self.id == other.id


class NetworkTopology:
    """Exported bus set of a source network in bus-breaker or aggregated (bus-view) mode."""

    def __init__(self, network: SourceNetwork, aggregate: bool = False) -> None:
        self.network = network
        self.aggregate = aggregate
        self._buses: dict[str, ExportBus] = {}
        self._bus_of_source: dict[str, str] = {}
        if aggregate:
            self._merge_buses()
        else:
            for bus in network.buses():
                self._buses[bus.id] = ExportBus(bus.id, bus.voltage_level_id, bus.v, bus.angle, (bus.id,))
                self._bus_of_source[bus.id] = bus.id
        self._component_of = self._number_components()

    def _merge_buses(self) -> None:
        graph = nx.Graph()
        graph.add_nodes_from(bus.id for bus in self.network.buses())
        graph.add_edges_from(
            (sw.bus1_id, sw.bus2_id) for sw in self.network.switches() if not sw.open
        )
        energized = {
            t.bus_id for t in self.network.terminals() if t.connected and t.bus_id is not None
        }
        groups: dict[str, list[list[str]]] = {}
        for members in nx.connected_components(graph):
            if not members & energized:
                continue
            ordered = sorted(members)
            vl_id = self.network.bus(ordered[0]).voltage_level_id
            groups.setdefault(vl_id, []).append(ordered)
        for vl_id in sorted(groups):
            for k, members in enumerate(sorted(groups[vl_id])):
                bus_id = f"{vl_id}_{k}"
                # voltage of the merged bus is taken from the first member carrying one
                first = next(
                    (self.network.bus(m) for m in members if not math.isnan(self.network.bus(m).v)),
                    self.network.bus(members[0]),
                )
                self._buses[bus_id] = ExportBus(bus_id, vl_id, first.v, first.angle, tuple(members))
                for member in members:
                    self._bus_of_source[member] = bus_id

    def _number_components(self) -> dict[str, int]:
        graph = nx.Graph()
        graph.add_nodes_from(self._buses)
        for line in self.network.lines():
            self._link(graph, line.terminal1, line.terminal2)
        for transformer in self.network.two_windings_transformers():
            self._link(graph, transformer.terminal1, transformer.terminal2)
        for transformer in self.network.three_windings_transformers():
            self._link(graph, transformer.leg1.terminal, transformer.leg2.terminal)
            self._link(graph, transformer.leg1.terminal, transformer.leg3.terminal)
        for hvdc_line in self.network.hvdc_lines():
            self._link(
                graph,
                self.network.converter_station(hvdc_line.converter_station1_id).terminal,
                self.network.converter_station(hvdc_line.converter_station2_id).terminal,
            )
        for switch, bus1, bus2 in self.switches():
            if not switch.open:
                graph.add_edge(bus1.id, bus2.id)
        components = sorted(
            (sorted(c) for c in nx.connected_components(graph)),
            key=lambda members: (-len(members), members[0]),
        )
        return {bus_id: num for num, members in enumerate(components) for bus_id in members}

    def _link(self, graph: nx.Graph, terminal1: Terminal, terminal2: Terminal) -> None:
        bus1 = self.bus_of(terminal1)
        bus2 = self.bus_of(terminal2)
        if bus1 is not None and bus2 is not None:
            graph.add_edge(bus1.id, bus2.id)

    def buses(self) -> list[ExportBus]:
        return [self._buses[key] for key in sorted(self._buses)]

    def bus(self, bus_id: str) -> ExportBus:
        return self._buses[bus_id]

    def connectable_bus_of(self, terminal: Terminal) -> ExportBus | None:
        if terminal.bus_id is None:
            return None
        bus_id = self._bus_of_source.get(terminal.bus_id)
        return self._buses[bus_id] if bus_id is not None else None

    def bus_of(self, terminal: Terminal) -> ExportBus | None:
        if not terminal.connected:
            return None
        return self.connectable_bus_of(terminal)

    def switches(self) -> list[tuple[Switch, ExportBus, ExportBus]]:
        if self.aggregate:
            return []
        return [
            (sw, self._buses[sw.bus1_id], self._buses[sw.bus2_id]) for sw in self.network.switches()
        ]

    def connection_bus(self, terminal: Terminal, fake_nodes=None) -> ConnectionBus:
        bus = self.bus_of(terminal)
        if bus is not None:
            return ConnectionBus(True, bus.id)
        bus = self.connectable_bus_of(terminal)
        if bus is not None:
            return ConnectionBus(False, bus.id)
        if fake_nodes is not None:
            return ConnectionBus(False, fake_nodes.reference(terminal.voltage_level_id))
        return ConnectionBus(False, None)

    def component_of(self, bus_id: str) -> int:
        return self._component_of.get(bus_id, -1)

    def is_in_main_component(self, bus_id: str | None) -> bool:
        return bus_id is not None and self.component_of(bus_id) == 0

    def is_terminal_in_main_component(self, terminal: Terminal) -> bool:
        bus = self.bus_of(terminal)
        return bus is not None and self.is_in_main_component(bus.id)

    def is_branch_in_main_component(self, *terminals: Terminal) -> bool:
        return all(self.is_terminal_in_main_component(terminal) for terminal in terminals)
