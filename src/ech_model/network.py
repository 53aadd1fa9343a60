from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Iterable

from src.ech_model.entities import (
    AcdcVscConverter,
    Area,
    BranchName,
    CapacitorOrReactorBank,
    ConnectionStatus,
    CouplingDevice,
    DcLink,
    DcNode,
    DetailedTwoWindingTransformer,
    DissymmetricalBranch,
    Generator,
    Line,
    Load,
    Node,
    RegulatingMode,
    StaticVarCompensator,
    ThreeWindingTransformer,
    TransformerRegulatingMode,
)
from src.ech_model.errors import AlreadyBoundError, InconsistentModelError

logger = logging.getLogger(__name__)

VERSION = "5.1"
MIN_REACTIVE_RANGE = 1.0
GROUND_NODE = "GROUND"


class NetworkState(Enum):
    BUILDING = "building"
    CHECKED = "checked"
    SERIALIZED = "serialized"


def _vkey(value: float) -> float | None:
    return None if math.isnan(value) else value


class TargetNetwork:
    """Target-side network: entities keyed by their fixed-width names, in insertion order."""

    def __init__(self) -> None:
        self.state = NetworkState.BUILDING
        self._areas: dict[str, Area] = {}
        self._nodes: dict[str, Node] = {}
        self._lines: dict[str, Line] = {}
        self._dissymmetrical_branches: dict[str, DissymmetricalBranch] = {}
        self._coupling_devices: dict[str, CouplingDevice] = {}
        self._two_winding_transformers: dict[str, DetailedTwoWindingTransformer] = {}
        self._three_winding_transformers: dict[str, ThreeWindingTransformer] = {}
        self._generators: dict[str, Generator] = {}
        self._loads: dict[str, Load] = {}
        self._banks: dict[str, CapacitorOrReactorBank] = {}
        self._static_var_compensators: dict[str, StaticVarCompensator] = {}
        self._dc_nodes: dict[str, DcNode] = {}
        self._dc_links: dict[str, DcLink] = {}
        self._vsc_converters: dict[str, AcdcVscConverter] = {}

    def _add(self, table: dict, key: str, entity, kind: str) -> None:
        if self.state is not NetworkState.BUILDING:
            raise InconsistentModelError(f"Cannot add {kind} {key}: network is {self.state.value}")
        if key in table:
            raise AlreadyBoundError(f"{kind} '{key}' already exists")
        table[key] = entity

    def add_area(self, area: Area) -> None:
        self._add(self._areas, area.name, area, "Area")

    def add_node(self, node: Node) -> None:
        self._add(self._nodes, node.name, node, "Node")

    def add_line(self, line: Line) -> None:
        self._add(self._lines, str(line.name), line, "Line")

    def add_dissymmetrical_branch(self, branch: DissymmetricalBranch) -> None:
        self._add(self._dissymmetrical_branches, str(branch.name), branch, "Dissymmetrical branch")

    def add_coupling_device(self, device: CouplingDevice) -> None:
        self._add(self._coupling_devices, str(device.name), device, "Coupling device")

    def add_two_winding_transformer(self, transformer: DetailedTwoWindingTransformer) -> None:
        self._add(self._two_winding_transformers, str(transformer.name), transformer, "Transformer")

    def add_three_winding_transformer(self, transformer: ThreeWindingTransformer) -> None:
        self._add(self._three_winding_transformers, transformer.name, transformer, "Three windings transformer")

    def add_generator(self, generator: Generator) -> None:
        self._add(self._generators, generator.name, generator, "Generator")

    def add_load(self, load: Load) -> None:
        self._add(self._loads, load.name, load, "Load")

    def add_bank(self, bank: CapacitorOrReactorBank) -> None:
        self._add(self._banks, bank.name, bank, "Bank")

    def add_static_var_compensator(self, svc: StaticVarCompensator) -> None:
        self._add(self._static_var_compensators, svc.name, svc, "Static var compensator")

    def add_dc_node(self, node: DcNode) -> None:
        self._add(self._dc_nodes, node.name, node, "DC node")

    def add_dc_link(self, link: DcLink) -> None:
        self._add(self._dc_links, link.key, link, "DC link")

    def add_vsc_converter(self, converter: AcdcVscConverter) -> None:
        self._add(self._vsc_converters, converter.name, converter, "VSC converter")

    def area(self, name: str) -> Area | None:
        return self._areas.get(name)

    def node(self, name: str) -> Node | None:
        return self._nodes.get(name)

    def generator(self, name: str) -> Generator | None:
        return self._generators.get(name)

    @property
    def areas(self) -> list[Area]:
        return list(self._areas.values())

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    @property
    def lines(self) -> list[Line]:
        return list(self._lines.values())

    @property
    def dissymmetrical_branches(self) -> list[DissymmetricalBranch]:
        return list(self._dissymmetrical_branches.values())

    @property
    def coupling_devices(self) -> list[CouplingDevice]:
        return list(self._coupling_devices.values())

    @property
    def two_winding_transformers(self) -> list[DetailedTwoWindingTransformer]:
        return list(self._two_winding_transformers.values())

    @property
    def three_winding_transformers(self) -> list[ThreeWindingTransformer]:
        return list(self._three_winding_transformers.values())

    @property
    def generators(self) -> list[Generator]:
        return list(self._generators.values())

    @property
    def loads(self) -> list[Load]:
        return list(self._loads.values())

    @property
    def banks(self) -> list[CapacitorOrReactorBank]:
        return list(self._banks.values())

    @property
    def static_var_compensators(self) -> list[StaticVarCompensator]:
        return list(self._static_var_compensators.values())

    @property
    def dc_nodes(self) -> list[DcNode]:
        return list(self._dc_nodes.values())

    @property
    def dc_links(self) -> list[DcLink]:
        return list(self._dc_links.values())

    @property
    def vsc_converters(self) -> list[AcdcVscConverter]:
        return list(self._vsc_converters.values())

    def _require_node(self, kind: str, name, attribute: str, node: str | None) -> None:
        if node is None or node not in self._nodes:
            raise InconsistentModelError(f"{kind} '{name}' references unknown {attribute} '{node}'")

    def _require_dc_node(self, kind: str, name, attribute: str, node: str) -> None:
        if node != GROUND_NODE and node not in self._dc_nodes:
            raise InconsistentModelError(f"{kind} '{name}' references unknown {attribute} '{node}'")

    def _check_branch(self, kind: str, name: BranchName) -> None:
        self._require_node(kind, name, "node 1", name.node1)
        self._require_node(kind, name, "node 2", name.node2)

    def check_consistency(self) -> None:
        if self.state is not NetworkState.BUILDING:
            return
        if not self._nodes:
            raise InconsistentModelError("Network must have at least one node")
        if not any(node.slack for node in self._nodes.values()):
            raise InconsistentModelError("Network must have at least one slack bus")
        for node in self._nodes.values():
            if node.area not in self._areas:
                raise InconsistentModelError(f"Node '{node.name}' references unknown area '{node.area}'")
        for node in self._dc_nodes.values():
            if node.area not in self._areas:
                raise InconsistentModelError(f"DC node '{node.name}' references unknown area '{node.area}'")
        for line in self._lines.values():
            self._check_branch("Line", line.name)
        for device in self._coupling_devices.values():
            self._check_branch("Coupling device", device.name)
        for branch in self._dissymmetrical_branches.values():
            self._check_branch("Dissymmetrical branch", branch.name)
        for transformer in self._two_winding_transformers.values():
            self._check_branch("Transformer", transformer.name)
            if transformer.regulated_node is not None:
                self._require_node("Transformer", transformer.name, "regulated node", transformer.regulated_node)
        for transformer in self._three_winding_transformers.values():
            for attribute, node in (("node 1", transformer.node1), ("node 2", transformer.node2), ("node 3", transformer.node3)):
                self._require_node("Three windings transformer", transformer.name, attribute, node)
            if transformer.regulated_node is not None:
                self._require_node(
                    "Three windings transformer", transformer.name, "regulated node", transformer.regulated_node
                )
        for load in self._loads.values():
            self._require_node("Load", load.name, "connection node", load.node)
        for generator in self._generators.values():
            self._require_node("Generator", generator.name, "connection node", generator.node)
            self._require_node("Generator", generator.name, "regulated node", generator.regulated_node)
        for bank in self._banks.values():
            self._require_node("Bank", bank.name, "connection node", bank.node)
        for svc in self._static_var_compensators.values():
            self._require_node("Static var compensator", svc.name, "connection node", svc.node)
        for link in self._dc_links.values():
            self._require_dc_node("DC link", link.key, "DC node 1", link.node1)
            self._require_dc_node("DC link", link.key, "DC node 2", link.node2)
        for converter in self._vsc_converters.values():
            self._require_node("VSC converter", converter.name, "AC node", converter.ac_node)
            self._require_dc_node("VSC converter", converter.name, "DC node 1", converter.dc_node1)
            self._require_dc_node("VSC converter", converter.name, "DC node 2", converter.dc_node2)

        self._fix_small_reactive_ranges()
        self._fix_generator_target_voltages()
        self._fix_transformer_target_voltages()
        self.state = NetworkState.CHECKED

    def _fix_small_reactive_ranges(self) -> None:
        names = []
        for generator in self._generators.values():
            if (
                generator.regulating_mode is RegulatingMode.REGULATING
                and abs(generator.qmax - generator.qmin) < MIN_REACTIVE_RANGE
            ):
                generator.regulating_mode = RegulatingMode.NOT_REGULATING
                names.append(generator.name)
        if names:
            logger.warning("Reactive range too small, switch regulator off: %s", names)

    def _fix_generator_target_voltages(self) -> None:
        by_node: dict[str, list[Generator]] = {}
        for generator in self._generators.values():
            if generator.regulating_mode is RegulatingMode.REGULATING:
                by_node.setdefault(generator.regulated_node, []).append(generator)
        for node, generators in by_node.items():
            if len({_vkey(g.target_v) for g in generators}) <= 1:
                continue
            connected = [g for g in generators if g.status is ConnectionStatus.CONNECTED]
            targets = {_vkey(g.target_v) for g in connected}
            if not targets:
                continue
            if len(targets) > 1:
                raise InconsistentModelError(
                    f"{len(connected)} generators ({[g.name for g in connected]}) are connected to the same "
                    f"node ({node}) and try to impose different target voltages: {sorted(targets, key=str)}"
                )
            target_v = next(iter(targets))
            disconnected = [g for g in generators if g.status is ConnectionStatus.NOT_CONNECTED]
            logger.warning(
                "Fix target voltage of disconnected generators %s to %s kV imposed by connected generators at node %s",
                [g.name for g in disconnected],
                target_v,
                node,
            )
            for generator in disconnected:
                generator.target_v = math.nan if target_v is None else target_v

    def _fix_transformer_target_voltages(self) -> None:
        by_node: dict[str, list] = {}
        transformers: Iterable = [*self._two_winding_transformers.values(), *self._three_winding_transformers.values()]
        for transformer in transformers:
            if transformer.regulating_mode is TransformerRegulatingMode.VOLTAGE:
                by_node.setdefault(transformer.regulated_node, []).append(transformer)
        for node, group in by_node.items():
            targets = {_vkey(t.target_v) for t in group}
            if len(targets) <= 1:
                continue
            target_v = min(t.target_v for t in group if not math.isnan(t.target_v))
            logger.warning(
                "Fix target voltage of transformers %s regulating node %s: %s kV",
                [str(t.name) for t in group],
                node,
                target_v,
            )
            for transformer in group:
                transformer.target_v = target_v

    def mark_serialized(self) -> None:
        if self.state is NetworkState.BUILDING:
            raise InconsistentModelError("Network must be checked before serialization")
        self.state = NetworkState.SERIALIZED
