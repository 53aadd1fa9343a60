from __future__ import annotations

from dataclasses import dataclass, field

from src.ech_export.config import ExportConfig
from src.ech_export.fake_nodes import FakeNodeRegistry
from src.ech_export.parallel_indexes import BranchParallelIndexes
from src.ech_model.entities import BranchName
from src.grid.model import SourceNetwork, Terminal
from src.grid.topology import ConnectionBus, NetworkTopology
from src.naming.dictionary import IdentifierDictionary


@dataclass
class ExportContext:
    network: SourceNetwork
    config: ExportConfig
    topology: NetworkTopology
    fake_nodes: FakeNodeRegistry
    parallel_indexes: BranchParallelIndexes
    dictionary: IdentifierDictionary
    snref: float = 100.0
    additional_bank_names: set[str] = field(default_factory=set)

    def connection_bus(self, terminal: Terminal, use_fake_nodes: bool = True) -> ConnectionBus:
        return self.topology.connection_bus(terminal, self.fake_nodes if use_fake_nodes else None)

    def node_name(self, bus: ConnectionBus) -> str:
        return self.dictionary.get_target(bus.id)

    def branch_name(self, branch_id: str, bus1: ConnectionBus, bus2: ConnectionBus) -> BranchName:
        return BranchName(
            self.node_name(bus1),
            self.node_name(bus2),
            self.parallel_indexes.index_of(branch_id),
        )

    def skip_outside_main_component(self, *terminals: Terminal) -> bool:
        if not self.config.export_main_component_only:
            return False
        return not self.topology.is_branch_in_main_component(*terminals)
