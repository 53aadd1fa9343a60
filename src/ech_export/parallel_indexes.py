from __future__ import annotations

from src.ech_model.errors import RenameExhaustedError
from src.grid.topology import NetworkTopology

DEFAULT_PARALLEL_INDEX = "1"


def _next_index(index: str) -> str:
    if index == "9":
        return "A"
    if index == "Z":
        raise RenameExhaustedError("More than 35 parallel branches between the same two nodes")
    return chr(ord(index) + 1)


class BranchParallelIndexes:
    """One-character index telling apart branches joining the same pair of buses."""

    def __init__(self, indexes: dict[str, str]) -> None:
        self._indexes = indexes

    @classmethod
    def build(cls, topology: NetworkTopology) -> "BranchParallelIndexes":
        network = topology.network
        groups: dict[tuple[str, str], list[str]] = {}

        def put(branch_id: str, bus1_id: str | None, bus2_id: str | None) -> None:
            key = tuple(sorted((bus1_id or "", bus2_id or "")))
            groups.setdefault(key, []).append(branch_id)

        for branch in [*network.lines(), *network.two_windings_transformers()]:
            put(
                branch.id,
                topology.connection_bus(branch.terminal1).id,
                topology.connection_bus(branch.terminal2).id,
            )
        for switch, bus1, bus2 in topology.switches():
            put(switch.id, bus1.id, bus2.id)

        indexes: dict[str, str] = {}
        for key in sorted(groups):
            branch_ids = sorted(groups[key])
            if len(branch_ids) < 2:
                continue
            index = "0"
            for branch_id in branch_ids:
                index = _next_index(index)
                indexes[branch_id] = index
        return cls(indexes)

    def index_of(self, branch_id: str) -> str:
        return self._indexes.get(branch_id, DEFAULT_PARALLEL_INDEX)
