from __future__ import annotations

import pytest

from src.ech_export.slack import select_slack_bus
from src.ech_model.errors import InconsistentModelError
from src.grid.examples import build_tutorial_network
from src.grid.model import Bus, Generator, Line, SourceNetwork, Switch, Terminal, VoltageLevel
from src.grid.topology import NetworkTopology


def _generator(gen_id: str, vl_id: str, bus_id: str, target_p: float, max_p: float, regulating: bool = True) -> Generator:
    return Generator(
        gen_id,
        Terminal(vl_id, bus_id),
        target_p=target_p,
        target_q=0.0,
        min_p=0.0,
        max_p=max_p,
        min_q=-100.0,
        max_q=100.0,
        voltage_regulator_on=regulating,
        target_v=400.0,
    )


def _two_station_network(with_remote_generator: bool = True, local_target_p: float = 275.0) -> SourceNetwork:
    network = SourceNetwork("slack")
    network.add_voltage_level(VoltageLevel("VA", 400.0))
    network.add_voltage_level(VoltageLevel("VB", 400.0))
    network.add_bus(Bus("A1", "VA", 400.0, 0.0))
    network.add_bus(Bus("A2", "VA", 400.0, 0.0))
    network.add_bus(Bus("B1", "VB", 400.0, 0.0))
    network.add_switch(Switch("SW", "VA", "A1", "A2"))
    network.add_line(Line("L", Terminal("VA", "A2"), Terminal("VB", "B1"), r=1.0, x=10.0))
    # default margins: A1 500/2 - 275 = -25, B1 500/2 - 0 = 250
    network.add_generator(_generator("GA", "VA", "A1", target_p=local_target_p, max_p=500.0))
    if with_remote_generator:
        network.add_generator(_generator("GB", "VB", "B1", target_p=0.0, max_p=500.0))
    return network


def test_tutorial_slack_is_generator_bus() -> None:
    assert select_slack_bus(NetworkTopology(build_tutorial_network())).id == "NGEN"


def test_switch_adjacent_buses_are_avoided() -> None:
    topology = NetworkTopology(_two_station_network())

    assert select_slack_bus(topology).id == "B1"
    assert select_slack_bus(topology, exclude_switch_adjacent=False).id == "A1"


def test_equally_ranked_candidates_prefer_bus_away_from_switches() -> None:
    # both margins are 500/2 - 0 = 250
    topology = NetworkTopology(_two_station_network(local_target_p=0.0))

    assert select_slack_bus(topology).id == "B1"
    assert select_slack_bus(topology, exclude_switch_adjacent=False).id == "A1"


def test_switch_adjacent_bus_used_when_nothing_else_qualifies() -> None:
    topology = NetworkTopology(_two_station_network(with_remote_generator=False))

    assert select_slack_bus(topology).id == "A1"


def test_small_or_non_regulating_generation_is_not_a_slack_candidate() -> None:
    network = SourceNetwork("weak")
    network.add_voltage_level(VoltageLevel("V", 20.0))
    network.add_bus(Bus("B", "V", 20.0, 0.0))
    network.add_bus(Bus("C", "V", 20.0, 0.0))
    network.add_line(Line("L", Terminal("V", "B"), Terminal("V", "C"), r=1.0, x=1.0))
    network.add_generator(_generator("SMALL", "V", "B", target_p=10.0, max_p=50.0))
    network.add_generator(_generator("PQ", "V", "C", target_p=10.0, max_p=500.0, regulating=False))

    with pytest.raises(InconsistentModelError, match="Slack bus not found"):
        select_slack_bus(NetworkTopology(network))
