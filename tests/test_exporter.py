from __future__ import annotations

import io
import logging
import math
from datetime import date
from pathlib import Path

import pytest

from src.ech_export.config import ExportConfig
from src.ech_export.exporter import EchExporter, export_network
from src.ech_model import entities
from src.ech_model.entities import (
    BranchStatus,
    ConnectionStatus,
    DcControlMode,
    RegulatingMode,
    TransformerRegulatingMode,
)
from src.ech_model.errors import UnsupportedError
from src.ech_model.network import NetworkState, TargetNetwork
from src.ech_model.parameters import GeneralParameters
from src.grid.examples import build_hvdc_network, build_tutorial_network
from src.grid.model import (
    Bus,
    DanglingLine,
    Generator,
    HvdcLine,
    LccConverterStation,
    Line,
    Load,
    RatioTapChanger,
    ShuntCompensator,
    ShuntModel,
    SourceNetwork,
    TapStep,
    Terminal,
    ThreeWindingsTransformer,
    TransformerLeg,
    VoltageLevel,
)

GENERAL = GeneralParameters(edit_date=date(2026, 10, 18))


def _export_text(network: SourceNetwork, config: ExportConfig | None = None) -> str:
    stream = io.StringIO()
    EchExporter(network, config).write(stream, GENERAL, name=network.id)
    return stream.getvalue()


def _line_named(exporter: EchExporter, target: TargetNetwork, line_id: str) -> entities.Line:
    name = exporter.dictionary.get_target(line_id)
    return next(line for line in target.lines if str(line.name) == name)


def test_tutorial_network_conversion() -> None:
    target = EchExporter(build_tutorial_network()).create_network(GENERAL)

    assert [area.name for area in target.areas] == ["FA", "FR"]
    assert [node.name for node in target.nodes] == [
        "FAKENOD1",
        "FAKENOD2",
        "NGEN    ",
        "NHV1    ",
        "NHV2    ",
        "NLOAD   ",
    ]
    assert [node.name for node in target.nodes if node.slack] == ["NGEN    "]
    assert target.node("FAKENOD1").area == "FA"
    assert target.node("FAKENOD1").vbase == 380.0
    assert target.node("NHV2    ").vinit == pytest.approx(389.95 / 380.0)
    assert target.node("NHV2    ").angle == -3.5

    assert [str(line.name) for line in target.lines] == ["NHV1    -NHV2    -1", "NHV1    -NHV2    -2"]
    line = target.lines[0]
    assert line.status is BranchStatus.CLOSED_AT_BOTH_SIDES
    assert line.r == pytest.approx(3.0 * 100 / 380**2)
    assert line.b == pytest.approx(193e-6 / 100 * 380**2)
    assert line.rate == 100.0

    generator = target.generator("GEN     ")
    assert generator.node == "NGEN    "
    assert generator.regulating_mode is RegulatingMode.REGULATING
    assert generator.target_v == 24.5
    assert generator.regulated_node == "NGEN    "
    assert (generator.pgen, generator.qgen) == (607.0, 301.0)
    assert target.loads[0].node == "NLOAD   "


def test_transformer_without_tap_changer_has_one_tap() -> None:
    target = EchExporter(build_tutorial_network()).create_network(GENERAL)
    transformer = target.two_winding_transformers[0]

    assert str(transformer.name) == "NGEN    -NHV1    -1"
    assert transformer.regulating_mode is TransformerRegulatingMode.NOT_REGULATING
    assert len(transformer.taps) == 1
    tap = transformer.taps[0]
    assert tap.uno2 == 380.0
    assert tap.uno1 == pytest.approx(380.0 * 24.0 / 400.0)
    assert tap.ucc == pytest.approx(1000.0 / 1300.0)
    assert transformer.pcu == pytest.approx(0.24 / 1300 * 100)


def test_regulating_transformer_taps() -> None:
    target = EchExporter(build_tutorial_network()).create_network(GENERAL)
    transformer = target.two_winding_transformers[1]

    assert str(transformer.name) == "NHV2    -NLOAD   -1"
    assert transformer.regulating_mode is TransformerRegulatingMode.VOLTAGE
    assert transformer.regulated_node == "NLOAD   "
    assert transformer.target_v == 158.0
    assert (transformer.nominal_tap, transformer.initial_tap) == (2, 2)
    assert [tap.index for tap in transformer.taps] == [1, 2, 3]
    assert transformer.taps[0].uno1 == pytest.approx(150.0 / (158.0 / 400.0 * 0.85833))
    assert {tap.uno2 for tap in transformer.taps} == {150.0}


def test_unreferenced_fake_nodes_are_pruned() -> None:
    network = build_tutorial_network()
    network.add_load(Load("LOST", Terminal("VLLOAD", None, connected=False), p0=1.0, q0=0.0))

    exporter = EchExporter(network)
    target = exporter.create_network(GENERAL)

    fake_names = [node.name for node in target.nodes if node.area == "FA"]
    assert fake_names == ["FAKENOD1", "FAKENOD2", "FKVLLOAD"]
    assert target.node("FKVLLOAD").vbase == 150.0
    lost = [load for load in target.loads if load.name == "LOST    "][0]
    assert lost.node == "FKVLLOAD"
    assert lost.status is ConnectionStatus.NOT_CONNECTED
    assert exporter.fake_nodes.use_count("FKVLGEN ") == 0


def test_export_is_deterministic() -> None:
    first = _export_text(build_tutorial_network())
    second = _export_text(build_tutorial_network())

    assert first == second
    assert first.splitlines()[0] == "HEADER     18/10/26 5.1"
    assert first.splitlines()[2] == "C tutorial"


def test_write_to_file(tmp_path: Path) -> None:
    path = tmp_path / "tutorial.ech"

    exporter = export_network(build_tutorial_network(), path, general=GENERAL)

    assert path.read_text(encoding="utf-8") == _export_text(build_tutorial_network()).replace("C tutorial\n", "")
    assert exporter.dictionary.get_target("NHV1_NHV2_2") == "NHV1    -NHV2    -2"


def test_symmetrical_line_with_unequal_susceptances_gets_a_bank() -> None:
    network = build_tutorial_network()
    network.add_line(
        Line("LB", Terminal("VLHV1", "NHV1"), Terminal("VLHV2", "NHV2"), r=3.0, x=33.0, b1=1e-4, b2=3e-4)
    )

    exporter = EchExporter(network)
    target = exporter.create_network(GENERAL)

    line = _line_named(exporter, target, "LB")
    assert str(line.name) == "NHV1    -NHV2    -1"
    assert line.b == pytest.approx(1e-4 / 100 * 380**2)
    bank = [bank for bank in target.banks if bank.name.startswith("FKSH")][0]
    assert bank.name == "FKSHLB  "
    assert bank.node == "NHV2    "
    assert bank.mvar_per_step == pytest.approx(380**2 * 2e-4)


def test_dummy_bank_follows_the_larger_susceptance_side() -> None:
    network = build_tutorial_network()
    network.add_line(
        Line("LC", Terminal("VLHV1", "NHV1"), Terminal("VLHV2", "NHV2"), r=3.0, x=33.0, b1=3e-4, b2=1e-4)
    )

    exporter = EchExporter(network)
    target = exporter.create_network(GENERAL)

    assert _line_named(exporter, target, "LC").b == pytest.approx(1e-4 / 100 * 380**2)
    bank = [bank for bank in target.banks if bank.name.startswith("FKSH")][0]
    assert bank.name == "FKSHLC  "
    assert bank.node == "NHV1    "


def test_dissymmetrical_line() -> None:
    network = build_tutorial_network()
    network.add_line(
        Line("LD", Terminal("VLHV1", "NHV1"), Terminal("VLHV2", "NHV2"), r=3.0, x=33.0, g1=1e-3, b1=1e-4, b2=1e-4)
    )

    target = EchExporter(network).create_network(GENERAL)

    assert len(target.dissymmetrical_branches) == 1
    branch = target.dissymmetrical_branches[0]
    assert branch.g1 == pytest.approx(1e-3 / 100 * 380**2)
    assert branch.g2 == 0.0


def test_half_open_dissymmetrical_line_is_averaged(caplog: pytest.LogCaptureFixture) -> None:
    network = build_tutorial_network()
    network.add_line(
        Line(
            "LH",
            Terminal("VLHV1", "NHV1"),
            Terminal("VLHV2", "NHV2", connected=False),
            r=3.0,
            x=33.0,
            g1=1e-3,
        )
    )

    exporter = EchExporter(network)
    with caplog.at_level(logging.WARNING):
        target = exporter.create_network(GENERAL)

    assert target.dissymmetrical_branches == []
    line = _line_named(exporter, target, "LH")
    assert line.status is BranchStatus.OPEN_AT_RECEIVING_SIDE
    assert line.g == pytest.approx(0.5e-3 / 100 * 380**2)
    assert "half connected" in caplog.text


def test_generator_with_inverted_reactive_limits() -> None:
    network = build_tutorial_network()
    network.add_generator(
        Generator(
            "GINV",
            Terminal("VLHV2", "NHV2", q=-50.0),
            target_p=100.0,
            target_q=20.0,
            min_p=0.0,
            max_p=200.0,
            min_q=100.0,
            max_q=-100.0,
            voltage_regulator_on=True,
            target_v=390.0,
        )
    )

    target = EchExporter(network).create_network(GENERAL)

    generator = target.generator("GINV    ")
    assert generator.qgen == 50.0
    assert (generator.qmin, generator.qmax) == (-9999.0, 9999.0)
    assert generator.regulating_mode is RegulatingMode.NOT_REGULATING
    assert math.isnan(generator.target_v)


def _three_winding_network(regulating: bool) -> SourceNetwork:
    network = SourceNetwork("t3w")
    for vl_id, nominal_v in (("V1", 400.0), ("V2", 225.0), ("V3", 20.0)):
        network.add_voltage_level(VoltageLevel(vl_id, nominal_v, "FR"))
        network.add_bus(Bus(f"B{vl_id[1]}", vl_id, nominal_v, 0.0))
    changer = None
    if regulating:
        changer = RatioTapChanger(
            low_tap=1,
            tap_position=2,
            steps=(TapStep(rho=0.95), TapStep(rho=1.0), TapStep(rho=1.05)),
            regulating=True,
            regulation_terminal=Terminal("V2", "B2"),
            target_v=226.0,
        )
    network.add_three_windings_transformer(
        ThreeWindingsTransformer(
            "T3",
            TransformerLeg(Terminal("V1", "B1"), r=0.5, x=20.0, g=1e-6, b=-1e-5, rated_u=400.0),
            TransformerLeg(Terminal("V2", "B2"), r=0.4, x=15.0, g=0.0, b=0.0, rated_u=225.0, ratio_tap_changer=changer),
            TransformerLeg(Terminal("V3", "B3"), r=0.01, x=0.3, g=0.0, b=0.0, rated_u=20.0),
            rated_u0=400.0,
        )
    )
    network.add_generator(
        Generator(
            "G1",
            Terminal("V1", "B1"),
            target_p=100.0,
            target_q=0.0,
            min_p=0.0,
            max_p=500.0,
            min_q=-200.0,
            max_q=200.0,
            voltage_regulator_on=True,
            target_v=400.0,
        )
    )
    network.add_load(Load("LD3", Terminal("V3", "B3"), p0=50.0, q0=5.0))
    return network


def test_three_winding_transformer_without_regulation_has_two_identical_taps() -> None:
    target = EchExporter(_three_winding_network(regulating=False)).create_network(GENERAL)

    transformer = target.three_winding_transformers[0]
    assert transformer.name == "T3      "
    assert (transformer.node1, transformer.node2, transformer.node3) == ("B1      ", "B2      ", "B3      ")
    assert transformer.regulating_mode is TransformerRegulatingMode.NOT_REGULATING
    assert [tap.index for tap in transformer.taps] == [1, 2]
    first, second = transformer.taps
    assert (first.uno1, first.uno2, first.uno3) == (400.0, 225.0, 20.0)
    assert (first.ucc12, first.ucc13, first.ucc23) == (second.ucc12, second.ucc13, second.ucc23)
    assert transformer.pfer > 0.0


def test_three_winding_transformer_regulating_leg() -> None:
    target = EchExporter(_three_winding_network(regulating=True)).create_network(GENERAL)

    transformer = target.three_winding_transformers[0]
    assert transformer.regulating_mode is TransformerRegulatingMode.VOLTAGE
    assert transformer.regulated_node == "B2      "
    assert transformer.target_v == 226.0
    assert (transformer.nominal_tap, transformer.initial_tap) == (2, 2)
    assert [tap.index for tap in transformer.taps] == [1, 2, 3]
    assert [tap.uno2 for tap in transformer.taps] == pytest.approx([225.0 / 0.95, 225.0, 225.0 / 1.05])


def test_hvdc_line_conversion() -> None:
    exporter = EchExporter(build_hvdc_network())
    target = exporter.create_network(GENERAL)

    assert [area.name for area in target.areas] == ["FA", "FR", "DC"]
    assert [node.name for node in target.dc_nodes] == ["DC_C1   ", "DC_C2   "]
    assert {node.vbase for node in target.dc_nodes} == {800.0}
    assert [link.key for link in target.dc_links] == ["DC_C1   -DC_C2   -1"]

    rectifier, inverter = target.vsc_converters
    assert rectifier.name == "C1      "
    assert rectifier.dc_control_mode is DcControlMode.AC_ACTIVE_POWER
    assert inverter.dc_control_mode is DcControlMode.DC_VOLTAGE
    assert rectifier.dc_node2 == "GROUND"
    assert rectifier.pac == pytest.approx(276.92)
    assert inverter.pac == pytest.approx(-276.92)
    assert rectifier.pre == -12.0
    assert inverter.pre == -123.0
    assert inverter.mvm == pytest.approx(398.0 / 400.0)
    assert (rectifier.pmin, rectifier.pmax) == (-300.0, 300.0)

    losses = {load.name: load.p0 for load in target.loads if load.name.startswith("fict_")}
    assert losses["fict_C1 "] == pytest.approx(3.08 + 0.75 * 0.49)
    assert losses["fict_C2 "] == pytest.approx(3.08)

    # derived names are reused when the network is converted again
    again = exporter.create_network(GENERAL)
    assert [node.name for node in again.dc_nodes] == ["DC_C1   ", "DC_C2   "]


def test_hvdc_export_is_written() -> None:
    lines = _export_text(build_hvdc_network()).splitlines()

    codes = [line[:2] for line in lines]
    assert codes.count("DO") == 2
    assert codes.count("DN") == 2
    assert "DL" in codes


def test_lcc_hvdc_line_is_unsupported() -> None:
    network = build_tutorial_network()
    network.add_converter_station(LccConverterStation("LCC1", Terminal("VLHV1", "NHV1"), 1.0, 0.8))
    network.add_converter_station(LccConverterStation("LCC2", Terminal("VLHV2", "NHV2"), 1.0, 0.8))
    network.add_hvdc_line(HvdcLine("HL", "LCC1", "LCC2", r=1.0, nominal_v=400.0, active_power_setpoint=100.0, max_p=200.0))

    with pytest.raises(UnsupportedError):
        EchExporter(network).create_network(GENERAL)


def test_non_linear_shunt_is_unsupported() -> None:
    network = build_tutorial_network()
    network.add_shunt(
        ShuntCompensator("SH", Terminal("VLLOAD", "NLOAD"), 1e-3, 1, 2, model=ShuntModel.NON_LINEAR)
    )

    with pytest.raises(UnsupportedError):
        EchExporter(network).create_network(GENERAL)


def test_linear_shunt_becomes_bank() -> None:
    network = build_tutorial_network()
    network.add_shunt(ShuntCompensator("SH", Terminal("VLLOAD", "NLOAD"), 1e-3, 1, 2))

    target = EchExporter(network).create_network(GENERAL)

    bank = target.banks[0]
    assert (bank.name, bank.node) == ("SH      ", "NLOAD   ")
    assert bank.mvar_per_step == pytest.approx(150.0**2 * 1e-3)
    assert (bank.steps_in_service, bank.max_steps) == (1, 2)


def _network_with_island() -> SourceNetwork:
    network = build_tutorial_network()
    network.add_voltage_level(VoltageLevel("VLISL", 20.0, "FR"))
    network.add_bus(Bus("NISL", "VLISL", 20.0, 0.0))
    network.add_load(Load("LISL", Terminal("VLISL", "NISL"), p0=1.0, q0=0.0))
    return network


def test_island_is_exported_by_default() -> None:
    target = EchExporter(_network_with_island()).create_network(GENERAL)

    assert target.node("NISL    ") is not None
    assert "LISL    " in [load.name for load in target.loads]


def test_main_component_only_skips_islands(caplog: pytest.LogCaptureFixture) -> None:
    config = ExportConfig(export_main_component_only=True)

    with caplog.at_level(logging.WARNING):
        target = EchExporter(_network_with_island(), config).create_network(GENERAL)

    assert target.node("NISL    ") is None
    assert "LISL    " not in [load.name for load in target.loads]
    assert "Skipping load LISL: not in the main connected component" in caplog.text


def test_dangling_line_gets_boundary_node_and_load() -> None:
    network = build_tutorial_network()
    network.add_dangling_line(
        DanglingLine(
            "DL1",
            Terminal("VLHV1", "NHV1"),
            r=1.0,
            x=10.0,
            b=2e-4,
            p0=50.0,
            q0=10.0,
            properties={"xnode_v": "399.0", "xnode_angle": "-1.5"},
        )
    )

    target = EchExporter(network).create_network(GENERAL)

    boundary = target.node("DL1_BUS ")
    assert boundary.vinit == pytest.approx(399.0 / 380.0)
    assert boundary.angle == -1.5
    line = [line for line in target.lines if line.name.node2 == "DL1_BUS "][0]
    assert line.b == pytest.approx(1e-4 / 100 * 380**2)
    load = [load for load in target.loads if load.node == "DL1_BUS "][0]
    assert (load.name, load.p0, load.q0) == ("DL1_LOAD", 50.0, 10.0)


def test_compatibility_mode_writes_no_special_parameters() -> None:
    exporter = EchExporter(build_tutorial_network(), ExportConfig(compatibility_mode=True))
    stream = io.StringIO()

    target = exporter.write(stream, GENERAL)

    assert exporter.special_parameters() is None
    assert target.state is NetworkState.SERIALIZED
    assert "SP" not in [line[:2] for line in stream.getvalue().splitlines()]
    assert "SP" in [line[:2] for line in _export_text(build_tutorial_network()).splitlines()]
