from __future__ import annotations

import io
import logging
import math
from datetime import date

import pandapower as pp
import pytest

from src.ech_export.exporter import EchExporter
from src.ech_model.parameters import GeneralParameters
from src.grid.examples import build_tutorial_pandapower_net
from src.grid.model import ConvertersMode
from src.grid.pandapower_import import from_pandapower


def test_buses_and_voltage_levels() -> None:
    network = from_pandapower(build_tutorial_pandapower_net(), network_id="tutorial")

    assert [bus.id for bus in network.buses()] == ["NGEN", "NHV1", "NHV2", "NLOAD"]
    assert [vl.id for vl in network.voltage_levels()] == ["VL_NGEN", "VL_NHV1", "VL_NHV2", "VL_NLOAD"]
    assert network.voltage_level("VL_NLOAD").nominal_v == 150.0
    # no load-flow results: bus voltages are unknown
    assert math.isnan(network.bus("NHV1").v)


def test_lines_and_transformers() -> None:
    network = from_pandapower(build_tutorial_pandapower_net())

    line = network.lines()[0]
    assert line.id == "NHV1_NHV2_1"
    assert (line.r, line.x) == pytest.approx((3.0, 33.0))
    assert line.b1 == pytest.approx(193e-6)
    assert line.b2 == pytest.approx(193e-6)

    gen_trafo, load_trafo = network.two_windings_transformers()
    assert gen_trafo.id == "NGEN_NHV1"
    assert gen_trafo.terminal1.bus_id == "NHV1"
    assert (gen_trafo.rated_u1, gen_trafo.rated_u2) == (400.0, 24.0)
    assert gen_trafo.r == pytest.approx(0.24 / 100 * 24.0**2 / 1300.0)
    assert gen_trafo.ratio_tap_changer is None

    changer = load_trafo.ratio_tap_changer
    assert (changer.low_tap, changer.tap_position, changer.high_tap) == (-1, 0, 1)
    assert [step.rho for step in changer.steps] == pytest.approx([0.85, 1.0, 1.15])
    assert not changer.regulating


def test_generators_and_external_grid() -> None:
    network = from_pandapower(build_tutorial_pandapower_net())

    gen, grid = network.generators()
    assert (gen.id, grid.id) == ("GEN", "GRID")
    assert gen.target_p == 607.0
    assert gen.target_v == pytest.approx(24.5)
    assert gen.max_q == 9999.99
    assert grid.voltage_regulator_on
    assert (grid.min_p, grid.max_p) == (-99999.0, 99999.0)
    assert network.loads()[0].p0 == 600.0


def test_switches_shunts_and_dc_lines() -> None:
    net = pp.create_empty_network()
    b1 = pp.create_bus(net, vn_kv=20.0, name="A")
    b2 = pp.create_bus(net, vn_kv=20.0, name="B")
    b3 = pp.create_bus(net, vn_kv=20.0, name="C")
    pp.create_switch(net, b1, b2, et="b", closed=True, name="COUPL")
    line = pp.create_line_from_parameters(
        net, b2, b3, length_km=2.0, r_ohm_per_km=0.1, x_ohm_per_km=0.4, c_nf_per_km=0.0, max_i_ka=1.0, name="L"
    )
    pp.create_switch(net, b3, line, et="l", closed=False, name="LS")
    pp.create_shunt(net, b3, q_mvar=-10.0, p_mw=0.0, name="SH")
    pp.create_dcline(
        net, b1, b3, p_mw=50.0, loss_percent=1.0, loss_mw=0.5, vm_from_pu=1.0, vm_to_pu=1.0, name="HVDC"
    )

    network = from_pandapower(net, country="FR")

    assert [vl.id for vl in network.voltage_levels()] == ["VL_A", "VL_C"]
    assert network.voltage_level("VL_A").country == "FR"
    assert [sw.id for sw in network.switches()] == ["COUPL"]
    imported_line = network.lines()[0]
    assert imported_line.terminal1.connected
    assert not imported_line.terminal2.connected
    assert imported_line.r == pytest.approx(0.2)

    shunt = network.shunts()[0]
    assert shunt.b_per_section == pytest.approx(10.0 / 20.0**2)

    hvdc_line = network.hvdc_lines()[0]
    assert (hvdc_line.converter_station1_id, hvdc_line.converter_station2_id) == ("HVDC_from", "HVDC_to")
    assert hvdc_line.r == 0.25
    assert hvdc_line.active_power_setpoint == 50.0
    assert hvdc_line.converters_mode is ConvertersMode.SIDE_1_RECTIFIER_SIDE_2_INVERTER
    assert network.converter_station("HVDC_from").loss_factor == 1.0


def test_pandapower_net_can_be_exported() -> None:
    network = from_pandapower(build_tutorial_pandapower_net(), network_id="tutorial")
    stream = io.StringIO()

    target = EchExporter(network).write(stream, GeneralParameters(edit_date=date(2026, 10, 18)))

    assert [area.name for area in target.areas] == ["FA"]
    assert len(target.two_winding_transformers) == 2
    assert stream.getvalue().startswith("HEADER     18/10/26 5.1\n")


def test_names_shared_across_tables_fall_back_to_indexed_ids(caplog: pytest.LogCaptureFixture) -> None:
    net = build_tutorial_pandapower_net()
    nload = int(net.bus.index[net.bus["name"] == "NLOAD"][0])
    pp.create_load(net, nload, p_mw=10.0, q_mvar=1.0, name="GEN")

    with caplog.at_level(logging.WARNING):
        network = from_pandapower(net)

    assert [load.id for load in network.loads()] == ["load_0", "load_1"]
    assert [gen.id for gen in network.generators()] == ["GEN", "GRID"]
    assert "already used" in caplog.text
