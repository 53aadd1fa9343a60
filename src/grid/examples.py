from __future__ import annotations

import math

import pandapower as pp

from src.grid.model import (
    Bus,
    ConvertersMode,
    Generator,
    HvdcLine,
    Line,
    Load,
    RatioTapChanger,
    SourceNetwork,
    TapStep,
    Terminal,
    TwoWindingsTransformer,
    VoltageLevel,
    VscConverterStation,
)

"""
Small reference networks.

- build_tutorial_network: 4-bus network (24 kV generator, two parallel 380 kV
  lines, 150 kV load behind a regulating transformer).
- build_hvdc_network: two 400 kV buses joined by an AC line and a VSC HVDC link.
- build_tutorial_pandapower_net: the tutorial network as a pandapower net.
"""

COUNTRY = "FR"


def build_tutorial_network(network_id: str = "tutorial") -> SourceNetwork:
    network = SourceNetwork(network_id)
    for vl_id, nominal_v in (("VLGEN", 24.0), ("VLHV1", 380.0), ("VLHV2", 380.0), ("VLLOAD", 150.0)):
        network.add_voltage_level(VoltageLevel(vl_id, nominal_v, COUNTRY))
    network.add_bus(Bus("NGEN", "VLGEN", 24.5, 2.33))
    network.add_bus(Bus("NHV1", "VLHV1", 402.14, 0.0))
    network.add_bus(Bus("NHV2", "VLHV2", 389.95, -3.5))
    network.add_bus(Bus("NLOAD", "VLLOAD", 147.58, -9.61))

    for line_id in ("NHV1_NHV2_1", "NHV1_NHV2_2"):
        network.add_line(
            Line(
                line_id,
                Terminal("VLHV1", "NHV1"),
                Terminal("VLHV2", "NHV2"),
                r=3.0,
                x=33.0,
                b1=386e-6 / 2,
                b2=386e-6 / 2,
            )
        )

    network.add_two_windings_transformer(
        TwoWindingsTransformer(
            "NGEN_NHV1",
            Terminal("VLGEN", "NGEN"),
            Terminal("VLHV1", "NHV1"),
            r=0.24 / 1300 * 380**2 / 100,
            x=math.sqrt(10**2 - 0.24**2) / 1300 * 380**2 / 100,
            g=0.0,
            b=0.0,
            rated_u1=24.0,
            rated_u2=400.0,
        )
    )
    load_terminal = Terminal("VLLOAD", "NLOAD")
    network.add_two_windings_transformer(
        TwoWindingsTransformer(
            "NHV2_NLOAD",
            Terminal("VLHV2", "NHV2"),
            load_terminal,
            r=0.21 / 1000 * 150**2 / 100,
            x=math.sqrt(18**2 - 0.21**2) / 1000 * 150**2 / 100,
            g=0.0,
            b=0.0,
            rated_u1=400.0,
            rated_u2=158.0,
            ratio_tap_changer=RatioTapChanger(
                low_tap=0,
                tap_position=1,
                steps=(TapStep(rho=0.85833), TapStep(rho=1.0), TapStep(rho=1.15)),
                regulating=True,
                regulation_terminal=load_terminal,
                target_v=158.0,
            ),
        )
    )

    network.add_generator(
        Generator(
            "GEN",
            Terminal("VLGEN", "NGEN"),
            target_p=607.0,
            target_q=301.0,
            min_p=-9999.99,
            max_p=9999.99,
            min_q=-9999.99,
            max_q=9999.99,
            voltage_regulator_on=True,
            target_v=24.5,
        )
    )
    network.add_load(Load("LOAD", load_terminal, p0=600.0, q0=200.0))
    return network


def build_hvdc_network(network_id: str = "hvdc") -> SourceNetwork:
    network = SourceNetwork(network_id)
    network.add_voltage_level(VoltageLevel("VL1", 400.0, COUNTRY))
    network.add_voltage_level(VoltageLevel("VL2", 400.0, COUNTRY))
    network.add_bus(Bus("B1", "VL1", 400.0, 0.0))
    network.add_bus(Bus("B2", "VL2", 398.0, -1.2))
    network.add_line(Line("L1", Terminal("VL1", "B1"), Terminal("VL2", "B2"), r=1.0, x=10.0))
    network.add_generator(
        Generator(
            "G1",
            Terminal("VL1", "B1"),
            target_p=600.0,
            target_q=0.0,
            min_p=0.0,
            max_p=1000.0,
            min_q=-500.0,
            max_q=500.0,
            voltage_regulator_on=True,
            target_v=400.0,
        )
    )
    network.add_load(Load("LD2", Terminal("VL2", "B2"), p0=580.0, q0=50.0))
    network.add_converter_station(
        VscConverterStation(
            "C1",
            Terminal("VL1", "B1", q=-12.0),
            loss_factor=1.1,
            voltage_regulator_on=True,
            voltage_setpoint=405.0,
            reactive_power_setpoint=math.nan,
            min_q=-300.0,
            max_q=300.0,
        )
    )
    network.add_converter_station(
        VscConverterStation(
            "C2",
            Terminal("VL2", "B2"),
            loss_factor=1.1,
            voltage_regulator_on=False,
            voltage_setpoint=400.0,
            reactive_power_setpoint=123.0,
            min_q=-300.0,
            max_q=300.0,
        )
    )
    network.add_hvdc_line(
        HvdcLine(
            "L",
            "C1",
            "C2",
            r=1.0,
            nominal_v=400.0,
            active_power_setpoint=280.0,
            max_p=300.0,
            converters_mode=ConvertersMode.SIDE_1_RECTIFIER_SIDE_2_INVERTER,
        )
    )
    return network


def build_tutorial_pandapower_net() -> pp.pandapowerNet:
    net = pp.create_empty_network(name="tutorial")
    ngen = pp.create_bus(net, vn_kv=24.0, name="NGEN")
    nhv1 = pp.create_bus(net, vn_kv=380.0, name="NHV1")
    nhv2 = pp.create_bus(net, vn_kv=380.0, name="NHV2")
    nload = pp.create_bus(net, vn_kv=150.0, name="NLOAD")

    for name in ("NHV1_NHV2_1", "NHV1_NHV2_2"):
        pp.create_line_from_parameters(
            net,
            nhv1,
            nhv2,
            length_km=1.0,
            r_ohm_per_km=3.0,
            x_ohm_per_km=33.0,
            c_nf_per_km=386e-6 / (2 * math.pi * 50) * 1e9,
            max_i_ka=1.0,
            name=name,
        )
    pp.create_transformer_from_parameters(
        net,
        nhv1,
        ngen,
        sn_mva=1300.0,
        vn_hv_kv=400.0,
        vn_lv_kv=24.0,
        vkr_percent=0.24,
        vk_percent=10.0,
        pfe_kw=0.0,
        i0_percent=0.0,
        name="NGEN_NHV1",
    )
    pp.create_transformer_from_parameters(
        net,
        nhv2,
        nload,
        sn_mva=1000.0,
        vn_hv_kv=400.0,
        vn_lv_kv=158.0,
        vkr_percent=0.21,
        vk_percent=18.0,
        pfe_kw=0.0,
        i0_percent=0.0,
        tap_side="lv",
        tap_neutral=0,
        tap_min=-1,
        tap_max=1,
        tap_step_percent=15.0,
        tap_pos=0,
        name="NHV2_NLOAD",
    )
    pp.create_ext_grid(net, nhv1, vm_pu=402.14 / 380.0, name="GRID")
    pp.create_gen(
        net,
        ngen,
        p_mw=607.0,
        vm_pu=24.5 / 24.0,
        min_p_mw=0.0,
        max_p_mw=9999.99,
        min_q_mvar=-9999.99,
        max_q_mvar=9999.99,
        name="GEN",
    )
    pp.create_load(net, nload, p_mw=600.0, q_mvar=200.0, name="LOAD")
    return net
