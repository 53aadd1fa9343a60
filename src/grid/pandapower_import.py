from __future__ import annotations

import logging
import math
from typing import Callable

import networkx as nx
import numpy as np
import pandapower as pp
import pandas as pd

from src.grid.model import (
    Bus,
    ConvertersMode,
    Generator,
    HvdcLine,
    Line,
    Load,
    PhaseTapChanger,
    RatioTapChanger,
    ShuntCompensator,
    SourceNetwork,
    Switch,
    TapStep,
    Terminal,
    ThreeWindingsTransformer,
    TransformerLeg,
    TwoWindingsTransformer,
    VoltageLevel,
    VscConverterStation,
)

logger = logging.getLogger(__name__)

OPEN_Q_LIMIT = 9999.0
EXT_GRID_P_LIMIT = 99999.0
DCLINE_R = 0.25
PHASE_TAP_CHANGER_TYPES = {"Ideal", "Symmetrical"}


def _safe_float(value: object, default: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not np.isfinite(result):
        return default
    return result


def _in_service(row: pd.Series) -> bool:
    value = row.get("in_service", True)
    return True if pd.isna(value) else bool(value)


def _element_ids(
    table: pd.DataFrame, prefix: str, is_taken: Callable[[str], bool] | None = None
) -> dict[int, str]:
    """Uses the ``name`` column when it holds unique non-empty names, else ``<prefix>_<index>``.

    Names already used by another element table (``is_taken``) also force the indexed ids.
    """
    if "name" in table.columns and not table.empty:
        names = table["name"]
        if names.notna().all() and (names.astype(str).str.len() > 0).all() and names.is_unique:
            ids = {int(idx): str(name) for idx, name in names.items()}
            clashes = sorted(name for name in ids.values() if is_taken is not None and is_taken(name))
            if not clashes:
                return ids
            logger.warning("Names %s of %s elements are already used, falling back to indexed ids", clashes, prefix)
    return {int(idx): f"{prefix}_{int(idx)}" for idx in table.index}


def _results(net: pp.pandapowerNet, table: str) -> pd.DataFrame:
    result = getattr(net, f"res_{table}", None)
    return result if isinstance(result, pd.DataFrame) else pd.DataFrame()


def _result_value(results: pd.DataFrame, idx: int, column: str, default: float = math.nan) -> float:
    if results.empty or idx not in results.index or column not in results.columns:
        return default
    return _safe_float(results.at[idx, column], default)


class _Importer:
    def __init__(self, net: pp.pandapowerNet, network_id: str, country: str | None) -> None:
        self.net = net
        self.network = SourceNetwork(network_id)
        self.country = country
        self.bus_ids = _element_ids(net.bus, "bus")
        self.voltage_level_of: dict[int, str] = {}
        self.open_line_ends: set[tuple[int, int]] = set()
        self.open_trafo_ends: set[tuple[int, int]] = set()

    def run(self) -> SourceNetwork:
        self._voltage_levels_and_buses()
        self._switches()
        self._lines()
        self._transformers()
        self._three_winding_transformers()
        self._generators()
        self._external_grids()
        self._static_generators()
        self._loads()
        self._shunts()
        self._dc_lines()
        return self.network

    def _terminal(self, bus: int, connected: bool = True, p: float = math.nan, q: float = math.nan) -> Terminal:
        return Terminal(self.voltage_level_of[bus], self.bus_ids[bus], connected, p, q)

    def _nominal_v(self, bus: int) -> float:
        return _safe_float(self.net.bus.at[bus, "vn_kv"])

    def _voltage_levels_and_buses(self) -> None:
        graph = nx.Graph()
        graph.add_nodes_from(int(idx) for idx in self.net.bus.index)
        switches = self.net.switch
        if not switches.empty:
            for _, row in switches[switches["et"] == "b"].iterrows():
                graph.add_edge(int(row["bus"]), int(row["element"]))
        groups = sorted((sorted(c) for c in nx.connected_components(graph)), key=lambda members: members[0])
        res_bus = _results(self.net, "bus")
        for members in groups:
            vl_id = f"VL_{self.bus_ids[members[0]]}"
            nominal_v = self._nominal_v(members[0])
            if any(abs(self._nominal_v(m) - nominal_v) > 1e-6 for m in members):
                logger.warning("Buses %s joined by switches have different nominal voltages", members)
            self.network.add_voltage_level(VoltageLevel(vl_id, nominal_v, self.country))
            for member in members:
                self.voltage_level_of[member] = vl_id
                vm_pu = _result_value(res_bus, member, "vm_pu")
                self.network.add_bus(
                    Bus(
                        self.bus_ids[member],
                        vl_id,
                        vm_pu * self._nominal_v(member),
                        _result_value(res_bus, member, "va_degree"),
                    )
                )

    def _switches(self) -> None:
        switches = self.net.switch
        if switches.empty:
            return
        switch_ids = _element_ids(switches, "switch", self.network.contains)
        for idx, row in switches.iterrows():
            closed = bool(row["closed"])
            bus = int(row["bus"])
            element = int(row["element"])
            if row["et"] == "b":
                self.network.add_switch(
                    Switch(
                        switch_ids[int(idx)],
                        self.voltage_level_of[bus],
                        self.bus_ids[bus],
                        self.bus_ids[element],
                        open=not closed,
                    )
                )
            elif not closed and row["et"] == "l":
                self.open_line_ends.add((element, bus))
            elif not closed and row["et"] == "t":
                self.open_trafo_ends.add((element, bus))

    def _lines(self) -> None:
        lines = self.net.line
        if lines.empty:
            return
        f_hz = _safe_float(getattr(self.net, "f_hz", 50.0), 50.0)
        line_ids = _element_ids(lines, "line", self.network.contains)
        res_line = _results(self.net, "line")
        for idx, row in lines.iterrows():
            idx = int(idx)
            length = _safe_float(row["length_km"])
            parallel = max(int(_safe_float(row.get("parallel", 1), 1.0)), 1)
            r = _safe_float(row["r_ohm_per_km"]) * length / parallel
            x = _safe_float(row["x_ohm_per_km"]) * length / parallel
            b = 2 * math.pi * f_hz * _safe_float(row.get("c_nf_per_km", 0.0)) * 1e-9 * length * parallel
            g = _safe_float(row.get("g_us_per_km", 0.0)) * 1e-6 * length * parallel
            in_service = _in_service(row)
            from_bus = int(row["from_bus"])
            to_bus = int(row["to_bus"])
            terminal1 = self._terminal(
                from_bus,
                in_service and (idx, from_bus) not in self.open_line_ends,
                _result_value(res_line, idx, "p_from_mw"),
                _result_value(res_line, idx, "q_from_mvar"),
            )
            terminal2 = self._terminal(
                to_bus,
                in_service and (idx, to_bus) not in self.open_line_ends,
                _result_value(res_line, idx, "p_to_mw"),
                _result_value(res_line, idx, "q_to_mvar"),
            )
            self.network.add_line(
                Line(line_ids[idx], terminal1, terminal2, r, x, g / 2, b / 2, g / 2, b / 2)
            )

    def _transformers(self) -> None:
        trafos = self.net.trafo
        if trafos.empty:
            return
        trafo_ids = _element_ids(trafos, "trafo", self.network.contains)
        for idx, row in trafos.iterrows():
            idx = int(idx)
            hv_bus = int(row["hv_bus"])
            lv_bus = int(row["lv_bus"])
            vn_hv = _safe_float(row["vn_hv_kv"])
            vn_lv = _safe_float(row["vn_lv_kv"])
            sn = _safe_float(row["sn_mva"])
            parallel = max(int(_safe_float(row.get("parallel", 1), 1.0)), 1)
            # series impedance and magnetizing admittance referred to the low-voltage side
            zb = vn_lv**2 / sn
            z = _safe_float(row["vk_percent"]) / 100 * zb
            r = _safe_float(row["vkr_percent"]) / 100 * zb
            x = math.copysign(math.sqrt(max(z**2 - r**2, 0.0)), z)
            g = _safe_float(row.get("pfe_kw", 0.0)) / 1000 / vn_lv**2
            y = _safe_float(row.get("i0_percent", 0.0)) / 100 * sn / vn_lv**2
            b = -math.sqrt(max(y**2 - g**2, 0.0))
            in_service = _in_service(row)
            ratio, phase = _tap_changers(row)
            self.network.add_two_windings_transformer(
                TwoWindingsTransformer(
                    trafo_ids[idx],
                    self._terminal(hv_bus, in_service and (idx, hv_bus) not in self.open_trafo_ends),
                    self._terminal(lv_bus, in_service and (idx, lv_bus) not in self.open_trafo_ends),
                    r / parallel,
                    x / parallel,
                    g * parallel,
                    b * parallel,
                    vn_hv,
                    vn_lv,
                    ratio_tap_changer=ratio,
                    phase_tap_changer=phase,
                )
            )

    def _three_winding_transformers(self) -> None:
        trafos = getattr(self.net, "trafo3w", None)
        if trafos is None or trafos.empty:
            return
        trafo_ids = _element_ids(trafos, "trafo3w", self.network.contains)
        for idx, row in trafos.iterrows():
            idx = int(idx)
            vn = [_safe_float(row["vn_hv_kv"]), _safe_float(row["vn_mv_kv"]), _safe_float(row["vn_lv_kv"])]
            sn = [_safe_float(row["sn_hv_mva"]), _safe_float(row["sn_mv_mva"]), _safe_float(row["sn_lv_mva"])]
            u0 = vn[0]

            def pair(column: str, i: int, j: int) -> float:
                return _safe_float(row[column]) / 100 * u0**2 / min(sn[i], sn[j])

            # winding pairs hv-mv, mv-lv, hv-lv to star legs, all referred to the high-voltage side
            z_hm, z_ml, z_hl = pair("vk_hv_percent", 0, 1), pair("vk_mv_percent", 1, 2), pair("vk_lv_percent", 0, 2)
            r_hm, r_ml, r_hl = pair("vkr_hv_percent", 0, 1), pair("vkr_mv_percent", 1, 2), pair("vkr_lv_percent", 0, 2)
            z_legs = [(z_hm + z_hl - z_ml) / 2, (z_hm + z_ml - z_hl) / 2, (z_hl + z_ml - z_hm) / 2]
            r_legs = [(r_hm + r_hl - r_ml) / 2, (r_hm + r_ml - r_hl) / 2, (r_hl + r_ml - r_hm) / 2]
            x_legs = [math.copysign(math.sqrt(max(z**2 - r**2, 0.0)), z) for z, r in zip(z_legs, r_legs)]
            g = _safe_float(row.get("pfe_kw", 0.0)) / 1000 / u0**2
            y = _safe_float(row.get("i0_percent", 0.0)) / 100 * sn[0] / u0**2
            b = -math.sqrt(max(y**2 - g**2, 0.0))

            in_service = _in_service(row)
            tap_side = row.get("tap_side")
            ratio, _ = _tap_changers(row, winding_side=True)
            legs = []
            for k, (side, bus_column) in enumerate((("hv", "hv_bus"), ("mv", "mv_bus"), ("lv", "lv_bus"))):
                legs.append(
                    TransformerLeg(
                        self._terminal(int(row[bus_column]), in_service),
                        r_legs[k],
                        x_legs[k],
                        g if k == 0 else 0.0,
                        b if k == 0 else 0.0,
                        vn[k],
                        ratio_tap_changer=ratio if side == tap_side else None,
                    )
                )
            self.network.add_three_windings_transformer(
                ThreeWindingsTransformer(trafo_ids[idx], legs[0], legs[1], legs[2], u0)
            )

    def _generators(self) -> None:
        gens = self.net.gen
        if gens.empty:
            return
        gen_ids = _element_ids(gens, "gen", self.network.contains)
        res_gen = _results(self.net, "gen")
        for idx, row in gens.iterrows():
            idx = int(idx)
            bus = int(row["bus"])
            p_mw = _safe_float(row["p_mw"])
            self.network.add_generator(
                Generator(
                    gen_ids[idx],
                    self._terminal(
                        bus,
                        _in_service(row),
                        -_result_value(res_gen, idx, "p_mw"),
                        -_result_value(res_gen, idx, "q_mvar"),
                    ),
                    target_p=p_mw,
                    target_q=_result_value(res_gen, idx, "q_mvar", 0.0),
                    min_p=_safe_float(row.get("min_p_mw"), 0.0),
                    max_p=_safe_float(row.get("max_p_mw"), max(p_mw, 0.0)),
                    min_q=_safe_float(row.get("min_q_mvar"), -OPEN_Q_LIMIT),
                    max_q=_safe_float(row.get("max_q_mvar"), OPEN_Q_LIMIT),
                    voltage_regulator_on=True,
                    target_v=_safe_float(row["vm_pu"], 1.0) * self._nominal_v(bus),
                )
            )

    def _external_grids(self) -> None:
        grids = self.net.ext_grid
        if grids.empty:
            return
        grid_ids = _element_ids(grids, "ext_grid", self.network.contains)
        res_grid = _results(self.net, "ext_grid")
        for idx, row in grids.iterrows():
            idx = int(idx)
            bus = int(row["bus"])
            self.network.add_generator(
                Generator(
                    grid_ids[idx],
                    self._terminal(
                        bus,
                        _in_service(row),
                        -_result_value(res_grid, idx, "p_mw"),
                        -_result_value(res_grid, idx, "q_mvar"),
                    ),
                    target_p=_result_value(res_grid, idx, "p_mw", 0.0),
                    target_q=_result_value(res_grid, idx, "q_mvar", 0.0),
                    min_p=_safe_float(row.get("min_p_mw"), -EXT_GRID_P_LIMIT),
                    max_p=_safe_float(row.get("max_p_mw"), EXT_GRID_P_LIMIT),
                    min_q=_safe_float(row.get("min_q_mvar"), -OPEN_Q_LIMIT),
                    max_q=_safe_float(row.get("max_q_mvar"), OPEN_Q_LIMIT),
                    voltage_regulator_on=True,
                    target_v=_safe_float(row["vm_pu"], 1.0) * self._nominal_v(bus),
                )
            )

    def _static_generators(self) -> None:
        sgens = self.net.sgen
        if sgens.empty:
            return
        sgen_ids = _element_ids(sgens, "sgen", self.network.contains)
        for idx, row in sgens.iterrows():
            idx = int(idx)
            scaling = _safe_float(row.get("scaling", 1.0), 1.0)
            p_mw = _safe_float(row["p_mw"]) * scaling
            q_mvar = _safe_float(row.get("q_mvar", 0.0)) * scaling
            self.network.add_generator(
                Generator(
                    sgen_ids[idx],
                    self._terminal(int(row["bus"]), _in_service(row)),
                    target_p=p_mw,
                    target_q=q_mvar,
                    min_p=_safe_float(row.get("min_p_mw"), min(p_mw, 0.0)),
                    max_p=_safe_float(row.get("max_p_mw"), max(p_mw, 0.0)),
                    min_q=_safe_float(row.get("min_q_mvar"), min(q_mvar, 0.0)),
                    max_q=_safe_float(row.get("max_q_mvar"), max(q_mvar, 0.0)),
                    voltage_regulator_on=False,
                )
            )

    def _loads(self) -> None:
        loads = self.net.load
        if loads.empty:
            return
        load_ids = _element_ids(loads, "load", self.network.contains)
        for idx, row in loads.iterrows():
            scaling = _safe_float(row.get("scaling", 1.0), 1.0)
            self.network.add_load(
                Load(
                    load_ids[int(idx)],
                    self._terminal(int(row["bus"]), _in_service(row)),
                    _safe_float(row["p_mw"]) * scaling,
                    _safe_float(row.get("q_mvar", 0.0)) * scaling,
                )
            )

    def _shunts(self) -> None:
        shunts = self.net.shunt
        if shunts.empty:
            return
        shunt_ids = _element_ids(shunts, "shunt", self.network.contains)
        for idx, row in shunts.iterrows():
            bus = int(row["bus"])
            vn_kv = _safe_float(row.get("vn_kv"), self._nominal_v(bus))
            max_step = max(int(_safe_float(row.get("max_step", 1), 1.0)), 1)
            step = int(_safe_float(row.get("step", 1), 1.0))
            # pandapower q_mvar is consumed reactive power per step at vn_kv
            b_per_section = -_safe_float(row["q_mvar"]) / vn_kv**2
            self.network.add_shunt(
                ShuntCompensator(
                    shunt_ids[int(idx)],
                    self._terminal(bus, _in_service(row)),
                    b_per_section,
                    step,
                    max_step,
                )
            )

    def _dc_lines(self) -> None:
        dclines = getattr(self.net, "dcline", None)
        if dclines is None or dclines.empty:
            return
        dcline_ids = _element_ids(dclines, "dcline", self.network.contains)
        for idx, row in dclines.iterrows():
            line_id = dcline_ids[int(idx)]
            in_service = _in_service(row)
            from_bus = int(row["from_bus"])
            to_bus = int(row["to_bus"])
            stations = []
            for side, bus in (("from", from_bus), ("to", to_bus)):
                station = VscConverterStation(
                    f"{line_id}_{side}",
                    self._terminal(bus, in_service),
                    loss_factor=_safe_float(row.get("loss_percent", 0.0)),
                    voltage_regulator_on=True,
                    voltage_setpoint=_safe_float(row.get(f"vm_{side}_pu"), 1.0) * self._nominal_v(bus),
                    reactive_power_setpoint=0.0,
                    min_q=_safe_float(row.get(f"min_q_{side}_mvar"), -OPEN_Q_LIMIT),
                    max_q=_safe_float(row.get(f"max_q_{side}_mvar"), OPEN_Q_LIMIT),
                )
                self.network.add_converter_station(station)
                stations.append(station)
            p_mw = _safe_float(row["p_mw"])
            self.network.add_hvdc_line(
                HvdcLine(
                    line_id,
                    stations[0].id,
                    stations[1].id,
                    r=DCLINE_R,
                    nominal_v=self._nominal_v(from_bus),
                    active_power_setpoint=p_mw,
                    max_p=_safe_float(row.get("max_p_mw"), abs(p_mw)),
                    converters_mode=ConvertersMode.SIDE_1_RECTIFIER_SIDE_2_INVERTER,
                )
            )


def _tap_changers(
    row: pd.Series, winding_side: bool = False
) -> tuple[RatioTapChanger | None, PhaseTapChanger | None]:
    tap_pos = _safe_float(row.get("tap_pos"), math.nan)
    if math.isnan(tap_pos):
        return None, None
    neutral = int(_safe_float(row.get("tap_neutral"), tap_pos))
    low = int(_safe_float(row.get("tap_min"), tap_pos))
    high = int(_safe_float(row.get("tap_max"), tap_pos))
    step_percent = _safe_float(row.get("tap_step_percent"), 0.0)
    step_degree = _safe_float(row.get("tap_step_degree"), 0.0)
    changer_type = row.get("tap_changer_type")
    phase_shifter = bool(_safe_float(row.get("tap_phase_shifter"), 0.0)) or (
        isinstance(changer_type, str) and changer_type in PHASE_TAP_CHANGER_TYPES
    )
    # a tap raising the voltage of side 1 (or of a three-winding leg) lowers the ratio
    tap_side = row.get("tap_side")
    side1 = winding_side or not isinstance(tap_side, str) or tap_side == "hv"
    steps = []
    for position in range(low, high + 1):
        k = 1 + (position - neutral) * step_percent / 100
        rho = 1 / k if side1 else k
        if phase_shifter:
            steps.append(TapStep(rho=1.0, alpha=(position - neutral) * step_degree))
        else:
            steps.append(TapStep(rho=rho))
    if phase_shifter:
        return None, PhaseTapChanger(low, int(tap_pos), tuple(steps))
    return RatioTapChanger(low, int(tap_pos), tuple(steps)), None


def from_pandapower(
    net: pp.pandapowerNet, network_id: str = "pandapower", country: str | None = None
) -> SourceNetwork:
    """Builds a ``SourceNetwork`` from a pandapower net.

    Buses joined by bus-bus switches share a voltage level; line and transformer
    switches open the corresponding terminal. Load-flow results, when present,
    give bus voltages and terminal flows. DC lines become VSC converter pairs.
    """
    network = _Importer(net, network_id, country).run()
    logger.info(
        "Imported %s: %d buses, %d lines, %d transformers, %d generators",
        network.id,
        len(network.buses()),
        len(network.lines()),
        len(network.two_windings_transformers()),
        len(network.generators()),
    )
    return network
