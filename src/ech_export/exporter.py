from __future__ import annotations

import argparse
import logging
import math
from pathlib import Path
from typing import TextIO

import pandapower as pp

from src.ech_export.config import ExportConfig, load_export_config
from src.ech_export.context import ExportContext
from src.ech_export.fake_nodes import FakeNodeRegistry
from src.ech_export.parallel_indexes import BranchParallelIndexes
from src.ech_export.per_unit import (
    B_EPSILON,
    branch_per_unit,
    hvdc_active_power,
    hvdc_converter_losses,
    hvdc_dc_voltage,
    is_symmetrical,
    zero_if_nan,
)
from src.ech_export.slack import select_slack_bus
from src.ech_export.transformers import convert_three_windings_transformer, convert_two_windings_transformer
from src.ech_io.ech_writer import EchWriter
from src.ech_model.entities import (
    AcControlMode,
    AcdcVscConverter,
    Area,
    AreaType,
    BankRegulatingMode,
    BranchName,
    BranchStatus,
    CapacitorOrReactorBank,
    ConnectionStatus,
    ConverterState,
    CouplingDevice,
    DcControlMode,
    DcLink,
    DcLinkStatus,
    DcNode,
    DissymmetricalBranch,
    Generator,
    Line,
    Load,
    Node,
    RegulatingMode,
    StaticVarCompensator,
    SwitchStatus,
)
from src.ech_model.errors import InconsistentModelError, UnsupportedError
from src.ech_model.network import GROUND_NODE, TargetNetwork
from src.ech_model.parameters import GeneralParameters, SpecialParameters
from src.grid import model
from src.grid.model import HvdcType, ShuntModel, SourceNetwork, SvcRegulationMode, Terminal
from src.grid.pandapower_import import from_pandapower
from src.grid.topology import ConnectionBus, NetworkTopology
from src.naming.dictionary import IdentifierDictionary, NameType
from src.naming.strategies import NamingStrategy, add_derived_id, create_naming_strategy

logger = logging.getLogger(__name__)

FAKE_AREA = "FA"
DC_AREA = "DC"
FAKE_NODE_NOMINAL_V = 380.0
XNODE_V_PROPERTY = "xnode_v"
XNODE_ANGLE_PROPERTY = "xnode_angle"
OPEN_Q_LIMIT = 9999.0
OPEN_SVC_LIMIT = 9999999.0
MIN_REGULATING_TARGET_V = 0.1
COMPATIBILITY_MIN_P = 1e-4
DC_LINK_R = 1.0
VSC_REACTANCE = 16.0
SKIPPING_NOT_IN_MAIN_COMPONENT = "Skipping %s %s: not in the main connected component"


def dangling_line_bus_id(dangling_line_id: str) -> str:
    return f"{dangling_line_id}_BUS"


def dangling_line_load_id(dangling_line_id: str) -> str:
    return f"{dangling_line_id}_LOAD"


def _parse_property(properties: dict[str, str], key: str) -> float:
    value = properties.get(key)
    return float(value) if value is not None else math.nan


def build_dictionary(
    network: SourceNetwork,
    topology: NetworkTopology,
    fake_nodes: FakeNodeRegistry,
    parallel_indexes: BranchParallelIndexes,
    strategy: NamingStrategy,
    main_component_only: bool = False,
) -> IdentifierDictionary:
    """Fills the identifier dictionary once per element category, in a fixed order."""
    dictionary = IdentifierDictionary()
    for fake_id in fake_nodes.target_ids():
        dictionary.add_if_absent(fake_id, fake_id)

    strategy.fill(
        dictionary,
        NameType.NODE,
        [bus.id for bus in topology.buses()] + [dangling_line_bus_id(dl.id) for dl in network.dangling_lines()],
    )
    strategy.fill(dictionary, NameType.GENERATOR, [g.id for g in network.generators()])
    strategy.fill(
        dictionary,
        NameType.LOAD,
        [load.id for load in network.loads()] + [dangling_line_load_id(dl.id) for dl in network.dangling_lines()],
    )
    strategy.fill(dictionary, NameType.BANK, [shunt.id for shunt in network.shunts()])
    strategy.fill(dictionary, NameType.SVC, [svc.id for svc in network.static_var_compensators()])
    strategy.fill(dictionary, NameType.VSC, [station.id for station in network.vsc_converter_stations()])
    strategy.fill(
        dictionary,
        NameType.THREE_WINDINGS_TRANSFORMER,
        [t.id for t in network.three_windings_transformers()],
    )

    def bus_name(terminal: Terminal) -> str:
        bus = topology.connection_bus(terminal)
        bus_id = bus.id if bus.id is not None else fake_nodes.target_id(terminal.voltage_level_id)
        return dictionary.get_target(bus_id)

    def in_scope(*terminals: Terminal) -> bool:
        return not main_component_only or topology.is_branch_in_main_component(*terminals)

    for dl in network.dangling_lines():
        if in_scope(dl.terminal):
            name = BranchName(
                bus_name(dl.terminal),
                dictionary.get_target(dangling_line_bus_id(dl.id)),
                parallel_indexes.index_of(dl.id),
            )
            dictionary.add_if_absent(dl.id, str(name))
    for switch, bus1, bus2 in topology.switches():
        if main_component_only and not (
            topology.is_in_main_component(bus1.id) and topology.is_in_main_component(bus2.id)
        ):
            continue
        name = BranchName(
            dictionary.get_target(bus1.id),
            dictionary.get_target(bus2.id),
            parallel_indexes.index_of(switch.id),
        )
        dictionary.add_if_absent(switch.id, str(name))
    for branch in [*network.lines(), *network.two_windings_transformers()]:
        if in_scope(branch.terminal1, branch.terminal2):
            name = BranchName(
                bus_name(branch.terminal1), bus_name(branch.terminal2), parallel_indexes.index_of(branch.id)
            )
            dictionary.add_if_absent(branch.id, str(name))
    logger.debug("Dictionary holds %d identifiers", len(dictionary))
    return dictionary


class EchExporter:
    """Converts a ``SourceNetwork`` into a ``TargetNetwork`` and writes it as .ech records."""

    def __init__(
        self,
        network: SourceNetwork,
        config: ExportConfig | None = None,
        naming_strategy: NamingStrategy | None = None,
    ) -> None:
        self.network = network
        self.config = config if config is not None else ExportConfig()
        self.topology = NetworkTopology(network, aggregate=self.config.aggregate_topology)
        self.fake_nodes = FakeNodeRegistry.build(network)
        self.parallel_indexes = BranchParallelIndexes.build(self.topology)
        strategy = naming_strategy if naming_strategy is not None else create_naming_strategy(self.config)
        self.dictionary = build_dictionary(
            network,
            self.topology,
            self.fake_nodes,
            self.parallel_indexes,
            strategy,
            main_component_only=self.config.export_main_component_only,
        )

    def _context(self, general: GeneralParameters) -> ExportContext:
        return ExportContext(
            network=self.network,
            config=self.config,
            topology=self.topology,
            fake_nodes=self.fake_nodes,
            parallel_indexes=self.parallel_indexes,
            dictionary=self.dictionary,
            snref=general.snref,
        )

    def _derived_id(self, source_id: str, category: NameType) -> str:
        if self.dictionary.exists_source(source_id):
            return self.dictionary.get_target(source_id)
        return add_derived_id(self.dictionary, source_id, category)

    def create_network(self, general: GeneralParameters | None = None) -> TargetNetwork:
        general = general if general is not None else GeneralParameters()
        ctx = self._context(general)
        target = TargetNetwork()
        self._create_areas(target)
        self._create_coupling_devices(target)
        self._create_lines(ctx, target)
        self._create_transformers(ctx, target)
        self._create_loads(ctx, target)
        self._create_generators(ctx, target)
        self._create_banks(ctx, target)
        self._create_static_var_compensators(ctx, target)
        self._create_hvdc_lines(ctx, target)
        # nodes last: only fake nodes referenced by the elements above are exported
        self._create_nodes(ctx, target)
        logger.info(
            "Converted network %s: %d nodes, %d lines, %d transformers, %d generators",
            self.network.id,
            len(target.nodes),
            len(target.lines) + len(target.dissymmetrical_branches),
            len(target.two_winding_transformers) + len(target.three_winding_transformers),
            len(target.generators),
        )
        return target

    def special_parameters(self) -> SpecialParameters | None:
        return None if self.config.compatibility_mode else SpecialParameters()

    def write(
        self,
        output: TextIO | str | Path,
        general: GeneralParameters | None = None,
        special: SpecialParameters | None = None,
        name: str = "",
    ) -> TargetNetwork:
        general = general if general is not None else GeneralParameters()
        special = special if special is not None else self.special_parameters()
        target = self.create_network(general)
        writer = EchWriter(target, general, special)
        if isinstance(output, (str, Path)):
            writer.write_file(output, name)
        else:
            writer.write(output, name)
        return target

    def _create_areas(self, target: TargetNetwork) -> None:
        target.add_area(Area(FAKE_AREA, AreaType.AC))
        for country in self.network.countries():
            target.add_area(Area(country, AreaType.AC))
        if self.network.hvdc_lines():
            target.add_area(Area(DC_AREA, AreaType.DC))

    def _create_coupling_devices(self, target: TargetNetwork) -> None:
        for switch, bus1, bus2 in self.topology.switches():
            if bus1.id == bus2.id:
                logger.warning("Skipping switch %s: both ends on bus %s", switch.id, bus1.id)
                continue
            if self.config.export_main_component_only and not (
                self.topology.is_in_main_component(bus1.id) and self.topology.is_in_main_component(bus2.id)
            ):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "switch", switch.id)
                continue
            name = BranchName(
                self.dictionary.get_target(bus1.id),
                self.dictionary.get_target(bus2.id),
                self.parallel_indexes.index_of(switch.id),
            )
            target.add_coupling_device(
                CouplingDevice(name, SwitchStatus.OPEN if switch.open else SwitchStatus.CLOSED)
            )

    def _line(
        self,
        ctx: ExportContext,
        branch_id: str,
        bus1: ConnectionBus,
        bus2: ConnectionBus,
        nominal_v: float,
        r: float,
        x: float,
        g: float,
        b: float,
    ) -> Line:
        pu = branch_per_unit(r, x, g, b, nominal_v, ctx.snref)
        return Line(
            name=ctx.branch_name(branch_id, bus1, bus2),
            status=BranchStatus.from_connections(bus1.connected, bus2.connected),
            r=pu.r,
            x=pu.x,
            g=pu.g,
            b=pu.b,
            rate=ctx.snref,
        )

    def _create_lines(self, ctx: ExportContext, target: TargetNetwork) -> None:
        for line in self.network.lines():
            if ctx.skip_outside_main_component(line.terminal1, line.terminal2):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "line", line.id)
                continue
            bus1 = ctx.connection_bus(line.terminal1)
            bus2 = ctx.connection_bus(line.terminal2)
            if bus1.same_as(bus2):
                logger.warning("Skipping line %s: both ends on bus %s", line.id, bus1.id)
                continue
            nominal_v1 = self.network.nominal_v(line.terminal1)
            if is_symmetrical(line.g1, line.b1, line.g2, line.b2):
                self._create_symmetrical_line(ctx, target, line, bus1, bus2, nominal_v1)
            elif bus1.connected and bus2.connected:
                pu1 = branch_per_unit(line.r, line.x, line.g1, line.b1, nominal_v1, ctx.snref)
                pu2 = branch_per_unit(line.r, line.x, line.g2, line.b2, nominal_v1, ctx.snref)
                target.add_dissymmetrical_branch(
                    DissymmetricalBranch(
                        name=ctx.branch_name(line.id, bus1, bus2),
                        status=BranchStatus.CLOSED_AT_BOTH_SIDES,
                        r1=pu1.r,
                        x1=pu1.x,
                        g1=pu1.g,
                        b1=pu1.b,
                        rate=ctx.snref,
                        r2=pu2.r,
                        x2=pu2.x,
                        g2=pu2.g,
                        b2=pu2.b,
                    )
                )
            else:
                logger.warning(
                    "Line %s is half connected: dissymmetry removed by averaging G1 %s, G2 %s, B1 %s, B2 %s",
                    line.id,
                    line.g1,
                    line.g2,
                    line.b1,
                    line.b2,
                )
                target.add_line(
                    self._line(
                        ctx,
                        line.id,
                        bus1,
                        bus2,
                        nominal_v1,
                        line.r,
                        line.x,
                        (line.g1 + line.g2) / 2,
                        (line.b1 + line.b2) / 2,
                    )
                )

        for dl in self.network.dangling_lines():
            if ctx.skip_outside_main_component(dl.terminal):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "dangling line", dl.id)
                continue
            bus1 = ctx.connection_bus(dl.terminal)
            bus2 = ConnectionBus(True, dangling_line_bus_id(dl.id))
            target.add_line(
                self._line(
                    ctx, dl.id, bus1, bus2, self.network.nominal_v(dl.terminal), dl.r, dl.x, dl.g / 2, dl.b / 2
                )
            )

    def _create_symmetrical_line(
        self,
        ctx: ExportContext,
        target: TargetNetwork,
        line: model.Line,
        bus1: ConnectionBus,
        bus2: ConnectionBus,
        nominal_v1: float,
    ) -> None:
        g = (line.g1 + line.g2) / 2
        bank_bus = None
        diff_b = 0.0
        nominal_v = 0.0
        if line.b1 < line.b2 - B_EPSILON:
            bank_bus, b, diff_b = bus2, line.b1, line.b2 - line.b1
            nominal_v = self.network.nominal_v(line.terminal2)
        elif line.b2 < line.b1 - B_EPSILON:
            bank_bus, b, diff_b = bus1, line.b2, line.b1 - line.b2
            nominal_v = self.network.nominal_v(line.terminal1)
        else:
            b = (line.b1 + line.b2) / 2
        target.add_line(self._line(ctx, line.id, bus1, bus2, nominal_v1, line.r, line.x, g, b))
        if bank_bus is not None:
            name = self._derived_id("FKSH" + line.id, NameType.BANK)
            target.add_bank(
                CapacitorOrReactorBank(
                    name=name,
                    node=ctx.node_name(bank_bus),
                    steps_in_service=1,
                    loss_per_step=0.0,
                    mvar_per_step=nominal_v * nominal_v * diff_b,
                    max_steps=1,
                    regulating_mode=BankRegulatingMode.NOT_REGULATING,
                )
            )

    def _create_transformers(self, ctx: ExportContext, target: TargetNetwork) -> None:
        for twt in self.network.two_windings_transformers():
            if ctx.skip_outside_main_component(twt.terminal1, twt.terminal2):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "transformer", twt.id)
                continue
            converted = convert_two_windings_transformer(ctx, twt)
            if converted is None:
                continue
            transformer, banks = converted
            target.add_two_winding_transformer(transformer)
            for bank in banks:
                target.add_bank(bank)
        for t3wt in self.network.three_windings_transformers():
            if ctx.skip_outside_main_component(*(leg.terminal for leg in t3wt.legs)):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "three windings transformer", t3wt.id)
                continue
            transformer = convert_three_windings_transformer(ctx, t3wt)
            if transformer is not None:
                target.add_three_winding_transformer(transformer)

    def _load(self, ctx: ExportContext, bus: ConnectionBus, load_id: str, p0: float, q0: float) -> Load:
        return Load(
            status=ConnectionStatus.of(bus.connected),
            name=self.dictionary.get_target(load_id),
            node=ctx.node_name(bus),
            p0=p0,
            q0=q0,
        )

    def _create_loads(self, ctx: ExportContext, target: TargetNetwork) -> None:
        for load in self.network.loads():
            if ctx.skip_outside_main_component(load.terminal):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "load", load.id)
                continue
            target.add_load(self._load(ctx, ctx.connection_bus(load.terminal), load.id, load.p0, load.q0))
        for dl in self.network.dangling_lines():
            if ctx.skip_outside_main_component(dl.terminal):
                continue
            bus = ConnectionBus(True, dangling_line_bus_id(dl.id))
            target.add_load(self._load(ctx, bus, dangling_line_load_id(dl.id), dl.p0, dl.q0))

    def _create_generators(self, ctx: ExportContext, target: TargetNetwork) -> None:
        for generator in self.network.generators():
            if ctx.skip_outside_main_component(generator.terminal):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "generator", generator.id)
                continue
            target.add_generator(self._generator(ctx, generator))

    def _generator(self, ctx: ExportContext, generator: model.Generator) -> Generator:
        bus = ctx.connection_bus(generator.terminal)
        qgen = generator.target_q
        inverted = generator.min_q > generator.max_q
        if inverted:
            logger.warning(
                "Inverted min Q %s and max Q %s for generator %s", generator.min_q, generator.max_q, generator.id
            )
            qgen = -generator.terminal.q
        regulator_on = generator.voltage_regulator_on
        if (
            self.config.compatibility_mode
            and generator.target_p < COMPATIBILITY_MIN_P
            and generator.min_p > COMPATIBILITY_MIN_P
        ):
            regulator_on = False
            logger.warning(
                "Generator %s out of bounds (target P %s, min P %s): voltage regulation turned off",
                generator.id,
                generator.target_p,
                generator.min_p,
            )
        open_range = self.config.no_generator_min_max_q or inverted
        qmin = -OPEN_Q_LIMIT if open_range else generator.min_q
        qmax = OPEN_Q_LIMIT if open_range else generator.max_q
        # a unit with inverted limits and a known Q output is taken out of voltage regulation
        forced_pq = inverted and not math.isnan(qgen)
        if forced_pq:
            mode = RegulatingMode.NOT_REGULATING
            target_v = math.nan
        else:
            mode = (
                RegulatingMode.REGULATING
                if regulator_on and generator.target_v >= MIN_REGULATING_TARGET_V
                else RegulatingMode.NOT_REGULATING
            )
            target_v = generator.target_v if regulator_on else math.nan
        q_share = generator.q_percent / 100.0 if generator.q_percent is not None else 1.0
        regulated = ctx.connection_bus(generator.regulated_terminal)
        return Generator(
            name=self.dictionary.get_target(generator.id),
            node=ctx.node_name(bus),
            pmin=generator.min_p,
            pgen=generator.target_p,
            pmax=generator.max_p,
            qmin=qmin,
            qgen=qgen,
            qmax=qmax,
            regulating_mode=mode,
            target_v=target_v,
            regulated_node=ctx.node_name(regulated),
            q_share=q_share,
            status=ConnectionStatus.of(bus.connected),
        )

    def _create_banks(self, ctx: ExportContext, target: TargetNetwork) -> None:
        for shunt in self.network.shunts():
            if ctx.skip_outside_main_component(shunt.terminal):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "shunt", shunt.id)
                continue
            if shunt.model is ShuntModel.NON_LINEAR:
                raise UnsupportedError(f"Non linear shunt compensator {shunt.id} is not supported")
            bus = ctx.connection_bus(shunt.terminal)
            nominal_v = self.network.nominal_v(shunt.terminal)
            target.add_bank(
                CapacitorOrReactorBank(
                    name=self.dictionary.get_target(shunt.id),
                    node=ctx.node_name(bus),
                    steps_in_service=shunt.section_count if bus.connected else 0,
                    loss_per_step=0.0,
                    mvar_per_step=nominal_v * nominal_v * shunt.b_per_section,
                    max_steps=shunt.maximum_section_count,
                    regulating_mode=BankRegulatingMode.NOT_REGULATING,
                )
            )

    def _create_static_var_compensators(self, ctx: ExportContext, target: TargetNetwork) -> None:
        fixed_injection = self.config.svc_as_fixed_injection
        for svc in self.network.static_var_compensators():
            if ctx.skip_outside_main_component(svc.terminal):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "static var compensator", svc.id)
                continue
            bus = ctx.connection_bus(svc.terminal)
            nominal_v = self.network.nominal_v(svc.terminal)
            factor = nominal_v * nominal_v
            if fixed_injection:
                bmin, bmax = -OPEN_SVC_LIMIT, OPEN_SVC_LIMIT
                binit = svc.terminal.q
                export_bus = self.topology.bus_of(svc.terminal)
                if export_bus is not None and abs(export_bus.v) > 0.0:
                    binit *= (nominal_v / export_bus.v) ** 2
            else:
                bmin, bmax = svc.bmin * factor, svc.bmax * factor
                binit = svc.reactive_power_setpoint
            regulating = svc.regulation_mode is SvcRegulationMode.VOLTAGE and not fixed_injection
            target.add_static_var_compensator(
                StaticVarCompensator(
                    name=self.dictionary.get_target(svc.id),
                    status=ConnectionStatus.of(bus.connected),
                    node=ctx.node_name(bus),
                    bmin=bmin,
                    binit=binit,
                    bmax=bmax,
                    regulating_mode=RegulatingMode.REGULATING if regulating else RegulatingMode.NOT_REGULATING,
                    target_v=svc.voltage_setpoint,
                    q_share=1.0,
                )
            )

    def _create_hvdc_lines(self, ctx: ExportContext, target: TargetNetwork) -> None:
        for hvdc_line in self.network.hvdc_lines():
            station1 = self.network.converter_station(hvdc_line.converter_station1_id)
            station2 = self.network.converter_station(hvdc_line.converter_station2_id)
            if self.config.export_main_component_only and not (
                self.topology.is_terminal_in_main_component(station1.terminal)
                and self.topology.is_terminal_in_main_component(station2.terminal)
            ):
                logger.warning(
                    "Skipping HVDC line %s: at least one converter station is not in the main component",
                    hvdc_line.id,
                )
                continue
            if station1.hvdc_type is HvdcType.LCC or station2.hvdc_type is HvdcType.LCC:
                raise UnsupportedError(f"Conversion of LCC HVDC line {hvdc_line.id} is not supported")

            dc_node1 = self._derived_id("DC_" + station1.id, NameType.NODE)
            dc_node2 = self._derived_id("DC_" + station2.id, NameType.NODE)
            dc_voltage = hvdc_dc_voltage(hvdc_line.nominal_v)
            target.add_dc_node(DcNode(DC_AREA, dc_node1, dc_voltage, 1))
            target.add_dc_node(DcNode(DC_AREA, dc_node2, dc_voltage, 1))
            target.add_dc_link(DcLink(dc_node1, dc_node2, "1", DC_LINK_R, DcLinkStatus.ON))

            power_station = _power_controlling_station(hvdc_line, station1, station2)
            for station, dc_node in ((station1, dc_node1), (station2, dc_node2)):
                target.add_vsc_converter(self._vsc_converter(ctx, station, dc_node, hvdc_line, power_station))
            for station in (station1, station2):
                target.add_load(self._converter_loss_load(ctx, hvdc_line, station, station is power_station))

    def _vsc_converter(
        self,
        ctx: ExportContext,
        station: model.VscConverterStation,
        dc_node: str,
        hvdc_line: model.HvdcLine,
        power_station: model.ConverterStation,
    ) -> AcdcVscConverter:
        power_controlling = station is power_station
        bus = ctx.connection_bus(station.terminal)
        if bus.id is None or not self.dictionary.exists_source(bus.id):
            raise InconsistentModelError(f"VSC converter {station.id}: AC node mapping not found")
        ac_node = self.dictionary.get_target(bus.id)
        setpoint = zero_if_nan(hvdc_line.active_power_setpoint)
        reactive = -station.reactive_power_setpoint
        if math.isnan(reactive) or station.voltage_regulator_on:
            reactive = station.terminal.q if not math.isnan(station.terminal.q) else zero_if_nan(reactive)
        export_bus = self.topology.connectable_bus_of(station.terminal)
        if export_bus is None:
            raise InconsistentModelError(f"VSC converter {station.id}: connected bus not found")
        nominal_v = self.network.nominal_v(station.terminal)
        return AcdcVscConverter(
            name=self.dictionary.get_target(station.id),
            dc_node1=dc_node,
            dc_node2=GROUND_NODE,
            ac_node=ac_node,
            state=ConverterState.ON,
            dc_control_mode=DcControlMode.AC_ACTIVE_POWER if power_controlling else DcControlMode.DC_VOLTAGE,
            ac_control_mode=AcControlMode.AC_REACTIVE_POWER,
            rrdc=0.0,
            rxdc=VSC_REACTANCE,
            pac=hvdc_active_power(setpoint, power_station.loss_factor, power_controlling),
            pvd=hvdc_dc_voltage(hvdc_line.nominal_v),
            pva=export_bus.v,
            pre=reactive,
            pco=math.nan,
            q_share=1.0,
            pmin=-hvdc_line.max_p,
            pmax=hvdc_line.max_p,
            qmin=station.min_q,
            qmax=station.max_q,
            vsb0=0.0,
            vsb1=0.0,
            vsb2=0.0,
            mvm=export_bus.v / nominal_v,
            mva=export_bus.angle,
        )

    def _converter_loss_load(
        self,
        ctx: ExportContext,
        hvdc_line: model.HvdcLine,
        station: model.ConverterStation,
        power_controlling: bool,
    ) -> Load:
        losses = hvdc_converter_losses(
            zero_if_nan(hvdc_line.active_power_setpoint),
            station.loss_factor,
            hvdc_line.r,
            hvdc_line.nominal_v,
            power_controlling,
        )
        load_id = "fict_" + station.id
        self._derived_id(load_id, NameType.LOAD)
        return self._load(ctx, ctx.connection_bus(station.terminal), load_id, losses, 0.0)

    def _create_nodes(self, ctx: ExportContext, target: TargetNetwork) -> None:
        for fake_id in self.fake_nodes.referenced_ids():
            voltage_level = self.fake_nodes.voltage_level_of(fake_id)
            nominal_v = voltage_level.nominal_v if voltage_level is not None else FAKE_NODE_NOMINAL_V
            target.add_node(Node(FAKE_AREA, fake_id, nominal_v, 1.0, 0.0, False))

        slack = select_slack_bus(self.topology, self.config.exclude_switch_adjacent_buses)
        logger.debug("Slack bus: %s (%s)", slack.id, slack.voltage_level_id)
        for bus in self.topology.buses():
            if self.config.export_main_component_only and not self.topology.is_in_main_component(bus.id):
                logger.warning(SKIPPING_NOT_IN_MAIN_COMPONENT, "bus", bus.id)
                continue
            target.add_node(
                self._node(self.dictionary.get_target(bus.id), bus.voltage_level_id, bus.v, bus.angle, bus.id == slack.id)
            )
        for dl in self.network.dangling_lines():
            if ctx.skip_outside_main_component(dl.terminal):
                continue
            target.add_node(
                self._node(
                    self.dictionary.get_target(dangling_line_bus_id(dl.id)),
                    dl.terminal.voltage_level_id,
                    _parse_property(dl.properties, XNODE_V_PROPERTY),
                    _parse_property(dl.properties, XNODE_ANGLE_PROPERTY),
                    False,
                )
            )

    def _node(self, name: str, voltage_level_id: str, v: float, angle: float, slack: bool) -> Node:
        voltage_level = self.network.voltage_level(voltage_level_id)
        nominal_v = voltage_level.nominal_v
        return Node(
            area=voltage_level.country or FAKE_AREA,
            name=name,
            vbase=nominal_v,
            vinit=1.0 if math.isnan(v) else v / nominal_v,
            angle=0.0 if math.isnan(angle) else angle,
            slack=slack,
        )


def _power_controlling_station(
    hvdc_line: model.HvdcLine, station1: model.ConverterStation, station2: model.ConverterStation
) -> model.ConverterStation:
    if hvdc_line.converters_mode is model.ConvertersMode.SIDE_1_RECTIFIER_SIDE_2_INVERTER:
        return station1
    return station2


def export_network(
    network: SourceNetwork,
    output: TextIO | str | Path,
    config: ExportConfig | None = None,
    general: GeneralParameters | None = None,
    name: str = "",
) -> EchExporter:
    exporter = EchExporter(network, config)
    exporter.write(output, general, name=name)
    return exporter


def main() -> None:
    parser = argparse.ArgumentParser(description="Export a pandapower network to .ech records.")
    parser.add_argument("network", type=Path, help="pandapower JSON network file.")
    parser.add_argument("output", type=Path, help="Destination .ech file.")
    parser.add_argument("--config", type=Path, default=None, help="YAML file with an ech_export section.")
    parser.add_argument("--snref", type=float, default=100.0, help="Base power [MVA].")
    parser.add_argument("--dictionary", type=Path, default=None, help="Write the identifier mapping to this file.")
    parser.add_argument("--verbose", action="store_true", help="Enable INFO logging.")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.INFO)

    net = pp.from_json(str(args.network))
    network = from_pandapower(net, network_id=args.network.stem)
    config = load_export_config(args.config)
    exporter = export_network(
        network, args.output, config, GeneralParameters(snref=args.snref), name=args.network.stem
    )
    if args.dictionary is not None:
        exporter.dictionary.dump(args.dictionary)
    print(f"Exported {network.id} to {args.output}")


if __name__ == "__main__":
    main()
