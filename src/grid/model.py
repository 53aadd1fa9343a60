from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator


@dataclass(frozen=True)
class Terminal:
    voltage_level_id: str
    bus_id: str | None
    connected: bool = True
    p: float = math.nan
    q: float = math.nan


@dataclass(frozen=True)
class VoltageLevel:
    id: str
    nominal_v: float
    country: str | None = None


@dataclass(frozen=True)
class Bus:
    id: str
    voltage_level_id: str
    v: float = math.nan
    angle: float = math.nan


@dataclass(frozen=True)
class Switch:
    id: str
    voltage_level_id: str
    bus1_id: str
    bus2_id: str
    open: bool = False


@dataclass(frozen=True)
class Line:
    id: str
    terminal1: Terminal
    terminal2: Terminal
    r: float
    x: float
    g1: float = 0.0
    b1: float = 0.0
    g2: float = 0.0
    b2: float = 0.0


@dataclass(frozen=True)
class DanglingLine:
    id: str
    terminal: Terminal
    r: float
    x: float
    g: float = 0.0
    b: float = 0.0
    p0: float = 0.0
    q0: float = 0.0
    properties: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TapStep:
    rho: float = 1.0
    alpha: float = 0.0
    r: float = 0.0
    x: float = 0.0
    g: float = 0.0
    b: float = 0.0


@dataclass(frozen=True)
class _TapChanger:
    low_tap: int
    tap_position: int
    steps: tuple[TapStep, ...]
    regulating: bool = False
    regulation_terminal: Terminal | None = None

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError("Tap changer requires at least one step")
        if not self.low_tap <= self.tap_position <= self.high_tap:
            raise ValueError(
                f"Tap position {self.tap_position} outside [{self.low_tap}, {self.high_tap}]"
            )

    @property
    def high_tap(self) -> int:
        return self.low_tap + len(self.steps) - 1

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def step(self, position: int) -> TapStep:
        return self.steps[position - self.low_tap]

    @property
    def current_step(self) -> TapStep:
        return self.step(self.tap_position)


@dataclass(frozen=True)
class RatioTapChanger(_TapChanger):
    target_v: float = math.nan


class PhaseRegulationMode(Enum):
    CURRENT_LIMITER = "current_limiter"
    ACTIVE_POWER_CONTROL = "active_power_control"
    FIXED_TAP = "fixed_tap"


@dataclass(frozen=True)
class PhaseTapChanger(_TapChanger):
    regulation_mode: PhaseRegulationMode = PhaseRegulationMode.FIXED_TAP


@dataclass(frozen=True)
class TwoWindingsTransformer:
    id: str
    terminal1: Terminal
    terminal2: Terminal
    r: float
    x: float
    g: float
    b: float
    rated_u1: float
    rated_u2: float
    ratio_tap_changer: RatioTapChanger | None = None
    phase_tap_changer: PhaseTapChanger | None = None


@dataclass(frozen=True)
class TransformerLeg:
    terminal: Terminal
    r: float
    x: float
    g: float
    b: float
    rated_u: float
    ratio_tap_changer: RatioTapChanger | None = None
    phase_tap_changer: PhaseTapChanger | None = None


@dataclass(frozen=True)
class ThreeWindingsTransformer:
    id: str
    leg1: TransformerLeg
    leg2: TransformerLeg
    leg3: TransformerLeg
    rated_u0: float

    @property
    def legs(self) -> tuple[TransformerLeg, TransformerLeg, TransformerLeg]:
        return (self.leg1, self.leg2, self.leg3)


@dataclass(frozen=True)
class Generator:
    id: str
    terminal: Terminal
    target_p: float
    target_q: float
    min_p: float
    max_p: float
    min_q: float
    max_q: float
    voltage_regulator_on: bool
    target_v: float = math.nan
    regulating_terminal: Terminal | None = None
    q_percent: float | None = None

    @property
    def regulated_terminal(self) -> Terminal:
        return self.regulating_terminal if self.regulating_terminal is not None else self.terminal


@dataclass(frozen=True)
class Load:
    id: str
    terminal: Terminal
    p0: float
    q0: float


class ShuntModel(Enum):
    LINEAR = "linear"
    NON_LINEAR = "non_linear"


@dataclass(frozen=True)
class ShuntCompensator:
    id: str
    terminal: Terminal
    b_per_section: float
    section_count: int
    maximum_section_count: int
    model: ShuntModel = ShuntModel.LINEAR


class SvcRegulationMode(Enum):
    VOLTAGE = "voltage"
    REACTIVE_POWER = "reactive_power"
    OFF = "off"


@dataclass(frozen=True)
class StaticVarCompensator:
    id: str
    terminal: Terminal
    bmin: float
    bmax: float
    voltage_setpoint: float
    reactive_power_setpoint: float
    regulation_mode: SvcRegulationMode = SvcRegulationMode.VOLTAGE


class HvdcType(Enum):
    VSC = "vsc"
    LCC = "lcc"


@dataclass(frozen=True)
class VscConverterStation:
    id: str
    terminal: Terminal
    loss_factor: float
    voltage_regulator_on: bool
    voltage_setpoint: float
    reactive_power_setpoint: float
    min_q: float
    max_q: float
    hvdc_type: HvdcType = HvdcType.VSC


@dataclass(frozen=True)
class LccConverterStation:
    id: str
    terminal: Terminal
    loss_factor: float
    power_factor: float
    hvdc_type: HvdcType = HvdcType.LCC


class ConvertersMode(Enum):
    SIDE_1_RECTIFIER_SIDE_2_INVERTER = "side_1_rectifier_side_2_inverter"
    SIDE_1_INVERTER_SIDE_2_RECTIFIER = "side_1_inverter_side_2_rectifier"


@dataclass(frozen=True)
class HvdcLine:
    id: str
    converter_station1_id: str
    converter_station2_id: str
    r: float
    nominal_v: float
    active_power_setpoint: float
    max_p: float
    converters_mode: ConvertersMode = ConvertersMode.SIDE_1_RECTIFIER_SIDE_2_INVERTER


ConverterStation = VscConverterStation | LccConverterStation


class SourceNetwork:
    """Read-only view of a power network, queried by id with stable ordering."""

    def __init__(self, network_id: str) -> None:
        self.id = network_id
        self._voltage_levels: dict[str, VoltageLevel] = {}
        self._buses: dict[str, Bus] = {}
        self._switches: dict[str, Switch] = {}
        self._lines: dict[str, Line] = {}
        self._dangling_lines: dict[str, DanglingLine] = {}
        self._two_windings_transformers: dict[str, TwoWindingsTransformer] = {}
        self._three_windings_transformers: dict[str, ThreeWindingsTransformer] = {}
        self._generators: dict[str, Generator] = {}
        self._loads: dict[str, Load] = {}
        self._shunts: dict[str, ShuntCompensator] = {}
        self._static_var_compensators: dict[str, StaticVarCompensator] = {}
        self._converter_stations: dict[str, ConverterStation] = {}
        self._hvdc_lines: dict[str, HvdcLine] = {}
        # ids are unique across every element table
        self._ids: set[str] = set()

    def contains(self, element_id: str) -> bool:
        return element_id in self._ids

    def _register(self, table: dict, element):
        if element.id in self._ids:
            raise ValueError(f"Duplicate id '{element.id}' in network {self.id}")
        for terminal in _terminals_of(element):
            if terminal.voltage_level_id not in self._voltage_levels:
                raise ValueError(f"Unknown voltage level '{terminal.voltage_level_id}' for {element.id}")
            if terminal.bus_id is not None and terminal.bus_id not in self._buses:
                raise ValueError(f"Unknown bus '{terminal.bus_id}' for {element.id}")
        table[element.id] = element
        self._ids.add(element.id)
        return element

    def add_voltage_level(self, voltage_level: VoltageLevel) -> VoltageLevel:
        return self._register(self._voltage_levels, voltage_level)

    def add_bus(self, bus: Bus) -> Bus:
        if bus.voltage_level_id not in self._voltage_levels:
            raise ValueError(f"Unknown voltage level '{bus.voltage_level_id}' for bus {bus.id}")
        return self._register(self._buses, bus)

    def add_switch(self, switch: Switch) -> Switch:
        for bus_id in (switch.bus1_id, switch.bus2_id):
            if self._buses.get(bus_id) is None or self._buses[bus_id].voltage_level_id != switch.voltage_level_id:
                raise ValueError(f"Switch {switch.id} must join buses of voltage level {switch.voltage_level_id}")
        return self._register(self._switches, switch)

    def add_line(self, line: Line) -> Line:
        return self._register(self._lines, line)

    def add_dangling_line(self, dangling_line: DanglingLine) -> DanglingLine:
        return self._register(self._dangling_lines, dangling_line)

    def add_two_windings_transformer(self, transformer: TwoWindingsTransformer) -> TwoWindingsTransformer:
        return self._register(self._two_windings_transformers, transformer)

    def add_three_windings_transformer(self, transformer: ThreeWindingsTransformer) -> ThreeWindingsTransformer:
        return self._register(self._three_windings_transformers, transformer)

    def add_generator(self, generator: Generator) -> Generator:
        return self._register(self._generators, generator)

    def add_load(self, load: Load) -> Load:
        return self._register(self._loads, load)

    def add_shunt(self, shunt: ShuntCompensator) -> ShuntCompensator:
        return self._register(self._shunts, shunt)

    def add_static_var_compensator(self, svc: StaticVarCompensator) -> StaticVarCompensator:
        return self._register(self._static_var_compensators, svc)

    def add_converter_station(self, station: ConverterStation) -> ConverterStation:
        return self._register(self._converter_stations, station)

    def add_hvdc_line(self, hvdc_line: HvdcLine) -> HvdcLine:
        for station_id in (hvdc_line.converter_station1_id, hvdc_line.converter_station2_id):
            if station_id not in self._converter_stations:
                raise ValueError(f"Unknown converter station '{station_id}' for {hvdc_line.id}")
        return self._register(self._hvdc_lines, hvdc_line)

    def voltage_level(self, voltage_level_id: str) -> VoltageLevel:
        return self._voltage_levels[voltage_level_id]

    def bus(self, bus_id: str) -> Bus:
        return self._buses[bus_id]

    def converter_station(self, station_id: str) -> ConverterStation:
        return self._converter_stations[station_id]

    def voltage_levels(self) -> list[VoltageLevel]:
        return _sorted(self._voltage_levels)

    def buses(self) -> list[Bus]:
        return _sorted(self._buses)

    def switches(self) -> list[Switch]:
        return _sorted(self._switches)

    def lines(self) -> list[Line]:
        return _sorted(self._lines)

    def dangling_lines(self) -> list[DanglingLine]:
        return _sorted(self._dangling_lines)

    def two_windings_transformers(self) -> list[TwoWindingsTransformer]:
        return _sorted(self._two_windings_transformers)

    def three_windings_transformers(self) -> list[ThreeWindingsTransformer]:
        return _sorted(self._three_windings_transformers)

    def generators(self) -> list[Generator]:
        return _sorted(self._generators)

    def loads(self) -> list[Load]:
        return _sorted(self._loads)

    def shunts(self) -> list[ShuntCompensator]:
        return _sorted(self._shunts)

    def static_var_compensators(self) -> list[StaticVarCompensator]:
        return _sorted(self._static_var_compensators)

    def converter_stations(self) -> list[ConverterStation]:
        return _sorted(self._converter_stations)

    def vsc_converter_stations(self) -> list[VscConverterStation]:
        return [s for s in self.converter_stations() if s.hvdc_type is HvdcType.VSC]

    def hvdc_lines(self) -> list[HvdcLine]:
        return _sorted(self._hvdc_lines)

    def countries(self) -> list[str]:
        return sorted({vl.country for vl in self._voltage_levels.values() if vl.country})

    def nominal_v(self, terminal: Terminal) -> float:
        return self._voltage_levels[terminal.voltage_level_id].nominal_v

    def terminals(self) -> Iterator[Terminal]:
        for table in (
            self._lines,
            self._dangling_lines,
            self._two_windings_transformers,
            self._three_windings_transformers,
            self._generators,
            self._loads,
            self._shunts,
            self._static_var_compensators,
            self._converter_stations,
        ):
            for element in table.values():
                yield from _terminals_of(element)


def _sorted(table: dict) -> list:
    return [table[key] for key in sorted(table)]


def _terminals_of(element) -> Iterable[Terminal]:
    if isinstance(element, (Line, TwoWindingsTransformer)):
        return (element.terminal1, element.terminal2)
    if isinstance(element, ThreeWindingsTransformer):
        return tuple(leg.terminal for leg in element.legs)
    terminal = getattr(element, "terminal", None)
    return (terminal,) if terminal is not None else ()
