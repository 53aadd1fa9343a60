from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum


class AreaType(Enum):
    AC = "AC"
    DC = "DC"


class BranchStatus(Enum):
    CLOSED_AT_BOTH_SIDES = " "
    OPEN_AT_BOTH_SIDES = "-"
    OPEN_AT_RECEIVING_SIDE = "<"
    OPEN_AT_SENDING_SIDE = ">"

    @classmethod
    def from_connections(cls, connected1: bool, connected2: bool) -> "BranchStatus":
        if connected1 and connected2:
            return cls.CLOSED_AT_BOTH_SIDES
        if not connected1 and not connected2:
            return cls.OPEN_AT_BOTH_SIDES
        return cls.OPEN_AT_RECEIVING_SIDE if connected1 else cls.OPEN_AT_SENDING_SIDE


class ConnectionStatus(Enum):
    CONNECTED = "Y"
    NOT_CONNECTED = "N"

    @classmethod
    def of(cls, connected: bool) -> "ConnectionStatus":
        return cls.CONNECTED if connected else cls.NOT_CONNECTED


class SwitchStatus(Enum):
    OPEN = "O"
    CLOSED = "C"


class RegulatingMode(Enum):
    NOT_REGULATING = "N"
    REGULATING = "V"


class TransformerRegulatingMode(Enum):
    NOT_REGULATING = "N"
    VOLTAGE = "V"
    ACTIVE_FLUX_SIDE_1 = "1"
    ACTIVE_FLUX_SIDE_2 = "2"


class ThreeWindingsStatus(Enum):
    CLOSED_AT_ALL_SIDES = " "


class DcLinkStatus(Enum):
    ON = " "
    OFF = "S"


class ConverterState(Enum):
    ON = " "
    OFF = "S"


class DcControlMode(Enum):
    AC_ACTIVE_POWER = "P"
    DC_VOLTAGE = "V"


class AcControlMode(Enum):
    AC_VOLTAGE = "V"
    AC_REACTIVE_POWER = "Q"
    AC_POWER_FACTOR = "A"


@dataclass(frozen=True)
class BranchName:
    node1: str
    node2: str
    parallel_index: str = "1"

    def __str__(self) -> str:
        return f"{self.node1}-{self.node2}-{self.parallel_index}"


@dataclass
class Area:
    name: str
    type: AreaType = AreaType.AC


@dataclass
class Node:
    area: str
    name: str
    vbase: float
    vinit: float
    angle: float
    slack: bool = False


@dataclass
class Line:
    name: BranchName
    status: BranchStatus
    r: float
    x: float
    g: float
    b: float
    rate: float


@dataclass
class DissymmetricalBranch:
    name: BranchName
    status: BranchStatus
    r1: float
    x1: float
    g1: float
    b1: float
    rate: float
    r2: float
    x2: float
    g2: float
    b2: float


@dataclass
class CouplingDevice:
    name: BranchName
    status: SwitchStatus


@dataclass
class TransformerTap:
    index: int
    phase: float
    uno1: float
    uno2: float
    ucc: float


@dataclass
class DetailedTwoWindingTransformer:
    name: BranchName
    status: BranchStatus
    cmagn: float
    rate: float
    pcu: float
    pfer: float
    esat: float
    nominal_tap: int
    initial_tap: int
    regulated_node: str | None
    target_v: float
    regulating_mode: TransformerRegulatingMode
    pregmin: float = math.nan
    pregmax: float = math.nan
    taps: list[TransformerTap] = field(default_factory=list)


@dataclass
class ThreeWindingTap:
    index: int
    uno1: float
    uno2: float
    uno3: float
    ucc12: float
    ucc13: float
    ucc23: float
    phase1: float = 0.0
    phase2: float = 0.0
    phase3: float = 0.0


@dataclass
class ThreeWindingTransformer:
    name: str
    node1: str
    node2: str
    node3: str
    status: ThreeWindingsStatus
    cmagn: float
    rate1: float
    rate2: float
    rate3: float
    pcu12: float
    pcu13: float
    pcu23: float
    pfer: float
    esat: float
    nominal_tap: int
    initial_tap: int
    regulated_node: str | None
    target_v: float
    regulating_mode: TransformerRegulatingMode
    taps: list[ThreeWindingTap] = field(default_factory=list)


@dataclass
class Generator:
    name: str
    node: str
    pmin: float
    pgen: float
    pmax: float
    qmin: float
    qgen: float
    qmax: float
    regulating_mode: RegulatingMode
    target_v: float
    regulated_node: str
    q_share: float
    status: ConnectionStatus


@dataclass
class Load:
    status: ConnectionStatus
    name: str
    node: str
    p0: float
    q0: float
    pa: float = 0.0
    pb: float = 0.0
    qa: float = 0.0
    qb: float = 0.0


class BankRegulatingMode(Enum):
    NOT_REGULATING = "N"
    REGULATING = "Y"


@dataclass
class CapacitorOrReactorBank:
    name: str
    node: str
    steps_in_service: int
    loss_per_step: float
    mvar_per_step: float
    max_steps: int
    regulating_mode: BankRegulatingMode = BankRegulatingMode.NOT_REGULATING


@dataclass
class StaticVarCompensator:
    name: str
    status: ConnectionStatus
    node: str
    bmin: float
    binit: float
    bmax: float
    regulating_mode: RegulatingMode
    target_v: float
    q_share: float


@dataclass
class DcNode:
    area: str
    name: str
    vbase: float
    status: int = 1


@dataclass
class DcLink:
    node1: str
    node2: str
    parallel_index: str
    r: float
    status: DcLinkStatus = DcLinkStatus.ON

    @property
    def key(self) -> str:
        return f"{self.node1}-{self.node2}-{self.parallel_index}"


@dataclass
class AcdcVscConverter:
    name: str
    dc_node1: str
    dc_node2: str
    ac_node: str
    state: ConverterState
    dc_control_mode: DcControlMode
    ac_control_mode: AcControlMode
    rrdc: float
    rxdc: float
    pac: float
    pvd: float
    pva: float
    pre: float
    pco: float
    q_share: float
    pmin: float
    pmax: float
    qmin: float
    qmax: float
    vsb0: float
    vsb1: float
    vsb2: float
    mvm: float
    mva: float
