from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class StartMode(Enum):
    FLAT_START = "F"
    WARM_START = "W"


@dataclass(frozen=True)
class GeneralParameters:
    edit_date: date = field(default_factory=date.today)
    snref: float = 100.0
    max_iterations: int = 20
    tolerance: float = 0.005
    start_mode: StartMode = StartMode.FLAT_START
    transformer_voltage_control: bool = False
    svc_voltage_control: bool = True

    def __post_init__(self) -> None:
        if self.snref <= 0:
            raise ValueError("snref must be positive")
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")


@dataclass(frozen=True)
class SpecialParameters:
    # minimum branch impedance [p.u.] and tap/voltage tolerances of the load flow
    min_branch_impedance: float = 1e-4
    tap_voltage_tolerance: float = 0.1
    max_voltage_deviation: float = 0.05
