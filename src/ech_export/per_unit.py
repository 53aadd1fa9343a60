from __future__ import annotations

import math
from dataclasses import dataclass

G_EPSILON = 1e-5
B_EPSILON = 1e-6
TRANSFORMER_RATE = 100.0
HVDC_CABLE_REFERENCE_R = 0.25


@dataclass(frozen=True)
class BranchPerUnit:
    r: float
    x: float
    g: float
    b: float


@dataclass(frozen=True)
class TransformerLosses:
    pcu: float
    pfer: float
    cmagn: float


def branch_per_unit(r: float, x: float, g: float, b: float, nominal_v: float, snref: float) -> BranchPerUnit:
    vnom2 = nominal_v**2
    return BranchPerUnit(
        r=r * snref / vnom2,
        x=x * snref / vnom2,
        g=g / snref * vnom2,
        b=b / snref * vnom2,
    )


def is_symmetrical(g1: float, b1: float, g2: float, b2: float) -> bool:
    return abs(g1 - g2) < G_EPSILON and (
        abs(b1 - b2) < B_EPSILON or (abs(g1) < G_EPSILON and abs(g2) < G_EPSILON)
    )


def tap_step_value(value: float, ratio_step_percent: float, phase_step_percent: float) -> float:
    return value * (1 + ratio_step_percent / 100) * (1 + phase_step_percent / 100)


def transformer_losses(
    r: float, g: float, b: float, nominal_v2: float, snref: float, rate: float = TRANSFORMER_RATE
) -> TransformerLosses:
    """Copper and iron losses [% of rate] and magnetizing current of a two-winding transformer."""
    vnom2 = nominal_v2**2
    rpu2 = r * snref / vnom2
    gpu2 = max(0.0, g) / snref * vnom2
    bpu2 = min(0.0, b) / snref * vnom2
    pcu = rpu2 * rate * 100.0 / snref
    pfer = 10000.0 * (gpu2 / rate) * (snref / 100.0)
    cmagn = 10000.0 * (math.hypot(gpu2, bpu2) / rate) * (snref / 100.0)
    return TransformerLosses(pcu=pcu, pfer=pfer, cmagn=cmagn)


def leakage_impedance(r_pu: float, x_pu: float, rate: float, snref: float) -> float:
    if x_pu < 0:
        return x_pu * 100 * rate / snref
    return math.hypot(r_pu, x_pu) * 100 * rate / snref


def winding_leakage(r_pu: float, x_pu: float) -> float:
    if x_pu < 0:
        return x_pu * 100
    return 100 * math.hypot(r_pu, x_pu)


def pairwise(value1: float, value2: float, s1: float, s2: float) -> float:
    """Combines two star-leg quantities [% of S_i] into one winding-pair quantity."""
    return min(s1, s2) * (value1 / s1 + value2 / s2)


def hvdc_dc_voltage(nominal_v: float) -> float:
    # cable-to-ground nominal voltage to cable-to-cable voltage
    return nominal_v * 2.0


def hvdc_converter_losses(
    active_setpoint: float,
    loss_factor: float,
    cable_r: float,
    nominal_v: float,
    power_controlling: bool,
) -> float:
    losses = abs(active_setpoint * loss_factor / 100.0)
    if power_controlling:
        losses += (cable_r - HVDC_CABLE_REFERENCE_R) * (active_setpoint / nominal_v) ** 2
    return losses


def hvdc_active_power(active_setpoint: float, power_station_loss_factor: float, power_controlling: bool) -> float:
    pac = active_setpoint - abs(active_setpoint * power_station_loss_factor / 100.0)
    return pac if power_controlling else -pac


def zero_if_nan(value: float) -> float:
    return 0.0 if math.isnan(value) else value
