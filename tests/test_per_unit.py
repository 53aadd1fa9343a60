from __future__ import annotations

import math

import pytest

from src.ech_export.per_unit import (
    branch_per_unit,
    hvdc_active_power,
    hvdc_converter_losses,
    hvdc_dc_voltage,
    is_symmetrical,
    leakage_impedance,
    pairwise,
    tap_step_value,
    transformer_losses,
    winding_leakage,
    zero_if_nan,
)


def test_branch_per_unit_on_380kv_base() -> None:
    pu = branch_per_unit(r=3.0, x=33.0, g=0.0, b=193e-6, nominal_v=380.0, snref=100.0)

    assert pu.r == pytest.approx(3.0 * 100 / 380**2)
    assert pu.x == pytest.approx(33.0 * 100 / 380**2)
    assert pu.g == 0.0
    assert pu.b == pytest.approx(193e-6 / 100 * 380**2)


def test_symmetry_uses_tolerances() -> None:
    assert is_symmetrical(0.0, 1e-4, 0.0, 1e-4 + 5e-7)
    assert not is_symmetrical(0.0, 1e-4, 2e-5, 1e-4)
    # b may differ when both conductances are negligible
    assert is_symmetrical(0.0, 1e-4, 0.0, 3e-4)
    assert not is_symmetrical(1e-3, 1e-4, 1e-3, 3e-4)


def test_tap_step_value_applies_both_percentages() -> None:
    assert tap_step_value(2.0, 10.0, 0.0) == pytest.approx(2.2)
    assert tap_step_value(2.0, 10.0, -50.0) == pytest.approx(1.1)


def test_transformer_losses() -> None:
    losses = transformer_losses(r=0.0, g=1e-6, b=-2e-6, nominal_v2=400.0, snref=100.0)

    assert losses.pcu == 0.0
    assert losses.pfer == pytest.approx(0.16)
    assert losses.cmagn == pytest.approx(0.16 * math.sqrt(5))


def test_transformer_losses_ignore_negative_g_and_positive_b() -> None:
    losses = transformer_losses(r=1.6, g=-1e-6, b=2e-6, nominal_v2=400.0, snref=100.0)

    assert losses.pcu == pytest.approx(1.6 * 100 / 400**2 * 100 * 100 / 100)
    assert losses.pfer == 0.0
    assert losses.cmagn == 0.0


def test_leakage_impedance_keeps_sign_of_negative_reactance() -> None:
    assert leakage_impedance(0.03, 0.04, 100.0, 100.0) == pytest.approx(5.0)
    assert leakage_impedance(0.03, -0.04, 100.0, 100.0) == pytest.approx(-4.0)
    assert winding_leakage(0.03, 0.04) == pytest.approx(5.0)
    assert winding_leakage(0.03, -0.04) == pytest.approx(-4.0)


def test_pairwise_uses_smallest_rating() -> None:
    assert pairwise(10.0, 20.0, 100.0, 50.0) == pytest.approx(50.0 * (0.1 + 0.4))


def test_hvdc_values() -> None:
    assert hvdc_dc_voltage(400.0) == 800.0
    assert hvdc_converter_losses(280.0, 1.1, 1.0, 400.0, power_controlling=True) == pytest.approx(
        3.08 + 0.75 * 0.49
    )
    assert hvdc_converter_losses(280.0, 1.1, 1.0, 400.0, power_controlling=False) == pytest.approx(3.08)
    assert hvdc_active_power(280.0, 1.1, power_controlling=True) == pytest.approx(276.92)
    assert hvdc_active_power(280.0, 1.1, power_controlling=False) == pytest.approx(-276.92)


def test_zero_if_nan() -> None:
    assert zero_if_nan(math.nan) == 0.0
    assert zero_if_nan(1.5) == 1.5
