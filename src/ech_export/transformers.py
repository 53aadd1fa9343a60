from __future__ import annotations

import logging
import math

from src.ech_export.context import ExportContext
from src.ech_export.per_unit import (
    B_EPSILON,
    G_EPSILON,
    TRANSFORMER_RATE,
    leakage_impedance,
    pairwise,
    tap_step_value,
    transformer_losses,
    winding_leakage,
)
from src.ech_model.entities import (
    BankRegulatingMode,
    BranchStatus,
    CapacitorOrReactorBank,
    DetailedTwoWindingTransformer,
    ThreeWindingsStatus,
    ThreeWindingTap,
    ThreeWindingTransformer,
    TransformerRegulatingMode,
    TransformerTap,
)
from src.ech_model.errors import InconsistentModelError, RenameExhaustedError
from src.grid.model import (
    PhaseRegulationMode,
    PhaseTapChanger,
    RatioTapChanger,
    TapStep,
    ThreeWindingsTransformer,
    TwoWindingsTransformer,
)

logger = logging.getLogger(__name__)


def _uses_ratio_tap_changer(twt: TwoWindingsTransformer) -> bool | None:
    rtc = twt.ratio_tap_changer
    ptc = twt.phase_tap_changer
    if rtc is None and ptc is None:
        return None
    if ptc is None:
        return True
    if rtc is None:
        return False
    use_ratio = not (ptc.regulating and not rtc.regulating)
    logger.warning(
        "Both ratio and phase tap changers exist on transformer %s, only the %s tap changer is kept",
        twt.id,
        "ratio" if use_ratio else "phase",
    )
    return use_ratio


def _steps(
    twt: TwoWindingsTransformer, use_ratio: bool | None, position: int | None
) -> tuple[TapStep | None, TapStep | None]:
    rtc = twt.ratio_tap_changer
    ptc = twt.phase_tap_changer
    rtc_step = None
    ptc_step = None
    if rtc is not None:
        rtc_step = rtc.step(position) if use_ratio and position is not None else rtc.current_step
    if ptc is not None:
        ptc_step = ptc.step(position) if use_ratio is False and position is not None else ptc.current_step
    return rtc_step, ptc_step


def _rho(twt: TwoWindingsTransformer, rtc_step: TapStep | None, ptc_step: TapStep | None) -> float:
    rho = twt.rated_u2 / twt.rated_u1
    if rtc_step is not None:
        rho *= rtc_step.rho
    if ptc_step is not None:
        rho *= ptc_step.rho
    return rho


def _adjusted(value: float, attribute: str, rtc_step: TapStep | None, ptc_step: TapStep | None) -> float:
    return tap_step_value(
        value,
        getattr(rtc_step, attribute) if rtc_step is not None else 0.0,
        getattr(ptc_step, attribute) if ptc_step is not None else 0.0,
    )


def _tap(index: int, rho: float, r: float, x: float, phase: float, nominal_v2: float, snref: float) -> TransformerTap:
    zb2 = nominal_v2**2 / snref
    ucc = leakage_impedance(r / zb2, x / zb2, TRANSFORMER_RATE, snref)
    return TransformerTap(index=index, phase=phase, uno1=nominal_v2 / rho, uno2=nominal_v2, ucc=ucc)


def _additional_bank(
    ctx: ExportContext, twt: TwoWindingsTransformer, node: str, mvar: float, loss: float
) -> CapacitorOrReactorBank | None:
    if abs(loss) <= G_EPSILON and abs(mvar) <= B_EPSILON:
        return None
    padded = node.ljust(8)
    prefix = padded[:4] + padded[6] + "C"
    name = prefix + "00"
    counter = 1
    while name in ctx.additional_bank_names or ctx.dictionary.exists_target(name):
        suffix = "%02d" % counter
        counter += 1
        if len(suffix) > 2:
            raise RenameExhaustedError(f"Renaming error {node} -> {name}")
        name = prefix + suffix
    ctx.additional_bank_names.add(name)
    logger.info(
        "Additional bank %s at node %s for transformer %s (B=%s, G=%s): %s Mvar, %s kW",
        name,
        node,
        twt.id,
        twt.b,
        twt.g,
        mvar,
        loss,
    )
    return CapacitorOrReactorBank(
        name=name,
        node=node,
        steps_in_service=1,
        loss_per_step=loss,
        mvar_per_step=mvar,
        max_steps=1,
        regulating_mode=BankRegulatingMode.NOT_REGULATING,
    )


def convert_two_windings_transformer(
    ctx: ExportContext, twt: TwoWindingsTransformer
) -> tuple[DetailedTwoWindingTransformer, list[CapacitorOrReactorBank]] | None:
    bus1 = ctx.connection_bus(twt.terminal1)
    bus2 = ctx.connection_bus(twt.terminal2)
    if bus1.same_as(bus2):
        logger.warning("Skipping transformer %s: both sides on bus %s", twt.id, bus1.id)
        return None

    snref = ctx.snref
    compatibility = ctx.config.compatibility_mode
    divider = 2.0 if compatibility else 1.0
    nominal_v2 = ctx.network.nominal_v(twt.terminal2)

    use_ratio = _uses_ratio_tap_changer(twt)
    rtc_now, ptc_now = _steps(twt, use_ratio, None)
    losses = transformer_losses(
        _adjusted(twt.r, "r", rtc_now, ptc_now),
        _adjusted(twt.g / divider, "g", rtc_now, ptc_now),
        _adjusted(twt.b / divider, "b", rtc_now, ptc_now),
        nominal_v2,
        snref,
    )

    regulating_mode = TransformerRegulatingMode.NOT_REGULATING
    regulated_node = None
    target_v = math.nan
    nominal_tap = 1
    initial_tap = 1
    taps: list[TransformerTap] = []

    changer: RatioTapChanger | PhaseTapChanger | None = None
    if use_ratio:
        changer = twt.ratio_tap_changer
        if changer.regulating and changer.regulation_terminal is not None:
            regulated = ctx.connection_bus(changer.regulation_terminal, use_fake_nodes=False)
            if regulated.id is not None:
                regulating_mode = TransformerRegulatingMode.VOLTAGE
                regulated_node = ctx.node_name(regulated)
        target_v = changer.target_v
    elif use_ratio is False:
        changer = twt.phase_tap_changer
        if changer.regulation_mode is PhaseRegulationMode.CURRENT_LIMITER and changer.regulating:
            regulated_bus = (
                ctx.topology.bus_of(changer.regulation_terminal)
                if changer.regulation_terminal is not None
                else None
            )
            regulated_id = regulated_bus.id if regulated_bus is not None else None
            if regulated_id is not None and regulated_id == bus1.id:
                regulating_mode = TransformerRegulatingMode.ACTIVE_FLUX_SIDE_1
            elif regulated_id is not None and regulated_id == bus2.id:
                regulating_mode = TransformerRegulatingMode.ACTIVE_FLUX_SIDE_2
            else:
                raise InconsistentModelError(f"Phase transformer {twt.id} has an unknown regulated node")

    if changer is not None:
        initial_tap = changer.tap_position - changer.low_tap + 1
        nominal_tap = changer.step_count // 2 + 1
        for position in range(changer.low_tap, changer.high_tap + 1):
            rtc_step, ptc_step = _steps(twt, use_ratio, position)
            phase = ptc_step.alpha if use_ratio is False else 0.0
            taps.append(
                _tap(
                    position - changer.low_tap + 1,
                    _rho(twt, rtc_step, ptc_step),
                    _adjusted(twt.r, "r", rtc_step, ptc_step),
                    _adjusted(twt.x, "x", rtc_step, ptc_step),
                    phase,
                    nominal_v2,
                    snref,
                )
            )
    else:
        taps.append(_tap(1, twt.rated_u2 / twt.rated_u1, twt.r, twt.x, 0.0, nominal_v2, snref))

    node1 = ctx.node_name(bus1)
    node2 = ctx.node_name(bus2)
    banks: list[CapacitorOrReactorBank] = []
    # negative magnetizing conductance or capacitive susceptance cannot be carried by the transformer record
    if -twt.b < 0 or twt.g < 0 or compatibility:
        mvar = twt.b * nominal_v2**2 / divider
        loss = 1000 * twt.g * nominal_v2**2 / divider
        bank = _additional_bank(ctx, twt, node1, mvar if twt.b > 0 else 0.0, loss if twt.g < 0 else 0.0)
        if bank is not None:
            banks.append(bank)
        if compatibility:
            bank = _additional_bank(ctx, twt, node2, mvar, loss)
            if bank is not None:
                banks.append(bank)

    transformer = DetailedTwoWindingTransformer(
        name=ctx.branch_name(twt.id, bus1, bus2),
        status=BranchStatus.from_connections(bus1.connected, bus2.connected),
        cmagn=losses.cmagn,
        rate=TRANSFORMER_RATE,
        pcu=losses.pcu,
        pfer=losses.pfer,
        esat=1.0,
        nominal_tap=nominal_tap,
        initial_tap=initial_tap,
        regulated_node=regulated_node,
        target_v=target_v,
        regulating_mode=regulating_mode,
        taps=taps,
    )
    return transformer, banks


def convert_three_windings_transformer(
    ctx: ExportContext, t3wt: ThreeWindingsTransformer
) -> ThreeWindingTransformer | None:
    buses = [ctx.connection_bus(leg.terminal) for leg in t3wt.legs]
    for i, j in ((0, 1), (0, 2), (1, 2)):
        if buses[i].same_as(buses[j]):
            logger.warning(
                "Skipping three windings transformer %s: sides %d and %d on bus %s", t3wt.id, i + 1, j + 1, buses[i].id
            )
            return None

    snref = ctx.snref
    compatibility = ctx.config.compatibility_mode
    rates = (TRANSFORMER_RATE, TRANSFORMER_RATE, TRANSFORMER_RATE)
    nominal_vs = [ctx.network.nominal_v(leg.terminal) for leg in t3wt.legs]
    u0 = t3wt.rated_u0
    u3 = nominal_vs[2]

    def shunt(value: float) -> float:
        return value / snref / 2.0 if compatibility else value

    leg1, leg2, leg3 = t3wt.legs
    rho3 = u0 / u3
    if leg3.ratio_tap_changer is not None:
        rho3 *= leg3.ratio_tap_changer.current_step.rho
    if leg3.phase_tap_changer is not None:
        rho3 *= leg3.phase_tap_changer.current_step.rho

    # legs 1 and 2 in p.u. of (rate, U0); leg 3 moved behind its ratio, in p.u. of (rate, U3)
    r_pu = [
        leg1.r * rates[0] / u0**2,
        leg2.r * rates[1] / u0**2,
        leg3.r / rho3**2 * rates[2] / u3**2,
    ]
    x_pu = [
        leg1.x * rates[0] / u0**2,
        leg2.x * rates[1] / u0**2,
        leg3.x / rho3**2 * rates[2] / u3**2,
    ]

    pcu_t = [100 * r for r in r_pu]
    pcu12 = pairwise(pcu_t[0], pcu_t[1], rates[0], rates[1])
    pcu13 = pairwise(pcu_t[0], pcu_t[2], rates[0], rates[2])
    pcu23 = pairwise(pcu_t[1], pcu_t[2], rates[1], rates[2])

    g0 = rho3**2 * sum(shunt(leg.g) for leg in t3wt.legs)
    b0 = rho3**2 * sum(shunt(leg.b) for leg in t3wt.legs)
    g0_pu = max(0.0, g0) * u3**2 / rates[2]
    b0_pu = min(0.0, b0) * u3**2 / rates[2]
    pfer = 100 * g0_pu * rates[2] / min(rates)
    cmagn = 100 * math.hypot(b0_pu, g0_pu) * rates[2] / min(rates)

    regulating_leg = next(
        (
            k
            for k, leg in enumerate(t3wt.legs)
            if leg.ratio_tap_changer is not None and leg.ratio_tap_changer.regulating
        ),
        None,
    )
    regulating_mode = TransformerRegulatingMode.NOT_REGULATING
    regulated_node = None
    target_v = math.nan
    nominal_tap = 1
    initial_tap = 1
    tap_count = 1
    if regulating_leg is not None:
        rtc = t3wt.legs[regulating_leg].ratio_tap_changer
        tap_count = rtc.step_count
        regulated = (
            ctx.connection_bus(rtc.regulation_terminal, use_fake_nodes=False)
            if rtc.regulation_terminal is not None
            else None
        )
        if regulated is not None and regulated.id is not None:
            regulating_mode = TransformerRegulatingMode.VOLTAGE
            regulated_node = ctx.node_name(regulated)
            target_v = rtc.target_v
            initial_tap = rtc.tap_position - rtc.low_tap + 1
            nominal_tap = rtc.step_count // 2 + 1

    taps: list[ThreeWindingTap] = []
    for i in range(tap_count):
        uno = list(nominal_vs)
        ucc_t = [winding_leakage(r_pu[k], x_pu[k]) for k in range(3)]
        for k, leg in enumerate(t3wt.legs):
            if leg.phase_tap_changer is not None:
                uno[k] /= leg.phase_tap_changer.current_step.rho
            rtc = leg.ratio_tap_changer
            if rtc is None:
                continue
            if k == regulating_leg:
                step = rtc.step(rtc.low_tap + i)
                ucc_t[k] = 100 * math.hypot(
                    tap_step_value(r_pu[k], step.r, 0.0), tap_step_value(x_pu[k], step.x, 0.0)
                )
                uno[k] /= step.rho
            else:
                uno[k] /= rtc.current_step.rho
        ucc12 = pairwise(ucc_t[0], ucc_t[1], rates[0], rates[1])
        ucc13 = pairwise(ucc_t[0], ucc_t[2], rates[0], rates[2])
        ucc23 = pairwise(ucc_t[1], ucc_t[2], rates[1], rates[2])
        indexes = (1, 2) if tap_count == 1 else (i + 1,)
        for index in indexes:
            taps.append(ThreeWindingTap(index, uno[0], uno[1], uno[2], ucc12, ucc13, ucc23))

    return ThreeWindingTransformer(
        name=ctx.dictionary.get_target(t3wt.id),
        node1=ctx.node_name(buses[0]),
        node2=ctx.node_name(buses[1]),
        node3=ctx.node_name(buses[2]),
        status=ThreeWindingsStatus.CLOSED_AT_ALL_SIDES,
        cmagn=cmagn,
        rate1=rates[0],
        rate2=rates[1],
        rate3=rates[2],
        pcu12=pcu12,
        pcu13=pcu13,
        pcu23=pcu23,
        pfer=pfer,
        esat=1.0,
        nominal_tap=nominal_tap,
        initial_tap=initial_tap,
        regulated_node=regulated_node,
        target_v=target_v,
        regulating_mode=regulating_mode,
        taps=taps,
    )
