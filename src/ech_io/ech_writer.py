from __future__ import annotations

import logging
from pathlib import Path
from typing import TextIO

from src.ech_io.record_writer import RecordWriter
from src.ech_model.entities import (
    AcdcVscConverter,
    Area,
    BranchName,
    CapacitorOrReactorBank,
    CouplingDevice,
    DcLink,
    DcNode,
    DetailedTwoWindingTransformer,
    DissymmetricalBranch,
    Generator,
    Line,
    Load,
    Node,
    StaticVarCompensator,
    ThreeWindingTransformer,
)
from src.ech_model.network import VERSION, TargetNetwork
from src.ech_model.parameters import GeneralParameters, SpecialParameters

logger = logging.getLogger(__name__)

DATE_FORMAT = "%d/%m/%y"


def _flag(value: bool) -> str:
    return "1" if value else "0"


class EchWriter:
    """Serializes a checked ``TargetNetwork`` into fixed-column .ech records.

    Every record starts with a two-character code in columns 1-2; names are
    written left-aligned on 8 columns, numbers right-aligned on 8 columns
    separated by one blank.
    """

    def __init__(
        self,
        network: TargetNetwork,
        general: GeneralParameters | None = None,
        special: SpecialParameters | None = None,
    ) -> None:
        self.network = network
        self.general = general if general is not None else GeneralParameters()
        self.special = special

    def write(self, stream: TextIO, name: str = "") -> None:
        self.network.check_consistency()
        writer = RecordWriter(stream)
        self._write_header(writer, name)
        self._write_general_parameters(writer)
        if self.special is not None:
            self._write_special_parameters(writer)
        for area in self.network.areas:
            self._write_area(writer, area)
        for node in self.network.nodes:
            self._write_node(writer, node)
        for device in self.network.coupling_devices:
            self._write_coupling_device(writer, device)
        for line in self.network.lines:
            self._write_line(writer, line)
        for branch in self.network.dissymmetrical_branches:
            self._write_dissymmetrical_branch(writer, branch)
        for transformer in self.network.two_winding_transformers:
            self._write_two_winding_transformer(writer, transformer)
        for transformer in self.network.three_winding_transformers:
            self._write_three_winding_transformer(writer, transformer)
        for load in self.network.loads:
            self._write_load(writer, load)
        for generator in self.network.generators:
            self._write_generator(writer, generator)
        for bank in self.network.banks:
            self._write_bank(writer, bank)
        for svc in self.network.static_var_compensators:
            self._write_static_var_compensator(writer, svc)
        for node in self.network.dc_nodes:
            self._write_dc_node(writer, node)
        for link in self.network.dc_links:
            self._write_dc_link(writer, link)
        for converter in self.network.vsc_converters:
            self._write_vsc_converter(writer, converter)
        self.network.mark_serialized()
        logger.info("Wrote %d nodes and %d lines", len(self.network.nodes), len(self.network.lines))

    def write_file(self, path: str | Path, name: str = "") -> None:
        # an inconsistent model leaves no file behind
        self.network.check_consistency()
        with Path(path).open("w", encoding="utf-8", newline="") as f:
            self.write(f, name)

    def _write_header(self, writer: RecordWriter, name: str) -> None:
        writer.add_value("HEADER", 1)
        writer.add_value(self.general.edit_date.strftime(DATE_FORMAT), 12)
        writer.add_value(VERSION, 21)
        writer.add_new_line()
        writer.add_value("B", 1)
        writer.add_new_line()
        if name:
            writer.add_value("C", 1)
            writer.add_value(name, 3)
            writer.add_new_line()

    def _write_general_parameters(self, writer: RecordWriter) -> None:
        general = self.general
        writer.add_value("9", 1, 2)
        writer.add_value(general.snref, 4, 11)
        writer.add_value(general.max_iterations, 13, 15)
        writer.add_value(general.tolerance, 17, 24)
        writer.add_value(general.start_mode.value, 26, 26)
        writer.add_value(_flag(general.transformer_voltage_control), 28, 28)
        writer.add_value(_flag(general.svc_voltage_control), 30, 30)
        writer.add_new_line()

    def _write_special_parameters(self, writer: RecordWriter) -> None:
        special = self.special
        writer.add_value("SP", 1, 2)
        writer.add_value(special.min_branch_impedance, 4, 11)
        writer.add_value(special.tap_voltage_tolerance, 13, 20)
        writer.add_value(special.max_voltage_deviation, 22, 29)
        writer.add_new_line()

    def _write_area(self, writer: RecordWriter, area: Area) -> None:
        writer.add_value("AA", 1, 2)
        writer.add_value(area.name, 4, 5)
        writer.add_value(area.type.value, 7, 8)
        writer.add_new_line()

    def _write_node(self, writer: RecordWriter, node: Node) -> None:
        writer.add_value("1", 1, 2)
        writer.add_value(node.area, 4, 5)
        writer.add_value(node.name, 7, 14)
        writer.add_value(node.vbase, 16, 23)
        writer.add_value(node.vinit, 25, 32)
        writer.add_value(node.angle, 34, 41)
        writer.add_value("S" if node.slack else " ", 43, 43)
        writer.add_new_line()

    @staticmethod
    def _write_branch_name(writer: RecordWriter, name: BranchName) -> None:
        writer.add_value(name.node1, 4, 11)
        writer.add_value(name.node2, 13, 20)
        writer.add_value(name.parallel_index, 22, 22)

    def _write_coupling_device(self, writer: RecordWriter, device: CouplingDevice) -> None:
        writer.add_value("6", 1, 2)
        self._write_branch_name(writer, device.name)
        writer.add_value(device.status.value, 24, 24)
        writer.add_new_line()

    def _write_line(self, writer: RecordWriter, line: Line) -> None:
        writer.add_value("3", 1, 2)
        self._write_branch_name(writer, line.name)
        writer.add_value(line.status.value, 24, 24)
        writer.add_value(line.r, 26, 33)
        writer.add_value(line.x, 35, 42)
        writer.add_value(line.g, 44, 51)
        writer.add_value(line.b, 53, 60)
        writer.add_value(line.rate, 62, 69)
        writer.add_new_line()

    def _write_dissymmetrical_branch(self, writer: RecordWriter, branch: DissymmetricalBranch) -> None:
        writer.add_value("3D", 1, 2)
        self._write_branch_name(writer, branch.name)
        writer.add_value(branch.status.value, 24, 24)
        writer.add_value(branch.r1, 26, 33)
        writer.add_value(branch.x1, 35, 42)
        writer.add_value(branch.g1, 44, 51)
        writer.add_value(branch.b1, 53, 60)
        writer.add_value(branch.rate, 62, 69)
        writer.add_value(branch.r2, 71, 78)
        writer.add_value(branch.x2, 80, 87)
        writer.add_value(branch.g2, 89, 96)
        writer.add_value(branch.b2, 98, 105)
        writer.add_new_line()

    def _write_two_winding_transformer(self, writer: RecordWriter, transformer: DetailedTwoWindingTransformer) -> None:
        writer.add_value("41", 1, 2)
        self._write_branch_name(writer, transformer.name)
        writer.add_value(transformer.status.value, 24, 24)
        writer.add_value(transformer.rate, 26, 33)
        writer.add_value(transformer.pcu, 35, 42)
        writer.add_value(transformer.pfer, 44, 51)
        writer.add_value(transformer.cmagn, 53, 60)
        writer.add_value(transformer.esat, 62, 69)
        writer.add_new_line()

        writer.add_value("42", 1, 2)
        writer.add_value(transformer.nominal_tap, 4, 7)
        writer.add_value(transformer.initial_tap, 9, 12)
        writer.add_value(transformer.regulated_node or "", 14, 21)
        writer.add_value(transformer.target_v, 23, 30)
        writer.add_value(transformer.pregmin, 32, 39)
        writer.add_value(transformer.pregmax, 41, 48)
        writer.add_value(transformer.regulating_mode.value, 50, 50)
        writer.add_new_line()

        for tap in transformer.taps:
            writer.add_value("43", 1, 2)
            writer.add_value(tap.index, 4, 7)
            writer.add_value(tap.phase, 9, 16)
            writer.add_value(tap.uno1, 18, 25)
            writer.add_value(tap.uno2, 27, 34)
            writer.add_value(tap.ucc, 36, 43)
            writer.add_new_line()

    def _write_three_winding_transformer(self, writer: RecordWriter, transformer: ThreeWindingTransformer) -> None:
        writer.add_value("47", 1, 2)
        writer.add_value(transformer.name, 4, 11)
        writer.add_value(transformer.node1, 13, 20)
        writer.add_value(transformer.node2, 22, 29)
        writer.add_value(transformer.node3, 31, 38)
        writer.add_value(transformer.status.value, 40, 40)
        writer.add_new_line()

        writer.add_value("48", 1, 2)
        writer.add_value(transformer.rate1, 4, 11)
        writer.add_value(transformer.rate2, 13, 20)
        writer.add_value(transformer.rate3, 22, 29)
        writer.add_value(transformer.pcu12, 31, 38)
        writer.add_value(transformer.pcu13, 40, 47)
        writer.add_value(transformer.pcu23, 49, 56)
        writer.add_value(transformer.pfer, 58, 65)
        writer.add_value(transformer.cmagn, 67, 74)
        writer.add_value(transformer.esat, 76, 83)
        writer.add_new_line()

        writer.add_value("49", 1, 2)
        writer.add_value(transformer.nominal_tap, 4, 7)
        writer.add_value(transformer.initial_tap, 9, 12)
        writer.add_value(transformer.regulated_node or "", 14, 21)
        writer.add_value(transformer.target_v, 23, 30)
        writer.add_value(transformer.regulating_mode.value, 32, 32)
        writer.add_new_line()

        for tap in transformer.taps:
            writer.add_value("4T", 1, 2)
            writer.add_value(tap.index, 4, 7)
            writer.add_value(tap.phase1, 9, 16)
            writer.add_value(tap.phase2, 18, 25)
            writer.add_value(tap.phase3, 27, 34)
            writer.add_value(tap.uno1, 36, 43)
            writer.add_value(tap.uno2, 45, 52)
            writer.add_value(tap.uno3, 54, 61)
            writer.add_value(tap.ucc12, 63, 70)
            writer.add_value(tap.ucc13, 72, 79)
            writer.add_value(tap.ucc23, 81, 88)
            writer.add_new_line()

    def _write_load(self, writer: RecordWriter, load: Load) -> None:
        writer.add_value("5", 1, 2)
        writer.add_value(load.status.value, 4, 4)
        writer.add_value(load.name, 6, 13)
        writer.add_value(load.node, 15, 22)
        writer.add_value(load.pa, 24, 31)
        writer.add_value(load.pb, 33, 40)
        writer.add_value(load.p0, 42, 49)
        writer.add_value(load.qa, 51, 58)
        writer.add_value(load.qb, 60, 67)
        writer.add_value(load.q0, 69, 76)
        writer.add_new_line()

    def _write_generator(self, writer: RecordWriter, generator: Generator) -> None:
        writer.add_value("G", 1, 2)
        writer.add_value(generator.status.value, 4, 4)
        writer.add_value(generator.name, 6, 13)
        writer.add_value(generator.node, 15, 22)
        writer.add_value(generator.pmin, 24, 31)
        writer.add_value(generator.pgen, 33, 40)
        writer.add_value(generator.pmax, 42, 49)
        writer.add_value(generator.qmin, 51, 58)
        writer.add_value(generator.qgen, 60, 67)
        writer.add_value(generator.qmax, 69, 76)
        writer.add_value(generator.regulating_mode.value, 78, 78)
        writer.add_value(generator.target_v, 80, 87)
        writer.add_value(generator.regulated_node, 89, 96)
        writer.add_value(generator.q_share, 98, 105)
        writer.add_new_line()

    def _write_bank(self, writer: RecordWriter, bank: CapacitorOrReactorBank) -> None:
        writer.add_value("C", 1, 2)
        writer.add_value(bank.name, 4, 11)
        writer.add_value(bank.node, 13, 20)
        writer.add_value(bank.steps_in_service, 22, 24)
        writer.add_value(bank.loss_per_step, 26, 33)
        writer.add_value(bank.mvar_per_step, 35, 42)
        writer.add_value(bank.max_steps, 44, 46)
        writer.add_value(bank.regulating_mode.value, 48, 48)
        writer.add_new_line()

    def _write_static_var_compensator(self, writer: RecordWriter, svc: StaticVarCompensator) -> None:
        writer.add_value("SV", 1, 2)
        writer.add_value(svc.name, 4, 11)
        writer.add_value(svc.status.value, 13, 13)
        writer.add_value(svc.node, 15, 22)
        writer.add_value(svc.bmin, 24, 31)
        writer.add_value(svc.binit, 33, 40)
        writer.add_value(svc.bmax, 42, 49)
        writer.add_value(svc.regulating_mode.value, 51, 51)
        writer.add_value(svc.target_v, 53, 60)
        writer.add_value(svc.q_share, 62, 69)
        writer.add_new_line()

    def _write_dc_node(self, writer: RecordWriter, node: DcNode) -> None:
        writer.add_value("DN", 1, 2)
        writer.add_value(node.area, 4, 5)
        writer.add_value(node.name, 7, 14)
        writer.add_value(node.vbase, 16, 23)
        writer.add_value(node.status, 25, 25)
        writer.add_new_line()

    def _write_dc_link(self, writer: RecordWriter, link: DcLink) -> None:
        writer.add_value("DL", 1, 2)
        writer.add_value(link.node1, 4, 11)
        writer.add_value(link.node2, 13, 20)
        writer.add_value(link.parallel_index, 22, 22)
        writer.add_value(link.r, 24, 31)
        writer.add_value(link.status.value, 33, 33)
        writer.add_new_line()

    def _write_vsc_converter(self, writer: RecordWriter, converter: AcdcVscConverter) -> None:
        writer.add_value("DO", 1, 2)
        writer.add_value(converter.name, 4, 11)
        writer.add_value(converter.dc_node1, 13, 20)
        writer.add_value(converter.dc_node2, 22, 29)
        writer.add_value(converter.ac_node, 31, 38)
        writer.add_value(converter.state.value, 40, 40)
        writer.add_value(converter.dc_control_mode.value, 42, 42)
        writer.add_value(converter.ac_control_mode.value, 44, 44)
        writer.add_value(converter.rrdc, 46, 53)
        writer.add_value(converter.rxdc, 55, 62)
        writer.add_new_line()

        writer.add_value("DP", 1, 2)
        writer.add_value(converter.pac, 4, 11)
        writer.add_value(converter.pvd, 13, 20)
        writer.add_value(converter.pva, 22, 29)
        writer.add_value(converter.pre, 31, 38)
        writer.add_value(converter.pco, 40, 47)
        writer.add_value(converter.q_share, 49, 56)
        writer.add_value(converter.pmin, 58, 65)
        writer.add_value(converter.pmax, 67, 74)
        writer.add_value(converter.qmin, 76, 83)
        writer.add_value(converter.qmax, 85, 92)
        writer.add_new_line()

        writer.add_value("DQ", 1, 2)
        writer.add_value(converter.vsb0, 4, 11)
        writer.add_value(converter.vsb1, 13, 20)
        writer.add_value(converter.vsb2, 22, 29)
        writer.add_value(converter.mvm, 31, 38)
        writer.add_value(converter.mva, 40, 47)
        writer.add_new_line()
