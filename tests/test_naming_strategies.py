from __future__ import annotations

import logging
from pathlib import Path

import pytest

from src.ech_export.config import ExportConfig
from src.ech_model.errors import AlreadyBoundError, ConfigError, RenameExhaustedError
from src.naming.dictionary import IdentifierDictionary, NameType
from src.naming.strategies import (
    CutNameStrategy,
    ExplicitTableStrategy,
    SequentialNamingStrategy,
    add_derived_id,
    create_naming_strategy,
    cut_to_width,
    resolve_collision,
)


def test_cut_to_width_pads_and_truncates() -> None:
    assert cut_to_width("GEN", 8) == "GEN     "
    assert cut_to_width("SUBSTATION1", 8) == "SUBSTATI"


def test_cut_strategy_overwrites_trailing_characters_on_collision() -> None:
    dictionary = IdentifierDictionary()
    dictionary.add("a", "SUBSTATI")
    dictionary.add("b", "SUBSTAT0")
    dictionary.add("c", "SUBSTAT1")

    CutNameStrategy().fill(dictionary, NameType.NODE, ["SUBSTATION1"])

    assert dictionary.get_target("SUBSTATION1") == "SUBSTAT2"


def test_cut_strategy_is_sorted_and_skips_known_sources() -> None:
    dictionary = IdentifierDictionary()
    dictionary.add("SUBSTATION_B", "KEPT    ")

    CutNameStrategy().fill(dictionary, NameType.NODE, ["SUBSTATION_C", "SUBSTATION_A", "SUBSTATION_B"])

    assert dictionary.get_target("SUBSTATION_A") == "SUBSTATI"
    assert dictionary.get_target("SUBSTATION_B") == "KEPT    "
    assert dictionary.get_target("SUBSTATION_C") == "SUBSTAT0"


def test_cut_strategy_replaces_forbidden_characters() -> None:
    dictionary = IdentifierDictionary()
    strategy = CutNameStrategy(forbidden_characters="/%", replacement="#")

    strategy.fill(dictionary, NameType.LOAD, ['A/B%C"D'])

    assert dictionary.get_target('A/B%C"D') == "A#B#C#D "


def test_resolve_collision_raises_when_counter_exceeds_width() -> None:
    with pytest.raises(RenameExhaustedError):
        resolve_collision("X", 1, lambda name: True, "XYZ")


def test_sequential_strategy_numbers_each_category() -> None:
    dictionary = IdentifierDictionary()
    strategy = SequentialNamingStrategy()

    strategy.fill(dictionary, NameType.NODE, ["b", "a"])
    strategy.fill(dictionary, NameType.GENERATOR, ["g"])

    assert dictionary.get_target("a") == "N0000000"
    assert dictionary.get_target("b") == "N0000001"
    assert dictionary.get_target("g") == "G0000000"


def _write_table(path: Path, rows: list[str]) -> Path:
    path.write_text("\n".join(["source_id;target_id", *rows]) + "\n", encoding="utf-8")
    return path


def test_explicit_table_uses_table_and_falls_back_to_cut_names(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    table = _write_table(tmp_path / "names.csv", ["GEN;GENERAT1", "NGEN;NODEGEN", "TOO;TOOLONGNAME"])
    caplog.set_level(logging.INFO)

    strategy = ExplicitTableStrategy(table)
    dictionary = IdentifierDictionary()
    strategy.fill(dictionary, NameType.GENERATOR, ["GEN", "OTHER"])
    strategy.fill(dictionary, NameType.NODE, ["NGEN", "NLOAD"])

    assert strategy.table == {"GEN": "GENERAT1", "NGEN": "NODEGEN"}
    assert dictionary.get_target("GEN") == "GENERAT1"
    assert dictionary.get_target("OTHER") == "OTHER   "
    assert dictionary.get_target("NGEN") == "NODEGEN"
    assert dictionary.get_target("NLOAD") == "NLOAD   "

    skipped = [r for r in caplog.records if "line 4" in r.getMessage()]
    assert skipped and skipped[0].levelno == logging.WARNING
    misses = {r.getMessage().split()[1]: r.levelno for r in caplog.records if "not found in naming table" in r.getMessage()}
    assert misses == {"OTHER": logging.WARNING, "NLOAD": logging.INFO}


def test_explicit_table_fallback_avoids_table_targets(tmp_path: Path) -> None:
    table = _write_table(tmp_path / "names.csv", ["LATER;SHORTNAM"])
    strategy = ExplicitTableStrategy(table)
    dictionary = IdentifierDictionary()

    strategy.fill(dictionary, NameType.LOAD, ["SHORTNAME1"])
    strategy.fill(dictionary, NameType.LOAD, ["LATER"])

    assert dictionary.get_target("SHORTNAME1") == "SHORTNA0"
    assert dictionary.get_target("LATER") == "SHORTNAM"


def test_explicit_table_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        ExplicitTableStrategy(tmp_path / "missing.csv")
    duplicate = _write_table(tmp_path / "dup.csv", ["A;SAME", "B;SAME"])
    with pytest.raises(ConfigError):
        ExplicitTableStrategy(duplicate)
    empty = _write_table(tmp_path / "empty.csv", ["A;"])
    with pytest.raises(ConfigError):
        ExplicitTableStrategy(empty)


def test_create_naming_strategy_from_config(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    assert isinstance(create_naming_strategy(ExportConfig()), CutNameStrategy)
    assert isinstance(create_naming_strategy(ExportConfig(naming_strategy="sequential")), SequentialNamingStrategy)

    table = _write_table(tmp_path / "names.csv", ["GEN;G1"])
    assert isinstance(create_naming_strategy(ExportConfig(naming_table_file=str(table))), ExplicitTableStrategy)

    with caplog.at_level(logging.WARNING):
        strategy = create_naming_strategy(ExportConfig(naming_strategy="table"))
    assert isinstance(strategy, CutNameStrategy)
    assert "naming_table_file" in caplog.text


def test_add_derived_id_registers_once() -> None:
    dictionary = IdentifierDictionary()
    dictionary.add("x", "fict_C1 ")

    target = add_derived_id(dictionary, "fict_C1", NameType.LOAD)

    assert target == "fict_C10"
    assert dictionary.get_source(target) == "fict_C1"
    with pytest.raises(AlreadyBoundError):
        add_derived_id(dictionary, "fict_C1", NameType.LOAD)
