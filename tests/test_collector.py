"""Tests for unit and feature discovery."""

import tempfile
import textwrap
from pathlib import Path

import pytest

from unitflow.errors import NotFoundError
from unitflow.features.collector import collect_features, find_feature
from unitflow.migrations.collector import collation_key, collect_units, load_unit
from unitflow.models.units import UnitKind


def _make_catalog(root: Path, names: list[str]):
    for name in names:
        if name.endswith(".py"):
            (root / name).write_text("def migrate(args):\n    pass\n")
        else:
            (root / name).mkdir()
            (root / name / "data.xml").write_text("<data/>")


# --- Units ---


def test_collect_units_sorted_case_insensitive():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _make_catalog(root, ["b-second.py", "A-first", "a-first.py", "c-third"])
        assert collect_units(root) == ["A-first", "a-first.py", "b-second.py", "c-third"]


def test_collect_units_not_numeric_aware():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _make_catalog(root, ["2-two.py", "10-ten.py", "1-one.py"])
        assert collect_units(root) == ["1-one.py", "10-ten.py", "2-two.py"]


def test_collect_units_is_stable():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _make_catalog(root, ["0002-b.py", "0001-a", "0003-c.py"])
        assert collect_units(root) == collect_units(root)


def test_collect_units_skips_non_units():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _make_catalog(root, ["0001-a.py", "0002-b"])
        (root / "setup.py").write_text("")
        (root / "README.md").write_text("")
        (root / ".hidden").mkdir()
        (root / "__pycache__").mkdir()
        assert collect_units(root) == ["0001-a.py", "0002-b"]


def test_collect_units_exclude_patterns():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _make_catalog(root, ["0001-a.py", "0002-skip-me.py", "0003-c"])
        assert collect_units(root, exclude=["skip"]) == ["0001-a.py", "0003-c"]
        assert collect_units(root, exclude=["^0001", "^0003"]) == ["0002-skip-me.py"]


def test_collect_units_missing_directory():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(NotFoundError):
            collect_units(Path(tmp) / "missing")


def test_collation_key_lowercase_first():
    assert sorted(["B", "a", "A", "b"], key=collation_key) == ["a", "A", "b", "B"]


def test_collect_units_punctuation_before_digits():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _make_catalog(root, ["0001-a.py", "_pre.py", "a-last.py"])
        assert collect_units(root) == ["_pre.py", "0001-a.py", "a-last.py"]


def test_collect_units_accents_sort_with_base_letter():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _make_catalog(root, ["zeta.py", "étape.py", "foo.py", "echo.py"])
        assert collect_units(root) == ["echo.py", "étape.py", "foo.py", "zeta.py"]


def test_load_unit_kinds_and_notes():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _make_catalog(root, ["0001-a", "0002-b.py"])
        (root / "0001-a" / "notes.txt").write_text("Imports the catalog")

        bundle = load_unit(root, "0001-a")
        assert bundle.kind == UnitKind.ARCHIVE_BUNDLE
        assert bundle.is_archive
        assert bundle.notes == "Imports the catalog"
        assert load_unit(root, "0001-a", read_notes=False).notes is None

        script = load_unit(root, "0002-b.py")
        assert script.kind == UnitKind.EXECUTABLE_SCRIPT
        assert script.notes is None

        with pytest.raises(NotFoundError):
            load_unit(root, "0003-c.py")


# --- Features ---


def test_collect_features_reads_descriptor():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "payments").mkdir()
        (root / "payments" / "feature.py").write_text(
            textwrap.dedent(
                """
                requires = ["base"]
                default_vars = {"mode": "test"}
                secret_vars = ["api_key"]
                exclude_artifacts = ["int_payments_tests"]

                def finish(args, ctx):
                    pass
                """
            )
        )
        (root / "base").mkdir()
        (root / "base" / "feature.py").write_text('name = "base-feature"\n')
        (root / "not-a-feature").mkdir()

        features = collect_features(root)
        assert [f.name for f in features] == ["base-feature", "payments"]

        payments = find_feature(root, "payments")
        assert payments.requires == ["base"]
        assert payments.default_vars == {"mode": "test"}
        assert payments.secret_vars == ["api_key"]
        assert payments.exclude_artifacts == ["int_payments_tests"]
        assert callable(payments.finish)
        assert payments.remove is None
        assert payments.migrations_dir == (root / "payments" / "migrations").resolve()


def test_find_feature_missing():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(NotFoundError):
            find_feature(tmp, "nope")
        with pytest.raises(NotFoundError):
            collect_features(Path(tmp) / "missing")
