"""Local catalog models — change-units, feature definitions, run options and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable


class UnitKind(Enum):
    """How a change-unit is applied."""

    ARCHIVE_BUNDLE = "archive_bundle"  # Directory imported as a site archive
    EXECUTABLE_SCRIPT = "executable_script"  # Python module with a migrate() callable


@dataclass(frozen=True)
class ChangeUnit:
    """A named, orderable item of work discovered in the catalog directory."""

    id: str
    kind: UnitKind
    path: Path
    notes: str | None = None

    @property
    def is_archive(self) -> bool:
        return self.kind is UnitKind.ARCHIVE_BUNDLE


@dataclass
class FeatureDefinition:
    """Local template for a deployable feature (``<features>/<name>/feature.py``)."""

    name: str
    path: Path
    requires: list[str] = field(default_factory=list)  # Advisory only
    default_vars: dict[str, Any] = field(default_factory=dict)
    secret_vars: list[str] = field(default_factory=list)
    questions: list[dict[str, Any]] | Callable[..., Any] | None = None
    exclude_migrations: list[str] = field(default_factory=list)  # Regex patterns
    exclude_artifacts: list[str] = field(default_factory=list)  # Artifact names

    before_deploy: Callable[..., Any] | None = None
    finish: Callable[..., Any] | None = None
    remove: Callable[..., Any] | None = None

    @property
    def migrations_dir(self) -> Path:
        return self.path / "migrations"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.path),
            "requires": self.requires,
            "default_vars": self.default_vars,
            "secret_vars": self.secret_vars,
        }


@dataclass
class RunOptions:
    """Caller-supplied options for a reconciliation run."""

    exclude: list[str] = field(default_factory=list)  # Regex patterns on entry names
    apply: bool = True  # Persist applied units to the instance
    dry_run: bool = False  # Only report what would run
    force_bootstrap: bool = False
    allow_bootstrap: bool = True
    vars: dict[str, Any] = field(default_factory=dict)
    show_notes: bool = True
    short_code: str | None = None
    scope: str = ""  # Prefix for persisted unit identifiers (feature sub-catalogs)

    def scoped(self, unit_id: str) -> str:
        return f"{self.scope}/{unit_id}" if self.scope else unit_id


@dataclass
class RunSummary:
    """Outcome of a reconciliation run."""

    pending: list[str] = field(default_factory=list)
    ran: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)  # Vetoed by before_each
    recovered: list[str] = field(default_factory=list)  # Failures handled by on_failure
    applied_units: list[str] = field(default_factory=list)
    bootstrapped: bool = False
    dry_run: bool = False
    duration_ms: int = 0

    @property
    def up_to_date(self) -> bool:
        return not self.pending

    def summary(self) -> str:
        lines = [
            f"Pending:      {len(self.pending)}",
            f"Ran:          {len(self.ran)}",
        ]
        if self.skipped:
            lines.append(f"Skipped:      {', '.join(self.skipped)}")
        if self.recovered:
            lines.append(f"Recovered:    {', '.join(self.recovered)}")
        if self.bootstrapped:
            lines.append("Bootstrapped: yes")
        if self.dry_run:
            lines.append("Mode:         dry run")
        lines.append(f"Applied:      {len(self.applied_units)} total")
        lines.append(f"Duration:     {self.duration_ms}ms")
        return "\n".join(lines)
