"""Data models — remote state records and the local unit/feature catalog."""

from unitflow.models.state import (
    FeatureInstance,
    FeatureState,
    IdentityRegistration,
    MigrationState,
)
from unitflow.models.units import (
    ChangeUnit,
    FeatureDefinition,
    RunOptions,
    RunSummary,
    UnitKind,
)

__all__ = [
    "ChangeUnit",
    "FeatureDefinition",
    "FeatureInstance",
    "FeatureState",
    "IdentityRegistration",
    "MigrationState",
    "RunOptions",
    "RunSummary",
    "UnitKind",
]
