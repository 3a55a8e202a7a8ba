"""Remote state records — what the instance knows about applied units and features."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class IdentityRegistration:
    """Schema version a calling identity (client ID) last bootstrapped at."""

    schema_version: int = 0


@dataclass
class MigrationState:
    """Singleton migration record persisted on the instance preferences."""

    schema_version: int | None = None
    applied_units: list[str] = field(default_factory=list)
    registered_identities: dict[str, IdentityRegistration] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)

    @property
    def last_applied(self) -> str | None:
        return self.applied_units[-1] if self.applied_units else None


@dataclass
class FeatureInstance:
    """One deployed feature on the instance."""

    name: str
    variables: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    last_modified_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "variables": self.variables,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_modified_at": (
                self.last_modified_at.isoformat() if self.last_modified_at else None
            ),
        }


@dataclass
class FeatureState:
    """Feature schema version, identity registry, and deployed instances."""

    schema_version: int | None = None
    registered_identities: dict[str, IdentityRegistration] = field(default_factory=dict)
    instances: list[FeatureInstance] = field(default_factory=list)

    def get(self, name: str) -> FeatureInstance | None:
        for instance in self.instances:
            if instance.name == name:
                return instance
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "registered_identities": {
                k: {"version": v.schema_version}
                for k, v in self.registered_identities.items()
            },
            "instances": [i.to_dict() for i in self.instances],
        }
