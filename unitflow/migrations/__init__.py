"""Migrations — collect change-units and reconcile them against an instance."""

from unitflow.migrations.engine import merge_applied, reconcile

__all__ = ["merge_applied", "reconcile"]
