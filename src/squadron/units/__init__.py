"""Unit and structure models read by the squad engine."""

from squadron.units.base import (
    Capability,
    LOGISTICS_ROLES,
    Structure,
    StructureType,
    TacticalState,
    THREAT_CAPABILITIES,
    UNATTACKABLE_STRUCTURES,
    Unit,
    object_id,
)

__all__ = [
    "Capability",
    "LOGISTICS_ROLES",
    "Structure",
    "StructureType",
    "TacticalState",
    "THREAT_CAPABILITIES",
    "UNATTACKABLE_STRUCTURES",
    "Unit",
    "object_id",
]
