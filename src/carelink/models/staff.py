"""Healthcare staff model and role tiers."""

import enum
from typing import FrozenSet

from sqlalchemy import Column, Date, Enum, ForeignKey, String
from sqlalchemy.orm import relationship

from .base import BaseModel
from .db_types import UUID


class Capability(enum.Enum):
    """Things a staff member may be allowed to do."""

    READ_ONLY = "read_only"
    EDIT = "edit"
    EMERGENCY_OVERRIDE = "emergency_override"


class RoleTier(enum.IntEnum):
    """Staff capability level.

    Tier 1 reads, tier 2 also edits medical records, tier 3 may additionally
    invoke the emergency override.
    """

    READ_ONLY = 1
    EDIT = 2
    EMERGENCY = 3

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        """Capabilities granted to this tier."""
        return ROLE_CAPABILITIES[self]


ROLE_CAPABILITIES = {
    RoleTier.READ_ONLY: frozenset({Capability.READ_ONLY}),
    RoleTier.EDIT: frozenset({Capability.READ_ONLY, Capability.EDIT}),
    RoleTier.EMERGENCY: frozenset(
        {Capability.READ_ONLY, Capability.EDIT, Capability.EMERGENCY_OVERRIDE}
    ),
}


class HealthcareStaff(BaseModel):
    """A member of a hospital's staff. The id is the identity-provider subject."""

    __tablename__ = "healthcare_staff"

    hospital_id = Column(
        UUID(), ForeignKey("hospitals.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    first_name = Column(String(100), nullable=False)
    middle_name = Column(String(100))
    last_name = Column(String(100), nullable=False)
    birthday = Column(Date)
    occupation = Column(String(100))
    role = Column(Enum(RoleTier, name="role_tier"), nullable=False, default=RoleTier.READ_ONLY)

    hospital = relationship("Hospital")

    @property
    def full_name(self) -> str:
        """Return "first last" for display."""
        return f"{self.first_name} {self.last_name}"

    def can(self, capability: Capability) -> bool:
        """Check whether this staff member's tier carries ``capability``."""
        return capability in RoleTier(self.role).capabilities
