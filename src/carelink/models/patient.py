"""Patient database model.

Patients are owned by the record store. The consent protocol references them
by id and never writes to this table; the primary key is the identity
provider's subject id for the patient's account.
"""

from sqlalchemy import Column, Date, Index, Integer, String, Text

from .base import BaseModel

# Columns returned by patient search and accepted-patient listings
PUBLIC_FIELDS = (
    "id",
    "first_name",
    "middle_name",
    "last_name",
    "birthday",
    "age",
    "email",
    "contact_num",
    "blood_type",
    "address",
)


class Patient(BaseModel):
    """Patient demographic record."""

    __tablename__ = "patients"

    first_name = Column(String(100), nullable=False)
    middle_name = Column(String(100))
    last_name = Column(String(100), nullable=False)
    birthday = Column(Date)
    age = Column(Integer)
    email = Column(String(255), unique=True)
    contact_num = Column(String(50))
    blood_type = Column(String(5))
    address = Column(Text)

    __table_args__ = (Index("idx_patient_name", "last_name", "first_name"),)

    @property
    def full_name(self) -> str:
        """Return "first last" for display and log context."""
        return f"{self.first_name} {self.last_name}"

    def summary(self) -> dict:
        """Public demographic fields as a plain dictionary."""
        data = self.to_dict()
        return {key: data.get(key) for key in PUBLIC_FIELDS}
