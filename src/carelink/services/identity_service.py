"""Resolution of identity-provider subjects to protocol actors.

The identity provider only vouches that a caller holds some account. A caller
counts as authenticated here only if its subject id is the primary key of a
staff or patient row.
"""

from typing import Any, Union

from sqlalchemy.orm import Session

from carelink.core.exceptions import AuthenticationError, ValidationError
from carelink.models.patient import Patient
from carelink.models.staff import HealthcareStaff
from carelink.services.base import parse_id


class IdentityResolver:
    """Maps subject ids onto HealthcareStaff or Patient rows."""

    def __init__(self, session: Session):
        """Initialize the resolver."""
        self.session = session

    def resolve_staff(self, subject_id: Any) -> HealthcareStaff:
        """Return the staff member for ``subject_id``.

        Raises:
            AuthenticationError: blank, malformed or unknown subject
        """
        staff = self._lookup(HealthcareStaff, subject_id)
        if staff is None:
            raise AuthenticationError("Healthcare staff user not found")
        return staff

    def resolve_patient(self, subject_id: Any) -> Patient:
        """Return the patient for ``subject_id``.

        Raises:
            AuthenticationError: blank, malformed or unknown subject
        """
        patient = self._lookup(Patient, subject_id)
        if patient is None:
            raise AuthenticationError("Patient user not found")
        return patient

    def resolve_actor(self, subject_id: Any) -> Union[HealthcareStaff, Patient]:
        """Return whichever staff member or patient ``subject_id`` names."""
        actor = self._lookup(HealthcareStaff, subject_id)
        if actor is None:
            actor = self._lookup(Patient, subject_id)
        if actor is None:
            raise AuthenticationError("No staff member or patient for this identity")
        return actor

    def _lookup(self, model: Any, subject_id: Any) -> Any:
        try:
            key = parse_id(subject_id, "subject_id")
        except ValidationError as e:
            raise AuthenticationError("No resolvable identity") from e
        return self.session.get(model, key)
