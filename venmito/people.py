# venmito/people.py
from __future__ import annotations

import logging

from .associations import sync_person_devices
from .matching import find_person_by_email
from .models import Person
from .pipeline import Applied, Reconciler, RowOutcome, Skipped, SkipReason
from .records import PersonRecord, RawPerson

logger = logging.getLogger(__name__)

# columns copied from the record; None means "not in the upload"
_FIELDS = ("identifier", "first_name", "last_name", "telephone", "email", "city", "country", "dob")


class PeopleReconciler(Reconciler):
    """
    Upsert people by email and replace their device links. A new person
    needs both names; an update may carry any subset of fields.
    """

    family = "people"
    raw_model = RawPerson

    def describe(self, record: PersonRecord) -> str:
        return f"email={record.email or '-'} identifier={record.identifier or '-'}"

    def reconcile(self, index: int, record: PersonRecord) -> RowOutcome:
        person = find_person_by_email(self.session, record.email)
        created = person is None
        if created:
            if not record.first_name or not record.last_name:
                return Skipped(index, SkipReason.INVALID_RECORD, "first_name and last_name are required",
                               self.describe(record))
            person = Person(**{name: getattr(record, name) for name in _FIELDS})
            self.session.add(person)
        else:
            for name in _FIELDS:
                value = getattr(record, name)
                if value is not None:
                    setattr(person, name, value)
            if record.dob_unparsed:
                person.dob = None
        self.session.flush()

        devices = []
        if record.devices:
            devices = sync_person_devices(self.session, person, record.devices)

        logger.debug("%s person id=%s (%s)", "Inserted" if created else "Updated", person.id, record.email)
        return Applied(index, {
            "id": person.id,
            "identifier": person.identifier,
            "email": person.email,
            "first_name": person.first_name,
            "last_name": person.last_name,
            "devices": devices,
            "created": created,
        })
