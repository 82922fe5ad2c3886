"""
Tests for people upsert and device synchronization.
"""

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import DataError

from venmito import people as people_module
from venmito.models import Device, Person, PersonDevice
from venmito.people import PeopleReconciler
from venmito.pipeline import SkipReason


def _person(email, **extra):
    row = {"first_name": "Jane", "last_name": "Doe", "email": email}
    row.update(extra)
    return row


def _device_names(session, person_id):
    stmt = (
        select(Device.device_name)
        .join(PersonDevice, PersonDevice.device_id == Device.id)
        .where(PersonDevice.person_id == person_id)
        .order_by(Device.device_name)
    )
    return list(session.scalars(stmt))


def _count(session, model):
    return session.scalar(select(func.count()).select_from(model))


class TestUpsert:
    def test_insert_new_person(self, session):
        report = PeopleReconciler(session).run([_person("jane@example.com", id=5, telephone="555")])

        assert len(report.successes) == 1
        payload = report.successes[0]
        assert payload["created"] is True
        assert payload["identifier"] == "0005"
        person = session.get(Person, payload["id"])
        assert person.telephone == "555"

    def test_reupload_is_idempotent(self, session):
        rows = [_person("jane@example.com", telephone="555"), _person("john@example.com", first_name="John")]
        first = PeopleReconciler(session).run(rows)
        second = PeopleReconciler(session).run(rows)

        assert _count(session, Person) == 2
        assert [p["id"] for p in first.successes] == [p["id"] for p in second.successes]
        assert all(p["created"] is False for p in second.successes)

    def test_update_keeps_fields_absent_from_upload(self, session):
        PeopleReconciler(session).run([_person("jane@example.com", telephone="555", city="Lima")])
        PeopleReconciler(session).run([_person("jane@example.com", last_name="Smith")])

        person = session.scalars(select(Person).where(Person.email == "jane@example.com")).one()
        assert person.last_name == "Smith"
        assert person.telephone == "555"
        assert person.city == "Lima"

    def test_update_without_names(self, session):
        PeopleReconciler(session).run([_person("jane@example.com", telephone="555")])
        report = PeopleReconciler(session).run([{"email": "jane@example.com", "telephone": "556"}])

        assert report.skipped == []
        assert report.successes[0]["created"] is False
        person = session.scalars(select(Person).where(Person.email == "jane@example.com")).one()
        assert person.telephone == "556"
        assert (person.first_name, person.last_name) == ("Jane", "Doe")

    def test_new_person_without_names_is_skipped(self, session):
        report = PeopleReconciler(session).run([{"email": "new@example.com", "telephone": "556"}])

        assert report.successes == []
        assert report.skipped[0].reason is SkipReason.INVALID_RECORD
        assert _count(session, Person) == 0

    def test_unparseable_dob_clears_stored_date(self, session):
        PeopleReconciler(session).run([_person("jane@example.com", dob="1990-01-01")])
        PeopleReconciler(session).run([_person("jane@example.com", dob="garbage")])

        person = session.scalars(select(Person).where(Person.email == "jane@example.com")).one()
        assert person.dob is None

    def test_absent_dob_keeps_stored_date(self, session):
        PeopleReconciler(session).run([_person("jane@example.com", dob="1990-01-01")])
        PeopleReconciler(session).run([_person("jane@example.com", city="Lima")])

        person = session.scalars(select(Person).where(Person.email == "jane@example.com")).one()
        assert person.dob == date(1990, 1, 1)

    def test_person_without_email_is_always_inserted(self, session):
        PeopleReconciler(session).run([{"first_name": "A", "last_name": "B"}])
        PeopleReconciler(session).run([{"first_name": "A", "last_name": "B"}])
        assert _count(session, Person) == 2


class TestPartialBatch:
    def test_invalid_row_is_skipped(self, session):
        report = PeopleReconciler(session).run([
            _person("a@example.com"),
            {"email": "nameless@example.com"},
            _person("c@example.com"),
        ])

        assert [p["email"] for p in report.successes] == ["a@example.com", "c@example.com"]
        assert report.skipped[0].index == 1
        assert report.skipped[0].reason is SkipReason.INVALID_RECORD
        assert _count(session, Person) == 2

    def test_row_storage_error_is_skipped(self, session, monkeypatch):
        real = people_module.find_person_by_email

        def flaky(s, email):
            if email == "b@example.com":
                raise DataError("SELECT", {}, Exception("value too long"))
            return real(s, email)

        monkeypatch.setattr(people_module, "find_person_by_email", flaky)
        report = PeopleReconciler(session).run([
            _person("a@example.com"),
            _person("b@example.com"),
            _person("c@example.com"),
        ])

        assert len(report.successes) == 2
        assert report.skipped[0].reason is SkipReason.WRITE_FAILED
        assert "b@example.com" in report.skipped[0].key
        assert _count(session, Person) == 2

    def test_duplicate_email_in_one_batch_updates(self, session):
        report = PeopleReconciler(session).run([
            _person("a@example.com", city="One"),
            _person("a@example.com", city="Two"),
        ])
        assert report.successes[0]["id"] == report.successes[1]["id"]
        assert report.successes[1]["created"] is False
        assert _count(session, Person) == 1


class TestDevices:
    def test_devices_are_replaced(self, session):
        first = PeopleReconciler(session).run([_person("a@example.com", devices=["Android", "iPhone"])])
        pid = first.successes[0]["id"]
        assert _device_names(session, pid) == ["Android", "iPhone"]

        second = PeopleReconciler(session).run([_person("a@example.com", devices=["Desktop"])])
        assert second.successes[0]["devices"] == ["Desktop"]
        assert _device_names(session, pid) == ["Desktop"]

    def test_empty_device_list_leaves_links(self, session):
        PeopleReconciler(session).run([_person("a@example.com", devices=["Android"])])
        report = PeopleReconciler(session).run([_person("a@example.com", devices=[])])
        assert _device_names(session, report.successes[0]["id"]) == ["Android"]

    def test_reupload_reuses_own_device(self, session):
        PeopleReconciler(session).run([_person("a@example.com", devices=["Android"])])
        PeopleReconciler(session).run([_person("a@example.com", devices=["Android"])])
        assert _count(session, Device) == 1
        assert _count(session, PersonDevice) == 1

    def test_same_device_listed_twice_links_once(self, session):
        report = PeopleReconciler(session).run([_person("a@example.com", devices=["Android", "Android"])])
        assert report.successes[0]["devices"] == ["Android"]
        assert _count(session, PersonDevice) == 1

    def test_devices_not_shared_across_people(self, session):
        # Known limitation: device rows are per person, so two people with
        # an "Android" get two "Android" rows.
        PeopleReconciler(session).run([
            _person("a@example.com", devices=["Android"]),
            _person("b@example.com", devices=["Android"]),
        ])
        PeopleReconciler(session).run([_person("a@example.com", devices=["Android"])])

        names = list(session.scalars(select(Device.device_name).order_by(Device.id)))
        assert names == ["Android", "Android"]
        assert _count(session, PersonDevice) == 2
