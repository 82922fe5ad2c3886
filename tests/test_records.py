"""
Tests for raw record normalization.
"""

from datetime import date
from decimal import Decimal

import pytest

from venmito.records import (
    RawPerson,
    RawPromotion,
    RawTransaction,
    RawTransfer,
    clean_text,
    pad_identifier,
    parse_date,
    to_money,
)


class TestHelpers:
    def test_pad_identifier_pads_digits(self):
        assert pad_identifier(7) == "0007"
        assert pad_identifier("42") == "0042"
        assert pad_identifier(" 12345 ") == "12345"

    def test_pad_identifier_keeps_non_numeric(self):
        assert pad_identifier("abc") == "abc"
        assert pad_identifier("") is None
        assert pad_identifier(None) is None

    def test_clean_text(self):
        assert clean_text("  x ") == "x"
        assert clean_text("   ") is None
        assert clean_text(3.0) == "3"
        with pytest.raises(ValueError):
            clean_text(["a"])

    @pytest.mark.parametrize(
        "raw",
        ["2024-03-05", "2024/03/05", "03/05/2024", "2024-03-05T10:00:00Z", "2024-03-05 08:15"],
    )
    def test_parse_date_formats(self, raw):
        assert parse_date(raw) == date(2024, 3, 5)

    def test_parse_date_garbage(self):
        assert parse_date("not a date") is None
        assert parse_date(None) is None

    def test_to_money(self):
        assert to_money("$1,234.565", "amount") == Decimal("1234.57")
        assert to_money(3, "amount") == Decimal("3.00")

    @pytest.mark.parametrize("raw", [None, "", "abc", "nan", "inf"])
    def test_to_money_rejects(self, raw):
        with pytest.raises(ValueError):
            to_money(raw, "amount")


class TestRawPerson:
    def test_standard_shape(self):
        rec = RawPerson.model_validate({
            "id": 3,
            "first_name": " Ana ",
            "last_name": "Diaz",
            "telephone": "555",
            "email": "ana@example.com",
            "devices": ["iPhone", " Desktop "],
            "location": {"City": "Lima", "Country": "Peru"},
            "dob": "1999-12-31",
        }).to_record()
        assert rec.identifier == "0003"
        assert rec.first_name == "Ana"
        assert rec.devices == ("iPhone", "Desktop")
        assert (rec.city, rec.country) == ("Lima", "Peru")
        assert rec.dob == date(1999, 12, 31)

    def test_loose_yaml_shape(self):
        rec = RawPerson.model_validate({
            "id": "12",
            "name": "Grace Hopper Murray",
            "phone": "555-1",
            "email": "grace@example.com",
            "city": "Arlington, USA",
            "Android": "0",
            "iPhone": 1,
            "Desktop": "1",
        }).to_record()
        assert rec.first_name == "Grace"
        assert rec.last_name == "Hopper Murray"
        assert rec.telephone == "555-1"
        assert (rec.city, rec.country) == ("Arlington", "USA")
        assert rec.devices == ("iPhone", "Desktop")

    def test_devices_as_comma_string(self):
        rec = RawPerson.model_validate(
            {"first_name": "A", "last_name": "B", "devices": "Android, iPhone"}
        ).to_record()
        assert rec.devices == ("Android", "iPhone")

    def test_missing_last_name_is_none(self):
        rec = RawPerson.model_validate({"name": "Cher", "email": "cher@example.com"}).to_record()
        assert (rec.first_name, rec.last_name) == ("Cher", None)

    def test_bad_dob_stored_as_null(self):
        rec = RawPerson.model_validate({"first_name": "A", "last_name": "B", "dob": "someday"}).to_record()
        assert rec.dob is None
        assert rec.dob_unparsed is True

    def test_absent_fields_are_none(self):
        rec = RawPerson.model_validate({"first_name": "A", "last_name": "B"}).to_record()
        assert rec.email is None
        assert rec.telephone is None
        assert rec.devices == ()


class TestRawPromotion:
    def test_responded_yes_no(self):
        yes = RawPromotion.model_validate({"client_email": "a@x", "promotion": "P", "responded": "Yes"})
        no = RawPromotion.model_validate({"client_email": "a@x", "promotion": "P", "responded": "No"})
        assert yes.to_record().responded is True
        assert no.to_record().responded is False

    def test_date_defaults_to_today(self):
        rec = RawPromotion.model_validate({"telephone": "555", "promotion": "P"}).to_record(today=date(2024, 1, 2))
        assert rec.promotion_date == date(2024, 1, 2)
        assert rec.client_email is None

    def test_promotion_required(self):
        with pytest.raises(ValueError):
            RawPromotion.model_validate({"client_email": "a@x"}).to_record()


class TestRawTransfer:
    def test_identifiers_padded(self):
        rec = RawTransfer.model_validate(
            {"sender_id": 7, "recipient_id": "12", "amount": "10.5", "date": "2024-01-01"}
        ).to_record()
        assert rec.sender_identifier == "0007"
        assert rec.recipient_identifier == "0012"
        assert rec.amount == Decimal("10.50")

    def test_missing_amount_is_invalid(self):
        with pytest.raises(ValueError):
            RawTransfer.model_validate({"sender_id": 1, "recipient_id": 2, "date": "2024-01-01"}).to_record()


class TestRawTransaction:
    def test_total_is_sum_of_line_prices(self):
        rec = RawTransaction.model_validate({
            "id": "T1",
            "phone": "555",
            "store": "Shop",
            "date": "2024-01-01",
            "items": {"item": [
                {"item": "A", "price": "10.00", "price_per_item": "3.00", "quantity": "3"},
                {"item": "B", "price": "2.50", "quantity": "1"},
            ]},
        }).to_record()
        assert rec.external_id == "T1"
        assert rec.total_amount == Decimal("12.50")
        assert rec.items[0].line_total == Decimal("9.00")
        assert rec.items[1].price_per_item == Decimal("2.50")

    def test_singular_item_object(self):
        rec = RawTransaction.model_validate({
            "store": "Shop",
            "date": "2024-01-01",
            "items": {"item": {"item": "Soap", "price": "4.00", "quantity": "2"}},
        }).to_record()
        assert len(rec.items) == 1
        assert rec.items[0].price_per_item == Decimal("2.00")

    def test_missing_price_per_item_from_price(self):
        rec = RawTransaction.model_validate({
            "store": "Shop",
            "date": "2024-01-01",
            "items": [{"item": "X", "price_per_item": "1.25", "quantity": 4}],
        }).to_record()
        assert rec.items[0].price == Decimal("5.00")

    def test_bad_quantity_is_invalid(self):
        with pytest.raises(ArithmeticError):
            RawTransaction.model_validate({
                "store": "Shop",
                "date": "2024-01-01",
                "items": [{"item": "X", "price": "1", "quantity": "lots"}],
            }).to_record()

    def test_store_required(self):
        with pytest.raises(ValueError):
            RawTransaction.model_validate({"date": "2024-01-01"}).to_record()
