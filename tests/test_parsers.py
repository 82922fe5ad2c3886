"""
Tests for upload file parsing.
"""

from pathlib import Path

import pytest

from venmito.errors import UploadParseError
from venmito.parsers import detect_format, parse_file, parse_records
from venmito.records import RawTransaction

DATA_DIR = Path(__file__).resolve().parents[1] / "data"


class TestDetectFormat:
    def test_explicit_wins(self):
        assert detect_format(filename="x.csv", explicit="yml") == "yaml"

    def test_from_extension(self):
        assert detect_format(filename="people.YAML") == "yaml"
        assert detect_format(filename="transactions.xml") == "xml"

    def test_from_content_type(self):
        assert detect_format(content_type="text/csv; charset=utf-8") == "csv"

    def test_unknown(self):
        with pytest.raises(UploadParseError):
            detect_format(filename="notes.txt", content_type="text/plain")
        with pytest.raises(UploadParseError):
            detect_format(explicit="parquet")


class TestJson:
    def test_array_and_wrapped(self):
        assert parse_records(b'[{"a": 1}]', "json") == [{"a": 1}]
        assert parse_records('{"data": [{"a": 1}, {"a": 2}]}', "json") == [{"a": 1}, {"a": 2}]

    def test_single_object(self):
        assert parse_records('{"a": 1}', "json") == [{"a": 1}]

    def test_invalid(self):
        with pytest.raises(UploadParseError):
            parse_records("[{", "json")
        with pytest.raises(UploadParseError):
            parse_records("[1, 2]", "json")


class TestYaml:
    def test_standard_documents(self):
        text = "- id: 1\n  name: Ada Lovelace\n  Android: 1\n- id: 2\n  name: Alan Turing\n"
        rows = parse_records(text, "yaml")
        assert rows[0] == {"id": 1, "name": "Ada Lovelace", "Android": 1}
        assert len(rows) == 2

    def test_loose_format(self):
        text = "- id: 1   name: Ada Lovelace   city: London, UK\n- id: 2   name: Alan Turing\n"
        rows = parse_records(text, "yaml")
        assert rows == [
            {"id": "1", "name": "Ada Lovelace", "city": "London, UK"},
            {"id": "2", "name": "Alan Turing"},
        ]

    def test_garbage(self):
        with pytest.raises(UploadParseError):
            parse_records("just a sentence", "yaml")


class TestCsv:
    def test_trims_and_drops_empty(self):
        text = "\ufeff client_email , telephone,promotion\n a@x.com ,, P1 \n,,\n"
        assert parse_records(text.encode("utf-8"), "csv") == [{"client_email": "a@x.com", "promotion": "P1"}]

    def test_bom_bytes(self):
        assert parse_records(b"\xef\xbb\xbfa,b\n1,2\n", "csv") == [{"a": "1", "b": "2"}]

    def test_missing_header(self):
        with pytest.raises(UploadParseError):
            parse_records("", "csv")


class TestXml:
    XML = """<?xml version="1.0"?>
    <transactions>
      <transaction id="T1">
        <phone>555</phone>
        <store>Walmart</store>
        <date>2024-01-15</date>
        <items>
          <item><item>Coffee</item><price>3.00</price><quantity>1</quantity></item>
        </items>
      </transaction>
      <transaction id="T2">
        <phone>556</phone>
        <store>Target</store>
        <date>2024-01-16</date>
        <items>
          <item><item>Tea</item><price>2.00</price><quantity>1</quantity></item>
          <item><item>Milk</item><price>1.00</price><quantity>1</quantity></item>
        </items>
      </transaction>
    </transactions>
    """

    def test_structure(self):
        rows = parse_records(self.XML, "xml")
        assert rows[0]["id"] == "T1"
        assert rows[0]["store"] == "Walmart"
        # a single line item is still a list
        assert rows[0]["items"] == {"item": [{"item": "Coffee", "price": "3.00", "quantity": "1"}]}
        assert len(rows[1]["items"]["item"]) == 2

    def test_rows_normalize(self):
        rows = parse_records(self.XML, "xml")
        rec = RawTransaction.model_validate(rows[1]).to_record()
        assert rec.external_id == "T2"
        assert [line.name for line in rec.items] == ["Tea", "Milk"]

    def test_malformed(self):
        with pytest.raises(UploadParseError):
            parse_records("<transactions><transaction>", "xml")


class TestSampleFiles:
    @pytest.mark.parametrize(
        "name,count",
        [("people.json", 3), ("people.yml", 2), ("promotions.csv", 4), ("transfers.csv", 5), ("transactions.xml", 3)],
    )
    def test_bundled_samples_parse(self, name, count):
        assert len(parse_file(str(DATA_DIR / name))) == count
