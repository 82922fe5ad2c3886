# venmito/parsers.py
"""
File formats -> lists of raw record dicts.

Everything that comes out of here is a plain ``list[dict]`` ready for a
reconciler; field aliases and type coercion are handled by the pydantic
models in ``records``.
"""
from __future__ import annotations

import csv
import io
import json
import logging
import os
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import UploadParseError

logger = logging.getLogger(__name__)

FORMATS = ("json", "yaml", "csv", "xml")

_EXTENSIONS = {
    ".json": "json",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".csv": "csv",
    ".xml": "xml",
}

_CONTENT_TYPES = {
    "application/json": "json",
    "application/x-yaml": "yaml",
    "application/yaml": "yaml",
    "text/yaml": "yaml",
    "text/x-yaml": "yaml",
    "text/csv": "csv",
    "application/csv": "csv",
    "application/xml": "xml",
    "text/xml": "xml",
}


def detect_format(
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    explicit: Optional[str] = None,
) -> str:
    if explicit:
        fmt = explicit.strip().lower()
        fmt = "yaml" if fmt == "yml" else fmt
        if fmt not in FORMATS:
            raise UploadParseError(f"Unsupported format: {explicit!r}")
        return fmt
    if filename:
        ext = os.path.splitext(filename)[1].lower()
        if ext in _EXTENSIONS:
            return _EXTENSIONS[ext]
    if content_type:
        mime = content_type.split(";")[0].strip().lower()
        if mime in _CONTENT_TYPES:
            return _CONTENT_TYPES[mime]
    raise UploadParseError(
        f"Cannot tell the file format (filename={filename!r}, content_type={content_type!r})"
    )


def _decode(content: Union[bytes, str]) -> str:
    if isinstance(content, str):
        return content.lstrip("\ufeff")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise UploadParseError(f"File is not valid UTF-8: {e}") from e


def _as_records(data: Any, fmt: str) -> List[Dict[str, Any]]:
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        data = data["data"]
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise UploadParseError(f"{fmt}: expected a list of records, got {type(data).__name__}")
    bad = [i for i, row in enumerate(data) if not isinstance(row, dict)]
    if bad:
        raise UploadParseError(f"{fmt}: entries {bad[:5]} are not objects")
    return data


# ---------------- JSON ----------------

def parse_json(text: str) -> List[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise UploadParseError(f"json: {e}") from e
    return _as_records(data, "json")


# ---------------- YAML ----------------

_LOOSE_SPLIT = re.compile(r"\s{2,}|\t+")


def _parse_loose_yaml(text: str) -> List[Dict[str, Any]]:
    """`- key: value   key: value` lines, one record per dash."""
    records: List[Dict[str, Any]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("-"):
            continue
        record: Dict[str, Any] = {}
        for part in _LOOSE_SPLIT.split(line[1:].strip()):
            name, sep, value = part.partition(":")
            if sep and name.strip() and value.strip():
                record[name.strip()] = value.strip()
        if record:
            records.append(record)
    return records


def parse_yaml(text: str) -> List[Dict[str, Any]]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.info("Standard YAML parse failed (%s), trying the loose format", e)
        data = None
    if isinstance(data, dict) or (isinstance(data, list) and all(isinstance(row, dict) for row in data)):
        return _as_records(data, "yaml")
    records = _parse_loose_yaml(text)
    if not records:
        raise UploadParseError("yaml: could not parse content in any recognised format")
    return records


# ---------------- CSV ----------------

def parse_csv(text: str) -> List[Dict[str, Any]]:
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise UploadParseError("csv: missing header row")
    records: List[Dict[str, Any]] = []
    try:
        for row in reader:
            record = {}
            for k, v in row.items():
                # short rows give None values, long rows a None key
                if k is None or v is None:
                    continue
                k, v = k.strip(), v.strip()
                if k and v:
                    record[k] = v
            if record:
                records.append(record)
    except csv.Error as e:
        raise UploadParseError(f"csv: line {reader.line_num}: {e}") from e
    return records


# ---------------- XML ----------------

def _element_value(el: ET.Element) -> Any:
    children = list(el)
    if not children and not el.attrib:
        return (el.text or "").strip() or None

    node: Dict[str, Any] = dict(el.attrib)
    for child in children:
        value = _element_value(child)
        # line items are always a list, even when there is only one
        if child.tag == "item" and len(child):
            node.setdefault(child.tag, []).append(value)
        elif child.tag in node:
            if not isinstance(node[child.tag], list):
                node[child.tag] = [node[child.tag]]
            node[child.tag].append(value)
        else:
            node[child.tag] = value
    return node


def parse_xml(text: str) -> List[Dict[str, Any]]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise UploadParseError(f"xml: {e}") from e
    children = list(root)
    if not children:
        return _as_records(_element_value(root), "xml")
    return _as_records([_element_value(child) for child in children], "xml")


_PARSERS = {
    "json": parse_json,
    "yaml": parse_yaml,
    "csv": parse_csv,
    "xml": parse_xml,
}


def parse_records(content: Union[bytes, str], fmt: str) -> List[Dict[str, Any]]:
    if fmt not in _PARSERS:
        raise UploadParseError(f"Unsupported format: {fmt!r}")
    records = _PARSERS[fmt](_decode(content))
    logger.info("Parsed %d %s records", len(records), fmt)
    return records


def parse_file(path: str) -> List[Dict[str, Any]]:
    fmt = detect_format(filename=path)
    with open(path, "rb") as f:
        return parse_records(f.read(), fmt)
