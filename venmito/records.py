# venmito/records.py
"""
Raw upload records and their normalized counterparts.

Uploads arrive as loosely-typed mappings (JSON, YAML, CSV and XML all end up
here). Each family has a pydantic ``Raw*`` model that accepts the field names
and aliases seen in the wild, and a ``to_record()`` step that produces a frozen
dataclass with real types. Matching and upsert logic only ever sees the
dataclasses.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
IDENTIFIER_WIDTH = 4
DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y")

# device flag columns used by the YAML export of people
DEVICE_FLAGS = {"android": "Android", "iphone": "iPhone", "desktop": "Desktop"}


# ----------------------- helpers -----------------------

def clean_text(value: Any) -> Optional[str]:
    """Scalar -> stripped text, '' -> None. Containers are rejected."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if not isinstance(value, str):
        raise ValueError(f"expected a scalar value, got {type(value).__name__}")
    text = value.strip()
    return text or None


def pad_identifier(value: Any) -> Optional[str]:
    text = clean_text(value)
    if text is None:
        return None
    if text.isdigit():
        return text.zfill(IDENTIFIER_WIDTH)
    return text


def parse_date(value: Any) -> Optional[date]:
    """Best-effort date parsing; returns None when nothing matches."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    # drop a time component: 2021-03-04T10:00:00Z / 2021-03-04 10:00
    head = text.replace("T", " ").split(" ")[0]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(head, fmt).date()
        except ValueError:
            continue
    return None


def require_date(value: Any, field_name: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"{field_name}: unparseable date {value!r}")
    return parsed


def to_money(value: Any, field_name: str) -> Decimal:
    text = clean_text(value)
    if text is None:
        raise ValueError(f"{field_name} is required")
    try:
        amount = Decimal(text.replace(",", "").lstrip("$"))
    except InvalidOperation:
        raise ValueError(f"{field_name}: not a number {value!r}") from None
    if not amount.is_finite():
        raise ValueError(f"{field_name}: not a finite number {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def is_yes(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() == "yes"


def _truthy_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = clean_text(value)
    return text is not None and text.lower() in {"1", "true", "yes", "y"}


# ----------------------- normalized records -----------------------

@dataclass(frozen=True)
class PersonRecord:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    identifier: Optional[str] = None
    email: Optional[str] = None
    telephone: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    dob: Optional[date] = None
    devices: Tuple[str, ...] = ()
    # a dob was sent but could not be parsed
    dob_unparsed: bool = False


@dataclass(frozen=True)
class PromotionRecord:
    promotion: str
    responded: bool
    promotion_date: date
    client_email: Optional[str] = None
    telephone: Optional[str] = None


@dataclass(frozen=True)
class TransferRecord:
    sender_identifier: str
    recipient_identifier: str
    amount: Decimal
    date: date


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int
    price_per_item: Decimal
    price: Decimal

    @property
    def line_total(self) -> Decimal:
        return (self.price_per_item * self.quantity).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TransactionRecord:
    store: str
    transaction_date: date
    phone: Optional[str] = None
    external_id: Optional[str] = None
    items: Tuple[LineItem, ...] = field(default_factory=tuple)

    @property
    def total_amount(self) -> Decimal:
        # one rule only: the sum of the line `price` fields
        return sum((line.price for line in self.items), Decimal("0.00")).quantize(CENTS)


# ----------------------- raw records -----------------------

class RawRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def to_record(self):  # pragma: no cover - overridden
        raise NotImplementedError


class RawLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    city: Optional[str] = Field(default=None, validation_alias=AliasChoices("City", "city"))
    country: Optional[str] = Field(default=None, validation_alias=AliasChoices("Country", "country"))

    @field_validator("city", "country", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return clean_text(v)


class RawPerson(RawRecord):
    identifier: Optional[str] = Field(default=None, validation_alias=AliasChoices("identifier", "id"))
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    telephone: Optional[str] = Field(default=None, validation_alias=AliasChoices("telephone", "phone"))
    email: Optional[str] = None
    location: Optional[RawLocation] = None
    city: Optional[str] = None
    country: Optional[str] = None
    devices: List[str] = Field(default_factory=list)
    dob: Any = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_loose_shape(cls, data: Any) -> Any:
        # YAML exports carry `name`, `city: "Town, Country"` and device flags
        if not isinstance(data, dict):
            return data
        data = dict(data)
        name = data.get("name")
        if isinstance(name, str) and not (data.get("first_name") or data.get("last_name")):
            first, _, last = name.strip().partition(" ")
            data["first_name"], data["last_name"] = first, last.strip()
        location = data.get("location")
        if isinstance(location, str):
            town, _, country = location.partition(",")
            data["location"] = {"City": town.strip(), "Country": country.strip()}
        city = data.get("city")
        if isinstance(city, str) and "," in city and not data.get("country") and not data.get("location"):
            town, _, country = city.partition(",")
            data["city"], data["country"] = town.strip(), country.strip()
        if not data.get("devices"):
            flagged = [label for raw_key, value in data.items()
                       if isinstance(raw_key, str)
                       for key, label in DEVICE_FLAGS.items()
                       if raw_key.strip().lower() == key and _truthy_flag(value)]
            if flagged:
                data["devices"] = flagged
        return data

    @field_validator("identifier", mode="before")
    @classmethod
    def _identifier(cls, v: Any) -> Optional[str]:
        return pad_identifier(v)

    @field_validator("first_name", "last_name", "telephone", "email", "city", "country", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    @field_validator("devices", mode="before")
    @classmethod
    def _devices(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, dict):
            # XML / YAML style {"device": [...]}
            v = next(iter(v.values()), [])
            if isinstance(v, str):
                v = [v]
        if not isinstance(v, (list, tuple)):
            raise ValueError("devices must be a list of names")
        names = [clean_text(name) for name in v]
        return [name for name in names if name]

    def to_record(self) -> PersonRecord:
        dob = parse_date(self.dob)
        dob_unparsed = dob is None and self.dob not in (None, "")
        if dob_unparsed:
            logger.warning("Unparseable dob %r for %s, storing null", self.dob, self.email or self.identifier)
        location = self.location or RawLocation()
        return PersonRecord(
            first_name=self.first_name,
            last_name=self.last_name,
            identifier=self.identifier,
            email=self.email,
            telephone=self.telephone,
            city=location.city or self.city,
            country=location.country or self.country,
            dob=dob,
            devices=tuple(self.devices),
            dob_unparsed=dob_unparsed,
        )


class RawPromotion(RawRecord):
    client_email: Optional[str] = Field(default=None, validation_alias=AliasChoices("client_email", "email"))
    telephone: Optional[str] = Field(default=None, validation_alias=AliasChoices("telephone", "phone"))
    promotion: Optional[str] = None
    responded: Any = None
    promotion_date: Any = Field(
        default=None, validation_alias=AliasChoices("promotion_date", "promotionDate", "date"),
    )

    @field_validator("client_email", "telephone", "promotion", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    def to_record(self, today: Optional[date] = None) -> PromotionRecord:
        if not self.promotion:
            raise ValueError("promotion is required")
        if self.promotion_date in (None, ""):
            promotion_date = today or date.today()
        else:
            promotion_date = require_date(self.promotion_date, "promotion_date")
        return PromotionRecord(
            promotion=self.promotion,
            responded=is_yes(self.responded),
            promotion_date=promotion_date,
            client_email=self.client_email,
            telephone=self.telephone,
        )


class RawTransfer(RawRecord):
    sender_id: Optional[str] = None
    recipient_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("recipient_id", "receiver_id"))
    amount: Any = None
    date: Any = None

    @field_validator("sender_id", "recipient_id", mode="before")
    @classmethod
    def _identifier(cls, v: Any) -> Optional[str]:
        return pad_identifier(v)

    def to_record(self) -> TransferRecord:
        if not self.sender_id or not self.recipient_id:
            raise ValueError("sender_id and recipient_id are required")
        return TransferRecord(
            sender_identifier=self.sender_id,
            recipient_identifier=self.recipient_id,
            amount=to_money(self.amount, "amount"),
            date=require_date(self.date, "date"),
        )


def _line_entries(items: Any) -> List[Any]:
    """items may be {"item": [...]}, {"item": {...}}, a list, or one bare line."""
    if items is None or items == "":
        return []
    if isinstance(items, dict) and "item" in items and not _looks_like_line(items):
        items = items["item"]
    if isinstance(items, dict):
        return [items]
    if isinstance(items, (list, tuple)):
        return list(items)
    raise ValueError("items must be a list or an object")


def _looks_like_line(entry: dict) -> bool:
    return isinstance(entry.get("item"), str) or "price" in entry or "price_per_item" in entry


def _to_line(entry: Any) -> LineItem:
    if not isinstance(entry, dict):
        raise ValueError(f"line item must be an object, got {type(entry).__name__}")
    name = clean_text(entry.get("item") or entry.get("name") or entry.get("itemName"))
    if not name:
        raise ValueError("line item without a name")
    quantity_text = clean_text(entry.get("quantity"))
    quantity = int(Decimal(quantity_text)) if quantity_text else 1
    if quantity < 1:
        raise ValueError(f"line item {name!r}: quantity must be positive")

    has_unit = clean_text(entry.get("price_per_item")) is not None
    has_price = clean_text(entry.get("price")) is not None
    if not has_unit and not has_price:
        raise ValueError(f"line item {name!r} has no price")
    if has_unit:
        unit = to_money(entry.get("price_per_item"), "price_per_item")
    else:
        unit = (to_money(entry.get("price"), "price") / quantity).quantize(CENTS, rounding=ROUND_HALF_UP)
    if has_price:
        price = to_money(entry.get("price"), "price")
    else:
        price = (unit * quantity).quantize(CENTS, rounding=ROUND_HALF_UP)
    return LineItem(name=name, quantity=quantity, price_per_item=unit, price=price)


class RawTransaction(RawRecord):
    external_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("external_id", "id", "@_id"))
    phone: Optional[str] = Field(default=None, validation_alias=AliasChoices("phone", "telephone"))
    store: Optional[str] = None
    date: Any = Field(default=None, validation_alias=AliasChoices("date", "transaction_date"))
    items: Any = None

    @field_validator("external_id", "phone", "store", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return clean_text(v)

    def to_record(self) -> TransactionRecord:
        if not self.store:
            raise ValueError("store is required")
        return TransactionRecord(
            store=self.store,
            transaction_date=require_date(self.date, "date"),
            phone=self.phone,
            external_id=self.external_id,
            items=tuple(_to_line(entry) for entry in _line_entries(self.items)),
        )
