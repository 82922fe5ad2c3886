# venmito/models.py
from __future__ import annotations

from datetime import date

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, Numeric, String,
    UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from .db import Base  # IMPORTANT: use the SAME Base created in venmito.db


def _created_at():
    return Column(DateTime(timezone=True), nullable=False, server_default=func.now())


def _updated_at():
    return Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class Person(Base):
    __tablename__ = "people"

    id         = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String, nullable=True, index=True)  # zero-padded source id, used by transfers
    first_name = Column(String, nullable=False)
    last_name  = Column(String, nullable=False)
    telephone  = Column(String, nullable=True, index=True)
    email      = Column(String, nullable=True, unique=True)
    city       = Column(String, nullable=True)
    country    = Column(String, nullable=True)
    dob        = Column(Date, nullable=True)
    created_at = _created_at()
    updated_at = _updated_at()

    device_links = relationship("PersonDevice", back_populates="person", cascade="all, delete-orphan")
    promotions   = relationship("Promotion", back_populates="person", cascade="all, delete-orphan")
    transactions = relationship("Transaction", back_populates="person")

    @property
    def full_name(self) -> str:
        return f"{(self.first_name or '').strip()} {(self.last_name or '').strip()}".strip()


class Device(Base):
    __tablename__ = "devices"

    id          = Column(Integer, primary_key=True, autoincrement=True)
    device_name = Column(String, nullable=False)
    device_type = Column(String, nullable=True)
    created_at  = _created_at()
    updated_at  = _updated_at()

    person_links = relationship("PersonDevice", back_populates="device")


class PersonDevice(Base):
    __tablename__ = "people_devices"
    __table_args__ = (UniqueConstraint("person_id", "device_id", name="uq_people_devices_person_device"),)

    id            = Column(Integer, primary_key=True, autoincrement=True)
    person_id     = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id     = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False)
    assigned_date = Column(Date, nullable=False, default=date.today)
    created_at    = _created_at()
    updated_at    = _updated_at()

    person = relationship("Person", back_populates="device_links")
    device = relationship("Device", back_populates="person_links")


class Promotion(Base):
    __tablename__ = "promotions"

    id             = Column(Integer, primary_key=True, autoincrement=True)
    person_id      = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=True)
    promotion      = Column(String, nullable=False)
    responded      = Column(Boolean, nullable=False, default=False)
    promotion_date = Column(Date, nullable=False)
    created_at     = _created_at()
    updated_at     = _updated_at()

    person = relationship("Person", back_populates="promotions")


class Transfer(Base):
    __tablename__ = "transfers"

    id           = Column(Integer, primary_key=True, autoincrement=True)
    sender_id    = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False)
    amount       = Column(Numeric(10, 2), nullable=False)
    date         = Column(Date, nullable=False)
    created_at   = _created_at()
    updated_at   = _updated_at()

    sender    = relationship("Person", foreign_keys=[sender_id])
    recipient = relationship("Person", foreign_keys=[recipient_id])


class Item(Base):
    __tablename__ = "items"

    id            = Column(Integer, primary_key=True, autoincrement=True)
    name          = Column(String, nullable=False, unique=True)
    default_price = Column(Numeric(10, 2), nullable=False)
    created_at    = _created_at()
    updated_at    = _updated_at()


class Transaction(Base):
    __tablename__ = "transactions"

    id               = Column(Integer, primary_key=True, autoincrement=True)
    external_id      = Column(String, nullable=True, index=True)
    person_id        = Column(Integer, ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    phone            = Column(String, nullable=True, index=True)  # kept for later re-matching
    store            = Column(String, nullable=False)
    transaction_date = Column(Date, nullable=False, index=True)
    total_amount     = Column(Numeric(10, 2), nullable=False)
    created_at       = _created_at()
    updated_at       = _updated_at()

    person = relationship("Person", back_populates="transactions")
    lines  = relationship("TransactionItem", back_populates="transaction", cascade="all, delete-orphan")


class TransactionItem(Base):
    __tablename__ = "transaction_items"

    id             = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id        = Column(Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    quantity       = Column(Integer, nullable=False, default=1)
    price_per_item = Column(Numeric(10, 2), nullable=False)
    total_price    = Column(Numeric(10, 2), nullable=False)  # quantity * price_per_item
    created_at     = _created_at()
    updated_at     = _updated_at()

    transaction = relationship("Transaction", back_populates="lines")
    item        = relationship("Item")


# Helpful indexes
Index("ix_promotions_dedup", Promotion.person_id, Promotion.promotion, Promotion.promotion_date)
Index("ix_transfers_date", Transfer.date)
